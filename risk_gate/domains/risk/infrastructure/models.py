"""Risk engine database models."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String

from ....infrastructure.database.base import BaseModel


class RiskProfileModel(BaseModel):
    """Risk profile snapshot with indexed summary columns."""
    
    __tablename__ = "risk_profiles"
    
    account_id = Column(String(255), primary_key=True)
    risk_level = Column(String(50), nullable=False, index=True)
    risk_score = Column(Integer, nullable=False)
    is_monitored = Column(Boolean, nullable=False, default=False)
    is_restricted = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False)  # optimistic lock
    data = Column(JSON, nullable=False)  # serialized RiskProfile
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class RiskAlertModel(BaseModel):
    """Risk alert record. Rows are never deleted."""
    
    __tablename__ = "risk_alerts"
    
    alert_id = Column(String(64), primary_key=True)
    account_id = Column(String(255), nullable=False, index=True)
    type = Column(String(50), nullable=False, index=True)
    severity = Column(String(20), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)
    risk_score = Column(Integer, nullable=False)
    escalated = Column(Boolean, nullable=False, default=False)
    data = Column(JSON, nullable=False)  # serialized Alert
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
