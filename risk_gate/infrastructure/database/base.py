"""Declarative base shared by every SQL model."""

from sqlalchemy.orm import DeclarativeBase


class BaseModel(DeclarativeBase):
    """Base class for database models."""
    pass
