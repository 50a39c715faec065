"""
TradeSense Risk Gate - Transaction Risk & Compliance Decision Engine

Gates every money-movement operation (deposit, withdrawal, trade) with a
risk and compliance decision: allow, warn, escalate or block.

Key Components:
- Risk Scorer: static profile score and transaction-specific risk
- Usage Tracker / Limit Enforcer: rolling daily counters and ceilings
- Pattern Detector: velocity and statistical anomaly checks
- Compliance Gate: KYC thresholds and simulated AML screening
- Alert Manager: alert creation, severity and escalation
- Risk Decision Service: the orchestrator external callers invoke
"""

__version__ = "0.1.0"
