"""
Risk Domain - Transaction Risk & Compliance Decisions

Every deposit, withdrawal and trade is gated by a decision computed from
the account's risk profile, its rolling usage, its recent transaction
history and the compliance checks that apply to the amount.

Layers:
- domain: immutable snapshots, pure scoring/limit/pattern/compliance rules
- application: alert manager, profile service and the decision orchestrator
- infrastructure: in-memory and SQLAlchemy implementations of the stores
"""
