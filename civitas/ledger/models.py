"""
Governance Event Ledger — SQLAlchemy models for the append-only audit trail.

Every committed governance mutation is recorded as one row. Rows are never
updated or deleted. Each row stores the SHA-256 hash of
(previous_hash || canonical_json(event fields)), so any retroactive
alteration is detectable by recomputing the chain.
"""

from __future__ import annotations

from sqlalchemy import JSON, Column, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all ledger models."""
    pass


class GovernanceEventDB(Base):
    """A single entry in the governance event ledger."""

    __tablename__ = "governance_events"

    # Chain ordering
    sequence_number = Column(
        Integer, primary_key=True, autoincrement=False,
        comment="Monotonically increasing sequence number",
    )

    # Hash chain
    previous_hash = Column(
        String(64), nullable=False,
        comment="SHA-256 hash of the previous entry",
    )
    entry_hash = Column(
        String(64), nullable=False, unique=True,
        comment="SHA-256 hash of this entry",
    )

    # Stored as ISO-8601 text so the hashed representation survives a round trip
    recorded_at = Column(
        String(40), nullable=False,
        comment="When this entry was recorded (ISO-8601, UTC)",
    )

    event_type = Column(
        String(50), nullable=False, index=True,
        comment="Type of governance event",
    )
    block_height = Column(
        Integer, nullable=False,
        comment="Block height of the operation that produced the event",
    )
    caller = Column(
        String(200), nullable=False,
        comment="Caller address of the operation",
    )
    payload = Column(
        JSON, nullable=False,
        comment="Event payload — structure varies by event_type",
    )

    __table_args__ = (
        Index("ix_governance_event_type_block", "event_type", "block_height"),
        Index("ix_governance_event_caller", "caller"),
    )

    def __repr__(self) -> str:
        return (
            f"<GovernanceEvent seq={self.sequence_number} "
            f"type={self.event_type} hash={self.entry_hash[:12]}...>"
        )
