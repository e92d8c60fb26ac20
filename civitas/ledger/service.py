"""
Governance Event Ledger Service — append-only, hash-chained audit trail.

This service provides the core operations for the event ledger:
- Append committed governance events with automatic hash chain computation
- Verify the integrity of the full hash chain
- Query entries by type, caller or sequence

The engine appends a batch of events inside the operation's transaction
boundary, before the new state is swapped in: if the append fails, the
operation fails and the state is untouched.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from civitas.domain.schema import GovernanceEvent, GovernanceEventType
from civitas.ledger.models import Base, GovernanceEventDB

logger = logging.getLogger(__name__)


GENESIS_HASH = "0" * 64  # The "previous hash" for the first entry in the chain
GENESIS_CALLER = "system"


class LedgerIntegrityError(Exception):
    """Raised when the hash chain cannot be extended or fails verification."""
    pass


class EventLedgerService:
    """
    Governance event ledger backed by any SQLAlchemy database.

    Usage:
        ledger = EventLedgerService("sqlite:///civitas_ledger.db")
        ledger.initialize()  # Create tables, seed genesis entry

        engine = GovernanceEngine(admin="admin", ledger_service=ledger)
    """

    def __init__(self, database_url: str) -> None:
        """
        Initialize the ledger service.

        Args:
            database_url: SQLAlchemy connection string (sync driver).
        """
        engine_kwargs = {"echo": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, or every session sees an empty database
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        self.engine = create_engine(database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def initialize(self) -> None:
        """Create the schema and seed the genesis entry if absent."""
        Base.metadata.create_all(self.engine)

        with self.SessionLocal() as session:
            existing = session.get(GovernanceEventDB, 0)
            if existing is None:
                genesis = GovernanceEvent(
                    sequence_number=0,
                    previous_hash=GENESIS_HASH,
                    event_type=GovernanceEventType.GENESIS,
                    block_height=0,
                    caller=GENESIS_CALLER,
                    payload={"message": "Genesis of the Civitas governance event ledger"},
                )
                genesis.entry_hash = genesis.compute_hash()
                session.add(self._to_row(genesis))
                session.commit()
                logger.info("Genesis entry created: hash=%s", genesis.entry_hash[:16])

    def append_events(self, events: list[GovernanceEvent]) -> list[GovernanceEvent]:
        """
        Append a batch of events in one database transaction.

        Returns:
            The events with sequence numbers and hashes assigned.

        Raises:
            LedgerIntegrityError: If the ledger has no genesis entry.
        """
        if not events:
            return []

        with self.SessionLocal() as session, session.begin():
            last = session.execute(
                select(GovernanceEventDB)
                .order_by(GovernanceEventDB.sequence_number.desc())
                .limit(1)
            ).scalar_one_or_none()

            if last is None:
                raise LedgerIntegrityError(
                    "Cannot append: no genesis entry found. Call initialize() first."
                )

            sequence = last.sequence_number
            previous_hash = last.entry_hash
            chained: list[GovernanceEvent] = []
            for event in events:
                sequence += 1
                entry = event.model_copy(
                    update={"sequence_number": sequence, "previous_hash": previous_hash}
                )
                entry.entry_hash = entry.compute_hash()
                session.add(self._to_row(entry))
                chained.append(entry)
                previous_hash = entry.entry_hash

        logger.info(
            "Ledger entries appended: seq=%d..%d",
            chained[0].sequence_number, chained[-1].sequence_number,
        )
        return chained

    def verify_chain(self) -> tuple[bool, int, str]:
        """
        Verify the integrity of the entire hash chain.

        Returns:
            Tuple of (is_valid, entries_verified, message).
        """
        with self.SessionLocal() as session:
            rows = session.execute(
                select(GovernanceEventDB).order_by(GovernanceEventDB.sequence_number.asc())
            ).scalars().all()

            if not rows:
                return False, 0, "No entries found in ledger"

            first = rows[0]
            if first.sequence_number != 0:
                return False, 0, f"First entry has sequence {first.sequence_number}, expected 0"
            if first.previous_hash != GENESIS_HASH:
                return False, 0, "Genesis entry has incorrect previous_hash"

            for i, row in enumerate(rows):
                if row.sequence_number != i:
                    return (
                        False, i,
                        f"Sequence gap: expected {i}, found {row.sequence_number}",
                    )

                expected_hash = self._to_event(row).compute_hash()
                if row.entry_hash != expected_hash:
                    return (
                        False, i,
                        f"Hash mismatch at sequence {row.sequence_number}: "
                        f"stored={row.entry_hash[:16]}... "
                        f"computed={expected_hash[:16]}...",
                    )

                if i > 0 and row.previous_hash != rows[i - 1].entry_hash:
                    return (
                        False, i,
                        f"Chain break at sequence {row.sequence_number}: "
                        f"previous_hash does not match prior entry's hash",
                    )

            return (
                True, len(rows),
                f"Chain verified: {len(rows)} entries, integrity intact",
            )

    def get_by_sequence(self, sequence_number: int) -> GovernanceEvent | None:
        with self.SessionLocal() as session:
            row = session.get(GovernanceEventDB, sequence_number)
            return self._to_event(row) if row is not None else None

    def get_entries_by_type(
        self,
        event_type: GovernanceEventType,
        limit: int = 100,
    ) -> list[GovernanceEvent]:
        """Retrieve entries of one type, newest first."""
        with self.SessionLocal() as session:
            rows = session.execute(
                select(GovernanceEventDB)
                .where(GovernanceEventDB.event_type == event_type.value)
                .order_by(GovernanceEventDB.sequence_number.desc())
                .limit(limit)
            ).scalars().all()
            return [self._to_event(row) for row in rows]

    def get_entries_by_caller(self, caller: str, limit: int = 100) -> list[GovernanceEvent]:
        with self.SessionLocal() as session:
            rows = session.execute(
                select(GovernanceEventDB)
                .where(GovernanceEventDB.caller == caller)
                .order_by(GovernanceEventDB.sequence_number.desc())
                .limit(limit)
            ).scalars().all()
            return [self._to_event(row) for row in rows]

    def get_latest_entries(self, limit: int = 50) -> list[GovernanceEvent]:
        """Retrieve the most recent entries, newest first."""
        with self.SessionLocal() as session:
            rows = session.execute(
                select(GovernanceEventDB)
                .order_by(GovernanceEventDB.sequence_number.desc())
                .limit(limit)
            ).scalars().all()
            return [self._to_event(row) for row in rows]

    def get_entry_count(self) -> int:
        """Return the total number of entries in the ledger."""
        with self.SessionLocal() as session:
            result = session.execute(
                select(func.count()).select_from(GovernanceEventDB)
            )
            return result.scalar() or 0

    # ── Internal ────────────────────────────────────────────────

    @staticmethod
    def _to_row(event: GovernanceEvent) -> GovernanceEventDB:
        return GovernanceEventDB(
            sequence_number=event.sequence_number,
            previous_hash=event.previous_hash,
            entry_hash=event.entry_hash,
            recorded_at=event.recorded_at.isoformat(),
            event_type=event.event_type.value,
            block_height=event.block_height,
            caller=event.caller,
            payload=event.payload,
        )

    @staticmethod
    def _to_event(row: GovernanceEventDB) -> GovernanceEvent:
        recorded_at = datetime.fromisoformat(row.recorded_at)
        if recorded_at.tzinfo is None:
            recorded_at = recorded_at.replace(tzinfo=timezone.utc)
        return GovernanceEvent(
            sequence_number=row.sequence_number,
            previous_hash=row.previous_hash,
            entry_hash=row.entry_hash,
            recorded_at=recorded_at,
            event_type=GovernanceEventType(row.event_type),
            block_height=row.block_height,
            caller=row.caller,
            payload=row.payload,
        )
