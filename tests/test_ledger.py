"""
Tests for the governance event ledger hash chain.

Validates:
- Genesis seeding and append-only sequencing
- Engine operations are recorded in order
- Chain verification and tamper detection
- The audit tool's exit status
"""

from __future__ import annotations

import pytest
from sqlalchemy import update

from civitas.domain.errors import AdministratorOnly
from civitas.domain.schema import (
    GovernanceEvent,
    GovernanceEventType,
    GovernanceParameters,
    ProposalType,
    RequestContext,
)
from civitas.governance.engine import GovernanceEngine
from civitas.ledger.audit import main, run_audit
from civitas.ledger.models import Base, GovernanceEventDB
from civitas.ledger.service import GENESIS_HASH, EventLedgerService, LedgerIntegrityError

ADMIN = "admin"


def _ctx(caller: str, block: int = 1) -> RequestContext:
    return RequestContext(caller=caller, block_height=block)


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def ledger(database_url):
    service = EventLedgerService(database_url)
    service.initialize()
    return service


class TestEventLedgerService:
    """Test the hash-chained event ledger."""

    def test_genesis(self, ledger):
        """Initializing should seed a genesis entry."""
        assert ledger.get_entry_count() == 1
        genesis = ledger.get_by_sequence(0)
        assert genesis.event_type == GovernanceEventType.GENESIS
        assert genesis.previous_hash == GENESIS_HASH

    def test_initialize_is_idempotent(self, ledger):
        """Initializing twice should not add a second genesis."""
        ledger.initialize()
        assert ledger.get_entry_count() == 1

    def test_append_links_entries(self, ledger):
        """Appended entries should chain to their predecessors."""
        events = [
            GovernanceEvent(
                event_type=GovernanceEventType.TREASURY_DEPOSIT,
                block_height=i,
                caller="donor",
                payload={"amount": i * 10},
            )
            for i in range(1, 4)
        ]
        chained = ledger.append_events(events)

        assert [e.sequence_number for e in chained] == [1, 2, 3]
        assert chained[0].previous_hash == ledger.get_by_sequence(0).entry_hash
        assert chained[1].previous_hash == chained[0].entry_hash
        assert chained[2].previous_hash == chained[1].entry_hash
        assert ledger.verify_chain() == (True, 4, "Chain verified: 4 entries, integrity intact")

    def test_append_nothing(self, ledger):
        """Appending no events should be a no-op."""
        assert ledger.append_events([]) == []
        assert ledger.get_entry_count() == 1

    def test_append_without_genesis(self, database_url):
        """Appending to an unseeded ledger should fail."""
        service = EventLedgerService(database_url)
        Base.metadata.create_all(service.engine)
        with pytest.raises(LedgerIntegrityError):
            service.append_events(
                [GovernanceEvent(event_type=GovernanceEventType.VOTE_CAST, block_height=1, caller="a")]
            )

    def test_tamper_detection(self, ledger):
        """Editing a stored payload should break verification."""
        ledger.append_events(
            [GovernanceEvent(
                event_type=GovernanceEventType.TREASURY_DEPOSIT,
                block_height=1,
                caller="donor",
                payload={"amount": 100},
            )]
        )
        with ledger.SessionLocal() as session:
            session.execute(
                update(GovernanceEventDB)
                .where(GovernanceEventDB.sequence_number == 1)
                .values(payload={"amount": 999})
            )
            session.commit()

        is_valid, failed_at, message = ledger.verify_chain()
        assert not is_valid
        assert failed_at == 1
        assert "Hash mismatch" in message

    def test_in_memory_database(self):
        """An in-memory SQLite ledger should keep its entries."""
        service = EventLedgerService("sqlite://")
        service.initialize()
        assert service.get_entry_count() == 1


class TestEngineRecording:
    """Test that engine operations reach the ledger."""

    def test_operations_are_recorded(self, ledger):
        """Successful operations should be recorded in order."""
        engine = GovernanceEngine(
            admin=ADMIN,
            parameters=GovernanceParameters(proposal_deposit=0, voting_period=10, timelock_duration=0),
            ledger_service=ledger,
        )
        engine.add_member(_ctx(ADMIN, 1), "alice", 100)
        proposal = engine.create_proposal(_ctx("alice", 2), "Signal", "", ProposalType.GENERAL)
        engine.cast_vote(_ctx("alice", 3), proposal.id, True)
        engine.finalize_proposal(_ctx("alice", 13), proposal.id)
        engine.execute_proposal(_ctx("alice", 13), proposal.id)

        types = [e.event_type for e in reversed(ledger.get_latest_entries())]
        assert types == [
            GovernanceEventType.GENESIS,
            GovernanceEventType.MEMBER_ADDED,
            GovernanceEventType.PROPOSAL_CREATED,
            GovernanceEventType.VOTE_CAST,
            GovernanceEventType.PROPOSAL_FINALIZED,
            GovernanceEventType.PROPOSAL_EXECUTED,
        ]
        assert ledger.verify_chain()[0]

        finalized = ledger.get_entries_by_type(GovernanceEventType.PROPOSAL_FINALIZED)[0]
        assert finalized.payload["outcome"] == "passed"
        assert finalized.payload["ready_at_block"] == 13

    def test_failed_operation_is_not_recorded(self, ledger):
        """A rejected operation should leave no ledger entry."""
        engine = GovernanceEngine(admin=ADMIN, ledger_service=ledger)
        with pytest.raises(AdministratorOnly):
            engine.add_member(_ctx("mallory", 1), "mallory", 100)
        assert ledger.get_entry_count() == 1
        assert ledger.get_entries_by_caller("mallory") == []


class TestAudit:
    """Test the audit tool."""

    def test_run_audit_valid(self, ledger, database_url):
        """An intact chain should audit clean."""
        assert run_audit(database_url, verbose=True)

    def test_main_exit_status(self, ledger, database_url):
        """The CLI should exit 0 for an intact chain."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--database-url", database_url])
        assert exc_info.value.code == 0
