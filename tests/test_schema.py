"""
Tests for the Governance Schema — verifies the Pydantic models.

Validates:
- Enum completeness
- Computed fields and terminal states
- Parameters loaded from settings
- Event hash computation
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from civitas.config import GovernanceSettings
from civitas.domain.errors import ErrorKind, GovernanceError, NotFound, VotingClosed
from civitas.domain.schema import (
    PARAMETER_NAMES,
    GovernanceEvent,
    GovernanceEventType,
    GovernanceParameters,
    Proposal,
    ProposalState,
    ProposalType,
    RequestContext,
)
from civitas.governance.execution import EXECUTION_HANDLERS


class TestEnums:
    """Test the domain enums and error tags."""

    def test_proposal_types(self):
        """All four proposal types should exist."""
        assert {t.value for t in ProposalType} == {"funding", "parameter", "membership", "general"}

    def test_every_proposal_type_has_an_execution_handler(self):
        """Every proposal type should have an execution handler."""
        assert set(EXECUTION_HANDLERS) == set(ProposalType)

    def test_cancelled_is_declared(self):
        """Cancelled should exist as a state."""
        assert ProposalState.CANCELLED.value == "cancelled"

    def test_error_kinds_are_tagged(self):
        """Each error class should carry its kind."""
        assert NotFound("x").kind == ErrorKind.NOT_FOUND
        assert VotingClosed().message == "voting_closed"
        assert issubclass(NotFound, GovernanceError)


class TestModels:
    """Test the domain models."""

    def _proposal(self, **overrides) -> Proposal:
        fields = {
            "id": 1,
            "proposer": "alice",
            "title": "Test",
            "proposal_type": ProposalType.GENERAL,
            "start_block": 1,
            "end_block": 11,
        }
        fields.update(overrides)
        return Proposal(**fields)

    def test_total_votes(self):
        """total_votes should sum yes and no votes."""
        proposal = self._proposal(yes_votes=30, no_votes=12)
        assert proposal.total_votes == 42

    def test_terminal_states(self):
        """Rejected, executed and cancelled proposals should be terminal."""
        assert not self._proposal().is_terminal
        assert not self._proposal(state=ProposalState.PASSED).is_terminal
        assert self._proposal(state=ProposalState.REJECTED).is_terminal
        assert self._proposal(state=ProposalState.EXECUTED).is_terminal

    def test_request_context_is_frozen(self):
        """RequestContext should be immutable."""
        ctx = RequestContext(caller="alice", block_height=5)
        with pytest.raises(ValidationError):
            ctx.block_height = 6

    def test_request_context_rejects_negative_block(self):
        """Block heights should not be negative."""
        with pytest.raises(ValidationError):
            RequestContext(caller="alice", block_height=-1)

    def test_parameter_names(self):
        """Parameter names should match the model fields."""
        assert set(PARAMETER_NAMES) == {
            "voting_period",
            "quorum_basis_points",
            "approval_threshold_basis_points",
            "proposal_deposit",
            "timelock_duration",
        }

    def test_parameters_from_settings(self):
        """Default parameters should come from settings."""
        config = GovernanceSettings(voting_period_blocks=42, quorum_basis_points=1500)
        params = GovernanceParameters.from_settings(config)
        assert params.voting_period == 42
        assert params.quorum_basis_points == 1500
        assert params.approval_threshold_basis_points == config.approval_threshold_basis_points


class TestGovernanceEventHash:
    """Test event hashing."""

    def _event(self, **overrides) -> GovernanceEvent:
        fields = {
            "sequence_number": 1,
            "previous_hash": "0" * 64,
            "event_type": GovernanceEventType.VOTE_CAST,
            "block_height": 7,
            "caller": "alice",
            "payload": {"proposal_id": 1, "support": True, "weight": 100},
        }
        fields.update(overrides)
        return GovernanceEvent(**fields)

    def test_compute_hash_deterministic(self):
        """Same event and previous hash should give the same hash."""
        event = self._event()
        assert event.compute_hash() == event.compute_hash()

    def test_compute_hash_format(self):
        """Hashes should be 64 hex characters."""
        h = self._event().compute_hash()
        assert len(h) == 64
        assert all(c in "0123456789abcdef" for c in h)

    def test_tamper_detection(self):
        """Changing the payload should change the hash."""
        event = self._event()
        tampered = event.model_copy(update={"payload": {"proposal_id": 1, "support": True, "weight": 999}})
        assert event.compute_hash() != tampered.compute_hash()
