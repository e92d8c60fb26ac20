"""
Tests for quorum and approval math.

Validates:
- Quorum is a floor of total power times quorum basis points
- Approval is measured against votes cast
- Zero votes fail unless the quorum is zero
"""

from __future__ import annotations

from civitas.domain.schema import (
    GovernanceParameters,
    GovernanceState,
    Proposal,
    ProposalState,
    ProposalType,
    RequestContext,
)
from civitas.governance.engine import GovernanceEngine
from civitas.governance.tally import TallyCalculator

ADMIN = "admin"


def _ctx(caller: str, block: int = 1) -> RequestContext:
    return RequestContext(caller=caller, block_height=block)


def _proposal(yes: int, no: int) -> Proposal:
    return Proposal(
        id=1,
        proposer="alice",
        title="Test",
        proposal_type=ProposalType.GENERAL,
        start_block=1,
        end_block=11,
        yes_votes=yes,
        no_votes=no,
    )


class TestTallyCalculator:
    """Test quorum and approval arithmetic."""

    def _calculator(self, total: int, quorum_bps: int, approval_bps: int = 5100) -> TallyCalculator:
        state = GovernanceState(
            parameters=GovernanceParameters(
                quorum_basis_points=quorum_bps,
                approval_threshold_basis_points=approval_bps,
            ),
            total_voting_power=total,
        )
        return TallyCalculator(state)

    def test_quorum(self):
        """Quorum should be total power times basis points."""
        assert self._calculator(150, 2000).calculate_quorum() == 30

    def test_quorum_floors(self):
        """Quorum should round down."""
        assert self._calculator(149, 2000).calculate_quorum() == 29

    def test_quorum_not_met_despite_unanimous_yes(self):
        """Unanimous support below quorum should fail."""
        result = self._calculator(150, 2000).tally(_proposal(25, 0))
        assert not result.quorum_met
        assert result.approved
        assert not result.passed

    def test_quorum_boundary_is_inclusive(self):
        """Turnout equal to quorum should meet it."""
        assert self._calculator(150, 2000).has_passed(_proposal(30, 0))

    def test_tied_vote_fails_approval(self):
        """A tie should not reach 51% approval."""
        result = self._calculator(1000, 2000).tally(_proposal(150, 150))
        assert result.quorum_met
        assert result.approval_required == 153
        assert not result.passed

    def test_approval_boundary_is_inclusive(self):
        """Yes votes equal to the required share should pass."""
        # 300 * 5100 // 10000 == 153
        assert self._calculator(1000, 2000).has_passed(_proposal(153, 147))

    def test_low_turnout_can_pass(self):
        """Low turnout above quorum should still pass."""
        # 20% turnout, all yes
        assert self._calculator(1000, 2000).has_passed(_proposal(200, 0))

    def test_zero_votes_fail(self):
        """No votes should fail under a positive quorum."""
        assert not self._calculator(1000, 2000).has_passed(_proposal(0, 0))

    def test_zero_votes_pass_with_zero_quorum(self):
        """No votes should pass when quorum is zero."""
        assert self._calculator(1000, 0).has_passed(_proposal(0, 0))


class TestFinalizeOutcomes:
    """Test finalize outcomes through the engine."""

    params = GovernanceParameters(
        voting_period=10,
        quorum_basis_points=2000,
        approval_threshold_basis_points=5100,
        proposal_deposit=0,
        timelock_duration=5,
    )

    def test_quorum_failure_rejects(self):
        """Missing quorum should reject the proposal."""
        engine = GovernanceEngine(admin=ADMIN, parameters=self.params)
        for address, power in [("alice", 100), ("bob", 25), ("carol", 25)]:
            engine.add_member(_ctx(ADMIN), address, power)
        assert engine.get_total_voting_power() == 150
        assert engine.calculate_quorum() == 30

        proposal = engine.create_proposal(_ctx("alice", 1), "Signal", "", ProposalType.GENERAL)
        engine.cast_vote(_ctx("bob", 2), proposal.id, True)
        assert not engine.has_proposal_passed(proposal.id)

        result = engine.finalize_proposal(_ctx("alice", 12), proposal.id)
        assert result.state == ProposalState.REJECTED

    def test_approval_failure_rejects(self):
        """Missing approval should reject the proposal."""
        engine = GovernanceEngine(admin=ADMIN, parameters=self.params)
        for address, power in [("a", 150), ("b", 150), ("c", 700)]:
            engine.add_member(_ctx(ADMIN), address, power)
        assert engine.calculate_quorum() == 200

        proposal = engine.create_proposal(_ctx("c", 1), "Signal", "", ProposalType.GENERAL)
        engine.cast_vote(_ctx("a", 2), proposal.id, True)
        engine.cast_vote(_ctx("b", 2), proposal.id, False)

        result = engine.finalize_proposal(_ctx("c", 12), proposal.id)
        assert result.state == ProposalState.REJECTED

    def test_passing_proposal(self):
        """Quorum and approval together should pass the proposal."""
        engine = GovernanceEngine(admin=ADMIN, parameters=self.params)
        for address, power in [("a", 150), ("b", 150), ("c", 700)]:
            engine.add_member(_ctx(ADMIN), address, power)

        proposal = engine.create_proposal(_ctx("c", 1), "Signal", "", ProposalType.GENERAL)
        engine.cast_vote(_ctx("b", 2), proposal.id, False)
        engine.cast_vote(_ctx("c", 2), proposal.id, True)
        assert engine.has_proposal_passed(proposal.id)

        result = engine.finalize_proposal(_ctx("c", 12), proposal.id)
        assert result.state == ProposalState.PASSED
