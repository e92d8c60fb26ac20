"""
Tally & Quorum — pass/fail determination from accumulated tallies.

    quorum     = total_voting_power * quorum_bps // 10000
    has_passed = cast >= quorum and yes >= cast * approval_bps // 10000

Approval is measured against votes cast, not total voting power. With zero
votes cast a proposal fails quorum unless the quorum itself is zero.
"""

from __future__ import annotations

from dataclasses import dataclass

from civitas.domain.schema import BASIS_POINTS, GovernanceState, Proposal


@dataclass
class TallyResult:
    """Outcome of tallying one proposal."""

    yes_votes: int
    no_votes: int
    quorum: int
    approval_required: int

    @property
    def total_votes(self) -> int:
        return self.yes_votes + self.no_votes

    @property
    def quorum_met(self) -> bool:
        return self.total_votes >= self.quorum

    @property
    def approved(self) -> bool:
        return self.yes_votes >= self.approval_required

    @property
    def passed(self) -> bool:
        return self.quorum_met and self.approved


class TallyCalculator:
    def __init__(self, state: GovernanceState) -> None:
        self.state = state

    def calculate_quorum(self) -> int:
        return (
            self.state.total_voting_power
            * self.state.parameters.quorum_basis_points
            // BASIS_POINTS
        )

    def tally(self, proposal: Proposal) -> TallyResult:
        cast = proposal.yes_votes + proposal.no_votes
        return TallyResult(
            yes_votes=proposal.yes_votes,
            no_votes=proposal.no_votes,
            quorum=self.calculate_quorum(),
            approval_required=(
                cast * self.state.parameters.approval_threshold_basis_points // BASIS_POINTS
            ),
        )

    def has_passed(self, proposal: Proposal) -> bool:
        return self.tally(proposal).passed
