"""
Voting Engine — vote casting and tally accumulation.

A vote is keyed by (proposal id, voter); the key's prior absence is the
double-vote guard. Weight is the voter's effective power at cast time
(base + delegated to them) and is never recomputed afterwards, even if
delegations change.
"""

from __future__ import annotations

import logging

from civitas.domain.errors import (
    AlreadyVoted,
    InsufficientVotingPower,
    Unauthorized,
    VotingClosed,
)
from civitas.domain.schema import GovernanceState, ProposalState, RequestContext, Vote
from civitas.governance.delegation import DelegationLedger
from civitas.governance.membership import MembershipRegistry
from civitas.governance.proposals import ProposalStore

logger = logging.getLogger(__name__)


class VotingEngine:
    """Records votes against Active proposals."""

    def __init__(
        self,
        state: GovernanceState,
        registry: MembershipRegistry,
        delegations: DelegationLedger,
        proposals: ProposalStore,
    ) -> None:
        self.state = state
        self.registry = registry
        self.delegations = delegations
        self.proposals = proposals

    def get_vote(self, proposal_id: int, voter: str) -> Vote | None:
        return self.state.votes.get(proposal_id, {}).get(voter)

    def cast_vote(self, ctx: RequestContext, proposal_id: int, support: bool) -> Vote:
        """
        Cast the caller's vote.

        Raises:
            NotFound: No such proposal.
            VotingClosed: Proposal is not Active or its window has ended.
            Unauthorized: Caller is not an active member, or is delegating.
            AlreadyVoted: Caller already voted on this proposal.
            InsufficientVotingPower: Caller's effective power is zero.
        """
        proposal = self.proposals.get(proposal_id)
        if proposal.state != ProposalState.ACTIVE or ctx.block_height > proposal.end_block:
            raise VotingClosed(
                f"Voting on proposal {proposal_id} is closed "
                f"(state={proposal.state.value}, end_block={proposal.end_block})"
            )

        member = self.registry.require_active(ctx.caller)
        if member.delegated_to is not None:
            raise Unauthorized(
                f"{ctx.caller} delegates to {member.delegated_to}; undelegate before voting"
            )

        ballots = self.state.votes.setdefault(proposal_id, {})
        if ctx.caller in ballots:
            raise AlreadyVoted(f"{ctx.caller} has already voted on proposal {proposal_id}")

        weight = self.delegations.effective_power(ctx.caller)
        if weight <= 0:
            raise InsufficientVotingPower(f"{ctx.caller} has no effective voting power")

        vote = Vote(
            proposal_id=proposal_id,
            voter=ctx.caller,
            weight=weight,
            support=support,
            voted_at=ctx.block_height,
        )
        ballots[ctx.caller] = vote

        if support:
            proposal.yes_votes += weight
        else:
            proposal.no_votes += weight

        logger.info(
            "Vote cast: proposal=#%d voter=%s support=%s weight=%d",
            proposal_id, ctx.caller, support, weight,
        )
        return vote
