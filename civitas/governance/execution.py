"""
Execution Scheduler — finalization, timelock queue and typed execution.

Proposal state machine:

    ACTIVE ──finalize──▶ PASSED ──execute──▶ EXECUTED
       │
       └────finalize──▶ REJECTED

CANCELLED is a declared state with no transition into it.

Finalizing a passed proposal queues it with
``ready_at_block = block + timelock_duration`` and refunds the proposer's
deposit. A rejected proposal's deposit is forfeited into a locked pool.
Execution dispatches on the proposal type through a table that must cover
every ``ProposalType``.
"""

from __future__ import annotations

import logging
from typing import Callable

from civitas.domain.errors import (
    InvalidProposal,
    InvalidState,
    NotFound,
    ProposalNotPassed,
    VotingClosed,
)
from civitas.domain.schema import (
    ExecutionQueueEntry,
    GovernanceState,
    Proposal,
    ProposalState,
    ProposalType,
    RequestContext,
)
from civitas.governance.membership import MembershipRegistry
from civitas.governance.proposals import ProposalStore
from civitas.governance.tally import TallyCalculator
from civitas.governance.treasury import ParameterStore, TreasuryLedger

logger = logging.getLogger(__name__)


# Proposal type → handler method name on ExecutionScheduler.
EXECUTION_HANDLERS: dict[ProposalType, str] = {
    ProposalType.FUNDING: "_execute_funding",
    ProposalType.PARAMETER: "_execute_parameter",
    ProposalType.MEMBERSHIP: "_execute_membership",
    ProposalType.GENERAL: "_execute_general",
}

_unhandled = set(ProposalType) - set(EXECUTION_HANDLERS)
if _unhandled:
    raise RuntimeError(
        f"No execution handler for proposal types: {sorted(t.value for t in _unhandled)}"
    )


class ExecutionScheduler:
    """Drives proposals from Active to their terminal state."""

    def __init__(
        self,
        state: GovernanceState,
        proposals: ProposalStore,
        tally: TallyCalculator,
        registry: MembershipRegistry,
        treasury: TreasuryLedger,
        parameters: ParameterStore,
    ) -> None:
        self.state = state
        self.proposals = proposals
        self.tally = tally
        self.registry = registry
        self.treasury = treasury
        self.parameters = parameters

    def get_queue_entry(self, proposal_id: int) -> ExecutionQueueEntry | None:
        return self.state.execution_queue.get(proposal_id)

    def finalize(self, ctx: RequestContext, proposal_id: int) -> Proposal:
        """
        Close voting and decide the outcome. Anyone may finalize.

        Raises:
            NotFound: No such proposal.
            InvalidState: Proposal already finalized or terminal.
            VotingClosed: The voting window has not ended yet.
        """
        proposal = self.proposals.get(proposal_id)
        if proposal.is_terminal:
            raise InvalidState(
                f"Proposal {proposal_id} is {proposal.state.value} and can no longer change"
            )
        if proposal.state != ProposalState.ACTIVE:
            raise InvalidState(f"Proposal {proposal_id} is already finalized")
        if ctx.block_height <= proposal.end_block:
            raise VotingClosed(
                f"Voting on proposal {proposal_id} runs until block {proposal.end_block}"
            )

        result = self.tally.tally(proposal)
        if result.passed:
            proposal.state = ProposalState.PASSED
            ready_at = ctx.block_height + self.state.parameters.timelock_duration
            self.state.execution_queue[proposal_id] = ExecutionQueueEntry(
                proposal_id=proposal_id, ready_at_block=ready_at
            )
            self.treasury.refund_deposit(proposal.proposer, proposal.deposit)
        else:
            proposal.state = ProposalState.REJECTED
            self.treasury.forfeit_deposit(proposal.deposit)

        logger.info(
            "Proposal #%d finalized: %s (yes=%d no=%d quorum=%d approval_required=%d)",
            proposal_id, proposal.state.value, result.yes_votes, result.no_votes,
            result.quorum, result.approval_required,
        )
        return proposal

    def execute(self, ctx: RequestContext, proposal_id: int) -> Proposal:
        """
        Apply a passed proposal's effect once its timelock has elapsed.

        Raises:
            NotFound: No such proposal or no queue entry.
            ProposalNotPassed: Proposal is not in the Passed state.
            VotingClosed: Timelock not yet elapsed.
            InvalidProposal: Funding cannot be paid out.
        """
        proposal = self.proposals.get(proposal_id)
        if proposal.is_terminal:
            raise ProposalNotPassed(
                f"Proposal {proposal_id} is {proposal.state.value} and can no longer change"
            )
        if proposal.state != ProposalState.PASSED:
            raise ProposalNotPassed(f"Proposal {proposal_id} is still active")
        entry = self.state.execution_queue.get(proposal_id)
        if entry is None:
            raise NotFound(f"Proposal {proposal_id} has no execution queue entry")
        if ctx.block_height < entry.ready_at_block:
            raise VotingClosed(
                f"Proposal {proposal_id} is timelocked until block {entry.ready_at_block}"
            )

        handler: Callable[[Proposal, RequestContext], None] = getattr(
            self, EXECUTION_HANDLERS[proposal.proposal_type]
        )
        handler(proposal, ctx)

        proposal.state = ProposalState.EXECUTED
        proposal.executed_at = ctx.block_height
        del self.state.execution_queue[proposal_id]

        logger.info(
            "Proposal #%d executed [%s] at block %d",
            proposal_id, proposal.proposal_type.value, ctx.block_height,
        )
        return proposal

    # ── Type handlers ───────────────────────────────────────────

    def _execute_funding(self, proposal: Proposal, ctx: RequestContext) -> None:
        if proposal.amount > self.treasury.balance:
            raise InvalidProposal(
                f"Treasury balance {self.treasury.balance} cannot cover {proposal.amount}"
            )
        if proposal.recipient is None:
            raise InvalidProposal(f"Funding proposal {proposal.id} has no recipient")
        self.treasury.disburse(proposal.recipient, proposal.amount)

    def _execute_parameter(self, proposal: Proposal, ctx: RequestContext) -> None:
        record = self.state.parameter_changes.get(proposal.id)
        if record is None:
            raise NotFound(f"Proposal {proposal.id} has no parameter change record")
        # Unknown names are a no-op; ParameterStore logs a warning.
        self.parameters.set(record.parameter_name, record.new_value)

    def _execute_membership(self, proposal: Proposal, ctx: RequestContext) -> None:
        record = self.state.membership_changes.get(proposal.id)
        if record is None:
            raise NotFound(f"Proposal {proposal.id} has no membership change record")
        if record.is_addition:
            self.registry.add_member(record.member, record.new_power, ctx.block_height)
        else:
            self.registry.set_member_power(record.member, record.new_power)

    def _execute_general(self, proposal: Proposal, ctx: RequestContext) -> None:
        pass
