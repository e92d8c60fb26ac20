"""
Proposal Store — proposal records, typed payloads and the proposal counter.

Creating a proposal escrows the proposer's deposit, assigns the next
sequential id and opens the voting window:

    start_block = current block
    end_block   = start_block + voting_period

Typed helpers additionally persist the payload that execution reads back:
a ``ParameterChangeRecord`` or a ``MembershipChangeRecord`` keyed by the
new proposal id.
"""

from __future__ import annotations

import logging

from civitas.domain.errors import (
    InsufficientVotingPower,
    InvalidPower,
    InvalidProposal,
    NotFound,
)
from civitas.domain.schema import (
    ENGINE_ACCOUNT,
    GovernanceState,
    MembershipChangeRecord,
    ParameterChangeRecord,
    Proposal,
    ProposalType,
    RequestContext,
)
from civitas.governance.membership import MembershipRegistry
from civitas.governance.treasury import ParameterStore, TreasuryLedger

logger = logging.getLogger(__name__)


class ProposalStore:
    """Owns ``Proposal`` records keyed by id."""

    def __init__(
        self,
        state: GovernanceState,
        registry: MembershipRegistry,
        treasury: TreasuryLedger,
        parameters: ParameterStore,
        strict_parameter_names: bool = False,
    ) -> None:
        self.state = state
        self.registry = registry
        self.treasury = treasury
        self.parameters = parameters
        self.strict_parameter_names = strict_parameter_names

    def get(self, proposal_id: int) -> Proposal:
        proposal = self.state.proposals.get(proposal_id)
        if proposal is None:
            raise NotFound(f"Proposal {proposal_id} not found")
        return proposal

    def list_proposals(self) -> list[Proposal]:
        return [self.state.proposals[pid] for pid in sorted(self.state.proposals)]

    def create_proposal(
        self,
        ctx: RequestContext,
        title: str,
        description: str,
        proposal_type: ProposalType,
        amount: int = 0,
        recipient: str | None = None,
    ) -> Proposal:
        """
        Create a proposal in the Active state.

        Args:
            ctx: Caller and current block.
            title: Short title, must not be empty.
            description: Free text.
            proposal_type: What execution will do.
            amount: Disbursement for Funding proposals.
            recipient: Payee for Funding proposals. A missing recipient is
                reported at execution.

        Raises:
            Unauthorized: Caller is not an active member.
            InsufficientVotingPower: Caller holds no voting power.
            InvalidProposal: Empty title, negative amount, a Funding
                proposal without a positive amount, or one paying the
                engine account.
            TransferFailed: Caller cannot pay the proposal deposit.
        """
        self._check_proposer(ctx)
        return self._open(ctx, title, description, proposal_type, amount, recipient)

    def create_parameter_change_proposal(
        self,
        ctx: RequestContext,
        title: str,
        description: str,
        parameter_name: str,
        new_value: int,
    ) -> Proposal:
        """Create a Parameter proposal carrying the name and new value."""
        self._check_proposer(ctx)
        if self.parameters.is_known(parameter_name):
            self.parameters.validate(parameter_name, new_value)
        elif self.strict_parameter_names:
            raise InvalidProposal(f"Unknown governance parameter '{parameter_name}'")

        proposal = self._open(ctx, title, description, ProposalType.PARAMETER)
        self.state.parameter_changes[proposal.id] = ParameterChangeRecord(
            proposal_id=proposal.id,
            parameter_name=parameter_name,
            new_value=new_value,
        )
        return proposal

    def create_membership_change_proposal(
        self,
        ctx: RequestContext,
        title: str,
        description: str,
        member: str,
        new_power: int,
        is_addition: bool,
    ) -> Proposal:
        """Create a Membership proposal that adds a member or resets their power."""
        self._check_proposer(ctx)
        if is_addition and new_power <= 0:
            raise InvalidPower(f"New member power must be positive, got {new_power}")
        if new_power < 0:
            raise InvalidPower(f"Voting power must not be negative, got {new_power}")

        proposal = self._open(ctx, title, description, ProposalType.MEMBERSHIP)
        self.state.membership_changes[proposal.id] = MembershipChangeRecord(
            proposal_id=proposal.id,
            member=member,
            new_power=new_power,
            is_addition=is_addition,
        )
        return proposal

    def _check_proposer(self, ctx: RequestContext) -> None:
        member = self.registry.require_active(ctx.caller)
        if member.voting_power <= 0:
            raise InsufficientVotingPower(f"{ctx.caller} holds no voting power")

    def _open(
        self,
        ctx: RequestContext,
        title: str,
        description: str,
        proposal_type: ProposalType,
        amount: int = 0,
        recipient: str | None = None,
    ) -> Proposal:
        if not title.strip():
            raise InvalidProposal("Proposal title must not be empty")
        if amount < 0:
            raise InvalidProposal(f"Proposal amount must not be negative, got {amount}")
        if proposal_type == ProposalType.FUNDING:
            if amount <= 0:
                raise InvalidProposal("Funding proposals require a positive amount")
            if recipient == ENGINE_ACCOUNT:
                raise InvalidProposal("Funding proposals cannot pay the engine account")

        params = self.state.parameters
        deposit = params.proposal_deposit
        self.treasury.escrow_deposit(ctx.caller, deposit)

        self.state.proposal_count += 1
        proposal = Proposal(
            id=self.state.proposal_count,
            proposer=ctx.caller,
            title=title,
            description=description,
            proposal_type=proposal_type,
            amount=amount,
            recipient=recipient,
            start_block=ctx.block_height,
            end_block=ctx.block_height + params.voting_period,
            deposit=deposit,
        )
        self.state.proposals[proposal.id] = proposal

        logger.info(
            "Proposal created: #%d [%s] proposer=%s title='%s' voting until block %d",
            proposal.id, proposal_type.value, ctx.caller, title[:80], proposal.end_block,
        )
        return proposal
