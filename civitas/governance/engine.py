"""
Governance Engine — the public operation surface.

Every public operation runs as one atomic step:

1. Acquire the engine lock (one operation at a time).
2. Deep-copy the live ``GovernanceState`` into a scratch copy and build the
   component stores over it.
3. Run the operation against the scratch copy.
4. Append the operation's events to the event ledger, if one is attached.
5. Swap the scratch copy in as the live state.

Any exception in steps 3–4 discards the scratch copy, so a failed call
never leaves partially applied proposal, vote or balance state behind.
Failures surface to the caller unchanged as ``GovernanceError`` subclasses.

Mutating operations:
    add_member, delegate_votes, undelegate_votes, create_proposal,
    create_parameter_change_proposal, create_membership_change_proposal,
    cast_vote, finalize_proposal, execute_proposal, deposit_to_treasury,
    fund_account, set_voting_period, set_quorum

Read-only queries never take a scratch copy; they return copies of the
stored models so callers cannot mutate live state.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

from civitas.config import GovernanceSettings, settings
from civitas.domain.errors import AdministratorOnly, GovernanceError, InvalidProposal
from civitas.domain.schema import (
    ENGINE_ACCOUNT,
    GovernanceEvent,
    GovernanceEventType,
    GovernanceParameters,
    GovernanceState,
    Member,
    Proposal,
    ProposalState,
    ProposalType,
    RequestContext,
    Vote,
)
from civitas.governance.delegation import DelegationLedger
from civitas.governance.execution import ExecutionScheduler
from civitas.governance.membership import MembershipRegistry
from civitas.governance.proposals import ProposalStore
from civitas.governance.tally import TallyCalculator
from civitas.governance.treasury import NativeBalances, ParameterStore, TreasuryLedger
from civitas.governance.voting import VotingEngine
from civitas.ledger.service import EventLedgerService
from civitas.logs import configure_logging

log = structlog.get_logger(__name__)


class _Workspace:
    """Component stores wired over one state object, plus the events it emits."""

    def __init__(self, state: GovernanceState, strict_parameter_names: bool) -> None:
        self.state = state
        self.events: list[GovernanceEvent] = []
        self.balances = NativeBalances(state)
        self.parameters = ParameterStore(state)
        self.treasury = TreasuryLedger(state, self.balances)
        self.registry = MembershipRegistry(state)
        self.delegations = DelegationLedger(state, self.registry)
        self.proposals = ProposalStore(
            state,
            self.registry,
            self.treasury,
            self.parameters,
            strict_parameter_names=strict_parameter_names,
        )
        self.voting = VotingEngine(state, self.registry, self.delegations, self.proposals)
        self.tally = TallyCalculator(state)
        self.scheduler = ExecutionScheduler(
            state,
            self.proposals,
            self.tally,
            self.registry,
            self.treasury,
            self.parameters,
        )

    def emit(
        self,
        ctx: RequestContext,
        event_type: GovernanceEventType,
        **payload: Any,
    ) -> None:
        self.events.append(
            GovernanceEvent(
                event_type=event_type,
                block_height=ctx.block_height,
                caller=ctx.caller,
                payload=payload,
            )
        )


class GovernanceEngine:
    """
    Member-governance engine.

    Usage:
        engine = GovernanceEngine(admin="admin", balances={"alice": 1_000})
        ctx = RequestContext(caller="admin", block_height=1)
        engine.add_member(ctx, "alice", 100)

        proposal = engine.create_proposal(
            RequestContext(caller="alice", block_height=2),
            title="Fund the audit",
            description="...",
            proposal_type=ProposalType.FUNDING,
            amount=500,
            recipient="auditor",
        )
    """

    def __init__(
        self,
        admin: str | None = None,
        parameters: GovernanceParameters | None = None,
        balances: dict[str, int] | None = None,
        ledger_service: Any = None,
        config: GovernanceSettings | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            admin: Administrator address. Defaults to ``config.admin_address``.
            parameters: Initial governance parameters. Defaults from config.
            balances: Initial native balances supplied by the host.
            ledger_service: Optional EventLedgerService for the audit trail.
            config: Settings. Defaults to the module-level ``settings``.
        """
        self.config = config or settings
        self.admin = admin if admin is not None else self.config.admin_address
        self.ledger_service = ledger_service
        self._lock = threading.RLock()
        self._state = GovernanceState(
            parameters=parameters or GovernanceParameters.from_settings(self.config),
        )
        genesis = NativeBalances(self._state)
        for address, amount in (balances or {}).items():
            genesis.credit(address, amount)

    @classmethod
    def from_settings(
        cls,
        config: GovernanceSettings | None = None,
        balances: dict[str, int] | None = None,
    ) -> GovernanceEngine:
        """
        Build a deployed engine from settings.

        Configures logging, opens the event ledger at
        ``config.ledger_database_url`` (seeding its genesis entry) and uses
        the configured administrator and default parameters.
        """
        config = config or settings
        configure_logging(config)
        ledger = EventLedgerService(config.ledger_database_url)
        ledger.initialize()
        return cls(balances=balances, ledger_service=ledger, config=config)

    # ════════════════════════════════════════════════════════════
    # Transaction boundary
    # ════════════════════════════════════════════════════════════

    @contextmanager
    def _transaction(self, ctx: RequestContext, operation: str) -> Iterator[_Workspace]:
        with self._lock:
            scratch = self._state.model_copy(deep=True)
            workspace = _Workspace(scratch, self.config.strict_parameter_names)
            bound = log.bind(operation=operation, caller=ctx.caller, block=ctx.block_height)
            try:
                yield workspace
                if self.ledger_service is not None and workspace.events:
                    self.ledger_service.append_events(workspace.events)
            except GovernanceError as exc:
                bound.info("governance.operation.rejected", kind=exc.kind.value, reason=exc.message)
                raise
            except Exception:
                bound.exception("governance.operation.failed")
                raise
            self._state = scratch
            bound.debug("governance.operation.committed", events=len(workspace.events))

    def _require_admin(self, ctx: RequestContext) -> None:
        if ctx.caller != self.admin:
            raise AdministratorOnly(f"{ctx.caller} is not the administrator")

    def _view(self) -> _Workspace:
        return _Workspace(self._state, self.config.strict_parameter_names)

    # ════════════════════════════════════════════════════════════
    # Membership & Delegation
    # ════════════════════════════════════════════════════════════

    def add_member(self, ctx: RequestContext, address: str, power: int) -> Member:
        """Admit a member (administrator only)."""
        with self._transaction(ctx, "add_member") as ws:
            self._require_admin(ctx)
            member = ws.registry.add_member(address, power, ctx.block_height)
            ws.emit(ctx, GovernanceEventType.MEMBER_ADDED, member=address, power=power)
            return member.model_copy()

    def delegate_votes(self, ctx: RequestContext, target: str) -> Member:
        with self._transaction(ctx, "delegate_votes") as ws:
            member = ws.delegations.delegate(ctx.caller, target)
            ws.emit(
                ctx, GovernanceEventType.VOTES_DELEGATED,
                delegate=target, power=member.voting_power,
            )
            return member.model_copy()

    def undelegate_votes(self, ctx: RequestContext) -> Member:
        with self._transaction(ctx, "undelegate_votes") as ws:
            previous = ws.delegations.undelegate(ctx.caller)
            ws.emit(ctx, GovernanceEventType.VOTES_UNDELEGATED, previous_delegate=previous)
            return ws.registry.require(ctx.caller).model_copy()

    # ════════════════════════════════════════════════════════════
    # Proposals
    # ════════════════════════════════════════════════════════════

    def create_proposal(
        self,
        ctx: RequestContext,
        title: str,
        description: str,
        proposal_type: ProposalType,
        amount: int = 0,
        recipient: str | None = None,
    ) -> Proposal:
        with self._transaction(ctx, "create_proposal") as ws:
            proposal = ws.proposals.create_proposal(
                ctx, title, description, proposal_type, amount, recipient
            )
            self._emit_created(ws, ctx, proposal)
            return proposal.model_copy()

    def create_parameter_change_proposal(
        self,
        ctx: RequestContext,
        title: str,
        description: str,
        parameter_name: str,
        new_value: int,
    ) -> Proposal:
        with self._transaction(ctx, "create_parameter_change_proposal") as ws:
            proposal = ws.proposals.create_parameter_change_proposal(
                ctx, title, description, parameter_name, new_value
            )
            self._emit_created(
                ws, ctx, proposal, parameter_name=parameter_name, new_value=new_value
            )
            return proposal.model_copy()

    def create_membership_change_proposal(
        self,
        ctx: RequestContext,
        title: str,
        description: str,
        member: str,
        new_power: int,
        is_addition: bool,
    ) -> Proposal:
        with self._transaction(ctx, "create_membership_change_proposal") as ws:
            proposal = ws.proposals.create_membership_change_proposal(
                ctx, title, description, member, new_power, is_addition
            )
            self._emit_created(
                ws, ctx, proposal,
                member=member, new_power=new_power, is_addition=is_addition,
            )
            return proposal.model_copy()

    @staticmethod
    def _emit_created(
        ws: _Workspace, ctx: RequestContext, proposal: Proposal, **extra: Any
    ) -> None:
        ws.emit(
            ctx, GovernanceEventType.PROPOSAL_CREATED,
            proposal_id=proposal.id,
            proposal_type=proposal.proposal_type.value,
            title=proposal.title,
            amount=proposal.amount,
            recipient=proposal.recipient,
            end_block=proposal.end_block,
            deposit=proposal.deposit,
            **extra,
        )

    # ════════════════════════════════════════════════════════════
    # Voting, Finalization, Execution
    # ════════════════════════════════════════════════════════════

    def cast_vote(self, ctx: RequestContext, proposal_id: int, support: bool) -> Vote:
        with self._transaction(ctx, "cast_vote") as ws:
            vote = ws.voting.cast_vote(ctx, proposal_id, support)
            ws.emit(
                ctx, GovernanceEventType.VOTE_CAST,
                proposal_id=proposal_id, support=support, weight=vote.weight,
            )
            return vote.model_copy()

    def finalize_proposal(self, ctx: RequestContext, proposal_id: int) -> Proposal:
        with self._transaction(ctx, "finalize_proposal") as ws:
            proposal = ws.scheduler.finalize(ctx, proposal_id)
            entry = ws.scheduler.get_queue_entry(proposal_id)
            ws.emit(
                ctx, GovernanceEventType.PROPOSAL_FINALIZED,
                proposal_id=proposal_id,
                outcome=proposal.state.value,
                yes_votes=proposal.yes_votes,
                no_votes=proposal.no_votes,
                ready_at_block=entry.ready_at_block if entry else None,
            )
            log.info(
                "governance.proposal.finalized",
                proposal_id=proposal_id, outcome=proposal.state.value,
            )
            return proposal.model_copy()

    def execute_proposal(self, ctx: RequestContext, proposal_id: int) -> Proposal:
        with self._transaction(ctx, "execute_proposal") as ws:
            proposal = ws.scheduler.execute(ctx, proposal_id)
            ws.emit(
                ctx, GovernanceEventType.PROPOSAL_EXECUTED,
                proposal_id=proposal_id,
                proposal_type=proposal.proposal_type.value,
            )
            log.info(
                "governance.proposal.executed",
                proposal_id=proposal_id, proposal_type=proposal.proposal_type.value,
            )
            return proposal.model_copy()

    # ════════════════════════════════════════════════════════════
    # Treasury & Parameters
    # ════════════════════════════════════════════════════════════

    def deposit_to_treasury(self, ctx: RequestContext, amount: int) -> int:
        with self._transaction(ctx, "deposit_to_treasury") as ws:
            balance = ws.treasury.deposit(ctx, amount)
            ws.emit(ctx, GovernanceEventType.TREASURY_DEPOSIT, amount=amount, balance=balance)
            return balance

    def fund_account(self, ctx: RequestContext, address: str, amount: int) -> int:
        """
        Credit host-supplied native value to an address (administrator only).

        Members admitted after genesis need this to pay proposal deposits.
        Returns the new balance of ``address``.
        """
        with self._transaction(ctx, "fund_account") as ws:
            self._require_admin(ctx)
            if amount <= 0:
                raise InvalidProposal(f"Funding amount must be positive, got {amount}")
            ws.balances.credit(address, amount)
            balance = ws.balances.balance_of(address)
            ws.emit(
                ctx, GovernanceEventType.ACCOUNT_FUNDED,
                address=address, amount=amount, balance=balance,
            )
            return balance

    def set_voting_period(self, ctx: RequestContext, voting_period: int) -> GovernanceParameters:
        """Set the voting period in blocks (administrator only)."""
        return self._set_parameter(ctx, "voting_period", voting_period)

    def set_quorum(self, ctx: RequestContext, quorum_basis_points: int) -> GovernanceParameters:
        """Set the quorum in basis points (administrator only)."""
        return self._set_parameter(ctx, "quorum_basis_points", quorum_basis_points)

    def _set_parameter(self, ctx: RequestContext, name: str, value: int) -> GovernanceParameters:
        with self._transaction(ctx, f"set_{name}") as ws:
            self._require_admin(ctx)
            ws.parameters.validate(name, value)
            if not ws.parameters.set(name, value):
                raise InvalidProposal(f"Unknown governance parameter '{name}'")
            ws.emit(ctx, GovernanceEventType.PARAMETER_CHANGED, parameter=name, value=value)
            return ws.state.parameters.model_copy()

    # ════════════════════════════════════════════════════════════
    # Queries
    # ════════════════════════════════════════════════════════════

    def get_member(self, address: str) -> Member | None:
        member = self._state.members.get(address)
        return member.model_copy() if member else None

    def get_proposal(self, proposal_id: int) -> Proposal:
        return self._view().proposals.get(proposal_id).model_copy()

    def list_proposals(self, state: ProposalState | None = None) -> list[Proposal]:
        return [
            p.model_copy() for p in self._view().proposals.list_proposals()
            if state is None or p.state == state
        ]

    def get_vote(self, proposal_id: int, voter: str) -> Vote | None:
        vote = self._view().voting.get_vote(proposal_id, voter)
        return vote.model_copy() if vote else None

    def get_voting_power(self, address: str) -> int:
        member = self._state.members.get(address)
        return member.voting_power if member else 0

    def get_effective_voting_power(self, address: str) -> int:
        return self._view().delegations.effective_power(address)

    def get_delegated_power(self, delegate: str) -> int:
        return self._view().delegations.delegated_power(delegate)

    def get_total_voting_power(self) -> int:
        return self._state.total_voting_power

    def get_treasury_balance(self) -> int:
        return self._state.treasury_balance

    def get_native_balance(self, address: str) -> int:
        return self._view().balances.balance_of(address)

    def get_engine_balance(self) -> int:
        return self.get_native_balance(ENGINE_ACCOUNT)

    def get_forfeited_deposits(self) -> int:
        return self._state.forfeited_deposits

    def get_parameters(self) -> GovernanceParameters:
        return self._state.parameters.model_copy()

    def calculate_quorum(self) -> int:
        return self._view().tally.calculate_quorum()

    def has_proposal_passed(self, proposal_id: int) -> bool:
        view = self._view()
        return view.tally.has_passed(view.proposals.get(proposal_id))

    def snapshot(self) -> dict[str, Any]:
        """Full state as plain data, for audits and comparisons."""
        return self._state.model_dump()
