"""
Governance Schema — Pydantic models for every governance entity.

These models are the canonical data structures of the engine. All of them
live in one ``GovernanceState`` arena keyed by identifier: members by
address, proposals by id, votes by (proposal id, voter). Relations between
entities are always expressed as ids, never as embedded objects, so the
whole state can be deep-copied for a transaction and swapped back in on
commit.

Entities:
    Member                 — identity, base voting power, delegation pointer
    DelegationAggregate    — power delegated to one delegate
    Proposal               — proposal record and running tallies
    Vote                   — a single cast vote, weight snapshotted at cast time
    ExecutionQueueEntry    — timelock entry of a passed proposal
    ParameterChangeRecord  — payload of a parameter-change proposal
    MembershipChangeRecord — payload of a membership-change proposal
    GovernanceParameters   — mutable governance knobs
    GovernanceEvent        — hash-chained record of a committed mutation
"""

from __future__ import annotations

import enum
import hashlib
import json
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

from civitas.config import GovernanceSettings

BASIS_POINTS = 10_000

# Account the engine holds native value under: treasury plus deposit escrow.
ENGINE_ACCOUNT = "civitas:engine"


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class ProposalType(str, enum.Enum):
    """What an executed proposal does."""

    FUNDING = "funding"  # Treasury disbursement to a recipient
    PARAMETER = "parameter"  # Overwrite a governance parameter
    MEMBERSHIP = "membership"  # Add a member or change a member's power
    GENERAL = "general"  # Signalling only, no side effect


class ProposalState(str, enum.Enum):
    """Proposal lifecycle states."""

    ACTIVE = "active"
    PASSED = "passed"
    REJECTED = "rejected"
    EXECUTED = "executed"
    CANCELLED = "cancelled"  # Declared, no transition leads here


TERMINAL_STATES = frozenset(
    {ProposalState.REJECTED, ProposalState.EXECUTED, ProposalState.CANCELLED}
)


class GovernanceEventType(str, enum.Enum):
    """Types of governance event ledger entries."""

    GENESIS = "genesis"
    MEMBER_ADDED = "member_added"
    MEMBER_POWER_CHANGED = "member_power_changed"
    VOTES_DELEGATED = "votes_delegated"
    VOTES_UNDELEGATED = "votes_undelegated"
    PROPOSAL_CREATED = "proposal_created"
    VOTE_CAST = "vote_cast"
    PROPOSAL_FINALIZED = "proposal_finalized"
    PROPOSAL_EXECUTED = "proposal_executed"
    TREASURY_DEPOSIT = "treasury_deposit"
    ACCOUNT_FUNDED = "account_funded"
    PARAMETER_CHANGED = "parameter_changed"


# ════════════════════════════════════════════════════════════════
# Request Context
# ════════════════════════════════════════════════════════════════


class RequestContext(BaseModel):
    """Caller identity and logical clock supplied by the host with every call."""

    model_config = ConfigDict(frozen=True)

    caller: str = Field(description="Authenticated caller address")
    block_height: int = Field(ge=0, description="Current block height (logical clock)")


# ════════════════════════════════════════════════════════════════
# Members & Delegation
# ════════════════════════════════════════════════════════════════


class Member(BaseModel):
    """A stakeholder holding base voting power."""

    address: str
    voting_power: int = Field(ge=0, description="Base voting power")
    joined_at: int = Field(description="Block height at admission")
    delegated_to: str | None = Field(
        default=None, description="Address this member currently delegates to"
    )
    is_active: bool = True


class DelegationAggregate(BaseModel):
    """Total power delegated to one delegate."""

    delegate: str
    total_delegated_power: int = 0


# ════════════════════════════════════════════════════════════════
# Proposals & Votes
# ════════════════════════════════════════════════════════════════


class Proposal(BaseModel):
    """
    A governance proposal.

    Tallies change while Active; state changes on finalize and execute.
    Nothing changes once the proposal reaches a terminal state.
    """

    id: int = Field(description="Sequential id, assigned at creation, never reused")
    proposer: str
    title: str
    description: str = ""
    proposal_type: ProposalType
    amount: int = 0
    recipient: str | None = None
    start_block: int
    end_block: int
    yes_votes: int = 0
    no_votes: int = 0
    state: ProposalState = ProposalState.ACTIVE
    executed_at: int | None = None
    deposit: int = Field(default=0, description="Deposit escrowed at creation")

    @computed_field
    @property
    def total_votes(self) -> int:
        return self.yes_votes + self.no_votes

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class Vote(BaseModel):
    """A cast vote. The weight is captured at cast time and never recomputed."""

    proposal_id: int
    voter: str
    weight: int
    support: bool
    voted_at: int


class ExecutionQueueEntry(BaseModel):
    """Timelock entry for a passed proposal."""

    proposal_id: int
    ready_at_block: int


class ParameterChangeRecord(BaseModel):
    """Payload of a parameter-change proposal."""

    proposal_id: int
    parameter_name: str
    new_value: int


class MembershipChangeRecord(BaseModel):
    """Payload of a membership-change proposal."""

    proposal_id: int
    member: str
    new_power: int
    is_addition: bool


# ════════════════════════════════════════════════════════════════
# Parameters & State
# ════════════════════════════════════════════════════════════════


class GovernanceParameters(BaseModel):
    """Process-wide governance knobs, mutable by the admin or by proposal."""

    voting_period: int = Field(default=17280, description="Voting window in blocks")
    quorum_basis_points: int = Field(default=2000, description="Quorum as bps of total power")
    approval_threshold_basis_points: int = Field(
        default=5100, description="Minimum yes share of cast votes, in bps"
    )
    proposal_deposit: int = Field(default=100, description="Deposit debited on creation")
    timelock_duration: int = Field(default=5760, description="Delay in blocks after passing")

    @classmethod
    def from_settings(cls, config: GovernanceSettings) -> GovernanceParameters:
        return cls(
            voting_period=config.voting_period_blocks,
            quorum_basis_points=config.quorum_basis_points,
            approval_threshold_basis_points=config.approval_threshold_basis_points,
            proposal_deposit=config.proposal_deposit,
            timelock_duration=config.timelock_duration_blocks,
        )


PARAMETER_NAMES = tuple(GovernanceParameters.model_fields)


class GovernanceState(BaseModel):
    """The full arena of engine state. Deep-copied per transaction."""

    members: dict[str, Member] = Field(default_factory=dict)
    delegations: dict[str, DelegationAggregate] = Field(default_factory=dict)
    proposals: dict[int, Proposal] = Field(default_factory=dict)
    votes: dict[int, dict[str, Vote]] = Field(default_factory=dict)
    execution_queue: dict[int, ExecutionQueueEntry] = Field(default_factory=dict)
    parameter_changes: dict[int, ParameterChangeRecord] = Field(default_factory=dict)
    membership_changes: dict[int, MembershipChangeRecord] = Field(default_factory=dict)
    parameters: GovernanceParameters = Field(default_factory=GovernanceParameters)

    proposal_count: int = 0
    total_voting_power: int = 0
    treasury_balance: int = 0
    escrowed_deposits: int = 0
    forfeited_deposits: int = 0
    balances: dict[str, int] = Field(
        default_factory=dict, description="Native value per address"
    )


# ════════════════════════════════════════════════════════════════
# Governance Event Ledger
# ════════════════════════════════════════════════════════════════


class GovernanceEvent(BaseModel):
    """
    A committed governance mutation, chained into the event ledger.

    Drafted by the engine with an empty sequence and hash; the ledger
    service assigns both when the event is appended.
    """

    sequence_number: int | None = None
    previous_hash: str = ""
    entry_hash: str = ""
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    event_type: GovernanceEventType
    block_height: int
    caller: str
    payload: dict[str, Any] = Field(default_factory=dict)

    def compute_hash(self) -> str:
        """
        Compute the SHA-256 hash of this event.

        Hash = SHA-256(previous_hash || canonical_json(hashable_content))
        """
        hashable = {
            "sequence_number": self.sequence_number,
            "previous_hash": self.previous_hash,
            "recorded_at": self.recorded_at.isoformat(),
            "event_type": self.event_type.value,
            "block_height": self.block_height,
            "caller": self.caller,
            "payload": self.payload,
        }
        canonical = json.dumps(hashable, sort_keys=True, default=str)
        return hashlib.sha256(
            (self.previous_hash + canonical).encode("utf-8")
        ).hexdigest()
