"""
Governance Errors — tagged failure kinds for every public operation.

Each kind aborts the whole operation. The engine never retries or recovers a
failure internally: the error reaches the caller unchanged, and the
transaction boundary guarantees no partial state accompanies it.
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    """Non-overlapping failure kinds surfaced by the engine."""

    ADMINISTRATOR_ONLY = "administrator_only"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    INVALID_PROPOSAL = "invalid_proposal"
    ALREADY_VOTED = "already_voted"
    VOTING_CLOSED = "voting_closed"
    PROPOSAL_NOT_PASSED = "proposal_not_passed"
    INSUFFICIENT_VOTING_POWER = "insufficient_voting_power"
    MEMBER_EXISTS = "member_exists"
    INVALID_STATE = "invalid_state"
    INVALID_POWER = "invalid_power"
    INVALID_TARGET = "invalid_target"
    TRANSFER_FAILED = "transfer_failed"


class GovernanceError(Exception):
    """Base error for every governance rule violation."""

    kind: ErrorKind

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class AdministratorOnly(GovernanceError):
    kind = ErrorKind.ADMINISTRATOR_ONLY


class NotFound(GovernanceError):
    """Member, proposal or queue entry missing."""

    kind = ErrorKind.NOT_FOUND


class Unauthorized(GovernanceError):
    """Caller is not an active member, or is delegating while trying to vote."""

    kind = ErrorKind.UNAUTHORIZED


class InvalidProposal(GovernanceError):
    """Bad proposal parameters, non-positive amounts, missing recipient, short treasury."""

    kind = ErrorKind.INVALID_PROPOSAL


class AlreadyVoted(GovernanceError):
    kind = ErrorKind.ALREADY_VOTED


class VotingClosed(GovernanceError):
    """Voting window closed, not yet ended, or timelock not yet elapsed."""

    kind = ErrorKind.VOTING_CLOSED


class ProposalNotPassed(GovernanceError):
    kind = ErrorKind.PROPOSAL_NOT_PASSED


class InsufficientVotingPower(GovernanceError):
    kind = ErrorKind.INSUFFICIENT_VOTING_POWER


class MemberExists(GovernanceError):
    kind = ErrorKind.MEMBER_EXISTS


class InvalidState(GovernanceError):
    """Wrong proposal state for the attempted transition."""

    kind = ErrorKind.INVALID_STATE


class InvalidPower(GovernanceError):
    kind = ErrorKind.INVALID_POWER


class InvalidTarget(GovernanceError):
    kind = ErrorKind.INVALID_TARGET


class TransferFailed(GovernanceError):
    """The value-transfer primitive rejected a movement of funds."""

    kind = ErrorKind.TRANSFER_FAILED
