"""
Membership Registry — member identities and base voting power.

Maintains ``total_voting_power`` incrementally: every addition or power
change adjusts it by the delta, never by a rescan. Members are never
deleted.
"""

from __future__ import annotations

import logging

from civitas.domain.errors import (
    InvalidPower,
    MemberExists,
    NotFound,
    Unauthorized,
)
from civitas.domain.schema import DelegationAggregate, GovernanceState, Member

logger = logging.getLogger(__name__)


class MembershipRegistry:
    """Owns ``Member`` records keyed by address."""

    def __init__(self, state: GovernanceState) -> None:
        self.state = state

    def get(self, address: str) -> Member | None:
        return self.state.members.get(address)

    def require(self, address: str) -> Member:
        member = self.state.members.get(address)
        if member is None:
            raise NotFound(f"Member {address} not found")
        return member

    def require_active(self, address: str) -> Member:
        """Return the member, or raise Unauthorized if missing or inactive."""
        member = self.state.members.get(address)
        if member is None or not member.is_active:
            raise Unauthorized(f"{address} is not an active member")
        return member

    def add_member(self, address: str, power: int, joined_at: int) -> Member:
        """
        Admit a new active member with no delegation.

        Raises:
            MemberExists: If the address is already registered.
            InvalidPower: If ``power`` is not positive.
        """
        if address in self.state.members:
            raise MemberExists(f"Member {address} already exists")
        if power <= 0:
            raise InvalidPower(f"Voting power must be positive, got {power}")

        member = Member(address=address, voting_power=power, joined_at=joined_at)
        self.state.members[address] = member
        self.state.total_voting_power += power

        logger.info(
            "Member added: %s power=%d total=%d",
            address, power, self.state.total_voting_power,
        )
        return member

    def set_member_power(self, address: str, new_power: int) -> int:
        """
        Overwrite a member's base power.

        The total and, for a delegating member, the delegate's aggregate
        both move by the same delta.

        Returns:
            The applied delta (may be negative).
        """
        member = self.require(address)
        if new_power < 0:
            raise InvalidPower(f"Voting power must not be negative, got {new_power}")

        delta = new_power - member.voting_power
        member.voting_power = new_power
        if member.is_active:
            self.state.total_voting_power += delta
        if member.delegated_to is not None:
            aggregate = self.state.delegations.setdefault(
                member.delegated_to,
                DelegationAggregate(delegate=member.delegated_to),
            )
            aggregate.total_delegated_power += delta

        logger.info(
            "Member power changed: %s power=%d delta=%+d total=%d",
            address, new_power, delta, self.state.total_voting_power,
        )
        return delta

    def active_power_sum(self) -> int:
        """Full rescan of active power. For audits and tests only."""
        return sum(m.voting_power for m in self.state.members.values() if m.is_active)
