"""
Delegation Ledger — aggregate delegated power per delegate.

Delegation is single-level: a delegate votes with their own base power plus
whatever is delegated to them, and never forwards it further. The ledger
keeps, for every delegate D:

    total_delegated_power(D) == sum(voting_power(M) for M delegating to D)
"""

from __future__ import annotations

import logging

from civitas.domain.errors import InvalidTarget, NotFound
from civitas.domain.schema import DelegationAggregate, GovernanceState, Member
from civitas.governance.membership import MembershipRegistry

logger = logging.getLogger(__name__)


class DelegationLedger:
    """Owns ``DelegationAggregate`` records keyed by delegate address."""

    def __init__(self, state: GovernanceState, registry: MembershipRegistry) -> None:
        self.state = state
        self.registry = registry

    def delegated_power(self, delegate: str) -> int:
        aggregate = self.state.delegations.get(delegate)
        return aggregate.total_delegated_power if aggregate else 0

    def _active_member(self, address: str) -> Member:
        member = self.registry.get(address)
        if member is None or not member.is_active:
            raise NotFound(f"{address} is not a registered active member")
        return member

    def _adjust(self, delegate: str, delta: int) -> None:
        aggregate = self.state.delegations.setdefault(
            delegate, DelegationAggregate(delegate=delegate)
        )
        aggregate.total_delegated_power += delta

    def delegate(self, caller: str, target: str) -> Member:
        """
        Delegate the caller's voting power to ``target``.

        A re-delegation moves the power off the prior delegate first.

        Raises:
            NotFound: If either party is not a registered active member.
            InvalidTarget: If ``target`` is the caller.
        """
        member = self._active_member(caller)
        self._active_member(target)
        if target == caller:
            raise InvalidTarget("Cannot delegate to yourself")

        previous = member.delegated_to
        if previous is not None:
            self._adjust(previous, -member.voting_power)
        self._adjust(target, member.voting_power)
        member.delegated_to = target

        logger.info(
            "Votes delegated: %s -> %s power=%d (previous=%s)",
            caller, target, member.voting_power, previous,
        )
        return member

    def undelegate(self, caller: str) -> str:
        """
        Revoke the caller's delegation.

        Returns:
            The address the caller was delegating to.

        Raises:
            NotFound: If the caller is not a member or has no delegate.
        """
        member = self.registry.get(caller)
        if member is None or member.delegated_to is None:
            raise NotFound(f"{caller} has no active delegation")

        previous = member.delegated_to
        self._adjust(previous, -member.voting_power)
        member.delegated_to = None

        logger.info("Votes undelegated: %s from %s", caller, previous)
        return previous

    def effective_power(self, address: str) -> int:
        """Base power plus power delegated to the address."""
        member = self.registry.get(address)
        base = member.voting_power if member else 0
        return base + self.delegated_power(address)
