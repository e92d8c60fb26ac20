"""
Treasury & Parameters — the disbursable balance and the governance knobs.

Three small stores over ``GovernanceState``:

- NativeBalances  — per-address native value; the transfer primitive used
  for proposal deposits, refunds, treasury deposits and disbursements.
- ParameterStore  — validated reads and writes of ``GovernanceParameters``.
- TreasuryLedger  — the treasury balance and the deposit escrow, all held
  under ``ENGINE_ACCOUNT``.

Invariant: balance(ENGINE_ACCOUNT) == treasury + escrowed + forfeited deposits.
There is no direct withdrawal: the treasury is only disbursed through an
executed funding proposal.
"""

from __future__ import annotations

import logging

from civitas.domain.errors import InvalidProposal, InvalidTarget, TransferFailed
from civitas.domain.schema import (
    BASIS_POINTS,
    ENGINE_ACCOUNT,
    PARAMETER_NAMES,
    GovernanceState,
    RequestContext,
)

logger = logging.getLogger(__name__)


class NativeBalances:
    """Native value held per address."""

    def __init__(self, state: GovernanceState) -> None:
        self.state = state

    def balance_of(self, address: str) -> int:
        return self.state.balances.get(address, 0)

    def credit(self, address: str, amount: int) -> None:
        """
        Credit value supplied by the host (genesis allocation, faucet).

        The engine account is only ever funded by transfers, so its balance
        stays equal to treasury + escrowed + forfeited deposits.
        """
        if amount < 0:
            raise TransferFailed(f"Cannot credit a negative amount: {amount}")
        if address == ENGINE_ACCOUNT:
            raise InvalidTarget(f"Cannot credit the engine account {ENGINE_ACCOUNT}")
        self.state.balances[address] = self.balance_of(address) + amount

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """
        Move ``amount`` from ``sender`` to ``recipient``.

        Raises:
            TransferFailed: If the amount is negative, the sender is short,
                or sender and recipient are the same account.
        """
        if sender == recipient:
            raise TransferFailed(f"Cannot transfer from {sender} to itself")
        if amount < 0:
            raise TransferFailed(f"Cannot transfer a negative amount: {amount}")
        available = self.balance_of(sender)
        if available < amount:
            raise TransferFailed(
                f"Insufficient balance for {sender}: has {available}, needs {amount}"
            )
        if amount == 0:
            return
        self.state.balances[sender] = available - amount
        self.state.balances[recipient] = self.balance_of(recipient) + amount


class ParameterStore:
    """Validated access to the governance parameters."""

    def __init__(self, state: GovernanceState) -> None:
        self.state = state

    @staticmethod
    def is_known(name: str) -> bool:
        return name in PARAMETER_NAMES

    @staticmethod
    def validate(name: str, value: int) -> None:
        """
        Check a value for a known parameter.

        Raises:
            InvalidProposal: If the value is out of range for the parameter.
        """
        if name == "voting_period" and value <= 0:
            raise InvalidProposal(f"voting_period must be positive, got {value}")
        if name in ("quorum_basis_points", "approval_threshold_basis_points"):
            if not 0 <= value <= BASIS_POINTS:
                raise InvalidProposal(
                    f"{name} must be within 0..{BASIS_POINTS}, got {value}"
                )
        if name in ("proposal_deposit", "timelock_duration") and value < 0:
            raise InvalidProposal(f"{name} must not be negative, got {value}")

    def get(self, name: str) -> int:
        return getattr(self.state.parameters, name)

    def set(self, name: str, value: int) -> bool:
        """
        Overwrite a known parameter.

        Returns:
            False if the name is not a governance parameter (nothing changes).
        """
        if not self.is_known(name):
            logger.warning("Ignoring unknown governance parameter '%s'", name)
            return False
        self.validate(name, value)
        old = self.get(name)
        setattr(self.state.parameters, name, value)
        logger.info("Parameter %s changed: %d -> %d", name, old, value)
        return True


class TreasuryLedger:
    """Treasury balance plus proposal-deposit escrow."""

    def __init__(self, state: GovernanceState, balances: NativeBalances) -> None:
        self.state = state
        self.balances = balances

    @property
    def balance(self) -> int:
        return self.state.treasury_balance

    def deposit(self, ctx: RequestContext, amount: int) -> int:
        """
        Deposit native value into the treasury. Anyone may deposit.

        Returns:
            The new treasury balance.
        """
        if amount <= 0:
            raise InvalidProposal(f"Deposit amount must be positive, got {amount}")
        self.balances.transfer(ctx.caller, ENGINE_ACCOUNT, amount)
        self.state.treasury_balance += amount
        logger.info(
            "Treasury deposit: from=%s amount=%d balance=%d",
            ctx.caller, amount, self.state.treasury_balance,
        )
        return self.state.treasury_balance

    def disburse(self, recipient: str, amount: int) -> None:
        """Pay out of the treasury. Only reachable through funding execution."""
        if amount > self.state.treasury_balance:
            raise InvalidProposal(
                f"Treasury balance {self.state.treasury_balance} cannot cover {amount}"
            )
        self.balances.transfer(ENGINE_ACCOUNT, recipient, amount)
        self.state.treasury_balance -= amount

    # ── Deposit escrow ──────────────────────────────────────────

    def escrow_deposit(self, payer: str, amount: int) -> None:
        try:
            self.balances.transfer(payer, ENGINE_ACCOUNT, amount)
        except TransferFailed as exc:
            raise TransferFailed(
                f"Proposal deposit of {amount} not covered: {exc.message}"
            ) from exc
        self.state.escrowed_deposits += amount

    def refund_deposit(self, payee: str, amount: int) -> None:
        self.state.escrowed_deposits -= amount
        self.balances.transfer(ENGINE_ACCOUNT, payee, amount)

    def forfeit_deposit(self, amount: int) -> None:
        """Move a deposit out of escrow into the locked forfeited pool."""
        self.state.escrowed_deposits -= amount
        self.state.forfeited_deposits += amount
