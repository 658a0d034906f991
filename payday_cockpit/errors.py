"""Exception types raised by the ledger and the cockpit."""

from __future__ import annotations


class PayDayError(Exception):
    """Base class for all pay day engine errors."""


class LedgerError(PayDayError):
    """A ledger mutation could not be applied."""


class InsufficientFundsError(LedgerError):
    """The source account cannot cover a transfer."""

    def __init__(self, account_id: str, balance: float, amount: float):
        super().__init__(
            f"Insufficient funds in account {account_id}: balance {balance:.2f}, requested {amount:.2f}"
        )
        self.account_id = account_id
        self.balance = balance
        self.amount = amount


class PhaseError(PayDayError):
    """An operation was called in a cockpit phase that does not allow it."""
