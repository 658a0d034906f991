"""Collaborator interfaces consumed by the cockpit and the execution stager."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Tuple, runtime_checkable

from .models import Account, Envelope, Group, PayDaySettings, ScheduledPayment, Transaction


@runtime_checkable
class EnvelopeCatalog(Protocol):
    def list_envelopes(self) -> List[Envelope]: ...

    def deposit(self, envelope_id: str, amount: float, description: str, date: datetime) -> Transaction: ...


@runtime_checkable
class AccountCatalog(Protocol):
    def list_accounts(self) -> List[Account]: ...

    def get_account(self, account_id: str) -> Optional[Account]: ...

    def deposit(self, account_id: str, amount: float, description: str) -> Transaction: ...

    def withdraw(self, account_id: str, amount: float, description: str) -> Transaction: ...

    def transfer_to_envelope(
        self, account_id: str, envelope_id: str, amount: float, description: str, date: datetime
    ) -> Tuple[Transaction, Transaction]: ...

    def adjust_balance(self, account_id: str, amount: float) -> Transaction: ...


@runtime_checkable
class GroupCatalog(Protocol):
    def list_groups(self) -> List[Group]: ...


@runtime_checkable
class PayDaySettingsStore(Protocol):
    def read(self) -> Optional[PayDaySettings]: ...

    def write(self, settings: PayDaySettings) -> None: ...


@runtime_checkable
class ScheduledPaymentCatalog(Protocol):
    def list_upcoming(self) -> List[ScheduledPayment]: ...
