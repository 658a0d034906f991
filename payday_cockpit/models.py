"""Records shared by the ledger, the calculators and the cockpit.

Envelopes, accounts and binders mirror what the persistence layer
stores.  ``Transaction`` rows are immutable audit entries written by
every ledger mutation.  ``AllocationPlan`` is the frozen, per-event
snapshot that the execution stager consumes.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from .config import DEFAULT_PAY_FREQUENCY
from .formatting import round_money


# ---------------------------------------------------------------------------
# Catalog records
# ---------------------------------------------------------------------------


@dataclass
class Envelope:
    id: str
    name: str
    current_amount: float = 0.0
    target_amount: Optional[float] = None
    target_date: Optional[date] = None
    cash_flow_enabled: bool = False
    cash_flow_amount: Optional[float] = None
    group_id: Optional[str] = None
    linked_account_id: Optional[str] = None
    user_id: str = ''

    @property
    def has_horizon(self) -> bool:
        return self.target_amount is not None

    @property
    def autopilot_amount(self) -> Optional[float]:
        """Stored cash-flow amount when the envelope takes part in autopilot."""
        if self.cash_flow_enabled and self.cash_flow_amount is not None and self.cash_flow_amount > 0:
            return float(self.cash_flow_amount)
        return None

    def copy(self) -> 'Envelope':
        return replace(self)


@dataclass
class Account:
    id: str
    name: str
    current_balance: float = 0.0
    is_default: bool = False
    user_id: str = ''

    def copy(self) -> 'Account':
        return replace(self)


@dataclass
class Group:
    id: str
    name: str
    user_id: str = ''


class TransactionType(str, Enum):
    DEPOSIT = 'deposit'
    WITHDRAWAL = 'withdrawal'
    TRANSFER = 'transfer'
    SCHEDULED_PAYMENT = 'scheduled_payment'


@dataclass(frozen=True)
class Transaction:
    id: str
    type: TransactionType
    amount: float
    date: datetime
    description: str
    user_id: str = ''
    envelope_id: str = ''
    account_id: str = ''
    transfer_direction: Optional[str] = None  # 'in' | 'out'
    transfer_link_id: Optional[str] = None
    impact: str = 'external'  # 'external' crosses the wall, 'internal' moves money


@dataclass
class ScheduledPayment:
    id: str
    name: str
    amount: float
    next_due_date: datetime
    envelope_id: Optional[str] = None
    user_id: str = ''


# ---------------------------------------------------------------------------
# Pay day settings
# ---------------------------------------------------------------------------


def _add_month(value: datetime) -> datetime:
    year = value.year + (1 if value.month == 12 else 0)
    month = 1 if value.month == 12 else value.month + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


_FREQUENCY_DAYS = {
    'weekly': 7,
    'biweekly': 14,
    'semimonthly': 15,
}


@dataclass
class PayDaySettings:
    user_id: str
    last_pay_amount: Optional[float] = None
    last_pay_date: Optional[datetime] = None
    expected_pay_amount: Optional[float] = None
    pay_frequency: str = DEFAULT_PAY_FREQUENCY
    default_account_id: Optional[str] = None

    def next_pay_date(self) -> Optional[datetime]:
        """Project the next pay date from the last one and the pay frequency."""
        if self.last_pay_date is None:
            return None
        frequency = (self.pay_frequency or '').lower().replace('-', '').replace('_', '')
        if frequency == 'monthly':
            return _add_month(self.last_pay_date)
        return self.last_pay_date + timedelta(days=_FREQUENCY_DAYS.get(frequency, 30))

    def prefill_amount(self) -> float:
        for candidate in (self.expected_pay_amount, self.last_pay_amount):
            if candidate is not None and candidate > 0:
                return float(candidate)
        return 0.0


# ---------------------------------------------------------------------------
# Allocation plan
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AllocationPlan:
    """Immutable allocation snapshot for one pay event."""

    inflow: float
    account_mode: bool
    account_id: Optional[str]
    base: Mapping[str, float]
    boosts: Mapping[str, float]
    order: Tuple[str, ...]
    warnings: Tuple[str, ...] = field(default=())

    @classmethod
    def build(
        cls,
        inflow: float,
        base: Dict[str, float],
        boosts: Dict[str, float],
        order: Tuple[str, ...],
        account_mode: bool = False,
        account_id: Optional[str] = None,
        warnings: Tuple[str, ...] = (),
    ) -> 'AllocationPlan':
        """Snapshot a plan with every amount rounded to the minor unit.

        Amounts that round to zero are dropped, so every remaining entry
        is a ledger mutation the ledger will accept.
        """
        cents = {k: round_money(v) for k, v in base.items()}
        cents = {k: v for k, v in cents.items() if v > 0}
        boost_cents = {k: round_money(v) for k, v in boosts.items() if v > 0}
        boost_cents = {k: v for k, v in boost_cents.items() if v > 0}
        return cls(
            inflow=round_money(inflow),
            account_mode=bool(account_mode and account_id),
            account_id=account_id if account_mode else None,
            base=MappingProxyType(cents),
            boosts=MappingProxyType(boost_cents),
            order=tuple(k for k in order if k in cents or k in boost_cents),
            warnings=tuple(warnings),
        )

    @property
    def reserve_total(self) -> float:
        return sum(self.base.values())

    @property
    def boost_total(self) -> float:
        return sum(self.boosts.values())

    @property
    def total_planned(self) -> float:
        return self.reserve_total + self.boost_total

    @property
    def available_surplus(self) -> float:
        return self.inflow - self.reserve_total

    @property
    def boost_order(self) -> Tuple[str, ...]:
        return tuple(env_id for env_id in self.order if self.boosts.get(env_id, 0.0) > 0)

    def planned_amount(self, envelope_id: str) -> float:
        return self.base.get(envelope_id, 0.0) + self.boosts.get(envelope_id, 0.0)
