"""Autopilot preparedness: are the upcoming scheduled payments funded?

Payments due after ``now`` and before the next pay date are checked
against their envelope's balance.  When the amounts applied in the
current pay event are passed in, the projected balance is used instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence

from .models import Envelope, PayDaySettings, ScheduledPayment


@dataclass
class PreparednessReport:
    upcoming: List[ScheduledPayment] = field(default_factory=list)
    upcoming_total: float = 0.0
    prepared: Dict[str, bool] = field(default_factory=dict)
    next_pay_date: Optional[datetime] = None

    @property
    def prepared_count(self) -> int:
        return sum(1 for ready in self.prepared.values() if ready)

    @property
    def all_prepared(self) -> bool:
        return all(self.prepared.values())


def assess_preparedness(
    payments: Sequence[ScheduledPayment],
    envelopes: Sequence[Envelope],
    settings: Optional[PayDaySettings],
    now: datetime,
    applied: Optional[Mapping[str, float]] = None,
) -> PreparednessReport:
    if settings is None:
        return PreparednessReport()
    next_pay = settings.next_pay_date()
    if next_pay is None:
        return PreparednessReport()

    balances = {env.id: env.current_amount for env in envelopes}
    applied = applied or {}
    report = PreparednessReport(next_pay_date=next_pay)

    for payment in payments:
        if not (now < payment.next_due_date < next_pay):
            continue
        report.upcoming.append(payment)
        report.upcoming_total += payment.amount
        if payment.envelope_id is None:
            continue
        balance = balances.get(payment.envelope_id, 0.0) + applied.get(payment.envelope_id, 0.0)
        report.prepared[payment.envelope_id] = balance >= payment.amount

    return report
