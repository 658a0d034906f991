"""Projection helpers: horizon progress, days saved and session metrics.

Every function here is a pure function of its arguments.  Missing or
zero targets and missing velocity never raise; they fall back to zero
values or empty strings so callers can render a placeholder instead.

Velocity is modelled from the envelope's recurring cash-flow amount,
treated as a monthly contribution spread over a 30.44-day model month.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence

import pandas as pd

from .config import DAYS_PER_MODEL_MONTH, TOP_HORIZON_LIMIT
from .formatting import format_currency
from .models import Envelope

FIRST_FUELING_MESSAGE = "First fueling: Time Machine initializing..."


def raw_progress_ratio(current: float, target: Optional[float], added: float = 0.0) -> float:
    if not target:
        return 0.0
    return (current + added) / target


def progress_ratio(current: float, target: Optional[float], added: float = 0.0) -> float:
    """Progress toward ``target`` clamped to [0, 1] for display."""
    return max(0.0, min(1.0, raw_progress_ratio(current, target, added)))


def target_exceeded(current: float, target: Optional[float], added: float = 0.0) -> bool:
    return bool(target) and raw_progress_ratio(current, target, added) > 1.0


def daily_velocity(cash_flow_amount: Optional[float]) -> float:
    if cash_flow_amount is None or cash_flow_amount <= 0:
        return 0.0
    return cash_flow_amount / DAYS_PER_MODEL_MONTH


def days_saved(
    current: float,
    target: Optional[float],
    cash_flow_amount: Optional[float],
    added: float,
) -> int:
    """Days by which ``added`` brings the horizon closer; never negative."""
    velocity = daily_velocity(cash_flow_amount)
    if target is None or velocity <= 0:
        return 0
    days_before = (target - current) / velocity
    days_after = (target - current - added) / velocity
    delta = days_before - days_after
    if delta <= 0:
        return 0
    return int(math.floor(delta + 0.5))


def days_saved_message(
    current: float,
    target: Optional[float],
    cash_flow_amount: Optional[float],
    added: float,
) -> str:
    if target is None:
        return ""
    if daily_velocity(cash_flow_amount) <= 0:
        return FIRST_FUELING_MESSAGE
    saved = days_saved(current, target, cash_flow_amount, added)
    return f"{saved} days closer" if saved > 0 else ""


def horizon_advancement(added: float, target: Optional[float]) -> float:
    """Percentage points of the horizon covered by ``added``."""
    if not target:
        return 0.0
    return (added / target) * 100


def fuel_efficiency(distributed: float, inflow: float) -> float:
    """Share of the inflow actually distributed, as a percentage."""
    if inflow is None or inflow <= 0:
        return 0.0
    return (distributed / inflow) * 100


def savings_suggestion(
    envelope: Envelope,
    today: date,
    symbol: str = "$",
) -> str:
    """Pacing text for reaching an envelope's horizon from ``today``."""
    if envelope.target_amount is None or envelope.target_date is None:
        return "Set a horizon date to see tracking."

    amount_needed = envelope.target_amount - envelope.current_amount
    if envelope.target_date < today:
        return "Horizon reached! ✨" if amount_needed <= 0 else "Horizon date passed."

    days_remaining = (envelope.target_date - today).days
    if amount_needed <= 0:
        return "Horizon reached! ✨"
    if days_remaining <= 0:
        return "Due today!"

    if days_remaining > 60:
        per_period = amount_needed / (days_remaining / 30)
        unit = "month"
    elif days_remaining > 14:
        per_period = amount_needed / (days_remaining / 7)
        unit = "week"
    else:
        per_period = amount_needed / days_remaining
        unit = "day"
    return f"Save {format_currency(per_period, symbol=symbol)} / {unit}"


# ---------------------------------------------------------------------------
# Session summary
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HorizonImpact:
    envelope_id: str
    name: str
    days_saved: int
    stuffed_amount: float


@dataclass
class SessionSummary:
    total_distributed: float
    envelopes_funded: int
    boosted_count: int
    total_days_saved: int
    average_days_saved: int
    horizon_advancement: float
    fuel_efficiency: float
    top_horizons: List[HorizonImpact] = field(default_factory=list)


def horizon_impacts(envelopes: Sequence[Envelope], applied: Mapping[str, float]) -> List[HorizonImpact]:
    """Impacts for envelopes with a full horizon and positive days saved, best first.

    ``envelopes`` must hold balances from before the pay event.
    """
    impacts: List[HorizonImpact] = []
    for envelope in envelopes:
        amount = applied.get(envelope.id)
        if not amount:
            continue
        if envelope.target_amount is None or envelope.target_date is None:
            continue
        saved = days_saved(envelope.current_amount, envelope.target_amount, envelope.cash_flow_amount, amount)
        if saved > 0:
            impacts.append(HorizonImpact(envelope.id, envelope.name, saved, amount))
    impacts.sort(key=lambda impact: (-impact.days_saved, impact.name.lower(), impact.envelope_id))
    return impacts


def top_horizon_impacts(
    envelopes: Sequence[Envelope],
    applied: Mapping[str, float],
    limit: int = TOP_HORIZON_LIMIT,
) -> List[HorizonImpact]:
    return horizon_impacts(envelopes, applied)[:limit]


def summarize_session(
    envelopes: Sequence[Envelope],
    applied: Mapping[str, float],
    inflow: float,
    boosts: Optional[Mapping[str, float]] = None,
    limit: int = TOP_HORIZON_LIMIT,
) -> SessionSummary:
    """Summarise a completed pay event.

    Args:
        envelopes: Envelope records as they were before the event
        applied: Amount applied per envelope (base + boost)
        inflow: External inflow of the event
        boosts: Boost layer of the plan, used for the boosted count
        limit: How many top horizon impacts to keep
    """
    by_id: Dict[str, Envelope] = {env.id: env for env in envelopes}
    total = sum(applied.values())
    funded = sum(1 for amount in applied.values() if amount > 0)
    top = top_horizon_impacts(envelopes, applied, limit)
    total_days = sum(impact.days_saved for impact in top)

    with_horizon = sum(
        1 for env_id in applied if env_id in by_id and by_id[env_id].target_amount is not None
    )
    average = int(round(total_days / with_horizon)) if with_horizon else 0

    advancement = 0.0
    for env_id, amount in applied.items():
        envelope = by_id.get(env_id)
        if envelope is not None:
            advancement += horizon_advancement(amount, envelope.target_amount)

    boosted = sum(1 for amount in (boosts or {}).values() if amount > 0)
    return SessionSummary(
        total_distributed=total,
        envelopes_funded=funded,
        boosted_count=boosted,
        total_days_saved=total_days,
        average_days_saved=average,
        horizon_advancement=advancement,
        fuel_efficiency=fuel_efficiency(total, inflow),
        top_horizons=top,
    )


def impacts_frame(summary: SessionSummary) -> pd.DataFrame:
    """Tabular view of the top horizon impacts for reporting."""
    columns = ['Envelope', 'Days Saved', 'Amount']
    rows = [
        {'Envelope': impact.name, 'Days Saved': impact.days_saved, 'Amount': impact.stuffed_amount}
        for impact in summary.top_horizons
    ]
    return pd.DataFrame(rows, columns=columns)
