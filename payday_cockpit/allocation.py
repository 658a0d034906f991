"""Allocation calculator for a single pay event.

Given the external inflow, the envelope catalog, the per-event override
amounts and the explicit boost fractions, this module produces two
layers keyed by envelope id:

* ``base`` – the autopilot (cash-flow) amount, or the override when the
  user changed it for this event;
* ``boosts`` – extra money for envelopes with a horizon (target amount).
  An override above the stored cash-flow amount becomes an *implicit*
  boost, and an explicit fraction ``f`` adds ``f × current amount`` on
  top.  Both sources are additive.

The calculator is total: it never raises.  Negative surplus and empty
selections are reported, not rejected; the cockpit decides whether a
phase transition may go ahead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .formatting import round_money
from .models import AllocationPlan, Envelope

OVER_ALLOCATED = 'over_allocated'
BOOST_EXCEEDS_SURPLUS = 'boost_exceeds_surplus'

INVALID_INFLOW_MESSAGE = 'Please enter a valid amount'
EMPTY_SELECTION_MESSAGE = 'Please select at least one envelope to allocate'


@dataclass
class AllocationResult:
    inflow: float
    base: Dict[str, float] = field(default_factory=dict)
    boosts: Dict[str, float] = field(default_factory=dict)
    implicit_boosts: Dict[str, float] = field(default_factory=dict)
    explicit_boosts: Dict[str, float] = field(default_factory=dict)
    order: Tuple[str, ...] = ()
    warnings: List[str] = field(default_factory=list)

    @property
    def reserve_total(self) -> float:
        return sum(self.base.values())

    @property
    def boost_total(self) -> float:
        return sum(self.boosts.values())

    @property
    def available_surplus(self) -> float:
        return self.inflow - self.reserve_total

    @property
    def unallocated(self) -> float:
        """Surplus left once boosts are also funded."""
        return self.available_surplus - self.boost_total

    @property
    def is_over_allocated(self) -> bool:
        return self.available_surplus < 0


def clamp_fraction(value: Optional[float]) -> float:
    if value is None:
        return 0.0
    return max(0.0, min(1.0, float(value)))


def is_decreased(envelope: Envelope, amount: Optional[float]) -> bool:
    """True when ``amount`` lowers an autopilot envelope below its stored cash flow."""
    baseline = envelope.autopilot_amount
    return baseline is not None and amount is not None and amount < baseline


def _event_amount(
    envelope: Envelope,
    overrides: Mapping[str, float],
    included: Optional[set],
) -> Optional[float]:
    if included is not None and envelope.id not in included:
        return None
    if envelope.id in overrides:
        amount = max(0.0, float(overrides[envelope.id] or 0.0))
        return amount if amount > 0 else None
    return envelope.autopilot_amount


def calculate_allocation(
    inflow: float,
    envelopes: Sequence[Envelope],
    overrides: Optional[Mapping[str, float]] = None,
    boost_fractions: Optional[Mapping[str, float]] = None,
    included: Optional[Iterable[str]] = None,
) -> AllocationResult:
    """Split a pay event into base and boost layers.

    Args:
        inflow: External inflow for this pay event
        envelopes: Envelope catalog, in the order the plan should be applied
        overrides: Per-event amounts; missing envelopes use their cash flow
        boost_fractions: Explicit boost fraction per envelope (0.0–1.0)
        included: When given, only these envelope ids take part

    Returns:
        AllocationResult with base/boost maps and surplus figures
    """
    overrides = overrides or {}
    boost_fractions = boost_fractions or {}
    included_ids = set(included) if included is not None else None

    result = AllocationResult(inflow=float(inflow or 0.0))
    order: List[str] = []

    for envelope in envelopes:
        amount = _event_amount(envelope, overrides, included_ids)
        if amount is None:
            continue

        baseline = envelope.autopilot_amount
        base = amount
        if envelope.has_horizon:
            implicit = 0.0
            if baseline is not None and amount > baseline:
                implicit = amount - baseline
                base = baseline
            explicit = 0.0
            if not is_decreased(envelope, amount):
                explicit = clamp_fraction(boost_fractions.get(envelope.id)) * amount
            if implicit > 0:
                result.implicit_boosts[envelope.id] = implicit
            if explicit > 0:
                result.explicit_boosts[envelope.id] = explicit
            if implicit + explicit > 0:
                result.boosts[envelope.id] = implicit + explicit

        result.base[envelope.id] = base
        order.append(envelope.id)

    result.order = tuple(order)
    if result.available_surplus < 0:
        result.warnings.append(OVER_ALLOCATED)
    elif result.unallocated < 0:
        result.warnings.append(BOOST_EXCEEDS_SURPLUS)
    return result


def validate_inflow(inflow: Optional[float]) -> Optional[str]:
    if inflow is None or round_money(inflow) <= 0:
        return INVALID_INFLOW_MESSAGE
    return None


def validate_selection(result: AllocationResult) -> Optional[str]:
    if not result.base:
        return EMPTY_SELECTION_MESSAGE
    return None


def freeze_plan(
    result: AllocationResult,
    account_mode: bool = False,
    account_id: Optional[str] = None,
) -> AllocationPlan:
    """Snapshot a calculator result into the immutable plan the stager runs."""
    return AllocationPlan.build(
        inflow=result.inflow,
        base=result.base,
        boosts=result.boosts,
        order=result.order,
        account_mode=account_mode,
        account_id=account_id,
        warnings=tuple(result.warnings),
    )
