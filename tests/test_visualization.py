from __future__ import annotations

import pytest

from payday_cockpit.allocation import calculate_allocation, freeze_plan
from payday_cockpit.models import AllocationPlan
from payday_cockpit.stepper import ExecutionPlanStepper
from payday_cockpit.visualization import (
    create_allocation_chart,
    create_execution_timeline,
    create_horizon_progress_chart,
)

from conftest import make_envelopes


def _plan():
    return freeze_plan(calculate_allocation(1000.0, make_envelopes(), boost_fractions={'a': 0.5}))


def test_empty_inputs_give_placeholder_figure():
    empty_plan = AllocationPlan.build(inflow=0.0, base={}, boosts={}, order=())

    for fig in (
        create_allocation_chart(empty_plan),
        create_horizon_progress_chart([], {}),
        create_execution_timeline([]),
    ):
        assert fig.layout.title.text == "No data to display"


def test_allocation_chart_stacks_base_and_boost():
    fig = create_allocation_chart(_plan(), names={'a': 'Vacation'})

    assert fig.layout.barmode == "stack"
    assert [trace.name for trace in fig.data] == ["Cash Flow", "Boost"]
    assert list(fig.data[0].x) == ['Vacation', 'b']
    assert list(fig.data[1].y) == [200.0, 0.0]


def test_horizon_progress_is_clipped_to_100():
    fig = create_horizon_progress_chart(make_envelopes(), {'a': 5000.0})

    values = [value for trace in fig.data for value in trace.x]
    assert max(values) == pytest.approx(100.0)
    assert min(values) == pytest.approx(60.0)


def test_execution_timeline_ends_at_plan_total():
    plan = _plan()
    fig = create_execution_timeline(list(ExecutionPlanStepper(plan)))

    last = max((trace for trace in fig.data), key=lambda trace: max(trace.x))
    assert list(last.y)[-1] == pytest.approx(plan.total_planned)
