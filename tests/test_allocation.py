"""Unit tests for payday_cockpit.allocation."""

from __future__ import annotations

import pytest

from payday_cockpit.allocation import (
    BOOST_EXCEEDS_SURPLUS,
    EMPTY_SELECTION_MESSAGE,
    INVALID_INFLOW_MESSAGE,
    OVER_ALLOCATED,
    calculate_allocation,
    clamp_fraction,
    freeze_plan,
    is_decreased,
    validate_inflow,
    validate_selection,
)
from payday_cockpit.models import Envelope

from conftest import make_envelopes


def test_autopilot_split_without_overrides():
    result = calculate_allocation(1000.0, make_envelopes())

    assert result.base == {'a': 400.0, 'b': 300.0}
    assert result.boosts == {}
    assert result.available_surplus == pytest.approx(300.0)
    assert result.order == ('a', 'b')
    assert result.warnings == []


def test_explicit_boost_fraction_uses_current_amount():
    result = calculate_allocation(1000.0, make_envelopes(), boost_fractions={'a': 0.5})

    assert result.boosts == {'a': pytest.approx(200.0)}
    assert result.base['a'] + result.boosts['a'] == pytest.approx(600.0)
    assert result.available_surplus == pytest.approx(300.0)


def test_override_above_baseline_becomes_implicit_boost():
    result = calculate_allocation(1000.0, make_envelopes(), overrides={'a': 600.0})

    assert result.base['a'] == pytest.approx(400.0)
    assert result.implicit_boosts == {'a': pytest.approx(200.0)}
    assert result.boosts['a'] == pytest.approx(200.0)


def test_implicit_and_explicit_boosts_are_additive():
    result = calculate_allocation(
        1000.0, make_envelopes(), overrides={'a': 600.0}, boost_fractions={'a': 0.5}
    )

    assert result.base['a'] == pytest.approx(400.0)
    assert result.implicit_boosts['a'] == pytest.approx(200.0)
    assert result.explicit_boosts['a'] == pytest.approx(300.0)
    assert result.boosts['a'] == pytest.approx(500.0)


def test_decreased_override_never_boosts():
    result = calculate_allocation(
        1000.0, make_envelopes(), overrides={'a': 200.0}, boost_fractions={'a': 1.0}
    )

    assert result.base['a'] == pytest.approx(200.0)
    assert 'a' not in result.boosts
    assert is_decreased(make_envelopes()[0], 200.0)
    assert not is_decreased(make_envelopes()[0], 400.0)


def test_envelope_without_target_gets_no_boost():
    result = calculate_allocation(
        1000.0, make_envelopes(), overrides={'b': 500.0}, boost_fractions={'b': 1.0}
    )

    assert result.base['b'] == pytest.approx(500.0)
    assert 'b' not in result.boosts


@pytest.mark.parametrize('inflow', [0.0, 250.0, 700.0, 1234.56])
def test_surplus_is_inflow_minus_base(inflow):
    result = calculate_allocation(inflow, make_envelopes(), overrides={'b': 150.0})
    assert result.available_surplus == pytest.approx(inflow - sum(result.base.values()))


def test_included_filter_and_zero_override():
    result = calculate_allocation(1000.0, make_envelopes(), included=['b'])
    assert result.base == {'b': 300.0}

    result = calculate_allocation(1000.0, make_envelopes(), overrides={'a': 0.0})
    assert 'a' not in result.base


def test_manual_envelope_with_horizon_can_be_boosted():
    saver = Envelope(id='c', name='C', target_amount=500.0)
    result = calculate_allocation(
        1000.0, [saver], overrides={'c': 100.0}, boost_fractions={'c': 0.5}
    )

    assert result.base == {'c': 100.0}
    assert result.implicit_boosts == {}
    assert result.boosts == {'c': pytest.approx(50.0)}


def test_warnings_report_over_allocation():
    assert OVER_ALLOCATED in calculate_allocation(500.0, make_envelopes()).warnings

    result = calculate_allocation(800.0, make_envelopes(), boost_fractions={'a': 0.5})
    assert result.warnings == [BOOST_EXCEEDS_SURPLUS]
    assert result.unallocated == pytest.approx(-100.0)


def test_clamp_fraction():
    assert clamp_fraction(None) == 0.0
    assert clamp_fraction(-0.2) == 0.0
    assert clamp_fraction(1.7) == 1.0
    assert clamp_fraction(0.25) == 0.25


def test_validation_messages():
    assert validate_inflow(0) == INVALID_INFLOW_MESSAGE
    assert validate_inflow(None) == INVALID_INFLOW_MESSAGE
    assert validate_inflow(10.0) is None
    assert validate_selection(calculate_allocation(100.0, [])) == EMPTY_SELECTION_MESSAGE


def test_frozen_plan_is_read_only():
    result = calculate_allocation(1000.0, make_envelopes(), boost_fractions={'a': 0.5})
    plan = freeze_plan(result, account_mode=True, account_id='acc1')

    assert plan.account_mode and plan.account_id == 'acc1'
    assert plan.total_planned == pytest.approx(900.0)
    assert plan.boost_order == ('a',)
    with pytest.raises(TypeError):
        plan.base['a'] = 1.0  # type: ignore[index]

    # later edits to the calculator result do not leak into the plan
    result.base['a'] = 1.0
    assert plan.base['a'] == 400.0


def test_account_mode_requires_account_id():
    plan = freeze_plan(calculate_allocation(1000.0, make_envelopes()), account_mode=True)
    assert not plan.account_mode
