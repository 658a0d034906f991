"""Plotly visualisation helpers for the Pay Day cockpit.

Each function takes objects produced by the calculators or the stager
and returns a ``plotly.graph_objects.Figure``.  Empty inputs give an
empty figure titled "No data to display" so a front end can render the
chart slot unconditionally.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from .models import AllocationPlan, Envelope
from .stepper import ExecutionStep

BASE_COLOR = "#A8A9AD"  # silver
BOOST_COLOR = "#D4AF37"  # gold


def _empty_figure() -> go.Figure:
    fig = go.Figure()
    fig.update_layout(title="No data to display")
    return fig


def create_allocation_chart(
    plan: AllocationPlan,
    names: Optional[Mapping[str, str]] = None,
    title: str | None = None,
) -> go.Figure:
    """Stacked bar chart of the base and boost layers per envelope.

    Parameters
    ----------
    plan : AllocationPlan
        Frozen plan (or any plan built from a calculator result).
    names : mapping, optional
        Display name per envelope id.  Ids are shown when missing.
    title : str, optional
        Chart title.

    Returns
    -------
    plotly.graph_objects.Figure
        Bars in plan order, base at the bottom and boost on top.
    """
    if not plan.order:
        return _empty_figure()
    names = names or {}
    labels = [names.get(env_id, env_id) for env_id in plan.order]
    base = [plan.base.get(env_id, 0.0) for env_id in plan.order]
    boost = [plan.boosts.get(env_id, 0.0) for env_id in plan.order]

    fig = go.Figure()
    fig.add_trace(go.Bar(name="Cash Flow", x=labels, y=base, marker_color=BASE_COLOR))
    fig.add_trace(go.Bar(name="Boost", x=labels, y=boost, marker_color=BOOST_COLOR))
    fig.update_layout(
        barmode="stack",
        title=title or "Pay day allocation",
        xaxis_title="Envelope",
        yaxis_title="Amount",
    )
    return fig


def create_horizon_progress_chart(
    envelopes: Sequence[Envelope],
    applied: Mapping[str, float],
    title: str | None = None,
) -> go.Figure:
    """Grouped horizontal bars of horizon progress before and after the pay day.

    Only envelopes with a target amount are shown.  Percentages are
    clipped to 0–100.
    """
    rows = []
    for envelope in envelopes:
        if not envelope.target_amount:
            continue
        before = envelope.current_amount / envelope.target_amount
        after = (envelope.current_amount + applied.get(envelope.id, 0.0)) / envelope.target_amount
        rows.append({"Envelope": envelope.name, "Stage": "Before", "Progress": before})
        rows.append({"Envelope": envelope.name, "Stage": "After", "Progress": after})
    if not rows:
        return _empty_figure()

    df = pd.DataFrame(rows)
    df["Progress"] = np.clip(df["Progress"].to_numpy(dtype=float), 0.0, 1.0) * 100
    fig = px.bar(
        df,
        x="Progress",
        y="Envelope",
        color="Stage",
        orientation="h",
        barmode="group",
        color_discrete_map={"Before": BASE_COLOR, "After": BOOST_COLOR},
    )
    fig.update_layout(
        title=title or "Horizon progress",
        xaxis_title="Progress (%)",
        xaxis_range=[0, 100],
    )
    return fig


def create_execution_timeline(steps: Sequence[ExecutionStep], title: str | None = None) -> go.Figure:
    """Line chart of the cumulative amount stuffed into envelopes per step.

    Account filling steps are skipped; they move money into the account,
    not into envelopes.
    """
    envelope_steps = [step for step in steps if step.envelope_id is not None]
    if not envelope_steps:
        return _empty_figure()

    latest: Dict[str, float] = {}
    totals: List[float] = []
    for step in envelope_steps:
        latest[step.envelope_id] = step.reported_amount
        totals.append(sum(latest.values()))

    df = pd.DataFrame(
        {
            "Step": [step.index for step in envelope_steps],
            "Distributed": np.round(np.asarray(totals, dtype=float), 2),
            "Stage": [step.stage.value for step in envelope_steps],
        }
    )
    fig = px.line(df, x="Step", y="Distributed", color="Stage", markers=True)
    fig.update_layout(
        title=title or "Stuffing timeline",
        xaxis_title="Step",
        yaxis_title="Distributed",
    )
    return fig
