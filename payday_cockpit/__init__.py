"""Top-level package for the Pay Day cockpit.

The pay day engine takes one external inflow, splits it across
envelopes (autopilot cash flow plus optional boosts), applies the
result to the ledger in ordered stages and reports how much closer each
savings horizon moved.  The primary modules are:

* ``allocation`` – base/boost split of an inflow
* ``projection`` – horizon progress, days saved and session metrics
* ``stepper`` – ordered, staged application of a frozen plan
* ``cockpit`` – the four-phase workflow around one pay event
* ``ledger`` / ``settings_store`` – SQLite and JSON persistence
* ``visualization`` – Plotly figures for plans and progress
"""

from .allocation import AllocationResult, calculate_allocation, freeze_plan
from .cockpit import CockpitPhase, PayDayCockpit, PayDaySession
from .errors import InsufficientFundsError, LedgerError, PayDayError, PhaseError
from .ledger import LedgerStore
from .models import Account, AllocationPlan, Envelope, Group, PayDaySettings, ScheduledPayment, Transaction
from .settings_store import JsonPayDaySettingsStore, record_pay_event
from .stepper import ExecutionPlanStepper, ExecutionResult, ExecutionStage, ExecutionStager

__all__ = [
    "Account",
    "AllocationPlan",
    "AllocationResult",
    "CockpitPhase",
    "Envelope",
    "ExecutionPlanStepper",
    "ExecutionResult",
    "ExecutionStage",
    "ExecutionStager",
    "Group",
    "InsufficientFundsError",
    "JsonPayDaySettingsStore",
    "LedgerError",
    "LedgerStore",
    "PayDayCockpit",
    "PayDayError",
    "PayDaySession",
    "PayDaySettings",
    "PhaseError",
    "ScheduledPayment",
    "Transaction",
    "calculate_allocation",
    "freeze_plan",
    "record_pay_event",
]
