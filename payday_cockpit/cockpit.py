"""Pay Day cockpit: the four-phase workflow around one pay event.

``PayDaySession`` carries all working state of one pay day (phase,
inflow, the working allocation set, boost fractions, the frozen plan and
execution progress).  ``PayDayCockpit`` holds the collaborators and
implements the phase handlers; each handler takes the session, mutates
it and reports the outcome.  Nothing lives in module globals, and the
per-event overrides are never written back to the envelope records.

Phases move strictly forward::

    INFLOW_ENTRY -> STRATEGY_REVIEW -> STUFFING_EXECUTION -> SUCCESS

``cancel`` returns to INFLOW_ENTRY from the first two phases only and
``reset`` starts over after a finished (or failed) run.  User mistakes
(no inflow, empty selection, disallowed boost) return ``False`` and
leave a message on the session.  Calling a handler in the wrong phase
is a programming error and raises :class:`PhaseError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set

from .allocation import (
    EMPTY_SELECTION_MESSAGE,
    OVER_ALLOCATED,
    AllocationResult,
    calculate_allocation,
    clamp_fraction,
    freeze_plan,
    is_decreased,
    validate_inflow,
    validate_selection,
)
from .autopilot import PreparednessReport, assess_preparedness
from .config import TOP_HORIZON_LIMIT
from .errors import PhaseError
from .logger_config import get_logger
from .models import Account, AllocationPlan, Envelope, Group, PayDaySettings
from .ports import AccountCatalog, EnvelopeCatalog, GroupCatalog, PayDaySettingsStore, ScheduledPaymentCatalog
from .projection import SessionSummary, days_saved_message, progress_ratio, summarize_session
from .settings_store import record_pay_event
from .stepper import ExecutionProgress, ExecutionResult, ExecutionStager, ExecutionStep, Observer

logger = get_logger(__name__)

NO_ACCOUNT_MESSAGE = 'Add an account before switching to account mode'
UNKNOWN_ENVELOPE_MESSAGE = 'Envelope not found'
UNKNOWN_BINDER_MESSAGE = 'Binder not found'
NEGATIVE_AMOUNT_MESSAGE = 'Amounts cannot be negative'
BOOST_NEEDS_HORIZON_MESSAGE = 'Boosts are only available for envelopes with a horizon'
BOOST_NEEDS_SELECTION_MESSAGE = 'Add this envelope to the pay day before boosting it'
BOOST_DISABLED_MESSAGE = 'Boost is disabled because this amount was decreased below its cash flow'
OVER_ALLOCATED_MESSAGE = 'Allocations exceed the inflow, this pay day dips into reserves'

# Ids the persistence layer reserves for internal bookkeeping records.
_INTERNAL_ENVELOPE_PREFIX = '_account_available_'
_INTERNAL_ACCOUNT_PREFIX = '_'


class CockpitPhase(str, Enum):
    INFLOW_ENTRY = 'inflow_entry'
    STRATEGY_REVIEW = 'strategy_review'
    STUFFING_EXECUTION = 'stuffing_execution'
    SUCCESS = 'success'


@dataclass
class PayDaySession:
    user_id: str
    phase: CockpitPhase = CockpitPhase.INFLOW_ENTRY
    inflow: float = 0.0
    account_mode: bool = False
    default_account_id: Optional[str] = None
    envelopes: List[Envelope] = field(default_factory=list)
    groups: List[Group] = field(default_factory=list)
    accounts: List[Account] = field(default_factory=list)
    settings: Optional[PayDaySettings] = None
    allocations: Dict[str, float] = field(default_factory=dict)
    boost_fractions: Dict[str, float] = field(default_factory=dict)
    added_binders: Set[str] = field(default_factory=set)
    plan: Optional[AllocationPlan] = None
    progress: ExecutionProgress = field(default_factory=ExecutionProgress)
    result: Optional[ExecutionResult] = None
    summary: Optional[SessionSummary] = None
    preparedness: Optional[PreparednessReport] = None
    error: Optional[str] = None
    notice: Optional[str] = None

    def envelope(self, envelope_id: str) -> Optional[Envelope]:
        return next((env for env in self.envelopes if env.id == envelope_id), None)

    def binder_envelopes(self, binder_id: str) -> List[Envelope]:
        return [env for env in self.envelopes if env.group_id == binder_id]

    @property
    def default_account(self) -> Optional[Account]:
        return next((acc for acc in self.accounts if acc.id == self.default_account_id), None)

    @property
    def failed(self) -> bool:
        return self.result is not None and not self.result.succeeded

    @property
    def failure_message(self) -> Optional[str]:
        return self.result.message if self.failed else None


class PayDayCockpit:
    """Phase handlers for the pay day workflow."""

    def __init__(
        self,
        envelopes: EnvelopeCatalog,
        accounts: AccountCatalog,
        groups: GroupCatalog,
        settings_store: PayDaySettingsStore,
        scheduled_payments: Optional[ScheduledPaymentCatalog] = None,
        user_id: str = '',
        stager: Optional[ExecutionStager] = None,
        clock: Callable[[], datetime] = datetime.now,
        top_horizon_limit: int = TOP_HORIZON_LIMIT,
    ):
        self.envelopes = envelopes
        self.accounts = accounts
        self.groups = groups
        self.settings_store = settings_store
        self.scheduled_payments = scheduled_payments
        self.user_id = user_id
        self.clock = clock
        self.stager = stager or ExecutionStager(envelopes, accounts, clock=clock)
        self.top_horizon_limit = top_horizon_limit

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def start(self) -> PayDaySession:
        """Open a new session with fresh catalog data."""
        session = PayDaySession(user_id=self.user_id)
        self._load(session)
        return session

    def _reload_catalogs(self, session: PayDaySession) -> None:
        session.envelopes = sorted(
            (env for env in self.envelopes.list_envelopes() if not env.id.startswith(_INTERNAL_ENVELOPE_PREFIX)),
            key=lambda env: (env.name.lower(), env.id),
        )
        session.groups = sorted(self.groups.list_groups(), key=lambda grp: (grp.name.lower(), grp.id))
        session.accounts = [
            acc for acc in self.accounts.list_accounts() if not acc.id.startswith(_INTERNAL_ACCOUNT_PREFIX)
        ]

    def _load(self, session: PayDaySession) -> None:
        self._reload_catalogs(session)
        session.settings = self.settings_store.read()

        session.default_account_id = self._pick_default_account(session)
        session.account_mode = session.default_account_id is not None
        session.inflow = session.settings.prefill_amount() if session.settings else 0.0
        self._seed_allocations(session)
        logger.info(
            "Pay day session loaded: %d envelope(s), %d account(s), account mode %s",
            len(session.envelopes), len(session.accounts), 'on' if session.account_mode else 'off',
        )

    def _pick_default_account(self, session: PayDaySession) -> Optional[str]:
        if not session.accounts:
            return None
        stored = session.settings.default_account_id if session.settings else None
        if stored and any(acc.id == stored for acc in session.accounts):
            return stored
        default = next((acc for acc in session.accounts if acc.is_default), session.accounts[0])
        return default.id

    def _seed_allocations(self, session: PayDaySession) -> None:
        session.allocations = {
            env.id: env.autopilot_amount for env in session.envelopes if env.autopilot_amount is not None
        }
        session.boost_fractions = {}
        session.added_binders = set()

    @staticmethod
    def _require(session: PayDaySession, *phases: CockpitPhase) -> None:
        if session.phase not in phases:
            allowed = ', '.join(phase.value for phase in phases)
            raise PhaseError(f"Operation not allowed in phase {session.phase.value} (expected {allowed})")

    @staticmethod
    def _reject(session: PayDaySession, message: str) -> bool:
        session.error = message
        return False

    # ------------------------------------------------------------------
    # Phase 1: inflow entry
    # ------------------------------------------------------------------

    def set_inflow(self, session: PayDaySession, amount: float) -> None:
        self._require(session, CockpitPhase.INFLOW_ENTRY)
        session.inflow = float(amount or 0.0)
        session.error = None

    def set_account_mode(self, session: PayDaySession, enabled: bool, account_id: Optional[str] = None) -> bool:
        self._require(session, CockpitPhase.INFLOW_ENTRY)
        if not enabled:
            session.account_mode = False
            return True
        if account_id is not None:
            if not any(acc.id == account_id for acc in session.accounts):
                return self._reject(session, NO_ACCOUNT_MESSAGE)
            session.default_account_id = account_id
        if session.default_account_id is None:
            return self._reject(session, NO_ACCOUNT_MESSAGE)
        session.account_mode = True
        session.error = None
        return True

    def proceed_to_strategy_review(self, session: PayDaySession) -> bool:
        self._require(session, CockpitPhase.INFLOW_ENTRY)
        message = validate_inflow(session.inflow)
        if message:
            return self._reject(session, message)
        self._seed_allocations(session)
        session.phase = CockpitPhase.STRATEGY_REVIEW
        session.error = None
        logger.info("Strategy review opened for inflow %.2f", session.inflow)
        return True

    # ------------------------------------------------------------------
    # Phase 2: strategy review
    # ------------------------------------------------------------------

    def toggle_envelope(self, session: PayDaySession, envelope_id: str, amount: Optional[float] = None) -> bool:
        """Add an envelope to the working set, or remove it when already present."""
        self._require(session, CockpitPhase.STRATEGY_REVIEW)
        envelope = session.envelope(envelope_id)
        if envelope is None:
            return self._reject(session, UNKNOWN_ENVELOPE_MESSAGE)

        if envelope_id in session.allocations:
            del session.allocations[envelope_id]
            session.boost_fractions.pop(envelope_id, None)
        else:
            if amount is not None and amount < 0:
                return self._reject(session, NEGATIVE_AMOUNT_MESSAGE)
            if amount is None:
                amount = envelope.autopilot_amount or 0.0
            session.allocations[envelope_id] = float(amount)
        session.error = None
        return True

    def add_binder(self, session: PayDaySession, binder_id: str) -> bool:
        """Add every autopilot envelope of a binder; edited amounts are kept."""
        self._require(session, CockpitPhase.STRATEGY_REVIEW)
        if not any(grp.id == binder_id for grp in session.groups):
            return self._reject(session, UNKNOWN_BINDER_MESSAGE)
        session.added_binders.add(binder_id)
        for envelope in session.binder_envelopes(binder_id):
            if envelope.autopilot_amount is not None:
                session.allocations.setdefault(envelope.id, envelope.autopilot_amount)
        session.error = None
        return True

    def edit_allocation(self, session: PayDaySession, envelope_id: str, amount: float) -> bool:
        """Override an envelope's amount for this pay event only.

        Zero removes the envelope.  Lowering an autopilot envelope below
        its cash flow drops any boost fraction set on it.
        """
        self._require(session, CockpitPhase.STRATEGY_REVIEW)
        envelope = session.envelope(envelope_id)
        if envelope is None:
            return self._reject(session, UNKNOWN_ENVELOPE_MESSAGE)
        if amount is None or amount < 0:
            return self._reject(session, NEGATIVE_AMOUNT_MESSAGE)

        session.error = None
        if amount == 0:
            session.allocations.pop(envelope_id, None)
            session.boost_fractions.pop(envelope_id, None)
            return True

        session.allocations[envelope_id] = float(amount)
        if is_decreased(envelope, amount) and session.boost_fractions.pop(envelope_id, None) is not None:
            session.notice = BOOST_DISABLED_MESSAGE
        return True

    def set_boost(self, session: PayDaySession, envelope_id: str, fraction: float) -> bool:
        """Set the explicit boost fraction; rejected without changing state when
        the envelope has no horizon, is not selected or was decreased."""
        self._require(session, CockpitPhase.STRATEGY_REVIEW)
        envelope = session.envelope(envelope_id)
        if envelope is None:
            return self._reject(session, UNKNOWN_ENVELOPE_MESSAGE)
        if not envelope.has_horizon:
            session.notice = BOOST_NEEDS_HORIZON_MESSAGE
            return False
        if envelope_id not in session.allocations:
            session.notice = BOOST_NEEDS_SELECTION_MESSAGE
            return False
        if is_decreased(envelope, session.allocations[envelope_id]):
            session.notice = BOOST_DISABLED_MESSAGE
            return False

        value = clamp_fraction(fraction)
        if value > 0:
            session.boost_fractions[envelope_id] = value
        else:
            session.boost_fractions.pop(envelope_id, None)
        session.notice = None
        return True

    def clear_boost(self, session: PayDaySession, envelope_id: str) -> None:
        self._require(session, CockpitPhase.STRATEGY_REVIEW)
        session.boost_fractions.pop(envelope_id, None)

    def allocation_preview(self, session: PayDaySession) -> AllocationResult:
        """Current base/boost split of the working set."""
        return calculate_allocation(
            session.inflow,
            session.envelopes,
            overrides=session.allocations,
            boost_fractions=session.boost_fractions,
            included=session.allocations.keys(),
        )

    def can_proceed_to_execution(self, session: PayDaySession) -> bool:
        return session.phase == CockpitPhase.STRATEGY_REVIEW and validate_selection(
            self.allocation_preview(session)
        ) is None

    def proceed_to_execution(self, session: PayDaySession) -> bool:
        """Freeze the working set into a plan and enter the execution phase."""
        self._require(session, CockpitPhase.STRATEGY_REVIEW)
        preview = self.allocation_preview(session)
        message = validate_selection(preview)
        if message:
            return self._reject(session, message)

        plan = freeze_plan(
            preview,
            account_mode=session.account_mode,
            account_id=session.default_account_id if session.account_mode else None,
        )
        # amounts below one cent were dropped when freezing
        if not plan.order:
            return self._reject(session, EMPTY_SELECTION_MESSAGE)

        if OVER_ALLOCATED in preview.warnings:
            session.notice = OVER_ALLOCATED_MESSAGE
            logger.warning(
                "Reserve %.2f exceeds inflow %.2f by %.2f",
                preview.reserve_total, preview.inflow, -preview.available_surplus,
            )

        session.plan = plan
        session.progress = ExecutionProgress()
        session.result = None
        session.phase = CockpitPhase.STUFFING_EXECUTION
        session.error = None
        logger.info(
            "Plan frozen: %d envelope(s), base %.2f, boost %.2f",
            len(session.plan.order), session.plan.reserve_total, session.plan.boost_total,
        )
        return True

    # ------------------------------------------------------------------
    # Phase 3: stuffing execution
    # ------------------------------------------------------------------

    def _before_execution(self, session: PayDaySession) -> List[Envelope]:
        self._require(session, CockpitPhase.STUFFING_EXECUTION)
        if session.plan is None or session.result is not None:
            raise PhaseError("This pay day has already been executed")
        return [env.copy() for env in session.envelopes]

    def execute(self, session: PayDaySession, observer: Optional[Observer] = None) -> bool:
        """Apply the frozen plan to the ledger in one synchronous pass."""
        before = self._before_execution(session)
        result = self.stager.run(session.plan, observer=observer, progress=session.progress)
        return self._complete(session, before, result)

    async def aexecute(
        self,
        session: PayDaySession,
        observer: Optional[Observer] = None,
        pacing: Optional[Callable[[ExecutionStep], Awaitable[None]]] = None,
    ) -> bool:
        """Apply the frozen plan, awaiting ``pacing`` between steps."""
        before = self._before_execution(session)
        result = await self.stager.arun(session.plan, observer=observer, pacing=pacing, progress=session.progress)
        return self._complete(session, before, result)

    def _complete(self, session: PayDaySession, before: List[Envelope], result: ExecutionResult) -> bool:
        session.result = result
        if not result.succeeded:
            session.error = result.message
            return False

        plan = session.plan
        session.summary = summarize_session(
            before, result.applied, plan.inflow, plan.boosts, limit=self.top_horizon_limit
        )
        try:
            session.settings = record_pay_event(
                self.settings_store, self.user_id, plan.inflow, session.default_account_id, when=self.clock()
            )
        except OSError as exc:
            logger.warning("Could not save pay day settings: %s", exc)

        self._reload_catalogs(session)
        session.preparedness = self._preparedness(session)
        session.phase = CockpitPhase.SUCCESS
        logger.info(
            "Pay day complete: %.2f distributed, fuel efficiency %.1f%%",
            session.summary.total_distributed, session.summary.fuel_efficiency,
        )
        return True

    def _preparedness(self, session: PayDaySession) -> PreparednessReport:
        if self.scheduled_payments is None:
            return PreparednessReport()
        return assess_preparedness(
            self.scheduled_payments.list_upcoming(), session.envelopes, session.settings, self.clock()
        )

    def live_progress(self, session: PayDaySession, envelope_id: str) -> float:
        """Horizon progress of an envelope including what has been stuffed so far."""
        envelope = session.envelope(envelope_id)
        if envelope is None:
            return 0.0
        stuffed = session.progress.reported.get(envelope_id, 0.0)
        return progress_ratio(envelope.current_amount, envelope.target_amount, stuffed)

    def live_days_saved(self, session: PayDaySession, envelope_id: str) -> str:
        envelope = session.envelope(envelope_id)
        if envelope is None:
            return ""
        stuffed = session.progress.reported.get(envelope_id, 0.0)
        return days_saved_message(
            envelope.current_amount, envelope.target_amount, envelope.cash_flow_amount, stuffed
        )

    # ------------------------------------------------------------------
    # Leaving a session
    # ------------------------------------------------------------------

    def cancel(self, session: PayDaySession) -> None:
        """Abandon the pay day before anything touches the ledger."""
        self._require(session, CockpitPhase.INFLOW_ENTRY, CockpitPhase.STRATEGY_REVIEW)
        self._clear(session)
        self._load(session)
        logger.info("Pay day cancelled")

    def reset(self, session: PayDaySession) -> None:
        """Discard a finished or failed run and start over with fresh data."""
        if session.phase == CockpitPhase.STUFFING_EXECUTION and not session.failed:
            raise PhaseError("Cannot reset while the pay day is being applied")
        self._clear(session)
        self._load(session)

    @staticmethod
    def _clear(session: PayDaySession) -> None:
        session.phase = CockpitPhase.INFLOW_ENTRY
        session.allocations = {}
        session.boost_fractions = {}
        session.added_binders = set()
        session.plan = None
        session.progress = ExecutionProgress()
        session.result = None
        session.summary = None
        session.preparedness = None
        session.error = None
        session.notice = None
