"""Staged execution of a frozen allocation plan.

``ExecutionPlanStepper`` turns an :class:`~payday_cockpit.models.AllocationPlan`
into an ordered sequence of :class:`ExecutionStep` objects:

1. account fill (account mode only): fill ratio 1/n … 1, the last step
   credits the full inflow to the account;
2. base ("silver") stage: per envelope in plan order, incremental fill
   steps ending with the step that commits the base amount;
3. boost ("gold") stage, only when the plan carries boosts: the same
   pattern on top of the already applied base.

Progress-only steps carry no ledger operation, so a caller can render
them or skip them.  ``ExecutionStager`` walks the steps, applies each
operation against the catalogs strictly one at a time and reports every
step to an observer.  Pacing (animation delays) is an optional async
hook and never part of the ordering.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
)

from .config import (
    ACCOUNT_FILL_STEPS,
    BOOST_DESCRIPTION,
    CASH_FLOW_DESCRIPTION,
    ENVELOPE_FILL_STEPS,
    PAY_DAY_DEPOSIT_DESCRIPTION,
)
from .formatting import round_money
from .logger_config import get_logger
from .models import AllocationPlan, Transaction
from .ports import AccountCatalog, EnvelopeCatalog

logger = get_logger(__name__)

PARTIAL_FAILURE_MESSAGE = "Pay Day partially processed, review your envelopes."
FAILURE_MESSAGE = "Pay Day could not be processed, nothing was applied."


class ExecutionStage(str, Enum):
    PENDING = 'pending'
    ACCOUNT_FILLING = 'account_filling'
    BASE_FILLING = 'base_filling'
    BOOST_FILLING = 'boost_filling'
    COMPLETE = 'complete'
    FAILED = 'failed'


ACCOUNT_DEPOSIT = 'account_deposit'
TRANSFER = 'transfer'
DEPOSIT = 'deposit'


@dataclass(frozen=True)
class LedgerOperation:
    kind: str
    target_id: str
    amount: float
    description: str
    account_id: Optional[str] = None


@dataclass(frozen=True)
class ExecutionStep:
    index: int
    stage: ExecutionStage
    envelope_id: Optional[str]
    reported_amount: float
    fill_ratio: float
    operation: Optional[LedgerOperation] = None


class ExecutionPlanStepper:
    """Produces the steps of a plan in contract order.

    The stepper holds no mutable state: iterating it twice yields the same
    steps, which lets a test compare two reads of one plan.
    """

    def __init__(
        self,
        plan: AllocationPlan,
        envelope_steps: int = ENVELOPE_FILL_STEPS,
        account_steps: int = ACCOUNT_FILL_STEPS,
    ):
        self.plan = plan
        self.envelope_steps = max(1, int(envelope_steps))
        self.account_steps = max(1, int(account_steps))

    @property
    def has_account_stage(self) -> bool:
        return bool(self.plan.account_mode and self.plan.account_id and self.plan.inflow > 0)

    @property
    def has_boost_stage(self) -> bool:
        return self.plan.boost_total > 0

    def stages(self) -> List[ExecutionStage]:
        stages = []
        if self.has_account_stage:
            stages.append(ExecutionStage.ACCOUNT_FILLING)
        stages.append(ExecutionStage.BASE_FILLING)
        if self.has_boost_stage:
            stages.append(ExecutionStage.BOOST_FILLING)
        return stages

    def _envelope_operation(self, envelope_id: str, amount: float, description: str) -> LedgerOperation:
        if self.has_account_stage:
            return LedgerOperation(TRANSFER, envelope_id, amount, description, account_id=self.plan.account_id)
        return LedgerOperation(DEPOSIT, envelope_id, amount, description)

    def __iter__(self) -> Iterator[ExecutionStep]:
        plan = self.plan
        index = 0

        if self.has_account_stage:
            for i in range(1, self.account_steps + 1):
                ratio = i / self.account_steps
                operation = None
                if i == self.account_steps:
                    operation = LedgerOperation(
                        ACCOUNT_DEPOSIT, plan.account_id, plan.inflow, PAY_DAY_DEPOSIT_DESCRIPTION,
                        account_id=plan.account_id,
                    )
                yield ExecutionStep(index, ExecutionStage.ACCOUNT_FILLING, None, plan.inflow * ratio, ratio, operation)
                index += 1

        for envelope_id in plan.order:
            base = plan.base.get(envelope_id, 0.0)
            if base <= 0:
                continue
            for i in range(1, self.envelope_steps + 1):
                ratio = i / self.envelope_steps
                operation = None
                if i == self.envelope_steps:
                    operation = self._envelope_operation(envelope_id, base, CASH_FLOW_DESCRIPTION)
                yield ExecutionStep(index, ExecutionStage.BASE_FILLING, envelope_id, base * ratio, ratio, operation)
                index += 1

        if not self.has_boost_stage:
            return

        for envelope_id in plan.boost_order:
            base = plan.base.get(envelope_id, 0.0)
            boost = plan.boosts[envelope_id]
            for i in range(1, self.envelope_steps + 1):
                ratio = i / self.envelope_steps
                operation = None
                if i == self.envelope_steps:
                    operation = self._envelope_operation(envelope_id, boost, BOOST_DESCRIPTION)
                yield ExecutionStep(
                    index, ExecutionStage.BOOST_FILLING, envelope_id, base + boost * ratio, ratio, operation
                )
                index += 1

    def operations(self) -> List[LedgerOperation]:
        return [step.operation for step in self if step.operation is not None]

    async def paced(
        self,
        pacing: Optional[Callable[[ExecutionStep], Awaitable[None]]] = None,
    ) -> AsyncIterator[ExecutionStep]:
        """Async variant that awaits ``pacing`` after each yielded step."""
        for step in self:
            yield step
            if pacing is not None:
                await pacing(step)


def fixed_delay(seconds: float) -> Callable[[ExecutionStep], Awaitable[None]]:
    """Pacing hook that sleeps the same amount after every step."""

    async def _pace(step: ExecutionStep) -> None:
        await asyncio.sleep(seconds)

    return _pace


# ---------------------------------------------------------------------------
# Stager
# ---------------------------------------------------------------------------


@dataclass
class ExecutionProgress:
    """What an observer sees between steps."""

    stage: ExecutionStage = ExecutionStage.PENDING
    current_envelope_id: Optional[str] = None
    account_fill_ratio: float = 0.0
    reported: Dict[str, float] = field(default_factory=dict)


@dataclass
class ExecutionResult:
    stage: ExecutionStage
    applied: Dict[str, float] = field(default_factory=dict)
    account_deposited: float = 0.0
    transactions: List[Transaction] = field(default_factory=list)
    error: Optional[str] = None
    failed_step: Optional[ExecutionStep] = None

    @property
    def succeeded(self) -> bool:
        return self.stage == ExecutionStage.COMPLETE

    @property
    def partial(self) -> bool:
        return self.stage == ExecutionStage.FAILED and (bool(self.applied) or self.account_deposited > 0)

    @property
    def total_applied(self) -> float:
        return sum(self.applied.values())

    @property
    def message(self) -> Optional[str]:
        if self.succeeded:
            return None
        return PARTIAL_FAILURE_MESSAGE if self.partial else FAILURE_MESSAGE


Observer = Callable[[ExecutionStep, ExecutionProgress], None]


class ExecutionStager:
    """Applies a plan's ledger operations in order and reports progress."""

    def __init__(
        self,
        envelopes: EnvelopeCatalog,
        accounts: AccountCatalog,
        clock: Callable[[], datetime] = datetime.now,
        envelope_steps: int = ENVELOPE_FILL_STEPS,
        account_steps: int = ACCOUNT_FILL_STEPS,
    ):
        self.envelopes = envelopes
        self.accounts = accounts
        self.clock = clock
        self.envelope_steps = envelope_steps
        self.account_steps = account_steps

    def stepper(self, plan: AllocationPlan) -> ExecutionPlanStepper:
        return ExecutionPlanStepper(plan, self.envelope_steps, self.account_steps)

    def _apply(self, operation: LedgerOperation) -> List[Transaction]:
        if operation.kind == ACCOUNT_DEPOSIT:
            return [self.accounts.deposit(operation.target_id, operation.amount, operation.description)]
        if operation.kind == TRANSFER:
            return list(self.accounts.transfer_to_envelope(
                operation.account_id,
                operation.target_id,
                operation.amount,
                operation.description,
                self.clock(),
            ))
        return [self.envelopes.deposit(operation.target_id, operation.amount, operation.description, self.clock())]

    def _advance(
        self,
        step: ExecutionStep,
        progress: ExecutionProgress,
        result: ExecutionResult,
    ) -> bool:
        """Apply one step; returns False when the run has failed."""
        if step.stage != progress.stage:
            logger.info("Pay day execution entering %s", step.stage.value)
            progress.stage = step.stage

        if step.operation is not None:
            operation = step.operation
            try:
                result.transactions.extend(self._apply(operation))
            except Exception as exc:  # any catalog failure ends the run
                logger.exception("Ledger operation %s for %s failed", operation.kind, operation.target_id)
                result.stage = ExecutionStage.FAILED
                result.error = str(exc)
                result.failed_step = step
                progress.stage = ExecutionStage.FAILED
                return False
            amount = round_money(operation.amount)
            if operation.kind == ACCOUNT_DEPOSIT:
                result.account_deposited = round_money(result.account_deposited + amount)
            else:
                applied = result.applied.get(operation.target_id, 0.0) + amount
                result.applied[operation.target_id] = round_money(applied)

        if step.envelope_id is None:
            progress.account_fill_ratio = step.fill_ratio
        else:
            progress.current_envelope_id = step.envelope_id
            progress.reported[step.envelope_id] = step.reported_amount
        return True

    def _finish(self, plan: AllocationPlan, progress: ExecutionProgress, result: ExecutionResult) -> ExecutionResult:
        if result.stage == ExecutionStage.FAILED:
            logger.error(
                "Pay day execution failed after applying %.2f to %d envelope(s): %s",
                result.total_applied, len(result.applied), result.error,
            )
            return result
        result.stage = ExecutionStage.COMPLETE
        progress.stage = ExecutionStage.COMPLETE
        progress.current_envelope_id = None
        logger.info(
            "Pay day execution complete: %.2f applied across %d envelope(s) (plan %.2f)",
            result.total_applied, len(result.applied), plan.total_planned,
        )
        return result

    def run(
        self,
        plan: AllocationPlan,
        observer: Optional[Observer] = None,
        progress: Optional[ExecutionProgress] = None,
    ) -> ExecutionResult:
        """Run the whole plan synchronously with no pacing."""
        progress = progress if progress is not None else ExecutionProgress()
        result = ExecutionResult(stage=ExecutionStage.PENDING)
        for step in self.stepper(plan):
            ok = self._advance(step, progress, result)
            if observer is not None:
                observer(step, progress)
            if not ok:
                break
        return self._finish(plan, progress, result)

    async def arun(
        self,
        plan: AllocationPlan,
        observer: Optional[Observer] = None,
        pacing: Optional[Callable[[ExecutionStep], Awaitable[None]]] = None,
        progress: Optional[ExecutionProgress] = None,
    ) -> ExecutionResult:
        """Run the plan, awaiting ``pacing`` between steps for presentation."""
        progress = progress if progress is not None else ExecutionProgress()
        result = ExecutionResult(stage=ExecutionStage.PENDING)
        async for step in self.stepper(plan).paced(pacing):
            ok = self._advance(step, progress, result)
            if observer is not None:
                observer(step, progress)
            if not ok:
                break
        return self._finish(plan, progress, result)
