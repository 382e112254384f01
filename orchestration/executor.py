"""
Plan Executor

The engine: runs a validated ExecutionPlan against registered tools.

Orchestrates per run:
1. Validator rejects malformed plans before anything starts
2. Scheduler starts every step whose prerequisites are terminal
3. Template resolver feeds earlier outputs into step params
4. Condition evaluator gates conditional steps
5. Invoker calls the tool; retry policy decides on failures
6. Summary generator and audit collector report the outcome

FLOW GUARANTEES (NON-NEGOTIABLE):
- A step never starts before all of its prerequisites are terminal
- One ExecutionState per run, mutated only by that run
- Independent branches keep running when a sibling fails
- Partial success is returned, never raised
"""

import asyncio
import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Union

from observability.collector import AuditCollector
from orchestration.conditions import ConditionEvaluator
from orchestration.errors import ExecutionTimeoutError, SchedulerStalledError
from orchestration.retry import RetryPolicy
from orchestration.state import ExecutionState, ExecutionStateStore
from orchestration.summary import SummaryGenerator
from orchestration.templates import TemplateResolver
from orchestration.validator import validate_plan
from schemas.plan import ExecutionPlan, PlanStep
from schemas.result import SkipReason, StepResult, StepStatus, WorkflowResult
from tools.formatters import DEFAULT_FORMATTER
from tools.registry import ToolInvoker

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

CANCELLED_ERROR = "Execution cancelled"


class PlanExecutor:
    """
    Runs execution plans.

    One executor serves many runs; every run gets its own
    ExecutionState, worker-pool semaphore and cancel event.
    """

    DEFAULT_MAX_CONCURRENCY = 5
    DEFAULT_STEP_TIMEOUT_SECONDS = 30.0
    DEFAULT_RUN_TIMEOUT_SECONDS = 300.0

    def __init__(
        self,
        invoker: ToolInvoker,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        state_store: Optional[ExecutionStateStore] = None,
        audit: Optional[AuditCollector] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        step_timeout_seconds: Optional[float] = DEFAULT_STEP_TIMEOUT_SECONDS,
        run_timeout_seconds: float = DEFAULT_RUN_TIMEOUT_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Initialize the executor.

        Args:
            invoker: Tool invoker bound to the process tool registry
            retry_policy: Error classification and backoff (defaults apply)
            state_store: Where run states live while active and retained
            audit: Audit collector (console output by default)
            max_concurrency: Max concurrent tool calls per run
            step_timeout_seconds: Timeout handed to each tool call
            run_timeout_seconds: Wall-clock budget of a whole run
            sleep: Backoff sleep, injectable for tests
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")

        self._invoker = invoker
        self._retry = retry_policy or RetryPolicy()
        self._store = state_store or ExecutionStateStore()
        self._audit = audit or AuditCollector()
        self._summary = SummaryGenerator(invoker.registry)
        self._resolver = TemplateResolver()
        self._conditions = ConditionEvaluator()
        self._max_concurrency = max_concurrency
        self._step_timeout = step_timeout_seconds
        self._run_timeout = run_timeout_seconds
        self._sleep = sleep
        self._cancel_events: Dict[str, asyncio.Event] = {}

    @property
    def state_store(self) -> ExecutionStateStore:
        return self._store

    async def execute(
        self,
        plan: Union[ExecutionPlan, Mapping],
        *,
        execution_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> WorkflowResult:
        """
        Validate and run a plan to completion.

        Args:
            plan: ExecutionPlan or raw planner output
            execution_id: Optional caller-chosen run id
            cancel_event: Setting it cancels the run; completed steps are
                          preserved in the returned result

        Returns:
            WorkflowResult (success=False on partial failure)

        Raises:
            PlanValidationError: plan rejected, nothing ran
            ExecutionIdConflictError: execution_id already in use
        """
        validated = validate_plan(plan)
        state = self._store.create(validated, execution_id=execution_id)
        cancel_event = cancel_event or asyncio.Event()
        self._cancel_events[state.execution_id] = cancel_event

        try:
            return await _PlanRun(self, validated, state, cancel_event).run()
        finally:
            self._cancel_events.pop(state.execution_id, None)

    def cancel(self, execution_id: str) -> bool:
        """Request cancellation of an in-flight run. False if not running."""
        event = self._cancel_events.get(execution_id)
        if event is None:
            return False
        event.set()
        return True


class _PlanRun:
    """
    A single run of a plan. Owns the ExecutionState for its lifetime.
    """

    def __init__(
        self,
        executor: PlanExecutor,
        plan: ExecutionPlan,
        state: ExecutionState,
        cancel_event: asyncio.Event,
    ):
        self._ex = executor
        self._plan = plan
        self._state = state
        self._cancel_event = cancel_event
        self._semaphore = asyncio.Semaphore(executor._max_concurrency)
        self._registry = executor._invoker.registry
        self._plan_ids = set(plan.step_ids)
        self._attempts: Dict[str, int] = {}

    @property
    def _id(self) -> str:
        return self._state.execution_id

    async def run(self) -> WorkflowResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._ex._run_timeout
        pending: List[PlanStep] = list(self._plan.steps)
        running: Dict["asyncio.Task[StepStatus]", PlanStep] = {}
        cancel_waiter = asyncio.ensure_future(self._cancel_event.wait())
        forced_failure = False

        logger.info(f"[{self._id}] Starting plan {self._plan.plan_id} ({len(pending)} steps)")

        try:
            while True:
                if self._cancel_event.is_set():
                    await self._abort(running, CANCELLED_ERROR)
                    self._state.record_error(CANCELLED_ERROR)
                    forced_failure = True
                    break

                self._schedule_ready(pending, running)

                if not running:
                    if pending:
                        raise SchedulerStalledError(
                            f"No runnable steps; stalled: {[s.id for s in pending]}"
                        )
                    break

                remaining = deadline - loop.time()
                done: set = set()
                if remaining > 0:
                    done, _ = await asyncio.wait(
                        set(running) | {cancel_waiter},
                        timeout=remaining,
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                if not done:
                    timeout = ExecutionTimeoutError(
                        f"Execution exceeded its {self._ex._run_timeout}s budget"
                    )
                    logger.error(f"[{self._id}] {timeout}")
                    await self._abort(running, str(timeout))
                    self._state.record_error(str(timeout))
                    forced_failure = True
                    break

                for task in done:
                    if task is cancel_waiter:
                        continue
                    step = running.pop(task)
                    self._collect(step, task)

        except SchedulerStalledError as e:
            logger.error(f"[{self._id}] {e}")
            self._state.record_error(str(e))
            forced_failure = True
        except asyncio.CancelledError:
            logger.warning(f"[{self._id}] Run task cancelled; finalizing partial result")
            await self._abort(running, CANCELLED_ERROR)
            self._state.record_error(CANCELLED_ERROR)
            self._finalize(forced_failure=True)
            raise
        finally:
            cancel_waiter.cancel()

        return self._finalize(forced_failure=forced_failure)

    # --- scheduling ---

    def _prerequisites(self, step: PlanStep) -> List[str]:
        return [d for d in step.prerequisites() if d in self._plan_ids]

    def _schedule_ready(
        self,
        pending: List[PlanStep],
        running: Dict["asyncio.Task[StepStatus]", PlanStep],
    ) -> None:
        """Start or skip every ready step until nothing else becomes ready."""
        progressed = True
        while progressed:
            progressed = False
            for step in list(pending):
                if not all(self._state.is_terminal(d) for d in self._prerequisites(step)):
                    continue
                pending.remove(step)

                skip = self._gate(step)
                if skip is not None:
                    self._state.record_skip(skip)
                    logger.info(
                        f"[{self._id}] Step {step.id} skipped ({skip.skip_reason.value})"
                    )
                    progressed = True
                    continue

                task = asyncio.create_task(self._run_step(step), name=f"{self._id}:{step.id}")
                running[task] = step

    def _gate(self, step: PlanStep) -> Optional[StepResult]:
        """Return a skip record if the step must not run, else None."""
        excused = step.condition.step if step.condition else None
        failed_deps = [
            d for d in step.depends_on
            if self._state.blocks_dependents(d) and d != excused
        ]
        if failed_deps:
            return self._skip_record(
                step,
                SkipReason.DEPENDENCY_FAILED,
                error=f"Dependency failed: {', '.join(failed_deps)}",
            )

        if step.condition and not self._ex._conditions.evaluate(step.condition, self._state):
            return self._skip_record(step, SkipReason.CONDITION_NOT_MET)

        return None

    def _skip_record(self, step: PlanStep, reason: SkipReason, error: Optional[str] = None) -> StepResult:
        return StepResult(
            step_id=step.id,
            tool=step.tool,
            server=self._registry.server_for(step.tool),
            input=dict(step.params),
            success=False,
            error=error,
            attempt=0,
            status=StepStatus.SKIPPED,
            skip_reason=reason,
        )

    def _collect(self, step: PlanStep, task: "asyncio.Task[StepStatus]") -> None:
        try:
            status = task.result()
        except Exception as e:
            logger.exception(f"[{self._id}] Step {step.id} crashed")
            self._state.record_error(f"Step {step.id} crashed: {e}")
            status = StepStatus.FAILED
        self._state.finish_step(step.id, status)

    async def _abort(
        self,
        running: Dict["asyncio.Task[StepStatus]", PlanStep],
        reason: str,
    ) -> None:
        """Cancel in-flight steps and record them as failed."""
        if not running:
            return
        for task in running:
            task.cancel()
        await asyncio.gather(*running, return_exceptions=True)

        for task, step in list(running.items()):
            if not task.cancelled() and task.exception() is None:
                # finished before the cancel landed
                self._state.finish_step(step.id, task.result())
                continue
            attempt = self._attempts.get(step.id, 1)
            last = self._state.last_attempt(step.id)
            if last is None or last.attempt < attempt:
                # the current attempt was in flight or queued, not yet recorded
                record = StepResult(
                    step_id=step.id,
                    tool=step.tool,
                    server=self._registry.server_for(step.tool),
                    input=dict(step.params),
                    success=False,
                    error=reason,
                    attempt=attempt,
                    status=StepStatus.FAILED,
                )
                self._state.record_attempt(record)
                self._ex._audit.step_attempt(self._id, record)
            self._state.finish_step(step.id, StepStatus.FAILED)
        running.clear()

    # --- one step ---

    async def _run_step(self, step: PlanStep) -> StepStatus:
        """Invoke a step with retries. Returns its terminal status."""
        loop = asyncio.get_running_loop()
        params = self._ex._resolver.resolve(step.params, self._state.outputs, step_id=step.id)
        server = self._registry.server_for(step.tool)
        retry = self._ex._retry
        attempt = 0

        while True:
            attempt += 1
            self._attempts[step.id] = attempt
            async with self._semaphore:
                self._state.mark_running(step.id)
                logger.info(f"[{self._id}] Step {step.id} [{step.tool}] attempt {attempt}")
                timestamp = datetime.now()
                started = loop.time()
                result, error = await self._ex._invoker.invoke(
                    step.tool, params, timeout=self._ex._step_timeout
                )
                duration_ms = (loop.time() - started) * 1000

            record = StepResult(
                step_id=step.id,
                tool=step.tool,
                server=server,
                input=params,
                output=result,
                success=error is None,
                error=str(error) if error is not None else None,
                timestamp=timestamp,
                attempt=attempt,
                status=StepStatus.SUCCEEDED if error is None else StepStatus.FAILED,
                duration_ms=duration_ms,
            )
            self._state.record_attempt(record)
            self._ex._audit.step_attempt(self._id, record)

            if error is None:
                self._bind_output(step, result)
                logger.info(f"[{self._id}] Step {step.id} OK")
                return StepStatus.SUCCEEDED

            if not retry.should_retry(error, attempt):
                logger.warning(
                    f"[{self._id}] Step {step.id} FAILED after {attempt} attempt(s): {error}"
                )
                return StepStatus.FAILED

            delay_ms = retry.delay_ms(attempt)
            self._state.record_retry(step.id)
            logger.info(
                f"[{self._id}] Step {step.id} retry {attempt}/{retry.max_retries} "
                f"in {delay_ms:.0f}ms: {error}"
            )
            await self._ex._sleep(delay_ms / 1000.0)

    def _bind_output(self, step: PlanStep, result) -> None:
        if not step.output_key:
            return
        self._state.bind_output(step.output_key, self._format(step.tool, result))

    def _format(self, tool: str, result):
        formatter = self._registry.formatter_for(tool)
        try:
            return formatter.format_output(tool, result)
        except Exception as e:
            logger.warning(f"[{self._id}] Formatter for {tool!r} failed, using default: {e}")
            return DEFAULT_FORMATTER.format_output(tool, result)

    # --- completion ---

    def _final_output(self) -> Optional[str]:
        """Formatted output of the last successful step, in plan order."""
        for step in reversed(self._plan.steps):
            if self._state.status_of(step.id) != StepStatus.SUCCEEDED:
                continue
            attempt = self._state.last_attempt(step.id)
            if attempt is not None:
                return self._format(step.tool, attempt.output).formatted
        return None

    def _finalize(self, forced_failure: bool) -> WorkflowResult:
        state = self._state
        statuses = [state.status_of(s.id) for s in self._plan.steps]
        success = not forced_failure and all(
            s == StepStatus.SUCCEEDED for s in statuses if s != StepStatus.SKIPPED
        )
        state.finalize(success)

        summary = self._ex._summary.generate(state.steps)
        result = WorkflowResult(
            execution_id=state.execution_id,
            plan_id=self._plan.plan_id,
            success=success,
            status=state.status,
            steps=list(state.steps),
            final_output=self._final_output(),
            human_readable_summary=summary,
            errors=list(state.errors),
            retries=state.retry_count,
            duration_ms=state.duration_ms,
            plan_summary=self._plan.summary,
        )

        self._ex._audit.execution_completed(
            execution_id=state.execution_id,
            success=success,
            status=state.status.value,
            step_status=statuses,
            retries=state.retry_count,
            duration_ms=state.duration_ms,
            summary=summary,
        )
        logger.info(
            f"[{self._id}] Plan finished: status={state.status.value} "
            f"retries={state.retry_count} duration={state.duration_ms}ms"
        )
        return result
