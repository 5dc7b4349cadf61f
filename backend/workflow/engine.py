"""Workflow Execution Engine: sequential step-tree interpreter.

Takes a validated Workflow (see workflow.models) and runs its steps in
order, handling:

- Request steps: context building, template rendering, transport call,
  eager extraction into the run's variable store
- Delay steps (cancellable)
- Condition steps: a false condition skips the remaining siblings at
  its nesting level
- Loop steps (count / list / while), bounded by maxIterations; each
  iteration binds the iterator variable in an iteration-local scope
- Script steps, applied atomically to the variable store
- Soft-continue on failure by default, optional abort-on-failure
- Cooperative cancellation between steps and at every suspension point

Every run owns a fresh VariableStore seeded from Workflow.variables;
nothing is written back to the workflow.
"""

import asyncio
import json
import math
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import structlog

from app.config import get_settings
from core.constants import ConditionOperator, LoopType, RunStatus, StepStatus
from core.exceptions import ConfigurationError, RunNotFoundError, ScriptError, TransportError
from integrations.environment import EMPTY_ENVIRONMENT, EnvironmentSource
from integrations.http_transport import HttpResponse, HttpTransport, HttpxTransport
from integrations.script_sandbox import PythonScriptSandbox, ScriptSandbox
from workflow.context_builder import BuiltContext, ContextBuilder
from workflow.execution_log import ExecutionLog
from workflow.extractors import ExtractionFailure, ExtractorEvaluator
from workflow.models import (
    ConditionSpec,
    ConditionStep,
    DelayStep,
    LoopStep,
    RequestStep,
    ScriptStep,
    Workflow,
    find_step_path,
    iter_steps,
    step_at,
)
from workflow.templating import RenderResult, TemplateResolver, TemplateScope
from workflow.variables import VariableStore, stringify

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── Results ──────────────────────────────────────────────────

@dataclass
class StepResult:
    """Result of executing (or skipping) a single step."""

    step_id: str
    name: str
    step_type: str
    status: StepStatus = StepStatus.PENDING
    output: Any = None
    error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    skip_reason: Optional[str] = None
    response: Optional[HttpResponse] = None
    iteration: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_ms: int = 0

    def warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    def to_dict(self) -> dict:
        return {
            "step_id": self.step_id,
            "name": self.name,
            "type": self.step_type,
            "status": self.status.value,
            "output": self.output,
            "error": self.error,
            "warnings": list(self.warnings),
            "skip_reason": self.skip_reason,
            "response": self.response.to_dict() if self.response else None,
            "iteration": self.iteration,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_ms": self.duration_ms,
        }


class RunCancellation:
    """Run-scoped cancellation signal."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class _RunCancelled(Exception):
    """Raised inside a step when the run's cancellation signal fires."""


@dataclass
class ExecutionContext:
    """State of one workflow run.

    Holds the run-scoped variable store, per-step results and run
    metadata. Only the step executor for the active step writes to it.
    """

    run_id: str
    workflow: Workflow
    environment: EnvironmentSource = field(default_factory=lambda: EMPTY_ENVIRONMENT)
    store: VariableStore = field(default_factory=VariableStore)
    abort_on_failure: bool = False
    status: RunStatus = RunStatus.PENDING
    steps: dict[str, StepResult] = field(default_factory=dict)
    history: list[StepResult] = field(default_factory=list)
    cancellation: RunCancellation = field(default_factory=RunCancellation)
    current_step_id: Optional[str] = None
    aborted: bool = False
    error: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @property
    def workflow_id(self) -> str:
        return self.workflow.id

    @property
    def variables(self) -> dict[str, str]:
        return self.store.snapshot()

    @property
    def should_stop(self) -> bool:
        return self.cancellation.is_cancelled or self.aborted

    def track(self, result: StepResult) -> None:
        self.steps[result.step_id] = result
        self.history.append(result)

    @property
    def warnings(self) -> list[str]:
        return [f"{r.name}: {w}" for r in self.history for w in r.warnings]

    def final_status(self) -> RunStatus:
        if self.cancellation.is_cancelled:
            return RunStatus.CANCELLED
        if self.error or any(r.status == StepStatus.FAILED for r in self.history):
            return RunStatus.FAILED
        return RunStatus.COMPLETED

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow.name,
            "status": self.status.value,
            "error": self.error,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "current_step_id": self.current_step_id,
            "variables": self.variables,
            "steps": {sid: r.to_dict() for sid, r in self.steps.items()},
            "history": [r.to_dict() for r in self.history],
            "warnings": self.warnings,
        }


# ─── Helpers ──────────────────────────────────────────────────

def _as_number(text: str) -> Optional[float]:
    try:
        number = float(text.strip())
    except (ValueError, AttributeError):
        return None
    return number if math.isfinite(number) else None


def compare(operator: ConditionOperator, actual: RenderResult, expected: str) -> bool:
    """Compare a resolved expression against the expected value."""
    text = actual.text
    if operator == ConditionOperator.EQUALS:
        return text == expected
    if operator == ConditionOperator.NOT_EQUALS:
        return text != expected
    if operator == ConditionOperator.CONTAINS:
        return expected in text
    if operator == ConditionOperator.NOT_CONTAINS:
        return expected not in text
    if operator in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
        left, right = _as_number(text), _as_number(expected)
        if left is None or right is None:
            return False
        return left > right if operator == ConditionOperator.GREATER_THAN else left < right

    exists = bool(text.strip()) and actual.is_complete
    if operator == ConditionOperator.EXISTS:
        return exists
    if operator == ConditionOperator.NOT_EXISTS:
        return not exists
    raise ConfigurationError(f"Unknown condition operator: {operator}")


def split_list(raw: str, delimiter: str) -> list[str]:
    """Elements of a list variable: a JSON array, or delimited text."""
    text = raw.strip()
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return [stringify(item) for item in parsed]
    return [part.strip() for part in raw.split(delimiter) if part.strip()]


# ─── Step Executor ────────────────────────────────────────────

class StepExecutor:
    """Recursive interpreter over the step tree.

    Dispatches on step kind, resolves templates against the run's
    variable store plus the chain context, and records every outcome
    in the execution log.
    """

    def __init__(
        self,
        transport: HttpTransport,
        sandbox: ScriptSandbox,
        execution_log: ExecutionLog,
        resolver: Optional[TemplateResolver] = None,
        on_step_complete: Optional[Callable] = None,
    ):
        self._transport = transport
        self._sandbox = sandbox
        self._log = execution_log
        self._resolver = resolver or TemplateResolver()
        self._on_step_complete = on_step_complete

    async def run_steps(
        self,
        steps: list,
        path_prefix: tuple[int, ...],
        context: ExecutionContext,
        iteration: Optional[str] = None,
    ) -> None:
        """Run one nesting level of the tree, strictly in order."""
        for index, step in enumerate(steps):
            if context.cancellation.is_cancelled:
                await self._skip(steps[index:], context, "run cancelled", iteration)
                return
            if context.aborted:
                await self._skip(steps[index:], context, "run aborted after a failed step", iteration)
                return

            result = await self.execute_step(step, (*path_prefix, index), context, iteration)

            if (
                isinstance(step, ConditionStep)
                and result.status == StepStatus.SUCCEEDED
                and not result.output["passed"]
            ):
                await self._skip(
                    steps[index + 1:],
                    context,
                    f"condition '{step.label}' evaluated false",
                    iteration,
                )
                return

            if result.status == StepStatus.FAILED and context.abort_on_failure:
                context.aborted = True

    async def execute_step(
        self,
        step,
        path: tuple[int, ...],
        context: ExecutionContext,
        iteration: Optional[str] = None,
    ) -> StepResult:
        """Execute a single step and record its outcome."""
        started_at = _utcnow()
        result = StepResult(
            step_id=step.id,
            name=step.label,
            step_type=step.type,
            status=StepStatus.RUNNING,
            iteration=iteration,
            started_at=started_at.isoformat(),
        )
        context.current_step_id = step.id
        context.track(result)
        logger.info("Step starting", step_id=step.id, step_type=step.type, iteration=iteration)

        try:
            if isinstance(step, RequestStep):
                await self._execute_request(step, path, context, result)
            elif isinstance(step, DelayStep):
                await self._execute_delay(step, context, result)
            elif isinstance(step, ConditionStep):
                await self._execute_condition(step, path, context, result)
            elif isinstance(step, LoopStep):
                await self._execute_loop(step, path, context, result, iteration)
            elif isinstance(step, ScriptStep):
                await self._execute_script(step, context, result)
            else:
                raise ConfigurationError(f"Unknown step type: {type(step).__name__}")

        except _RunCancelled:
            result.status = StepStatus.SKIPPED
            result.skip_reason = "run cancelled"
        except Exception as e:
            logger.error("Step raised", step_id=step.id, error=str(e), exc_info=True)
            result.status = StepStatus.FAILED
            result.error = str(e)

        completed_at = _utcnow()
        result.completed_at = completed_at.isoformat()
        result.duration_ms = int((completed_at - started_at).total_seconds() * 1000)
        await self._finish(result, context)
        return result

    async def _finish(self, result: StepResult, context: ExecutionContext) -> None:
        self._log.record(
            context.run_id,
            context.workflow_id,
            result.step_id,
            result.status,
            response=result.response,
            warnings=result.warnings,
            error=result.error or result.skip_reason,
        )
        log = logger.warning if result.status == StepStatus.FAILED else logger.info
        log(
            "Step finished",
            step_id=result.step_id,
            status=result.status.value,
            duration_ms=result.duration_ms,
            warnings=len(result.warnings),
            error=result.error,
        )
        if self._on_step_complete:
            try:
                await self._on_step_complete(context, result)
            except Exception as e:
                logger.warning("on_step_complete callback failed", error=str(e))

    async def _skip(
        self, steps: list, context: ExecutionContext, reason: str, iteration: Optional[str]
    ) -> None:
        for step in steps:
            for skipped in iter_steps([step]):
                result = StepResult(
                    step_id=skipped.id,
                    name=skipped.label,
                    step_type=skipped.type,
                    status=StepStatus.SKIPPED,
                    skip_reason=reason,
                    iteration=iteration,
                )
                context.track(result)
                await self._finish(result, context)

    async def _until_cancelled(self, awaitable, context: ExecutionContext):
        """Await ``awaitable`` unless the run is cancelled first."""
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(context.cancellation.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise _RunCancelled()

    # ─── Scope ────────────────────────────────────────────────

    def _scope(
        self, path: tuple[int, ...], context: ExecutionContext
    ) -> tuple[TemplateScope, BuiltContext]:
        """Template scope at ``path``: chain context overlaid by the run store."""
        built = ContextBuilder.build(context.workflow.steps, path, self._log, context.workflow_id)
        chain = {**built.variables, **context.store.snapshot()}
        scope = TemplateScope(
            environment=context.environment,
            chain_variables=chain,
            now=_utcnow(),
        )
        return scope, built

    def _render(self, text: str, scope: TemplateScope, result: StepResult) -> RenderResult:
        rendered = self._resolver.render(text, scope)
        for gap in rendered.gaps:
            result.warn(str(gap))
        return rendered

    # ─── Step kinds ───────────────────────────────────────────

    async def _execute_request(
        self, step: RequestStep, path: tuple[int, ...], context: ExecutionContext, result: StepResult
    ) -> None:
        scope, built = self._scope(path, context)
        for warning in built.warnings:
            result.warn(warning)

        url = self._render(step.endpoint, scope, result).text
        headers, gaps = self._resolver.render_mapping(step.headers, scope)
        for gap in gaps:
            result.warn(str(gap))
        body = self._render(step.body, scope, result).text

        result.output = {
            "request": {"method": step.method, "url": url, "headers": headers, "body": body},
        }

        try:
            response = await self._until_cancelled(
                self._transport.send(step.method, url, headers, body), context
            )
        except TransportError as e:
            result.status = StepStatus.FAILED
            result.error = e.message
            return

        result.response = response
        result.output["status_code"] = response.status_code
        result.output["extracted"] = self._extract_into_store(step, response, context, result)
        result.status = StepStatus.SUCCEEDED

    def _extract_into_store(
        self, step: RequestStep, response: HttpResponse, context: ExecutionContext, result: StepResult
    ) -> dict[str, str]:
        extracted: dict[str, str] = {}
        for extractor in step.extractors:
            value = ExtractorEvaluator.evaluate(extractor, response)
            if isinstance(value, ExtractionFailure):
                if extractor.default_value is None:
                    result.warn(f"{value}; variable left unbound")
                    continue
                result.warn(f"{value}; using default '{extractor.default_value}'")
                value = extractor.default_value
            context.store.set(extractor.variable, value)
            extracted[extractor.variable] = value
            logger.debug("Variable extracted", step_id=step.id, variable=extractor.variable)
        return extracted

    async def _execute_delay(
        self, step: DelayStep, context: ExecutionContext, result: StepResult
    ) -> None:
        await self._until_cancelled(asyncio.sleep(step.delay_ms / 1000), context)
        result.output = {"waited_ms": step.delay_ms}
        result.status = StepStatus.SUCCEEDED

    def _evaluate(
        self, condition: ConditionSpec, path: tuple[int, ...], context: ExecutionContext, result: StepResult
    ) -> dict:
        scope, built = self._scope(path, context)
        for warning in built.warnings:
            result.warn(warning)
        actual = self._resolver.render(condition.expression, scope)
        expected = self._render(condition.expected_value, scope, result).text
        # Gaps are expected input for exists/notExists, not authoring errors
        if condition.operator not in (ConditionOperator.EXISTS, ConditionOperator.NOT_EXISTS):
            for gap in actual.gaps:
                result.warn(str(gap))
        return {
            "expression": actual.text,
            "operator": condition.operator.value,
            "expected": expected,
            "passed": compare(condition.operator, actual, expected),
        }

    async def _execute_condition(
        self, step: ConditionStep, path: tuple[int, ...], context: ExecutionContext, result: StepResult
    ) -> None:
        result.output = self._evaluate(step.spec, path, context, result)
        result.status = StepStatus.SUCCEEDED

    def _lookup(self, name: str, path: tuple[int, ...], context: ExecutionContext) -> Optional[str]:
        if name in context.store:
            return context.store.get(name)
        built = ContextBuilder.build(context.workflow.steps, path, self._log, context.workflow_id)
        return built.variables.get(name)

    async def _execute_loop(
        self,
        step: LoopStep,
        path: tuple[int, ...],
        context: ExecutionContext,
        result: StepResult,
        iteration: Optional[str],
    ) -> None:
        completed = 0
        capped = False
        prefix = f"{iteration}/" if iteration else ""

        async def run_iteration(index: int, value: str) -> None:
            with context.store.iteration_scope({step.iterator_variable: value}):
                await self.run_steps(step.loop_steps, path, context, f"{prefix}{step.id}#{index}")

        if step.loop_type == LoopType.WHILE:
            while not context.should_stop:
                if completed >= step.max_iterations:
                    capped = True
                    break
                check = self._evaluate(step.condition, path, context, result)
                if not check["passed"]:
                    break
                await run_iteration(completed, str(completed))
                completed += 1
        else:
            if step.loop_type == LoopType.COUNT:
                values = [str(i) for i in range(step.count)]
            else:
                raw = self._lookup(step.list_variable, path, context)
                if raw is None:
                    result.warn(f"List variable '{step.list_variable}' is not defined; loop body not run")
                    values = []
                else:
                    values = split_list(raw, get_settings().LIST_DELIMITER)

            if len(values) > step.max_iterations:
                capped = True
                values = values[: step.max_iterations]

            for index, value in enumerate(values):
                if context.should_stop:
                    break
                await run_iteration(index, value)
                completed += 1

        if capped:
            result.warn(f"Loop stopped at maxIterations ({step.max_iterations})")
        result.output = {
            "loop_type": step.loop_type.value,
            "iterations": completed,
            "capped": capped,
        }
        if context.cancellation.is_cancelled:
            raise _RunCancelled()
        result.status = StepStatus.SUCCEEDED

    async def _execute_script(
        self, step: ScriptStep, context: ExecutionContext, result: StepResult
    ) -> None:
        before = context.store.snapshot()
        variables = dict(before)
        lines: list[str] = []

        def log_line(message: Any) -> None:
            lines.append(str(message))
            logger.info("Script log", step_id=step.id, message=str(message))

        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self._sandbox.run, step.script, variables, log_line)
        try:
            # Shielded: a started script always runs to completion
            await asyncio.shield(future)
        except ScriptError as e:
            result.status = StepStatus.FAILED
            result.error = e.message
            result.output = {"log": lines}
            return
        except asyncio.CancelledError:
            await asyncio.wait({future})
            if future.exception() is None:
                self._apply_script_writes(before, variables, context)
            raise

        written = self._apply_script_writes(before, variables, context)
        result.output = {"log": lines, "written": written}
        result.status = StepStatus.SUCCEEDED

    @staticmethod
    def _apply_script_writes(
        before: dict[str, str], after: dict[str, Any], context: ExecutionContext
    ) -> list[str]:
        written = []
        for name, value in after.items():
            value = stringify(value)
            if before.get(name) != value or name not in before:
                context.store.set(name, value)
                written.append(name)
        for name in before:
            if name not in after:
                context.store.delete(name)
                written.append(name)
        return written


# ─── Workflow Engine ──────────────────────────────────────────

class WorkflowEngine:
    """Top-level driver: one fresh ExecutionContext per run.

    The engine itself only keeps the session execution log and the
    registry of runs; variable stores are never shared between runs.
    At most ``max_retained_runs`` finished runs are kept; older ones are
    evicted together with their execution log records.
    """

    def __init__(
        self,
        transport: Optional[HttpTransport] = None,
        sandbox: Optional[ScriptSandbox] = None,
        execution_log: Optional[ExecutionLog] = None,
        resolver: Optional[TemplateResolver] = None,
        on_step_complete: Optional[Callable] = None,
        on_execution_complete: Optional[Callable] = None,
        max_retained_runs: Optional[int] = None,
    ):
        self.execution_log = execution_log or ExecutionLog()
        self._step_executor = StepExecutor(
            transport=transport or HttpxTransport(),
            sandbox=sandbox or PythonScriptSandbox(),
            execution_log=self.execution_log,
            resolver=resolver,
            on_step_complete=on_step_complete,
        )
        self._on_execution_complete = on_execution_complete
        self._runs: dict[str, ExecutionContext] = {}
        self._finished: deque[str] = deque()
        self._max_retained_runs = (
            max_retained_runs if max_retained_runs is not None else get_settings().MAX_RETAINED_RUNS
        )

    def create_run(
        self,
        workflow: Workflow,
        environment: Optional[EnvironmentSource] = None,
        run_id: Optional[str] = None,
        abort_on_failure: Optional[bool] = None,
        variables: Optional[dict] = None,
    ) -> ExecutionContext:
        """Register a pending run with a fresh variable store."""
        if abort_on_failure is None:
            abort_on_failure = get_settings().ABORT_ON_FAILURE
        context = ExecutionContext(
            run_id=run_id or str(uuid.uuid4()),
            workflow=workflow,
            environment=environment or EMPTY_ENVIRONMENT,
            store=VariableStore({**workflow.variables, **(variables or {})}),
            abort_on_failure=abort_on_failure,
        )
        self._runs[context.run_id] = context
        return context

    async def execute(
        self,
        workflow: Workflow,
        environment: Optional[EnvironmentSource] = None,
        run_id: Optional[str] = None,
        abort_on_failure: Optional[bool] = None,
        variables: Optional[dict] = None,
        context: Optional[ExecutionContext] = None,
    ) -> ExecutionContext:
        """Execute every step of a workflow.

        Args:
            workflow: Validated workflow
            environment: Source for ``{{name}}`` variables and ``{{url}}``
            run_id: Explicit run ID (generated if omitted)
            abort_on_failure: Stop after the first failed step
                (defaults to settings.ABORT_ON_FAILURE)
            variables: Run-only overrides layered over workflow.variables
            context: A run previously registered with create_run()

        Returns:
            Final ExecutionContext with all step results
        """
        if context is None:
            context = self.create_run(workflow, environment, run_id, abort_on_failure, variables)

        async def body() -> None:
            await self._step_executor.run_steps(workflow.steps, (), context)

        return await self._drive(context, body)

    async def execute_step(
        self,
        workflow: Workflow,
        step_id: str,
        environment: Optional[EnvironmentSource] = None,
        variables: Optional[dict] = None,
    ) -> ExecutionContext:
        """Run a single step in isolation.

        Chain variables come from responses already recorded in this
        session's execution log, or from extractor defaults.
        """
        path = find_step_path(workflow.steps, step_id)
        if path is None:
            raise ConfigurationError(f"Step '{step_id}' not found in workflow '{workflow.id}'")
        context = self.create_run(workflow, environment, variables=variables)
        step = step_at(workflow.steps, path)

        async def body() -> None:
            await self._step_executor.execute_step(step, path, context)

        return await self._drive(context, body)

    async def _drive(self, context: ExecutionContext, body: Callable) -> ExecutionContext:
        context.status = RunStatus.RUNNING
        context.started_at = _utcnow().isoformat()
        structlog.contextvars.bind_contextvars(run_id=context.run_id, workflow_id=context.workflow_id)
        logger.info("Run starting", workflow=context.workflow.name)

        try:
            await body()
        except asyncio.CancelledError:
            context.cancellation.cancel()
            logger.info("Run task cancelled")
            raise
        finally:
            context.completed_at = _utcnow().isoformat()
            context.current_step_id = None
            context.status = context.final_status()
            logger.info("Run finished", status=context.status.value, steps=len(context.history))
            structlog.contextvars.unbind_contextvars("run_id", "workflow_id")
            self._retire(context.run_id)

            if self._on_execution_complete:
                try:
                    await self._on_execution_complete(context)
                except Exception as e:
                    logger.error("on_execution_complete callback failed", error=str(e))

        return context

    def _retire(self, run_id: str) -> None:
        """Mark a run finished and evict the oldest finished runs over the cap."""
        self._finished.append(run_id)
        while len(self._finished) > max(self._max_retained_runs, 0):
            evicted = self._finished.popleft()
            self._runs.pop(evicted, None)
            self.execution_log.discard_run(evicted)
            logger.debug("Run evicted", run_id=evicted)

    def cancel(self, run_id: str) -> bool:
        """Signal cancellation of a running run.

        Returns:
            True if the run was running, False if it already finished
        """
        context = self.get_run(run_id)
        if context.status not in (RunStatus.PENDING, RunStatus.RUNNING):
            return False
        context.cancellation.cancel()
        logger.info("Run marked for cancellation", run_id=run_id)
        return True

    def get_run(self, run_id: str) -> ExecutionContext:
        context = self._runs.get(run_id)
        if context is None:
            raise RunNotFoundError(f"Run '{run_id}' not found")
        return context

    def get_running_executions(self) -> dict[str, dict]:
        """Get status of all running executions."""
        return {
            rid: {
                "workflow_id": ctx.workflow_id,
                "current_step": ctx.current_step_id,
                "steps_succeeded": sum(
                    1 for r in ctx.steps.values() if r.status == StepStatus.SUCCEEDED
                ),
                "steps_failed": sum(
                    1 for r in ctx.steps.values() if r.status == StepStatus.FAILED
                ),
            }
            for rid, ctx in self._runs.items()
            if ctx.status in (RunStatus.PENDING, RunStatus.RUNNING)
        }

    @staticmethod
    def promote_variables(
        workflow: Workflow, context: ExecutionContext, names: Optional[list[str]] = None
    ) -> Workflow:
        """Persist values discovered by a run into a copy of the workflow.

        Iteration bindings are never promoted. Unknown names are ignored.
        """
        values = context.store.persistent()
        if names is not None:
            values = {name: values[name] for name in names if name in values}
        return workflow.with_variables(values)


# ─── Singleton ─────────────────────────────────────────────────

_engine: Optional[WorkflowEngine] = None


def get_workflow_engine() -> WorkflowEngine:
    """Get or create the singleton WorkflowEngine."""
    global _engine
    if _engine is None:
        _engine = WorkflowEngine()
    return _engine
