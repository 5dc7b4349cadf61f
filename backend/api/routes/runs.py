"""Workflow run endpoints: start, inspect, cancel, promote variables."""

import asyncio
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status as http_status

from api.schemas.run import CancelResponse, PromoteRequest, RunAccepted, RunCreate
from app.dependencies import get_engine
from workflow.engine import WorkflowEngine
from workflow.models import load_workflow

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["runs"])

# Strong references to background runs until they finish
_background_runs: set[asyncio.Task] = set()


@router.post("", status_code=http_status.HTTP_202_ACCEPTED)
async def start_run(
    payload: RunCreate,
    response: Response,
    engine: WorkflowEngine = Depends(get_engine),
) -> Any:
    """
    Start a workflow run.

    With ``wait`` the run is awaited and its full result returned (200);
    otherwise the run continues in the background and only its id is
    returned (202).
    """
    workflow = load_workflow(payload.workflow)
    environment = payload.environment.to_environment() if payload.environment else None
    context = engine.create_run(
        workflow,
        environment=environment,
        abort_on_failure=payload.abort_on_failure,
        variables=payload.variables,
    )

    if payload.wait:
        await engine.execute(workflow, context=context)
        response.status_code = http_status.HTTP_200_OK
        return context.to_dict()

    task = asyncio.create_task(engine.execute(workflow, context=context))
    _background_runs.add(task)
    task.add_done_callback(_background_runs.discard)
    logger.info("Run dispatched", run_id=context.run_id, workflow_id=workflow.id)
    return RunAccepted(run_id=context.run_id, status=context.status.value)


@router.get("")
async def list_running(engine: WorkflowEngine = Depends(get_engine)) -> dict[str, Any]:
    """Summary of runs that are still pending or running."""
    return engine.get_running_executions()


@router.get("/{run_id}")
async def get_run(run_id: str, engine: WorkflowEngine = Depends(get_engine)) -> dict[str, Any]:
    """Full run result: status, per-step results and final variables."""
    return engine.get_run(run_id).to_dict()


@router.get("/{run_id}/steps/{step_id}")
async def get_step_record(
    run_id: str,
    step_id: str,
    engine: WorkflowEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Last recorded outcome of one step in a run."""
    engine.get_run(run_id)
    record = engine.execution_log.get(run_id, step_id)
    if record is None:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=f"Step '{step_id}' has no record in run '{run_id}'",
        )
    return record.to_dict()


@router.post("/{run_id}/cancel", response_model=CancelResponse)
async def cancel_run(run_id: str, engine: WorkflowEngine = Depends(get_engine)) -> CancelResponse:
    """Request cancellation; already finished runs report ``cancelled: false``."""
    return CancelResponse(run_id=run_id, cancelled=engine.cancel(run_id))


@router.post("/{run_id}/promote")
async def promote_variables(
    run_id: str,
    payload: PromoteRequest,
    engine: WorkflowEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Return the run's workflow with selected final values persisted."""
    context = engine.get_run(run_id)
    workflow = engine.promote_variables(context.workflow, context, payload.names)
    return workflow.to_document()
