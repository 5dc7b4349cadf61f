"""Execution log: last recorded outcome per step, keyed by workflow run.

UI collaborators read it to render per-step status without re-running,
and the context builder reads the latest response of each request step
to resolve chain variables for steps run later (or in isolation).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from core.constants import StepStatus
from integrations.http_transport import HttpResponse


@dataclass
class StepRecord:
    """Last recorded outcome of one step in one run."""

    run_id: str
    workflow_id: str
    step_id: str
    status: StepStatus
    response: Optional[HttpResponse] = None
    assertion_results: Optional[List[Dict[str, Any]]] = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    recorded_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "workflow_id": self.workflow_id,
            "step_id": self.step_id,
            "status": self.status.value,
            "response": self.response.to_dict() if self.response else None,
            "assertion_results": self.assertion_results,
            "warnings": list(self.warnings),
            "error": self.error,
            "recorded_at": self.recorded_at,
        }


class ExecutionLog:
    """Session-wide store of step records.

    ``get_response`` answers with the most recent response recorded for a
    step of the given workflow in any run of this session, which is what
    lets a step executed in isolation see values produced by an earlier
    run. Step ids are only unique within a workflow, so responses are
    never shared across workflows.
    """

    def __init__(self):
        self._runs: Dict[str, Dict[str, StepRecord]] = {}
        # (workflow_id, step_id) -> (run_id, response)
        self._latest_responses: Dict[Tuple[str, str], Tuple[str, HttpResponse]] = {}

    def record(
        self,
        run_id: str,
        workflow_id: str,
        step_id: str,
        status: StepStatus,
        response: Optional[HttpResponse] = None,
        warnings: Optional[List[str]] = None,
        error: Optional[str] = None,
        assertion_results: Optional[List[Dict[str, Any]]] = None,
    ) -> StepRecord:
        record = StepRecord(
            run_id=run_id,
            workflow_id=workflow_id,
            step_id=step_id,
            status=status,
            response=response,
            assertion_results=assertion_results,
            warnings=list(warnings or []),
            error=error,
        )
        self._runs.setdefault(run_id, {})[step_id] = record
        if response is not None:
            self._latest_responses[(workflow_id, step_id)] = (run_id, response)
        return record

    def get(self, run_id: str, step_id: str) -> Optional[StepRecord]:
        return self._runs.get(run_id, {}).get(step_id)

    def for_run(self, run_id: str) -> Dict[str, StepRecord]:
        return dict(self._runs.get(run_id, {}))

    def get_response(self, workflow_id: str, step_id: str) -> Optional[HttpResponse]:
        latest = self._latest_responses.get((workflow_id, step_id))
        return latest[1] if latest else None

    def has_run(self, run_id: str) -> bool:
        return run_id in self._runs

    def discard_run(self, run_id: str) -> None:
        """Drop a run's records and any latest responses it produced."""
        self._runs.pop(run_id, None)
        stale = [key for key, (owner, _) in self._latest_responses.items() if owner == run_id]
        for key in stale:
            del self._latest_responses[key]

    def clear(self) -> None:
        self._runs.clear()
        self._latest_responses.clear()
