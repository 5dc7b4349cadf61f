"""FastAPI dependency injection functions."""

from workflow.engine import WorkflowEngine, get_workflow_engine


def get_engine() -> WorkflowEngine:
    """Provide the process-wide workflow engine (overridden in tests)."""
    return get_workflow_engine()
