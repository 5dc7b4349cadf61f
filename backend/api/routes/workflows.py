"""Workflow document endpoints."""

from typing import Any

from fastapi import APIRouter, Body

from workflow.models import load_workflow

router = APIRouter(tags=["workflows"])


@router.post("/validate")
async def validate_workflow(document: dict[str, Any] = Body(...)) -> dict[str, Any]:
    """
    Validate a workflow document.

    Returns the normalised document (flat camelCase layout, steps in
    execution order). Malformed documents get a 422 with a description
    of every problem.
    """
    return load_workflow(document).to_document()
