"""Run, environment and template-preview schemas."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from integrations.environment import Environment


class EnvironmentPayload(BaseModel):
    """Active environment sent along with a run or preview request."""

    name: str = Field(default="default", description="Environment name")
    endpoint: Optional[str] = Field(default=None, description="Rendered by {{url}} / {{env}}")
    variables: Dict[str, Any] = Field(default_factory=dict, description="Environment variables")
    global_variables: Dict[str, Any] = Field(
        default_factory=dict,
        alias="globals",
        description="Global variables (shadowed by environment variables)",
    )

    model_config = {"populate_by_name": True}

    def to_environment(self) -> Environment:
        return Environment(
            name=self.name,
            endpoint=self.endpoint,
            variables=dict(self.variables),
            globals=dict(self.global_variables),
        )


class RunCreate(BaseModel):
    """Request to start a workflow run."""

    workflow: Dict[str, Any] = Field(description="Workflow document")
    environment: Optional[EnvironmentPayload] = Field(default=None)
    variables: Dict[str, Any] = Field(
        default_factory=dict, description="Run-only overrides of the workflow variables"
    )
    abort_on_failure: Optional[bool] = Field(
        default=None, description="Stop after the first failed step (defaults to settings)"
    )
    wait: bool = Field(default=False, description="Wait for the run and return its result")


class RunAccepted(BaseModel):
    run_id: str
    status: str


class CancelResponse(BaseModel):
    run_id: str
    cancelled: bool


class PromoteRequest(BaseModel):
    """Select which final run values are persisted into the workflow."""

    names: Optional[List[str]] = Field(default=None, description="Variable names (all if omitted)")


class TemplatePreviewRequest(BaseModel):
    text: str = Field(description="Text containing {{...}} and ${...} placeholders")
    environment: Optional[EnvironmentPayload] = None
    variables: Dict[str, Any] = Field(
        default_factory=dict, description="Chain variables visible to ${...}"
    )


class ResolutionGapResponse(BaseModel):
    placeholder: str
    name: str
    namespace: str


class TemplatePreviewResponse(BaseModel):
    text: str
    complete: bool
    gaps: List[ResolutionGapResponse] = Field(default_factory=list)
