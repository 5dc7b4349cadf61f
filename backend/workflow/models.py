"""Workflow document model and loader.

Workflows arrive as JSON-shaped documents produced by the authoring surface:

{
    "id": "wf-1",
    "name": "Login then fetch orders",
    "variables": { "user": "alice" },
    "steps": [
        {
            "id": "login",
            "type": "request",
            "order": 0,
            "endpoint": "{{url}}/login",
            "method": "POST",
            "body": "<login><user>${user}</user></login>",
            "extractors": [
                { "type": "XPath", "source": "body", "path": "//token",
                  "variable": "token", "defaultValue": "PENDING" }
            ]
        },
        {
            "id": "each-order",
            "type": "loop",
            "loopType": "list",
            "listVariable": "orderIds",
            "iteratorVariable": "orderId",
            "loopSteps": [ ... ]
        }
    ]
}

Keys are camelCase on the wire; snake_case is accepted as well. The older
nested layout (``condition: {...}``, ``loop: {type, count, ...}``,
``request: {endpoint, request, ...}``) is normalised to the flat one.
Malformed documents raise ConfigurationError before anything executes.
"""

import json
from typing import Annotated, Any, Iterator, Literal, Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from app.config import get_settings
from core.constants import ConditionOperator, ExtractorSource, ExtractorType, LoopType
from core.exceptions import ConfigurationError
from workflow.variables import stringify


class _DocumentModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


# ─── Extractors ───────────────────────────────────────────────

_EXTRACTOR_TYPES = {t.value.lower(): t for t in ExtractorType}


class Extractor(_DocumentModel):
    """Rule that pulls a single value out of a response into a variable."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: ExtractorType
    source: ExtractorSource = ExtractorSource.BODY
    path: str
    variable: str = Field(min_length=1)
    default_value: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        if isinstance(data, dict) and "path" not in data:
            data = dict(data)
            legacy = data.get("pattern") or data.get("headerName")
            if legacy is not None:
                data["path"] = legacy
        return data

    @field_validator("type", mode="before")
    @classmethod
    def _case_insensitive_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _EXTRACTOR_TYPES.get(value.strip().lower(), value)
        return value

    @field_validator("default_value", mode="before")
    @classmethod
    def _blank_default_is_absent(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return stringify(value)

    @property
    def reads_header(self) -> bool:
        return self.type == ExtractorType.HEADER or self.source == ExtractorSource.HEADER


# ─── Steps ────────────────────────────────────────────────────

class _StepBase(_DocumentModel):
    id: str = Field(min_length=1)
    name: str = ""
    order: Optional[int] = None

    @property
    def label(self) -> str:
        return self.name or self.id


class RequestStep(_StepBase):
    type: Literal["request"] = "request"
    endpoint: str = Field(min_length=1)
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""
    extractors: list[Extractor] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _flatten_nested_request(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("request"), dict):
            data = dict(data)
            nested = data.pop("request")
            for key in ("endpoint", "method", "headers"):
                if key in nested and key not in data:
                    data[key] = nested[key]
            if "body" not in data:
                data["body"] = nested.get("body", nested.get("request", ""))
            if "extractors" not in data and "extractors" in nested:
                data["extractors"] = nested["extractors"]
        return data

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.strip().upper() or "GET"

    @field_validator("headers", mode="before")
    @classmethod
    def _stringify_headers(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): stringify(v) for k, v in value.items()}
        return value


class DelayStep(_StepBase):
    type: Literal["delay"] = "delay"
    delay_ms: int = Field(ge=0)


class ConditionSpec(_DocumentModel):
    """Expression/operator/expected triple shared by condition steps and while loops."""

    expression: str
    operator: ConditionOperator = ConditionOperator.EQUALS
    expected_value: str = ""


class ConditionStep(_StepBase):
    type: Literal["condition"] = "condition"
    expression: str
    operator: ConditionOperator = ConditionOperator.EQUALS
    expected_value: str = ""

    @model_validator(mode="before")
    @classmethod
    def _flatten_nested_condition(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("condition"), dict):
            data = dict(data)
            nested = data.pop("condition")
            for key in ("expression", "operator", "expectedValue", "expected_value"):
                if key in nested and key not in data:
                    data[key] = nested[key]
        return data

    @property
    def spec(self) -> ConditionSpec:
        return ConditionSpec(
            expression=self.expression,
            operator=self.operator,
            expected_value=self.expected_value,
        )


class LoopStep(_StepBase):
    type: Literal["loop"] = "loop"
    loop_type: LoopType
    count: Optional[int] = Field(default=None, ge=0)
    list_variable: Optional[str] = None
    condition: Optional[ConditionSpec] = None
    iterator_variable: str = Field(default="i", min_length=1)
    max_iterations: int = Field(
        default_factory=lambda: get_settings().DEFAULT_MAX_ITERATIONS, ge=0
    )
    loop_steps: list["Step"]

    @model_validator(mode="before")
    @classmethod
    def _flatten_nested_loop(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("loop"), dict):
            data = dict(data)
            nested = dict(data.pop("loop"))
            if "type" in nested:
                nested.setdefault("loopType", nested.pop("type"))
            for key, value in nested.items():
                data.setdefault(key, value)
        return data

    @model_validator(mode="after")
    def _check_iteration_source(self) -> "LoopStep":
        if self.loop_type == LoopType.COUNT and self.count is None:
            raise ValueError(f"count loop '{self.id}' requires 'count'")
        if self.loop_type == LoopType.LIST and not self.list_variable:
            raise ValueError(f"list loop '{self.id}' requires 'listVariable'")
        if self.loop_type == LoopType.WHILE and self.condition is None:
            raise ValueError(f"while loop '{self.id}' requires 'condition'")
        self.loop_steps = sort_steps(self.loop_steps)
        return self


class ScriptStep(_StepBase):
    type: Literal["script"] = "script"
    script: str


Step = Annotated[
    Union[RequestStep, DelayStep, ConditionStep, LoopStep, ScriptStep],
    Field(discriminator="type"),
]

LoopStep.model_rebuild()


# ─── Workflow ─────────────────────────────────────────────────

class Workflow(_DocumentModel):
    """A named, ordered step tree plus its persisted variables."""

    id: str = Field(min_length=1)
    name: str = ""
    description: str = ""
    steps: list[Step] = Field(default_factory=list)
    variables: dict[str, str] = Field(default_factory=dict)

    @field_validator("variables", mode="before")
    @classmethod
    def _stringify_variables(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): stringify(v) for k, v in value.items()}
        return value

    @model_validator(mode="after")
    def _order_and_check_ids(self) -> "Workflow":
        self.steps = sort_steps(self.steps)
        seen: set[str] = set()
        for step in iter_steps(self.steps):
            if step.id in seen:
                raise ValueError(f"duplicate step id '{step.id}'")
            seen.add(step.id)
        return self

    def with_variables(self, updates: dict[str, str]) -> "Workflow":
        """Return a copy whose persisted variables include ``updates``."""
        return self.model_copy(update={"variables": {**self.variables, **updates}})

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ─── Tree helpers ─────────────────────────────────────────────

def sort_steps(steps: list) -> list:
    """Order one level of steps by ``order``; unordered steps keep their position."""
    indexed = list(enumerate(steps))
    indexed.sort(key=lambda pair: (pair[1].order if pair[1].order is not None else pair[0], pair[0]))
    return [step for _, step in indexed]


def iter_steps(steps: list) -> Iterator:
    """Yield every step of the tree in document order (depth first)."""
    for step in steps:
        yield step
        if isinstance(step, LoopStep):
            yield from iter_steps(step.loop_steps)


def find_step_path(steps: list, step_id: str) -> Optional[tuple[int, ...]]:
    """Return the index path of ``step_id`` in the tree, or None."""
    for index, step in enumerate(steps):
        if step.id == step_id:
            return (index,)
        if isinstance(step, LoopStep):
            inner = find_step_path(step.loop_steps, step_id)
            if inner is not None:
                return (index, *inner)
    return None


def step_at(steps: list, path: tuple[int, ...]):
    """Return the step at an index path."""
    current = None
    level = steps
    for index in path:
        current = level[index]
        level = current.loop_steps if isinstance(current, LoopStep) else []
    return current


# ─── Loading ──────────────────────────────────────────────────

def _describe(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        message = item.get("msg", "invalid value")
        problems.append(f"{location}: {message}" if location else message)
    return "Invalid workflow definition: " + "; ".join(problems)


def load_workflow(document: Union[str, bytes, dict]) -> Workflow:
    """Parse and validate a workflow document.

    Raises:
        ConfigurationError: If the document is not valid JSON or violates
            the step-tree invariants (missing fields for a step kind,
            duplicate ids, unknown step types, ...)
    """
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Workflow document is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise ConfigurationError("Workflow document must be a JSON object")

    try:
        return Workflow.model_validate(document)
    except ValidationError as e:
        raise ConfigurationError(_describe(e)) from e
