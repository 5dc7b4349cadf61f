"""Constants and enums for the workflow execution engine."""

from enum import Enum


class StepStatus(str, Enum):
    """Status of a single step execution."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.SUCCEEDED, StepStatus.FAILED, StepStatus.SKIPPED)


class RunStatus(str, Enum):
    """Workflow run status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ExtractorType(str, Enum):
    """Extraction rule languages."""

    XPATH = "XPath"
    REGEX = "Regex"
    JSONPATH = "JSONPath"
    HEADER = "Header"


class ExtractorSource(str, Enum):
    """Part of the response an extractor reads."""

    BODY = "body"
    HEADER = "header"


class ConditionOperator(str, Enum):
    """Comparison operators for condition steps and while loops."""

    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    EXISTS = "exists"
    NOT_EXISTS = "notExists"


class LoopType(str, Enum):
    """Iteration source of a loop step."""

    COUNT = "count"
    LIST = "list"
    WHILE = "while"
