"""Chain-variable context for a step, built from earlier request steps.

Walks the request steps that precede the current step in document order
(descending into loop bodies) and, for every extractor, binds its
variable from the last response recorded for that step of the same
workflow, or from the extractor's default when there is no response or
extraction fails.
The first producer of a name wins.
"""

from dataclasses import dataclass, field
from typing import Iterator, Optional, Protocol, Sequence, Union

import structlog

from integrations.http_transport import HttpResponse
from workflow.extractors import ExtractionFailure, ExtractorEvaluator
from workflow.models import LoopStep, RequestStep

logger = structlog.get_logger(__name__)


class ResponseSource(Protocol):
    def get_response(self, workflow_id: str, step_id: str) -> Optional[HttpResponse]:
        ...


@dataclass
class BuiltContext:
    variables: dict[str, str] = field(default_factory=dict)
    provenance: dict[str, str] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


def _request_steps(step) -> Iterator[RequestStep]:
    if isinstance(step, RequestStep):
        yield step
    elif isinstance(step, LoopStep):
        for inner in step.loop_steps:
            yield from _request_steps(inner)


def prior_request_steps(
    steps: Sequence, current_path: Union[int, Sequence[int]]
) -> Iterator[RequestStep]:
    """Request steps strictly before ``current_path``, in document order."""
    if isinstance(current_path, int):
        current_path = (current_path,)
    if not current_path:
        return
    head, rest = current_path[0], tuple(current_path[1:])
    for step in steps[:head]:
        yield from _request_steps(step)
    if rest and head < len(steps) and isinstance(steps[head], LoopStep):
        yield from prior_request_steps(steps[head].loop_steps, rest)


class ContextBuilder:
    """Build the chain-variable map visible at a position in the step tree."""

    @staticmethod
    def build(
        all_steps: Sequence,
        current_path: Union[int, Sequence[int]],
        execution_log: ResponseSource,
        workflow_id: str,
    ) -> BuiltContext:
        context = BuiltContext()

        for step in prior_request_steps(all_steps, current_path):
            response = execution_log.get_response(workflow_id, step.id)

            for extractor in step.extractors:
                name = extractor.variable
                if name in context.variables:
                    continue

                if response is None:
                    if extractor.default_value is not None:
                        context.variables[name] = extractor.default_value
                        context.provenance[name] = f"default ({step.label} not run)"
                        logger.info(
                            "Context variable defaulted",
                            variable=name,
                            step=step.label,
                            reason="step not run",
                        )
                    continue

                result = ExtractorEvaluator.evaluate(extractor, response)
                if not isinstance(result, ExtractionFailure):
                    context.variables[name] = result
                    context.provenance[name] = f"extracted from {step.label}"
                    logger.info("Context variable extracted", variable=name, step=step.label)
                elif extractor.default_value is not None:
                    context.variables[name] = extractor.default_value
                    context.provenance[name] = f"default ({result.reason})"
                    context.warnings.append(
                        f"Using default value for '{name}' from step '{step.label}': {result.reason}"
                    )
                    logger.warning(
                        "Context variable defaulted",
                        variable=name,
                        step=step.label,
                        reason=result.reason,
                    )
                else:
                    context.warnings.append(
                        f"Extractor for '{name}' in step '{step.label}' produced no value: {result.reason}"
                    )
                    logger.warning(
                        "Context variable unbound",
                        variable=name,
                        step=step.label,
                        reason=result.reason,
                    )

        return context


def build_context(
    all_steps: Sequence,
    current_path: Union[int, Sequence[int]],
    execution_log: ResponseSource,
    workflow_id: str,
) -> dict[str, str]:
    """Name → value map of chain variables visible at ``current_path``."""
    return ContextBuilder.build(all_steps, current_path, execution_log, workflow_id).variables
