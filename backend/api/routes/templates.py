"""Template preview endpoint used by editors to show resolved values."""

from fastapi import APIRouter

from api.schemas.run import (
    ResolutionGapResponse,
    TemplatePreviewRequest,
    TemplatePreviewResponse,
)
from integrations.environment import EMPTY_ENVIRONMENT
from workflow.templating import TemplateResolver, TemplateScope
from workflow.variables import stringify

router = APIRouter(tags=["templates"])

_resolver = TemplateResolver()


@router.post("/preview", response_model=TemplatePreviewResponse)
async def preview_template(payload: TemplatePreviewRequest) -> TemplatePreviewResponse:
    """Resolve a text once and report the placeholders left unresolved."""
    scope = TemplateScope(
        environment=payload.environment.to_environment() if payload.environment else EMPTY_ENVIRONMENT,
        chain_variables={k: stringify(v) for k, v in payload.variables.items()},
    )
    result = _resolver.render(payload.text, scope)
    return TemplatePreviewResponse(
        text=result.text,
        complete=result.is_complete,
        gaps=[
            ResolutionGapResponse(placeholder=g.placeholder, name=g.name, namespace=g.namespace)
            for g in result.gaps
        ],
    )
