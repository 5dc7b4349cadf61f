"""API v1 aggregated router.

All v1 endpoints are registered here and mounted under /api/v1 in main.py.
"""

from fastapi import APIRouter

from api.routes import health, runs, templates, workflows

api_v1_router = APIRouter()

# Health
api_v1_router.include_router(
    health.router,
    tags=["Health"],
)

# Workflow documents
api_v1_router.include_router(
    workflows.router,
    prefix="/workflows",
    tags=["Workflows"],
)

# Template preview
api_v1_router.include_router(
    templates.router,
    prefix="/templates",
    tags=["Templates"],
)

# Runs
api_v1_router.include_router(
    runs.router,
    prefix="/runs",
    tags=["Runs"],
)
