"""Shared pytest fixtures for the workflow engine test suite.

Provides:
- FakeTransport: scripted in-memory HTTP transport
- WorkflowEngine wired to the fake transport and a fresh execution log
- FastAPI test client (httpx.AsyncClient over ASGITransport)
"""

import os
from typing import AsyncGenerator, Callable, Union

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Override settings BEFORE any app imports
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")

from core.exceptions import TransportError  # noqa: E402
from integrations.http_transport import HttpResponse  # noqa: E402
from workflow.engine import WorkflowEngine  # noqa: E402
from workflow.execution_log import ExecutionLog  # noqa: E402

Outcome = Union[HttpResponse, Exception, Callable]


class FakeTransport:
    """Answers requests from a URL → outcome table and records every call.

    An outcome is an HttpResponse, an exception to raise, or a callable
    ``(method, url, headers, body) -> HttpResponse``. Unknown URLs get 404.
    """

    def __init__(self, routes: dict[str, Outcome] = None):
        self.routes: dict[str, Outcome] = dict(routes or {})
        self.requests: list[dict] = []

    def add(self, url: str, outcome: Outcome) -> None:
        self.routes[url] = outcome

    async def send(self, method, url, headers, body) -> HttpResponse:
        self.requests.append({"method": method, "url": url, "headers": headers, "body": body})
        outcome = self.routes.get(url)
        if outcome is None:
            return HttpResponse(status_code=404, body="not found")
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(method, url, headers, body)
        return outcome


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def failing_transport() -> FakeTransport:
    """Every request fails at the transport level."""
    transport = FakeTransport()

    async def send(method, url, headers, body):
        transport.requests.append({"method": method, "url": url, "headers": headers, "body": body})
        raise TransportError("Connection failed: refused")

    transport.send = send
    return transport


@pytest.fixture
def execution_log() -> ExecutionLog:
    return ExecutionLog()


@pytest.fixture
def engine(fake_transport, execution_log) -> WorkflowEngine:
    return WorkflowEngine(transport=fake_transport, execution_log=execution_log)


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def app(engine):
    """FastAPI app whose routes use the test engine."""
    from app.dependencies import get_engine
    from app.main import create_app

    test_app = create_app()
    test_app.dependency_overrides[get_engine] = lambda: engine
    yield test_app
    test_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac
