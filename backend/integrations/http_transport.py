"""HTTP transport used by request steps.

The engine only depends on the ``send(method, url, headers, body)``
contract below; any object providing it can be injected (tests use an
in-memory fake). ``HttpxTransport`` is the shipped implementation.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import httpx
import structlog

from app.config import get_settings
from core.exceptions import TransportError

logger = structlog.get_logger(__name__)


@dataclass
class HttpResponse:
    """Raw response recorded against a request step."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    elapsed_ms: float = 0.0

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.strip().lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status_code": self.status_code,
            "headers": dict(self.headers),
            "body": self.body,
            "elapsed_ms": self.elapsed_ms,
        }


class HttpTransport(Protocol):
    async def send(
        self, method: str, url: str, headers: Dict[str, str], body: str
    ) -> HttpResponse:
        """Issue the request or raise TransportError."""
        ...


class HttpxTransport:
    """Send materialized requests with httpx.

    Config (from settings unless overridden):
        timeout: Request timeout in seconds
        follow_redirects: Whether to follow redirects
        verify: TLS certificate verification

    A pre-built ``client`` can be supplied (connection reuse, mock
    transports); it is not closed by this class.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        follow_redirects: Optional[bool] = None,
        verify: Optional[bool] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self._timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT
        self._follow_redirects = (
            follow_redirects if follow_redirects is not None else settings.HTTP_FOLLOW_REDIRECTS
        )
        self._verify = verify if verify is not None else settings.HTTP_VERIFY_TLS
        self._client = client

    async def send(
        self, method: str, url: str, headers: Dict[str, str], body: str
    ) -> HttpResponse:
        kwargs: Dict[str, Any] = {
            "method": method,
            "url": url,
            "headers": headers,
        }
        if body:
            kwargs["content"] = body.encode("utf-8")

        started = time.monotonic()
        try:
            if self._client is not None:
                response = await self._client.request(**kwargs)
            else:
                async with httpx.AsyncClient(
                    timeout=self._timeout,
                    follow_redirects=self._follow_redirects,
                    verify=self._verify,
                ) as client:
                    response = await client.request(**kwargs)
            elapsed_ms = (time.monotonic() - started) * 1000

        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out after {self._timeout}s") from e
        except httpx.ConnectError as e:
            raise TransportError(f"Connection failed: {str(e)}") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(f"HTTP request failed: {str(e)}") from e

        logger.debug(
            "Transport response",
            method=method,
            url=url,
            status_code=response.status_code,
        )
        return HttpResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.text,
            elapsed_ms=round(elapsed_ms, 2),
        )
