# =============================================================================
# pwa_core/offline/http.py
# Request / Response primitives and the network fetcher
# =============================================================================
"""
Minimal fetch primitives shared by the cache, the router and the reconciler.

A Response body may be consumed exactly once. Code paths that both return a
response and persist it must call clone() first and work on the copy.
"""

from __future__ import annotations
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urldefrag, urlparse
import logging

import requests

from pwa_core.errors import BodyAlreadyUsedError, NetworkError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Request:
    """An outgoing request as seen by the worker."""
    url: str
    method: str = "GET"
    mode: str = "cors"  # "navigate" for top-level page loads
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def hostname(self) -> str:
        return urlparse(self.url).hostname or ""

    @property
    def is_navigation(self) -> bool:
        return self.mode == "navigate"

    @property
    def cache_key(self) -> str:
        """URL used as cache key (fragment dropped)."""
        return urldefrag(self.url)[0]


class Response:
    """HTTP response with a single-use body."""

    def __init__(
        self,
        body: bytes = b"",
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
        url: str = "",
    ):
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.status = status
        self.headers = dict(headers or {})
        self.url = url
        self._body = body
        self._body_used = False

    def __repr__(self) -> str:
        return f"<Response [{self.status}] {self.url}>"

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def body_used(self) -> bool:
        return self._body_used

    def read(self) -> bytes:
        """Consume the body."""
        if self._body_used:
            raise BodyAlreadyUsedError("Response body already consumed", url=self.url)
        self._body_used = True
        return self._body

    def text(self) -> str:
        return self.read().decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.read())

    def clone(self) -> Response:
        """Independent copy whose body can be consumed separately."""
        if self._body_used:
            raise BodyAlreadyUsedError("Cannot clone a consumed response", url=self.url)
        return Response(self._body, status=self.status, headers=self.headers, url=self.url)


def offline_response() -> Response:
    """Synthetic reply for same-origin requests with nothing cached."""
    return Response(
        "Offline",
        status=503,
        headers={"Content-Type": "text/plain; charset=utf-8"},
    )


def offline_page() -> Response:
    """Static page served to navigations when even the root document is missing."""
    html = """
        <html>
        <body style="font-family:sans-serif;padding:30px;text-align:center;">
            <h2>Você está offline</h2>
            <p>Continue usando o app normalmente. A sincronização será feita quando a conexão voltar.</p>
        </body>
        </html>
    """
    return Response(html, status=200, headers={"Content-Type": "text/html; charset=utf-8"})


class HttpFetcher:
    """
    Network transport backed by a requests.Session.

    Any HTTP status is returned as a Response; only transport failures
    (DNS, refused connection, timeout) raise NetworkError.
    """

    def __init__(self, timeout: float = 30, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(
        self,
        request: Request,
        body: Optional[bytes] = None,
    ) -> Response:
        try:
            resp = self.session.request(
                method=request.method,
                url=request.url,
                headers=request.headers or None,
                data=body,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise NetworkError(
                f"Request failed: {e}",
                url=request.url,
                method=request.method,
            ) from e

        return Response(
            resp.content,
            status=resp.status_code,
            headers=dict(resp.headers),
            url=resp.url or request.url,
        )

    def post_json(self, url: str, payload: Dict[str, Any]) -> Response:
        """POST a JSON document."""
        request = Request(
            url=url,
            method="POST",
            headers={"Content-Type": "application/json"},
        )
        return self.fetch(request, body=json.dumps(payload).encode("utf-8"))

    def close(self) -> None:
        self.session.close()
