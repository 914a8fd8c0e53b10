# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import json
import pytest
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from pwa_core.errors import NetworkError
from pwa_core.offline.config import WorkerConfig
from pwa_core.offline.http import Request, Response
from pwa_core.offline.local_database import FormStore


FIXED_NOW = datetime(2026, 3, 14, 9, 26, 53, 589000, tzinfo=timezone.utc)


# =============================================================================
# FAKE NETWORK
# =============================================================================

class FakeFetcher:
    """
    In-memory transport.

    GET routes are keyed by absolute URL; POST replies are served from a queue
    in call order. Unknown GETs answer 404, `offline = True` fails everything.
    """

    def __init__(self):
        self.routes: Dict[str, Union[Response, Exception]] = {}
        self.post_replies: List[Union[Response, Exception]] = []
        self.calls: List[Request] = []
        self.posts: List[tuple] = []
        self.offline = False

    def respond(self, url: str, body="", status: int = 200, headers: Optional[dict] = None):
        self.routes[url] = Response(body, status=status, headers=headers or {}, url=url)

    def fail(self, url: str):
        self.routes[url] = NetworkError("Failed to fetch", url=url)

    def queue_post(self, status: int = 200, payload=None, body: Optional[str] = None):
        if body is None:
            body = json.dumps(payload if payload is not None else {})
        self.post_replies.append(Response(body, status=status, headers={"Content-Type": "application/json"}))

    def queue_post_error(self, error: Exception = None):
        self.post_replies.append(error or NetworkError("Failed to fetch"))

    def fetch(self, request: Request, body: Optional[bytes] = None) -> Response:
        self.calls.append(request)
        if self.offline:
            raise NetworkError("Failed to fetch", url=request.url)
        route = self.routes.get(request.url)
        if route is None:
            return Response("Not Found", status=404, url=request.url)
        if isinstance(route, Exception):
            raise route
        return route.clone()

    def post_json(self, url: str, payload: dict) -> Response:
        self.posts.append((url, payload))
        if self.offline:
            raise NetworkError("Failed to fetch", url=url)
        reply = self.post_replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def urls(self) -> List[str]:
        return [request.url for request in self.calls]


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def tmp_config(tmp_path):
    """Worker config rooted in a temporary data directory"""
    return WorkerConfig(
        data_dir=str(tmp_path / "data"),
        scope_url="http://localhost:8000/",
    )


@pytest.fixture
def fake_fetcher():
    """Scriptable network transport"""
    return FakeFetcher()


@pytest.fixture
def online_fetcher(fake_fetcher, tmp_config):
    """Transport that serves every core asset"""
    for url in tmp_config.core_asset_urls:
        fake_fetcher.respond(url, f"<asset {url}>", headers={"Content-Type": "text/html"})
    return fake_fetcher


@pytest.fixture
def form_store(tmp_config):
    """Opened local form store"""
    store = FormStore.from_config(tmp_config).open()
    yield store
    store.close()


@pytest.fixture
def make_record(form_store):
    """Factory that queues a pending form"""
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        data = {
            "cliente": f"Cliente {counter['n']}",
            "cidade": "Campinas",
            "equipamento": "Balança rodoviária",
            "tecnico": "T-07",
            "servico": "Calibração",
        }
        data.update(fields)
        return form_store.add(data, unique_key=f"chave-{counter['n']:04d}")

    return _make


@pytest.fixture
def fixed_clock():
    """Clock that always returns FIXED_NOW"""
    return lambda: FIXED_NOW
