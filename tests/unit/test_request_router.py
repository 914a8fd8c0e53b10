# =============================================================================
# tests/unit/test_request_router.py
# Unit Tests for RequestRouter
# =============================================================================

import pytest
from unittest.mock import patch

from pwa_core.errors import NetworkError
from pwa_core.offline.cache_manager import CacheStorage
from pwa_core.offline.http import Request, Response
from pwa_core.offline.request_router import OriginClass, RequestRouter


API_URL = "https://vps.pesoexato.com/servico_get"
CDN_URL = "https://cdn.jsdelivr.net/npm/lib.js"
PAGE_URL = "http://localhost:8000/index.html"


@pytest.fixture
def storage(tmp_config):
    return CacheStorage(tmp_config.cache_dir)


@pytest.fixture
def router(tmp_config, storage, fake_fetcher):
    router = RequestRouter(tmp_config, storage, fake_fetcher)
    yield router
    router.flush_cache_writes()


class TestClassification:
    """Origin classes"""

    @pytest.mark.parametrize("url, expected", [
        (API_URL, OriginClass.API),
        ("https://cdnjs.cloudflare.com/ajax/libs/x.js", OriginClass.CDN),
        (CDN_URL, OriginClass.CDN),
        ("https://cdn.tailwindcss.com/", OriginClass.CDN),
        (PAGE_URL, OriginClass.SAME_ORIGIN),
        ("http://localhost:9999/other", OriginClass.SAME_ORIGIN),
        ("https://example.org/", OriginClass.UNHANDLED),
    ])
    def test_classify(self, router, url, expected):
        assert router.classify(Request(url)) is expected

    def test_backend_wins_over_cdn_pattern(self, tmp_config, storage, fake_fetcher):
        config = tmp_config.with_overrides(backend_host="api.cdnjs.example")
        router = RequestRouter(config, storage, fake_fetcher)

        assert router.classify(Request("https://api.cdnjs.example/x")) is OriginClass.API

    def test_non_get_is_not_handled(self, router, fake_fetcher):
        assert router.handle(Request(PAGE_URL, method="POST")) is None
        assert fake_fetcher.calls == []

    def test_unknown_host_is_not_handled(self, router, fake_fetcher):
        assert router.handle(Request("https://example.org/")) is None
        assert fake_fetcher.calls == []


class TestApiRequests:
    """Network-only"""

    def test_goes_to_network_even_if_cached(self, router, storage, fake_fetcher):
        storage.open("v1").put(API_URL, Response("stale"))
        fake_fetcher.respond(API_URL, "fresh")

        with patch.object(storage, "match", wraps=storage.match) as match:
            response = router.handle(Request(API_URL))

        assert response.text() == "fresh"
        match.assert_not_called()

    def test_response_is_never_cached(self, router, storage, fake_fetcher):
        fake_fetcher.respond(API_URL, "fresh")

        router.handle(Request(API_URL))
        router.flush_cache_writes()

        assert storage.match(API_URL) is None

    def test_error_status_is_returned(self, router, fake_fetcher):
        fake_fetcher.respond(API_URL, "boom", status=500)

        assert router.handle(Request(API_URL)).status == 500

    def test_network_error_propagates(self, router, fake_fetcher):
        fake_fetcher.fail(API_URL)

        with pytest.raises(NetworkError):
            router.handle(Request(API_URL))


class TestCdnRequests:
    """Cache-first"""

    def test_cache_hit_skips_network(self, router, storage, fake_fetcher):
        storage.open("v1").put(CDN_URL, Response("cached lib"))

        response = router.handle(Request(CDN_URL))

        assert response.text() == "cached lib"
        assert fake_fetcher.calls == []

    def test_miss_fetches_without_caching(self, router, storage, fake_fetcher):
        fake_fetcher.respond(CDN_URL, "lib")

        assert router.handle(Request(CDN_URL)).text() == "lib"
        router.flush_cache_writes()

        assert storage.match(CDN_URL) is None
        router.handle(Request(CDN_URL))
        assert len(fake_fetcher.calls) == 2

    def test_miss_while_offline_raises(self, router, fake_fetcher):
        fake_fetcher.offline = True

        with pytest.raises(NetworkError):
            router.handle(Request(CDN_URL))


class TestSameOriginRequests:
    """Network-first with offline fallback"""

    def test_success_refreshes_current_bucket(self, router, storage, fake_fetcher, tmp_config):
        fake_fetcher.respond(PAGE_URL, "v2 page")

        response = router.handle(Request(PAGE_URL))
        router.flush_cache_writes()

        assert response.text() == "v2 page"
        cached = storage.open(tmp_config.cache_version).match(PAGE_URL)
        assert cached.text() == "v2 page"

    def test_cached_copy_is_overwritten(self, router, storage, fake_fetcher, tmp_config):
        storage.open(tmp_config.cache_version).put(PAGE_URL, Response("old"))
        fake_fetcher.respond(PAGE_URL, "new")

        router.handle(Request(PAGE_URL)).read()
        router.flush_cache_writes()

        assert storage.match(PAGE_URL).text() == "new"

    def test_offline_serves_cached_copy(self, router, storage, fake_fetcher, tmp_config):
        storage.open(tmp_config.cache_version).put(PAGE_URL, Response("cached page"))
        fake_fetcher.offline = True

        assert router.handle(Request(PAGE_URL)).text() == "cached page"

    def test_offline_navigation_gets_root_document(self, router, storage, fake_fetcher, tmp_config):
        storage.open(tmp_config.cache_version).put(tmp_config.offline_document_url, Response("<app shell>"))
        fake_fetcher.offline = True

        response = router.handle(Request("http://localhost:8000/clientes/42", mode="navigate"))

        assert response.text() == "<app shell>"

    def test_offline_navigation_without_root_gets_offline_page(self, router, fake_fetcher):
        fake_fetcher.offline = True

        response = router.handle(Request("http://localhost:8000/clientes/42", mode="navigate"))

        assert response.status == 200
        assert "offline" in response.text()

    def test_offline_subresource_gets_503(self, router, storage, fake_fetcher, tmp_config):
        storage.open(tmp_config.cache_version).put(tmp_config.offline_document_url, Response("<app shell>"))
        fake_fetcher.offline = True

        response = router.handle(Request("http://localhost:8000/img/logo.png"))

        assert response.status == 503
        assert response.text() == "Offline"
        assert response.headers["Content-Type"].startswith("text/plain")

    def test_fallback_never_raises(self, router, fake_fetcher):
        fake_fetcher.offline = True

        for mode in ("cors", "navigate"):
            assert router.handle(Request("http://localhost:8000/x", mode=mode)) is not None

    def test_failed_cache_write_does_not_affect_response(self, router, storage, fake_fetcher):
        fake_fetcher.respond(PAGE_URL, "page")

        with patch.object(storage, "open", side_effect=OSError("disk full")):
            response = router.handle(Request(PAGE_URL))
            router.flush_cache_writes()

        assert response.text() == "page"
