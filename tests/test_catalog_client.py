import httpx
import pytest

from moviescout.core.errors import APIError, CatalogUnavailable, CatalogUnreachable
from moviescout.core.settings import Settings
from moviescout.services.catalog_client import CatalogClient


def _settings(**overrides) -> Settings:
    return Settings(environment="test", tmdb_api_key="test-key", tmdb_requests_per_second=1000.0, **overrides)


class _TransportSpy:
    def __init__(self, status_code: int = 200, payload: dict | None = None, error: Exception | None = None):
        self.status_code = status_code
        self.payload = payload if payload is not None else {"results": []}
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.payload)


@pytest.mark.asyncio
async def test_identical_endpoints_are_fetched_once() -> None:
    spy = _TransportSpy(payload={"results": [{"id": 603, "title": "Matrix"}]})
    client = CatalogClient(_settings(), transport=httpx.MockTransport(spy))

    first = await client.search_movies("Matrix")
    second = await client.search_movies("Matrix")
    await client.close()

    assert first == second
    assert len(spy.requests) == 1
    assert client.cache_size == 1


@pytest.mark.asyncio
async def test_different_endpoints_are_not_shared() -> None:
    spy = _TransportSpy()
    client = CatalogClient(_settings(), transport=httpx.MockTransport(spy))

    await client.search_movies("Matrix")
    await client.search_movies("Matrix", page=2)
    await client.close()

    assert len(spy.requests) == 2


@pytest.mark.asyncio
async def test_request_carries_key_language_and_params() -> None:
    spy = _TransportSpy()
    client = CatalogClient(_settings(tmdb_language="pt-BR"), transport=httpx.MockTransport(spy))

    await client.discover_movies({"with_crew": 12345, "sort_by": "popularity.desc"})
    await client.close()

    request = spy.requests[0]
    assert request.url.path == "/3/discover/movie"
    assert request.url.params["api_key"] == "test-key"
    assert request.url.params["language"] == "pt-BR"
    assert request.url.params["with_crew"] == "12345"
    assert request.url.params["include_adult"] == "false"


def test_endpoint_key_excludes_api_key_and_sorts_params() -> None:
    client = CatalogClient(_settings())

    key = client.endpoint_key("/search/movie", {"query": "Cidade de Deus", "page": 1})

    assert "test-key" not in key
    assert key == client.endpoint_key("/search/movie", {"page": 1, "query": "Cidade de Deus"})


@pytest.mark.asyncio
async def test_error_status_raises_catalog_unavailable_and_is_not_cached() -> None:
    spy = _TransportSpy(status_code=503, payload={"status_message": "down"})
    client = CatalogClient(_settings(), transport=httpx.MockTransport(spy))

    with pytest.raises(CatalogUnavailable) as exc:
        await client.fetch_movie(1)
    with pytest.raises(CatalogUnavailable):
        await client.fetch_movie(1)
    await client.close()

    assert exc.value.status == 503
    assert exc.value.details["retryable"] is True
    assert len(spy.requests) == 2


@pytest.mark.asyncio
async def test_network_failure_raises_catalog_unreachable() -> None:
    spy = _TransportSpy(error=httpx.ConnectError("connection refused"))
    client = CatalogClient(_settings(), transport=httpx.MockTransport(spy))

    with pytest.raises(CatalogUnreachable) as exc:
        await client.fetch_genres()
    await client.close()

    assert exc.value.code == "catalog_unreachable"
    assert exc.value.status_code == 503


@pytest.mark.asyncio
async def test_missing_api_key_is_a_config_error() -> None:
    spy = _TransportSpy()
    client = CatalogClient(Settings(environment="test", tmdb_api_key=None), transport=httpx.MockTransport(spy))

    with pytest.raises(APIError) as exc:
        await client.fetch_genres()
    await client.close()

    assert exc.value.code == "config_error"
    assert spy.requests == []


@pytest.mark.asyncio
async def test_body_that_is_not_json_raises_catalog_unavailable() -> None:
    client = CatalogClient(
        _settings(),
        transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"<html>gateway</html>")),
    )

    with pytest.raises(CatalogUnavailable) as exc:
        await client.fetch_movie(1)
    await client.close()

    assert exc.value.status == 200
    assert client.cache_size == 0
