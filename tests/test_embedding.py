import asyncio
import json

import httpx
import numpy as np
import pytest
from fakes import make_bottle

from bottle_recs.config import ProviderSettings
from bottle_recs.embedding import (
    EmbeddingCache,
    EmbeddingResolver,
    build_bottle_text,
    cache_key,
)
from bottle_recs.errors import ProviderError


def _settings(**overrides) -> ProviderSettings:
    base = {"api_key": "sk-test", "base_url": "https://embed.example.com/v1", "cache_size": 16}
    base.update(overrides)
    return ProviderSettings(**base)


def _run_with_handler(handler, coro_fn, settings=None):
    async def _inner():
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(transport=transport) as client:
            resolver = EmbeddingResolver(settings or _settings(), http_client=client)
            return await coro_fn(resolver), resolver

    return asyncio.run(_inner())


def _ok_handler(requests_seen):
    def handler(request: httpx.Request) -> httpx.Response:
        requests_seen.append(request)
        body = json.loads(request.content)
        # vector depends on text length so different bottles differ
        return httpx.Response(200, json={"data": [{"embedding": [1.0, float(len(body["input"]))]}]})

    return handler


def test_build_bottle_text_formats_known_fields():
    b = make_bottle(1, "Four Roses Single Barrel", spirit_type="Bourbon", proof=100.0, avg_msrp=44.99)
    assert build_bottle_text(b) == "Four Roses Single Barrel Bourbon 100proof $44.99"


def test_build_bottle_text_skips_unknown_numbers():
    b = make_bottle(158, "Weller Antique 107", spirit_type="Bourbon", proof=None, avg_msrp=56.35)
    assert build_bottle_text(b) == "Weller Antique 107 Bourbon $56.35"


def test_resolver_posts_model_and_text():
    seen = []
    bottle = make_bottle(7, "Eagle Rare", proof=90, avg_msrp=40)

    vec, resolver = _run_with_handler(_ok_handler(seen), lambda r: r.embed(bottle))

    assert isinstance(vec, np.ndarray)
    assert vec.shape == (2,)
    assert len(seen) == 1
    req = seen[0]
    assert str(req.url) == "https://embed.example.com/v1/embeddings"
    assert req.headers["Authorization"] == "Bearer sk-test"
    body = json.loads(req.content)
    assert body["model"] == "text-embedding-ada-002"
    assert body["input"] == "Eagle Rare Bourbon 90proof $40"
    assert body["encoding_format"] == "float"


def test_resolver_caches_by_id_and_content():
    seen = []
    bottle = make_bottle(7, "Eagle Rare", proof=90, avg_msrp=40)
    repriced = bottle.model_copy(update={"avg_msrp": 45})

    async def calls(resolver):
        await resolver.embed(bottle)
        await resolver.embed(bottle)
        await resolver.embed(repriced)

    _, resolver = _run_with_handler(_ok_handler(seen), calls)

    # identical bottle served from cache, changed content re-embedded
    assert len(seen) == 2
    stats = resolver.cache_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 2
    assert stats["provider_calls"] == 2


def test_zero_cache_size_disables_memoisation():
    seen = []
    bottle = make_bottle(7)

    async def calls(resolver):
        await resolver.embed(bottle)
        await resolver.embed(bottle)

    _run_with_handler(_ok_handler(seen), calls, settings=_settings(cache_size=0))
    assert len(seen) == 2


def test_rate_limit_raises_provider_error():
    def handler(request):
        return httpx.Response(429, json={"error": "slow down"})

    with pytest.raises(ProviderError) as exc:
        _run_with_handler(handler, lambda r: r.embed(make_bottle(1)))
    assert exc.value.status_code == 429


def test_server_error_raises_provider_error():
    def handler(request):
        return httpx.Response(503, text="unavailable")

    with pytest.raises(ProviderError):
        _run_with_handler(handler, lambda r: r.embed(make_bottle(1)))


@pytest.mark.parametrize(
    "payload",
    [
        {"data": []},
        {"data": [{"embedding": []}]},
        {"data": [{"embedding": ["a", "b"]}]},
        {"unexpected": True},
        ["not", "a", "dict"],
    ],
)
def test_malformed_payload_raises_provider_error(payload):
    def handler(request):
        return httpx.Response(200, json=payload)

    with pytest.raises(ProviderError):
        _run_with_handler(handler, lambda r: r.embed(make_bottle(1)))


def test_non_json_body_raises_provider_error():
    def handler(request):
        return httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(ProviderError):
        _run_with_handler(handler, lambda r: r.embed(make_bottle(1)))


def test_transport_failure_raises_provider_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProviderError):
        _run_with_handler(handler, lambda r: r.embed(make_bottle(1)))


def test_missing_api_key_fails_without_calling_out():
    seen = []
    with pytest.raises(ProviderError):
        _run_with_handler(_ok_handler(seen), lambda r: r.embed(make_bottle(1)), settings=_settings(api_key=None))
    assert seen == []


def test_failures_are_not_cached():
    attempts = {"n": 0}

    def handler(request):
        attempts["n"] += 1
        if attempts["n"] == 1:
            return httpx.Response(500)
        return httpx.Response(200, json={"data": [{"embedding": [0.5, 0.5]}]})

    bottle = make_bottle(3)

    async def calls(resolver):
        with pytest.raises(ProviderError):
            await resolver.embed(bottle)
        return await resolver.embed(bottle)

    vec, _ = _run_with_handler(handler, calls)
    assert attempts["n"] == 2
    assert vec.tolist() == [0.5, 0.5]


def test_lru_cache_evicts_least_recently_used():
    cache = EmbeddingCache(max_size=2)
    a, b, c = (cache_key(make_bottle(i), f"text {i}") for i in (1, 2, 3))
    cache.put(a, np.array([1.0]))
    cache.put(b, np.array([2.0]))
    assert cache.get(a) is not None  # a is now most recent
    cache.put(c, np.array([3.0]))

    assert a in cache
    assert b not in cache
    assert c in cache
    assert len(cache) == 2


def test_cache_key_changes_with_text():
    b = make_bottle(9)
    assert cache_key(b, "one") != cache_key(b, "two")
    assert cache_key(b, "one") == cache_key(b, "one")


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("EMBEDDING_MODEL", "text-embedding-3-small")
    monkeypatch.setenv("EMBEDDING_CACHE_SIZE", "8")
    s = ProviderSettings.from_env()
    assert s.api_key == "sk-env"
    assert s.model == "text-embedding-3-small"
    assert s.cache_size == 8


def test_provider_calls_are_not_retried():
    attempts = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(500, json={"error": {"message": "boom"}})

    with pytest.raises(ProviderError) as exc:
        _run_with_handler(handler, lambda r: r.embed(make_bottle(1)))
    assert exc.value.status_code == 500
    assert len(attempts) == 1


def test_borrowed_http_client_left_open_after_close():
    async def _inner():
        transport = httpx.MockTransport(_ok_handler([]))
        async with httpx.AsyncClient(transport=transport) as client:
            resolver = EmbeddingResolver(_settings(), http_client=client)
            await resolver.embed(make_bottle(1))
            await resolver.aclose()
            return client.is_closed

    assert asyncio.run(_inner()) is False
