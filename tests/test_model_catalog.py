import httpx
import pytest

from core.cache import TTLCache
from core.model_catalog import ModelCatalog, fingerprint_api_key, parse_model_string


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.mark.parametrize(
    ("model", "expected"),
    [
        ("openai/gpt-4o", ("openai", "gpt-4o")),
        ("claude-sonnet-4-5-20250929", ("anthropic", "claude-sonnet-4-5-20250929")),
        ("OpenAI/", ("openai", "gpt-4o")),
        ("openrouter/meta/llama-3", ("openrouter", "meta/llama-3")),
    ],
)
def test_parse_model_string(model, expected):
    assert parse_model_string(model) == expected


def test_ttl_cache_expiry_and_fingerprint():
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=60, clock=clock)
    cache.set("openai", ["gpt-4o"], fingerprint="k1")

    assert cache.get("openai", "k1") == ["gpt-4o"]
    assert cache.get("openai", "k2") is None

    clock.now += 61
    assert cache.get("openai", "k1") is None
    assert len(cache) == 0


def test_ttl_cache_invalidate():
    cache = TTLCache()
    cache.set("a", 1)
    cache.set("b", 2)

    cache.invalidate("a")
    assert cache.get("a") is None
    assert cache.get("b") == 2

    cache.invalidate()
    assert len(cache) == 0


def _catalog(handler, api_keys, clock=None):
    requests = []

    def record(request):
        requests.append(request)
        return handler(request)

    client = httpx.Client(transport=httpx.MockTransport(record))
    return ModelCatalog(TTLCache(clock=clock or FakeClock()), client=client, api_keys=api_keys), requests


def test_openai_listing_filters_and_caches():
    def handler(request):
        assert request.headers["Authorization"] == "Bearer sk-test"
        return httpx.Response(
            200,
            json={"data": [{"id": "gpt-4o", "created": 2}, {"id": "whisper-1", "created": 3}, {"id": "o3-mini", "created": 1}]},
        )

    catalog, requests = _catalog(handler, {"openai": "sk-test"})

    first = catalog.fetch_models("openai")
    second = catalog.fetch_models("openai")

    assert first.error is None
    assert [m.id for m in first.models] == ["openai/gpt-4o", "openai/o3-mini"]
    assert second.models == first.models
    assert len(requests) == 1


def test_key_change_forces_refetch():
    keys = {"anthropic": "key-one"}

    def handler(request):
        return httpx.Response(200, json={"data": [{"id": "claude-x", "display_name": "Claude X"}]})

    catalog, requests = _catalog(handler, keys)
    catalog.fetch_models("anthropic")
    keys["anthropic"] = "key-two"
    result = catalog.fetch_models("anthropic")

    assert len(requests) == 2
    assert requests[1].headers["X-Api-Key"] == "key-two"
    assert result.models[0].description == "Claude X"


def test_errors_are_reported_not_raised():
    catalog, _ = _catalog(lambda request: httpx.Response(401), {"openai": "bad"})
    assert catalog.fetch_models("openai").error == "Invalid openai API key"

    catalog, _ = _catalog(lambda request: httpx.Response(503), {"openai": "k"})
    assert catalog.fetch_models("openai").error == "openai API error: 503"

    catalog, _ = _catalog(lambda request: httpx.Response(200), {})
    assert catalog.fetch_models("openai").error == "No openai API key configured"
    assert catalog.fetch_models("mistral").error == "Unknown provider: mistral"


def test_fetch_all_uses_configured_providers():
    def handler(request):
        return httpx.Response(200, json={"data": [{"id": "claude-y"}]})

    catalog, requests = _catalog(handler, {"anthropic": "k", "openai": None})

    result = catalog.fetch_all()

    assert catalog.available_providers() == ["anthropic"]
    assert [m.id for m in result.models] == ["anthropic/claude-y"]
    assert result.error is None
    assert len(requests) == 1


def test_fingerprint():
    assert fingerprint_api_key(None) == ""
    assert fingerprint_api_key("a") != fingerprint_api_key("b")
    assert len(fingerprint_api_key("a")) == 16
