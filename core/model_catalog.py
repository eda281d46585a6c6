"""Model string parsing and cached provider model listings."""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass, field
from typing import Any

import httpx
from langchain.chat_models import init_chat_model

from core.cache import TTLCache

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "anthropic"
DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5-20250929",
    "openai": "gpt-4o",
}

PROVIDER_ENDPOINTS = {
    "anthropic": "https://api.anthropic.com/v1/models?limit=100",
    "openai": "https://api.openai.com/v1/models",
}

PROVIDER_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}


def parse_model_string(model: str) -> tuple[str, str]:
    """Split ``provider/model`` into its parts.

    ``"openai/gpt-4o"`` -> ``("openai", "gpt-4o")``; a bare name such as
    ``"claude-sonnet-4-5-20250929"`` defaults to the anthropic provider, and
    ``"openai/"`` to that provider's default model.
    """
    provider, sep, name = model.partition("/")
    if not sep:
        return DEFAULT_PROVIDER, model
    provider = provider.strip().lower()
    return provider, name or DEFAULT_MODELS.get(provider, name)


def create_chat_model(model: str, **model_kwargs: Any) -> Any:
    """Build a LangChain chat model from a ``provider/model`` string."""
    provider, name = parse_model_string(model)
    kwargs = dict(model_kwargs)
    kwargs.setdefault("model_provider", provider)
    return init_chat_model(name, **kwargs)


def fingerprint_api_key(api_key: str | None) -> str:
    if not api_key:
        return ""
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:16]


@dataclass
class AvailableModel:
    id: str
    name: str
    provider: str
    description: str | None = None
    created_at: str | None = None


@dataclass
class FetchModelsResult:
    models: list[AvailableModel] = field(default_factory=list)
    error: str | None = None


class ModelCatalog:
    """Lists models per provider, caching results in an injected TTLCache.

    Cache entries are fingerprinted with the API key that fetched them, so
    switching keys forces a refetch.
    """

    def __init__(
        self,
        cache: TTLCache,
        client: httpx.Client | None = None,
        api_keys: dict[str, str | None] | None = None,
        timeout: float = 10.0,
    ):
        self.cache = cache
        self._client = client or httpx.Client(timeout=timeout)
        self._api_keys = api_keys

    def _api_key(self, provider: str) -> str | None:
        if self._api_keys is not None:
            return self._api_keys.get(provider)
        env = PROVIDER_KEY_ENV.get(provider)
        return os.getenv(env) if env else None

    def available_providers(self) -> list[str]:
        return [provider for provider in PROVIDER_ENDPOINTS if self._api_key(provider)]

    def _headers(self, provider: str, api_key: str) -> dict[str, str]:
        if provider == "anthropic":
            return {"X-Api-Key": api_key, "anthropic-version": "2023-06-01"}
        return {"Authorization": f"Bearer {api_key}"}

    def _parse(self, provider: str, payload: dict[str, Any]) -> list[AvailableModel]:
        models = []
        for item in payload.get("data", []):
            model_id = item.get("id")
            if not model_id:
                continue
            if provider == "openai" and not model_id.startswith(("gpt-", "o1", "o3", "o4")):
                continue
            created = item.get("created_at") or item.get("created")
            models.append(
                AvailableModel(
                    id=f"{provider}/{model_id}",
                    name=model_id,
                    provider=provider,
                    description=item.get("display_name"),
                    created_at=str(created) if created is not None else None,
                )
            )
        models.sort(key=lambda m: m.created_at or "", reverse=True)
        return models

    def fetch_models(self, provider: str) -> FetchModelsResult:
        if provider not in PROVIDER_ENDPOINTS:
            return FetchModelsResult(error=f"Unknown provider: {provider}")

        api_key = self._api_key(provider)
        if not api_key:
            return FetchModelsResult(error=f"No {provider} API key configured")

        fingerprint = fingerprint_api_key(api_key)
        cached = self.cache.get(provider, fingerprint)
        if cached is not None:
            return FetchModelsResult(models=cached)

        try:
            response = self._client.get(PROVIDER_ENDPOINTS[provider], headers=self._headers(provider, api_key))
            response.raise_for_status()
            models = self._parse(provider, response.json())
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 401:
                return FetchModelsResult(error=f"Invalid {provider} API key")
            logger.warning("Model listing for %s failed: HTTP %s", provider, e.response.status_code)
            return FetchModelsResult(error=f"{provider} API error: {e.response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Model listing for %s failed: %s", provider, e)
            return FetchModelsResult(error=f"Failed to fetch {provider} models: {e}")

        self.cache.set(provider, models, fingerprint)
        return FetchModelsResult(models=models)

    def fetch_all(self) -> FetchModelsResult:
        models: list[AvailableModel] = []
        errors: list[str] = []
        for provider in self.available_providers():
            result = self.fetch_models(provider)
            models.extend(result.models)
            if result.error:
                errors.append(result.error)
        return FetchModelsResult(models=models, error="; ".join(errors) or None)

    def clear(self, provider: str | None = None) -> None:
        self.cache.invalidate(provider)
