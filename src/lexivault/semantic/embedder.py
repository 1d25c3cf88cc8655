"""Embedding client — turns text into vectors via OpenAI-compatible APIs.

Supports OpenAI (text-embedding-3-small/large, ada-002) and Google Gemini
through the OpenAI-compatible endpoint Google provides, so a single SDK
covers both providers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from openai import OpenAI, OpenAIError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from lexivault.store.profiles import SemanticProfile

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


@dataclass(frozen=True, slots=True)
class EmbeddingResult:
    """Vectors for a batch of texts, in request order."""

    vectors: list[list[float]]
    model: str
    tokens_used: int = 0


class EmbeddingError(Exception):
    """Unified error for all embedding providers."""

    def __init__(self, message: str, provider: str, original: Exception | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.original = original


class SemanticConfigError(Exception):
    """Semantic search is not configured (no model, no API key, disabled)."""


class EmbeddingClient(Protocol):
    """Protocol for embedding providers.

    Implementations must return exactly one vector per input text, in input
    order, and raise :class:`EmbeddingError` on any provider failure.
    """

    def embed(self, texts: Sequence[str], profile: SemanticProfile) -> EmbeddingResult: ...


def require_usable(profile: SemanticProfile | None) -> SemanticProfile:
    """Return ``profile`` if it can be used to embed text, else raise."""
    if profile is None:
        raise SemanticConfigError("No embedding profile configured")
    if not profile.enabled:
        raise SemanticConfigError(f"Semantic search is disabled for profile '{profile.name}'")
    if not profile.model.strip():
        raise SemanticConfigError(f"No embedding model set for profile '{profile.name}'")
    if not profile.api_key:
        raise SemanticConfigError(
            f"{profile.provider.capitalize()} API key not set. "
            f"Set LEXIVAULT_{profile.provider.upper()}_API_KEY."
        )
    return profile


def embed_one(client: EmbeddingClient, text: str, profile: SemanticProfile) -> list[float]:
    """Embed a single string."""
    result = client.embed([text], profile)
    if len(result.vectors) != 1:
        raise EmbeddingError(
            f"Expected 1 embedding, got {len(result.vectors)}", provider=profile.provider
        )
    return result.vectors[0]


class OpenAIEmbeddingClient:
    """Embedding client backed by the ``openai`` SDK.

    SDK clients are cached per (provider, endpoint, key), so switching the
    active profile does not leak connections.
    """

    def __init__(self) -> None:
        self._clients: dict[tuple[str, str, str], OpenAI] = {}

    def _client_for(self, profile: SemanticProfile) -> OpenAI:
        base_url = profile.endpoint or (GEMINI_BASE_URL if profile.provider == "gemini" else "")
        key = (profile.provider, base_url, profile.api_key)
        client = self._clients.get(key)
        if client is None:
            if base_url:
                client = OpenAI(api_key=profile.api_key, base_url=base_url)
            else:
                client = OpenAI(api_key=profile.api_key)
            self._clients[key] = client
        return client

    def embed(self, texts: Sequence[str], profile: SemanticProfile) -> EmbeddingResult:
        if not texts:
            return EmbeddingResult(vectors=[], model=profile.model)
        require_usable(profile)

        kwargs: dict[str, Any] = {
            "model": profile.model,
            "input": list(texts),
            "encoding_format": "float",
        }
        if profile.request_dimensions:
            kwargs["dimensions"] = profile.request_dimensions

        try:
            response = self._client_for(profile).embeddings.create(**kwargs)
        except OpenAIError as e:
            raise EmbeddingError(str(e), provider=profile.provider, original=e) from e

        # The API tags each item with its input position; don't trust list order
        items = sorted(response.data, key=lambda item: item.index)
        if len(items) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings, got {len(items)}", provider=profile.provider
            )

        tokens = response.usage.total_tokens if response.usage else 0
        logger.debug(
            "Embedded %d texts with %s/%s (%d tokens)",
            len(texts),
            profile.provider,
            profile.model,
            tokens,
        )
        return EmbeddingResult(
            vectors=[list(item.embedding) for item in items],
            model=profile.model,
            tokens_used=tokens,
        )
