"""Profile store — the active semantic configuration for one vocabulary database.

The profile is persisted as the single ``profile_config`` document, so it
travels with the database. API keys are never written to disk; they are
resolved from :class:`~lexivault.config.Settings` on every read.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

from lexivault.config import DEFAULT_CANONICAL_WIDTH
from lexivault.store.models import PROFILE_CONFIG_TYPE, Document, utc_now

if TYPE_CHECKING:
    from lexivault.config import Settings
    from lexivault.store.documents import DocumentStore

logger = logging.getLogger(__name__)

PROFILE_CONFIG_ID = "profile_config"


class SemanticProfile(BaseModel):
    """Everything the batch job and the query service need to embed text."""

    name: str = "default"
    enabled: bool = True
    provider: Literal["openai", "gemini"] = "openai"
    model: str = "text-embedding-3-small"
    endpoint: str = ""
    api_key: str = Field(default="", exclude=True, repr=False)
    canonical_width: int = Field(default=DEFAULT_CANONICAL_WIDTH, gt=0)
    request_dimensions: int | None = None
    batch_size: int = Field(default=10, gt=0)
    similarity_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    result_limit: int = Field(default=50, gt=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> SemanticProfile:
        sem = settings.semantic
        return cls(
            name=settings.storage.profile,
            enabled=sem.enabled,
            provider=sem.provider,
            model=sem.model,
            endpoint=sem.endpoint,
            api_key=settings.embedding_api_key,
            canonical_width=sem.canonical_width,
            request_dimensions=sem.request_dimensions,
            batch_size=sem.batch_size,
            similarity_threshold=sem.similarity_threshold,
            result_limit=sem.result_limit,
        )


class ProfileStore:
    """Reads and writes the persisted :class:`SemanticProfile`."""

    def __init__(self, documents: DocumentStore, settings: Settings) -> None:
        self._documents = documents
        self._settings = settings

    def get_active(self) -> SemanticProfile | None:
        """Stored profile (or settings defaults) with the API key filled in.

        Returns None when no embedding model is configured at all.
        """
        doc = self._documents.get_by_id(PROFILE_CONFIG_ID)
        if doc is None:
            profile = SemanticProfile.from_settings(self._settings)
        else:
            profile = SemanticProfile.model_validate(doc.data)
        key = self._api_key_for(profile.provider)
        profile = profile.model_copy(update={"api_key": key})
        if not profile.model.strip():
            return None
        return profile

    def save(self, profile: SemanticProfile) -> None:
        existing = self._documents.get_by_id(PROFILE_CONFIG_ID)
        now = utc_now()
        self._documents.put(
            Document(
                id=PROFILE_CONFIG_ID,
                type=PROFILE_CONFIG_TYPE,
                data=profile.model_dump(),
                created_at=existing.created_at if existing is not None else now,
                updated_at=now,
            )
        )
        logger.info("Saved semantic profile '%s' (model %s)", profile.name, profile.model)

    def _api_key_for(self, provider: str) -> str:
        keys = {
            "openai": self._settings.openai_api_key,
            "gemini": self._settings.gemini_api_key,
        }
        return keys.get(provider, "")
