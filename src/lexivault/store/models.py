"""Data models for stored documents and vocabulary entries."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

WORD_TYPE = "word"
PROFILE_CONFIG_TYPE = "profile_config"

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")


def utc_now() -> str:
    """ISO-8601 UTC timestamp used for created_at / updated_at."""
    return datetime.now(UTC).isoformat()


class Word(BaseModel):
    """Payload of a ``word`` document."""

    word: str
    one_line_desc: str = ""
    details: str = ""
    tags: list[str] = Field(default_factory=list)
    tag_colors: dict[str, str] = Field(default_factory=dict)
    synonyms: list[str] = Field(default_factory=list)
    antonyms: list[str] = Field(default_factory=list)
    remark: str = ""

    def plain_details(self) -> str:
        """Details with HTML tags stripped and whitespace collapsed."""
        return _WS_RE.sub(" ", _TAG_RE.sub("", self.details)).strip()

    def embedding_text(self) -> str:
        """Text sent to the embedding model for this entry."""
        parts = [f"Word: {self.word}"]
        if self.one_line_desc.strip():
            parts.append(f"Definition: {self.one_line_desc.strip()}")
        details = self.plain_details()
        if details:
            parts.append(f"Explanation: {details}")
        if self.synonyms:
            parts.append(f"Synonyms: {', '.join(self.synonyms)}")
        return "\n ".join(parts)


class Document(BaseModel):
    """A row of the ``documents`` table."""

    id: str
    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)

    @property
    def is_word(self) -> bool:
        return self.type == WORD_TYPE

    def as_word(self) -> Word:
        """Validate the payload as a :class:`Word`."""
        if not self.is_word:
            raise ValueError(f"Document {self.id} is a {self.type!r}, not a word")
        return Word.model_validate(self.data)
