"""Tests for the OpenAI-compatible embedding client and profile checks."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from openai import OpenAIError

from lexivault.semantic.embedder import (
    GEMINI_BASE_URL,
    EmbeddingError,
    EmbeddingResult,
    OpenAIEmbeddingClient,
    SemanticConfigError,
    embed_one,
    require_usable,
)
from lexivault.store.profiles import SemanticProfile


def _profile(**overrides: object) -> SemanticProfile:
    values: dict[str, object] = {"model": "text-embedding-3-small", "api_key": "sk-test"}
    values.update(overrides)
    return SemanticProfile(**values)


def _response(vectors_by_index: dict[int, list[float]], tokens: int = 7) -> SimpleNamespace:
    data = [SimpleNamespace(index=i, embedding=v) for i, v in vectors_by_index.items()]
    return SimpleNamespace(data=data, usage=SimpleNamespace(total_tokens=tokens))


class TestRequireUsable:
    def test_usable_profile_returned(self) -> None:
        profile = _profile()
        assert require_usable(profile) is profile

    def test_none(self) -> None:
        with pytest.raises(SemanticConfigError, match="No embedding profile"):
            require_usable(None)

    def test_disabled(self) -> None:
        with pytest.raises(SemanticConfigError, match="disabled"):
            require_usable(_profile(enabled=False))

    def test_blank_model(self) -> None:
        with pytest.raises(SemanticConfigError, match="No embedding model"):
            require_usable(_profile(model="  "))

    def test_missing_key_names_env_var(self) -> None:
        with pytest.raises(SemanticConfigError, match="LEXIVAULT_GEMINI_API_KEY"):
            require_usable(_profile(provider="gemini", api_key=""))


class TestOpenAIEmbeddingClient:
    @patch("lexivault.semantic.embedder.OpenAI")
    def test_embed_returns_vectors_in_input_order(self, mock_openai: MagicMock) -> None:
        sdk = mock_openai.return_value
        # Provider answers out of order; items carry their input index
        sdk.embeddings.create.return_value = _response({1: [0.0, 1.0], 0: [1.0, 0.0]})

        result = OpenAIEmbeddingClient().embed(["first", "second"], _profile())

        assert result.vectors == [[1.0, 0.0], [0.0, 1.0]]
        assert result.model == "text-embedding-3-small"
        assert result.tokens_used == 7
        kwargs = sdk.embeddings.create.call_args.kwargs
        assert kwargs["input"] == ["first", "second"]
        assert kwargs["encoding_format"] == "float"
        assert "dimensions" not in kwargs

    @patch("lexivault.semantic.embedder.OpenAI")
    def test_request_dimensions_forwarded(self, mock_openai: MagicMock) -> None:
        sdk = mock_openai.return_value
        sdk.embeddings.create.return_value = _response({0: [1.0]})

        OpenAIEmbeddingClient().embed(["x"], _profile(request_dimensions=256))

        assert sdk.embeddings.create.call_args.kwargs["dimensions"] == 256

    @patch("lexivault.semantic.embedder.OpenAI")
    def test_gemini_uses_compatible_endpoint(self, mock_openai: MagicMock) -> None:
        mock_openai.return_value.embeddings.create.return_value = _response({0: [1.0]})

        profile = _profile(provider="gemini", model="gemini-embedding-001")
        OpenAIEmbeddingClient().embed(["x"], profile)

        mock_openai.assert_called_once_with(api_key="sk-test", base_url=GEMINI_BASE_URL)

    @patch("lexivault.semantic.embedder.OpenAI")
    def test_custom_endpoint(self, mock_openai: MagicMock) -> None:
        mock_openai.return_value.embeddings.create.return_value = _response({0: [1.0]})

        OpenAIEmbeddingClient().embed(["x"], _profile(endpoint="http://localhost:8080/v1"))

        mock_openai.assert_called_once_with(api_key="sk-test", base_url="http://localhost:8080/v1")

    @patch("lexivault.semantic.embedder.OpenAI")
    def test_sdk_client_cached(self, mock_openai: MagicMock) -> None:
        mock_openai.return_value.embeddings.create.return_value = _response({0: [1.0]})
        client = OpenAIEmbeddingClient()

        client.embed(["x"], _profile())
        client.embed(["y"], _profile())

        assert mock_openai.call_count == 1

    @patch("lexivault.semantic.embedder.OpenAI")
    def test_provider_error_wrapped(self, mock_openai: MagicMock) -> None:
        mock_openai.return_value.embeddings.create.side_effect = OpenAIError("quota exceeded")

        with pytest.raises(EmbeddingError, match="quota exceeded") as exc_info:
            OpenAIEmbeddingClient().embed(["x"], _profile())

        assert exc_info.value.provider == "openai"
        assert isinstance(exc_info.value.original, OpenAIError)

    @patch("lexivault.semantic.embedder.OpenAI")
    def test_count_mismatch_is_error(self, mock_openai: MagicMock) -> None:
        mock_openai.return_value.embeddings.create.return_value = _response({0: [1.0]})

        with pytest.raises(EmbeddingError, match="Expected 2"):
            OpenAIEmbeddingClient().embed(["x", "y"], _profile())

    @patch("lexivault.semantic.embedder.OpenAI")
    def test_empty_input_skips_request(self, mock_openai: MagicMock) -> None:
        result = OpenAIEmbeddingClient().embed([], _profile())
        assert result.vectors == []
        mock_openai.assert_not_called()

    def test_unusable_profile_rejected(self) -> None:
        with pytest.raises(SemanticConfigError):
            OpenAIEmbeddingClient().embed(["x"], _profile(api_key=""))


class TestEmbedOne:
    def test_returns_single_vector(self) -> None:
        client = MagicMock()
        client.embed.return_value = EmbeddingResult(vectors=[[0.1, 0.2]], model="m")
        assert embed_one(client, "hello", _profile()) == [0.1, 0.2]
        client.embed.assert_called_once()

    def test_wrong_count_is_error(self) -> None:
        client = MagicMock()
        client.embed.return_value = EmbeddingResult(vectors=[], model="m")
        with pytest.raises(EmbeddingError):
            embed_one(client, "hello", _profile())
