"""Embedding service client — LiteLLM async embeddings with timeout and retry.

All embedding calls route through an ``Embedder``. ``LiteLLMEmbedder`` uses
``litellm.aembedding()`` with LiteLLM's built-in retry (``num_retries``) and
wraps every call in ``asyncio.wait_for`` so the only unbounded external wait
in the system has an explicit deadline and honours task cancellation.
"""

from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass

import litellm
import numpy as np

from ragindex.errors import EmbeddingServiceError

logger = logging.getLogger(__name__)

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

_MIN_EMBEDDABLE_CHARS = 10
_CHARS_PER_TOKEN = 4

# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # Local, no key required
}


@dataclass
class EmbeddingConfig:
    """Configuration for embedding generation.

    Attributes:
        model: LiteLLM embedding model string (provider/model format).
        timeout: Seconds to wait for one embedding request before giving up.
        num_retries: Retries on transient errors (LiteLLM exponential backoff).
        batch_size: Texts per request in ``embed_many``.
        batch_delay: Seconds to pause between batches (provider rate limits).
        max_tokens: Input longer than this (approximate tokens) is truncated.
    """

    model: str = "together_ai/togethercomputer/m2-bert-80M-8k-retrieval"
    timeout: float = 30.0
    num_retries: int = 3
    batch_size: int = 20
    batch_delay: float = 0.1
    max_tokens: int = 8_000


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EmbeddingServiceError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # Unknown provider or no key required (e.g. ollama)

    if not os.getenv(env_var):
        raise EmbeddingServiceError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def is_embeddable(text: str) -> bool:
    """True if *text* has enough non-blank content to be worth embedding."""
    return len(text.strip()) >= _MIN_EMBEDDABLE_CHARS


def truncate_to_token_limit(text: str, max_tokens: int = 8_000) -> str:
    """Cut *text* to roughly *max_tokens* tokens (4 chars ≈ 1 token)."""
    max_chars = max_tokens * _CHARS_PER_TOKEN
    return text if len(text) <= max_chars else text[:max_chars]


class Embedder(ABC):
    """Turns text into fixed-dimension float32 vectors."""

    model: str = ""

    @abstractmethod
    async def embed(self, text: str) -> np.ndarray:
        """Return the embedding of *text*.

        Raises:
            EmbeddingServiceError: If the service fails or times out.
        """

    async def embed_many(self, texts: list[str]) -> list[np.ndarray]:
        """Embed *texts* in order. The default issues one request per text."""
        return [await self.embed(t) for t in texts]


class LiteLLMEmbedder(Embedder):
    """Embedder backed by ``litellm.aembedding()``.

    Args:
        config: Embedding configuration (model, timeout, retries, batching).
    """

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()
        self.model = self._config.model

    async def embed(self, text: str) -> np.ndarray:
        if not text.strip():
            raise ValueError("Cannot generate embedding for empty text")
        text = truncate_to_token_limit(text, self._config.max_tokens)
        logger.debug("Embedding %d chars with %s", len(text), self.model)
        vectors = await self._request([text])
        return vectors[0]

    async def embed_many(self, texts: list[str]) -> list[np.ndarray]:
        if not texts:
            return []
        if any(not t.strip() for t in texts):
            raise ValueError("Cannot generate embedding for empty text")
        inputs = [truncate_to_token_limit(t, self._config.max_tokens) for t in texts]
        size = max(1, self._config.batch_size)
        vectors: list[np.ndarray] = []
        for start in range(0, len(inputs), size):
            if start:
                await asyncio.sleep(self._config.batch_delay)
            batch = inputs[start : start + size]
            logger.debug(
                "Embedding batch %d/%d (%d texts)",
                start // size + 1,
                (len(inputs) + size - 1) // size,
                len(batch),
            )
            vectors.extend(await self._request(batch))
        return vectors

    async def _request(self, inputs: list[str]) -> list[np.ndarray]:
        """Call litellm.aembedding() under the configured deadline."""
        try:
            response = await asyncio.wait_for(
                litellm.aembedding(
                    model=self.model,
                    input=inputs,
                    num_retries=self._config.num_retries,
                ),
                timeout=self._config.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise EmbeddingServiceError(
                f"Embedding request to '{self.model}' timed out after {self._config.timeout}s"
            ) from exc
        except Exception as exc:
            raise EmbeddingServiceError(
                f"Embedding request to '{self.model}' failed: {exc}"
            ) from exc

        data = sorted(response.data, key=lambda item: item.get("index", 0))
        if len(data) != len(inputs):
            raise EmbeddingServiceError(
                f"Embedding service returned {len(data)} vectors for {len(inputs)} inputs"
            )
        return [np.asarray(item["embedding"], dtype=np.float32) for item in data]
