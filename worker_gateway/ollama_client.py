"""Ollama-backed model and embedding capabilities."""

import json
import logging
from typing import AsyncIterator, List, Optional

import httpx

from .errors import (
    EmbeddingGenerationFailed,
    EmbeddingModelUnavailable,
    FeatureProviderError,
    OutputProcessingError,
)

logger = logging.getLogger(__name__)


class OllamaModel:
    """
    Async text-generation capability backed by a local Ollama daemon.

    Ollama streams fragments; ``stream_response`` accumulates them and
    yields the full response so far on every step, so callers always
    see cumulative snapshots.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float = 300.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))

    async def open(self) -> None:
        """Verify the model is available locally."""
        try:
            resp = await self.client.post(f"{self.base_url}/api/show", json={"model": self.model})
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FeatureProviderError(
                f"Model '{self.model}' is unavailable (HTTP {e.response.status_code})"
            ) from e
        except httpx.HTTPError as e:
            raise FeatureProviderError(f"Cannot reach Ollama at {self.base_url}: {e}") from e
        logger.info(f"Ollama model ready: {self.model}")

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()

    async def stream_response(self, prompt: str) -> AsyncIterator[str]:
        """Yield cumulative response snapshots for ``prompt``."""
        payload = {"model": self.model, "prompt": prompt, "stream": True}
        logger.info(f"Starting generate stream: model={self.model}, prompt_chars={len(prompt)}")

        response_text = ""
        try:
            async with self.client.stream(
                "POST",
                f"{self.base_url}/api/generate",
                json=payload,
            ) as response:
                response.raise_for_status()

                async for line in response.aiter_lines():
                    if not line:
                        continue

                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning(f"Failed to parse chunk: {line[:100]}")
                        continue

                    if chunk.get("error"):
                        raise OutputProcessingError(f"Ollama error: {chunk['error']}")

                    fragment = chunk.get("response", "")
                    if fragment:
                        response_text += fragment
                        yield response_text

                    if chunk.get("done"):
                        return

        except httpx.HTTPStatusError as e:
            logger.error(f"Ollama HTTP error: {e.response.status_code}")
            raise OutputProcessingError(f"Ollama HTTP error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Ollama stream error: {e}")
            raise OutputProcessingError(f"Ollama stream error: {e}") from e


class OllamaEmbedder:
    """Sentence-embedding capability backed by Ollama's ``/api/embed``."""

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))

    async def close(self) -> None:
        await self.client.aclose()

    async def embed(self, text: str) -> List[float]:
        try:
            resp = await self.client.post(
                f"{self.base_url}/api/embed",
                json={"model": self.model, "input": text},
            )
        except httpx.HTTPError as e:
            raise EmbeddingModelUnavailable(f"Cannot reach embedding model '{self.model}': {e}") from e

        if resp.status_code == 404:
            raise EmbeddingModelUnavailable(f"Embedding model '{self.model}' is not installed")
        if resp.is_error:
            raise EmbeddingGenerationFailed(f"Embedding request failed (HTTP {resp.status_code})")

        try:
            vectors = resp.json().get("embeddings") or []
            vector = [float(x) for x in vectors[0]]
        except (ValueError, TypeError, IndexError, AttributeError) as e:
            raise EmbeddingGenerationFailed() from e

        if not vector:
            raise EmbeddingGenerationFailed()
        return vector
