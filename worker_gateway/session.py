"""
Model session: lifecycle of the single on-device model.

The session owns at most one model capability. ``load`` schedules
initialization in a background task and returns immediately; ``generate``
forwards a budgeted prompt to the capability and passes its cumulative
snapshots through unchanged. Generations are serialized with a lock, so
concurrent requests queue rather than share the capability.
"""

import asyncio
import logging
import time
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Sequence

from .budget import build_prompt
from .config import Config
from .errors import (
    EmbeddingGenerationFailed,
    EmbeddingModelUnavailable,
    FeatureProviderError,
    GatewayError,
    ModelNotLoaded,
    OutputProcessingError,
)
from .logstore import LogStore
from .models import ChatMessage, ModelInfo
from .ollama_client import OllamaEmbedder, OllamaModel
from .state import ModelState

logger = logging.getLogger(__name__)

ModelFactory = Callable[[], Awaitable[object]]


class ModelSession:
    """
    Manages loading and running the model.

    Args:
        config: Gateway configuration
        log: Operator log sink
        model_factory: Coroutine factory returning an opened capability
            with ``stream_response(prompt)`` and optionally ``close()``.
            Defaults to an ``OllamaModel`` built from ``config``.
        embedder: Object with ``async embed(text) -> List[float]``, or
            None when no embedding capability exists. Defaults to an
            ``OllamaEmbedder`` built from ``config``.
    """

    _DEFAULT = object()

    def __init__(
        self,
        config: Config,
        log: LogStore,
        model_factory: Optional[ModelFactory] = None,
        embedder=_DEFAULT,
    ):
        self.config = config
        self.log = log
        self.memory_mode = config.memory_mode
        self._model_factory = model_factory or self._open_ollama
        if embedder is self._DEFAULT:
            embedder = OllamaEmbedder(config.ollama_url, config.embedding_model)
        self._embedder = embedder

        self._state = ModelState.not_loaded()
        self._model = None
        self._load_task: Optional[asyncio.Task] = None
        self._generate_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._state.is_loaded

    def _set_state(self, state: ModelState, message: str, level: int = logging.INFO) -> None:
        self._state = state
        self.log.add(message, level)

    def load(self) -> Optional[asyncio.Task]:
        """
        Start loading the model in the background.

        Returns the load task, or None when the model is already loaded.
        A call made while a load is in flight returns the same task.
        """
        if self._state.is_loaded:
            self.log.add("Model is already loaded.")
            return None

        if self._load_task is not None and not self._load_task.done():
            logger.debug("Model load already in progress")
            return self._load_task

        self._set_state(ModelState.loading(), "Starting model load...")
        self._load_task = asyncio.create_task(self._initialize())
        return self._load_task

    async def _initialize(self) -> None:
        try:
            model = await self._model_factory()
        except asyncio.CancelledError:
            raise
        except GatewayError as e:
            error = type(e)(f"Model load failed: {e.message}")
            self._set_state(ModelState.failed(error), error.message, logging.ERROR)
            return
        except Exception as e:
            error = FeatureProviderError(f"Model load failed: {e}")
            self._set_state(ModelState.failed(error), error.message, logging.ERROR)
            return

        self._model = model
        self._set_state(ModelState.loaded(), "Model loaded successfully.")

    async def wait_loaded(self) -> ModelState:
        """Wait for any in-flight load and return the resulting state."""
        task = self._load_task
        if task is not None and not task.done():
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
        return self._state

    async def unload(self) -> None:
        """Release the model and return to NOT_LOADED from any state."""
        task, self._load_task = self._load_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        model, self._model = self._model, None
        if model is not None:
            close = getattr(model, "close", None)
            if close is not None:
                await close()

        self._set_state(ModelState.not_loaded(), "Model unloaded from memory.")

    async def aclose(self) -> None:
        """Unload and release the embedding client."""
        await self.unload()
        close = getattr(self._embedder, "close", None)
        if close is not None:
            await close()

    def model_info(self) -> Optional[ModelInfo]:
        """Advertised model while loaded, else None."""
        if not self._state.is_loaded:
            return None
        return ModelInfo(
            id=self.config.model_id,
            created=int(time.time()),
            owned_by=self.config.owned_by,
        )

    async def _open_ollama(self) -> OllamaModel:
        model = OllamaModel(
            self.config.ollama_url,
            self.config.ollama_model,
            timeout=self.config.request_timeout,
        )
        try:
            await model.open()
        except BaseException:
            await model.close()
            raise
        self.log.add(f"Ollama model initialized: {self.config.ollama_model}")
        return model

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        """
        Generate a response to ``messages``.

        Raises ModelNotLoaded (or InvalidConfiguration for a bad budget)
        immediately. The returned iterator yields cumulative snapshots and
        fails with OutputProcessingError if the model cannot stream.
        """
        model = self._model
        if not self._state.is_loaded or model is None:
            raise ModelNotLoaded()

        prompt = build_prompt(messages, self.config.prompt_budget(), self.memory_mode)
        if self.memory_mode and not prompt.is_empty:
            self.log.add(
                f"Prompt created with {len(prompt.messages)} messages, ensuring latest "
                f"request. Estimated tokens: {prompt.estimated_tokens}."
            )
        return self._stream(model, prompt.text, prompt.is_empty)

    async def _stream(self, model, prompt: str, empty: bool) -> AsyncIterator[str]:
        if empty:
            return

        async with self._generate_lock:
            try:
                stream = model.stream_response(prompt)
            except GatewayError:
                raise
            except Exception as e:
                raise OutputProcessingError() from e
            if stream is None:
                raise OutputProcessingError()

            async for snapshot in stream:
                yield snapshot

    async def generate_embedding(self, text: str) -> List[float]:
        """Embed ``text``; independent of the chat model state."""
        if self._embedder is None:
            raise EmbeddingModelUnavailable()
        try:
            vector = await self._embedder.embed(text)
        except GatewayError:
            raise
        except Exception as e:
            raise EmbeddingGenerationFailed() from e
        if not vector:
            raise EmbeddingGenerationFailed()
        return [float(x) for x in vector]
