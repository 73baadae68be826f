"""Inference session: model lifecycle and single-flight generation."""
from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Callable

from .engines.base import GenerationSpec, InferenceRuntime, RuntimeFactory
from .errors import GenerationFailedError, ModelUnavailableError
from .locator import ModelLocator
from .prompts import build_prompt
from .sanitizer import clean_model_output

logger = logging.getLogger("pocketllm.session")

UNAVAILABLE_MESSAGE = (
    "Modell nicht verfügbar. Bitte medgemma-4b-instruct.Q4_K_M.gguf "
    "im Modell- oder Dokumentenordner ablegen."
)
GENERATION_FAILED_MESSAGE = "Fehler bei der Generierung."

_DONE = object()


class SessionState(str, Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"
    GENERATING = "generating"


class LoadStatus(str, Enum):
    READY = "ready"
    UNAVAILABLE = "unavailable"
    INTERRUPTED = "interrupted"


def _default_runtime_factory(model_path: Path, spec: GenerationSpec) -> InferenceRuntime:
    from .engines.llama_cpp_engine import load_llama_runtime

    return load_llama_runtime(model_path, spec)


class InferenceSession:
    """Owns at most one loaded runtime and serializes generation requests.

    Concurrent ``ask``/``ask_streaming``/``stream`` calls queue in FIFO order
    behind one another. Loading and generation run on a single worker thread;
    streamed tokens are handed back to the event loop before callers see them.

    ``handle_memory_pressure`` may be called from any thread. It leaves the
    session unloaded when it returns; a generation already running keeps its
    runtime until it finishes, after which that runtime is closed.
    """

    def __init__(
        self,
        locator: ModelLocator,
        runtime_factory: RuntimeFactory | None = None,
        spec: GenerationSpec | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._locator = locator
        self._runtime_factory = runtime_factory or _default_runtime_factory
        self._spec = spec or GenerationSpec()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="pocketllm-runtime"
        )
        self._runtime: InferenceRuntime | None = None
        self._model_path: Path | None = None
        self._state = SessionState.UNLOADED
        self._state_lock = threading.Lock()
        self._unload_epoch = 0
        self._load_lock = asyncio.Lock()
        self._flight = asyncio.Lock()

    @property
    def is_available(self) -> bool:
        return self._locator.resolve() is not None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def model_path(self) -> Path | None:
        return self._model_path

    async def ensure_loaded(self) -> LoadStatus:
        async with self._load_lock:
            with self._state_lock:
                if self._runtime is not None:
                    return LoadStatus.READY
                epoch = self._unload_epoch

            path = self._locator.resolve()
            if path is None:
                logger.warning(
                    "No model file found (searched %s for %s)",
                    ", ".join(str(d) for d in self._locator.search_dirs),
                    ", ".join(c.filename for c in self._locator.candidates),
                )
                return LoadStatus.UNAVAILABLE

            loop = asyncio.get_running_loop()
            start = time.perf_counter()
            try:
                runtime = await loop.run_in_executor(
                    self._executor, self._runtime_factory, path, self._spec
                )
            except Exception:
                logger.exception("Failed to load model %s", path)
                self._locator.invalidate()
                return LoadStatus.UNAVAILABLE

            with self._state_lock:
                stale = epoch != self._unload_epoch
                if not stale:
                    self._runtime = runtime
                    self._model_path = path
                    self._state = SessionState.LOADED
            if stale:
                logger.warning("Memory pressure during load; discarding model %s", path)
                runtime.close()
                return LoadStatus.INTERRUPTED

            logger.info("Model loaded from %s in %.2fs", path, time.perf_counter() - start)
            return LoadStatus.READY

    def handle_memory_pressure(self) -> None:
        released = self._detach()
        if released:
            logger.warning("Memory pressure: released loaded model")
        else:
            logger.debug("Memory pressure: no model loaded")

    def unload(self) -> None:
        if self._detach():
            logger.info("Model unloaded")

    def _detach(self) -> bool:
        with self._state_lock:
            runtime = self._runtime
            generating = self._state is SessionState.GENERATING
            self._runtime = None
            self._model_path = None
            self._state = SessionState.UNLOADED
            self._unload_epoch += 1
        self._locator.invalidate()
        if runtime is None:
            return False
        # A running generation closes its runtime once it finishes.
        if not generating:
            runtime.close()
        return True

    async def _acquire_runtime(self) -> tuple[InferenceRuntime | None, LoadStatus]:
        """Load if needed and mark the session as generating.

        A load lost to memory pressure is retried once; a second loss is
        reported as ``INTERRUPTED``, never as ``UNAVAILABLE``.
        """
        status = LoadStatus.INTERRUPTED
        for attempt in range(2):
            status = await self.ensure_loaded()
            if status is LoadStatus.UNAVAILABLE:
                return None, status
            if status is LoadStatus.READY:
                with self._state_lock:
                    runtime = self._runtime
                    if runtime is not None:
                        self._state = SessionState.GENERATING
                        return runtime, status
                status = LoadStatus.INTERRUPTED
            logger.info(
                "Model released by memory pressure before generation (attempt %d)", attempt + 1
            )
        return None, status

    def _release_runtime(self, runtime: InferenceRuntime) -> None:
        with self._state_lock:
            if self._runtime is runtime:
                self._state = SessionState.LOADED
                return
        logger.info("Closing model released during generation")
        runtime.close()

    async def ask(self, user_message: str) -> str:
        prompt = build_prompt(user_message)
        async with self._flight:
            runtime, status = await self._acquire_runtime()
            if runtime is None:
                if status is LoadStatus.UNAVAILABLE:
                    return UNAVAILABLE_MESSAGE
                return GENERATION_FAILED_MESSAGE
            loop = asyncio.get_running_loop()
            start = time.perf_counter()
            try:
                raw = await loop.run_in_executor(self._executor, runtime.generate, prompt)
            except Exception:
                logger.exception("Generation failed")
                raw = None
            finally:
                self._release_runtime(runtime)
            logger.debug("Generation finished in %.2fs", time.perf_counter() - start)

        text = clean_model_output(raw or "")
        return text or GENERATION_FAILED_MESSAGE

    async def stream(self, user_message: str) -> AsyncIterator[str]:
        """Yield raw tokens for ``user_message`` in generation order.

        Raises ``ModelUnavailableError`` when no model can be loaded and
        ``GenerationFailedError`` when the runtime fails mid-stream or memory
        pressure keeps releasing the model before generation starts.

        The session stays locked while the generator is suspended, so every
        queued request waits on it. Consume it fully or close it explicitly,
        e.g. with ``contextlib.aclosing``; breaking out of a bare ``async for``
        holds the lock until the generator is garbage collected.
        """
        prompt = build_prompt(user_message)
        async with self._flight:
            runtime, status = await self._acquire_runtime()
            if runtime is None:
                if status is LoadStatus.UNAVAILABLE:
                    raise ModelUnavailableError("No model file available")
                raise GenerationFailedError("Model released by memory pressure before generation")
            start = time.perf_counter()
            count = 0
            try:
                async with contextlib.aclosing(self._stream_tokens(runtime, prompt)) as tokens:
                    async for token in tokens:
                        count += 1
                        yield token
            except Exception as exc:
                raise GenerationFailedError(str(exc)) from exc
            finally:
                self._release_runtime(runtime)
            logger.debug("Streamed %d tokens in %.2fs", count, time.perf_counter() - start)

    async def ask_streaming(self, user_message: str, on_token: Callable[[str], None]) -> str:
        chunks: list[str] = []
        try:
            async with contextlib.aclosing(self.stream(user_message)) as tokens:
                async for token in tokens:
                    chunks.append(token)
                    on_token(token)
        except ModelUnavailableError:
            return UNAVAILABLE_MESSAGE
        except GenerationFailedError:
            logger.exception("Streaming generation failed after %d tokens", len(chunks))

        text = clean_model_output("".join(chunks))
        return text or GENERATION_FAILED_MESSAGE

    async def _stream_tokens(self, runtime: InferenceRuntime, prompt: str) -> AsyncIterator[str]:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        stop = threading.Event()

        def produce() -> None:
            try:
                for token in runtime.stream(prompt):
                    if stop.is_set():
                        break
                    if token:
                        loop.call_soon_threadsafe(queue.put_nowait, token)
            finally:
                loop.call_soon_threadsafe(queue.put_nowait, _DONE)

        future = loop.run_in_executor(self._executor, produce)
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    break
                yield item
        finally:
            stop.set()
            await asyncio.wait([future])
            error = future.exception()
        if error is not None:
            raise error

    async def aclose(self) -> None:
        async with self._flight:
            self.unload()
        if self._owns_executor:
            self._executor.shutdown(wait=False)
