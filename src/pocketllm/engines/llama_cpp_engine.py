"""llama.cpp runtime implementation."""
from __future__ import annotations

import gc
import logging
from pathlib import Path
from typing import Any, Iterator

from llama_cpp import Llama

from .base import GenerationSpec
from ..prompts import END_OF_TURN

logger = logging.getLogger("pocketllm.engines.llama_cpp")


class LlamaCppRuntime:
    def __init__(self, model_path: str | Path, spec: GenerationSpec) -> None:
        self._spec = spec
        self._model: Any | None = Llama(
            model_path=str(model_path),
            n_ctx=spec.n_ctx,
            n_threads=spec.n_threads,
            n_gpu_layers=spec.n_gpu_layers,
            verbose=False,
        )

    def _completion_kwargs(self) -> dict[str, Any]:
        return {
            "max_tokens": self._spec.max_new_tokens,
            "temperature": self._spec.temperature,
            "top_p": self._spec.top_p,
            "stop": [END_OF_TURN],
        }

    def generate(self, prompt: str) -> str | None:
        if self._model is None:
            raise RuntimeError("Runtime closed")
        out = self._model.create_completion(prompt=prompt, **self._completion_kwargs())
        choices = out.get("choices") or []
        if not choices:
            return None
        return choices[0].get("text")

    def stream(self, prompt: str) -> Iterator[str]:
        if self._model is None:
            raise RuntimeError("Runtime closed")
        for chunk in self._model.create_completion(
            prompt=prompt, stream=True, **self._completion_kwargs()
        ):
            choices = chunk.get("choices") or []
            if choices:
                yield choices[0].get("text") or ""

    def close(self) -> None:
        if self._model is None:
            return
        model = self._model
        self._model = None
        close = getattr(model, "close", None)
        if callable(close):
            close()
        del model
        gc.collect()


def load_llama_runtime(model_path: Path, spec: GenerationSpec) -> LlamaCppRuntime:
    logger.info(
        "Loading GGUF model %s (n_ctx=%d, n_gpu_layers=%d)",
        model_path,
        spec.n_ctx,
        spec.n_gpu_layers,
    )
    return LlamaCppRuntime(model_path, spec)
