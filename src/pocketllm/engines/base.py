"""Runtime protocol and dataclasses."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Protocol


@dataclass
class GenerationSpec:
    n_ctx: int = 4096
    n_threads: int = 4
    n_gpu_layers: int = 0
    max_new_tokens: int = 512
    temperature: float = 0.2
    top_p: float = 0.95


class InferenceRuntime(Protocol):
    """A model loaded into a native runtime.

    Both generation calls block and run on a worker thread.
    """

    def generate(self, prompt: str) -> str | None:
        ...

    def stream(self, prompt: str) -> Iterator[str]:
        ...

    def close(self) -> None:
        ...


RuntimeFactory = Callable[[Path, GenerationSpec], InferenceRuntime]
