"""Shared fixtures and fake runtimes."""
from __future__ import annotations

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterable

import pytest

from pocketllm.locator import ModelCandidate, ModelLocator
from pocketllm.prompts import END_OF_TURN, SYSTEM_PROMPT

CANDIDATES = (
    ModelCandidate("medgemma-4b-instruct.Q4_K_M", "gguf"),
    ModelCandidate("medgemma-4b-instruct", "gguf"),
)


def user_text(prompt: str) -> str:
    return prompt.split(SYSTEM_PROMPT + "\n\n", 1)[1].split(END_OF_TURN, 1)[0]


class FakeRuntime:
    """In-memory runtime; optionally blocks on ``gate`` before each token."""

    def __init__(
        self,
        tokens: Iterable[str] | Callable[[str], list[str]] = ("Hi", " there"),
        text: str | None = "Hello",
        fail_after: int | None = None,
        gate: threading.Event | None = None,
    ) -> None:
        self._tokens = tokens
        self.text = text
        self.fail_after = fail_after
        self.gate = gate
        self.prompts: list[str] = []
        self.closed = False
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def _enter(self, prompt: str) -> None:
        with self._lock:
            self.prompts.append(prompt)
            self.active += 1
            self.max_active = max(self.max_active, self.active)

    def _exit(self) -> None:
        with self._lock:
            self.active -= 1

    def generate(self, prompt: str) -> str | None:
        self._enter(prompt)
        try:
            if self.fail_after is not None:
                raise RuntimeError("native failure")
            return self.text
        finally:
            self._exit()

    def stream(self, prompt: str):
        self._enter(prompt)
        try:
            tokens = self._tokens(prompt) if callable(self._tokens) else list(self._tokens)
            for index, token in enumerate(tokens):
                if self.fail_after is not None and index >= self.fail_after:
                    raise RuntimeError("native failure")
                if self.gate is not None:
                    self.gate.wait(timeout=5)
                yield token
            if self.fail_after is not None and self.fail_after >= len(tokens):
                raise RuntimeError("native failure")
        finally:
            self._exit()

    def close(self) -> None:
        self.closed = True


class FakeFactory:
    """Runtime factory recording every load."""

    def __init__(self, make: Callable[[], FakeRuntime] | None = None) -> None:
        self._make = make or FakeRuntime
        self.loaded: list[tuple[Path, FakeRuntime]] = []

    def __call__(self, path, spec) -> FakeRuntime:
        runtime = self._make()
        self.loaded.append((path, runtime))
        return runtime

    @property
    def runtime(self) -> FakeRuntime:
        return self.loaded[-1][1]


def place_model(directory: Path, candidate: ModelCandidate = CANDIDATES[0]) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / candidate.filename
    path.write_bytes(b"GGUF")
    return path


async def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


@pytest.fixture
def bundle_dir(tmp_path: Path) -> Path:
    path = tmp_path / "bundle"
    path.mkdir()
    return path


@pytest.fixture
def documents_dir(tmp_path: Path) -> Path:
    path = tmp_path / "documents"
    path.mkdir()
    return path


@pytest.fixture
def locator(bundle_dir: Path, documents_dir: Path) -> ModelLocator:
    return ModelLocator(CANDIDATES, bundle_dir, documents_dir)


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=1)
    yield pool
    pool.shutdown(wait=True)
