"""Model file discovery."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

logger = logging.getLogger("pocketllm.locator")


@dataclass(frozen=True)
class ModelCandidate:
    base: str
    ext: str

    @property
    def filename(self) -> str:
        return f"{self.base}.{self.ext}"


# Most specific quantization first.
DEFAULT_CANDIDATES: tuple[ModelCandidate, ...] = (
    ModelCandidate("medgemma-4b-instruct.Q4_K_M", "gguf"),
    ModelCandidate("medgemma-4b-instruct", "gguf"),
)


class ModelLocator:
    """Finds the first candidate model file across the search directories.

    The bundled (read-only) directory is searched for every candidate before
    the writable documents directory is considered.
    """

    def __init__(
        self,
        candidates: Iterable[ModelCandidate],
        bundle_dir: str | Path | None,
        documents_dir: str | Path | None,
    ) -> None:
        self._candidates = tuple(candidates)
        self._search_dirs = [
            Path(d).expanduser() for d in (bundle_dir, documents_dir) if d is not None
        ]
        self._cached: Path | None = None

    @property
    def candidates(self) -> tuple[ModelCandidate, ...]:
        return self._candidates

    @property
    def search_dirs(self) -> list[Path]:
        return list(self._search_dirs)

    def resolve(self) -> Path | None:
        if self._cached is not None:
            return self._cached
        for directory in self._search_dirs:
            for candidate in self._candidates:
                path = directory / candidate.filename
                if path.is_file():
                    self._cached = path.resolve()
                    logger.debug("Resolved model file %s", self._cached)
                    return self._cached
        return None

    def invalidate(self) -> None:
        self._cached = None
