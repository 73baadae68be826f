"""Memory-pressure monitor based on available system RAM."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable

import psutil

logger = logging.getLogger("pocketllm.metrics.memory")


class MemoryPressureMonitor:
    """Calls ``on_pressure`` when available memory drops below a threshold.

    The callback fires once per low-memory episode and re-arms after
    availability recovers above the threshold.
    """

    def __init__(
        self,
        interval_ms: int,
        min_available_mb: int,
        on_pressure: Callable[[], None],
    ) -> None:
        self._interval = interval_ms / 1000.0
        self._threshold = min_available_mb * 1024 * 1024
        self._on_pressure = on_pressure
        self._under_pressure = False
        self._running = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def under_pressure(self) -> bool:
        return self._under_pressure

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._running.set()
        self._thread = threading.Thread(target=self._run, name="pocketllm-memory", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._running.clear()
        if self._thread:
            self._thread.join(timeout=max(1.0, self._interval * 2))
        self._thread = None

    def check(self) -> bool:
        """Take one sample; returns True when the callback fired."""
        available = psutil.virtual_memory().available
        if available >= self._threshold:
            if self._under_pressure:
                logger.info("Available memory recovered: %.0f MB", available / (1024 * 1024))
            self._under_pressure = False
            return False
        if self._under_pressure:
            return False
        self._under_pressure = True
        logger.warning(
            "Available memory low: %.0f MB < %.0f MB",
            available / (1024 * 1024),
            self._threshold / (1024 * 1024),
        )
        self._on_pressure()
        return True

    def _run(self) -> None:
        while self._running.is_set():
            try:
                self.check()
            except Exception:
                logger.exception("Memory pressure check failed")
            time.sleep(self._interval)
