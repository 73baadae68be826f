"""Host-side wiring for the chat core."""
from __future__ import annotations

import logging
import os

from .config import RootConfig, load_root_config
from .conversation import ConversationArchive, ConversationOrchestrator
from .engines.base import GenerationSpec, RuntimeFactory
from .locator import ModelLocator
from .metrics.memory_monitor import MemoryPressureMonitor
from .session import InferenceSession

DEFAULT_CONFIG_PATH = "configs/pocketllm.yaml"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def load_host_config(path: str | None = None) -> RootConfig:
    return load_root_config(path or os.environ.get("POCKETLLM_CONFIG", DEFAULT_CONFIG_PATH))


def _build_spec(cfg: RootConfig) -> GenerationSpec:
    return GenerationSpec(
        n_ctx=cfg.runtime.n_ctx,
        n_threads=cfg.runtime.n_threads,
        n_gpu_layers=cfg.runtime.n_gpu_layers,
        max_new_tokens=cfg.runtime.max_new_tokens,
        temperature=cfg.runtime.temperature,
        top_p=cfg.runtime.top_p,
    )


def build_orchestrator(
    cfg: RootConfig, runtime_factory: RuntimeFactory | None = None
) -> tuple[ConversationOrchestrator, MemoryPressureMonitor | None]:
    """Build the chat stack; the returned monitor is not started."""
    locator = ModelLocator(cfg.models, cfg.app.bundle_dir, cfg.app.documents_dir)
    session = InferenceSession(locator, runtime_factory=runtime_factory, spec=_build_spec(cfg))
    orchestrator = ConversationOrchestrator(session, ConversationArchive(cfg.app.archive_limit))

    monitor = None
    if cfg.memory.enabled:
        monitor = MemoryPressureMonitor(
            cfg.memory.sampling_interval_ms,
            cfg.memory.min_available_mb,
            session.handle_memory_pressure,
        )
    return orchestrator, monitor
