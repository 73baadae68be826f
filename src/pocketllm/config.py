"""Configuration loading and dataclasses."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

import yaml

from .errors import ConfigError
from .locator import DEFAULT_CANDIDATES, ModelCandidate


@dataclass
class AppConfig:
    log_level: str = "INFO"
    bundle_dir: str = "./Models"
    documents_dir: str = "~/Documents"
    archive_limit: int = 50


@dataclass
class RuntimeConfig:
    n_ctx: int = 4096
    n_threads: int = 4
    n_gpu_layers: int = 0
    max_new_tokens: int = 512
    temperature: float = 0.2
    top_p: float = 0.95


@dataclass
class MemoryConfig:
    enabled: bool = True
    sampling_interval_ms: int = 1000
    min_available_mb: int = 512


@dataclass
class RootConfig:
    app: AppConfig = field(default_factory=AppConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    models: list[ModelCandidate] = field(default_factory=lambda: list(DEFAULT_CANDIDATES))


def _get(data: dict[str, Any], key: str, default: Any) -> Any:
    return data.get(key, default) if isinstance(data, dict) else default


def load_config(path: str) -> RootConfig:
    with open(path, "r", encoding="utf-8") as handle:
        try:
            raw = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid config file {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be a mapping: {path}")

    app_raw = _get(raw, "app", {})
    runtime_raw = _get(raw, "runtime", {})
    memory_raw = _get(raw, "memory", {})
    models_raw = _get(raw, "models", None)

    app = AppConfig(
        log_level=str(_get(app_raw, "log_level", AppConfig.log_level)),
        bundle_dir=str(_get(app_raw, "bundle_dir", AppConfig.bundle_dir)),
        documents_dir=str(_get(app_raw, "documents_dir", AppConfig.documents_dir)),
        archive_limit=int(_get(app_raw, "archive_limit", AppConfig.archive_limit)),
    )

    runtime = RuntimeConfig(
        n_ctx=int(_get(runtime_raw, "n_ctx", RuntimeConfig.n_ctx)),
        n_threads=int(_get(runtime_raw, "n_threads", RuntimeConfig.n_threads)),
        n_gpu_layers=int(_get(runtime_raw, "n_gpu_layers", RuntimeConfig.n_gpu_layers)),
        max_new_tokens=int(_get(runtime_raw, "max_new_tokens", RuntimeConfig.max_new_tokens)),
        temperature=float(_get(runtime_raw, "temperature", RuntimeConfig.temperature)),
        top_p=float(_get(runtime_raw, "top_p", RuntimeConfig.top_p)),
    )

    memory = MemoryConfig(
        enabled=bool(_get(memory_raw, "enabled", MemoryConfig.enabled)),
        sampling_interval_ms=int(
            _get(memory_raw, "sampling_interval_ms", MemoryConfig.sampling_interval_ms)
        ),
        min_available_mb=int(_get(memory_raw, "min_available_mb", MemoryConfig.min_available_mb)),
    )

    models: list[ModelCandidate] = list(DEFAULT_CANDIDATES)
    if isinstance(models_raw, list):
        models = []
        for item in models_raw:
            base = _get(item, "base", "")
            if not base:
                raise ConfigError(f"Model candidate without a base name: {item!r}")
            models.append(ModelCandidate(base=str(base), ext=str(_get(item, "ext", "gguf"))))

    return RootConfig(app=app, runtime=runtime, memory=memory, models=models)


def load_root_config(path: str) -> RootConfig:
    if not os.path.exists(path):
        return RootConfig()
    return load_config(path)
