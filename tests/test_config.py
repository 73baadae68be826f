"""Tests for configuration defaults and YAML loading."""
from __future__ import annotations

import pytest

from pocketllm.config import RootConfig, load_config, load_root_config
from pocketllm.errors import ConfigError
from pocketllm.locator import DEFAULT_CANDIDATES, ModelCandidate


def test_missing_file_gives_defaults(tmp_path):
    cfg = load_root_config(str(tmp_path / "absent.yaml"))
    assert cfg == RootConfig()
    assert cfg.app.archive_limit == 50
    assert cfg.runtime.n_ctx == 4096
    assert cfg.memory.min_available_mb == 512
    assert cfg.models == list(DEFAULT_CANDIDATES)


def test_loads_values(tmp_path):
    path = tmp_path / "pocketllm.yaml"
    path.write_text(
        "app:\n"
        "  bundle_dir: /opt/models\n"
        "  archive_limit: 5\n"
        "runtime:\n"
        "  n_gpu_layers: 99\n"
        "  temperature: 0.7\n"
        "memory:\n"
        "  enabled: false\n"
        "models:\n"
        "  - base: tiny\n"
        "  - {base: small, ext: bin}\n",
        encoding="utf-8",
    )
    cfg = load_config(str(path))
    assert cfg.app.bundle_dir == "/opt/models"
    assert cfg.app.documents_dir == "~/Documents"
    assert cfg.app.archive_limit == 5
    assert cfg.runtime.n_gpu_layers == 99
    assert cfg.runtime.temperature == 0.7
    assert cfg.runtime.max_new_tokens == 512
    assert cfg.memory.enabled is False
    assert cfg.models == [ModelCandidate("tiny", "gguf"), ModelCandidate("small", "bin")]


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(str(path)) == RootConfig()


@pytest.mark.parametrize(
    "content",
    ["app: [unclosed", "- just\n- a list\n", "models:\n  - ext: gguf\n"],
    ids=["syntax", "not-a-mapping", "candidate-without-base"],
)
def test_invalid_config(tmp_path, content):
    path = tmp_path / "bad.yaml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(path))
