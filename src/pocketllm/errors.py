"""pocketllm exception hierarchy."""
from __future__ import annotations


class PocketLLMError(Exception):
    """Base exception for all pocketllm errors."""


class ConfigError(PocketLLMError):
    """Configuration file could not be parsed."""


class ModelUnavailableError(PocketLLMError):
    """No model file could be resolved or loaded."""


class GenerationFailedError(PocketLLMError):
    """The runtime failed while producing output."""
