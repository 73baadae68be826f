"""Model output cleanup."""
from __future__ import annotations

import re

from .prompts import END_OF_TURN, START_OF_TURN

_ROLE_PREFIX = re.compile(r"^(?:user|model|assistant)[ \t]*(?::|\n)", re.IGNORECASE)


def _clean_once(text: str) -> str:
    text = text.replace(END_OF_TURN, "").replace(START_OF_TURN, "")
    text = text.strip()
    text = _ROLE_PREFIX.sub("", text, count=1)
    return text.strip()


def clean_model_output(text: str) -> str:
    """Strip turn markers and a leading role prefix from raw model output.

    Passes repeat until nothing changes, so cleaning already cleaned text is a
    no-op.
    """
    while True:
        cleaned = _clean_once(text)
        if cleaned == text:
            return cleaned
        text = cleaned
