"""Prompt builders."""
from __future__ import annotations


START_OF_TURN = "<start_of_turn>"
END_OF_TURN = "<end_of_turn>"

SYSTEM_PROMPT = (
    "Du bist ein medizinischer Assistent.\n"
    "Antworte sachlich, vorsichtig und ohne Diagnosen zu stellen.\n"
    "Gib keine medizinischen Ratschläge, die einen Arztbesuch ersetzen könnten."
)


def build_prompt(user_message: str) -> str:
    """Render the system instruction and a user message in Gemma turn syntax.

    The result ends with an open model turn so generation continues as the
    assistant.
    """
    return (
        f"{START_OF_TURN}user\n{SYSTEM_PROMPT}\n\n{user_message}{END_OF_TURN}\n"
        f"{START_OF_TURN}model\n"
    )
