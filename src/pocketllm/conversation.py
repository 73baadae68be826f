"""Chat turns, conversations and the orchestrator that drives the session."""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum

from .session import InferenceSession

logger = logging.getLogger("pocketllm.conversation")

TITLE_MAX_CHARS = 50
UNTITLED = "Neuer Chat"


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class ChatTurn:
    role: ChatRole
    text: str
    id: str = field(default_factory=_new_id)


@dataclass(frozen=True)
class Conversation:
    title: str
    turns: tuple[ChatTurn, ...]
    id: str = field(default_factory=_new_id)


def derive_title(turns: tuple[ChatTurn, ...] | list[ChatTurn]) -> str:
    for turn in turns:
        if turn.role is ChatRole.USER:
            return turn.text[:TITLE_MAX_CHARS]
    return UNTITLED


class ConversationArchive:
    """Bounded in-memory archive, newest first."""

    def __init__(self, limit: int = 50) -> None:
        if limit < 1:
            raise ValueError("Archive limit must be positive")
        self._items: deque[Conversation] = deque(maxlen=limit)

    def __len__(self) -> int:
        return len(self._items)

    def add(self, conversation: Conversation) -> None:
        if len(self._items) == self._items.maxlen:
            dropped = self._items[-1]
            logger.debug("Archive full; dropping conversation %s", dropped.id)
        self._items.appendleft(conversation)

    def get(self, conversation_id: str) -> Conversation:
        for conversation in self._items:
            if conversation.id == conversation_id:
                return conversation
        raise KeyError(f"Conversation not found: {conversation_id}")

    def list(self) -> list[Conversation]:
        return list(self._items)

    def search(self, query: str) -> list[Conversation]:
        if not query.strip():
            return self.list()
        needle = query.casefold()
        return [c for c in self._items if needle in c.title.casefold()]


class ConversationOrchestrator:
    """Active conversation state for a chat surface.

    All methods must be called from the event loop that owns the session.
    """

    def __init__(self, session: InferenceSession, archive: ConversationArchive | None = None) -> None:
        self._session = session
        self._archive = archive if archive is not None else ConversationArchive()
        self._turns: list[ChatTurn] = []
        self._in_progress: list[str] = []
        self._pending: dict[asyncio.Task, list[ChatTurn]] = {}

    @property
    def messages(self) -> tuple[ChatTurn, ...]:
        return tuple(self._turns)

    @property
    def is_busy(self) -> bool:
        return any(turns is self._turns for turns in self._pending.values())

    @property
    def in_progress_text(self) -> str:
        return "".join(self._in_progress)

    @property
    def is_model_available(self) -> bool:
        return self._session.is_available

    @property
    def archive(self) -> list[Conversation]:
        return self._archive.list()

    def send(self, text: str) -> asyncio.Task | None:
        trimmed = text.strip()
        if not trimmed:
            return None
        self._turns.append(ChatTurn(role=ChatRole.USER, text=trimmed))
        task = asyncio.get_running_loop().create_task(self._reply(trimmed, self._turns))
        self._pending[task] = self._turns
        return task

    async def _reply(self, text: str, turns: list[ChatTurn]) -> None:
        def on_token(token: str) -> None:
            if turns is self._turns:
                self._in_progress.append(token)

        try:
            reply = await self._session.ask_streaming(text, on_token)
            if turns is not self._turns:
                logger.info("Reply arrived after its conversation was replaced; dropping it")
                return
            turns.append(ChatTurn(role=ChatRole.ASSISTANT, text=reply))
        finally:
            if turns is self._turns:
                self._in_progress.clear()
            del self._pending[asyncio.current_task()]

    async def wait_idle(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _replace_active(self, turns: list[ChatTurn]) -> None:
        # Replies still running for the old conversation stop feeding the buffer.
        self._turns = turns
        self._in_progress.clear()

    def start_new_conversation(self) -> None:
        if self._turns:
            turns = tuple(self._turns)
            conversation = Conversation(title=derive_title(turns), turns=turns)
            self._archive.add(conversation)
            logger.debug("Archived conversation %s (%d turns)", conversation.id, len(turns))
        self._replace_active([])

    def load_conversation(self, conversation_id: str) -> None:
        conversation = self._archive.get(conversation_id)
        self._replace_active(list(conversation.turns))

    def search_archive(self, query: str) -> list[Conversation]:
        return self._archive.search(query)
