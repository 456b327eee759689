"""
Ephemeral per-conversation input-capture state.

Messages arrive one at a time with no memory of what came before, so
multi-step flows (broadcast text, comment entry, schedule entry, phone then
email capture) park a single "what am I waiting for" mode here. Flows never
nest: setting a mode replaces the previous one, and a mode older than its
TTL reads as Idle without anyone clearing it.

Usage:
    store = ConversationStateStore(ttl_sec=3600, is_operator=settings.is_operator)
    store.set(chat_id, AwaitingPhone())
    if isinstance(store.get(chat_id), AwaitingPhone):
        ...
    store.clear(chat_id)
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from repairdesk.errors import Forbidden
from repairdesk.schemas.conversation_schema import (
    IDLE,
    OPERATOR_MODES,
    ConversationMode,
    ConversationState,
    Idle,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ConversationStateStore:
    """Holds at most one pending mode per conversation, with passive expiry."""

    def __init__(
        self,
        ttl_sec: float,
        is_operator: Callable[[int], bool],
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.ttl_sec = ttl_sec
        self._is_operator = is_operator
        self._clock = clock or _utc_now
        self._states: dict[int, ConversationState] = {}
        self._lock = threading.Lock()

    def set(
        self,
        conversation_id: int,
        mode: ConversationMode,
        ttl: Optional[float] = None,
        acting_user_id: Optional[int] = None,
    ) -> None:
        """
        Replace the conversation's mode.

        Args:
            conversation_id: Chat the mode belongs to.
            mode: What the conversation now waits for.
            ttl: Seconds until the mode goes stale; defaults to the store TTL.
            acting_user_id: Who is entering the mode; defaults to the
                conversation id (private chats).

        Raises:
            Forbidden: If an operator-only mode is requested by a non-operator.
        """
        if isinstance(mode, Idle):
            self.clear(conversation_id)
            return

        actor = conversation_id if acting_user_id is None else acting_user_id
        if isinstance(mode, OPERATOR_MODES) and not self._is_operator(actor):
            raise Forbidden(f"User {actor} cannot enter {type(mode).__name__}")

        expires_at = self._clock() + timedelta(seconds=self.ttl_sec if ttl is None else ttl)
        with self._lock:
            previous = self._states.get(conversation_id)
            self._states[conversation_id] = ConversationState(mode=mode, expires_at=expires_at)

        if previous is not None and previous.mode != mode:
            logger.debug(
                "Conversation mode replaced: %s -> %s",
                type(previous.mode).__name__, type(mode).__name__,
            )
        else:
            logger.debug("Conversation mode set: %s", type(mode).__name__)

    def get(self, conversation_id: int) -> ConversationMode:
        """Current mode, or Idle if none is stored or it has expired."""
        now = self._clock()
        with self._lock:
            state = self._states.get(conversation_id)
            if state is None:
                return IDLE
            if now > state.expires_at:
                del self._states[conversation_id]
                logger.debug("Conversation mode expired: %s", type(state.mode).__name__)
                return IDLE
            return state.mode

    def clear(self, conversation_id: int) -> None:
        with self._lock:
            self._states.pop(conversation_id, None)

    def reset(self) -> None:
        """Drop every conversation. Used by test fixtures for isolation."""
        with self._lock:
            self._states.clear()
