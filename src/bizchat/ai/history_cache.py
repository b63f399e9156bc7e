"""Per-conversation chat history for AI replies.

Bounded in both directions: at most `max_turns` messages per conversation,
at most `max_conversations` conversations (least recently used evicted
first), and entries idle longer than `ttl_seconds` are dropped on access.
One instance lives on the MessagingContext; nothing is process-global.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable

DEFAULT_MAX_TURNS = 10
DEFAULT_MAX_CONVERSATIONS = 1000
DEFAULT_TTL_SECONDS = 3600


@dataclass
class _Entry:
    messages: list[dict[str, str]] = field(default_factory=list)
    touched_at: float = 0.0


class HistoryCache:
    def __init__(
        self,
        max_turns: int = DEFAULT_MAX_TURNS,
        max_conversations: int = DEFAULT_MAX_CONVERSATIONS,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_turns = max_turns
        self._max_conversations = max_conversations
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = threading.Lock()

    def _live_entry(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.touched_at > self._ttl:
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> list[dict[str, str]]:
        """Copy of the history, oldest first."""
        with self._lock:
            entry = self._live_entry(key)
            return list(entry.messages) if entry else []

    def append(self, key: str, role: str, content: str) -> None:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.messages.append({"role": role, "content": content})
            del entry.messages[: -self._max_turns]
            entry.touched_at = self._clock()
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_conversations:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
