"""Bounded, lossy hand-off between the link worker and the polling consumer."""

from __future__ import annotations

import enum
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Optional

_LOGGER = logging.getLogger(__name__)


class EntryKind(enum.Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    PAYLOAD = "payload"


@dataclass(frozen=True)
class MailboxEntry:
    kind: EntryKind
    payload: Optional[str] = None

    @property
    def is_sentinel(self) -> bool:
        return self.kind is not EntryKind.PAYLOAD


CONNECTED = MailboxEntry(EntryKind.CONNECTED)
DISCONNECTED = MailboxEntry(EntryKind.DISCONNECTED)


class Mailbox:
    """Inbound entries for the consumer plus an outbound command queue.

    Inbound payloads are capped at ``capacity`` unread entries. Once the cap
    is reached further payloads are discarded (drop-newest) until the consumer
    pops one. Connection sentinels bypass the cap and are never dropped.

    The outbound queue is unbounded; callers that keep sending while the link
    is down are responsible for its growth.
    """

    def __init__(self, capacity: int = 1) -> None:
        if capacity < 1:
            raise ValueError("Mailbox capacity must be at least 1")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._inbound: deque[MailboxEntry] = deque()
        self._outbound: deque[str] = deque()
        self._payload_count = 0
        self.dropped = 0

    def push_payload(self, message: str) -> bool:
        """Queue *message*; return ``False`` if it was dropped."""

        with self._lock:
            if self._payload_count >= self.capacity:
                self.dropped += 1
                dropped = True
            else:
                self._inbound.append(MailboxEntry(EntryKind.PAYLOAD, message))
                self._payload_count += 1
                dropped = False
        if dropped:
            _LOGGER.debug("Mailbox full. Dropping message: %s", message)
        return not dropped

    def push_sentinel(self, kind: EntryKind) -> None:
        if kind is EntryKind.PAYLOAD:
            raise ValueError("Payloads must go through push_payload")
        with self._lock:
            self._inbound.append(CONNECTED if kind is EntryKind.CONNECTED else DISCONNECTED)

    def pop(self) -> Optional[MailboxEntry]:
        with self._lock:
            if not self._inbound:
                return None
            entry = self._inbound.popleft()
            if entry.kind is EntryKind.PAYLOAD:
                self._payload_count -= 1
            return entry

    def push_outbound(self, command: str) -> None:
        with self._lock:
            self._outbound.append(command)

    def pop_outbound(self) -> Optional[str]:
        with self._lock:
            if not self._outbound:
                return None
            return self._outbound.popleft()

    def clear(self) -> None:
        with self._lock:
            self._inbound.clear()
            self._outbound.clear()
            self._payload_count = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._inbound)

    @property
    def payload_count(self) -> int:
        with self._lock:
            return self._payload_count

    @property
    def outbound_pending(self) -> int:
        with self._lock:
            return len(self._outbound)
