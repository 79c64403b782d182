"""Client-side view of a conversation's realtime message stream.

The server publishes every committed message on the conversation channel,
including the sender's own. A client already holds a local copy of what it
just sent, so it must drop that echo, and at-least-once delivery means any
message may arrive more than once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class MessageFeed:
    """Ordered, deduplicated message list for one conversation."""

    user_id: str
    conversation_id: int
    messages: list[dict[str, Any]] = field(default_factory=list)
    _seen_ids: set[Any] = field(default_factory=set)
    _pending_tokens: set[str] = field(default_factory=set)

    def add_local(self, message: dict[str, Any]) -> None:
        """Record a message this client just sent (optimistic copy)."""
        self.messages.append(message)
        if message.get("id") is not None:
            self._seen_ids.add(message["id"])
        token = message.get("clientToken")
        if token:
            self._pending_tokens.add(token)

    def receive(self, payload: dict[str, Any]) -> bool:
        """Apply a pushed message. Returns True if it was appended."""
        if payload.get("conversationId") != self.conversation_id:
            return False

        message_id = payload.get("id")
        if message_id is not None and message_id in self._seen_ids:
            return False

        token = payload.get("clientToken")
        if payload.get("senderId") == self.user_id and token and token in self._pending_tokens:
            # Echo of our own send: adopt the server id on the local copy
            self._pending_tokens.discard(token)
            for local in self.messages:
                if local.get("clientToken") == token:
                    local.update(payload)
                    break
            if message_id is not None:
                self._seen_ids.add(message_id)
            return False

        if message_id is not None:
            self._seen_ids.add(message_id)
        self.messages.append(payload)
        return True

    def __len__(self) -> int:
        return len(self.messages)
