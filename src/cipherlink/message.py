"""
Cipherlink - Application-visible messages.

Created by orpheus497
Version: 1.0.0

A PlainMessage is the decrypted form of an envelope, or an in-band notice
that an envelope was rejected. Messages never carry cryptographic material,
so history can be persisted without leaking keys.
"""

import logging
from typing import Any, Dict, Iterator, List, Optional

from .constants import MAX_HISTORY, SYSTEM_SENDER_ID
from .crypto import generate_uid
from .errors import CipherlinkError, ErrorCode
from .utils import now_ms

logger = logging.getLogger(__name__)


class PlainMessage:
    """Represents a message in a conversation."""

    def __init__(
        self,
        sender_id: str,
        text: str,
        is_local_origin: bool,
        timestamp: Optional[int] = None,
        message_id: Optional[str] = None,
        error: Optional[ErrorCode] = None,
    ):
        self.id = message_id or generate_uid()
        self.sender_id = sender_id
        self.text = text
        self.timestamp = timestamp if timestamp is not None else now_ms()
        self.is_local_origin = is_local_origin
        self.error = error

    @property
    def is_rejection(self) -> bool:
        """True for in-band notices about envelopes that could not be opened."""
        return self.error is not None

    @staticmethod
    def rejection(exc: CipherlinkError, envelope_timestamp: Optional[int] = None) -> "PlainMessage":
        """Build the in-band notice shown in place of a rejected envelope."""
        return PlainMessage(
            sender_id=SYSTEM_SENDER_ID,
            text=f"Error receiving message: {exc.message}",
            is_local_origin=False,
            timestamp=envelope_timestamp,
            error=exc.code,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to dictionary for storage."""
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "text": self.text,
            "timestamp": self.timestamp,
            "is_local_origin": self.is_local_origin,
            "error": self.error.value if self.error else None,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PlainMessage":
        """Create message from dictionary."""
        error = data.get("error")
        return PlainMessage(
            sender_id=data["sender_id"],
            text=data["text"],
            is_local_origin=data["is_local_origin"],
            timestamp=data["timestamp"],
            message_id=data["id"],
            error=ErrorCode(error) if error else None,
        )

    def __repr__(self) -> str:
        return f"PlainMessage(id={self.id!r}, sender_id={self.sender_id!r}, error={self.error})"


class MessageHistory:
    """Ordered conversation history, capped at max_size messages."""

    def __init__(self, max_size: int = MAX_HISTORY):
        if isinstance(max_size, bool) or not isinstance(max_size, int) or max_size < 1:
            raise ValueError(f"History size must be a positive integer, got {max_size!r}")
        self.max_size = max_size
        self.messages: List[PlainMessage] = []

    def append(self, message: PlainMessage) -> None:
        self.messages.append(message)
        overflow = len(self.messages) - self.max_size
        if overflow > 0:
            del self.messages[:overflow]
            logger.debug(f"Trimmed {overflow} messages from history")

    def clear(self) -> None:
        self.messages.clear()

    def rejections(self) -> List[PlainMessage]:
        return [message for message in self.messages if message.is_rejection]

    def __iter__(self) -> Iterator[PlainMessage]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)

    def __getitem__(self, index: int) -> PlainMessage:
        return self.messages[index]

    def to_list(self) -> List[Dict[str, Any]]:
        return [message.to_dict() for message in self.messages]

    @staticmethod
    def from_list(data: List[Dict[str, Any]], max_size: int = MAX_HISTORY) -> "MessageHistory":
        history = MessageHistory(max_size)
        for entry in data:
            history.append(PlainMessage.from_dict(entry))
        return history
