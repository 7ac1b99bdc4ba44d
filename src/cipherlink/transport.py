"""
Cipherlink - Local loopback transport.

Created by orpheus497
Version: 1.0.0

There is no network transport. Envelopes are delivered in-process to
simulate delivery between local sessions. Envelopes travel as JSON strings so
every delivery goes through strict wire parsing exactly as a real transport
would. Delivery is attempted once; a rejected envelope becomes an in-band
notice in the recipient's history and is not retried.
"""

import logging
from collections import deque
from typing import Deque, Dict, List

from .constants import MAX_HISTORY
from .envelope import SealedEnvelope
from .errors import MalformedEnvelopeError
from .message import PlainMessage

logger = logging.getLogger(__name__)


class LoopbackTransport:
    """In-memory FIFO of serialized envelopes keyed by recipient id."""

    def __init__(self, max_pending: int = MAX_HISTORY):
        self.max_pending = max_pending
        self._queues: Dict[str, Deque[str]] = {}

    def post(self, recipient_id: str, envelope: SealedEnvelope) -> None:
        """Queue an envelope for recipient_id; the oldest is dropped when full."""
        queue = self._queues.setdefault(recipient_id, deque(maxlen=self.max_pending))
        if len(queue) == self.max_pending:
            logger.warning(f"Loopback queue full for {recipient_id}; dropping oldest envelope")
        queue.append(envelope.to_json())
        logger.debug(f"Posted envelope {envelope.id} for {recipient_id}")

    def pending(self, recipient_id: str) -> int:
        return len(self._queues.get(recipient_id, ()))

    @staticmethod
    def _pop_head(recipient_id: str, queue: Deque[str]) -> SealedEnvelope:
        """Parse and remove the oldest entry; a malformed entry is removed and re-raised."""
        try:
            envelope = SealedEnvelope.from_json(queue[0])
        except MalformedEnvelopeError:
            queue.popleft()
            logger.warning(f"Dropped malformed envelope queued for {recipient_id}")
            raise
        queue.popleft()
        return envelope

    def drain(self, recipient_id: str) -> List[SealedEnvelope]:
        """
        Remove and parse queued envelopes for recipient_id, oldest first.

        Draining stops in front of a malformed payload, so envelopes parsed
        before it are returned and the payload is reported on the next call.

        Raises:
            MalformedEnvelopeError: If the oldest queued payload fails strict
                parsing; it is dropped and envelopes after it stay queued
        """
        queue = self._queues.get(recipient_id)
        envelopes: List[SealedEnvelope] = []
        while queue:
            try:
                envelope = SealedEnvelope.from_json(queue[0])
            except MalformedEnvelopeError:
                if envelopes:
                    break
                queue.popleft()
                logger.warning(f"Dropped malformed envelope queued for {recipient_id}")
                raise
            queue.popleft()
            envelopes.append(envelope)
        return envelopes

    def deliver(self, session) -> List[PlainMessage]:
        """
        Hand queued envelopes to session.receive() one at a time.

        Each envelope leaves the queue just before it is received. If parsing
        or receive() raises, envelopes behind it stay queued.
        """
        recipient_id = session.identity.id
        queue = self._queues.get(recipient_id)
        messages: List[PlainMessage] = []
        while queue:
            messages.append(session.receive(self._pop_head(recipient_id, queue)))
        if messages:
            logger.info(f"Delivered {len(messages)} envelopes to {recipient_id}")
        return messages
