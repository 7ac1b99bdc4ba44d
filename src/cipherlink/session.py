"""
Cipherlink - Chat session context.

Created by orpheus497

A ChatSession is the explicit, passed-in state of one participant: the local
identity, the connected peer, the session key store and the message history.
Nothing here is global; callers own the session object and persist it with
SessionStore (see storage.py) through to_dict()/from_dict().

Lifecycle:
- create(): onboarding, generates the identity
- connect_peer(): validates the pasted public identity and establishes a
  fresh session key; switching peers clears history and discards the old key
- send()/receive(): seal and open envelopes; rejected envelopes become
  in-band notices rather than empty messages
- delete(): explicit account deletion
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Union

from .constants import MAX_HISTORY, RSA_DEFAULT_KEY_SIZE, STORE_FORMAT_VERSION
from .envelope import SealedEnvelope
from .errors import (
    CipherlinkError,
    CryptoError,
    DecryptionError,
    EncodingError,
    ErrorCode,
    IdentityError,
    PeerError,
    SignatureVerificationError,
)
from .identity import Identity, PeerIdentity, export_public_key, generate_identity
from .message import MessageHistory, PlainMessage
from .opener import open_envelope
from .sealer import seal
from .session_key import SessionKey, SessionKeyStore

logger = logging.getLogger(__name__)


class ChatSession:
    """State of one participant's conversation with a single peer."""

    def __init__(
        self,
        identity: Identity,
        peer: Optional[PeerIdentity] = None,
        keys: Optional[SessionKeyStore] = None,
        history: Optional[MessageHistory] = None,
    ):
        self.identity: Optional[Identity] = identity
        self.peer = peer
        self.keys = keys if keys is not None else SessionKeyStore()
        self.history = history if history is not None else MessageHistory()

    @classmethod
    def create(
        cls,
        display_name: str,
        key_size: int = RSA_DEFAULT_KEY_SIZE,
        max_history: int = MAX_HISTORY,
    ) -> "ChatSession":
        """Onboard a new participant."""
        history = MessageHistory(max_history)
        identity = generate_identity(display_name, key_size=key_size)
        return cls(identity, history=history)

    def _require_identity(self) -> Identity:
        if self.identity is None:
            raise IdentityError(ErrorCode.E300_IDENTITY_ERROR, "Session has no identity")
        return self.identity

    def _require_peer(self) -> PeerIdentity:
        if self.peer is None:
            raise PeerError(ErrorCode.E401_NO_PEER, "No peer is connected")
        return self.peer

    # Identity

    def public_identity(self) -> PeerIdentity:
        return export_public_key(self._require_identity())

    def public_identity_json(self) -> str:
        """The public identity as pretty JSON, ready to copy or render as a QR code."""
        return self.public_identity().to_json(indent=2)

    # Peers

    @property
    def session_key(self) -> Optional[SessionKey]:
        if self.peer is None:
            return None
        return self.keys.get(self.peer.id)

    def connect_peer(self, peer: Union[PeerIdentity, Dict[str, Any], str, bytes]) -> PeerIdentity:
        """
        Connect to a peer from a PeerIdentity, its wire dict, or pasted JSON.

        Raises:
            PeerError: If the identity is invalid, its fingerprint does not
                match its key, or it is our own identity
        """
        identity = self._require_identity()
        if isinstance(peer, (str, bytes)):
            peer = PeerIdentity.from_json(peer)
        elif isinstance(peer, dict):
            peer = PeerIdentity.from_wire(peer)
        elif not peer.fingerprint_matches():
            raise PeerError(
                ErrorCode.E403_FINGERPRINT_MISMATCH,
                "Peer fingerprint does not match its public key",
            )

        if peer.id == identity.id:
            raise PeerError(ErrorCode.E402_SELF_PEER, "You can't add yourself as a peer")

        if self.peer is not None and self.peer == peer and peer.id in self.keys:
            logger.debug(f"Peer {peer.id} already connected")
            return self.peer

        if self.peer is not None:
            self.keys.discard(self.peer.id)
        self.keys.discard(peer.id)
        self.history.clear()
        self.peer = peer
        self.keys.establish(peer.id)
        logger.info(f"Connected to peer {peer.display_name} ({peer.fingerprint})")
        return peer

    def install_session_key(self, key: SessionKey) -> None:
        """Adopt the session key the connected peer shared with us."""
        peer = self._require_peer()
        self.keys.install(peer.id, key)

    def disconnect(self) -> None:
        """Forget the connected peer and its session key."""
        if self.peer is None:
            return
        self.keys.discard(self.peer.id)
        logger.info(f"Disconnected from peer {self.peer.display_name}")
        self.peer = None

    # Messaging

    def _prepare_send(self, text: str):
        identity = self._require_identity()
        peer = self._require_peer()
        if not isinstance(text, str) or not text.strip():
            raise EncodingError("Message text cannot be empty")
        return text.strip(), identity, self.keys.require(peer.id)

    def _record_sent(self, text: str, envelope: SealedEnvelope) -> None:
        self.history.append(
            PlainMessage(
                sender_id=envelope.sender_id,
                text=text,
                is_local_origin=True,
                timestamp=envelope.timestamp,
                message_id=envelope.id,
            )
        )

    def send(self, text: str) -> SealedEnvelope:
        """Seal text for the connected peer and record it in history."""
        text, identity, key = self._prepare_send(text)
        envelope = seal(text, identity, key)
        self._record_sent(text, envelope)
        return envelope

    async def send_async(self, text: str) -> SealedEnvelope:
        """Seal on the default executor; history is updated on the loop thread."""
        text, identity, key = self._prepare_send(text)
        loop = asyncio.get_running_loop()
        envelope = await loop.run_in_executor(None, seal, text, identity, key)
        self._record_sent(text, envelope)
        return envelope

    def _record_received(self, envelope: SealedEnvelope, text: str) -> PlainMessage:
        message = PlainMessage(
            sender_id=envelope.sender_id,
            text=text,
            is_local_origin=False,
            timestamp=envelope.timestamp,
            message_id=envelope.id,
        )
        self.history.append(message)
        return message

    def _record_rejected(self, envelope: SealedEnvelope, exc: CipherlinkError) -> PlainMessage:
        logger.warning(f"Rejected envelope {envelope.id}: [{exc.code.value}] {exc.message}")
        notice = PlainMessage.rejection(exc, envelope.timestamp)
        self.history.append(notice)
        return notice

    def receive(self, envelope: SealedEnvelope) -> PlainMessage:
        """
        Open an envelope from the connected peer.

        Verification and decryption failures are returned (and recorded) as
        in-band notices with `error` set. Other errors propagate.
        """
        peer = self._require_peer()
        key = self.keys.require(peer.id)
        try:
            text = open_envelope(envelope, peer, key)
        except (SignatureVerificationError, DecryptionError) as e:
            return self._record_rejected(envelope, e)
        return self._record_received(envelope, text)

    async def receive_async(self, envelope: SealedEnvelope) -> PlainMessage:
        peer = self._require_peer()
        key = self.keys.require(peer.id)
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, open_envelope, envelope, peer, key)
        except (SignatureVerificationError, DecryptionError) as e:
            return self._record_rejected(envelope, e)
        return self._record_received(envelope, text)

    # Lifecycle

    def delete(self) -> None:
        """Destroy the identity and all conversation state."""
        self.keys.clear()
        self.history.clear()
        self.peer = None
        self.identity = None
        logger.info("Session deleted")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": STORE_FORMAT_VERSION,
            "identity": self._require_identity().to_dict(),
            "peer": self.peer.to_wire() if self.peer else None,
            "session_keys": self.keys.to_dict(),
            "history": {"max_size": self.history.max_size, "messages": self.history.to_list()},
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ChatSession":
        try:
            identity = Identity.from_dict(data["identity"])
            peer_data = data.get("peer")
            peer = PeerIdentity.from_wire(peer_data) if peer_data else None
            keys = SessionKeyStore.from_dict(data.get("session_keys", {}))
            history_data = data.get("history", {})
            history = MessageHistory.from_list(
                history_data.get("messages", []), history_data.get("max_size", MAX_HISTORY)
            )
        except (KeyError, TypeError, AttributeError, ValueError, CryptoError, PeerError) as e:
            raise IdentityError(
                ErrorCode.E305_INVALID_IDENTITY, f"Invalid session data: {e}"
            ) from e
        return ChatSession(identity, peer, keys, history)
