"""
Cipherlink - Session key management.

Created by orpheus497

Each peer relationship shares one symmetric AES-256-GCM session key. The
key is generated locally by one side and shared by convention; there is no
authenticated key agreement. The store enforces
the lifecycle rules: exactly one active key per peer, and replacing a peer
discards its key so a stale key is never reused for another relationship.
"""

import base64
import binascii
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .constants import SESSION_KEY_ALGORITHM, SESSION_KEY_SIZE
from .crypto import secure_random
from .errors import ErrorCode, KeyUsageError, SessionKeyError

logger = logging.getLogger(__name__)


class SessionKey:
    """A 256-bit symmetric AEAD key shared by both ends of a relationship."""

    def __init__(self, key_bytes: bytes, created_at: Optional[str] = None):
        if not isinstance(key_bytes, bytes) or len(key_bytes) != SESSION_KEY_SIZE:
            raise KeyUsageError(
                f"Session key must be exactly {SESSION_KEY_SIZE} bytes",
                {"expected": SESSION_KEY_SIZE},
            )
        self.key_bytes = key_bytes
        self.created_at = created_at or datetime.now(timezone.utc).isoformat()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SessionKey):
            return NotImplemented
        return self.key_bytes == other.key_bytes

    def __hash__(self) -> int:
        return hash(self.key_bytes)

    def __repr__(self) -> str:
        # Never include key material in reprs or logs
        return f"SessionKey(created_at={self.created_at!r})"


def create_session_key() -> SessionKey:
    """Generate a fresh session key from the OS CSPRNG."""
    return SessionKey(secure_random(SESSION_KEY_SIZE))


def serialize_session_key(key: SessionKey) -> Dict[str, Any]:
    """Export a session key as an `oct` JWK."""
    return {
        "kty": "oct",
        "k": base64.urlsafe_b64encode(key.key_bytes).rstrip(b"=").decode("ascii"),
        "alg": SESSION_KEY_ALGORITHM,
        "ext": True,
        "key_ops": ["encrypt", "decrypt"],
    }


def deserialize_session_key(jwk: Dict[str, Any]) -> SessionKey:
    """
    Import a session key from an `oct` JWK.

    Raises:
        KeyUsageError: If the JWK is not a 256-bit AES-GCM key.
    """
    if not isinstance(jwk, dict) or jwk.get("kty") != "oct":
        raise KeyUsageError("Session key JWK must have kty 'oct'")
    alg = jwk.get("alg")
    if alg is not None and alg != SESSION_KEY_ALGORITHM:
        raise KeyUsageError(f"Unsupported session key algorithm: {alg!r}", {"alg": alg})
    key_ops = jwk.get("key_ops")
    if key_ops is not None and (
        not isinstance(key_ops, list) or not {"encrypt", "decrypt"}.issubset(key_ops)
    ):
        raise KeyUsageError("Session key must allow encrypt and decrypt", {"key_ops": key_ops})

    encoded = jwk.get("k")
    if not isinstance(encoded, str):
        raise KeyUsageError("Session key JWK is missing 'k'")
    try:
        raw = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))
    except (binascii.Error, ValueError) as e:
        raise KeyUsageError("Session key is not valid base64url") from e
    return SessionKey(raw)


class SessionKeyStore:
    """Holds the active session key of each peer relationship."""

    def __init__(self):
        self._keys: Dict[str, SessionKey] = {}

    def establish(self, peer_id: str) -> SessionKey:
        """Create a fresh key for peer_id, discarding any previous one."""
        if peer_id in self._keys:
            logger.info(f"Rotating session key for peer {peer_id}")
        key = create_session_key()
        self._keys[peer_id] = key
        return key

    def install(self, peer_id: str, key: SessionKey) -> None:
        """
        Install an externally shared key for peer_id.

        Raises:
            SessionKeyError: If the same key is already active for a different
                peer. Keys never cross relationships.
        """
        for other_id, other_key in self._keys.items():
            if other_id != peer_id and other_key == key:
                raise SessionKeyError(
                    "Session key is already bound to another peer",
                    {"peer_id": peer_id, "bound_to": other_id},
                )
        self._keys[peer_id] = key
        logger.debug(f"Installed shared session key for peer {peer_id}")

    def get(self, peer_id: str) -> Optional[SessionKey]:
        return self._keys.get(peer_id)

    def require(self, peer_id: str) -> SessionKey:
        key = self._keys.get(peer_id)
        if key is None:
            raise SessionKeyError(
                code=ErrorCode.E111_SESSION_KEY_MISSING, details={"peer_id": peer_id}
            )
        return key

    def discard(self, peer_id: str) -> bool:
        """Forget the key for peer_id. Returns True if one was removed."""
        if self._keys.pop(peer_id, None) is None:
            return False
        logger.info(f"Discarded session key for peer {peer_id}")
        return True

    def clear(self) -> None:
        self._keys.clear()

    def __contains__(self, peer_id: str) -> bool:
        return peer_id in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """Export all keys for external persistence."""
        return {
            peer_id: {"key": serialize_session_key(key), "created_at": key.created_at}
            for peer_id, key in self._keys.items()
        }

    @staticmethod
    def from_dict(data: Dict[str, Dict[str, Any]]) -> "SessionKeyStore":
        store = SessionKeyStore()
        for peer_id, entry in data.items():
            key = deserialize_session_key(entry["key"])
            key.created_at = entry.get("created_at", key.created_at)
            store.install(peer_id, key)
        return store
