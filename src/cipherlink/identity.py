"""
Cipherlink - Identity management.

Created by orpheus497

An Identity is created once at onboarding and is immutable afterwards. Its
private signing key never leaves this process except inside the encrypted
session store. A PeerIdentity is the public subset that is exchanged out of
band (copy/paste or QR) and is validated strictly on the way in.
"""

import copy
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from . import crypto
from .constants import (
    KEY_USAGE_VERIFY,
    PEER_IDENTITY_FIELDS,
    RSA_DEFAULT_KEY_SIZE,
)
from .errors import ErrorCode, IdentityError, KeyUsageError, PeerError
from .utils import validate_display_name, validate_fingerprint, validate_uid

logger = logging.getLogger(__name__)


class Identity:
    """Represents the local participant's identity with its signing key pair."""

    def __init__(
        self,
        uid: str,
        display_name: str,
        keypair: crypto.IdentityKeyPair,
        created_at: Optional[str] = None,
    ):
        self.id = uid
        self.display_name = display_name
        self.keypair = keypair
        self.fingerprint = crypto.compute_fingerprint(crypto.serialize_key(keypair.verify_key))
        self.created_at = created_at or datetime.now(timezone.utc).isoformat()

    @property
    def signing_key(self) -> crypto.IdentityKey:
        return self.keypair.signing_key

    @property
    def verify_key(self) -> crypto.IdentityKey:
        return self.keypair.verify_key

    def to_dict(self) -> Dict[str, Any]:
        """Export identity, including the private key, for encrypted storage."""
        return {
            "id": self.id,
            "display_name": self.display_name,
            "keypair": self.keypair.to_dict(),
            "fingerprint": self.fingerprint,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Identity":
        """Import identity from dictionary."""
        try:
            keypair = crypto.IdentityKeyPair.from_dict(data["keypair"])
            identity = Identity(data["id"], data["display_name"], keypair, data.get("created_at"))
        except (KeyError, TypeError, KeyUsageError) as e:
            raise IdentityError(
                ErrorCode.E305_INVALID_IDENTITY, f"Invalid identity data: {e}"
            ) from e
        if not validate_uid(identity.id):
            raise IdentityError(
                ErrorCode.E305_INVALID_IDENTITY, "Identity id is not a valid UUID", {"id": identity.id}
            )
        stored = data.get("fingerprint")
        if stored is not None and stored != identity.fingerprint:
            raise IdentityError(
                ErrorCode.E305_INVALID_IDENTITY,
                "Stored fingerprint does not match identity key",
                {"stored": stored, "computed": identity.fingerprint},
            )
        return identity

    def __repr__(self) -> str:
        return f"Identity(id={self.id!r}, display_name={self.display_name!r}, fingerprint={self.fingerprint!r})"


class PeerIdentity:
    """The public identity of a remote participant."""

    def __init__(self, uid: str, display_name: str, public_jwk: Dict[str, Any], fingerprint: str):
        self.id = uid
        self.display_name = display_name
        self.public_jwk = copy.deepcopy(public_jwk)
        self.fingerprint = fingerprint
        self.verify_key = crypto.deserialize_key(self.public_jwk, KEY_USAGE_VERIFY)

    @property
    def signing_public_key(self) -> crypto.IdentityKey:
        return self.verify_key

    def fingerprint_matches(self) -> bool:
        """True if the advertised fingerprint matches the public key."""
        return crypto.compute_fingerprint(self.public_jwk) == self.fingerprint

    def to_wire(self) -> Dict[str, Any]:
        """Export to the shareable wire format."""
        return {
            "userId": self.id,
            "username": self.display_name,
            "publicKey": copy.deepcopy(self.public_jwk),
            "publicKeyFingerprint": self.fingerprint,
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_wire(), indent=indent)

    @staticmethod
    def from_wire(data: Any) -> "PeerIdentity":
        """
        Parse a peer-supplied public identity with strict validation.

        The object must contain exactly userId, username, publicKey and
        publicKeyFingerprint. The fingerprint must equal the fingerprint
        recomputed from publicKey.

        Raises:
            PeerError: E405 on schema violations or unusable keys, E403 on a
                fingerprint mismatch.
        """
        if not isinstance(data, dict):
            raise PeerError(ErrorCode.E405_INVALID_PEER, "Peer identity must be a JSON object")

        missing = [field for field in PEER_IDENTITY_FIELDS if field not in data]
        extra = sorted(set(data) - set(PEER_IDENTITY_FIELDS))
        if missing or extra:
            raise PeerError(
                ErrorCode.E405_INVALID_PEER,
                "Invalid peer data structure",
                {"missing": missing, "unexpected": extra},
            )

        uid = data["userId"]
        username = data["username"]
        fingerprint = data["publicKeyFingerprint"]
        public_jwk = data["publicKey"]

        if not isinstance(uid, str) or not uid:
            raise PeerError(ErrorCode.E405_INVALID_PEER, "userId must be a non-empty string")
        if not validate_display_name(username):
            raise PeerError(ErrorCode.E405_INVALID_PEER, "username is not a valid display name")
        if not validate_fingerprint(fingerprint):
            raise PeerError(
                ErrorCode.E405_INVALID_PEER,
                "publicKeyFingerprint must be 16 uppercase hex characters",
            )

        try:
            peer = PeerIdentity(uid, username.strip(), public_jwk, fingerprint)
        except KeyUsageError as e:
            raise PeerError(
                ErrorCode.E405_INVALID_PEER, f"Peer public key is unusable: {e.message}"
            ) from e

        if not peer.fingerprint_matches():
            raise PeerError(
                ErrorCode.E403_FINGERPRINT_MISMATCH,
                "Peer fingerprint does not match its public key",
                {"advertised": fingerprint},
            )
        return peer

    @staticmethod
    def from_json(text: Union[str, bytes]) -> "PeerIdentity":
        """Parse pasted or scanned peer identity JSON."""
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PeerError(
                ErrorCode.E405_INVALID_PEER, "Invalid peer identity format: not valid JSON"
            ) from e
        return PeerIdentity.from_wire(data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PeerIdentity):
            return NotImplemented
        return self.to_wire() == other.to_wire()

    def __repr__(self) -> str:
        return f"PeerIdentity(id={self.id!r}, display_name={self.display_name!r}, fingerprint={self.fingerprint!r})"


def generate_identity(display_name: str, key_size: int = RSA_DEFAULT_KEY_SIZE) -> Identity:
    """
    Create a new identity at onboarding.

    1. Validate the display name
    2. Generate a fresh RSA-PSS signing key pair
    3. Assign a random UUID and compute the fingerprint

    Raises:
        IdentityError: If the display name is empty or invalid
        KeyGenerationError: If key generation fails; no identity is created
    """
    if not validate_display_name(display_name):
        raise IdentityError(
            ErrorCode.E305_INVALID_IDENTITY,
            "Display name cannot be empty or contain control characters",
        )
    keypair = crypto.IdentityKeyPair(key_size=key_size)
    identity = Identity(crypto.generate_uid(), display_name.strip(), keypair)
    logger.info(f"Identity created: {identity.display_name} ({identity.fingerprint})")
    return identity


def export_public_key(identity: Identity) -> PeerIdentity:
    """Project an Identity to its public PeerIdentity. Pure, never fails."""
    public_jwk = crypto.serialize_key(identity.verify_key)
    return PeerIdentity(identity.id, identity.display_name, public_jwk, identity.fingerprint)
