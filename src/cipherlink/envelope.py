"""
Cipherlink - Sealed envelope wire format.

Created by orpheus497

A sealed envelope is the transportable unit of the protocol. On the wire it
is a JSON object with exactly these fields:

- id: unique envelope id (string)
- senderId: sender identity id (string)
- iv: base64 AES-GCM nonce (12 bytes)
- encryptedData: base64 AES-GCM ciphertext including the 16-byte tag
- signature: base64 RSA-PSS signature over the raw ciphertext
- timestamp: integer milliseconds since the epoch

Each binary field is encoded independently with standard padded base64.
Decoding is strict: any missing or unexpected field, wrong type, invalid
base64 or unexpected length raises MalformedEnvelopeError before any field
is trusted.
"""

import base64
import binascii
import json
from typing import Any, Dict, Tuple, Union

from .constants import (
    ENVELOPE_FIELDS,
    GCM_TAG_SIZE,
    MAX_ENVELOPE_JSON_SIZE,
    MAX_SIGNATURE_SIZE,
    NONCE_SIZE,
)
from .errors import MalformedEnvelopeError


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(value: Any, field: str) -> bytes:
    if not isinstance(value, str):
        raise MalformedEnvelopeError(f"Field '{field}' must be a base64 string", {"field": field})
    try:
        return base64.b64decode(value.encode("ascii"), validate=True)
    except (binascii.Error, ValueError, UnicodeEncodeError) as e:
        raise MalformedEnvelopeError(f"Field '{field}' is not valid base64", {"field": field}) from e


def encode_fields(nonce: bytes, ciphertext: bytes, signature: bytes) -> Tuple[str, str, str]:
    """Encode the binary envelope fields as (iv, encryptedData, signature)."""
    return _b64encode(nonce), _b64encode(ciphertext), _b64encode(signature)


def decode_fields(iv: Any, encrypted_data: Any, signature: Any) -> Tuple[bytes, bytes, bytes]:
    """
    Decode and length-check the binary envelope fields.

    Returns:
        (nonce, ciphertext, signature) as raw bytes

    Raises:
        MalformedEnvelopeError: On invalid base64 or unexpected lengths
    """
    nonce = _b64decode(iv, "iv")
    ciphertext = _b64decode(encrypted_data, "encryptedData")
    raw_signature = _b64decode(signature, "signature")

    if len(nonce) != NONCE_SIZE:
        raise MalformedEnvelopeError(
            f"Nonce must be {NONCE_SIZE} bytes, got {len(nonce)}",
            {"field": "iv", "length": len(nonce)},
        )
    if len(ciphertext) < GCM_TAG_SIZE:
        raise MalformedEnvelopeError(
            f"Ciphertext is shorter than the {GCM_TAG_SIZE}-byte authentication tag",
            {"field": "encryptedData", "length": len(ciphertext)},
        )
    if not raw_signature or len(raw_signature) > MAX_SIGNATURE_SIZE:
        raise MalformedEnvelopeError(
            "Signature length is out of range",
            {"field": "signature", "length": len(raw_signature)},
        )
    return nonce, ciphertext, raw_signature


class SealedEnvelope:
    """An encrypted, signed message ready for transport."""

    def __init__(
        self,
        envelope_id: str,
        sender_id: str,
        nonce: bytes,
        ciphertext: bytes,
        signature: bytes,
        timestamp: int,
    ):
        self.id = envelope_id
        self.sender_id = sender_id
        self.nonce = nonce
        self.ciphertext = ciphertext
        self.signature = signature
        self.timestamp = timestamp

    def to_wire(self) -> Dict[str, Any]:
        iv, encrypted_data, signature = encode_fields(self.nonce, self.ciphertext, self.signature)
        return {
            "id": self.id,
            "senderId": self.sender_id,
            "iv": iv,
            "encryptedData": encrypted_data,
            "signature": signature,
            "timestamp": self.timestamp,
        }

    def to_json(self, indent: Any = None) -> str:
        return json.dumps(self.to_wire(), indent=indent)

    @staticmethod
    def from_wire(data: Any) -> "SealedEnvelope":
        """
        Parse a wire object into a SealedEnvelope.

        Raises:
            MalformedEnvelopeError: If the object does not match the schema
        """
        if not isinstance(data, dict):
            raise MalformedEnvelopeError("Envelope must be a JSON object")

        missing = [field for field in ENVELOPE_FIELDS if field not in data]
        extra = sorted(set(data) - set(ENVELOPE_FIELDS))
        if missing or extra:
            raise MalformedEnvelopeError(
                "Envelope fields do not match the expected schema",
                {"missing": missing, "unexpected": extra},
            )

        for field in ("id", "senderId"):
            if not isinstance(data[field], str) or not data[field]:
                raise MalformedEnvelopeError(
                    f"Field '{field}' must be a non-empty string", {"field": field}
                )

        timestamp = data["timestamp"]
        # bool is a subclass of int and must not pass as a timestamp
        if isinstance(timestamp, bool) or not isinstance(timestamp, int) or timestamp < 0:
            raise MalformedEnvelopeError(
                "Field 'timestamp' must be a non-negative integer", {"field": "timestamp"}
            )

        nonce, ciphertext, signature = decode_fields(
            data["iv"], data["encryptedData"], data["signature"]
        )
        return SealedEnvelope(data["id"], data["senderId"], nonce, ciphertext, signature, timestamp)

    @staticmethod
    def from_json(text: Union[str, bytes]) -> "SealedEnvelope":
        if len(text) > MAX_ENVELOPE_JSON_SIZE:
            raise MalformedEnvelopeError(
                "Envelope exceeds maximum size",
                {"size": len(text), "max_size": MAX_ENVELOPE_JSON_SIZE},
            )
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedEnvelopeError(f"Envelope is not valid JSON: {e}") from e
        return SealedEnvelope.from_wire(data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SealedEnvelope):
            return NotImplemented
        return self.to_wire() == other.to_wire()

    def __repr__(self) -> str:
        return (
            f"SealedEnvelope(id={self.id!r}, sender_id={self.sender_id!r}, "
            f"timestamp={self.timestamp}, ciphertext_len={len(self.ciphertext)})"
        )
