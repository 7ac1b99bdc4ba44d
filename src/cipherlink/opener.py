"""
Cipherlink - Envelope opening.

Created by orpheus497

Opening is verify-then-decrypt:
1. Check the envelope claims to come from the expected peer
2. Verify the RSA-PSS signature over the ciphertext with the peer's public
   key; on failure stop immediately, the ciphertext is never decrypted
3. Decrypt with AES-256-GCM; tag mismatch means wrong key or corruption
4. Decode the plaintext as UTF-8

Every failure is terminal and raised as a typed error. There are no retries.
"""

import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .envelope import SealedEnvelope
from .errors import (
    DecryptionError,
    EncodingError,
    KeyUsageError,
    SignatureVerificationError,
)
from .identity import PeerIdentity
from .session_key import SessionKey

logger = logging.getLogger(__name__)


def verify_envelope(envelope: SealedEnvelope, claimed_sender: PeerIdentity) -> None:
    """
    Verify that envelope was signed by claimed_sender.

    Raises:
        SignatureVerificationError: If the sender id or signature does not match
    """
    details = {"envelope_id": envelope.id, "sender_id": envelope.sender_id}
    if envelope.sender_id != claimed_sender.id:
        logger.warning(
            f"Envelope {envelope.id} claims sender {envelope.sender_id}, expected {claimed_sender.id}"
        )
        raise SignatureVerificationError(details=details)
    try:
        verified = claimed_sender.verify_key.verify(envelope.signature, envelope.ciphertext)
    except KeyUsageError as e:
        raise SignatureVerificationError(details=details) from e
    if not verified:
        logger.warning(f"Signature verification failed for envelope {envelope.id}")
        raise SignatureVerificationError(details=details)


def open_envelope(
    envelope: SealedEnvelope, claimed_sender: PeerIdentity, session_key: SessionKey
) -> str:
    """
    Verify, decrypt and decode an envelope.

    Returns:
        The plaintext string (possibly empty)

    Raises:
        SignatureVerificationError: Sender could not be verified
        DecryptionError: Wrong session key or corrupted ciphertext
        EncodingError: Decrypted bytes are not valid UTF-8
    """
    verify_envelope(envelope, claimed_sender)

    try:
        plaintext = AESGCM(session_key.key_bytes).decrypt(envelope.nonce, envelope.ciphertext, None)
    except (InvalidTag, ValueError) as e:
        # ValueError: nonce length outside what AES-GCM accepts
        logger.warning(f"Decryption failed for envelope {envelope.id}")
        raise DecryptionError(details={"envelope_id": envelope.id}) from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise EncodingError(
            "Decrypted message is not valid UTF-8 text", {"envelope_id": envelope.id}
        ) from e
