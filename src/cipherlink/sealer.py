"""
Cipherlink - Message sealing.

Created by orpheus497

Sealing turns plaintext into a SealedEnvelope:
1. Draw a fresh 96-bit nonce from the OS CSPRNG (never reused, never
   fabricated if the CSPRNG is unavailable)
2. Encrypt the UTF-8 plaintext with AES-256-GCM under the session key
3. Sign the ciphertext with the sender's RSA-PSS private key
4. Assemble the envelope with a fresh id and the current time

Construction is atomic: any failure in steps 1-3 raises before an envelope
exists.
"""

import logging

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .constants import MAX_TEXT_LENGTH, NONCE_SIZE
from .crypto import generate_uid, secure_random
from .envelope import SealedEnvelope
from .errors import EncodingError, KeyUsageError, SigningError
from .identity import Identity
from .session_key import SessionKey
from .utils import now_ms

logger = logging.getLogger(__name__)


def encode_plaintext(plaintext: str) -> bytes:
    """
    Validate and UTF-8 encode message text.

    Raises:
        EncodingError: If plaintext is not a str, is too long, or cannot be
            encoded (e.g. lone surrogates)
    """
    if not isinstance(plaintext, str):
        raise EncodingError("Plaintext must be a string", {"type": type(plaintext).__name__})
    if len(plaintext) > MAX_TEXT_LENGTH:
        raise EncodingError(
            f"Message too large: {len(plaintext)} > {MAX_TEXT_LENGTH}",
            {"size": len(plaintext), "max_size": MAX_TEXT_LENGTH},
        )
    try:
        return plaintext.encode("utf-8")
    except UnicodeEncodeError as e:
        raise EncodingError("Plaintext cannot be encoded as UTF-8") from e


def seal(plaintext: str, sender: Identity, session_key: SessionKey) -> SealedEnvelope:
    """
    Encrypt and sign plaintext for transport.

    Args:
        plaintext: Message text
        sender: Local identity whose private key signs the ciphertext
        session_key: Session key shared with the recipient

    Returns:
        A complete SealedEnvelope

    Raises:
        EncodingError: If the plaintext is invalid
        RandomnessUnavailableError: If no nonce can be drawn
        SigningError: If the sender key cannot sign
    """
    data = encode_plaintext(plaintext)

    nonce = secure_random(NONCE_SIZE)
    ciphertext = AESGCM(session_key.key_bytes).encrypt(nonce, data, None)

    try:
        signature = sender.signing_key.sign(ciphertext)
    except KeyUsageError as e:
        raise SigningError(
            f"Sender key cannot sign: {e.message}", {"sender_id": sender.id}
        ) from e
    except (ValueError, TypeError) as e:
        logger.error(f"RSA-PSS signing failed for sender {sender.id}: {e}")
        raise SigningError(details={"sender_id": sender.id, "error": str(e)}) from e

    envelope = SealedEnvelope(
        envelope_id=generate_uid(),
        sender_id=sender.id,
        nonce=nonce,
        ciphertext=ciphertext,
        signature=signature,
        timestamp=now_ms(),
    )
    logger.debug(f"Sealed envelope {envelope.id} ({len(ciphertext)} bytes)")
    return envelope
