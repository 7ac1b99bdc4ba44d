"""
Cipherlink - Custom Exception Classes and Error Codes

Every failure Cipherlink raises carries an ErrorCode. Protocol-core
failures (CryptoError subclasses) are also what a receiver turns into an
in-band rejection notice instead of propagating.

Author: orpheus497
Version: 1.0.0
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Enumeration of all Cipherlink error codes."""

    # General Errors (E001-E099)
    E001_UNKNOWN_ERROR = "E001"
    E002_INVALID_ARGUMENT = "E002"

    # Crypto Errors (E100-E199)
    E100_CRYPTO_ERROR = "E100"
    E102_DECRYPTION_FAILED = "E102"
    E103_KEY_USAGE = "E103"
    E104_KEY_GENERATION_FAILED = "E104"
    E105_SIGNATURE_FAILED = "E105"
    E106_VERIFICATION_FAILED = "E106"
    E109_RANDOMNESS_UNAVAILABLE = "E109"
    E110_ENCODING_FAILED = "E110"
    E111_SESSION_KEY_MISSING = "E111"

    # Envelope Errors (E200-E299)
    E206_MALFORMED_ENVELOPE = "E206"

    # Identity Errors (E300-E399)
    E300_IDENTITY_ERROR = "E300"
    E305_INVALID_IDENTITY = "E305"

    # Peer Errors (E400-E499)
    E400_PEER_ERROR = "E400"
    E401_NO_PEER = "E401"
    E402_SELF_PEER = "E402"
    E403_FINGERPRINT_MISMATCH = "E403"
    E405_INVALID_PEER = "E405"

    # Storage Errors (E600-E699)
    E600_STORAGE_ERROR = "E600"
    E601_SESSION_NOT_FOUND = "E601"
    E602_SESSION_DECRYPT_FAILED = "E602"
    E603_SESSION_CORRUPTED = "E603"
    E604_SESSION_SAVE_FAILED = "E604"

    # Config Errors (E700-E799)
    E700_CONFIG_ERROR = "E700"
    E702_CONFIG_SAVE_FAILED = "E702"
    E703_INVALID_CONFIG = "E703"
    E704_CONFIG_PARSE_ERROR = "E704"


class CipherlinkError(Exception):
    """Base exception class for all Cipherlink errors.

    Attributes:
        code: Error code from ErrorCode enum
        message: Human-readable error message
        details: Additional error details (optional)
    """

    def __init__(self, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {"code": self.code.value, "message": self.message, "details": self.details}


class CryptoError(CipherlinkError):
    """Base class for failures inside the envelope protocol core."""

    default_code = ErrorCode.E100_CRYPTO_ERROR
    default_message = "Cryptographic operation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: Optional[ErrorCode] = None,
    ):
        super().__init__(code or self.default_code, message or self.default_message, details)


class KeyGenerationError(CryptoError):
    """The key generation facility failed; no identity is created."""

    default_code = ErrorCode.E104_KEY_GENERATION_FAILED
    default_message = "Key generation failed"


class KeyUsageError(CryptoError):
    """A key was used outside its declared usage, or cannot serve it."""

    default_code = ErrorCode.E103_KEY_USAGE
    default_message = "Key cannot be used for this operation"


class MalformedEnvelopeError(CryptoError):
    """An envelope failed structural or encoding validation."""

    default_code = ErrorCode.E206_MALFORMED_ENVELOPE
    default_message = "Envelope is malformed"


class RandomnessUnavailableError(CryptoError):
    """The operating system CSPRNG could not provide random bytes."""

    default_code = ErrorCode.E109_RANDOMNESS_UNAVAILABLE
    default_message = "Secure randomness is unavailable"


class SigningError(CryptoError):
    """The sender's key could not produce a signature."""

    default_code = ErrorCode.E105_SIGNATURE_FAILED
    default_message = "Signing failed"


class SignatureVerificationError(CryptoError):
    """The envelope signature does not match the claimed sender."""

    default_code = ErrorCode.E106_VERIFICATION_FAILED
    default_message = "sender identity could not be verified"


class DecryptionError(CryptoError):
    """AEAD decryption failed (wrong session key or corrupted data)."""

    default_code = ErrorCode.E102_DECRYPTION_FAILED
    default_message = "Could not decrypt message; the session key may be wrong"


class EncodingError(CryptoError):
    """Text could not be encoded for sealing or decoded after opening."""

    default_code = ErrorCode.E110_ENCODING_FAILED
    default_message = "Message text is not valid"


class SessionKeyError(CryptoError):
    """No usable session key exists for a peer relationship."""

    default_code = ErrorCode.E111_SESSION_KEY_MISSING
    default_message = "No session key for this peer"


class IdentityError(CipherlinkError):
    """Exception raised for identity creation and validation failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E300_IDENTITY_ERROR,
        message: str = "Identity operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class PeerError(CipherlinkError):
    """Exception raised when connecting to or addressing a peer fails."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E400_PEER_ERROR,
        message: str = "Peer operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class StorageError(CipherlinkError):
    """Exception raised for session store failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E600_STORAGE_ERROR,
        message: str = "Storage operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class ConfigError(CipherlinkError):
    """Exception raised for configuration failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E700_CONFIG_ERROR,
        message: str = "Configuration operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)
