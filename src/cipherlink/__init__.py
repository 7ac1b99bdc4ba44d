"""
Cipherlink - Signed, Encrypted Peer-to-Peer Message Envelopes

Each participant holds a long-term RSA-PSS signing identity, each pair of
participants shares an AES-256-GCM session key, and every message travels
as an envelope that is encrypted, then signed, and on receipt verified,
then decrypted.

Author: orpheus497
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "orpheus497"
__license__ = "MIT"

from .config import Config
from .constants import APP_NAME, VERSION
from .envelope import SealedEnvelope, decode_fields, encode_fields
from .errors import (
    CipherlinkError,
    ConfigError,
    CryptoError,
    DecryptionError,
    EncodingError,
    ErrorCode,
    IdentityError,
    KeyGenerationError,
    KeyUsageError,
    MalformedEnvelopeError,
    PeerError,
    RandomnessUnavailableError,
    SessionKeyError,
    SignatureVerificationError,
    SigningError,
    StorageError,
)
from .identity import Identity, PeerIdentity, export_public_key, generate_identity
from .message import MessageHistory, PlainMessage
from .opener import open_envelope
from .sealer import seal
from .session import ChatSession
from .session_key import SessionKey, SessionKeyStore, create_session_key
from .storage import SessionStore
from .transport import LoopbackTransport

__all__ = [
    "APP_NAME",
    "VERSION",
    "ChatSession",
    "CipherlinkError",
    "Config",
    "ConfigError",
    "CryptoError",
    "DecryptionError",
    "EncodingError",
    "ErrorCode",
    "Identity",
    "IdentityError",
    "KeyGenerationError",
    "KeyUsageError",
    "LoopbackTransport",
    "MalformedEnvelopeError",
    "MessageHistory",
    "PeerError",
    "PeerIdentity",
    "PlainMessage",
    "RandomnessUnavailableError",
    "SealedEnvelope",
    "SessionKey",
    "SessionKeyError",
    "SessionKeyStore",
    "SessionStore",
    "SignatureVerificationError",
    "SigningError",
    "StorageError",
    "create_session_key",
    "decode_fields",
    "encode_fields",
    "export_public_key",
    "generate_identity",
    "open_envelope",
    "seal",
    "__author__",
    "__license__",
    "__version__",
]
