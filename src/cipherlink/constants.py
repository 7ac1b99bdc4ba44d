"""
Cipherlink - Global Constants and Configuration Values

This module defines all constants used throughout the Cipherlink package.
All magic numbers and configuration defaults are centralized here.

Author: orpheus497
Version: 1.0.0
"""

# Version Information
VERSION = "1.0.0"
APP_NAME = "Cipherlink"

# Identity Keys (RSA-PSS)
RSA_PUBLIC_EXPONENT = 65537
RSA_DEFAULT_KEY_SIZE = 2048
RSA_MIN_KEY_SIZE = 2048
PSS_SALT_LENGTH = 32  # bytes, matches the SHA-256 digest size
SIGNING_ALGORITHM = "PS256"
KEY_USAGE_SIGN = "sign"
KEY_USAGE_VERIFY = "verify"

# Session Keys (AES-256-GCM)
SESSION_KEY_SIZE = 32  # 256 bits
SESSION_KEY_ALGORITHM = "A256GCM"
NONCE_SIZE = 12  # 96 bits for GCM
GCM_TAG_SIZE = 16  # 128-bit authentication tag

# Fingerprints
FINGERPRINT_LENGTH = 16  # hex characters shown to users

# Envelope Limits
MAX_TEXT_LENGTH = 100 * 1024  # characters
MAX_SIGNATURE_SIZE = 1024  # bytes, enough for RSA-8192
MAX_ENVELOPE_JSON_SIZE = 1024 * 1024  # 1 MB

# Identity Limits
MAX_DISPLAY_NAME_LENGTH = 64
SYSTEM_SENDER_ID = "system"

# Message History
MAX_HISTORY = 1000

# Session Store Encryption (Argon2id + AES-256-GCM)
SALT_SIZE = 16  # 128 bits
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536  # 64 MB
ARGON2_PARALLELISM = 4
ARGON2_HASH_LEN = 32
STORE_FORMAT_VERSION = "1.0"

# File Paths
DEFAULT_DATA_DIR = "~/.cipherlink"
SESSION_FILENAME = "session.enc"
CONFIG_FILENAME = "config.toml"
LOGS_DIR = "logs"
LOG_FILENAME = "cipherlink.log"

# Logging Configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT = 5

# Environment
ENV_PREFIX = "CIPHERLINK"
PASSWORD_ENV_VAR = "CIPHERLINK_PASSWORD"

# Wire Field Names
ENVELOPE_FIELDS = ("id", "senderId", "iv", "encryptedData", "signature", "timestamp")
PEER_IDENTITY_FIELDS = ("userId", "username", "publicKey", "publicKeyFingerprint")
