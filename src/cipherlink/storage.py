"""
Cipherlink - Encrypted session storage.

Created by orpheus497

Persists a ChatSession (identity, peer, session keys, history) in a single
password-protected file:
- Argon2id password-based key derivation (time 3, 64 MB, parallelism 4)
- AES-256-GCM authenticated encryption
- Unique salt and nonce per save
- Atomic writes through a temporary file and os.replace

The envelope protocol itself never touches the disk.
"""

import base64
import binascii
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Union

import aiofiles
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .constants import (
    ARGON2_HASH_LEN,
    ARGON2_MEMORY_COST,
    ARGON2_PARALLELISM,
    ARGON2_TIME_COST,
    NONCE_SIZE,
    SALT_SIZE,
    STORE_FORMAT_VERSION,
)
from .crypto import secure_random
from .errors import ErrorCode, IdentityError, StorageError
from .session import ChatSession

logger = logging.getLogger(__name__)


def derive_storage_key(password: str, salt: bytes) -> bytes:
    """
    Derive the 256-bit file key from a password using Argon2id.

    Argon2id resists GPU/ASIC cracking and side-channel attacks, making
    offline guessing of the session password expensive.
    """
    return hash_secret_raw(
        secret=password.encode("utf-8"),
        salt=salt,
        time_cost=ARGON2_TIME_COST,
        memory_cost=ARGON2_MEMORY_COST,
        parallelism=ARGON2_PARALLELISM,
        hash_len=ARGON2_HASH_LEN,
        type=Type.ID,
    )


def encrypt_session_data(data: Dict[str, Any], password: str) -> Dict[str, str]:
    """Encrypt session data with a password-derived key."""
    salt = secure_random(SALT_SIZE)
    key = derive_storage_key(password, salt)
    nonce = secure_random(NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, json.dumps(data).encode("utf-8"), None)
    return {
        "salt": base64.b64encode(salt).decode("utf-8"),
        "nonce": base64.b64encode(nonce).decode("utf-8"),
        "ciphertext": base64.b64encode(ciphertext).decode("utf-8"),
        "version": STORE_FORMAT_VERSION,
    }


def decrypt_session_data(encrypted_data: Dict[str, str], password: str) -> Dict[str, Any]:
    """
    Decrypt session data with a password.

    Raises:
        StorageError: E602 if the password is wrong or the file was tampered
            with, E603 if the container itself is malformed
    """
    try:
        salt = base64.b64decode(encrypted_data["salt"], validate=True)
        nonce = base64.b64decode(encrypted_data["nonce"], validate=True)
        ciphertext = base64.b64decode(encrypted_data["ciphertext"], validate=True)
    except (KeyError, TypeError, binascii.Error) as e:
        raise StorageError(
            ErrorCode.E603_SESSION_CORRUPTED, f"Session file is malformed: {e}"
        ) from e

    key = derive_storage_key(password, salt)
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, None)
    except (InvalidTag, ValueError) as e:
        raise StorageError(
            ErrorCode.E602_SESSION_DECRYPT_FAILED,
            "Failed to decrypt session. Incorrect password or corrupted file.",
        ) from e
    return json.loads(plaintext.decode("utf-8"))


class SessionStore:
    """Loads and saves one ChatSession in an encrypted file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def exists(self) -> bool:
        """Check if a session file exists."""
        return self.path.exists()

    def _serialize(self, session: ChatSession, password: str) -> str:
        encrypted_data = encrypt_session_data(session.to_dict(), password)
        return json.dumps(encrypted_data, indent=2, ensure_ascii=False)

    def save(self, session: ChatSession, password: str) -> None:
        """Save session to the encrypted file (synchronous, atomic)."""
        json_data = self._serialize(session, password)
        temp_file = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w", encoding="utf-8") as f:
                f.write(json_data)
            os.replace(temp_file, self.path)
        except OSError as e:
            logger.error(f"Failed to save session: {e}", exc_info=True)
            raise StorageError(
                ErrorCode.E604_SESSION_SAVE_FAILED,
                f"Failed to save session: {e}",
                {"path": str(self.path)},
            ) from e
        logger.info(f"Session saved: {self.path}")

    async def save_async(self, session: ChatSession, password: str) -> None:
        """Save session to the encrypted file asynchronously."""
        json_data = self._serialize(session, password)
        temp_file = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(temp_file, "w", encoding="utf-8") as f:
                await f.write(json_data)
            os.replace(temp_file, self.path)
        except OSError as e:
            logger.error(f"Failed to save session (async): {e}", exc_info=True)
            raise StorageError(
                ErrorCode.E604_SESSION_SAVE_FAILED,
                f"Failed to save session: {e}",
                {"path": str(self.path)},
            ) from e
        logger.info(f"Session saved (async): {self.path}")

    def load(self, password: str) -> ChatSession:
        """
        Load the session from the encrypted file.

        Raises:
            StorageError: E601 if there is no session file, E602 on a wrong
                password, E603 if the file is corrupted
        """
        if not self.path.exists():
            raise StorageError(
                ErrorCode.E601_SESSION_NOT_FOUND,
                "No session found; create an identity first",
                {"path": str(self.path)},
            )
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                encrypted_data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupted session file (invalid JSON): {e}")
            raise StorageError(
                ErrorCode.E603_SESSION_CORRUPTED, "Session file is not valid JSON"
            ) from e

        data = decrypt_session_data(encrypted_data, password)
        try:
            session = ChatSession.from_dict(data)
        except IdentityError as e:
            logger.error(f"Decrypted session does not match the store format: {e.message}")
            raise StorageError(
                ErrorCode.E603_SESSION_CORRUPTED,
                "Session file is corrupted",
                {"path": str(self.path), "error": e.message},
            ) from e
        logger.info(f"Session loaded: {session.identity.display_name}")
        return session

    def delete(self) -> bool:
        """
        Delete the session file (explicit account deletion).

        Returns True if a file was removed.
        """
        if not self.path.exists():
            logger.warning("Session file does not exist, nothing to delete")
            return False
        try:
            self.path.unlink()
        except OSError as e:
            logger.error(f"Failed to delete session file: {e}", exc_info=True)
            raise StorageError(
                ErrorCode.E600_STORAGE_ERROR, f"Failed to delete session: {e}"
            ) from e
        logger.info(f"Session deleted: {self.path}")
        return True
