"""
Cipherlink - Identity key cryptography.

Created by orpheus497

This module implements the long-term identity layer of the envelope protocol:
- RSA-PSS (SHA-256, MGF1-SHA-256, 32-byte salt) signing key pairs
- Lossless JSON Web Key (JWK) import/export
- Usage-bound keys: a key imported for signing cannot verify and vice versa
- Public key fingerprints for out-of-band verification
- Fail-closed access to the operating system CSPRNG

All cryptographic operations use the well-tested cryptography library
(Apache 2.0/BSD License).
"""

import base64
import binascii
import hashlib
import json
import logging
import os
import uuid
from typing import Any, Dict, Optional, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .constants import (
    FINGERPRINT_LENGTH,
    KEY_USAGE_SIGN,
    KEY_USAGE_VERIFY,
    PSS_SALT_LENGTH,
    RSA_DEFAULT_KEY_SIZE,
    RSA_MIN_KEY_SIZE,
    RSA_PUBLIC_EXPONENT,
    SIGNING_ALGORITHM,
)
from .errors import KeyGenerationError, KeyUsageError, RandomnessUnavailableError

logger = logging.getLogger(__name__)

_KEY_USAGES = (KEY_USAGE_SIGN, KEY_USAGE_VERIFY)
_PRIVATE_JWK_FIELDS = ("d", "p", "q", "dp", "dq", "qi")


def _pss_padding() -> padding.PSS:
    return padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=PSS_SALT_LENGTH)


def _b64url_encode_uint(value: int) -> str:
    length = max(1, (value.bit_length() + 7) // 8)
    raw = value.to_bytes(length, "big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode_uint(data: Any, field: str) -> int:
    if not isinstance(data, str) or not data:
        raise KeyUsageError(f"JWK field '{field}' must be a non-empty string", {"field": field})
    try:
        raw = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
    except (binascii.Error, ValueError) as e:
        raise KeyUsageError(f"JWK field '{field}' is not base64url", {"field": field}) from e
    return int.from_bytes(raw, "big")


def secure_random(length: int) -> bytes:
    """
    Read `length` bytes from the operating system CSPRNG.

    Fails closed: if no secure source is available the caller gets
    RandomnessUnavailableError instead of weaker bytes.
    """
    try:
        return os.urandom(length)
    except (NotImplementedError, OSError) as e:
        logger.error(f"Secure random source unavailable: {e}")
        raise RandomnessUnavailableError(details={"error": str(e)}) from e


def generate_uid() -> str:
    """Generate a unique identifier (random UUID4 string)."""
    return str(uuid.uuid4())


def canonical_json(data: Any) -> bytes:
    """Serialize data as canonical JSON: sorted keys, no whitespace, UTF-8."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode(
        "utf-8"
    )


def compute_fingerprint(public_jwk: Dict[str, Any]) -> str:
    """
    Compute the display fingerprint of a public key.

    fingerprint = upper(hex(SHA-256(canonical_json(jwk)))[:16])

    The fingerprint is meant to be compared by humans over a trusted channel;
    it is not a cryptographic binding between the key and the peer id.
    """
    digest = hashlib.sha256(canonical_json(public_jwk)).hexdigest()
    return digest[:FINGERPRINT_LENGTH].upper()


class IdentityKey:
    """
    An RSA key restricted to a single usage.

    Sign-usage keys wrap a private key and may only sign; verify-usage keys
    wrap a public key and may only verify. Using a key any other way raises
    KeyUsageError.
    """

    def __init__(
        self, key: Union[rsa.RSAPrivateKey, rsa.RSAPublicKey], usage: str
    ):
        if usage not in _KEY_USAGES:
            raise KeyUsageError(f"Unknown key usage: {usage!r}", {"usage": usage})
        if usage == KEY_USAGE_SIGN and not isinstance(key, rsa.RSAPrivateKey):
            raise KeyUsageError("A public key cannot be used for signing", {"usage": usage})
        if usage == KEY_USAGE_VERIFY and not isinstance(key, rsa.RSAPublicKey):
            raise KeyUsageError("Verify keys must be public keys", {"usage": usage})
        self._key = key
        self.usage = usage

    @property
    def key_size(self) -> int:
        return self._key.key_size

    def sign(self, data: bytes) -> bytes:
        """Produce a salted RSA-PSS signature over data."""
        if self.usage != KEY_USAGE_SIGN:
            raise KeyUsageError(
                "Key is declared verify-only and cannot sign",
                {"usage": self.usage, "requested": KEY_USAGE_SIGN},
            )
        return self._key.sign(data, _pss_padding(), hashes.SHA256())

    def verify(self, signature: bytes, data: bytes) -> bool:
        """Return True if signature is a valid RSA-PSS signature over data."""
        if self.usage != KEY_USAGE_VERIFY:
            raise KeyUsageError(
                "Key is declared sign-only and cannot verify",
                {"usage": self.usage, "requested": KEY_USAGE_VERIFY},
            )
        try:
            self._key.verify(signature, data, _pss_padding(), hashes.SHA256())
            return True
        except InvalidSignature:
            return False

    def public_key(self) -> "IdentityKey":
        """Return the verify-only counterpart of this key."""
        if isinstance(self._key, rsa.RSAPrivateKey):
            return IdentityKey(self._key.public_key(), KEY_USAGE_VERIFY)
        return self

    def to_jwk(self) -> Dict[str, Any]:
        return serialize_key(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IdentityKey):
            return NotImplemented
        return self.usage == other.usage and serialize_key(self) == serialize_key(other)

    def __repr__(self) -> str:
        return f"IdentityKey(usage={self.usage!r}, key_size={self.key_size})"


def serialize_key(key: IdentityKey) -> Dict[str, Any]:
    """
    Export a key to its portable JWK form.

    Sign keys export the full private JWK (only ever written to local
    encrypted storage). Verify keys export the public JWK that is shared
    with peers and fingerprinted.
    """
    raw = key._key
    if isinstance(raw, rsa.RSAPrivateKey):
        numbers = raw.private_numbers()
        public_numbers = numbers.public_numbers
        jwk = {
            "kty": "RSA",
            "n": _b64url_encode_uint(public_numbers.n),
            "e": _b64url_encode_uint(public_numbers.e),
            "d": _b64url_encode_uint(numbers.d),
            "p": _b64url_encode_uint(numbers.p),
            "q": _b64url_encode_uint(numbers.q),
            "dp": _b64url_encode_uint(numbers.dmp1),
            "dq": _b64url_encode_uint(numbers.dmq1),
            "qi": _b64url_encode_uint(numbers.iqmp),
        }
    else:
        public_numbers = raw.public_numbers()
        jwk = {
            "kty": "RSA",
            "n": _b64url_encode_uint(public_numbers.n),
            "e": _b64url_encode_uint(public_numbers.e),
        }
    jwk["alg"] = SIGNING_ALGORITHM
    jwk["ext"] = True
    jwk["key_ops"] = [key.usage]
    return jwk


def deserialize_key(jwk: Dict[str, Any], usage: str) -> IdentityKey:
    """
    Import a key from JWK form, constrained to `usage` ("sign" or "verify").

    Raises:
        KeyUsageError: If the JWK is malformed, weaker than the minimum key
            size, declares key_ops that exclude `usage`, lacks private
            material for signing, or carries private material for verifying.
    """
    if usage not in _KEY_USAGES:
        raise KeyUsageError(f"Unknown key usage: {usage!r}", {"usage": usage})
    if not isinstance(jwk, dict):
        raise KeyUsageError("JWK must be a JSON object")
    if jwk.get("kty") != "RSA":
        raise KeyUsageError("JWK key type must be RSA", {"kty": jwk.get("kty")})

    alg = jwk.get("alg")
    if alg is not None and alg != SIGNING_ALGORITHM:
        raise KeyUsageError(f"Unsupported JWK algorithm: {alg!r}", {"alg": alg})

    key_ops = jwk.get("key_ops")
    if key_ops is not None:
        if not isinstance(key_ops, list) or usage not in key_ops:
            raise KeyUsageError(
                f"JWK key_ops do not permit '{usage}'", {"key_ops": key_ops, "usage": usage}
            )

    has_private = any(field in jwk for field in _PRIVATE_JWK_FIELDS)
    n = _b64url_decode_uint(jwk.get("n"), "n")
    e = _b64url_decode_uint(jwk.get("e"), "e")
    if n.bit_length() < RSA_MIN_KEY_SIZE:
        raise KeyUsageError(
            f"RSA modulus is too small: {n.bit_length()} bits",
            {"bits": n.bit_length(), "minimum": RSA_MIN_KEY_SIZE},
        )
    public_numbers = rsa.RSAPublicNumbers(e, n)

    try:
        if usage == KEY_USAGE_SIGN:
            if not has_private:
                raise KeyUsageError("A public JWK cannot be imported for signing")
            fields = {name: _b64url_decode_uint(jwk.get(name), name) for name in _PRIVATE_JWK_FIELDS}
            private_numbers = rsa.RSAPrivateNumbers(
                p=fields["p"],
                q=fields["q"],
                d=fields["d"],
                dmp1=fields["dp"],
                dmq1=fields["dq"],
                iqmp=fields["qi"],
                public_numbers=public_numbers,
            )
            return IdentityKey(private_numbers.private_key(), KEY_USAGE_SIGN)

        if has_private:
            raise KeyUsageError("Verify keys must not carry private key material")
        return IdentityKey(public_numbers.public_key(), KEY_USAGE_VERIFY)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise KeyUsageError(f"Invalid RSA key material: {e}", {"error": str(e)}) from e


class IdentityKeyPair:
    """
    Represents a participant's long-term signing key pair.

    RSA-PSS provides:
    - 112-bit security at 2048-bit modulus
    - Probabilistic (salted) signatures, so identical ciphertexts never
      produce identical signatures
    - Broad interoperability with WebCrypto JWK exports
    """

    def __init__(self, signing_key: Optional[IdentityKey] = None, key_size: int = RSA_DEFAULT_KEY_SIZE):
        if signing_key is None:
            signing_key = generate_signing_key(key_size)
        if signing_key.usage != KEY_USAGE_SIGN:
            raise KeyUsageError("Key pair requires a sign-usage private key")
        self.signing_key = signing_key
        self.verify_key = signing_key.public_key()

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """Export key pair to dictionary for storage."""
        return {"private": serialize_key(self.signing_key), "public": serialize_key(self.verify_key)}

    @staticmethod
    def from_dict(data: Dict[str, Dict[str, Any]]) -> "IdentityKeyPair":
        """Import key pair from dictionary."""
        keypair = IdentityKeyPair(deserialize_key(data["private"], KEY_USAGE_SIGN))
        public = data.get("public")
        if public is not None and deserialize_key(public, KEY_USAGE_VERIFY) != keypair.verify_key:
            raise KeyUsageError("Stored public key does not match the private key")
        return keypair


def generate_signing_key(key_size: int = RSA_DEFAULT_KEY_SIZE) -> IdentityKey:
    """
    Generate a fresh RSA private key for signing.

    Raises:
        KeyGenerationError: If the key size is too weak or the backend
            cannot generate a key.
    """
    if key_size < RSA_MIN_KEY_SIZE:
        raise KeyGenerationError(
            f"RSA key size must be at least {RSA_MIN_KEY_SIZE} bits",
            {"key_size": key_size},
        )
    try:
        private_key = rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=key_size)
    except (ValueError, UnsupportedAlgorithm, OSError, NotImplementedError) as e:
        logger.error(f"RSA key generation failed: {e}")
        raise KeyGenerationError(details={"key_size": key_size, "error": str(e)}) from e
    logger.debug(f"Generated {key_size}-bit RSA-PSS signing key")
    return IdentityKey(private_key, KEY_USAGE_SIGN)
