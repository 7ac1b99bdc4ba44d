"""
Cipherlink - Seal and open tests.

Created by orpheus497

Tests the encrypt-then-sign / verify-then-decrypt envelope pipeline,
including tampering, wrong keys and impersonation.
"""

import base64
from types import SimpleNamespace

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from cipherlink import crypto
from cipherlink.envelope import SealedEnvelope
from cipherlink.errors import (
    DecryptionError,
    EncodingError,
    ErrorCode,
    RandomnessUnavailableError,
    SignatureVerificationError,
    SigningError,
)
from cipherlink.identity import export_public_key
from cipherlink.opener import open_envelope, verify_envelope
from cipherlink.sealer import encode_plaintext, seal
from cipherlink.session_key import create_session_key


@pytest.fixture
def session_key():
    return create_session_key()


@pytest.fixture
def alice_public(alice_identity):
    return export_public_key(alice_identity)


def _flip_bit(data: bytes, index: int = 0) -> bytes:
    mutable = bytearray(data)
    mutable[index] ^= 0x01
    return bytes(mutable)


class TestRoundTrip:
    """Test that sealed envelopes open to the original text."""

    @pytest.mark.parametrize(
        "text",
        ["hello bob", "", "unicode: 你好世界 🔒", "line one\nline two", "x" * 10000],
    )
    def test_seal_then_open(self, alice_identity, alice_public, session_key, text):
        envelope = seal(text, alice_identity, session_key)
        assert open_envelope(envelope, alice_public, session_key) == text

    def test_round_trip_through_json(self, alice_identity, alice_public, session_key):
        """Test an envelope survives transport as JSON text."""
        envelope = seal("over the wire", alice_identity, session_key)
        received = SealedEnvelope.from_json(envelope.to_json())

        assert open_envelope(received, alice_public, session_key) == "over the wire"

    def test_envelope_fields(self, alice_identity, session_key):
        envelope = seal("hi", alice_identity, session_key)

        assert envelope.sender_id == alice_identity.id
        assert len(envelope.nonce) == 12
        assert len(envelope.ciphertext) == len(b"hi") + 16
        assert len(envelope.signature) == 256
        assert isinstance(envelope.timestamp, int)

    def test_nonces_and_ids_are_unique(self, alice_identity, session_key):
        envelopes = [seal("same text", alice_identity, session_key) for _ in range(20)]

        assert len({envelope.nonce for envelope in envelopes}) == 20
        assert len({envelope.id for envelope in envelopes}) == 20
        assert len({envelope.ciphertext for envelope in envelopes}) == 20

    def test_signature_covers_ciphertext(self, alice_identity, session_key):
        envelope = seal("signed", alice_identity, session_key)
        assert alice_identity.verify_key.verify(envelope.signature, envelope.ciphertext)


class TestTampering:
    """Test that modified envelopes are rejected before decryption."""

    def test_flipped_ciphertext_fails_verification(
        self, alice_identity, alice_public, session_key
    ):
        envelope = seal("do not touch", alice_identity, session_key)
        envelope.ciphertext = _flip_bit(envelope.ciphertext)

        with pytest.raises(SignatureVerificationError) as exc_info:
            open_envelope(envelope, alice_public, session_key)
        assert exc_info.value.code == ErrorCode.E106_VERIFICATION_FAILED
        assert exc_info.value.message == "sender identity could not be verified"

    def test_flipped_signature_fails_verification(
        self, alice_identity, alice_public, session_key
    ):
        envelope = seal("do not touch", alice_identity, session_key)
        envelope.signature = _flip_bit(envelope.signature, 10)

        with pytest.raises(SignatureVerificationError):
            open_envelope(envelope, alice_public, session_key)

    def test_tampered_wire_ciphertext(self, alice_identity, alice_public, session_key):
        wire = seal("do not touch", alice_identity, session_key).to_wire()
        raw = base64.b64decode(wire["encryptedData"])
        wire["encryptedData"] = base64.b64encode(_flip_bit(raw, len(raw) - 1)).decode("ascii")

        with pytest.raises(SignatureVerificationError):
            open_envelope(SealedEnvelope.from_wire(wire), alice_public, session_key)

    def test_tampered_nonce_fails_decryption(self, alice_identity, alice_public, session_key):
        """The nonce is not signed; tampering with it is caught by the GCM tag."""
        envelope = seal("do not touch", alice_identity, session_key)
        envelope.nonce = _flip_bit(envelope.nonce)

        with pytest.raises(DecryptionError):
            open_envelope(envelope, alice_public, session_key)

    @pytest.mark.parametrize("nonce", [b"", b"\x00" * 4, b"\x00" * 200])
    def test_bad_nonce_length_fails_decryption(
        self, alice_identity, alice_public, session_key, nonce
    ):
        """Test a constructed envelope with an unusable nonce is rejected as undecryptable."""
        envelope = seal("do not touch", alice_identity, session_key)
        envelope.nonce = nonce

        with pytest.raises(DecryptionError):
            open_envelope(envelope, alice_public, session_key)


class TestWrongParties:
    """Test wrong keys and impersonation."""

    def test_wrong_session_key(self, alice_identity, alice_public, session_key):
        envelope = seal("secret", alice_identity, session_key)

        with pytest.raises(DecryptionError) as exc_info:
            open_envelope(envelope, alice_public, create_session_key())
        assert exc_info.value.code == ErrorCode.E102_DECRYPTION_FAILED

    def test_wrong_claimed_sender(self, alice_identity, bob_identity, session_key):
        envelope = seal("from alice", alice_identity, session_key)

        with pytest.raises(SignatureVerificationError):
            open_envelope(envelope, export_public_key(bob_identity), session_key)

    def test_impersonation(self, alice_identity, carol_identity, alice_public, session_key):
        """Test Carol cannot pass off an envelope as Alice's, even with the session key."""
        envelope = seal("I am Alice", carol_identity, session_key)
        envelope.sender_id = alice_identity.id

        with pytest.raises(SignatureVerificationError):
            open_envelope(envelope, alice_public, session_key)

    def test_verify_envelope_checks_sender_id(self, alice_identity, alice_public, session_key):
        envelope = seal("hi", alice_identity, session_key)
        envelope.sender_id = "someone-else"

        with pytest.raises(SignatureVerificationError) as exc_info:
            verify_envelope(envelope, alice_public)
        assert exc_info.value.details["sender_id"] == "someone-else"


class TestEncoding:
    """Test plaintext encoding failures."""

    def test_lone_surrogate(self, alice_identity, session_key):
        with pytest.raises(EncodingError):
            seal("\ud800", alice_identity, session_key)

    def test_non_string(self, alice_identity, session_key):
        with pytest.raises(EncodingError):
            seal(b"bytes", alice_identity, session_key)

    def test_too_long(self):
        with pytest.raises(EncodingError):
            encode_plaintext("x" * (100 * 1024 + 1))

    def test_invalid_utf8_after_decryption(self, alice_identity, alice_public, session_key):
        """Test a validly signed envelope whose plaintext is not UTF-8."""
        nonce = crypto.secure_random(12)
        ciphertext = AESGCM(session_key.key_bytes).encrypt(nonce, b"\xff\xfe\xfd", None)
        envelope = SealedEnvelope(
            envelope_id=crypto.generate_uid(),
            sender_id=alice_identity.id,
            nonce=nonce,
            ciphertext=ciphertext,
            signature=alice_identity.signing_key.sign(ciphertext),
            timestamp=0,
        )

        with pytest.raises(EncodingError) as exc_info:
            open_envelope(envelope, alice_public, session_key)
        assert exc_info.value.code == ErrorCode.E110_ENCODING_FAILED


class TestSealFailures:
    """Test that sealing fails atomically."""

    def test_verify_only_sender_cannot_sign(self, alice_identity, session_key):
        sender = SimpleNamespace(id=alice_identity.id, signing_key=alice_identity.verify_key)

        with pytest.raises(SigningError) as exc_info:
            seal("hi", sender, session_key)
        assert exc_info.value.code == ErrorCode.E105_SIGNATURE_FAILED

    def test_randomness_unavailable(self, monkeypatch, alice_identity, session_key):
        def unavailable(length):
            raise OSError("no entropy")

        monkeypatch.setattr(crypto.os, "urandom", unavailable)
        with pytest.raises(RandomnessUnavailableError):
            seal("hi", alice_identity, session_key)
