"""
Cipherlink - Chat session tests.

Created by orpheus497

Tests the session lifecycle: connecting peers, sending and receiving,
rejection notices, async variants, deletion and serialization.
"""

import pytest

from cipherlink.errors import (
    EncodingError,
    ErrorCode,
    IdentityError,
    PeerError,
    SessionKeyError,
)
from cipherlink.identity import export_public_key
from cipherlink.session import ChatSession
from cipherlink.session_key import create_session_key


class TestConnectPeer:
    """Test peer connection rules."""

    def test_connect_from_json(self, alice_identity, bob_identity):
        alice = ChatSession(alice_identity)
        peer = alice.connect_peer(export_public_key(bob_identity).to_json())

        assert peer.id == bob_identity.id
        assert alice.peer == peer
        assert alice.session_key is not None

    def test_connect_from_wire_dict(self, alice_identity, bob_identity):
        alice = ChatSession(alice_identity)
        alice.connect_peer(export_public_key(bob_identity).to_wire())
        assert alice.peer.display_name == "Bob"

    def test_connect_from_peer_identity(self, alice_identity, bob_identity):
        alice = ChatSession(alice_identity)
        alice.connect_peer(export_public_key(bob_identity))
        assert alice.peer.fingerprint == bob_identity.fingerprint

    def test_cannot_connect_to_self(self, alice_identity):
        alice = ChatSession(alice_identity)
        with pytest.raises(PeerError) as exc_info:
            alice.connect_peer(alice.public_identity_json())
        assert exc_info.value.code == ErrorCode.E402_SELF_PEER
        assert exc_info.value.message == "You can't add yourself as a peer"
        assert alice.peer is None

    def test_rejects_forged_peer_object(self, alice_identity, bob_identity, carol_identity):
        alice = ChatSession(alice_identity)
        forged = export_public_key(bob_identity)
        forged.fingerprint = carol_identity.fingerprint

        with pytest.raises(PeerError) as exc_info:
            alice.connect_peer(forged)
        assert exc_info.value.code == ErrorCode.E403_FINGERPRINT_MISMATCH

    def test_invalid_input_leaves_state(self, connected_pair):
        alice, _ = connected_pair
        peer, key = alice.peer, alice.session_key

        with pytest.raises(PeerError):
            alice.connect_peer("not json")
        assert alice.peer is peer
        assert alice.session_key is key

    def test_reconnect_same_peer_keeps_state(self, connected_pair):
        alice, bob = connected_pair
        alice.send("hello")
        key = alice.session_key

        alice.connect_peer(bob.public_identity_json())
        assert alice.session_key is key
        assert len(alice.history) == 1

    def test_replacing_peer_resets_conversation(self, connected_pair, carol_identity):
        """Test switching peers clears history and never reuses the old key."""
        alice, bob = connected_pair
        alice.send("hello bob")
        old_key = alice.session_key

        alice.connect_peer(export_public_key(carol_identity).to_json())

        assert alice.peer.id == carol_identity.id
        assert len(alice.history) == 0
        assert bob.identity.id not in alice.keys
        assert alice.session_key != old_key

    def test_disconnect(self, connected_pair):
        alice, bob = connected_pair
        alice.disconnect()

        assert alice.peer is None
        assert alice.session_key is None
        assert bob.identity.id not in alice.keys
        alice.disconnect()


class TestMessaging:
    """Test the send/receive scenario between two sessions."""

    def test_send_and_receive(self, connected_pair):
        alice, bob = connected_pair
        envelope = alice.send("hello bob")
        message = bob.receive(envelope)

        assert message.text == "hello bob"
        assert message.sender_id == alice.identity.id
        assert message.is_local_origin is False
        assert message.is_rejection is False
        assert message.id == envelope.id
        assert message.timestamp == envelope.timestamp

        assert len(alice.history) == 1
        assert alice.history[0].is_local_origin is True
        assert len(bob.history) == 1

    def test_conversation_both_ways(self, connected_pair):
        alice, bob = connected_pair
        bob.receive(alice.send("hi"))
        alice.receive(bob.send("hi back"))

        assert [m.text for m in alice.history] == ["hi", "hi back"]
        assert [m.is_local_origin for m in bob.history] == [False, True]

    def test_text_is_trimmed(self, connected_pair):
        alice, bob = connected_pair
        assert bob.receive(alice.send("  padded  ")).text == "padded"

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_text_rejected(self, connected_pair, text):
        alice, _ = connected_pair
        with pytest.raises(EncodingError):
            alice.send(text)
        assert len(alice.history) == 0

    def test_send_without_peer(self, alice_identity):
        alice = ChatSession(alice_identity)
        with pytest.raises(PeerError) as exc_info:
            alice.send("hello?")
        assert exc_info.value.code == ErrorCode.E401_NO_PEER

    def test_send_without_key(self, connected_pair):
        alice, bob = connected_pair
        alice.keys.discard(bob.identity.id)
        with pytest.raises(SessionKeyError):
            alice.send("hello")

    def test_mismatched_keys_produce_rejection(self, alice_identity, bob_identity):
        """Without a shared key, Bob gets an in-band notice, never plaintext."""
        alice = ChatSession(alice_identity)
        bob = ChatSession(bob_identity)
        alice.connect_peer(bob.public_identity_json())
        bob.connect_peer(alice.public_identity_json())

        notice = bob.receive(alice.send("secret"))

        assert notice.is_rejection
        assert notice.error == ErrorCode.E102_DECRYPTION_FAILED
        assert notice.sender_id == "system"
        assert notice.text.startswith("Error receiving message: ")
        assert bob.history.rejections() == [notice]

    def test_tampered_envelope_produces_rejection(self, connected_pair):
        alice, bob = connected_pair
        envelope = alice.send("hello")
        envelope.signature = bytes(len(envelope.signature))

        notice = bob.receive(envelope)
        assert notice.error == ErrorCode.E106_VERIFICATION_FAILED
        assert notice.text == "Error receiving message: sender identity could not be verified"
        assert notice.timestamp == envelope.timestamp

    def test_envelope_from_stranger_rejected(self, connected_pair, carol_identity):
        alice, bob = connected_pair
        carol = ChatSession(carol_identity)
        carol.connect_peer(bob.public_identity_json())
        carol.install_session_key(alice.session_key)

        notice = bob.receive(carol.send("it's me, alice"))
        assert notice.error == ErrorCode.E106_VERIFICATION_FAILED

    def test_install_session_key_requires_peer(self, alice_identity):
        alice = ChatSession(alice_identity)
        with pytest.raises(PeerError):
            alice.install_session_key(create_session_key())


class TestAsyncMessaging:
    """Test the executor-backed async variants."""

    @pytest.mark.asyncio
    async def test_send_and_receive_async(self, connected_pair):
        alice, bob = connected_pair
        envelope = await alice.send_async("async hello")
        message = await bob.receive_async(envelope)

        assert message.text == "async hello"
        assert len(alice.history) == 1
        assert len(bob.history) == 1

    @pytest.mark.asyncio
    async def test_receive_async_rejection(self, connected_pair):
        alice, bob = connected_pair
        envelope = await alice.send_async("hello")
        bob.install_session_key(create_session_key())

        notice = await bob.receive_async(envelope)
        assert notice.error == ErrorCode.E102_DECRYPTION_FAILED

    @pytest.mark.asyncio
    async def test_send_async_validates_first(self, connected_pair):
        alice, _ = connected_pair
        with pytest.raises(EncodingError):
            await alice.send_async("")


class TestLifecycle:
    """Test deletion and persistence of sessions."""

    def test_create(self):
        session = ChatSession.create("Dave", max_history=5)

        assert session.identity.display_name == "Dave"
        assert session.peer is None
        assert session.history.max_size == 5

    def test_create_rejects_empty_name(self):
        with pytest.raises(IdentityError):
            ChatSession.create("   ")

    def test_history_is_capped(self, connected_pair):
        alice, _ = connected_pair
        alice.history.max_size = 3
        for i in range(5):
            alice.send(f"message {i}")

        assert [m.text for m in alice.history] == ["message 2", "message 3", "message 4"]

    def test_delete(self, connected_pair):
        alice, _ = connected_pair
        alice.send("bye")
        alice.delete()

        assert alice.identity is None
        assert alice.peer is None
        assert len(alice.keys) == 0
        assert len(alice.history) == 0
        with pytest.raises(IdentityError):
            alice.public_identity()

    def test_round_trip(self, connected_pair):
        alice, bob = connected_pair
        bob.receive(alice.send("persist me"))
        bob.receive(alice.send("and me"))

        restored = ChatSession.from_dict(bob.to_dict())

        assert restored.identity.id == bob.identity.id
        assert restored.peer == bob.peer
        assert restored.session_key == bob.session_key
        assert [m.text for m in restored.history] == ["persist me", "and me"]
        assert restored.receive(alice.send("after restore")).text == "after restore"

    def test_round_trip_preserves_rejections(self, connected_pair):
        alice, bob = connected_pair
        envelope = alice.send("hello")
        envelope.ciphertext = envelope.ciphertext[::-1]
        bob.receive(envelope)

        restored = ChatSession.from_dict(bob.to_dict())
        assert restored.history[0].error == ErrorCode.E106_VERIFICATION_FAILED

    def test_to_dict_contains_no_plain_key_bytes(self, connected_pair):
        alice, _ = connected_pair
        data = alice.to_dict()
        assert data["version"] == "1.0"
        assert set(data) == {"version", "identity", "peer", "session_keys", "history"}

    def test_from_dict_rejects_garbage(self):
        with pytest.raises(IdentityError):
            ChatSession.from_dict({"identity": {"id": "x"}})
