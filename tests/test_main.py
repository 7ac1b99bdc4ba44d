"""
Cipherlink - Command line tests.

Created by orpheus497

Drives the CLI end to end against temporary data directories.
"""

import json
import logging

import pytest

from cipherlink.envelope import SealedEnvelope
from cipherlink.main import build_parser, main
from cipherlink.storage import SessionStore

PASSWORD = "cli test password"


@pytest.fixture(autouse=True)
def cli_env(monkeypatch):
    """Non-interactive password and no log files; restore root logging afterwards."""
    monkeypatch.setenv("CIPHERLINK_PASSWORD", PASSWORD)
    monkeypatch.setenv("CIPHERLINK_LOGGING_FILE_LOGGING", "false")
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _run(data_dir, *args) -> int:
    return main(["--data-dir", str(data_dir), *args])


def _store(data_dir) -> SessionStore:
    return SessionStore(data_dir / "session.enc")


@pytest.fixture
def alice_dir(temp_dir):
    path = temp_dir / "alice"
    assert _run(path, "init", "Alice") == 0
    return path


@pytest.fixture
def bob_dir(temp_dir):
    path = temp_dir / "bob"
    assert _run(path, "init", "Bob") == 0
    return path


def _connect(temp_dir, from_dir, to_dir) -> None:
    identity_file = temp_dir / f"{to_dir.name}.json"
    identity_file.write_text(_store(to_dir).load(PASSWORD).public_identity_json(), encoding="utf-8")
    assert _run(from_dir, "connect", str(identity_file)) == 0


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_init_creates_identity(alice_dir):
    session = _store(alice_dir).load(PASSWORD)
    assert session.identity.display_name == "Alice"


def test_init_refuses_existing(alice_dir):
    assert _run(alice_dir, "init", "Again") == 1


def test_whoami_prints_public_identity(alice_dir, capsys):
    capsys.readouterr()
    assert _run(alice_dir, "whoami") == 0

    wire = json.loads(capsys.readouterr().out)
    assert wire["username"] == "Alice"
    assert "d" not in wire["publicKey"]


def test_whoami_without_identity(temp_dir, capsys):
    assert _run(temp_dir / "empty", "whoami") == 1
    assert "E601" in capsys.readouterr().err


def test_wrong_password(alice_dir, monkeypatch, capsys):
    monkeypatch.setenv("CIPHERLINK_PASSWORD", "nope")
    assert _run(alice_dir, "whoami") == 1
    assert "E602" in capsys.readouterr().err


def test_connect_to_self_fails(temp_dir, alice_dir, capsys):
    identity_file = temp_dir / "self.json"
    identity_file.write_text(
        _store(alice_dir).load(PASSWORD).public_identity_json(), encoding="utf-8"
    )
    assert _run(alice_dir, "connect", str(identity_file)) == 1
    assert "E402" in capsys.readouterr().err


def test_send_without_peer(alice_dir, capsys):
    assert _run(alice_dir, "send", "hello") == 1
    assert "E401" in capsys.readouterr().err


def test_send_and_open(temp_dir, alice_dir, bob_dir, capsys):
    """Test the full flow: connect, share the key, send, open."""
    _connect(temp_dir, alice_dir, bob_dir)
    _connect(temp_dir, bob_dir, alice_dir)

    alice_key = _store(alice_dir).load(PASSWORD).session_key
    bob_store = _store(bob_dir)
    bob = bob_store.load(PASSWORD)
    bob.install_session_key(alice_key)
    bob_store.save(bob, PASSWORD)

    capsys.readouterr()
    assert _run(alice_dir, "send", "hello bob") == 0
    captured = capsys.readouterr()
    envelope = SealedEnvelope.from_json(captured.out)
    assert "hello bob" in captured.err

    envelope_file = temp_dir / "envelope.json"
    envelope_file.write_text(envelope.to_json(), encoding="utf-8")
    assert _run(bob_dir, "open", str(envelope_file)) == 0
    assert "hello bob" in capsys.readouterr().out

    history = _store(bob_dir).load(PASSWORD).history
    assert [m.text for m in history] == ["hello bob"]


def test_open_without_shared_key_is_rejected(temp_dir, alice_dir, bob_dir, capsys):
    _connect(temp_dir, alice_dir, bob_dir)
    _connect(temp_dir, bob_dir, alice_dir)

    capsys.readouterr()
    assert _run(alice_dir, "send", "unreadable") == 0
    envelope_file = temp_dir / "envelope.json"
    envelope_file.write_text(capsys.readouterr().out, encoding="utf-8")

    assert _run(bob_dir, "open", str(envelope_file)) == 2
    assert "E102" in capsys.readouterr().out
    assert _store(bob_dir).load(PASSWORD).history[0].is_rejection


def test_open_malformed_envelope(temp_dir, alice_dir, bob_dir, capsys):
    _connect(temp_dir, alice_dir, bob_dir)
    envelope_file = temp_dir / "envelope.json"
    envelope_file.write_text('{"id": "x"}', encoding="utf-8")

    assert _run(alice_dir, "open", str(envelope_file)) == 1
    assert "E206" in capsys.readouterr().err


def test_disconnect(temp_dir, alice_dir, bob_dir):
    _connect(temp_dir, alice_dir, bob_dir)
    assert _run(alice_dir, "disconnect") == 0
    assert _store(alice_dir).load(PASSWORD).peer is None


def test_delete(alice_dir):
    assert _run(alice_dir, "delete", "--yes") == 0
    assert not _store(alice_dir).exists()


def test_init_rejects_zero_history_limit(temp_dir, monkeypatch, capsys):
    monkeypatch.setenv("CIPHERLINK_LIMITS_MAX_HISTORY", "0")
    assert _run(temp_dir / "zero", "init", "Alice") == 1
    assert "E703" in capsys.readouterr().err
    assert not _store(temp_dir / "zero").exists()
