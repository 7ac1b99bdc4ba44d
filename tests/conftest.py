"""
Pytest configuration and fixtures for Cipherlink tests.

Created by orpheus497

Provides common fixtures and test utilities for unit and integration tests.
RSA identities are generated once per test session; sessions built on top
of them are fresh for every test.
"""

import tempfile
import shutil
from pathlib import Path
from typing import Generator, Tuple
import pytest

from cipherlink.identity import Identity, generate_identity
from cipherlink.session import ChatSession


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Scratch directory removed after the test."""
    tmp = Path(tempfile.mkdtemp(prefix="cipherlink_test_"))
    try:
        yield tmp
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture(scope="session")
def alice_identity() -> Identity:
    return generate_identity("Alice")


@pytest.fixture(scope="session")
def bob_identity() -> Identity:
    return generate_identity("Bob")


@pytest.fixture(scope="session")
def carol_identity() -> Identity:
    return generate_identity("Carol")


@pytest.fixture
def connected_pair(alice_identity, bob_identity) -> Tuple[ChatSession, ChatSession]:
    """
    Alice and Bob connected to each other and sharing Alice's session key.

    Returns:
        (alice_session, bob_session)
    """
    alice = ChatSession(alice_identity)
    bob = ChatSession(bob_identity)
    alice.connect_peer(bob.public_identity_json())
    bob.connect_peer(alice.public_identity_json())
    bob.install_session_key(alice.session_key)
    return alice, bob


def pytest_configure(config):
    for marker in (
        "unit: isolated tests under tests/unit",
        "integration: tests that drive the CLI or a full session lifecycle",
        "slow: tests that generate fresh RSA keys",
    ):
        config.addinivalue_line("markers", marker)


def pytest_collection_modifyitems(config, items):
    """Mark tests by directory and module so `-m unit` or `-m integration` select them."""
    for item in items:
        if item.path.parent.name == "unit":
            item.add_marker(pytest.mark.unit)
        elif item.path.name in ("test_main.py", "test_transport.py"):
            item.add_marker(pytest.mark.integration)
