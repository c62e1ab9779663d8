"""Tests for the peer database used to resolve sender names."""
from __future__ import annotations

import pytest

from services.db import PeerDB
from services.error import IdentityError


@pytest.fixture
def peers(tmp_path):
    db = PeerDB(tmp_path / "peers.db")
    yield db
    db.close()


def test_username_preferred(peers):
    peers.save_peer("1", "alice", "Alice Liddell")
    assert peers.resolve("1") == "alice"


def test_full_name_fallback(peers):
    peers.save_peer("2", "", "Bob Builder")
    assert peers.resolve("2") == "Bob Builder"


def test_latest_name_wins(peers):
    peers.save_peer("1", "alice")
    peers.save_peer("1", "alice_new")
    assert peers.resolve("1") == "alice_new"


def test_unknown_peer(peers):
    with pytest.raises(IdentityError, match="unknown peer"):
        peers.resolve("404")


def test_nameless_peer(peers):
    peers.save_peer("3")
    with pytest.raises(IdentityError, match="no name"):
        peers.resolve("3")


def test_survives_reopen(tmp_path):
    first = PeerDB(tmp_path / "peers.db")
    first.save_peer("1", "alice")
    first.close()

    second = PeerDB(tmp_path / "peers.db")
    try:
        assert second.resolve("1") == "alice"
    finally:
        second.close()
