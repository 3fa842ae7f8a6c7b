"""
Unit tests for login session persistence.
"""

import json
import os
import stat
from unittest.mock import MagicMock

import pytest

from suitter.zklogin.ephemeral import begin_login
from suitter.zklogin.session import (
    DEFAULT_STORAGE_KEY,
    FileSessionStore,
    LoginState,
    MemorySessionStore,
    RedisSessionStore,
    Session,
)


class TestMergeSemantics:
    """Every write is a read-merge-write of one record."""

    def test_save_merges_partial_records(self, session_store):
        session_store.save({"nonce": "n1", "maxEpoch": 5})
        session_store.save({"jwt": "token"})

        assert session_store.load_record() == {"nonce": "n1", "maxEpoch": 5, "jwt": "token"}

    def test_save_overwrites_given_keys_only(self, session_store):
        session_store.save({"nonce": "n1", "randomness": "1"})
        merged = session_store.save({"nonce": "n2"})

        assert merged == {"nonce": "n2", "randomness": "1"}

    def test_clear_means_logged_out(self, session_store):
        session_store.save({"nonce": "n1"})
        session_store.clear()

        assert session_store.load_record() is None
        assert session_store.load() is None

    def test_stores_sharing_storage_see_each_other(self, browser_storage):
        first = MemorySessionStore(storage=browser_storage)
        second = MemorySessionStore(storage=browser_storage)

        first.save({"nonce": "n1"})
        assert second.load_record() == {"nonce": "n1"}
        assert DEFAULT_STORAGE_KEY in browser_storage

    def test_corrupt_record_reads_as_logged_out(self, browser_storage, session_store):
        browser_storage[DEFAULT_STORAGE_KEY] = "{not json"
        assert session_store.load_record() is None

        browser_storage[DEFAULT_STORAGE_KEY] = json.dumps(["a", "list"])
        assert session_store.load_record() is None

    @pytest.mark.parametrize("max_epoch", ["abc", [1], {"epoch": 1}])
    def test_malformed_field_reads_as_logged_out(self, session_store, max_epoch):
        session_store.save({"nonce": "n1", "maxEpoch": max_epoch})

        assert session_store.load() is None


class TestSession:
    """Test the typed session view and derived state."""

    def test_state_progression(self, mock_ledger):
        material = begin_login(mock_ledger)
        record = material.to_record()

        assert Session.from_record({}).state is LoginState.LOGGED_OUT
        assert Session.from_record(record).state is LoginState.PENDING_REDIRECT

        record["jwt"] = "token"
        assert Session.from_record(record).state is LoginState.AWAITING_PROOF

        record.update({"salt": "1", "userAddress": "0x01", "zkProof": "{}", "addressSeed": "1"})
        assert Session.from_record(record).state is LoginState.AUTHENTICATED

    def test_round_trip_uses_record_keys(self):
        record = {"nonce": "n", "maxEpoch": "7", "userAddress": "0xabc", "zkProof": "{}"}
        session = Session.from_record(record)

        assert session.max_epoch == 7
        assert session.user_address == "0xabc"
        assert session.to_record() == {"nonce": "n", "maxEpoch": 7, "userAddress": "0xabc", "zkProof": "{}"}

    def test_key_pair_restores_signing_key(self, mock_ledger):
        material = begin_login(mock_ledger)
        session = Session.from_record(material.to_record())

        assert session.key_pair().public_key().public_bytes_raw() == material.public_key_bytes

    def test_key_pair_missing_raises(self):
        with pytest.raises(ValueError):
            Session().key_pair()


class TestFileSessionStore:
    def test_persists_across_instances(self, tmp_path):
        path = str(tmp_path / "nested" / "session.json")
        FileSessionStore(path).save({"nonce": "n1"})

        assert FileSessionStore(path).load_record() == {"nonce": "n1"}

    def test_file_is_owner_only(self, tmp_path):
        path = tmp_path / "session.json"
        FileSessionStore(str(path)).save({"nonce": "n1"})

        mode = stat.S_IMODE(os.stat(path).st_mode)
        assert mode == 0o600

    def test_clear_removes_file_and_is_idempotent(self, tmp_path):
        path = tmp_path / "session.json"
        store = FileSessionStore(str(path))
        store.save({"nonce": "n1"})

        store.clear()
        store.clear()

        assert not path.exists()
        assert store.load_record() is None


class TestRedisSessionStore:
    def test_read_write_delete(self):
        client = MagicMock()
        client.get.return_value = b'{"nonce": "n1"}'
        store = RedisSessionStore(client, storage_key="k", ttl=60)

        merged = store.save({"jwt": "t"})

        assert merged == {"nonce": "n1", "jwt": "t"}
        client.set.assert_called_once_with("k", json.dumps({"nonce": "n1", "jwt": "t"}), ex=60)

        store.clear()
        client.delete.assert_called_once_with("k")

    def test_missing_key_is_logged_out(self):
        client = MagicMock()
        client.get.return_value = None

        assert RedisSessionStore(client).load() is None

    def test_from_config_prefers_url(self, monkeypatch):
        from_url = MagicMock()
        monkeypatch.setattr("suitter.zklogin.session.redis.Redis.from_url", from_url)

        store = RedisSessionStore.from_config({"REDIS_URL": "redis://cache:6379/2", "SESSION_STORAGE_KEY": "s"})

        from_url.assert_called_once_with("redis://cache:6379/2", decode_responses=True)
        assert store.storage_key == "s"
