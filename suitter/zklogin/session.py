"""Durable login session storage.

The session is populated incrementally on either side of the OAuth redirect,
and the redirect ends the process that started the login. Persisted storage
is the only channel across it, so every write is a read-merge-write of a
single JSON record kept under a fixed storage key.

Backends:
- ``MemorySessionStore`` for tests and single-process use
- ``FileSessionStore`` for CLI and desktop clients
- ``RedisSessionStore`` for bots and server-held clients
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import redis
from cryptography.hazmat.primitives.asymmetric import ed25519

from .ephemeral import deserialize_keypair

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "suitter_zklogin_session"


class LoginState(str, Enum):
    LOGGED_OUT = "logged_out"
    PENDING_REDIRECT = "pending_redirect"
    AWAITING_PROOF = "awaiting_proof"
    AUTHENTICATED = "authenticated"


# Session attribute -> key in the persisted record.
RECORD_KEYS = {
    "ephemeral_key_pair": "ephemeralKeyPair",
    "randomness": "randomness",
    "nonce": "nonce",
    "max_epoch": "maxEpoch",
    "jwt": "jwt",
    "salt": "salt",
    "sub": "sub",
    "aud": "aud",
    "user_address": "userAddress",
    "zk_proof": "zkProof",
    "address_seed": "addressSeed",
}


@dataclass
class Session:
    """Typed view over the persisted session record."""

    ephemeral_key_pair: Optional[str] = None
    randomness: Optional[str] = None
    nonce: Optional[str] = None
    max_epoch: Optional[int] = None
    jwt: Optional[str] = None
    salt: Optional[str] = None
    sub: Optional[str] = None
    aud: Optional[str] = None
    user_address: Optional[str] = None
    zk_proof: Optional[str] = None
    address_seed: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Session":
        values = {attr: record.get(key) for attr, key in RECORD_KEYS.items()}
        if values["max_epoch"] is not None:
            values["max_epoch"] = int(values["max_epoch"])
        return cls(**values)

    def to_record(self) -> Dict[str, Any]:
        return {
            RECORD_KEYS[f.name]: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None
        }

    @property
    def has_key_material(self) -> bool:
        return bool(self.ephemeral_key_pair and self.randomness and self.nonce and self.max_epoch is not None)

    @property
    def state(self) -> LoginState:
        if not self.has_key_material:
            return LoginState.LOGGED_OUT
        if not self.jwt:
            return LoginState.PENDING_REDIRECT
        if self.salt and self.user_address and self.zk_proof and self.address_seed:
            return LoginState.AUTHENTICATED
        return LoginState.AWAITING_PROOF

    def key_pair(self) -> ed25519.Ed25519PrivateKey:
        """Reconstruct the live ephemeral keypair from its export."""
        if not self.ephemeral_key_pair:
            raise ValueError("Session holds no ephemeral key")
        return deserialize_keypair(self.ephemeral_key_pair)


class SessionStore:
    """
    Base class for session persistence.

    Subclasses implement raw ``_read``/``_write``/``_delete`` of the JSON
    text; merging and parsing live here so every backend behaves the same.
    """

    def __init__(self):
        self._lock = threading.RLock()

    def _read(self) -> Optional[str]:
        raise NotImplementedError

    def _write(self, raw: str) -> None:
        raise NotImplementedError

    def _delete(self) -> None:
        raise NotImplementedError

    def load_record(self) -> Optional[Dict[str, Any]]:
        """Return the raw persisted record, or None when logged out."""
        raw = self._read()
        if not raw:
            return None
        try:
            record = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable session record")
            return None
        if not isinstance(record, dict):
            logger.warning("Discarding session record that is not a JSON object")
            return None
        return record

    def load(self) -> Optional[Session]:
        record = self.load_record()
        if record is None:
            return None
        try:
            return Session.from_record(record)
        except (TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed session record: {e}")
            return None

    def save(self, partial: Mapping[str, Any]) -> Dict[str, Any]:
        """Merge ``partial`` over the persisted record and write it back.

        Keys absent from ``partial`` keep their persisted values.
        """
        with self._lock:
            merged = self.load_record() or {}
            merged.update(partial)
            self._write(json.dumps(merged))
        return merged

    def clear(self) -> None:
        with self._lock:
            self._delete()


class MemorySessionStore(SessionStore):
    """Keeps serialized records in a dictionary keyed by storage key."""

    def __init__(self, storage_key: str = DEFAULT_STORAGE_KEY, storage: Optional[Dict[str, str]] = None):
        super().__init__()
        self.storage_key = storage_key
        # Share ``storage`` between instances to simulate one browser profile.
        self.storage: Dict[str, str] = storage if storage is not None else {}

    def _read(self) -> Optional[str]:
        return self.storage.get(self.storage_key)

    def _write(self, raw: str) -> None:
        self.storage[self.storage_key] = raw

    def _delete(self) -> None:
        self.storage.pop(self.storage_key, None)


class FileSessionStore(SessionStore):
    """Persists the record as a JSON file readable only by its owner."""

    def __init__(self, path: str):
        super().__init__()
        self.path = os.path.expanduser(path)

    def _read(self) -> Optional[str]:
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                return fh.read()
        except FileNotFoundError:
            return None

    def _write(self, raw: str) -> None:
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(prefix=".session-", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(raw)
            # Record holds the ephemeral private key
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def _delete(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass


class RedisSessionStore(SessionStore):
    """Stores the record under one Redis key, optionally with a TTL."""

    def __init__(self, client: redis.Redis, storage_key: str = DEFAULT_STORAGE_KEY, ttl: Optional[int] = None):
        super().__init__()
        self.client = client
        self.storage_key = storage_key
        self.ttl = ttl

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any], ttl: Optional[int] = None) -> "RedisSessionStore":
        """Build a store from REDIS_* settings."""
        storage_key = str(cfg.get("SESSION_STORAGE_KEY") or DEFAULT_STORAGE_KEY)
        if cfg.get("REDIS_URL"):
            client = redis.Redis.from_url(str(cfg["REDIS_URL"]), decode_responses=True)
        else:
            client = redis.Redis(
                host=cfg.get("REDIS_HOST", "localhost"),
                port=cfg.get("REDIS_PORT", 6379),
                password=cfg.get("REDIS_PASSWORD"),
                db=cfg.get("REDIS_DB", 0),
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return cls(client, storage_key=storage_key, ttl=ttl)

    def _read(self) -> Optional[str]:
        raw = self.client.get(self.storage_key)
        if isinstance(raw, bytes):
            return raw.decode("utf-8")
        return raw

    def _write(self, raw: str) -> None:
        self.client.set(self.storage_key, raw, ex=self.ttl)

    def _delete(self) -> None:
        self.client.delete(self.storage_key)
