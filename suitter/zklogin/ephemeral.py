"""Ephemeral key management for zkLogin.

A fresh Ed25519 keypair, randomness and nonce are generated for every login
attempt. The nonce commits to the public key, the epoch bound and the
randomness, and is embedded in the OAuth request so the returned identity
token is bound to this key and no other.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Union

from bech32 import bech32_decode, bech32_encode, convertbits
from cryptography.hazmat.primitives.asymmetric import ed25519

from .hashing import poseidon_hash

logger = logging.getLogger(__name__)

ED25519_FLAG = 0x00
SECRET_KEY_HRP = "suiprivkey"

# Epochs the ephemeral key stays valid past the current one: enough to finish
# login and sign a follow-up transaction.
MAX_EPOCH_MARGIN = 2

RANDOMNESS_BYTES = 16
NONCE_BYTES = 20

# Intent prefix for transaction data: scope, version, app id.
TRANSACTION_INTENT = bytes([0, 0, 0])


@dataclass
class EphemeralKeyMaterial:
    """Key material created at the start of one login attempt."""

    key_pair: ed25519.Ed25519PrivateKey
    randomness: str
    nonce: str
    max_epoch: int

    @property
    def public_key_bytes(self) -> bytes:
        return public_key_bytes(self.key_pair)

    def to_record(self) -> Dict[str, Any]:
        """Fields persisted to the session store before redirecting."""
        return {
            "ephemeralKeyPair": serialize_keypair(self.key_pair),
            "randomness": self.randomness,
            "nonce": self.nonce,
            "maxEpoch": self.max_epoch,
        }


def public_key_bytes(key_pair: ed25519.Ed25519PrivateKey) -> bytes:
    """Return the raw 32-byte public key."""
    return key_pair.public_key().public_bytes_raw()


def generate_randomness() -> str:
    """Return 128 bits of CSPRNG randomness as a decimal string."""
    return str(int.from_bytes(secrets.token_bytes(RANDOMNESS_BYTES), "big"))


def compute_nonce(public_key: bytes, max_epoch: int, randomness: Union[str, int]) -> str:
    """
    Commit to (public key, maxEpoch, randomness).

    Args:
        public_key: Raw 32-byte Ed25519 public key
        max_epoch: Last epoch in which the key may sign
        randomness: Decimal randomness from ``generate_randomness``

    Returns:
        27-character base64url nonce
    """
    extended = int.from_bytes(bytes([ED25519_FLAG]) + public_key, "big")
    high, low = extended >> 128, extended & ((1 << 128) - 1)

    commitment = poseidon_hash([high, low, int(max_epoch), int(randomness)])
    truncated = (commitment & ((1 << (NONCE_BYTES * 8)) - 1)).to_bytes(NONCE_BYTES, "big")
    return base64.urlsafe_b64encode(truncated).rstrip(b"=").decode("ascii")


def begin_login(ledger) -> EphemeralKeyMaterial:
    """
    Generate the key material for a new login attempt.

    Args:
        ledger: Object exposing ``get_current_epoch()``

    Returns:
        EphemeralKeyMaterial valid until ``current epoch + MAX_EPOCH_MARGIN``

    Raises:
        EpochUnavailable: propagated from the ledger query
    """
    epoch = ledger.get_current_epoch()
    max_epoch = epoch + MAX_EPOCH_MARGIN

    key_pair = ed25519.Ed25519PrivateKey.generate()
    randomness = generate_randomness()
    nonce = compute_nonce(public_key_bytes(key_pair), max_epoch, randomness)

    logger.info(f"Generated ephemeral key: maxEpoch={max_epoch} (current epoch {epoch})")
    return EphemeralKeyMaterial(key_pair=key_pair, randomness=randomness, nonce=nonce, max_epoch=max_epoch)


def serialize_keypair(key_pair: ed25519.Ed25519PrivateKey) -> str:
    """Export the private key as a Bech32 ``suiprivkey1...`` string."""
    payload = bytes([ED25519_FLAG]) + key_pair.private_bytes_raw()
    return bech32_encode(SECRET_KEY_HRP, convertbits(payload, 8, 5))


def deserialize_keypair(serialized: str) -> ed25519.Ed25519PrivateKey:
    """Rebuild a usable keypair from ``serialize_keypair`` output.

    Raises:
        ValueError: if the string is not an Ed25519 secret key export.
    """
    hrp, data = bech32_decode(serialized)
    if hrp != SECRET_KEY_HRP or data is None:
        raise ValueError("Not a Bech32 secret key export")

    payload = convertbits(data, 5, 8, False)
    if payload is None or len(payload) != 33 or payload[0] != ED25519_FLAG:
        raise ValueError("Secret key export is not an Ed25519 key")

    return ed25519.Ed25519PrivateKey.from_private_bytes(bytes(payload[1:]))


def sign_transaction_bytes(key_pair: ed25519.Ed25519PrivateKey, tx_bytes: bytes) -> str:
    """
    Sign transaction bytes with the ephemeral key.

    Returns:
        base64(flag || signature || public key)
    """
    digest = hashlib.blake2b(TRANSACTION_INTENT + bytes(tx_bytes), digest_size=32).digest()
    signature = key_pair.sign(digest)
    return base64.b64encode(bytes([ED25519_FLAG]) + signature + public_key_bytes(key_pair)).decode("ascii")
