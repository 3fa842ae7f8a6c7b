"""Deterministic address derivation from (salt, sub, aud).

Pure functions only: the same three inputs always give byte-identical
addresses, which is what lets a user log in anywhere and land on the same
wallet.
"""

from __future__ import annotations

import re
from typing import Union

from .errors import AddressDerivationFailure
from .hashing import hash_str_to_field, poseidon_hash
from .salt import MAX_SALT

ADDRESS_LENGTH = 32
ADDRESS_PREFIX = "0x"

MAX_KEY_CLAIM_NAME_LENGTH = 32
MAX_KEY_CLAIM_VALUE_LENGTH = 115
MAX_AUD_VALUE_LENGTH = 145

_HEX_RE = re.compile(r"[0-9a-f]*")


def _parse_salt(salt: Union[str, int]) -> int:
    try:
        value = int(salt)
    except (TypeError, ValueError) as e:
        raise AddressDerivationFailure(f"Salt is not an integer: {salt!r}") from e
    if not 0 <= value < MAX_SALT:
        raise AddressDerivationFailure("Salt must be a non-negative integer below 2**128")
    return value


def compute_address_seed(salt: Union[str, int], sub: str, aud: str, claim_name: str = "sub") -> str:
    """
    Bind salt and identity claims into an address seed.

    Returns:
        Address seed as a decimal string

    Raises:
        AddressDerivationFailure: on invalid salt or over-long claims
    """
    salt_value = _parse_salt(salt)
    try:
        seed = poseidon_hash(
            [
                hash_str_to_field(claim_name, MAX_KEY_CLAIM_NAME_LENGTH),
                hash_str_to_field(sub, MAX_KEY_CLAIM_VALUE_LENGTH),
                hash_str_to_field(aud, MAX_AUD_VALUE_LENGTH),
                poseidon_hash([salt_value]),
            ]
        )
    except ValueError as e:
        raise AddressDerivationFailure(str(e)) from e
    return str(seed)


def normalize_address(value: str) -> str:
    """Lowercase, strip the prefix and left-pad to 64 hex digits."""
    text = value.lower()
    if text.startswith(ADDRESS_PREFIX):
        text = text[len(ADDRESS_PREFIX) :]
    if len(text) > ADDRESS_LENGTH * 2 or not _HEX_RE.fullmatch(text):
        raise AddressDerivationFailure(f"Not a valid address: {value!r}")
    return ADDRESS_PREFIX + text.rjust(ADDRESS_LENGTH * 2, "0")


def seed_to_address(address_seed: Union[str, int]) -> str:
    """Encode an address seed as a 32-byte big-endian hex address."""
    try:
        seed_bytes = int(address_seed).to_bytes(ADDRESS_LENGTH, "big")
    except (OverflowError, TypeError, ValueError) as e:
        raise AddressDerivationFailure(f"Address seed does not fit in {ADDRESS_LENGTH} bytes") from e
    return normalize_address(ADDRESS_PREFIX + seed_bytes.hex())


def derive_address(salt: Union[str, int], sub: str, aud: str) -> str:
    """Return the canonical address for (salt, sub, aud)."""
    return seed_to_address(compute_address_seed(salt, sub, aud))
