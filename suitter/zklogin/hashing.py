"""Binding and commitment primitives shared by nonce and address derivation.

Both are Poseidon hashes over the BN254 scalar field with the circomlib
parameters, the same function the proving circuit evaluates, so a nonce or
address seed computed here matches the one the prover and ledger recompute.
"""

from __future__ import annotations

from typing import Iterable, List

from circomlibpy.poseidon import PoseidonHash

BN254_FIELD_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617

# Bytes packed into one field element; 31 bytes always fit below the modulus.
PACK_WIDTH = 31
MAX_POSEIDON_INPUTS = 16

_poseidon = PoseidonHash()


def poseidon_hash(values: Iterable[int]) -> int:
    """Hash a sequence of field elements with Poseidon.

    Up to 16 inputs are hashed directly. Up to 32 inputs are split into the
    first 16 and the rest, each half is hashed, and the two digests are
    hashed together.

    Raises:
        ValueError: if a value is outside the field, or there are no values
            or more than 32 of them.
    """
    inputs: List[int] = [int(value) for value in values]
    for value in inputs:
        if not 0 <= value < BN254_FIELD_MODULUS:
            raise ValueError(f"Element {value} is not in the BN254 field")

    if not inputs:
        raise ValueError("poseidon_hash needs at least one input")
    if len(inputs) <= MAX_POSEIDON_INPUTS:
        return _poseidon.hash(len(inputs), inputs)
    if len(inputs) <= 2 * MAX_POSEIDON_INPUTS:
        first = poseidon_hash(inputs[:MAX_POSEIDON_INPUTS])
        second = poseidon_hash(inputs[MAX_POSEIDON_INPUTS:])
        return poseidon_hash([first, second])
    raise ValueError(f"Unable to hash {len(inputs)} inputs")


def pack_bytes(data: bytes) -> List[int]:
    """Split bytes into big-endian 31-byte field elements.

    Chunks are aligned to the end of ``data``, so only the first chunk may be
    short.
    """
    head = len(data) % PACK_WIDTH
    chunks = [data[:head]] if head else []
    chunks += [data[i : i + PACK_WIDTH] for i in range(head, len(data), PACK_WIDTH)]
    return [int.from_bytes(chunk, "big") for chunk in chunks]


def hash_str_to_field(text: str, max_len: int) -> int:
    """Pack a claim string into field elements and hash them.

    The string is zero-padded on the right to ``max_len`` bytes first.
    """
    raw = text.encode("utf-8")
    if len(raw) > max_len:
        raise ValueError(f"String {text[:16]!r}... is longer than {max_len} bytes")

    return poseidon_hash(pack_bytes(raw.ljust(max_len, b"\x00")))


__all__ = ["BN254_FIELD_MODULUS", "pack_bytes", "poseidon_hash", "hash_str_to_field"]
