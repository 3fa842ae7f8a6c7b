"""Composite zkLogin signature assembly.

Packages the stored proof, the epoch bound, the address seed and the
ephemeral signature over the transaction into the ledger's signature
encoding: ``base64(0x05 || BCS(ZkLoginSignature))``.

The client has no proof verifier. A proof that does not match the sender
address or epoch is only detected by the ledger at submission time.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, List, Mapping, Sequence, Union

from .errors import SignatureAssemblyError
from .prover import ProofArtifact

logger = logging.getLogger(__name__)

ZKLOGIN_FLAG = 0x05


def _uleb128(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _bcs_bytes(data: bytes) -> bytes:
    return _uleb128(len(data)) + data


def _bcs_string(value: Any) -> bytes:
    return _bcs_bytes(str(value).encode("utf-8"))


def _bcs_string_vector(values: Sequence[Any]) -> bytes:
    return _uleb128(len(values)) + b"".join(_bcs_string(v) for v in values)


def _bcs_u64(value: int) -> bytes:
    return int(value).to_bytes(8, "little")


def _bcs_u8(value: int) -> bytes:
    return int(value).to_bytes(1, "little")


def _encode_inputs(proof: Mapping[str, Any], address_seed: str) -> bytes:
    try:
        points = proof["proofPoints"]
        a: List[Any] = points["a"]
        b: List[List[Any]] = points["b"]
        c: List[Any] = points["c"]
        iss = proof["issBase64Details"]
        iss_value = iss["value"]
        index_mod_4 = iss["indexMod4"]
        header = proof["headerBase64"]
    except (KeyError, TypeError) as e:
        raise SignatureAssemblyError(f"Proof artifact is missing {e}") from e

    return (
        _bcs_string_vector(a)
        + _uleb128(len(b))
        + b"".join(_bcs_string_vector(row) for row in b)
        + _bcs_string_vector(c)
        + _bcs_string(iss_value)
        + _bcs_u8(index_mod_4)
        + _bcs_string(header)
        + _bcs_string(address_seed)
    )


def assemble_signature(
    proof: Union[ProofArtifact, Mapping[str, Any]],
    max_epoch: int,
    address_seed: str,
    user_signature: Union[str, bytes],
) -> str:
    """
    Build the composite signature attached to an outgoing transaction.

    Args:
        proof: Proof artifact from the proving service
        max_epoch: Epoch bound of the ephemeral key
        address_seed: Decimal address seed
        user_signature: Ephemeral signature over the transaction, base64 or raw

    Returns:
        Base64 composite signature

    Raises:
        SignatureAssemblyError: if the proof lacks fields required for encoding
    """
    raw_proof = proof.raw if isinstance(proof, ProofArtifact) else proof
    if isinstance(user_signature, str):
        user_signature = base64.b64decode(user_signature)

    body = _encode_inputs(raw_proof, str(address_seed)) + _bcs_u64(max_epoch) + _bcs_bytes(bytes(user_signature))
    logger.debug(f"Assembled zkLogin signature: {len(body) + 1} bytes, maxEpoch={max_epoch}")
    return base64.b64encode(bytes([ZKLOGIN_FLAG]) + body).decode("ascii")
