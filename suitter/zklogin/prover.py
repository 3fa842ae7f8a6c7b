"""Client for the external zero-knowledge proving service.

The proving service is the trust anchor for the identity token: it checks
the provider's signature and the nonce binding before issuing a proof, so a
forged or replayed token fails here rather than earlier.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import requests

from .errors import ProofServiceError

logger = logging.getLogger(__name__)

KEY_CLAIM_NAME = "sub"


@dataclass(frozen=True)
class ProofArtifact:
    """Proof returned by the proving service, stored and forwarded as-is."""

    raw: Dict[str, Any]

    def to_json(self) -> str:
        return json.dumps(self.raw, sort_keys=True)

    @classmethod
    def from_json(cls, data: str) -> "ProofArtifact":
        return cls(json.loads(data))


class ProverClient:
    """Requests proofs for (token, salt, ephemeral key, randomness, maxEpoch)."""

    def __init__(self, url: str, http: Optional[requests.Session] = None, timeout: Optional[float] = 30):
        self.url = url
        self.http = http or requests.Session()
        self.timeout = timeout

    @staticmethod
    def build_payload(
        token: str, salt: str, max_epoch: int, randomness: str, ephemeral_public_key: bytes
    ) -> Dict[str, Any]:
        return {
            "jwt": token,
            "extendedEphemeralPublicKey": list(bytes(ephemeral_public_key)),
            "maxEpoch": str(max_epoch),
            "jwtRandomness": str(randomness),
            "salt": str(salt),
            "keyClaimName": KEY_CLAIM_NAME,
        }

    def get_proof(
        self,
        token: str,
        salt: Union[str, int],
        max_epoch: int,
        randomness: Union[str, int],
        ephemeral_public_key: bytes,
    ) -> ProofArtifact:
        """
        Issue a single proof request.

        Args:
            token: Identity token from the provider
            salt: User salt (decimal)
            max_epoch: Epoch bound committed into the nonce
            randomness: Randomness committed into the nonce
            ephemeral_public_key: Raw ephemeral public key bytes

        Returns:
            ProofArtifact wrapping the service's JSON

        Raises:
            ProofServiceError: on transport failure, non-2xx status (body kept
                for diagnostics) or a non-JSON response
        """
        payload = self.build_payload(token, str(salt), max_epoch, str(randomness), ephemeral_public_key)
        logger.info(
            f"Requesting ZK proof: maxEpoch={payload['maxEpoch']}, "
            f"key={len(payload['extendedEphemeralPublicKey'])} bytes"
        )

        try:
            resp = self.http.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Prover unreachable: {e}")
            raise ProofServiceError(f"Prover service unreachable: {e}") from e

        if resp.status_code >= 300:
            logger.error(f"Prover error response: {resp.status_code} {resp.text}")
            raise ProofServiceError(
                f"Prover service error: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise ProofServiceError("Prover returned a non-JSON body", status_code=resp.status_code, body=resp.text) from e

        logger.info("ZK proof obtained")
        return ProofArtifact(data)
