"""Minimal JSON-RPC client for the ledger fullnode.

Only the two calls the login flow needs: reading the current epoch and
submitting a signed transaction block.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from .errors import EpochUnavailable, SubmissionRejected

logger = logging.getLogger(__name__)


class LedgerRPCError(Exception):
    """Transport or protocol failure talking to the fullnode."""

    def __init__(self, message: str, error: Optional[Any] = None):
        super().__init__(message)
        self.error = error


class LedgerClient:
    """JSON-RPC 2.0 client for a ledger fullnode."""

    def __init__(self, url: str, http: Optional[requests.Session] = None, timeout: Optional[float] = 30):
        self.url = url
        self.http = http or requests.Session()
        self.timeout = timeout
        self._ids = itertools.count(1)

    def _call(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = self.http.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise LedgerRPCError(f"{method} request failed: {e}") from e

        if resp.status_code >= 300:
            raise LedgerRPCError(f"{method} failed: {resp.status_code} {resp.text}")

        try:
            data = resp.json()
        except ValueError as e:
            raise LedgerRPCError(f"{method} returned a non-JSON body") from e

        if data.get("error"):
            raise LedgerRPCError(f"{method} error: {data['error']}", error=data["error"])
        return data.get("result")

    def get_current_epoch(self) -> int:
        """Return the ledger's current epoch.

        Raises:
            EpochUnavailable: if the fullnode cannot be queried.
        """
        try:
            state = self._call("suix_getLatestSuiSystemState", [])
            epoch = int(state["epoch"])
        except (LedgerRPCError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Epoch query failed: {e}")
            raise EpochUnavailable(f"Could not read current epoch: {e}") from e

        logger.debug(f"Current epoch: {epoch}")
        return epoch

    def execute_transaction_block(self, tx_bytes: str, signatures: Sequence[str]) -> Dict[str, Any]:
        """Submit base64 transaction bytes with their serialized signatures.

        Raises:
            SubmissionRejected: if the fullnode refuses the transaction or
                reports a failed execution status.
        """
        params = [tx_bytes, list(signatures), {"showEffects": True}, "WaitForLocalExecution"]
        try:
            result = self._call("sui_executeTransactionBlock", params)
        except LedgerRPCError as e:
            raise SubmissionRejected(str(e), details=e.error) from e

        status = ((result or {}).get("effects") or {}).get("status") or {}
        if status.get("status") == "failure":
            raise SubmissionRejected(f"Transaction failed: {status.get('error')}", details=status)

        logger.info(f"Transaction executed: {(result or {}).get('digest')}")
        return result
