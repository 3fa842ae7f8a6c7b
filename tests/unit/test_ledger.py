"""
Unit tests for the ledger JSON-RPC client.
"""

from unittest.mock import MagicMock

import pytest
import requests

from suitter.zklogin.errors import EpochUnavailable, SubmissionRejected
from suitter.zklogin.ledger import LedgerClient


def _client(body=None, status_code=200, exc=None):
    http = MagicMock()
    if exc is not None:
        http.post.side_effect = exc
    else:
        resp = MagicMock(status_code=status_code, text=str(body))
        resp.json.return_value = body
        http.post.return_value = resp
    return LedgerClient("http://fullnode.test", http=http, timeout=3), http


class TestGetCurrentEpoch:
    def test_reads_epoch_from_system_state(self):
        client, http = _client({"jsonrpc": "2.0", "id": 1, "result": {"epoch": "417"}})

        assert client.get_current_epoch() == 417
        payload = http.post.call_args[1]["json"]
        assert payload["method"] == "suix_getLatestSuiSystemState"
        assert payload["params"] == []

    def test_request_ids_increment(self):
        client, http = _client({"result": {"epoch": "1"}})
        client.get_current_epoch()
        client.get_current_epoch()

        ids = [c[1]["json"]["id"] for c in http.post.call_args_list]
        assert ids == [1, 2]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"exc": requests.ConnectionError("down")},
            {"body": {"error": {"code": -32000, "message": "boom"}}},
            {"body": {"result": {}}},
            {"body": "oops", "status_code": 503},
        ],
    )
    def test_failures_become_epoch_unavailable(self, kwargs):
        client, _ = _client(**kwargs)

        with pytest.raises(EpochUnavailable) as excinfo:
            client.get_current_epoch()
        assert excinfo.value.retryable is True


class TestExecuteTransactionBlock:
    def test_submits_signatures(self):
        result = {"digest": "abc", "effects": {"status": {"status": "success"}}}
        client, http = _client({"result": result})

        assert client.execute_transaction_block("dHg=", ["sig1", "sig2"]) == result
        payload = http.post.call_args[1]["json"]
        assert payload["method"] == "sui_executeTransactionBlock"
        assert payload["params"][:2] == ["dHg=", ["sig1", "sig2"]]

    def test_rpc_error_rejected(self):
        error = {"code": -32002, "message": "Invalid user signature"}
        client, _ = _client({"error": error})

        with pytest.raises(SubmissionRejected) as excinfo:
            client.execute_transaction_block("dHg=", ["sig"])
        assert excinfo.value.details == error

    def test_failed_execution_rejected(self):
        status = {"status": "failure", "error": "InsufficientGas"}
        client, _ = _client({"result": {"digest": "abc", "effects": {"status": status}}})

        with pytest.raises(SubmissionRejected, match="InsufficientGas"):
            client.execute_transaction_block("dHg=", ["sig"])
