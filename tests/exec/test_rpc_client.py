"""Tests for the Solana JSON-RPC client."""

import base64
import json

import httpx
import pytest
import respx

from tokenchat.exec.rpc import RpcClient, SolanaRpcError, reaches_commitment

RPC_URL = "https://rpc.test"


def _result(result):
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": result})


def _status(confirmation_status, err=None):
    return _result(
        {"value": [{"slot": 42, "confirmationStatus": confirmation_status, "err": err}]}
    )


@pytest.fixture
def rpc():
    return RpcClient(RPC_URL, client=httpx.AsyncClient())


class TestSolanaRpcError:
    def test_error_creation(self):
        error = SolanaRpcError(code=-32603, message="Internal error", data={"details": "x"})

        assert error.code == -32603
        assert error.data == {"details": "x"}
        assert str(error) == "RPC Error -32603: Internal error"


class TestReachesCommitment:
    def test_ordering(self):
        assert reaches_commitment("finalized", "confirmed")
        assert reaches_commitment("confirmed", "confirmed")
        assert not reaches_commitment("confirmed", "finalized")
        assert not reaches_commitment(None, "processed")


class TestRpcClient:
    def test_request_ids_increase(self, rpc):
        assert rpc._get_request_id() == 1
        assert rpc._get_request_id() == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_account_info_missing(self, rpc):
        """Test a missing account is a None value, not an error."""
        route = respx.post(RPC_URL).mock(
            return_value=_result({"context": {"slot": 1}, "value": None})
        )

        assert await rpc.get_account_info("Acct1111") is None
        body = json.loads(route.calls[0].request.content)
        assert body["method"] == "getAccountInfo"
        assert body["params"] == ["Acct1111", {"encoding": "base64", "commitment": "confirmed"}]

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_account_info_present(self, rpc):
        value = {"lamports": 2039280, "owner": "Tokenkeg", "data": ["", "base64"]}
        respx.post(RPC_URL).mock(return_value=_result({"context": {"slot": 1}, "value": value}))

        assert await rpc.get_account_info("Acct1111") == value

    @pytest.mark.asyncio
    @respx.mock
    async def test_rpc_error(self, rpc):
        respx.post(RPC_URL).mock(
            return_value=httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": 1, "error": {"code": 429, "message": "Too many"}},
            )
        )

        with pytest.raises(SolanaRpcError) as exc_info:
            await rpc.get_account_info("Acct1111")
        assert exc_info.value.code == 429

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_propagates(self, rpc):
        """Test transport errors are not retried by the client itself."""
        route = respx.post(RPC_URL).mock(return_value=httpx.Response(503))

        with pytest.raises(httpx.HTTPStatusError):
            await rpc.get_account_info("Acct1111")
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_latest_blockhash(self, rpc):
        respx.post(RPC_URL).mock(
            return_value=_result(
                {"value": {"blockhash": "Hash12345678", "lastValidBlockHeight": 99}}
            )
        )

        result = await rpc.get_latest_blockhash()

        assert result["value"]["blockhash"] == "Hash12345678"

    @pytest.mark.asyncio
    @respx.mock
    async def test_send_raw_transaction(self, rpc):
        route = respx.post(RPC_URL).mock(return_value=_result("Sig111"))

        signature = await rpc.send_raw_transaction(
            b"\x01\x02", skip_preflight=True, max_retries=10
        )

        assert signature == "Sig111"
        body = json.loads(route.calls[0].request.content)
        assert body["method"] == "sendTransaction"
        assert body["params"][0] == base64.b64encode(b"\x01\x02").decode()
        assert body["params"][1] == {
            "encoding": "base64",
            "skipPreflight": True,
            "preflightCommitment": "processed",
            "maxRetries": 10,
        }

    @pytest.mark.asyncio
    @respx.mock
    async def test_confirm_waits_for_commitment(self, rpc):
        """Test polling continues until the requested commitment is reached."""
        route = respx.post(RPC_URL).mock(
            side_effect=[_result({"value": [None]}), _status("confirmed"), _status("finalized")]
        )

        status = await rpc.confirm_signature("Sig111", "finalized", timeout=5, poll_interval=0)

        assert status["confirmationStatus"] == "finalized"
        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_confirm_failed_transaction(self, rpc):
        respx.post(RPC_URL).mock(
            return_value=_status("confirmed", err={"InstructionError": [0, "Custom"]})
        )

        with pytest.raises(SolanaRpcError, match="Transaction failed"):
            await rpc.confirm_signature("Sig111", timeout=5, poll_interval=0)

    @pytest.mark.asyncio
    @respx.mock
    async def test_confirm_timeout(self, rpc):
        respx.post(RPC_URL).mock(return_value=_status("processed"))

        with pytest.raises(TimeoutError, match="Sig111"):
            await rpc.confirm_signature("Sig111", timeout=0.05, poll_interval=0.01)

    @pytest.mark.asyncio
    @respx.mock
    async def test_confirm_polls_through_transport_errors(self, rpc):
        route = respx.post(RPC_URL).mock(
            side_effect=[httpx.Response(503), httpx.ConnectError("reset"), _status("finalized")]
        )

        status = await rpc.confirm_signature("Sig111", timeout=5, poll_interval=0)

        assert status["slot"] == 42
        assert route.call_count == 3
        body = json.loads(route.calls[0].request.content)
        assert body["method"] == "getSignatureStatuses"
        assert body["params"] == [["Sig111"], {"searchTransactionHistory": True}]
