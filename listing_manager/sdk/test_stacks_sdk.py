# -*- coding: utf-8 -*-
"""
Test di StacksClient con `requests` sostituito da risposte finte.
"""
import pytest
import requests

from listing_manager.sdk import stacks_sdk
from listing_manager.sdk.stacks_sdk import ApiError, BroadcastRejected, StacksClient, is_valid_txid

BASE_URL = "https://stacks.example"
TXID = "ab" * 32


class FakeResponse:
    def __init__(self, status_code=200, json_body=None, text=""):
        self.status_code = status_code
        self._json = json_body
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._json is None:
            raise ValueError("no json")
        return self._json


@pytest.fixture
def calls():
    return []


def _patch(monkeypatch, calls, method, response):
    def fake(url, **kwargs):
        calls.append((url, kwargs))
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(stacks_sdk.requests, method, fake)


def test_broadcast_returns_normalized_txid(monkeypatch, calls):
    _patch(monkeypatch, calls, "post", FakeResponse(200, TXID))

    txid = StacksClient(BASE_URL + "/").broadcast_transaction(b"\x80raw")

    assert txid == "0x" + TXID
    url, kwargs = calls[0]
    assert url == f"{BASE_URL}/v2/transactions"
    assert kwargs["data"] == b"\x80raw"
    assert kwargs["headers"]["Content-Type"] == "application/octet-stream"


def test_broadcast_rejection_carries_reason(monkeypatch, calls):
    body = {"error": "transaction rejected", "reason": "BadNonce", "reason_data": {"expected": 4}, "txid": TXID}
    _patch(monkeypatch, calls, "post", FakeResponse(400, body, text="rejected"))

    with pytest.raises(BroadcastRejected) as exc_info:
        StacksClient(BASE_URL).broadcast_transaction(b"raw")

    assert exc_info.value.reason == "BadNonce"
    assert exc_info.value.reason_data == {"expected": 4}
    assert exc_info.value.txid == "0x" + TXID


def test_broadcast_rejection_without_json_body(monkeypatch, calls):
    _patch(monkeypatch, calls, "post", FakeResponse(400, None, text="bad fee"))

    with pytest.raises(BroadcastRejected) as exc_info:
        StacksClient(BASE_URL).broadcast_transaction(b"raw")
    assert exc_info.value.reason == "bad fee"


def test_broadcast_server_error_is_not_a_rejection(monkeypatch, calls):
    _patch(monkeypatch, calls, "post", FakeResponse(503, None, text="unavailable"))

    with pytest.raises(ApiError) as exc_info:
        StacksClient(BASE_URL).broadcast_transaction(b"raw")
    assert not isinstance(exc_info.value, BroadcastRejected)


def test_connection_errors_become_api_error(monkeypatch, calls):
    _patch(monkeypatch, calls, "post", requests.ConnectionError("down"))

    with pytest.raises(ApiError):
        StacksClient(BASE_URL).broadcast_transaction(b"raw")


def test_get_account_nonce(monkeypatch, calls):
    _patch(monkeypatch, calls, "get", FakeResponse(200, {"balance": "0x0", "nonce": 7}))

    assert StacksClient(BASE_URL).get_account_nonce("ST123") == 7
    url, kwargs = calls[0]
    assert url == f"{BASE_URL}/v2/accounts/ST123"
    assert kwargs["params"] == {"proof": 0}


def test_get_transaction_unknown_returns_none(monkeypatch, calls):
    _patch(monkeypatch, calls, "get", FakeResponse(404, {"error": "not found"}))

    assert StacksClient(BASE_URL).get_transaction(TXID) is None
    assert calls[0][0] == f"{BASE_URL}/extended/v1/tx/0x{TXID}"


def test_get_transaction_returns_body(monkeypatch, calls):
    body = {"tx_id": "0x" + TXID, "tx_status": "pending"}
    _patch(monkeypatch, calls, "get", FakeResponse(200, body))

    assert StacksClient(BASE_URL).get_transaction("0x" + TXID) == body


@pytest.mark.parametrize(
    "response",
    [requests.ConnectionError("down"), FakeResponse(502, None, text="bad gateway"), FakeResponse(200, ["x"])],
)
def test_get_transaction_errors_carry_txid(monkeypatch, calls, response):
    _patch(monkeypatch, calls, "get", response)

    with pytest.raises(ApiError) as exc_info:
        StacksClient(BASE_URL).get_transaction(TXID.upper())
    assert exc_info.value.txid == "0x" + TXID


@pytest.mark.parametrize("body", [{"nonce": "abc"}, {"nonce": None}, ["nonce"], {"balance": "0x0"}])
def test_malformed_account_response_is_api_error(monkeypatch, calls, body):
    _patch(monkeypatch, calls, "get", FakeResponse(200, body))

    with pytest.raises(ApiError):
        StacksClient(BASE_URL).get_account_nonce("ST123")


def test_is_valid_txid():
    assert is_valid_txid(TXID)
    assert is_valid_txid("0x" + TXID.upper())
    assert not is_valid_txid("0xabc")
    assert not is_valid_txid("zz" * 32)
    assert not is_valid_txid(TXID + "00")
