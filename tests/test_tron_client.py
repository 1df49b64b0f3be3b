"""
Unit Tests - TRON Client
========================
Address handling, event decoding and TronGrid event paging.
"""

import pytest
import requests

from tron_client import ContractEvent, TronApiError, TronGridClient, is_valid_tron_address, to_base58_address

USDT = "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t"
USDT_HEX = "41a614f803b6fd780986a42c78ec9c7f77e6ded13c"


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.headers = {}

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, dict(params or {})))
        return self.responses.pop(0)


class FakeTron:
    def get_block(self, number):
        return {"block_header": {"raw_data": {"number": number, "timestamp": number * 3000}}}

    def get_latest_block_number(self):
        return 321


def raw_event(block, tx="tx", name="NoticeServed", **result):
    return {
        "event_name": name,
        "transaction_id": tx,
        "block_number": block,
        "block_timestamp": block * 3000,
        "result": result,
        "result_type": {"recipient": "address"},
    }


@pytest.fixture
def client():
    grid = TronGridClient(api_url="https://nile.trongrid.io/", api_key="", contract_address=USDT)
    grid.tron = FakeTron()
    return grid


class TestAddresses:
    @pytest.mark.unit
    def test_valid_base58_address(self):
        assert is_valid_tron_address(USDT)

    @pytest.mark.unit
    @pytest.mark.parametrize("value", [None, "", "0x1234", USDT[:-1] + "u", USDT.lower(), 42])
    def test_invalid_addresses(self, value):
        assert not is_valid_tron_address(value)

    @pytest.mark.unit
    def test_hex_event_address_converts_to_base58(self):
        assert to_base58_address(USDT_HEX) == USDT
        assert to_base58_address("0x" + USDT_HEX[2:]) == USDT

    @pytest.mark.unit
    def test_unconvertible_address(self):
        assert to_base58_address("zz") is None
        assert to_base58_address(None) is None


class TestContractEvent:
    @pytest.mark.unit
    def test_from_api_drops_positional_keys_and_normalizes_addresses(self):
        event = ContractEvent.from_api(
            raw_event(7, tx="abc", alertId="11", recipient="0x" + USDT_HEX[2:], **{"0": "11", "1": "12"})
        )

        assert event.transaction_id == "abc"
        assert event.block_number == 7
        assert event.result == {"alertId": "11", "recipient": USDT}


class TestTronGridClient:
    @pytest.mark.unit
    def test_requires_contract_address(self, monkeypatch):
        monkeypatch.setattr("config.CONTRACT_ADDRESS", "")
        with pytest.raises(RuntimeError, match="CONTRACT_ADDRESS"):
            TronGridClient(api_url="https://nile.trongrid.io")

    @pytest.mark.unit
    def test_rejects_invalid_contract_address(self):
        with pytest.raises(RuntimeError, match="not a valid TRON address"):
            TronGridClient(api_url="https://nile.trongrid.io", contract_address="not-an-address")

    @pytest.mark.unit
    def test_current_block_and_timestamp(self, client):
        assert client.get_current_block_number() == 321
        assert client.get_block_timestamp(10) == 30000

    @pytest.mark.unit
    def test_events_page_until_past_range(self, client):
        client.session = FakeSession(
            [
                FakeResponse({"success": True, "data": [raw_event(9), raw_event(10, tx="a")], "meta": {"fingerprint": "fp1"}}),
                FakeResponse({"success": True, "data": [raw_event(12, tx="b"), raw_event(13, tx="c")], "meta": {"fingerprint": "fp2"}}),
            ]
        )

        events = client.get_contract_events("NoticeServed", 10, 12)

        assert [e.transaction_id for e in events] == ["a", "b"]
        url, first_params = client.session.calls[0]
        assert url == f"https://nile.trongrid.io/v1/contracts/{USDT}/events"
        assert first_params["event_name"] == "NoticeServed"
        assert first_params["min_block_timestamp"] == 30000
        assert first_params["order_by"] == "block_timestamp,asc"
        assert client.session.calls[1][1]["fingerprint"] == "fp1"

    @pytest.mark.unit
    def test_events_stop_without_fingerprint(self, client):
        client.session = FakeSession([FakeResponse({"success": True, "data": [raw_event(10)], "meta": {}})])

        assert len(client.get_contract_events("NoticeServed", 10, 50)) == 1
        assert len(client.session.calls) == 1

    @pytest.mark.unit
    def test_empty_range(self, client):
        assert client.get_contract_events("NoticeServed", 20, 10) == []

    @pytest.mark.unit
    def test_http_error_raises_api_error(self, client):
        client.session = FakeSession([FakeResponse({}, status_code=503)])

        with pytest.raises(TronApiError):
            client.get_contract_events("NoticeServed", 10, 12)

    @pytest.mark.unit
    def test_rejected_query_raises_api_error(self, client):
        client.session = FakeSession([FakeResponse({"success": False, "error": "bad event name"})])

        with pytest.raises(TronApiError, match="bad event name"):
            client.get_contract_events("Nope", 10, 12)
