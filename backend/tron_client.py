from dataclasses import dataclass, field
from typing import Any

import requests
from tronpy import Tron
from tronpy.exceptions import BadAddress, TransactionNotFound
from tronpy.keys import is_base58check_address, to_base58check_address
from tronpy.providers import HTTPProvider

import config

EVENTS_PAGE_SIZE = 200


class TronApiError(RuntimeError):
    pass


def is_valid_tron_address(value: Any) -> bool:
    if not isinstance(value, str) or len(value) != 34 or not value.startswith("T"):
        return False
    try:
        return bool(is_base58check_address(value))
    except (BadAddress, ValueError):
        return False


def to_base58_address(value: Any) -> str | None:
    """Convert an event-encoded address (0x.., 41.. hex or base58) to base58."""
    if not isinstance(value, str) or not value:
        return None
    try:
        return to_base58check_address(value)
    except (BadAddress, ValueError, IndexError):
        return None


@dataclass
class ContractEvent:
    event_name: str
    transaction_id: str
    block_number: int
    block_timestamp: int
    result: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "ContractEvent":
        result_types = raw.get("result_type") or {}
        result: dict[str, Any] = {}
        for key, value in (raw.get("result") or {}).items():
            if key.isdigit():
                continue
            if result_types.get(key) == "address":
                result[key] = to_base58_address(value) or value
            else:
                result[key] = value
        return cls(
            event_name=raw.get("event_name", ""),
            transaction_id=raw.get("transaction_id", ""),
            block_number=int(raw.get("block_number", 0)),
            block_timestamp=int(raw.get("block_timestamp", 0)),
            result=result,
        )


class TronGridClient:
    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        contract_address: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.api_url = (api_url or config.TRON_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else config.TRONGRID_API_KEY
        self.contract_address = contract_address or config.CONTRACT_ADDRESS
        if not self.contract_address:
            raise RuntimeError("CONTRACT_ADDRESS must be set to the deployed notice contract")
        if not is_valid_tron_address(self.contract_address):
            raise RuntimeError(f"CONTRACT_ADDRESS is not a valid TRON address: {self.contract_address}")
        self.timeout = timeout if timeout is not None else config.TRON_HTTP_TIMEOUT_SECONDS

        provider_kwargs: dict[str, Any] = {"timeout": self.timeout}
        if self.api_key:
            provider_kwargs["api_key"] = self.api_key
        self.tron = Tron(provider=HTTPProvider(self.api_url, **provider_kwargs))

        self.session = requests.Session()
        if self.api_key:
            self.session.headers["TRON-PRO-API-KEY"] = self.api_key

    def get_current_block_number(self) -> int:
        return int(self.tron.get_latest_block_number())

    def get_block_timestamp(self, block_number: int) -> int:
        block = self.tron.get_block(int(block_number))
        return int(block["block_header"]["raw_data"]["timestamp"])

    def get_transaction_info(self, tx_hash: str) -> dict[str, Any] | None:
        try:
            return self.tron.get_transaction_info(tx_hash)
        except TransactionNotFound:
            return None

    def _get_events_page(self, params: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.api_url}/v1/contracts/{self.contract_address}/events"
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise TronApiError(f"Event query failed: {exc}") from exc
        if payload.get("success") is False:
            raise TronApiError(f"Event query rejected: {payload.get('error', 'unknown error')}")
        return payload

    def get_contract_events(self, event_name: str, from_block: int, to_block: int) -> list[ContractEvent]:
        """
        Return ``event_name`` events emitted by the contract in blocks
        ``from_block``..``to_block`` inclusive, oldest first.

        The events endpoint filters by timestamp rather than block, so the
        query starts at the timestamp of ``from_block`` and stops paging once
        an event past ``to_block`` is seen.
        """
        if to_block < from_block:
            return []
        params: dict[str, Any] = {
            "event_name": event_name,
            "min_block_timestamp": self.get_block_timestamp(from_block),
            "order_by": "block_timestamp,asc",
            "limit": EVENTS_PAGE_SIZE,
        }
        events: list[ContractEvent] = []
        while True:
            payload = self._get_events_page(params)
            past_range = False
            for raw in payload.get("data", []):
                event = ContractEvent.from_api(raw)
                if event.block_number > to_block:
                    past_range = True
                    break
                if event.block_number >= from_block:
                    events.append(event)
            fingerprint = (payload.get("meta") or {}).get("fingerprint")
            if past_range or not fingerprint:
                return events
            params["fingerprint"] = fingerprint
