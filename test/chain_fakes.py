"""In-memory chain clients and log builders shared by the unit tests."""

from collections.abc import Callable
from typing import Any

from eth_abi import encode
from eth_utils import collapse_if_tuple
from hexbytes import HexBytes
from web3 import Web3

from rollup_message_tracker.models import ArbBlock
from rollup_message_tracker.utils.chain_client import ChainClient, SigningChainClient, to_int
from rollup_message_tracker.utils.contract_utility import get_event_abi, get_event_topic

TX_HASH = "0x" + "ab" * 32
BLOCK_HASH = "0x" + "cd" * 32


def make_log(
    contract_name: str,
    event_name: str,
    args: dict[str, Any],
    address: str,
    block_number: int = 1,
    transaction_hash: str = TX_HASH,
    log_index: int = 0,
    block_hash: str = BLOCK_HASH,
) -> dict[str, Any]:
    """Encode an event from the packaged ABIs into a raw log dict."""
    event_abi = get_event_abi(contract_name, event_name)
    topics = [HexBytes(get_event_topic(contract_name, event_name))]
    data_types, data_values = [], []
    for arg in event_abi["inputs"]:
        arg_type = collapse_if_tuple(arg)
        if arg.get("indexed"):
            topics.append(HexBytes(encode([arg_type], [args[arg["name"]]])))
        else:
            data_types.append(arg_type)
            data_values.append(args[arg["name"]])

    return {
        "address": Web3.to_checksum_address(address),
        "topics": topics,
        "data": HexBytes(encode(data_types, data_values)),
        "blockNumber": block_number,
        "blockHash": HexBytes(block_hash),
        "transactionHash": HexBytes(transaction_hash),
        "transactionIndex": 0,
        "logIndex": log_index,
        "removed": False,
    }


def make_receipt(
    logs: list[dict[str, Any]],
    transaction_hash: str = TX_HASH,
    block_number: int = 1,
    status: int = 1,
    block_hash: str = BLOCK_HASH,
) -> dict[str, Any]:
    return {
        "transactionHash": HexBytes(transaction_hash),
        "blockNumber": block_number,
        "blockHash": HexBytes(block_hash),
        "status": status,
        "logs": logs,
    }


def make_block(number: int, timestamp: int = 0, **kwargs: Any) -> ArbBlock:
    return ArbBlock(
        number=number,
        hash=bytes(HexBytes(kwargs.pop("hash", "0x" + f"{number:064x}"))),
        timestamp=timestamp,
        **kwargs,
    )


def _matches_topic(expected: Any, actual: bytes) -> bool:
    if expected is None:
        return True
    if isinstance(expected, list):
        return any(_matches_topic(option, actual) for option in expected)
    return bytes(HexBytes(expected)) == bytes(actual)


class FakeChainClient(ChainClient):
    """
    ChainClient backed by dictionaries instead of an RPC endpoint.

    Contract calls are answered from ``call_handlers``, keyed by function
    name. A handler may be a plain value, an exception instance to raise, or
    a callable receiving the call arguments.
    """

    def __init__(
        self,
        chain_id: int = 42161,
        name: str = "chain",
        latest_block: int = 100,
        arbitrum: bool = True,
    ) -> None:
        ChainClient.__init__(self, None, name=name)
        self._chain_id = chain_id
        self._is_arbitrum = arbitrum
        self.latest_block = latest_block
        self.blocks: dict[int, ArbBlock] = {}
        self.receipts: dict[str, dict[str, Any]] = {}
        self.transactions: dict[str, dict[str, Any]] = {}
        self.raw_transactions: dict[str, dict[str, Any]] = {}
        self.logs: list[dict[str, Any]] = []
        self.call_handlers: dict[str, Any] = {}
        self.calls: list[tuple[str, str, tuple[Any, ...]]] = []
        self.log_queries: list[dict[str, Any]] = []

    async def chain_id(self) -> int:
        return self._chain_id

    async def is_arbitrum(self) -> bool:
        return self._is_arbitrum

    async def block_number(self) -> int:
        return self.latest_block

    async def get_block(self, block_identifier) -> ArbBlock | None:
        if block_identifier == "latest":
            block_identifier = self.latest_block
        if isinstance(block_identifier, str):
            wanted = bytes(HexBytes(block_identifier))
            return next((b for b in self.blocks.values() if b.hash == wanted), None)
        return self.blocks.get(block_identifier)

    async def get_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        return self.transactions.get(tx_hash.lower())

    async def get_raw_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        return self.raw_transactions.get(tx_hash.lower())

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        return self.receipts.get(tx_hash.lower())

    def add_receipt(self, receipt: dict[str, Any]) -> None:
        self.receipts[Web3.to_hex(receipt["transactionHash"])] = receipt

    def _bound(self, value: Any) -> int:
        if value in ("latest", "pending"):
            return self.latest_block
        if value == "earliest":
            return 0
        return to_int(value)

    async def get_logs(self, filter_params) -> list[dict[str, Any]]:
        self.log_queries.append(dict(filter_params))
        from_block = self._bound(filter_params.get("fromBlock", "earliest"))
        to_block = self._bound(filter_params.get("toBlock", "latest"))
        address = filter_params.get("address")
        topics = filter_params.get("topics") or []

        matching = []
        for log in self.logs:
            if not from_block <= log["blockNumber"] <= to_block:
                continue
            if address is not None and log["address"].lower() != address.lower():
                continue
            if len(topics) > len(log["topics"]):
                continue
            if all(_matches_topic(expected, log["topics"][i]) for i, expected in enumerate(topics)):
                matching.append(log)
        return matching

    async def call(
        self,
        contract_name: str,
        address: str,
        function_name: str,
        *args: Any,
        block_identifier="latest",
    ) -> Any:
        self.calls.append((contract_name, function_name, args))
        if function_name not in self.call_handlers:
            raise AssertionError(f"Unexpected call {contract_name}.{function_name}{args}")
        handler = self.call_handlers[function_name]
        if isinstance(handler, Exception):
            raise handler
        if isinstance(handler, Callable):
            return handler(*args)
        return handler

    def calls_to(self, function_name: str) -> list[tuple[Any, ...]]:
        return [args for _, name, args in self.calls if name == function_name]


class FakeSigningChainClient(FakeChainClient, SigningChainClient):
    """FakeChainClient that records transactions instead of sending them."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.account = None
        self.sent: list[tuple[str, str, str, tuple[Any, ...]]] = []

    @property
    def address(self) -> str:
        return "0x" + "11" * 20

    async def transact(
        self,
        contract_name: str,
        address: str,
        function_name: str,
        *args: Any,
        tx_params: dict[str, Any] | None = None,
    ) -> str:
        self.sent.append((contract_name, address, function_name, args))
        return "0x" + f"{len(self.sent):064x}"
