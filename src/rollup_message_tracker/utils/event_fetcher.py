"""
Event/log fetch layer.

Builds topic filters from the packaged ABIs, runs eth_getLogs through a
ChainClient and decodes the results with web3's event codec.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3
from web3.types import BlockIdentifier, FilterParams, LogReceipt

from .chain_client import ChainClient, to_hex_hash, to_int
from .contract_utility import get_codec_contract, get_event_abi, get_event_topic

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FetchedEvent:
    """A decoded log together with its position on chain.

    Attributes:
        event: Decoded event arguments keyed by ABI name
        name: Event name
        address: Emitting contract
        block_number: Block the log was emitted in
        block_hash: Hash of that block
        transaction_hash: Transaction that emitted the log
        log_index: Index of the log in the block
        topics: Raw topics
        data: Raw data
    """

    event: Mapping[str, Any]
    name: str
    address: str
    block_number: int
    block_hash: bytes
    transaction_hash: str
    log_index: int
    topics: tuple[bytes, ...]
    data: bytes

    def __str__(self) -> str:
        return f"{self.name}(block={self.block_number}, tx={self.transaction_hash})"


def _encode_topic(abi_type: str, value: Any) -> str:
    if abi_type == "bytes32":
        raw = HexBytes(value)
        if len(raw) != 32:
            raise ValueError(f"bytes32 topic must be 32 bytes, got {len(raw)}")
        return Web3.to_hex(raw)
    if abi_type == "address":
        value = Web3.to_checksum_address(value)
    return Web3.to_hex(encode([abi_type], [value]))


def build_topics(
    contract_name: str,
    event_name: str,
    argument_filters: Mapping[str, Any] | None = None,
) -> list[str | list[str] | None]:
    """Topic list for an event, one slot per indexed argument.

    A filter value may be a single value or a list of alternatives. Unfiltered
    trailing slots are dropped.
    """
    argument_filters = argument_filters or {}
    event_abi = get_event_abi(contract_name, event_name)
    indexed_inputs = [arg for arg in event_abi["inputs"] if arg.get("indexed")]

    unknown = set(argument_filters) - {arg["name"] for arg in indexed_inputs}
    if unknown:
        raise ValueError(f"{event_name} has no indexed argument(s) {sorted(unknown)}")

    topics: list[str | list[str] | None] = [Web3.to_hex(get_event_topic(contract_name, event_name))]
    for arg in indexed_inputs:
        value = argument_filters.get(arg["name"])
        if value is None:
            topics.append(None)
        elif isinstance(value, (list, tuple)):
            topics.append([_encode_topic(arg["type"], item) for item in value])
        else:
            topics.append(_encode_topic(arg["type"], value))

    while topics[-1] is None:
        topics.pop()
    return topics


def decode_log(contract_name: str, event_name: str, log: LogReceipt) -> FetchedEvent:
    codec = get_codec_contract(contract_name)
    decoded = getattr(codec.events, event_name)().process_log(log)
    return FetchedEvent(
        event=decoded["args"],
        name=event_name,
        address=Web3.to_checksum_address(log["address"]),
        block_number=to_int(log["blockNumber"]),
        block_hash=bytes(HexBytes(log["blockHash"])),
        transaction_hash=to_hex_hash(bytes(HexBytes(log["transactionHash"]))),
        log_index=to_int(log["logIndex"]),
        topics=tuple(bytes(HexBytes(topic)) for topic in log["topics"]),
        data=bytes(HexBytes(log["data"])),
    )


def parse_typed_logs(
    contract_name: str,
    logs: Iterable[LogReceipt],
    event_name: str,
) -> list[FetchedEvent]:
    """Decode the logs of one event type, ignoring everything else.

    Used on receipts, where logs of many contracts are mixed together.
    """
    topic = get_event_topic(contract_name, event_name)
    return [
        decode_log(contract_name, event_name, log)
        for log in logs
        if log["topics"] and bytes(HexBytes(log["topics"][0])) == topic
    ]


class EventFetcher:
    """Fetches and decodes events matching an ABI and topic filter."""

    def __init__(self, client: ChainClient) -> None:
        self.client = client

    async def get_events(
        self,
        contract_name: str,
        event_name: str,
        from_block: BlockIdentifier,
        to_block: BlockIdentifier,
        address: str | None = None,
        argument_filters: Mapping[str, Any] | None = None,
    ) -> list[FetchedEvent]:
        """
        Fetch events over a block range.

        Args:
            contract_name: ABI to decode with
            event_name: Event to fetch
            from_block: First block (number or tag)
            to_block: Last block (number or tag)
            address: Restrict to logs emitted by this contract
            argument_filters: Values for indexed arguments

        Returns:
            Decoded events in log order
        """
        filter_params: FilterParams = {
            "fromBlock": from_block,
            "toBlock": to_block,
            "topics": build_topics(contract_name, event_name, argument_filters),
        }
        if address is not None:
            filter_params["address"] = Web3.to_checksum_address(address)

        logger.debug(
            f"{self.client.name}: fetching {event_name} logs "
            f"from {from_block} to {to_block}"
        )
        logs = await self.client.get_logs(filter_params)
        return [decode_log(contract_name, event_name, log) for log in logs]
