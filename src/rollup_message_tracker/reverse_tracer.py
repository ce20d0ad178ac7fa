"""
Reverse tracing: recover the transaction on the other chain that caused a
given execution transaction.

Most transactions are unrelated to the bridge, so every lookup here returns
None when there is nothing to find instead of raising.
"""

import logging
from typing import Any

from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes
from web3.exceptions import Web3Exception
from web3.types import TxReceipt

from .constants import (
    ARB_RETRYABLE_TX_ADDRESS,
    ARB_SYS_ADDRESS,
    ARBITRUM_DEPOSIT_TX_TYPE,
    ARBITRUM_PARENT_FALLBACK_LOOKBACK,
    ARBITRUM_SUBMIT_RETRYABLE_TX_TYPE,
    NODE_INTERFACE_ADDRESS,
    PARENT_LOG_CHUNK_SIZE,
    PARENT_LOOKBACK_BLOCKS,
)
from .networks import get_arbitrum_network
from .utils.chain_client import ChainClient, to_hex_hash, to_int
from .utils.contract_utility import get_codec_contract
from .utils.event_fetcher import EventFetcher, parse_typed_logs

logger = logging.getLogger(__name__)


def _request_id(raw_tx: dict[str, Any] | None, tx_type: int) -> int | None:
    """Message number carried by an Arbitrum system transaction of the given type."""
    if not raw_tx or raw_tx.get("requestId") is None:
        return None
    if to_int(raw_tx.get("type")) != tx_type:
        return None
    return to_int(raw_tx["requestId"])


async def get_parent_event_block_range(
    child_client: ChainClient,
    parent_client: ChainClient,
    child_block: int,
    lookback: int = PARENT_LOOKBACK_BLOCKS,
) -> tuple[int, int]:
    """
    Parent blocks that may hold the delivery of a message seen at child_block.

    The child records the L1 block number it was built on. When the parent is
    itself an Arbitrum chain that number is mapped onto the parent's own blocks.
    """
    l1_block = int(
        await child_client.call("NodeInterface", NODE_INTERFACE_ADDRESS, "blockL1Num", child_block)
    )
    from_l1_block = max(0, l1_block - lookback)

    if not await parent_client.is_arbitrum():
        return from_l1_block, l1_block

    try:
        first_range = await parent_client.call(
            "NodeInterface", NODE_INTERFACE_ADDRESS, "l2BlockRangeForL1", from_l1_block
        )
        last_range = await parent_client.call(
            "NodeInterface", NODE_INTERFACE_ADDRESS, "l2BlockRangeForL1", l1_block
        )
        return int(first_range[0]), int(last_range[1])
    except (Web3Exception, ValueError) as e:
        latest = await parent_client.block_number()
        logger.warning(
            f"{parent_client.name}: l2BlockRangeForL1 failed ({e}), "
            f"searching the last {ARBITRUM_PARENT_FALLBACK_LOOKBACK} blocks"
        )
        return max(0, latest - ARBITRUM_PARENT_FALLBACK_LOOKBACK), latest


async def find_message_delivered_transaction_hash(
    parent_client: ChainClient,
    bridge_address: str,
    message_number: int,
    from_block: int,
    to_block: int,
    chunk_size: int = PARENT_LOG_CHUNK_SIZE,
) -> str | None:
    """Search MessageDelivered(message_number) newest chunk first."""
    fetcher = EventFetcher(parent_client)
    end = to_block
    while end >= from_block:
        start = max(from_block, end - chunk_size + 1)
        events = await fetcher.get_events(
            "Bridge",
            "MessageDelivered",
            start,
            end,
            address=bridge_address,
            argument_filters={"messageIndex": message_number},
        )
        if events:
            logger.debug(f"MessageDelivered({message_number}) found in [{start}, {end}]")
            return events[0].transaction_hash
        end = start - 1
    return None


async def _trace_request(
    child_client: ChainClient,
    parent_client: ChainClient,
    message_number: int,
    child_block: int,
    chunk_size: int,
) -> str | None:
    network = await get_arbitrum_network(child_client)
    from_block, to_block = await get_parent_event_block_range(child_client, parent_client, child_block)
    return await find_message_delivered_transaction_hash(
        parent_client, network.eth_bridge.bridge, message_number, from_block, to_block, chunk_size
    )


async def trace_retryable_to_parent(
    child_client: ChainClient,
    parent_client: ChainClient,
    tx_hash: str,
    block_number: int,
    chunk_size: int = PARENT_LOG_CHUNK_SIZE,
) -> str | None:
    """
    Parent transaction behind a retryable ticket creation or redeem.

    A redeem is recognised by a RedeemScheduled event naming it as the retry
    transaction; its ticket id then stands in for the transaction.

    Args:
        child_client: Client of the child chain
        parent_client: Client of the parent chain
        tx_hash: Child transaction (ticket creation or redeem)
        block_number: Child block the transaction was included in

    Returns:
        Parent transaction hash, or None if the transaction cannot be traced
    """
    redeems = await EventFetcher(child_client).get_events(
        "ArbRetryableTx",
        "RedeemScheduled",
        block_number,
        block_number,
        address=ARB_RETRYABLE_TX_ADDRESS,
        argument_filters={"retryTxHash": HexBytes(tx_hash)},
    )
    ticket_id = to_hex_hash(bytes(HexBytes(redeems[0].event["ticketId"]))) if redeems else tx_hash

    ticket_tx = await child_client.get_raw_transaction(ticket_id)
    message_number = _request_id(ticket_tx, ARBITRUM_SUBMIT_RETRYABLE_TX_TYPE)
    if message_number is None:
        logger.debug(f"{tx_hash} is not a retryable ticket or redeem")
        return None

    ticket_block = ticket_tx.get("blockNumber")
    child_block = to_int(ticket_block) if ticket_block is not None else block_number
    return await _trace_request(child_client, parent_client, message_number, child_block, chunk_size)


async def trace_deposit_to_parent(
    child_client: ChainClient,
    parent_client: ChainClient,
    tx_hash: str,
    block_number: int,
    chunk_size: int = PARENT_LOG_CHUNK_SIZE,
) -> str | None:
    """Parent transaction behind an ETH deposit; None for anything else."""
    deposit_tx = await child_client.get_raw_transaction(tx_hash)
    message_number = _request_id(deposit_tx, ARBITRUM_DEPOSIT_TX_TYPE)
    if message_number is None:
        logger.debug(f"{tx_hash} is not an ETH deposit")
        return None
    return await _trace_request(child_client, parent_client, message_number, block_number, chunk_size)


def _decode_child_block(calldata: bytes) -> int | None:
    """Child block number from Outbox.executeTransaction calldata."""
    try:
        function, params = get_codec_contract("Outbox").decode_function_input(calldata)
    except (ValueError, DecodingError, Web3Exception):
        return None
    if function.fn_name != "executeTransaction":
        return None
    return int(params["l2Block"])


async def trace_outbox_execution_to_child(
    parent_client: ChainClient,
    child_client: ChainClient,
    receipt: TxReceipt,
) -> str | None:
    """
    Child transaction that sent the message executed by a parent outbox transaction.

    Returns:
        Child transaction hash, or None if the receipt executed no outbox message
    """
    executed = parse_typed_logs("Outbox", receipt["logs"], "OutBoxTransactionExecuted")
    if not executed:
        return None
    position = int(executed[0].event["transactionIndex"])

    tx = await parent_client.get_transaction(to_hex_hash(bytes(HexBytes(receipt["transactionHash"]))))
    if tx is None:
        return None

    child_block = _decode_child_block(bytes(HexBytes(tx.get("input") or tx.get("data") or b"")))
    if child_block is None:
        logger.debug(f"Transaction {to_hex_hash(bytes(HexBytes(receipt['transactionHash'])))} is not an outbox execution")
        return None

    sent = await EventFetcher(child_client).get_events(
        "ArbSys",
        "L2ToL1Tx",
        child_block,
        child_block,
        address=ARB_SYS_ADDRESS,
        argument_filters={"position": position},
    )
    if not sent:
        return None
    return sent[0].transaction_hash
