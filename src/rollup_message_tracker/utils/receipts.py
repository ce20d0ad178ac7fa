"""
Receipt polling helpers.
"""

import asyncio
import logging
from dataclasses import dataclass

from web3.types import TxReceipt

from ..constants import DEFAULT_RECEIPT_POLL_INTERVAL
from ..errors import WaitTimeoutError
from .chain_client import ChainClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SubmittedTransaction:
    """Hash of a transaction sent through a client, before it is mined."""

    tx_hash: str
    client: ChainClient

    def __str__(self) -> str:
        return f"SubmittedTransaction({self.tx_hash} on {self.client.name})"


async def get_transaction_receipt(
    client: ChainClient,
    tx_hash: str,
    confirmations: int | None = None,
    timeout: float | None = None,
    poll_interval: float = DEFAULT_RECEIPT_POLL_INTERVAL,
) -> TxReceipt | None:
    """
    Fetch a receipt, optionally waiting for it to appear.

    Without a timeout this is a single lookup. With a timeout the receipt is
    polled until it exists and has the requested confirmations, or None is
    returned once the timeout elapses.

    Args:
        client: Chain the transaction was sent to
        tx_hash: Transaction hash
        confirmations: Blocks (including the receipt's) that must exist
        timeout: Seconds to keep polling
        poll_interval: Seconds between polls

    Returns:
        The receipt, or None if it was not available in time
    """
    if timeout is None:
        receipt = await client.get_transaction_receipt(tx_hash)
        if receipt is None or not confirmations:
            return receipt
        return receipt if await _has_confirmations(client, receipt, confirmations) else None

    try:
        return await asyncio.wait_for(
            _poll_receipt(client, tx_hash, confirmations, poll_interval), timeout
        )
    except asyncio.TimeoutError:
        logger.debug(f"No receipt for {tx_hash} on {client.name} after {timeout}s")
        return None


async def _poll_receipt(
    client: ChainClient,
    tx_hash: str,
    confirmations: int | None,
    poll_interval: float,
) -> TxReceipt:
    while True:
        receipt = await client.get_transaction_receipt(tx_hash)
        if receipt is not None and (
            not confirmations or await _has_confirmations(client, receipt, confirmations)
        ):
            return receipt
        await asyncio.sleep(poll_interval)


async def _has_confirmations(client: ChainClient, receipt: TxReceipt, confirmations: int) -> bool:
    current = await client.block_number()
    return current - int(receipt["blockNumber"]) + 1 >= confirmations


async def wait_for_receipt(
    client: ChainClient,
    tx_hash: str,
    confirmations: int | None = None,
    timeout: float | None = None,
    poll_interval: float = DEFAULT_RECEIPT_POLL_INTERVAL,
) -> TxReceipt:
    """
    Poll until a receipt exists, with no bound unless timeout is given.

    Raises:
        WaitTimeoutError: If the timeout elapses first
    """
    if timeout is None:
        return await _poll_receipt(client, tx_hash, confirmations, poll_interval)

    receipt = await get_transaction_receipt(client, tx_hash, confirmations, timeout, poll_interval)
    if receipt is None:
        raise WaitTimeoutError(f"receipt of {tx_hash} on {client.name}", timeout)
    return receipt
