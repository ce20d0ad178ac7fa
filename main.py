#!/usr/bin/env python3
"""Entry point for the rollup message tracker.

Looks up the cross-chain messages behind a transaction hash and prints their
status, or traces an execution transaction back to its origin.
"""

import argparse
import asyncio
import logging
import os
import sys


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


logger = logging.getLogger(__name__)

from rollup_message_tracker.config import TrackerConfig
from rollup_message_tracker.errors import BridgeTrackerError, WaitTimeoutError
from rollup_message_tracker.message import ChildTransactionReceipt, ParentTransactionReceipt
from rollup_message_tracker.reverse_tracer import (
    trace_deposit_to_parent,
    trace_outbox_execution_to_child,
    trace_retryable_to_parent,
)
from rollup_message_tracker.utils.chain_client import ChainClient


async def _require_receipt(client: ChainClient, tx_hash: str):
    receipt = await client.get_transaction_receipt(tx_hash)
    if receipt is None:
        raise BridgeTrackerError(f"Transaction {tx_hash} not found on the {client.name} chain")
    return receipt


async def trace_parent(config: TrackerConfig, args: argparse.Namespace) -> None:
    """Print the parent transaction behind a child retryable, redeem or deposit."""
    tx_hash = args.tx_hash
    parent_client, child_client = config.build_clients()
    receipt = ChildTransactionReceipt(await _require_receipt(child_client, tx_hash))
    chunk_size = config.monitoring.parent_log_chunk_size

    parent_hash = await trace_retryable_to_parent(
        child_client, parent_client, receipt.transaction_hash, receipt.block_number, chunk_size
    )
    if parent_hash is None:
        parent_hash = await trace_deposit_to_parent(
            child_client, parent_client, receipt.transaction_hash, receipt.block_number, chunk_size
        )
    print(parent_hash if parent_hash else "No parent transaction found")


async def trace_child(config: TrackerConfig, args: argparse.Namespace) -> None:
    """Print the child transaction whose message a parent outbox transaction executed."""
    tx_hash = args.tx_hash
    parent_client, child_client = config.build_clients()
    receipt = await _require_receipt(parent_client, tx_hash)
    child_hash = await trace_outbox_execution_to_child(parent_client, child_client, receipt)
    print(child_hash if child_hash else "No child transaction found")


async def show_withdrawals(config: TrackerConfig, args: argparse.Namespace) -> None:
    """Print the outbox messages sent by a child transaction.

    With --wait, block until each message is ready to execute.
    """
    parent_client, child_client = config.build_clients()
    receipt = ChildTransactionReceipt(await _require_receipt(child_client, args.tx_hash))

    messages = receipt.get_child_to_parent_messages(parent_client)
    if not messages:
        print("No child-to-parent messages in transaction")
        return

    for message in messages:
        if args.wait:
            status = await message.wait_until_ready_to_execute(
                child_client, retry_delay=config.monitoring.outbox_retry_delay
            )
        else:
            status = await message.status(child_client)
        first_block = await message.get_first_executable_block(child_client)
        print(f"{message.event}: {status.name}")
        if first_block is not None:
            print(f"  executable from parent block ~{first_block}")


async def show_retryables(config: TrackerConfig, args: argparse.Namespace) -> None:
    """Print the retryable tickets and ETH deposits created by a parent transaction.

    With --wait, wait up to DEPOSIT_TIMEOUT for each ticket or deposit to appear.
    """
    monitoring = config.monitoring
    parent_client, child_client = config.build_clients()
    receipt = ParentTransactionReceipt(await _require_receipt(parent_client, args.tx_hash))

    if await receipt.is_classic(child_client):
        for classic in await receipt.get_parent_to_child_messages_classic(child_client, monitoring):
            print(f"classic retryable {classic.retryable_creation_id}: {(await classic.status()).name}")
        return

    for message in await receipt.get_parent_to_child_messages(child_client, monitoring):
        try:
            result = await (message.wait_for_status() if args.wait else message.get_successful_redeem())
        except WaitTimeoutError as e:
            print(f"{message}: {e}")
            continue
        print(f"{message}: {result.status.name}")
        if result.child_tx_receipt is not None:
            print(f"  redeemed in {result.child_tx_receipt.transaction_hash}")

    for deposit in await receipt.get_eth_deposits(child_client, monitoring):
        if args.wait:
            await deposit.wait()
        print(f"{deposit}: {(await deposit.status()).name}")


COMMANDS = {
    "trace-parent": trace_parent,
    "trace-child": trace_child,
    "withdrawals": show_withdrawals,
    "retryables": show_retryables,
}


async def main() -> None:
    """Parse arguments, load configuration and run the selected command.

    Raises:
        SystemExit: On configuration or runtime errors
    """
    parser = argparse.ArgumentParser(
        description="Rollup Message Tracker - resolve and trace cross-chain messages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  PARENT_RPC_URL        - RPC endpoint of the parent chain
  CHILD_RPC_URL         - RPC endpoint of the child chain
  PRIVATE_KEY           - Signing key (optional)
  RECEIPT_POLL_INTERVAL - Seconds between receipt polls (default: 1)
  DEPOSIT_TIMEOUT       - Seconds to wait for ticket creation (default: 1800)
  OUTBOX_RETRY_DELAY    - Seconds between outbox polls (default: 0.5)
  PARENT_LOG_CHUNK_SIZE - Parent blocks per log query (default: 1000)
  RETRYABLE_SEARCH_SEED_BLOCKS - First child block window of the redeem search (default: 1000)
  LOG_LEVEL             - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("trace-parent", help="Trace a child retryable, redeem or deposit to its parent transaction")
    subparsers.add_parser("trace-child", help="Trace a parent outbox execution to its child transaction")
    withdrawals = subparsers.add_parser("withdrawals", help="Show child-to-parent messages of a child transaction")
    retryables = subparsers.add_parser("retryables", help="Show retryables and deposits of a parent transaction")
    for subparser in subparsers.choices.values():
        subparser.add_argument("tx_hash", help="Transaction hash")
    withdrawals.add_argument(
        "--wait", action="store_true", help="Wait until each message can be executed (polls OUTBOX_RETRY_DELAY)"
    )
    retryables.add_argument(
        "--wait", action="store_true", help="Wait up to DEPOSIT_TIMEOUT for tickets and deposits to appear"
    )
    args: argparse.Namespace = parser.parse_args()

    setup_logging(args.log_level)

    try:
        config = TrackerConfig.from_env()
        config.log_config()
        await COMMANDS[args.command](config, args)

    except BridgeTrackerError as e:
        logger.error(f"Lookup failed: {e}")
        sys.exit(1)

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - PARENT_RPC_URL: RPC endpoint of the parent chain")
        logger.error("  - CHILD_RPC_URL: RPC endpoint of the child chain")
        logger.error("  - PRIVATE_KEY: Optional, 64 hex characters")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
