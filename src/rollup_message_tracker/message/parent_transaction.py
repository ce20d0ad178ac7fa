"""
Parent-chain transaction receipts.

A parent transaction that talks to the inbox emits one bridge
MessageDelivered and one inbox InboxMessageDelivered event per message. The
pair carries everything needed to identify the resulting child transaction.
"""

import logging
from dataclasses import dataclass
from typing import Any

from hexbytes import HexBytes
from web3 import Web3
from web3.types import TxReceipt

from ..config import MonitoringConfig
from ..errors import BridgeTrackerError, MissingEventError
from ..models import DeliveredMessage, InboxMessageKind, ParentToChildMessageStatus
from ..networks import get_arbitrum_network
from ..reverse_tracer import trace_outbox_execution_to_child
from ..utils.chain_client import ChainClient, to_hex_hash
from ..utils.event_fetcher import FetchedEvent, parse_typed_logs
from ..utils.receipts import SubmittedTransaction, wait_for_receipt
from .message_data_parser import SubmitRetryableMessageDataParser
from .parent_to_child import (
    EthDepositMessage,
    ParentToChildMessage,
    ParentToChildMessageReader,
    ParentToChildMessageReaderClassic,
)

logger = logging.getLogger(__name__)

@dataclass(slots=True)
class ChildTransactionWaitResult:
    """Outcome of waiting for the child side of a parent transaction.

    Attributes:
        complete: Whether the child side reached its final successful state
        message: The message that was waited on
        child_tx_receipt: Receipt on the child chain, when there is one
        status: Retryable status (contract calls only)
    """

    complete: bool
    message: Any
    child_tx_receipt: Any = None
    status: ParentToChildMessageStatus | None = None


class ParentTransactionReceipt:
    """A parent-chain receipt with the bridge events it carries decoded."""

    def __init__(self, receipt: TxReceipt) -> None:
        self.receipt = receipt
        self.transaction_hash = to_hex_hash(bytes(HexBytes(receipt["transactionHash"])))
        self.block_number = int(receipt["blockNumber"])
        self.status = int(receipt["status"])
        self.logs = list(receipt["logs"])

    def __getitem__(self, key: str):
        return self.receipt[key]

    async def is_classic(self, child_client: ChainClient) -> bool:
        """Whether this transaction predates the child chain's nitro upgrade.

        Chains that started on nitro have a genesis parent block of 0.
        """
        network = await get_arbitrum_network(child_client)
        return self.block_number < network.nitro_genesis_l1_block

    def get_message_delivered_events(self) -> list[FetchedEvent]:
        return parse_typed_logs("Bridge", self.logs, "MessageDelivered")

    def get_inbox_message_delivered_events(self) -> list[FetchedEvent]:
        return parse_typed_logs("Inbox", self.logs, "InboxMessageDelivered")

    def get_message_events(self) -> list[DeliveredMessage]:
        """
        Join bridge and inbox events by message number.

        Raises:
            MissingEventError: If the two event lists do not pair up one to one
        """
        bridge_events = self.get_message_delivered_events()
        inbox_events = self.get_inbox_message_delivered_events()

        if len(bridge_events) != len(inbox_events):
            raise MissingEventError(
                "InboxMessageDelivered",
                f"{self.transaction_hash} has {len(inbox_events)} inbox messages "
                f"but {len(bridge_events)} bridge messages",
            )

        inbox_by_number = {int(e.event["messageNum"]): e for e in inbox_events}
        messages = []
        for bridge_event in bridge_events:
            args = bridge_event.event
            message_number = int(args["messageIndex"])
            inbox_event = inbox_by_number.get(message_number)
            if inbox_event is None:
                raise MissingEventError(
                    "InboxMessageDelivered",
                    f"no inbox event for message {message_number} in {self.transaction_hash}",
                )
            messages.append(
                DeliveredMessage(
                    message_number=message_number,
                    inbox=Web3.to_checksum_address(args["inbox"]),
                    kind=int(args["kind"]),
                    sender=Web3.to_checksum_address(args["sender"]),
                    message_data_hash=bytes(HexBytes(args["messageDataHash"])),
                    base_fee_l1=int(args["baseFeeL1"]),
                    timestamp=int(args["timestamp"]),
                    data=bytes(inbox_event.event["data"]),
                )
            )
        return messages

    async def get_eth_deposits(
        self,
        child_client: ChainClient,
        monitoring: MonitoringConfig | None = None,
    ) -> list[EthDepositMessage]:
        monitoring = monitoring or MonitoringConfig()
        return [
            await EthDepositMessage.from_event_components(
                child_client,
                message.message_number,
                message.sender,
                message.data,
                poll_interval=monitoring.receipt_poll_interval,
                deposit_timeout=monitoring.deposit_timeout,
            )
            for message in self.get_message_events()
            if message.kind == InboxMessageKind.ETH_DEPOSIT
        ]

    async def get_parent_to_child_messages(
        self,
        child_client: ChainClient,
        monitoring: MonitoringConfig | None = None,
    ) -> list[ParentToChildMessageReader]:
        """
        Retryable tickets created by this transaction.

        Polling and search settings come from ``monitoring`` (defaults when None).

        Raises:
            BridgeTrackerError: If the transaction predates the nitro upgrade
        """
        network = await get_arbitrum_network(child_client)
        if await self.is_classic(child_client):
            raise BridgeTrackerError(
                f"{self.transaction_hash} is a classic transaction, "
                f"use get_parent_to_child_messages_classic"
            )

        monitoring = monitoring or MonitoringConfig()
        return [
            ParentToChildMessage.from_event_components(
                child_client,
                network.chain_id,
                message.sender,
                message.message_number,
                message.base_fee_l1,
                SubmitRetryableMessageDataParser.parse(message.data),
                retryable_lifetime_seconds=network.retryable_lifetime_seconds,
                poll_interval=monitoring.receipt_poll_interval,
                deposit_timeout=monitoring.deposit_timeout,
                search_seed_blocks=monitoring.retryable_search_seed_blocks,
            )
            for message in self.get_message_events()
            if message.kind == InboxMessageKind.SUBMIT_RETRYABLE_TX
            and message.inbox == network.eth_bridge.inbox
        ]

    async def get_parent_to_child_messages_classic(
        self,
        child_client: ChainClient,
        monitoring: MonitoringConfig | None = None,
    ) -> list[ParentToChildMessageReaderClassic]:
        """
        Retryable tickets of a transaction from before the nitro upgrade.

        Raises:
            BridgeTrackerError: If the transaction is a nitro transaction
        """
        network = await get_arbitrum_network(child_client)
        if not await self.is_classic(child_client):
            raise BridgeTrackerError(
                f"{self.transaction_hash} is a nitro transaction, use get_parent_to_child_messages"
            )
        poll_interval = (monitoring or MonitoringConfig()).receipt_poll_interval
        return [
            ParentToChildMessageReaderClassic(
                child_client, network.chain_id, int(e.event["messageNum"]), poll_interval
            )
            for e in self.get_inbox_message_delivered_events()
        ]

    async def get_child_withdraw_transaction_hash(
        self,
        parent_client: ChainClient,
        child_client: ChainClient,
    ) -> str | None:
        """Child transaction whose outbox message this transaction executed, if any."""
        return await trace_outbox_execution_to_child(parent_client, child_client, self.receipt)

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.transaction_hash}, block={self.block_number})"


class ParentEthDepositTransactionReceipt(ParentTransactionReceipt):
    """Receipt of a parent transaction that deposited ETH."""

    async def wait_for_child_transaction_receipt(
        self,
        child_client: ChainClient,
        confirmations: int | None = None,
        timeout: float | None = None,
        monitoring: MonitoringConfig | None = None,
    ) -> ChildTransactionWaitResult:
        deposits = await self.get_eth_deposits(child_client, monitoring)
        if not deposits:
            raise MissingEventError("MessageDelivered", f"no ETH deposit in {self.transaction_hash}")

        message = deposits[0]
        receipt = await message.wait(confirmations, timeout)
        return ChildTransactionWaitResult(complete=receipt is not None, message=message, child_tx_receipt=receipt)


class ParentContractCallTransactionReceipt(ParentTransactionReceipt):
    """Receipt of a parent transaction that created a retryable ticket."""

    async def wait_for_child_transaction_receipt(
        self,
        child_client: ChainClient,
        confirmations: int | None = None,
        timeout: float | None = None,
        monitoring: MonitoringConfig | None = None,
    ) -> ChildTransactionWaitResult:
        messages = await self.get_parent_to_child_messages(child_client, monitoring)
        if not messages:
            raise MissingEventError("MessageDelivered", f"no retryable ticket in {self.transaction_hash}")

        message = messages[0]
        result = await message.wait_for_status(confirmations, timeout)
        return ChildTransactionWaitResult(
            complete=result.status == ParentToChildMessageStatus.REDEEMED,
            message=message,
            child_tx_receipt=result.child_tx_receipt,
            status=result.status,
        )


async def wait_for_parent_receipt(
    submitted: SubmittedTransaction,
    confirmations: int | None = None,
    timeout: float | None = None,
    receipt_cls: type[ParentTransactionReceipt] = ParentTransactionReceipt,
) -> ParentTransactionReceipt:
    """
    Wait for a submitted parent transaction and wrap its receipt.

    Pass ``receipt_cls`` to get a deposit or contract-call receipt directly.

    Raises:
        WaitTimeoutError: If a timeout is given and elapses first
    """
    receipt = await wait_for_receipt(submitted.client, submitted.tx_hash, confirmations, timeout)
    logger.debug(f"Parent transaction {submitted.tx_hash} mined in block {receipt['blockNumber']}")
    return receipt_cls(receipt)
