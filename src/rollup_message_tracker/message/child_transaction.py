"""
Child-chain transaction receipts.
"""

import logging

from hexbytes import HexBytes
from web3.types import TxReceipt

from ..constants import DATA_AVAILABILITY_CONFIRMATIONS, NODE_INTERFACE_ADDRESS
from ..dispatch import CLASSIC_EVENT, NITRO_EVENT, child_to_parent_event_from_fetched
from ..errors import AmbiguousResultError, BridgeTrackerError, MissingEventError
from ..models import ChildToParentEvent
from ..reverse_tracer import trace_deposit_to_parent, trace_retryable_to_parent
from ..utils.chain_client import ChainClient, to_hex_hash
from ..utils.event_fetcher import FetchedEvent, parse_typed_logs
from ..utils.receipts import SubmittedTransaction, get_transaction_receipt, wait_for_receipt
from .child_to_parent import ChildToParentMessage, ChildToParentMessageReader

logger = logging.getLogger(__name__)


class ChildTransactionReceipt:
    """A child-chain receipt with the bridge events it carries decoded."""

    def __init__(self, receipt: TxReceipt) -> None:
        self.receipt = receipt
        self.transaction_hash = to_hex_hash(bytes(HexBytes(receipt["transactionHash"])))
        self.block_number = int(receipt["blockNumber"])
        self.block_hash = bytes(HexBytes(receipt["blockHash"]))
        self.status = int(receipt["status"])
        self.logs = list(receipt["logs"])

    def __getitem__(self, key: str):
        return self.receipt[key]

    def get_child_to_parent_events(self) -> list[ChildToParentEvent]:
        """Outbox messages sent by this transaction, both generations."""
        fetched = parse_typed_logs("ArbSys", self.logs, CLASSIC_EVENT) + parse_typed_logs(
            "ArbSys", self.logs, NITRO_EVENT
        )
        fetched.sort(key=lambda event: event.log_index)
        return [child_to_parent_event_from_fetched(event) for event in fetched]

    def get_redeem_scheduled_events(self) -> list[FetchedEvent]:
        return parse_typed_logs("ArbRetryableTx", self.logs, "RedeemScheduled")

    def get_child_to_parent_messages(self, parent_client: ChainClient) -> list[ChildToParentMessageReader]:
        return [
            ChildToParentMessage.from_event(parent_client, event)
            for event in self.get_child_to_parent_events()
        ]

    async def get_batch_number(self, child_client: ChainClient) -> int:
        """Sequencer batch that posted this transaction's block."""
        return int(
            await child_client.call(
                "NodeInterface", NODE_INTERFACE_ADDRESS, "findBatchContainingBlock", self.block_number
            )
        )

    async def get_batch_confirmations(self, child_client: ChainClient) -> int:
        """Parent-chain confirmations of the batch holding this transaction."""
        return int(
            await child_client.call(
                "NodeInterface", NODE_INTERFACE_ADDRESS, "getL1Confirmations", self.block_hash
            )
        )

    async def is_data_available(
        self,
        child_client: ChainClient,
        confirmations: int = DATA_AVAILABILITY_CONFIRMATIONS,
    ) -> bool:
        """Whether the batch holding this transaction is posted and buried deep enough."""
        return await self.get_batch_confirmations(child_client) > confirmations

    async def get_parent_transaction_hash(
        self,
        child_client: ChainClient,
        parent_client: ChainClient,
    ) -> str | None:
        """Parent transaction behind this ticket creation or redeem, if any."""
        return await trace_retryable_to_parent(
            child_client, parent_client, self.transaction_hash, self.block_number
        )

    async def get_parent_deposit_transaction_hash(
        self,
        child_client: ChainClient,
        parent_client: ChainClient,
    ) -> str | None:
        """Parent transaction behind this ETH deposit, if any."""
        return await trace_deposit_to_parent(
            child_client, parent_client, self.transaction_hash, self.block_number
        )

    def __str__(self) -> str:
        return f"ChildTransactionReceipt({self.transaction_hash}, block={self.block_number})"


async def wait_for_child_receipt(
    submitted: SubmittedTransaction,
    confirmations: int | None = None,
    timeout: float | None = None,
) -> ChildTransactionReceipt:
    """
    Wait for a submitted child transaction and wrap its receipt.

    Raises:
        WaitTimeoutError: If a timeout is given and elapses first
    """
    receipt = await wait_for_receipt(submitted.client, submitted.tx_hash, confirmations, timeout)
    return ChildTransactionReceipt(receipt)


class RedeemTransaction(SubmittedTransaction):
    """A submitted manual redeem of a retryable ticket."""

    async def wait(
        self,
        confirmations: int | None = None,
        timeout: float | None = None,
    ) -> ChildTransactionReceipt:
        return await wait_for_child_receipt(self, confirmations, timeout)

    async def wait_for_redeem(self, timeout: float | None = None) -> TxReceipt:
        """
        Receipt of the retry transaction the redeem scheduled.

        Raises:
            MissingEventError: If the redeem scheduled nothing
            AmbiguousResultError: If it scheduled more than one retry
        """
        receipt = await self.wait(timeout=timeout)
        scheduled = receipt.get_redeem_scheduled_events()
        if not scheduled:
            raise MissingEventError("RedeemScheduled", f"redeem transaction {self.tx_hash}")
        if len(scheduled) > 1:
            raise AmbiguousResultError(f"RedeemScheduled in {self.tx_hash}", len(scheduled))

        retry_tx_hash = to_hex_hash(bytes(HexBytes(scheduled[0].event["retryTxHash"])))
        retry_receipt = await get_transaction_receipt(self.client, retry_tx_hash)
        if retry_receipt is None:
            raise BridgeTrackerError(f"No receipt for retry {retry_tx_hash} of redeem {self.tx_hash}")
        return retry_receipt
