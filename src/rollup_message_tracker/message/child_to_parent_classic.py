"""
Outbox messages sent before the nitro upgrade.

Classic messages are addressed by (batch number, index in batch). Each classic
outbox serves the batches from its activation number up to the next outbox's.
"""

import asyncio
import logging
from typing import Any

from hexbytes import HexBytes
from web3.exceptions import ContractLogicError, Web3Exception

from ..constants import DEFAULT_OUTBOX_RETRY_DELAY, NODE_INTERFACE_ADDRESS, ZERO_ADDRESS
from ..errors import BridgeTrackerError, InvalidStateTransitionError
from ..models import ChildToParentMessageStatus, MessageBatchProofInfo
from ..networks import get_arbitrum_network
from ..utils.chain_client import ChainClient, SigningChainClient
from ..utils.receipts import SubmittedTransaction

logger = logging.getLogger(__name__)

# Outbox reverts caused by a malformed proof rather than by message state
_MALFORMED_PROOF_REASONS = ("PROOF_TOO_LONG", "PATH_NOT_MINIMAL", "BAD_ROOT")
_MISSING_BATCH_REASON = "batch doesn't exist"


def _revert_matches(error: Exception, reason: str) -> bool:
    return reason in str(error) or reason in str(getattr(error, "message", "") or "")


def select_classic_outbox(classic_outboxes: dict[str, int], batch_number: int) -> str:
    """Outbox serving a batch: the last one activated at or before it."""
    ordered = sorted(classic_outboxes.items(), key=lambda item: item[1])
    for index, (address, _) in enumerate(ordered):
        if index + 1 == len(ordered) or ordered[index + 1][1] > batch_number:
            return address
    return ZERO_ADDRESS


class ChildToParentMessageReaderClassic:
    """Read-only resolver for a classic outbox message."""

    def __init__(self, parent_client: ChainClient, batch_number: int, index_in_batch: int) -> None:
        self.parent_client = parent_client
        self.batch_number = batch_number
        self.index_in_batch = index_in_batch
        self._outbox_address: str | None = None
        self._proof: MessageBatchProofInfo | None = None

    async def get_outbox_address(self, child_client: ChainClient) -> str:
        if self._outbox_address is None:
            network = await get_arbitrum_network(child_client)
            self._outbox_address = select_classic_outbox(
                network.eth_bridge.classic_outboxes, self.batch_number
            )
        return self._outbox_address

    async def outbox_entry_exists(self, child_client: ChainClient) -> bool:
        outbox_address = await self.get_outbox_address(child_client)
        return bool(
            await self.parent_client.call(
                "ClassicOutbox", outbox_address, "outboxEntryExists", self.batch_number
            )
        )

    @staticmethod
    async def lookup_proof(
        child_client: ChainClient,
        batch_number: int,
        index_in_batch: int,
    ) -> MessageBatchProofInfo | None:
        """Proof of a classic message, or None if its batch is not known yet."""
        try:
            result = await child_client.call(
                "NodeInterface",
                NODE_INTERFACE_ADDRESS,
                "legacyLookupMessageBatchProof",
                batch_number,
                index_in_batch,
            )
        except (Web3Exception, ValueError) as e:
            if _revert_matches(e, _MISSING_BATCH_REASON):
                return None
            raise

        proof, path, l2_sender, l1_dest, l2_block, l1_block, timestamp, amount, calldata = result
        return MessageBatchProofInfo(
            proof=[bytes(HexBytes(node)) for node in proof],
            path=int(path),
            l2_sender=l2_sender,
            l1_dest=l1_dest,
            l2_block=int(l2_block),
            l1_block=int(l1_block),
            timestamp=int(timestamp),
            amount=int(amount),
            calldata_for_l1=bytes(calldata),
        )

    async def try_get_proof(self, child_client: ChainClient) -> MessageBatchProofInfo | None:
        if self._proof is None:
            self._proof = await self.lookup_proof(child_client, self.batch_number, self.index_in_batch)
        return self._proof

    def _execute_args(self, proof_info: MessageBatchProofInfo) -> tuple[Any, ...]:
        return (
            self.batch_number,
            proof_info.proof,
            proof_info.path,
            proof_info.l2_sender,
            proof_info.l1_dest,
            proof_info.l2_block,
            proof_info.l1_block,
            proof_info.timestamp,
            proof_info.amount,
            proof_info.calldata_for_l1,
        )

    async def has_executed(self, child_client: ChainClient) -> bool:
        """
        Whether the outbox already spent this message.

        Simulates ``executeTransaction``; an ALREADY_SPENT revert means executed.

        Raises:
            ContractLogicError: For reverts caused by a malformed proof
        """
        proof_info = await self.try_get_proof(child_client)
        if proof_info is None:
            return False

        outbox_address = await self.get_outbox_address(child_client)
        try:
            await self.parent_client.call(
                "ClassicOutbox", outbox_address, "executeTransaction", *self._execute_args(proof_info)
            )
            return False
        except ContractLogicError as e:
            if _revert_matches(e, "ALREADY_SPENT"):
                return True
            if any(_revert_matches(e, reason) for reason in _MALFORMED_PROOF_REASONS):
                raise
            # NO_OUTBOX_ENTRY and reverts inside the message call itself
            return False

    async def status(self, child_client: ChainClient) -> ChildToParentMessageStatus:
        """
        Status of the message.

        Lookup failures other than malformed-proof reverts are reported as
        UNCONFIRMED and logged.
        """
        try:
            if await self.has_executed(child_client):
                return ChildToParentMessageStatus.EXECUTED
            if await self.outbox_entry_exists(child_client):
                return ChildToParentMessageStatus.CONFIRMED
            return ChildToParentMessageStatus.UNCONFIRMED
        except ContractLogicError as e:
            if any(_revert_matches(e, reason) for reason in _MALFORMED_PROOF_REASONS):
                raise
            logger.warning(
                f"Classic outbox lookup for batch {self.batch_number} index "
                f"{self.index_in_batch} reverted, reporting UNCONFIRMED",
                exc_info=True,
            )
        except (Web3Exception, ValueError, BridgeTrackerError):
            logger.warning(
                f"Classic outbox lookup for batch {self.batch_number} index "
                f"{self.index_in_batch} failed, reporting UNCONFIRMED",
                exc_info=True,
            )
        return ChildToParentMessageStatus.UNCONFIRMED

    async def wait_until_outbox_entry_created(
        self,
        child_client: ChainClient,
        retry_delay: float = DEFAULT_OUTBOX_RETRY_DELAY,
    ) -> ChildToParentMessageStatus:
        """Poll until the batch has an outbox entry; no internal timeout."""
        while not await self.outbox_entry_exists(child_client):
            await asyncio.sleep(retry_delay)
        if await self.has_executed(child_client):
            return ChildToParentMessageStatus.EXECUTED
        return ChildToParentMessageStatus.CONFIRMED

    async def get_first_executable_block(self, child_client: ChainClient) -> int | None:
        # classic confirmations are long past; nothing left to estimate
        return None


class ChildToParentMessageWriterClassic(ChildToParentMessageReaderClassic):
    """Classic outbox message that can be executed on the parent chain."""

    parent_client: SigningChainClient

    def __init__(self, parent_client: SigningChainClient, batch_number: int, index_in_batch: int) -> None:
        if not isinstance(parent_client, SigningChainClient):
            raise TypeError("ChildToParentMessageWriterClassic requires a signing parent client")
        super().__init__(parent_client, batch_number, index_in_batch)

    async def execute(
        self,
        child_client: ChainClient,
        tx_params: dict[str, Any] | None = None,
    ) -> SubmittedTransaction:
        """
        Execute the message through its classic outbox.

        Raises:
            InvalidStateTransitionError: Unless the message is CONFIRMED
            BridgeTrackerError: If the proof cannot be found
        """
        message_id = f"{self.batch_number}:{self.index_in_batch}"
        status = await self.status(child_client)
        if status != ChildToParentMessageStatus.CONFIRMED:
            raise InvalidStateTransitionError(
                "execute", ChildToParentMessageStatus.CONFIRMED, status, message_id
            )

        proof_info = await self.try_get_proof(child_client)
        if proof_info is None:
            raise BridgeTrackerError(f"Unexpected missing proof for classic message {message_id}")

        outbox_address = await self.get_outbox_address(child_client)
        tx_hash = await self.parent_client.transact(
            "ClassicOutbox",
            outbox_address,
            "executeTransaction",
            *self._execute_args(proof_info),
            tx_params=tx_params,
        )
        return SubmittedTransaction(tx_hash, self.parent_client)
