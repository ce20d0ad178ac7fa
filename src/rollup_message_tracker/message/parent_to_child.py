"""
Parent-to-child messages: retryable tickets and ETH deposits.

A retryable ticket is created on the child chain by a transaction whose hash
is derived from the message fields. From there it is either redeemed
(automatically in the creation block, or manually later), or it expires.
"""

import asyncio
import logging
import math
from typing import Any

from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import ContractLogicError
from web3.types import TxReceipt

from ..constants import (
    ARB_RETRYABLE_TX_ADDRESS,
    DEFAULT_DEPOSIT_TIMEOUT,
    DEFAULT_RECEIPT_POLL_INTERVAL,
    ONE_DAY_IN_SECONDS,
    RETRYABLE_SEARCH_SEED_BLOCKS,
    SEVEN_DAYS_IN_SECONDS,
)
from ..errors import (
    AmbiguousResultError,
    BridgeTrackerError,
    InvalidStateTransitionError,
    WaitTimeoutError,
)
from ..identity import (
    calculate_classic_retryable_ids,
    calculate_deposit_tx_id,
    calculate_submit_retryable_id,
)
from ..models import (
    EthDepositMessageStatus,
    ParentToChildMessageStatus,
    ParentToChildMessageWaitResult,
    RetryableMessageParams,
)
from ..utils.chain_client import ChainClient, SigningChainClient, to_hex_hash
from ..utils.contract_utility import get_error_selector
from ..utils.event_fetcher import EventFetcher, parse_typed_logs
from ..utils.receipts import SubmittedTransaction, get_transaction_receipt
from .child_transaction import ChildTransactionReceipt, RedeemTransaction

logger = logging.getLogger(__name__)

_NO_TICKET_SELECTOR = Web3.to_hex(get_error_selector("ArbRetryableTx", "NoTicketWithID"))


def _is_no_ticket_error(error: ContractLogicError) -> bool:
    data = error.data if isinstance(error.data, str) else ""
    return data.lower().startswith(_NO_TICKET_SELECTOR) or "NoTicketWithID" in str(error)


class ParentToChildMessage:
    """
    Identity of a retryable ticket.

    Use ``from_event_components`` to obtain a reader, or a writer when the
    child client can sign.
    """

    def __init__(
        self,
        child_chain_id: int,
        sender: str,
        message_number: int,
        parent_base_fee: int,
        message_data: RetryableMessageParams,
    ) -> None:
        self.child_chain_id = child_chain_id
        self.sender = sender
        self.message_number = message_number
        self.parent_base_fee = parent_base_fee
        self.message_data = message_data
        self.retryable_creation_id = calculate_submit_retryable_id(
            child_chain_id,
            sender,
            message_number,
            parent_base_fee,
            message_data.dest_address,
            message_data.l2_call_value,
            message_data.l1_value,
            message_data.max_submission_fee,
            message_data.excess_fee_refund_address,
            message_data.call_value_refund_address,
            message_data.gas_limit,
            message_data.max_fee_per_gas,
            message_data.data,
        )

    @staticmethod
    def from_event_components(
        child_client: ChainClient,
        child_chain_id: int,
        sender: str,
        message_number: int,
        parent_base_fee: int,
        message_data: RetryableMessageParams,
        retryable_lifetime_seconds: int = SEVEN_DAYS_IN_SECONDS,
        poll_interval: float = DEFAULT_RECEIPT_POLL_INTERVAL,
        deposit_timeout: float = DEFAULT_DEPOSIT_TIMEOUT,
        search_seed_blocks: int = RETRYABLE_SEARCH_SEED_BLOCKS,
    ) -> "ParentToChildMessageReader":
        """Reader for read-only clients, writer for signing clients."""
        message_cls = (
            ParentToChildMessageWriter
            if isinstance(child_client, SigningChainClient)
            else ParentToChildMessageReader
        )
        return message_cls(
            child_client,
            child_chain_id,
            sender,
            message_number,
            parent_base_fee,
            message_data,
            retryable_lifetime_seconds=retryable_lifetime_seconds,
            poll_interval=poll_interval,
            deposit_timeout=deposit_timeout,
            search_seed_blocks=search_seed_blocks,
        )

    def __str__(self) -> str:
        return (
            f"{self.__class__.__name__}(chain={self.child_chain_id}, "
            f"message={self.message_number}, id={self.retryable_creation_id})"
        )


class ParentToChildMessageReader(ParentToChildMessage):
    """Read-only status resolution of a retryable ticket."""

    def __init__(
        self,
        child_client: ChainClient,
        child_chain_id: int,
        sender: str,
        message_number: int,
        parent_base_fee: int,
        message_data: RetryableMessageParams,
        retryable_lifetime_seconds: int = SEVEN_DAYS_IN_SECONDS,
        poll_interval: float = DEFAULT_RECEIPT_POLL_INTERVAL,
        deposit_timeout: float = DEFAULT_DEPOSIT_TIMEOUT,
        search_seed_blocks: int = RETRYABLE_SEARCH_SEED_BLOCKS,
    ) -> None:
        super().__init__(child_chain_id, sender, message_number, parent_base_fee, message_data)
        self.child_client = child_client
        self.retryable_lifetime_seconds = retryable_lifetime_seconds
        self.poll_interval = poll_interval
        self.deposit_timeout = deposit_timeout
        self.search_seed_blocks = search_seed_blocks
        self._creation_receipt: TxReceipt | None = None

    async def get_retryable_creation_receipt(
        self,
        confirmations: int | None = None,
        timeout: float | None = None,
    ) -> TxReceipt | None:
        """Receipt of the ticket creation, waiting up to timeout if given."""
        if self._creation_receipt is None:
            self._creation_receipt = await get_transaction_receipt(
                self.child_client,
                self.retryable_creation_id,
                confirmations,
                timeout,
                self.poll_interval,
            )
        return self._creation_receipt

    async def get_auto_redeem_attempt(self) -> TxReceipt | None:
        """
        Receipt of the automatic redeem scheduled by the creation transaction.

        Raises:
            AmbiguousResultError: If the creation scheduled more than one redeem
        """
        creation_receipt = await self.get_retryable_creation_receipt()
        if creation_receipt is None:
            return None

        redeem_events = parse_typed_logs(
            "ArbRetryableTx", creation_receipt["logs"], "RedeemScheduled"
        )
        if len(redeem_events) > 1:
            raise AmbiguousResultError(
                f"RedeemScheduled in creation of {self.retryable_creation_id}", len(redeem_events)
            )
        if not redeem_events:
            return None

        retry_tx_hash = to_hex_hash(redeem_events[0].event["retryTxHash"])
        return await self.child_client.get_transaction_receipt(retry_tx_hash)

    async def get_successful_redeem(self) -> ParentToChildMessageWaitResult:
        """
        Resolve the ticket's status together with the receipt that decided it.

        The child receipt is only set when the status is REDEEMED.
        """
        creation_receipt = await self.get_retryable_creation_receipt()
        if creation_receipt is None:
            return ParentToChildMessageWaitResult(ParentToChildMessageStatus.NOT_YET_CREATED)

        if creation_receipt["status"] == 0:
            return ParentToChildMessageWaitResult(ParentToChildMessageStatus.CREATION_FAILED)

        auto_redeem = await self.get_auto_redeem_attempt()
        if auto_redeem is not None and auto_redeem["status"] == 1:
            return ParentToChildMessageWaitResult(
                ParentToChildMessageStatus.REDEEMED, ChildTransactionReceipt(auto_redeem)
            )

        if await self._retryable_exists():
            return ParentToChildMessageWaitResult(ParentToChildMessageStatus.FUNDS_DEPOSITED_ON_CHILD)

        # the ticket is gone: either a manual redeem succeeded or it expired
        redeem_receipt = await self._find_manual_redeem(creation_receipt)
        if redeem_receipt is not None:
            return ParentToChildMessageWaitResult(
                ParentToChildMessageStatus.REDEEMED, ChildTransactionReceipt(redeem_receipt)
            )
        return ParentToChildMessageWaitResult(ParentToChildMessageStatus.EXPIRED)

    async def _find_manual_redeem(self, creation_receipt: TxReceipt) -> TxReceipt | None:
        fetcher = EventFetcher(self.child_client)
        latest = await self.child_client.block_number()
        from_block = await self.child_client.get_block(int(creation_receipt["blockNumber"]))
        if from_block is None:
            raise BridgeTrackerError(
                f"Creation block {creation_receipt['blockNumber']} not found on {self.child_client.name}"
            )

        timeout = from_block.timestamp + self.retryable_lifetime_seconds
        queried_ranges: list[tuple[int, int]] = []
        increment = self.search_seed_blocks

        while from_block.number < latest:
            to_number = min(from_block.number + increment, latest)
            redeem_events = await fetcher.get_events(
                "ArbRetryableTx",
                "RedeemScheduled",
                from_block.number,
                to_number,
                address=ARB_RETRYABLE_TX_ADDRESS,
                argument_filters={"ticketId": self.retryable_creation_id},
            )
            queried_ranges.append((from_block.number, to_number))

            receipts = await asyncio.gather(
                *(
                    self.child_client.get_transaction_receipt(to_hex_hash(e.event["retryTxHash"]))
                    for e in redeem_events
                )
            )
            successful = [r for r in receipts if r is not None and r["status"] == 1]
            if len(successful) > 1:
                raise AmbiguousResultError(
                    f"successful redeems of {self.retryable_creation_id}", len(successful)
                )
            if successful:
                return successful[0]

            to_block = await self.child_client.get_block(to_number)
            if to_block is None:
                raise BridgeTrackerError(f"Block {to_number} not found on {self.child_client.name}")

            if to_block.timestamp > timeout:
                timeout = await self._extended_timeout(fetcher, queried_ranges, timeout)
                if to_block.timestamp > timeout:
                    break
                # an extension may still hide in the last window
                del queried_ranges[:-1]

            processed_seconds = to_block.timestamp - from_block.timestamp
            if processed_seconds != 0:
                increment = math.ceil(increment * ONE_DAY_IN_SECONDS / processed_seconds)
            from_block = to_block

        return None

    async def _extended_timeout(
        self,
        fetcher: EventFetcher,
        queried_ranges: list[tuple[int, int]],
        timeout: int,
    ) -> int:
        while queried_ranges:
            start, end = queried_ranges.pop(0)
            extensions = await fetcher.get_events(
                "ArbRetryableTx",
                "LifetimeExtended",
                start,
                end,
                address=ARB_RETRYABLE_TX_ADDRESS,
                argument_filters={"ticketId": self.retryable_creation_id},
            )
            if extensions:
                new_timeout = max(int(e.event["newTimeout"]) for e in extensions)
                logger.debug(f"Ticket {self.retryable_creation_id} lifetime extended to {new_timeout}")
                return new_timeout
        return timeout

    async def _retryable_exists(self) -> bool:
        latest = await self.child_client.get_block("latest")
        try:
            timeout = await self.get_timeout()
        except ContractLogicError as e:
            if _is_no_ticket_error(e):
                return False
            raise
        return latest.timestamp <= timeout

    async def is_expired(self) -> bool:
        """Whether the ticket can no longer be redeemed."""
        return not await self._retryable_exists()

    async def status(self) -> ParentToChildMessageStatus:
        return (await self.get_successful_redeem()).status

    async def wait_for_status(
        self,
        confirmations: int | None = None,
        timeout: float | None = None,
    ) -> ParentToChildMessageWaitResult:
        """
        Wait for the ticket to be created, then resolve its status.

        Auto-redeems execute in the creation block, so once the creation
        receipt exists the status only changes through a manual action
        (redeem, cancel) or expiry.

        Args:
            confirmations: Confirmations the creation receipt must have
            timeout: Seconds to wait for the creation receipt (defaults to deposit_timeout)

        Raises:
            WaitTimeoutError: If the ticket was not created within the timeout
        """
        chosen_timeout = self.deposit_timeout if timeout is None else timeout
        receipt = await self.get_retryable_creation_receipt(confirmations, chosen_timeout)
        if receipt is None:
            raise WaitTimeoutError(
                f"retryable creation receipt {self.retryable_creation_id}", chosen_timeout
            )
        result = await self.get_successful_redeem()
        logger.info(f"Retryable {self.retryable_creation_id} resolved to {result.status.name}")
        return result

    @staticmethod
    async def get_lifetime(child_client: ChainClient) -> int:
        """Minimum lifetime of a retryable ticket in seconds."""
        return int(await child_client.call("ArbRetryableTx", ARB_RETRYABLE_TX_ADDRESS, "getLifetime"))

    async def get_timeout(self) -> int:
        """Timestamp at which the ticket expires."""
        return int(
            await self.child_client.call(
                "ArbRetryableTx",
                ARB_RETRYABLE_TX_ADDRESS,
                "getTimeout",
                HexBytes(self.retryable_creation_id),
            )
        )

    async def get_beneficiary(self) -> str:
        """Address credited with the call value if the ticket expires or is cancelled."""
        return await self.child_client.call(
            "ArbRetryableTx",
            ARB_RETRYABLE_TX_ADDRESS,
            "getBeneficiary",
            HexBytes(self.retryable_creation_id),
        )


class ParentToChildMessageWriter(ParentToChildMessageReader):
    """Retryable ticket reader that can also redeem, cancel and keep alive."""

    child_client: SigningChainClient

    def __init__(self, child_client: SigningChainClient, *args: Any, **kwargs: Any) -> None:
        if not isinstance(child_client, SigningChainClient):
            raise TypeError("ParentToChildMessageWriter requires a signing child client")
        super().__init__(child_client, *args, **kwargs)

    async def _require_funds_deposited(self, action: str) -> None:
        status = await self.status()
        if status != ParentToChildMessageStatus.FUNDS_DEPOSITED_ON_CHILD:
            raise InvalidStateTransitionError(
                action,
                ParentToChildMessageStatus.FUNDS_DEPOSITED_ON_CHILD,
                status,
                self.retryable_creation_id,
            )

    async def redeem(self, tx_params: dict[str, Any] | None = None) -> RedeemTransaction:
        """Manually redeem the ticket.

        Raises:
            InvalidStateTransitionError: Unless status is FUNDS_DEPOSITED_ON_CHILD
        """
        await self._require_funds_deposited("redeem")
        tx_hash = await self.child_client.transact(
            "ArbRetryableTx",
            ARB_RETRYABLE_TX_ADDRESS,
            "redeem",
            HexBytes(self.retryable_creation_id),
            tx_params=tx_params,
        )
        return RedeemTransaction(tx_hash, self.child_client)

    async def cancel(self, tx_params: dict[str, Any] | None = None) -> SubmittedTransaction:
        """Cancel the ticket, crediting the call value to the beneficiary."""
        await self._require_funds_deposited("cancel")
        tx_hash = await self.child_client.transact(
            "ArbRetryableTx",
            ARB_RETRYABLE_TX_ADDRESS,
            "cancel",
            HexBytes(self.retryable_creation_id),
            tx_params=tx_params,
        )
        return SubmittedTransaction(tx_hash, self.child_client)

    async def keep_alive(self, tx_params: dict[str, Any] | None = None) -> SubmittedTransaction:
        """Extend the ticket's lifetime by one lifetime period."""
        await self._require_funds_deposited("keep alive")
        tx_hash = await self.child_client.transact(
            "ArbRetryableTx",
            ARB_RETRYABLE_TX_ADDRESS,
            "keepalive",
            HexBytes(self.retryable_creation_id),
            tx_params=tx_params,
        )
        return SubmittedTransaction(tx_hash, self.child_client)


class ParentToChildMessageReaderClassic:
    """Status of a retryable ticket created before the nitro upgrade."""

    def __init__(
        self,
        child_client: ChainClient,
        child_chain_id: int,
        message_number: int,
        poll_interval: float = DEFAULT_RECEIPT_POLL_INTERVAL,
    ) -> None:
        self.child_client = child_client
        self.message_number = message_number
        self.poll_interval = poll_interval
        (
            self.retryable_creation_id,
            self.auto_redeem_id,
            self.child_tx_hash,
        ) = calculate_classic_retryable_ids(child_chain_id, message_number)
        self._creation_receipt: TxReceipt | None = None

    async def get_retryable_creation_receipt(
        self,
        confirmations: int | None = None,
        timeout: float | None = None,
    ) -> TxReceipt | None:
        if self._creation_receipt is None:
            self._creation_receipt = await get_transaction_receipt(
                self.child_client, self.retryable_creation_id, confirmations, timeout, self.poll_interval
            )
        return self._creation_receipt

    async def status(self) -> ParentToChildMessageStatus:
        creation_receipt = await self.get_retryable_creation_receipt()
        if creation_receipt is None:
            return ParentToChildMessageStatus.NOT_YET_CREATED
        if creation_receipt["status"] == 0:
            return ParentToChildMessageStatus.CREATION_FAILED

        child_receipt = await self.child_client.get_transaction_receipt(self.child_tx_hash)
        if child_receipt is not None and child_receipt["status"] == 1:
            return ParentToChildMessageStatus.REDEEMED
        return ParentToChildMessageStatus.EXPIRED


class EthDepositMessage:
    """A plain ETH deposit credited on the child chain."""

    def __init__(
        self,
        child_client: ChainClient,
        child_chain_id: int,
        message_number: int,
        from_address: str,
        to_address: str,
        value: int,
        poll_interval: float = DEFAULT_RECEIPT_POLL_INTERVAL,
        deposit_timeout: float = DEFAULT_DEPOSIT_TIMEOUT,
    ) -> None:
        self.child_client = child_client
        self.poll_interval = poll_interval
        self.deposit_timeout = deposit_timeout
        self.child_chain_id = child_chain_id
        self.message_number = message_number
        self.from_address = from_address
        self.to_address = to_address
        self.value = value
        self.child_deposit_tx_hash = calculate_deposit_tx_id(
            child_chain_id, message_number, from_address, to_address, value
        )
        self._child_deposit_receipt: TxReceipt | None = None

    @staticmethod
    def parse_eth_deposit_data(event_data: bytes | str) -> tuple[str, int]:
        """Recipient (first 20 bytes) and value (remaining bytes) of a deposit payload."""
        raw = bytes(HexBytes(event_data))
        if len(raw) < 20:
            raise ValueError(f"ETH deposit payload too short: {len(raw)} bytes")
        to_address = Web3.to_checksum_address(raw[:20])
        value = int.from_bytes(raw[20:], "big")
        return to_address, value

    @classmethod
    async def from_event_components(
        cls,
        child_client: ChainClient,
        message_number: int,
        sender: str,
        inbox_message_data: bytes | str,
        poll_interval: float = DEFAULT_RECEIPT_POLL_INTERVAL,
        deposit_timeout: float = DEFAULT_DEPOSIT_TIMEOUT,
    ) -> "EthDepositMessage":
        child_chain_id = await child_client.chain_id()
        to_address, value = cls.parse_eth_deposit_data(inbox_message_data)
        return cls(
            child_client,
            child_chain_id,
            message_number,
            sender,
            to_address,
            value,
            poll_interval=poll_interval,
            deposit_timeout=deposit_timeout,
        )

    async def status(self) -> EthDepositMessageStatus:
        receipt = await self.child_client.get_transaction_receipt(self.child_deposit_tx_hash)
        return EthDepositMessageStatus.PENDING if receipt is None else EthDepositMessageStatus.DEPOSITED

    async def wait(
        self,
        confirmations: int | None = None,
        timeout: float | None = None,
    ) -> TxReceipt | None:
        """Wait for the deposit to be credited; None if it is not seen in time."""
        chosen_timeout = self.deposit_timeout if timeout is None else timeout
        if self._child_deposit_receipt is None:
            self._child_deposit_receipt = await get_transaction_receipt(
                self.child_client,
                self.child_deposit_tx_hash,
                confirmations,
                chosen_timeout,
                self.poll_interval,
            )
        return self._child_deposit_receipt

    def __str__(self) -> str:
        return (
            f"EthDepositMessage(message={self.message_number}, to={self.to_address}, "
            f"value={self.value}, tx={self.child_deposit_tx_hash})"
        )
