"""
Outbox messages sent after the nitro upgrade.

A message at outbox position ``p`` becomes executable once a confirmed rollup
assertion (a "node" on the legacy rollup, an "assertion" on BoLD) points at a
child block whose cumulative send count is greater than ``p``.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, Web3Exception

from ..constants import (
    ASSERTION_CONFIRMED_PADDING,
    ASSERTION_CREATED_PADDING,
    DEFAULT_OUTBOX_RETRY_DELAY,
    NODE_INTERFACE_ADDRESS,
    ZERO_HASH,
)
from ..errors import AmbiguousResultError, BridgeTrackerError, InvalidStateTransitionError
from ..identity import calculate_outbox_item_hash, calculate_outbox_root
from ..models import (
    ArbBlock,
    ChildToParentMessageStatus,
    NitroChildToParentEvent,
    OutboxMessageIdentity,
    OutboxProof,
    RollupVariant,
)
from ..networks import ArbitrumNetwork, get_arbitrum_network
from ..utils.block_range import BlockRangeCache, get_block_ranges_for_l1_block
from ..utils.chain_client import ChainClient, SigningChainClient
from ..utils.event_fetcher import EventFetcher, FetchedEvent
from ..utils.receipts import SubmittedTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RollupHandle:
    """Rollup contract address and the ABI flavour it speaks."""

    address: str
    variant: RollupVariant

    @property
    def contract_name(self) -> str:
        return "BoldRollupUserLogic" if self.variant is RollupVariant.ASSERTION else "RollupUserLogic"

    @property
    def created_event(self) -> str:
        return "AssertionCreated" if self.variant is RollupVariant.ASSERTION else "NodeCreated"

    @property
    def id_argument(self) -> str:
        return "assertionHash" if self.variant is RollupVariant.ASSERTION else "nodeNum"


@dataclass(frozen=True, slots=True)
class SendProps:
    """Outbox tree size and root known to cover a message."""

    size: int | None = None
    root: bytes | None = None
    confirmed: bool = False


def _field(value: Any, name: str, index: int) -> Any:
    """Read a decoded tuple component whether web3 returned it named or positional."""
    if isinstance(value, Mapping):
        return value[name]
    return value[index]


def _after_state(event_args: Mapping[str, Any], variant: RollupVariant) -> tuple[bytes, bytes]:
    """(block hash, send root) recorded in an assertion's after state."""
    after_state_index = 2 if variant is RollupVariant.ASSERTION else 1
    after_state = _field(event_args["assertion"], "afterState", after_state_index)
    global_state = _field(after_state, "globalState", 0)
    block_hash, send_root = _field(global_state, "bytes32Vals", 0)
    return bytes(HexBytes(block_hash)), bytes(HexBytes(send_root))


async def find_first_covering(
    items: Sequence[T],
    position: int,
    send_count_of: Callable[[T], Awaitable[int]],
) -> T:
    """
    Binary search for the earliest item whose send count exceeds position.

    ``items`` must be ordered by creation and send counts are non-decreasing
    along it. Falls back to the last item when none qualifies.
    """
    if not items:
        raise ValueError("Cannot search an empty assertion list")

    found = items[-1]
    left, right = 0, len(items) - 1
    while left <= right:
        mid = (left + right) // 2
        if await send_count_of(items[mid]) > position:
            found = items[mid]
            right = mid - 1
        else:
            left = mid + 1
    return found


class ChildToParentMessageReaderNitro:
    """
    Read-only resolver for a nitro outbox message.

    Confirmation and execution are cached once observed since they can never
    be undone; repeated status polls therefore never regress.
    """

    def __init__(
        self,
        parent_client: ChainClient,
        event: NitroChildToParentEvent,
        block_range_cache: BlockRangeCache | None = None,
    ) -> None:
        self.parent_client = parent_client
        self.event = event
        self.block_range_cache = block_range_cache or BlockRangeCache.shared()
        self._send_props = SendProps()
        self._executed = False

    async def _get_rollup(self, network: ArbitrumNetwork) -> RollupHandle:
        """Detect the deployed rollup variant once per network."""
        if network.is_bold is None:
            rollup_address = await self.parent_client.call("Bridge", network.eth_bridge.bridge, "rollup")
            try:
                await self.parent_client.call("RollupUserLogic", rollup_address, "extraChallengeTimeBlocks")
                network.is_bold = False
            except (ContractLogicError, BadFunctionCallOutput):
                network.is_bold = True
            network.eth_bridge.rollup = Web3.to_checksum_address(rollup_address)
            logger.debug(f"{network.name}: rollup {rollup_address} bold={network.is_bold}")

        variant = RollupVariant.ASSERTION if network.is_bold else RollupVariant.NODE
        return RollupHandle(network.eth_bridge.rollup, variant)

    async def _created_at_block(self, rollup: RollupHandle, assertion_id: int | bytes) -> int:
        match rollup.variant:
            case RollupVariant.ASSERTION:
                assertion = await self.parent_client.call(
                    rollup.contract_name, rollup.address, "getAssertion", assertion_id
                )
                return int(_field(assertion, "createdAtBlock", 2))
            case RollupVariant.NODE:
                node = await self.parent_client.call(
                    rollup.contract_name, rollup.address, "getNode", assertion_id
                )
                return int(_field(node, "createdAtBlock", 10))

    async def _parent_range_for(self, created_at_block: int, child_client: ChainClient) -> tuple[int, int]:
        """Parent blocks to search for an assertion created at a parent (L1) block number.

        Arbitrum parents report the L1 block number, so it is mapped back onto
        the parent's own blocks.
        """
        if not await self.parent_client.is_arbitrum():
            return created_at_block, created_at_block

        try:
            first, last = await self.parent_client.call(
                "NodeInterface", NODE_INTERFACE_ADDRESS, "l2BlockRangeForL1", created_at_block
            )
            return int(first), int(last)
        except (Web3Exception, ValueError) as e:
            logger.debug(f"l2BlockRangeForL1({created_at_block}) failed, searching blocks: {e}")

        try:
            key = BlockRangeCache.key(await child_client.chain_id(), created_at_block)
            first, last = await self.block_range_cache.get_or_compute(
                key, lambda: get_block_ranges_for_l1_block(self.parent_client, created_at_block)
            )
            if first is not None and last is not None:
                return first, last
        except (BridgeTrackerError, Web3Exception, ValueError) as e:
            logger.warning(f"Block range search for {created_at_block} failed: {e}")

        return created_at_block, created_at_block

    async def get_block_from_assertion_log(
        self,
        child_client: ChainClient,
        event: FetchedEvent | None,
        variant: RollupVariant,
    ) -> ArbBlock:
        """Child block an assertion creation event commits to.

        Raises:
            BridgeTrackerError: If the block is unknown or its send root differs
        """
        if event is None:
            logger.warning("No assertion creation event found, defaulting to block 0")
            block_hash = ZERO_HASH
            send_root = None
        else:
            block_hash, send_root = _after_state(event.event, variant)

        block = await child_client.get_block(0 if block_hash == ZERO_HASH else Web3.to_hex(block_hash))
        if block is None:
            raise BridgeTrackerError(f"Child block {Web3.to_hex(block_hash)} not found")
        if send_root is not None and block_hash != ZERO_HASH and block.send_root != send_root:
            raise BridgeTrackerError(
                f"Child block {block.number} send root {Web3.to_hex(block.send_root)} "
                f"does not match assertion send root {Web3.to_hex(send_root)}"
            )
        return block

    async def get_block_from_assertion_id(
        self,
        rollup: RollupHandle,
        assertion_id: int | bytes,
        child_client: ChainClient,
    ) -> ArbBlock:
        """
        Child block confirmed (or claimed) by an assertion.

        Raises:
            AmbiguousResultError: If more than one creation event matches the id
        """
        created_at_block = await self._created_at_block(rollup, assertion_id)
        from_block, to_block = await self._parent_range_for(created_at_block, child_client)

        events = await EventFetcher(self.parent_client).get_events(
            rollup.contract_name,
            rollup.created_event,
            from_block,
            to_block,
            address=rollup.address,
            argument_filters={rollup.id_argument: assertion_id},
        )
        if len(events) > 1:
            raise AmbiguousResultError(f"{rollup.created_event}({assertion_id!r})", len(events))
        return await self.get_block_from_assertion_log(
            child_client, events[0] if events else None, rollup.variant
        )

    async def _latest_created_assertion(
        self,
        rollup: RollupHandle,
        latest_confirmed: int | bytes,
    ) -> int | bytes:
        if rollup.variant is RollupVariant.NODE:
            return await self.parent_client.call(rollup.contract_name, rollup.address, "latestNodeCreated")

        created_at_block = await self._created_at_block(rollup, latest_confirmed)
        events = await EventFetcher(self.parent_client).get_events(
            rollup.contract_name,
            rollup.created_event,
            created_at_block,
            "latest",
            address=rollup.address,
        )
        if not events:
            return latest_confirmed
        return bytes(HexBytes(events[-1].event["assertionHash"]))

    async def get_send_props(self, child_client: ChainClient) -> SendProps:
        """
        Find the outbox tree (size and root) that covers this message.

        The latest confirmed assertion is checked first. Failing that, the
        latest created one may already cover the message, which makes a proof
        available while the status stays unconfirmed.
        """
        if self._send_props.confirmed:
            return self._send_props

        network = await get_arbitrum_network(child_client)
        rollup = await self._get_rollup(network)

        latest_confirmed = await self.parent_client.call(rollup.contract_name, rollup.address, "latestConfirmed")
        confirmed_block = await self.get_block_from_assertion_id(rollup, latest_confirmed, child_client)

        if confirmed_block.send_count > self.event.position:
            self._send_props = SendProps(confirmed_block.send_count, confirmed_block.send_root, True)
            return self._send_props

        latest_created = await self._latest_created_assertion(rollup, latest_confirmed)
        if latest_created != latest_confirmed:
            created_block = await self.get_block_from_assertion_id(rollup, latest_created, child_client)
            if created_block.send_count > self.event.position:
                self._send_props = SendProps(created_block.send_count, created_block.send_root, False)
        return self._send_props

    async def has_executed(self, child_client: ChainClient) -> bool:
        network = await get_arbitrum_network(child_client)
        return bool(
            await self.parent_client.call("Outbox", network.eth_bridge.outbox, "isSpent", self.event.position)
        )

    async def status(self, child_client: ChainClient) -> ChildToParentMessageStatus:
        if self._executed:
            return ChildToParentMessageStatus.EXECUTED

        send_props = await self.get_send_props(child_client)
        if not send_props.confirmed:
            return ChildToParentMessageStatus.UNCONFIRMED

        if await self.has_executed(child_client):
            self._executed = True
            return ChildToParentMessageStatus.EXECUTED
        return ChildToParentMessageStatus.CONFIRMED

    async def get_outbox_proof(self, child_client: ChainClient) -> OutboxProof:
        """
        Merkle proof for this message against the covering outbox tree.

        Raises:
            BridgeTrackerError: If no assertion covers the message yet
        """
        send_props = await self.get_send_props(child_client)
        if not send_props.size:
            raise BridgeTrackerError(
                f"Assertion not yet created for outbox position {self.event.position}, cannot get proof"
            )
        send, root, proof = await child_client.call(
            "NodeInterface",
            NODE_INTERFACE_ADDRESS,
            "constructOutboxProof",
            send_props.size,
            self.event.position,
        )
        return OutboxProof(
            send=bytes(HexBytes(send)),
            root=bytes(HexBytes(root)),
            proof=[bytes(HexBytes(node)) for node in proof],
        )

    async def verify_outbox_proof(
        self,
        child_client: ChainClient,
        proof: OutboxProof | None = None,
    ) -> bool:
        """Check that a proof leads from this message to the covering send root."""
        if proof is None:
            proof = await self.get_outbox_proof(child_client)

        item_hash = calculate_outbox_item_hash(OutboxMessageIdentity.from_event(self.event))
        root = calculate_outbox_root(proof.proof, self.event.position, item_hash)
        if root != proof.root:
            logger.debug(
                f"Outbox proof for position {self.event.position} gives root "
                f"{Web3.to_hex(root)}, expected {Web3.to_hex(proof.root)}"
            )
            return False

        send_props = await self.get_send_props(child_client)
        return send_props.root is None or send_props.root == root

    async def wait_until_ready_to_execute(
        self,
        child_client: ChainClient,
        retry_delay: float = DEFAULT_OUTBOX_RETRY_DELAY,
    ) -> ChildToParentMessageStatus:
        """
        Poll until the message is confirmed or executed.

        Confirmation follows the challenge period (a week on mainnet); this
        never times out by itself, cancel the awaiting task to stop it.
        """
        while True:
            status = await self.status(child_client)
            if status in (ChildToParentMessageStatus.CONFIRMED, ChildToParentMessageStatus.EXECUTED):
                logger.info(f"Outbox message {self.event.position} is {status.name}")
                return status
            await asyncio.sleep(retry_delay)

    async def get_first_executable_block(self, child_client: ChainClient) -> int | None:
        """
        Estimate the parent block from which this message can be executed.

        Returns:
            None if the message is already confirmed or executed, otherwise a
            parent block number
        """
        network = await get_arbitrum_network(child_client)
        rollup = await self._get_rollup(network)

        status = await self.status(child_client)
        if status is not ChildToParentMessageStatus.UNCONFIRMED:
            return None

        latest_block = await self.parent_client.block_number()
        from_block = max(latest_block - (network.confirm_period_blocks + ASSERTION_CONFIRMED_PADDING), 0)
        logs = await EventFetcher(self.parent_client).get_events(
            rollup.contract_name,
            rollup.created_event,
            from_block,
            "latest",
            address=rollup.address,
        )
        if rollup.variant is RollupVariant.NODE:
            logs.sort(key=lambda log: int(log.event["nodeNum"]))
        else:
            logs.sort(key=lambda log: (log.block_number, log.log_index))

        async def send_count_of(log: FetchedEvent) -> int:
            block = await self.get_block_from_assertion_log(child_client, log, rollup.variant)
            return block.send_count

        last_send_count = await send_count_of(logs[-1]) if logs else 0
        if last_send_count <= self.event.position:
            return (
                latest_block
                + network.confirm_period_blocks
                + ASSERTION_CREATED_PADDING
                + ASSERTION_CONFIRMED_PADDING
            )

        found = await find_first_covering(logs, self.event.position, send_count_of)
        if rollup.variant is RollupVariant.ASSERTION:
            created_at_block = await self._created_at_block(rollup, bytes(HexBytes(found.event["assertionHash"])))
            return created_at_block + network.confirm_period_blocks + ASSERTION_CONFIRMED_PADDING

        node = await self.parent_client.call(
            rollup.contract_name, rollup.address, "getNode", int(found.event["nodeNum"])
        )
        return int(_field(node, "deadlineBlock", 4)) + ASSERTION_CONFIRMED_PADDING


class ChildToParentMessageWriterNitro(ChildToParentMessageReaderNitro):
    """Nitro outbox message that can be executed on the parent chain."""

    parent_client: SigningChainClient

    def __init__(
        self,
        parent_client: SigningChainClient,
        event: NitroChildToParentEvent,
        block_range_cache: BlockRangeCache | None = None,
    ) -> None:
        if not isinstance(parent_client, SigningChainClient):
            raise TypeError("ChildToParentMessageWriterNitro requires a signing parent client")
        super().__init__(parent_client, event, block_range_cache)

    async def execute(
        self,
        child_client: ChainClient,
        tx_params: dict[str, Any] | None = None,
    ) -> SubmittedTransaction:
        """
        Execute the message through the outbox.

        Raises:
            InvalidStateTransitionError: Unless the message is CONFIRMED
        """
        status = await self.status(child_client)
        if status != ChildToParentMessageStatus.CONFIRMED:
            raise InvalidStateTransitionError(
                "execute", ChildToParentMessageStatus.CONFIRMED, status, str(self.event.position)
            )

        proof = await self.get_outbox_proof(child_client)
        network = await get_arbitrum_network(child_client)
        tx_hash = await self.parent_client.transact(
            "Outbox",
            network.eth_bridge.outbox,
            "executeTransaction",
            proof.proof,
            self.event.position,
            self.event.caller,
            self.event.destination,
            self.event.arb_block_num,
            self.event.eth_block_num,
            self.event.timestamp,
            self.event.callvalue,
            self.event.data,
            tx_params=tx_params,
        )
        return SubmittedTransaction(tx_hash, self.parent_client)
