"""
Protocol-generation dispatch.

Arbitrum One ran the classic stack until the nitro upgrade; child-to-parent
events before the genesis block use the classic L2ToL1Transaction shape and
later ones the nitro L2ToL1Tx shape. This module classifies events by shape
and splits block-range queries around the genesis block.
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from web3.types import BlockIdentifier

from .constants import ARB_SYS_ADDRESS
from .errors import AmbiguousResultError
from .models import (
    ChildToParentEvent,
    ClassicChildToParentEvent,
    NitroChildToParentEvent,
    ProtocolGeneration,
)
from .networks import get_arbitrum_network
from .utils.chain_client import ChainClient
from .utils.event_fetcher import EventFetcher, FetchedEvent

logger = logging.getLogger(__name__)

CLASSIC_EVENT = "L2ToL1Transaction"
NITRO_EVENT = "L2ToL1Tx"


def detect_generation(event_args: Mapping[str, Any]) -> ProtocolGeneration:
    """Classic events are the only ones carrying an index within a batch."""
    return ProtocolGeneration.CLASSIC if "indexInBatch" in event_args else ProtocolGeneration.NITRO


def child_to_parent_event_from_args(
    event_args: Mapping[str, Any],
    transaction_hash: str | None = None,
) -> ChildToParentEvent:
    """Build the tagged event record for decoded ArbSys event arguments."""
    common = {
        "caller": event_args["caller"],
        "destination": event_args["destination"],
        "arb_block_num": int(event_args["arbBlockNum"]),
        "eth_block_num": int(event_args["ethBlockNum"]),
        "timestamp": int(event_args["timestamp"]),
        "callvalue": int(event_args["callvalue"]),
        "data": bytes(event_args["data"]),
        "transaction_hash": transaction_hash,
    }
    match detect_generation(event_args):
        case ProtocolGeneration.CLASSIC:
            return ClassicChildToParentEvent(
                unique_id=int(event_args["uniqueId"]),
                batch_number=int(event_args["batchNumber"]),
                index_in_batch=int(event_args["indexInBatch"]),
                **common,
            )
        case ProtocolGeneration.NITRO:
            return NitroChildToParentEvent(
                hash=int(event_args["hash"]),
                position=int(event_args["position"]),
                **common,
            )


def child_to_parent_event_from_fetched(event: FetchedEvent) -> ChildToParentEvent:
    return child_to_parent_event_from_args(event.event, event.transaction_hash)


def _classic_bound(block_tag: BlockIdentifier, genesis_block: int) -> int:
    match block_tag:
        case "earliest":
            return 0
        case "latest" | "pending":
            return genesis_block
        case int():
            return min(block_tag, genesis_block)
    raise ValueError(f"Unrecognised block tag: {block_tag}")


def _nitro_bound(block_tag: BlockIdentifier, genesis_block: int) -> BlockIdentifier:
    match block_tag:
        case "earliest":
            return genesis_block
        case "latest" | "pending":
            return block_tag
        case int():
            return max(block_tag, genesis_block)
    raise ValueError(f"Unrecognised block tag: {block_tag}")


def split_block_range(
    from_block: BlockIdentifier,
    to_block: BlockIdentifier,
    genesis_block: int,
) -> tuple[tuple[int, int] | None, tuple[BlockIdentifier, BlockIdentifier] | None]:
    """
    Split a block range into its classic and nitro parts.

    The classic part is [from, min(to, genesis)], the nitro part
    [max(from, genesis), to]. A part that collapses onto the genesis block
    because the request lies entirely on the other side is dropped.

    Returns:
        (classic range or None, nitro range or None)
    """
    classic = (_classic_bound(from_block, genesis_block), _classic_bound(to_block, genesis_block))
    nitro = (_nitro_bound(from_block, genesis_block), _nitro_bound(to_block, genesis_block))

    # request starts at or after genesis: nothing classic to fetch
    classic_range = None if classic[0] == genesis_block else classic
    # request ends before genesis: nothing nitro to fetch
    nitro_range = None if isinstance(to_block, int) and to_block < genesis_block else nitro
    return classic_range, nitro_range


async def get_classic_child_to_parent_events(
    child_client: ChainClient,
    from_block: BlockIdentifier,
    to_block: BlockIdentifier,
    batch_number: int | None = None,
    destination: str | None = None,
    unique_id: int | None = None,
    index_in_batch: int | None = None,
) -> list[ClassicChildToParentEvent]:
    """
    Fetch classic L2ToL1Transaction events.

    indexInBatch is not indexed on chain, so it is filtered here.

    Raises:
        AmbiguousResultError: If more than one event matches index_in_batch
    """
    argument_filters = {
        "batchNumber": batch_number,
        "destination": destination,
        "uniqueId": unique_id,
    }
    events = await EventFetcher(child_client).get_events(
        "ArbSys",
        CLASSIC_EVENT,
        from_block,
        to_block,
        address=ARB_SYS_ADDRESS,
        argument_filters={k: v for k, v in argument_filters.items() if v is not None},
    )
    parsed = [child_to_parent_event_from_fetched(e) for e in events]

    if index_in_batch is not None:
        matching = [e for e in parsed if e.index_in_batch == index_in_batch]
        if len(matching) > 1:
            raise AmbiguousResultError(
                f"classic event batch={batch_number} index={index_in_batch}", len(matching)
            )
        return matching
    return parsed


async def get_nitro_child_to_parent_events(
    child_client: ChainClient,
    from_block: BlockIdentifier,
    to_block: BlockIdentifier,
    position: int | None = None,
    destination: str | None = None,
    hash: int | None = None,
) -> list[NitroChildToParentEvent]:
    """Fetch nitro L2ToL1Tx events."""
    argument_filters = {
        "position": position,
        "destination": destination,
        "hash": hash,
    }
    events = await EventFetcher(child_client).get_events(
        "ArbSys",
        NITRO_EVENT,
        from_block,
        to_block,
        address=ARB_SYS_ADDRESS,
        argument_filters={k: v for k, v in argument_filters.items() if v is not None},
    )
    return [child_to_parent_event_from_fetched(e) for e in events]


async def get_child_to_parent_events(
    child_client: ChainClient,
    from_block: BlockIdentifier,
    to_block: BlockIdentifier,
    position: int | None = None,
    destination: str | None = None,
    hash: int | None = None,
    index_in_batch: int | None = None,
) -> list[ChildToParentEvent]:
    """
    Fetch child-to-parent events of both generations over a block range.

    The range is split around the chain's nitro genesis block and both parts
    are queried concurrently. ``position`` filters the classic batch number
    and the nitro position; ``hash`` the classic unique id and the nitro hash.

    Args:
        child_client: Client of the child chain
        from_block: First block (number or tag)
        to_block: Last block (number or tag)
        position: Batch number (classic) / position (nitro)
        destination: Parent-chain destination address
        hash: Unique id (classic) / leaf hash (nitro)
        index_in_batch: Classic index within the batch

    Returns:
        Classic events followed by nitro events
    """
    network = await get_arbitrum_network(child_client)
    classic_range, nitro_range = split_block_range(
        from_block, to_block, network.nitro_genesis_block
    )

    queries = []
    if classic_range is not None:
        queries.append(
            get_classic_child_to_parent_events(
                child_client,
                *classic_range,
                batch_number=position,
                destination=destination,
                unique_id=hash,
                index_in_batch=index_in_batch,
            )
        )
    if nitro_range is not None:
        queries.append(
            get_nitro_child_to_parent_events(
                child_client,
                *nitro_range,
                position=position,
                destination=destination,
                hash=hash,
            )
        )

    logger.debug(
        f"Child-to-parent query {from_block}..{to_block}: "
        f"classic={classic_range} nitro={nitro_range}"
    )
    results = await asyncio.gather(*queries)
    return [event for batch in results for event in batch]
