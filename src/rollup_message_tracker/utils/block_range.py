"""
Mapping parent-chain block numbers onto Arbitrum block ranges.

Every Arbitrum block records the parent (L1) block number it was built on.
Binary searching that field finds the Arbitrum blocks belonging to a given
parent block. Lookups are memoised in a BlockRangeCache whose population is
single-flight: concurrent requests for the same key wait on one search.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from ..errors import BridgeTrackerError, UnsupportedNetworkError
from ..networks import get_arbitrum_network_by_chain_id
from .chain_client import ChainClient

logger = logging.getLogger(__name__)

BlockRange = tuple[int | None, int | None]


class BlockRangeCache:
    """Memo of (chain id, parent block) -> Arbitrum block range.

    Pass a fresh instance to a resolver to isolate it; otherwise resolvers
    share the process-wide instance returned by ``shared()``. The lock
    guarding population is bound to the running event loop and replaced
    when the cache is used from a different loop.
    """

    _shared: "BlockRangeCache | None" = None

    def __init__(self) -> None:
        self._ranges: dict[str, BlockRange] = {}
        self._lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None

    def _loop_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    @classmethod
    def shared(cls) -> "BlockRangeCache":
        if cls._shared is None:
            cls._shared = cls()
        return cls._shared

    @staticmethod
    def key(chain_id: int, l1_block: int) -> str:
        return f"{chain_id}-{l1_block}"

    def __contains__(self, key: str) -> bool:
        return key in self._ranges

    def __len__(self) -> int:
        return len(self._ranges)

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[BlockRange]],
    ) -> BlockRange:
        """Return the cached range for key, computing it at most once."""
        if key in self._ranges:
            return self._ranges[key]

        async with self._loop_lock():
            # another task may have filled it while we waited
            if key in self._ranges:
                return self._ranges[key]
            logger.debug(f"Block range cache miss for {key}")
            self._ranges[key] = await compute()
            return self._ranges[key]

    def clear(self) -> None:
        self._ranges.clear()


async def get_first_block_for_l1_block(
    client: ChainClient,
    for_l1_block: int,
    allow_greater: bool = False,
    min_child_block: int | None = None,
    max_child_block: int | str = "latest",
) -> int | None:
    """
    First Arbitrum block built on the given parent block.

    Args:
        client: Client of the Arbitrum chain to search
        for_l1_block: Parent block number to look for
        allow_greater: Fall back to the first block built on a later parent block
        min_child_block: Lower bound of the search (defaults to the nitro
            genesis block of a registered network, else 0)
        max_child_block: Upper bound of the search, a number or "latest"

    Returns:
        The block number, or None if no block matches. For a non-Arbitrum
        chain the parent block number itself is returned.
    """
    if not await client.is_arbitrum():
        return for_l1_block

    if min_child_block is None:
        try:
            network = get_arbitrum_network_by_chain_id(await client.chain_id())
            min_child_block = network.nitro_genesis_block
        except UnsupportedNetworkError:
            min_child_block = 0

    start = min_child_block
    end = await client.block_number() if max_child_block == "latest" else int(max_child_block)

    exact: int | None = None
    greater: int | None = None

    while start <= end:
        mid = start + (end - start) // 2
        block = await client.get_block(mid)
        if block is None or block.l1_block_number is None:
            raise BridgeTrackerError(f"Block {mid} on {client.name} has no l1BlockNumber")
        l1_block = block.l1_block_number

        if l1_block == for_l1_block:
            exact = mid
            end = mid - 1
        elif l1_block < for_l1_block:
            start = mid + 1
        else:
            if allow_greater:
                greater = mid
            end = mid - 1

    return exact if exact is not None else greater


async def get_block_ranges_for_l1_block(
    client: ChainClient,
    for_l1_block: int,
    min_child_block: int | None = None,
    max_child_block: int | str = "latest",
) -> BlockRange:
    """First and last Arbitrum block built on a parent block, or (None, None)."""
    if max_child_block == "latest":
        max_child_block = await client.block_number()

    first, next_first = await asyncio.gather(
        get_first_block_for_l1_block(
            client, for_l1_block, False, min_child_block, max_child_block
        ),
        get_first_block_for_l1_block(
            client, for_l1_block + 1, True, min_child_block, max_child_block
        ),
    )

    if first is None:
        return None, None
    if next_first is not None:
        return first, next_first - 1
    return first, int(max_child_block)
