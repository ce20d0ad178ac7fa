"""Unit tests for parent-block to Arbitrum-block range lookups."""

import asyncio

import pytest

from rollup_message_tracker.errors import BridgeTrackerError
from rollup_message_tracker.utils.block_range import (
    BlockRangeCache,
    get_block_ranges_for_l1_block,
    get_first_block_for_l1_block,
)
from chain_fakes import FakeChainClient, make_block

UNREGISTERED_CHAIN_ID = 333_777
ARB1_GENESIS = 22_207_817


def _arbitrum_client(l1_numbers):
    client = FakeChainClient(chain_id=UNREGISTERED_CHAIN_ID, latest_block=len(l1_numbers) - 1)
    for number, l1_number in enumerate(l1_numbers):
        client.blocks[number] = make_block(number, l1_block_number=l1_number)
    return client


class TestFirstBlockForL1Block:
    """Tests for get_first_block_for_l1_block."""

    @pytest.mark.asyncio
    async def test_exact_match_returns_first_block(self):
        """Test that the earliest block built on the parent block is found."""
        client = _arbitrum_client([100, 100, 101, 101, 101, 102, 104])

        assert await get_first_block_for_l1_block(client, 101) == 2
        assert await get_first_block_for_l1_block(client, 100) == 0
        assert await get_first_block_for_l1_block(client, 104) == 6

    @pytest.mark.asyncio
    async def test_missing_parent_block(self):
        """Test gaps with and without allow_greater."""
        client = _arbitrum_client([100, 100, 101, 101, 101, 102, 104])

        assert await get_first_block_for_l1_block(client, 103) is None
        assert await get_first_block_for_l1_block(client, 103, allow_greater=True) == 6
        assert await get_first_block_for_l1_block(client, 105, allow_greater=True) is None

    @pytest.mark.asyncio
    async def test_search_bounds(self):
        """Test that min and max child blocks narrow the search."""
        client = _arbitrum_client([100, 100, 101, 101, 101, 102, 104])

        assert await get_first_block_for_l1_block(client, 101, min_child_block=3) == 3
        assert await get_first_block_for_l1_block(client, 102, max_child_block=4) is None

    @pytest.mark.asyncio
    async def test_non_arbitrum_chain(self):
        """Test that a chain without ArbSys maps blocks onto themselves."""
        client = FakeChainClient(arbitrum=False)

        assert await get_first_block_for_l1_block(client, 12345) == 12345

    @pytest.mark.asyncio
    async def test_block_without_l1_number(self):
        """Test that blocks lacking l1BlockNumber are rejected."""
        client = FakeChainClient(chain_id=UNREGISTERED_CHAIN_ID, latest_block=0)
        client.blocks[0] = make_block(0)

        with pytest.raises(BridgeTrackerError, match="has no l1BlockNumber"):
            await get_first_block_for_l1_block(client, 1)

    @pytest.mark.asyncio
    async def test_registered_network_starts_at_nitro_genesis(self):
        """Test that Arbitrum One searches from its nitro genesis block."""
        client = FakeChainClient(chain_id=42161, latest_block=ARB1_GENESIS + 3)
        for offset, l1_number in enumerate([15_447_158, 15_447_159, 15_447_159, 15_447_160]):
            client.blocks[ARB1_GENESIS + offset] = make_block(ARB1_GENESIS + offset, l1_block_number=l1_number)

        assert await get_first_block_for_l1_block(client, 15_447_159) == ARB1_GENESIS + 1

    @pytest.mark.asyncio
    async def test_explicit_lower_bound_wins(self):
        """Test that min_child_block overrides the network default."""
        client = FakeChainClient(chain_id=42161, latest_block=2)
        for number, l1_number in enumerate([7, 8, 8]):
            client.blocks[number] = make_block(number, l1_block_number=l1_number)

        assert await get_first_block_for_l1_block(client, 8, min_child_block=0) == 1

    @pytest.mark.asyncio
    async def test_unregistered_chain_starts_at_zero(self):
        """Test that an unknown chain is searched from block 0."""
        client = _arbitrum_client([5, 6, 6, 7])

        assert await get_first_block_for_l1_block(client, 5) == 0
        assert await get_first_block_for_l1_block(client, 6) == 1


class TestBlockRangesForL1Block:
    """Tests for get_block_ranges_for_l1_block."""

    @pytest.mark.asyncio
    async def test_range_inside_chain(self):
        """Test a parent block followed by later ones."""
        client = _arbitrum_client([100, 100, 101, 101, 101, 102, 104])

        assert await get_block_ranges_for_l1_block(client, 101) == (2, 4)
        assert await get_block_ranges_for_l1_block(client, 102) == (5, 5)

    @pytest.mark.asyncio
    async def test_range_at_chain_tip(self):
        """Test that the latest parent block extends to the search bound."""
        client = _arbitrum_client([100, 100, 101, 101, 101, 102, 104, 104])

        assert await get_block_ranges_for_l1_block(client, 104) == (6, 7)

    @pytest.mark.asyncio
    async def test_unknown_parent_block(self):
        """Test that a parent block with no Arbitrum blocks yields no range."""
        client = _arbitrum_client([100, 100, 101])

        assert await get_block_ranges_for_l1_block(client, 99) == (None, None)
        assert await get_block_ranges_for_l1_block(client, 200) == (None, None)


class TestBlockRangeCache:
    """Tests for BlockRangeCache."""

    def test_key(self):
        """Test the cache key format."""
        assert BlockRangeCache.key(42161, 17_000_000) == "42161-17000000"

    def test_shared_instance(self):
        """Test that shared() always returns the same cache."""
        assert BlockRangeCache.shared() is BlockRangeCache.shared()

    @pytest.mark.asyncio
    async def test_single_flight(self):
        """Test that concurrent lookups of one key run a single search."""
        cache = BlockRangeCache()
        calls = 0

        async def compute():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return 5, 9

        results = await asyncio.gather(*(cache.get_or_compute("1-100", compute) for _ in range(5)))

        assert results == [(5, 9)] * 5
        assert calls == 1
        assert "1-100" in cache
        assert len(cache) == 1

    def test_reused_across_event_loops(self):
        """Test that one cache serves contended lookups from successive loops."""
        cache = BlockRangeCache()

        async def compute():
            await asyncio.sleep(0.01)
            return 3, 4

        async def lookup(key):
            return await asyncio.gather(*(cache.get_or_compute(key, compute) for _ in range(3)))

        assert asyncio.run(lookup("1-1")) == [(3, 4)] * 3
        assert asyncio.run(lookup("1-2")) == [(3, 4)] * 3
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_failed_compute_is_not_cached(self):
        """Test that a failed search can be retried."""
        cache = BlockRangeCache()

        async def failing():
            raise BridgeTrackerError("rpc down")

        async def working():
            return 1, 2

        with pytest.raises(BridgeTrackerError):
            await cache.get_or_compute("1-1", failing)

        assert "1-1" not in cache
        assert await cache.get_or_compute("1-1", working) == (1, 2)

    @pytest.mark.asyncio
    async def test_clear(self):
        """Test that clear() empties the cache."""
        cache = BlockRangeCache()

        async def compute():
            return 1, 2

        await cache.get_or_compute("1-1", compute)
        cache.clear()

        assert len(cache) == 0
