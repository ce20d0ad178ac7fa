"""Unit tests for tracing execution transactions back to their source chain."""

import logging

import pytest
from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from rollup_message_tracker.constants import ARB_RETRYABLE_TX_ADDRESS, ARB_SYS_ADDRESS
from rollup_message_tracker.reverse_tracer import (
    find_message_delivered_transaction_hash,
    get_parent_event_block_range,
    trace_deposit_to_parent,
    trace_outbox_execution_to_child,
    trace_retryable_to_parent,
)
from rollup_message_tracker.utils.event_fetcher import build_topics
from chain_fakes import FakeChainClient, make_log, make_receipt

BRIDGE = Web3.to_checksum_address("0x8315177ab297ba92a06054ce80a67ed4dbd7ed3a")
OUTBOX = Web3.to_checksum_address("0x0b9857ae2d4a3dbe74ffe1d7df045bb7f96e4840")
SENDER = "0xeA3123E9d9911199a6711321d1277285e6d4F3EC"
DESTINATION = "0x6c411aD3E74De3E7Bd422b94A27770f5B86C623B"

TICKET_HASH = "0x" + "11" * 32
REDEEM_HASH = "0x" + "22" * 32
PARENT_TX_HASH = "0x" + "33" * 32
DEPOSIT_HASH = "0x" + "44" * 32
CHILD_TX_HASH = "0x" + "55" * 32
OUTBOX_EXEC_HASH = "0x" + "66" * 32

MESSAGE_NUMBER = 1_234_567


def _message_delivered(message_number, block_number, transaction_hash=PARENT_TX_HASH):
    return make_log(
        "Bridge",
        "MessageDelivered",
        {
            "messageIndex": message_number,
            "beforeInboxAcc": b"\x00" * 32,
            "inbox": "0x4Dbd4fc535Ac27206064B68FfCf827b0A60BAB3f",
            "kind": 9,
            "sender": SENDER,
            "messageDataHash": b"\x01" * 32,
            "baseFeeL1": 10**9,
            "timestamp": 1_700_000_000,
        },
        BRIDGE,
        block_number=block_number,
        transaction_hash=transaction_hash,
    )


def _clients(l1_block=50_000):
    child = FakeChainClient(chain_id=42161, name="child", latest_block=300)
    parent = FakeChainClient(chain_id=1, name="parent", latest_block=l1_block + 10, arbitrum=False)
    child.call_handlers["blockL1Num"] = l1_block
    return child, parent


def _ranges(client):
    return [(q["fromBlock"], q["toBlock"]) for q in client.log_queries]


class TestParentEventBlockRange:
    """Tests for get_parent_event_block_range."""

    @pytest.mark.asyncio
    async def test_ethereum_parent(self):
        """Test the lookback window below the recorded L1 block."""
        child, parent = _clients(l1_block=50_000)

        assert await get_parent_event_block_range(child, parent, 200) == (49_000, 50_000)
        assert child.calls_to("blockL1Num") == [(200,)]

    @pytest.mark.asyncio
    async def test_window_clamped_at_zero(self):
        """Test that early blocks do not produce negative bounds."""
        child, parent = _clients(l1_block=500)

        assert await get_parent_event_block_range(child, parent, 1) == (0, 500)

    @pytest.mark.asyncio
    async def test_arbitrum_parent(self):
        """Test that an Arbitrum parent maps L1 numbers onto its own blocks."""
        child, _ = _clients(l1_block=50_000)
        parent = FakeChainClient(chain_id=42161, name="parent")
        parent.call_handlers["l2BlockRangeForL1"] = lambda l1_block: (l1_block * 10, l1_block * 10 + 9)

        assert await get_parent_event_block_range(child, parent, 200) == (490_000, 500_009)

    @pytest.mark.asyncio
    async def test_arbitrum_parent_fallback(self, caplog):
        """Test the fallback window when the parent cannot map L1 numbers."""
        child, _ = _clients(l1_block=50_000)
        parent = FakeChainClient(chain_id=42161, name="parent", latest_block=250_000)
        parent.call_handlers["l2BlockRangeForL1"] = ValueError("method not found")

        with caplog.at_level(logging.WARNING):
            window = await get_parent_event_block_range(child, parent, 200)

        assert window == (150_000, 250_000)
        assert "l2BlockRangeForL1 failed" in caplog.text


class TestFindMessageDelivered:
    """Tests for the chunked MessageDelivered search."""

    @pytest.mark.asyncio
    async def test_newest_chunk_first(self):
        """Test that the search walks backwards in chunks and stops at a hit."""
        _, parent = _clients()
        parent.logs = [_message_delivered(MESSAGE_NUMBER, block_number=47_500)]

        tx_hash = await find_message_delivered_transaction_hash(parent, BRIDGE, MESSAGE_NUMBER, 45_000, 50_000)

        assert tx_hash == PARENT_TX_HASH
        assert _ranges(parent) == [(49_001, 50_000), (48_001, 49_000), (47_001, 48_000)]

    @pytest.mark.asyncio
    async def test_last_chunk_is_partial(self):
        """Test that the final chunk stops at the lower bound."""
        _, parent = _clients()
        parent.logs = [_message_delivered(MESSAGE_NUMBER, block_number=48_500)]

        tx_hash = await find_message_delivered_transaction_hash(parent, BRIDGE, MESSAGE_NUMBER, 49_000, 50_000)

        assert tx_hash is None
        assert _ranges(parent) == [(49_001, 50_000), (49_000, 49_000)]

    @pytest.mark.asyncio
    async def test_filters_message_index(self):
        """Test that deliveries of other messages are ignored."""
        _, parent = _clients()
        parent.logs = [_message_delivered(MESSAGE_NUMBER + 1, block_number=49_500)]

        assert await find_message_delivered_transaction_hash(
            parent, BRIDGE, MESSAGE_NUMBER, 49_000, 50_000, chunk_size=5_000
        ) is None


class TestTraceRetryable:
    """Tests for trace_retryable_to_parent."""

    def _ticket(self, child, block_number="0xc3"):
        child.raw_transactions[TICKET_HASH] = {
            "hash": TICKET_HASH,
            "type": "0x69",
            "requestId": hex(MESSAGE_NUMBER),
            "blockNumber": block_number,
        }

    @pytest.mark.asyncio
    async def test_ticket_creation(self):
        """Test tracing the ticket creation itself."""
        child, parent = _clients()
        self._ticket(child)
        parent.logs = [_message_delivered(MESSAGE_NUMBER, block_number=49_800)]

        assert await trace_retryable_to_parent(child, parent, TICKET_HASH, 195) == PARENT_TX_HASH
        assert child.calls_to("blockL1Num") == [(195,)]

    @pytest.mark.asyncio
    async def test_manual_redeem(self):
        """Test that a redeem is followed through RedeemScheduled to its ticket."""
        child, parent = _clients()
        self._ticket(child)
        child.logs = [
            make_log(
                "ArbRetryableTx",
                "RedeemScheduled",
                {
                    "ticketId": HexBytes(TICKET_HASH),
                    "retryTxHash": HexBytes(REDEEM_HASH),
                    "sequenceNum": 1,
                    "donatedGas": 100_000,
                    "gasDonor": SENDER,
                    "maxRefund": 0,
                    "submissionFeeRefund": 0,
                },
                ARB_RETRYABLE_TX_ADDRESS,
                block_number=250,
                transaction_hash=REDEEM_HASH,
            )
        ]
        parent.logs = [_message_delivered(MESSAGE_NUMBER, block_number=49_800)]

        assert await trace_retryable_to_parent(child, parent, REDEEM_HASH, 250) == PARENT_TX_HASH
        # the ticket's own block locates the parent window
        assert child.calls_to("blockL1Num") == [(195,)]

    @pytest.mark.asyncio
    async def test_plain_transaction(self):
        """Test that ordinary transactions are not traced."""
        child, parent = _clients()
        child.raw_transactions[CHILD_TX_HASH] = {"hash": CHILD_TX_HASH, "type": "0x2", "blockNumber": "0x10"}

        assert await trace_retryable_to_parent(child, parent, CHILD_TX_HASH, 16) is None
        assert parent.log_queries == []

    @pytest.mark.asyncio
    async def test_unknown_transaction(self):
        """Test a hash the child chain does not know."""
        child, parent = _clients()

        assert await trace_retryable_to_parent(child, parent, CHILD_TX_HASH, 16) is None

    @pytest.mark.asyncio
    async def test_delivery_outside_window(self):
        """Test that a delivery older than the lookback is not found."""
        child, parent = _clients()
        self._ticket(child)
        parent.logs = [_message_delivered(MESSAGE_NUMBER, block_number=40_000)]

        assert await trace_retryable_to_parent(child, parent, TICKET_HASH, 195) is None


class TestTraceDeposit:
    """Tests for trace_deposit_to_parent."""

    @pytest.mark.asyncio
    async def test_eth_deposit(self):
        """Test tracing an ETH deposit transaction."""
        child, parent = _clients()
        child.raw_transactions[DEPOSIT_HASH] = {"hash": DEPOSIT_HASH, "type": "0x64", "requestId": hex(MESSAGE_NUMBER)}
        parent.logs = [_message_delivered(MESSAGE_NUMBER, block_number=49_990)]

        assert await trace_deposit_to_parent(child, parent, DEPOSIT_HASH, 120) == PARENT_TX_HASH
        assert child.calls_to("blockL1Num") == [(120,)]

    @pytest.mark.asyncio
    async def test_retryable_is_not_a_deposit(self):
        """Test that a retryable ticket is rejected by the deposit tracer."""
        child, parent = _clients()
        child.raw_transactions[TICKET_HASH] = {"hash": TICKET_HASH, "type": "0x69", "requestId": hex(MESSAGE_NUMBER)}

        assert await trace_deposit_to_parent(child, parent, TICKET_HASH, 120) is None


def _execute_calldata(l2_block, position=7):
    selector = Web3.keccak(
        text="executeTransaction(bytes32[],uint256,address,address,uint256,uint256,uint256,uint256,bytes)"
    )[:4]
    args = encode(
        ["bytes32[]", "uint256", "address", "address", "uint256", "uint256", "uint256", "uint256", "bytes"],
        [[b"\x09" * 32], position, SENDER, DESTINATION, l2_block, 49_000, 1_700_000_000, 0, b""],
    )
    return HexBytes(selector + args)


class TestTraceOutboxExecution:
    """Tests for trace_outbox_execution_to_child."""

    def _setup(self, calldata):
        child, parent = _clients()
        executed = make_log(
            "Outbox",
            "OutBoxTransactionExecuted",
            {"to": DESTINATION, "l2Sender": SENDER, "zero": 0, "transactionIndex": 7},
            OUTBOX,
            transaction_hash=OUTBOX_EXEC_HASH,
        )
        parent.transactions[OUTBOX_EXEC_HASH] = {"hash": OUTBOX_EXEC_HASH, "input": calldata}
        child.logs = [
            make_log(
                "ArbSys",
                "L2ToL1Tx",
                {
                    "caller": SENDER,
                    "destination": DESTINATION,
                    "hash": 99,
                    "position": position,
                    "arbBlockNum": 150,
                    "ethBlockNum": 49_000,
                    "timestamp": 1_700_000_000,
                    "callvalue": 0,
                    "data": b"",
                },
                ARB_SYS_ADDRESS,
                block_number=150,
                transaction_hash=tx_hash,
                log_index=position,
            )
            for position, tx_hash in ((6, "0x" + "77" * 32), (7, CHILD_TX_HASH))
        ]
        return child, parent, make_receipt([executed], transaction_hash=OUTBOX_EXEC_HASH)

    @pytest.mark.asyncio
    async def test_outbox_execution(self):
        """Test following an executed outbox message back to its sender."""
        child, parent, receipt = self._setup(_execute_calldata(l2_block=150))

        assert await trace_outbox_execution_to_child(parent, child, receipt) == CHILD_TX_HASH
        assert _ranges(child) == [(150, 150)]

    @pytest.mark.asyncio
    async def test_not_an_outbox_call(self):
        """Test that other calldata cannot be traced."""
        child, parent, receipt = self._setup(HexBytes("0xa9059cbb" + "00" * 64))

        assert await trace_outbox_execution_to_child(parent, child, receipt) is None
        assert child.log_queries == []

    @pytest.mark.asyncio
    async def test_receipt_without_execution(self):
        """Test that receipts without OutBoxTransactionExecuted return None."""
        child, parent = _clients()

        assert await trace_outbox_execution_to_child(parent, child, make_receipt([])) is None


class TestBuildTopics:
    """Tests for build_topics."""

    def test_alternatives_and_trailing_slots(self):
        """Test list filters and that unfiltered trailing slots are dropped."""
        topics = build_topics("Bridge", "MessageDelivered", {"messageIndex": [1, 2]})

        assert len(topics) == 2
        assert topics[1] == ["0x" + f"{1:064x}", "0x" + f"{2:064x}"]

    def test_unfiltered_middle_slot(self):
        """Test that gaps before a filtered argument stay as wildcards."""
        topics = build_topics("ArbSys", "L2ToL1Tx", {"position": 3})

        assert topics[1:] == [None, None, "0x" + f"{3:064x}"]

    def test_unknown_argument(self):
        """Test that non-indexed or unknown arguments are rejected."""
        with pytest.raises(ValueError, match="no indexed argument"):
            build_topics("Bridge", "MessageDelivered", {"kind": 9})
