"""
Shared data models for the message resolvers.

Status enums, the two historical shapes of child-to-parent events and the
immutable records passed between the fetch layer and the resolvers.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, ClassVar


class ProtocolGeneration(Enum):
    """Bridge protocol generation a message belongs to."""
    CLASSIC = "classic"
    NITRO = "nitro"


class RollupVariant(Enum):
    """Rollup contract flavour deployed for a chain."""
    NODE = "node"
    ASSERTION = "assertion"


class ParentToChildMessageStatus(IntEnum):
    NOT_YET_CREATED = 1
    CREATION_FAILED = 2
    FUNDS_DEPOSITED_ON_CHILD = 3
    REDEEMED = 4
    EXPIRED = 5


class ChildToParentMessageStatus(IntEnum):
    UNCONFIRMED = 1
    CONFIRMED = 2
    EXECUTED = 3


class EthDepositMessageStatus(IntEnum):
    PENDING = 1
    DEPOSITED = 2


class InboxMessageKind(IntEnum):
    """Message kinds recorded by the bridge's MessageDelivered event."""
    L2_MESSAGE = 3
    SUBMIT_RETRYABLE_TX = 9
    ETH_DEPOSIT = 12


@dataclass(frozen=True, slots=True)
class NitroChildToParentEvent:
    """An L2ToL1Tx event emitted by ArbSys on a nitro chain.

    Attributes:
        caller: Child-chain address that initiated the message
        destination: Parent-chain target of the message
        hash: Merkle leaf hash of the message
        position: Leaf index in the outbox merkle tree
        arb_block_num: Child block the message was sent in
        eth_block_num: Parent block number seen by the child at send time
        timestamp: Child block timestamp at send time
        callvalue: Value carried to the parent chain
        data: Calldata executed on the parent chain
        transaction_hash: Child transaction that emitted the event, if known
    """

    caller: str
    destination: str
    hash: int
    position: int
    arb_block_num: int
    eth_block_num: int
    timestamp: int
    callvalue: int
    data: bytes
    transaction_hash: str | None = None

    generation: ClassVar[ProtocolGeneration] = ProtocolGeneration.NITRO

    @property
    def message_number(self) -> int:
        return self.position

    @property
    def sender(self) -> str:
        return self.caller

    @property
    def value(self) -> int:
        return self.callvalue

    def __str__(self) -> str:
        return (
            f"NitroChildToParentEvent(position={self.position}, "
            f"caller={self.caller}, destination={self.destination}, "
            f"block={self.arb_block_num})"
        )


@dataclass(frozen=True, slots=True)
class ClassicChildToParentEvent:
    """An L2ToL1Transaction event emitted by ArbSys before the nitro upgrade."""

    caller: str
    destination: str
    unique_id: int
    batch_number: int
    index_in_batch: int
    arb_block_num: int
    eth_block_num: int
    timestamp: int
    callvalue: int
    data: bytes
    transaction_hash: str | None = None

    generation: ClassVar[ProtocolGeneration] = ProtocolGeneration.CLASSIC

    @property
    def message_number(self) -> int:
        return self.unique_id

    @property
    def sender(self) -> str:
        return self.caller

    @property
    def value(self) -> int:
        return self.callvalue

    def __str__(self) -> str:
        return (
            f"ClassicChildToParentEvent(batch={self.batch_number}, "
            f"index={self.index_in_batch}, caller={self.caller})"
        )


ChildToParentEvent = NitroChildToParentEvent | ClassicChildToParentEvent


@dataclass(frozen=True, slots=True)
class OutboxMessageIdentity:
    """Fields hashed into an outbox merkle leaf."""

    position: int
    sender: str
    destination: str
    arb_block_num: int
    parent_block_num: int
    timestamp: int
    call_value: int
    data: bytes

    @classmethod
    def from_event(cls, event: NitroChildToParentEvent) -> "OutboxMessageIdentity":
        return cls(
            position=event.position,
            sender=event.caller,
            destination=event.destination,
            arb_block_num=event.arb_block_num,
            parent_block_num=event.eth_block_num,
            timestamp=event.timestamp,
            call_value=event.callvalue,
            data=event.data,
        )


@dataclass(frozen=True, slots=True)
class RetryableMessageParams:
    """Decoded payload of a submit-retryable inbox message."""

    dest_address: str
    l2_call_value: int
    l1_value: int
    max_submission_fee: int
    excess_fee_refund_address: str
    call_value_refund_address: str
    gas_limit: int
    max_fee_per_gas: int
    data: bytes


@dataclass(frozen=True, slots=True)
class DeliveredMessage:
    """A bridge MessageDelivered event joined with its inbox payload.

    Attributes:
        message_number: Sequence number assigned by the bridge
        inbox: Inbox contract that delivered the message
        kind: Inbox message kind (see InboxMessageKind)
        sender: Sender as recorded by the bridge (aliased for contracts)
        message_data_hash: Hash of the inbox payload
        base_fee_l1: Parent-chain base fee when the message was delivered
        timestamp: Parent-chain timestamp of delivery
        data: Raw inbox payload
    """

    message_number: int
    inbox: str
    kind: int
    sender: str
    message_data_hash: bytes
    base_fee_l1: int
    timestamp: int
    data: bytes


@dataclass(frozen=True, slots=True)
class ArbBlock:
    """Block header fields, including the Arbitrum-specific extensions."""

    number: int
    hash: bytes
    timestamp: int
    send_count: int = 0
    send_root: bytes = bytes(32)
    l1_block_number: int | None = None


@dataclass(frozen=True, slots=True)
class MessageBatchProofInfo:
    """Outbox proof returned by NodeInterface for a classic message."""

    proof: list[bytes]
    path: int
    l2_sender: str
    l1_dest: str
    l2_block: int
    l1_block: int
    timestamp: int
    amount: int
    calldata_for_l1: bytes


@dataclass(slots=True)
class ParentToChildMessageWaitResult:
    """Resolved status of a retryable, with the receipt that decided it."""

    status: ParentToChildMessageStatus
    child_tx_receipt: Any = None


@dataclass(frozen=True, slots=True)
class OutboxProof:
    """Proof material returned by NodeInterface.constructOutboxProof."""

    send: bytes
    root: bytes
    proof: list[bytes] = field(default_factory=list)
