"""Cross-chain message resolvers and transaction receipts."""

from .child_to_parent import ChildToParentMessage, ChildToParentMessageReader, ChildToParentMessageWriter
from .child_transaction import ChildTransactionReceipt, RedeemTransaction, wait_for_child_receipt
from .parent_to_child import (
    EthDepositMessage,
    ParentToChildMessage,
    ParentToChildMessageReader,
    ParentToChildMessageReaderClassic,
    ParentToChildMessageWriter,
)
from .parent_transaction import (
    ParentContractCallTransactionReceipt,
    ParentEthDepositTransactionReceipt,
    ParentTransactionReceipt,
    wait_for_parent_receipt,
)

__all__ = [
    "ChildToParentMessage",
    "ChildToParentMessageReader",
    "ChildToParentMessageWriter",
    "ChildTransactionReceipt",
    "RedeemTransaction",
    "wait_for_child_receipt",
    "EthDepositMessage",
    "ParentToChildMessage",
    "ParentToChildMessageReader",
    "ParentToChildMessageReaderClassic",
    "ParentToChildMessageWriter",
    "ParentContractCallTransactionReceipt",
    "ParentEthDepositTransactionReceipt",
    "ParentTransactionReceipt",
    "wait_for_parent_receipt",
]
