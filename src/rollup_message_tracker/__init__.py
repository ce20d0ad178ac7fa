"""
Rollup message tracker package.

Status resolution and reverse tracing of cross-chain messages between an
Arbitrum chain and its parent chain.
"""

from .address import Address, apply_alias, undo_alias
from .config import MonitoringConfig, TrackerConfig
from .errors import (
    AmbiguousResultError,
    BridgeTrackerError,
    InvalidAddressError,
    InvalidStateTransitionError,
    MissingEventError,
    UnsupportedNetworkError,
    WaitTimeoutError,
)
from .message import (
    ChildToParentMessage,
    ChildTransactionReceipt,
    EthDepositMessage,
    ParentToChildMessage,
    ParentTransactionReceipt,
)
from .models import ChildToParentMessageStatus, ParentToChildMessageStatus
from .networks import ArbitrumNetwork, get_arbitrum_network, register_custom_network
from .utils.chain_client import ChainClient, SigningChainClient

__all__ = [
    "Address",
    "apply_alias",
    "undo_alias",
    "MonitoringConfig",
    "TrackerConfig",
    "AmbiguousResultError",
    "BridgeTrackerError",
    "InvalidAddressError",
    "InvalidStateTransitionError",
    "MissingEventError",
    "UnsupportedNetworkError",
    "WaitTimeoutError",
    "ChildToParentMessage",
    "ChildTransactionReceipt",
    "EthDepositMessage",
    "ParentToChildMessage",
    "ParentTransactionReceipt",
    "ChildToParentMessageStatus",
    "ParentToChildMessageStatus",
    "ArbitrumNetwork",
    "get_arbitrum_network",
    "register_custom_network",
    "ChainClient",
    "SigningChainClient",
]
__version__ = "0.1.0"
