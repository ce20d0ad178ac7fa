"""
Arbitrum network metadata.

Core contract addresses and protocol parameters for each known child chain,
plus registration of custom (orbit) chains.
"""

import logging
from dataclasses import dataclass, field

from web3 import Web3

from .constants import (
    ARB1_NITRO_GENESIS_L1_BLOCK,
    ARB1_NITRO_GENESIS_L2_BLOCK,
    SEVEN_DAYS_IN_SECONDS,
)
from .errors import UnsupportedNetworkError
from .utils.chain_client import ChainClient

logger = logging.getLogger(__name__)


def _checksum(value: str, label: str) -> str:
    if not value or not Web3.is_address(value):
        raise ValueError(f"Invalid {label} address: {value}")
    return Web3.to_checksum_address(value)


@dataclass(slots=True)
class EthBridge:
    """Core bridge contracts deployed on the parent chain.

    Attributes:
        bridge: Bridge contract (MessageDelivered events)
        inbox: Inbox contract (InboxMessageDelivered events)
        sequencer_inbox: Sequencer inbox contract
        outbox: Nitro outbox contract
        rollup: Rollup contract
        classic_outboxes: Classic outbox address -> first batch it serves
    """

    bridge: str
    inbox: str
    sequencer_inbox: str
    outbox: str
    rollup: str
    classic_outboxes: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.bridge = _checksum(self.bridge, "bridge")
        self.inbox = _checksum(self.inbox, "inbox")
        self.sequencer_inbox = _checksum(self.sequencer_inbox, "sequencer inbox")
        self.outbox = _checksum(self.outbox, "outbox")
        self.rollup = _checksum(self.rollup, "rollup")
        self.classic_outboxes = {
            _checksum(address, "classic outbox"): int(batch)
            for address, batch in self.classic_outboxes.items()
        }


@dataclass(slots=True)
class ArbitrumNetwork:
    """Metadata of one Arbitrum child chain.

    ``is_bold`` starts as None and is filled in the first time the rollup
    contract is checked.
    """

    name: str
    chain_id: int
    parent_chain_id: int
    eth_bridge: EthBridge
    confirm_period_blocks: int
    retryable_lifetime_seconds: int = SEVEN_DAYS_IN_SECONDS
    nitro_genesis_block: int = 0
    nitro_genesis_l1_block: int = 0
    is_custom: bool = False
    is_bold: bool | None = None

    def __post_init__(self) -> None:
        if self.chain_id <= 0:
            raise ValueError(f"Chain ID must be positive, got {self.chain_id}")
        if self.confirm_period_blocks < 0:
            raise ValueError(
                f"Confirm period must be non-negative, got {self.confirm_period_blocks}"
            )
        if self.retryable_lifetime_seconds <= 0:
            raise ValueError(
                f"Retryable lifetime must be positive, got {self.retryable_lifetime_seconds}"
            )

    def __str__(self) -> str:
        return f"ArbitrumNetwork({self.name}, chain={self.chain_id}, parent={self.parent_chain_id})"


_networks: dict[int, ArbitrumNetwork] = {}


def _register_defaults() -> None:
    for network in (
        ArbitrumNetwork(
            name="Arbitrum One",
            chain_id=42161,
            parent_chain_id=1,
            eth_bridge=EthBridge(
                bridge="0x8315177ab297ba92a06054ce80a67ed4dbd7ed3a",
                inbox="0x4dbd4fc535ac27206064b68ffcf827b0a60bab3f",
                sequencer_inbox="0x1c479675ad559dc151f6ec7ed3fbf8cee79582b6",
                outbox="0x0b9857ae2d4a3dbe74ffe1d7df045bb7f96e4840",
                rollup="0x5ef0d09d1e6204141b4d37530808ed19f60fba35",
                classic_outboxes={
                    "0x667e23abd27e623c11d4cc00ca3ec4d0bd63337a": 0,
                    "0x760723cd2e632826c38fef8cd438a4cc7e7e1a40": 30,
                },
            ),
            confirm_period_blocks=45818,
            nitro_genesis_block=ARB1_NITRO_GENESIS_L2_BLOCK,
            nitro_genesis_l1_block=ARB1_NITRO_GENESIS_L1_BLOCK,
        ),
        ArbitrumNetwork(
            name="Arbitrum Nova",
            chain_id=42170,
            parent_chain_id=1,
            eth_bridge=EthBridge(
                bridge="0xc1ebd02f738644983b6c4b2d440b8e77dde276bd",
                inbox="0xc4448b71118c9071bcb9734a0eac55d18a153949",
                sequencer_inbox="0x211e1c4c7f1bf5351ac850ed10fd68cffcf6c21b",
                outbox="0xd4b80c3d7240325d18e645b49e6535a3bf95cc58",
                rollup="0xfb209827c58283535b744575e11953dcc4bead88",
            ),
            confirm_period_blocks=45818,
        ),
        ArbitrumNetwork(
            name="Arbitrum Sepolia",
            chain_id=421614,
            parent_chain_id=11155111,
            eth_bridge=EthBridge(
                bridge="0x38f918d0e9f1b721edaa41302e399fa1b79333a9",
                inbox="0xaae29b0366299461418f5324a79afc425be5ae21",
                sequencer_inbox="0x6c97864ce4bef387de0b3310a44230f7e3f1be0d",
                outbox="0x65f07c7d521164a4d5dac6eb8fac8da067a3b78f",
                rollup="0xd80810638dbdf9081b72c1b33c65375e807281c8",
            ),
            confirm_period_blocks=20,
        ),
    ):
        _networks[network.chain_id] = network


_register_defaults()


def register_custom_network(network: ArbitrumNetwork, overwrite: bool = False) -> ArbitrumNetwork:
    """
    Register metadata for a chain that is not known by default.

    Args:
        network: Network metadata
        overwrite: Replace an already registered network with the same chain id

    Raises:
        ValueError: If the chain id is taken and overwrite is False
    """
    if network.chain_id in _networks and not overwrite:
        raise ValueError(f"Network {network.chain_id} already registered")
    network.is_custom = True
    _networks[network.chain_id] = network
    logger.info(f"Registered custom network {network}")
    return network


def get_arbitrum_network_by_chain_id(chain_id: int) -> ArbitrumNetwork:
    if (network := _networks.get(chain_id)) is None:
        raise UnsupportedNetworkError(chain_id)
    return network


async def get_arbitrum_network(client_or_chain_id: ChainClient | int) -> ArbitrumNetwork:
    """Resolve network metadata for a chain id or a client's chain."""
    match client_or_chain_id:
        case int():
            return get_arbitrum_network_by_chain_id(client_or_chain_id)
        case _:
            return get_arbitrum_network_by_chain_id(await client_or_chain_id.chain_id())
