"""
Protocol constants shared by the message resolvers.

Precompile addresses, alias offset and the paddings/windows used when
estimating or searching for cross-chain message state.
"""

from typing import Final

# Precompiles available on every Arbitrum chain
ARB_SYS_ADDRESS: Final[str] = "0x0000000000000000000000000000000000000064"
ARB_RETRYABLE_TX_ADDRESS: Final[str] = "0x000000000000000000000000000000000000006E"
NODE_INTERFACE_ADDRESS: Final[str] = "0x00000000000000000000000000000000000000C8"

ZERO_ADDRESS: Final[str] = "0x0000000000000000000000000000000000000000"
ZERO_HASH: Final[bytes] = bytes(32)

ADDRESS_ALIAS_OFFSET: Final[int] = 0x1111000000000000000000000000000000001111

# Arbitrum One switched from the classic to the nitro stack at these blocks
ARB1_NITRO_GENESIS_L2_BLOCK: Final[int] = 22207817
ARB1_NITRO_GENESIS_L1_BLOCK: Final[int] = 15447158

SEVEN_DAYS_IN_SECONDS: Final[int] = 7 * 24 * 60 * 60
ONE_DAY_IN_SECONDS: Final[int] = 24 * 60 * 60

# Seconds to wait for a retryable ticket to be created on the child chain
DEFAULT_DEPOSIT_TIMEOUT: Final[float] = 30 * 60

# Seconds between receipt polls
DEFAULT_RECEIPT_POLL_INTERVAL: Final[float] = 1.0

# Seconds between outbox status polls
DEFAULT_OUTBOX_RETRY_DELAY: Final[float] = 0.5

# Parent blocks added on top of the confirm period when estimating execution
ASSERTION_CREATED_PADDING: Final[int] = 50
ASSERTION_CONFIRMED_PADDING: Final[int] = 20

# Seed window (child blocks) for the manual redeem search
RETRYABLE_SEARCH_SEED_BLOCKS: Final[int] = 1000

# Reverse tracing windows (parent blocks)
PARENT_LOG_CHUNK_SIZE: Final[int] = 1000
PARENT_LOOKBACK_BLOCKS: Final[int] = 1000
ARBITRUM_PARENT_FALLBACK_LOOKBACK: Final[int] = 100_000

# Batch confirmations after which child data is considered posted
DATA_AVAILABILITY_CONFIRMATIONS: Final[int] = 10

# EIP-2718 type bytes of Arbitrum system transactions
ARBITRUM_DEPOSIT_TX_TYPE: Final[int] = 0x64
ARBITRUM_SUBMIT_RETRYABLE_TX_TYPE: Final[int] = 0x69
