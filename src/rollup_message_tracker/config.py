"""Configuration management for the message tracker.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables with sensible defaults
where appropriate.
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from .constants import (
    DEFAULT_DEPOSIT_TIMEOUT,
    DEFAULT_OUTBOX_RETRY_DELAY,
    DEFAULT_RECEIPT_POLL_INTERVAL,
    PARENT_LOG_CHUNK_SIZE,
    RETRYABLE_SEARCH_SEED_BLOCKS,
)
from .utils.chain_client import ChainClient, SigningChainClient

logger = logging.getLogger(__name__)


def _validate_rpc_url(rpc_url: str, env_name: str) -> None:
    if not rpc_url:
        raise ValueError(f"RPC URL is required ({env_name})")

    parsed = urlparse(rpc_url)
    if parsed.scheme not in ('http', 'https'):
        raise ValueError(
            f"Invalid RPC URL scheme: {parsed.scheme}. Expected http or https"
        )


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Polling and search settings."""
    receipt_poll_interval: float = DEFAULT_RECEIPT_POLL_INTERVAL  # seconds between receipt polls
    deposit_timeout: float = DEFAULT_DEPOSIT_TIMEOUT  # seconds to wait for a ticket to be created
    outbox_retry_delay: float = DEFAULT_OUTBOX_RETRY_DELAY  # seconds between outbox status polls
    parent_log_chunk_size: int = PARENT_LOG_CHUNK_SIZE  # parent blocks per log query when tracing
    retryable_search_seed_blocks: int = RETRYABLE_SEARCH_SEED_BLOCKS  # first window of the manual redeem search

    def __post_init__(self) -> None:
        """Validate monitoring configuration."""
        if self.receipt_poll_interval <= 0:
            raise ValueError(
                f"Receipt poll interval must be positive, got {self.receipt_poll_interval}"
            )
        if self.deposit_timeout <= 0:
            raise ValueError(f"Deposit timeout must be positive, got {self.deposit_timeout}")
        if self.outbox_retry_delay <= 0:
            raise ValueError(
                f"Outbox retry delay must be positive, got {self.outbox_retry_delay}"
            )
        if self.parent_log_chunk_size <= 0:
            raise ValueError(
                f"Parent log chunk size must be positive, got {self.parent_log_chunk_size}"
            )
        if self.parent_log_chunk_size > 10_000:
            raise ValueError(
                f"Parent log chunk size too high (max 10000), got {self.parent_log_chunk_size}"
            )
        if self.retryable_search_seed_blocks <= 0:
            raise ValueError(
                f"Retryable search seed window must be positive, got {self.retryable_search_seed_blocks}"
            )


@dataclass(frozen=True, slots=True)
class TrackerConfig:
    """Main configuration for the tracker.

    Attributes:
        parent_rpc_url: HTTP(S) RPC endpoint of the parent chain
        child_rpc_url: HTTP(S) RPC endpoint of the child chain
        monitoring: Polling and search settings
        private_key: Key used for redeem/execute transactions (optional)
    """

    parent_rpc_url: str
    child_rpc_url: str
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    private_key: str | None = None

    def __post_init__(self) -> None:
        """Validate tracker configuration."""
        _validate_rpc_url(self.parent_rpc_url, "PARENT_RPC_URL")
        _validate_rpc_url(self.child_rpc_url, "CHILD_RPC_URL")

        if self.private_key:
            key = self.private_key
            if key.startswith('0x'):
                key = key[2:]

            if len(key) != 64:
                raise ValueError(
                    f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
                )

            try:
                int(key, 16)
            except ValueError:
                raise ValueError(
                    "Invalid private key format. Must be hexadecimal"
                ) from None

    @classmethod
    def from_env(cls) -> "TrackerConfig":
        """Load configuration from environment variables.

        Returns:
            TrackerConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        parent_rpc_url = os.environ.get("PARENT_RPC_URL", "")
        if not parent_rpc_url:
            raise ValueError(
                "PARENT_RPC_URL environment variable is required. "
                "This should be the RPC endpoint of the parent chain."
            )

        child_rpc_url = os.environ.get("CHILD_RPC_URL", "")
        if not child_rpc_url:
            raise ValueError(
                "CHILD_RPC_URL environment variable is required. "
                "This should be the RPC endpoint of the child chain."
            )

        try:
            monitoring = MonitoringConfig(
                receipt_poll_interval=float(
                    os.environ.get("RECEIPT_POLL_INTERVAL", str(DEFAULT_RECEIPT_POLL_INTERVAL))
                ),
                deposit_timeout=float(
                    os.environ.get("DEPOSIT_TIMEOUT", str(DEFAULT_DEPOSIT_TIMEOUT))
                ),
                outbox_retry_delay=float(
                    os.environ.get("OUTBOX_RETRY_DELAY", str(DEFAULT_OUTBOX_RETRY_DELAY))
                ),
                parent_log_chunk_size=int(
                    os.environ.get("PARENT_LOG_CHUNK_SIZE", str(PARENT_LOG_CHUNK_SIZE))
                ),
                retryable_search_seed_blocks=int(
                    os.environ.get("RETRYABLE_SEARCH_SEED_BLOCKS", str(RETRYABLE_SEARCH_SEED_BLOCKS))
                ),
            )
        except ValueError as e:
            raise ValueError(f"Invalid monitoring setting: {e}") from e

        return cls(
            parent_rpc_url=parent_rpc_url,
            child_rpc_url=child_rpc_url,
            monitoring=monitoring,
            private_key=os.environ.get("PRIVATE_KEY") or None,
        )

    def build_clients(self) -> tuple[ChainClient, ChainClient]:
        """Create the parent and child chain clients.

        Signing clients are returned when a private key is configured.
        """
        if self.private_key:
            return (
                SigningChainClient.from_rpc_url(self.parent_rpc_url, self.private_key, name="parent"),
                SigningChainClient.from_rpc_url(self.child_rpc_url, self.private_key, name="child"),
            )
        return (
            ChainClient.from_rpc_url(self.parent_rpc_url, name="parent"),
            ChainClient.from_rpc_url(self.child_rpc_url, name="child"),
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Message Tracker Configuration")
        logger.info("=" * 60)
        logger.info(f"  Parent RPC URL: {self.parent_rpc_url}")
        logger.info(f"  Child RPC URL: {self.child_rpc_url}")
        logger.info(f"  Receipt Poll Interval: {self.monitoring.receipt_poll_interval} seconds")
        logger.info(f"  Deposit Timeout: {self.monitoring.deposit_timeout} seconds")
        logger.info(f"  Outbox Retry Delay: {self.monitoring.outbox_retry_delay} seconds")
        logger.info(f"  Parent Log Chunk Size: {self.monitoring.parent_log_chunk_size}")
        logger.info(f"  Retryable Search Seed: {self.monitoring.retryable_search_seed_blocks} blocks")
        logger.info(f"  Signing Key: {'[CONFIGURED]' if self.private_key else '[NONE]'}")
        logger.info("=" * 60)
