#!/usr/bin/env python3
"""Tests for the configuration module."""

import logging
import os
from dataclasses import FrozenInstanceError
from unittest.mock import patch

import pytest

from rollup_message_tracker.config import MonitoringConfig, TrackerConfig
from rollup_message_tracker.utils.chain_client import ChainClient, SigningChainClient

PARENT_RPC = "https://ethereum.publicnode.com"
CHILD_RPC = "https://arb1.arbitrum.io/rpc"
VALID_KEY = "0x" + "1" * 64


class TestMonitoringConfig:
    """Tests for MonitoringConfig."""

    def test_defaults(self):
        """Test the default polling and search settings."""
        config = MonitoringConfig()

        assert config.receipt_poll_interval == 1.0
        assert config.deposit_timeout == 1800
        assert config.outbox_retry_delay == 0.5
        assert config.parent_log_chunk_size == 1000
        assert config.retryable_search_seed_blocks == 1000

    def test_non_positive_values_rejected(self):
        """Test that zero or negative settings are rejected."""
        with pytest.raises(ValueError, match="Receipt poll interval must be positive"):
            MonitoringConfig(receipt_poll_interval=0)
        with pytest.raises(ValueError, match="Deposit timeout must be positive"):
            MonitoringConfig(deposit_timeout=-1)
        with pytest.raises(ValueError, match="Outbox retry delay must be positive"):
            MonitoringConfig(outbox_retry_delay=0)
        with pytest.raises(ValueError, match="Retryable search seed window must be positive"):
            MonitoringConfig(retryable_search_seed_blocks=0)

    def test_chunk_size_bounds(self):
        """Test that the log chunk size stays within what providers accept."""
        with pytest.raises(ValueError, match="Parent log chunk size must be positive"):
            MonitoringConfig(parent_log_chunk_size=0)
        with pytest.raises(ValueError, match="too high"):
            MonitoringConfig(parent_log_chunk_size=10_001)

        assert MonitoringConfig(parent_log_chunk_size=10_000).parent_log_chunk_size == 10_000


class TestTrackerConfig:
    """Tests for TrackerConfig."""

    def test_valid_config(self):
        """Test creating a valid configuration."""
        config = TrackerConfig(parent_rpc_url=PARENT_RPC, child_rpc_url=CHILD_RPC)

        assert config.parent_rpc_url == PARENT_RPC
        assert config.child_rpc_url == CHILD_RPC
        assert config.private_key is None
        assert config.monitoring == MonitoringConfig()

    def test_invalid_rpc_url_scheme(self):
        """Test that non-HTTP RPC URLs are rejected."""
        with pytest.raises(ValueError, match="Invalid RPC URL scheme"):
            TrackerConfig(parent_rpc_url="ftp://invalid.scheme", child_rpc_url=CHILD_RPC)

    def test_missing_rpc_url(self):
        """Test that an empty RPC URL names the missing variable."""
        with pytest.raises(ValueError, match="CHILD_RPC_URL"):
            TrackerConfig(parent_rpc_url=PARENT_RPC, child_rpc_url="")

    def test_valid_private_key(self):
        """Test keys with and without the 0x prefix."""
        assert TrackerConfig(PARENT_RPC, CHILD_RPC, private_key=VALID_KEY).private_key == VALID_KEY
        assert TrackerConfig(PARENT_RPC, CHILD_RPC, private_key="a" * 64).private_key == "a" * 64

    def test_invalid_private_key_length(self):
        """Test that keys of the wrong length are rejected."""
        with pytest.raises(ValueError, match="Invalid private key length"):
            TrackerConfig(PARENT_RPC, CHILD_RPC, private_key="0x1234")

    def test_invalid_private_key_format(self):
        """Test that non-hex keys are rejected."""
        with pytest.raises(ValueError, match="Must be hexadecimal"):
            TrackerConfig(PARENT_RPC, CHILD_RPC, private_key="z" * 64)

    @patch.dict(os.environ, {
        "PARENT_RPC_URL": PARENT_RPC,
        "CHILD_RPC_URL": CHILD_RPC,
        "RECEIPT_POLL_INTERVAL": "2.5",
        "PARENT_LOG_CHUNK_SIZE": "500",
        "RETRYABLE_SEARCH_SEED_BLOCKS": "2000",
    }, clear=True)
    def test_from_env(self):
        """Test loading configuration from environment variables."""
        config = TrackerConfig.from_env()

        assert config.parent_rpc_url == PARENT_RPC
        assert config.child_rpc_url == CHILD_RPC
        assert config.monitoring.receipt_poll_interval == 2.5
        assert config.monitoring.parent_log_chunk_size == 500
        assert config.monitoring.retryable_search_seed_blocks == 2000
        assert config.monitoring.deposit_timeout == 1800
        assert config.private_key is None

    @patch.dict(os.environ, {}, clear=True)
    def test_from_env_missing_required(self):
        """Test that missing RPC URLs raise errors."""
        with pytest.raises(ValueError, match="PARENT_RPC_URL environment variable is required"):
            TrackerConfig.from_env()

    @patch.dict(os.environ, {
        "PARENT_RPC_URL": PARENT_RPC,
        "CHILD_RPC_URL": CHILD_RPC,
        "PARENT_LOG_CHUNK_SIZE": "lots",
    }, clear=True)
    def test_from_env_invalid_monitoring_value(self):
        """Test that unparsable monitoring settings are reported."""
        with pytest.raises(ValueError, match="Invalid monitoring setting"):
            TrackerConfig.from_env()

    def test_build_clients_read_only(self):
        """Test that read-only clients are built without a key."""
        parent, child = TrackerConfig(PARENT_RPC, CHILD_RPC).build_clients()

        assert type(parent) is ChainClient
        assert type(child) is ChainClient
        assert parent.name == "parent"
        assert child.name == "child"

    def test_build_clients_signing(self):
        """Test that a configured key yields signing clients."""
        parent, child = TrackerConfig(PARENT_RPC, CHILD_RPC, private_key=VALID_KEY).build_clients()

        assert isinstance(parent, SigningChainClient)
        assert isinstance(child, SigningChainClient)
        assert parent.address == child.address

    def test_log_config(self, caplog):
        """Test that logging hides the private key."""
        config = TrackerConfig(PARENT_RPC, CHILD_RPC, private_key=VALID_KEY)

        with caplog.at_level(logging.INFO):
            config.log_config()

        assert PARENT_RPC in caplog.text
        assert "[CONFIGURED]" in caplog.text
        assert VALID_KEY not in caplog.text

    def test_immutability(self):
        """Test that configuration cannot be modified after creation."""
        config = TrackerConfig(PARENT_RPC, CHILD_RPC)

        with pytest.raises(FrozenInstanceError):
            config.parent_rpc_url = "https://other.rpc"
