"""
Generation-independent facade over classic and nitro outbox messages.
"""

import logging
from typing import Any

from web3.types import BlockIdentifier

from ..constants import DEFAULT_OUTBOX_RETRY_DELAY
from ..dispatch import get_child_to_parent_events
from ..models import (
    ChildToParentEvent,
    ChildToParentMessageStatus,
    ClassicChildToParentEvent,
    NitroChildToParentEvent,
)
from ..utils.block_range import BlockRangeCache
from ..utils.chain_client import ChainClient, SigningChainClient
from ..utils.receipts import SubmittedTransaction
from .child_to_parent_classic import ChildToParentMessageReaderClassic, ChildToParentMessageWriterClassic
from .child_to_parent_nitro import ChildToParentMessageReaderNitro, ChildToParentMessageWriterNitro

logger = logging.getLogger(__name__)


class ChildToParentMessage:
    """Entry points shared by readers and writers."""

    @staticmethod
    def from_event(
        parent_client: ChainClient,
        event: ChildToParentEvent,
        block_range_cache: BlockRangeCache | None = None,
    ) -> "ChildToParentMessageReader":
        """Reader for read-only parent clients, writer for signing ones."""
        if isinstance(parent_client, SigningChainClient):
            return ChildToParentMessageWriter(parent_client, event, block_range_cache)
        return ChildToParentMessageReader(parent_client, event, block_range_cache)

    @staticmethod
    async def get_child_to_parent_events(
        child_client: ChainClient,
        from_block: BlockIdentifier,
        to_block: BlockIdentifier,
        position: int | None = None,
        destination: str | None = None,
        hash: int | None = None,
        index_in_batch: int | None = None,
    ) -> list[ChildToParentEvent]:
        return await get_child_to_parent_events(
            child_client, from_block, to_block, position, destination, hash, index_in_batch
        )


class ChildToParentMessageReader(ChildToParentMessage):
    """
    Read-only outbox message.

    The generation-specific resolver is picked once from the event type.
    """

    def __init__(
        self,
        parent_client: ChainClient,
        event: ChildToParentEvent,
        block_range_cache: BlockRangeCache | None = None,
    ) -> None:
        self.parent_client = parent_client
        self.event = event
        self._resolver = self._build_resolver(parent_client, event, block_range_cache)

    def _build_resolver(
        self,
        parent_client: ChainClient,
        event: ChildToParentEvent,
        block_range_cache: BlockRangeCache | None,
    ) -> ChildToParentMessageReaderClassic | ChildToParentMessageReaderNitro:
        match event:
            case ClassicChildToParentEvent():
                return ChildToParentMessageReaderClassic(parent_client, event.batch_number, event.index_in_batch)
            case NitroChildToParentEvent():
                return ChildToParentMessageReaderNitro(parent_client, event, block_range_cache)
        raise TypeError(f"Unsupported child-to-parent event: {type(event).__name__}")

    @property
    def generation(self):
        return self.event.generation

    async def status(self, child_client: ChainClient) -> ChildToParentMessageStatus:
        return await self._resolver.status(child_client)

    async def wait_until_ready_to_execute(
        self,
        child_client: ChainClient,
        retry_delay: float = DEFAULT_OUTBOX_RETRY_DELAY,
    ) -> ChildToParentMessageStatus:
        """Poll until CONFIRMED or EXECUTED. Can take a week; cancel to stop."""
        match self._resolver:
            case ChildToParentMessageReaderNitro():
                return await self._resolver.wait_until_ready_to_execute(child_client, retry_delay)
            case ChildToParentMessageReaderClassic():
                return await self._resolver.wait_until_outbox_entry_created(child_client, retry_delay)

    async def get_first_executable_block(self, child_client: ChainClient) -> int | None:
        """Estimated parent block of executability, None when no wait is needed."""
        return await self._resolver.get_first_executable_block(child_client)

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.event})"


class ChildToParentMessageWriter(ChildToParentMessageReader):
    """Outbox message that can also be executed."""

    def __init__(
        self,
        parent_client: SigningChainClient,
        event: ChildToParentEvent,
        block_range_cache: BlockRangeCache | None = None,
    ) -> None:
        super().__init__(parent_client, event, block_range_cache)

    def _build_resolver(
        self,
        parent_client: ChainClient,
        event: ChildToParentEvent,
        block_range_cache: BlockRangeCache | None,
    ) -> ChildToParentMessageWriterClassic | ChildToParentMessageWriterNitro:
        match event:
            case ClassicChildToParentEvent():
                return ChildToParentMessageWriterClassic(parent_client, event.batch_number, event.index_in_batch)
            case NitroChildToParentEvent():
                return ChildToParentMessageWriterNitro(parent_client, event, block_range_cache)
        raise TypeError(f"Unsupported child-to-parent event: {type(event).__name__}")

    async def execute(
        self,
        child_client: ChainClient,
        tx_params: dict[str, Any] | None = None,
    ) -> SubmittedTransaction:
        """Execute the message on the parent chain once CONFIRMED."""
        submitted = await self._resolver.execute(child_client, tx_params)
        logger.info(f"Executing outbox message {self.event} in {submitted.tx_hash}")
        return submitted
