"""Chain access helpers shared by the message resolvers."""

from .block_range import BlockRangeCache
from .chain_client import ChainClient, SigningChainClient
from .event_fetcher import EventFetcher, FetchedEvent
from .receipts import SubmittedTransaction

__all__ = [
    "BlockRangeCache",
    "ChainClient",
    "SigningChainClient",
    "EventFetcher",
    "FetchedEvent",
    "SubmittedTransaction",
]
