"""
Error types raised by the message resolvers.

Lookups that can legitimately find nothing (reverse tracing) return None
instead of raising; everything here signals a state the caller must handle.
"""

from typing import Any


class BridgeTrackerError(Exception):
    """Base class for all errors raised by this package."""


class InvalidAddressError(BridgeTrackerError, ValueError):
    """Raised when a value is not a syntactically valid address."""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Invalid address: {value!r}")


class InvalidStateTransitionError(BridgeTrackerError):
    """Raised when an action is attempted from a status that forbids it."""

    def __init__(self, action: str, required: Any, actual: Any, message_id: str | None = None):
        self.action = action
        self.required = required
        self.actual = actual
        self.message_id = message_id
        target = f" for message {message_id}" if message_id else ""
        super().__init__(
            f"Cannot {action}{target}: status is {_status_name(actual)} "
            f"but must be {_status_name(required)}"
        )


class MissingEventError(BridgeTrackerError):
    """Raised when an event expected to correlate one-to-one is absent."""

    def __init__(self, event_name: str, context: str):
        self.event_name = event_name
        self.context = context
        super().__init__(f"Missing {event_name} event: {context}")


class WaitTimeoutError(BridgeTrackerError, TimeoutError):
    """Raised when a caller-bounded wait runs out of time."""

    def __init__(self, awaited: str, timeout: float):
        self.awaited = awaited
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for {awaited}")


class AmbiguousResultError(BridgeTrackerError):
    """Raised when several events match where exactly one was expected."""

    def __init__(self, lookup: str, count: int):
        self.lookup = lookup
        self.count = count
        super().__init__(f"Expected exactly one result for {lookup}, found {count}")


class UnsupportedNetworkError(BridgeTrackerError):
    """Raised when no network metadata is registered for a chain id."""

    def __init__(self, chain_id: int):
        self.chain_id = chain_id
        super().__init__(f"Unrecognized network {chain_id}")


def _status_name(status: Any) -> str:
    return getattr(status, "name", str(status))
