"""
Address aliasing between parent and child chains.

Contracts on the parent chain appear on the child chain under an aliased
address (value + offset mod 2**160) so they cannot impersonate a child-chain
account with the same bytes.
"""

from web3 import Web3

from .constants import ADDRESS_ALIAS_OFFSET
from .errors import InvalidAddressError

_ADDRESS_SPACE = 1 << 160


class Address:
    """A checksummed address with alias helpers."""

    def __init__(self, value: str):
        if not isinstance(value, str) or not Web3.is_address(value):
            raise InvalidAddressError(value)
        self.value = Web3.to_checksum_address(value)

    def apply_alias(self) -> "Address":
        """Return the address as seen on the child chain."""
        return Address(_shift(self.value, ADDRESS_ALIAS_OFFSET))

    def undo_alias(self) -> "Address":
        """Return the parent-chain address behind an aliased one."""
        return Address(_shift(self.value, -ADDRESS_ALIAS_OFFSET))

    def equals(self, other: "Address | str") -> bool:
        other_value = other.value if isinstance(other, Address) else other
        return self.value.lower() == str(other_value).lower()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Address):
            return self.value == other.value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.value)

    def __repr__(self) -> str:
        return f"Address({self.value})"

    def __str__(self) -> str:
        return self.value


def apply_alias(address: str) -> str:
    return Address(address).apply_alias().value


def undo_alias(address: str) -> str:
    return Address(address).undo_alias().value


def _shift(address: str, offset: int) -> str:
    # Python ints never overflow; reduce into the unsigned 160-bit range
    shifted = (int(address, 16) + offset) % _ADDRESS_SPACE
    return Web3.to_checksum_address(f"0x{shifted:040x}")
