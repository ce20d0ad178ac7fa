"""Unit tests for address aliasing."""

import pytest

from rollup_message_tracker.address import Address, apply_alias, undo_alias
from rollup_message_tracker.errors import BridgeTrackerError, InvalidAddressError

ZERO = "0x0000000000000000000000000000000000000000"
MAX = "0xffffffffffffffffffffffffffffffffffffffff"


class TestAddress:
    """Tests for the Address value type."""

    def test_checksums_input(self):
        """Test that the stored value is checksummed."""
        address = Address("0xea3123e9d9911199a6711321d1277285e6d4f3ec")

        assert address.value == "0xeA3123E9d9911199a6711321d1277285e6d4F3EC"
        assert str(address) == address.value

    @pytest.mark.parametrize("value", ["", "0x1234", "not an address", None, 12])
    def test_invalid_address(self, value):
        """Test that malformed input is rejected."""
        with pytest.raises(InvalidAddressError):
            Address(value)

    def test_invalid_address_is_value_error(self):
        """Test that InvalidAddressError can be caught either way."""
        with pytest.raises(ValueError):
            Address("0x1234")
        with pytest.raises(BridgeTrackerError):
            Address("0x1234")

    def test_equals_ignores_case(self):
        """Test comparison against strings and other addresses."""
        address = Address("0xeA3123E9d9911199a6711321d1277285e6d4F3EC")

        assert address.equals("0xea3123e9d9911199a6711321d1277285e6d4f3ec")
        assert address.equals(Address("0xEA3123E9D9911199A6711321D1277285E6D4F3EC"))
        assert not address.equals(ZERO)
        assert address == Address("0xea3123e9d9911199a6711321d1277285e6d4f3ec")
        assert len({address, Address(address.value)}) == 1


class TestAliasing:
    """Tests for apply_alias / undo_alias."""

    def test_undo_alias_wraps_below_zero(self):
        """Test that undoing the alias of zero wraps around the address space."""
        assert Address(ZERO).undo_alias().equals("0xeeeeffffffffffffffffffffffffffffffffeeef")

    def test_apply_alias_wraps_above_max(self):
        """Test that aliasing the highest address wraps around."""
        assert Address(MAX).apply_alias().equals("0x1111000000000000000000000000000000001110")

    @pytest.mark.parametrize("value,aliased,unaliased", [
        (
            "0xeeeeffffffffffffffffffffffffffffffffeee4",
            "0xfffffffffffffffffffffffffffffffffffffff5",
            "0xddddffffffffffffffffffffffffffffffffddd3",
        ),
        (
            "0xeeeeffffffffffffffffffffffffffffffffeeee",
            "0xffffffffffffffffffffffffffffffffffffffff",
            "0xddddffffffffffffffffffffffffffffffffdddd",
        ),
    ])
    def test_known_vectors(self, value, aliased, unaliased):
        """Test aliasing close to the top of the address space."""
        address = Address(value)

        assert address.apply_alias().equals(aliased)
        assert address.undo_alias().equals(unaliased)

    @pytest.mark.parametrize("value", [
        ZERO,
        MAX,
        "0xeA3123E9d9911199a6711321d1277285e6d4F3EC",
        "0x1111000000000000000000000000000000001111",
    ])
    def test_alias_roundtrip(self, value):
        """Test that undo_alias reverses apply_alias and vice versa."""
        assert Address(value).apply_alias().undo_alias().equals(value)
        assert Address(value).undo_alias().apply_alias().equals(value)

    def test_string_helpers(self):
        """Test the module-level helpers return checksummed strings."""
        aliased = apply_alias(ZERO)

        assert aliased == "0x1111000000000000000000000000000000001111"
        assert undo_alias(aliased) == ZERO
