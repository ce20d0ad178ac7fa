"""
Deterministic identifiers of cross-chain messages.

Retryable tickets and deposits have no shared primary key across chains; the
child-chain transaction hash is derived from the message fields instead, so
both sides can compute it independently.
"""

from collections.abc import Sequence

import rlp
from hexbytes import HexBytes
from web3 import Web3

from .constants import ARBITRUM_DEPOSIT_TX_TYPE, ARBITRUM_SUBMIT_RETRYABLE_TX_TYPE
from .models import OutboxMessageIdentity


def _minimal_bytes(value: int) -> bytes:
    """Big-endian bytes without leading zeros; zero encodes as b''."""
    if value < 0:
        raise ValueError(f"Cannot encode negative value {value}")
    return value.to_bytes((value.bit_length() + 7) // 8, "big")


def _pad32(value: int) -> bytes:
    return value.to_bytes(32, "big")


def _address_bytes(address: str) -> bytes:
    raw = HexBytes(address)
    if len(raw) != 20:
        raise ValueError(f"Expected a 20-byte address, got {address}")
    return bytes(raw)


def calculate_submit_retryable_id(
    chain_id: int,
    from_address: str,
    message_number: int,
    parent_base_fee: int,
    dest_address: str,
    l2_call_value: int,
    l1_value: int,
    max_submission_fee: int,
    excess_fee_refund_address: str,
    call_value_refund_address: str,
    gas_limit: int,
    max_fee_per_gas: int,
    data: bytes,
) -> str:
    """
    Child-chain transaction hash of a retryable ticket submission.

    Args:
        chain_id: Child chain id
        from_address: Sender as recorded by the bridge (aliased for contracts)
        message_number: Bridge message index
        parent_base_fee: Parent-chain base fee at delivery
        dest_address: Call target on the child chain
        l2_call_value: Value passed to the call target
        l1_value: Value deposited with the ticket
        max_submission_fee: Max submission cost paid for the ticket
        excess_fee_refund_address: Receiver of unused gas fees
        call_value_refund_address: Receiver of the call value on failure
        gas_limit: Gas limit for the auto-redeem
        max_fee_per_gas: Max fee per gas for the auto-redeem
        data: Calldata for the call target

    Returns:
        0x-prefixed ticket id
    """
    dest = b"" if int(dest_address, 16) == 0 else _address_bytes(dest_address)
    fields = [
        _minimal_bytes(chain_id),
        _pad32(message_number),
        _address_bytes(from_address),
        _minimal_bytes(parent_base_fee),
        _minimal_bytes(l1_value),
        _minimal_bytes(max_fee_per_gas),
        _minimal_bytes(gas_limit),
        dest,
        _minimal_bytes(l2_call_value),
        _address_bytes(call_value_refund_address),
        _minimal_bytes(max_submission_fee),
        _address_bytes(excess_fee_refund_address),
        bytes(data),
    ]
    encoded = bytes([ARBITRUM_SUBMIT_RETRYABLE_TX_TYPE]) + rlp.encode(fields)
    return Web3.to_hex(Web3.keccak(encoded))


def calculate_deposit_tx_id(
    chain_id: int,
    message_number: int,
    from_address: str,
    to_address: str,
    value: int,
) -> str:
    """Child-chain transaction hash of an ETH deposit."""
    fields = [
        _minimal_bytes(chain_id),
        _pad32(message_number),
        _address_bytes(from_address),
        _address_bytes(to_address),
        _minimal_bytes(value),
    ]
    encoded = bytes([ARBITRUM_DEPOSIT_TX_TYPE]) + rlp.encode(fields)
    return Web3.to_hex(Web3.keccak(encoded))


def calculate_classic_retryable_ids(chain_id: int, message_number: int) -> tuple[str, str, str]:
    """
    Ids used by retryables created before the nitro upgrade.

    Returns:
        (creation id, auto-redeem id, child transaction hash)
    """
    creation_id = Web3.keccak(_pad32(chain_id) + _pad32(message_number | (1 << 255)))
    auto_redeem_id = Web3.keccak(bytes(creation_id) + _pad32(1))
    child_tx_hash = Web3.keccak(bytes(creation_id) + _pad32(0))
    return Web3.to_hex(creation_id), Web3.to_hex(auto_redeem_id), Web3.to_hex(child_tx_hash)


def calculate_outbox_item_hash(identity: OutboxMessageIdentity) -> bytes:
    """Item hash the outbox verifies when a message is executed."""
    return bytes(
        Web3.solidity_keccak(
            ["address", "address", "uint256", "uint256", "uint256", "uint256", "bytes"],
            [
                Web3.to_checksum_address(identity.sender),
                Web3.to_checksum_address(identity.destination),
                identity.arb_block_num,
                identity.parent_block_num,
                identity.timestamp,
                identity.call_value,
                bytes(identity.data),
            ],
        )
    )


def calculate_outbox_root(proof: Sequence[bytes], path: int, item_hash: bytes) -> bytes:
    """
    Recompute the send root an outbox proof commits to.

    The leaf is keccak(item_hash); each path bit selects whether the running
    node is the left (0) or right (1) child at that level.
    """
    node = bytes(Web3.keccak(bytes(item_hash)))
    for sibling in proof:
        sibling = bytes(HexBytes(sibling))
        if path & 1 == 0:
            node = bytes(Web3.keccak(node + sibling))
        else:
            node = bytes(Web3.keccak(sibling + node))
        path >>= 1
    return node
