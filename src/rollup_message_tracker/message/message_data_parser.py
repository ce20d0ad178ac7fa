from eth_abi import decode
from hexbytes import HexBytes
from web3 import Web3

from ..models import RetryableMessageParams

_HEADER_WORDS = 9
_HEADER_SIZE = _HEADER_WORDS * 32


def _word_to_address(value: int) -> str:
    return Web3.to_checksum_address(f"0x{value:040x}")


class SubmitRetryableMessageDataParser:
    """Parses the inbox payload of a submit-retryable message."""

    @staticmethod
    def parse(event_data: bytes | str) -> RetryableMessageParams:
        """
        Decode the packed payload emitted in InboxMessageDelivered.

        The payload is nine 32-byte words followed by the raw call data,
        whose length is the ninth word.

        Raises:
            ValueError: If the payload is shorter than its header says
        """
        raw = bytes(HexBytes(event_data))
        if len(raw) < _HEADER_SIZE:
            raise ValueError(f"Retryable payload too short: {len(raw)} bytes")

        (
            dest,
            l2_call_value,
            l1_value,
            max_submission_fee,
            excess_fee_refund_address,
            call_value_refund_address,
            gas_limit,
            max_fee_per_gas,
            data_length,
        ) = decode(["uint256"] * _HEADER_WORDS, raw[:_HEADER_SIZE])

        if len(raw) < _HEADER_SIZE + data_length:
            raise ValueError(
                f"Retryable payload declares {data_length} data bytes "
                f"but only {len(raw) - _HEADER_SIZE} follow the header"
            )

        return RetryableMessageParams(
            dest_address=_word_to_address(dest),
            l2_call_value=l2_call_value,
            l1_value=l1_value,
            max_submission_fee=max_submission_fee,
            excess_fee_refund_address=_word_to_address(excess_fee_refund_address),
            call_value_refund_address=_word_to_address(call_value_refund_address),
            gas_limit=gas_limit,
            max_fee_per_gas=max_fee_per_gas,
            data=raw[len(raw) - data_length:] if data_length else b"",
        )
