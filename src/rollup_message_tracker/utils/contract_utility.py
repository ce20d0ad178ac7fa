import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from eth_utils import event_abi_to_log_topic
from web3 import Web3
from web3.contract import Contract

CONTRACTS_DIR = Path(__file__).resolve().parent.parent / "contracts"


@lru_cache(maxsize=None)
def _load_abi(contract_name: str) -> tuple[dict[str, Any], ...]:
    contract_path = CONTRACTS_DIR / f"{contract_name}.json"
    with contract_path.open() as file:
        contract_data: dict[str, Any] = json.load(file)
    return tuple(contract_data["abi"])


def get_contract_abi(contract_name: str) -> list[dict[str, Any]]:
    """Fetches ABI of the given contract from the contracts folder.

    Args:
        contract_name: Name of the contract (without .json extension)

    Returns:
        List of ABI dictionaries for the contract

    Raises:
        FileNotFoundError: If the contract file doesn't exist
        json.JSONDecodeError: If the contract file is invalid JSON
    """
    return list(_load_abi(contract_name))


def get_event_abi(contract_name: str, event_name: str) -> dict[str, Any]:
    for entry in _load_abi(contract_name):
        if entry.get("type") == "event" and entry.get("name") == event_name:
            return entry
    raise ValueError(f"Event {event_name} not found in {contract_name} ABI")


def get_error_selector(contract_name: str, error_name: str) -> bytes:
    """4-byte selector of a custom error declared in the contract ABI."""
    for entry in _load_abi(contract_name):
        if entry.get("type") == "error" and entry.get("name") == error_name:
            arg_types = ",".join(arg["type"] for arg in entry.get("inputs", []))
            return bytes(Web3.keccak(text=f"{error_name}({arg_types})")[:4])
    raise ValueError(f"Error {error_name} not found in {contract_name} ABI")


@lru_cache(maxsize=None)
def get_event_topic(contract_name: str, event_name: str) -> bytes:
    return event_abi_to_log_topic(get_event_abi(contract_name, event_name))


@lru_cache(maxsize=None)
def get_codec_contract(contract_name: str) -> Contract:
    """Offline contract object used only for ABI encoding and decoding."""
    return Web3().eth.contract(abi=get_contract_abi(contract_name))
