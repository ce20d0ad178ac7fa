"""
Chain client capability interfaces.

A ChainClient wraps one AsyncWeb3 handle and only reads chain state. A
SigningChainClient adds a local account and can submit transactions. The
message factories hand out writers only for signing clients.
"""

import logging
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import AsyncWeb3, Web3
from web3.exceptions import BlockNotFound, TransactionNotFound, Web3Exception
from web3.middleware import SignAndSendRawMiddlewareBuilder
from web3.types import BlockIdentifier, FilterParams, LogReceipt, RPCEndpoint, TxReceipt

from ..constants import ARB_SYS_ADDRESS
from ..models import ArbBlock
from .contract_utility import get_contract_abi

logger = logging.getLogger(__name__)


def to_int(value: Any) -> int:
    """Normalise RPC quantities that may arrive as hex strings."""
    if value is None:
        return 0
    match value:
        case int():
            return value
        case str():
            return int(value, 16) if value.startswith("0x") else int(value)
        case bytes():
            return int.from_bytes(value, "big")
    return int(value)


def to_hex_hash(value: bytes | str) -> str:
    """Return a 0x-prefixed lowercase hex string for a hash."""
    match value:
        case bytes():
            return Web3.to_hex(value)
        case str():
            return value.lower() if value.startswith("0x") else "0x" + value.lower()
    raise TypeError(f"Unsupported hash type: {type(value)}")


class ChainClient:
    """
    Read-only access to one chain.

    Every resolver receives explicit clients for the chains it touches; nothing
    in this package opens connections on its own.
    """

    def __init__(self, w3: AsyncWeb3, name: str = "chain") -> None:
        self.w3 = w3
        self.name = name
        self._chain_id: int | None = None
        self._is_arbitrum: bool | None = None

    @classmethod
    def from_rpc_url(cls, rpc_url: str, name: str = "chain") -> "ChainClient":
        if not rpc_url:
            raise ValueError("RPC URL is required")
        return cls(AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url)), name=name)

    async def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(await self.w3.eth.chain_id)
        return self._chain_id

    async def block_number(self) -> int:
        return int(await self.w3.eth.block_number)

    async def get_block(self, block_identifier: BlockIdentifier) -> ArbBlock | None:
        """Fetch a block, keeping sendCount/sendRoot/l1BlockNumber when present."""
        try:
            block = await self.w3.eth.get_block(block_identifier)
        except BlockNotFound:
            return None
        if block is None:
            return None
        l1_block_number = block.get("l1BlockNumber")
        return ArbBlock(
            number=to_int(block["number"]),
            hash=bytes(HexBytes(block["hash"])),
            timestamp=to_int(block["timestamp"]),
            send_count=to_int(block.get("sendCount")),
            send_root=bytes(HexBytes(block.get("sendRoot") or bytes(32))),
            l1_block_number=to_int(l1_block_number) if l1_block_number is not None else None,
        )

    async def get_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        try:
            return dict(await self.w3.eth.get_transaction(tx_hash))
        except TransactionNotFound:
            return None

    async def get_raw_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        """eth_getTransactionByHash without web3 result formatting.

        Arbitrum system transactions (deposits, retryable submissions) carry
        fields such as ``requestId`` that the standard formatters drop.
        """
        response = await self.w3.provider.make_request(
            RPCEndpoint("eth_getTransactionByHash"), [tx_hash]
        )
        if "error" in response:
            raise ValueError(f"eth_getTransactionByHash failed: {response['error']}")
        return response.get("result")

    async def get_transaction_receipt(self, tx_hash: str) -> TxReceipt | None:
        try:
            return await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None

    async def get_logs(self, filter_params: FilterParams) -> list[LogReceipt]:
        return list(await self.w3.eth.get_logs(filter_params))

    def contract(self, contract_name: str, address: str):
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=get_contract_abi(contract_name),
        )

    async def call(
        self,
        contract_name: str,
        address: str,
        function_name: str,
        *args: Any,
        block_identifier: BlockIdentifier = "latest",
    ) -> Any:
        """Call a view function on a contract whose ABI ships with this package."""
        contract = self.contract(contract_name, address)
        function = getattr(contract.functions, function_name)(*args)
        return await function.call(block_identifier=block_identifier)

    async def is_arbitrum(self) -> bool:
        """Whether this chain exposes the ArbSys precompile."""
        if self._is_arbitrum is None:
            try:
                await self.call("ArbSys", ARB_SYS_ADDRESS, "arbOSVersion")
                self._is_arbitrum = True
            except (Web3Exception, ValueError) as e:
                logger.debug(f"{self.name}: ArbSys check failed, not an Arbitrum chain ({e})")
                self._is_arbitrum = False
        return self._is_arbitrum

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name})"


class SigningChainClient(ChainClient):
    """Chain client that can also sign and send transactions."""

    def __init__(self, w3: AsyncWeb3, account: LocalAccount, name: str = "chain") -> None:
        super().__init__(w3, name=name)
        self.account = account

    @classmethod
    def from_rpc_url(cls, rpc_url: str, secret: str = "", name: str = "chain") -> "SigningChainClient":
        """
        Create a signing client.

        Args:
            rpc_url: RPC URL for the network
            secret: Private key used to sign transactions

        Raises:
            ValueError: If the RPC URL or the private key is missing
        """
        if not rpc_url:
            raise ValueError("RPC URL is required")
        if not secret:
            raise ValueError("Private key is required for signing transactions")

        account: LocalAccount = Account.from_key(secret)
        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(account))
        w3.eth.default_account = account.address
        return cls(w3, account, name=name)

    @property
    def address(self) -> str:
        return self.account.address

    async def transact(
        self,
        contract_name: str,
        address: str,
        function_name: str,
        *args: Any,
        tx_params: dict[str, Any] | None = None,
    ) -> str:
        """Send a state-changing contract call and return its transaction hash."""
        contract = self.contract(contract_name, address)
        function = getattr(contract.functions, function_name)(*args)
        params = {"from": self.account.address, **(tx_params or {})}
        tx_hash = await function.transact(params)
        logger.info(f"{self.name}: sent {contract_name}.{function_name} in {to_hex_hash(bytes(tx_hash))}")
        return to_hex_hash(bytes(tx_hash))
