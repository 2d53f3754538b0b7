"""
Chain Node
Thin adapter over a Web3 connection exposing the RPC surface the engine uses
"""

from typing import Any, Dict, List, Optional, Sequence, Union

from web3 import Web3
from web3.exceptions import TransactionNotFound, BlockNotFound
from loguru import logger


BlockIdentifier = Union[int, str, bytes]


class ChainNode:
    """
    Remote node connection

    Every pipeline component receives one of these explicitly. Anything
    exposing the same methods (e.g. a fake node in tests) can stand in.
    Errors from the underlying provider propagate unchanged; the calling
    component decides how to classify them.
    """

    def __init__(self, w3: Web3):
        """
        Initialize Chain Node

        Args:
            w3: Web3 instance
        """
        self.w3 = w3

    @classmethod
    def from_url(cls, rpc_url: str, timeout: int = 30) -> "ChainNode":
        """
        Connect to an HTTP JSON-RPC endpoint

        Args:
            rpc_url: Node URL
            timeout: Request timeout in seconds
        """
        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={'timeout': timeout}))
        logger.debug(f"Created HTTP provider for {rpc_url}")
        return cls(w3)

    def is_connected(self) -> bool:
        """Check if the node answers"""
        try:
            return bool(self.w3.is_connected())
        except Exception as e:
            logger.debug(f"Connection check failed: {e}")
            return False

    def get_balance(self, address: str) -> int:
        """Get account balance in wei"""
        return int(self.w3.eth.get_balance(Web3.to_checksum_address(address)))

    def get_transaction_count(self, address: str, block: str = 'pending') -> int:
        """Get transaction count (pending view by default)"""
        return int(self.w3.eth.get_transaction_count(Web3.to_checksum_address(address), block))

    def get_gas_price(self) -> int:
        """Get the node's suggested gas price in wei"""
        return int(self.w3.eth.gas_price)

    def get_chain_id(self) -> int:
        """Get chain identifier"""
        return int(self.w3.eth.chain_id)

    def send_raw_transaction(self, raw_transaction: bytes) -> bytes:
        """
        Broadcast a signed transaction

        Returns:
            Transaction hash reported by the node
        """
        return bytes(self.w3.eth.send_raw_transaction(raw_transaction))

    def get_transaction(self, tx_hash: Union[str, bytes]) -> Optional[Dict[str, Any]]:
        """
        Look up a transaction by hash

        Returns:
            Transaction dict, or None if the node does not know it
        """
        try:
            return dict(self.w3.eth.get_transaction(tx_hash))
        except TransactionNotFound:
            return None

    def get_transaction_receipt(self, tx_hash: Union[str, bytes]) -> Optional[Dict[str, Any]]:
        """
        Get a transaction receipt

        Returns:
            Receipt dict, or None while the transaction is not mined
        """
        try:
            receipt = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None

        if receipt is None:
            return None

        return dict(receipt)

    def get_logs(
        self,
        address: Optional[str] = None,
        topics: Optional[Sequence[Any]] = None,
        from_block: BlockIdentifier = 'latest',
        to_block: BlockIdentifier = 'latest'
    ) -> List[Dict[str, Any]]:
        """
        Query logs by address / topics / block range

        Args:
            address: Emitting contract (None = any)
            topics: Topic filter list
            from_block: First block (inclusive)
            to_block: Last block (inclusive)
        """
        filter_params: Dict[str, Any] = {
            'fromBlock': from_block,
            'toBlock': to_block
        }

        if address:
            filter_params['address'] = Web3.to_checksum_address(address)

        if topics:
            filter_params['topics'] = list(topics)

        return [dict(entry) for entry in self.w3.eth.get_logs(filter_params)]

    def get_block_number(self) -> int:
        """Get latest block number"""
        return int(self.w3.eth.block_number)

    def get_block(self, identifier: BlockIdentifier = 'latest') -> Optional[Dict[str, Any]]:
        """
        Get block by number, hash or tag

        Returns:
            Block dict, or None if the block does not exist
        """
        try:
            return dict(self.w3.eth.get_block(identifier))
        except BlockNotFound:
            return None

    def call(self, transaction: Dict[str, Any], block: BlockIdentifier = 'latest') -> bytes:
        """Execute a read-only call"""
        return bytes(self.w3.eth.call(transaction, block))
