"""
Nonce Manager
Reads the next transaction nonce from the node's pending state
"""

from web3 import Web3
from loguru import logger

from utils.errors import NonceQueryFailed


class NonceManager:
    """
    Pending-state nonce source

    Nothing is cached: the nonce is read immediately before each transaction
    is built. Two writers racing on the same account can still collide, so
    callers must serialize submissions per account (e.g. a per-account lock).
    """

    def __init__(self, node):
        """
        Initialize Nonce Manager

        Args:
            node: Chain node
        """
        self.node = node

    def next_nonce(self, address: str) -> int:
        """
        Get next nonce for an account

        Args:
            address: Account address

        Returns:
            Pending transaction count, unmodified

        Raises:
            NonceQueryFailed: On RPC error
        """
        try:
            nonce = self.node.get_transaction_count(Web3.to_checksum_address(address), 'pending')
        except Exception as e:
            logger.error(f"Error reading nonce for {address}: {e}")
            raise NonceQueryFailed(f"Cannot read pending nonce for {address}: {e}") from e

        logger.debug(f"Next nonce for {address}: {nonce}")
        return nonce
