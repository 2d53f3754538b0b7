"""
Transaction Submitter
Broadcasts signed transactions and classifies node refusals
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from web3 import Web3
from loguru import logger

from utils.errors import (
    InsufficientFunds,
    NodeRequestFailed,
    NonceGap,
    NonceTooLow,
    Rejected,
    SubmissionError,
    Underpriced,
)
from .signer import SignedTransaction


# Checked in order; first match wins
_REJECTION_PATTERNS = (
    (InsufficientFunds, ('insufficient funds',)),
    (NonceTooLow, ('nonce too low', 'nonce has already been used', 'oldnonce')),
    (NonceGap, ('nonce too high', 'nonce gap', 'gapped-nonce', 'future nonce')),
    (Underpriced, (
        'underpriced',
        'fee too low',
        'gas price too low',
        'max fee per gas less than block base fee',
        'feecap',
    )),
)


@dataclass(frozen=True)
class TransactionHandle:
    """Identifier of a broadcast transaction"""
    hash: bytes
    sender: str
    nonce: int

    @property
    def hash_hex(self) -> str:
        """0x-prefixed transaction hash"""
        return Web3.to_hex(self.hash)


def node_error_message(error: Exception) -> str:
    """
    Extract the node's message from a provider exception

    Handles both the JSON-RPC error dict carried in exception args and
    web3's rpc_response attribute.
    """
    if error.args and isinstance(error.args[0], dict):
        return str(error.args[0].get('message', error.args[0]))

    rpc_response = getattr(error, 'rpc_response', None)
    if isinstance(rpc_response, dict) and isinstance(rpc_response.get('error'), dict):
        return str(rpc_response['error'].get('message', ''))

    return str(error)


def classify_rejection(error: Exception) -> SubmissionError:
    """
    Map a node refusal to the matching SubmissionError

    Args:
        error: Exception raised by the provider on eth_sendRawTransaction

    Returns:
        SubmissionError subclass instance (not raised)
    """
    message = node_error_message(error)
    lowered = message.lower()

    for error_cls, patterns in _REJECTION_PATTERNS:
        if any(pattern in lowered for pattern in patterns):
            return error_cls(f"{error_cls.__name__}: {message}", node_message=message)

    return Rejected(f"Node rejected transaction: {message}", node_message=message)


class TransactionSubmitter:
    """
    Broadcasts signed transactions

    One RPC write per submit; nothing is retried here.
    """

    def __init__(self, node):
        """
        Initialize Transaction Submitter

        Args:
            node: Chain node
        """
        self.node = node

    def submit(self, signed: SignedTransaction) -> TransactionHandle:
        """
        Broadcast a signed transaction

        Args:
            signed: Output of TransactionSigner

        Returns:
            TransactionHandle

        Raises:
            InsufficientFunds, Underpriced, NonceTooLow, NonceGap, Rejected
        """
        unsigned = signed.unsigned

        try:
            node_hash = self.node.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            error = classify_rejection(e)
            logger.error(
                f"Submission of {signed.hash_hex} (nonce {unsigned.nonce}) refused: {error}"
            )
            raise error from e

        if node_hash and bytes(node_hash) != signed.hash:
            logger.warning(
                f"Node reported hash {Web3.to_hex(node_hash)}, expected {signed.hash_hex}"
            )

        logger.info(f"Transaction sent: {signed.hash_hex} (nonce {unsigned.nonce})")

        return TransactionHandle(hash=signed.hash, sender=unsigned.sender, nonce=unsigned.nonce)

    def lookup(self, handle: Union[TransactionHandle, str, bytes]) -> Optional[Dict[str, Any]]:
        """
        Look up a submitted transaction by hash

        Returns:
            Transaction dict, or None if the node does not know it

        Raises:
            NodeRequestFailed: On RPC error
        """
        tx_hash = handle.hash if isinstance(handle, TransactionHandle) else handle

        try:
            return self.node.get_transaction(tx_hash)
        except Exception as e:
            logger.error(f"Error looking up transaction: {e}")
            raise NodeRequestFailed(f"Transaction lookup failed: {e}") from e
