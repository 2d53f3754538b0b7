"""
Transaction Signer
Produces chain-bound (EIP-155) signed transactions
"""

from dataclasses import dataclass

from web3 import Web3
from loguru import logger

from utils.errors import SigningFailed
from .transaction_builder import UnsignedTransaction


@dataclass(frozen=True)
class SignedTransaction:
    """Signed transaction ready for broadcast"""
    unsigned: UnsignedTransaction
    raw_transaction: bytes
    hash: bytes
    v: int
    r: int
    s: int

    @property
    def hash_hex(self) -> str:
        """0x-prefixed transaction hash"""
        return Web3.to_hex(self.hash)


class TransactionSigner:
    """
    Signs unsigned transactions with an AccountIdentity

    The chain id is part of the signed payload, so a transaction signed for
    one chain is invalid on any other. Signatures are deterministic (RFC 6979).
    """

    def sign(self, unsigned: UnsignedTransaction, identity) -> SignedTransaction:
        """
        Sign a transaction

        Args:
            unsigned: Transaction from TransactionBuilder
            identity: AccountIdentity of the sender

        Returns:
            SignedTransaction

        Raises:
            SigningFailed: If the identity does not match or signing fails
        """
        if identity.address != unsigned.sender:
            raise SigningFailed(
                f"Transaction built for {unsigned.sender} cannot be signed by {identity.address}"
            )

        if unsigned.chain_id is None or unsigned.chain_id <= 0:
            raise SigningFailed(f"Replay protection needs a positive chain id, got {unsigned.chain_id}")

        signed = identity.sign_transaction(unsigned.to_dict())

        result = SignedTransaction(
            unsigned=unsigned,
            raw_transaction=bytes(signed.raw_transaction),
            hash=bytes(signed.hash),
            v=signed.v,
            r=signed.r,
            s=signed.s
        )

        logger.debug(f"Signed tx {result.hash_hex} (nonce {unsigned.nonce}, chainId {unsigned.chain_id})")
        return result
