"""
Account Identity
Derives the public key, address and signing capability from a private key
"""

import os
from typing import Dict, Union

from eth_account import Account
from eth_keys import keys
from web3 import Web3
from loguru import logger

from utils.errors import InvalidKeyMaterial, SigningFailed


# secp256k1 group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def _key_bytes(private_key: Union[str, bytes]) -> bytes:
    """Normalize hex or raw key input to 32 bytes"""
    if isinstance(private_key, str):
        text = private_key.strip()
        if text.startswith(('0x', '0X')):
            text = text[2:]
        try:
            raw = bytes.fromhex(text)
        except ValueError as e:
            raise InvalidKeyMaterial("Private key is not valid hex") from e
    elif isinstance(private_key, (bytes, bytearray)):
        raw = bytes(private_key)
    else:
        raise InvalidKeyMaterial(f"Unsupported key type: {type(private_key).__name__}")

    if len(raw) != 32:
        raise InvalidKeyMaterial(f"Private key must be 32 bytes, got {len(raw)}")

    scalar = int.from_bytes(raw, 'big')
    if not 0 < scalar < SECP256K1_N:
        raise InvalidKeyMaterial("Private key is outside the secp256k1 scalar range")

    return raw


class AccountIdentity:
    """
    Signing identity for one account

    The key never leaves this object: it is not part of repr/str and is
    never logged. The address is the low-order 20 bytes of the keccak-256
    hash of the uncompressed public key.
    """

    __slots__ = ('_key', '_account', '_public_key', '_address')

    def __init__(self, private_key: Union[str, bytes]):
        """
        Initialize Account Identity

        Args:
            private_key: 32 raw bytes or hex string (0x prefix optional)

        Raises:
            InvalidKeyMaterial: If the key is not a valid scalar
        """
        key = _key_bytes(private_key)

        try:
            public_key = keys.PrivateKey(key).public_key
            account = Account.from_key(key)
        except Exception as e:
            raise InvalidKeyMaterial(f"Cannot derive account: {type(e).__name__}") from e

        address = Web3.to_checksum_address(Web3.keccak(public_key.to_bytes())[-20:])

        object.__setattr__(self, '_key', key)
        object.__setattr__(self, '_account', account)
        object.__setattr__(self, '_public_key', public_key.to_bytes())
        object.__setattr__(self, '_address', address)

        logger.debug(f"Account identity loaded: {address}")

    @classmethod
    def from_env(cls, var_name: str = 'PRIVATE_KEY') -> "AccountIdentity":
        """
        Load the key from an environment variable

        Raises:
            InvalidKeyMaterial: If the variable is missing or invalid
        """
        value = os.getenv(var_name)
        if not value:
            raise InvalidKeyMaterial(f"{var_name} is not set")
        return cls(value)

    def __setattr__(self, name, value):
        raise AttributeError("AccountIdentity is immutable")

    def __repr__(self) -> str:
        return f"AccountIdentity(address={self._address})"

    __str__ = __repr__

    @property
    def address(self) -> str:
        """Checksummed account address"""
        return self._address

    @property
    def public_key(self) -> bytes:
        """64-byte uncompressed public key (without the 0x04 prefix)"""
        return self._public_key

    def sign_transaction(self, transaction: Dict):
        """
        Sign a transaction dict

        Args:
            transaction: Transaction fields including chainId

        Returns:
            eth_account SignedTransaction

        Raises:
            SigningFailed: If the account rejects the transaction
        """
        try:
            return self._account.sign_transaction(transaction)
        except Exception as e:
            logger.error(f"Error signing transaction for {self._address}: {e}")
            raise SigningFailed(f"Failed to sign transaction: {e}") from e
