"""
Transaction Builder
Assembles unsigned legacy transactions from intents and policy outputs
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3
from loguru import logger

from utils.errors import MalformedIntent
from utils.gas_calculator import GasQuote
from .intents import Call, Deploy, IntentKind, PendingIntent, Transfer


_SIGNATURE_RE = re.compile(r'^([A-Za-z_$][A-Za-z0-9_$]*)\((.*)\)$')


def split_types(type_list: str) -> List[str]:
    """Split 'uint256,(address,bool)[]' into top-level ABI types"""
    types = []
    depth = 0
    current = ''

    for char in type_list:
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
        if char == ',' and depth == 0:
            types.append(current.strip())
            current = ''
        else:
            current += char

    if current.strip():
        types.append(current.strip())

    return types


def parse_signature(signature: str) -> Tuple[str, List[str]]:
    """
    Parse a canonical function signature

    Args:
        signature: e.g. 'transfer(address,uint256)'

    Returns:
        (name, [types])

    Raises:
        MalformedIntent: If the signature is not well formed
    """
    match = _SIGNATURE_RE.match(signature.replace(' ', ''))
    if not match:
        raise MalformedIntent(f"Malformed method signature: {signature!r}")

    return match.group(1), split_types(match.group(2))


def function_selector(signature: str) -> bytes:
    """4-byte selector of a canonical signature"""
    return bytes(Web3.keccak(text=signature.replace(' ', ''))[:4])


def encode_arguments(types: List[str], args: Tuple[Any, ...], what: str) -> bytes:
    """ABI-encode arguments, mapping encoder failures to MalformedIntent"""
    if len(types) != len(args):
        raise MalformedIntent(f"{what} expects {len(types)} arguments, got {len(args)}")

    if not types:
        return b''

    try:
        return encode(types, list(args))
    except Exception as e:
        raise MalformedIntent(f"Cannot encode {what} arguments: {e}") from e


def _require_address(address: str, what: str) -> str:
    if not isinstance(address, str) or not Web3.is_address(address):
        raise MalformedIntent(f"{what} is not a well-formed address: {address!r}")
    return Web3.to_checksum_address(address)


@dataclass(frozen=True)
class UnsignedTransaction:
    """Fully priced and sequenced transaction awaiting a signature"""
    sender: str
    nonce: int
    gas_quote: GasQuote
    intent: PendingIntent
    chain_id: int
    to: Optional[str]
    value: int
    data: bytes

    def to_dict(self) -> Dict[str, Any]:
        """Legacy (EIP-155) transaction dict for signing"""
        tx = {
            'nonce': self.nonce,
            'gasPrice': self.gas_quote.price_per_unit,
            'gas': self.gas_quote.gas_limit,
            'value': self.value,
            'data': self.data,
            'chainId': self.chain_id
        }

        # Contract creation carries no recipient
        if self.to is not None:
            tx['to'] = self.to

        return tx

    @property
    def total_cost(self) -> int:
        """Value plus maximum fee in wei"""
        return self.value + self.gas_quote.max_fee


class TransactionBuilder:
    """
    Builds unsigned transactions for transfers, deployments and calls

    Pure assembly: no RPC access.
    """

    def __init__(self):
        """Initialize Transaction Builder"""
        self._handlers = {
            IntentKind.TRANSFER: self._build_transfer,
            IntentKind.DEPLOY: self._build_deploy,
            IntentKind.CALL: self._build_call
        }

    def build(
        self,
        identity,
        intent: PendingIntent,
        nonce: int,
        gas_quote: GasQuote,
        chain_id: int
    ) -> UnsignedTransaction:
        """
        Build an unsigned transaction

        Args:
            identity: AccountIdentity of the sender
            intent: Transfer, Deploy or Call
            nonce: Sequence number from NonceManager
            gas_quote: Quote from GasCalculator
            chain_id: Target chain identifier

        Returns:
            UnsignedTransaction

        Raises:
            MalformedIntent: If the intent fails validation
        """
        handler = self._handlers.get(getattr(intent, 'kind', None))
        if handler is None:
            raise MalformedIntent(f"Unknown intent: {intent!r}")

        if nonce < 0:
            raise MalformedIntent(f"Nonce cannot be negative: {nonce}")

        to, value, data = handler(intent)

        if value < 0:
            raise MalformedIntent(f"Value cannot be negative: {value}")

        tx = UnsignedTransaction(
            sender=identity.address,
            nonce=nonce,
            gas_quote=gas_quote,
            intent=intent,
            chain_id=chain_id,
            to=to,
            value=value,
            data=data
        )

        logger.debug(
            f"Built {intent.kind.value} tx: nonce={nonce} to={to} value={value} "
            f"data={len(data)} bytes chainId={chain_id}"
        )
        return tx

    def _build_transfer(self, intent: Transfer) -> Tuple[Optional[str], int, bytes]:
        to = _require_address(intent.to, "Transfer recipient")

        if intent.value < 0:
            raise MalformedIntent(f"Transfer value cannot be negative: {intent.value}")

        return to, intent.value, b''

    def _build_deploy(self, intent: Deploy) -> Tuple[Optional[str], int, bytes]:
        try:
            bytecode = bytes(HexBytes(intent.bytecode)) if intent.bytecode else b''
        except (TypeError, ValueError) as e:
            raise MalformedIntent(f"Bytecode is not valid hex: {e}") from e

        if not bytecode:
            raise MalformedIntent("Deployment bytecode is empty")

        constructor_data = encode_arguments(
            list(intent.constructor_types),
            tuple(intent.constructor_args),
            "Constructor"
        )

        return None, intent.value, bytecode + constructor_data

    def _build_call(self, intent: Call) -> Tuple[Optional[str], int, bytes]:
        to = _require_address(intent.contract_address, "Call contract address")

        _, types = parse_signature(intent.method_signature)
        call_data = encode_arguments(types, tuple(intent.args), intent.method_signature)

        return to, intent.value, function_selector(intent.method_signature) + call_data
