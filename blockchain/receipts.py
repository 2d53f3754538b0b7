"""
Receipts
Typed views of node receipts and log entries
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from hexbytes import HexBytes
from web3 import Web3


class ReceiptStatus(Enum):
    """Receipt status flag (1 = success, 0 = reverted)"""
    SUCCESS = 1
    REVERTED = 0


def _to_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith('0x') else int(value)
    return int(value)


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else _to_int(value)


@dataclass(frozen=True)
class LogEntry:
    """Single log emitted by a transaction"""
    address: str
    topics: Tuple[bytes, ...]
    data: bytes
    block_number: Optional[int] = None
    transaction_hash: Optional[bytes] = None
    log_index: Optional[int] = None

    @classmethod
    def from_rpc(cls, entry: Dict[str, Any]) -> "LogEntry":
        """Build from a node log dict (camelCase keys)"""
        tx_hash = entry.get('transactionHash')

        return cls(
            address=Web3.to_checksum_address(entry['address']),
            topics=tuple(bytes(HexBytes(topic)) for topic in entry.get('topics', ())),
            data=bytes(HexBytes(entry.get('data') or b'')),
            block_number=_optional_int(entry.get('blockNumber')),
            transaction_hash=bytes(HexBytes(tx_hash)) if tx_hash is not None else None,
            log_index=_optional_int(entry.get('logIndex'))
        )


@dataclass(frozen=True)
class Receipt:
    """Node's record of a mined transaction"""
    transaction_hash: bytes
    block_number: int
    block_hash: bytes
    status: ReceiptStatus
    gas_used: int
    logs: Tuple[LogEntry, ...]
    contract_address: Optional[str] = None
    effective_gas_price: Optional[int] = None
    transaction_index: Optional[int] = None

    @classmethod
    def from_rpc(cls, receipt: Dict[str, Any]) -> "Receipt":
        """
        Build from a node receipt dict

        Raises:
            ValueError: If the status flag is not 0 or 1
        """
        contract_address = receipt.get('contractAddress')

        return cls(
            transaction_hash=bytes(HexBytes(receipt['transactionHash'])),
            block_number=_to_int(receipt['blockNumber']),
            block_hash=bytes(HexBytes(receipt['blockHash'])),
            status=ReceiptStatus(_to_int(receipt['status'])),
            gas_used=_to_int(receipt['gasUsed']),
            logs=tuple(LogEntry.from_rpc(entry) for entry in receipt.get('logs', ())),
            contract_address=Web3.to_checksum_address(contract_address) if contract_address else None,
            effective_gas_price=_optional_int(receipt.get('effectiveGasPrice')),
            transaction_index=_optional_int(receipt.get('transactionIndex'))
        )

    @property
    def succeeded(self) -> bool:
        return self.status is ReceiptStatus.SUCCESS

    @property
    def transaction_hash_hex(self) -> str:
        return Web3.to_hex(self.transaction_hash)

    def fee_wei(self, gas_price: Optional[int] = None) -> Optional[int]:
        """
        Fee paid, gas used times the effective gas price

        Args:
            gas_price: Price to use when the node reports no effective price
        """
        price = self.effective_gas_price if self.effective_gas_price is not None else gas_price
        if price is None:
            return None
        return self.gas_used * price
