"""
Contract Manager
Loads ABI/bytecode artifacts, performs read-only calls and persists deployed addresses
"""

import json
import os
from typing import Any, Dict, List, Optional, Sequence, Tuple

from eth_abi import decode
from hexbytes import HexBytes
from web3 import Web3
from loguru import logger

from utils.errors import ConfigError, MalformedIntent, NodeRequestFailed
from .event_decoder import canonical_type
from .transaction_builder import encode_arguments, function_selector


class ContractManager:
    """
    Contract artifacts and read-only interaction
    """

    def __init__(self, node):
        """
        Initialize Contract Manager

        Args:
            node: Chain node
        """
        self.node = node

    @staticmethod
    def load_abi(path: str) -> List[Dict[str, Any]]:
        """
        Load an interface description

        Accepts a bare ABI list or a compiler artifact with an 'abi' key.

        Raises:
            ConfigError: If the file is missing or not an ABI
        """
        if not os.path.exists(path):
            raise ConfigError(f"ABI file not found: {path}")

        try:
            with open(path, 'r') as f:
                content = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read ABI {path}: {e}") from e

        abi = content.get('abi') if isinstance(content, dict) else content
        if not isinstance(abi, list):
            raise ConfigError(f"{path} does not contain an ABI list")

        logger.debug(f"Loaded ABI with {len(abi)} entries from {path}")
        return abi

    @staticmethod
    def load_bytecode(path: str) -> bytes:
        """
        Load deployable bytecode

        Accepts hex text (0x optional, surrounding whitespace ignored) or a
        compiler artifact with a 'bytecode' key.

        Raises:
            ConfigError: If the file is missing or not hex
            MalformedIntent: If the bytecode is empty
        """
        if not os.path.exists(path):
            raise ConfigError(f"Bytecode file not found: {path}")

        with open(path, 'r') as f:
            text = f.read().strip()

        if text.startswith('{'):
            try:
                artifact = json.loads(text)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Cannot parse artifact {path}: {e}") from e
            text = artifact.get('bytecode', '')
            if isinstance(text, dict):
                text = text.get('object', '')
            text = text.strip()

        try:
            bytecode = bytes(HexBytes(text)) if text else b''
        except ValueError as e:
            raise ConfigError(f"Bytecode in {path} is not valid hex") from e

        if not bytecode:
            raise MalformedIntent(f"Bytecode in {path} is empty")

        logger.debug(f"Loaded {len(bytecode)} bytes of bytecode from {path}")
        return bytecode

    @staticmethod
    def find_function(abi: List[Dict[str, Any]], name: str, arg_count: Optional[int] = None) -> Dict[str, Any]:
        """
        Find a function entry by name (and argument count for overloads)

        Raises:
            MalformedIntent: If no unique function matches
        """
        candidates = [
            entry for entry in abi
            if entry.get('type', 'function') == 'function' and entry.get('name') == name
        ]
        if arg_count is not None:
            candidates = [entry for entry in candidates if len(entry.get('inputs', [])) == arg_count]

        if len(candidates) != 1:
            raise MalformedIntent(
                f"Expected one function {name} in ABI, found {len(candidates)}"
            )

        return candidates[0]

    @classmethod
    def function_signature(cls, abi: List[Dict[str, Any]], name: str, arg_count: Optional[int] = None) -> str:
        """Canonical signature of a function, e.g. 'setCount(uint256)'"""
        entry = cls.find_function(abi, name, arg_count)
        types = ','.join(canonical_type(param) for param in entry.get('inputs', []))
        return f"{name}({types})"

    @staticmethod
    def constructor_types(abi: List[Dict[str, Any]]) -> Tuple[str, ...]:
        """Constructor parameter types (empty when the ABI has no constructor)"""
        for entry in abi:
            if entry.get('type') == 'constructor':
                return tuple(canonical_type(param) for param in entry.get('inputs', []))
        return ()

    def call_function(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        name: str,
        args: Sequence[Any] = (),
        sender: Optional[str] = None
    ) -> Any:
        """
        Execute a read-only contract call (eth_call)

        Args:
            address: Contract address
            abi: Contract interface description
            name: Function name
            args: Function arguments
            sender: Optional 'from' address

        Returns:
            Single decoded value, or a tuple for multiple outputs

        Raises:
            MalformedIntent: If the function or arguments are invalid
            NodeRequestFailed: If the call fails or returns undecodable data
        """
        if not Web3.is_address(address):
            raise MalformedIntent(f"Contract address is not well formed: {address!r}")

        entry = self.find_function(abi, name, len(args))
        input_types = [canonical_type(param) for param in entry.get('inputs', [])]
        output_types = [canonical_type(param) for param in entry.get('outputs', [])]
        signature = f"{name}({','.join(input_types)})"

        tx = {
            'to': Web3.to_checksum_address(address),
            'data': Web3.to_hex(function_selector(signature) + encode_arguments(input_types, tuple(args), signature))
        }
        if sender:
            tx['from'] = Web3.to_checksum_address(sender)

        try:
            result = self.node.call(tx)
        except Exception as e:
            logger.error(f"Error calling {signature} on {address}: {e}")
            raise NodeRequestFailed(f"Call to {signature} failed: {e}") from e

        try:
            values = decode(output_types, bytes(result)) if output_types else ()
        except Exception as e:
            raise NodeRequestFailed(f"Cannot decode {signature} result: {e}") from e

        logger.debug(f"{signature} on {address} returned {values}")

        if len(values) == 1:
            return values[0]
        return tuple(values)

    @staticmethod
    def save_contract_address(path: str, address: str):
        """
        Persist a deployed contract address

        Written as checksummed hex with no trailing newline.
        """
        checksum = Web3.to_checksum_address(address)

        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(path, 'w') as f:
            f.write(checksum)

        logger.success(f"Contract address saved to {path}")

    @staticmethod
    def load_contract_address(path: str) -> str:
        """
        Read a persisted contract address

        Raises:
            ConfigError: If the file is missing or does not hold an address
        """
        if not os.path.exists(path):
            raise ConfigError(f"Contract address file not found: {path}")

        with open(path, 'r') as f:
            text = f.read().strip()

        if not Web3.is_address(text):
            raise ConfigError(f"{path} does not contain a valid address")

        return Web3.to_checksum_address(text)
