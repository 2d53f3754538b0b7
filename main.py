"""
Transaction Engine - Main Entry Point
Command line front end for transfers, deployments, contract calls and queries
"""

import argparse
import json
import signal
import sys

from web3 import Web3
from loguru import logger

from blockchain.account import AccountIdentity
from blockchain.confirmation import WaitState
from blockchain.contract_manager import ContractManager
from blockchain.node import ChainNode
from blockchain.receipts import Receipt
from engine.tx_engine import TransactionEngine
from utils.cancellation import CancellationToken
from utils.config import DEFAULT_CONFIG_PATH, get_rpc_url, load_config
from utils.errors import ConfigError, NodeRequestFailed, TransactionEngineError
from utils.logging_setup import configure_logging


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser"""
    parser = argparse.ArgumentParser(description="Sign, submit and confirm EVM transactions")
    parser.add_argument('--config', default=DEFAULT_CONFIG_PATH, help="JSON config file")
    parser.add_argument('--log-level', default=None, help="Console log level")

    commands = parser.add_subparsers(dest='command', required=True)

    transfer = commands.add_parser('transfer', help="Send native value")
    transfer.add_argument('--to', required=True, help="Recipient address")
    transfer.add_argument('--value-wei', required=True, type=int, help="Amount in wei")
    transfer.add_argument('--gas-limit', type=int, default=None)
    transfer.add_argument('--no-wait', action='store_true', help="Return after submission")

    deploy = commands.add_parser('deploy', help="Deploy a contract")
    deploy.add_argument('--abi', default=None, help="ABI file (default from config)")
    deploy.add_argument('--bin', default=None, help="Bytecode file (default from config)")
    deploy.add_argument('--args', default='[]', help="Constructor arguments as a JSON list")
    deploy.add_argument('--output', default=None, help="Where to save the contract address")
    deploy.add_argument('--gas-limit', type=int, default=None)

    call = commands.add_parser('call', help="Send a contract method transaction")
    call.add_argument('--address', default=None, help="Contract address (default: saved address)")
    call.add_argument('--signature', required=True, help="Method signature, e.g. 'increment()'")
    call.add_argument('--args', default='[]', help="Method arguments as a JSON list")
    call.add_argument('--abi', default=None, help="ABI file for decoding emitted events")
    call.add_argument('--value-wei', type=int, default=0)
    call.add_argument('--gas-limit', type=int, default=None)
    call.add_argument('--no-wait', action='store_true', help="Return after submission")

    read = commands.add_parser('read', help="Read-only contract call")
    read.add_argument('--address', default=None, help="Contract address (default: saved address)")
    read.add_argument('--function', required=True, help="Function name")
    read.add_argument('--args', default='[]', help="Function arguments as a JSON list")
    read.add_argument('--abi', default=None, help="ABI file (default from config)")

    block = commands.add_parser('block', help="Show a block")
    selector = block.add_mutually_exclusive_group()
    selector.add_argument('--number', type=int, default=None)
    selector.add_argument('--hash', default=None)

    status = commands.add_parser('status', help="Show a transaction and its receipt")
    status.add_argument('--tx', required=True, help="Transaction hash")

    return parser


def _json_list(text: str, what: str) -> list:
    try:
        values = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{what} must be a JSON list: {e}") from e

    if not isinstance(values, list):
        raise ConfigError(f"{what} must be a JSON list")

    return values


class EngineRunner:
    """CLI runner with signal handling"""

    def __init__(self, args: argparse.Namespace, config: dict):
        """Initialize runner"""
        self.args = args
        self.config = config
        self.cancel_token = CancellationToken()

        self.node = ChainNode.from_url(
            get_rpc_url(config),
            timeout=config['network']['request_timeout_seconds']
        )
        self.engine = TransactionEngine(self.node, config)
        self.contracts = ContractManager(self.node)

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Cancel any in-flight wait"""
        logger.info(f"Received signal {signum}")
        self.cancel_token.cancel(f"Signal {signum}")

    def _contract_address(self) -> str:
        if self.args.address:
            return self.args.address
        return ContractManager.load_contract_address(self.config['artifacts']['contract_address_file'])

    def run(self) -> int:
        """Dispatch the selected command"""
        handlers = {
            'transfer': self.transfer,
            'deploy': self.deploy,
            'call': self.call,
            'read': self.read,
            'block': self.block,
            'status': self.status
        }
        return handlers[self.args.command]()

    def _report(self, result) -> int:
        logger.info(f"Transaction hash: {result.handle.hash_hex}")

        if result.wait is None:
            return 0

        result.wait.require_receipt()

        for event in result.events:
            logger.info(f"  Event {event.name}: {event.fields}")

        return 0 if result.wait.state is WaitState.MINED_SUCCESS else 1

    def transfer(self) -> int:
        identity = AccountIdentity.from_env()
        result = self.engine.transfer(
            identity,
            self.args.to,
            self.args.value_wei,
            gas_limit=self.args.gas_limit,
            wait=not self.args.no_wait,
            cancel_token=self.cancel_token
        )
        return self._report(result)

    def deploy(self) -> int:
        artifacts = self.config['artifacts']
        abi = ContractManager.load_abi(self.args.abi or artifacts['abi_path'])
        bytecode = ContractManager.load_bytecode(self.args.bin or artifacts['bin_path'])

        identity = AccountIdentity.from_env()
        result = self.engine.deploy(
            identity,
            bytecode,
            constructor_args=_json_list(self.args.args, "Constructor arguments"),
            constructor_types=ContractManager.constructor_types(abi),
            gas_limit=self.args.gas_limit,
            cancel_token=self.cancel_token,
            interface=abi
        )

        receipt = result.wait.require_receipt()
        if not receipt.succeeded or not receipt.contract_address:
            logger.error(f"Deployment {result.handle.hash_hex} did not create a contract")
            return 1

        logger.success(f"Contract deployed at {receipt.contract_address}")
        ContractManager.save_contract_address(
            self.args.output or artifacts['contract_address_file'],
            receipt.contract_address
        )
        return 0

    def call(self) -> int:
        abi = ContractManager.load_abi(self.args.abi) if self.args.abi else None

        identity = AccountIdentity.from_env()
        result = self.engine.call(
            identity,
            self._contract_address(),
            self.args.signature,
            args=_json_list(self.args.args, "Method arguments"),
            value=self.args.value_wei,
            gas_limit=self.args.gas_limit,
            wait=not self.args.no_wait,
            cancel_token=self.cancel_token,
            interface=abi
        )
        return self._report(result)

    def read(self) -> int:
        abi = ContractManager.load_abi(self.args.abi or self.config['artifacts']['abi_path'])
        value = self.contracts.call_function(
            self._contract_address(),
            abi,
            self.args.function,
            args=_json_list(self.args.args, "Function arguments")
        )
        logger.info(f"{self.args.function} returned: {value}")
        return 0

    def block(self) -> int:
        if self.args.hash:
            identifier = self.args.hash
        elif self.args.number is not None:
            identifier = self.args.number
        else:
            identifier = 'latest'

        try:
            block = self.node.get_block(identifier)
        except Exception as e:
            raise NodeRequestFailed(f"Block query failed: {e}") from e

        if block is None:
            logger.error(f"Block {identifier} not found")
            return 1

        logger.info(f"Block {block['number']}: {Web3.to_hex(block['hash'])}")
        logger.info(f"  Timestamp: {block['timestamp']}")
        logger.info(f"  Transactions: {len(block.get('transactions', []))}")
        logger.info(f"  Gas used: {block['gasUsed']} / {block['gasLimit']}")
        return 0

    def status(self) -> int:
        tx = self.engine.submitter.lookup(self.args.tx)
        if tx is None:
            logger.error(f"Transaction {self.args.tx} not known to the node")
            return 1

        logger.info(f"Transaction {self.args.tx}")
        logger.info(f"  From: {tx.get('from')}  Nonce: {tx.get('nonce')}")

        raw_receipt = self.node.get_transaction_receipt(self.args.tx)
        if raw_receipt is None:
            logger.info("  Pending")
            return 0

        receipt = Receipt.from_rpc(raw_receipt)
        logger.info(
            f"  Mined in block {receipt.block_number} at position {receipt.transaction_index}, "
            f"status {receipt.status.name}, gas used {receipt.gas_used}"
        )

        fee = receipt.fee_wei(tx.get('gasPrice'))
        if fee is not None:
            logger.info(f"  Fee: {fee} wei ({Web3.from_wei(fee, 'ether')} ETH)")
        return 0


def main(argv=None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
        configure_logging(config, console_level=args.log_level)

        runner = EngineRunner(args, config)
        return runner.run()
    except TransactionEngineError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Fatal error in main: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
