"""
Smart Contract Deployment Script
Deploys the Counter contract, increments it once and reads the count back

Run from the repository root: python -m scripts.deploy_contract
"""

import sys

from loguru import logger

from blockchain.account import AccountIdentity
from blockchain.contract_manager import ContractManager
from blockchain.node import ChainNode
from engine.tx_engine import TransactionEngine
from utils.config import load_config, get_rpc_url
from utils.errors import TransactionEngineError
from utils.logging_setup import configure_logging


def deploy_contract(engine: TransactionEngine, identity: AccountIdentity, config: dict) -> str:
    """Deploy Counter and persist its address"""
    artifacts = config['artifacts']

    abi = ContractManager.load_abi(artifacts['abi_path'])
    bytecode = ContractManager.load_bytecode(artifacts['bin_path'])

    logger.info("Sending deployment transaction...")
    result = engine.deploy(
        identity,
        bytecode,
        constructor_types=ContractManager.constructor_types(abi),
        interface=abi
    )

    receipt = result.wait.require_receipt()
    if not receipt.succeeded or not receipt.contract_address:
        raise TransactionEngineError(f"Deployment {result.handle.hash_hex} reverted")

    logger.success("✅ Contract deployed successfully!")
    logger.success(f"Contract address: {receipt.contract_address}")
    logger.success(f"Gas used: {receipt.gas_used}")

    ContractManager.save_contract_address(artifacts['contract_address_file'], receipt.contract_address)
    return receipt.contract_address


def increment_counter(engine: TransactionEngine, identity: AccountIdentity, address: str, abi: list):
    """Call increment() and report the emitted events"""
    logger.info("Calling increment()...")
    result = engine.call(identity, address, 'increment()', interface=abi)

    receipt = result.wait.require_receipt()
    logger.info(f"increment() mined in block {receipt.block_number}")

    for event in result.events:
        logger.info(f"  {event.name}: {event.fields}")

    # Same events through a log query over the receipt's block
    events, _ = engine.fetch_events(address, receipt, abi, 'CountIncremented')
    logger.info(f"  {len(events)} CountIncremented event(s) found by log query")


def main():
    """Deploy, increment and read the counter"""
    config = load_config()
    configure_logging(config)

    try:
        identity = AccountIdentity.from_env()
        node = ChainNode.from_url(get_rpc_url(config), config['network']['request_timeout_seconds'])

        if not node.is_connected():
            logger.error("Failed to connect to network")
            return 1

        engine = TransactionEngine(node, config)
        contracts = ContractManager(node)
        abi = ContractManager.load_abi(config['artifacts']['abi_path'])

        logger.info(f"Deploying from: {identity.address}")

        address = deploy_contract(engine, identity, config)
        increment_counter(engine, identity, address, abi)

        count = contracts.call_function(address, abi, 'getCount')
        logger.success(f"Current count: {count}")
    except TransactionEngineError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
