"""
System Check Script
Verifies environment, configuration, node connection and signing account
"""

import os
import sys

from web3 import Web3
from loguru import logger

from blockchain.account import AccountIdentity
from blockchain.contract_manager import ContractManager
from blockchain.node import ChainNode
from utils.config import load_config, get_rpc_url
from utils.errors import TransactionEngineError


def check_environment_variables(config):
    """Check if all required environment variables are set"""
    logger.info("Checking environment variables...")

    required_vars = [config['network']['rpc_url_env'], 'PRIVATE_KEY']

    missing = [var for var in required_vars if not os.getenv(var)]

    if missing:
        logger.error(f"Missing environment variables: {', '.join(missing)}")
        return False

    logger.success("✓ All environment variables set")
    return True


def check_node_connection(config):
    """Check RPC endpoint connection"""
    logger.info("Checking node connection...")

    node = ChainNode.from_url(get_rpc_url(config), config['network']['request_timeout_seconds'])

    if not node.is_connected():
        logger.error("  ✗ Node not reachable")
        return False

    logger.success(f"  ✓ Connected (chain {node.get_chain_id()}, block {node.get_block_number()})")
    return True


def check_account_balance(config):
    """Check signing account and balance"""
    logger.info("Checking account balance...")

    identity = AccountIdentity.from_env()
    node = ChainNode.from_url(get_rpc_url(config), config['network']['request_timeout_seconds'])

    balance = node.get_balance(identity.address)
    logger.info(f"  {identity.address}: {Web3.from_wei(balance, 'ether'):.6f} ETH")

    floor = config['gas_settings']['min_balance_wei']
    if balance < floor:
        logger.warning(f"  ⚠ Balance below configured floor of {Web3.from_wei(floor, 'ether')} ETH")
        return False

    logger.success("  ✓ Balance sufficient")
    return True


def check_artifacts(config):
    """Check contract artifacts and saved deployment"""
    logger.info("Checking contract artifacts...")

    artifacts = config['artifacts']

    for path in (artifacts['abi_path'], artifacts['bin_path']):
        if os.path.exists(path):
            logger.success(f"  ✓ {path}")
        else:
            logger.warning(f"  {path} not found (needed for deploy)")

    if os.path.exists(artifacts['contract_address_file']):
        address = ContractManager.load_contract_address(artifacts['contract_address_file'])
        logger.success(f"  ✓ Deployed contract: {address}")
    else:
        logger.info("  No deployed contract yet. Run: python main.py deploy")

    return True


def check_directories(config):
    """Check if required directories exist"""
    logger.info("Checking directories...")

    log_file = config['logging'].get('file')
    required_dirs = [os.path.dirname(log_file)] if log_file else []

    for dir_path in required_dirs:
        if not os.path.exists(dir_path):
            os.makedirs(dir_path, exist_ok=True)
            logger.info(f"  Created: {dir_path}")
        else:
            logger.success(f"  ✓ {dir_path}")

    return True


def main():
    """Run all system checks"""
    logger.info("=" * 70)
    logger.info("Transaction Engine System Check")
    logger.info("=" * 70)

    try:
        config = load_config()
    except TransactionEngineError as e:
        logger.error(f"Configuration invalid: {e}")
        return 1

    checks = [
        ("Environment Variables", check_environment_variables),
        ("Directories", check_directories),
        ("Node Connection", check_node_connection),
        ("Account Balance", check_account_balance),
        ("Contract Artifacts", check_artifacts)
    ]

    results = []

    for name, check_func in checks:
        logger.info("")
        try:
            result = check_func(config)
            results.append((name, result))
        except Exception as e:
            logger.error(f"Error in {name}: {e}")
            results.append((name, False))

    # Summary
    logger.info("")
    logger.info("=" * 70)
    logger.info("Summary")
    logger.info("=" * 70)

    passed = sum(1 for _, result in results if result)
    total = len(results)

    for name, result in results:
        status = "✓ PASS" if result else "✗ FAIL"
        logger.info(f"  {status}: {name}")

    logger.info("")
    logger.info(f"Total: {passed}/{total} checks passed")

    if passed == total:
        logger.success("✅ System ready")
        return 0

    logger.error("❌ System not ready - fix issues above")
    return 1


if __name__ == "__main__":
    sys.exit(main())
