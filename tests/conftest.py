"""
Shared test fixtures
In-memory node and clock so the pipeline runs without a network
"""

import json
import os
from collections import defaultdict

import pytest
import rlp
from eth_account import Account
from hexbytes import HexBytes
from web3 import Web3

from blockchain.account import AccountIdentity
from engine.tx_engine import TransactionEngine
from utils.config import load_config


FIXTURES_DIR = os.path.join(os.path.dirname(__file__), 'fixtures')
SHIPPED_CONFIG = os.path.join(os.path.dirname(__file__), '..', 'config', 'engine_config.json')

TEST_PRIVATE_KEY = '0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318'
TEST_ADDRESS = '0x2c7536E3605D9C16a7a3D7b1898e529396a65c23'
OTHER_PRIVATE_KEY = '0x' + '11' * 32

RECIPIENT = '0x' + 'ab' * 20
CONTRACT_ADDRESS = Web3.to_checksum_address('0x' + 'cd' * 20)

GWEI = 10 ** 9


class FakeNode:
    """
    Node stand-in with a single-account mempool model

    Raw transactions are decoded to check the nonce against the sender's
    next expected nonce, the way a real node refuses stale nonces. A receipt
    appears after receipt_delay empty polls.
    """

    def __init__(self):
        self.chain_id = 1337
        self.gas_price = 100
        self.default_balance = 10 ** 18
        self.balances = {}
        self.nonces = defaultdict(int)
        self.nonce_lag = 0
        self.block_number = 100
        self.transaction_index = 0

        self.receipt_delay = 0
        self.receipt_status = 1
        self.receipt_logs = []
        self.contract_address = CONTRACT_ADDRESS

        self.logs = []
        self.blocks = {}
        self.call_result = b''

        self.gas_price_error = None
        self.nonce_error = None
        self.send_error = None
        self.receipt_error = None
        self.balance_error = None

        self.sent = []
        self.transactions = {}
        self.calls = []
        self.log_queries = []
        self.chain_id_reads = 0
        self._receipt_polls = defaultdict(int)

    def is_connected(self):
        return True

    def get_balance(self, address):
        if self.balance_error:
            raise self.balance_error
        return self.balances.get(address, self.default_balance)

    def get_transaction_count(self, address, block='pending'):
        if self.nonce_error:
            raise self.nonce_error
        return self.nonces[address] - self.nonce_lag

    def get_gas_price(self):
        if self.gas_price_error:
            raise self.gas_price_error
        return self.gas_price

    def get_chain_id(self):
        self.chain_id_reads += 1
        return self.chain_id

    def send_raw_transaction(self, raw_transaction):
        if self.send_error:
            raise self.send_error

        fields = rlp.decode(raw_transaction)
        nonce = int.from_bytes(fields[0], 'big')
        sender = Account.recover_transaction(raw_transaction)
        expected = self.nonces[sender]

        if nonce < expected:
            raise ValueError({'code': -32000, 'message': 'nonce too low'})
        if nonce > expected:
            raise ValueError({'code': -32000, 'message': 'nonce too high'})

        self.nonces[sender] = expected + 1
        tx_hash = bytes(Web3.keccak(raw_transaction))

        self.sent.append(raw_transaction)
        self.transactions[tx_hash] = {
            'hash': HexBytes(tx_hash),
            'from': sender,
            'nonce': nonce,
            'to': Web3.to_checksum_address(fields[3]) if fields[3] else None,
            'gasPrice': int.from_bytes(fields[1], 'big'),
            'gas': int.from_bytes(fields[2], 'big'),
            'value': int.from_bytes(fields[4], 'big'),
            'input': HexBytes(fields[5])
        }
        return tx_hash

    def get_transaction(self, tx_hash):
        return self.transactions.get(bytes(HexBytes(tx_hash)))

    def get_transaction_receipt(self, tx_hash):
        if self.receipt_error:
            raise self.receipt_error

        tx_hash = bytes(HexBytes(tx_hash))
        tx = self.transactions.get(tx_hash)
        if tx is None:
            return None

        self._receipt_polls[tx_hash] += 1
        if self._receipt_polls[tx_hash] <= self.receipt_delay:
            return None

        logs = []
        for index, entry in enumerate(self.receipt_logs):
            log = dict(entry)
            log.setdefault('blockNumber', self.block_number)
            log.setdefault('logIndex', index)
            log['transactionHash'] = HexBytes(tx_hash)
            logs.append(log)

        return {
            'transactionHash': HexBytes(tx_hash),
            'blockNumber': self.block_number,
            'blockHash': HexBytes(b'\x11' * 32),
            'transactionIndex': self.transaction_index,
            'status': self.receipt_status,
            'gasUsed': 21000,
            'effectiveGasPrice': tx['gasPrice'],
            'contractAddress': self.contract_address if tx['to'] is None else None,
            'logs': logs
        }

    def get_logs(self, address=None, topics=None, from_block='latest', to_block='latest'):
        self.log_queries.append({
            'address': address,
            'topics': topics,
            'from_block': from_block,
            'to_block': to_block
        })

        matches = []
        for log in self.logs:
            if address and log['address'] != address:
                continue
            if topics and Web3.to_hex(log['topics'][0]) != topics[0]:
                continue
            matches.append(log)
        return matches

    def get_block_number(self):
        return self.block_number

    def get_block(self, identifier='latest'):
        return self.blocks.get(identifier)

    def call(self, transaction, block='latest'):
        self.calls.append(transaction)
        return self.call_result


class FakeClock:
    """Monotonic clock whose sleep advances time instantly"""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def node():
    """In-memory node"""
    return FakeNode()


@pytest.fixture
def clock():
    """Fake monotonic clock"""
    return FakeClock()


@pytest.fixture
def config():
    """Built-in default configuration"""
    return load_config(None)


@pytest.fixture
def identity():
    """Signing identity for the well-known test key"""
    return AccountIdentity(TEST_PRIVATE_KEY)


@pytest.fixture
def other_identity():
    """A second, unrelated identity"""
    return AccountIdentity(OTHER_PRIVATE_KEY)


@pytest.fixture
def engine(node, config, clock):
    """Engine wired to the fake node and clock"""
    return TransactionEngine(node, config, clock=clock, sleep=clock.sleep)


@pytest.fixture
def counter_abi():
    """Counter contract interface"""
    with open(os.path.join(FIXTURES_DIR, 'Counter.abi')) as f:
        return json.load(f)


@pytest.fixture
def counter_bytecode():
    """Counter contract creation code"""
    with open(os.path.join(FIXTURES_DIR, 'Counter.bin')) as f:
        return bytes(HexBytes(f.read().strip()))
