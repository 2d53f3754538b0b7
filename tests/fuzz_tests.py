"""
Fuzz Testing for the Transaction Engine
Property tests over pricing, signing, classification and decoding
"""

from eth_abi import encode
from eth_account import Account
from hypothesis import given, settings, strategies as st
from web3 import Web3

from blockchain.account import SECP256K1_N, AccountIdentity
from blockchain.event_decoder import EventDecoder
from blockchain.intents import Transfer
from blockchain.signer import TransactionSigner
from blockchain.submitter import classify_rejection
from blockchain.transaction_builder import TransactionBuilder, split_types
from utils.config import load_config
from utils.errors import SubmissionError
from utils.gas_calculator import GasCalculator, GasQuote


RECIPIENT = '0x' + 'ab' * 20

COUNTER_EVENT_ABI = [{
    'type': 'event',
    'name': 'CountIncremented',
    'anonymous': False,
    'inputs': [{'name': 'newCount', 'type': 'uint256', 'indexed': False}]
}]


addresses = st.binary(min_size=20, max_size=20).map(lambda raw: Web3.to_checksum_address('0x' + raw.hex()))
int256s = st.integers(min_value=-2 ** 255, max_value=2 ** 255 - 1)
uint256s = st.integers(min_value=0, max_value=2 ** 256 - 1)
words = st.binary(min_size=32, max_size=32)

SWAP_EVENT_ABI = {
    'type': 'event',
    'name': 'Swap',
    'anonymous': False,
    'inputs': [
        {'name': 'sender', 'type': 'address', 'indexed': True},
        {'name': 'delta', 'type': 'int256', 'indexed': True},
        {'name': 'ref', 'type': 'bytes32', 'indexed': True},
        {'name': 'ok', 'type': 'bool', 'indexed': False},
        {'name': 'memo', 'type': 'string', 'indexed': False},
        {'name': 'amounts', 'type': 'uint256[]', 'indexed': False},
        {'name': 'leg', 'type': 'tuple', 'indexed': False, 'components': [
            {'name': 'token', 'type': 'address'},
            {'name': 'amount', 'type': 'int256'}
        ]}
    ]
}

TAGGED_EVENT_ABI = {
    'type': 'event',
    'name': 'Tagged',
    'anonymous': False,
    'inputs': [
        {'name': 'flag', 'type': 'bool', 'indexed': True},
        {'name': 'label', 'type': 'string', 'indexed': True},
        {'name': 'ids', 'type': 'uint256[]', 'indexed': True},
        {'name': 'owner', 'type': 'address', 'indexed': False},
        {'name': 'count', 'type': 'int256', 'indexed': False},
        {'name': 'key', 'type': 'bytes32', 'indexed': False}
    ]
}


class TestGasCalculationFuzzing:
    """Fuzz test gas pricing"""

    @given(suggested=st.integers(min_value=1, max_value=10 ** 15))
    def test_adjusted_price(self, suggested):
        """Adjusted price is suggested * 12 // 10 and never below the suggestion"""
        calculator = GasCalculator(node=None, config=load_config(None))

        adjusted = calculator.adjust_price(suggested)

        assert adjusted == suggested * 12 // 10
        assert adjusted >= suggested

    @given(
        gas_limit=st.integers(min_value=21000, max_value=30000000),
        price=st.integers(min_value=1, max_value=10 ** 13)
    )
    def test_max_fee(self, gas_limit, price):
        """Max fee is exactly price times limit"""
        assert GasQuote(price_per_unit=price, gas_limit=gas_limit).max_fee == price * gas_limit


class TestSigningFuzzing:
    """Fuzz test identity derivation and signing"""

    @settings(max_examples=25, deadline=None)
    @given(scalar=st.integers(min_value=1, max_value=SECP256K1_N - 1))
    def test_address_matches_eth_account(self, scalar):
        """Derived address agrees with eth_account for any valid scalar"""
        key = scalar.to_bytes(32, 'big')

        assert AccountIdentity(key).address == Account.from_key(key).address

    @settings(max_examples=25, deadline=None)
    @given(
        nonce=st.integers(min_value=0, max_value=2 ** 32),
        value=st.integers(min_value=0, max_value=10 ** 24),
        chain_id=st.integers(min_value=1, max_value=2 ** 32)
    )
    def test_signature_recovers_sender(self, nonce, value, chain_id):
        """Every signed transfer recovers to its sender and is deterministic"""
        identity = AccountIdentity(b'\x42' * 32)
        quote = GasQuote(price_per_unit=120, gas_limit=21000)
        unsigned = TransactionBuilder().build(identity, Transfer(to=RECIPIENT, value=value), nonce, quote, chain_id)
        signer = TransactionSigner()

        signed = signer.sign(unsigned, identity)

        assert Account.recover_transaction(signed.raw_transaction) == identity.address
        assert signer.sign(unsigned, identity).hash == signed.hash
        assert signed.v in (chain_id * 2 + 35, chain_id * 2 + 36)


class TestClassificationFuzzing:
    """Fuzz test node error classification"""

    @given(message=st.text(max_size=200))
    def test_always_classified(self, message):
        """Any node message maps to a submission error without raising"""
        error = classify_rejection(ValueError({'code': -32000, 'message': message}))

        assert isinstance(error, SubmissionError)
        assert error.node_message == message


class TestDecodingFuzzing:
    """Fuzz test event decoding"""

    @given(count=st.integers(min_value=0, max_value=2 ** 256 - 1))
    def test_count_incremented(self, count):
        """Any uint256 count decodes back to itself"""
        decoder = EventDecoder(COUNTER_EVENT_ABI)
        log = {
            'address': RECIPIENT,
            'topics': [Web3.keccak(text='CountIncremented(uint256)')],
            'data': encode(['uint256'], [count])
        }

        assert decoder.decode_log(log).fields == {'newCount': count}

    @given(types=st.lists(st.sampled_from(['uint256', 'address', 'bool', 'bytes32', 'string']), max_size=6))
    def test_split_types(self, types):
        """Splitting a joined type list gives the list back"""
        assert split_types(','.join(types)) == types

    @settings(deadline=None)
    @given(
        sender=addresses,
        delta=int256s,
        ref=words,
        ok=st.booleans(),
        memo=st.text(max_size=50),
        amounts=st.lists(uint256s, max_size=5),
        token=addresses,
        amount=int256s
    )
    def test_mixed_event_round_trip(self, sender, delta, ref, ok, memo, amounts, token, amount):
        """Static indexed values and every unindexed type decode back to their inputs"""
        decoder = EventDecoder([SWAP_EVENT_ABI, TAGGED_EVENT_ABI])
        log = {
            'address': RECIPIENT,
            'topics': [
                Web3.keccak(text='Swap(address,int256,bytes32,bool,string,uint256[],(address,int256))'),
                encode(['address'], [sender]),
                encode(['int256'], [delta]),
                ref
            ],
            'data': encode(['bool', 'string', 'uint256[]', '(address,int256)'], [ok, memo, amounts, (token, amount)])
        }

        assert decoder.decode_log(log).fields == {
            'sender': sender,
            'delta': delta,
            'ref': ref,
            'ok': ok,
            'memo': memo,
            'amounts': amounts,
            'leg': (token, amount)
        }

    @settings(deadline=None)
    @given(
        flag=st.booleans(),
        label=st.text(max_size=50),
        ids=st.lists(uint256s, max_size=5),
        owner=addresses,
        count=int256s,
        key=words
    )
    def test_indexed_dynamic_round_trip(self, flag, label, ids, owner, count, key):
        """Indexed dynamic values come back as their topic hash"""
        decoder = EventDecoder([SWAP_EVENT_ABI, TAGGED_EVENT_ABI])
        label_hash = Web3.keccak(text=label)
        ids_hash = Web3.keccak(b''.join(encode(['uint256'], [item]) for item in ids))
        log = {
            'address': RECIPIENT,
            'topics': [
                Web3.keccak(text='Tagged(bool,string,uint256[],address,int256,bytes32)'),
                encode(['bool'], [flag]),
                label_hash,
                ids_hash
            ],
            'data': encode(['address', 'int256', 'bytes32'], [owner, count, key])
        }

        event = decoder.decode_log(log)

        assert event.name == 'Tagged'
        assert event.fields == {
            'flag': flag,
            'label': label_hash,
            'ids': ids_hash,
            'owner': owner,
            'count': count,
            'key': key
        }
