"""
Event Decoder Tests
Tests decoding of receipt logs against contract interfaces
"""

import pytest
from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from blockchain.event_decoder import EventDecoder, event_signature
from blockchain.receipts import LogEntry, Receipt, ReceiptStatus
from utils.errors import EventDecodeError
from conftest import CONTRACT_ADDRESS, RECIPIENT, TEST_ADDRESS


ERC20_ABI = [
    {
        'type': 'event',
        'name': 'Transfer',
        'anonymous': False,
        'inputs': [
            {'name': 'from', 'type': 'address', 'indexed': True},
            {'name': 'to', 'type': 'address', 'indexed': True},
            {'name': 'value', 'type': 'uint256', 'indexed': False}
        ]
    },
    {
        'type': 'event',
        'name': 'Named',
        'anonymous': False,
        'inputs': [
            {'name': 'label', 'type': 'string', 'indexed': True},
            {'name': 'note', 'type': 'string', 'indexed': False}
        ]
    },
    {
        'type': 'event',
        'name': 'Hidden',
        'anonymous': True,
        'inputs': []
    }
]


def address_topic(address):
    return b'\x00' * 12 + Web3.to_bytes(hexstr=address)


def make_log(topics, data=b'', address=CONTRACT_ADDRESS, log_index=0):
    return {
        'address': address,
        'topics': [HexBytes(topic) for topic in topics],
        'data': HexBytes(data),
        'blockNumber': 42,
        'transactionHash': HexBytes(b'\xaa' * 32),
        'logIndex': log_index
    }


class TestCounterEvents:
    """Test the Counter contract's CountIncremented event"""

    def test_count_incremented(self, counter_abi):
        """CountIncremented(7) decodes to newCount = 7"""
        decoder = EventDecoder(counter_abi)
        topic = Web3.keccak(text='CountIncremented(uint256)')
        log = make_log([topic], encode(['uint256'], [7]))

        events = decoder.decode([log])

        assert len(events) == 1
        assert events[0].name == 'CountIncremented'
        assert events[0].fields == {'newCount': 7}
        assert events[0].address == CONTRACT_ADDRESS
        assert events[0].block_number == 42

    def test_topic_for(self, counter_abi):
        """topic_for returns keccak of the canonical signature"""
        decoder = EventDecoder(counter_abi)

        assert decoder.topic_for('CountIncremented') == Web3.keccak(text='CountIncremented(uint256)')

        with pytest.raises(KeyError):
            decoder.topic_for('Missing')


class TestIndexedFields:
    """Test indexed parameters"""

    def test_indexed_addresses(self):
        """Indexed addresses are decoded from topics and checksummed"""
        decoder = EventDecoder(ERC20_ABI)
        topic = Web3.keccak(text='Transfer(address,address,uint256)')
        log = make_log(
            [topic, address_topic(TEST_ADDRESS), address_topic(RECIPIENT)],
            encode(['uint256'], [10 ** 18])
        )

        event = decoder.decode_log(log)

        assert event.fields == {
            'from': TEST_ADDRESS,
            'to': Web3.to_checksum_address(RECIPIENT),
            'value': 10 ** 18
        }

    def test_indexed_dynamic_is_hash(self):
        """Indexed strings are only available as their hash"""
        decoder = EventDecoder(ERC20_ABI)
        label_hash = Web3.keccak(text='hello')
        log = make_log(
            [Web3.keccak(text='Named(string,string)'), label_hash],
            encode(['string'], ['world'])
        )

        event = decoder.decode_log(log)

        assert event.fields == {'label': bytes(label_hash), 'note': 'world'}


class TestSkippedLogs:
    """Test logs that do not match any event"""

    def test_unknown_topic(self):
        """Logs from other events are skipped"""
        decoder = EventDecoder(ERC20_ABI)

        assert decoder.decode([make_log([b'\x01' * 32])]) == []

    def test_no_topics(self):
        """Anonymous-style logs without topics are skipped"""
        decoder = EventDecoder(ERC20_ABI)

        assert decoder.decode_log(make_log([])) is None

    def test_anonymous_not_registered(self):
        """Anonymous events have no topic"""
        decoder = EventDecoder(ERC20_ABI)

        with pytest.raises(KeyError):
            decoder.topic_for('Hidden')


class TestMalformedLogs:
    """Test per-entry decode failures"""

    def test_truncated_data(self, counter_abi):
        """Short data fails that entry only"""
        decoder = EventDecoder(counter_abi)
        topic = Web3.keccak(text='CountIncremented(uint256)')
        logs = [
            make_log([topic], b'\x00' * 10, log_index=0),
            make_log([topic], encode(['uint256'], [8]), log_index=1)
        ]

        events, errors = decoder.decode_all(logs)

        assert [event.fields['newCount'] for event in events] == [8]
        assert len(errors) == 1
        assert errors[0].log_index == 0
        assert errors[0].event_name == 'CountIncremented'

    def test_topic_count_mismatch(self):
        """Missing indexed topics are a decode error"""
        decoder = EventDecoder(ERC20_ABI)
        log = make_log([Web3.keccak(text='Transfer(address,address,uint256)')], encode(['uint256'], [1]))

        with pytest.raises(EventDecodeError):
            decoder.decode_log(log)

    def test_malformed_entry(self):
        """Entries missing required keys are a decode error"""
        with pytest.raises(EventDecodeError):
            EventDecoder(ERC20_ABI).decode_log({'topics': []}, position=3)


class TestNestedAddresses:
    """Test address normalization inside tuples and arrays"""

    LEG_ABI = [{
        'type': 'event',
        'name': 'Leg',
        'anonymous': False,
        'inputs': [
            {'name': 'who', 'type': 'address', 'indexed': False},
            {'name': 'leg', 'type': 'tuple', 'indexed': False, 'components': [
                {'name': 'token', 'type': 'address'},
                {'name': 'amount', 'type': 'uint256'}
            ]},
            {'name': 'route', 'type': 'tuple[]', 'indexed': False, 'components': [
                {'name': 'pool', 'type': 'address'},
                {'name': 'hops', 'type': 'address[]'}
            ]}
        ]
    }]

    def test_tuple_addresses_checksummed(self):
        """Addresses nested in tuples decode the same as top-level ones"""
        token = Web3.to_checksum_address(RECIPIENT)
        signature = 'Leg(address,(address,uint256),(address,address[])[])'
        data = encode(
            ['address', '(address,uint256)', '(address,address[])[]'],
            [TEST_ADDRESS, (token, 5), [(CONTRACT_ADDRESS, [token, TEST_ADDRESS])]]
        )

        event = EventDecoder(self.LEG_ABI).decode_log(make_log([Web3.keccak(text=signature)], data))

        assert event.fields['who'] == TEST_ADDRESS
        assert event.fields['leg'] == (token, 5)
        assert event.fields['route'] == [(CONTRACT_ADDRESS, [token, TEST_ADDRESS])]


class TestSignatures:
    """Test canonical signature construction"""

    def test_tuple_expansion(self):
        """Tuple parameters expand to their component types"""
        event_abi = {
            'name': 'Order',
            'inputs': [
                {'name': 'id', 'type': 'uint256'},
                {'name': 'legs', 'type': 'tuple[]', 'components': [
                    {'name': 'token', 'type': 'address'},
                    {'name': 'amount', 'type': 'uint128'}
                ]}
            ]
        }

        assert event_signature(event_abi) == 'Order(uint256,(address,uint128)[])'


class TestReceipts:
    """Test typed receipt views"""

    def test_hex_quantities(self):
        """Hex-string quantities from raw JSON-RPC are parsed"""
        receipt = Receipt.from_rpc({
            'transactionHash': '0x' + 'aa' * 32,
            'blockNumber': '0x2a',
            'blockHash': '0x' + 'bb' * 32,
            'status': '0x1',
            'gasUsed': '0x5208',
            'effectiveGasPrice': '0x78',
            'contractAddress': None,
            'logs': [make_log([b'\x01' * 32])]
        })

        assert receipt.block_number == 42
        assert receipt.gas_used == 21000
        assert receipt.effective_gas_price == 120
        assert receipt.status is ReceiptStatus.SUCCESS
        assert isinstance(receipt.logs[0], LogEntry)
        assert receipt.transaction_hash_hex == '0x' + 'aa' * 32

    def test_contract_address_checksummed(self):
        """Deployment receipts expose a checksummed address"""
        receipt = Receipt.from_rpc({
            'transactionHash': b'\xaa' * 32,
            'blockNumber': 1,
            'blockHash': b'\xbb' * 32,
            'status': 0,
            'gasUsed': 50000,
            'contractAddress': CONTRACT_ADDRESS.lower()
        })

        assert receipt.contract_address == CONTRACT_ADDRESS
        assert not receipt.succeeded
        assert receipt.logs == ()

    def test_fee_and_position(self):
        """Fee uses the effective price, falling back to the transaction's price"""
        raw = {
            'transactionHash': b'\xaa' * 32,
            'blockNumber': 7,
            'blockHash': b'\xbb' * 32,
            'status': 1,
            'gasUsed': 21000,
            'transactionIndex': '0x2'
        }

        legacy = Receipt.from_rpc(raw)
        assert legacy.transaction_index == 2
        assert legacy.fee_wei() is None
        assert legacy.fee_wei(gas_price=120) == 2520000

        priced = Receipt.from_rpc(dict(raw, effectiveGasPrice=100))
        assert priced.fee_wei(gas_price=120) == 2100000
