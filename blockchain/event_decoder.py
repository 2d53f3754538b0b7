"""
Event Decoder
Maps raw receipt logs to typed events using a contract ABI
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from eth_abi import decode
from web3 import Web3
from loguru import logger

from utils.errors import EventDecodeError
from .receipts import LogEntry
from .transaction_builder import split_types


@dataclass(frozen=True)
class DecodedEvent:
    """Event decoded from one log entry"""
    name: str
    fields: Dict[str, Any]
    address: Optional[str] = None
    block_number: Optional[int] = None
    log_index: Optional[int] = None
    transaction_hash: Optional[bytes] = field(default=None, repr=False)


def canonical_type(param: Dict[str, Any]) -> str:
    """ABI type string, expanding tuple components"""
    typ = param['type']

    if typ.startswith('tuple'):
        inner = ','.join(canonical_type(component) for component in param.get('components', []))
        return f"({inner}){typ[len('tuple'):]}"

    return typ


def event_signature(event_abi: Dict[str, Any]) -> str:
    """Canonical event signature, e.g. 'Transfer(address,address,uint256)'"""
    types = ','.join(canonical_type(param) for param in event_abi.get('inputs', []))
    return f"{event_abi['name']}({types})"


def _is_dynamic(typ: str) -> bool:
    # Indexed dynamic values are stored as their keccak hash
    return typ in ('string', 'bytes') or typ.endswith(']') or typ.startswith('(')


def _normalize(typ: str, value: Any) -> Any:
    # Addresses come back checksummed at any depth
    if typ.endswith(']'):
        base = typ[:typ.rindex('[')]
        return [_normalize(base, item) for item in value]
    if typ.startswith('('):
        components = split_types(typ[1:-1])
        return tuple(_normalize(component, item) for component, item in zip(components, value))
    if typ == 'address':
        return Web3.to_checksum_address(value)
    return value


class EventDecoder:
    """
    Decodes logs for the events described in an ABI

    Logs whose first topic matches no described event are skipped. A log
    that matches but cannot be decoded yields an EventDecodeError for that
    entry only; sibling entries still decode.
    """

    def __init__(self, abi: List[Dict[str, Any]]):
        """
        Initialize Event Decoder

        Args:
            abi: Contract interface description (list of ABI entries)
        """
        self.events_by_topic: Dict[bytes, Dict[str, Any]] = {}

        for entry in abi:
            if entry.get('type') != 'event' or entry.get('anonymous'):
                continue
            topic = bytes(Web3.keccak(text=event_signature(entry)))
            self.events_by_topic[topic] = entry

        logger.debug(f"Event decoder ready with {len(self.events_by_topic)} events")

    def topic_for(self, name: str) -> bytes:
        """
        First-topic identifier of a named event

        Raises:
            KeyError: If the ABI has no such event
        """
        for topic, entry in self.events_by_topic.items():
            if entry['name'] == name:
                return topic
        raise KeyError(f"Event {name} not in interface description")

    def decode_log(self, log: Union[LogEntry, Dict[str, Any]], position: int = -1) -> Optional[DecodedEvent]:
        """
        Decode one log entry

        Args:
            log: LogEntry or raw node log dict
            position: Index of the entry within its sequence (for errors)

        Returns:
            DecodedEvent, or None if no described event matches

        Raises:
            EventDecodeError: If the entry matches an event but is malformed
        """
        if not isinstance(log, LogEntry):
            try:
                log = LogEntry.from_rpc(log)
            except (KeyError, TypeError, ValueError) as e:
                raise EventDecodeError(f"Malformed log entry: {e}", log_index=position) from e

        if not log.topics:
            return None

        event_abi = self.events_by_topic.get(log.topics[0])
        if event_abi is None:
            return None

        name = event_abi['name']
        inputs = event_abi.get('inputs', [])
        indexed = [i for i, param in enumerate(inputs) if param.get('indexed')]
        unindexed = [i for i, param in enumerate(inputs) if not param.get('indexed')]

        if len(log.topics) - 1 != len(indexed):
            raise EventDecodeError(
                f"{name} expects {len(indexed)} indexed topics, log has {len(log.topics) - 1}",
                log_index=position,
                event_name=name
            )

        values: Dict[int, Any] = {}

        try:
            for i, topic in zip(indexed, log.topics[1:]):
                typ = canonical_type(inputs[i])
                if _is_dynamic(typ):
                    values[i] = topic
                else:
                    values[i] = _normalize(typ, decode([typ], topic)[0])

            unindexed_types = [canonical_type(inputs[i]) for i in unindexed]
            decoded = decode(unindexed_types, log.data) if unindexed_types else ()
            if not unindexed_types and log.data:
                raise ValueError(f"unexpected {len(log.data)} data bytes")

            for i, typ, value in zip(unindexed, unindexed_types, decoded):
                values[i] = _normalize(typ, value)
        except Exception as e:
            raise EventDecodeError(
                f"Cannot decode {name}: {e}",
                log_index=position,
                event_name=name
            ) from e

        fields = {}
        for i, param in enumerate(inputs):
            fields[param.get('name') or f"arg{i}"] = values[i]

        return DecodedEvent(
            name=name,
            fields=fields,
            address=log.address,
            block_number=log.block_number,
            log_index=log.log_index,
            transaction_hash=log.transaction_hash
        )

    def decode_all(
        self,
        logs: Iterable[Union[LogEntry, Dict[str, Any]]]
    ) -> Tuple[List[DecodedEvent], List[EventDecodeError]]:
        """
        Decode a sequence of logs, collecting per-entry failures

        Returns:
            (decoded events in log order, decode errors)
        """
        events: List[DecodedEvent] = []
        errors: List[EventDecodeError] = []

        for position, log in enumerate(logs):
            try:
                event = self.decode_log(log, position)
            except EventDecodeError as e:
                logger.warning(f"Skipping undecodable log #{position}: {e}")
                errors.append(e)
                continue

            if event is not None:
                events.append(event)

        return events, errors

    def decode(self, logs: Iterable[Union[LogEntry, Dict[str, Any]]]) -> List[DecodedEvent]:
        """Decode a sequence of logs; undecodable entries are logged and left out"""
        events, _ = self.decode_all(logs)
        return events
