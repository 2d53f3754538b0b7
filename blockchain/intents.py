"""
Pending Intents
The three on-chain actions the engine can perform
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Tuple, Union


class IntentKind(Enum):
    """Tag identifying the active intent variant"""
    TRANSFER = 'transfer'
    DEPLOY = 'deploy'
    CALL = 'call'


@dataclass(frozen=True)
class Transfer:
    """Plain value transfer"""
    to: str
    value: int
    kind: IntentKind = field(default=IntentKind.TRANSFER, init=False)


@dataclass(frozen=True)
class Deploy:
    """
    Contract deployment

    constructor_types lists the ABI types matching constructor_args,
    e.g. ('uint256', 'address').
    """
    bytecode: bytes
    constructor_args: Tuple[Any, ...] = ()
    constructor_types: Tuple[str, ...] = ()
    value: int = 0
    kind: IntentKind = field(default=IntentKind.DEPLOY, init=False)


@dataclass(frozen=True)
class Call:
    """
    Contract method call

    method_signature is the canonical signature, e.g. 'setCount(uint256)';
    its 4-byte selector and parameter types are derived from it.
    """
    contract_address: str
    method_signature: str
    args: Tuple[Any, ...] = ()
    value: int = 0
    kind: IntentKind = field(default=IntentKind.CALL, init=False)


PendingIntent = Union[Transfer, Deploy, Call]
