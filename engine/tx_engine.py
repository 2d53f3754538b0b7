"""
Transaction Engine - Core orchestration logic
Runs an intent through pricing, sequencing, signing, submission and confirmation
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from web3 import Web3
from loguru import logger

from blockchain.confirmation import ConfirmationWaiter, WaitResult
from blockchain.event_decoder import DecodedEvent, EventDecoder
from blockchain.intents import Call, Deploy, IntentKind, PendingIntent, Transfer
from blockchain.nonce_manager import NonceManager
from blockchain.receipts import Receipt
from blockchain.signer import TransactionSigner
from blockchain.submitter import TransactionHandle, TransactionSubmitter
from blockchain.transaction_builder import TransactionBuilder, UnsignedTransaction
from utils.errors import InsufficientFunds, MalformedIntent, NodeRequestFailed, TransactionEngineError
from utils.gas_calculator import GasCalculator, GasQuote


@dataclass(frozen=True)
class ExecutionResult:
    """Everything known about one executed intent"""
    handle: TransactionHandle
    quote: GasQuote
    wait: Optional[WaitResult] = None
    events: List[DecodedEvent] = field(default_factory=list)

    @property
    def receipt(self) -> Optional[Receipt]:
        return self.wait.receipt if self.wait is not None else None


class TransactionEngine:
    """
    Sequential transaction pipeline

    nonce -> gas quote -> build -> funds check -> sign -> submit -> wait -> decode

    A failure at any stage aborts the remaining stages and propagates to the
    caller. Nothing is retried or repriced automatically. Nonces come from
    the node's pending view, so one engine must be the only writer for an
    account while a transaction is in flight.
    """

    def __init__(
        self,
        node,
        config: Dict,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None
    ):
        """
        Initialize Transaction Engine

        Args:
            node: Chain node
            config: Engine configuration (see utils.config)
            clock: Monotonic time source for confirmation waits
            sleep: Sleep function for confirmation waits; None sleeps in real
                time and wakes early on cancellation
        """
        self.node = node
        self.config = config

        self.nonce_manager = NonceManager(node)
        self.gas_calculator = GasCalculator(node, config)
        self.tx_builder = TransactionBuilder()
        self.signer = TransactionSigner()
        self.submitter = TransactionSubmitter(node)
        self.waiter = ConfirmationWaiter(node, clock=clock, sleep=sleep)

        self.min_balance_wei = config['gas_settings']['min_balance_wei']
        self.poll_interval = config['confirmation']['poll_interval_seconds']
        self.timeout = config['confirmation']['timeout_seconds']

        self._chain_id: Optional[int] = None

        self.stats = {
            'submitted': 0,
            'mined_success': 0,
            'mined_reverted': 0,
            'unresolved': 0,
            'failed': 0,
            'gas_spent_wei': 0
        }

    @property
    def chain_id(self) -> int:
        """
        Chain identifier, read once per engine

        Raises:
            NodeRequestFailed: If the node cannot report it
        """
        if self._chain_id is None:
            try:
                self._chain_id = self.node.get_chain_id()
            except Exception as e:
                logger.error(f"Error getting chain id: {e}")
                raise NodeRequestFailed(f"Cannot read chain id: {e}") from e

            logger.info(f"Connected to chain {self._chain_id}")

        return self._chain_id

    def check_funds(self, unsigned: UnsignedTransaction):
        """
        Pre-flight balance check

        Requires balance >= value + gas price * gas limit. The configured
        min_balance_wei is a separate guard on the balance alone.

        Raises:
            InsufficientFunds: If the account cannot cover the transaction
                or holds less than the configured floor
            NodeRequestFailed: If the balance cannot be read
        """
        try:
            balance = self.node.get_balance(unsigned.sender)
        except Exception as e:
            logger.error(f"Error reading balance for {unsigned.sender}: {e}")
            raise NodeRequestFailed(f"Cannot read balance for {unsigned.sender}: {e}") from e

        if balance < self.min_balance_wei:
            logger.error(
                f"Balance of {unsigned.sender} is {balance} wei, "
                f"below the {self.min_balance_wei} wei floor"
            )
            raise InsufficientFunds(
                f"Balance {balance} wei is below the configured floor of {self.min_balance_wei} wei"
            )

        required = unsigned.total_cost

        if balance < required:
            logger.error(
                f"Insufficient funds for {unsigned.sender}: balance {balance} wei, "
                f"need {required} wei"
            )
            raise InsufficientFunds(
                f"Balance {balance} wei is below required {required} wei "
                f"(value {unsigned.value} + max fee {unsigned.gas_quote.max_fee})"
            )

        logger.debug(f"Funds check passed for {unsigned.sender}: {balance} >= {required}")

    def execute(
        self,
        identity,
        intent: PendingIntent,
        gas_limit: Optional[int] = None,
        wait: bool = True,
        cancel_token=None,
        interface: Optional[List[Dict[str, Any]]] = None
    ) -> ExecutionResult:
        """
        Execute one intent end to end

        Args:
            identity: AccountIdentity of the sender
            intent: Transfer, Deploy or Call
            gas_limit: Override for the default gas limit
            wait: Wait for a receipt after submission
            cancel_token: Optional CancellationToken for the wait
            interface: ABI used to decode receipt logs

        Returns:
            ExecutionResult; a timed-out or cancelled wait is reported in
            result.wait.state, not raised

        Raises:
            TransactionEngineError: From the first failing stage
        """
        if not isinstance(getattr(intent, 'kind', None), IntentKind):
            raise MalformedIntent(f"Unknown intent: {intent!r}")

        try:
            chain_id = self.chain_id
            nonce = self.nonce_manager.next_nonce(identity.address)
            quote = self.gas_calculator.quote(identity.address, intent.kind, gas_limit)
            unsigned = self.tx_builder.build(identity, intent, nonce, quote, chain_id)
            self.check_funds(unsigned)
            signed = self.signer.sign(unsigned, identity)
            handle = self.submitter.submit(signed)
        except TransactionEngineError:
            self.stats['failed'] += 1
            raise

        self.stats['submitted'] += 1

        if not wait:
            return ExecutionResult(handle=handle, quote=quote)

        wait_result = self.waiter.wait(
            handle,
            poll_interval=self.poll_interval,
            timeout=self.timeout,
            cancel_token=cancel_token
        )
        self._record(wait_result)

        events: List[DecodedEvent] = []
        if wait_result.receipt is not None and interface:
            events = EventDecoder(interface).decode(wait_result.receipt.logs)

        return ExecutionResult(handle=handle, quote=quote, wait=wait_result, events=events)

    def _record(self, wait_result: WaitResult):
        receipt = wait_result.receipt

        if receipt is None:
            self.stats['unresolved'] += 1
            return

        if receipt.succeeded:
            self.stats['mined_success'] += 1
        else:
            self.stats['mined_reverted'] += 1

        fee = receipt.fee_wei()
        if fee is not None:
            self.stats['gas_spent_wei'] += fee

    def transfer(self, identity, to: str, value: int, **kwargs) -> ExecutionResult:
        """Send value to an address"""
        return self.execute(identity, Transfer(to=to, value=value), **kwargs)

    def deploy(
        self,
        identity,
        bytecode: bytes,
        constructor_args: Sequence[Any] = (),
        constructor_types: Sequence[str] = (),
        value: int = 0,
        **kwargs
    ) -> ExecutionResult:
        """Deploy a contract; the new address is in result.receipt.contract_address"""
        intent = Deploy(
            bytecode=bytecode,
            constructor_args=tuple(constructor_args),
            constructor_types=tuple(constructor_types),
            value=value
        )
        return self.execute(identity, intent, **kwargs)

    def call(
        self,
        identity,
        contract_address: str,
        method_signature: str,
        args: Sequence[Any] = (),
        value: int = 0,
        **kwargs
    ) -> ExecutionResult:
        """Invoke a state-changing contract method"""
        intent = Call(
            contract_address=contract_address,
            method_signature=method_signature,
            args=tuple(args),
            value=value
        )
        return self.execute(identity, intent, **kwargs)

    def fetch_events(
        self,
        address: str,
        receipt: Receipt,
        abi: List[Dict[str, Any]],
        event_name: Optional[str] = None
    ) -> Tuple[List[DecodedEvent], list]:
        """
        Query and decode a contract's logs over a receipt's block

        Args:
            address: Emitting contract
            receipt: Receipt whose block bounds the query
            abi: Contract interface description
            event_name: Restrict to one event (topic filter)

        Returns:
            (decoded events, per-entry decode errors)

        Raises:
            NodeRequestFailed: If the log query fails
            KeyError: If event_name is not in the ABI
        """
        decoder = EventDecoder(abi)
        topics = [Web3.to_hex(decoder.topic_for(event_name))] if event_name else None

        try:
            logs = self.node.get_logs(
                address=address,
                topics=topics,
                from_block=receipt.block_number,
                to_block=receipt.block_number
            )
        except Exception as e:
            logger.error(f"Error querying logs for {address}: {e}")
            raise NodeRequestFailed(f"Log query failed for {address}: {e}") from e

        logger.debug(f"Fetched {len(logs)} logs for {address} in block {receipt.block_number}")
        return decoder.decode_all(logs)

    def get_stats(self) -> Dict:
        """Get engine statistics"""
        return dict(self.stats, chain_id=self._chain_id)
