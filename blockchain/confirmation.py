"""
Confirmation Waiter
Polls the node for a receipt until mined, timed out or cancelled
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from web3 import Web3
from loguru import logger

from utils.errors import Cancelled, NodeRequestFailed, TimedOut
from .receipts import Receipt, ReceiptStatus
from .submitter import TransactionHandle


class WaitState(Enum):
    """Lifecycle of a broadcast transaction as seen by the waiter"""
    SUBMITTED = 'submitted'
    PENDING = 'pending'
    MINED_SUCCESS = 'mined_success'
    MINED_REVERTED = 'mined_reverted'
    TIMED_OUT = 'timed_out'
    CANCELLED = 'cancelled'


FINAL_STATES = frozenset({
    WaitState.MINED_SUCCESS,
    WaitState.MINED_REVERTED,
    WaitState.TIMED_OUT,
    WaitState.CANCELLED
})


@dataclass(frozen=True)
class WaitResult:
    """Outcome of a wait; receipt is None unless mined"""
    tx_hash: bytes
    state: WaitState
    receipt: Optional[Receipt]
    elapsed: float
    polls: int

    @property
    def mined(self) -> bool:
        return self.state in (WaitState.MINED_SUCCESS, WaitState.MINED_REVERTED)

    def require_receipt(self) -> Receipt:
        """
        Return the receipt or raise for unresolved outcomes

        Raises:
            TimedOut: If the deadline passed first
            Cancelled: If the wait was cancelled
        """
        tx = Web3.to_hex(self.tx_hash)

        if self.state is WaitState.TIMED_OUT:
            raise TimedOut(f"No receipt for {tx} after {self.elapsed:.1f}s; fate unknown")

        if self.state is WaitState.CANCELLED:
            raise Cancelled(f"Wait for {tx} cancelled after {self.elapsed:.1f}s; fate unknown")

        return self.receipt


class ConfirmationWaiter:
    """
    Receipt polling state machine

    SUBMITTED -> PENDING -> MINED_SUCCESS | MINED_REVERTED | TIMED_OUT | CANCELLED

    Cancellation and the deadline are checked every tick, and the final sleep
    is clipped to the time left, so a wait ends within timeout plus one poll.
    Without an injected sleep the waiter sleeps on the cancellation token, so
    cancelling wakes it at once.
    Nothing is resubmitted or repriced on timeout.
    """

    def __init__(
        self,
        node,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None
    ):
        """
        Initialize Confirmation Waiter

        Args:
            node: Chain node
            clock: Monotonic time source in seconds
            sleep: Blocking sleep function; None sleeps in real time and
                wakes early on cancellation
        """
        self.node = node
        self.clock = clock
        self.sleep = sleep

    def wait(
        self,
        handle: Union[TransactionHandle, bytes, str],
        poll_interval: float = 1.0,
        timeout: float = 120.0,
        cancel_token=None
    ) -> WaitResult:
        """
        Wait for a transaction to be mined

        Args:
            handle: TransactionHandle or transaction hash
            poll_interval: Seconds between receipt queries
            timeout: Seconds before giving up
            cancel_token: Optional CancellationToken

        Returns:
            WaitResult (timeouts and cancellation are not raised)

        Raises:
            NodeRequestFailed: If a receipt query fails or returns a malformed receipt
        """
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if timeout < 0:
            raise ValueError("timeout cannot be negative")

        if isinstance(handle, TransactionHandle):
            tx_hash = handle.hash
        elif isinstance(handle, str):
            tx_hash = bytes(Web3.to_bytes(hexstr=handle))
        else:
            tx_hash = bytes(handle)
        tx_hex = Web3.to_hex(tx_hash)

        start = self.clock()
        state = WaitState.SUBMITTED
        polls = 0

        logger.info(f"Waiting for {tx_hex} (poll {poll_interval}s, timeout {timeout}s)")

        while True:
            if cancel_token is not None and cancel_token.is_cancelled():
                state = WaitState.CANCELLED
                logger.warning(f"Wait for {tx_hex} cancelled after {polls} polls")
                return WaitResult(tx_hash, state, None, self.clock() - start, polls)

            try:
                raw_receipt = self.node.get_transaction_receipt(tx_hash)
            except Exception as e:
                logger.error(f"Error polling receipt for {tx_hex}: {e}")
                raise NodeRequestFailed(f"Receipt query failed for {tx_hex}: {e}") from e
            polls += 1

            if raw_receipt:
                try:
                    receipt = Receipt.from_rpc(raw_receipt)
                except (KeyError, TypeError, ValueError) as e:
                    raise NodeRequestFailed(f"Malformed receipt for {tx_hex}: {e}") from e

                if receipt.status is ReceiptStatus.SUCCESS:
                    state = WaitState.MINED_SUCCESS
                    logger.success(
                        f"Transaction mined: {tx_hex} in block {receipt.block_number} "
                        f"(gas used {receipt.gas_used})"
                    )
                else:
                    state = WaitState.MINED_REVERTED
                    logger.warning(f"Transaction reverted: {tx_hex} in block {receipt.block_number}")

                return WaitResult(tx_hash, state, receipt, self.clock() - start, polls)

            state = WaitState.PENDING
            elapsed = self.clock() - start

            if elapsed >= timeout:
                state = WaitState.TIMED_OUT
                logger.warning(f"Timed out waiting for {tx_hex} after {elapsed:.1f}s")
                return WaitResult(tx_hash, state, None, elapsed, polls)

            logger.debug(f"{tx_hex} pending ({polls} polls, {elapsed:.1f}s)")
            self._pause(min(poll_interval, timeout - elapsed), cancel_token)

    def _pause(self, delay: float, cancel_token=None):
        if self.sleep is not None:
            self.sleep(delay)
        elif cancel_token is not None:
            cancel_token.wait(delay)
        else:
            time.sleep(delay)
