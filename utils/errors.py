"""
Engine Errors
Failure taxonomy for every stage of the transaction pipeline
"""


class TransactionEngineError(Exception):
    """Base class for all engine errors"""

    retryable = False


class ConfigError(TransactionEngineError):
    """Configuration file or environment is invalid"""


class InvalidKeyMaterial(TransactionEngineError):
    """Private key is not a valid secp256k1 scalar"""


class GasEstimationUnavailable(TransactionEngineError):
    """Node could not supply a usable gas price"""


class NonceQueryFailed(TransactionEngineError):
    """Pending transaction count could not be read from the node"""


class MalformedIntent(TransactionEngineError):
    """Intent failed validation before a transaction was built"""


class SigningFailed(TransactionEngineError):
    """Transaction could not be signed with the supplied identity"""


class NodeRequestFailed(TransactionEngineError):
    """An RPC request failed outside the stages with their own error type"""


class SubmissionError(TransactionEngineError):
    """
    Node refused a raw transaction

    Attributes:
        node_message: Error message reported by the node (if any)
    """

    def __init__(self, message: str, node_message: str = ""):
        super().__init__(message)
        self.node_message = node_message


class InsufficientFunds(SubmissionError):
    """Balance is below value + maximum fee"""


class Underpriced(SubmissionError):
    """Gas price is below the node's minimum"""

    retryable = True


class NonceTooLow(SubmissionError):
    """Nonce was already used by a mined or pending transaction"""

    retryable = True


class NonceGap(SubmissionError):
    """Nonce is ahead of the account's next expected nonce"""

    retryable = True


class Rejected(SubmissionError):
    """Generic node refusal"""


class TimedOut(TransactionEngineError):
    """Receipt did not appear before the wait deadline"""


class Cancelled(TransactionEngineError):
    """Wait was cancelled before a receipt appeared"""


class EventDecodeError(TransactionEngineError):
    """
    A single log entry matched an event but could not be decoded

    Attributes:
        log_index: Position of the entry in the decoded sequence
        event_name: Name of the matched event
    """

    def __init__(self, message: str, log_index: int = -1, event_name: str = ""):
        super().__init__(message)
        self.log_index = log_index
        self.event_name = event_name
