"""
Transaction Engine Package
Orchestrates identity, pricing, sequencing, submission and confirmation
"""

from .tx_engine import ExecutionResult, TransactionEngine

__all__ = ['ExecutionResult', 'TransactionEngine']
