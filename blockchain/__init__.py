"""
Blockchain Interaction Package
Handles node access, transaction building, signing, submission and receipts

Modules are imported directly (e.g. blockchain.transaction_builder) since
utils.gas_calculator and the builder depend on each other's types.
"""
