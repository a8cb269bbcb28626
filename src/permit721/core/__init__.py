"""
permit721 Core Module

Core functionality for the permit ledger:
- Execution environment and atomic invocations
- EIP-712 typed data hashing
- Signature recovery and contract-wallet validation
- Token contracts
"""

__all__ = []
