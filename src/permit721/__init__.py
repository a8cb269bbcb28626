"""
permit721 - ERC721 ownership ledger with signature-based approvals

Token owners authorize an approval for a single token by signing an EIP-712
"Permit" message off-line; anyone can redeem it later in one step.

Main Components:
- Ledger: ownership, balances and single-delegate approvals (ERC721)
- Permit: per-token nonces, domain separator and dual-path signature checks
- Chain: execution environment (chain id, clock, accounts, atomicity)
- Wallet: off-line permit signing helpers
"""

__version__ = "0.1.0"
__author__ = "permit721 developers"

__all__ = []
