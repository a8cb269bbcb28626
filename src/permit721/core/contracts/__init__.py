"""
permit721 Contracts.

This module provides:
- ERC721Token: ownership ledger with single-delegate approvals
- ERC721PermitToken: ERC721 with EIP-712 signature-based approvals
- SmartWallet: ERC-1271 contract wallet that can hold tokens
"""

from .erc721 import ERC721Token, NFTEvent
from .erc721_permit import ERC721PermitToken
from .receiver import check_on_erc721_received
from .smart_wallet import ReceivedToken, SmartWallet

__all__ = [
    # Token Standards
    "ERC721Token",
    "ERC721PermitToken",
    "NFTEvent",
    "check_on_erc721_received",
    # Wallets
    "SmartWallet",
    "ReceivedToken",
]
