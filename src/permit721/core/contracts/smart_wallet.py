"""
Smart contract wallet with ERC-1271 signature validation.

A SmartWallet is a contract account controlled by one externally owned key.
It can:
- Hold NFTs (implements onERC721Received)
- Authorize permits on its own behalf (implements isValidSignature)
- Execute token calls as the message sender, on its owner's request

Security: signatures are valid for the wallet only when they recover (ECDSA,
secp256k1) to the wallet's owner key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from permit721.core.chain import Chain, atomic_call, normalize_address
from permit721.core.exceptions import ContractRevert
from permit721.core.interfaces import ERC721_RECEIVED
from permit721.core.signatures import (
    ERC1271_INVALID_VALUE,
    ERC1271_MAGIC_VALUE,
    recover_signer,
)

logger = logging.getLogger(__name__)

# Token functions a wallet may call on its owner's behalf
EXECUTABLE_METHODS = frozenset(
    {"approve", "transfer_from", "safe_transfer_from", "safe_transfer_from_with_permit"}
)


@dataclass(frozen=True)
class ReceivedToken:
    """A token accepted through onERC721Received."""

    operator: str
    from_address: str
    token_id: int
    data: bytes = b""


@dataclass(eq=False)
class SmartWallet:
    """
    Contract wallet owned by a single key.

    Set `accept_tokens` to False to make the wallet revert safe transfers.
    """

    owner: str
    chain: Chain = field(repr=False)
    address: str = ""
    accept_tokens: bool = True

    # Account state
    nonce: int = 0
    received_tokens: list[ReceivedToken] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.owner = normalize_address(self.owner)
        self.address = self.chain.deploy(self, self.address or None)

    # ==================== ERC-1271 ====================

    def is_valid_signature(self, digest: bytes, signature: bytes) -> bytes:
        """Return the ERC-1271 magic value if the owner signed `digest`."""
        signer = recover_signer(digest, signature)
        if signer is not None and signer == self.owner:
            return ERC1271_MAGIC_VALUE

        logger.debug(
            "Wallet signature rejected",
            extra={
                "event": "wallet.signature_rejected",
                "wallet": self.address[:10],
                "signer": signer[:10] if signer else "none",
            }
        )
        return ERC1271_INVALID_VALUE

    # ==================== ERC721 Receiver ====================

    def on_erc721_received(
        self, operator: str, from_addr: str, token_id: int, data: bytes
    ) -> bytes:
        """Accept a token sent through a safe transfer."""
        if not self.accept_tokens:
            raise ContractRevert("SmartWallet: token receipt disabled")

        self.received_tokens.append(
            ReceivedToken(
                operator=operator,
                from_address=from_addr,
                token_id=token_id,
                data=bytes(data),
            )
        )
        logger.info(
            "Wallet received token",
            extra={
                "event": "wallet.token_received",
                "wallet": self.address[:10],
                "token_id": token_id,
                "from": from_addr[:10],
            }
        )
        return ERC721_RECEIVED

    # ==================== Execution ====================

    @atomic_call
    def execute(self, caller: str, target: Any, method: str, *args: Any) -> Any:
        """
        Call a token function with this wallet as the message sender.

        Args:
            caller: Must be the wallet owner
            target: Token contract deployed on the same chain
            method: One of EXECUTABLE_METHODS
            *args: Arguments after the caller argument

        Returns:
            The called function's return value
        """
        self._require_owner(caller)
        if method not in EXECUTABLE_METHODS:
            raise ContractRevert(f"SmartWallet: method {method} not executable")
        target_address = getattr(target, "address", "")
        if not target_address or self.chain.resolve(target_address).code is not target:
            raise ContractRevert("SmartWallet: target is not a contract")

        self.nonce += 1
        result = getattr(target, method)(self.address, *args)

        logger.debug(
            "Wallet executed call",
            extra={
                "event": "wallet.execute",
                "wallet": self.address[:10],
                "target": target.address[:10],
                "method": method,
            }
        )
        return result

    # ==================== Internal ====================

    def _require_owner(self, caller: str) -> None:
        if normalize_address(caller) != self.owner:
            raise ContractRevert("SmartWallet: caller is not owner")

    def snapshot(self) -> Dict[str, Any]:
        return {"nonce": self.nonce, "received_count": len(self.received_tokens)}

    def restore(self, snapshot: Dict[str, Any]) -> None:
        self.nonce = snapshot["nonce"]
        del self.received_tokens[snapshot["received_count"]:]
