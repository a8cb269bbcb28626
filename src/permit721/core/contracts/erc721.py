"""
ERC721 Non-Fungible Token ownership ledger.

Provides the ledger half of an EIP-721 token:
- Ownership and balances (ownerOf, balanceOf)
- Single-delegate approvals (approve, getApproved)
- Transfers (transferFrom, safeTransferFrom)
- Minting and burning primitives for collection contracts

Security features:
- Owner verification on all transfers
- Zero address checks
- Safe transfer receiver checks
- All-or-nothing invocations (see Chain.atomic)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from permit721.core.chain import UINT256_MAX, ZERO_ADDRESS, Chain, atomic_call, normalize_address
from permit721.core.contracts.receiver import check_on_erc721_received
from permit721.core.exceptions import (
    InvalidQuery,
    InvalidRecipient,
    SelfApproval,
    TokenAlreadyExists,
    TokenNotFound,
    TransferSourceMismatch,
    Unauthorized,
)
from permit721.core.interfaces import ERC165_INTERFACE_ID, as_interface_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NFTEvent:
    """Represents an ERC721 event."""

    event_type: str  # "Transfer", "Approval"
    from_address: str  # Transfer: from / Approval: owner
    to_address: str  # Transfer: to / Approval: approved
    token_id: int
    block_timestamp: int = 0


@dataclass(eq=False)
class ERC721Token:
    """
    ERC721 ownership ledger.

    Invariants:
    - a token exists iff it has a non-zero owner
    - balances[a] equals the number of tokens owned by a
    - an approval is cleared on every ownership change

    Callers are passed explicitly as the first argument of state-changing
    functions (the message sender).
    """

    # Collection metadata
    name: str
    symbol: str

    # Execution environment
    chain: Chain = field(default_factory=Chain, repr=False)

    # Contract address (derived on deployment when empty)
    address: str = ""

    # Token state
    owners: dict[int, str] = field(default_factory=dict)  # tokenId -> owner
    balances: dict[str, int] = field(default_factory=dict)  # owner -> count
    token_approvals: dict[int, str] = field(default_factory=dict)  # tokenId -> approved

    # Events
    events: list[NFTEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Deploy the contract onto its chain."""
        self.address = self.chain.deploy(self, self.address or None)

    # ==================== View Functions ====================

    def balance_of(self, owner: str) -> int:
        """
        Get number of NFTs owned by an address.

        Raises:
            InvalidQuery: If owner is the zero address
        """
        owner_norm = normalize_address(owner)
        if owner_norm == ZERO_ADDRESS:
            raise InvalidQuery()
        return self.balances.get(owner_norm, 0)

    def owner_of(self, token_id: int) -> str:
        """
        Get the owner of an NFT.

        Raises:
            TokenNotFound: If token doesn't exist
        """
        owner = self.owners.get(token_id)
        if not owner:
            raise TokenNotFound()
        return owner

    def exists(self, token_id: int) -> bool:
        return token_id in self.owners

    def get_approved(self, token_id: int) -> str:
        """
        Get approved address for a token.

        Returns:
            Approved address (zero if none)
        """
        self._require_minted(token_id)
        return self.token_approvals.get(token_id, ZERO_ADDRESS)

    def is_approved_or_owner(self, spender: str, token_id: int) -> bool:
        """Check if spender is owner or approved delegate of the token."""
        owner = self.owner_of(token_id)
        spender_norm = normalize_address(spender)
        return spender_norm == owner or spender_norm == self.get_approved(token_id)

    def supports_interface(self, interface_id: Union[bytes, str]) -> bool:
        """ERC-165 interface detection."""
        return as_interface_id(interface_id) == ERC165_INTERFACE_ID

    # ==================== State-Changing Functions ====================

    @atomic_call
    def approve(self, caller: str, to: str, token_id: int) -> bool:
        """
        Approve an address to transfer a specific token.

        Args:
            caller: Message sender (must be the owner)
            to: Address to approve (zero address revokes)
            token_id: Token ID

        Returns:
            True if successful
        """
        owner = self.owner_of(token_id)
        to_norm = normalize_address(to)

        if to_norm == owner:
            raise SelfApproval()

        if normalize_address(caller) != owner:
            raise Unauthorized("ERC721: approve caller is not token owner")

        self._approve(to_norm, token_id)
        return True

    @atomic_call
    def transfer_from(
        self, caller: str, from_addr: str, to_addr: str, token_id: int
    ) -> bool:
        """
        Transfer an NFT.

        Args:
            caller: Message sender (owner or approved)
            from_addr: Current owner
            to_addr: New owner
            token_id: Token ID

        Returns:
            True if successful
        """
        self._require_approved_or_owner(caller, token_id)
        self._transfer(from_addr, to_addr, token_id)
        self._record_transfer("plain")
        return True

    @atomic_call
    def safe_transfer_from(
        self,
        caller: str,
        from_addr: str,
        to_addr: str,
        token_id: int,
        data: bytes = b"",
    ) -> bool:
        """
        Safely transfer an NFT (checks receiver).

        The transfer is rolled back if a contract recipient does not accept
        the token.

        Args:
            caller: Message sender (owner or approved); passed to the receiver as operator
            from_addr: Current owner
            to_addr: New owner
            token_id: Token ID
            data: Optional data for receiver

        Returns:
            True if successful
        """
        self._require_approved_or_owner(caller, token_id)
        self._transfer(from_addr, to_addr, token_id)
        check_on_erc721_received(
            self.chain, normalize_address(caller), normalize_address(from_addr), to_addr, token_id, data
        )
        self._record_transfer("safe")
        return True

    def _transfer(self, from_addr: str, to_addr: str, token_id: int) -> None:
        """Internal transfer logic; authorization is checked by the caller."""
        from_norm = normalize_address(from_addr)
        to_norm = normalize_address(to_addr)

        owner = self.owner_of(token_id)
        if owner != from_norm:
            raise TransferSourceMismatch()

        if to_norm == ZERO_ADDRESS:
            raise InvalidRecipient("ERC721: transfer to the zero address")

        # Clear approval
        self._approve(ZERO_ADDRESS, token_id)

        self.balances[from_norm] -= 1
        self.balances[to_norm] = self.balances.get(to_norm, 0) + 1
        self.owners[token_id] = to_norm

        self._emit_transfer(from_norm, to_norm, token_id)

        logger.debug(
            "ERC721 transfer",
            extra={
                "event": "erc721.transfer",
                "collection": self.symbol,
                "token_id": token_id,
                "from": from_norm[:10],
                "to": to_norm[:10],
            }
        )

    # ==================== Minting & Burning ====================

    @atomic_call
    def mint(self, to: str, token_id: int) -> int:
        """
        Mint a new NFT.

        Minting policy (who may mint, which ids) belongs to the collection
        built on top of this ledger.

        Args:
            to: Recipient address
            token_id: Caller-assigned token ID

        Returns:
            Minted token ID

        Raises:
            ValueError: If `token_id` is not a uint256
            InvalidRecipient: If `to` is the zero address
            TokenAlreadyExists: If the token already has an owner
        """
        self._mint(to, token_id)
        return token_id

    @atomic_call
    def safe_mint(self, operator: str, to: str, token_id: int, data: bytes = b"") -> int:
        """Mint a new NFT and require a contract recipient to accept it."""
        self._mint(to, token_id)
        check_on_erc721_received(
            self.chain, normalize_address(operator), ZERO_ADDRESS, to, token_id, data
        )
        return token_id

    def _mint(self, to: str, token_id: int) -> None:
        if not 0 <= token_id <= UINT256_MAX:
            raise ValueError("token id must be a uint256")

        to_norm = normalize_address(to)
        if to_norm == ZERO_ADDRESS:
            raise InvalidRecipient("ERC721: mint to the zero address")

        if self.exists(token_id):
            raise TokenAlreadyExists()

        self.owners[token_id] = to_norm
        self.balances[to_norm] = self.balances.get(to_norm, 0) + 1

        self._emit_transfer(ZERO_ADDRESS, to_norm, token_id)

        logger.info(
            "ERC721 mint",
            extra={
                "event": "erc721.mint",
                "collection": self.symbol,
                "token_id": token_id,
                "to": to_norm[:10],
            }
        )

    @atomic_call
    def burn(self, token_id: int) -> bool:
        """
        Burn an NFT.

        Burning policy (who may burn) belongs to the collection built on top
        of this ledger.

        Raises:
            TokenNotFound: If the token doesn't exist
        """
        owner = self.owner_of(token_id)

        # Clear approval
        self._approve(ZERO_ADDRESS, token_id)

        self.balances[owner] -= 1
        del self.owners[token_id]

        self._emit_transfer(owner, ZERO_ADDRESS, token_id)

        logger.info(
            "ERC721 burn",
            extra={
                "event": "erc721.burn",
                "collection": self.symbol,
                "token_id": token_id,
            }
        )

        return True

    # ==================== Helpers ====================

    def _approve(self, to: str, token_id: int) -> None:
        """Overwrite the approved delegate and emit Approval."""
        if to == ZERO_ADDRESS:
            self.token_approvals.pop(token_id, None)
        else:
            self.token_approvals[token_id] = to
        self._emit_approval(self.owner_of(token_id), to, token_id)

    def _require_minted(self, token_id: int) -> None:
        """Require token exists."""
        if not self.exists(token_id):
            raise TokenNotFound()

    def _require_approved_or_owner(self, caller: str, token_id: int) -> None:
        if not self.is_approved_or_owner(caller, token_id):
            raise Unauthorized()

    def _record_transfer(self, kind: str) -> None:
        metrics = self.chain.metrics
        if metrics:
            self.chain.on_commit(lambda: metrics.record_transfer(kind))

    def _emit_transfer(self, from_addr: str, to_addr: str, token_id: int) -> None:
        """Emit Transfer event."""
        self.events.append(
            NFTEvent(
                event_type="Transfer",
                from_address=from_addr,
                to_address=to_addr,
                token_id=token_id,
                block_timestamp=self.chain.timestamp(),
            )
        )

    def _emit_approval(self, owner: str, approved: str, token_id: int) -> None:
        """Emit Approval event."""
        self.events.append(
            NFTEvent(
                event_type="Approval",
                from_address=owner,
                to_address=approved,
                token_id=token_id,
                block_timestamp=self.chain.timestamp(),
            )
        )

    # ==================== Snapshots & Serialization ====================

    def snapshot(self) -> Dict[str, Any]:
        """Capture ledger state for rollback; events are append-only so only their count is kept."""
        return {"state": self.to_dict(), "event_count": len(self.events)}

    def restore(self, snapshot: Dict[str, Any]) -> None:
        """Restore ledger state captured by snapshot()."""
        self._load_state(snapshot["state"])
        del self.events[snapshot["event_count"]:]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize token state to dictionary."""
        return {
            "name": self.name,
            "symbol": self.symbol,
            "address": self.address,
            "owners": dict(self.owners),
            "balances": dict(self.balances),
            "token_approvals": dict(self.token_approvals),
        }

    def _load_state(self, data: Dict[str, Any]) -> None:
        self.owners = {int(k): v for k, v in data.get("owners", {}).items()}
        self.balances = dict(data.get("balances", {}))
        self.token_approvals = {
            int(k): v for k, v in data.get("token_approvals", {}).items()
        }

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], chain: Optional[Chain] = None
    ) -> "ERC721Token":
        """Deserialize token state from dictionary, deploying onto `chain`."""
        token = cls(
            name=data["name"],
            symbol=data["symbol"],
            chain=chain or Chain(),
            address=data.get("address", ""),
        )
        token._load_state(data)
        return token
