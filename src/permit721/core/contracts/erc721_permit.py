"""
ERC721 with Permit: signature-based approvals for single tokens.

A token owner (or its approved delegate) signs an EIP-712 message

    Permit(address spender,uint256 tokenId,uint256 nonce,uint256 deadline)

off-line. Anyone can redeem it with `permit`, making `spender` the approved
delegate of the token without a prior on-chain approval.

Replay protection:
- The nonce is per token, not per owner, and only advances on transfer. A
  permit is valid exactly while the token's live nonce equals the signed one.
- Redeeming a permit does not consume the nonce: the same signature can be
  redeemed again (re-approving the same spender) until the token moves.
- The domain separator binds name, version "1", chain id and this contract's
  address. It is cached for the chain id seen at deployment and recomputed
  whenever the live chain id differs.

Verification is dual-path: ECDSA recovery first (signer must be the owner or
approved delegate), then ERC-1271 validation against the owner when the owner
is a contract wallet.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Union

from permit721.core.chain import UINT256_MAX, atomic_call, normalize_address
from permit721.core.config import PERMIT_DOMAIN_VERSION
from permit721.core.contracts.erc721 import ERC721Token
from permit721.core.exceptions import InvalidPermitSignature, PermitExpired
from permit721.core.interfaces import PERMIT_INTERFACE_ID, as_interface_id
from permit721.core.signatures import (
    SignatureLike,
    first_accepting,
    is_valid_erc1271_signature,
    recover_signer,
)
from permit721.core.typed_signing import (
    PERMIT_TYPEHASH,
    hash_domain,
    hash_permit,
    permit_domain,
    typed_data_digest,
)

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ERC721PermitToken(ERC721Token):
    """
    ERC721 ledger with per-token nonces and EIP-712 permits.

    The permit engine only ever writes approvals; ownership changes go
    through the ledger's transfer path, which advances the nonce.
    """

    nonces: dict[int, int] = field(default_factory=dict)  # tokenId -> nonce

    # Domain context captured at deployment
    domain_chain_id: int = field(init=False, default=0)
    cached_domain_separator: bytes = field(init=False, default=b"", repr=False)

    def __post_init__(self) -> None:
        super().__post_init__()
        self.domain_chain_id = self.chain.chain_id
        self.cached_domain_separator = self._calculate_domain_separator(self.domain_chain_id)

    # ==================== Nonce & Domain ====================

    def get_nonce(self, token_id: int) -> int:
        """
        Current permit nonce of a token.

        Raises:
            TokenNotFound: If token doesn't exist
        """
        self._require_minted(token_id)
        return self.nonces.get(token_id, 0)

    def domain_separator(self) -> bytes:
        """
        EIP-712 domain separator for the live chain id.

        Returns the cached value while the chain id matches the one seen at
        deployment; otherwise computes a fresh one without storing it.
        """
        chain_id = self.chain.chain_id
        if chain_id == self.domain_chain_id:
            return self.cached_domain_separator
        return self._calculate_domain_separator(chain_id)

    def _calculate_domain_separator(self, chain_id: int) -> bytes:
        return hash_domain(
            permit_domain(self.name, chain_id, self.address, PERMIT_DOMAIN_VERSION)
        )

    @property
    def permit_typehash(self) -> bytes:
        return PERMIT_TYPEHASH

    def build_digest(self, spender: str, token_id: int, nonce: int, deadline: int) -> bytes:
        """Digest an off-line signer must sign for this permit."""
        return typed_data_digest(
            self.domain_separator(), hash_permit(spender, token_id, nonce, deadline)
        )

    def supports_interface(self, interface_id: Union[bytes, str]) -> bool:
        return (
            as_interface_id(interface_id) == PERMIT_INTERFACE_ID
            or super().supports_interface(interface_id)
        )

    # ==================== Permit ====================

    @atomic_call
    def permit(
        self,
        spender: str,
        token_id: int,
        deadline: int,
        signature: SignatureLike,
    ) -> bool:
        """
        Approve `spender` for `token_id` using an off-line signature.

        Args:
            spender: Address to approve
            token_id: Token ID
            deadline: Last valid block timestamp (inclusive)
            signature: 65-byte (or 64-byte compact) ECDSA signature, or
                whatever the owner's ERC-1271 wallet accepts

        Returns:
            True if successful

        Raises:
            PermitExpired: If the deadline has passed
            TokenNotFound: If token doesn't exist
            InvalidPermitSignature: If neither ECDSA nor ERC-1271 accepts the
                signature for the token's current nonce
        """
        now = self.chain.timestamp()
        if now > deadline:
            logger.warning(
                "Permit rejected: deadline expired",
                extra={
                    "event": "erc721.permit_rejected",
                    "collection": self.symbol,
                    "token_id": token_id,
                    "reason": "expired",
                    "deadline": deadline,
                    "now": now,
                }
            )
            self._record_permit("deadline", "rejected")
            raise PermitExpired()

        owner = self.owner_of(token_id)
        spender_norm = normalize_address(spender)

        # No uint256 message carries this deadline, so nothing can have signed it
        if deadline > UINT256_MAX:
            path = None
        else:
            digest = self.build_digest(spender_norm, token_id, self.get_nonce(token_id), deadline)
            path = first_accepting(
                (
                    ("ecdsa", lambda: self._signed_by_owner_or_approved(digest, signature, token_id)),
                    ("erc1271", lambda: is_valid_erc1271_signature(self.chain, owner, digest, signature)),
                )
            )
        if path is None:
            logger.warning(
                "Permit rejected: invalid signature",
                extra={
                    "event": "erc721.permit_rejected",
                    "collection": self.symbol,
                    "token_id": token_id,
                    "reason": "invalid_signature",
                    "spender": spender_norm[:10],
                }
            )
            self._record_permit("none", "rejected")
            raise InvalidPermitSignature()

        self._approve(spender_norm, token_id)
        self._record_permit(path, "accepted")

        logger.info(
            "ERC721 permit",
            extra={
                "event": "erc721.permit",
                "collection": self.symbol,
                "token_id": token_id,
                "spender": spender_norm[:10],
                "path": path,
            }
        )
        return True

    @atomic_call
    def safe_transfer_from_with_permit(
        self,
        caller: str,
        from_addr: str,
        to_addr: str,
        token_id: int,
        data: bytes,
        deadline: int,
        signature: SignatureLike,
    ) -> bool:
        """
        Redeem a permit for `caller` and safely transfer the token in one unit.

        If either step fails, neither the approval nor the transfer persists.
        """
        self.permit(caller, token_id, deadline, signature)
        self.safe_transfer_from(caller, from_addr, to_addr, token_id, data)
        return True

    # ==================== Internal ====================

    def _signed_by_owner_or_approved(
        self, digest: bytes, signature: SignatureLike, token_id: int
    ) -> bool:
        signer = recover_signer(digest, signature)
        return signer is not None and self.is_approved_or_owner(signer, token_id)

    def _transfer(self, from_addr: str, to_addr: str, token_id: int) -> None:
        """Advance the token nonce, invalidating every outstanding permit."""
        self.nonces[token_id] = self.nonces.get(token_id, 0) + 1
        super()._transfer(from_addr, to_addr, token_id)

    def _record_permit(self, path: str, outcome: str) -> None:
        metrics = self.chain.metrics
        if not metrics:
            return
        # Rejections are final; acceptances count only once persisted
        if outcome == "accepted":
            self.chain.on_commit(lambda: metrics.record_permit(path, outcome))
        else:
            metrics.record_permit(path, outcome)

    # ==================== Snapshots & Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["nonces"] = dict(self.nonces)
        return data

    def _load_state(self, data: Dict[str, Any]) -> None:
        super()._load_state(data)
        self.nonces = {int(k): int(v) for k, v in data.get("nonces", {}).items()}
