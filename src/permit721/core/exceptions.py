"""
Revert exception hierarchy for permit721 contracts.

Every failed contract invocation raises a subclass of VMExecutionError. The
string form of the exception is the revert reason, so callers and tests can
assert on the exact cause of a failure.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class VMExecutionError(Exception):
    """Base exception for a reverted contract invocation.

    Attributes:
        reason: Revert reason string, or None when the revert carried no data
        details: Additional context about the failure
    """

    default_reason: Optional[str] = None

    def __init__(
        self,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        if reason is None:
            reason = self.default_reason
        super().__init__(reason or "")
        self.reason = reason
        self.details = details or {}

    @property
    def has_reason(self) -> bool:
        """Whether the revert carried reason data."""
        return bool(self.reason)


class ContractRevert(VMExecutionError):
    """Raised by contract code (receivers, wallets) to abort the current call.

    Revert with ``ContractRevert()`` to abort without reason data.
    """
    pass


# ==================== ERC721 Errors ====================


class ERC721Error(VMExecutionError):
    """Base exception for ledger and approval failures."""
    pass


class InvalidRecipient(ERC721Error):
    """Raised when minting or transferring to the zero address."""

    default_reason = "ERC721: transfer to the zero address"


class TokenAlreadyExists(ERC721Error):
    """Raised when minting a token id that is already owned."""

    default_reason = "ERC721: token already minted"


class TokenNotFound(ERC721Error):
    """Raised when a token id has no owner."""

    default_reason = "ERC721: invalid token ID"


class Unauthorized(ERC721Error):
    """Raised when the caller is neither the owner nor the approved delegate."""

    default_reason = "ERC721: caller is not token owner or approved"


class SelfApproval(ERC721Error):
    """Raised when approving the current owner."""

    default_reason = "ERC721: approval to current owner"


class TransferSourceMismatch(ERC721Error):
    """Raised when `from` is not the current owner of the token."""

    default_reason = "ERC721: transfer from incorrect owner"


class InvalidQuery(ERC721Error):
    """Raised when querying the balance of the zero address."""

    default_reason = "ERC721: address zero is not a valid owner"


class UnsafeRecipient(ERC721Error):
    """Raised when a contract recipient does not accept the token."""

    default_reason = "ERC721: transfer to non ERC721Receiver implementer"


# ==================== Permit Errors ====================


class PermitError(ERC721Error):
    """Base exception for permit redemption failures."""
    pass


class PermitExpired(PermitError):
    """Raised when the permit deadline is in the past."""

    default_reason = "!PERMIT_DEADLINE_EXPIRED!"


class InvalidPermitSignature(PermitError):
    """Raised when no verification strategy accepts the signature.

    Covers wrong signer, stale nonce, foreign domain and malformed signatures.
    """

    default_reason = "!INVALID_PERMIT_SIGNATURE!"
