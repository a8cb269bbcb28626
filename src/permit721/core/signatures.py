"""
Signature parsing, recovery and contract-wallet validation.

Permit verification is an ordered chain of strategies, each a pure check
returning True/False, tried in order and short-circuiting on the first
success:

1. ECDSA recovery of the signer from the digest (externally owned accounts)
2. ERC-1271 ``isValidSignature`` on a contract account (smart wallets)

Malformed or unrecoverable signatures never raise out of a strategy; they
make it return False so the next strategy can run.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Iterable, Optional, Tuple, Union

from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import keccak, to_bytes

from permit721.core.chain import ZERO_ADDRESS
from permit721.core.interfaces import ERC1271Signer
from permit721.core.exceptions import VMExecutionError

if TYPE_CHECKING:
    from permit721.core.chain import Chain

logger = logging.getLogger(__name__)

_CURVE_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

# bytes4(keccak256("isValidSignature(bytes32,bytes)"))
ERC1271_MAGIC_VALUE = keccak(text="isValidSignature(bytes32,bytes)")[:4]
ERC1271_INVALID_VALUE = b"\xff\xff\xff\xff"

SignatureLike = Union[bytes, bytearray, str]
Strategy = Tuple[str, Callable[[], bool]]


class SignatureError(ValueError):
    """Base exception for signature handling failures."""
    pass


class MalformedSignatureError(SignatureError):
    """
    Raised when signature format is invalid.

    Wrong length, invalid encoding, bad recovery id or non-canonical `s`.
    """
    pass


def _validate_signature_range(r: int, s: int) -> None:
    """
    Ensure signature components fall within the curve order.

    Raises:
        MalformedSignatureError: If either component is out of range.
    """
    if not (1 <= r < _CURVE_ORDER):
        raise MalformedSignatureError("Signature r component out of range.")
    if not (1 <= s < _CURVE_ORDER):
        raise MalformedSignatureError("Signature s component out of range.")


def is_canonical_signature(r: int, s: int) -> bool:
    """
    Check whether signature components are canonical.

    Returns:
        True if components fall within range and have low-S form.
    """
    try:
        _validate_signature_range(r, s)
    except MalformedSignatureError:
        return False
    return s <= _CURVE_ORDER // 2


def signature_bytes(signature: SignatureLike) -> bytes:
    """Convert a signature given as bytes or 0x-hex to bytes."""
    if isinstance(signature, str):
        try:
            return to_bytes(hexstr=signature)
        except ValueError as exc:
            raise MalformedSignatureError(f"Invalid signature encoding: {exc}") from exc
    return bytes(signature)


def split_signature(signature: SignatureLike) -> Tuple[int, int, int]:
    """
    Split a signature into (v, r, s) with v in {27, 28}.

    Accepts 65-byte ``r || s || v`` signatures and 64-byte EIP-2098 compact
    ``r || vs`` signatures.

    Raises:
        MalformedSignatureError: If the signature cannot be used for recovery
    """
    raw = signature_bytes(signature)

    if len(raw) == 65:
        r = int.from_bytes(raw[:32], "big")
        s = int.from_bytes(raw[32:64], "big")
        v = raw[64]
    elif len(raw) == 64:
        r = int.from_bytes(raw[:32], "big")
        vs = int.from_bytes(raw[32:], "big")
        s = vs & ((1 << 255) - 1)
        v = (vs >> 255) + 27
    else:
        raise MalformedSignatureError(
            f"Signature must be 64 or 65 bytes, got {len(raw)} bytes"
        )

    if v < 27:
        v += 27
    if v not in (27, 28):
        raise MalformedSignatureError(f"Invalid recovery id v={v}")
    if not is_canonical_signature(r, s):
        raise MalformedSignatureError("Signature is not canonical (high s or out of range)")

    return v, r, s


def recover_signer(digest: bytes, signature: SignatureLike) -> Optional[str]:
    """
    Recover the signer address of a 32-byte digest.

    Returns:
        Checksummed signer address, or None if the signature is malformed or
        does not recover to a valid non-zero address
    """
    if len(digest) != 32:
        raise ValueError("digest must be 32 bytes")
    try:
        v, r, s = split_signature(signature)
        public_key = keys.Signature(vrs=(v - 27, r, s)).recover_public_key_from_msg_hash(digest)
    except (MalformedSignatureError, BadSignature, ValidationError) as exc:
        logger.debug(
            "Signature recovery failed",
            extra={
                "event": "signature.recovery_failed",
                "error_type": type(exc).__name__,
                "error": str(exc),
            }
        )
        return None

    signer = public_key.to_checksum_address()
    if signer == ZERO_ADDRESS:
        return None
    return signer


def is_valid_erc1271_signature(
    chain: "Chain", signer: str, digest: bytes, signature: SignatureLike
) -> bool:
    """
    Validate a signature through the ERC-1271 protocol of a contract account.

    Returns False when `signer` is not a contract, does not implement the
    protocol, reverts, or does not answer with the magic value.
    """
    account = chain.resolve(signer)
    if not account.is_contract or not isinstance(account.code, ERC1271Signer):
        return False

    try:
        raw = signature_bytes(signature)
    except MalformedSignatureError:
        return False

    try:
        result = account.code.is_valid_signature(digest, raw)
    except VMExecutionError as exc:
        logger.debug(
            "ERC1271 validation reverted",
            extra={
                "event": "signature.erc1271_reverted",
                "signer": account.address[:10],
                "reason": str(exc),
            }
        )
        return False

    return bytes(result or b"") == ERC1271_MAGIC_VALUE


def first_accepting(strategies: Iterable[Strategy]) -> Optional[str]:
    """
    Run verification strategies in order.

    Returns:
        Name of the first strategy that accepts, or None if all reject
    """
    for name, check in strategies:
        if check():
            return name
    return None
