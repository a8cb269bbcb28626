"""
Off-line permit signing helpers.

Token owners build and sign Permit typed data on any device, then hand the
signature to whoever redeems it. Signing goes through eth_account's own
EIP-712 implementation, so a signature produced here is exactly what a
browser wallet (eth_signTypedData_v4) would produce.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Optional, Union

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import keccak

from permit721.core import config
from permit721.core.typed_signing import (
    PERMIT_TYPES,
    build_typed_data,
    permit_domain,
    permit_message,
)

if TYPE_CHECKING:
    from permit721.core.contracts.erc721_permit import ERC721PermitToken

PrivateKey = Union[bytes, str]


def default_deadline(now: Optional[float] = None) -> int:
    """Deadline PERMIT721_PERMIT_TTL_SECONDS after `now` (defaults to wall clock)."""
    current = time.time() if now is None else now
    return int(current) + config.PERMIT_TTL_SECONDS


def permit_typed_data(
    name: str,
    chain_id: int,
    verifying_contract: str,
    spender: str,
    token_id: int,
    nonce: int,
    deadline: int,
) -> dict[str, Any]:
    """Full EIP-712 typed data for a permit (types, primaryType, domain, message)."""
    domain = permit_domain(name, chain_id, verifying_contract, config.PERMIT_DOMAIN_VERSION)
    return build_typed_data(
        domain, "Permit", PERMIT_TYPES, permit_message(spender, token_id, nonce, deadline)
    )


def sign_typed_data(private_key: PrivateKey, typed_data: dict[str, Any]) -> bytes:
    """Sign full typed data, returning the 65-byte r || s || v signature."""
    signed = Account.sign_typed_data(private_key, full_message=typed_data)
    return bytes(signed.signature)


def sign_permit(
    private_key: PrivateKey,
    name: str,
    chain_id: int,
    verifying_contract: str,
    spender: str,
    token_id: int,
    nonce: int,
    deadline: int,
) -> bytes:
    """
    Sign a permit.

    Args:
        private_key: Signer's secp256k1 private key
        name: Token name (domain)
        chain_id: Chain ID (domain)
        verifying_contract: Token contract address (domain)
        spender: Address to approve
        token_id: Token to approve
        nonce: Token's current nonce
        deadline: Last valid timestamp

    Returns:
        65-byte signature
    """
    typed_data = permit_typed_data(
        name, chain_id, verifying_contract, spender, token_id, nonce, deadline
    )
    return sign_typed_data(private_key, typed_data)


def sign_permit_for(
    token: "ERC721PermitToken",
    private_key: PrivateKey,
    spender: str,
    token_id: int,
    deadline: Optional[int] = None,
    nonce: Optional[int] = None,
) -> bytes:
    """Sign a permit for a deployed token, reading domain and live nonce from it."""
    return sign_permit(
        private_key,
        name=token.name,
        chain_id=token.chain.chain_id,
        verifying_contract=token.address,
        spender=spender,
        token_id=token_id,
        nonce=token.get_nonce(token_id) if nonce is None else nonce,
        deadline=default_deadline(token.chain.timestamp()) if deadline is None else deadline,
    )


def typed_data_hash(typed_data: dict[str, Any]) -> bytes:
    """EIP-712 digest of full typed data as encoded by eth_account."""
    signable = encode_typed_data(full_message=typed_data)
    return keccak(b"\x19" + signable.version + signable.header + signable.body)


def recover_permit_signer(typed_data: dict[str, Any], signature: Union[bytes, str]) -> str:
    """Recover the address that signed full typed data."""
    signable = encode_typed_data(full_message=typed_data)
    return Account.recover_message(signable, signature=signature)
