"""
Capability interfaces contracts can implement, and ERC-165 helpers.

Capabilities are structural: a contract object implements a capability by
providing the method, and callers check for it at call time.
"""

from __future__ import annotations

from functools import reduce
from typing import Iterable, Protocol, Union, runtime_checkable

from eth_utils import keccak, to_bytes


def function_selector(signature: str) -> bytes:
    """First 4 bytes of keccak256 of a canonical function signature."""
    return keccak(text=signature)[:4]


def interface_id(signatures: Iterable[str]) -> bytes:
    """ERC-165 interface id: XOR of all function selectors."""
    value = reduce(
        lambda acc, sig: acc ^ int.from_bytes(function_selector(sig), "big"),
        signatures,
        0,
    )
    return value.to_bytes(4, "big")


def as_interface_id(value: Union[bytes, str]) -> bytes:
    """Accept an interface id as 4 bytes or 0x-hex."""
    raw = to_bytes(hexstr=value) if isinstance(value, str) else bytes(value)
    if len(raw) != 4:
        raise ValueError(f"interface id must be 4 bytes, got {len(raw)}")
    return raw


ERC165_INTERFACE_ID = function_selector("supportsInterface(bytes4)")

PERMIT_INTERFACE_ID = interface_id(
    [
        "getNonce(uint256)",
        "DOMAIN_SEPARATOR()",
        "permit(address,uint256,uint256,bytes)",
    ]
)

# Value a receiver must return from onERC721Received to accept a token
ERC721_RECEIVED = function_selector("onERC721Received(address,address,uint256,bytes)")


@runtime_checkable
class ERC721Receiver(Protocol):
    """Contract able to accept tokens through safe transfers."""

    def on_erc721_received(
        self, operator: str, from_addr: str, token_id: int, data: bytes
    ) -> bytes:
        """Return ERC721_RECEIVED to accept the token."""
        ...


@runtime_checkable
class ERC1271Signer(Protocol):
    """Contract account able to validate signatures on its own behalf (ERC-1271)."""

    def is_valid_signature(self, digest: bytes, signature: bytes) -> bytes:
        """Return the ERC-1271 magic value if the signature is valid."""
        ...
