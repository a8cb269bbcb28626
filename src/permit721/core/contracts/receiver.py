"""
Safe-transfer receiver check (onERC721Received).

A token sent to a contract through a safe transfer must be explicitly
accepted by that contract, otherwise the whole transfer is reverted.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from eth_utils import to_bytes

from permit721.core.exceptions import UnsafeRecipient, VMExecutionError
from permit721.core.interfaces import ERC721_RECEIVED, ERC721Receiver

if TYPE_CHECKING:
    from permit721.core.chain import Chain

logger = logging.getLogger(__name__)


def _as_selector(value: Any) -> bytes:
    if isinstance(value, str):
        try:
            return to_bytes(hexstr=value)
        except ValueError:
            return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return b""


def check_on_erc721_received(
    chain: "Chain",
    operator: str,
    from_addr: str,
    to_addr: str,
    token_id: int,
    data: bytes = b"",
) -> None:
    """
    Require `to_addr` to accept the token.

    Plain accounts always accept. Contracts must implement ERC721Receiver and
    return ERC721_RECEIVED.

    Raises:
        UnsafeRecipient: Contract rejected the token, reverted without a
            reason, or does not implement the receiver interface
        VMExecutionError: The receiver reverted with a reason (propagated
            unchanged)
    """
    account = chain.resolve(to_addr)
    if not account.is_contract:
        return

    receiver = account.code
    if not isinstance(receiver, ERC721Receiver):
        logger.warning(
            "Safe transfer to non-receiver contract",
            extra={
                "event": "erc721.unsafe_recipient",
                "to": account.address[:10],
                "token_id": token_id,
                "reason": "not_implemented",
            }
        )
        raise UnsafeRecipient()

    try:
        retval = receiver.on_erc721_received(operator, from_addr, token_id, bytes(data))
    except VMExecutionError as exc:
        if exc.has_reason:
            raise
        logger.warning(
            "Receiver reverted without reason",
            extra={
                "event": "erc721.unsafe_recipient",
                "to": account.address[:10],
                "token_id": token_id,
                "reason": "empty_revert",
            }
        )
        raise UnsafeRecipient() from exc

    if _as_selector(retval) != ERC721_RECEIVED:
        logger.warning(
            "Receiver returned wrong selector",
            extra={
                "event": "erc721.unsafe_recipient",
                "to": account.address[:10],
                "token_id": token_id,
                "reason": "bad_selector",
            }
        )
        raise UnsafeRecipient()
