"""
Tests for the safe-transfer receiver check (onERC721Received).
"""

import pytest

from permit721.core.chain import ZERO_ADDRESS
from permit721.core.contracts.receiver import check_on_erc721_received
from permit721.core.exceptions import ContractRevert, UnsafeRecipient
from permit721.core.interfaces import ERC721_RECEIVED


class AcceptingReceiver:
    """Receiver that accepts everything and remembers the calls."""

    def __init__(self, retval=ERC721_RECEIVED):
        self.retval = retval
        self.calls = []

    def on_erc721_received(self, operator, from_addr, token_id, data):
        self.calls.append((operator, from_addr, token_id, data))
        return self.retval


class RevertingReceiver:
    def __init__(self, reason=None):
        self.reason = reason

    def on_erc721_received(self, operator, from_addr, token_id, data):
        raise ContractRevert(self.reason)


class ForwardingReceiver:
    """Receiver that immediately sends the token on to `forward_to`."""

    def __init__(self, token, forward_to):
        self.token = token
        self.forward_to = forward_to
        self.address = ""

    def on_erc721_received(self, operator, from_addr, token_id, data):
        self.token.transfer_from(self.address, self.address, self.forward_to, token_id)
        return ERC721_RECEIVED


def test_plain_account_accepts(chain, owner, other):
    check_on_erc721_received(chain, owner.address, owner.address, other.address, 1)


def test_accepting_contract(chain, owner, other):
    receiver = AcceptingReceiver()
    address = chain.deploy(receiver)

    check_on_erc721_received(chain, owner.address, other.address, address, 7, b"data")

    assert receiver.calls == [(owner.address, other.address, 7, b"data")]


def test_hex_selector_accepted(chain, owner):
    address = chain.deploy(AcceptingReceiver(retval="0x" + ERC721_RECEIVED.hex()))
    check_on_erc721_received(chain, owner.address, owner.address, address, 1)


@pytest.mark.parametrize("retval", [b"\x00\x00\x00\x00", b"", None, "not hex", 0x150B7A02])
def test_wrong_selector(chain, owner, retval):
    address = chain.deploy(AcceptingReceiver(retval=retval))
    with pytest.raises(UnsafeRecipient, match="ERC721: transfer to non ERC721Receiver implementer"):
        check_on_erc721_received(chain, owner.address, owner.address, address, 1)


def test_revert_with_reason_propagates(chain, owner):
    address = chain.deploy(RevertingReceiver("receiver: closed"))
    with pytest.raises(ContractRevert, match="receiver: closed"):
        check_on_erc721_received(chain, owner.address, owner.address, address, 1)


def test_revert_without_reason_is_unsafe(chain, owner):
    address = chain.deploy(RevertingReceiver())
    with pytest.raises(UnsafeRecipient):
        check_on_erc721_received(chain, owner.address, owner.address, address, 1)


def test_contract_without_receiver(chain, owner):
    address = chain.deploy(object())
    with pytest.raises(UnsafeRecipient):
        check_on_erc721_received(chain, owner.address, owner.address, address, 1)


class TestSafeTransfers:
    def test_safe_transfer_calls_receiver(self, minted_token, chain, owner, spender):
        receiver = AcceptingReceiver()
        address = chain.deploy(receiver)
        minted_token.approve(owner.address, spender.address, 0)

        minted_token.safe_transfer_from(spender.address, owner.address, address, 0, b"\x01")

        assert minted_token.owner_of(0) == address
        assert receiver.calls == [(spender.address, owner.address, 0, b"\x01")]

    def test_rejection_rolls_back_transfer(self, minted_token, chain, owner):
        address = chain.deploy(AcceptingReceiver(retval=b"\xde\xad\xbe\xef"))

        with pytest.raises(UnsafeRecipient):
            minted_token.safe_transfer_from(owner.address, owner.address, address, 0)

        assert minted_token.owner_of(0) == owner.address
        assert minted_token.balance_of(owner.address) == 1
        assert minted_token.get_nonce(0) == 0

    def test_receiver_revert_reason_surfaces(self, minted_token, chain, owner):
        address = chain.deploy(RevertingReceiver("receiver: closed"))

        with pytest.raises(ContractRevert, match="receiver: closed"):
            minted_token.safe_transfer_from(owner.address, owner.address, address, 0)
        assert minted_token.owner_of(0) == owner.address

    def test_plain_transfer_skips_receiver(self, minted_token, chain, owner):
        receiver = AcceptingReceiver(retval=b"")
        address = chain.deploy(receiver)

        minted_token.transfer_from(owner.address, owner.address, address, 0)

        assert minted_token.owner_of(0) == address
        assert receiver.calls == []

    def test_receiver_may_call_back(self, minted_token, chain, owner, other):
        """Reentrant transfers run in their own savepoint."""
        forwarder = ForwardingReceiver(minted_token, other.address)
        forwarder.address = chain.deploy(forwarder)

        minted_token.safe_transfer_from(owner.address, owner.address, forwarder.address, 0)

        assert minted_token.owner_of(0) == other.address
        assert minted_token.get_nonce(0) == 2
        assert chain.call_depth == 0

    def test_safe_mint(self, token, chain, owner):
        receiver = AcceptingReceiver()
        address = chain.deploy(receiver)

        token.safe_mint(owner.address, address, 5, b"mint")

        assert token.owner_of(5) == address
        assert receiver.calls == [(owner.address, ZERO_ADDRESS, 5, b"mint")]

    def test_safe_mint_rejected(self, token, chain, owner):
        address = chain.deploy(object())

        with pytest.raises(UnsafeRecipient):
            token.safe_mint(owner.address, address, 5)

        assert not token.exists(5)
        assert token.events == []
