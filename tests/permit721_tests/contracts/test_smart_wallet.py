"""
Tests for the ERC-1271 smart wallet and contract-owned permits.
"""

import pytest

from permit721.core.chain import ZERO_ADDRESS
from permit721.core.contracts.smart_wallet import SmartWallet
from permit721.core.exceptions import ContractRevert, InvalidPermitSignature, SelfApproval
from permit721.core.interfaces import ERC721_RECEIVED
from permit721.core.signatures import ERC1271_INVALID_VALUE, ERC1271_MAGIC_VALUE
from permit721.wallet.offline_signing import sign_permit_for

from conftest import START_TIME, sign_digest

DEADLINE = START_TIME + 3600


@pytest.fixture
def wallet(chain, owner):
    return SmartWallet(owner=owner.address, chain=chain)


@pytest.fixture
def wallet_token(minted_token, wallet):
    """Token 1 held by the wallet."""
    minted_token.mint(wallet.address, 1)
    return minted_token


class TestSignatureValidation:
    def test_magic_value_for_owner(self, wallet, owner):
        digest = b"\x11" * 32
        assert wallet.is_valid_signature(digest, sign_digest(owner, digest)) == ERC1271_MAGIC_VALUE

    def test_invalid_value_for_stranger(self, wallet, other):
        digest = b"\x11" * 32
        assert wallet.is_valid_signature(digest, sign_digest(other, digest)) == ERC1271_INVALID_VALUE

    def test_invalid_value_for_garbage(self, wallet):
        assert wallet.is_valid_signature(b"\x11" * 32, b"\x00") == ERC1271_INVALID_VALUE

    def test_magic_value_constant(self):
        assert ERC1271_MAGIC_VALUE.hex() == "1626ba7e"


class TestContractOwnedPermit:
    def test_owner_key_authorizes_wallet_token(self, wallet_token, wallet, owner, spender, metrics):
        """Path B: the wallet, not the signing key, owns the token."""
        signature = sign_permit_for(wallet_token, owner.key, spender.address, 1, DEADLINE)

        wallet_token.permit(spender.address, 1, DEADLINE, signature)

        assert wallet_token.get_approved(1) == spender.address
        assert wallet_token.get_nonce(1) == 0
        assert metrics.sample("permit721_permits_total", {"path": "erc1271", "outcome": "accepted"}) == 1

    def test_stranger_cannot_authorize(self, wallet_token, other, spender):
        signature = sign_permit_for(wallet_token, other.key, spender.address, 1, DEADLINE)

        with pytest.raises(InvalidPermitSignature):
            wallet_token.permit(spender.address, 1, DEADLINE, signature)

    def test_wallet_signature_not_valid_for_other_tokens(self, wallet_token, owner, spender):
        """Token 0 is owned by the key itself, not by the wallet."""
        signature = sign_permit_for(wallet_token, owner.key, spender.address, 1, DEADLINE)

        with pytest.raises(InvalidPermitSignature):
            wallet_token.permit(spender.address, 0, DEADLINE, signature)

    def test_permit_and_pull_from_wallet(self, wallet_token, wallet, owner, spender):
        signature = sign_permit_for(wallet_token, owner.key, spender.address, 1, DEADLINE)

        wallet_token.safe_transfer_from_with_permit(
            spender.address, wallet.address, spender.address, 1, b"", DEADLINE, signature
        )

        assert wallet_token.owner_of(1) == spender.address
        assert wallet_token.get_nonce(1) == 1


class TestReceiving:
    def test_accepts_safe_transfer(self, minted_token, wallet, owner):
        minted_token.safe_transfer_from(owner.address, owner.address, wallet.address, 0, b"memo")

        assert minted_token.owner_of(0) == wallet.address
        received = wallet.received_tokens[-1]
        assert (received.operator, received.from_address, received.token_id, received.data) == (
            owner.address,
            owner.address,
            0,
            b"memo",
        )

    def test_returns_selector(self, wallet, owner):
        assert wallet.on_erc721_received(owner.address, owner.address, 3, b"") == ERC721_RECEIVED

    def test_disabled_receipt_reverts_with_reason(self, minted_token, wallet, owner):
        wallet.accept_tokens = False

        with pytest.raises(ContractRevert, match="SmartWallet: token receipt disabled"):
            minted_token.safe_transfer_from(owner.address, owner.address, wallet.address, 0)

        assert minted_token.owner_of(0) == owner.address
        assert wallet.received_tokens == []


class TestExecute:
    def test_owner_executes_approve(self, wallet_token, wallet, owner, spender):
        wallet.execute(owner.address, wallet_token, "approve", spender.address, 1)

        assert wallet_token.get_approved(1) == spender.address
        assert wallet.nonce == 1

    def test_owner_executes_transfer(self, wallet_token, wallet, owner, other):
        wallet.execute(owner.address, wallet_token, "safe_transfer_from", wallet.address, other.address, 1)

        assert wallet_token.owner_of(1) == other.address
        assert wallet_token.get_nonce(1) == 1

    def test_only_owner(self, wallet_token, wallet, other):
        with pytest.raises(ContractRevert, match="caller is not owner"):
            wallet.execute(other.address, wallet_token, "approve", other.address, 1)

    def test_method_allowlist(self, wallet_token, wallet, owner):
        with pytest.raises(ContractRevert, match="not executable"):
            wallet.execute(owner.address, wallet_token, "burn", 1)
        assert wallet_token.exists(1)

    def test_target_must_be_deployed(self, wallet, owner):
        class Impostor:
            address = ZERO_ADDRESS

            def approve(self, *args):
                return True

        with pytest.raises(ContractRevert, match="target is not a contract"):
            wallet.execute(owner.address, Impostor(), "approve", owner.address, 1)

    def test_failed_call_rolls_back_wallet(self, wallet_token, wallet, owner):
        with pytest.raises(SelfApproval):
            wallet.execute(owner.address, wallet_token, "approve", wallet.address, 1)

        assert wallet.nonce == 0
