"""Tests for signature parsing, recovery and ERC-1271 validation."""

import pytest
from eth_utils import keccak

from permit721.core.contracts.smart_wallet import SmartWallet
from permit721.core.exceptions import ContractRevert
from permit721.core.signatures import (
    ERC1271_MAGIC_VALUE,
    MalformedSignatureError,
    first_accepting,
    is_canonical_signature,
    is_valid_erc1271_signature,
    recover_signer,
    split_signature,
)

from conftest import make_account, sign_digest

_CURVE_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

DIGEST = keccak(text="permit721 signature test")


def _compact(signature: bytes) -> bytes:
    """EIP-2098 compact form of a 65-byte signature."""
    r = signature[:32]
    s = int.from_bytes(signature[32:64], "big")
    y_parity = signature[64] - 27
    return r + (s | (y_parity << 255)).to_bytes(32, "big")


def _high_s(signature: bytes) -> bytes:
    """Malleated twin of a signature: s' = n - s with the recovery id flipped."""
    s = int.from_bytes(signature[32:64], "big")
    v = 55 - signature[64]  # 27 <-> 28
    return signature[:32] + (_CURVE_ORDER - s).to_bytes(32, "big") + bytes([v])


class TestSplitSignature:
    """Signature parsing."""

    def test_full_signature(self):
        signature = sign_digest(make_account("owner"), DIGEST)
        v, r, s = split_signature(signature)

        assert v in (27, 28)
        assert r == int.from_bytes(signature[:32], "big")
        assert s == int.from_bytes(signature[32:64], "big")

    def test_compact_signature_matches_full(self):
        signature = sign_digest(make_account("owner"), DIGEST)
        assert split_signature(_compact(signature)) == split_signature(signature)

    def test_hex_string_accepted(self):
        signature = sign_digest(make_account("owner"), DIGEST)
        assert split_signature("0x" + signature.hex()) == split_signature(signature)

    def test_recovery_id_zero_one_normalized(self):
        signature = sign_digest(make_account("owner"), DIGEST)
        raw_v = signature[:64] + bytes([signature[64] - 27])

        assert split_signature(raw_v)[0] == signature[64]

    @pytest.mark.parametrize("length", [0, 63, 66, 130])
    def test_wrong_length(self, length):
        with pytest.raises(MalformedSignatureError):
            split_signature(b"\x01" * length)

    def test_invalid_recovery_id(self):
        signature = sign_digest(make_account("owner"), DIGEST)
        with pytest.raises(MalformedSignatureError, match="recovery id"):
            split_signature(signature[:64] + bytes([29]))

    def test_high_s_rejected(self):
        signature = sign_digest(make_account("owner"), DIGEST)
        with pytest.raises(MalformedSignatureError, match="canonical"):
            split_signature(_high_s(signature))

    def test_canonical_bounds(self):
        assert is_canonical_signature(1, _CURVE_ORDER // 2)
        assert not is_canonical_signature(1, _CURVE_ORDER // 2 + 1)
        assert not is_canonical_signature(0, 1)
        assert not is_canonical_signature(1, 0)


class TestRecoverSigner:
    """ECDSA signer recovery."""

    def test_recovers_signer(self):
        account = make_account("owner")
        assert recover_signer(DIGEST, sign_digest(account, DIGEST)) == account.address

    def test_recovers_from_compact(self):
        account = make_account("owner")
        assert recover_signer(DIGEST, _compact(sign_digest(account, DIGEST))) == account.address

    def test_other_digest_recovers_other_address(self):
        account = make_account("owner")
        signature = sign_digest(account, DIGEST)

        assert recover_signer(keccak(text="something else"), signature) != account.address

    def test_malformed_signatures_return_none(self):
        signature = sign_digest(make_account("owner"), DIGEST)

        assert recover_signer(DIGEST, b"") is None
        assert recover_signer(DIGEST, b"\x00" * 65) is None
        assert recover_signer(DIGEST, _high_s(signature)) is None
        assert recover_signer(DIGEST, "0xnothex") is None

    def test_digest_must_be_32_bytes(self):
        with pytest.raises(ValueError):
            recover_signer(b"\x00" * 31, sign_digest(make_account("owner"), DIGEST))


class RevertingSigner:
    """Contract account whose isValidSignature always reverts."""

    def is_valid_signature(self, digest: bytes, signature: bytes) -> bytes:
        raise ContractRevert("signer: paused")


class TestERC1271:
    """Contract-wallet signature validation."""

    def test_wallet_accepts_owner_signature(self, chain, owner):
        wallet = SmartWallet(owner=owner.address, chain=chain)

        assert wallet.is_valid_signature(DIGEST, sign_digest(owner, DIGEST)) == ERC1271_MAGIC_VALUE
        assert is_valid_erc1271_signature(chain, wallet.address, DIGEST, sign_digest(owner, DIGEST))

    def test_wallet_rejects_other_signer(self, chain, owner, other):
        wallet = SmartWallet(owner=owner.address, chain=chain)

        assert not is_valid_erc1271_signature(chain, wallet.address, DIGEST, sign_digest(other, DIGEST))

    def test_plain_account_is_never_valid(self, chain, owner):
        assert not is_valid_erc1271_signature(chain, owner.address, DIGEST, sign_digest(owner, DIGEST))

    def test_revert_counts_as_invalid(self, chain, owner):
        address = chain.deploy(RevertingSigner())

        assert not is_valid_erc1271_signature(chain, address, DIGEST, sign_digest(owner, DIGEST))

    def test_contract_without_capability(self, chain, owner):
        address = chain.deploy(object())

        assert not is_valid_erc1271_signature(chain, address, DIGEST, sign_digest(owner, DIGEST))


class TestFirstAccepting:
    """Ordered strategy evaluation."""

    def test_returns_first_accepting_name(self):
        assert first_accepting([("a", lambda: False), ("b", lambda: True)]) == "b"

    def test_none_when_all_reject(self):
        assert first_accepting([("a", lambda: False), ("b", lambda: False)]) is None

    def test_short_circuits(self):
        calls = []

        def later():
            calls.append("later")
            return True

        assert first_accepting([("a", lambda: True), ("b", later)]) == "a"
        assert calls == []
