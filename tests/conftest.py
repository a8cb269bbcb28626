"""
Test configuration and fixtures
"""
import sys
from pathlib import Path

# Add src to Python path
project_root = Path(__file__).parent.parent
src_path = project_root / "src"

sys.path.insert(0, str(src_path))

import pytest
from eth_account import Account
from eth_keys import keys
from eth_utils import keccak

from permit721.core.chain import Chain
from permit721.core.contracts.erc721_permit import ERC721PermitToken
from permit721.core.metrics import LedgerMetrics

START_TIME = 1_700_000_000
TEST_CHAIN_ID = 31337


class ManualClock:
    """Block clock the tests move by hand."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


def make_account(label: str):
    """Deterministic account derived from a label."""
    return Account.from_key(keccak(text=f"permit721-test-{label}"))


def sign_digest(account, digest: bytes) -> bytes:
    """Sign a raw 32-byte digest, returning r || s || v with v in {27, 28}."""
    signature = keys.PrivateKey(bytes(account.key)).sign_msg_hash(digest)
    return signature.to_bytes()[:64] + bytes([signature.v + 27])


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def metrics():
    return LedgerMetrics()


@pytest.fixture
def chain(clock, metrics):
    return Chain(chain_id=TEST_CHAIN_ID, clock=clock, metrics=metrics)


@pytest.fixture
def owner():
    return make_account("owner")


@pytest.fixture
def spender():
    return make_account("spender")


@pytest.fixture
def other():
    return make_account("other")


@pytest.fixture
def token(chain):
    """Permit-enabled collection with no tokens."""
    return ERC721PermitToken(name="Permit NFT", symbol="PNFT", chain=chain)


@pytest.fixture
def minted_token(token, owner):
    """Permit-enabled collection with token 0 owned by `owner`."""
    token.mint(owner.address, 0)
    return token
