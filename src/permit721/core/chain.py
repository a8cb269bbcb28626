"""
Execution environment for permit721 contracts.

A Chain owns everything a contract would read from its surroundings on an
EVM network:
- the live chain id (mutable, e.g. after a hard fork)
- the block timestamp (injectable clock)
- the account registry, resolving an address to a plain account or contract
- all-or-nothing invocations via snapshot/restore of every deployed contract

Contracts receive their Chain by reference; there is no global state.
"""

from __future__ import annotations

import functools
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, TypeVar, runtime_checkable

from eth_utils import keccak, to_canonical_address, to_checksum_address

from permit721.core import config
from permit721.core.metrics import LedgerMetrics

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40
UINT256_MAX = (1 << 256) - 1

F = TypeVar("F", bound=Callable[..., Any])


def normalize_address(address: str) -> str:
    """
    Normalize an address to its EIP-55 checksummed form.

    Raises:
        ValueError: If the value is not a 20-byte hex address
    """
    try:
        return to_checksum_address(address)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid address: {address!r}") from exc


class AccountKind(Enum):
    EXTERNALLY_OWNED = "externally_owned"
    CONTRACT = "contract"


@dataclass(frozen=True)
class ResolvedAccount:
    """An address resolved against the account registry at call time."""

    address: str
    kind: AccountKind
    code: Any = None

    @property
    def is_contract(self) -> bool:
        return self.kind is AccountKind.CONTRACT


@runtime_checkable
class StatefulContract(Protocol):
    """Contract whose state can be captured and rolled back."""

    def snapshot(self) -> Dict[str, Any]: ...

    def restore(self, snapshot: Dict[str, Any]) -> None: ...


class Chain:
    """
    Explicitly constructed execution environment.

    Invocations are serialized: there is a single caller at a time and every
    state read followed by a write happens within the same atomic unit.
    """

    def __init__(
        self,
        chain_id: Optional[int] = None,
        clock: Optional[Callable[[], float]] = None,
        metrics: Optional[LedgerMetrics] = None,
    ) -> None:
        self.chain_id = config.CHAIN_ID if chain_id is None else int(chain_id)
        if self.chain_id <= 0:
            raise ValueError("chain id must be positive")
        self._clock = clock or time.time
        self.metrics = metrics
        self.contracts: Dict[str, Any] = {}
        self.call_depth = 0
        self._on_commit: List[Callable[[], None]] = []
        self._deploy_nonce = 0

    # ==================== Ambient Values ====================

    def timestamp(self) -> int:
        """Current block timestamp in whole seconds."""
        return int(self._clock())

    def set_chain_id(self, chain_id: int) -> None:
        """Change the live chain id (hard fork / chain split)."""
        if int(chain_id) <= 0:
            raise ValueError("chain id must be positive")
        logger.info(
            "Chain id changed",
            extra={
                "event": "chain.chain_id_changed",
                "old_chain_id": self.chain_id,
                "new_chain_id": int(chain_id),
            }
        )
        self.chain_id = int(chain_id)

    # ==================== Account Registry ====================

    def next_contract_address(self, deployer: str = ZERO_ADDRESS) -> str:
        """Derive a fresh contract address from the deployer and a counter."""
        seed = to_canonical_address(deployer) + self._deploy_nonce.to_bytes(32, "big")
        self._deploy_nonce += 1
        return to_checksum_address(keccak(seed)[-20:])

    def deploy(self, contract: Any, address: Optional[str] = None) -> str:
        """
        Register contract code at an address.

        Args:
            contract: Contract object
            address: Optional fixed address (derived when omitted)

        Returns:
            The checksummed contract address

        Raises:
            ValueError: If the address is already in use
        """
        addr = normalize_address(address) if address else self.next_contract_address()
        if addr == ZERO_ADDRESS:
            raise ValueError("cannot deploy to the zero address")
        if addr in self.contracts:
            raise ValueError(f"address {addr} already has code")
        self.contracts[addr] = contract

        logger.debug(
            "Contract deployed",
            extra={
                "event": "chain.deploy",
                "address": addr[:10],
                "contract_type": type(contract).__name__,
            }
        )
        return addr

    def resolve(self, address: str) -> ResolvedAccount:
        """Resolve an address to a plain account or a contract."""
        addr = normalize_address(address)
        code = self.contracts.get(addr)
        if code is None:
            return ResolvedAccount(address=addr, kind=AccountKind.EXTERNALLY_OWNED)
        return ResolvedAccount(address=addr, kind=AccountKind.CONTRACT, code=code)

    def is_contract(self, address: str) -> bool:
        return self.resolve(address).is_contract

    # ==================== Atomicity ====================

    @contextmanager
    def atomic(self, label: str = "") -> Iterator[None]:
        """
        Run a block as one all-or-nothing unit.

        Snapshots every deployed contract on entry and restores all of them if
        the block raises, then re-raises the original exception. Nested units
        act as savepoints. Callbacks queued with `on_commit` run once the
        outermost unit completes and are discarded with a rolled back unit.
        """
        snapshots = {
            address: contract.snapshot()
            for address, contract in self.contracts.items()
            if isinstance(contract, StatefulContract)
        }
        pending = len(self._on_commit)
        self.call_depth += 1
        try:
            yield
        except Exception as exc:
            for address, snap in snapshots.items():
                self.contracts[address].restore(snap)
            del self._on_commit[pending:]
            if self.metrics:
                self.metrics.record_rollback()
            logger.debug(
                "Invocation rolled back",
                extra={
                    "event": "chain.rollback",
                    "call": label,
                    "depth": self.call_depth,
                    "error_type": type(exc).__name__,
                    "reason": str(exc),
                }
            )
            raise
        finally:
            self.call_depth -= 1

        if self.call_depth == 0:
            callbacks, self._on_commit = self._on_commit, []
            for callback in callbacks:
                callback()

    def on_commit(self, callback: Callable[[], None]) -> None:
        """
        Run `callback` after the enclosing atomic unit commits.

        Outside any unit the callback runs immediately.
        """
        if self.call_depth == 0:
            callback()
        else:
            self._on_commit.append(callback)


def atomic_call(method: F) -> F:
    """Run a contract method inside ``self.chain.atomic()``."""

    @functools.wraps(method)
    def wrapper(self, *args: Any, **kwargs: Any) -> Any:
        with self.chain.atomic(f"{type(self).__name__}.{method.__name__}"):
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]
