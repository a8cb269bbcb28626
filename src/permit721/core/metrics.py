"""
Prometheus metrics for permit721 ledgers.

Counters are registered on a caller-supplied CollectorRegistry so several
chains (or test cases) never collide on the process-wide default registry.
"""

from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Counter


class LedgerMetrics:
    """
    Metrics collector for token ledgers deployed on one Chain.

    Tracks:
    - Permit redemptions by verification path and outcome
    - Transfers by kind (plain, safe)
    - Invocations rolled back
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()

        self.permits_total = Counter(
            "permit721_permits_total",
            "Permit redemption attempts",
            ["path", "outcome"],
            registry=self.registry,
        )

        self.transfers_total = Counter(
            "permit721_transfers_total",
            "Completed token transfers",
            ["kind"],
            registry=self.registry,
        )

        self.rollbacks_total = Counter(
            "permit721_rollbacks_total",
            "Invocations whose state changes were discarded",
            registry=self.registry,
        )

    def record_permit(self, path: str, outcome: str) -> None:
        """Record a permit outcome (path: ecdsa/erc1271/none/deadline)."""
        self.permits_total.labels(path=path, outcome=outcome).inc()

    def record_transfer(self, kind: str) -> None:
        """Record a completed transfer."""
        self.transfers_total.labels(kind=kind).inc()

    def record_rollback(self) -> None:
        """Record a discarded invocation."""
        self.rollbacks_total.inc()

    def sample(self, name: str, labels: Optional[dict] = None) -> float:
        """Read the current value of a sample (0.0 when never observed)."""
        value = self.registry.get_sample_value(name, labels or {})
        return value or 0.0
