"""
permit721 Configuration

All settings are read from environment variables at import time.

SECURITY NOTICE:
- Private keys are never read from configuration; the CLI takes them from
  PERMIT721_PRIVATE_KEY or an interactive prompt only
"""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _get_int(env_var: str, default: int, minimum: int = 0) -> int:
    """Read a non-negative integer setting from the environment."""
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        value = int(raw, 0)
    except ValueError as exc:
        raise ConfigurationError(f"{env_var} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ConfigurationError(f"{env_var} must be >= {minimum}, got {value}")
    return value


# Chain id captured by a freshly constructed Chain (hardhat's default network)
CHAIN_ID = _get_int("PERMIT721_CHAIN_ID", 31337, minimum=1)

ENVIRONMENT = os.getenv("PERMIT721_ENVIRONMENT", "development").strip() or "development"

LOG_LEVEL = os.getenv("PERMIT721_LOG_LEVEL", "INFO").strip().upper() or "INFO"
if LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
    raise ConfigurationError(f"PERMIT721_LOG_LEVEL is not a logging level: {LOG_LEVEL!r}")

LOG_FILE = os.getenv("PERMIT721_LOG_FILE", "").strip()

# Default lifetime of a freshly signed permit (7 days)
PERMIT_TTL_SECONDS = _get_int("PERMIT721_PERMIT_TTL_SECONDS", 7 * 24 * 60 * 60)

# EIP-712 domain version of the permit scheme
PERMIT_DOMAIN_VERSION = "1"
