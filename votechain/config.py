"""
Runtime configuration.

All settings come from the environment (optionally seeded from a .env file
via load_env). Nothing here talks to the network.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_ORACLE_URL = "https://ai.gateway.lovable.dev/v1/chat/completions"
DEFAULT_ORACLE_MODEL = "google/gemini-2.5-flash"
SEPOLIA_CHAIN_ID = 11155111


def _env_str(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Resolved settings for one process."""

    db_path: Path = Path("data/votechain.db")

    oracle_url: str = DEFAULT_ORACLE_URL
    oracle_api_key: Optional[str] = None
    oracle_model: str = DEFAULT_ORACLE_MODEL
    oracle_timeout: float = 60.0
    oracle_max_retries: int = 2

    ledger_rpc_url: Optional[str] = None
    ledger_private_key: Optional[str] = None
    ledger_chain_id: int = SEPOLIA_CHAIN_ID
    ledger_network: str = "sepolia"
    ledger_timeout: float = 15.0
    ledger_receipt_timeout: float = 120.0

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from environment variables.

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        return cls(
            db_path=Path(_env_str("VOTECHAIN_DB_PATH") or "data/votechain.db"),
            oracle_url=_env_str("ORACLE_API_URL") or DEFAULT_ORACLE_URL,
            oracle_api_key=_env_str("ORACLE_API_KEY"),
            oracle_model=_env_str("ORACLE_MODEL") or DEFAULT_ORACLE_MODEL,
            oracle_timeout=_env_float("ORACLE_TIMEOUT", 60.0),
            oracle_max_retries=_env_int("ORACLE_MAX_RETRIES", 2),
            ledger_rpc_url=_env_str("LEDGER_RPC_URL"),
            ledger_private_key=_env_str("LEDGER_PRIVATE_KEY"),
            ledger_chain_id=_env_int("LEDGER_CHAIN_ID", SEPOLIA_CHAIN_ID),
            ledger_network=_env_str("LEDGER_NETWORK") or "sepolia",
            ledger_timeout=_env_float("LEDGER_TIMEOUT", 15.0),
            ledger_receipt_timeout=_env_float("LEDGER_RECEIPT_TIMEOUT", 120.0),
            log_level=_env_str("LOG_LEVEL") or "INFO",
        )
