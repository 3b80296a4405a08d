"""
Ledger Configuration Schema.

Defines the runtime settings of the commodity ledger and sensible defaults.
Values may be supplied directly or loaded from a YAML file:

    config = load_config("ledger.yaml")
    ledger = CommodityLedger.from_config(config)

Failure modes:
    - ValueError on out-of-range values or unknown keys in the YAML file.
    - FileNotFoundError / yaml.YAMLError propagate from load_config.
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Self

import yaml

from commodity_kernel.logging_config import get_logger

logger = get_logger("config")

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class LedgerConfig:
    """Configuration for a CommodityLedger instance."""

    database_url: str = "sqlite:///commodity_ledger.db"
    echo_sql: bool = False

    # Units
    weight_unit: str = "MT"
    default_currency: str = "USD"

    # Concurrency
    max_conflict_retries: int = 3
    sqlite_busy_timeout: float = 30.0

    # Receipts
    require_active_contract: bool = True

    log_level: str = "INFO"

    def __post_init__(self):
        if not self.database_url:
            raise ValueError("database_url is required")
        if self.max_conflict_retries < 0:
            raise ValueError("max_conflict_retries cannot be negative")
        if self.sqlite_busy_timeout <= 0:
            raise ValueError("sqlite_busy_timeout must be positive")
        if len(self.default_currency) != 3 or not self.default_currency.isalpha():
            raise ValueError(
                f"default_currency must be a 3-letter ISO 4217 code, got '{self.default_currency}'"
            )
        self.default_currency = self.default_currency.upper()
        self.log_level = self.log_level.upper()
        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(VALID_LOG_LEVELS)}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown ledger config keys: {sorted(unknown)}")
        return cls(**data)


def load_config(path: str | Path) -> LedgerConfig:
    """Load a LedgerConfig from a YAML mapping."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Ledger config must be a mapping, got {type(data).__name__}")
    config = LedgerConfig.from_dict(data)
    logger.info("config_loaded", extra={"path": str(path)})
    return config
