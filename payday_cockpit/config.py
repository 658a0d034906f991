"""Configuration management for the Pay Day cockpit.

This module centralizes all configuration values including paths,
engine constants, and environment variable overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

# Base project root - assumes this file is in payday_cockpit/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directories
DATA_DIR = Path(os.getenv("PAYDAY_DATA_DIR", _PROJECT_ROOT / "data"))
LOG_DIR = DATA_DIR / "logs"

# Ledger database
DB_PATH = Path(
    os.getenv("PAYDAY_DB_PATH", DATA_DIR / "ledger.db")
).resolve()

# Pay day settings (last pay amount, frequency, default account)
SETTINGS_PATH = Path(
    os.getenv("PAYDAY_SETTINGS_PATH", DATA_DIR / "pay_day_settings.json")
).resolve()

# Logging
LOG_LEVEL = os.getenv("PAYDAY_LOG_LEVEL", "INFO").upper()
LOG_FILE: Optional[str] = os.getenv("PAYDAY_LOG_FILE") or None

# Engine constants
DAYS_PER_MODEL_MONTH = 30.44
CURRENCY_DECIMALS = 2
TOP_HORIZON_LIMIT = 3
ACCOUNT_FILL_STEPS = 20
ENVELOPE_FILL_STEPS = 10
DEFAULT_PAY_FREQUENCY = "monthly"

# Ledger descriptions
PAY_DAY_DEPOSIT_DESCRIPTION = "Pay Day Deposit"
CASH_FLOW_DESCRIPTION = "Cash Flow"
BOOST_DESCRIPTION = "Pay Day Boost"
INITIAL_BALANCE_DESCRIPTION = "Initial balance"


def ensure_data_directories() -> None:
    """Create all required data directories if they don't exist."""
    for directory in [DATA_DIR, LOG_DIR]:
        directory.mkdir(parents=True, exist_ok=True)


def get_db_path() -> str:
    """Get the ledger database path as a string."""
    return str(DB_PATH)


def get_settings_path() -> str:
    """Get the pay day settings file path as a string."""
    return str(SETTINGS_PATH)
