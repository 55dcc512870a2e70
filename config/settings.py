"""
Golf Betslip - Configuration
"""
import os
from pathlib import Path

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Data directories
DATA_DIR = PROJECT_ROOT / "data"
RESULTS_DIR = PROJECT_ROOT / "results"

# Default bet store location (CSV)
BET_STORE_PATH = DATA_DIR / "bets.csv"
EVENT_STORE_PATH = DATA_DIR / "events.csv"

# Stake sizing settings
STAKING_CONFIG = {
    # Bankroll expressed in betting units
    "bankroll_units": 500,

    # Fractional Kelly multiplier (0.25 = quarter Kelly)
    "kelly_fraction": 0.25,

    # Hard cap on a single bet as fraction of bankroll
    "max_bet_frac": 0.10,

    # Cap on total exposure per player / per opponent as fraction of bankroll
    "cap_fraction": 0.15,

    # Display/warning threshold only, never a staking gate
    "min_edge": 0.04,

    # Stake multipliers by market family
    "market_multipliers": {
        "default": 1.0,
        "matchup2": 0.7,
        "matchup3": 0.6,
    },
}

# Settlement settings
SETTLEMENT_CONFIG = {
    # Tolerance when comparing a return against full profit (DHR label)
    "return_tolerance": 1e-6,
}

# Results feed settings (DataGolf)
RESULTS_FEED_CONFIG = {
    "base_url": "https://feeds.datagolf.com/historical-event-data/events",
    "tour": "pga",
    "api_key": os.environ.get("DATAGOLF_API_KEY", ""),

    # Request timeout (seconds)
    "timeout": 30,

    # Retry settings
    "max_retries": 3,
    "retry_delay": 2.0,
}
