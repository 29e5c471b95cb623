"""
planner/config.py  —  Application-wide constants

File locations can be overridden from the environment so tests and
multiple households can keep separate databases side by side.
"""

import os

# ── Storage ───────────────────────────────────────────────────────────────────
DB_FILE          = os.environ.get("PLANNER_DB", "planner.db")
JSON_BACKUP_FILE = os.environ.get("PLANNER_BACKUP", "planner_snapshot.json")
SNAPSHOT_KEY     = "snapshot"

# ── Logging ───────────────────────────────────────────────────────────────────
LOG_LEVEL = os.environ.get("PLANNER_LOG_LEVEL", "WARNING").upper()

# ── Asset defaults ────────────────────────────────────────────────────────────
DEFAULT_ASSET_CLASS = "Stock"
DEFAULT_SUB_CLASS   = "International"
DEFAULT_CURRENCY    = "EUR"

# ── Solver tuning ─────────────────────────────────────────────────────────────
FULL_LIQUIDATION_RATIO     = 0.99   # withdraw ≥ 99% of value → sell everything
WITHDRAWAL_ITERATION_SLACK = 1000   # extra iterations above total share count

# ── Forecast defaults ─────────────────────────────────────────────────────────
DEFAULT_ANNUAL_RETURN = 5.0         # % per year
DEFAULT_HORIZON_YEARS = 10
