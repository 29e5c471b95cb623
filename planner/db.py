"""
planner/db.py  —  SQLite document store

Design principles:
  - Single file database (planner.db) — easy to back up, no server needed
  - Whole documents in, whole documents out: the planner reads one snapshot,
    changes it in memory and writes it back. No partial updates.
  - Every snapshot save is mirrored to a human-readable JSON backup
  - Thread-safe via check_same_thread=False
  - All SQL uses parameterised queries — no string formatting, no injection

Schema
──────
  documents   : key → JSON body (the snapshot lives under "snapshot")
  price_cache : last known quote per asset id
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from planner import config
from planner.models import (
    Account, AssetDefinition, CashSource, PriceQuote, Snapshot, Transaction,
    normalise_id, snapshot_from_dict, snapshot_to_dict,
)

logger = logging.getLogger(__name__)

# ── Schema ────────────────────────────────────────────────────────────────────

_SCHEMA = """
PRAGMA journal_mode = WAL;

CREATE TABLE IF NOT EXISTS documents (
    key        TEXT PRIMARY KEY,
    body       TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS price_cache (
    asset_id   TEXT PRIMARY KEY,
    price      REAL NOT NULL,
    as_of      TEXT NOT NULL,
    currency   TEXT NOT NULL DEFAULT 'EUR'
);
"""

# ── Connection management ─────────────────────────────────────────────────────

def _connect(path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.executescript(_SCHEMA)
    return conn


@contextmanager
def _tx(conn: sqlite3.Connection):
    """Context manager that commits on success, rolls back on error."""
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise


# ── Store ─────────────────────────────────────────────────────────────────────

class SnapshotStore:
    """Key-value document store plus the quote cache used by PriceFetcher."""

    def __init__(self, path: Optional[str] = None,
                 backup_path: Optional[str] = None):
        self.path        = path or config.DB_FILE
        self.backup_path = backup_path if backup_path is not None else config.JSON_BACKUP_FILE
        self.conn        = _connect(self.path)

    # ── Documents ─────────────────────────────────────────────────────────────

    def get_document(self, key: str) -> Optional[dict]:
        row = self.conn.execute(
            "SELECT body FROM documents WHERE key = ?", (key,)
        ).fetchone()
        return json.loads(row["body"]) if row else None

    def put_document(self, key: str, body: dict) -> None:
        with _tx(self.conn):
            self.conn.execute("""
                INSERT INTO documents (key, body, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    body       = excluded.body,
                    updated_at = excluded.updated_at
            """, (key, json.dumps(body), datetime.now().isoformat()))

    def delete_document(self, key: str) -> bool:
        with _tx(self.conn):
            cur = self.conn.execute("DELETE FROM documents WHERE key = ?", (key,))
        return cur.rowcount > 0

    def keys(self) -> List[str]:
        rows = self.conn.execute("SELECT key FROM documents ORDER BY key").fetchall()
        return [r["key"] for r in rows]

    # ── Snapshot ──────────────────────────────────────────────────────────────

    def load_snapshot(self) -> Snapshot:
        """The stored snapshot, or an empty one on first run."""
        body = self.get_document(config.SNAPSHOT_KEY)
        return snapshot_from_dict(body) if body else Snapshot()

    def save_snapshot(self, snapshot: Snapshot) -> None:
        body = snapshot_to_dict(snapshot)
        self.put_document(config.SNAPSHOT_KEY, body)
        self.export_json_backup(body)

    def export_json_backup(self, body: dict) -> None:
        if not self.backup_path:
            return
        try:
            with open(self.backup_path, "w") as f:
                json.dump(body, f, indent=2)
        except OSError as e:
            logger.warning("JSON backup failed: %s", e)

    # ── Price cache ───────────────────────────────────────────────────────────

    def get_price_cache(self) -> Dict[str, PriceQuote]:
        rows = self.conn.execute(
            "SELECT asset_id, price, as_of, currency FROM price_cache"
        ).fetchall()
        return {r["asset_id"]: PriceQuote(asset_id=r["asset_id"], price=r["price"],
                                          as_of=r["as_of"], currency=r["currency"])
                for r in rows}

    def set_quotes(self, quotes: Iterable[PriceQuote]) -> None:
        with _tx(self.conn):
            self.conn.executemany("""
                INSERT INTO price_cache (asset_id, price, as_of, currency)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(asset_id) DO UPDATE SET
                    price    = excluded.price,
                    as_of    = excluded.as_of,
                    currency = excluded.currency
            """, [(q.asset_id, q.price, q.as_of, q.currency) for q in quotes])

    def close(self) -> None:
        self.conn.close()


# ── Ledger edits ──────────────────────────────────────────────────────────────
# Pure snapshot → snapshot helpers; the caller decides when to save.

def add_transaction(snapshot: Snapshot, transaction: Transaction) -> Snapshot:
    return replace(snapshot, transactions=snapshot.transactions + [transaction])


def delete_transaction(snapshot: Snapshot, transaction_id: str) -> Snapshot:
    return replace(snapshot, transactions=[t for t in snapshot.transactions
                                           if t.id != transaction_id])


def _upsert(items: list, item, key) -> list:
    """Replace the matching item in place, or append it."""
    if any(key(i) == key(item) for i in items):
        return [item if key(i) == key(item) else i for i in items]
    return items + [item]


def upsert_asset_definition(snapshot: Snapshot, definition: AssetDefinition) -> Snapshot:
    definition = replace(definition, asset_id=normalise_id(definition.asset_id))
    return replace(snapshot, asset_definitions=_upsert(
        snapshot.asset_definitions, definition, lambda d: normalise_id(d.asset_id)))


def upsert_account(snapshot: Snapshot, account: Account) -> Snapshot:
    return replace(snapshot, accounts=_upsert(snapshot.accounts, account, lambda a: a.id))


def delete_account(snapshot: Snapshot, account_id: str) -> Snapshot:
    """Remove the account; its transactions stay in the ledger, unlinked."""
    return replace(
        snapshot,
        accounts=[a for a in snapshot.accounts if a.id != account_id],
        transactions=[replace(t, account_id=None) if t.account_id == account_id else t
                      for t in snapshot.transactions],
    )


def upsert_cash_source(snapshot: Snapshot, source: CashSource) -> Snapshot:
    return replace(snapshot, cash_sources=_upsert(snapshot.cash_sources, source, lambda s: s.id))


def delete_cash_source(snapshot: Snapshot, source_id: str) -> Snapshot:
    """Remove the cash source; its transactions stay in the ledger, unlinked."""
    return replace(
        snapshot,
        cash_sources=[s for s in snapshot.cash_sources if s.id != source_id],
        transactions=[replace(t, cash_source_id=None) if t.cash_source_id == source_id else t
                      for t in snapshot.transactions],
    )


def set_quotes(snapshot: Snapshot, quotes: Iterable[Optional[PriceQuote]]) -> Snapshot:
    prices = dict(snapshot.prices)
    prices.update({q.asset_id: q for q in quotes if q is not None})
    return replace(snapshot, prices=prices)
