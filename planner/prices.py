"""
planner/prices.py  —  Live price lookup + quote cache

The solvers never fetch anything themselves: this module produces the
PriceQuote map they consume. A failed lookup is logged and the asset
simply has no quote, so aggregation falls back to transaction prices.

Within one refresh cycle every asset costs at most one network round
trip, hit or miss. `clear_cache()` starts a new cycle.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

import pandas as pd
import yfinance as yf

from planner import config
from planner.models import PriceQuote, normalise_id

logger = logging.getLogger(__name__)


def _close_from_download(raw: pd.DataFrame, tickers: list) -> pd.DataFrame:
    """
    Extract a clean (date × ticker) Close price DataFrame from yf.download() output.

    yfinance's output format has changed across versions:
      - Old (< 0.2.40)  : flat columns, "Close" is a column or a Series
      - New (>= 0.2.40) : MultiIndex columns — (field, ticker) or (ticker, field)
                          depending on how many tickers were requested
    """
    cols = raw.columns

    if isinstance(cols, pd.MultiIndex):
        level0_vals = set(cols.get_level_values(0))
        level1_vals = set(cols.get_level_values(1))

        if "Close" in level0_vals:
            close = raw["Close"]
        elif "Close" in level1_vals:
            close = raw.xs("Close", axis=1, level=1)
        else:
            raise KeyError(
                f"Could not find 'Close' in MultiIndex columns. "
                f"Level 0: {sorted(level0_vals)[:5]}, Level 1: {sorted(level1_vals)[:5]}"
            )

        if isinstance(close, pd.Series):
            close = close.to_frame(name=tickers[0].upper())

    else:
        if "Close" in cols:
            close = raw[["Close"]].copy()
            close.columns = [tickers[0].upper()]
        elif "close" in [str(c).lower() for c in cols]:
            col = next(c for c in cols if str(c).lower() == "close")
            close = raw[[col]].copy()
            close.columns = [tickers[0].upper()]
        else:
            close = raw.copy()

    close.columns = [str(c).upper() for c in close.columns]
    return close


def _as_of(stamp) -> str:
    if hasattr(stamp, "isoformat"):
        return stamp.isoformat()
    return str(stamp)


class PriceFetcher:
    def __init__(self, store=None):
        self._store = store
        self._cache: Dict[str, PriceQuote] = {}
        self._fresh: set = set()   # live quote this cycle
        self._tried: set = set()   # any lookup attempted this cycle
        if self._store is not None:
            self._cache.update(self._store.get_price_cache())

    def _remember(self, quote: PriceQuote) -> None:
        self._cache[quote.asset_id] = quote
        self._fresh.add(quote.asset_id)
        if self._store is not None:
            self._store.set_quotes([quote])

    def is_stale(self, asset_id: str) -> bool:
        """True if the quote comes from the stored cache, not a live fetch this cycle."""
        return normalise_id(asset_id) not in self._fresh

    def cached(self) -> Dict[str, PriceQuote]:
        return dict(self._cache)

    def fetch_quote(self, asset_id: str) -> Optional[PriceQuote]:
        """Live lookup for one asset; returns the cached quote on failure."""
        asset_id = normalise_id(asset_id)
        if asset_id in self._tried:
            return self._cache.get(asset_id)
        self._tried.add(asset_id)

        try:
            t     = yf.Ticker(asset_id)
            price = t.fast_info.get("lastPrice") or t.fast_info.get("regularMarketPrice")
            as_of = datetime.now().isoformat(timespec="seconds")
            if price is None:
                hist = t.history(period="2d")
                if not hist.empty:
                    price = float(hist["Close"].iloc[-1])
                    as_of = _as_of(hist.index[-1])
            if price is not None and float(price) > 0:
                quote = PriceQuote(asset_id=asset_id, price=float(price),
                                   as_of=as_of, currency=config.DEFAULT_CURRENCY)
                self._remember(quote)
                return quote
            logger.warning("No price returned for %s", asset_id)
        except Exception as e:
            logger.warning("Could not fetch %s: %s", asset_id, e)
        return self._cache.get(asset_id)

    def fetch_quotes(self, asset_ids: Iterable[str]) -> Dict[str, Optional[PriceQuote]]:
        """
        Refresh many assets with one batched download. If the batch call
        itself fails, fall back to single lookups.
        """
        asset_ids = [normalise_id(a) for a in asset_ids]
        to_fetch  = [a for a in dict.fromkeys(asset_ids) if a not in self._tried]

        if to_fetch:
            try:
                raw = yf.download(to_fetch, period="2d", progress=False, auto_adjust=True)
                self._tried.update(to_fetch)
                if not raw.empty:
                    close = _close_from_download(raw, to_fetch)
                    for asset_id in to_fetch:
                        if asset_id not in close.columns:
                            continue
                        series = close[asset_id].dropna()
                        if series.empty:
                            continue
                        self._remember(PriceQuote(
                            asset_id=asset_id,
                            price=float(series.iloc[-1]),
                            as_of=_as_of(series.index[-1]),
                            currency=config.DEFAULT_CURRENCY,
                        ))
                missing = [a for a in to_fetch if a not in self._fresh]
                if missing:
                    logger.warning("No price for %s", ", ".join(missing))
            except Exception as e:
                logger.warning("Batch fetch failed: %s", e)
                for asset_id in to_fetch:
                    self._tried.discard(asset_id)
                    self.fetch_quote(asset_id)

        return {a: self._cache.get(a) for a in asset_ids}

    def clear_cache(self) -> None:
        """Start a new refresh cycle. Stored quotes are kept as the fallback."""
        self._cache.clear()
        self._fresh.clear()
        self._tried.clear()
        if self._store is not None:
            self._cache.update(self._store.get_price_cache())
