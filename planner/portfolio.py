"""
planner/portfolio.py  —  Position aggregation

Folds the transaction ledger into holdings (quantity + weighted-average
cost) and, combined with a price map, into valued positions and a
portfolio summary. Everything here is recomputed from scratch on every
call: there is no cache, so there is nothing to invalidate.

Cost basis rules:
  - Buy  : new_avg = (old_qty × old_avg + qty × price) / (old_qty + qty)
  - Sell : quantity drops, average cost is untouched
  - Quantity may go negative (oversold ledger). That state is kept, not fixed.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from planner import config
from planner.models import (
    Account, AssetClass, AssetDefinition, CashSource, Direction, Position,
    PortfolioSummary, PriceQuote, Transaction, normalise_id, to_float,
)


# ── Holding replay ────────────────────────────────────────────────────────────

@dataclass
class Holding:
    """Running state for one asset while the ledger is replayed."""
    asset_id:     str
    quantity:     float = 0.0
    average_cost: float = 0.0
    last_price:   float = 0.0

    def apply(self, t: Transaction) -> None:
        quantity = to_float(t.quantity)
        price    = to_float(t.unit_price)

        if t.direction is Direction.BUY:
            total_qty = self.quantity + quantity
            if total_qty != 0:
                self.average_cost = ((self.quantity * self.average_cost
                                      + quantity * price) / total_qty)
            else:
                self.average_cost = 0.0
            self.quantity = total_qty
        else:
            self.quantity -= quantity

        self.last_price = price


def build_holdings(transactions: Iterable[Transaction]) -> Dict[str, Holding]:
    """Replay the ledger in list order, grouped by case-insensitive asset id."""
    holdings: Dict[str, Holding] = {}
    for t in transactions:
        asset_id = normalise_id(t.asset_id)
        if asset_id not in holdings:
            holdings[asset_id] = Holding(asset_id=asset_id)
        holdings[asset_id].apply(t)
    return holdings


# ── Valuation ─────────────────────────────────────────────────────────────────

def _definitions_by_id(definitions: Iterable[AssetDefinition]) -> Dict[str, AssetDefinition]:
    return {normalise_id(d.asset_id): d for d in definitions}


def _quotes_by_id(prices: Optional[Mapping[str, PriceQuote]]) -> Dict[str, PriceQuote]:
    return {normalise_id(k): q for k, q in (prices or {}).items()}


def effective_price(holding: Holding, quote: Optional[PriceQuote]) -> float:
    """Quote → last transaction price → average cost."""
    if quote is not None:
        return to_float(quote.price)
    if holding.last_price:
        return holding.last_price
    return holding.average_cost


def value_holding(holding: Holding,
                  definition: Optional[AssetDefinition],
                  quote: Optional[PriceQuote]) -> Position:
    price      = effective_price(holding, quote)
    value      = holding.quantity * price
    cost_basis = holding.quantity * holding.average_cost
    gain       = value - cost_basis

    if definition is not None:
        label       = definition.label
        asset_class = definition.asset_class
        sub_class   = definition.sub_class or config.DEFAULT_SUB_CLASS
    else:
        label       = ""
        asset_class = AssetClass(config.DEFAULT_ASSET_CLASS)
        sub_class   = config.DEFAULT_SUB_CLASS

    return Position(
        asset_id=holding.asset_id,
        label=label,
        asset_class=asset_class,
        sub_class=sub_class,
        quantity=holding.quantity,
        average_cost=holding.average_cost,
        current_price=price,
        current_value=value,
        unrealized_gain=gain,
        gain_percent=(gain / cost_basis * 100) if cost_basis else 0.0,
        as_of=quote.as_of if quote is not None else None,
    )


def summarise(positions: Iterable[Position]) -> PortfolioSummary:
    positions   = list(positions)
    total_value = sum(p.current_value for p in positions)
    total_cost  = sum(p.cost_basis for p in positions)
    total_gain  = total_value - total_cost

    by_class = {asset_class: 0.0 for asset_class in AssetClass}
    for p in positions:
        by_class[p.asset_class] += p.current_value
    allocation = {k: (v / total_value * 100 if total_value else 0.0)
                  for k, v in by_class.items()}

    return PortfolioSummary(
        total_value=total_value,
        total_cost=total_cost,
        total_gain=total_gain,
        total_gain_percent=(total_gain / total_cost * 100) if total_cost else 0.0,
        allocation=allocation,
    )


def aggregate(transactions: Iterable[Transaction],
              asset_definitions: Iterable[AssetDefinition] = (),
              prices: Optional[Mapping[str, PriceQuote]] = None,
              ) -> Tuple[List[Position], PortfolioSummary]:
    """
    Ledger + reference data + quotes → (positions, summary).
    Positions come back in first-seen order of their asset ids.
    """
    definitions = _definitions_by_id(asset_definitions)
    quotes      = _quotes_by_id(prices)

    positions = [
        value_holding(h, definitions.get(asset_id), quotes.get(asset_id))
        for asset_id, h in build_holdings(transactions).items()
    ]
    return positions, summarise(positions)


# ── Scoped views ──────────────────────────────────────────────────────────────

def transactions_for_account(transactions: Iterable[Transaction],
                             account_id: Optional[str]) -> List[Transaction]:
    return [t for t in transactions if t.account_id == account_id]


def transactions_for_cash_source(transactions: Iterable[Transaction],
                                 cash_source_id: Optional[str]) -> List[Transaction]:
    return [t for t in transactions if t.cash_source_id == cash_source_id]


def account_values(transactions: Iterable[Transaction],
                   accounts: Iterable[Account],
                   asset_definitions: Iterable[AssetDefinition] = (),
                   prices: Optional[Mapping[str, PriceQuote]] = None,
                   ) -> Dict[str, float]:
    """Market value of each account, from the transactions linked to it."""
    transactions = list(transactions)
    definitions  = list(asset_definitions)
    values: Dict[str, float] = {}
    for account in accounts:
        _, summary = aggregate(transactions_for_account(transactions, account.id),
                               definitions, prices)
        values[account.id] = summary.total_value
    return values


@dataclass(frozen=True)
class CashSourceSummary:
    cash_source_id:     str
    name:               str
    invested_value:     float
    liquidity:          float
    total_capital:      float
    liquidity_percent:  float
    required_liquidity: float

    @property
    def below_floor(self) -> bool:
        return self.liquidity < self.required_liquidity


def cash_source_summaries(transactions: Iterable[Transaction],
                          cash_sources: Iterable[CashSource],
                          asset_definitions: Iterable[AssetDefinition] = (),
                          prices: Optional[Mapping[str, PriceQuote]] = None,
                          ) -> List[CashSourceSummary]:
    """
    Invested value vs idle cash per cash source. A percent floor is
    measured against the capital invested through that source.
    """
    transactions = list(transactions)
    definitions  = list(asset_definitions)
    rows = []
    for source in cash_sources:
        _, summary = aggregate(transactions_for_cash_source(transactions, source.id),
                               definitions, prices)
        invested  = summary.total_value
        liquidity = source.current_liquidity
        capital   = invested + liquidity
        rows.append(CashSourceSummary(
            cash_source_id=source.id,
            name=source.name,
            invested_value=invested,
            liquidity=liquidity,
            total_capital=capital,
            liquidity_percent=(liquidity / capital * 100) if capital else 0.0,
            required_liquidity=source.required_liquidity(invested),
        ))
    return rows


@dataclass(frozen=True)
class LiquidityOverview:
    invested:       float
    liquidity:      float
    total_capital:  float

    @property
    def liquidity_percent(self) -> float:
        return (self.liquidity / self.total_capital * 100) if self.total_capital else 0.0


def liquidity_overview(positions: Iterable[Position],
                       cash_sources: Iterable[CashSource]) -> LiquidityOverview:
    invested  = sum(p.current_value for p in positions)
    liquidity = sum(s.current_liquidity for s in cash_sources)
    return LiquidityOverview(invested=invested, liquidity=liquidity,
                             total_capital=invested + liquidity)
