"""
planner/display.py
==================
Renders positions and solver output in the terminal using `rich`.

Display logic lives here and only here: the solvers return plain
dataclasses and never format anything.
"""

from typing import List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from planner.forecast import MonthlyResult, first_failure, yearly_summary
from planner.goals import AllocationRow
from planner.models import Direction, Position, PortfolioSummary, Transaction
from planner.portfolio import CashSourceSummary, LiquidityOverview
from planner.rebalance import ActionKind, BuyOnlyPlan, RebalanceAction
from planner.withdrawal import WithdrawalPlan


console = Console()

# ── Palette ─────────────────────────────────────────────────────────────────
GAIN   = "green"
LOSS   = "red"
MUTED  = "grey62"
ACCENT = "steel_blue1"
HEAD   = "bold white"
WARN   = "yellow"


# ── Formatters ───────────────────────────────────────────────────────────────

def _colour(value: float, text: str) -> str:
    if value > 0:  return f"[{GAIN}]{text}[/{GAIN}]"
    if value < 0:  return f"[{LOSS}]{text}[/{LOSS}]"
    return f"[{MUTED}]{text}[/{MUTED}]"

def _cur(value: float) -> str:
    return f"€{value:,.2f}"

def _pct(value: float) -> str:
    sign = "+" if value > 0 else ""
    return f"{sign}{value:.2f}%"

def _arrow(value: float) -> str:
    if value > 0:  return f"[{GAIN}]▲[/{GAIN}]"
    if value < 0:  return f"[{LOSS}]▼[/{LOSS}]"
    return f"[{MUTED}]─[/{MUTED}]"

def _table(**kwargs) -> Table:
    return Table(
        box=box.SIMPLE,
        show_header=True,
        header_style=f"bold {ACCENT}",
        show_edge=False,
        pad_edge=True,
        **kwargs,
    )


# ── Positions ────────────────────────────────────────────────────────────────

def print_portfolio_summary(positions: List[Position], summary: PortfolioSummary) -> None:
    if not positions:
        console.print(f"\n  [{MUTED}]No transactions yet. Add one to get started.[/{MUTED}]\n")
        return

    table = _table(row_styles=["", "on grey7"])
    table.add_column("",         width=2)
    table.add_column("Asset",    style=HEAD, min_width=12)
    table.add_column("Label",    style=MUTED, min_width=16)
    table.add_column("Class",    style=MUTED, min_width=10)
    table.add_column("Qty",      justify="right", min_width=10)
    table.add_column("Avg Cost", justify="right", min_width=11, style=MUTED)
    table.add_column("Price",    justify="right", min_width=11)
    table.add_column("Value",    justify="right", min_width=13, style=HEAD)
    table.add_column("Gain",     justify="right", min_width=13)
    table.add_column("Gain %",   justify="right", min_width=9)

    for p in positions:
        table.add_row(
            _arrow(p.unrealized_gain),
            p.asset_id,
            p.label,
            f"{p.asset_class.value} · {p.sub_class}" if p.sub_class else p.asset_class.value,
            f"{p.quantity:,.4f}",
            _cur(p.average_cost),
            _cur(p.current_price),
            _cur(p.current_value),
            _colour(p.unrealized_gain, _cur(p.unrealized_gain)),
            _colour(p.gain_percent, _pct(p.gain_percent)),
        )

    console.print()
    console.print(table)
    parts = [
        f"[{MUTED}]Cost[/{MUTED}]  [white]{_cur(summary.total_cost)}[/white]",
        f"[{MUTED}]Value[/{MUTED}]  [bold white]{_cur(summary.total_value)}[/bold white]",
        f"[{MUTED}]Gain[/{MUTED}]  {_colour(summary.total_gain, _cur(summary.total_gain))}"
        f"  {_colour(summary.total_gain_percent, _pct(summary.total_gain_percent))}",
    ]
    console.print("  " + "     ".join(parts) + "\n")


def print_allocation_breakdown(summary: PortfolioSummary) -> None:
    if summary.total_value == 0:
        return

    table = _table()
    table.add_column("Class", min_width=10)
    table.add_column("",      min_width=36)

    BAR_WIDTH = 28
    for asset_class, pct in sorted(summary.allocation.items(), key=lambda x: -x[1]):
        if pct == 0:
            continue
        fill = round(pct / 100 * BAR_WIDTH)
        bar  = (
            f"[{ACCENT}]{'█' * fill}[/{ACCENT}]"
            f"[{MUTED}]{'░' * (BAR_WIDTH - fill)}[/{MUTED}]"
            f"  [{MUTED}]{pct:.1f}%[/{MUTED}]"
        )
        table.add_row(asset_class.value.upper(), bar)

    console.print(table)


# ── Rebalancing ──────────────────────────────────────────────────────────────

_KIND_STYLE = {
    ActionKind.BUY:      f"[{GAIN}]BUY[/{GAIN}]",
    ActionKind.SELL:     f"[{LOSS}]SELL[/{LOSS}]",
    ActionKind.BALANCED: f"[{MUTED}]OK[/{MUTED}]",
    ActionKind.UNPRICED: f"[{WARN}]NO PRICE[/{WARN}]",
}


def print_full_rebalance(actions: List[RebalanceAction]) -> None:
    if not actions:
        console.print(f"  [{MUTED}]Nothing to rebalance.[/{MUTED}]")
        return

    table = _table()
    table.add_column("Asset",   style=HEAD, min_width=12)
    table.add_column("Value",   justify="right")
    table.add_column("Target",  justify="right")
    table.add_column("Target €", justify="right", style=MUTED)
    table.add_column("Action",  min_width=8)
    table.add_column("Shares",  justify="right")
    table.add_column("Amount",  justify="right", style=HEAD)

    for a in actions:
        table.add_row(
            a.asset_id,
            _cur(a.current_value),
            f"{a.target_percent:.2f}%",
            _cur(a.target_value),
            _KIND_STYLE[a.kind],
            f"{a.shares:+d}" if a.shares else "0",
            _colour(a.amount, _cur(a.amount)),
        )
    console.print(table)


def print_buy_only(plan: BuyOnlyPlan, required_liquidity: Optional[float] = None) -> None:
    if not plan.actions:
        console.print(f"  [{MUTED}]No underweight asset can be bought with "
                      f"{_cur(plan.available_cash)}.[/{MUTED}]")
    else:
        table = _table()
        table.add_column("Asset",  style=HEAD, min_width=12)
        table.add_column("Shares", justify="right")
        table.add_column("Price",  justify="right", style=MUTED)
        table.add_column("Spend",  justify="right", style=HEAD)
        for a in plan.actions:
            table.add_row(a.asset_id, f"{a.shares:,d}", _cur(a.price), _cur(a.cash_spent))
        console.print(table)

    console.print(f"  [{MUTED}]Spent[/{MUTED}] {_cur(plan.cash_spent)}"
                  f"   [{MUTED}]Left as cash[/{MUTED}] {_cur(plan.cash_left)}")
    if required_liquidity is not None:
        console.print(f"  [{MUTED}]Cash needed to reach every target by buying only:"
                      f"[/{MUTED}] {_cur(required_liquidity)}")
    console.print()


# ── Withdrawal ───────────────────────────────────────────────────────────────

def print_withdrawal(plan: WithdrawalPlan, net_cash_needed: float) -> None:
    table = _table()
    table.add_column("Asset",       style=HEAD, min_width=12)
    table.add_column("Sell",        justify="right")
    table.add_column("Gross",       justify="right")
    table.add_column("Tax",         justify="right", style=LOSS)
    table.add_column("Net",         justify="right", style=HEAD)
    table.add_column("Left (qty)",  justify="right", style=MUTED)
    table.add_column("Left (€)",    justify="right", style=MUTED)
    table.add_column("Weight after", justify="right")

    for a in plan.actions:
        table.add_row(
            a.asset_id, f"{a.shares_sold:,.4g}", _cur(a.gross), _cur(a.tax), _cur(a.net),
            f"{a.post_quantity:,.4g}", _cur(a.post_value), f"{a.post_allocation_percent:.1f}%",
        )

    console.print(table)
    lines = [
        f"[{MUTED}]Gross sold[/{MUTED}]   [white]{_cur(plan.gross_total)}[/white]",
        f"[{MUTED}]Tax[/{MUTED}]          [{LOSS}]{_cur(plan.tax_total)}[/{LOSS}]",
        f"[{MUTED}]Net cash[/{MUTED}]     [bold white]{_cur(plan.net_total)}[/bold white]",
    ]
    if plan.fully_liquidated:
        lines.append(f"[{WARN}]Request is close to the whole portfolio — "
                     f"everything is sold.[/{WARN}]")
    shortfall = plan.shortfall(net_cash_needed)
    if shortfall > 0:
        lines.append(f"[{LOSS}]Short by {_cur(shortfall)}[/{LOSS}]")
    console.print(Panel("\n".join(lines), title="Withdrawal", border_style=ACCENT,
                        padding=(1, 2)))


# ── Forecast ─────────────────────────────────────────────────────────────────

def print_forecast(results: List[MonthlyResult]) -> None:
    if not results:
        console.print(f"  [{MUTED}]Empty horizon.[/{MUTED}]")
        return

    table = _table()
    table.add_column("Year",      justify="right")
    table.add_column("Invested",  justify="right")
    table.add_column("Liquidity", justify="right")
    table.add_column("Total",     justify="right", style=HEAD)
    table.add_column("Scheduled", justify="right", style=MUTED)
    table.add_column("Status",    min_width=10)

    for r in yearly_summary(results):
        if r.insolvent:
            status = f"[{LOSS}]INSOLVENT[/{LOSS}]"
        elif r.rule_breach:
            status = f"[{WARN}]FLOOR BREACH[/{WARN}]"
        else:
            status = f"[{GAIN}]OK[/{GAIN}]"
        table.add_row(str(r.year), _cur(r.invested_value), _cur(r.liquidity_value),
                      _cur(r.total_value), _cur(r.scheduled_paid), status)
    console.print(table)

    failure = first_failure(results)
    if failure is not None:
        console.print(f"  [{LOSS}]First problem in month {failure.month} "
                      f"(year {failure.year}):[/{LOSS}] {failure.failure_reason}\n")


# ── Reports ──────────────────────────────────────────────────────────────────

def print_allocation_report(rows: List[AllocationRow], title: str) -> None:
    table = _table(title=title)
    table.add_column("Bucket",  min_width=12)
    table.add_column("Value",   justify="right")
    table.add_column("Current", justify="right")
    table.add_column("Target",  justify="right", style=MUTED)
    table.add_column("Diff",    justify="right")
    table.add_column("Action",  justify="right", style=HEAD)
    for r in rows:
        table.add_row(r.name, _cur(r.current_value), f"{r.current_percent:.1f}%",
                      f"{r.target_percent:.1f}%", _colour(-r.diff_percent, _pct(r.diff_percent)),
                      f"{r.action} {_cur(abs(r.diff_value))}" if r.target_percent else "—")
    console.print(table)


def print_cash_sources(rows: List[CashSourceSummary]) -> None:
    table = _table()
    table.add_column("Cash source", style=HEAD, min_width=14)
    table.add_column("Invested",    justify="right")
    table.add_column("Liquidity",   justify="right")
    table.add_column("Liquidity %", justify="right", style=MUTED)
    table.add_column("Minimum",     justify="right", style=MUTED)
    table.add_column("",            width=10)
    for r in rows:
        flag = f"[{LOSS}]BELOW MIN[/{LOSS}]" if r.below_floor else ""
        table.add_row(r.name, _cur(r.invested_value), _cur(r.liquidity),
                      f"{r.liquidity_percent:.1f}%", _cur(r.required_liquidity), flag)
    console.print(table)


def print_liquidity_overview(overview: LiquidityOverview) -> None:
    console.print(
        f"  [{MUTED}]Invested[/{MUTED}] {_cur(overview.invested)}"
        f"   [{MUTED}]Liquidity[/{MUTED}] {_cur(overview.liquidity)}"
        f" ({overview.liquidity_percent:.1f}%)"
        f"   [{MUTED}]Total capital[/{MUTED}] [bold white]{_cur(overview.total_capital)}[/bold white]\n"
    )


# ── Ledger ───────────────────────────────────────────────────────────────────

def print_transactions(transactions: List[Transaction]) -> None:
    table = _table()
    table.add_column("#",      justify="right", style=MUTED)
    table.add_column("Date",   style=MUTED)
    table.add_column("Side",   min_width=5)
    table.add_column("Asset",  style=HEAD, min_width=12)
    table.add_column("Qty",    justify="right")
    table.add_column("Price",  justify="right")
    table.add_column("Total",  justify="right", style=HEAD)
    for i, t in enumerate(transactions, 1):
        side = (f"[{GAIN}]BUY[/{GAIN}]" if t.direction is Direction.BUY
                else f"[{LOSS}]SELL[/{LOSS}]")
        table.add_row(str(i), t.date, side, t.asset_id, f"{t.quantity:,.4g}",
                      _cur(t.unit_price), _cur(t.total_cost))
    console.print(table)
