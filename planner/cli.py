"""
planner/cli.py
==============
The interactive command-line interface.

The CLI owns all I/O: it loads one snapshot from the store, hands plain
inputs to the solvers, prints what comes back and writes the whole
snapshot again after every change.
"""

import uuid
from dataclasses import replace
from datetime import date, datetime
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt

from planner import config, db, display
from planner.db import SnapshotStore
from planner.forecast import ScheduledExpense, forecast_accounts, simulate
from planner.goals import class_allocation_report, goal_allocation_report
from planner.models import (
    Account, AssetClass, AssetDefinition, CashSource, Direction, Goal, LiquidityRule,
    LiquidityRuleType, Position, Transaction, normalise_id,
)
from planner.portfolio import (
    account_values, aggregate, cash_source_summaries, liquidity_overview,
    transactions_for_account,
)
from planner.prices import PriceFetcher
from planner.rebalance import (
    min_liquidity_for_full_buy_only_coverage, plan_buy_only_rebalance,
    plan_full_rebalance, summarise_buy_only,
)
from planner.validation import (
    target_total_warning, validate_asset_id, validate_liquidity_rule, validate_name,
    validate_scheduled_expense, validate_targets, validate_transaction,
)
from planner.withdrawal import plan_withdrawal

console = Console()


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class CLI:
    """Main command-line interface class."""

    ASSET_CLASSES = {str(i): c for i, c in enumerate(AssetClass, 1)}
    GOALS         = {str(i): g for i, g in enumerate(
        (Goal.GROWTH, Goal.PROTECTION, Goal.SECURITY), 1)}

    def __init__(self, store: Optional[SnapshotStore] = None):
        self.store    = store or SnapshotStore()
        self.snapshot = self.store.load_snapshot()
        self.fetcher  = PriceFetcher(self.store)

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _save(self, snapshot) -> None:
        self.store.save_snapshot(snapshot)
        self.snapshot = snapshot

    def _errors(self, errors: List[str]) -> bool:
        for e in errors:
            console.print(f"[red]{e}[/red]")
        return bool(errors)

    def _prompt_float(self, prompt: str, default: Optional[float] = None,
                      allow_zero: bool = False) -> float:
        """Keep asking until the user enters a valid number."""
        while True:
            raw = Prompt.ask(prompt, default=None if default is None else str(default))
            try:
                value = float(raw)
            except (TypeError, ValueError):
                console.print("[red]That doesn't look like a number. Try again.[/red]")
                continue
            if value < 0 or (value == 0 and not allow_zero):
                console.print("[red]Please enter a positive number.[/red]")
                continue
            return value

    def _prompt_int(self, prompt: str, default: str = "",
                    optional: bool = False) -> Optional[int]:
        """Whole number; blank returns None when `optional`."""
        while True:
            raw = Prompt.ask(prompt, default=default).strip()
            if optional and not raw:
                return None
            try:
                return int(raw)
            except ValueError:
                console.print("[red]Please enter a whole number.[/red]")

    def _prompt_date(self) -> date:
        while True:
            raw = Prompt.ask("Date (YYYY-MM-DD)", default=date.today().isoformat())
            try:
                return datetime.strptime(raw, "%Y-%m-%d").date()
            except ValueError:
                console.print("[red]Expected YYYY-MM-DD.[/red]")

    def _choose_account(self, allow_none: bool = True) -> Optional[Account]:
        accounts = self.snapshot.accounts
        if not accounts:
            return None
        for i, a in enumerate(accounts, 1):
            console.print(f"  {i}. {a.name}")
        choices = [str(i) for i in range(1, len(accounts) + 1)]
        if allow_none:
            console.print("  0. (none)")
            choices.append("0")
        choice = Prompt.ask("Account", choices=choices, default=choices[0])
        return None if choice == "0" else accounts[int(choice) - 1]

    def _choose_cash_source(self) -> Optional[CashSource]:
        sources = self.snapshot.cash_sources
        if not sources:
            return None
        for i, s in enumerate(sources, 1):
            console.print(f"  {i}. {s.name}")
        console.print("  0. (none)")
        choice = Prompt.ask("Cash source", choices=["0"] + [str(i) for i in range(1, len(sources) + 1)],
                            default="1")
        return None if choice == "0" else sources[int(choice) - 1]

    def _positions(self, account: Optional[Account] = None) -> List[Position]:
        transactions = self.snapshot.transactions
        if account is not None:
            transactions = transactions_for_account(transactions, account.id)
        positions, _ = aggregate(transactions, self.snapshot.asset_definitions,
                                 self.snapshot.prices)
        return positions

    # -----------------------------------------------------------------------
    # Menu actions
    # -----------------------------------------------------------------------

    def view_portfolio(self):
        positions, summary = aggregate(self.snapshot.transactions,
                                       self.snapshot.asset_definitions,
                                       self.snapshot.prices)
        display.print_portfolio_summary(positions, summary)
        display.print_allocation_breakdown(summary)
        if self.snapshot.cash_sources:
            display.print_liquidity_overview(
                liquidity_overview(positions, self.snapshot.cash_sources))
            display.print_cash_sources(cash_source_summaries(
                self.snapshot.transactions, self.snapshot.cash_sources,
                self.snapshot.asset_definitions, self.snapshot.prices))

    def add_transaction(self, direction: Direction = Direction.BUY):
        """Guided flow to add a buy or sell transaction."""
        console.print(f"\n[steel_blue1]── Add {direction.value.upper()} ──[/steel_blue1]")

        asset_id = Prompt.ask("Ticker or ISIN").strip().upper()
        if self._errors(validate_asset_id(asset_id)):
            return

        quantity = self._prompt_float("Quantity")
        price    = self._prompt_float("Price per unit (€)", allow_zero=True)
        txn_date = self._prompt_date()
        account  = self._choose_account()
        source   = self._choose_cash_source()

        held = next((p.quantity for p in self._positions(account)
                     if p.asset_id == asset_id), 0.0)
        if self._errors(validate_transaction(direction, quantity, price, txn_date, held)):
            return

        transaction = Transaction(
            id=_new_id(),
            asset_id=asset_id,
            quantity=quantity,
            unit_price=price,
            date=txn_date.isoformat(),
            direction=direction,
            account_id=account.id if account else None,
            cash_source_id=source.id if source else None,
        )
        self._save(db.add_transaction(self.snapshot, transaction))
        console.print(f"[green]✓ {direction.value.upper()} recorded for {asset_id}[/green]")

    def delete_transaction(self):
        transactions = self.snapshot.transactions
        if not transactions:
            console.print("[yellow]No transactions found.[/yellow]")
            return

        display.print_transactions(transactions)
        choice = Prompt.ask("Transaction # to delete",
                            choices=[str(i) for i in range(1, len(transactions) + 1)])
        t = transactions[int(choice) - 1]
        if Confirm.ask(f"[red]Delete {t.direction.value.upper()} {t.quantity:g} {t.asset_id} "
                       f"on {t.date}? This cannot be undone.[/red]"):
            self._save(db.delete_transaction(self.snapshot, t.id))
            console.print("[green]✓ Transaction removed.[/green]")

    def define_asset(self):
        console.print("\n[steel_blue1]── Define asset ──[/steel_blue1]")
        asset_id = Prompt.ask("Ticker or ISIN").strip().upper()
        if self._errors(validate_asset_id(asset_id)):
            return
        label = Prompt.ask("Label", default=asset_id)
        console.print("  " + "   ".join(f"{k} = {c.value}" for k, c in self.ASSET_CLASSES.items()))
        asset_class = self.ASSET_CLASSES[Prompt.ask("Class", choices=list(self.ASSET_CLASSES),
                                                    default="1")]
        sub_class = Prompt.ask("Sub-class (International, Local, Short, Medium, Long, Gold…)",
                               default=config.DEFAULT_SUB_CLASS
                               if asset_class is AssetClass.STOCK else "")
        self._save(db.upsert_asset_definition(self.snapshot, AssetDefinition(
            asset_id=asset_id, label=label, asset_class=asset_class, sub_class=sub_class)))
        console.print(f"[green]✓ {asset_id} saved as {asset_class.value}[/green]")

    def manage_accounts(self):
        console.print("\n  1. New account   2. Set a target   3. Set cash reserve   4. Delete account")
        choice = Prompt.ask("Choose", choices=["1", "2", "3", "4"])

        if choice == "1":
            name = Prompt.ask("Account name")
            if self._errors(validate_name(name)):
                return
            self._save(db.upsert_account(self.snapshot, Account(id=_new_id(), name=name.strip())))
            console.print(f"[green]✓ Account '{name}' created[/green]")
            return

        account = self._choose_account(allow_none=False)
        if account is None:
            console.print("[yellow]No accounts yet.[/yellow]")
            return

        if choice == "2":
            asset_id = normalise_id(Prompt.ask("Ticker or ISIN"))
            percent  = self._prompt_float("Target %", allow_zero=True)
            targets  = dict(account.target_allocations)
            targets[asset_id] = percent
            if self._errors(validate_targets(targets)):
                return
            self._save(db.upsert_account(self.snapshot,
                                         replace(account, target_allocations=targets)))
            warning = target_total_warning(targets)
            if warning:
                console.print(f"[yellow]{warning}[/yellow]")
        elif choice == "3":
            reserve = self._prompt_float("Cash reserve (€)", default=account.cash_reserve,
                                         allow_zero=True)
            self._save(db.upsert_account(self.snapshot, replace(account, cash_reserve=reserve)))
        elif Confirm.ask(f"[red]Delete '{account.name}'? Its transactions are kept.[/red]"):
            self._save(db.delete_account(self.snapshot, account.id))
            console.print(f"[green]✓ '{account.name}' removed.[/green]")

    def manage_cash_sources(self):
        console.print("\n  1. New cash source   2. Update liquidity   3. Delete")
        choice = Prompt.ask("Choose", choices=["1", "2", "3"])

        if choice == "1":
            name = Prompt.ask("Name (broker / bank)")
            if self._errors(validate_name(name)):
                return
            liquidity = self._prompt_float("Current liquidity (€)", allow_zero=True)
            rule = None
            if Confirm.ask("Keep a minimum liquidity?", default=False):
                kind  = Prompt.ask("Rule", choices=["fixed", "percent"], default="fixed")
                rule_type = LiquidityRuleType(kind)
                value = self._prompt_float("Amount (€)" if kind == "fixed" else "Percent",
                                           allow_zero=True)
                if self._errors(validate_liquidity_rule(rule_type, value)):
                    return
                rule = LiquidityRule(type=rule_type, value=value)
            self._save(db.upsert_cash_source(self.snapshot, CashSource(
                id=_new_id(), name=name.strip(), current_liquidity=liquidity,
                min_liquidity_rule=rule)))
            console.print(f"[green]✓ Cash source '{name}' created[/green]")
            return

        source = self._choose_cash_source()
        if source is None:
            return
        if choice == "2":
            liquidity = self._prompt_float("Current liquidity (€)",
                                           default=source.current_liquidity, allow_zero=True)
            self._save(db.upsert_cash_source(self.snapshot,
                                             replace(source, current_liquidity=liquidity)))
        elif Confirm.ask(f"[red]Delete '{source.name}'? Its transactions are kept.[/red]"):
            self._save(db.delete_cash_source(self.snapshot, source.id))

    def rebalance(self):
        account = self._choose_account(allow_none=False)
        if account is None:
            console.print("[yellow]Create an account with targets first.[/yellow]")
            return
        positions = self._positions(account)
        total     = sum(p.current_value for p in positions)
        prices    = self.snapshot.prices

        console.print(f"\n[steel_blue1]── Full rebalance: {account.name} ──[/steel_blue1]")
        display.print_full_rebalance(
            plan_full_rebalance(positions, account.target_allocations, total, prices))

        console.print("\n[steel_blue1]── Buy-only ──[/steel_blue1]")
        cash    = self._prompt_float("Cash to deploy (€)", default=account.cash_reserve,
                                     allow_zero=True)
        actions = plan_buy_only_rebalance(positions, account.target_allocations, cash, prices)
        display.print_buy_only(
            summarise_buy_only(actions, cash),
            min_liquidity_for_full_buy_only_coverage(positions, account.target_allocations))

    def withdraw(self):
        account = self._choose_account(allow_none=False)
        if account is None:
            console.print("[yellow]Create an account first.[/yellow]")
            return
        needed = self._prompt_float("Net cash needed (€)")
        plan   = plan_withdrawal(self._positions(account), account.target_allocations, needed)
        display.print_withdrawal(plan, needed)

    def _prompt_scheduled_expense(self, horizon: int) -> Optional[ScheduledExpense]:
        name   = Prompt.ask("Expense name", default="Lump sum")
        amount = self._prompt_float("Amount (€)")
        month  = self._prompt_int("Month of year (1-12)", default="1")
        year   = self._prompt_int("Simulation year (blank = every year)", optional=True)
        if self._errors(validate_scheduled_expense(amount, month, year, horizon)):
            return None
        console.print("  " + "   ".join(f"{k} = {g.value}" for k, g in self.GOALS.items()))
        picked = Prompt.ask("Goals it may draw on (e.g. 2 3)", default="2 3").split()
        goals  = frozenset(self.GOALS[k] for k in picked if k in self.GOALS)
        erode  = Confirm.ask("May it dip into broker liquidity?", default=False)
        return ScheduledExpense(name=name, amount=amount, month=month, year=year,
                                allowed_goals=goals, allow_liquidity_erosion=erode)

    def forecast(self):
        console.print("\n[steel_blue1]── Forecast ──[/steel_blue1]")
        income   = self._prompt_float("Monthly income (€)", allow_zero=True)
        expenses = self._prompt_float("Monthly expenses (€)", allow_zero=True)
        horizon  = int(self._prompt_float("Years", default=config.DEFAULT_HORIZON_YEARS))

        values   = account_values(self.snapshot.transactions, self.snapshot.accounts,
                                  self.snapshot.asset_definitions, self.snapshot.prices)
        accounts = forecast_accounts(self.snapshot.accounts, values,
                                     self.snapshot.asset_definitions)
        returns  = {a.id: self._prompt_float(f"Annual return for {a.name} (%)",
                                             default=config.DEFAULT_ANNUAL_RETURN,
                                             allow_zero=True)
                    for a in accounts}

        scheduled = []
        while Confirm.ask("Add a scheduled expense?", default=False):
            expense = self._prompt_scheduled_expense(horizon)
            if expense is not None:
                scheduled.append(expense)

        results = simulate(accounts, self.snapshot.cash_sources, income, expenses,
                           horizon, returns, scheduled)
        display.print_forecast(results)

    def set_bucket_targets(self):
        """Portfolio-wide target % per asset class or per goal."""
        console.print("\n  1. By asset class   2. By goal")
        if Prompt.ask("Choose", choices=["1", "2"], default="1") == "1":
            field_name, names = "class_targets", [c.value for c in AssetClass]
        else:
            field_name, names = "goal_targets", [g.value for g in Goal]

        current = getattr(self.snapshot, field_name)
        targets = {name: self._prompt_float(f"{name} target %",
                                            default=current.get(name, 0.0), allow_zero=True)
                   for name in names}
        if self._errors(validate_targets(targets)):
            return
        self._save(replace(self.snapshot, **{field_name: targets}))
        console.print("[green]✓ Targets saved[/green]")
        warning = target_total_warning(targets)
        if warning:
            console.print(f"[yellow]{warning}[/yellow]")

    def show_reports(self):
        positions = self._positions()
        liquidity = sum(s.current_liquidity for s in self.snapshot.cash_sources)
        display.print_allocation_report(
            class_allocation_report(positions, self.snapshot.class_targets), "By asset class")
        display.print_allocation_report(
            goal_allocation_report(positions, self.snapshot.goal_targets, liquidity), "By goal")

    def refresh_prices(self):
        self.fetcher.clear_cache()
        asset_ids = sorted({normalise_id(t.asset_id) for t in self.snapshot.transactions}
                           | {d.asset_id for d in self.snapshot.asset_definitions})
        if not asset_ids:
            console.print("[yellow]Nothing to price yet.[/yellow]")
            return
        console.print("[dim]Fetching live prices...[/dim]")
        quotes = self.fetcher.fetch_quotes(asset_ids)
        self._save(db.set_quotes(self.snapshot, quotes.values()))
        missing = [a for a in asset_ids if self.fetcher.is_stale(a)]
        console.print(f"[green]✓ {len(asset_ids) - len(missing)} prices updated[/green]")
        if missing:
            console.print(f"[yellow]No live price for: {', '.join(missing)}[/yellow]")

    # -----------------------------------------------------------------------
    # Main loop
    # -----------------------------------------------------------------------

    MENU = """
[grey39]┌─────────────────────────────────┐[/grey39]
[grey39]│[/grey39]  [steel_blue1]Portfolio Planner[/steel_blue1]               [grey39]│[/grey39]
[grey39]├─────────────────────────────────┤[/grey39]
[grey39]│[/grey39]  [white]1[/white]  [grey62]View portfolio[/grey62]              [grey39]│[/grey39]
[grey39]│[/grey39]  [white]2[/white]  [grey62]Add BUY transaction[/grey62]         [grey39]│[/grey39]
[grey39]│[/grey39]  [white]3[/white]  [grey62]Add SELL transaction[/grey62]        [grey39]│[/grey39]
[grey39]│[/grey39]  [white]d[/white]  [grey62]Delete a transaction[/grey62]        [grey39]│[/grey39]
[grey39]│[/grey39]  [white]4[/white]  [grey62]Define an asset[/grey62]             [grey39]│[/grey39]
[grey39]│[/grey39]  [white]5[/white]  [grey62]Accounts & targets[/grey62]          [grey39]│[/grey39]
[grey39]│[/grey39]  [white]6[/white]  [grey62]Cash sources[/grey62]                [grey39]│[/grey39]
[grey39]│[/grey39]  [white]7[/white]  [grey62]Rebalance plan[/grey62]              [grey39]│[/grey39]
[grey39]│[/grey39]  [white]8[/white]  [grey62]Plan a withdrawal[/grey62]           [grey39]│[/grey39]
[grey39]│[/grey39]  [white]9[/white]  [grey62]Cash-flow forecast[/grey62]          [grey39]│[/grey39]
[grey39]│[/grey39]  [white]a[/white]  [grey62]Allocation by class / goal[/grey62]  [grey39]│[/grey39]
[grey39]│[/grey39]  [white]t[/white]  [grey62]Class / goal targets[/grey62]        [grey39]│[/grey39]
[grey39]│[/grey39]  [white]r[/white]  [grey62]Refresh prices[/grey62]              [grey39]│[/grey39]
[grey39]│[/grey39]  [white]q[/white]  [grey62]Quit[/grey62]                        [grey39]│[/grey39]
[grey39]└─────────────────────────────────┘[/grey39]"""

    def run(self):
        console.print(Panel(
            "[bold white]Portfolio Planner[/bold white]  [grey62]rebalance · withdraw · forecast[/grey62]",
            border_style="grey39",
            padding=(0, 2),
        ))

        actions = {
            "1": self.view_portfolio,
            "2": lambda: self.add_transaction(Direction.BUY),
            "3": lambda: self.add_transaction(Direction.SELL),
            "d": self.delete_transaction,
            "4": self.define_asset,
            "5": self.manage_accounts,
            "6": self.manage_cash_sources,
            "7": self.rebalance,
            "8": self.withdraw,
            "9": self.forecast,
            "a": self.show_reports,
            "t": self.set_bucket_targets,
            "r": self.refresh_prices,
        }

        while True:
            console.print(self.MENU)
            choice = Prompt.ask("Choice", default="1").strip().lower()

            if choice == "q":
                console.print("[cyan]Goodbye![/cyan]")
                break
            action = actions.get(choice)
            if action is None:
                console.print("[red]Invalid choice. Please try again.[/red]")
            else:
                action()
