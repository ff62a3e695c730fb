# BilanzKit - SKR04 balance sheet & P&L reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Core financial aggregation engine for BilanzKit.

This module builds the multi-year financial statement (Bilanz and GuV) from
a map of ledger accounts and an optional custom account mapping.

The entry point ``generate_financial_report()`` proceeds in the following
steps:

1. Year axis
   ----------
   The fiscal years present in the accounts (union of all yearly buckets),
   sorted most recent first. Every per-year amount of the report is keyed
   on this axis.

2. Classification and sign normalization
   --------------------------------------
   Each account with a noticeable balance is classified (classifier.py).
   Accounts placed under LIABILITY or REVENUE nodes are inverted, so that
   every statement line is shown positive in its natural direction.
   Accounts that cannot be placed are collected in ``unassigned``.

3. Annual result
   --------------
   The profit (per year and in total) is computed from the sign-normalized
   revenue and expense leaf contributions and injected into the equity line
   ``ek_ergebnis`` as a synthetic account.

4. Tree totals
   ------------
   Nodes are linked under their parents and every node total is recomputed
   bottom-up as ``sum(children) + sum(own accounts)``, per year and in
   aggregate.

5. Balance check
   --------------
   ``assets - liabilities`` must be zero within BALANCE_TOLERANCE.

The engine never raises on field-level anomalies and never mutates its
inputs: a new report is generated from scratch whenever accounts or the
mapping change.
"""

import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Optional

from .classifier import classify_account
from .ledger import AccountBalance, Booking
from .mapping import AccountOverride
from .taxonomy import (
    ASSETS_ROOT,
    INVERTED_TYPES,
    LIABILITIES_ROOT,
    NET_RESULT_NODE,
    PROFIT_AND_LOSS_ROOT,
    STRUCTURE_DEFS,
    NodeType,
    get_definition,
    is_assignable,
)

logger = logging.getLogger(__name__)

# Balances below this threshold are floating-point noise.
MIN_SIGNIFICANT_BALANCE = 0.01

# Maximum |assets - liabilities| for a balanced sheet.
BALANCE_TOLERANCE = 0.05

# Synthetic account carrying the annual result in the equity section.
NET_RESULT_ACCOUNT = "JÜ"
NET_PROFIT_LABEL = "Jahresüberschuss"
NET_LOSS_LABEL = "Jahresfehlbetrag"


@dataclass
class FinancialReportItem:
    """One statement line of a generated report.

    Attributes:
        id: Taxonomy node id.
        label: Display label.
        type: Polarity type of the node.
        order: Display order among siblings.
        level: Depth in the tree (0 for roots).
        amount: Total over all years (sign-normalized).
        yearly_amounts: Amount per fiscal year; every year of the report
            axis is present.
        children: Child statement lines, sorted by ``order``.
        accounts: Accounts attached directly to this line, with balances
            sign-normalized for display.
    """

    id: str
    label: str
    type: NodeType
    order: int
    level: int
    amount: float = 0.0
    yearly_amounts: dict[int, float] = field(default_factory=dict)
    children: list["FinancialReportItem"] = field(default_factory=list)
    accounts: list[AccountBalance] = field(default_factory=list)

    def walk(self) -> Iterator["FinancialReportItem"]:
        """Yield this item and all its descendants, depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def find(self, node_id: str) -> Optional["FinancialReportItem"]:
        """Return the first item with the given id in this subtree."""
        for item in self.walk():
            if item.id == node_id:
                return item
        return None

    def amount_for(self, year: int) -> float:
        return self.yearly_amounts.get(year, 0.0)


@dataclass(frozen=True)
class BalanceCheck:
    """Balance-sheet equilibrium check.

    Attributes:
        diff: Total assets minus total equity & liabilities.
        balanced: True if |diff| < BALANCE_TOLERANCE.
        yearly_diff: The same difference for each fiscal year.
    """

    diff: float
    balanced: bool
    yearly_diff: dict[int, float] = field(default_factory=dict)


@dataclass
class FinancialData:
    """Complete result of one report generation.

    Attributes:
        assets: Root item of the assets side (AKTIVA).
        liabilities: Root item of the equity & liabilities side (PASSIVA).
        profit_and_loss: Root item of the P&L statement (GuV).
        balance_check: Equilibrium check of the balance sheet.
        unassigned: Accounts with a balance that could not be placed.
        accounts: All accounts (copies, with name overrides applied).
        bookings: Flat booking journal, as passed by the caller.
        profit: Annual result over all years (positive = profit).
        yearly_profit: Annual result per fiscal year.
        years: Fiscal years present in the data, most recent first.
    """

    assets: FinancialReportItem
    liabilities: FinancialReportItem
    profit_and_loss: FinancialReportItem
    balance_check: BalanceCheck
    unassigned: list[AccountBalance]
    accounts: dict[str, AccountBalance]
    bookings: list[Booking]
    profit: float
    yearly_profit: dict[int, float]
    years: list[int]

    def roots(self) -> tuple[FinancialReportItem, ...]:
        """Return the three statement roots in lookup order."""
        return (self.assets, self.liabilities, self.profit_and_loss)

    def find_item(self, node_id: str) -> Optional[FinancialReportItem]:
        """Search assets, then liabilities, then P&L (first match wins)."""
        for root in self.roots():
            item = root.find(node_id)
            if item is not None:
                return item
        return None


def collect_years(accounts: Iterable[AccountBalance]) -> list[int]:
    """Return the fiscal years present in the accounts, most recent first."""
    years: set[int] = set()
    for acc in accounts:
        years.update(acc.yearly_balances)
    return sorted(years, reverse=True)


def _is_significant(acc: AccountBalance) -> bool:
    if abs(acc.balance) >= MIN_SIGNIFICANT_BALANCE:
        return True
    return any(abs(v) >= MIN_SIGNIFICANT_BALANCE for v in acc.yearly_balances.values())


def _normalized_copy(acc: AccountBalance, invert: bool) -> AccountBalance:
    """Copy an account, inverting balance and yearly values if requested."""
    shown = acc.copy()
    if invert:
        shown.balance = -acc.balance
        shown.yearly_balances = {y: -v for y, v in acc.yearly_balances.items()}
    return shown


def _apply_name_overrides(
    accounts: Mapping[str, AccountBalance],
    mapping: Optional[Mapping[str, AccountOverride]],
) -> dict[str, AccountBalance]:
    """Copy the account map and apply display-name overrides."""
    copied = {number: acc.copy() for number, acc in accounts.items()}
    if mapping:
        for number, override in mapping.items():
            if override.name and number in copied:
                copied[number].name = override.name
    return copied


def _recompute_totals(item: FinancialReportItem, years: Sequence[int]) -> None:
    """Authoritative bottom-up recomputation of one subtree."""
    for child in item.children:
        _recompute_totals(child, years)

    amount = 0.0
    yearly = {y: 0.0 for y in years}
    for child in item.children:
        amount += child.amount
        for y in years:
            yearly[y] += child.yearly_amounts.get(y, 0.0)
    for acc in item.accounts:
        amount += acc.balance
        for y in years:
            yearly[y] += acc.yearly_balances.get(y, 0.0)

    item.amount = amount
    item.yearly_amounts = yearly


def generate_financial_report(
    accounts: Mapping[str, AccountBalance],
    mapping: Optional[Mapping[str, AccountOverride]] = None,
    bookings: Optional[Sequence[Booking]] = None,
) -> FinancialData:
    """Build the multi-year balance sheet and P&L statement.

    Args:
        accounts: Ledger accounts keyed by normalized account number (as
            produced by ledger.ingest_rows / ledger.merge_ledgers). Not
            modified.
        mapping: Optional custom account mapping (name and node overrides).
        bookings: Optional flat booking journal, passed through to the
            result for display.

    Returns:
        A FinancialData instance. Accounts that cannot be placed in the
        taxonomy are listed in ``unassigned`` and make the balance check
        fail if their balance is not zero.
    """
    # 1) Year axis
    years = collect_years(accounts.values())

    # 2) Name overrides, on copies of the caller's records
    report_accounts = _apply_name_overrides(accounts, mapping)

    # 3) One zero-initialized item per taxonomy node
    items: dict[str, FinancialReportItem] = {}
    for definition in STRUCTURE_DEFS:
        items[definition.id] = FinancialReportItem(
            id=definition.id,
            label=definition.label,
            type=definition.type,
            order=definition.order,
            level=0,
            yearly_amounts={y: 0.0 for y in years},
        )

    # 4) Classification and sign normalization
    unassigned: list[AccountBalance] = []
    profit = 0.0
    yearly_profit = {y: 0.0 for y in years}

    for acc in report_accounts.values():
        if not _is_significant(acc):
            continue

        node_id = classify_account(acc.account_number, mapping)
        if node_id is None:
            logger.debug("Account %s is unassigned", acc.account_number)
            unassigned.append(acc)
            continue
        if not is_assignable(node_id):
            logger.warning(
                "Account %s is mapped to %r, which is not an assignable "
                "statement line; reported as unassigned",
                acc.account_number,
                node_id,
            )
            unassigned.append(acc)
            continue

        definition = get_definition(node_id)
        item = items[node_id]
        shown = _normalized_copy(acc, invert=definition.type in INVERTED_TYPES)
        item.accounts.append(shown)
        item.amount += shown.balance
        for y, value in shown.yearly_balances.items():
            item.yearly_amounts[y] = item.yearly_amounts.get(y, 0.0) + value

        # 5) Profit from the raw leaf contributions
        if definition.type in ("REVENUE", "EXPENSE"):
            sign = 1.0 if definition.type == "REVENUE" else -1.0
            profit += sign * shown.balance
            for y, value in shown.yearly_balances.items():
                yearly_profit[y] = yearly_profit.get(y, 0.0) + sign * value

    # 6) Annual result as synthetic equity account
    result_item = items[NET_RESULT_NODE]
    result_account = AccountBalance(
        account_number=NET_RESULT_ACCOUNT,
        name=NET_PROFIT_LABEL if profit >= 0 else NET_LOSS_LABEL,
        balance=profit,
        yearly_balances=dict(yearly_profit),
    )
    # Appended: accounts mapped onto the result line by override stay there.
    result_item.accounts.append(result_account)
    result_item.amount += profit
    for y in years:
        result_item.yearly_amounts[y] += yearly_profit.get(y, 0.0)

    # 7) Link children under their parents and fold totals upward
    roots: dict[str, FinancialReportItem] = {}
    for definition in STRUCTURE_DEFS:
        item = items[definition.id]
        if definition.parent is None:
            roots[definition.id] = item
            continue
        parent = items.get(definition.parent)
        if parent is None:
            logger.warning(
                "Taxonomy node %r has unknown parent %r",
                definition.id,
                definition.parent,
            )
            continue
        parent.children.append(item)
        parent.amount += item.amount
        for y in years:
            parent.yearly_amounts[y] += item.yearly_amounts.get(y, 0.0)

    # 8) Authoritative bottom-up recomputation
    for root in roots.values():
        _set_levels(root, 0)
        _recompute_totals(root, years)

    assets = roots[ASSETS_ROOT]
    liabilities = roots[LIABILITIES_ROOT]

    # 9) Balance check
    diff = assets.amount - liabilities.amount
    check = BalanceCheck(
        diff=diff,
        balanced=abs(diff) < BALANCE_TOLERANCE,
        yearly_diff={
            y: assets.yearly_amounts[y] - liabilities.yearly_amounts[y] for y in years
        },
    )

    logger.info(
        "Report generated: %d accounts, %d unassigned, profit %.2f, diff %.2f",
        len(report_accounts),
        len(unassigned),
        profit,
        diff,
    )

    return FinancialData(
        assets=assets,
        liabilities=liabilities,
        profit_and_loss=roots[PROFIT_AND_LOSS_ROOT],
        balance_check=check,
        unassigned=unassigned,
        accounts=report_accounts,
        bookings=list(bookings) if bookings is not None else [],
        profit=profit,
        yearly_profit=yearly_profit,
        years=years,
    )


def _set_levels(item: FinancialReportItem, level: int) -> None:
    item.level = level
    item.children.sort(key=lambda c: c.order)
    for child in item.children:
        _set_levels(child, level + 1)
