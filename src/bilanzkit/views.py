# BilanzKit - SKR04 balance sheet & P&L reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
View utilities for BilanzKit.

This module transforms a generated ``FinancialData`` into pandas DataFrames
ready for display (``DataFrame.to_string``) or CSV export. It does not
compute anything itself: all amounts come from ``engine`` and ``kpi``.

The main views are:

- statement views: one row per statement line of the balance sheet or P&L,
  optionally with the underlying accounts inserted below their line,
- unassigned accounts: accounts that could not be placed in the taxonomy,
- account list: every account with its classification ("Kontenplan"),
- KPI table: one row per KPI, one column per fiscal year,
- account bookings: the journal of one account with its running balance.

Year columns are labelled with the year as text, most recent first, in the
order of ``FinancialData.years``.
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Optional

import pandas as pd

from .classifier import classify_account
from .engine import FinancialData, FinancialReportItem
from .kpi import KPIResult, format_kpi_value
from .ledger import NO_ACCOUNT, AccountBalance
from .mapping import AccountOverride

STATEMENT_COLUMNS = ["display_order", "id", "level", "label", "total"]
BOOKING_COLUMNS = [
    "date",
    "document",
    "contra_account",
    "text",
    "debit",
    "credit",
    "balance",
]


def _year_columns(years: Sequence[int]) -> list[str]:
    return [str(y) for y in years]


def _account_sort_key(number: str) -> tuple[int, int, str]:
    """Numeric account numbers first, in numeric order, then the others."""
    if number.isdigit():
        return (0, int(number), number)
    return (1, 0, number)


def _sorted_accounts(accounts: Iterable[AccountBalance]) -> list[AccountBalance]:
    return sorted(accounts, key=lambda a: _account_sort_key(a.account_number))


def _account_amounts(
    acc: AccountBalance, years: Sequence[int], decimals: int
) -> dict[str, float]:
    row = {"total": round(acc.balance, decimals)}
    for y in years:
        row[str(y)] = round(acc.yearly_balances.get(y, 0.0), decimals)
    return row


def _renumber_display_order(
    df: pd.DataFrame, start: int = 10, step: int = 10
) -> pd.DataFrame:
    """Reassign display_order to be strictly sequential: start, start+step, ...
    Preserves the current order of the lines.
    """
    df = df.reset_index(drop=True)
    df["display_order"] = [start + i * step for i in range(len(df))]
    return df


def report_to_dataframe(
    item: FinancialReportItem,
    years: Sequence[int],
    include_accounts: bool = False,
    decimals: int = 2,
) -> pd.DataFrame:
    """Return the statement view of one report root.

    Rows follow the tree depth-first, children in display order. With
    ``include_accounts``, the accounts attached to a line are inserted right
    below it (sorted by account number) at ``level + 1``, labelled
    "<number> <name>".

    Columns: display_order, id, level, label, total, then one column per year.
    """
    year_cols = _year_columns(years)
    rows: list[dict[str, object]] = []

    def _visit(node: FinancialReportItem) -> None:
        row: dict[str, object] = {
            "id": node.id,
            "level": node.level,
            "label": node.label,
            "total": round(node.amount, decimals),
        }
        for y in years:
            row[str(y)] = round(node.amount_for(y), decimals)
        rows.append(row)

        if include_accounts:
            for acc in _sorted_accounts(node.accounts):
                rows.append(
                    {
                        "id": acc.account_number,
                        "level": node.level + 1,
                        "label": f"{acc.account_number} {acc.name}".strip(),
                        **_account_amounts(acc, years, decimals),
                    }
                )

        for child in node.children:
            _visit(child)

    _visit(item)

    df = pd.DataFrame(rows, columns=["id", "level", "label", "total", *year_cols])
    df = _renumber_display_order(df)
    return df[[*STATEMENT_COLUMNS, *year_cols]]


def unassigned_to_dataframe(data: FinancialData, decimals: int = 2) -> pd.DataFrame:
    """Return the accounts that could not be placed in the statements.

    Columns: account, name, total, then one column per year.
    """
    year_cols = _year_columns(data.years)
    rows = [
        {
            "account": acc.account_number,
            "name": acc.name,
            **_account_amounts(acc, data.years, decimals),
        }
        for acc in _sorted_accounts(data.unassigned)
    ]
    return pd.DataFrame(rows, columns=["account", "name", "total", *year_cols])


def accounts_to_dataframe(
    data: FinancialData,
    mapping: Optional[Mapping[str, AccountOverride]] = None,
    decimals: int = 2,
) -> pd.DataFrame:
    """
    Return every account of the report with its classification.

    The ``node_id`` column holds the taxonomy node the account is classified
    into (custom mapping first, then the SKR04 ranges), or an empty string
    for unclassifiable accounts. Balances are raw (debit positive); the
    synthetic annual-result account is not part of the list.

    Columns: account, name, node_id, total, then one column per year.
    """
    year_cols = _year_columns(data.years)
    rows: list[dict[str, object]] = []
    for number in sorted(data.accounts, key=_account_sort_key):
        acc = data.accounts[number]
        rows.append(
            {
                "account": number,
                "name": acc.name,
                "node_id": classify_account(number, mapping) or "",
                **_account_amounts(acc, data.years, decimals),
            }
        )
    columns = ["account", "name", "node_id", "total", *year_cols]
    return pd.DataFrame(rows, columns=columns)


def kpis_to_dataframe(results: Iterable[KPIResult], decimals: int = 2) -> pd.DataFrame:
    """
    Convert KPI results into a wide table.

    One row per KPI (in the order of first appearance) and one column per
    fiscal year (in the order of first appearance). Cells hold the formatted
    value (German conventions, '-' when undefined).

    Args:
        results: KPI results as returned by ``kpi.evaluate_kpis``.
        decimals: Decimals used for currency and number formats.

    Returns:
        DataFrame with columns id, label, then one column per year.
    """
    rows: dict[str, dict[str, str]] = {}
    year_cols: list[str] = []
    for r in results:
        col = str(r.year)
        if col not in year_cols:
            year_cols.append(col)
        row = rows.setdefault(r.id, {"id": r.id, "label": r.label})
        row[col] = format_kpi_value(r.value, r.format, decimals)

    df = pd.DataFrame(list(rows.values()), columns=["id", "label", *year_cols])
    return df.fillna("-")


def account_bookings_to_dataframe(
    acc: AccountBalance, decimals: int = 2
) -> pd.DataFrame:
    """
    Return the bookings of one account, as seen from that account.

    Bookings keep the account's order (date, then import and input row).
    The ``balance`` column is the running balance (debit positive); its
    last value is the closing balance of the account.

    Columns: date, document, contra_account, text, debit, credit, balance.
    """
    rows: list[dict[str, object]] = []
    running = 0.0
    for booking in acc.bookings:
        running += booking.signed_amount
        contra = booking.contra_account
        rows.append(
            {
                "date": booking.date,
                "document": booking.document,
                "contra_account": "" if contra == NO_ACCOUNT else contra,
                "text": booking.text,
                "debit": round(booking.debit, decimals),
                "credit": round(booking.credit, decimals),
                "balance": round(running, decimals),
            }
        )
    return pd.DataFrame(rows, columns=BOOKING_COLUMNS)
