# BilanzKit - SKR04 balance sheet & P&L reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
BilanzKit
---------

A Python-based reporting tool turning German SMB bookkeeping exports
(SKR04 chart of accounts) into multi-year financial statements.

Main capabilities:
- ledger import from CSV / Excel exports with fuzzy column detection,
- double-entry normalization (mirror bookings on contra accounts),
- merging of several exports into one account set,
- SKR04 range classification with user overrides,
- multi-year balance sheet (Aktiva / Passiva) and P&L (GuV) with the
  annual result carried into equity,
- balance check (assets vs. equity & liabilities),
- user-defined KPIs ("Kennzahlen") with a safe formula evaluator.

BilanzKit separates computation (ledger, classifier, engine, kpi),
configuration (TOML) and presentation (CLI), making it suitable for
scripting and consulting workflows.


Version: 0.1.0

Usage:
    bilanzkit --help
"""

__all__ = [
    "ledger",
    "classifier",
    "engine",
    "kpi",
    "taxonomy",
    "mapping",
    "views",
    "io",
]

__version__ = "0.1.0"
