# BilanzKit - SKR04 balance sheet & P&L reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for BilanzKit.

This module wires together the main building blocks of BilanzKit:

- application configuration (ledger files, mapping, KPIs, display options),
- ledger import (CSV / Excel exports of an SKR04 bookkeeping),
- aggregation engine (balance sheet, P&L, balance check),
- KPI evaluator,
- view helpers (tabular rendering).

The CLI is intentionally thin: it does not implement accounting logic
itself. It orchestrates the underlying modules based on command-line
arguments and the configuration file.


High-level pipeline
-------------------

1) Load the TOML configuration (``bilanzkit_config.toml`` by default, or
   ``--config PATH``). Without a configuration file, everything can be
   passed on the command line.

2) Read every ledger file (``--ledger`` overrides ``[ledger].files``) and
   ingest it with the id prefix ``import1``, ``import2``, ... Imports are
   merged into a single account set.

3) Load the optional custom account mapping (``--mapping``) and generate
   the multi-year report.

4) Evaluate the KPIs (``--kpis`` file, or the built-in defaults) for every
   fiscal year of the report.

5) Render the selected scope as console tables and/or CSV files.


Scopes: what to render
----------------------

- ``statements`` (default): balance sheet (Aktiva / Passiva), P&L (GuV)
  and the balance check.
- ``kpis``: KPI table only.
- ``unassigned``: accounts that could not be placed in the statements.
- ``accounts``: the full account list with its classification.
- ``all``: everything above.

``--accounts`` inserts the individual accounts below their statement line.
``--account NUMBER ...`` additionally lists the bookings of the given
accounts (date, document, contra account, text, debit, credit) with a
running balance, whatever the scope.


Display modes and output
------------------------

``--display-mode table|csv|both`` overrides ``[display].mode``. CSV files
are written to ``--output DIR`` (or ``[display].output_dir``) with
timestamp-based names, e.g. ``bilanz_aktiva_YYYY-MM-DD-HH-MM-SS.csv``.


Examples
--------

    bilanzkit --ledger buchungen_2023.csv buchungen_2024.csv

    bilanzkit --config bilanzkit_config.toml --scope all --display-mode both

    bilanzkit --ledger export.xlsx --mapping mapping.json --scope unassigned

    bilanzkit --ledger buchungen_2024.csv --account 1800 4400
"""

import argparse
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from . import __version__
from .config import DEFAULT_CONFIG_FILE, AppConfig, default_app_config, load_app_config
from .engine import BALANCE_TOLERANCE, FinancialData, generate_financial_report
from .io import load_kpi_file, load_mapping_file, read_ledger_file
from .kpi import DEFAULT_KPIS, KPIDefinition, evaluate_kpis
from .ledger import LedgerImport, ingest_rows, merge_all, normalize_account_number
from .mapping import CustomAccountMapping
from .views import (
    account_bookings_to_dataframe,
    accounts_to_dataframe,
    kpis_to_dataframe,
    report_to_dataframe,
    unassigned_to_dataframe,
)

SCOPES = ("statements", "kpis", "unassigned", "accounts", "all")


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="bilanzkit",
        description=(
            "BilanzKit - SKR04 balance sheet & P&L reporting for SMBs. "
            "Reads ledger exports, classifies accounts into the German "
            "Bilanz / GuV structure, checks the balance and computes KPIs "
            "for every fiscal year."
        ),
    )

    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of bilanzkit and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the TOML configuration file. If omitted, "
            f"'{DEFAULT_CONFIG_FILE}' in the current directory is used when "
            "it exists."
        ),
    )
    ap.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging (classification decisions, import summaries).",
    )

    # Input overrides
    ap.add_argument(
        "--ledger",
        dest="ledger_files",
        nargs="+",
        metavar="FILE",
        help=(
            "Ledger export(s) to import (CSV, XLSX). Overrides [ledger].files. "
            "Several files are merged in the given order."
        ),
    )
    ap.add_argument(
        "--delimiter",
        help="CSV field separator. If omitted, it is detected automatically.",
    )
    ap.add_argument(
        "--mapping",
        dest="mapping_file",
        help="Custom account mapping (JSON). Overrides [mapping].file.",
    )
    ap.add_argument(
        "--kpis",
        dest="kpi_file",
        help="KPI definitions (TOML or JSON). Overrides [kpis].file.",
    )

    # What to render
    ap.add_argument(
        "--scope",
        choices=list(SCOPES),
        default="statements",
        help=(
            "Select what to render: "
            "'statements' = balance sheet, P&L and balance check; "
            "'kpis' = KPI table; "
            "'unassigned' = accounts outside the statements; "
            "'accounts' = all accounts with their classification; "
            "'all' = everything."
        ),
    )
    ap.add_argument(
        "--accounts",
        dest="include_accounts",
        action="store_true",
        help="Insert the individual accounts below their statement line.",
    )
    ap.add_argument(
        "--account",
        dest="booking_accounts",
        nargs="+",
        metavar="NUMBER",
        help=(
            "Also list the bookings of the given account(s), with a running "
            "balance. Works with every scope."
        ),
    )

    # Display options
    ap.add_argument(
        "--display-mode",
        dest="display_mode",
        choices=["table", "csv", "both"],
        help=(
            "Override the display.mode setting from the configuration file. "
            "'table' prints results to stdout, "
            "'csv' writes CSV files only, "
            "'both' does both."
        ),
    )
    ap.add_argument(
        "--output",
        dest="output_dir",
        help=(
            "Output directory where CSV files will be written when display "
            "mode includes 'csv'. If omitted, [display].output_dir is used."
        ),
    )

    return ap


def _load_config(
    parser: argparse.ArgumentParser, config_path: Optional[str]
) -> AppConfig:
    """Load the TOML configuration, falling back to defaults.

    An explicitly requested configuration file must exist; the default file
    is optional.
    """
    if not config_path and not Path(DEFAULT_CONFIG_FILE).is_file():
        return default_app_config()
    try:
        return load_app_config(config_path)
    except (FileNotFoundError, ValueError) as exc:
        parser.error(str(exc))


def _import_ledgers(
    parser: argparse.ArgumentParser,
    files: list[Path],
    delimiter: Optional[str],
    encoding: str,
) -> LedgerImport:
    """Read and ingest every ledger file, then merge them."""
    imports: list[LedgerImport] = []
    for idx, path in enumerate(files, start=1):
        try:
            rows = read_ledger_file(path, delimiter=delimiter, encoding=encoding)
        except (FileNotFoundError, ValueError) as exc:
            parser.error(str(exc))
        ledger = ingest_rows(rows, id_prefix=f"import{idx}")
        print(
            f"Imported {path}: {len(ledger.bookings)} bookings, "
            f"{len(ledger.accounts)} accounts."
        )
        imports.append(ledger)
    return merge_all(imports)


def _load_kpis(
    parser: argparse.ArgumentParser, kpi_file: Optional[Path]
) -> list[KPIDefinition]:
    if kpi_file is None:
        return list(DEFAULT_KPIS)
    try:
        return load_kpi_file(kpi_file)
    except (FileNotFoundError, ValueError) as exc:
        parser.error(str(exc))


def _print_balance_check(data: FinancialData, decimals: int) -> None:
    check = data.balance_check
    status = "OK" if check.balanced else "NOT BALANCED"
    print(
        f"Balance check: {status} "
        f"(assets - liabilities = {check.diff:.{decimals}f}, "
        f"tolerance {BALANCE_TOLERANCE})"
    )
    for year in data.years:
        print(f"  {year}: {check.yearly_diff.get(year, 0.0):.{decimals}f}")
    if not check.balanced and data.unassigned:
        print(
            f"  {len(data.unassigned)} unassigned account(s) with a balance; "
            "use --scope unassigned to list them."
        )


def main() -> None:
    """Entry point for the BilanzKit CLI.

    This function parses command-line arguments, loads the configuration,
    imports and merges the ledger files, generates the multi-year report,
    optionally evaluates KPIs and finally renders the selected scope as
    console tables and/or CSV files.
    """
    parser = _build_parser()
    args = parser.parse_args()

    # --version: short-circuit and exit early.
    if args.version:
        print(f"bilanzkit version {__version__}")
        return

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    # 1) Load application configuration
    config = _load_config(parser, args.config_path)

    # 2) Resolve inputs with optional CLI overrides
    ledger_files = (
        [Path(f) for f in args.ledger_files]
        if args.ledger_files
        else list(config.ledger.files)
    )
    if not ledger_files:
        parser.error(
            "No ledger file given. Either set [ledger].files in the "
            "configuration or provide --ledger."
        )
    delimiter = args.delimiter or config.ledger.delimiter
    mapping_path = Path(args.mapping_file) if args.mapping_file else config.mapping_file
    kpi_path = Path(args.kpi_file) if args.kpi_file else config.kpi_file

    # 3) Import and merge ledgers
    ledger = _import_ledgers(parser, ledger_files, delimiter, config.ledger.encoding)

    # 4) Custom account mapping
    mapping: CustomAccountMapping = {}
    if mapping_path is not None:
        try:
            mapping = load_mapping_file(mapping_path)
        except (FileNotFoundError, ValueError) as exc:
            parser.error(str(exc))
        print(
            f"Loaded custom mapping for {len(mapping)} account(s) from {mapping_path}"
        )

    # 5) Report generation
    data = generate_financial_report(ledger.accounts, mapping, ledger.bookings)
    years_label = ", ".join(str(y) for y in data.years) or "none"
    print(f"Fiscal years: {years_label}")

    scope = args.scope
    decimals = config.decimals
    want_statements = scope in {"statements", "all"}
    want_kpis = scope in {"kpis", "all"} and config.kpis_enabled
    want_unassigned = scope in {"unassigned", "all"}
    want_accounts = scope in {"accounts", "all"}

    if scope in {"kpis", "all"} and not config.kpis_enabled:
        print(
            "KPIs have been requested in scope, but KPIs are disabled in the "
            "configuration (kpis.enabled = false). Skipping KPI computation."
        )

    # 6) Build the tables to render: (title, file stem, DataFrame)
    tables: list[tuple[str, str, pd.DataFrame]] = []
    if want_statements:
        for title, stem, root in (
            ("Bilanz - Aktiva", "bilanz_aktiva", data.assets),
            ("Bilanz - Passiva", "bilanz_passiva", data.liabilities),
            ("Gewinn- und Verlustrechnung", "guv", data.profit_and_loss),
        ):
            df = report_to_dataframe(root, data.years, args.include_accounts, decimals)
            tables.append((title, stem, df))

    if want_kpis:
        kpis = _load_kpis(parser, kpi_path)
        results = evaluate_kpis(kpis, data)
        tables.append(("Kennzahlen", "kpis", kpis_to_dataframe(results, decimals)))

    if want_unassigned:
        tables.append(
            (
                "Nicht zugeordnete Konten",
                "unassigned",
                unassigned_to_dataframe(data, decimals),
            )
        )

    if want_accounts:
        tables.append(
            ("Kontenplan", "accounts", accounts_to_dataframe(data, mapping, decimals))
        )

    for raw_number in args.booking_accounts or []:
        number = normalize_account_number(raw_number)
        acc = data.accounts.get(number)
        if acc is None:
            parser.error(f"Unknown account {raw_number!r}: no booking in the ledger.")
        title = (
            f"Buchungen {number} {acc.name} "
            f"(Endsaldo {acc.balance:.{decimals}f})"
        )
        tables.append(
            (title, f"bookings_{number}", account_bookings_to_dataframe(acc, decimals))
        )

    # 7) Resolve display mode: config value overridden by CLI if provided.
    display_mode = args.display_mode or config.display_mode

    # 8) Render to console (table mode).
    if display_mode in {"table", "both"}:
        for title, _, df in tables:
            print()
            print(f"=== {title} ===")
            if df.empty:
                print("(none)")
            else:
                print(df.to_string(index=False))
        if want_statements:
            print()
            _print_balance_check(data, decimals)

    # 9) Render to CSV files (csv mode).
    if display_mode in {"csv", "both"}:
        output_dir = Path(args.output_dir) if args.output_dir else config.output_dir
        output_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y-%m-%d-%H-%M-%S")

        for _, stem, df in tables:
            path = output_dir / f"{stem}_{timestamp}.csv"
            df.to_csv(path, index=False)
            print(f"Wrote {path} ({len(df)} rows)")


if __name__ == "__main__":
    main()
