# BilanzKit - SKR04 balance sheet & P&L reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for BilanzKit.

This module is the only place where files are read or written. It turns
files into the in-memory structures consumed by the core modules:

- ledger exports (CSV, or XLSX through pandas + openpyxl) -> list of row mappings
  for ``ledger.ingest_rows()``,
- custom account mapping (JSON) <-> ``CustomAccountMapping``,
- KPI definitions (TOML or JSON) -> list of ``KPIDefinition``.

Ledger files
------------
Typical accounting exports (e.g. DATEV "Buchungsstapel") use German column
labels such as ``Kontonummer``, ``Gegenkonto``, ``Soll-Betrag``,
``Haben-Betrag``, ``Buchungstext``, ``Datum`` and ``Belegfeld 1``. Column
identification is performed later by ``ledger.resolve_columns()``; this
module only tabulates the file. CSV cells are kept as text so that German
amounts such as ``1.234,56`` are interpreted by ``ledger.parse_amount()``
rather than by pandas.

KPI files
---------
TOML::

    [kpis.equity_ratio]
    label = "Eigenkapitalquote"
    formula = "({{ek}} / {{aktiva_root}}) * 100"
    format = "percent"

JSON: a list of ``{"id", "label", "formula", "format"}`` objects.
The order of the file is the display order.
"""

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional, Union

import pandas as pd
import tomllib

from .kpi import KPIDefinition, kpi_definitions_from_list, kpi_definitions_to_list
from .mapping import CustomAccountMapping, mapping_from_dict, mapping_to_dict

PathLike = Union[str, "os.PathLike[str]"]

EXCEL_SUFFIXES = (".xlsx", ".xlsm")


def read_ledger_file(
    path: PathLike,
    delimiter: Optional[str] = None,
    encoding: str = "utf-8",
) -> list[dict[str, Any]]:
    """
    Read a ledger export and return its rows.

    Parameters
    ----------
    path:
        CSV or Excel file. Only the first worksheet of a workbook is read.
    delimiter:
        CSV field separator. If omitted, the separator is sniffed (German
        exports typically use ';').
    encoding:
        CSV text encoding.

    Returns
    -------
    list[dict[str, Any]]
        One mapping per data row, column label -> raw cell value. Empty
        cells are returned as empty strings.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the file cannot be tabulated.
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise FileNotFoundError(f"Ledger file not found: {file_path}")

    try:
        if file_path.suffix.lower() in EXCEL_SUFFIXES:
            df = pd.read_excel(file_path, sheet_name=0)
        elif delimiter:
            df = pd.read_csv(
                file_path,
                sep=delimiter,
                dtype=str,
                keep_default_na=False,
                encoding=encoding,
            )
        else:
            df = pd.read_csv(
                file_path,
                sep=None,
                engine="python",
                dtype=str,
                keep_default_na=False,
                encoding=encoding,
            )
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Failed to read ledger file: {file_path}") from exc

    # Normalize column labels: stripped strings (Excel headers may be numbers).
    df.columns = [str(c).strip() for c in df.columns]
    df = df.astype(object).where(pd.notna(df), "")
    return df.to_dict(orient="records")


def _load_json(path: Path) -> Any:
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Failed to parse JSON file: {path}") from exc


def load_mapping_file(path: PathLike) -> CustomAccountMapping:
    """Load a custom account mapping from a JSON file.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the file is not valid JSON or not an object.
    """
    file_path = Path(path)
    document = _load_json(file_path)
    try:
        return mapping_from_dict(document)
    except ValueError as exc:
        raise ValueError(f"Invalid account mapping file: {file_path}") from exc


def save_mapping_file(mapping: Mapping[str, Any], path: PathLike) -> None:
    """Write a custom account mapping to a JSON file."""
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(
        json.dumps(mapping_to_dict(mapping), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )


def load_kpi_file(path: PathLike) -> list[KPIDefinition]:
    """
    Load KPI definitions from a TOML or JSON file.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the file cannot be parsed or has an unexpected shape.
    """
    file_path = Path(path)
    if file_path.suffix.lower() == ".json":
        document = _load_json(file_path)
        if not isinstance(document, list):
            raise ValueError(f"KPI file must contain a list of KPIs: {file_path}")
        return kpi_definitions_from_list(document)

    if not file_path.is_file():
        raise FileNotFoundError(f"KPI file not found: {file_path}")
    try:
        data = tomllib.loads(file_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse TOML KPI file: {file_path}") from exc

    section = data.get("kpis") or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"Invalid [kpis] section in {file_path}, expected a table.")

    items = []
    for key, cfg in section.items():
        if isinstance(cfg, Mapping):
            items.append({"id": str(key), **cfg})
    return kpi_definitions_from_list(items)


def save_kpi_file(kpis: list[KPIDefinition], path: PathLike) -> None:
    """Write KPI definitions to a JSON file (list form, order preserved)."""
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(
        json.dumps(kpi_definitions_to_list(kpis), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
