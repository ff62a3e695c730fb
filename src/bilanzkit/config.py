# BilanzKit - SKR04 balance sheet & P&L reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for BilanzKit.

This module is responsible for:
- loading the application configuration from a TOML file,
- resolving the paths it contains relative to the TOML file itself,
- exposing typed dataclasses used by the CLI.

The core modules (ledger, classifier, engine, kpi) do not read any
configuration: they only receive in-memory values.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import tomllib

DEFAULT_CONFIG_FILE = "bilanzkit_config.toml"
DISPLAY_MODES: tuple[str, ...] = ("table", "csv", "both")


@dataclass(frozen=True)
class LedgerConfig:
    """Ledger export files and how to read them.

    Files are imported in the listed order and merged into one account set.
    """

    files: tuple[Path, ...]
    delimiter: Optional[str]
    encoding: str


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for BilanzKit.

    This aggregates:
    - the ledger files to import,
    - the optional custom account mapping file,
    - the KPI options (enabled flag, optional definitions file),
    - display options for tables and CSV exports.
    """

    ledger: LedgerConfig
    mapping_file: Optional[Path]
    kpis_enabled: bool
    kpi_file: Optional[Path]
    display_mode: str
    decimals: int
    output_dir: Path


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        return {}
    return section


def _resolve_optional(base_dir: Path, rel: Any) -> Optional[Path]:
    if not rel:
        return None
    return (base_dir / str(rel)).resolve()


def _parse_ledger(raw: Mapping[str, Any], base_dir: Path) -> LedgerConfig:
    """
    Extract the [ledger] section.

    Raises:
        ValueError: if 'files' is neither a string nor a list of strings.
    """
    section = _section(raw, "ledger")

    files_raw = section.get("files", [])
    if isinstance(files_raw, str):
        files_raw = [files_raw]
    if not isinstance(files_raw, list) or not all(
        isinstance(f, str) for f in files_raw
    ):
        raise ValueError("Invalid [ledger].files, expected a list of file paths.")

    delimiter = section.get("delimiter") or None
    encoding = str(section.get("encoding") or "utf-8")

    return LedgerConfig(
        files=tuple((base_dir / f).resolve() for f in files_raw),
        delimiter=str(delimiter) if delimiter else None,
        encoding=encoding,
    )


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the BilanzKit application configuration from a TOML file.

    Expected sections
    -----------------
    [ledger]
        files     : list of ledger exports (CSV / XLSX), imported in order.
        delimiter : optional CSV separator (sniffed when omitted).
        encoding  : optional CSV encoding (default utf-8).

    [mapping]
        file : optional JSON custom account mapping.

    [kpis]
        enabled : whether KPIs are computed (default true).
        file    : optional TOML/JSON KPI definitions; the built-in defaults
                  are used when omitted.

    [display]
        mode       : 'table', 'csv' or 'both' (default 'table').
        decimals   : decimals for amounts (default 2).
        output_dir : CSV output directory (default 'output').

    All file paths are resolved relative to the directory of the TOML file.
    Every section is optional.

    Parameters
    ----------
    config_path :
        Path to the TOML file; defaults to 'bilanzkit_config.toml' in the
        current working directory.

    Returns
    -------
    AppConfig
        Parsed and validated application configuration.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    ValueError
        If the file cannot be parsed or contains invalid values.
    """
    config_file = Path(config_path or DEFAULT_CONFIG_FILE).resolve()
    raw = _load_toml(config_file)
    base_dir = config_file.parent

    # 1) Ledger files
    ledger = _parse_ledger(raw, base_dir)

    # 2) Custom account mapping
    mapping_section = _section(raw, "mapping")
    mapping_file = _resolve_optional(base_dir, mapping_section.get("file"))

    # 3) KPIs
    kpis_section = _section(raw, "kpis")
    kpis_enabled = bool(kpis_section.get("enabled", True))
    kpi_file = _resolve_optional(base_dir, kpis_section.get("file"))

    # 4) Display options
    display_section = _section(raw, "display")
    display_mode = str(display_section.get("mode", "table"))
    if display_mode not in DISPLAY_MODES:
        raise ValueError(
            f"Invalid [display].mode {display_mode!r}, expected one of "
            f"{', '.join(DISPLAY_MODES)}."
        )
    try:
        decimals = int(display_section.get("decimals", 2))
    except (TypeError, ValueError):
        decimals = 2
    output_dir = (base_dir / str(display_section.get("output_dir", "output"))).resolve()

    return AppConfig(
        ledger=ledger,
        mapping_file=mapping_file,
        kpis_enabled=kpis_enabled,
        kpi_file=kpi_file,
        display_mode=display_mode,
        decimals=decimals,
        output_dir=output_dir,
    )


def default_app_config() -> AppConfig:
    """Configuration used when no TOML file is available.

    Everything is then provided on the command line.
    """
    return AppConfig(
        ledger=LedgerConfig(files=(), delimiter=None, encoding="utf-8"),
        mapping_file=None,
        kpis_enabled=True,
        kpi_file=None,
        display_mode="table",
        decimals=2,
        output_dir=Path("output").resolve(),
    )
