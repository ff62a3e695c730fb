# BilanzKit - SKR04 balance sheet & P&L reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
User-defined key metrics (KPIs, "Kennzahlen") for BilanzKit.

A KPI is an arithmetic formula over statement lines and raw accounts, e.g.::

    ({{ek}} / ({{aktiva_root}})) * 100

Evaluation of one (formula, year) pair
--------------------------------------
1. Placeholder resolution
   Every ``{{identifier}}`` is replaced by the value of that identifier for
   the requested year:
     - a statement line id (searched in assets, then liabilities, then
       P&L, depth-first, first match wins) -> its yearly amount,
     - otherwise an account number -> its yearly balance,
     - otherwise 0.

2. Whitelist
   The substituted string may only contain digits, '.', '+', '-', '*', '/',
   parentheses and whitespace. Anything else (an unresolved placeholder,
   letters, ...) makes the KPI undefined for that year.

3. Arithmetic
   The string is tokenized and evaluated by a small recursive-descent parser
   with the usual operator precedence. Nothing is executed. Division by zero
   or any malformed expression also makes the KPI undefined.

"Undefined" is represented by ``None``. Evaluation is stateless and has no
side effects; formatting (currency, percent, number) is a separate helper.
"""

import logging
import math
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Literal, Optional

from .engine import FinancialData

logger = logging.getLogger(__name__)

KPIFormat = Literal["currency", "percent", "number"]
KPI_FORMATS: tuple[str, ...] = ("currency", "percent", "number")

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")
_ALLOWED_EXPRESSION = re.compile(r"^[\d.+\-*/()\s]+$")
_TOKEN_PATTERN = re.compile(r"\s*(?:(\d+\.?\d*|\.\d+)|(.))")


class FormulaError(ValueError):
    """Raised when a substituted KPI expression cannot be evaluated."""


@dataclass(frozen=True)
class KPIDefinition:
    """
    User-defined KPI.

    Attributes:
        id: Internal identifier (e.g. 'equity_ratio').
        label: Human-readable label (e.g. 'Eigenkapitalquote').
        formula: Arithmetic formula with ``{{identifier}}`` placeholders.
        format: Display format: 'currency', 'percent' or 'number'.
    """

    id: str
    label: str
    formula: str
    format: KPIFormat = "number"


@dataclass(frozen=True)
class KPIResult:
    """
    Value of one KPI for one fiscal year.

    Attributes:
        id: KPI identifier.
        label: Human-readable label.
        year: Fiscal year the value was computed for.
        value: Numeric value, or None if the formula is undefined.
        format: Display format of the KPI.
    """

    id: str
    label: str
    year: int
    value: Optional[float]
    format: str


DEFAULT_KPIS: tuple[KPIDefinition, ...] = (
    KPIDefinition(
        "equity_ratio",
        "Eigenkapitalquote",
        "({{ek}} / {{aktiva_root}}) * 100",
        "percent",
    ),
    KPIDefinition(
        "return_on_sales",
        "Umsatzrendite",
        "({{ek_ergebnis}} / {{umsatz}}) * 100",
        "percent",
    ),
    KPIDefinition(
        "personnel_ratio",
        "Personalaufwandsquote",
        "({{personal}} / {{umsatz}}) * 100",
        "percent",
    ),
    KPIDefinition("cash", "Liquide Mittel", "{{uv_kasse}}", "currency"),
    KPIDefinition(
        "liquidity_2",
        "Liquidität 2. Grades",
        "({{uv_kasse}} + {{uv_ford}}) / {{verb}}",
        "number",
    ),
)


# ---------------------------------------------------------------------------
# Placeholder resolution
# ---------------------------------------------------------------------------


def resolve_identifier(data: FinancialData, identifier: str, year: int) -> float:
    """Return the value of a formula identifier for one fiscal year.

    Statement lines take precedence over raw accounts; unknown identifiers
    resolve to 0.
    """
    item = data.find_item(identifier)
    if item is not None:
        return item.amount_for(year)
    account = data.accounts.get(identifier)
    if account is not None:
        return account.yearly_balances.get(year, 0.0)
    return 0.0


def _number_to_text(value: float) -> str:
    """Positional decimal text of a float, without exponent notation."""
    # float() drops numpy scalar types, whose repr is not a plain number.
    value = float(value)
    if not math.isfinite(value):
        # Left as letters on purpose: rejected by the whitelist.
        return str(value)
    text = format(Decimal(repr(value)), "f")
    return "0.0" if text in ("-0", "-0.0") else text


def substitute_placeholders(formula: str, data: FinancialData, year: int) -> str:
    """Replace every ``{{identifier}}`` by its value for the given year."""
    return PLACEHOLDER_PATTERN.sub(
        lambda m: _number_to_text(resolve_identifier(data, m.group(1), year)),
        formula,
    )


# ---------------------------------------------------------------------------
# Arithmetic expression evaluation
# ---------------------------------------------------------------------------


def _tokenize(expr: str) -> list[str]:
    tokens: list[str] = []
    pos = 0
    expr = expr.rstrip()
    while pos < len(expr):
        match = _TOKEN_PATTERN.match(expr, pos)
        if match is None:
            raise FormulaError(f"Unexpected input at position {pos}")
        number, symbol = match.groups()
        token = number if number is not None else symbol
        if token is None or (number is None and symbol not in "+-*/()"):
            raise FormulaError(f"Unexpected character at position {pos}")
        tokens.append(token)
        pos = match.end()
    return tokens


class _Parser:
    """Recursive-descent parser over + - * / ( ) and numeric literals.

    Grammar:
        expr   := term (('+' | '-') term)*
        term   := factor (('*' | '/') factor)*
        factor := ('+' | '-') factor | NUMBER | '(' expr ')'
    """

    def __init__(self, tokens: Sequence[str]):
        self.tokens = tokens
        self.pos = 0

    def _peek(self) -> Optional[str]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> str:
        token = self._peek()
        if token is None:
            raise FormulaError("Unexpected end of expression")
        self.pos += 1
        return token

    def parse(self) -> float:
        if not self.tokens:
            raise FormulaError("Empty expression")
        value = self._expr()
        if self._peek() is not None:
            raise FormulaError(f"Unexpected token {self._peek()!r}")
        return value

    def _expr(self) -> float:
        value = self._term()
        while self._peek() in ("+", "-"):
            if self._next() == "+":
                value += self._term()
            else:
                value -= self._term()
        return value

    def _term(self) -> float:
        value = self._factor()
        while self._peek() in ("*", "/"):
            op = self._next()
            right = self._factor()
            if op == "*":
                value *= right
            elif right == 0:
                raise FormulaError("Division by zero")
            else:
                value /= right
        return value

    def _factor(self) -> float:
        token = self._next()
        if token == "+":
            return self._factor()
        if token == "-":
            return -self._factor()
        if token == "(":
            value = self._expr()
            if self._next() != ")":
                raise FormulaError("Missing closing parenthesis")
            return value
        if token in "*/)":
            raise FormulaError(f"Unexpected token {token!r}")
        try:
            return float(token)
        except ValueError as exc:
            raise FormulaError(f"Invalid number {token!r}") from exc


def evaluate_expression(expr: str) -> float:
    """
    Evaluate a substituted KPI expression.

    Args:
        expr: Expression made only of numbers, '+', '-', '*', '/',
            parentheses and whitespace (e.g. "(100 + 50) / 3").

    Returns:
        The evaluated float value.

    Raises:
        FormulaError: if the expression contains other characters, is
            malformed, divides by zero or overflows.
    """
    if not _ALLOWED_EXPRESSION.match(expr):
        raise FormulaError(f"Invalid characters in expression: {expr!r}")
    value = _Parser(_tokenize(expr)).parse()
    if not math.isfinite(value):
        raise FormulaError(f"Non-finite result for expression: {expr!r}")
    return value


def evaluate_formula(formula: str, data: FinancialData, year: int) -> Optional[float]:
    """Evaluate a KPI formula for one fiscal year.

    Returns:
        The numeric value, or None ("undefined") if the formula cannot be
        evaluated for that year.
    """
    expr = substitute_placeholders(formula, data, year)
    try:
        return evaluate_expression(expr)
    except FormulaError as exc:
        logger.debug("Formula %r undefined for %s: %s", formula, year, exc)
        return None


def evaluate_kpis(
    kpis: Iterable[KPIDefinition],
    data: FinancialData,
    years: Optional[Sequence[int]] = None,
) -> list[KPIResult]:
    """
    Evaluate a list of KPIs for each fiscal year.

    Args:
        kpis: KPI definitions, in display order.
        data: Generated financial report.
        years: Years to evaluate; defaults to the report's year axis.

    Returns:
        One KPIResult per (KPI, year), KPIs in their given order and years
        in the order of ``years``.
    """
    target_years = list(data.years if years is None else years)
    results: list[KPIResult] = []
    for kpi in kpis:
        for year in target_years:
            results.append(
                KPIResult(
                    id=kpi.id,
                    label=kpi.label,
                    year=year,
                    value=evaluate_formula(kpi.formula, data, year),
                    format=kpi.format,
                )
            )
    return results


# ---------------------------------------------------------------------------
# Presentation & structured documents
# ---------------------------------------------------------------------------


def _german_number(value: float, decimals: int) -> str:
    text = f"{value:,.{decimals}f}"
    return text.replace(",", "\x00").replace(".", ",").replace("\x00", ".")


def format_kpi_value(value: Optional[float], fmt: str, decimals: int = 2) -> str:
    """Format a KPI value for display (German number conventions).

    - 'currency': 1234.5 -> '1.234,50 €'
    - 'percent':  the value is already expressed in percent: 12.5 -> '12,5 %'
    - anything else: 1234.5 -> '1.234,50'

    Undefined or non-finite values are shown as '-'.
    """
    if value is None or not math.isfinite(value):
        return "-"
    if fmt == "currency":
        return f"{_german_number(value, decimals)} €"
    if fmt == "percent":
        return f"{_german_number(value, 1)} %"
    return _german_number(value, decimals)


def kpi_definitions_from_list(items: Iterable[Any]) -> list[KPIDefinition]:
    """
    Build KPI definitions from their structured document form.

    Each item is a table with 'id', 'label', 'formula' and 'format' keys.
    Items that are not tables or lack an id are skipped; unknown formats
    fall back to 'number'. The order of the input is preserved.
    """
    kpis: list[KPIDefinition] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        kpi_id = str(item.get("id") or "").strip()
        if not kpi_id:
            continue
        fmt = str(item.get("format") or "number")
        if fmt not in KPI_FORMATS:
            fmt = "number"
        kpis.append(
            KPIDefinition(
                id=kpi_id,
                label=str(item.get("label") or kpi_id),
                formula=str(item.get("formula") or ""),
                format=fmt,  # type: ignore[arg-type]
            )
        )
    return kpis


def kpi_definitions_to_list(kpis: Iterable[KPIDefinition]) -> list[dict[str, str]]:
    """Return the structured document form of KPI definitions, in order."""
    return [
        {"id": k.id, "label": k.label, "formula": k.formula, "format": k.format}
        for k in kpis
    ]
