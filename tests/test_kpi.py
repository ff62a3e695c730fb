import numpy as np
import pytest

from bilanzkit.engine import generate_financial_report
from bilanzkit.kpi import (
    DEFAULT_KPIS,
    FormulaError,
    KPIDefinition,
    evaluate_expression,
    evaluate_formula,
    evaluate_kpis,
    format_kpi_value,
    kpi_definitions_from_list,
    kpi_definitions_to_list,
    resolve_identifier,
    substitute_placeholders,
)
from bilanzkit.ledger import AccountBalance


def _data():
    """Cash 100 and receivables 50 in 2024; receivables -50 in 2023."""
    accounts = {
        "1600": AccountBalance("1600", "Kasse", 100.0, {2024: 100.0}),
        "1200": AccountBalance("1200", "Forderungen", 0.0, {2024: 50.0, 2023: -50.0}),
    }
    return generate_financial_report(accounts)


def test_formula_over_raw_accounts() -> None:
    assert evaluate_formula("{{1600}}+{{1200}}", _data(), 2024) == pytest.approx(150.0)


def test_formula_over_statement_lines() -> None:
    data = _data()
    assert evaluate_formula("{{uv_kasse}} + {{uv_ford}}", data, 2024) == pytest.approx(150.0)
    assert evaluate_formula("{{ uv_kasse }} * 2", data, 2024) == pytest.approx(200.0)


def test_negative_values_are_substituted_safely() -> None:
    """'100 - -50' is read as a subtraction of a negative number."""
    data = _data()
    assert substitute_placeholders("{{1600}}-{{1200}}", data, 2023) == "0.0--50.0"
    assert evaluate_formula("{{1600}}-{{1200}}", data, 2023) == pytest.approx(50.0)
    assert evaluate_formula("{{1600}}-{{1200}}", data, 2024) == pytest.approx(50.0)


def test_unknown_identifier_resolves_to_zero() -> None:
    data = _data()
    assert resolve_identifier(data, "does_not_exist", 2024) == 0.0
    assert evaluate_formula("{{does_not_exist}} + 1", data, 2024) == pytest.approx(1.0)


@pytest.mark.parametrize(
    "formula",
    [
        "{{uv_kasse}} + abc",
        "__import__('os')",
        "{{uv-kasse}}",
        "{{uv_kasse}} / {{verb}}",
        "(1 + 2",
        "1 + * 2",
        "",
        "2 ** 3",
    ],
)
def test_invalid_formulas_are_undefined(formula) -> None:
    """Letters, division by zero and malformed input give None, never raise."""
    assert evaluate_formula(formula, _data(), 2024) is None


@pytest.mark.parametrize(
    "expr, expected",
    [
        ("1 + 2 * 3", 7.0),
        ("(1 + 2) * 3", 9.0),
        ("-(4 - 6) / 4", 0.5),
        ("10 / 4", 2.5),
        (".5 + 1.", 1.5),
    ],
)
def test_evaluate_expression_precedence(expr, expected) -> None:
    assert evaluate_expression(expr) == pytest.approx(expected)


def test_evaluate_expression_raises_formula_error() -> None:
    with pytest.raises(FormulaError):
        evaluate_expression("1 / 0")
    with pytest.raises(FormulaError):
        evaluate_expression("1 + x")


def test_evaluate_kpis_preserves_order_and_years() -> None:
    data = _data()
    kpis = [
        KPIDefinition("b", "Second", "{{uv_ford}}"),
        KPIDefinition("a", "First", "{{uv_ford}} / {{uv_kasse}}", "percent"),
    ]

    results = evaluate_kpis(kpis, data)

    assert [(r.id, r.year) for r in results] == [
        ("b", 2024),
        ("b", 2023),
        ("a", 2024),
        ("a", 2023),
    ]
    assert results[0].value == pytest.approx(50.0)
    assert results[2].value == pytest.approx(0.5)
    assert results[3].value is None
    assert results[2].format == "percent"


def test_default_kpis_evaluate_without_error() -> None:
    results = evaluate_kpis(DEFAULT_KPIS, _data())
    assert len(results) == len(DEFAULT_KPIS) * 2
    cash = [r for r in results if r.id == "cash" and r.year == 2024][0]
    assert cash.value == pytest.approx(100.0)


@pytest.mark.parametrize(
    "value, fmt, expected",
    [
        (1234.5, "currency", "1.234,50 €"),
        (12.5, "percent", "12,5 %"),
        (1234.5, "number", "1.234,50"),
        (-1234567.891, "number", "-1.234.567,89"),
        (None, "currency", "-"),
        (float("inf"), "number", "-"),
    ],
)
def test_format_kpi_value(value, fmt, expected) -> None:
    assert format_kpi_value(value, fmt) == expected


def test_kpi_definitions_document_form() -> None:
    items = [
        {"id": "equity_ratio", "label": "EK-Quote", "formula": "{{ek}}", "format": "percent"},
        {"label": "missing id"},
        "not a table",
        {"id": "x", "formula": "1", "format": "weird"},
    ]

    kpis = kpi_definitions_from_list(items)

    assert [k.id for k in kpis] == ["equity_ratio", "x"]
    assert kpis[1].format == "number"
    assert kpis[1].label == "x"
    assert kpi_definitions_to_list(kpis)[0] == items[0]


def test_numpy_valued_balances_are_substituted() -> None:
    """Balances read through pandas may be numpy scalars."""
    accounts = {
        "1600": AccountBalance(
            "1600", "Kasse", np.float64(100.0), {2024: np.float64(100.0)}
        ),
        "1200": AccountBalance(
            "1200", "Forderungen", np.float64(0.0), {2024: np.float64(-0.0)}
        ),
    }
    data = generate_financial_report(accounts)

    assert evaluate_formula("{{uv_kasse}} + 1", data, 2024) == pytest.approx(101.0)
    assert evaluate_formula("{{1600}} * 2", data, 2024) == pytest.approx(200.0)
    assert "e" not in substitute_placeholders("{{1200}}", data, 2024)

    results = evaluate_kpis(DEFAULT_KPIS, data)
    cash = next(r for r in results if r.id == "cash")
    assert cash.value == pytest.approx(100.0)
