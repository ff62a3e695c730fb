import pytest

from bilanzkit.engine import (
    NET_RESULT_ACCOUNT,
    FinancialReportItem,
    collect_years,
    generate_financial_report,
)
from bilanzkit.ledger import AccountBalance, ingest_rows
from bilanzkit.mapping import AccountOverride


def _row(account, contra, debit, credit, day="31.12.2024") -> dict:
    return {
        "Datum": day,
        "Kontonummer": account,
        "Gegenkonto": contra,
        "Soll-Betrag": debit,
        "Haben-Betrag": credit,
        "Buchungstext": "",
    }


def _scenario_accounts() -> dict[str, AccountBalance]:
    rows = [
        _row("1600", "9000", "1000", ""),
        _row("4400", "1600", "", "500"),
    ]
    return ingest_rows(rows).accounts


MULTI_YEAR_ROWS = [
    _row("1800", "2000", "10000", "", day="02.01.2023"),
    _row("1800", "4400", "3000", "", day="15.05.2023"),
    _row("6020", "1800", "1200", "", day="31.05.2023"),
    _row("6520", "3300", "300", "", day="10.08.2023"),
    _row("1200", "4400", "5000", "", day="20.02.2024"),
    _row("5400", "3300", "800", "", day="01.03.2024"),
    _row("6310", "1800", "900", "", day="01.04.2024"),
    _row("7310", "1800", "50", "", day="30.06.2024"),
    _row("3300", "1800", "300", "", day="01.07.2024"),
]


def _multi_year_accounts() -> dict[str, AccountBalance]:
    return ingest_rows(MULTI_YEAR_ROWS).accounts


def _assert_tree_invariant(item: FinancialReportItem, years) -> None:
    for node in item.walk():
        expected = sum(c.amount for c in node.children) + sum(a.balance for a in node.accounts)
        assert node.amount == pytest.approx(expected), node.id
        for y in years:
            expected_y = sum(c.amount_for(y) for c in node.children) + sum(
                a.yearly_balances.get(y, 0.0) for a in node.accounts
            )
            assert node.amount_for(y) == pytest.approx(expected_y), (node.id, y)


def test_end_to_end_two_row_scenario() -> None:
    """Cash 1500, carry-forward 9000 unassigned, revenue 500."""
    accounts = _scenario_accounts()
    data = generate_financial_report(accounts)

    assert accounts["1600"].balance == pytest.approx(1500.0)
    assert accounts["9000"].balance == pytest.approx(-1000.0)
    assert accounts["4400"].balance == pytest.approx(-500.0)

    assert [a.account_number for a in data.unassigned] == ["9000"]

    revenue_line = data.find_item("umsatz")
    assert revenue_line.amount == pytest.approx(500.0)
    assert revenue_line.accounts[0].balance == pytest.approx(500.0)

    assert data.assets.amount == pytest.approx(1500.0)
    assert data.profit == pytest.approx(500.0)
    assert data.yearly_profit == {2024: pytest.approx(500.0)}

    # Equity & liabilities only hold the annual result: 9000 is excluded.
    assert data.liabilities.amount == pytest.approx(500.0)
    assert data.balance_check.diff == pytest.approx(1000.0)
    assert data.balance_check.balanced is False
    assert data.years == [2024]


def test_net_result_is_injected_into_equity() -> None:
    data = generate_financial_report(_scenario_accounts())

    result_line = data.find_item("ek_ergebnis")
    assert len(result_line.accounts) == 1
    synthetic = result_line.accounts[0]
    assert synthetic.account_number == NET_RESULT_ACCOUNT
    assert synthetic.name == "Jahresüberschuss"
    assert result_line.amount == pytest.approx(500.0)
    assert data.find_item("ek").amount == pytest.approx(500.0)


def test_net_loss_label() -> None:
    accounts = ingest_rows([_row("6020", "1800", "700", "")]).accounts
    data = generate_financial_report(accounts)

    assert data.profit == pytest.approx(-700.0)
    assert data.find_item("ek_ergebnis").accounts[0].name == "Jahresfehlbetrag"
    assert data.balance_check.balanced is True


def test_aggregation_invariant_for_every_node_and_year() -> None:
    data = generate_financial_report(_multi_year_accounts())

    assert data.years == [2024, 2023]
    for root in data.roots():
        _assert_tree_invariant(root, data.years)
        for node in root.walk():
            assert set(node.yearly_amounts) == set(data.years)


def test_balanced_multi_year_ledger() -> None:
    """A complete double-entry ledger balances in total and per year."""
    data = generate_financial_report(_multi_year_accounts())

    assert data.unassigned == []
    assert data.balance_check.balanced is True
    assert data.balance_check.diff == pytest.approx(0.0, abs=0.05)
    for year in data.years:
        assert data.balance_check.yearly_diff[year] == pytest.approx(0.0, abs=0.05)


def test_unassigned_account_breaks_balance() -> None:
    """Adding one unclassifiable account shifts diff by its balance."""
    rows = [*MULTI_YEAR_ROWS, _row("1800", "9000", "250", "")]
    combined = ingest_rows(rows).accounts
    data = generate_financial_report(combined)

    assert [a.account_number for a in data.unassigned] == ["9000"]
    assert data.balance_check.balanced is False
    assert abs(data.balance_check.diff) == pytest.approx(abs(combined["9000"].balance))


def test_profit_matches_pnl_subtree_totals() -> None:
    """Profit from leaf contributions equals revenue minus expense subtrees."""
    data = generate_financial_report(_multi_year_accounts())

    def subtree_result(year=None) -> float:
        total = 0.0
        for child in data.profit_and_loss.children:
            value = child.amount if year is None else child.amount_for(year)
            if child.type == "REVENUE":
                total += value
            elif child.type == "EXPENSE":
                total -= value
        return total

    assert data.profit == pytest.approx(subtree_result())
    for year in data.years:
        assert data.yearly_profit[year] == pytest.approx(subtree_result(year))
    assert data.yearly_profit[2023] == pytest.approx(3000 - 1200 - 300)
    assert data.yearly_profit[2024] == pytest.approx(5000 - 800 - 900 - 50)


def test_sign_normalization_for_liabilities_and_revenue() -> None:
    data = generate_financial_report(_multi_year_accounts())

    payables = data.find_item("verb")
    assert payables.amount == pytest.approx(800.0)
    assert payables.accounts[0].balance == pytest.approx(800.0)
    # Raw account keeps the debit-positive convention.
    assert data.accounts["3300"].balance == pytest.approx(-800.0)

    assert data.find_item("umsatz").amount_for(2024) == pytest.approx(5000.0)
    assert data.find_item("sonst_aufw_kfz").amount_for(2023) == pytest.approx(300.0)


def test_override_mapping_moves_account_and_renames() -> None:
    accounts = _scenario_accounts()
    mapping = {"9000": AccountOverride(name="Saldenvorträge", node_id="ek_vortrag")}

    data = generate_financial_report(accounts, mapping)

    assert data.unassigned == []
    carry = data.find_item("ek_vortrag")
    assert carry.accounts[0].name == "Saldenvorträge"
    assert carry.amount == pytest.approx(1000.0)
    assert data.liabilities.amount == pytest.approx(1500.0)
    assert data.balance_check.balanced is True
    assert data.accounts["9000"].name == "Saldenvorträge"


def test_override_to_root_or_unknown_node_is_unassigned() -> None:
    accounts = _scenario_accounts()
    for target in ("passiva_root", "nope"):
        mapping = {"9000": AccountOverride(node_id=target)}
        data = generate_financial_report(accounts, mapping)
        assert [a.account_number for a in data.unassigned] == ["9000"]


def test_override_onto_result_line_keeps_the_account() -> None:
    accounts = _scenario_accounts()
    mapping = {"9000": AccountOverride(node_id="ek_ergebnis")}

    data = generate_financial_report(accounts, mapping)

    result_line = data.find_item("ek_ergebnis")
    assert [a.account_number for a in result_line.accounts] == ["9000", NET_RESULT_ACCOUNT]
    assert result_line.amount == pytest.approx(1500.0)
    assert data.balance_check.balanced is True


def test_inputs_are_not_mutated() -> None:
    accounts = _scenario_accounts()
    mapping = {"4400": AccountOverride(name="Erlöse")}

    generate_financial_report(accounts, mapping)

    assert accounts["4400"].name == "Konto 4400"
    assert accounts["4400"].balance == pytest.approx(-500.0)
    assert accounts["4400"].yearly_balances == {2024: pytest.approx(-500.0)}


def test_negligible_balances_are_ignored() -> None:
    accounts = {"1600": AccountBalance("1600", "Kasse", 0.004, {2024: 0.004})}
    data = generate_financial_report(accounts)

    assert data.find_item("uv_kasse").accounts == []
    assert data.unassigned == []


def test_children_are_sorted_and_levels_set() -> None:
    data = generate_financial_report({})

    orders = [c.order for c in data.assets.children]
    assert orders == sorted(orders)
    assert data.assets.level == 0
    assert data.find_item("av").level == 1
    assert data.find_item("av_sach").level == 2
    assert data.years == []
    assert data.balance_check.balanced is True


def test_collect_years_descending() -> None:
    accounts = [
        AccountBalance("1", "a", 0.0, {2022: 1.0, 2024: 1.0}),
        AccountBalance("2", "b", 0.0, {2023: 1.0, 0: 1.0}),
    ]
    assert collect_years(accounts) == [2024, 2023, 2022, 0]
