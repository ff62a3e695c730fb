import pytest

from bilanzkit.classifier import classify_account, classify_by_range
from bilanzkit.mapping import AccountOverride
from bilanzkit.taxonomy import STRUCTURE_BY_ID, is_assignable


def test_classifier_totality_on_default_ranges() -> None:
    """Every account in [100, 100000) is either unassigned or a real node."""
    for number in range(100, 100000):
        node_id = classify_account(str(number))
        assert node_id is None or is_assignable(node_id), number


@pytest.mark.parametrize(
    "account, expected",
    [
        ("135", "av_immat"),
        ("500", "av_sach"),
        ("1000", "uv_vorrat"),
        ("1400", "uv_ford"),
        ("10001", "uv_ford"),
        ("1600", "uv_kasse"),
        ("1800", "uv_kasse"),
        ("2000", "ek_kapital"),
        ("2970", "ek_vortrag"),
        ("3070", "rs"),
        ("3300", "verb"),
        ("70001", "verb"),
        ("4400", "umsatz"),
        ("4830", "sonst_ertrag"),
        ("5730", "sonst_ertrag"),
        ("5400", "material"),
        ("6020", "personal"),
        ("6220", "abschr"),
        ("7310", "zinsen"),
        ("7610", "steuern_er"),
        ("7685", "steuern_sonst"),
    ],
)
def test_default_range_rules(account, expected) -> None:
    assert classify_account(account) == expected


@pytest.mark.parametrize(
    "number, expected",
    [
        (6300, "sonst_aufw_rest"),
        (6310, "sonst_aufw_raum"),
        (6350, "sonst_aufw_raum"),
        (6351, "sonst_aufw_rest"),
        (6400, "sonst_aufw_vers"),
        (6450, "sonst_aufw_rep"),
        (6520, "sonst_aufw_kfz"),
        (6600, "sonst_aufw_werb"),
        (6815, "sonst_aufw_rest"),
        (6999, "sonst_aufw_rest"),
    ],
)
def test_other_operating_expense_subcategories(number, expected) -> None:
    """The 6300-6999 block is refined, with a catch-all sub-category."""
    assert classify_by_range(number) == expected


@pytest.mark.parametrize("account", ["9000", "8000", "50", "abc", "0"])
def test_unassigned_accounts(account) -> None:
    """Class 8 and 9 accounts, tiny numbers and non-numeric ids are unassigned."""
    assert classify_account(account) is None


def test_override_takes_precedence() -> None:
    """A mapped node wins over the range rules, even if they disagree."""
    mapping = {
        "1600": AccountOverride(node_id="verb"),
        "9000": AccountOverride(name="Saldenvorträge", node_id="ek_vortrag"),
        "4400": AccountOverride(name="Erlöse 19 %"),
    }

    assert classify_account("1600", mapping) == "verb"
    assert classify_account("9000", mapping) == "ek_vortrag"
    # Name-only overrides leave the classification alone.
    assert classify_account("4400", mapping) == "umsatz"


def test_override_to_unknown_node_is_returned_verbatim() -> None:
    """The classifier does not validate targets; the engine does."""
    mapping = {"1600": AccountOverride(node_id="does_not_exist")}
    node_id = classify_account("1600", mapping)
    assert node_id == "does_not_exist"
    assert node_id not in STRUCTURE_BY_ID
