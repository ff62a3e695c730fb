# BilanzKit - SKR04 balance sheet & P&L reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Account classification for BilanzKit.

Maps an account number to the id of a taxonomy node (see taxonomy.py).

Resolution order:
    1. the user override table (CustomAccountMapping), when it names a
       non-empty target node for the account,
    2. the fixed SKR04 range rules below, evaluated top to bottom, first
       match wins,
    3. otherwise the account is unassigned (None).

Range rules are half-open ``[start, end)`` intervals on the integer account
number, grouped by the semantic blocks of the chart of accounts. The block
6300-6999 ("sonstige betriebliche Aufwendungen") is refined by a nested
table with a catch-all sub-category.

Accounts of class 8 (statistics) and class 9 (carry-forward accounts such as
9000 "Saldenvorträge") deliberately match no rule: they are reported as
unassigned so that a non-zero carry-over stays visible to the user.
"""

from collections.abc import Callable, Mapping
from typing import Optional

from .mapping import AccountOverride

# Result of classify_account() for accounts that match nothing.
UNASSIGNED = None

Predicate = Callable[[int], bool]
RangeRule = tuple[Predicate, str]


def _between(start: int, end: int) -> Predicate:
    """Half-open interval predicate: start <= n < end."""
    return lambda n: start <= n < end


def _any_of(*predicates: Predicate) -> Predicate:
    return lambda n: any(p(n) for p in predicates)


def _one_of(*numbers: int) -> Predicate:
    values = frozenset(numbers)
    return lambda n: n in values


# Sub-categories of "sonstige betriebliche Aufwendungen" (6300-6999).
OTHER_OPERATING_EXPENSE_RULES: tuple[RangeRule, ...] = (
    (_between(6310, 6351), "sonst_aufw_raum"),
    (_between(6400, 6440), "sonst_aufw_vers"),
    (_between(6450, 6495), "sonst_aufw_rep"),
    (_between(6500, 6600), "sonst_aufw_kfz"),
    (_between(6600, 6700), "sonst_aufw_werb"),
)
OTHER_OPERATING_EXPENSE_FALLBACK = "sonst_aufw_rest"
OTHER_OPERATING_EXPENSE_BLOCK = _between(6300, 7000)


RANGE_RULES: tuple[RangeRule, ...] = (
    # --- Aktiva: Anlagevermögen (class 0) ---
    (_between(100, 200), "av_immat"),
    (_between(200, 700), "av_sach"),
    (_between(700, 1000), "av_finanz"),
    # --- Aktiva: Umlaufvermögen (class 1, debtors 10000-69999) ---
    (_between(1000, 1200), "uv_vorrat"),
    (_any_of(_between(1200, 1600), _between(10000, 70000)), "uv_ford"),
    (_between(1600, 1900), "uv_kasse"),
    (_between(1900, 2000), "rap_akt"),
    # --- Passiva (classes 2 and 3, creditors 70000-99999) ---
    (_between(2000, 2900), "ek_kapital"),
    (_between(2900, 2980), "ek_vortrag"),
    (_between(3000, 3150), "rs"),
    (_any_of(_between(3200, 3900), _between(70000, 100000)), "verb"),
    (_between(3900, 4000), "rap_pass"),
    # --- GuV: Erträge (class 4) ---
    (_between(4100, 4500), "umsatz"),
    (_between(4800, 4830), "bestandsva"),
    (_any_of(_between(4830, 5000), _one_of(5730)), "sonst_ertrag"),
    # --- GuV: Aufwendungen (classes 5 to 7) ---
    (_between(5000, 6000), "material"),
    (_between(6000, 6200), "personal"),
    (_between(6200, 6300), "abschr"),
    # 6300-6999 is dispatched to OTHER_OPERATING_EXPENSE_RULES
    (_between(7300, 7400), "zinsen"),
    (_between(7600, 7650), "steuern_er"),
    (_between(7000, 8000), "steuern_sonst"),
)


def _parse_account_number(account_number: str) -> Optional[int]:
    """Parse the leading integer of an account number ('1600' -> 1600)."""
    digits = ""
    for ch in str(account_number).strip():
        if not ch.isdigit():
            break
        digits += ch
    return int(digits) if digits else None


def classify_other_operating_expense(number: int) -> str:
    """Return the sub-category of an account in the 6300-6999 block."""
    for predicate, node_id in OTHER_OPERATING_EXPENSE_RULES:
        if predicate(number):
            return node_id
    return OTHER_OPERATING_EXPENSE_FALLBACK


def classify_by_range(number: int) -> Optional[str]:
    """Apply the default SKR04 range rules to an integer account number."""
    if OTHER_OPERATING_EXPENSE_BLOCK(number):
        return classify_other_operating_expense(number)
    for predicate, node_id in RANGE_RULES:
        if predicate(number):
            return node_id
    return UNASSIGNED


def classify_account(
    account_number: str,
    mapping: Optional[Mapping[str, AccountOverride]] = None,
) -> Optional[str]:
    """Return the taxonomy node id for an account, or None if unassigned.

    Args:
        account_number: Normalized account number (e.g. '1600', '70001').
        mapping: Optional override table keyed by account number. An entry
            with a non-empty ``node_id`` takes precedence over the range
            rules, even if they disagree.

    Returns:
        The target node id, or UNASSIGNED (None) when no override and no
        range rule applies (non-numeric numbers, class 8 and class 9
        accounts, gaps between ranges).
    """
    if mapping:
        override = mapping.get(account_number)
        if override is not None and override.node_id:
            return override.node_id

    number = _parse_account_number(account_number)
    if number is None:
        return UNASSIGNED
    return classify_by_range(number)
