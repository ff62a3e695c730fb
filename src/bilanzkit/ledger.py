# BilanzKit - SKR04 balance sheet & P&L reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Ledger ingestion for BilanzKit.

This module turns already-tabulated ledger rows (one mapping per row, column
label -> raw cell value, as produced by ``io.read_ledger_file``) into
normalized ``Booking`` records and per-account ``AccountBalance`` aggregates.

Responsibilities
----------------
1) Cell normalization
   - amounts in European (``1.234,56``) or US (``1,234.56``) notation,
   - account numbers (grouping punctuation and leading zeros stripped),
   - dates given as ``dd.mm.yyyy`` strings, ISO strings, date objects or
     spreadsheet serial day counts.
   Malformed cells never abort ingestion: they fall back to 0 / empty.

2) Double-entry expansion
   Each admitted row books its literal debit/credit on the primary account
   and, when a contra account is present, a mirrored booking (debit and
   credit swapped) on the contra account. Every account balance is thus
   auditable on its own.

3) Multi-source merge
   Several imports can be merged into one consistent account set. Merging
   sums balances and yearly buckets and concatenates booking lists, which
   makes it commutative and associative.

Sign convention
---------------
``AccountBalance.balance`` is positive for a net-debit account (assets,
expenses) and negative for a net-credit account (liabilities, revenue).
"""

import logging
import math
import numbers
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Sentinel for "no account": leading zeros are always stripped from real
# account numbers, so "0" can never collide with one.
NO_ACCOUNT = "0"

# Day zero of spreadsheet serial dates (serial 25569 == 1970-01-01).
SERIAL_EPOCH = date(1899, 12, 30)
# Smaller numbers are not treated as serial dates.
MIN_SERIAL_DATE = 10000

_NUMBER_PREFIX = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
# Booking ids: "row-<n>" or "<prefix>-row-<n>", optionally "-mirror".
_BOOKING_ID = re.compile(r"^(?:(?P<prefix>.*)-)?row-(?P<row>\d+)")


@dataclass(frozen=True)
class Booking:
    """One ledger line as seen from one account.

    Attributes:
        id: Identifier unique per import ('row-3', 'import2-row-3'); mirror
            bookings carry the '-mirror' suffix.
        date: Display date (dd.mm.yyyy), empty if the cell was unreadable.
        date_key: Sortable serial day number, 0 if unknown.
        year: Fiscal year, 0 if unknown.
        text: Free-text memo.
        document: Source document reference (Belegnummer).
        account: Account the booking is attached to.
        contra_account: Counterpart account, NO_ACCOUNT if none.
        debit: Debit amount (Soll).
        credit: Credit amount (Haben).
    """

    id: str
    date: str
    date_key: int
    year: int
    text: str
    document: str
    account: str
    contra_account: str
    debit: float
    credit: float

    @property
    def signed_amount(self) -> float:
        """Contribution of this booking to its account balance."""
        return self.debit - self.credit

    def mirrored(self) -> "Booking":
        """Return the booking as seen from the contra account."""
        return replace(
            self,
            id=f"{self.id}-mirror",
            account=self.contra_account,
            contra_account=self.account,
            debit=self.credit,
            credit=self.debit,
        )


@dataclass
class AccountBalance:
    """One ledger account with its accumulated balances.

    Invariant: ``balance == sum(yearly_balances.values())`` and equals the
    sum of ``signed_amount`` over ``bookings``.
    """

    account_number: str
    name: str
    balance: float = 0.0
    yearly_balances: dict[int, float] = field(default_factory=dict)
    bookings: list[Booking] = field(default_factory=list)

    @classmethod
    def empty(cls, account_number: str) -> "AccountBalance":
        """Create a zero-balance account with the generic display name."""
        return cls(account_number=account_number, name=f"Konto {account_number}")

    def record(self, booking: Booking) -> None:
        """Attach a booking and accumulate its signed amount."""
        delta = booking.signed_amount
        self.balance += delta
        self.yearly_balances[booking.year] = (
            self.yearly_balances.get(booking.year, 0.0) + delta
        )
        self.bookings.append(booking)

    def sort_bookings(self) -> None:
        self.bookings.sort(key=_booking_sort_key)

    def copy(self) -> "AccountBalance":
        """Return an independent copy (bookings themselves are immutable)."""
        return replace(
            self,
            yearly_balances=dict(self.yearly_balances),
            bookings=list(self.bookings),
        )


@dataclass
class LedgerImport:
    """Result of one ingestion (or of a merge of several ingestions).

    Attributes:
        bookings: Flat list of primary bookings (mirrors are only attached
            to their accounts).
        accounts: AccountBalance records keyed by normalized account number.
    """

    bookings: list[Booking] = field(default_factory=list)
    accounts: dict[str, AccountBalance] = field(default_factory=dict)


@dataclass(frozen=True)
class ParsedDate:
    display: str
    date_key: int
    year: int


@dataclass(frozen=True)
class LedgerColumns:
    """Column labels resolved for one row layout."""

    account: str
    contra_account: str
    debit: str
    credit: str
    text: str
    date: str
    document: str


# field -> (search terms, excluded terms, fallback label)
# Terms are matched case-insensitively as substrings of the column label.
COLUMN_VOCABULARY: dict[str, tuple[tuple[str, ...], tuple[str, ...], str]] = {
    "account": (("konto", "account"), ("gegen", "contra"), "Kontonummer"),
    "contra_account": (("gegen", "contra"), (), "Gegenkontonummer"),
    "debit": (("soll", "debit"), (), "Soll-Betrag"),
    "credit": (("haben", "credit"), (), "Haben-Betrag"),
    "text": (("text", "description"), (), "Text"),
    "date": (("datum", "date"), (), "Datum"),
    "document": (("beleg", "document"), ("datum", "date"), "Belegnummer 1"),
}


# ---------------------------------------------------------------------------
# Cell normalization
# ---------------------------------------------------------------------------


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        # NaN and NaT are the only values not equal to themselves
        return bool(value != value)
    except (TypeError, ValueError):
        return False


def parse_amount(value: Any) -> float:
    """Parse a debit/credit cell into a float.

    Numeric values are returned as-is. Text is normalized before parsing:

    - both ',' and '.' present: the rightmost one is the decimal separator
      ('1.234,56' -> 1234.56, '1,234.56' -> 1234.56),
    - only ',' present: it is a decimal comma ('12,5' -> 12.5).

    The longest numeric prefix is used, so trailing currency symbols are
    ignored ('99,90 EUR' -> 99.9). Empty or unparseable values yield 0.0.

    Args:
        value: Raw cell value (number, text or empty).

    Returns:
        The parsed amount, never NaN.
    """
    if _is_missing(value) or isinstance(value, bool):
        return 0.0
    if isinstance(value, numbers.Real):
        return float(value) if math.isfinite(value) else 0.0
    if not isinstance(value, str):
        return 0.0

    clean = value.strip()
    if "," in clean and "." in clean:
        if clean.rfind(",") > clean.rfind("."):
            clean = clean.replace(".", "").replace(",", ".", 1)
        else:
            clean = clean.replace(",", "")
    elif "," in clean:
        clean = clean.replace(",", ".", 1)

    match = _NUMBER_PREFIX.match(clean)
    if match is None:
        return 0.0
    try:
        amount = float(match.group(0))
    except ValueError:
        return 0.0
    return amount if math.isfinite(amount) else 0.0


def normalize_account_number(value: Any) -> str:
    """Return the canonical form of an account number.

    '01600' -> '1600', "1'600" -> '1600', 1600.0 -> '1600'.
    Empty, missing or all-zero values map to NO_ACCOUNT.
    """
    if _is_missing(value) or isinstance(value, bool):
        return NO_ACCOUNT
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = re.sub(r"['\s]", "", str(value))
    return text.lstrip("0") or NO_ACCOUNT


def _from_calendar_date(d: date) -> ParsedDate:
    return ParsedDate(
        display=d.strftime("%d.%m.%Y"),
        date_key=(d - SERIAL_EPOCH).days,
        year=d.year,
    )


def parse_date(value: Any) -> ParsedDate:
    """Parse a booking date cell.

    Accepted inputs:
        - 'dd.mm.yyyy' strings, optionally followed by a time,
        - ISO 'yyyy-mm-dd' date or date-time strings,
        - date / datetime / pandas.Timestamp objects,
        - spreadsheet serial day counts (numbers above MIN_SERIAL_DATE).

    Returns:
        ParsedDate(display, date_key, year). Unrecognized values yield
        ('', 0, 0); the caller keeps the booking regardless. A dotted text that is
        not a calendar date keeps its text and year, with date_key 0.
    """
    if _is_missing(value) or isinstance(value, bool):
        return ParsedDate("", 0, 0)

    # datetime (and pandas.Timestamp) is a subclass of date
    if isinstance(value, datetime):
        return _from_calendar_date(value.date())
    if isinstance(value, date):
        return _from_calendar_date(value)

    if isinstance(value, str):
        text = value.strip()
        # A trailing time ("15.03.2024 10:30") does not change the day.
        day_part = text.split()[0] if text else ""
        parts = day_part.split(".")
        if len(parts) == 3:
            if all(p.isdigit() for p in parts):
                day, month, year = (int(p) for p in parts)
                try:
                    return _from_calendar_date(date(year, month, day))
                except ValueError:
                    pass
            # Keep what can be read: text and year, no sort key.
            year_digits = re.match(r"\d+", parts[2])
            if year_digits:
                return ParsedDate(text, 0, int(year_digits.group(0)))
        try:
            return _from_calendar_date(datetime.fromisoformat(text).date())
        except ValueError:
            pass

    try:
        serial = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return ParsedDate("", 0, 0)
    if serial <= MIN_SERIAL_DATE:
        return ParsedDate("", 0, 0)
    try:
        d = SERIAL_EPOCH + timedelta(days=serial)
    except OverflowError:
        return ParsedDate("", 0, 0)
    return ParsedDate(display=d.strftime("%d.%m.%Y"), date_key=serial, year=d.year)


def _find_column(
    keys: Sequence[str], terms: tuple[str, ...], excluded: tuple[str, ...]
) -> Optional[str]:
    for key in keys:
        lowered = str(key).lower()
        if any(t in lowered for t in terms) and not any(x in lowered for x in excluded):
            return key
    return None


def resolve_columns(keys: Iterable[str]) -> LedgerColumns:
    """Map the logical ledger fields onto the column labels of a row.

    Matching is a case-insensitive substring search over COLUMN_VOCABULARY;
    the first matching column wins. Fields without a matching column fall
    back to their fixed default label (which then simply reads as empty).
    """
    key_list = list(keys)
    resolved = {}
    for field_name, (terms, excluded, fallback) in COLUMN_VOCABULARY.items():
        resolved[field_name] = _find_column(key_list, terms, excluded) or fallback
    return LedgerColumns(**resolved)


def _cell_text(value: Any) -> str:
    if _is_missing(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


def _booking_sort_key(booking: Booking) -> tuple[int, str, int, str]:
    """Date first, then import prefix and input row number."""
    match = _BOOKING_ID.match(booking.id)
    if match is None:
        return (booking.date_key, booking.id, 0, booking.id)
    prefix = match.group("prefix") or ""
    return (booking.date_key, prefix, int(match.group("row")), booking.id)


def ingest_rows(
    rows: Iterable[Mapping[str, Any]], id_prefix: str = ""
) -> LedgerImport:
    """Convert raw ledger rows into bookings and account balances.

    A row is skipped only when it has no account number and both amounts
    are zero; every other row is admitted, even with missing text, date or
    document fields.

    For each admitted row:
      1. a Booking with the literal debit/credit amounts is recorded on the
         primary account,
      2. if a contra account is present, a mirrored Booking (debit and
         credit swapped) is recorded on the contra account.

    Args:
        rows: Iterable of mappings column label -> raw cell value.
        id_prefix: Prefix making booking ids unique across several imports
            (e.g. 'import2' -> 'import2-row-1').

    Returns:
        A LedgerImport with the flat list of primary bookings and the
        accounts keyed by normalized account number. Booking lists are
        sorted by date.
    """
    result = LedgerImport()
    accounts = result.accounts
    columns_cache: dict[tuple[str, ...], LedgerColumns] = {}
    skipped = 0

    def get_account(number: str) -> AccountBalance:
        if number not in accounts:
            accounts[number] = AccountBalance.empty(number)
        return accounts[number]

    for row_idx, row in enumerate(rows, start=1):
        layout = tuple(row.keys())
        columns = columns_cache.get(layout)
        if columns is None:
            columns = resolve_columns(layout)
            columns_cache[layout] = columns

        account = normalize_account_number(row.get(columns.account))
        debit = parse_amount(row.get(columns.debit))
        credit = parse_amount(row.get(columns.credit))

        if account == NO_ACCOUNT and debit == 0 and credit == 0:
            skipped += 1
            continue

        parsed_date = parse_date(row.get(columns.date))
        booking_id = f"{id_prefix}-row-{row_idx}" if id_prefix else f"row-{row_idx}"

        booking = Booking(
            id=booking_id,
            date=parsed_date.display,
            date_key=parsed_date.date_key,
            year=parsed_date.year,
            text=_cell_text(row.get(columns.text)),
            document=_cell_text(row.get(columns.document)),
            account=account,
            contra_account=normalize_account_number(row.get(columns.contra_account)),
            debit=debit,
            credit=credit,
        )
        result.bookings.append(booking)
        get_account(account).record(booking)

        if booking.contra_account != NO_ACCOUNT:
            get_account(booking.contra_account).record(booking.mirrored())

    for acc in accounts.values():
        acc.sort_bookings()

    logger.info(
        "Ingested %d bookings into %d accounts (%d empty rows skipped)",
        len(result.bookings),
        len(accounts),
        skipped,
    )
    return result


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge_accounts(
    base: Mapping[str, AccountBalance], incoming: Mapping[str, AccountBalance]
) -> dict[str, AccountBalance]:
    """Merge two account maps without mutating either of them.

    Accounts present in both maps are combined by summing balances, summing
    yearly buckets key-wise and concatenating (then re-sorting) bookings.
    The display name of ``base`` is kept. Accounts present in only one map
    are copied as-is.
    """
    merged = {number: acc.copy() for number, acc in base.items()}
    for number, acc in incoming.items():
        existing = merged.get(number)
        if existing is None:
            merged[number] = acc.copy()
            continue
        existing.balance += acc.balance
        for year, value in acc.yearly_balances.items():
            existing.yearly_balances[year] = (
                existing.yearly_balances.get(year, 0.0) + value
            )
        existing.bookings.extend(acc.bookings)
        existing.sort_bookings()
    return merged


def merge_ledgers(base: LedgerImport, incoming: LedgerImport) -> LedgerImport:
    """Append one ingestion result to another.

    Returns a new LedgerImport; the inputs are left untouched.
    """
    bookings = sorted([*base.bookings, *incoming.bookings], key=_booking_sort_key)
    merged = LedgerImport(
        bookings=bookings,
        accounts=merge_accounts(base.accounts, incoming.accounts),
    )
    logger.debug(
        "Merged ledgers: %d + %d accounts -> %d",
        len(base.accounts),
        len(incoming.accounts),
        len(merged.accounts),
    )
    return merged


def merge_all(imports: Iterable[LedgerImport]) -> LedgerImport:
    """Merge any number of ingestion results, in order."""
    merged = LedgerImport()
    for item in imports:
        merged = merge_ledgers(merged, item)
    return merged
