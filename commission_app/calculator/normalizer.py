# ==============================================================================
# commission_app/calculator/normalizer.py
# ------------------------------------------------------------------------------
# Tolerant parsing of spreadsheet-derived cells. Nothing in here raises on bad
# input: a bad cell becomes 0, None or '' and ingestion carries on.
# ==============================================================================

import re
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import NamedTuple, Optional

import pandas as pd

from .money import ZERO, to_decimal
from .schema import (ACCOUNT_TYPE_RULES, DEFAULT_ACCOUNT_TYPE, STATE_ABBREVIATIONS,
                     TRUTHY_STRINGS)

SPREADSHEET_EPOCH = datetime(1899, 12, 30)

_ISO_DATE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})$')
_US_SLASH_DATE = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{2,4})$')
_US_DASH_DATE = re.compile(r'^(\d{1,2})-(\d{1,2})-(\d{4})$')
_SERIAL_NUMBER = re.compile(r'^\d+(\.\d+)?$')
_CURRENCY_NOISE = re.compile(r'[\$,\s€£]')
_WHITESPACE = re.compile(r'\s+')


class ParsedDate(NamedTuple):
    date: datetime
    month_key: str
    year: int


def is_blank(value):
    """True for None, NaN/NaT and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ''
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def first_present(row, headers):
    """Returns the first non-blank cell among `headers`, tried in order."""
    for header in headers:
        value = row.get(header)
        if not is_blank(value):
            return value
    return None


def clean_text(value):
    if is_blank(value):
        return ''
    if isinstance(value, float) and value.is_integer():
        # IDs read from a spreadsheet come back as 1001.0
        value = int(value)
    return str(value).strip()


def sanitize_key(raw):
    """Makes an external ID safe to use as a storage key ('/' and '\\' become '_')."""
    return re.sub(r'[/\\]', '_', clean_text(raw)).strip()


def parse_amount(raw) -> Decimal:
    """Parses '$1,234.50', '(12.00)', 99 or 99.5 into a Decimal; anything else is 0."""
    if is_blank(raw) or isinstance(raw, bool):
        return ZERO
    if isinstance(raw, (int, float, Decimal)):
        return to_decimal(raw)
    text = _CURRENCY_NOISE.sub('', str(raw))
    negative = text.startswith('(') and text.endswith(')')
    if negative:
        text = text[1:-1]
    amount = to_decimal(text)
    return -amount if negative else amount


def _parsed(value):
    return ParsedDate(value, f"{value.year}-{value.month:02d}", value.year)


def parse_flexible_date(raw) -> Optional[ParsedDate]:
    """
    Accepts spreadsheet serial numbers, datetime objects, ISO dates, US
    slash/dash dates and, as a last resort, anything pandas can parse.

    Returns None when nothing matches; callers treat that as an unknown period.
    """
    if is_blank(raw) or isinstance(raw, bool):
        return None
    if isinstance(raw, datetime):
        value = pd.Timestamp(raw)
        if value.tzinfo is not None:
            value = value.tz_convert(None)
        return _parsed(value.to_pydatetime())
    if isinstance(raw, date):
        return _parsed(datetime(raw.year, raw.month, raw.day))
    if isinstance(raw, (int, float, Decimal)):
        try:
            return _parsed(SPREADSHEET_EPOCH + timedelta(days=int(raw)))
        except (OverflowError, ValueError):
            return None

    text = str(raw).strip()
    if _SERIAL_NUMBER.match(text):
        return parse_flexible_date(Decimal(text))
    try:
        match = _ISO_DATE.match(text)
        if match:
            year, month, day = (int(part) for part in match.groups())
            return _parsed(datetime(year, month, day))
        match = _US_SLASH_DATE.match(text)
        if match:
            month, day, year_text = match.groups()
            year = int(year_text) + 2000 if len(year_text) == 2 else int(year_text)
            return _parsed(datetime(year, int(month), int(day)))
        match = _US_DASH_DATE.match(text)
        if match:
            month, day, year = (int(part) for part in match.groups())
            return _parsed(datetime(year, month, day))
    except ValueError:
        # Matched the shape but not a real calendar date (e.g. 02/30/2024)
        return None

    parsed = pd.to_datetime(text, errors='coerce')
    if pd.isna(parsed):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert(None)
    return _parsed(parsed.to_pydatetime())


def to_boolean(value):
    """Normalizes the many encodings of a checkbox ('checked', 'Checked', True, 'true', 1)."""
    if isinstance(value, bool):
        return value
    if is_blank(value):
        return False
    if isinstance(value, (int, float, Decimal)):
        return value == 1
    return str(value).strip().lower() in TRUTHY_STRINGS


def normalize_account_type(raw):
    """Maps a free-text CRM account type onto Retail / Wholesale / Distributor."""
    text = _WHITESPACE.sub(' ', clean_text(raw).lower())
    if not text:
        return DEFAULT_ACCOUNT_TYPE
    for kind, pattern, account_type in ACCOUNT_TYPE_RULES:
        if kind == 'exact' and text == pattern:
            return account_type
        if kind == 'contains' and pattern in text:
            return account_type
    return DEFAULT_ACCOUNT_TYPE


def normalize_text(value):
    """Lowercase, trimmed, inner whitespace collapsed; used for address matching."""
    return _WHITESPACE.sub(' ', clean_text(value).lower())


def normalize_state(value):
    state = normalize_text(value)
    if len(state) == 2:
        return state
    return STATE_ABBREVIATIONS.get(state, state)


def make_address_key(name, street, city, state, zip_code):
    """Composite identity key used when two systems share no common ID."""
    return '|'.join([
        normalize_text(name),
        normalize_text(street),
        normalize_text(city),
        normalize_state(state),
        clean_text(zip_code),
    ])
