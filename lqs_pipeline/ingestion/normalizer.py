"""Turn mapped spreadsheet rows into validated, typed records."""
from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from ..models import ImportKind, RowError
from .models import ColumnMapping, NormalizedRecord, NormalizeResult, PhoneComparison, ProducerRef, Row

LOGGER = logging.getLogger(__name__)

_ZIP_RE = re.compile(r"^(\d{5})(?:-\d{4})?$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_EXCEL_SERIAL_RE = re.compile(r"^\d{5}(?:\.\d+)?$")
_EXCEL_EPOCH = date(1899, 12, 30)
_DATE_FORMATS = (
    "%m/%d/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%Y/%m/%d",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d-%b-%Y",
)

_PRODUCT_TYPES: Mapping[str, str] = {
    "AUTO": "Standard Auto",
    "STANDARD AUTO": "Standard Auto",
    "PERSONAL AUTO": "Standard Auto",
    "SA": "Standard Auto",
    "HOME": "Homeowners",
    "HOMEOWNERS": "Homeowners",
    "HOMEOWNER": "Homeowners",
    "HO": "Homeowners",
    "RENTER": "Renters",
    "RENTERS": "Renters",
    "LANDLORD": "Landlords",
    "LANDLORDS": "Landlords",
    "LL": "Landlords",
    "UMBRELLA": "Personal Umbrella",
    "PERSONAL UMBRELLA": "Personal Umbrella",
    "PUP": "Personal Umbrella",
    "MOTOR CLUB": "Motor Club",
    "MOTORCLUB": "Motor Club",
    "MC": "Motor Club",
    "CONDO": "Condo",
    "CONDOMINIUM": "Condo",
    "MOBILEHOME": "Mobilehome",
    "MOBILE HOME": "Mobilehome",
    "MH": "Mobilehome",
    "AUTO - SPECIAL": "Auto - Special",
    "AUTO-SPECIAL": "Auto - Special",
    "SPECIAL AUTO": "Auto - Special",
    "NON-STANDARD AUTO": "Auto - Special",
}


class RowValidationError(ValueError):
    """Raised for a row that cannot become a record."""


# --- Field parsers ---

def household_key(first_name: Optional[str], last_name: Optional[str], zip_code: Optional[str]) -> str:
    """Natural key ``LAST_FIRST_ZIP``; case and surrounding whitespace do not matter."""

    last = _key_part(last_name)
    first = _key_part(first_name)
    zip_part = (zip_code or "").strip()[:5] or "NOZIP"
    return f"{last}_{first}_{zip_part}"


def _key_part(value: Optional[str]) -> str:
    cleaned = re.sub(r"[^A-Z]", "", (value or "").strip().upper())
    return cleaned or "UNKNOWN"


def parse_zip(value: Optional[str]) -> Optional[str]:
    """Return the 5-digit ZIP, accepting ZIP+4, or ``None`` when invalid."""

    text = (value or "").strip()
    if text.endswith(".0"):
        # numeric spreadsheet cells
        text = text[:-2]
    match = _ZIP_RE.match(text)
    return match.group(1) if match else None


def parse_premium(value: Optional[str]) -> Optional[int]:
    """Parse a dollar amount into integer cents with banker's rounding.

    ``"1234.56"`` and ``"$1,234.56"`` both give ``123456``. Returns ``None``
    for text that is not a number.
    """

    text = (value or "").strip().replace("$", "").replace(",", "").replace(" ", "")
    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]
    if not text:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    try:
        cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_EVEN))
    except InvalidOperation:
        # beyond the context precision
        return None
    return -cents if negative else cents


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse the common date spellings found in agency exports; ``None`` if unknown."""

    text = (value or "").strip()
    if not text:
        return None
    if _ISO_DATE_RE.match(text):
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    if _EXCEL_SERIAL_RE.match(text):
        return _EXCEL_EPOCH + timedelta(days=int(float(text)))
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_items(value: Optional[str]) -> int:
    text = (value or "").strip()
    try:
        count = int(float(text))
    except (ValueError, OverflowError):
        return 1
    return count if count > 0 else 1


def normalize_product_type(value: Optional[str]) -> str:
    text = (value or "").strip()
    if not text:
        return "Unknown"
    return _PRODUCT_TYPES.get(text.upper(), text)


def parse_sub_producer(value: Optional[str]) -> ProducerRef:
    """Split ``"723-ANTHONY MCDERMOTT"`` into code ``723`` and a name."""

    raw = (value or "").strip()
    if not raw:
        return ProducerRef()
    head, separator, tail = raw.partition("-")
    if separator and head.strip():
        return ProducerRef(raw=raw, code=head.strip() or None, name=tail.strip() or None)
    if raw.isdigit():
        return ProducerRef(raw=raw, code=raw)
    return ProducerRef(raw=raw, name=raw)


def split_customer_name(value: Optional[str]) -> Tuple[str, str]:
    """Split a combined name cell into ``(first, last)``.

    Handles ``"SMITH, JOHN"`` and ``"JOHN SMITH"``; a single word is treated
    as the first name.
    """

    text = (value or "").strip()
    if not text:
        return "", ""
    if "," in text:
        last, _, rest = text.partition(",")
        first = rest.strip().split(" ")[0] if rest.strip() else ""
        return first, last.strip()
    parts = text.split()
    if len(parts) >= 2:
        return parts[0], parts[-1]
    return parts[0], ""


def collect_phones(values: Iterable[Optional[str]], comparison: PhoneComparison = PhoneComparison.EXACT) -> List[str]:
    """Ordered phone list with blanks and duplicates removed."""

    phones: List[str] = []
    seen: set[str] = set()
    for value in values:
        text = (value or "").strip()
        key = comparison.key(text)
        if not key or key in seen:
            continue
        seen.add(key)
        phones.append(text)
    return phones


# --- Row normalisation ---

def normalize_rows(
    rows: Sequence[Row],
    mapping: ColumnMapping,
    kind: ImportKind,
    *,
    as_of: Optional[date] = None,
    phone_comparison: PhoneComparison = PhoneComparison.EXACT,
) -> NormalizeResult:
    """Validate every row; rejected rows become one :class:`RowError` each.

    Row numbers are 1-based positions in ``rows``. The output only depends on
    the inputs, ``as_of`` included.
    """

    result = NormalizeResult()
    for index, row in enumerate(rows, start=1):
        try:
            record = normalize_row(
                row,
                index,
                mapping,
                kind,
                as_of=as_of,
                phone_comparison=phone_comparison,
            )
        except RowValidationError as exc:
            result.errors.append(RowError(row=index, message=str(exc)))
            continue
        result.records.append(record)

    LOGGER.info(
        "Normalised %s %s rows: %s records, %s rejected",
        len(rows),
        kind.value,
        len(result.records),
        len(result.errors),
    )
    return result


def normalize_row(
    row: Row,
    row_number: int,
    mapping: ColumnMapping,
    kind: ImportKind,
    *,
    as_of: Optional[date] = None,
    phone_comparison: PhoneComparison = PhoneComparison.EXACT,
) -> NormalizedRecord:
    def value(column: Optional[str]) -> str:
        if not column:
            return ""
        return (row.get(column) or "").strip()

    first_name = value(mapping.first_name)
    last_name = value(mapping.last_name)
    if not (mapping.first_name and mapping.last_name) and mapping.customer_name:
        split_first, split_last = split_customer_name(value(mapping.customer_name))
        first_name = first_name or split_first
        last_name = last_name or split_last

    problems: List[str] = []
    missing = [
        label
        for label, present in (("first name", first_name), ("last name", last_name), ("ZIP code", value(mapping.zip_code)))
        if not present
    ]
    if missing:
        problems.append(f"Missing required field(s): {', '.join(missing)}")

    raw_zip = value(mapping.zip_code)
    zip_code = parse_zip(raw_zip)
    if raw_zip and zip_code is None:
        problems.append(f"Invalid ZIP code '{raw_zip}', expected 5 digits")

    premium_cents: Optional[int] = None
    if kind is not ImportKind.LEAD:
        raw_premium = value(mapping.premium)
        premium_cents = parse_premium(raw_premium)
        if premium_cents is None:
            problems.append(f"Invalid premium '{raw_premium}'" if raw_premium else "Missing premium")
        elif premium_cents <= 0:
            problems.append(f"Premium must be greater than zero, got '{raw_premium}'")

    if problems:
        raise RowValidationError("; ".join(problems))

    record_date = parse_date(value(mapping.date))
    if record_date is None and kind is ImportKind.LEAD:
        record_date = as_of

    product_type: Optional[str] = None
    if kind is not ImportKind.LEAD:
        product_type = normalize_product_type(value(mapping.product_type))
    elif mapping.product_type and value(mapping.product_type):
        product_type = normalize_product_type(value(mapping.product_type))

    return NormalizedRecord(
        row_number=row_number,
        household_key=household_key(first_name, last_name, zip_code),
        first_name=first_name,
        last_name=last_name,
        zip_code=zip_code or "",
        phones=collect_phones((value(column) for column in mapping.phones), phone_comparison),
        email=value(mapping.email) or None,
        product_type=product_type,
        premium_cents=premium_cents,
        record_date=record_date,
        items=parse_items(value(mapping.items)),
        producer=parse_sub_producer(value(mapping.producer)),
        policy_number=value(mapping.policy_number) or None,
        products_interested=value(mapping.products_interested) or None,
    )


__all__ = [
    "RowValidationError",
    "collect_phones",
    "household_key",
    "normalize_product_type",
    "normalize_row",
    "normalize_rows",
    "parse_date",
    "parse_items",
    "parse_premium",
    "parse_sub_producer",
    "parse_zip",
    "split_customer_name",
]
