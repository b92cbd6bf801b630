"""
Lenient value coercion for model output.

The extraction model is asked for numbers and ISO dates, but declarations
are Brazilian documents and the model regularly echoes what it read:
"R$ 1.234,56", "31/05/2024", "Sim". These helpers turn such values into
Python types, and turn anything they cannot read into None so the
fan-out defaulting rules apply instead of a validation failure.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

_THOUSANDS_ONLY = re.compile(r"^-?\d{1,3}(\.\d{3})+$")
_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y")
_TRUE_WORDS = {"true", "sim", "s", "yes", "y", "1", "ativo", "ativa"}
_FALSE_WORDS = {"false", "nao", "não", "n", "no", "0", "inativo", "inativa"}


def parse_brl_amount(value: Any) -> Optional[Decimal]:
    """
    Parse a monetary value written either as a number or in Brazilian format.

    Examples:
        50000        -> Decimal("50000")
        "R$ 1.234,56" -> Decimal("1234.56")
        "50.000"     -> Decimal("50000")
        "1234.56"    -> Decimal("1234.56")
        "12,5%"      -> Decimal("12.5")
        "n/a"        -> None
        NaN, Infinity -> None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        amount = Decimal(str(value))
        return amount if amount.is_finite() else None
    if not isinstance(value, str):
        return None

    text = value.strip().replace("R$", "").replace("\u00a0", "").replace(" ", "")
    # rates come back as "12,5%"
    text = text.removesuffix("%")
    if not text:
        return None

    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    elif _THOUSANDS_ONLY.match(text):
        text = text.replace(".", "")

    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount


def parse_loose_date(value: Any) -> Optional[date]:
    """Parse ISO or dd/mm/yyyy dates. Unreadable values become None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()[:10]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_loose_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    amount = parse_brl_amount(value)
    if amount is None:
        return None
    return int(amount)


def parse_loose_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return None


def clean_text(value: Any) -> Optional[str]:
    """Stringify scalars and drop blanks."""
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None
