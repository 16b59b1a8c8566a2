"""Value normalization for extracted cells.

Handles locale-specific number formats (``1,234.56`` and ``1.234,56``),
Persian/Arabic digits, currency symbols, SKU casing and GTIN digits.
"""

import re
from typing import Any, Iterable, Optional, Tuple

from order_intake.services.parsing.type_detector import is_number
from order_intake.services.parsing.workbook_loader import is_blank

CURRENCY_CODES = {
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
    "¥": "JPY",
    "₹": "INR",
    "₽": "RUB",
    "₴": "UAH",
    "₺": "TRY",
    "ریال": "IRR",
    "تومان": "IRR",
    "درهم": "AED",
}

ISO_CODES = ("USD", "EUR", "GBP", "JPY", "INR", "RUB", "UAH", "TRY", "IRR", "AED")

GTIN_LENGTHS = (8, 12, 13, 14)

_DIGITS = str.maketrans(
    "۰۱۲۳۴۵۶۷۸۹٠١٢٣٤٥٦٧٨٩٫٬",
    "01234567890123456789.,",
)
_CURRENCY_TOKENS = re.compile(
    "|".join(re.escape(token) for token in list(CURRENCY_CODES) + list(ISO_CODES))
)
_PERSIAN_CHARS = re.compile(r"[؀-ۿ]")
_WHITESPACE = re.compile(r"\s+")
_THOUSANDS_ONLY = re.compile(r"^[+-]?\d{1,3}(,\d{3})+$")


def convert_persian_digits(text: str) -> str:
    return text.translate(_DIGITS)


def normalize_number(value: Any) -> Optional[float]:
    """Parse a cell into a float, or None when it is not a number."""
    if is_blank(value) or isinstance(value, bool):
        return None
    if is_number(value):
        return float(value)

    text = convert_persian_digits(str(value).strip())
    text = _CURRENCY_TOKENS.sub("", text)
    text = re.sub(r"[\s' ]", "", text)
    if not text:
        return None

    last_comma = text.rfind(",")
    last_dot = text.rfind(".")
    if last_comma > last_dot:
        if last_dot == -1 and _THOUSANDS_ONLY.match(text):
            # 1,234 and 1,234,567 are grouped integers
            text = text.replace(",", "")
        else:
            text = text.replace(".", "").replace(",", ".")
    elif last_dot > last_comma:
        text = text.replace(",", "")

    try:
        return float(text)
    except ValueError:
        return None


def normalize_string(value: Any) -> Optional[str]:
    if is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return _WHITESPACE.sub(" ", str(value).strip()) or None


def normalize_sku(value: Any) -> Optional[str]:
    text = normalize_string(value)
    return text.upper() if text else None


def normalize_gtin(value: Any) -> Optional[str]:
    """Digits of a GTIN-8/12/13/14, or None for any other length.

    The check digit is not enforced here; the validator reports it.
    """
    if is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    digits = re.sub(r"\D", "", convert_persian_digits(str(value).strip()))
    return digits if len(digits) in GTIN_LENGTHS else None


def validate_gtin_check_digit(gtin: str) -> bool:
    """GS1 mod-10 check: weights alternate 3, 1, ... from the rightmost data digit."""
    if not gtin or not gtin.isdigit() or len(gtin) not in GTIN_LENGTHS:
        return False

    total = 0
    for position, char in enumerate(reversed(gtin[:-1]), start=1):
        total += int(char) * (3 if position % 2 == 1 else 1)

    return (10 - total % 10) % 10 == int(gtin[-1])


def detect_currency(text: Any) -> Optional[str]:
    if is_blank(text):
        return None
    text = str(text)
    for symbol, code in CURRENCY_CODES.items():
        if symbol in text:
            return code
    for code in ISO_CODES:
        if code in text:
            return code
    return None


def normalize_currency(value: Any, number_format: Optional[str] = None) -> Tuple[Optional[float], Optional[str]]:
    """Amount and ISO currency code, looking at the value then its number format."""
    amount = normalize_number(value)
    currency = detect_currency(value) if isinstance(value, str) else None
    if currency is None and number_format:
        currency = detect_currency(number_format)
    return amount, currency


def detect_language(texts: Iterable[Any]) -> Optional[str]:
    """``fa`` when more than 30% of the texts contain Persian script, else ``en``."""
    total = 0
    persian = 0
    for text in texts:
        if not isinstance(text, str) or not text:
            continue
        total += 1
        if _PERSIAN_CHARS.search(text):
            persian += 1

    if total == 0:
        return None
    return "fa" if persian / total > 0.3 else "en"
