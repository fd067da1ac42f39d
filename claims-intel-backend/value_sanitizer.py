"""
Claims Intel - Value Sanitizer
==============================

Single entry point for every value that ends up inside generated SQL text.

Rules:
- String literals are wrapped in single quotes with embedded quotes doubled
  (standard SQL quoting). Nothing else is escaped.
- Numeric values are only interpolated unquoted after is_numeric() accepts
  them; callers omit the condition otherwise.
- hmo_id is always a positive integer in the warehouse, so a negative id is
  folded to its absolute value before use. 0 is the "enter custom id"
  sentinel of the HMO picker and means "no HMO filter".
"""

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

_SIMPLE_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def escape_literal(value: Any) -> str:
    """Double every single quote. None becomes the empty string."""
    if value is None:
        return ""
    return str(value).replace("'", "''")


def quote_literal(value: Any) -> str:
    """Render a value as a SQL string literal: O'Brien -> 'O''Brien'."""
    return f"'{escape_literal(value)}'"


def is_numeric(value: Any) -> bool:
    """True iff value is non-empty and coerces to a finite number."""
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    text = str(value).strip()
    if not text or "_" in text:
        return False
    try:
        number = float(text)
    except ValueError:
        return False
    return math.isfinite(number)


def numeric_literal(value: Any) -> str:
    """
    Canonical unquoted text for a value that passed is_numeric().

    Integral values render without a decimal point ("73", "-1"); other values
    keep their decimal digits. Raises ValueError for non-numeric input.
    """
    if not is_numeric(value):
        raise ValueError(f"Not a numeric value: {value!r}")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        number = Decimal(float(value))
    if number == number.to_integral_value():
        return str(int(number))
    return format(number.normalize(), "f")


def normalize_hmo_id(value: Any) -> Optional[str]:
    """
    Normalize an hmo_id filter value to its unquoted SQL text.

    Returns None when the filter does not apply (unset, non-numeric, or the
    0 sentinel). Negative ids are folded to their absolute value.
    """
    if not is_numeric(value):
        return None
    text = numeric_literal(value)
    if text.startswith("-"):
        text = text[1:]
    if text in ("0", ""):
        return None
    return text


def quote_identifier(name: str) -> str:
    """Backtick-quote a single identifier, doubling embedded backticks."""
    return "`" + str(name).replace("`", "``") + "`"


def quote_column(reference: str, default_alias: Optional[str] = None) -> str:
    """
    Quote an "alias.column" reference as `alias`.`column`.

    A bare column is qualified with default_alias when one is given.
    """
    if "." in reference:
        alias, column = reference.split(".", 1)
        return f"{quote_identifier(alias)}.{quote_identifier(column)}"
    if default_alias:
        return f"{quote_identifier(default_alias)}.{quote_identifier(reference)}"
    return quote_identifier(reference)


def is_simple_identifier(name: str) -> bool:
    return bool(name) and bool(_SIMPLE_IDENTIFIER_RE.match(name))
