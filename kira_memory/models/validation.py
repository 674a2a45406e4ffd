"""
Boundary validation for record fields.

All checks raise ValidationError and run before any provider or store call.
"""

import math
from enum import Enum
from typing import Any, Iterable, List, Optional, Type, TypeVar

from ..utils.errors import ValidationError

E = TypeVar('E', bound=Enum)


def require_text(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f'{field} is required', field=field)
    return str(value)


def optional_text(value: Optional[str]) -> Optional[str]:
    if value is None or not str(value).strip():
        return None
    return str(value)


def bounded(value: Any, field: str, low: float, high: float) -> float:
    """Coerce value to float and check it lies in [low, high].

    Args:
        value: Raw numeric value
        field: Field name used in the error
        low: Inclusive lower bound
        high: Inclusive upper bound

    Returns:
        The value as a float

    Raises:
        ValidationError: If value is not numeric or out of range
    """
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a number, got {value!r}', field=field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a number, got {value!r}', field=field)
    if math.isnan(number) or number < low or number > high:
        raise ValidationError(f'{field} must be within [{low}, {high}], got {number}', field=field)
    return number


def unit_interval(value: Any, field: str) -> float:
    return bounded(value, field, 0.0, 1.0)


def positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a positive integer, got {value!r}', field=field)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a positive integer, got {value!r}', field=field)
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f'{field} must be a positive integer, got {value!r}', field=field)
    if number < 1:
        raise ValidationError(f'{field} must be a positive integer, got {value!r}', field=field)
    return number


def positive_number(value: Any, field: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a positive number, got {value!r}', field=field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a positive number, got {value!r}', field=field)
    if math.isnan(number) or number <= 0:
        raise ValidationError(f'{field} must be a positive number, got {number}', field=field)
    return number


def parse_enum(enum_cls: Type[E], value: Any, field: str) -> E:
    """Parse a raw value into a closed enumeration member."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ', '.join(member.value for member in enum_cls)
        raise ValidationError(f'Unknown {field} {value!r}; expected one of: {allowed}', field=field)


def parse_optional_enum(enum_cls: Type[E], value: Any, field: str) -> Optional[E]:
    if value is None:
        return None
    return parse_enum(enum_cls, value, field)


def text_list(values: Optional[Iterable[Any]], field: str) -> List[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise ValidationError(f'{field} must be a list of strings', field=field)
    items = []
    for item in values:
        if not isinstance(item, str):
            raise ValidationError(f'{field} must be a list of strings, got {item!r}', field=field)
        if item.strip():
            items.append(item)
    return items


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
