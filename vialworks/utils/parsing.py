"""Form value parsing shared by the services."""
from decimal import Decimal, InvalidOperation
from typing import List, Optional


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_decimal(value, field: str, errors: List[str], required=True,
                  min_value=Decimal('0'), allow_equal=True) -> Optional[Decimal]:
    """Parse a decimal field, appending a message to errors when invalid."""
    if _blank(value):
        if required:
            errors.append(f'{field} is required')
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        errors.append(f'{field} must be a valid number')
        return None
    if not number.is_finite():
        errors.append(f'{field} must be a valid number')
        return None
    if min_value is not None:
        if allow_equal and number < min_value:
            errors.append(f'{field} must be greater than or equal to {min_value}')
            return None
        if not allow_equal and number <= min_value:
            errors.append(f'{field} must be greater than {min_value}')
            return None
    return number


def parse_int(value, field: str, errors: List[str], required=True, min_value: Optional[int] = 1) -> Optional[int]:
    """Parse an integer field, appending a message to errors when invalid."""
    if _blank(value):
        if required:
            errors.append(f'{field} is required')
        return None
    if isinstance(value, bool):
        errors.append(f'{field} must be a whole number')
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        errors.append(f'{field} must be a whole number')
        return None
    if not number.is_finite() or number != number.to_integral_value():
        errors.append(f'{field} must be a whole number')
        return None
    number = int(number)
    if min_value is not None and number < min_value:
        errors.append(f'{field} must be at least {min_value}')
        return None
    return number


def clean_str(value) -> Optional[str]:
    """Strip a string value; blank and 'none' become None."""
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == 'none':
        return None
    return text
