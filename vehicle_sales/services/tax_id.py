"""Buyer tax id (CPF) normalization and check-digit validation."""

import re

_NON_DIGITS = re.compile(r"\D")
TAX_ID_LENGTH = 11


def normalize_tax_id(value: str) -> str:
    """Strips everything that is not a digit."""
    return _NON_DIGITS.sub("", value or "")


def _check_digit(digits: list[int], count: int) -> int:
    # Weights run from count+1 down to 2
    total = sum(d * (count + 1 - i) for i, d in enumerate(digits[:count]))
    rest = 11 - (total % 11)
    return 0 if rest >= 10 else rest


def is_valid_tax_id(value: str) -> bool:
    digits_str = normalize_tax_id(value)
    if len(digits_str) != TAX_ID_LENGTH:
        return False
    if len(set(digits_str)) == 1:
        return False

    digits = [int(c) for c in digits_str]
    if _check_digit(digits, 9) != digits[9]:
        return False
    return _check_digit(digits, 10) == digits[10]
