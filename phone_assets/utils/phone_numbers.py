"""Phone number normalization and format checks."""

import re
from functools import lru_cache

from phone_assets.core.config import settings

_SEPARATORS = re.compile(r"[\s\-()]")


@lru_cache(maxsize=4)
def _pattern(raw: str) -> re.Pattern[str]:
    return re.compile(raw, re.ASCII)


def normalize_phone_number(number: str | None) -> str:
    """Strip whitespace, dashes, parentheses and a +86 country prefix."""
    if not number:
        return ""
    cleaned = _SEPARATORS.sub("", number.strip())
    if cleaned.startswith("+86"):
        cleaned = cleaned[3:]
    elif cleaned.startswith("0086"):
        cleaned = cleaned[4:]
    return cleaned


def is_valid_phone_number(number: str | None) -> bool:
    normalized = normalize_phone_number(number)
    if not normalized:
        return False
    return _pattern(settings.PHONE_NUMBER_PATTERN).fullmatch(normalized) is not None
