"""Organization slug generation.

Slugs are lowercase ASCII: accented letters are folded to their base letter,
runs of other characters become a single hyphen, and a base-36 suffix derived
from the creation time (in milliseconds) keeps slugs of equal names unique.

Examples:
    "Čistoća d.o.o."  -> "cistoca-d-o-o-m1abcd2e"
    "Đakovo Šume"     -> "dakovo-sume-m1abcd2e"
"""

import re
import time
import unicodedata
from typing import Optional


# Letters NFKD does not decompose into base letter + combining mark
_FOLD = str.maketrans({"đ": "d", "ð": "d", "ł": "l", "ø": "o", "ß": "ss", "æ": "ae", "œ": "oe"})

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    """
    >>> to_base36(35)
    'z'
    >>> to_base36(36)
    '10'
    """
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def fold_to_ascii(text: str) -> str:
    folded = unicodedata.normalize("NFKD", text.lower().translate(_FOLD))
    return "".join(c for c in folded if not unicodedata.combining(c))


def slugify(name: str, max_length: int = 60) -> str:
    """Slug body without the uniqueness suffix (may be empty)."""
    body = re.sub(r"[^a-z0-9]+", "-", fold_to_ascii(name)).strip("-")
    return body[:max_length].rstrip("-")


def generate_slug(name: str, max_length: int = 60, now_ms: Optional[int] = None) -> str:
    """Slug for a new organization: folded name plus a creation-time suffix."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = to_base36(now_ms)
    body = slugify(name, max_length)
    return f"{body}-{suffix}" if body else suffix
