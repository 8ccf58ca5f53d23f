"""Promoto — URL-safe slug generation."""

import re
import unicodedata

# Letters NFKD does not decompose into ASCII
_TRANSLITERATE = str.maketrans({"ł": "l", "Ł": "L", "ø": "o", "Ø": "O", "ß": "ss"})


def slugify(value: str) -> str:
    """Lowercase ASCII slug: 'Zupa Łososiowa & Co.' -> 'zupa-lososiowa-co'."""
    value = value.translate(_TRANSLITERATE)
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-z0-9]+", "-", value.lower())
    return value.strip("-")
