"""Domain normalization — pure functions, zero external dependencies.

Only stdlib imports allowed.
"""

import re
import unicodedata

_LEGAL_SUFFIXES = re.compile(
    r"\b(SA|SARL|SAS|SASU|SARLU|EURL|SNC|SCI|GIE|GmbH|AG|BV|NV|Ltd|LLC|Inc|PLC)\b\.?",
    re.IGNORECASE,
)
_IBAN_CHARS = re.compile(r"[^A-Z0-9]")


def _strip_accents(text):
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def normalize_supplier(name):
    """Normalize a supplier name: strip accents and legal suffixes, collapse whitespace, uppercase."""
    result = _LEGAL_SUFFIXES.sub("", _strip_accents(name or ""))
    return " ".join(result.split()).strip(" .,-").upper()


def normalize_iban(iban):
    """Uppercase IBAN without spaces or separators."""
    if not iban:
        return None
    return _IBAN_CHARS.sub("", iban.upper()) or None
