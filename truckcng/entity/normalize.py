"""Free-text normalization for accent- and case-insensitive matching."""
import unicodedata
from typing import Optional


def normalize_text(value: Optional[str]) -> str:
    """
    Strip accents and upper-case a free-text field.

    Decomposes to NFD, drops non-spacing marks, recomposes to NFC and
    upper-cases, so "Ródovia Dútra" and "RODOVIA DUTRA" compare equal.

    Args:
        value: Raw text (may be None)

    Returns:
        Normalized text, or "" for None/blank input
    """
    if value is None or not str(value).strip():
        return ""

    decomposed = unicodedata.normalize("NFD", str(value))
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return unicodedata.normalize("NFC", stripped).upper()
