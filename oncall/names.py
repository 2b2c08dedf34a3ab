"""
names.py — Name Normalizer (display name → match key)

  "  Dr.  José   Pérez " → "perez"

Steps: lowercase, NFKD + drop combining marks, drop bidi control characters,
collapse whitespace, trim, keep the last token (family name). If nothing
survives tokenization the full normalized string is the key.
"""

import re
import unicodedata

# ALM, LRM/RLM, embeddings/overrides, isolates, BOM
_BIDI_CONTROLS = re.compile("[\u061c\u200e\u200f\u202a-\u202e\u2066-\u2069\ufeff]")
_WHITESPACE = re.compile(r"\s+")


def strip_marks(s: str) -> str:
    s = unicodedata.normalize("NFKD", s)
    return "".join(ch for ch in s if not unicodedata.combining(ch))


def normalize_full_name(s: str) -> str:
    """Normalized full string (before family-name selection)."""
    # some compatibility forms only become capitals after NFKD, and lowercasing
    # can add a combining mark: decompose, lower, decompose again
    s = strip_marks(strip_marks(str(s or "")).lower())
    s = _BIDI_CONTROLS.sub("", s)
    return _WHITESPACE.sub(" ", s).strip()


def normalize_name(s: str) -> str:
    """Match key for fuzzy identity lookup. Idempotent."""
    normalized = normalize_full_name(s)
    tokens = [t for t in normalized.split(" ") if t]
    return tokens[-1] if tokens else normalized
