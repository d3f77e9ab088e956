"""
Helper utilities
"""
import re
import unicodedata
from typing import Any

_WS_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")
_NON_KEY_RE = re.compile(r"[^a-z0-9_]")


def strip_accents(text: str) -> str:
    """Remove combining marks (tamaño -> tamano)"""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(value: Any) -> str:
    """Lowercase, accent-free, single-spaced text"""
    text = strip_accents(str(value or "").lower())
    return _WS_RE.sub(" ", text).strip()


def normalize_key(value: Any) -> str:
    """Comparison key: normalize_text with everything but [a-z0-9] removed"""
    return _NON_ALNUM_RE.sub("", normalize_text(value))


def sanitize_field_name(name: Any) -> str:
    """Detail field name as used by the alias scanners ('Tamaño ' -> 'tamano')"""
    return _NON_KEY_RE.sub("", strip_accents(str(name).lower()))


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safely divide two numbers"""
    try:
        return numerator / denominator if denominator != 0 else default
    except (TypeError, ZeroDivisionError):
        return default
