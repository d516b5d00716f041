"""
Text Normalizer - Canonical matching form for user input.

Every pattern in the classifier, the security gate and the route catalog is
written against this form: lowercase, Vietnamese diacritics removed, the
letter "đ" folded to "d", whitespace collapsed and common chat
abbreviations expanded ("mk" -> "mat khau").

normalize() is pure and idempotent: expansions never produce another
abbreviation token, so normalize(normalize(x)) == normalize(x).
"""

import re
import unicodedata
from typing import List, Tuple

from routers.chat_prompts import DEFAULT_LANGUAGE, VIETNAMESE_LETTERS

_WHITESPACE = re.compile(r"\s+")
_WORD = re.compile(r"\w+")

# Applied in order, on the already folded text.
ABBREVIATIONS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\b(?:mk|pass|pw|pwd)\b"), "mat khau"),
    (re.compile(r"\btk\b"), "tai khoan"),
    (re.compile(r"\bbc\b"), "bao cao"),
    (re.compile(r"\bdc\b"), "duoc"),
    (re.compile(r"\bbv\b"), "benh vien"),
    (re.compile(r"\bbn\b"), "benh nhan"),
    (re.compile(r"\bbs\b"), "bac si"),
    (re.compile(r"\bmh\b"), "man hinh"),
    (re.compile(r"\b(?:ko|khg|k)\b"), "khong"),
    (re.compile(r"\bj\b"), "gi"),
    (re.compile(r"\bvs\b"), "voi"),
    (re.compile(r"\bng\b"), "nguoi"),
]


def strip_diacritics(text: str) -> str:
    """Remove combining marks and fold đ/Đ to d."""
    text = text.replace("đ", "d").replace("Đ", "d")
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def normalize(text: str) -> str:
    """Return the canonical matching form of text. Never raises."""
    if not text:
        return ""
    result = strip_diacritics(text.lower()).lower()
    result = _WHITESPACE.sub(" ", result).strip()
    for pattern, replacement in ABBREVIATIONS:
        result = pattern.sub(replacement, result)
    return result


def tokenize(text: str) -> List[str]:
    """Word tokens of the normalized text, punctuation dropped."""
    return _WORD.findall(normalize(text))


# =============================================================================
# LANGUAGE DETECTION
# =============================================================================

VIETNAMESE_FUNCTION_WORDS = {
    "toi", "ban", "minh", "la", "gi", "khong", "cua", "cho", "muon", "duoc", "nao", "voi",
    "va", "giup", "xem", "mo", "vao", "dau", "sao", "nay", "kia", "di", "nhe",
    "oi", "vang", "bao", "cao", "trang", "man", "hinh", "doi", "chuyen",
}

ENGLISH_STARTERS = re.compile(
    r"^(?:what|how|where|why|who|which|when|can|could|would|please|open|show|go|take|"
    r"i|i'm|im|hello|hi|hey|help|change|switch|navigate|thanks|thank|is|are|do|does|my|the)\b"
)


def detect_language(text: str) -> str:
    """Detect the reply language for one input.

    Vietnamese letters or Vietnamese function words mean "vi"; otherwise an
    English sentence starter means "en"; anything else defaults to "vi".
    """
    if not text:
        return DEFAULT_LANGUAGE
    if VIETNAMESE_LETTERS.search(text):
        return "vi"
    words = tokenize(text)
    if any(w in VIETNAMESE_FUNCTION_WORDS for w in words):
        return "vi"
    if ENGLISH_STARTERS.match(text.strip().lower()):
        return "en"
    return DEFAULT_LANGUAGE
