"""Reply-language selection for English and Hindi users."""

import re

from .models import Lang

_DEVANAGARI_RE = re.compile(r"[ऀ-ॿ]")
_HINDI_ROMAN_HINTS = frozenset({"namaste", "namaskar", "kaise", "kya", "kahan"})


def parse_lang(value: str | None) -> Lang | None:
    """Map a language hint (``hi``, ``hi-IN``, ``en_US`` ...) to a supported code.

    Returns:
        ``"hi"``, ``"en"``, or None when the hint is missing or unsupported.
    """
    if not value:
        return None
    code = re.split(r"[-_]", value.strip().lower(), maxsplit=1)[0]
    if code == "hi":
        return "hi"
    if code == "en":
        return "en"
    return None


def detect_language(text: str, requested: str | None = None) -> Lang:
    """Pick the reply language.

    An explicit, supported request wins; otherwise Devanagari script or a
    romanized Hindi word selects Hindi.

    Returns:
        ``"hi"`` or ``"en"``.
    """
    explicit = parse_lang(requested)
    if explicit is not None:
        return explicit
    if _DEVANAGARI_RE.search(text):
        return "hi"
    if set(re.findall(r"[a-z]+", text.lower())) & _HINDI_ROMAN_HINTS:
        return "hi"
    return "en"
