"""
Small text helpers shared by the index parser and the payload readers.
"""

import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")


def to_ascii(text: str) -> str:
    """Transliterate to 7-bit ASCII; characters without an ASCII form are dropped."""
    decomposed = unicodedata.normalize("NFKD", text)
    return decomposed.encode("ascii", "ignore").decode("ascii")


def squeeze_whitespace(text: str) -> str:
    """Collapse every whitespace run to a single space and trim the ends."""
    return _WHITESPACE_RE.sub(" ", text).strip()
