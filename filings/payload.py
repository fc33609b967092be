"""
DOCUMENT PAYLOAD EXTRACTOR
---------------------------------------------------------------------------

Raw EDGAR `.txt` submissions are containers: an SGML header followed by
one or more <DOCUMENT> blocks. The primary document is the first block; its
body has been published over the years as:

    - plain text
    - HTML (or XML) markup
    - markup wrapped with inline XBRL

`extract_payload` isolates the first document, sniffs its format once
(`classify_payload`) and hands it to the matching reader. Output is always
7-bit ASCII text, one logical line per line.

Usage:
---------------------------------------------
    from filings.payload import read_filing

    text = read_filing(Path("edgar_Filings/Form 10-K/.../file.txt"))
"""

import re
import warnings
from enum import Enum
from pathlib import Path
from typing import Union

from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning
from bs4.element import PreformattedString

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from filings.text import squeeze_whitespace, to_ascii

# Suppress XMLParsedAsHTMLWarning from BeautifulSoup
warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

# Container markers, tried in order
CONTAINER_MARKERS = (
    ("<document>", "</document>"),
    ("<text>", "</text>"),
)

XBRL_INDICATOR = "<xbrl"
MARKUP_INDICATORS = ("<html", "<!doctype html", "<xml", "<type>xml", "10k.htm")

# Subtrees whose text is never visible
HIDDEN_TAGS = ["script", "style", "noscript", "form"]

ANNUAL_REPORT_RE = re.compile(r"^\s*ANNUAL REPORT")


class PayloadFormat(str, Enum):
    PLAIN = "plain"
    MARKUP = "markup"
    XBRL_WRAPPED = "xbrl_wrapped"


def isolate_document(lines: list[str]) -> list[str]:
    """
    First container region, markers included.

    Falls back to the full content when no marker pair is found.
    """
    lowered = [line.lower() for line in lines]
    for opening, closing in CONTAINER_MARKERS:
        start = next((i for i, line in enumerate(lowered) if opening in line), None)
        if start is None:
            continue
        end = next(
            (i for i in range(start, len(lowered)) if closing in lowered[i]), None
        )
        if end is None:
            continue
        return lines[start:end + 1]
    return lines


def classify_payload(lines: list[str]) -> PayloadFormat:
    """Pick the reader for a document region."""
    text = "\n".join(lines).lower()
    if XBRL_INDICATOR in text:
        return PayloadFormat.XBRL_WRAPPED
    if any(indicator in text for indicator in MARKUP_INDICATORS):
        return PayloadFormat.MARKUP
    return PayloadFormat.PLAIN


# Readers


class PlainReader:
    """Text filings are already readable; only the charset is normalized."""

    def read(self, lines: list[str], for_search: bool = False) -> list[str]:
        return [to_ascii(line) for line in lines]


class MarkupReader:
    """Visible text nodes of an HTML/XML document, one node per line."""

    def read(self, lines: list[str], for_search: bool = False) -> list[str]:
        soup = BeautifulSoup("\n".join(lines), "lxml")
        text_lines = []
        for node in soup.find_all(string=True):
            # comments, doctype, CDATA and processing instructions
            if isinstance(node, PreformattedString):
                continue
            if node.find_parent(HIDDEN_TAGS) is not None:
                continue
            text = squeeze_whitespace(to_ascii(str(node)))
            if text:
                text_lines.append(text)
        return text_lines


class XbrlReader(MarkupReader):
    """
    Inline XBRL documents start with a block of hidden facts
    ("...Member" lines). For keyword search everything before the first
    "ANNUAL REPORT" line is dropped.
    """

    def read(self, lines: list[str], for_search: bool = False) -> list[str]:
        text_lines = super().read(lines, for_search)
        if for_search:
            start = next(
                (i for i, line in enumerate(text_lines) if ANNUAL_REPORT_RE.match(line)),
                None,
            )
            if start is not None:
                text_lines = text_lines[start:]
        return text_lines


READERS = {
    PayloadFormat.PLAIN: PlainReader(),
    PayloadFormat.MARKUP: MarkupReader(),
    PayloadFormat.XBRL_WRAPPED: XbrlReader(),
}


def extract_payload(raw: str, for_search: bool = False) -> str:
    """
    Normalized text of the primary document of a raw submission.

    Args:
        raw: Full contents of the submission file
        for_search: Prepare the text for keyword search (drops XBRL preamble)

    Returns:
        ASCII text, lines joined with newlines
    """
    region = isolate_document(raw.splitlines())
    reader = READERS[classify_payload(region)]
    return "\n".join(reader.read(region, for_search=for_search))


def decode_filing(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def read_filing(path: Union[str, Path], for_search: bool = False) -> str:
    """Read a cached submission and return its normalized payload."""
    return extract_payload(decode_filing(Path(path).read_bytes()), for_search=for_search)
