"""
KEYWORD SEARCH & HIGHLIGHT
---------------------------------------------------------------------------

Counts case-insensitive occurrences of search terms in a filing and cuts a
context window (up to 255 characters either side) around every occurrence,
with the term wrapped in <mark><b>...</b></mark>.

Usage:
---------------------------------------------
    from filings.keyword_search import search

    hits = search(payload, ["hedging", "derivative"])
    print(hits.hit_count, len(hits.excerpts))
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Union

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from filings.exceptions import ConfigurationError

CONTEXT_CHARS = 255
HIGHLIGHT_OPEN = "<mark><b>"
HIGHLIGHT_CLOSE = "</b></mark>"


@dataclass(frozen=True)
class SearchHits:
    """
    Attributes:
        hit_count: Occurrences summed over all terms
        excerpts: One highlighted context window per occurrence
        term_counts: Occurrences per term
    """

    hit_count: int
    excerpts: tuple = ()
    term_counts: dict = field(default_factory=dict)


_SPACES_RE = re.compile(r"\s{2,}")
_DOLLAR_RE = re.compile(r"[$ ]{2,}")
_DIGIT_GROUP_RE = re.compile(r"(\d) (\d{3,}) ")
_PAREN_RE = re.compile(r"(\d) \)")


def prepare_search_text(payload: str) -> str:
    """
    Flatten a payload into one searchable line.

    Commas and "/s/" signature marks go, whitespace is squeezed and number
    groups split by the text conversion ("1 000 ") are rejoined ("1,000 ").
    """
    text = re.sub(r"[\n\t,]", " ", payload)
    text = text.replace("/s/", "")
    text = _SPACES_RE.sub(" ", text)
    text = text.replace(" s ", "'s ")
    text = _DOLLAR_RE.sub(" $", text)
    text = _DIGIT_GROUP_RE.sub(r"\1,\2 ", text)
    text = _PAREN_RE.sub(r"\1)", text)
    return text.strip()


def _term_pattern(term: str) -> re.Pattern:
    return re.compile(re.escape(term), re.IGNORECASE)


def highlight(text: str, term: str) -> str:
    """Wrap every occurrence of `term` in the highlight marker."""
    return _term_pattern(term).sub(
        lambda m: f"{HIGHLIGHT_OPEN}{m.group(0)}{HIGHLIGHT_CLOSE}", text
    )


def normalize_terms(terms: Union[str, Iterable[str]]) -> list[str]:
    if isinstance(terms, str):
        terms = [terms]
    normalized = [t.strip() for t in terms if t and t.strip()]
    if not normalized:
        raise ConfigurationError("At least one search term is required")
    return normalized


def search(payload: str, terms: Union[str, Iterable[str]]) -> SearchHits:
    """
    Count and excerpt occurrences of `terms` in a payload.

    Args:
        payload: Normalized filing text
        terms: One term or a list of terms, matched literally

    Returns:
        SearchHits; excerpts are grouped by term in the order given
    """
    terms = normalize_terms(terms)
    text = prepare_search_text(payload)

    counts = {}
    excerpts = []
    for term in terms:
        matches = list(_term_pattern(term).finditer(text))
        counts[term] = len(matches)
        for m in matches:
            window = text[max(0, m.start() - CONTEXT_CHARS):m.end() + CONTEXT_CHARS]
            excerpts.append(highlight(window, term))

    return SearchHits(
        hit_count=sum(counts.values()),
        excerpts=tuple(excerpts),
        term_counts=counts,
    )


def render_search_report(entry, terms: Iterable[str], hits: SearchHits) -> str:
    """
    Minimal HTML report of one filing's search hits.

    Args:
        entry: Catalog entry of the filing (cik, company_name, ftype, ...)
        terms: The search terms
        hits: Result of search()
    """
    quoted = ", ".join(f"'{t}'" for t in terms)
    parts = [
        '<p style="color: blue"><b>'
        f"CIK: {entry.cik}</br>"
        f"Company Name: {entry.company_name}</br>"
        f"Form Type: {entry.ftype}</br>"
        f"Filing Date: {entry.date_filed.isoformat()}</br>"
        f"Accession Number: {entry.accession_number}"
        "</b></p>",
        '<p style="color: red"><b>'
        f"Keywords search: {quoted}</br>"
        f"Number of word hits: {hits.hit_count}"
        "</b></p>",
        "<hr style='margin-bottom:-1em' />",
        '<p style="color:Blue;" align="center"><b>Detailed search result</b></p>',
        "<hr style='margin-top:-1em' />",
    ]
    parts.extend(f"..... {excerpt} .....</br></br>" for excerpt in hits.excerpts)
    return "\n".join(parts) + "\n"
