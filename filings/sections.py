"""
STRUCTURAL SECTION LOCATOR
---------------------------------------------------------------------------

Finds named sections of annual reports inside normalized payload text:

    - Item 1: Business description
    - Item 7: Management's discussion and analysis (MD&A)

Filings from different decades write the same heading in many ways
("ITEM 1. BUSINESS", "Item I - Description of Business", "ITEMS 1 AND 2.
BUSINESS AND PROPERTIES", a bare "Item 1" with the title on the next line).
Lines are first normalized so that one set of patterns covers them, then an
ordered list of HeadingRules is tried per section.

When several start/end headings match (tables of contents, repeated page
headers) the candidates are chosen as follows:

    - equal number of starts and ends: pair them positionally and keep the
      candidate with the most words
    - otherwise: pair the last start with the last end

Usage:
---------------------------------------------
    from filings.sections import SectionId, locate_section

    match = locate_section(payload, SectionId.BUSINESS_DESCRIPTION)
    if match.found:
        print(match.word_count)
"""

import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Optional, Pattern, Union

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from filings.exceptions import ConfigurationError
from filings.text import squeeze_whitespace

# Candidates shorter than this are single-line false positives
MIN_SECTION_WORDS = 100

ANNUAL_FORM_TYPES = ("10-K", "10-K405", "10KSB", "10-KSB", "10KSB40")


class SectionId(str, Enum):
    BUSINESS_DESCRIPTION = "business_description"
    DISCUSSION_AND_ANALYSIS = "discussion_and_analysis"


# Storage namespace (StorageSettings attribute) of each section's output
SECTION_NAMESPACES = {
    SectionId.BUSINESS_DESCRIPTION: "business_descr_dir",
    SectionId.DISCUSSION_AND_ANALYSIS: "mgmt_disc_dir",
}


@dataclass(frozen=True)
class HeadingRule:
    """
    One start/end heading pair for a section.

    Attributes:
        name: Label used in logs and tests
        start: Patterns of the section heading (full line)
        end: Tiers of patterns of the following section heading (full
             line). The first tier with any match supplies the ends.
        truncate: Removes the next heading if it leaked into the text
    """

    name: str
    start: tuple
    end: tuple
    truncate: Pattern

    def find(self, lines: list[str]) -> tuple[list[int], list[int]]:
        starts = [i for i, line in enumerate(lines) if any(p.match(line) for p in self.start)]
        for tier in self.end:
            ends = [i for i, line in enumerate(lines) if any(p.match(line) for p in tier)]
            if ends:
                break
        else:
            ends = []
        return starts, ends


def _heading(body: str) -> Pattern:
    return re.compile(rf"^Item\s*{body}\s*\.?\s*$", re.IGNORECASE)


SECTION_RULES = {
    SectionId.BUSINESS_DESCRIPTION: (
        HeadingRule(
            name="item_1_business",
            start=(
                _heading(r"1\s*Business"),
                _heading(r"1\s*Description\s+of\s+Business"),
            ),
            end=((
                _heading(r"2\s*Properties"),
                _heading(r"2\s*Description\s+of\s+Property"),
                _heading(r"2\s*Real\s+Estate"),
            ),),
            truncate=re.compile(r"\.\s+Item\s+2\s.*$", re.IGNORECASE),
        ),
        HeadingRule(
            name="items_1_and_2_combined",
            start=(
                _heading(r"1\s+and\s+2\s+Business\s+and\s+Properties"),
                _heading(r"1\s+and\s+2\s+Business\s+and\s+Description\s+of\s+Property"),
            ),
            end=((
                _heading(r"3\s+Legal\s+Proceedings"),
                _heading(r"3\s+Legal\s+Matters"),
            ),),
            truncate=re.compile(r"\.\s+Item\s+3\s.*$", re.IGNORECASE),
        ),
    ),
    SectionId.DISCUSSION_AND_ANALYSIS: (
        HeadingRule(
            name="item_7_mdna",
            start=(
                _heading(
                    r"7\s*Managements?\s+Discussion\s+(?:and|&)\s+Analysis"
                    r"(?:\s+of\s+Financial\s+Condition\s+(?:and|&)\s+Results\s+of\s+Operations?)?"
                ),
            ),
            # Item 8 only when the filing has no Item 7A heading
            end=(
                (_heading(r"7A\s*Quantitative\s+(?:and|&)\s+Qualitative\s+Disclosures?\s+About\s+Market\s+Risks?"),),
                (_heading(r"8\s*Financial\s+Statements(?:\s+and\s+Supplementa(?:l|ry)\s+Data)?"),),
            ),
            truncate=re.compile(r"\.\s+Item\s+(?:7A|8)\s.*$", re.IGNORECASE),
        ),
        HeadingRule(
            name="item_6_plan_of_operation",
            start=(
                _heading(
                    r"6\s*Managements?\s+Discussion\s+(?:and|&)\s+Analysis\s+or\s+Plan\s+of\s+Operations?"
                ),
            ),
            end=(
                (_heading(r"7\s*Financial\s+Statements"),),
            ),
            truncate=re.compile(r"\.\s+Item\s+7\s.*$", re.IGNORECASE),
        ),
    ),
}


# Line normalization

_ROMAN = {
    "I": "1", "II": "2", "III": "3", "IV": "4", "V": "5", "VI": "6",
    "VII": "7", "VIII": "8", "IX": "9", "X": "10", "XI": "11", "XII": "12",
    "XIII": "13", "XIV": "14", "XV": "15", "L": "1",
}
_SPELLED = {
    "ONE": "1", "TWO": "2", "THREE": "3", "FOUR": "4", "FIVE": "5",
    "SIX": "6", "SEVEN": "7", "EIGHT": "8", "NINE": "9", "TEN": "10",
    "ELEVEN": "11", "TWELVE": "12", "THIRTEEN": "13", "FOURTEEN": "14",
    "FIFTEEN": "15",
}

_SPACES_RE = re.compile(r"\s{2,}")
_ITEMS_RE = re.compile(r"\bItems\b", re.IGNORECASE)
_PART_RE = re.compile(r"\bPART\s+(?:IV|I{1,3})\b", re.IGNORECASE)
_ROMAN_ITEM_RE = re.compile(
    r"\bItem\s+(XV|XIV|XIII|XII|XI|IX|X|VIII|VII|VI|IV|V|III|II|I|l)(A?)\b",
    re.IGNORECASE,
)
_SPELLED_ITEM_RE = re.compile(
    r"\bItem\s+(" + "|".join(sorted(_SPELLED, key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)
_ITEM_PERIOD_RE = re.compile(
    r"\b(Item\s*\d+[A-Z]?(?:\s+and\s+\d+)?)\s*\.(?!\d)", re.IGNORECASE
)
_BARE_HEADER_RE = re.compile(
    r"^Item\s*(?:\d+[A-Z]?)?\s*$|^Item\s*\d+\s+and\s+\d+\s*$", re.IGNORECASE
)


def _roman_to_arabic(match: re.Match) -> str:
    return f"Item {_ROMAN[match.group(1).upper()]}{match.group(2)}"


def _spelled_to_arabic(match: re.Match) -> str:
    return f"Item {_SPELLED[match.group(1).upper()]}"


def normalize_line(line: str) -> str:
    line = line.replace("\t", " ").replace("/", " ")
    line = _SPACES_RE.sub(" ", line).lstrip()
    line = line.replace(" s ", " ")
    line = _ITEMS_RE.sub("Item", line)
    line = _PART_RE.sub("", line)
    line = _ROMAN_ITEM_RE.sub(_roman_to_arabic, line)
    line = _SPELLED_ITEM_RE.sub(_spelled_to_arabic, line)
    line = line.replace(":", "").replace("*", "")
    line = line.replace("-", " ")
    line = _ITEM_PERIOD_RE.sub(r"\1", line)
    line = line.replace("'", "").replace('"', "")
    return squeeze_whitespace(line)


def normalize_lines(payload: str) -> list[str]:
    """
    Normalize payload lines for heading detection.

    Blank lines are dropped and a bare item header ("Item", "Item 1",
    "Item 1 and 2") is joined with the line that follows it.
    """
    lines = [normalize_line(line) for line in payload.splitlines()]
    lines = [line for line in lines if line]

    merged = []
    pending: Optional[str] = None
    for line in lines:
        if pending is not None:
            line = normalize_line(f"{pending} {line}")
            pending = None
        if _BARE_HEADER_RE.match(line):
            pending = line
            continue
        merged.append(line)
    if pending is not None:
        merged.append(pending)
    return merged


# Section location


@dataclass(frozen=True)
class SectionMatch:
    text: str
    found: bool
    word_count: int = 0
    rule: Optional[str] = None


def count_words(text: str) -> int:
    return len(text.split())


def _candidates(lines: list[str], starts: list[int], ends: list[int]) -> list[str]:
    if len(starts) == len(ends):
        pairs = list(zip(starts, ends))
    else:
        pairs = [(starts[-1], ends[-1])]
    # a pair whose end precedes its start encloses nothing
    return [
        squeeze_whitespace(" ".join(lines[start + 1:end])) if end > start else ""
        for start, end in pairs
    ]


def coerce_section_id(section_id: Union[SectionId, str]) -> SectionId:
    try:
        return SectionId(section_id)
    except ValueError:
        raise ConfigurationError(f"Unknown section id: {section_id!r}")


def locate_section(payload: str, section_id: Union[SectionId, str]) -> SectionMatch:
    """
    Locate a section in normalized payload text.

    Args:
        payload: Output of filings.payload.extract_payload
        section_id: Which section to look for

    Returns:
        SectionMatch with the text strictly between the section heading and
        the next heading. `found` is False when no heading pair matches or
        the text has fewer than MIN_SECTION_WORDS words.

    Raises:
        ConfigurationError: unknown section id
    """
    section_id = coerce_section_id(section_id)
    lines = normalize_lines(payload)

    for rule in SECTION_RULES[section_id]:
        starts, ends = rule.find(lines)
        # fallback rules apply only when this rule matched nothing at all
        if starts or ends:
            break
    else:
        return SectionMatch(text="", found=False)

    if not starts or not ends:
        return SectionMatch(text="", found=False, rule=rule.name)

    text = max(_candidates(lines, starts, ends), key=count_words)
    text = rule.truncate.sub(".", text)
    words = count_words(text)

    return SectionMatch(
        text=text,
        found=words >= MIN_SECTION_WORDS,
        word_count=words,
        rule=rule.name,
    )


# Extracted section record


def section_header(
    cik: int,
    company_name: str,
    form_type: str,
    date_filed: date,
    accession_number: str,
) -> str:
    """Metadata block written at the top of every extracted section file."""
    return (
        f"CIK: {cik}\n"
        f"Company Name: {squeeze_whitespace(company_name.upper())}\n"
        f"Form Type : {form_type.replace('/', '')}\n"
        f"Filing Date: {date_filed.isoformat()}\n"
        f"Accession Number: {accession_number}"
    )


@dataclass(frozen=True)
class ExtractedSection:
    cik: int
    company_name: str
    form_type: str
    date_filed: date
    accession_number: str
    header_block: str
    body_text: str
    extract_status: int

    @classmethod
    def from_entry(cls, entry, match: SectionMatch) -> "ExtractedSection":
        """Build the record for a catalog entry and a locate_section result."""
        return cls(
            cik=entry.cik,
            company_name=entry.company_name,
            form_type=entry.form_type,
            date_filed=entry.date_filed,
            accession_number=entry.accession_number,
            header_block=section_header(
                entry.cik,
                entry.company_name,
                entry.form_type,
                entry.date_filed,
                entry.accession_number,
            ),
            body_text=match.text,
            extract_status=1 if match.found else 0,
        )

    def render(self) -> str:
        return f"{self.header_block}\n\n\n{self.body_text}"
