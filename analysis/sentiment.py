"""
This module provides lexicon-based sentiment counts for filing text.

Lexicon Overview:
-----------------------
    - The lexicon is an external, read-only dataset of word lists:
        - lm_*: Loughran-McDonald financial word lists (negative, positive,
          strong/moderate/weak modal, uncertainty, litigious)
        - hv_negative: Harvard General Inquirer negative words
    - Scoring is plain counting. A token counts once for every category whose
      list contains it; there is no model and no weighting.
    - The dataset is a CSV with `word` and `category` columns plus a stop-word
      list with one word per line (see configs.config.LexiconSettings).

Usage:
----------------------
    from analysis.sentiment import Lexicon, score

    lexicon = Lexicon.from_csv("data/lexicon/lexicon.csv", "data/lexicon/stopwords.txt")
    record = score(payload, lexicon, file_size=42.0)
    print(record.word_count, record.counts[LexiconCategory.LM_NEGATIVE])

    # Or with the lexicon configured in settings
    record = score_text(payload)
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Union

import pandas as pd
from loguru import logger

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from configs.config import settings
from filings.exceptions import ParseError

VOWELS = frozenset("aeiou")

# A word is complex when it holds more than this many vowels
COMPLEX_WORD_VOWELS = 3

_NON_WORD_RE = re.compile(r"[^a-z\s]")


class LexiconCategory(str, Enum):
    LM_NEGATIVE = "lm_negative"
    LM_POSITIVE = "lm_positive"
    LM_STRONG_MODAL = "lm_strong_modal"
    LM_MODERATE_MODAL = "lm_moderate_modal"
    LM_WEAK_MODAL = "lm_weak_modal"
    LM_UNCERTAINTY = "lm_uncertainty"
    LM_LITIGIOUS = "lm_litigious"
    HV_NEGATIVE = "hv_negative"


# DATA Models


@dataclass(frozen=True)
class Lexicon:
    """
    Closed word sets per category plus the stop-word list.

    Attributes:
        words: Category -> frozenset of lowercase words
        stopwords: Lowercase stop words
    """

    words: Mapping
    stopwords: frozenset = frozenset()

    def __post_init__(self):
        complete = {c: frozenset(self.words.get(c, ())) for c in LexiconCategory}
        object.__setattr__(self, "words", MappingProxyType(complete))
        object.__setattr__(self, "stopwords", frozenset(self.stopwords))

    @classmethod
    def from_csv(
        cls,
        path: Union[str, Path],
        stopwords_path: Optional[Union[str, Path]] = None,
    ) -> "Lexicon":
        """
        Load the lexicon dataset.

        Args:
            path: CSV with `word` and `category` columns
            stopwords_path: Text file, one stop word per line

        Raises:
            ParseError: the CSV lacks the required columns
        """
        frame = pd.read_csv(path, dtype=str, keep_default_na=False)
        missing = {"word", "category"} - set(frame.columns)
        if missing:
            raise ParseError(f"Lexicon {path} is missing column(s): {sorted(missing)}")

        frame["word"] = frame["word"].str.strip().str.lower()
        frame["category"] = frame["category"].str.strip().str.lower()

        known = {c.value for c in LexiconCategory}
        unknown = sorted(set(frame["category"]) - known)
        if unknown:
            logger.warning(f"Ignoring unknown lexicon categories: {unknown}")

        words = {
            LexiconCategory(category): frozenset(group["word"])
            for category, group in frame[frame["category"].isin(known)].groupby("category")
        }

        stopwords = frozenset()
        if stopwords_path is not None:
            lines = Path(stopwords_path).read_text(encoding="utf-8").splitlines()
            stopwords = frozenset(w.strip().lower() for w in lines if w.strip())

        logger.info(
            f"Loaded lexicon: {sum(len(v) for v in words.values())} words, "
            f"{len(stopwords)} stop words"
        )
        return cls(words=words, stopwords=stopwords)


@dataclass
class SentimentRecord:
    """
    Word statistics and lexicon counts of one document.

    Attributes:
        file_size: Size of the source filing (KB)
        word_count: Number of tokens
        unique_word_count: Number of distinct tokens
        stopword_count: Tokens found in the stop-word list
        char_count: Characters over all tokens
        complex_word_count: Tokens with more than three vowels
        counts: Tokens found in each lexicon category
    """

    file_size: float
    word_count: int
    unique_word_count: int
    stopword_count: int
    char_count: int
    complex_word_count: int
    counts: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Flat mapping used as the sentiment columns of result tables."""
        row = {
            "file_size": self.file_size,
            "word_count": self.word_count,
            "unique_word_count": self.unique_word_count,
            "stopword_count": self.stopword_count,
            "char_count": self.char_count,
            "complex_word_count": self.complex_word_count,
        }
        for category in LexiconCategory:
            row[category.value] = self.counts.get(category, 0)
        return row


SENTIMENT_COLUMNS = list(
    SentimentRecord(0, 0, 0, 0, 0, 0).to_dict().keys()
)


# Scoring


def tokenize(text: str) -> list[str]:
    """Lowercase, drop punctuation and digits, split on whitespace."""
    return _NON_WORD_RE.sub("", text.lower()).split()


def is_complex(token: str) -> bool:
    return sum(ch in VOWELS for ch in token) > COMPLEX_WORD_VOWELS


def score(payload: str, lexicon: Lexicon, file_size: float = 0.0) -> SentimentRecord:
    """
    Count words of a payload against the lexicon.

    Args:
        payload: Normalized filing text
        lexicon: Loaded Lexicon
        file_size: Size of the source file in KB, copied to the record

    Returns:
        SentimentRecord
    """
    tokens = tokenize(payload)

    return SentimentRecord(
        file_size=file_size,
        word_count=len(tokens),
        unique_word_count=len(set(tokens)),
        stopword_count=sum(t in lexicon.stopwords for t in tokens),
        char_count=sum(len(t) for t in tokens),
        complex_word_count=sum(is_complex(t) for t in tokens),
        counts={
            category: sum(t in words for t in tokens)
            for category, words in lexicon.words.items()
        },
    )


# Default lexicon

_default_lexicon: Optional[Lexicon] = None


def get_default_lexicon() -> Lexicon:
    """Load (once) the lexicon configured in settings.lexicon."""
    global _default_lexicon
    if _default_lexicon is None:
        _default_lexicon = Lexicon.from_csv(
            settings.lexicon.path, settings.lexicon.stopwords_path
        )
    return _default_lexicon


def score_text(payload: str, file_size: float = 0.0) -> SentimentRecord:
    """
    Score text with the default lexicon.

    Args:
        payload: Text to score
        file_size: Size of the source file in KB

    Returns:
        SentimentRecord
    """
    return score(payload, get_default_lexicon(), file_size=file_size)
