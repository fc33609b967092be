import gzip
from datetime import date
from typing import Callable, Union

import httpx
import pytest

import sys
from pathlib import Path

# Add Project Root to sys.path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from configs.config import EdgarSettings, LexiconSettings, Settings, StorageSettings
from analysis.sentiment import Lexicon, LexiconCategory
from filings.downloader import RateLimiter

# PYTEST Configuration


def pytest_addoption(parser):
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests that make real requests to SEC EDGAR",
    )


def pytest_configure(config):
    """
    Register custom markers

    Markers are labels used to categorize tests.
    This registration prevents pytest from warning about unknown markers.
    """

    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration test (require --run-integration)",
    )
    config.addinivalue_line("markers", "slow: marks tests as slow-running")


def pytest_collection_modifyitems(config, items):
    """
    Modify test collection based on command-line arguments

    This hook executes after all tests are collected but before they are executed
    Used to skip integration tests when --run-integration is not specified

    Args:
        config: pytest config object
        items: list of collected test items
    """
    if config.getoption("--run-integration"):
        return

    # skip tests marked with @pytest.mark.integration
    skip_integration = pytest.mark.skip(
        reason="Integration test - use --run-integration to run"
    )

    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# Data

BASE_URL = "https://www.sec.gov"
TEST_USER_AGENT = "Test User test@example.com"

INDEX_BANNER = """Description:           Master Index of EDGAR Dissemination Feed
Last Data Received:    March 31, 2006
Comments:              webmaster@sec.gov
Anonymous FTP:         ftp://ftp.sec.gov/edgar/




CIK|Company Name|Form Type|Date Filed|Filename
--------------------------------------------------------------------------------
"""

INDEX_ROWS = [
    "1000180|SANDISK CORP|10-K|2006-03-15|edgar/data/1000180/0000891618-06-000123.txt",
    "1000180|SANDISK CORP|8-K|2006-02-01|edgar/data/1000180/0000891618-06-000045.txt",
    "38079|FOREST OIL CORP|10-K|2006-03-10|edgar/data/38079/0000038079-06-000010.txt",
    "1000045|NICHOLAS FINANCIAL INC|10-Q|2006-02-14|edgar/data/1000045/0001193125-06-029440.txt",
    "1000045|O'NEIL & SONS, INC.|4|2006-01-05|edgar/data/1000045/0001000045-06-000002.txt",
]

FILING_10K_URL = f"{BASE_URL}/Archives/edgar/data/1000180/0000891618-06-000123.txt"
FILING_8K_URL = f"{BASE_URL}/Archives/edgar/data/1000180/0000891618-06-000045.txt"
FILING_FOREST_URL = f"{BASE_URL}/Archives/edgar/data/38079/0000038079-06-000010.txt"

# 18 words, free of characters the heading normalizer rewrites
BUSINESS_SENTENCE = (
    "We design develop and market flash storage card products used in a wide "
    "range of consumer electronics devices."
)


def build_index(rows: list[str]) -> str:
    return INDEX_BANNER + "\n".join(rows) + "\n"


def gzip_text(text: str) -> bytes:
    return gzip.compress(text.encode("latin-1"))


def quarter_url(year: int, quarter: int) -> str:
    return f"{BASE_URL}/Archives/edgar/full-index/{year}/QTR{quarter}/master.gz"


def build_plain_10k(body_sentences: int = 7, toc: bool = False) -> str:
    """A plain-text 10-K submission with Item 1 and Item 2 headings."""
    contents = ""
    if toc:
        contents = "TABLE OF CONTENTS\nItem 1. Business\nItem 2. Properties\nItem 3. Legal Proceedings\n\n"
    body = "\n".join([BUSINESS_SENTENCE] * body_sentences)
    return (
        "<SEC-DOCUMENT>0000891618-06-000123.txt : 20060315\n"
        "<SEC-HEADER>0000891618-06-000123.hdr.sgml : 20060315\n"
        "CONFORMED SUBMISSION TYPE:\t10-K\n"
        "</SEC-HEADER>\n"
        "<DOCUMENT>\n"
        "<TYPE>10-K\n"
        "<TEXT>\n"
        f"{contents}"
        "                              PART I\n"
        "\n"
        "ITEM 1.  BUSINESS\n"
        "\n"
        f"{body}\n"
        "\n"
        "ITEM 2.  PROPERTIES\n"
        "\n"
        "Our headquarters are located in Sunnyvale California.\n"
        "\n"
        "ITEM 3.  LEGAL PROCEEDINGS\n"
        "\n"
        "None.\n"
        "</TEXT>\n"
        "</DOCUMENT>\n"
        "<DOCUMENT>\n"
        "<TYPE>EX-21\n"
        "<TEXT>\n"
        "Subsidiaries of the registrant\n"
        "</TEXT>\n"
        "</DOCUMENT>\n"
        "</SEC-DOCUMENT>\n"
    )


EIGHT_K_FILING = (
    "<SEC-DOCUMENT>0000891618-06-000045.txt : 20060201\n"
    "<DOCUMENT>\n"
    "<TYPE>8-K\n"
    "<TEXT>\n"
    "Item 2.02 Results of Operations and Financial Condition.\n"
    "On February 1, 2006 the registrant announced its results.\n"
    "Item 9.01 Financial Statements and Exhibits.\n"
    "(d) Exhibits. Exhibit 99.1 Press release.\n"
    "</TEXT>\n"
    "</DOCUMENT>\n"
)


# Network Fixtures


class FakeEdgar:
    """
    In-memory stand-in for www.sec.gov, served through httpx.MockTransport.

    Each URL maps to a queue of responses; the last one repeats. A response
    is a (status, body) tuple or a callable taking the request (which may
    raise, e.g. httpx.ReadTimeout). Unknown URLs get a 404.
    """

    def __init__(self):
        self.routes: dict[str, list] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url: str, *responses: Union[tuple, Callable]) -> None:
        self.routes[url] = list(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get(str(request.url))
        if not queue:
            return httpx.Response(404, content=b"Not Found")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(item):
            return item(request)
        status, body = item
        return httpx.Response(status, content=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]

    def count(self, url: str) -> int:
        return self.urls.count(url)


@pytest.fixture
def fake_edgar() -> FakeEdgar:
    return FakeEdgar()


@pytest.fixture
def fast_limiter() -> RateLimiter:
    """A limiter that never makes tests wait."""
    return RateLimiter(capacity=10_000, window=1.0)


# Settings Fixtures


@pytest.fixture
def edgar_settings() -> EdgarSettings:
    """EDGAR settings with a user agent, quick retries and no backoff sleeps."""
    return EdgarSettings(
        user_agent=TEST_USER_AGENT,
        max_attempts=3,
        max_backoff=0,
        request_timeout=5.0,
        max_workers=4,
        download_permit=False,
        use_proxy=False,
    )


@pytest.fixture
def test_settings(tmp_path, edgar_settings) -> Settings:
    """Settings whose cache lives in a temporary directory."""
    return Settings(
        edgar=edgar_settings,
        storage=StorageSettings(data_dir=tmp_path / "data"),
        lexicon=LexiconSettings(
            path=tmp_path / "lexicon.csv",
            stopwords_path=tmp_path / "stopwords.txt",
        ),
    )


@pytest.fixture
def today() -> Callable[[], date]:
    """A fixed clock: 2006 is a complete past year."""
    return lambda: date(2007, 1, 15)


# Text Fixtures


@pytest.fixture
def index_text() -> str:
    return build_index(INDEX_ROWS)


@pytest.fixture
def plain_10k() -> str:
    return build_plain_10k()


@pytest.fixture
def small_lexicon() -> Lexicon:
    return Lexicon(
        words={
            LexiconCategory.LM_NEGATIVE: {"loss", "decline", "adverse"},
            LexiconCategory.LM_POSITIVE: {"growth", "strong"},
            LexiconCategory.LM_UNCERTAINTY: {"may", "uncertain"},
            LexiconCategory.LM_WEAK_MODAL: {"may", "could"},
            LexiconCategory.HV_NEGATIVE: {"loss"},
        },
        stopwords={"the", "a", "and", "of"},
    )
