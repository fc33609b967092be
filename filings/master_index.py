"""
EDGAR INDEX ACQUISITION & CACHE
---------------------------------------------------------------------------

Builds catalogs of the filings that exist on EDGAR from the published
master indexes:

    Quarterly:  /Archives/edgar/full-index/<year>/QTR<n>/master.gz
    Daily:      /Archives/edgar/daily-index/<year>/QTR<n>/master.<date>.idx

Index files start with a free-text banner closed by a dashed separator line,
followed by one `cik|company_name|form_type|date_filed|edgar_link` record per
line.

Cache layout (under settings.storage.data_dir):
---------------------------------------------------------------------------
    edgar_MasterIndex/<year>QTR<n>master.gz   downloaded quarter archives
    edgar_MasterIndex/<year>master.pkl        annual snapshot
    edgar_DailyMaster/daily_idx_<YYYYMMDD>.pkl daily snapshot

Usage:
---------------------------------------------
    async with EdgarDownloader(user_agent=...) as dl:
        cache = MasterIndexCache(dl)
        result = await cache.build_year(2006)
        print(result.statuses)
"""

import asyncio
import gzip
import math
import re
import string
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Optional, Union

import pandas as pd
from loguru import logger

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from configs.config import settings, StorageSettings
from filings.downloader import DownloadStatus, EdgarDownloader
from filings.exceptions import ConfigurationError, ParseError
from filings.text import to_ascii

INDEX_COLUMNS = [
    "cik",
    "company_name",
    "form_type",
    "date_filed",
    "edgar_link",
    "quarter",
    "filing_year",
]
STATUS_COLUMNS = ["Filename", "status"]

SERVER_ERROR = "Server Error"

# The banner ends with a line of dashes
SEPARATOR_RE = re.compile(r"^-{56,}\s*$")
ACCESSION_RE = re.compile(r"\d{10}-\d{2}-\d{6}")
_PUNCT_RE = re.compile("[" + re.escape(string.punctuation) + "]")
_SPACES_RE = re.compile(r"\s{2,}")

# Daily indexes before this year are not published in a known layout
FIRST_DAILY_INDEX_YEAR = 1994


@dataclass(frozen=True)
class IndexRecord:
    """One row of an EDGAR master index."""

    cik: int
    company_name: str
    form_type: str
    date_filed: date
    edgar_link: str
    quarter: int
    filing_year: int

    @property
    def accession_number(self) -> str:
        return accession_from_link(self.edgar_link)


@dataclass
class IndexBuildResult:
    """Outcome of building one year's index."""

    year: int
    frame: pd.DataFrame
    statuses: pd.DataFrame
    from_snapshot: bool = False

    @property
    def complete(self) -> bool:
        """Did every elapsed quarter end up in the frame?"""
        if self.from_snapshot:
            return True
        return not (self.statuses["status"] == SERVER_ERROR).any()


@dataclass
class DailyIndexResult:
    """Outcome of fetching one day's index."""

    date: date
    status: str
    frame: pd.DataFrame = field(default_factory=lambda: empty_index_frame())


# Parsing helpers


def accession_from_link(edgar_link: str) -> str:
    """
    Accession number of a filing from its server-relative link.

    `edgar/data/1000045/0001193125-06-012345.txt` -> `0001193125-06-012345`
    """
    parts = edgar_link.strip().split("/")
    segment = parts[3] if len(parts) > 3 else parts[-1]
    stem = segment.rsplit(".", 1)[0]
    match = ACCESSION_RE.search(stem)
    return match.group(0) if match else stem


def parse_filed_date(value: str) -> date:
    """Dates appear as YYYY-MM-DD in quarterly and YYYYMMDD in daily indexes."""
    value = value.strip()
    for fmt in ("%Y-%m-%d", "%Y%m%d"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognized filing date: {value!r}")


def clean_company_name(name: str) -> str:
    """Replace punctuation with spaces and squeeze repeated spaces."""
    return _SPACES_RE.sub(" ", _PUNCT_RE.sub(" ", name)).strip()


def parse_index_text(
    raw: Union[str, bytes],
    quarter: int,
    filing_year: int,
) -> list[IndexRecord]:
    """
    Parse the contents of a master index file.

    Args:
        raw: File contents (bytes are decoded as latin-1)
        quarter: Quarter tag for every record
        filing_year: Year tag for every record

    Returns:
        Records in original line order. Malformed lines are skipped.

    Raises:
        ParseError: when the banner separator line is missing
    """
    text = raw.decode("latin-1") if isinstance(raw, bytes) else raw
    text = to_ascii(text).replace("'", "")
    lines = text.splitlines()

    header_end = next(
        (i for i, line in enumerate(lines) if SEPARATOR_RE.match(line)), None
    )
    if header_end is None:
        raise ParseError("Index separator line not found")

    records = []
    skipped = 0
    for line in lines[header_end + 1:]:
        if not line.strip():
            continue
        fields = line.split("|")
        if len(fields) != 5:
            skipped += 1
            continue
        cik, company_name, form_type, date_filed, edgar_link = fields
        try:
            record = IndexRecord(
                cik=int(cik.strip()),
                company_name=clean_company_name(company_name),
                form_type=form_type.strip(),
                date_filed=parse_filed_date(date_filed),
                edgar_link=edgar_link.strip(),
                quarter=quarter,
                filing_year=filing_year,
            )
        except ValueError:
            skipped += 1
            continue
        records.append(record)

    if skipped:
        logger.warning(f"Skipped {skipped} malformed index line(s) ({filing_year} Q{quarter})")
    return records


def empty_index_frame() -> pd.DataFrame:
    return pd.DataFrame(columns=INDEX_COLUMNS)


def records_to_frame(records: list[IndexRecord]) -> pd.DataFrame:
    if not records:
        return empty_index_frame()
    return pd.DataFrame([asdict(r) for r in records], columns=INDEX_COLUMNS)


def _as_date(value) -> date:
    # pandas may hand back Timestamps for date columns
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_filed_date(str(value))


def frame_to_records(frame: pd.DataFrame) -> list[IndexRecord]:
    return [
        IndexRecord(
            cik=int(row.cik),
            company_name=row.company_name,
            form_type=row.form_type,
            date_filed=_as_date(row.date_filed),
            edgar_link=row.edgar_link,
            quarter=int(row.quarter),
            filing_year=int(row.filing_year),
        )
        for row in frame.itertuples(index=False)
    ]


# Input validation


def validate_year(year) -> int:
    """Accept ints and digit strings; anything else is a ConfigurationError."""
    if isinstance(year, bool):
        raise ConfigurationError(f"Input year is not numeric: {year!r}")
    if isinstance(year, int):
        return year
    if isinstance(year, str) and year.strip().isdigit():
        return int(year.strip())
    raise ConfigurationError(f"Input year is not numeric: {year!r}")


def elapsed_quarters(year, today: Optional[date] = None) -> int:
    """
    Number of quarters with a published index.

    All 4 for past years, up to the current quarter for the present year.
    """
    year = validate_year(year)
    today = today or date.today()
    if year > today.year:
        raise ConfigurationError(f"Year {year} is in the future")
    if year == today.year:
        return math.ceil(today.month / 3)
    return 4


def parse_daily_date(value, today: Optional[date] = None) -> date:
    """
    Accept a date or an 'mm/dd/YYYY' string.

    Raises:
        ConfigurationError: malformed or future date
    """
    today = today or date.today()
    if isinstance(value, datetime):
        day = value.date()
    elif isinstance(value, date):
        day = value
    elif isinstance(value, str):
        try:
            day = datetime.strptime(value.strip(), "%m/%d/%Y").date()
        except ValueError:
            raise ConfigurationError(
                f"Malformed input date {value!r}. The input date format must be 'mm/dd/YYYY'"
            )
    else:
        raise ConfigurationError(f"Malformed input date {value!r}")

    if day > today:
        raise ConfigurationError(f"Input date {day} cannot be after today's date")
    return day


def quarter_of(day: date) -> int:
    return (day.month - 1) // 3 + 1


def daily_index_urls(day: date, base_url: str = "https://www.sec.gov") -> list[str]:
    """
    Candidate URLs of a daily index, in the order they should be tried.

    The file naming changed over the years:
        1994-1998  master.YYMMDD.idx
        1999-2011  master.YYYYMMDD.idx
        2012-      master.YYYYMMDD.idx, some days only at the daily-index root
    """
    root = f"{base_url}/Archives/edgar/daily-index"
    folder = f"{root}/{day.year}/QTR{quarter_of(day)}"

    if day.year < FIRST_DAILY_INDEX_YEAR:
        return []
    if day.year < 1999:
        return [f"{folder}/master.{day:%y%m%d}.idx"]
    if day.year < 2012:
        return [f"{folder}/master.{day:%Y%m%d}.idx"]
    return [
        f"{folder}/master.{day:%Y%m%d}.idx",
        f"{root}/master.{day:%Y%m%d}.idx",
    ]


# Cache


class MasterIndexCache:
    """
    Explicit handle on the on-disk index cache.

    Snapshots on disk are the only state; nothing is remembered between
    calls except through those files.
    """

    def __init__(
        self,
        downloader: EdgarDownloader,
        storage: Optional[StorageSettings] = None,
        today: Callable[[], date] = date.today,
    ):
        """
        Args:
            downloader: Open EdgarDownloader used for every fetch
            storage: Cache locations (defaults to settings.storage)
            today: Clock used to work out elapsed quarters and future dates
        """
        self.downloader = downloader
        self.storage = storage or settings.storage
        self.index_dir = self.storage.path("master_index_dir")
        self.daily_dir = self.storage.path("daily_index_dir")
        self.base_url = downloader.config.base_url
        self._today = today

    def snapshot_path(self, year: int) -> Path:
        return self.index_dir / f"{year}master.pkl"

    def quarter_archive_path(self, year: int, quarter: int) -> Path:
        return self.index_dir / f"{year}QTR{quarter}master.gz"

    def quarter_url(self, year: int, quarter: int) -> str:
        return f"{self.base_url}/Archives/edgar/full-index/{year}/QTR{quarter}/master.gz"

    def daily_snapshot_path(self, day: date) -> Path:
        return self.daily_dir / f"daily_idx_{day:%Y%m%d}.pkl"

    async def build_year(self, year) -> IndexBuildResult:
        """
        Build (or load) the annual index of `year`.

        An existing annual snapshot is returned without network access.
        Otherwise each elapsed quarter is fetched (reusing any archive that
        is already on disk) and parsed. The snapshot is written only when
        every quarter succeeded, so a failed quarter is retried next run.

        Raises:
            ConfigurationError: non-numeric or future year
        """
        year = validate_year(year)
        quarters = elapsed_quarters(year, self._today())
        snapshot = self.snapshot_path(year)

        if snapshot.exists():
            logger.info(f"Master index for {year} already exists ({snapshot.name})")
            return IndexBuildResult(
                year=year,
                frame=pd.read_pickle(snapshot),
                statuses=pd.DataFrame(columns=STATUS_COLUMNS),
                from_snapshot=True,
            )

        logger.info(f"Downloading master indexes for {year} ({quarters} quarter(s))")
        self.index_dir.mkdir(parents=True, exist_ok=True)

        frames = []
        statuses = []
        for quarter in range(1, quarters + 1):
            label = f"{year}: quarter-{quarter}"
            archive = self.quarter_archive_path(year, quarter)

            outcome = await self.downloader.fetch(self.quarter_url(year, quarter), archive)
            if not outcome.ok:
                logger.warning(f"Master index {label} failed to download")
                statuses.append({"Filename": label, "status": SERVER_ERROR})
                continue

            try:
                records = await asyncio.to_thread(self._read_archive, archive, quarter, year)
            except (ParseError, OSError, EOFError) as e:
                logger.error(f"Master index {label} is unreadable: {e}")
                archive.unlink(missing_ok=True)
                statuses.append({"Filename": label, "status": SERVER_ERROR})
                continue

            frames.append(records_to_frame(records))
            statuses.append({"Filename": label, "status": outcome.status.value})
            logger.info(f"Master index {label}: {len(records):,} records")

        frame = (
            pd.concat(frames, ignore_index=True) if frames else empty_index_frame()
        )
        result = IndexBuildResult(
            year=year,
            frame=frame,
            statuses=pd.DataFrame(statuses, columns=STATUS_COLUMNS),
        )

        if result.complete:
            frame.to_pickle(snapshot)
            logger.info(f"Saved master index snapshot {snapshot.name} ({len(frame):,} records)")
        else:
            logger.warning(f"Master index for {year} is incomplete; snapshot not saved")

        return result

    async def load_year(self, year) -> pd.DataFrame:
        """Index frame of `year`, building it if no snapshot exists."""
        year = validate_year(year)
        snapshot = self.snapshot_path(year)
        if snapshot.exists():
            return pd.read_pickle(snapshot)
        return (await self.build_year(year)).frame

    async def daily_index(self, value) -> DailyIndexResult:
        """
        Fetch the daily master index of one date.

        Args:
            value: datetime.date or 'mm/dd/YYYY' string

        Raises:
            ConfigurationError: malformed or future date
        """
        day = parse_daily_date(value, self._today())
        snapshot = self.daily_snapshot_path(day)

        if snapshot.exists():
            logger.info(f"Daily index for {day} already exists ({snapshot.name})")
            return DailyIndexResult(
                date=day,
                status=DownloadStatus.ALREADY_CACHED.value,
                frame=pd.read_pickle(snapshot),
            )

        urls = daily_index_urls(day, self.base_url)
        if not urls:
            logger.error(f"No daily index is published for {day}")
            return DailyIndexResult(date=day, status=SERVER_ERROR)

        self.daily_dir.mkdir(parents=True, exist_ok=True)
        archive = self.daily_dir / f"master.{day:%Y%m%d}.idx"

        for url in urls:
            outcome = await self.downloader.fetch(url, archive)
            if outcome.ok:
                break
        else:
            logger.warning(f"Daily index for {day} failed to download")
            return DailyIndexResult(date=day, status=SERVER_ERROR)

        try:
            raw = archive.read_bytes()
            records = parse_index_text(raw, quarter=quarter_of(day), filing_year=day.year)
        except (ParseError, OSError) as e:
            logger.error(f"Daily index for {day} is unreadable: {e}")
            archive.unlink(missing_ok=True)
            return DailyIndexResult(date=day, status=SERVER_ERROR)

        frame = records_to_frame(records)
        frame.to_pickle(snapshot)
        archive.unlink(missing_ok=True)
        logger.info(f"Daily index for {day}: {len(frame):,} records")

        return DailyIndexResult(date=day, status=DownloadStatus.SUCCESS.value, frame=frame)

    @staticmethod
    def _read_archive(archive: Path, quarter: int, year: int) -> list[IndexRecord]:
        with gzip.open(archive, "rb") as f:
            raw = f.read()
        return parse_index_text(raw, quarter=quarter, filing_year=year)
