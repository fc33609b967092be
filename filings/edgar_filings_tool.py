"""
EDGAR FILINGS TOOL
---------------------------------------------------------------------------

Batch access to SEC EDGAR filings: index catalogs, raw filing downloads and
text extraction (business description, MD&A, 8-K items, keyword search,
lexicon sentiment).

SEC EDGAR OVERVIEW:
---------------------------------------------------------------------------
SEC's online system for companies to submit required filings electronically.

API Requirements:
    - User-Agent header with your name and contact email
    - Max 10 requests per second

Endpoints Used:
-----------------------------
1. Quarterly master index: https://www.sec.gov/Archives/edgar/full-index/`year`/QTR`n`/master.gz
    - Every filing submitted in a quarter

2. Daily master index: https://www.sec.gov/Archives/edgar/daily-index/`year`/QTR`n`/master.`date`.idx
    - Every filing submitted on a day

3. Filing: https://www.sec.gov/Archives/edgar/data/`cik`/`accession`.txt
    - The complete submission (header plus all documents)

Every batch operation returns a pandas DataFrame with one row per filing in
(cik, filing_year) order and per-row status columns, even when some filings
fail. All work is cached on disk, so re-running an operation only does
what is missing.

Usage:
---------------------------------------------
    from filings.edgar_filings_tool import EdgarFilingsTool, get_business_descr

    async with EdgarFilingsTool(user_agent="Jane Doe jane@example.com") as tool:
        statuses = await tool.get_master_index([2005, 2006])
        filings = await tool.get_filings([1000180], ["10-K"], [2006], download_permit=True)

    output = await get_business_descr([1000180], [2006], user_agent="Jane Doe jane@example.com")
"""

import asyncio
from datetime import date
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

import httpx
import pandas as pd
from loguru import logger

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from configs.config import settings, Settings
from configs.log_setup import setup_logging
from analysis.sentiment import (
    SENTIMENT_COLUMNS,
    Lexicon,
    get_default_lexicon,
    score,
)
from filings.catalog import (
    ALL,
    DEFAULT_QUARTERS,
    CatalogEntry,
    ConfirmCallback,
    FilingCatalog,
    approve_plan,
    entries_frame,
    normalize_years,
)
from filings.downloader import (
    DownloadOutcome,
    DownloadStatus,
    EdgarDownloader,
    RateLimiter,
    is_cached,
)
from filings.events import EIGHT_K_FORM_TYPES, extract_events
from filings.exceptions import NoFilingsFoundError
from filings.keyword_search import normalize_terms, render_search_report, search
from filings.master_index import (
    STATUS_COLUMNS,
    DailyIndexResult,
    MasterIndexCache,
    elapsed_quarters,
)
from filings.payload import read_filing
from filings.sections import (
    ANNUAL_FORM_TYPES,
    SECTION_NAMESPACES,
    ExtractedSection,
    SectionId,
    locate_section,
)


class EdgarFilingsTool:
    """
    Tool for bulk retrieval and extraction of SEC EDGAR filings.

    This class handles:
        - Master (quarterly) and daily index catalogs
        - Filing resolution by CIK, form type, year and quarter
        - Throttled, cached filing downloads behind a confirmation gate
        - Section extraction, 8-K items, keyword search and sentiment counts

    Example:
    -----------------------------------
        async with EdgarFilingsTool(user_agent="Jane Doe jane@example.com") as tool:
            # Catalog of filings for 2006
            await tool.get_master_index(2006)

            # Download 10-K filings for one firm
            output = await tool.get_filings(1000180, "10-K", 2006, download_permit=True)

            # Extract Item 7 (MD&A)
            mdna = await tool.get_mgmt_disc(1000180, 2006)
    """

    def __init__(
        self,
        user_agent: Optional[str] = None,
        config: Optional[Settings] = None,
        confirm: Optional[ConfirmCallback] = None,
        lexicon: Optional[Lexicon] = None,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        today: Callable[[], date] = date.today,
    ):
        """
        Initialize the EDGAR filings tool.

        Args:
            user_agent: Caller identification, e.g. "Jane Doe jane@example.com".
                        If not provided, uses settings.edgar.user_agent.
            config: Settings to use. Defaults to the module-level settings.
            confirm: Callback asked before downloading new filings.
                     Not asked when download_permit is set.
            lexicon: Sentiment lexicon. Defaults to the one in settings.lexicon.
            rate_limiter: Shared rate limiter (defaults to the process-wide one)
            transport: Custom httpx transport (tests)
            today: Clock for elapsed quarters and date validation

        Raises:
            ConfigurationError: missing user agent or proxy credentials
        """
        self.settings = config or settings
        self.storage = self.settings.storage
        self.max_workers = self.settings.edgar.max_workers
        self.download_permit = self.settings.edgar.download_permit
        self.confirm = confirm
        self._lexicon = lexicon
        self._today = today

        self.downloader = EdgarDownloader(
            user_agent=user_agent,
            config=self.settings.edgar,
            rate_limiter=rate_limiter,
            transport=transport,
        )
        self.index_cache = MasterIndexCache(self.downloader, self.storage, today=today)
        self.catalog = FilingCatalog(self.index_cache)

        logger.info(
            f"EdgarFilingsTool initialized "
            f"(storage: {self.storage.data_dir}, workers: {self.max_workers})"
        )

    async def __aenter__(self):
        """Async context manager entry - open the downloader."""
        await self.downloader.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit - close the downloader."""
        await self.downloader.__aexit__(exc_type, exc_val, exc_tb)

    # =========================================================================
    # INDEXES
    # =========================================================================

    async def get_master_index(self, years: Union[int, Iterable[int]]) -> pd.DataFrame:
        """
        Download and cache the master indexes of the given years.

        Args:
            years: One year or a list of years

        Returns:
            DataFrame with `Filename` ("<year>: quarter-<n>") and `status`
            rows for every quarter that was processed. Years that already
            had a snapshot contribute no rows.

        Raises:
            ConfigurationError: non-numeric or future year
        """
        years = normalize_years(years)
        # validate every year before touching the network
        for year in years:
            elapsed_quarters(year, self._today())

        statuses = []
        for year in years:
            result = await self.index_cache.build_year(year)
            statuses.append(result.statuses)

        return pd.concat(statuses, ignore_index=True) if statuses else pd.DataFrame(columns=STATUS_COLUMNS)

    async def get_daily_master(self, day: Union[date, str]) -> DailyIndexResult:
        """
        Download and cache the daily master index of one date.

        Args:
            day: datetime.date or "mm/dd/YYYY"

        Returns:
            DailyIndexResult with the date, a status and the records
        """
        return await self.index_cache.daily_index(day)

    async def get_filing_info(
        self,
        identifier: Union[int, str],
        years: Union[int, Iterable[int]],
        quarters: Iterable[int] = DEFAULT_QUARTERS,
        form_types: Union[str, Iterable[str]] = ALL,
    ) -> pd.DataFrame:
        """
        Look up a firm's filings in the master indexes.

        Args:
            identifier: CIK or company name fragment (case-insensitive)
            years: Filing years
            quarters: Quarters to keep
            form_types: Form types to keep

        Returns:
            Matching index records; empty DataFrame when nothing matches
        """
        return await self.catalog.filing_info(identifier, years, quarters, form_types)

    # =========================================================================
    # DOWNLOADS
    # =========================================================================

    async def _download_units(self, units: list[CatalogEntry]) -> dict[Path, DownloadOutcome]:
        """Fetch one file per unit with at most max_workers in flight."""
        semaphore = asyncio.Semaphore(self.max_workers)

        async def worker(entry: CatalogEntry) -> tuple[Path, DownloadOutcome]:
            async with semaphore:
                try:
                    outcome = await self.downloader.fetch(entry.url, entry.destination)
                except Exception as e:
                    logger.error(f"Cannot fetch {entry.destination}: {e}")
                    outcome = DownloadOutcome(DownloadStatus.FATAL_FAILURE, error=str(e))
                return entry.destination, outcome

        results = await asyncio.gather(*(worker(u) for u in units))
        return dict(results)

    async def _acquire(
        self,
        identifiers,
        form_types,
        years,
        quarters,
        download_permit: Optional[bool],
    ) -> Optional[tuple[list[CatalogEntry], list[str]]]:
        """
        Resolve filings and make sure they are on disk.

        Returns:
            (entries, statuses) aligned by position, or None when the
            confirmation gate declined the download

        Raises:
            NoFilingsFoundError: nothing in the indexes matches
        """
        entries = await self.catalog.resolve(identifiers, form_types, years, quarters)
        if not entries:
            raise NoFilingsFoundError(
                "No filing information found for given CIK(s) and Form Type "
                "in the mentioned year(s)/quarter(s)."
            )

        plan = self.catalog.plan(entries)
        logger.info(
            f"{plan.total} filing(s) resolved, {len(plan.cached)} cached, "
            f"{plan.new_downloads} to download"
        )

        permit = self.download_permit if download_permit is None else download_permit
        if not approve_plan(plan, self.confirm, permit):
            return None

        outcomes = await self._download_units(plan.download_units())

        statuses = []
        for entry in entries:
            outcome = outcomes.get(entry.destination)
            if outcome is None:
                statuses.append(DownloadStatus.ALREADY_CACHED.value)
            else:
                statuses.append(outcome.status.value)

        failed = sum(s == DownloadStatus.FATAL_FAILURE.value for s in statuses)
        if failed:
            logger.warning(f"{failed} filing(s) could not be downloaded")
        return entries, statuses

    async def get_filings(
        self,
        identifiers: Union[str, int, Iterable] = ALL,
        form_types: Union[str, Iterable[str]] = ALL,
        years: Union[int, Iterable[int]] = (),
        quarters: Iterable[int] = DEFAULT_QUARTERS,
        download_permit: Optional[bool] = None,
    ) -> Optional[pd.DataFrame]:
        """
        Download filings to edgar_Filings/Form <ftype>/<cik>/.

        Args:
            identifiers: CIK, list of CIKs or "ALL"
            form_types: Form type, list of form types or "ALL"
            years: Filing years
            quarters: Quarters to include
            download_permit: Skip the confirmation gate (defaults to
                             settings.edgar.download_permit)

        Returns:
            Index rows plus `accession_number` and `status`, or None when
            the download was declined

        Raises:
            ConfigurationError: invalid input
            NoFilingsFoundError: nothing matches
        """
        acquired = await self._acquire(identifiers, form_types, years, quarters, download_permit)
        if acquired is None:
            return None

        entries, statuses = acquired
        frame = entries_frame(entries)
        frame["status"] = statuses
        return frame

    # =========================================================================
    # PER-FILING PROCESSING
    # =========================================================================

    async def _map_filings(
        self,
        entries: list[CatalogEntry],
        func: Callable[[CatalogEntry], Any],
    ) -> dict[Path, Any]:
        """
        Run `func` once per distinct downloaded filing in worker threads.

        Filings that are not on disk, or whose processing fails, map to None.
        """
        semaphore = asyncio.Semaphore(self.max_workers)

        units = {}
        for entry in entries:
            units.setdefault(entry.destination, entry)

        async def worker(entry: CatalogEntry) -> tuple[Path, Any]:
            if not is_cached(entry.destination):
                return entry.destination, None
            async with semaphore:
                try:
                    return entry.destination, await asyncio.to_thread(func, entry)
                except Exception as e:
                    logger.error(f"Failed to process {entry.destination.name}: {e}")
                    return entry.destination, None

        results = await asyncio.gather(*(worker(e) for e in units.values()))
        return dict(results)

    async def _extract_sections(
        self,
        section_id: SectionId,
        identifiers,
        years,
    ) -> pd.DataFrame:
        output_dir = self.storage.path(SECTION_NAMESPACES[section_id])

        acquired = await self._acquire(
            identifiers, list(ANNUAL_FORM_TYPES), years, DEFAULT_QUARTERS, download_permit=True
        )
        entries, statuses = acquired
        output_dir.mkdir(parents=True, exist_ok=True)

        def extract(entry: CatalogEntry) -> int:
            target = output_dir / f"{entry.file_stem}.txt"
            if target.exists():
                return 1
            match = locate_section(read_filing(entry.destination), section_id)
            section = ExtractedSection.from_entry(entry, match)
            if section.extract_status:
                target.write_text(section.render(), encoding="utf-8")
            else:
                logger.debug(f"{section_id.value} not found in {entry.destination.name}")
            return section.extract_status

        logger.info(f"Extracting {section_id.value} from {len(entries)} filing(s)")
        results = await self._map_filings(entries, extract)

        frame = entries_frame(entries)
        frame["status"] = statuses
        frame["extract_status"] = [results.get(e.destination) or 0 for e in entries]
        logger.info(
            f"{int(frame['extract_status'].sum())}/{len(frame)} section(s) stored in {output_dir}"
        )
        return frame

    async def get_business_descr(
        self,
        identifiers: Union[str, int, Iterable],
        years: Union[int, Iterable[int]],
    ) -> pd.DataFrame:
        """
        Extract "Item 1. Business" from annual reports.

        Filings are downloaded as needed without asking for confirmation.
        Extracted text is stored in edgar_BusinDescr/.

        Returns:
            Filing rows plus `status` and `extract_status` (1 = stored)
        """
        return await self._extract_sections(SectionId.BUSINESS_DESCRIPTION, identifiers, years)

    async def get_mgmt_disc(
        self,
        identifiers: Union[str, int, Iterable],
        years: Union[int, Iterable[int]],
    ) -> pd.DataFrame:
        """
        Extract "Item 7. Management's Discussion and Analysis" from annual
        reports into edgar_MgmtDisc/.

        Returns:
            Filing rows plus `status` and `extract_status` (1 = stored)
        """
        return await self._extract_sections(SectionId.DISCUSSION_AND_ANALYSIS, identifiers, years)

    async def get_8k_items(
        self,
        identifiers: Union[str, int, Iterable],
        years: Union[int, Iterable[int]],
        quarters: Iterable[int] = DEFAULT_QUARTERS,
    ) -> pd.DataFrame:
        """
        Event items reported in 8-K filings.

        Returns:
            One row per (filing, item) with `item_code` and `description`.
            A filing without recognizable items keeps one row with empty
            item columns.
        """
        entries, statuses = await self._acquire(
            identifiers, list(EIGHT_K_FORM_TYPES), years, quarters, download_permit=True
        )

        results = await self._map_filings(
            entries, lambda entry: extract_events(read_filing(entry.destination))
        )

        rows = []
        for entry, status in zip(entries, statuses):
            base = {**entry.as_row(), "status": status}
            events = results.get(entry.destination) or []
            if not events:
                rows.append({**base, "item_code": None, "description": None})
            for event in events:
                rows.append({**base, "item_code": event.item_code, "description": event.description})

        return pd.DataFrame(rows)

    async def search_filings(
        self,
        identifiers: Union[str, int, Iterable],
        form_types: Union[str, Iterable[str]],
        years: Union[int, Iterable[int]],
        terms: Union[str, Iterable[str]],
        quarters: Iterable[int] = DEFAULT_QUARTERS,
    ) -> pd.DataFrame:
        """
        Count keyword hits in filings.

        An HTML report with highlighted excerpts is written to
        edgar_searchFilings/ for every filing with at least one hit.

        Returns:
            Filing rows plus `status` and `nword_hits`
        """
        terms = normalize_terms(terms)
        report_dir = self.storage.path("search_dir")

        entries, statuses = await self._acquire(
            identifiers, form_types, years, quarters, download_permit=True
        )
        report_dir.mkdir(parents=True, exist_ok=True)

        def search_one(entry: CatalogEntry) -> int:
            hits = search(read_filing(entry.destination, for_search=True), terms)
            if hits.hit_count > 0:
                report = render_search_report(entry, terms, hits)
                (report_dir / f"{entry.file_stem}.html").write_text(report, encoding="utf-8")
            return hits.hit_count

        results = await self._map_filings(entries, search_one)

        frame = entries_frame(entries)
        frame["status"] = statuses
        frame["nword_hits"] = [results.get(e.destination) or 0 for e in entries]
        logger.info(f"Search results are stored in {report_dir}")
        return frame

    async def get_sentiment(
        self,
        identifiers: Union[str, int, Iterable],
        form_types: Union[str, Iterable[str]],
        years: Union[int, Iterable[int]],
        quarters: Iterable[int] = DEFAULT_QUARTERS,
    ) -> pd.DataFrame:
        """
        Lexicon sentiment counts of filings.

        Returns:
            Filing rows plus `status` and the sentiment columns
            (file_size in KB, word statistics, one count per category)
        """
        lexicon = self._lexicon or get_default_lexicon()

        entries, statuses = await self._acquire(
            identifiers, form_types, years, quarters, download_permit=True
        )

        def score_one(entry: CatalogEntry) -> dict:
            size_kb = entry.destination.stat().st_size / 1024
            return score(read_filing(entry.destination), lexicon, file_size=size_kb).to_dict()

        results = await self._map_filings(entries, score_one)

        frame = entries_frame(entries)
        frame["status"] = statuses
        scores = pd.DataFrame(
            [results.get(e.destination) or {} for e in entries],
            columns=SENTIMENT_COLUMNS,
        )
        return pd.concat([frame, scores], axis=1)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


async def get_master_index(years, user_agent: Optional[str] = None) -> pd.DataFrame:
    """
    Download master indexes (convenience function).

    Example:
        statuses = await get_master_index([2005, 2006], user_agent="Jane Doe jane@example.com")
    """
    async with EdgarFilingsTool(user_agent=user_agent) as tool:
        return await tool.get_master_index(years)


async def get_daily_master(day, user_agent: Optional[str] = None) -> DailyIndexResult:
    """Download one daily master index (convenience function)."""
    async with EdgarFilingsTool(user_agent=user_agent) as tool:
        return await tool.get_daily_master(day)


async def get_filing_info(
    identifier,
    years,
    quarters=DEFAULT_QUARTERS,
    form_types=ALL,
    user_agent: Optional[str] = None,
) -> pd.DataFrame:
    """Look up a firm's filings by CIK or name (convenience function)."""
    async with EdgarFilingsTool(user_agent=user_agent) as tool:
        return await tool.get_filing_info(identifier, years, quarters, form_types)


async def get_filings(
    identifiers=ALL,
    form_types=ALL,
    years=(),
    quarters=DEFAULT_QUARTERS,
    download_permit: Optional[bool] = None,
    user_agent: Optional[str] = None,
    confirm: Optional[ConfirmCallback] = None,
) -> Optional[pd.DataFrame]:
    """
    Download filings (convenience function).

    Example:
        output = await get_filings([1000180, 38079], ["10-K", "10-Q"], 2006,
                                   quarters=[1, 2, 3], download_permit=True,
                                   user_agent="Jane Doe jane@example.com")
    """
    async with EdgarFilingsTool(user_agent=user_agent, confirm=confirm) as tool:
        return await tool.get_filings(identifiers, form_types, years, quarters, download_permit)


async def get_business_descr(identifiers, years, user_agent: Optional[str] = None) -> pd.DataFrame:
    """Extract business descriptions (convenience function)."""
    async with EdgarFilingsTool(user_agent=user_agent) as tool:
        return await tool.get_business_descr(identifiers, years)


async def get_mgmt_disc(identifiers, years, user_agent: Optional[str] = None) -> pd.DataFrame:
    """Extract MD&A sections (convenience function)."""
    async with EdgarFilingsTool(user_agent=user_agent) as tool:
        return await tool.get_mgmt_disc(identifiers, years)


async def get_8k_items(
    identifiers,
    years,
    quarters=DEFAULT_QUARTERS,
    user_agent: Optional[str] = None,
) -> pd.DataFrame:
    """List 8-K event items (convenience function)."""
    async with EdgarFilingsTool(user_agent=user_agent) as tool:
        return await tool.get_8k_items(identifiers, years, quarters)


async def search_filings(
    identifiers,
    form_types,
    years,
    terms,
    quarters=DEFAULT_QUARTERS,
    user_agent: Optional[str] = None,
) -> pd.DataFrame:
    """Keyword search over filings (convenience function)."""
    async with EdgarFilingsTool(user_agent=user_agent) as tool:
        return await tool.search_filings(identifiers, form_types, years, terms, quarters)


async def get_sentiment(
    identifiers,
    form_types,
    years,
    quarters=DEFAULT_QUARTERS,
    user_agent: Optional[str] = None,
) -> pd.DataFrame:
    """Lexicon sentiment counts (convenience function)."""
    async with EdgarFilingsTool(user_agent=user_agent) as tool:
        return await tool.get_sentiment(identifiers, form_types, years, quarters)


# =============================================================================
# CLI / TESTING
# =============================================================================


async def _main():
    """Try the tool on one firm and year."""
    cik = int(sys.argv[1]) if len(sys.argv) > 1 else 1000180
    year = int(sys.argv[2]) if len(sys.argv) > 2 else 2006

    print(f"\n{'='*60}")
    print(f"EDGAR Filings Tool - CIK {cik}, {year}")
    print(f"{'='*60}\n")

    async with EdgarFilingsTool() as tool:
        statuses = await tool.get_master_index(year)
        print(statuses.to_string(index=False) if not statuses.empty else "Master index cached")

        info = await tool.get_filing_info(cik, year)
        print(f"\nFound {len(info)} filing(s) for CIK {cik}")
        print(info[["form_type", "date_filed", "edgar_link"]].head(10).to_string(index=False))

        output = await tool.get_business_descr(cik, year)
        print("\nBusiness descriptions:")
        print(output[["form_type", "date_filed", "status", "extract_status"]].to_string(index=False))


if __name__ == "__main__":
    setup_logging()

    # Run async main
    asyncio.run(_main())
