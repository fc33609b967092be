"""
FILING CATALOG RESOLVER
---------------------------------------------------------------------------

Filters cached index records by CIK / form type / year / quarter and maps
each match to its remote URL and deterministic local path:

    edgar_Filings/Form <ftype>/<cik>/<cik>_<ftype>_<date_filed>_<accession>.txt

where <ftype> is the form type with '/' removed. The path is the cache key:
two rows map to the same path only when they describe the same filing.

Before any filing is fetched, entries are split into cached and missing so
the caller can report the number of new downloads and ask for confirmation.
"""

from dataclasses import dataclass, fields
from datetime import date
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

import pandas as pd
from loguru import logger

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from filings.downloader import is_cached
from filings.exceptions import ConfigurationError
from filings.master_index import (
    IndexRecord,
    MasterIndexCache,
    accession_from_link,
    empty_index_frame,
    frame_to_records,
    validate_year,
)

ALL = "ALL"
DEFAULT_QUARTERS = (1, 2, 3, 4)

ENTRY_COLUMNS = [
    "cik",
    "company_name",
    "form_type",
    "date_filed",
    "edgar_link",
    "quarter",
    "filing_year",
    "accession_number",
]


@dataclass(frozen=True)
class CatalogEntry:
    """An index record together with its accession number, URL and local path."""

    cik: int
    company_name: str
    form_type: str
    date_filed: date
    edgar_link: str
    quarter: int
    filing_year: int
    accession_number: str
    destination: Path
    url: str

    @property
    def ftype(self) -> str:
        """Form type usable in file names."""
        return self.form_type.replace("/", "")

    @property
    def key(self) -> tuple:
        return (self.cik, self.form_type, self.date_filed, self.accession_number)

    @property
    def file_stem(self) -> str:
        """`<cik>_<ftype>_<date>_<accession>`, shared by every derived artefact."""
        return f"{self.cik}_{self.ftype}_{self.date_filed.isoformat()}_{self.accession_number}"

    def as_row(self) -> dict:
        return {column: getattr(self, column) for column in ENTRY_COLUMNS}


def destination_for(
    filings_dir: Path,
    form_type: str,
    cik: int,
    date_filed: date,
    accession_number: str,
) -> Path:
    ftype = form_type.replace("/", "")
    filename = f"{cik}_{ftype}_{date_filed.isoformat()}_{accession_number}.txt"
    return Path(filings_dir) / f"Form {ftype}" / str(cik) / filename


def make_entry(record: IndexRecord, filings_dir: Path, base_url: str) -> CatalogEntry:
    accession = accession_from_link(record.edgar_link)
    values = {f.name: getattr(record, f.name) for f in fields(record)}
    return CatalogEntry(
        **values,
        accession_number=accession,
        destination=destination_for(
            filings_dir, record.form_type, record.cik, record.date_filed, accession
        ),
        url=f"{base_url}/Archives/{record.edgar_link.lstrip('/')}",
    )


def entries_frame(entries: Iterable[CatalogEntry]) -> pd.DataFrame:
    return pd.DataFrame([e.as_row() for e in entries], columns=ENTRY_COLUMNS)


# Input normalization


def is_all(value) -> bool:
    return isinstance(value, str) and value.strip().upper() == ALL


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (str, int)):
        return [value]
    return list(value)


def _as_cik(value) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid CIK: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ConfigurationError(f"Invalid CIK: {value!r}")


def normalize_identifiers(identifiers) -> Optional[set[int]]:
    """CIK set to match, or None for "ALL"."""
    if is_all(identifiers):
        return None
    ciks = {_as_cik(v) for v in _as_list(identifiers)}
    if not ciks:
        raise ConfigurationError("At least one CIK (or 'ALL') is required")
    return ciks


def normalize_years(years) -> list[int]:
    normalized = [validate_year(y) for y in _as_list(years)]
    if not normalized:
        raise ConfigurationError("At least one filing year is required")
    return normalized


# Download planning


@dataclass(frozen=True)
class CatalogPlan:
    """Resolved entries split by whether their file is already on disk."""

    entries: tuple
    cached: tuple
    missing: tuple

    @property
    def total(self) -> int:
        return len(self.entries)

    @property
    def new_downloads(self) -> int:
        """Number of distinct files that still have to be fetched."""
        return len({e.destination for e in self.missing})

    def download_units(self) -> list[CatalogEntry]:
        """One entry per distinct missing destination, in resolver order."""
        seen = set()
        units = []
        for entry in self.missing:
            if entry.destination not in seen:
                seen.add(entry.destination)
                units.append(entry)
        return units


ConfirmCallback = Callable[[CatalogPlan], bool]


def approve_plan(
    plan: CatalogPlan,
    confirm: Optional[ConfirmCallback] = None,
    download_permit: bool = False,
) -> bool:
    """
    The download confirmation gate, evaluated once per batch.

    Args:
        plan: What would be downloaded
        confirm: Callback asked when downloads are needed
        download_permit: Skip the question and proceed

    Returns:
        True when the batch may touch the network
    """
    if download_permit or plan.new_downloads == 0:
        return True
    if confirm is None:
        logger.warning(
            f"{plan.new_downloads} filing(s) need downloading but no confirmation "
            "was given. Set EDGAR_DOWNLOAD_PERMIT=true or pass a confirm callback."
        )
        return False
    approved = bool(confirm(plan))
    if not approved:
        logger.info(f"Download of {plan.new_downloads} filing(s) declined")
    return approved


# Resolver


class FilingCatalog:
    """
    Resolve (identifiers, form types, years, quarters) to catalog entries.

    Example:
    -----------------------------------
        catalog = FilingCatalog(MasterIndexCache(dl))
        entries = await catalog.resolve([1000180], ["10-K"], [2006])
        plan = catalog.plan(entries)
        print(plan.new_downloads)
    """

    def __init__(self, index_cache: MasterIndexCache, filings_dir: Optional[Path] = None):
        self.index_cache = index_cache
        self.filings_dir = Path(filings_dir or index_cache.storage.path("filings_dir"))
        self.base_url = index_cache.base_url

    def entry_for(self, record: IndexRecord) -> CatalogEntry:
        return make_entry(record, self.filings_dir, self.base_url)

    async def resolve(
        self,
        identifiers: Union[str, int, Iterable] = ALL,
        form_types: Union[str, Iterable[str]] = ALL,
        years: Union[int, Iterable[int]] = (),
        quarters: Iterable[int] = DEFAULT_QUARTERS,
    ) -> list[CatalogEntry]:
        """
        Matching entries sorted by cik then filing year, in index order within.

        Raises:
            ConfigurationError: invalid CIK or year
        """
        ciks = normalize_identifiers(identifiers)
        years = normalize_years(years)
        quarters = {int(q) for q in _as_list(quarters)}

        records = []
        for year in years:
            frame = await self.index_cache.load_year(year)
            if frame.empty:
                continue

            if is_all(form_types):
                forms = set(frame["form_type"].unique())
            else:
                forms = set(_as_list(form_types))

            mask = frame["form_type"].isin(forms) & frame["quarter"].isin(quarters)
            if ciks is not None:
                mask &= frame["cik"].isin(ciks)
            records.extend(frame_to_records(frame[mask]))

        records.sort(key=lambda r: (r.cik, r.filing_year))
        logger.info(f"Resolved {len(records)} filing(s) for {len(years)} year(s)")
        return [self.entry_for(r) for r in records]

    def plan(self, entries: Iterable[CatalogEntry]) -> CatalogPlan:
        entries = tuple(entries)
        cached = tuple(e for e in entries if is_cached(e.destination))
        missing = tuple(e for e in entries if not is_cached(e.destination))
        return CatalogPlan(entries=entries, cached=cached, missing=missing)

    async def filing_info(
        self,
        identifier: Union[int, str],
        years: Union[int, Iterable[int]],
        quarters: Iterable[int] = DEFAULT_QUARTERS,
        form_types: Union[str, Iterable[str]] = ALL,
    ) -> pd.DataFrame:
        """
        Index records of one firm, by CIK or by company name fragment.

        Args:
            identifier: CIK, or a case-insensitive fragment of the company name
            years: Filing years to search
            quarters: Quarters to keep
            form_types: Form types to keep ("ALL" for every type)

        Returns:
            Matching records sorted by cik and year; empty frame when none
        """
        years = normalize_years(years)
        quarters = {int(q) for q in _as_list(quarters)}

        by_cik = isinstance(identifier, int) or (
            isinstance(identifier, str) and identifier.strip().isdigit()
        )

        frames = []
        for year in years:
            frame = await self.index_cache.load_year(year)
            if frame.empty:
                continue

            if by_cik:
                mask = frame["cik"] == _as_cik(identifier)
            else:
                mask = frame["company_name"].str.contains(
                    str(identifier).strip(), case=False, regex=False
                )
            if not is_all(form_types):
                mask &= frame["form_type"].isin(set(_as_list(form_types)))
            mask &= frame["quarter"].isin(quarters)

            if mask.any():
                frames.append(frame[mask])

        if not frames:
            logger.info(f"No filing information found for {identifier!r}")
            return empty_index_frame()

        return (
            pd.concat(frames, ignore_index=True)
            .sort_values(["cik", "filing_year"], kind="stable")
            .reset_index(drop=True)
        )
