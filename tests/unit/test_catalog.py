"""
UNIT TESTS FOR THE FILING CATALOG RESOLVER

Index snapshots are written straight to the temporary cache, so resolving
never needs the network.

How to Execute tests:
    pytest tests/unit/test_catalog.py -v
"""

from datetime import date
from pathlib import Path

import pytest

import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from filings.catalog import (
    CatalogPlan,
    FilingCatalog,
    approve_plan,
    destination_for,
    entries_frame,
    normalize_identifiers,
    normalize_years,
)
from filings.downloader import EdgarDownloader
from filings.exceptions import ConfigurationError
from filings.master_index import MasterIndexCache, parse_index_text, records_to_frame
from tests.conftest import FILING_10K_URL


@pytest.fixture
def catalog(test_settings, fake_edgar, fast_limiter, today, index_text):
    downloader = EdgarDownloader(
        config=test_settings.edgar, rate_limiter=fast_limiter, transport=fake_edgar.transport
    )
    cache = MasterIndexCache(downloader, test_settings.storage, today=today)
    snapshot = cache.snapshot_path(2006)
    snapshot.parent.mkdir(parents=True)
    records_to_frame(parse_index_text(index_text, 1, 2006)).to_pickle(snapshot)
    return FilingCatalog(cache)


class TestNormalization:
    """Tests for identifier and year inputs."""

    def test_all_means_every_cik(self):
        assert normalize_identifiers("ALL") is None
        assert normalize_identifiers("all") is None

    def test_identifiers_accept_scalars_strings_and_lists(self):
        assert normalize_identifiers(1000180) == {1000180}
        assert normalize_identifiers(["1000180", 38079]) == {1000180, 38079}

    @pytest.mark.parametrize("identifiers", [[], ["SANDISK"], [1.5]])
    def test_invalid_identifiers_raise(self, identifiers):
        with pytest.raises(ConfigurationError):
            normalize_identifiers(identifiers)

    def test_years_must_be_numeric_and_present(self):
        assert normalize_years(["2006", 2007]) == [2006, 2007]
        with pytest.raises(ConfigurationError):
            normalize_years([])
        with pytest.raises(ConfigurationError):
            normalize_years(["2006a"])

    def test_destination_removes_slash_from_form_type(self, tmp_path):
        path = destination_for(tmp_path, "10-K/A", 1000180, date(2006, 3, 15), "0000891618-06-000123")

        assert path == tmp_path / "Form 10-KA" / "1000180" / "1000180_10-KA_2006-03-15_0000891618-06-000123.txt"


class TestResolve:
    """Tests for FilingCatalog.resolve."""

    @pytest.mark.asyncio
    async def test_resolve_matches_cik_and_form_type(self, catalog, fake_edgar):
        entries = await catalog.resolve([1000180], ["10-K"], [2006])

        assert len(entries) == 1
        entry = entries[0]
        assert entry.accession_number == "0000891618-06-000123"
        assert entry.url == FILING_10K_URL
        assert entry.destination == (
            catalog.filings_dir / "Form 10-K" / "1000180"
            / "1000180_10-K_2006-03-15_0000891618-06-000123.txt"
        )
        assert fake_edgar.requests == []

    @pytest.mark.asyncio
    async def test_resolve_all_sorts_by_cik(self, catalog):
        entries = await catalog.resolve("ALL", "ALL", [2006])

        assert [e.cik for e in entries] == [38079, 1000045, 1000045, 1000180, 1000180]
        # index order is kept within a cik
        assert [e.form_type for e in entries if e.cik == 1000180] == ["10-K", "8-K"]

    @pytest.mark.asyncio
    async def test_distinct_filings_map_to_distinct_paths(self, catalog):
        entries = await catalog.resolve("ALL", "ALL", [2006])
        again = await catalog.resolve("ALL", "ALL", [2006])

        assert len({e.key for e in entries}) == len({e.destination for e in entries}) == 5
        assert [e.destination for e in entries] == [e.destination for e in again]

    @pytest.mark.asyncio
    async def test_resolve_filters_quarters(self, catalog):
        assert await catalog.resolve("ALL", "ALL", [2006], quarters=[2, 3]) == []

    @pytest.mark.asyncio
    async def test_resolve_no_match_is_empty(self, catalog):
        assert await catalog.resolve([999], ["10-K"], [2006]) == []

    @pytest.mark.asyncio
    async def test_resolve_invalid_cik_raises(self, catalog):
        with pytest.raises(ConfigurationError):
            await catalog.resolve(["not-a-cik"], ["10-K"], [2006])

    @pytest.mark.asyncio
    async def test_entries_frame_has_accession_column(self, catalog):
        frame = entries_frame(await catalog.resolve([38079], ["10-K"], [2006]))

        assert list(frame["accession_number"]) == ["0000038079-06-000010"]
        assert "destination" not in frame.columns


class TestPlanAndGate:
    """Tests for the cached/missing split and the confirmation gate."""

    @pytest.mark.asyncio
    async def test_plan_splits_cached_and_missing(self, catalog):
        entries = await catalog.resolve("ALL", ["10-K"], [2006])
        cached = entries[0].destination
        cached.parent.mkdir(parents=True)
        cached.write_text("already here")

        plan = catalog.plan(entries)

        assert plan.total == 2
        assert [e.cik for e in plan.cached] == [38079]
        assert [e.cik for e in plan.missing] == [1000180]
        assert plan.new_downloads == 1

    @pytest.mark.asyncio
    async def test_duplicate_rows_count_once(self, catalog):
        entries = await catalog.resolve([1000180], ["10-K"], [2006])

        plan = catalog.plan(entries * 2)

        assert plan.total == 2
        assert plan.new_downloads == 1
        assert plan.download_units() == entries

    def test_gate_skipped_when_nothing_to_download(self):
        asked = []
        plan = CatalogPlan(entries=(), cached=(), missing=())

        assert approve_plan(plan, confirm=lambda p: asked.append(p) or False)
        assert asked == []

    @pytest.mark.asyncio
    async def test_gate_asks_once_and_honours_answer(self, catalog):
        plan = catalog.plan(await catalog.resolve("ALL", "ALL", [2006]))
        asked = []

        def decline(p):
            asked.append(p.new_downloads)
            return False

        assert not approve_plan(plan, confirm=decline)
        assert asked == [5]
        assert approve_plan(plan, confirm=lambda p: True)

    @pytest.mark.asyncio
    async def test_gate_without_callback_declines_unless_permitted(self, catalog):
        plan = catalog.plan(await catalog.resolve("ALL", "ALL", [2006]))

        assert not approve_plan(plan)
        assert approve_plan(plan, download_permit=True)


class TestFilingInfo:
    """Tests for FilingCatalog.filing_info."""

    @pytest.mark.asyncio
    async def test_lookup_by_cik(self, catalog):
        frame = await catalog.filing_info(1000180, [2006])

        assert list(frame["form_type"]) == ["10-K", "8-K"]

    @pytest.mark.asyncio
    async def test_lookup_by_name_fragment_is_case_insensitive(self, catalog):
        frame = await catalog.filing_info("forest oil", [2006])

        assert list(frame["cik"]) == [38079]

    @pytest.mark.asyncio
    async def test_lookup_filters_form_types(self, catalog):
        frame = await catalog.filing_info("1000045", [2006], form_types=["4"])

        assert list(frame["company_name"]) == ["ONEIL SONS INC"]

    @pytest.mark.asyncio
    async def test_no_match_returns_empty_frame(self, catalog):
        assert (await catalog.filing_info("no such company", [2006])).empty
