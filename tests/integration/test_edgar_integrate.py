"""

INTEGRATION TESTS FOR EDGAR (LIVE SERVER)

These tests make REAL requests to www.sec.gov. They verify that:
1. The index and filing URLs still resolve
2. The parsers still understand what EDGAR publishes

WARNING: These tests:
- Require network access
- Require EDGAR_USER_AGENT ("Name email@example.com")
- Download a few MB into a temporary directory

Running These Tests:
--------------------
# These are SKIPPED by default
    pytest tests/integration/ -v

# To actually run them:
    EDGAR_USER_AGENT="Jane Doe jane@example.com" pytest tests/integration/ -v --run-integration


"""

import os

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from configs.config import EdgarSettings, LexiconSettings, Settings, StorageSettings
from filings.edgar_filings_tool import EdgarFilingsTool


# Mark ALL tests in this file as integration tests
pytestmark = pytest.mark.integration

SANDISK_CIK = 1000180


@pytest.fixture
def live_settings(tmp_path):
    """
    Settings for the live server, cached in a temporary directory.

    Skips the test when no user agent is configured.
    """
    user_agent = os.getenv("EDGAR_USER_AGENT")
    if not user_agent:
        pytest.skip("EDGAR_USER_AGENT not configured - skipping live test")
    return Settings(
        edgar=EdgarSettings(user_agent=user_agent),
        storage=StorageSettings(data_dir=tmp_path / "data"),
        lexicon=LexiconSettings(),
    )


class TestEdgarIntegration:
    """Live tests against www.sec.gov."""

    @pytest.mark.asyncio
    async def test_master_index_for_a_past_year(self, live_settings):
        async with EdgarFilingsTool(config=live_settings) as tool:
            statuses = await tool.get_master_index(2006)
            info = await tool.get_filing_info(SANDISK_CIK, 2006)

        assert len(statuses) == 4
        assert set(statuses["status"]) == {"Download success"}
        assert "10-K" in set(info["form_type"])

    @pytest.mark.asyncio
    async def test_daily_index(self, live_settings):
        async with EdgarFilingsTool(config=live_settings) as tool:
            result = await tool.get_daily_master("08/09/2016")

        assert result.status == "Download success"
        assert len(result.frame) > 0

    @pytest.mark.asyncio
    async def test_business_description_of_a_10k(self, live_settings):
        async with EdgarFilingsTool(config=live_settings) as tool:
            output = await tool.get_business_descr(SANDISK_CIK, 2006)

        assert (output["status"] == "Download success").all()
        assert output["extract_status"].sum() >= 1
