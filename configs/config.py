"""
This file contains the configuration for the EDGAR filings pipeline.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from pathlib import Path

""" PATHS CONFIGURATION """

# Get the absolute path of the config directory
PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data Directories
DATA_DIR = PROJECT_ROOT / "data"
LEXICON_DIR = DATA_DIR / "lexicon"

""" SETTINGS CLASSES """


class EdgarSettings(BaseSettings):
    """
    Configuration for SEC EDGAR access.

    The SEC fair access policy requires every request to declare who is
    making it. There is no default user agent.

    ENVIRONMENT VARIABLES:
           EDGAR_USER_AGENT: "Your Name Contact@domain.com"
           EDGAR_RATE_LIMIT_CAPACITY: REQUESTS ALLOWED PER WINDOW
           EDGAR_RATE_LIMIT_WINDOW: WINDOW LENGTH IN SECONDS
           EDGAR_MAX_ATTEMPTS: ATTEMPTS PER URL BEFORE GIVING UP
           EDGAR_USE_PROXY / EDGAR_PROXY_URL / EDGAR_PROXY_USER / EDGAR_PROXY_PASS
           EDGAR_DOWNLOAD_PERMIT: SKIP THE DOWNLOAD CONFIRMATION GATE
    """

    model_config = SettingsConfigDict(
        env_prefix="EDGAR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    user_agent: Optional[str] = Field(
        default=None,
        description="Caller identification, e.g. 'Jane Doe jane@example.com'",
    )

    base_url: str = Field(
        default="https://www.sec.gov", description="SEC EDGAR base URL"
    )

    # SEC allows at most 10 requests per second per client
    rate_limit_capacity: int = Field(
        default=10, ge=1, description="Requests allowed per rate window"
    )
    rate_limit_window: float = Field(
        default=1.0, gt=0, description="Rate window length (seconds)"
    )

    # Each proxy exit is isolated, so a wider ceiling is acceptable
    proxy_rate_limit_capacity: int = Field(default=20, ge=1)
    proxy_rate_limit_window: float = Field(default=1.0, gt=0)

    max_attempts: int = Field(
        default=20, ge=1, description="Attempts per request before failing"
    )
    max_backoff: float = Field(
        default=60.0, ge=0, description="Upper bound of a retry delay (seconds)"
    )
    request_timeout: float = Field(
        default=30.0, gt=0, description="Per-attempt request timeout (seconds)"
    )

    max_workers: int = Field(
        default=8, ge=1, description="Filings processed concurrently"
    )

    use_proxy: bool = Field(default=False, description="Route requests via a proxy")
    proxy_url: Optional[str] = Field(default=None)
    proxy_user: Optional[str] = Field(default=None)
    proxy_pass: Optional[str] = Field(default=None)

    download_permit: bool = Field(
        default=False,
        description="Download without asking for confirmation",
    )


class StorageSettings(BaseSettings):
    """
    Configuration for the on-disk cache.

    Every namespace lives under data_dir. The cache directories are the
    single source of truth for work that is already done.

    Environment Variables:
           EDGAR_STORAGE_DATA_DIR: Root directory of all cached artefacts
    """

    model_config = SettingsConfigDict(
        env_prefix="EDGAR_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    data_dir: Path = Field(default=DATA_DIR, description="Cache root directory")

    master_index_dir: str = Field(default="edgar_MasterIndex")
    daily_index_dir: str = Field(default="edgar_DailyMaster")
    filings_dir: str = Field(default="edgar_Filings")
    business_descr_dir: str = Field(default="edgar_BusinDescr")
    mgmt_disc_dir: str = Field(default="edgar_MgmtDisc")
    search_dir: str = Field(default="edgar_searchFilings")

    def path(self, namespace: str) -> Path:
        """Absolute path of a cache namespace (not created)."""
        return Path(self.data_dir) / getattr(self, namespace)


class LexiconSettings(BaseSettings):
    """
    Location of the sentiment lexicon dataset.

    The lexicon is an external, read-only dataset: a CSV with `word` and
    `category` columns plus a plain stop-word list (one word per line).

    Environment Variables:
           EDGAR_LEXICON_PATH: Word/category CSV
           EDGAR_LEXICON_STOPWORDS_PATH: Stop-word list
    """

    model_config = SettingsConfigDict(
        env_prefix="EDGAR_LEXICON_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    path: Path = Field(default=LEXICON_DIR / "lexicon.csv")
    stopwords_path: Path = Field(default=LEXICON_DIR / "stopwords.txt")


""" MAIN Settings Class"""


class Settings(BaseSettings):
    """
    Main Settings class that aggregates all settings.

    Usage:
        from configs.config import settings

        agent = settings.edgar.user_agent
        root = settings.storage.data_dir

    Environment:
        All settings can be overriden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    edgar: EdgarSettings = Field(default_factory=EdgarSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    lexicon: LexiconSettings = Field(default_factory=LexiconSettings)

    debug: bool = Field(default=False, description="Enable debug mode")

    log_level: str = Field(default="INFO", description="Logging level")


settings = Settings()


def validate_settings(config: Optional[Settings] = None) -> list[str]:
    """
    Validate settings and return list of warnings.

    Returns:
        List of warning messages for missing/invalid configuration.
    """
    config = config or settings
    warnings = []

    if not config.edgar.user_agent:
        warnings.append(
            "EDGAR_USER_AGENT not set. Every download will be refused. "
            "Use the form 'Your Name Contact@domain.com'."
        )

    if config.edgar.use_proxy and not (
        config.edgar.proxy_url and config.edgar.proxy_user and config.edgar.proxy_pass
    ):
        warnings.append(
            "EDGAR_USE_PROXY is set but proxy url/user/pass are incomplete."
        )

    if not Path(config.lexicon.path).exists():
        warnings.append(
            f"Lexicon not found at {config.lexicon.path}. Sentiment scoring will not work."
        )
    return warnings


""" MODULE EXPORTS """

__all__ = [
    "settings",
    "Settings",
    "EdgarSettings",
    "StorageSettings",
    "LexiconSettings",
    "validate_settings",
    "PROJECT_ROOT",
    "DATA_DIR",
]
