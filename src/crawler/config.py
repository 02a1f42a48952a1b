"""
Config - environment driven crawler settings.

Values are read from the process environment (a local ``.env`` file is
loaded first). Every getter has a default so the engine runs without any
configuration.
"""

from dataclasses import dataclass
from typing import Optional
import os

from dotenv import load_dotenv


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def get_headless() -> bool:
    """Run Chromium headless, default true."""
    return _env_bool("CRAWLER_HEADLESS", "true")


def get_max_concurrent_pages() -> int:
    """Page pool cap per browser session, default 3."""
    return int(os.getenv("MAX_CONCURRENT_PAGES", "3"))


def get_navigation_timeout_ms() -> int:
    """Timeout for a single navigation, default 60s."""
    return int(os.getenv("NAVIGATION_TIMEOUT_MS", "60000"))


def get_max_pages_limit() -> int:
    """Hard upper bound for the max pages setting, default 100."""
    return int(os.getenv("MAX_PAGES_LIMIT", "100"))


@dataclass
class CrawlerConfig:
    """Crawler runtime configuration."""
    headless: bool = True
    chrome_version: Optional[str] = None
    user_agent: Optional[str] = None
    max_concurrent_pages: int = 3
    navigation_timeout_ms: int = 60000
    payload_wait_ms: int = 10000
    payload_poll_ms: int = 500
    default_max_pages: int = 10
    default_max_items: int = 2000
    max_pages_limit: int = 100
    locale: str = "ko-KR"
    timezone_id: str = "Asia/Seoul"
    max_parallel_jobs: int = 3
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "CrawlerConfig":
        """Build a config from environment variables."""
        load_dotenv()
        return cls(
            headless=get_headless(),
            chrome_version=os.getenv("CHROME_VERSION") or None,
            user_agent=os.getenv("CRAWLER_USER_AGENT") or None,
            max_concurrent_pages=get_max_concurrent_pages(),
            navigation_timeout_ms=get_navigation_timeout_ms(),
            payload_wait_ms=int(os.getenv("PAYLOAD_WAIT_MS", "10000")),
            payload_poll_ms=int(os.getenv("PAYLOAD_POLL_MS", "500")),
            default_max_pages=int(os.getenv("DEFAULT_MAX_PAGES", "10")),
            default_max_items=int(os.getenv("DEFAULT_MAX_ITEMS", "2000")),
            max_pages_limit=get_max_pages_limit(),
            locale=os.getenv("CRAWLER_LOCALE", "ko-KR"),
            timezone_id=os.getenv("CRAWLER_TIMEZONE", "Asia/Seoul"),
            max_parallel_jobs=int(os.getenv("MAX_PARALLEL_JOBS", "3")),
            log_level=os.getenv("CRAWLER_LOG_LEVEL", "INFO").upper(),
        )

    @property
    def payload_max_polls(self) -> int:
        """Number of payload polls before falling back to the DOM."""
        if self.payload_poll_ms <= 0:
            return 0
        return max(1, self.payload_wait_ms // self.payload_poll_ms)
