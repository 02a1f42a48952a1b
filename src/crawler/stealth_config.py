"""
Stealth Configuration - browser fingerprint and anti-detection settings

Key Features:
1. Chrome User-Agent built from the latest stable Chrome release
2. Korean locale / timezone fingerprint with matching client hints
3. Anti-automation launch arguments
4. playwright-stealth evasions tuned to the Korean fingerprint
"""

from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
import logging

import httpx
from playwright_stealth import Stealth

from .config import CrawlerConfig


logger = logging.getLogger(__name__)

DEFAULT_CHROME_VERSION = "139.0.0.0"

CHROME_RELEASES_URL = (
    "https://chromiumdash.appspot.com/fetch_releases?channel=Stable&platform=Windows&num=1"
)

USER_AGENT_TEMPLATE = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/{version} Safari/537.36"
)

DEFAULT_VIEWPORT = {"width": 1920, "height": 1080}

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",  # hides navigator.webdriver
    "--disable-web-security",
    "--disable-features=VizDisplayCompositor",
]

NAVIGATOR_PLATFORM = "MacIntel"  # matches the macOS user agent


@dataclass(frozen=True)
class StealthFingerprint:
    """Browser-exposed properties presented to the target site."""
    user_agent: str
    viewport: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_VIEWPORT))
    locale: str = "ko-KR"
    timezone_id: str = "Asia/Seoul"
    extra_headers: Dict[str, str] = field(default_factory=dict)

    def context_options(self) -> Dict[str, Any]:
        """Keyword arguments for ``browser.new_context``."""
        return {
            "viewport": dict(self.viewport),
            "user_agent": self.user_agent,
            "locale": self.locale,
            "timezone_id": self.timezone_id,
            "extra_http_headers": dict(self.extra_headers),
            "java_script_enabled": True,
            "ignore_https_errors": True,
        }


def major_version(version: str) -> str:
    return version.split(".", 1)[0]


def build_extra_headers(chrome_version: str, locale: str = "ko-KR") -> Dict[str, str]:
    """Request headers consistent with the spoofed Chrome version."""
    major = major_version(chrome_version)
    language = locale.split("-", 1)[0]
    return {
        "Accept-Language": f"{locale},{language};q=0.9,en;q=0.8",
        "Accept": (
            "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
        ),
        "Cache-Control": "max-age=0",
        "Sec-Ch-Ua": f'"Google Chrome";v="{major}", "Chromium";v="{major}", "Not A(Brand";v="99"',
        "Sec-Ch-Ua-Mobile": "?0",
        "Sec-Ch-Ua-Platform": '"macOS"',
        "Upgrade-Insecure-Requests": "1",
    }


async def fetch_latest_chrome_version(client: Optional[httpx.AsyncClient] = None) -> str:
    """
    Latest stable Chrome version

    Falls back to DEFAULT_CHROME_VERSION when the release feed is unreachable.
    """
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=5.0)
    try:
        response = await client.get(CHROME_RELEASES_URL)
        if response.status_code == 200:
            releases = response.json()
            if releases and isinstance(releases, list):
                release = releases[0]
                version = release.get("previous_version") or release.get("version")
                if version:
                    return version
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Chrome version lookup failed, using default: %s", exc)
    finally:
        if owns_client:
            await client.aclose()
    return DEFAULT_CHROME_VERSION


async def build_fingerprint(
    config: CrawlerConfig,
    client: Optional[httpx.AsyncClient] = None,
) -> StealthFingerprint:
    """
    Build the stealth fingerprint for a new session

    Priority: explicit user agent > pinned Chrome version > release feed.
    """
    chrome_version = config.chrome_version or await fetch_latest_chrome_version(client)
    user_agent = config.user_agent or USER_AGENT_TEMPLATE.format(version=chrome_version)
    return StealthFingerprint(
        user_agent=user_agent,
        locale=config.locale,
        timezone_id=config.timezone_id,
        extra_headers=build_extra_headers(chrome_version, config.locale),
    )


def get_launch_args(user_agent: Optional[str] = None) -> List[str]:
    """Chromium launch arguments."""
    args = list(LAUNCH_ARGS)
    if user_agent:
        args.append(f"--user-agent={user_agent}")
    return args


def build_stealth(config: CrawlerConfig) -> Stealth:
    """playwright-stealth evasions consistent with the session fingerprint."""
    language = config.locale.split("-", 1)[0]
    return Stealth(
        navigator_platform_override=NAVIGATOR_PLATFORM,
        navigator_languages_override=(config.locale, language),
    )


async def apply_stealth(target: Any, config: CrawlerConfig) -> None:
    """Install the evasion scripts on a page or browser context before navigation."""
    await build_stealth(config).apply_stealth_async(target)
