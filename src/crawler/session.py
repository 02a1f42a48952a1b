"""
Browser Session Manager - one Chromium process, one context, a bounded page pool

Responsibilities:
1. Lazy, idempotent browser launch with stealth arguments
2. Single browsing context carrying the stealth fingerprint
3. Page pool capped by ``max_concurrent_pages`` (fails fast, never queues)
4. Idempotent teardown that always resets internal handles
"""

from typing import Any, Callable, Optional
from dataclasses import dataclass
import logging

from playwright.async_api import async_playwright

from .config import CrawlerConfig
from .errors import CapacityExceeded, LaunchError
from .logging_utils import log_event
from .stealth_config import (
    StealthFingerprint,
    apply_stealth,
    build_fingerprint,
    get_launch_args,
)


logger = logging.getLogger(__name__)


@dataclass
class CrawlSession:
    """Live browser session state, owned by BrowserSessionManager."""
    playwright: Any
    browser: Any
    context: Any
    fingerprint: StealthFingerprint
    max_concurrent_pages: int = 3
    active_pages: int = 0

    def is_connected(self) -> bool:
        try:
            return bool(self.browser and self.browser.is_connected())
        except Exception:
            return False


class PageHandle:
    """A pooled page; ``close()`` returns its slot to the pool."""

    def __init__(self, page: Any, on_close: Callable[[], None]):
        self.page = page
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self.page.close()
        except Exception as exc:
            logger.warning("Page close failed: %s", exc)
        finally:
            self._on_close()


class BrowserSessionManager:
    """
    Browser session lifecycle

    Each crawl job owns one manager; no state is shared between jobs.
    """

    def __init__(
        self,
        config: Optional[CrawlerConfig] = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ):
        self.config = config or CrawlerConfig()
        self._playwright_factory = playwright_factory
        self._session: Optional[CrawlSession] = None
        self._terminating = False
        self.launch_count = 0

    @property
    def session(self) -> Optional[CrawlSession]:
        return self._session

    async def acquire_session(self, config: Optional[CrawlerConfig] = None) -> CrawlSession:
        """
        Return the live session, launching a browser if needed

        Raises:
            LaunchError: Browser process or context could not be created
        """
        if config is not None:
            self.config = config

        if self._session is not None:
            if self._session.is_connected():
                return self._session
            log_event(logger, logging.WARNING, "browser_disconnected")
            await self.teardown()

        playwright = None
        browser = None
        try:
            fingerprint = await build_fingerprint(self.config)
            playwright = await self._playwright_factory().start()
            browser = await playwright.chromium.launch(
                headless=self.config.headless,
                args=get_launch_args(fingerprint.user_agent),
                timeout=30000,
            )
            context = await browser.new_context(**fingerprint.context_options())
            await apply_stealth(context, self.config)
        except Exception as exc:
            log_event(logger, logging.ERROR, "browser_launch_failed", error=str(exc))
            await self._close_quietly(browser, playwright)
            raise LaunchError(f"Browser launch failed: {exc}") from exc

        self.launch_count += 1
        self._session = CrawlSession(
            playwright=playwright,
            browser=browser,
            context=context,
            fingerprint=fingerprint,
            max_concurrent_pages=self.config.max_concurrent_pages,
        )
        log_event(
            logger,
            logging.INFO,
            "browser_launched",
            user_agent=fingerprint.user_agent,
            viewport=fingerprint.viewport,
        )
        return self._session

    async def open_page(self, session: Optional[CrawlSession] = None) -> PageHandle:
        """
        Open a pooled page

        Raises:
            CapacityExceeded: Pool already holds ``max_concurrent_pages`` pages
        """
        session = session or await self.acquire_session()
        if session.active_pages >= session.max_concurrent_pages:
            raise CapacityExceeded(session.max_concurrent_pages)

        # Reserve the slot before awaiting so concurrent callers see it
        session.active_pages += 1
        try:
            page = await session.context.new_page()
        except Exception:
            session.active_pages = max(0, session.active_pages - 1)
            raise

        def release() -> None:
            session.active_pages = max(0, session.active_pages - 1)
            logger.debug("Page released, active pages: %d", session.active_pages)

        logger.debug("Page opened, active pages: %d", session.active_pages)
        return PageHandle(page, release)

    async def teardown(self, session: Optional[CrawlSession] = None) -> None:
        """Close context, then browser, then Playwright. Safe to call twice."""
        target = session or self._session
        if target is None or self._terminating:
            return

        self._terminating = True
        try:
            if target.context is not None:
                try:
                    await target.context.close()
                except Exception as exc:
                    logger.warning("Context close failed: %s", exc)
            await self._close_quietly(target.browser, target.playwright)
            log_event(logger, logging.INFO, "browser_closed")
        finally:
            target.context = None
            target.browser = None
            target.playwright = None
            target.active_pages = 0
            if target is self._session:
                self._session = None
            self._terminating = False

    async def _close_quietly(self, browser: Any, playwright: Any) -> None:
        if browser is not None:
            try:
                if browser.is_connected():
                    await browser.close()
            except Exception as exc:
                logger.warning("Browser close failed: %s", exc)
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as exc:
                logger.warning("Playwright stop failed: %s", exc)

    def get_status(self) -> dict:
        """Session status snapshot."""
        session = self._session
        return {
            "isActive": bool(session and session.is_connected()),
            "activePagesCount": session.active_pages if session else 0,
            "isTerminating": self._terminating,
            "launchCount": self.launch_count,
        }
