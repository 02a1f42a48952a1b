"""
Stealth Navigator - rate-limited navigation with human-behavior simulation

Navigation sequence:
1. Pre-navigation random delay (1-3s)
2. ``page.goto`` with caller wait condition, timeout and referer
3. Status classification: 403/429 triggers an extended backoff (10-20s);
   navigation exceptions trigger a longer backoff (15-30s) and re-raise

Retries are the pagination driver's business, not the navigator's.
"""

from typing import Any, Awaitable, Callable, Iterable, Optional
from dataclasses import dataclass
import asyncio
import logging
import random

from src.models.crawl import ReviewSort
from .config import CrawlerConfig
from .logging_utils import log_event
from .stealth_config import apply_stealth


logger = logging.getLogger(__name__)

PRE_NAVIGATION_DELAY_MS = (1000, 3000)
BLOCKED_BACKOFF_MS = (10000, 20000)
FAILURE_BACKOFF_MS = (15000, 30000)
BLOCK_STATUSES = {403, 429}

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class NavigationOptions:
    """Per-call navigation options."""
    wait_until: str = "domcontentloaded"
    timeout: Optional[int] = None
    referer: Optional[str] = None
    simulate_human: bool = True


@dataclass
class NavigationOutcome:
    """Classified result of one navigation."""
    url: str
    status: Optional[int] = None
    final_url: Optional[str] = None

    @property
    def blocked(self) -> bool:
        return self.status in BLOCK_STATUSES

    @property
    def ok(self) -> bool:
        return self.status is None or 200 <= self.status < 400


@dataclass
class HumanBehaviorOptions:
    """Which simulation steps to run."""
    scroll: bool = True
    mouse_move: bool = True
    random_wait: bool = True


@dataclass
class NonCriticalResult:
    """Outcome of a best-effort step. Never raised, only reported."""
    name: str
    succeeded: bool
    error: Optional[str] = None


async def run_non_critical(name: str, operation: Callable[[], Awaitable[Any]]) -> NonCriticalResult:
    """
    Run a best-effort operation

    Failures are logged and folded into the result; the caller's control
    flow never sees them.
    """
    try:
        await operation()
        return NonCriticalResult(name=name, succeeded=True)
    except Exception as exc:
        log_event(logger, logging.DEBUG, "non_critical_failed", step=name, error=str(exc))
        return NonCriticalResult(name=name, succeeded=False, error=str(exc))


SORT_LABELS = {
    ReviewSort.RANKING: "랭킹순",
    ReviewSort.LATEST: "최신순",
    ReviewSort.HIGH_RATING: "평점 높은순",
    ReviewSort.LOW_RATING: "평점 낮은순",
}


class StealthNavigator:
    """
    Stealth navigation for a single page

    ``sleep`` and ``rng`` are injectable so delays can be observed in tests.
    """

    def __init__(
        self,
        config: Optional[CrawlerConfig] = None,
        sleep: SleepFn = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or CrawlerConfig()
        self._sleep = sleep
        self._rng = rng or random.Random()

    def random_ms(self, min_ms: int, max_ms: int) -> int:
        """Uniform integer in [min_ms, max_ms)."""
        if max_ms <= min_ms:
            return min_ms
        return self._rng.randrange(min_ms, max_ms)

    async def random_wait(self, min_ms: int, max_ms: int) -> int:
        delay = self.random_ms(min_ms, max_ms)
        await self._sleep(delay / 1000)
        return delay

    async def configure_page(self, page: Any) -> None:
        """Apply playwright-stealth evasions and timeouts. Must run before the first navigation."""
        timeout = self.config.navigation_timeout_ms
        page.set_default_timeout(timeout)
        page.set_default_navigation_timeout(timeout)
        await apply_stealth(page, self.config)

    async def navigate(
        self,
        page: Any,
        url: str,
        options: Optional[NavigationOptions] = None,
    ) -> NavigationOutcome:
        """
        Navigate with stealth pacing

        Returns:
            NavigationOutcome; ``blocked`` is set for 403/429 after backoff

        Raises:
            Exception: Any navigation failure, re-raised after a long backoff
        """
        options = options or NavigationOptions()
        timeout = options.timeout or self.config.navigation_timeout_ms

        await self.random_wait(*PRE_NAVIGATION_DELAY_MS)

        try:
            goto_kwargs = {"wait_until": options.wait_until, "timeout": timeout}
            if options.referer:
                goto_kwargs["referer"] = options.referer
            response = await page.goto(url, **goto_kwargs)
        except Exception as exc:
            delay = await self.random_wait(*FAILURE_BACKOFF_MS)
            log_event(logger, logging.WARNING, "navigation_failed", url=url, error=str(exc), backoff_ms=delay)
            raise

        outcome = NavigationOutcome(
            url=url,
            status=response.status if response is not None else None,
            final_url=getattr(page, "url", url),
        )

        if outcome.blocked:
            delay = await self.random_wait(*BLOCKED_BACKOFF_MS)
            log_event(logger, logging.WARNING, "navigation_blocked", url=url, status=outcome.status, backoff_ms=delay)
            return outcome

        if options.simulate_human:
            await self.simulate_human_behavior(page)
        return outcome

    async def simulate_human_behavior(
        self,
        page: Any,
        options: Optional[HumanBehaviorOptions] = None,
    ) -> NonCriticalResult:
        """Pointer moves, one scroll and random pauses. Never raises."""
        options = options or HumanBehaviorOptions()

        async def simulate() -> None:
            viewport = page.viewport_size or {"width": 1920, "height": 1080}
            width, height = viewport["width"], viewport["height"]

            if options.mouse_move:
                for _ in range(self._rng.randint(2, 4)):
                    x = width * self._rng.uniform(0.3, 0.7)
                    y = height * self._rng.uniform(0.2, 0.5)
                    await page.mouse.move(x, y, steps=self._rng.randint(3, 8))
                    if options.random_wait:
                        await self.random_wait(16, 142)

            if options.scroll:
                await page.mouse.wheel(0, self._rng.randint(300, 800))

            if options.random_wait:
                await self.random_wait(700, 1400)

        return await run_non_critical("simulate_human_behavior", simulate)

    async def click_next(self, page: Any, selectors: Iterable[str]) -> bool:
        """
        Invoke an enabled "next page" control

        Controls are searched in every frame (blog lists live in an iframe).

        Returns:
            True when a control was clicked, False when none is available
        """
        for selector in selectors:
            for frame in _frames(page):
                try:
                    element = await frame.query_selector(selector)
                except Exception as exc:
                    logger.debug("Selector %s failed: %s", selector, exc)
                    continue
                if element is None or await _is_disabled(element):
                    continue

                await run_non_critical("hover_next", lambda: _hover(element))
                await self.random_wait(300, 600)
                await element.click()
                await run_non_critical(
                    "wait_after_next",
                    lambda: page.wait_for_load_state("networkidle", timeout=10000),
                )
                await self.random_wait(1500, 2500)
                log_event(logger, logging.INFO, "next_control_clicked", selector=selector)
                return True
        return False

    async def apply_sort(self, page: Any, sort: ReviewSort) -> NonCriticalResult:
        """Click the review sort control matching ``sort``. Best effort."""
        label = SORT_LABELS[sort]

        async def click_sort() -> None:
            locator = page.get_by_role("link", name=label)
            await locator.first.click(timeout=5000)
            await page.wait_for_load_state("networkidle", timeout=10000)
            await self.random_wait(500, 1000)

        return await run_non_critical("apply_sort", click_sort)


def _frames(page: Any) -> list:
    frames = list(getattr(page, "frames", None) or [])
    return frames or [page]


async def _is_disabled(element: Any) -> bool:
    if (await element.get_attribute("aria-disabled")) == "true":
        return True
    classes = (await element.get_attribute("class")) or ""
    return "disabled" in classes.split()


async def _hover(element: Any) -> None:
    await element.scroll_into_view_if_needed()
    await element.hover()
