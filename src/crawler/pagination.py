"""
Pagination Driver - the crawl control loop as a LangGraph state machine

    START → initialize → fetch_page → decide ─┬→ next_page ─┬→ fetch_page
                                              │             └→ complete
                                              └→ complete → END

- initialize: classify the target, acquire the session, open and configure a
  page, attach the network listener before the first navigation
- fetch_page: navigate (URL mode, or page 1), extract, filter, accumulate up
  to ``max_items``, emit one progress event; page-transient errors skip the page
- decide: stop predicate, item cutoff, page cutoff, empty page
- next_page: URL-parameter mutation or "next" control click
- complete: single terminal success event

Fatal errors escape the graph; ``run`` emits the terminal error event and
re-raises. The browser session is torn down on every exit path.
"""

from typing import Awaitable, Callable, List, Optional, Union
from dataclasses import replace
from datetime import datetime
import inspect
import logging

from langgraph.graph import StateGraph, END, START

from src.models.crawl import (
    CrawlPhase,
    CrawlRunState,
    CrawlSettings,
    ExtractedRecord,
    PageResult,
    PaginationMode,
    ProgressEvent,
    TargetKind,
    UrlShape,
)
from .config import CrawlerConfig
from .errors import ExtractionError, FatalCrawlError, PageBlocked
from .extractor import DualExtractor, NetworkCapture, estimate_total_pages, register_network_listener
from .logging_utils import log_event
from .navigator import NavigationOptions, StealthNavigator
from .progress import ProgressEmitter
from .selector_library import API_MATCHERS, get_next_controls
from .session import BrowserSessionManager
from .site_classifier import SiteUrlClassifier
from .state import (
    CrawlGraphState,
    build_page_url,
    create_initial_state,
    route_after_decide,
    route_after_next_page,
)


logger = logging.getLogger(__name__)

StopPredicate = Callable[[], Union[bool, Awaitable[bool]]]


class PaginationDriver:
    """
    Sequential page-by-page crawl of one target

    One driver runs one job; collaborators are injected so the state machine
    can be exercised with fakes.
    """

    def __init__(
        self,
        session_manager: Optional[BrowserSessionManager] = None,
        navigator: Optional[StealthNavigator] = None,
        extractor: Optional[DualExtractor] = None,
        emitter: Optional[ProgressEmitter] = None,
        config: Optional[CrawlerConfig] = None,
        stop_predicate: Optional[StopPredicate] = None,
    ):
        self.config = config or CrawlerConfig()
        self.session_manager = session_manager or BrowserSessionManager(self.config)
        self.navigator = navigator or StealthNavigator(self.config)
        self.extractor = extractor or DualExtractor(self.config)
        self.emitter = emitter or ProgressEmitter()
        self.stop_predicate = stop_predicate
        self.run_state = CrawlRunState()
        self._page_handle = None
        self._graph = self._build_graph()

    def _build_graph(self):
        graph = StateGraph(CrawlGraphState)

        graph.add_node("initialize", self.initialize_node)
        graph.add_node("fetch_page", self.fetch_page_node)
        graph.add_node("decide", self.decide_node)
        graph.add_node("next_page", self.next_page_node)
        graph.add_node("complete", self.complete_node)

        graph.add_edge(START, "initialize")
        graph.add_edge("initialize", "fetch_page")
        graph.add_edge("fetch_page", "decide")

        graph.add_conditional_edges(
            "decide",
            route_after_decide,
            {
                "complete": "complete",
                "next_page": "next_page",
            }
        )
        graph.add_conditional_edges(
            "next_page",
            route_after_next_page,
            {
                "complete": "complete",
                "fetch_page": "fetch_page",
            }
        )

        graph.add_edge("complete", END)
        return graph.compile()

    async def run(self, target_url: str, settings: Optional[CrawlSettings] = None) -> List[ExtractedRecord]:
        """
        Crawl ``target_url`` until a stop condition holds

        Returns:
            Accumulated records in page-visit order

        Raises:
            FatalCrawlError: InvalidTarget, LaunchError or CapacityExceeded
        """
        settings = settings or CrawlSettings(
            max_pages=self.config.default_max_pages,
            max_items=self.config.default_max_items,
        )
        self.run_state = CrawlRunState(
            total_pages=settings.max_pages,
            phase=CrawlPhase.INITIALIZING,
            started_at=datetime.now(),
        )
        state = create_initial_state(target_url, settings, self.run_state)
        log_event(logger, logging.INFO, "crawl_started", url=target_url, max_pages=settings.max_pages, max_items=settings.max_items)

        try:
            final_state = await self._graph.ainvoke(
                state,
                config={"recursion_limit": 3 * settings.max_pages + 10},
            )
        except Exception as exc:
            self.run_state.phase = CrawlPhase.FAILED
            self.run_state.errors.append(str(exc))
            self.emitter.fail(str(exc))
            log_event(logger, logging.ERROR, "crawl_failed", url=target_url, error=str(exc), fatal=isinstance(exc, FatalCrawlError))
            raise
        finally:
            await self._release()
            await self.emitter.flush()

        self.run_state = final_state["run_state"]
        log_event(
            logger,
            logging.INFO,
            "crawl_completed",
            url=target_url,
            items=len(self.run_state.records),
            pages=self.run_state.current_page,
            reason=final_state.get("stop_reason"),
            errors=len(self.run_state.errors),
        )
        return list(self.run_state.records)

    async def _release(self) -> None:
        if self._page_handle is not None:
            await self._page_handle.close()
            self._page_handle = None
        await self.session_manager.teardown()

    # =========================================================================
    # Nodes
    # =========================================================================

    async def initialize_node(self, state: CrawlGraphState) -> CrawlGraphState:
        """
        Initialize node: target validation and page setup

        InvalidTarget is raised before any browser resource is requested.
        """
        run_state = state["run_state"]
        target = SiteUrlClassifier.build_target(state["target_url"], state["settings"])
        run_state.blog_id = target.blog_id

        session = await self.session_manager.acquire_session()
        handle = await self.session_manager.open_page(session)
        self._page_handle = handle
        state["page_handle"] = handle
        await self.navigator.configure_page(handle.page)

        matcher = API_MATCHERS.get(target.shape)
        capture = None
        if matcher:
            capture = NetworkCapture()
            register_network_listener(handle.page, matcher, capture.push)

        state["target"] = target
        state["capture"] = capture
        state["pending_url"] = target.base_url
        run_state.phase = CrawlPhase.FETCHING_PAGE
        log_event(
            logger,
            logging.INFO,
            "crawl_initialized",
            shape=target.shape.value,
            kind=target.kind.value,
            pagination=target.pagination.value,
            network_capture=bool(matcher),
        )
        return state

    async def fetch_page_node(self, state: CrawlGraphState) -> CrawlGraphState:
        """
        Fetch node: one page visit

        Page-transient errors are recorded and turn the page into a skipped
        page; fatal errors propagate.
        """
        run_state = state["run_state"]
        page_number = run_state.current_page
        run_state.phase = CrawlPhase.FETCHING_PAGE

        try:
            pending_url = state.get("pending_url")
            if pending_url:
                await self._navigate(state, pending_url)
            else:
                # reached by clicking "next"; navigate() already simulated otherwise
                await self.navigator.simulate_human_behavior(state["page_handle"].page)
            if page_number == 1:
                await self._prepare_first_page(state)
            result = await self._extract(state)
        except FatalCrawlError:
            raise
        except Exception as exc:
            message = f"Page {page_number}: {exc}"
            run_state.errors.append(message)
            self.emitter.emit_error(message)
            log_event(logger, logging.WARNING, "page_skipped", page=page_number, error=str(exc))
            result = PageResult(page_number=page_number, skipped=True, error=str(exc))

        state["pending_url"] = None
        state["last_result"] = result
        self._accumulate(state, result)
        return state

    async def decide_node(self, state: CrawlGraphState) -> CrawlGraphState:
        """Decide node: first matching stop condition wins."""
        run_state = state["run_state"]
        target = state["target"]
        result = state["last_result"]
        run_state.phase = CrawlPhase.DECIDING

        if await self._stop_requested():
            run_state.stop_requested = True
            reason = "stopped"
        elif len(run_state.records) >= target.max_items:
            reason = "max_items"
        elif run_state.current_page >= target.max_pages:
            reason = "max_pages"
        elif result is not None and not result.skipped and result.items_found == 0:
            reason = "no_results"
        else:
            reason = None

        state["stop_reason"] = reason
        if reason:
            log_event(logger, logging.INFO, "pagination_stopped", page=run_state.current_page, reason=reason)
        return state

    async def next_page_node(self, state: CrawlGraphState) -> CrawlGraphState:
        """Next-page node: advance by URL mutation or by clicking "next"."""
        run_state = state["run_state"]
        target = state["target"]
        next_number = run_state.current_page + 1
        run_state.phase = CrawlPhase.NEXT_PAGE_NAVIGATION

        if target.pagination == PaginationMode.URL_PARAM:
            run_state.current_page = next_number
            state["pending_url"] = build_page_url(target, next_number)
            return state

        capture = state.get("capture")
        if capture is not None:
            capture.clear()
        try:
            clicked = await self.navigator.click_next(
                state["page_handle"].page,
                get_next_controls(target.shape, next_number),
            )
        except Exception as exc:
            message = f"Page {next_number}: next control failed: {exc}"
            run_state.errors.append(message)
            self.emitter.emit_error(message)
            clicked = False

        if not clicked:
            state["stop_reason"] = "no_next_control"
            log_event(logger, logging.INFO, "pagination_stopped", page=run_state.current_page, reason="no_next_control")
            return state

        run_state.current_page = next_number
        return state

    async def complete_node(self, state: CrawlGraphState) -> CrawlGraphState:
        """Complete node: terminal success event with the full result list."""
        run_state = state["run_state"]
        run_state.phase = CrawlPhase.COMPLETED
        self.emitter.complete(
            run_state.records,
            current_page=run_state.current_page,
            total_pages=run_state.total_pages,
            items_found=run_state.items_found,
            message=f"Crawl completed: {len(run_state.records)} items from {run_state.current_page} pages",
        )
        return state

    # =========================================================================
    # Steps
    # =========================================================================

    async def _navigate(self, state: CrawlGraphState, url: str) -> None:
        run_state = state["run_state"]
        capture = state.get("capture")
        if capture is not None:
            capture.clear()

        referer = None
        if run_state.current_page > 1:
            referer = build_page_url(state["target"], run_state.current_page - 1)

        outcome = await self.navigator.navigate(
            state["page_handle"].page,
            url,
            NavigationOptions(timeout=self.config.navigation_timeout_ms, referer=referer),
        )
        if outcome.blocked:
            raise PageBlocked(url, outcome.status)

    async def _prepare_first_page(self, state: CrawlGraphState) -> None:
        """Sort control and total-page estimate, both best effort."""
        target = state["target"]
        run_state = state["run_state"]
        page = state["page_handle"].page

        if target.shape == UrlShape.SHOP_PRODUCT and target.sort is not None:
            await self.navigator.apply_sort(page, target.sort)

        if target.kind == TargetKind.BLOG:
            try:
                post_count = await self.extractor.read_total_count(page)
            except Exception as exc:
                logger.debug("Post count lookup failed: %s", exc)
                post_count = None
            if post_count:
                run_state.total_pages = estimate_total_pages(post_count, target.max_pages)

    async def _extract(self, state: CrawlGraphState) -> PageResult:
        target = state["target"]
        try:
            return await self.extractor.extract_page(
                state["page_handle"].page,
                target.kind,
                state["run_state"],
                state.get("capture"),
            )
        except Exception as exc:
            raise ExtractionError(str(exc)) from exc

    def _accumulate(self, state: CrawlGraphState, result: PageResult) -> None:
        """Append filtered records up to ``max_items``; emit one progress event."""
        run_state = state["run_state"]
        target = state["target"]

        if result.total_pages_hint:
            run_state.total_pages = min(result.total_pages_hint, target.max_pages)
        run_state.items_found += result.items_found

        for record in result.records:
            if len(run_state.records) >= target.max_items:
                break
            if not target.filters.matches(record):
                continue
            record = replace(record, page_number=result.page_number, item_order=len(run_state.records) + 1)
            run_state.records.append(record)
            self.emitter.emit_item(record)

        if result.skipped:
            message = f"Page {result.page_number} skipped: {result.error}"
        else:
            message = f"Page {result.page_number}: {result.items_found} items ({result.source.value})"

        self.emitter.emit(ProgressEvent(
            current_page=result.page_number,
            total_pages=run_state.total_pages,
            items_found=run_state.items_found,
            items_crawled=len(run_state.records),
            message=message,
        ))

    async def _stop_requested(self) -> bool:
        if self.run_state.stop_requested:
            return True
        if self.stop_predicate is None:
            return False
        try:
            result = self.stop_predicate()
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            logger.warning("Stop predicate failed: %s", exc)
            return False
        return bool(result)
