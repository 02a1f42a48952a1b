"""
Browser session lifecycle tests.
"""

import asyncio
import sys
from pathlib import Path

import pytest


project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fakes import FakePlaywrightFactory


def make_manager(**factory_kwargs):
    from src.crawler.config import CrawlerConfig
    from src.crawler.session import BrowserSessionManager

    factory = FakePlaywrightFactory(**factory_kwargs)
    config = CrawlerConfig(chrome_version="139.0.0.0", headless=True, max_concurrent_pages=3)
    return BrowserSessionManager(config, playwright_factory=factory), factory


def test_acquire_is_idempotent() -> bool:
    manager, factory = make_manager()

    async def scenario():
        first = await manager.acquire_session()
        second = await manager.acquire_session()
        return first, second

    first, second = asyncio.run(scenario())

    assert first is second
    assert factory.start_calls == 1
    assert manager.launch_count == 1
    return True


def test_fingerprint_and_launch_arguments() -> bool:
    manager, factory = make_manager()

    session = asyncio.run(manager.acquire_session())

    launch = factory.launch_kwargs[0]
    assert launch["headless"] is True
    assert "--disable-blink-features=AutomationControlled" in launch["args"]
    assert any(arg.startswith("--user-agent=") and "Chrome/139.0.0.0" in arg for arg in launch["args"])

    options = factory.browsers[0].context_options
    assert options["locale"] == "ko-KR"
    assert options["timezone_id"] == "Asia/Seoul"
    assert options["viewport"] == {"width": 1920, "height": 1080}
    assert options["extra_http_headers"]["Sec-Ch-Ua"].startswith('"Google Chrome";v="139"')
    assert session.context.init_scripts
    return True


def test_page_pool_fails_fast_when_full() -> bool:
    from src.crawler.errors import CapacityExceeded

    manager, _ = make_manager()

    async def scenario():
        session = await manager.acquire_session()
        handles = [await manager.open_page(session) for _ in range(3)]
        with pytest.raises(CapacityExceeded):
            await manager.open_page(session)
        assert session.active_pages == 3

        await handles[0].close()
        await handles[0].close()
        assert session.active_pages == 2

        await manager.open_page(session)
        assert session.active_pages == 3

    asyncio.run(scenario())
    return True


def test_teardown_twice_is_a_noop() -> bool:
    manager, factory = make_manager()

    async def scenario():
        session = await manager.acquire_session()
        context = session.context
        await manager.teardown()
        await manager.teardown()
        return context

    context = asyncio.run(scenario())

    assert context.close_calls == 1
    assert factory.browsers[0].close_calls == 1
    assert factory.playwrights[0].stop_calls == 1
    assert manager.session is None
    return True


def test_teardown_resets_handles_when_close_fails() -> bool:
    manager, factory = make_manager(context_close_error=RuntimeError("Target closed"))

    async def scenario():
        session = await manager.acquire_session()
        await manager.teardown()
        assert session.browser is None
        assert session.context is None
        assert session.active_pages == 0
        assert manager.session is None
        return await manager.acquire_session()

    fresh = asyncio.run(scenario())

    assert fresh.is_connected()
    assert factory.start_calls == 2
    assert factory.browsers[0].close_calls == 1
    return True


def test_disconnected_browser_is_relaunched() -> bool:
    manager, factory = make_manager()

    async def scenario():
        first = await manager.acquire_session()
        factory.browsers[0].connected = False
        return first, await manager.acquire_session()

    first, second = asyncio.run(scenario())

    assert first is not second
    assert factory.start_calls == 2
    return True


def test_launch_failure_raises_launch_error() -> bool:
    from src.crawler.errors import LaunchError

    manager, factory = make_manager(launch_error=RuntimeError("chromium missing"))

    with pytest.raises(LaunchError):
        asyncio.run(manager.acquire_session())

    assert manager.session is None
    assert factory.playwrights[0].stop_calls == 1
    assert manager.get_status()["isActive"] is False
    return True
