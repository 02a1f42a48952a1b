"""
Progress emitter tests.
"""

import asyncio
import sys
from pathlib import Path


project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


def make_event(page):
    from src.models.crawl import ProgressEvent

    return ProgressEvent(current_page=page, total_pages=3, items_found=page * 5, items_crawled=page * 5, message=f"page {page}")


def test_sink_failure_is_swallowed() -> bool:
    from src.crawler.progress import ProgressEmitter

    def broken_sink(event):
        raise ConnectionError("client went away")

    emitter = ProgressEmitter(progress_sink=broken_sink, error_sink=broken_sink)

    emitter.emit(make_event(1))
    emitter.emit_error("Page 2: HTTP 429")
    assert emitter.complete([], current_page=1) is True
    assert emitter.progress_count == 1
    return True


def test_exactly_one_terminal_event() -> bool:
    from src.crawler.progress import ProgressEmitter

    received = []
    emitter = ProgressEmitter(progress_sink=received.append)

    emitter.emit(make_event(1))
    assert emitter.complete([], current_page=1) is True
    assert emitter.fail("late failure") is False
    emitter.emit(make_event(2))

    assert len(received) == 2
    assert received[-1]["isComplete"] is True
    assert "error" not in received[-1]
    assert emitter.terminal.is_success
    return True


def test_terminal_payload_shapes() -> bool:
    from src.models.crawl import ExtractedRecord, TerminalEvent

    record = ExtractedRecord(identifier="1", title="t", page_number=1, item_order=1)
    success = TerminalEvent(results=[record], current_page=1, total_pages=1, items_found=1).to_dict()
    failure = TerminalEvent(error="Invalid target URL: x").to_dict()

    assert success["isComplete"] is True
    assert success["totalCount"] == 1
    assert success["results"][0]["itemId"] == "1"
    assert "error" not in success
    assert failure == {"error": "Invalid target URL: x", "isComplete": True}
    return True


def test_channel_preserves_order_and_ends_after_terminal() -> bool:
    from src.crawler.progress import EventChannel, ProgressEmitter

    async def scenario():
        channel = EventChannel()
        emitter = ProgressEmitter(channel=channel)
        for page in (1, 2, 3):
            emitter.emit(make_event(page))
        emitter.fail("browser crashed")
        emitter.emit(make_event(4))
        return [event async for event in channel]

    events = asyncio.run(scenario())

    assert [e.kind for e in events] == ["progress", "progress", "progress", "terminal"]
    assert [e.data.get("currentPage") for e in events[:3]] == [1, 2, 3]
    assert events[-1].data == {"error": "browser crashed", "isComplete": True}
    return True


def test_async_sinks_are_delivered_without_blocking() -> bool:
    from src.crawler.progress import ProgressEmitter

    received = []

    async def async_sink(event):
        await asyncio.sleep(0)
        received.append(event)

    async def failing_sink(event):
        raise RuntimeError("sink down")

    async def scenario():
        emitter = ProgressEmitter(progress_sink=async_sink, error_sink=failing_sink)
        emitter.emit(make_event(1))
        emitter.emit_error("boom")
        assert received == []
        await emitter.flush()

    asyncio.run(scenario())

    assert received[0]["currentPage"] == 1
    return True
