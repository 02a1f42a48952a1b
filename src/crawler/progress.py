"""
Progress Emitter - ordered event stream for one crawl job

Events flow through an explicit channel (``asyncio.Queue``) so the consumer
(the SSE handler, the CLI, a test) is decoupled from the pagination loop.
Optional sink callbacks receive the same events.
"""

from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Set
from dataclasses import dataclass, field
import asyncio
import inspect
import logging

from src.models.crawl import ExtractedRecord, ProgressEvent, TerminalEvent


logger = logging.getLogger(__name__)

# Sink type aliases
ProgressSink = Callable[[Dict[str, Any]], Any]
ItemSink = Callable[[ExtractedRecord], Any]
ErrorSink = Callable[[str], Any]


@dataclass
class ChannelEvent:
    """One entry on the event channel."""
    kind: str                  # progress, item, error, terminal
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.kind == "terminal"


class EventChannel:
    """
    Unbounded single-producer queue

    ``put`` never blocks; iteration ends after the terminal event.
    """

    def __init__(self):
        self._queue: "asyncio.Queue[ChannelEvent]" = asyncio.Queue()

    def put(self, event: ChannelEvent) -> None:
        self._queue.put_nowait(event)

    async def get(self) -> ChannelEvent:
        return await self._queue.get()

    def __aiter__(self) -> AsyncIterator[ChannelEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ChannelEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if event.is_terminal:
                return


class ProgressEmitter:
    """
    Fire-and-forget event emission

    Guarantees:
    - ``emit`` and friends never raise and never block the caller
    - events keep emission order
    - exactly one terminal event per job (later attempts are dropped)
    """

    def __init__(
        self,
        progress_sink: Optional[ProgressSink] = None,
        item_sink: Optional[ItemSink] = None,
        error_sink: Optional[ErrorSink] = None,
        channel: Optional[EventChannel] = None,
    ):
        self.progress_sink = progress_sink
        self.item_sink = item_sink
        self.error_sink = error_sink
        self.channel = channel
        self.history: List[ChannelEvent] = []
        self._terminal: Optional[TerminalEvent] = None
        self._pending: Set[asyncio.Future] = set()

    @property
    def terminal_emitted(self) -> bool:
        return self._terminal is not None

    @property
    def terminal(self) -> Optional[TerminalEvent]:
        return self._terminal

    @property
    def progress_count(self) -> int:
        return sum(1 for e in self.history if e.kind == "progress")

    def emit(self, event: ProgressEvent) -> None:
        """Emit a non-terminal progress event."""
        if self.terminal_emitted:
            logger.debug("Progress after terminal event dropped")
            return
        payload = event.to_dict()
        self._publish(ChannelEvent("progress", payload))
        self._deliver(self.progress_sink, payload)

    def emit_item(self, record: ExtractedRecord) -> None:
        if self.terminal_emitted:
            return
        self._publish(ChannelEvent("item", record.to_dict()))
        self._deliver(self.item_sink, record)

    def emit_error(self, message: str) -> None:
        """Report a page-level error; the job keeps running."""
        if self.terminal_emitted:
            return
        self._publish(ChannelEvent("error", {"error": message}))
        self._deliver(self.error_sink, message)

    def complete(
        self,
        results: List[ExtractedRecord],
        current_page: int = 0,
        total_pages: int = 0,
        items_found: int = 0,
        message: str = "",
    ) -> bool:
        """Emit the terminal success event. Returns False if one was already sent."""
        return self._finish(TerminalEvent(
            results=list(results),
            current_page=current_page,
            total_pages=total_pages,
            items_found=items_found,
            message=message,
        ))

    def fail(self, error: str) -> bool:
        """Emit the terminal error event. Returns False if one was already sent."""
        return self._finish(TerminalEvent(error=error))

    def _finish(self, terminal: TerminalEvent) -> bool:
        if self.terminal_emitted:
            logger.warning("Duplicate terminal event dropped")
            return False
        self._terminal = terminal
        payload = terminal.to_dict()
        self._publish(ChannelEvent("terminal", payload))
        self._deliver(self.progress_sink, payload)
        return True

    def _publish(self, event: ChannelEvent) -> None:
        self.history.append(event)
        if self.channel is None:
            return
        try:
            self.channel.put(event)
        except Exception as exc:
            logger.warning("Event channel delivery failed: %s", exc)

    def _deliver(self, sink: Optional[Callable[[Any], Any]], value: Any) -> None:
        if sink is None:
            return
        try:
            result = sink(value)
        except Exception as exc:
            logger.warning("Sink delivery failed: %s", exc)
            return
        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._pending.add(future)
            future.add_done_callback(self._on_sink_done)

    def _on_sink_done(self, future: asyncio.Future) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning("Async sink delivery failed: %s", exc)

    async def flush(self) -> None:
        """Wait for in-flight async sink deliveries."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
