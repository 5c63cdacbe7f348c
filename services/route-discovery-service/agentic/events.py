"""Streaming events and the bounded channel that carries them to the HTTP layer."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_SIZE = 64
_CLOSED = object()


class EventType(str, Enum):
    THINKING = "thinking"
    TEXT = "text"
    TOOL_START = "tool_start"
    TOOL_COMPLETE = "tool_complete"
    ROUTE_ACTION = "route_action"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_EVENTS = frozenset({EventType.COMPLETE, EventType.ERROR})


@dataclass(frozen=True)
class StreamEvent:
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    def to_sse(self) -> str:
        return f"event: {self.type.value}\ndata: {json.dumps(self.data, default=str)}\n\n"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "data": self.data}


class EventChannel:
    """
    Bounded FIFO between one producer task and one consumer.

    ``send`` waits when the consumer falls behind. After ``close`` the
    consumer drains what is queued, then ``get`` returns None.
    """

    def __init__(self, maxsize: int = DEFAULT_CHANNEL_SIZE):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._producer: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event_type: EventType, data: Optional[Dict[str, Any]] = None) -> None:
        if self._closed:
            logger.debug("Dropping %s event on closed channel", event_type.value)
            return
        await self._queue.put(StreamEvent(event_type, data or {}))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_CLOSED)

    async def get(self) -> Optional[StreamEvent]:
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the sentinel for any later get() call.
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def attach(self, task: asyncio.Task) -> None:
        self._producer = task

    async def aclose(self) -> None:
        """Consumer went away: stop the producer."""
        if self._producer is not None and not self._producer.done():
            self._producer.cancel()
            try:
                await self._producer
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug("Producer ended with %s after cancel", e)

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StreamEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event
