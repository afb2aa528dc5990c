"""Message router: classifies inbound frames and dispatches data frames to handlers."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from lighter_client.errors import ProtocolError
from lighter_client.ws.messages import decode_frame, frame_error
from lighter_client.ws.types import CONTROL_TYPES, MessageType, StreamMetrics

logger = logging.getLogger(__name__)

Frame = dict[str, Any]
FrameHandler = Callable[[Frame], Awaitable[None] | None]
PingHook = Callable[[], Awaitable[None]]

# (message type, frame)
_QueueItem = tuple[str, Frame]


def ordering_key(message_type: str, frame: Frame) -> str:
    """
    Queue a frame is delivered through.

    Snapshot and update frames of one channel ("order_book:3") share a key,
    so they reach callbacks in wire order. Frames without a channel fall
    back to their message type.
    """
    channel = frame.get("channel")
    if isinstance(channel, str) and channel:
        return channel.replace("/", ":")
    return message_type


class MessageRouter:
    """
    Routes decoded frames to handlers registered per message type.

    Responsibilities:
    - Drop malformed frames and frames carrying an error code
    - Answer remote pings through the ping hook
    - Deliver data frames in wire order per channel, without making the
      caller wait on handler execution
    - Isolate handler failures from each other

    Each channel gets its own FIFO queue and worker task, created on the
    first frame of that channel. Handlers are looked up when a frame is
    delivered, so a removed handler receives nothing further.
    """

    def __init__(
        self,
        *,
        on_ping: PingHook | None = None,
        metrics: StreamMetrics | None = None,
    ) -> None:
        """
        Initialize the router.

        Args:
            on_ping: Coroutine invoked once per remote ping (sends the pong).
            metrics: Counters shared with the owning connection.
        """
        self._on_ping = on_ping
        self._metrics = metrics or StreamMetrics()
        self._handlers: dict[str, list[FrameHandler]] = {}
        self._queues: dict[str, asyncio.Queue[_QueueItem]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        self._closed = False

    @property
    def metrics(self) -> StreamMetrics:
        return self._metrics

    def set_ping_hook(self, on_ping: PingHook | None) -> None:
        self._on_ping = on_ping

    def add_handler(self, message_type: str, handler: FrameHandler) -> None:
        """Register a handler for an exact message type."""
        self._handlers.setdefault(message_type, []).append(handler)

    def remove_handler(self, message_type: str, handler: FrameHandler) -> None:
        """Remove one handler; other handlers for the type stay registered."""
        handlers = self._handlers.get(message_type)
        if not handlers:
            return
        with contextlib.suppress(ValueError):
            handlers.remove(handler)
        if not handlers:
            del self._handlers[message_type]

    def handler_count(self, message_type: str) -> int:
        return len(self._handlers.get(message_type, ()))

    async def dispatch(self, raw: bytes | str) -> None:
        """
        Classify one raw frame and route it.

        Never raises for bad input: malformed and error frames are logged,
        counted and dropped.
        """
        try:
            frame = decode_frame(raw)
        except ProtocolError as e:
            self._metrics.frames_dropped += 1
            logger.warning("Dropping malformed frame", extra={"error": str(e)})
            return

        error = frame_error(frame)
        if error is not None:
            self._metrics.error_frames += 1
            logger.warning(
                "Dropping error frame",
                extra={"code": error.code, "error": str(error)},
            )
            return

        message_type = frame.get("type")
        if not isinstance(message_type, str) or not message_type:
            self._metrics.frames_dropped += 1
            logger.warning("Dropping frame without type")
            return

        if message_type in CONTROL_TYPES:
            await self._handle_control(message_type, frame)
            return

        self._enqueue(message_type, frame)

    async def _handle_control(self, message_type: str, frame: Frame) -> None:
        if message_type == MessageType.PING.value:
            if self._on_ping is None:
                return
            try:
                await self._on_ping()
            except Exception as e:
                logger.warning("Failed to answer ping", extra={"error": str(e)})
            return

        logger.debug(
            "Control frame",
            extra={"type": message_type, "channel": frame.get("channel")},
        )

    def _enqueue(self, message_type: str, frame: Frame) -> None:
        if self._closed:
            return
        if not self._handlers.get(message_type):
            logger.debug("No handlers for frame", extra={"type": message_type})
            return

        key = ordering_key(message_type, frame)
        queue = self._queues.get(key)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[key] = queue
            self._workers[key] = asyncio.create_task(
                self._worker(queue),
                name=f"router:{key}",
            )
        queue.put_nowait((message_type, frame))

    async def _worker(self, queue: asyncio.Queue[_QueueItem]) -> None:
        while True:
            message_type, frame = await queue.get()
            try:
                for handler in tuple(self._handlers.get(message_type, ())):
                    # Skip handlers removed by an earlier handler for this frame
                    if handler not in self._handlers.get(message_type, ()):
                        continue
                    await self._invoke(message_type, handler, frame)
            finally:
                queue.task_done()

    async def _invoke(self, message_type: str, handler: FrameHandler, frame: Frame) -> None:
        try:
            result = handler(frame)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            self._metrics.callback_errors += 1
            logger.exception("Handler failed", extra={"type": message_type})

    async def drain(self) -> None:
        """Wait until every queued frame has been delivered."""
        for queue in list(self._queues.values()):
            await queue.join()

    async def close(self) -> None:
        """Stop all workers; undelivered frames are discarded."""
        self._closed = True
        workers = list(self._workers.values())
        self._workers.clear()
        self._queues.clear()
        for task in workers:
            task.cancel()
        for task in workers:
            with contextlib.suppress(asyncio.CancelledError):
                await task
