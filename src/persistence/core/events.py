"""Fire-and-forget domain event emission.

Repositories call ``EventEmitter.emit(topic, payload)``, which snapshots the
payload into a ``WebhookEvent`` envelope, queues it and returns immediately.
A background asyncio worker hands queued envelopes to an ``EventSink``.
Delivery failures are logged and counted, never retried: durability and
fan-out belong to the sink and whatever consumes it.

Sinks:
- MemoryEventSink: keeps a history in memory (tests, local development)
- RedisStreamEventSink: appends envelopes to a Redis Stream
  (``webhooks_delivery`` by default) for the webhook delivery workers
"""

import asyncio
import secrets
import string
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel
from redis.asyncio import Redis

from persistence.core.config import settings
from persistence.core.logging import get_logger

logger = get_logger(__name__)

_EVENT_ID_ALPHABET = string.ascii_letters + string.digits
_EVENT_ID_LENGTH = 20
_ANY_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)


def new_event_id() -> str:
    """Random 20-character alphanumeric event id."""
    return "".join(secrets.choice(_EVENT_ID_ALPHABET) for _ in range(_EVENT_ID_LENGTH))


def snapshot_payload(payload: Any) -> Any:
    """Copy payload into plain JSON-compatible data.

    Pydantic models are dumped with their wire (camelCase) names. The result
    shares no references with the input, so later mutation of the entity by
    the caller cannot change an event that is already queued.
    """
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", by_alias=True)
    return _ANY_ADAPTER.dump_python(payload, mode="json", by_alias=True)


class WebhookEvent(BaseModel):
    """Envelope handed to event sinks.

    Attributes:
        id: Random event id
        created_at: When the event was emitted
        type: Topic name, ``<entity-topic-prefix>.<verb>``
        data: Snapshot of the payload
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=new_event_id)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    type: str
    data: Any = None


class EventSink(Protocol):
    """Destination for emitted events."""

    async def publish(self, event: WebhookEvent) -> None: ...


class MemoryEventSink:
    """In-memory event sink for testing and local development.

    Records every published event in order. ``fail_with`` makes every
    publish raise the given exception, to exercise delivery failure paths.
    """

    def __init__(self, fail_with: Exception | None = None) -> None:
        self._history: list[WebhookEvent] = []
        self.fail_with = fail_with

    async def publish(self, event: WebhookEvent) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self._history.append(event)

    def get_history(self, topic: str | None = None) -> list[WebhookEvent]:
        """Get event history, optionally filtered by topic. For testing."""
        if topic is None:
            return list(self._history)
        return [event for event in self._history if event.type == topic]

    def clear_history(self) -> None:
        """Clear event history. For testing."""
        self._history.clear()


class RedisStreamEventSink:
    """Event sink that appends envelopes to a Redis Stream.

    Each entry carries the topic under ``type`` and the JSON envelope under
    ``event``. The stream is trimmed approximately to ``max_stream_length``.
    """

    def __init__(
        self,
        client: Redis,
        stream: str | None = None,
        max_stream_length: int | None = None,
    ) -> None:
        self._client = client
        self._stream = stream or settings.event_stream_name
        self._max_len = max_stream_length or settings.event_stream_maxlen

    @property
    def stream(self) -> str:
        return self._stream

    async def publish(self, event: WebhookEvent) -> None:
        await self._client.xadd(
            self._stream,
            {"type": event.type, "event": event.model_dump_json(by_alias=True)},
            maxlen=self._max_len,
            approximate=True,
        )


def create_event_sink(kind: str | None = None, client: Redis | None = None) -> EventSink:
    """Create an event sink by name.

    - ``memory``: MemoryEventSink
    - ``redis``: RedisStreamEventSink over ``client`` (default: the
      process-wide cache client)

    Raises:
        ValueError: If the kind is unknown
    """
    kind = (kind or settings.event_sink).lower()
    if kind == "memory":
        return MemoryEventSink()
    if kind == "redis":
        if client is None:
            from persistence.core.cache import cache_client
            client = cache_client
        return RedisStreamEventSink(client)
    raise ValueError(f"Unknown event sink {kind!r}; expected 'memory' or 'redis'")


class EventEmitter:
    """Non-blocking adapter between repositories and an event sink.

    ``emit`` never raises and never waits on delivery. The worker task is
    started lazily on the running event loop by the first ``emit`` (or
    explicitly with ``start``), and is independent of the caller's task, so
    cancelling a caller does not cancel events it already emitted.

    Args:
        sink: Destination for events
        max_queue_size: Pending events kept before new ones are dropped
    """

    def __init__(self, sink: EventSink, max_queue_size: int | None = None) -> None:
        self._sink = sink
        self._max_queue_size = max_queue_size or settings.event_queue_size
        self._queue: asyncio.Queue[WebhookEvent] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

        # Observability
        self._counts: dict[str, int] = defaultdict(int)

    @property
    def sink(self) -> EventSink:
        return self._sink

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def get_counts(self) -> dict[str, int]:
        """Return emitted/delivered/failed/dropped counters."""
        return dict(self._counts)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the delivery worker on the running loop."""
        self._ensure_worker()

    async def drain(self) -> None:
        """Wait until every queued event has been handed to the sink."""
        if self._queue is not None and self.running:
            await self._queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        """Flush pending events (bounded by timeout) and stop the worker."""
        if self._worker is None:
            return
        try:
            async with asyncio.timeout(timeout):
                await self.drain()
        except TimeoutError:
            pending = self._queue.qsize() if self._queue is not None else 0
            logger.warning("Event emitter stopped with undelivered events", pending=pending)
        self._worker.cancel()
        await asyncio.gather(self._worker, return_exceptions=True)
        self._worker = None
        self._queue = None
        self._loop = None

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def emit(self, topic: str, payload: Any) -> WebhookEvent | None:
        """Queue an event for background delivery and return immediately.

        Returns:
            The queued envelope, or None if the event could not be queued
            (no running loop, unserializable payload or a full queue)
        """
        try:
            event = WebhookEvent(type=topic, data=snapshot_payload(payload))
            queue = self._ensure_worker()
            queue.put_nowait(event)
        except asyncio.QueueFull:
            self._counts["dropped"] += 1
            logger.error("Event queue full, dropping event", topic=topic)
            return None
        except Exception as e:
            self._counts["dropped"] += 1
            logger.error("Failed to queue event", topic=topic, error=repr(e))
            return None

        self._counts["emitted"] += 1
        logger.debug("Event queued", topic=topic, event_id=event.id)
        return event

    def _ensure_worker(self) -> "asyncio.Queue[WebhookEvent]":
        loop = asyncio.get_running_loop()
        if self._queue is None or self._loop is not loop or not self.running:
            if self._loop is not None and self._loop is not loop:
                logger.warning("Event emitter moved to a new event loop; pending events discarded")
            if self._queue is None or self._loop is not loop:
                self._queue = asyncio.Queue(maxsize=self._max_queue_size)
            self._loop = loop
            self._worker = loop.create_task(self._run(self._queue), name="event-emitter")
        return self._queue

    async def _run(self, queue: "asyncio.Queue[WebhookEvent]") -> None:
        while True:
            event = await queue.get()
            try:
                await self._sink.publish(event)
                self._counts["delivered"] += 1
            except Exception as e:
                self._counts["failed"] += 1
                logger.error(
                    "Event delivery failed",
                    topic=event.type,
                    event_id=event.id,
                    error=repr(e),
                )
            finally:
                queue.task_done()


# Create the process-wide emitter; its worker starts on first use
event_emitter = EventEmitter(create_event_sink())
