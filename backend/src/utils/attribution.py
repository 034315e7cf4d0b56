import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from schemes.telemetry import Ack, ClickEvent, EventRecord, GenericEvent, ImpressionEvent
from utils.enums import EventType, GENERIC_EVENT_TYPES
from utils.errors import AttributionError
from utils.store import EventStore
from utils.telemetry import report_error

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def unique_ids(ids: Iterable[str]) -> List[str]:
    """Order-preserving dedup; blank ids are dropped."""
    return list(dict.fromkeys(i.strip() for i in ids if i and i.strip()))


class AttributionRecorder:
    """
    Appends attribution events to the store. Delivery is at-least-once:
    a retried client call is recorded again, a repeated id inside one
    impression batch is not.
    """

    def __init__(self, store: EventStore, *, timeout_sec: float = 2.0, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.timeout_sec = timeout_sec
        self.clock = clock

    async def _write(self, operation: str, events: List[EventRecord]) -> Ack:
        try:
            written = await asyncio.wait_for(self.store.append(events), timeout=self.timeout_sec)
        except asyncio.TimeoutError as e:
            raise AttributionError(operation, f"store write timed out after {self.timeout_sec}s") from e
        except AttributionError:
            raise
        except Exception as e:
            raise AttributionError(operation, f"store write failed: {e}") from e
        return Ack(operation=operation, accepted=written)

    async def record_click(
        self, promoted_listing_id: str, shop_id: str, product_id: str, occurred_at: Optional[datetime] = None
    ) -> Ack:
        event = ClickEvent(
            promoted_listing_id=promoted_listing_id,
            shop_id=shop_id,
            product_id=product_id,
            occurred_at=occurred_at or self.clock(),
        )
        return await self._write("record_click", [event.to_record()])

    async def record_impressions(
        self, promoted_listing_ids: Iterable[str], occurred_at: Optional[datetime] = None
    ) -> Ack:
        ids = unique_ids(promoted_listing_ids)
        if not ids:
            return Ack(operation="record_impressions", accepted=0)
        # one observation, one timestamp for the whole batch
        now = occurred_at or self.clock()
        events = [ImpressionEvent(promoted_listing_id=pl_id, occurred_at=now).to_record() for pl_id in ids]
        return await self._write("record_impressions", events)

    async def record_event(
        self,
        type: EventType,
        shop_id: str,
        product_id: Optional[str] = None,
        visitor_id: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
    ) -> Ack:
        if type not in GENERIC_EVENT_TYPES:
            raise ValueError(f"{type} is recorded by the attribution endpoints only")
        event = GenericEvent(
            type=type,
            shop_id=shop_id,
            product_id=product_id,
            visitor_id=visitor_id,
            occurred_at=occurred_at or self.clock(),
        )
        return await self._write("record_event", [event.to_record()])


@dataclass
class AttributionTask:
    operation: str
    call: Callable[[], Awaitable[Ack]]
    context: Dict[str, Any] = field(default_factory=dict)
    submitted_at: datetime = field(default_factory=utc_now)


class AttributionDispatcher:
    """
    Runs recorder calls on a pool of background tasks so the request that
    triggered them never waits on (or fails because of) the store.
    """

    def __init__(
        self,
        recorder: AttributionRecorder,
        *,
        workers: int = 4,
        queue_size: int = 1000,
        max_attempts: int = 3,
        backoff_sec: float = 0.2,
    ):
        self.recorder = recorder
        self._workers = workers
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._max_attempts = max_attempts
        self._backoff = backoff_sec
        self._tasks: List[asyncio.Task] = []
        self.failed = 0
        self.dropped = 0

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [asyncio.create_task(self._runner(n)) for n in range(self._workers)]

    async def stop(self) -> None:
        await self.drain()
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []

    async def drain(self) -> None:
        if self._tasks:
            await self._queue.join()

    def submit(self, operation: str, call: Callable[[], Awaitable[Ack]], **context: Any) -> bool:
        task = AttributionTask(operation=operation, call=call, context=context)
        try:
            self._queue.put_nowait(task)
        except asyncio.QueueFull as e:
            self.dropped += 1
            report_error(operation, e, reason="queue_full", **context)
            return False
        return True

    # --- boundary operations ---

    # the event time is taken here, so queueing and retries never shift it
    def track_click(self, promoted_listing_id: str, shop_id: str, product_id: str) -> bool:
        at = self.recorder.clock()
        return self.submit(
            "track_click",
            lambda: self.recorder.record_click(promoted_listing_id, shop_id, product_id, at),
            occurred_at=at.isoformat(),
            promoted_listing_id=promoted_listing_id,
            shop_id=shop_id,
            product_id=product_id,
        )

    def track_impressions(self, promoted_listing_ids: Iterable[str]) -> bool:
        ids = unique_ids(promoted_listing_ids)
        if not ids:
            return True
        at = self.recorder.clock()
        return self.submit(
            "track_impressions",
            lambda: self.recorder.record_impressions(ids, at),
            occurred_at=at.isoformat(),
            promoted_listing_ids=ids,
            promoted_listing_count=len(ids),
        )

    def track_event(
        self, type: EventType, shop_id: str, product_id: Optional[str] = None, visitor_id: Optional[str] = None
    ) -> bool:
        at = self.recorder.clock()
        return self.submit(
            "track_event",
            lambda: self.recorder.record_event(type, shop_id, product_id, visitor_id, at),
            occurred_at=at.isoformat(),
            type=str(type),
            shop_id=shop_id,
            product_id=product_id,
        )

    # --- workers ---

    async def _runner(self, n: int) -> None:
        while True:
            task = await self._queue.get()
            try:
                await self.run(task)
            finally:
                self._queue.task_done()

    async def run(self, task: AttributionTask) -> Optional[Ack]:
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await task.call()
            except AttributionError as e:
                if attempt < self._max_attempts:
                    delay = self._backoff * (2 ** (attempt - 1))
                    logger.warning("%s attempt %d failed (%s), retrying in %.2fs", task.operation, attempt, e, delay)
                    await asyncio.sleep(delay)
                    continue
                self._give_up(task, e, attempt)
            except Exception as e:
                # not a store failure, retrying would not help
                self._give_up(task, e, attempt)
                return None
        return None

    def _give_up(self, task: AttributionTask, error: BaseException, attempts: int) -> None:
        self.failed += 1
        report_error(
            task.operation, error,
            attempts=attempts,
            submitted_at=task.submitted_at.isoformat(),
            **task.context,
        )
