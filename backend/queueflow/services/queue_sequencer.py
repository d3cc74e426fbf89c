"""
Day-scoped queue numbering.

Every sequencer hands out 1, 2, 3, ... per service day and serializes its
callers at a single point: a process mutex, a Redis INCR, or a row-level
UPDATE on the per-day counter. Reading the current maximum and writing
max + 1 from the caller side is never done.
"""
import asyncio
import logging
import os
import threading
from datetime import date, datetime, timezone
from typing import Optional

import redis
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from queueflow.exceptions import SequenceReservationFailed
from queueflow.models.assignment_models import QueueSlot
from queueflow.models.clinic import QueueDaySequence

logger = logging.getLogger(__name__)

SEQUENCE_KEY_PREFIX = "queue:sequence"
SEQUENCE_TTL_SECONDS = int(os.getenv("QUEUEFLOW_SEQUENCE_TTL", "172800"))


class QueueSequencer:
    """Base class; subclasses implement next_sequence_number()."""

    def next_sequence_number(self, day: date) -> int:
        raise NotImplementedError

    def reserve(self, day: date) -> QueueSlot:
        number = self.next_sequence_number(day)
        return QueueSlot(
            day_sequence_number=number,
            service_day=day,
            assigned_at=datetime.now(timezone.utc),
        )

    async def reserve_async(self, day: date, timeout: Optional[float] = None) -> QueueSlot:
        """Reserve from a worker thread.

        The reservation is shielded: once started it runs to completion even
        if the caller is cancelled or times out, so the counter is either
        advanced or untouched. A number issued to a caller that has gone
        away is logged and left as a gap; it is never handed out again.
        """
        task = asyncio.ensure_future(asyncio.to_thread(self.reserve, day))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            task.add_done_callback(_log_abandoned_slot)
            raise SequenceReservationFailed(f"Sequence reservation timed out after {timeout}s")
        except asyncio.CancelledError:
            task.add_done_callback(_log_abandoned_slot)
            raise


def _log_abandoned_slot(task: "asyncio.Future") -> None:
    if task.cancelled() or task.exception() is not None:
        return
    slot = task.result()
    logger.warning(
        f"⚠️ Queue number {slot.day_sequence_number} for {slot.service_day} "
        "was issued after its caller gave up; leaving a gap"
    )


class InMemoryQueueSequencer(QueueSequencer):
    """Single-process counter guarded by a mutex. Only today's counter is kept."""

    def __init__(self):
        self._lock = threading.Lock()
        self._day: Optional[date] = None
        self._last = 0

    def next_sequence_number(self, day: date) -> int:
        with self._lock:
            if self._day is None or day > self._day:
                self._day = day
                self._last = 0
            elif day < self._day:
                raise SequenceReservationFailed(
                    f"Service day {day} has already rolled over to {self._day}"
                )
            self._last += 1
            return self._last


class RedisQueueSequencer(QueueSequencer):
    """Atomic INCR on one key per service day."""

    def __init__(self, client: redis.Redis, ttl_seconds: int = SEQUENCE_TTL_SECONDS):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key_for(day: date) -> str:
        return f"{SEQUENCE_KEY_PREFIX}:{day.isoformat()}"

    def next_sequence_number(self, day: date) -> int:
        key = self.key_for(day)
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.incr(key)
            pipe.expire(key, self.ttl_seconds)
            number, _ = pipe.execute()
        except redis.RedisError as e:
            logger.error(f"❌ Redis sequence reservation failed for {key}: {e}")
            raise SequenceReservationFailed(f"Redis counter {key} unavailable: {e}") from e
        return int(number)


class SqlQueueSequencer(QueueSequencer):
    """Per-day counter row advanced with a single UPDATE inside one transaction.

    The day row is created with an insert that ignores conflicts, so callers
    racing on the first number of a day all end up on the same row. The
    UPDATE then takes the row lock; concurrent callers queue behind it and
    each reads back its own increment before committing.
    """

    _INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def _ensure_day_row(self, db, day: date) -> None:
        dialect = db.get_bind().dialect.name
        insert = self._INSERTS.get(dialect)
        if insert is None:
            raise SequenceReservationFailed(f"Queue numbering is not supported on {dialect}")
        db.execute(
            insert(QueueDaySequence)
            .values(service_day=day, last_value=0)
            .on_conflict_do_nothing(index_elements=["service_day"])
        )

    def next_sequence_number(self, day: date) -> int:
        try:
            with self.session_factory() as db, db.begin():
                self._ensure_day_row(db, day)
                db.execute(
                    update(QueueDaySequence)
                    .where(QueueDaySequence.service_day == day)
                    .values(last_value=QueueDaySequence.last_value + 1)
                )
                number = db.execute(
                    select(QueueDaySequence.last_value)
                    .where(QueueDaySequence.service_day == day)
                ).scalar_one()
        except SQLAlchemyError as e:
            logger.error(f"❌ SQL sequence reservation failed for {day}: {e}")
            raise SequenceReservationFailed(f"Counter for {day} could not be advanced: {e}") from e
        return number
