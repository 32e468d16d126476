"""
Live data simulation: a sliding window of rows that drifts on a timer.

The simulator mutates the active dataset's rows on each tick. Scheduling is
delegated to a Scheduler so tests can drive ticks by hand.
"""
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Callable, List, Optional, Sequence

import numpy as np

from ..database.mongodb import DatasetRepository
from ..models.models import Dataset, Record, StreamState, StreamStatus
from .type_inference import to_number

logger = logging.getLogger(__name__)


class PeriodicTask(ABC):
    """Handle for a recurring callback."""

    @abstractmethod
    def cancel(self, wait: bool = True) -> None:
        """Stop the task. With ``wait``, a run in progress finishes before this returns."""

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        ...


class Scheduler(ABC):
    @abstractmethod
    def schedule(self, interval: float, callback: Callable[[], None]) -> PeriodicTask:
        """Run ``callback`` every ``interval`` seconds until cancelled."""


class _ThreadTask(PeriodicTask):
    def __init__(self, interval: float, callback: Callable[[], None]):
        self.interval = interval
        self._callback = callback
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name="lumina-stream", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self._callback()
            except Exception:
                logger.exception("Stream tick failed")

    def cancel(self, wait: bool = True) -> None:
        self._stopped.set()
        # a tick that cancels its own task cannot wait for itself
        if wait and threading.current_thread() is not self._thread:
            self._thread.join()

    @property
    def cancelled(self) -> bool:
        return self._stopped.is_set()


class ThreadingScheduler(Scheduler):
    """One background daemon thread per scheduled task."""

    def schedule(self, interval: float, callback: Callable[[], None]) -> PeriodicTask:
        task = _ThreadTask(interval, callback)
        task.start()
        return task


class _ManualTask(PeriodicTask):
    def __init__(self, interval: float, callback: Callable[[], None], next_run: float):
        self.interval = interval
        self.callback = callback
        self.next_run = next_run
        self._cancelled = False

    def cancel(self, wait: bool = True) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """Scheduler on a fake clock; callbacks run synchronously inside advance()."""

    def __init__(self):
        self.now = 0.0
        self.tasks: List[_ManualTask] = []

    def schedule(self, interval: float, callback: Callable[[], None]) -> PeriodicTask:
        task = _ManualTask(interval, callback, self.now + interval)
        self.tasks.append(task)
        return task

    @property
    def active_tasks(self) -> List[_ManualTask]:
        return [task for task in self.tasks if not task.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [task for task in self.active_tasks if task.next_run <= target]
            if not due:
                break
            task = min(due, key=lambda t: t.next_run)
            self.now = task.next_run
            task.next_run += task.interval
            task.callback()
        self.now = target


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a 'Z' suffix."""
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def make_synthetic_row(
    template: Record,
    numeric_columns: Sequence[str],
    volatility: float,
    rng: np.random.Generator,
    timestamp_column: Optional[str] = None,
    timestamp: Optional[str] = None
) -> Record:
    """
    Derive the next row from ``template``.

    Each numeric value v moves by a uniform draw in [-0.5, 0.5) times
    v * volatility and is rounded to 2 decimals. Values that are not
    well-formed numbers are copied unchanged.
    """
    row = dict(template)
    for col in numeric_columns:
        value = to_number(row.get(col))
        if value is None:
            continue
        change = rng.uniform(-0.5, 0.5) * (value * volatility)
        row[col] = round(value + change, 2)

    if timestamp_column is not None and timestamp is not None:
        row[timestamp_column] = timestamp
    return row


class StreamingSimulator:
    """
    Idle/Live state machine that appends a synthesized row and drops the
    oldest one every ``interval`` seconds while live.

    Only one dataset is targeted at a time. The target is looked up by id on
    every tick, so switching or deleting datasets never leaves a tick working
    on a stale copy.
    """

    def __init__(
        self,
        repository: DatasetRepository,
        scheduler: Optional[Scheduler] = None,
        interval: float = 1.5,
        volatility: float = 0.1,
        timestamp_column: str = "timestamp",
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.repository = repository
        self.scheduler = scheduler or ThreadingScheduler()
        self.interval = interval
        self.volatility = volatility
        self.timestamp_column = timestamp_column
        self.rng = rng if rng is not None else np.random.default_rng()
        self.clock = clock

        # _control serialises start/stop; _lock serialises ticks and reads
        self._control = threading.RLock()
        self._lock = threading.Lock()
        self._state = StreamState.IDLE
        self._dataset_id: Optional[str] = None
        self._task: Optional[PeriodicTask] = None
        self._session = 0
        self._ticks = 0
        self._last_timestamp: Optional[datetime] = None

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def active_dataset_id(self) -> Optional[str]:
        return self._dataset_id

    def can_stream(self, dataset: Optional[Dataset]) -> bool:
        return dataset is not None and bool(dataset.numeric_columns) and bool(dataset.rows)

    def start(self, dataset_id: Optional[str] = None) -> bool:
        """
        Go live on ``dataset_id`` (or the current active dataset).

        Returns False without changing anything when the dataset is unknown,
        has no rows or has no numeric columns.
        """
        with self._control:
            target_id = dataset_id or self._dataset_id
            dataset = self.repository.get(target_id) if target_id else None
            if not self.can_stream(dataset):
                logger.warning(f"Cannot stream dataset {target_id}: needs at least one row and one numeric column")
                return False

            if self._state is StreamState.LIVE:
                if target_id == self._dataset_id:
                    return True
                self.stop()

            with self._lock:
                self._session += 1
                self._state = StreamState.LIVE
                self._dataset_id = target_id
                self._ticks = 0
                self._last_timestamp = None
                session = self._session

            self._task = self.scheduler.schedule(self.interval, partial(self._on_tick, session))
            logger.info(f"Live stream started for dataset {target_id} every {self.interval}s")
            return True

    def stop(self) -> None:
        """Leave the live state. No tick mutates the dataset after this returns."""
        with self._control:
            with self._lock:
                was_live = self._state is StreamState.LIVE
                self._state = StreamState.IDLE
                self._session += 1
                task, self._task = self._task, None
            # cancel outside the tick lock: a running tick may be waiting on it
            if task is not None:
                task.cancel()
            if was_live:
                logger.info(f"Live stream stopped for dataset {self._dataset_id}")

    def toggle(self, dataset_id: Optional[str] = None) -> StreamState:
        with self._control:
            if self._state is StreamState.LIVE:
                self.stop()
            else:
                self.start(dataset_id)
            return self._state

    def set_active_dataset(self, dataset_id: Optional[str]) -> StreamState:
        """
        Point the simulator at another dataset. A live stream is stopped first
        and resumed on the new dataset if that dataset can stream.
        """
        with self._control:
            if dataset_id == self._dataset_id:
                return self._state
            if self._state is StreamState.LIVE:
                logger.info(f"Switching live stream from {self._dataset_id} to {dataset_id}")
                self.stop()
                self._dataset_id = dataset_id
                if dataset_id:
                    self.start(dataset_id)
            else:
                self._dataset_id = dataset_id
            return self._state

    def forget_dataset(self, dataset_id: str) -> None:
        """Stop streaming and clear the target if it is ``dataset_id``."""
        with self._control:
            if self._dataset_id == dataset_id:
                self.stop()
                with self._lock:
                    self._dataset_id = None

    def status(self) -> StreamStatus:
        with self._lock:
            return StreamStatus(
                state=self._state,
                dataset_id=self._dataset_id,
                interval_seconds=self.interval,
                ticks=self._ticks
            )

    def tick(self) -> Optional[Dataset]:
        """Run one tick now if live. Returns the updated dataset."""
        with self._lock:
            return self._tick_locked()

    def _on_tick(self, session: int) -> None:
        with self._lock:
            if session != self._session:
                return
            self._tick_locked()

    def _next_timestamp(self) -> str:
        moment = self.clock()
        if self._last_timestamp is not None and moment <= self._last_timestamp:
            moment = self._last_timestamp + timedelta(milliseconds=1)
        self._last_timestamp = moment
        return format_timestamp(moment)

    def _tick_locked(self) -> Optional[Dataset]:
        if self._state is not StreamState.LIVE or self._dataset_id is None:
            return None

        dataset = self.repository.get(self._dataset_id)
        if not self.can_stream(dataset):
            logger.warning(f"Dataset {self._dataset_id} can no longer stream, stopping")
            self._state = StreamState.IDLE
            self._session += 1
            task, self._task = self._task, None
            if task is not None:
                task.cancel(wait=False)
            return None

        rows = dataset.rows
        timestamp = None
        if self.timestamp_column in dataset.columns:
            timestamp = self._next_timestamp()

        new_row = make_synthetic_row(
            rows[-1],
            dataset.numeric_columns,
            self.volatility,
            self.rng,
            timestamp_column=self.timestamp_column,
            timestamp=timestamp
        )
        # swap the whole window in one assignment so readers never see half a tick
        dataset.rows = rows[1:] + [new_row]
        self.repository.upsert(dataset)
        self._ticks += 1
        logger.debug(f"Tick {self._ticks} on dataset {dataset.id}")
        return dataset
