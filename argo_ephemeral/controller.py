"""Controller runtime: watch, work queue and reconcile workers."""

import asyncio
import logging
from collections import deque
from typing import Any, Optional

from kubernetes import watch as k8s_watch
from kubernetes.client.exceptions import ApiException

from .models import RecordKey
from .reconciler import EphemeralApplicationReconciler
from .records import EphemeralApplicationStore

logger = logging.getLogger(__name__)


class WorkQueue:
    """
    De-duplicating queue of record keys.

    A key is queued at most once. A key added while a worker is processing it
    is marked dirty and queued again when that worker calls ``done``, so there
    is never more than one pass in flight per key. Must be used from the
    event loop thread.
    """

    def __init__(self):
        self._ready: deque[RecordKey] = deque()
        self._queued: set[RecordKey] = set()
        self._processing: set[RecordKey] = set()
        self._dirty: set[RecordKey] = set()
        self._timers: dict[RecordKey, asyncio.TimerHandle] = {}
        self._waiters: deque[asyncio.Future] = deque()
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._ready)

    def add(self, key: RecordKey) -> None:
        """Queue a key unless it is already queued."""
        if self._shutting_down:
            return
        if key in self._processing:
            self._dirty.add(key)
            return
        if key in self._queued:
            return

        self._queued.add(key)
        self._ready.append(key)
        self._wake_one()

    def add_after(self, key: RecordKey, delay: float) -> None:
        """Queue a key after ``delay`` seconds; the earliest pending timer wins."""
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return

        loop = asyncio.get_running_loop()
        deadline = loop.time() + delay
        existing = self._timers.get(key)
        if existing is not None:
            if existing.when() <= deadline:
                return
            existing.cancel()
        self._timers[key] = loop.call_at(deadline, self._fire, key)

    def _fire(self, key: RecordKey) -> None:
        self._timers.pop(key, None)
        self.add(key)

    def _wake_one(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return

    async def get(self) -> RecordKey:
        """Wait for the next key and mark it as processing."""
        while not self._ready:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            except asyncio.CancelledError:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)
                raise

        key = self._ready.popleft()
        self._queued.discard(key)
        self._processing.add(key)
        return key

    def done(self, key: RecordKey) -> None:
        """Mark a key as finished, re-queuing it if it was added meanwhile."""
        self._processing.discard(key)
        if key in self._dirty:
            self._dirty.discard(key)
            self.add(key)

    def pending_timer(self, key: RecordKey) -> Optional[float]:
        """Loop time at which a delayed add for ``key`` fires, if any."""
        handle = self._timers.get(key)
        return handle.when() if handle is not None else None

    def shutdown(self) -> None:
        """Drop delayed adds and refuse new keys."""
        self._shutting_down = True
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()


class EphemeralApplicationController:
    """
    Runs the reconciler for every EphemeralApplication.

    A watch on the custom resource and a periodic resync feed the work
    queue; a fixed number of worker tasks reconcile keys in threads. Failed
    passes are retried with per-key exponential backoff.
    """

    def __init__(
        self,
        reconciler: EphemeralApplicationReconciler,
        store: EphemeralApplicationStore,
        namespace: Optional[str] = None,
        workers: int = 4,
        resync_interval: float = 300.0,
        base_backoff: float = 1.0,
        max_backoff: float = 300.0,
        watch_timeout: int = 60,
    ):
        """
        Initialize the controller.

        Args:
            reconciler: Reconciler to run for each key
            store: Record store (used for watch and resync)
            namespace: Namespace to watch (all namespaces when None)
            workers: Number of concurrent reconcile workers
            resync_interval: Seconds between full re-enqueues
            base_backoff: First retry delay after a failed pass
            max_backoff: Upper bound for retry delays
            watch_timeout: Server-side watch timeout before re-listing
        """
        self.reconciler = reconciler
        self.store = store
        self.namespace = namespace
        self.workers = workers
        self.resync_interval = resync_interval
        self.base_backoff = base_backoff
        self.max_backoff = max_backoff
        self.watch_timeout = watch_timeout

        self.queue = WorkQueue()
        self._watch = k8s_watch.Watch()
        self._failures: dict[RecordKey, int] = {}
        self._generations: dict[RecordKey, Optional[int]] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False
        self._tasks: list[asyncio.Task] = []

    # Backoff

    def backoff_delay(self, key: RecordKey) -> float:
        """Record a failure for ``key`` and return the delay before retrying."""
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        return min(self.base_backoff * (2**failures), self.max_backoff)

    def forget(self, key: RecordKey) -> None:
        self._failures.pop(key, None)

    # Workers

    async def process(self, key: RecordKey) -> None:
        """Reconcile one key and schedule its next pass."""
        try:
            result = await asyncio.to_thread(self.reconciler.reconcile, key)
        except Exception as e:
            delay = self.backoff_delay(key)
            logger.error(
                f"Error reconciling {key}, retrying in {delay:.0f}s: {e}",
                exc_info=True,
            )
            self.queue.add_after(key, delay)
            return

        self.forget(key)
        if result.requeue_after:
            self.queue.add_after(key, result.requeue_after)

    async def process_next(self) -> RecordKey:
        """Take one key off the queue and process it."""
        key = await self.queue.get()
        try:
            await self.process(key)
        finally:
            self.queue.done(key)
        return key

    async def _worker(self, worker_id: int) -> None:
        logger.debug(f"Reconcile worker {worker_id} started")
        while self._running:
            await self.process_next()

    # Event sources

    async def resync(self) -> int:
        """Enqueue every existing record and forget generations of vanished ones."""
        records = await asyncio.to_thread(self.store.list, self.namespace)
        live = {record.key for record in records}
        for key in list(self._generations):
            if key not in live:
                self._generations.pop(key, None)
        for record in records:
            self.queue.add(record.key)
        return len(records)

    async def _periodic_resync(self) -> None:
        while self._running:
            try:
                count = await self.resync()
                logger.debug(f"Resynced {count} EphemeralApplications")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error listing EphemeralApplications: {e}", exc_info=True)
            await asyncio.sleep(self.resync_interval)

    def handle_event(self, event: dict[str, Any]) -> None:
        """
        Enqueue the record a watch event refers to.

        Status-only updates do not change ``metadata.generation`` and are
        skipped, so the reconciler's own status writes do not trigger passes.
        Runs on the watch thread.
        """
        event_type = event.get("type")
        obj = event.get("object") or {}
        if event_type not in ("ADDED", "MODIFIED", "DELETED"):
            return

        metadata = obj.get("metadata") or {}
        if not metadata.get("name"):
            return
        key = RecordKey(name=metadata["name"], namespace=metadata.get("namespace"))
        generation = metadata.get("generation")

        if event_type == "DELETED":
            self._generations.pop(key, None)
        elif (
            event_type == "MODIFIED"
            and not metadata.get("deletionTimestamp")
            and self._generations.get(key) == generation
        ):
            return
        else:
            self._generations[key] = generation

        logger.debug(f"{event_type} event for EphemeralApplication {key}")
        self._loop.call_soon_threadsafe(self.queue.add, key)

    def _watch_once(self) -> None:
        coordinates = {
            "group": self.store.kind.group,
            "version": self.store.kind.version,
            "plural": self.store.kind.plural,
        }
        if self.namespace:
            list_func = self.store.custom_objects.list_namespaced_custom_object
            coordinates["namespace"] = self.namespace
        else:
            list_func = self.store.custom_objects.list_cluster_custom_object

        logger.info(
            f"Starting watch on {self.store.kind.plural} "
            f"in {self.namespace or 'all namespaces'}"
        )
        try:
            for event in self._watch.stream(
                list_func, timeout_seconds=self.watch_timeout, **coordinates
            ):
                if not self._running:
                    return
                self.handle_event(event)
        except ApiException as e:
            if e.status == 410:  # Resource version too old
                logger.warning("Watch expired, restarting...")
                return
            raise

    async def _run_watch(self) -> None:
        while self._running:
            try:
                await asyncio.to_thread(self._watch_once)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error watching EphemeralApplications: {e}", exc_info=True)
                await asyncio.sleep(self.base_backoff)

    # Lifecycle

    async def start(self) -> None:
        """Start watch, resync and worker tasks."""
        if self._running:
            logger.warning("Controller already running")
            return

        self._loop = asyncio.get_running_loop()
        self._running = True
        logger.info(f"Starting controller with {self.workers} workers")

        self._tasks.append(asyncio.create_task(self._run_watch()))
        self._tasks.append(asyncio.create_task(self._periodic_resync()))
        for worker_id in range(self.workers):
            self._tasks.append(asyncio.create_task(self._worker(worker_id)))

    async def stop(self) -> None:
        """Stop all tasks; in-flight reconcile threads finish on their own."""
        logger.info("Stopping controller")
        self._running = False
        self._watch.stop()
        self.queue.shutdown()

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
