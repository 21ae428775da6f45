"""
Refresh coordination.

Drives the fetch -> merge -> publish cycle. Triggers come from the interval
timer, debounced custom file changes, cold-start reads and manual requests.
Only one cycle runs at a time; triggers that arrive during a cycle collapse
into a single follow-up cycle.
"""
import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from iptv_addon.config import Settings
from iptv_addon.models.channel import CatalogSnapshot
from iptv_addon.models.fetch import FetchError, SourceBundle
from iptv_addon.services.cache import CATALOG_KEY, CacheStore
from iptv_addon.services.file_watcher import CustomFileWatcher
from iptv_addon.services.manifest import build_manifest
from iptv_addon.services.merger import build_stream_map, dedupe_channels, merge, passes_policy
from iptv_addon.services.snapshot_store import SnapshotStore
from iptv_addon.services.source_fetcher import SourceFetcher
from iptv_addon.services.stream_verifier import StreamVerifier

logger = logging.getLogger(__name__)


class RefreshState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    MERGING = "merging"
    PUBLISHED = "published"
    FAILED_KEEP_STALE = "failed_keep_stale"


class RefreshOutcome(BaseModel):
    """Result of one refresh cycle."""
    state: RefreshState
    reason: str
    channels: int = 0
    errors: list[FetchError] = Field(default_factory=list)
    finished_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def published(self) -> bool:
        return self.state == RefreshState.PUBLISHED


class _NoSnapshot(Exception):
    """A cold-start refresh finished without publishing anything."""


class RefreshCoordinator:
    """Serializes refresh cycles and publishes snapshots into the cache."""

    def __init__(
        self,
        settings: Settings,
        cache: CacheStore,
        fetcher: SourceFetcher,
        verifier: StreamVerifier,
        snapshot_store: Optional[SnapshotStore] = None,
    ):
        self.settings = settings
        self.cache = cache
        self.fetcher = fetcher
        self.verifier = verifier
        self.snapshot_store = snapshot_store
        self.policy = settings.filter_policy()
        self.state = RefreshState.IDLE

        self._lock = asyncio.Lock()
        self._wakeup = asyncio.Event()
        self._pending = False
        self._pending_reason = "manual"
        self._waiters: list[asyncio.Future] = []
        self._cycle_waiters: Optional[list[asyncio.Future]] = None

        # Inbound channel for file change events
        self.file_events: asyncio.Queue = asyncio.Queue()
        self._watcher: Optional[CustomFileWatcher] = None
        if settings.enable_custom_channels and settings.custom_channels_file:
            self._watcher = CustomFileWatcher(
                settings.custom_channels_file,
                self.file_events,
                interval=settings.watch_interval_seconds,
            )

        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._stats = {
            "cycles": 0,
            "published": 0,
            "kept_stale": 0,
            "last_published": None,
            "last_outcome": None,
        }

    # ==================== LIFECYCLE ====================

    async def start(self, initial_refresh: bool = True):
        """Start the background worker, interval timer and file watcher."""
        if self._running:
            logger.warning("Refresh coordinator already running")
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self._worker_loop()),
            asyncio.create_task(self._file_event_loop()),
        ]
        if self.settings.refresh_interval_seconds > 0:
            self._tasks.append(asyncio.create_task(self._interval_loop()))
        if self._watcher:
            await self._watcher.start()
        if initial_refresh:
            self.trigger("startup")
        logger.info("Refresh coordinator started")

    async def stop(self):
        """Stop all background tasks. Pending waiters are cancelled."""
        self._running = False
        if self._watcher:
            await self._watcher.stop()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        for waiter in [*self._waiters, *(self._cycle_waiters or [])]:
            waiter.cancel()
        self._waiters = []
        logger.info("Refresh coordinator stopped")

    async def restore(self) -> bool:
        """Seed the cache from the persisted snapshot, if any."""
        if self.snapshot_store is None or self.current_snapshot() is not None:
            return False
        snapshot = await self.snapshot_store.load()
        if snapshot is None:
            logger.info("No persisted snapshot found")
            return False
        self.cache.set(CATALOG_KEY, snapshot, ttl=0)
        logger.info(f"Restored snapshot with {len(snapshot)} channels from {snapshot.created_at.isoformat()}")
        return True

    def get_stats(self) -> dict:
        return {**self._stats, "state": self.state.value, "running": self._running}

    # ==================== TRIGGERS ====================

    def current_snapshot(self) -> Optional[CatalogSnapshot]:
        return self.cache.get(CATALOG_KEY)

    def trigger(self, reason: str = "manual"):
        """Request a refresh without waiting for it."""
        self._pending = True
        self._pending_reason = reason
        self._wakeup.set()

    async def refresh(self, reason: str = "manual", join_running: bool = False) -> RefreshOutcome:
        """
        Request a refresh and wait for its outcome.

        With ``join_running`` a caller arriving during a cycle takes that
        cycle's outcome instead of scheduling another one.
        """
        waiter = asyncio.get_running_loop().create_future()
        if join_running and self._cycle_waiters is not None:
            self._cycle_waiters.append(waiter)
        else:
            self._waiters.append(waiter)
            self.trigger(reason)

        if not self._running:
            # No background worker: drive the cycle from this caller
            async with self._lock:
                await self._drain()
        return await waiter

    async def ensure_snapshot(self) -> Optional[CatalogSnapshot]:
        """Return the current snapshot, populating it on a cold cache."""
        snapshot = self.current_snapshot()
        if snapshot is not None:
            return snapshot

        async def cold_start() -> CatalogSnapshot:
            await self.refresh("cold-start", join_running=True)
            published = self.current_snapshot()
            if published is None:
                raise _NoSnapshot()
            return published

        try:
            return await self.cache.populate(CATALOG_KEY, 0, cold_start)
        except _NoSnapshot:
            logger.warning("Cold start refresh produced no catalog")
            return None

    # ==================== LOOPS ====================

    async def _worker_loop(self):
        while self._running:
            await self._wakeup.wait()
            self._wakeup.clear()
            async with self._lock:
                await self._drain()

    async def _interval_loop(self):
        interval = self.settings.refresh_interval_seconds
        while self._running:
            await asyncio.sleep(interval)
            self.trigger("interval")

    async def _file_event_loop(self):
        debounce = self.settings.watch_debounce_seconds
        while self._running:
            await self.file_events.get()
            # Collapse a burst of events into one refresh
            while True:
                try:
                    await asyncio.wait_for(self.file_events.get(), timeout=debounce)
                except asyncio.TimeoutError:
                    break
            logger.info("Custom channels file changed, reloading...")
            self.trigger("file-change")

    async def _drain(self):
        """Run cycles until no trigger is pending. Caller holds the lock."""
        while self._pending:
            self._pending = False
            reason = self._pending_reason
            waiters, self._waiters = self._waiters, []
            self._cycle_waiters = waiters
            try:
                outcome = await self._run_cycle(reason)
            finally:
                self._cycle_waiters = None
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_result(outcome)

    # ==================== CYCLE ====================

    async def _verify_candidates(self, bundle: SourceBundle) -> dict[str, bool]:
        """Verify streams of channels that pass the filter policy."""
        channels = dedupe_channels([*bundle.channels.records, *bundle.overlay.channels])
        stream_map = build_stream_map([*bundle.streams.records, *bundle.overlay.streams])
        candidates = [
            stream
            for channel in channels
            if passes_policy(channel, self.policy)
            for stream in stream_map.get(channel.id, [])
        ]
        return await self.verifier.verify_many(candidates)

    def _keep_stale(self, reason: str, errors: list[FetchError], message: str) -> RefreshOutcome:
        self.state = RefreshState.FAILED_KEEP_STALE
        previous = self.current_snapshot()
        kept = len(previous) if previous is not None else 0
        logger.warning(f"Refresh ({reason}) not published: {message}; keeping previous catalog ({kept} channels)")
        self._stats["kept_stale"] += 1
        self._stats["last_outcome"] = RefreshState.FAILED_KEEP_STALE.value
        self.state = RefreshState.IDLE
        return RefreshOutcome(state=RefreshState.FAILED_KEEP_STALE, reason=reason, channels=kept, errors=errors)

    async def _run_cycle(self, reason: str) -> RefreshOutcome:
        self._stats["cycles"] += 1
        logger.info(f"Refresh started ({reason})")
        previous = self.current_snapshot()
        errors: list[FetchError] = []

        try:
            self.state = RefreshState.FETCHING
            bundle = await self.fetcher.fetch_all()
            errors = [e for e in (bundle.channels.error, bundle.streams.error, *bundle.overlay.errors) if e]

            self.state = RefreshState.MERGING
            channels = [*bundle.channels.records, *bundle.overlay.channels]
            if not channels:
                return self._keep_stale(reason, errors, "no channels available from any source")

            verified = None
            if self.settings.verify_mode == "eager":
                verified = await self._verify_candidates(bundle)
            metas = merge(channels, [*bundle.streams.records, *bundle.overlay.streams], self.policy, verified)
        except Exception as e:
            logger.error(f"Refresh cycle failed: {e}", exc_info=True)
            return self._keep_stale(reason, errors, "unexpected error")

        # Undersized results publish only on a cold cache with every source healthy
        minimum = max(1, self.settings.min_channels)
        has_previous = previous is not None and len(previous) > 0
        if len(metas) < minimum and (has_previous or errors):
            return self._keep_stale(reason, errors, f"only {len(metas)} channels, minimum is {minimum}")

        snapshot = CatalogSnapshot(
            metas=tuple(metas),
            custom_genres=tuple(bundle.overlay.custom_genres),
            manifest=build_manifest(self.settings, metas, bundle.overlay.custom_genres),
        )
        self.cache.set(CATALOG_KEY, snapshot, ttl=0)
        self.state = RefreshState.PUBLISHED
        self._stats["published"] += 1
        self._stats["last_published"] = snapshot.created_at.isoformat()
        self._stats["last_outcome"] = RefreshState.PUBLISHED.value
        logger.info(f"{len(snapshot)} channel(s) information cached successfully")

        if self.snapshot_store is not None:
            try:
                await self.snapshot_store.save(snapshot)
            except Exception as e:
                logger.error(f"Failed to persist snapshot: {e}")

        self.state = RefreshState.IDLE
        return RefreshOutcome(state=RefreshState.PUBLISHED, reason=reason, channels=len(snapshot), errors=errors)
