"""
Wiring of the addon components.

One AddonState holds every component of a running instance so tests and
applications can build independent instances.
"""
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request

from iptv_addon.config import Settings, get_settings
from iptv_addon.services.cache import CacheStore
from iptv_addon.services.query import QueryService
from iptv_addon.services.refresh import RefreshCoordinator
from iptv_addon.services.snapshot_store import SnapshotStore
from iptv_addon.services.source_fetcher import SourceFetcher
from iptv_addon.services.stream_verifier import StreamVerifier


@dataclass
class AddonState:
    settings: Settings
    cache: CacheStore
    fetcher: SourceFetcher
    verifier: StreamVerifier
    coordinator: RefreshCoordinator
    query: QueryService
    snapshot_store: Optional[SnapshotStore] = None

    async def startup(self):
        """Restore the persisted snapshot and start background refreshing."""
        if self.snapshot_store is not None:
            await self.snapshot_store.initialize()
            await self.coordinator.restore()
        await self.coordinator.start()

    async def shutdown(self):
        await self.coordinator.stop()


def build_state(
    settings: Optional[Settings] = None,
    source_transport: Optional[httpx.AsyncBaseTransport] = None,
    probe_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AddonState:
    """Create a fully wired AddonState. Transports are injectable for tests."""
    settings = settings or get_settings()
    cache = CacheStore()
    fetcher = SourceFetcher(settings, cache, transport=source_transport)
    verifier = StreamVerifier(settings, cache, transport=probe_transport)
    snapshot_store = SnapshotStore(settings.snapshot_path) if settings.snapshot_path else None
    coordinator = RefreshCoordinator(settings, cache, fetcher, verifier, snapshot_store)
    query = QueryService(settings, coordinator, verifier)
    return AddonState(
        settings=settings,
        cache=cache,
        fetcher=fetcher,
        verifier=verifier,
        coordinator=coordinator,
        query=query,
        snapshot_store=snapshot_store,
    )


def get_state(request: Request) -> AddonState:
    """FastAPI dependency returning the application's AddonState."""
    return request.app.state.addon
