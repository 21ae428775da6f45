"""
Read API over the published catalog: catalog listing, meta and streams.
Missing or malformed lookups resolve to empty results, never errors.
"""
import logging
from typing import Optional, Union

from iptv_addon.config import Settings
from iptv_addon.models.channel import CatalogSnapshot, MergedMeta, StreamDescriptor
from iptv_addon.services.manifest import build_manifest, parse_catalog_id
from iptv_addon.services.refresh import RefreshCoordinator
from iptv_addon.services.stream_verifier import StreamVerifier

logger = logging.getLogger(__name__)

GenreFilter = Union[str, list[str], None]


def _normalize_genres(genre: GenreFilter) -> list[str]:
    if genre is None:
        return []
    genres = [genre] if isinstance(genre, str) else list(genre)
    return [g for g in genres if g]


class QueryService:
    """Serves catalog, meta and stream lookups from the current snapshot."""

    def __init__(self, settings: Settings, coordinator: RefreshCoordinator, verifier: StreamVerifier):
        self.settings = settings
        self.coordinator = coordinator
        self.verifier = verifier

    @property
    def lazy_verification(self) -> bool:
        return self.settings.verify_mode == "lazy"

    async def _snapshot(self) -> Optional[CatalogSnapshot]:
        return await self.coordinator.ensure_snapshot()

    async def _live_streams(self, meta: MergedMeta) -> list[StreamDescriptor]:
        if not self.lazy_verification:
            return list(meta.streams)
        results = await self.verifier.verify_many(meta.streams)
        return [s for s in meta.streams if results.get(s.url)]

    async def list_catalog(self, group: str, genre: GenreFilter = None) -> list[MergedMeta]:
        """
        List metas whose genres contain the grouping key (a country code or a
        catalog id), optionally narrowed to any of the requested genres.
        """
        key = parse_catalog_id(group)
        if key is None:
            logger.debug(f"Ignoring malformed catalog id: {group!r}")
            return []
        snapshot = await self._snapshot()
        if snapshot is None:
            return []

        metas = [meta for meta in snapshot.metas if key in meta.genres]
        genres = _normalize_genres(genre)
        if genres:
            metas = [meta for meta in metas if any(g in meta.genres for g in genres)]

        genre_note = f" (genre: {', '.join(genres)})" if genres else ""
        logger.info(f"Serving catalog for {key} with {len(metas)} channels{genre_note}")
        return metas

    async def get_meta(self, meta_id: str) -> Optional[MergedMeta]:
        """Exact-match lookup. None when the channel is absent or has no live stream."""
        snapshot = await self._snapshot()
        if snapshot is None:
            return None
        meta = snapshot.find(meta_id)
        if meta is None:
            return None
        if not self.lazy_verification:
            return meta
        live = await self._live_streams(meta)
        if not live:
            logger.info(f"No reachable stream for {meta_id}")
            return None
        return meta.model_copy(update={"streams": tuple(live)})

    async def get_streams(self, meta_id: str) -> list[StreamDescriptor]:
        """Streams of the matched meta, or an empty list."""
        snapshot = await self._snapshot()
        meta = snapshot.find(meta_id) if snapshot is not None else None
        if meta is None:
            logger.info(f"No matching stream found for channel id: {meta_id}")
            return []
        streams = await self._live_streams(meta)
        logger.info(f"Serving {len(streams)} stream(s) for {meta_id}{' [CUSTOM]' if meta.is_custom else ''}")
        return streams

    async def get_manifest(self) -> dict:
        """Manifest published with the current snapshot."""
        snapshot = await self._snapshot()
        if snapshot is None or not snapshot.manifest:
            return build_manifest(self.settings, [], [])
        return snapshot.manifest
