"""
Source fetching service.
Retrieves the iptv-org channel and stream directories plus custom overlays.
"""
import asyncio
import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ValidationError

from iptv_addon.config import Settings
from iptv_addon.errors import ParseError
from iptv_addon.models.channel import Channel, Stream
from iptv_addon.models.fetch import (
    CustomOverlay,
    FetchError,
    FetchErrorKind,
    FetchResult,
    SourceBundle,
)
from iptv_addon.models.genres import DEFAULT_CATEGORY, collect_custom_genres
from iptv_addon.services.cache import REMOTE_CHANNELS_KEY, REMOTE_STREAMS_KEY, CacheStore

logger = logging.getLogger(__name__)


class _StreamsUnavailable(Exception):
    """Carries a FetchError out of a cache factory so nothing gets cached."""

    def __init__(self, error: FetchError):
        super().__init__(str(error))
        self.error = error


def _custom_channel_id(name: str) -> str:
    """Stable id for custom channels that do not declare one."""
    return "custom." + hashlib.md5(name.encode()).hexdigest()[:12]


def parse_overlay(document: Any, source: str, default_country: str) -> tuple[list[Channel], list[Stream]]:
    """
    Parse a custom overlay document ``{"channels": [...], "streams": [...]}``.

    Every record is tagged custom. Raises ParseError on any malformed entry.
    """
    if not isinstance(document, dict):
        raise ParseError(source, "overlay must be a JSON object")

    raw_channels = document.get("channels") or []
    raw_streams = document.get("streams") or []
    if not isinstance(raw_channels, list) or not isinstance(raw_streams, list):
        raise ParseError(source, "'channels' and 'streams' must be arrays")

    channels = []
    for i, raw in enumerate(raw_channels):
        if not isinstance(raw, dict):
            raise ParseError(source, f"channel at index {i} is not an object")
        name = raw.get("name") or "Unnamed Channel"
        data = {
            **raw,
            "id": raw.get("id") or _custom_channel_id(name),
            "name": name,
            "country": raw.get("country") or default_country,
            "categories": raw["categories"] if raw.get("categories") is not None else [DEFAULT_CATEGORY],
            "is_custom": True,
        }
        try:
            channels.append(Channel.model_validate(data))
        except ValidationError as e:
            raise ParseError(source, f"invalid channel at index {i}: {e}") from e

    streams = []
    for i, raw in enumerate(raw_streams):
        if not isinstance(raw, dict):
            raise ParseError(source, f"stream at index {i} is not an object")
        data = {**raw, "title": raw.get("title") or "Live Stream", "is_custom": True}
        try:
            streams.append(Stream.model_validate(data))
        except ValidationError as e:
            raise ParseError(source, f"invalid stream at index {i}: {e}") from e

    return channels, streams


class SourceFetcher:
    """Fetches the remote directories and custom overlays for one refresh."""

    def __init__(
        self,
        settings: Settings,
        cache: CacheStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.cache = cache
        self._transport = transport

    async def fetch_json(self, url: str, source: str) -> tuple[Any, Optional[FetchError]]:
        """Fetch one JSON document. Failures are returned, never raised."""
        logger.info(f"Fetching {source} from {url}")
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.fetch_timeout_seconds,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.json(), None
        except httpx.TimeoutException as e:
            error = FetchError(kind=FetchErrorKind.TIMEOUT, source=source, detail=str(e) or "timed out")
        except httpx.HTTPStatusError as e:
            error = FetchError(
                kind=FetchErrorKind.HTTP,
                source=source,
                detail=f"status {e.response.status_code}",
            )
        except httpx.HTTPError as e:
            error = FetchError(kind=FetchErrorKind.NETWORK, source=source, detail=str(e))
        except ValueError as e:
            error = FetchError(kind=FetchErrorKind.PARSE, source=source, detail=f"invalid JSON: {e}")
        logger.error(f"Failed to fetch {source}: {error}")
        return None, error

    @staticmethod
    def _parse_records(data: Any, model: type[BaseModel], source: str) -> tuple[list, Optional[FetchError]]:
        """Validate a JSON array of records, skipping invalid entries."""
        if not isinstance(data, list):
            return [], FetchError(kind=FetchErrorKind.PARSE, source=source, detail="expected a JSON array")
        records = []
        skipped = 0
        for item in data:
            try:
                records.append(model.model_validate(item))
            except ValidationError:
                skipped += 1
        if skipped:
            logger.warning(f"Skipped {skipped} invalid records from {source}")
        return records, None

    async def fetch_remote_channels(self) -> FetchResult[Channel]:
        """Fetch the channel directory, falling back to the last good copy on failure."""
        data, error = await self.fetch_json(self.settings.channels_url, "channels")
        if error is None:
            channels, error = self._parse_records(data, Channel, "channels")
        if error is None:
            self.cache.set(REMOTE_CHANNELS_KEY, channels, ttl=0)
            logger.info(f"Fetched {len(channels)} channels")
            return FetchResult[Channel](records=channels)

        cached = self.cache.get(REMOTE_CHANNELS_KEY)
        if cached is not None:
            logger.warning(f"Serving {len(cached)} channels from cache after fetch failure")
            return FetchResult[Channel](records=cached, error=error)
        return FetchResult[Channel](error=error)

    async def fetch_remote_streams(self) -> FetchResult[Stream]:
        """Fetch the stream directory, cached for streams_ttl_seconds."""

        async def load() -> list[Stream]:
            data, error = await self.fetch_json(self.settings.streams_url, "streams")
            if error is None:
                streams, error = self._parse_records(data, Stream, "streams")
            if error is not None:
                raise _StreamsUnavailable(error)
            logger.info(f"Fetched {len(streams)} streams")
            return streams

        try:
            streams = await self.cache.populate(REMOTE_STREAMS_KEY, self.settings.streams_ttl_seconds, load)
        except _StreamsUnavailable as e:
            return FetchResult[Stream](error=e.error)
        return FetchResult[Stream](records=streams)

    def _load_custom_file(self) -> tuple[list[Channel], list[Stream]]:
        path = Path(self.settings.custom_channels_file)
        if not path.exists():
            return [], []
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ParseError(str(path), f"unreadable overlay file: {e}") from e
        return parse_overlay(document, str(path), self.settings.custom_default_country)

    async def fetch_custom_overlay(self) -> CustomOverlay:
        """Load the local overlay file and the optional remote overlay feed."""
        if not self.settings.enable_custom_channels:
            return CustomOverlay()

        overlay = CustomOverlay()

        try:
            channels, streams = await asyncio.to_thread(self._load_custom_file)
            overlay.channels.extend(channels)
            overlay.streams.extend(streams)
        except ParseError as e:
            logger.error(f"Ignoring custom channels file: {e}")
            overlay.errors.append(FetchError(kind=FetchErrorKind.PARSE, source=e.source, detail=e.message))

        remote_url = self.settings.custom_channels_url
        if remote_url:
            data, error = await self.fetch_json(remote_url, "custom overlay")
            if error is None:
                try:
                    channels, streams = parse_overlay(data, remote_url, self.settings.custom_default_country)
                    overlay.channels.extend(channels)
                    overlay.streams.extend(streams)
                except ParseError as e:
                    logger.error(f"Ignoring remote custom overlay: {e}")
                    error = FetchError(kind=FetchErrorKind.PARSE, source=e.source, detail=e.message)
            if error is not None:
                overlay.errors.append(error)

        overlay.custom_genres = collect_custom_genres(
            category for channel in overlay.channels for category in channel.categories or ()
        )
        if overlay.channels or overlay.streams:
            logger.info(f"Loaded {len(overlay.channels)} custom channels, {len(overlay.streams)} custom streams")
        if overlay.custom_genres:
            logger.info(f"Custom genres found: {', '.join(overlay.custom_genres)}")
        return overlay

    async def fetch_all(self) -> SourceBundle:
        """Fetch every source concurrently."""
        channels, streams, overlay = await asyncio.gather(
            self.fetch_remote_channels(),
            self.fetch_remote_streams(),
            self.fetch_custom_overlay(),
        )
        return SourceBundle(channels=channels, streams=streams, overlay=overlay)
