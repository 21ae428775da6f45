"""
Catalog merging and filtering.
Combines remote and custom records into the externally visible metas.
"""
import logging
from typing import Iterable, Mapping, Optional

from iptv_addon.models.channel import Channel, FilterPolicy, MergedMeta, Stream, StreamDescriptor
from iptv_addon.models.genres import DEFAULT_CATEGORY

logger = logging.getLogger(__name__)

META_ID_PREFIX = "iptv-"


def meta_id(channel_id: str) -> str:
    return f"{META_ID_PREFIX}{channel_id}"


def build_stream_map(streams: Iterable[Stream]) -> dict[str, list[Stream]]:
    """Group streams by channel id, keeping source order within each channel."""
    stream_map: dict[str, list[Stream]] = {}
    for stream in streams:
        if stream.channel:
            stream_map.setdefault(stream.channel, []).append(stream)
    return stream_map


def dedupe_channels(channels: Iterable[Channel]) -> list[Channel]:
    """
    Keep one record per id: the last one seen wins, at the position where
    the id first appeared.
    """
    by_id: dict[str, Channel] = {}
    for channel in channels:
        by_id[channel.id] = channel
    return list(by_id.values())


def passes_policy(channel: Channel, policy: FilterPolicy) -> bool:
    """Evaluate the include/exclude rules. Stream presence is checked separately."""
    if channel.is_custom:
        if policy.custom_category_exclusion:
            return not any(cat in policy.exclude_categories for cat in channel.categories or ())
        return True

    if policy.include_countries and channel.country not in policy.include_countries:
        return False
    if channel.country in policy.exclude_countries:
        return False
    if policy.include_languages and not any(lang in policy.include_languages for lang in channel.languages):
        return False
    if any(lang in policy.exclude_languages for lang in channel.languages):
        return False
    if any(cat in policy.exclude_categories for cat in channel.categories or ()):
        return False
    return True


def to_descriptor(stream: Stream) -> StreamDescriptor:
    return StreamDescriptor(
        url=stream.url,
        title=stream.title or "Live Stream",
        referrer=stream.referrer,
        user_agent=stream.user_agent,
    )


def to_meta(channel: Channel, streams: Iterable[Stream]) -> MergedMeta:
    """Convert a channel and its streams into a catalog meta."""
    categories = channel.categories if channel.categories is not None else [DEFAULT_CATEGORY]
    genres = list(dict.fromkeys(g for g in [*categories, channel.country] if g))
    return MergedMeta(
        id=meta_id(channel.id),
        name=channel.name,
        genres=tuple(genres),
        poster=channel.logo,
        background=channel.logo,
        logo=channel.logo,
        country=channel.country,
        is_custom=channel.is_custom,
        streams=tuple(to_descriptor(s) for s in streams),
    )


def merge(
    channels: Iterable[Channel],
    streams: Iterable[Stream],
    policy: FilterPolicy,
    verified: Optional[Mapping[str, bool]] = None,
) -> list[MergedMeta]:
    """
    Merge channels and streams into catalog metas.

    ``channels`` must list remote records before custom ones so that a custom
    record with a colliding id replaces the remote one. When ``verified`` is
    given, streams whose URL verified False are dropped before the stream
    check, so a channel left without streams disappears.
    """
    stream_map = build_stream_map(streams)
    if verified is not None:
        stream_map = {
            channel_id: live
            for channel_id, candidates in stream_map.items()
            if (live := [s for s in candidates if verified.get(s.url, False)])
        }

    metas = []
    for channel in dedupe_channels(channels):
        if not passes_policy(channel, policy):
            continue
        channel_streams = stream_map.get(channel.id)
        if not channel_streams:
            continue
        metas.append(to_meta(channel, channel_streams))

    custom_count = sum(1 for m in metas if m.is_custom)
    logger.info(f"Merged {len(metas)} channels (API: {len(metas) - custom_count}, Custom: {custom_count})")
    return metas


def first_stream(meta: MergedMeta) -> Optional[StreamDescriptor]:
    """Single-stream view of a meta: the first stream in source order."""
    return meta.streams[0] if meta.streams else None
