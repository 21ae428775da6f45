"""
Stremio addon protocol endpoints: manifest, catalog, meta and stream.
"""
import logging
from typing import Optional
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends

from iptv_addon.models.channel import MergedMeta, StreamDescriptor
from iptv_addon.state import AddonState, get_state

logger = logging.getLogger(__name__)

router = APIRouter(tags=["addon"])


def parse_extra(extra: Optional[str]) -> dict[str, list[str]]:
    """Parse a Stremio extra path segment such as ``genre=news&skip=0``."""
    if not extra:
        return {}
    return parse_qs(extra, keep_blank_values=False)


def meta_to_dict(meta: MergedMeta) -> dict:
    return meta.model_dump(by_alias=True, exclude={"streams"}, mode="json")


def stream_to_dict(stream: StreamDescriptor) -> dict:
    result = {"url": stream.url, "title": stream.title}
    request_headers = {}
    if stream.user_agent:
        request_headers["User-Agent"] = stream.user_agent
    if stream.referrer:
        request_headers["Referer"] = stream.referrer
    if request_headers:
        result["behaviorHints"] = {
            "notWebReady": True,
            "proxyHeaders": {"request": request_headers},
        }
    return result


@router.get("/manifest.json")
async def get_manifest(state: AddonState = Depends(get_state)):
    """Addon manifest published with the current catalog."""
    return await state.query.get_manifest()


@router.get("/catalog/{type}/{catalog_id}.json")
@router.get("/catalog/{type}/{catalog_id}/{extra}.json")
async def get_catalog(
    type: str,
    catalog_id: str,
    extra: Optional[str] = None,
    state: AddonState = Depends(get_state),
):
    """Channels of one catalog grouping, optionally filtered by genre."""
    if type != "tv":
        return {"metas": []}
    genres = parse_extra(extra).get("genre")
    metas = await state.query.list_catalog(catalog_id, genres)
    return {"metas": [meta_to_dict(m) for m in metas]}


@router.get("/meta/{type}/{meta_id}.json")
async def get_meta(type: str, meta_id: str, state: AddonState = Depends(get_state)):
    """Descriptive record for one channel."""
    meta = await state.query.get_meta(meta_id) if type == "tv" else None
    return {"meta": meta_to_dict(meta) if meta else {}}


@router.get("/stream/{type}/{meta_id}.json")
async def get_streams(type: str, meta_id: str, state: AddonState = Depends(get_state)):
    """Playable endpoints for one channel."""
    streams = await state.query.get_streams(meta_id) if type == "tv" else []
    return {"streams": [stream_to_dict(s) for s in streams]}
