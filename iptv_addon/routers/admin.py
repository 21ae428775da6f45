"""
Operational endpoints: health, statistics and manual refresh.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from iptv_addon.state import AddonState, get_state

router = APIRouter(prefix="/api", tags=["admin"])


@router.get("/health")
async def health_check(state: AddonState = Depends(get_state)):
    """Health check endpoint."""
    snapshot = state.coordinator.current_snapshot()
    return {
        "status": "healthy",
        "version": state.settings.app_version,
        "channels": len(snapshot) if snapshot is not None else 0,
    }


@router.get("/stats")
async def get_stats(state: AddonState = Depends(get_state)):
    """Refresh, cache and verification statistics."""
    return {
        "refresh": state.coordinator.get_stats(),
        "cache": state.cache.stats(),
        "verification": state.verifier.get_stats(),
    }


@router.post("/refresh")
async def trigger_refresh(
    x_admin_key: Optional[str] = Header(None),
    admin_key: Optional[str] = Query(None, alias="X-Admin-Key"),
    state: AddonState = Depends(get_state),
):
    """
    Force a catalog refresh and wait for it to finish.
    Requires the X-Admin-Key header or query parameter.
    """
    if (x_admin_key or admin_key) != state.settings.admin_api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing admin API key")

    outcome = await state.coordinator.refresh("manual")
    return {
        "status": outcome.state.value,
        "channels": outcome.channels,
        "errors": [str(e) for e in outcome.errors],
    }
