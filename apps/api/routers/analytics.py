"""
Funnel analytics over stored daily snapshots.
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from analysis.funnel import build_funnel
from analysis.models import FunnelReport
from services.snapshot_store import SnapshotStore

router = APIRouter()


def get_snapshot_store() -> SnapshotStore:
    return SnapshotStore()


@router.get("/funnel", response_model=FunnelReport)
async def get_channel_funnel(
    channel_id: str = Query(...),
    start: date = Query(...),
    end: date = Query(...),
    store: SnapshotStore = Depends(get_snapshot_store),
):
    """Impressions -> views -> engaged viewers for one channel and date range."""
    if start > end:
        raise HTTPException(status_code=422, detail="start must be on or before end")

    channel = await store.get_channel(channel_id)
    if channel is None:
        raise HTTPException(status_code=404, detail="Channel not found")

    videos = await store.get_period_aggregates(channel_id, start, end)
    return FunnelReport(
        channel_id=channel_id,
        start_date=start,
        end_date=end,
        summary=build_funnel(videos),
        videos=videos,
    )
