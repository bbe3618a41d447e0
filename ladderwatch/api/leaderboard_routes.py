"""Ladderwatch — Leaderboard API Routes."""

from fastapi import APIRouter, Depends
from sqlmodel import Session

from ladderwatch.analyzer.leaderboard_query import get_latest_leaderboard
from ladderwatch.database import get_session

router = APIRouter(tags=["Leaderboard"])


@router.get("/leaderboard/latest")
async def latest_leaderboard(session: Session = Depends(get_session)):
    """Latest snapshot date's standings under the active score profile."""
    view = get_latest_leaderboard(session)
    if view.snapshot_date is None:
        return {
            "status": "no_data",
            "message": "No snapshots have been polled yet.",
            "leaderboard": view.model_dump(mode="json"),
        }
    return {"status": "success", "leaderboard": view.model_dump(mode="json")}
