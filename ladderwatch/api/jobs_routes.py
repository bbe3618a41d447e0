"""Ladderwatch — Job Trigger API Routes.

Every route here requires `Authorization: Bearer <CRON_SECRET>`.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlmodel import Session

from ladderwatch.analyzer.pipeline import run_poll
from ladderwatch.analyzer.rebuild import run_rebuild
from ladderwatch.api.auth import require_cron_secret
from ladderwatch.config import settings
from ladderwatch.core.dates import parse_snapshot_date
from ladderwatch.core.exceptions import DigestSendDisabledError, LadderwatchError
from ladderwatch.core.logging import get_logger
from ladderwatch.database import get_session
from ladderwatch.digest.delivery import release_pending_delivery
from ladderwatch.digest.service import run_digest
from ladderwatch.scheduler.daily import run_daily

logger = get_logger("api.jobs")

router = APIRouter(
    prefix="/api/jobs",
    tags=["Jobs"],
    dependencies=[Depends(require_cron_secret)],
)

NO_STORE = {"Cache-Control": "no-store"}


# ── Request Models ──


class PollRequest(BaseModel):
    snapshot_date: Optional[str] = None
    """UTC snapshot date in YYYY-MM-DD format. Defaults to today."""


class DigestRequest(BaseModel):
    mode: Literal["preview", "send"] = "preview"
    snapshot_date: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"mode": "preview"},
                {"mode": "send", "snapshot_date": "2026-03-02"},
            ]
        }
    }


class ReleaseDeliveryRequest(BaseModel):
    delivery_date: str
    """The stuck slot's date (YYYY-MM-DD)."""


def _is_dry_run(raw: Optional[str]) -> bool:
    return bool(raw) and raw.strip().lower() in ("1", "true")


# ── Endpoints ──


@router.api_route("/daily", methods=["GET", "POST"])
async def trigger_daily(
    dry_run: Optional[str] = Query(None, alias="dryRun"),
    session: Session = Depends(get_session),
):
    """Run poll + digest. `?dryRun=1` previews the digest instead of sending.

    Responds 500 when the digest stage failed, 200 otherwise (even if the
    poll failed; see `poll_ok`).
    """
    result = await run_daily(session, dry_run=_is_dry_run(dry_run))
    logger.info(
        f"Daily trigger: ok={result.ok} poll={result.poll.status} digest={result.digest.status}",
        extra={"snapshot_date": result.snapshot_date},
    )
    return JSONResponse(
        content=result.model_dump(mode="json"),
        status_code=200 if result.ok else 500,
        headers=NO_STORE,
    )


@router.post("/poll")
async def trigger_poll(
    response: Response,
    request: Optional[PollRequest] = None,
    session: Session = Depends(get_session),
):
    """Poll every active tracked character and re-rank the leaderboard."""
    response.headers.update(NO_STORE)
    snapshot_date = parse_snapshot_date(request.snapshot_date if request else None)
    try:
        result = await run_poll(session, snapshot_date=snapshot_date)
    except LadderwatchError:
        raise
    except Exception as e:
        logger.error(f"Poll failed: {e}")
        raise HTTPException(status_code=500, detail=f"Poll failed: {str(e)}", headers=NO_STORE)
    return {"status": "success", "poll": result.model_dump(mode="json")}


@router.post("/digest")
async def trigger_digest(
    response: Response,
    request: Optional[DigestRequest] = None,
    session: Session = Depends(get_session),
):
    """Preview or send the digest for a snapshot date."""
    response.headers.update(NO_STORE)
    request = request or DigestRequest()
    try:
        result = await run_digest(
            session, mode=request.mode, snapshot_date=request.snapshot_date
        )
    except LadderwatchError:
        raise
    except Exception as e:
        logger.error(f"Digest failed: {e}")
        raise HTTPException(status_code=500, detail=f"Digest failed: {str(e)}", headers=NO_STORE)
    return {"status": "success", "digest": result.model_dump(mode="json")}


@router.post("/rebuild")
async def trigger_rebuild(response: Response, session: Session = Depends(get_session)):
    """Re-score the latest snapshot date under the configured profile."""
    response.headers.update(NO_STORE)
    try:
        result = await run_rebuild(session)
    except LadderwatchError:
        raise
    except Exception as e:
        logger.error(f"Rebuild failed: {e}")
        raise HTTPException(status_code=500, detail=f"Rebuild failed: {str(e)}", headers=NO_STORE)
    return {"status": "success", "rebuild": result.model_dump(mode="json")}


@router.post("/release-delivery")
async def trigger_release_delivery(
    request: ReleaseDeliveryRequest,
    response: Response,
    session: Session = Depends(get_session),
):
    """Move a digest delivery stuck in PENDING to FAILED so it can be re-sent."""
    response.headers.update(NO_STORE)
    if not settings.telegram_chat_id:
        raise DigestSendDisabledError("TELEGRAM_CHAT_ID is not configured.")
    delivery_date = parse_snapshot_date(request.delivery_date)
    row = release_pending_delivery(session, settings.telegram_chat_id, delivery_date)
    return {
        "status": "success",
        "delivery": {
            "id": row.id,
            "delivery_date": row.delivery_date,
            "status": row.status,
        },
    }
