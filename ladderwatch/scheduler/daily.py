"""Ladderwatch — Daily automation.

Poll, then digest for the poll's snapshot date. The stages fail
independently: a failed poll still gets a (poll_failure) digest, and a failed
digest does not touch the poll's outcome.
"""

from typing import List, Optional

from sqlmodel import Session

from ladderwatch.analyzer.pipeline import BundleFetcher, run_poll
from ladderwatch.core.dates import utc_today
from ladderwatch.core.exceptions import serialize_error
from ladderwatch.core.logging import get_logger
from ladderwatch.digest.service import MessageSender, run_digest
from ladderwatch.models.config_models import ScoreProfileConfig, TrackedCharacterConfig
from ladderwatch.models.digest_models import DailyAutomationResult, StageOutcome
from ladderwatch.models.job_models import JobStatus

logger = get_logger("scheduler.daily")

POLL_ERROR = "ERROR"
DIGEST_ERROR = "ERROR"
_POLL_OK_STATUSES = (JobStatus.SUCCESS.value, JobStatus.PARTIAL_FAILURE.value)


async def run_daily(
    session: Session,
    dry_run: bool = False,
    characters: Optional[List[TrackedCharacterConfig]] = None,
    profile: Optional[ScoreProfileConfig] = None,
    bundle_fetcher: Optional[BundleFetcher] = None,
    sender: Optional[MessageSender] = None,
) -> DailyAutomationResult:
    """Run poll + digest. `dry_run` previews the digest instead of sending it.

    `ok` is True when the digest stage completed, whatever the poll did.
    `poll_ok` reports the poll separately.
    """
    logger.info(f"🌅 Daily automation starting ({'dry run' if dry_run else 'send'})")

    # Fixed at start so a run crossing midnight UTC keeps one date
    base_date = utc_today()
    snapshot_date = None
    try:
        poll_result = await run_poll(
            session,
            snapshot_date=base_date,
            characters=characters,
            profile=profile,
            bundle_fetcher=bundle_fetcher,
        )
        snapshot_date = poll_result.snapshot_date
        poll = StageOutcome(status=poll_result.status, result=poll_result.model_dump(mode="json"))
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Daily poll stage failed: {e}")
        poll = StageOutcome(status=POLL_ERROR, error=serialize_error(e))

    snapshot_date = snapshot_date or base_date

    try:
        digest_result = await run_digest(
            session,
            mode="preview" if dry_run else "send",
            snapshot_date=snapshot_date,
            sender=sender,
        )
        digest = StageOutcome(
            status=digest_result.status,
            result=digest_result.model_dump(mode="json"),
        )
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Daily digest stage failed: {e}")
        digest = StageOutcome(status=DIGEST_ERROR, error=serialize_error(e))

    result = DailyAutomationResult(
        ok=digest.error is None,
        poll_ok=poll.status in _POLL_OK_STATUSES,
        dry_run=dry_run,
        snapshot_date=snapshot_date,
        poll=poll,
        digest=digest,
    )
    logger.info(
        f"🏁 Daily automation done: poll={poll.status} digest={digest.status} ok={result.ok}",
        extra={"snapshot_date": snapshot_date},
    )
    return result
