"""Ladderwatch — Digest job.

Preview renders the digest and touches nothing. Send claims the delivery
slot, sends through Telegram, and records a DIGEST JobRun either way.
"""

from typing import Awaitable, Callable, Literal, Optional

from sqlmodel import Session

from ladderwatch.analyzer.job_runs import finish_job_run, start_job_run
from ladderwatch.config import settings
from ladderwatch.connectors.telegram.client import TelegramClient
from ladderwatch.core.dates import parse_snapshot_date, utc_today
from ladderwatch.core.exceptions import (
    DeliveryAlreadyRunningError,
    DigestSendDisabledError,
    serialize_error,
)
from ladderwatch.core.logging import get_logger
from ladderwatch.digest.delivery import claim_delivery_slot, mark_failed, mark_sent
from ladderwatch.digest.formatter import format_digest
from ladderwatch.digest.query import query_digest_data
from ladderwatch.models.digest_models import DigestRunResult
from ladderwatch.models.job_models import JobStatus, JobType

logger = get_logger("digest.service")

# (chat_id, text) -> provider message id
MessageSender = Callable[[str, str], Awaitable[str]]


async def run_digest(
    session: Session,
    mode: Literal["preview", "send"] = "preview",
    snapshot_date: Optional[str] = None,
    sender: Optional[MessageSender] = None,
) -> DigestRunResult:
    snapshot_date = parse_snapshot_date(snapshot_date) or utc_today()

    if mode == "preview":
        data = query_digest_data(session, snapshot_date)
        text = format_digest(data)
        logger.info(
            f"👀 Digest preview for {snapshot_date} ({data.variant}, {len(text)} chars)",
            extra={"job_type": JobType.DIGEST.value, "snapshot_date": snapshot_date},
        )
        return DigestRunResult(
            status="PREVIEW",
            mode="preview",
            snapshot_date=snapshot_date,
            variant=data.variant,
            message_text=text,
            warnings=data.warnings,
            poll=data.poll,
        )

    if not settings.telegram_send_configured:
        raise DigestSendDisabledError(
            "Telegram digest send requires TELEGRAM_DIGEST_ENABLED=true, "
            "TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID."
        )
    chat_id = settings.telegram_chat_id

    job_run = start_job_run(session, JobType.DIGEST, snapshot_date)
    delivery_id: Optional[int] = None
    telegram: Optional[TelegramClient] = None

    try:
        data = query_digest_data(session, snapshot_date)
        text = format_digest(data)
        base_details = {
            "snapshot_date": snapshot_date,
            "variant": data.variant,
            "poll_job_run_id": data.poll.job_run_id,
            "poll_status": data.poll.status,
            "warning_count": data.poll.warning_count,
            "error_count": data.poll.error_count,
        }

        claim = claim_delivery_slot(session, job_run.id, chat_id, snapshot_date, text)

        if claim.kind == "running":
            raise DeliveryAlreadyRunningError(
                "Another digest delivery is already in progress for this date.",
                {"snapshot_date": snapshot_date, "delivery_id": claim.delivery_id},
            )

        if claim.kind == "duplicate":
            original_text = claim.message_text or ""
            finish_job_run(
                session,
                job_run,
                JobStatus.SUCCESS,
                {
                    **base_details,
                    "outcome": "SKIPPED_DUPLICATE",
                    "delivery_id": claim.delivery_id,
                    "telegram_message_id": claim.telegram_message_id,
                    "message_length": len(original_text),
                },
            )
            logger.info(
                f"⏭️ Digest for {snapshot_date} already sent (delivery {claim.delivery_id})",
                extra={"job_run_id": job_run.id, "snapshot_date": snapshot_date},
            )
            return DigestRunResult(
                status="SKIPPED_DUPLICATE",
                mode="send",
                snapshot_date=snapshot_date,
                variant=data.variant,
                message_text=original_text,
                job_run_id=job_run.id,
                delivery_id=claim.delivery_id,
                telegram_message_id=claim.telegram_message_id,
                warnings=data.warnings,
                poll=data.poll,
            )

        delivery_id = claim.delivery_id
        if sender is None:
            telegram = TelegramClient()
            sender = telegram.send_message
        message_id = await sender(chat_id, text)
        mark_sent(session, delivery_id, message_id, text)

        finish_job_run(
            session,
            job_run,
            JobStatus.SUCCESS,
            {
                **base_details,
                "outcome": "SENT",
                "delivery_id": delivery_id,
                "telegram_message_id": message_id,
                "message_length": len(text),
            },
        )
        return DigestRunResult(
            status="SENT",
            mode="send",
            snapshot_date=snapshot_date,
            variant=data.variant,
            message_text=text,
            job_run_id=job_run.id,
            delivery_id=delivery_id,
            telegram_message_id=message_id,
            warnings=data.warnings,
            poll=data.poll,
        )

    except Exception as e:
        if delivery_id is not None:
            mark_failed(session, delivery_id, e)
        session.rollback()
        finish_job_run(
            session,
            job_run,
            JobStatus.FAILED,
            {"snapshot_date": snapshot_date, "delivery_id": delivery_id, "error": serialize_error(e)},
        )
        raise
    finally:
        if telegram is not None:
            await telegram.close()
