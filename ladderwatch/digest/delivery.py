"""Ladderwatch — Delivery claim protocol.

At most one SENT digest per (chat, message type, date). A slot moves
absent → PENDING → SENT | FAILED. SENT is terminal, PENDING means another
run holds the slot, FAILED (or absent) can be claimed again. The unique
constraint on the slot key guards the insert: a losing insert raises
IntegrityError and the claim is re-run against the winner's row. Re-claiming a
FAILED slot is a conditional update on the status, so only one claimer flips it.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ladderwatch.core.exceptions import (
    DeliveryClaimError,
    DeliveryNotFoundError,
    serialize_error,
)
from ladderwatch.core.logging import get_logger
from ladderwatch.models.job_models import DeliveryStatus, MessageType, TelegramDelivery

logger = get_logger("digest.delivery")

MAX_CLAIM_ATTEMPTS = 3


@dataclass
class DeliveryClaim:
    kind: Literal["ready", "duplicate", "running"]
    delivery_id: int
    message_text: Optional[str] = None
    telegram_message_id: Optional[str] = None


def _find_slot(
    session: Session, chat_id: str, delivery_date: str, message_type: MessageType
) -> Optional[TelegramDelivery]:
    return session.exec(
        select(TelegramDelivery)
        .where(
            TelegramDelivery.chat_id == chat_id,
            TelegramDelivery.message_type == message_type.value,
            TelegramDelivery.delivery_date == delivery_date,
        )
        .execution_options(populate_existing=True)
    ).first()


def claim_delivery_slot(
    session: Session,
    job_run_id: Optional[int],
    chat_id: str,
    delivery_date: str,
    message_text: str,
    message_type: MessageType = MessageType.DAILY_DIGEST,
) -> DeliveryClaim:
    """Claim the slot before sending. Only a "ready" claim may send."""
    for attempt in range(1, MAX_CLAIM_ATTEMPTS + 1):
        existing = _find_slot(session, chat_id, delivery_date, message_type)

        if existing is not None:
            if existing.status == DeliveryStatus.SENT.value:
                return DeliveryClaim(
                    kind="duplicate",
                    delivery_id=existing.id,
                    message_text=existing.message_text,
                    telegram_message_id=existing.telegram_message_id,
                )
            if existing.status == DeliveryStatus.PENDING.value:
                return DeliveryClaim(kind="running", delivery_id=existing.id)

            delivery_id = existing.id
            result = session.exec(
                update(TelegramDelivery)
                .where(
                    TelegramDelivery.id == delivery_id,
                    TelegramDelivery.status == DeliveryStatus.FAILED.value,
                )
                .values(
                    job_run_id=job_run_id,
                    status=DeliveryStatus.PENDING.value,
                    message_text=message_text,
                    telegram_message_id=None,
                    sent_at=None,
                    error_json=None,
                    updated_at=datetime.now(timezone.utc),
                )
            )
            if result.rowcount != 1:
                # Another claimer moved the slot out of FAILED first; re-read it
                session.rollback()
                logger.warning(
                    f"Delivery slot {delivery_id} re-claim lost (attempt {attempt}/{MAX_CLAIM_ATTEMPTS})"
                )
                continue
            session.commit()
            logger.info(f"♻️ Re-claimed delivery slot {delivery_id} for {delivery_date}")
            return DeliveryClaim(kind="ready", delivery_id=delivery_id)

        row = TelegramDelivery(
            chat_id=chat_id,
            message_type=message_type.value,
            delivery_date=delivery_date,
            status=DeliveryStatus.PENDING.value,
            job_run_id=job_run_id,
            message_text=message_text,
        )
        session.add(row)
        try:
            session.commit()
        except IntegrityError:
            # Another claimer created the slot first; re-read it
            session.rollback()
            logger.warning(
                f"Delivery slot race for {chat_id}/{delivery_date} (attempt {attempt}/{MAX_CLAIM_ATTEMPTS})"
            )
            continue
        session.refresh(row)
        return DeliveryClaim(kind="ready", delivery_id=row.id)

    raise DeliveryClaimError(
        f"Could not claim delivery slot for {delivery_date} after {MAX_CLAIM_ATTEMPTS} attempts.",
        {"chat_id": chat_id, "delivery_date": delivery_date},
    )


def mark_sent(
    session: Session, delivery_id: int, telegram_message_id: str, message_text: str
) -> TelegramDelivery:
    row = session.get(TelegramDelivery, delivery_id)
    if row is None:
        raise DeliveryNotFoundError(f"Delivery {delivery_id} not found.")
    now = datetime.now(timezone.utc)
    row.status = DeliveryStatus.SENT.value
    row.telegram_message_id = telegram_message_id
    row.sent_at = now
    row.message_text = message_text
    row.error_json = None
    row.updated_at = now
    session.add(row)
    session.commit()
    return row


def mark_failed(session: Session, delivery_id: int, error: BaseException) -> bool:
    """Best effort. Returns False instead of raising so the caller's error wins."""
    try:
        session.rollback()
        row = session.get(TelegramDelivery, delivery_id)
        if row is None:
            return False
        row.status = DeliveryStatus.FAILED.value
        row.error_json = json.dumps(serialize_error(error), default=str)
        row.updated_at = datetime.now(timezone.utc)
        session.add(row)
        session.commit()
        return True
    except Exception as e:
        session.rollback()
        logger.error(f"Could not mark delivery {delivery_id} FAILED: {e}")
        return False


def release_pending_delivery(
    session: Session,
    chat_id: str,
    delivery_date: str,
    message_type: MessageType = MessageType.DAILY_DIGEST,
) -> TelegramDelivery:
    """Operator recovery for a slot stuck in PENDING after a crash.

    Moves it to FAILED so the next digest run can claim it. Slots in any
    other state are returned untouched.
    """
    row = _find_slot(session, chat_id, delivery_date, message_type)
    if row is None:
        raise DeliveryNotFoundError(
            f"No delivery slot for chat {chat_id} on {delivery_date}.",
            {"chat_id": chat_id, "delivery_date": delivery_date},
        )
    if row.status != DeliveryStatus.PENDING.value:
        logger.info(f"Delivery slot {row.id} is {row.status}; nothing to release")
        return row

    row.status = DeliveryStatus.FAILED.value
    row.error_json = json.dumps({"message": "Released by operator from stuck PENDING state."})
    row.updated_at = datetime.now(timezone.utc)
    session.add(row)
    session.commit()
    session.refresh(row)
    logger.warning(f"🔓 Released stuck delivery slot {row.id} for {delivery_date}")
    return row
