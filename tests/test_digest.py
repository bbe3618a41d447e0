"""
Tests for digest building, formatting, and the delivery claim protocol.
"""

import json

import pytest
from pydantic import ValidationError
from sqlmodel import Session, select

from ladderwatch.analyzer.job_runs import finish_job_run, start_job_run
from ladderwatch.analyzer.pipeline import run_poll
from ladderwatch.config import Settings
from ladderwatch.database import build_engine, init_db
from ladderwatch.core.exceptions import (
    DeliveryAlreadyRunningError,
    DeliveryClaimError,
    DeliveryNotFoundError,
    DigestSendDisabledError,
    NoPollJobError,
)
from ladderwatch.digest import delivery
from ladderwatch.digest.delivery import claim_delivery_slot, release_pending_delivery
from ladderwatch.digest.formatter import (
    ELLIPSIS,
    format_digest,
    format_signed,
    truncate_message,
    with_overflow,
)
from ladderwatch.digest.query import FAILED_POLL_FALLBACK, query_digest_data
from ladderwatch.digest.service import run_digest
from ladderwatch.models.digest_models import (
    DigestData,
    DigestLeaderboardRow,
    DigestPollSummary,
)
from ladderwatch.models.job_models import (
    DeliveryStatus,
    JobRun,
    JobStatus,
    JobType,
    MessageType,
    TelegramDelivery,
)

from conftest import DAY_ONE, DAY_TWO, FakeFetcher, FakeSender, make_bundle, make_character

CHAT_ID = "-100200300"


def _failed_poll(session, snapshot_date, details):
    job_run = start_job_run(session, JobType.POLL, snapshot_date)
    finish_job_run(session, job_run, JobStatus.FAILED, details)
    return job_run


async def _two_day_poll(session, profile):
    characters = [make_character("Alpha"), make_character("Bravo", region="EU", realm="draenor")]
    await run_poll(
        session,
        DAY_ONE,
        characters=characters,
        profile=profile,
        bundle_fetcher=FakeFetcher(
            {"Alpha": make_bundle(item_level=600), "Bravo": make_bundle(item_level=590)}
        ),
    )
    await run_poll(
        session,
        DAY_TWO,
        characters=characters,
        profile=profile,
        bundle_fetcher=FakeFetcher(
            {
                "Alpha": make_bundle(item_level=606),
                "Bravo": make_bundle(
                    item_level=590,
                    endpoint_errors={"statistics_summary": "statistics_summary: timeout"},
                ),
            }
        ),
    )


# ─────────────────────────────────────────────
# QUERY
# ─────────────────────────────────────────────


class TestDigestQuery:
    def test_no_poll_job(self, session):
        with pytest.raises(NoPollJobError):
            query_digest_data(session, DAY_ONE)

    def test_running_poll_is_not_completed(self, session):
        start_job_run(session, JobType.POLL, DAY_ONE)
        with pytest.raises(NoPollJobError):
            query_digest_data(session, DAY_ONE)

    def test_failed_poll_variant(self, session):
        """Digest for a date whose poll failed renders only the failure."""
        _failed_poll(session, DAY_ONE, {"message": "Blizzard OAuth failed"})

        data = query_digest_data(session, DAY_ONE)
        assert data.variant == "poll_failure"
        assert data.failure_message == "Blizzard OAuth failed"
        assert data.rows == []

        text = format_digest(data)
        assert "Failure Summary" in text
        assert "Blizzard OAuth failed" in text
        assert "Top Leaderboard" not in text
        assert "Score Profile" not in text

    def test_failed_poll_without_message(self, session):
        _failed_poll(session, DAY_ONE, {"status": "FAILED", "results": []})
        data = query_digest_data(session, DAY_ONE)
        assert data.failure_message == FAILED_POLL_FALLBACK

    async def test_standings_variant(self, session, profile):
        await _two_day_poll(session, profile)

        data = query_digest_data(session, DAY_TWO)
        assert data.variant == "standings"
        assert data.score_profile_name == profile.name
        assert [r.character_name for r in data.rows] == ["Alpha", "Bravo"]
        assert [r.rank for r in data.rows] == [1, 2]
        assert data.rows[0].item_level == 606

        assert [m.text for m in data.milestones] == ["Item level +6.0"]
        assert [r.character_name for r in data.top_movers] == ["Alpha"]
        assert data.warnings == [
            "WARN Bravo (EU/draenor): statistics_summary: timeout"
        ]
        assert data.poll.status == "SUCCESS"
        assert data.poll.warning_count == 1
        assert data.poll.error_count == 0

    async def test_latest_completed_poll_wins(self, session, profile):
        await _two_day_poll(session, profile)
        _failed_poll(session, DAY_TWO, {"message": "later run failed"})
        assert query_digest_data(session, DAY_TWO).variant == "poll_failure"


# ─────────────────────────────────────────────
# FORMATTER
# ─────────────────────────────────────────────


def _row(rank, name, score=50.0, delta=0.0):
    return DigestLeaderboardRow(
        rank=rank,
        character_name=name,
        region="US",
        realm_slug="illidan",
        total_score=score,
        daily_delta=delta,
    )


class TestFormatter:
    def test_signed(self):
        assert format_signed(1.5) == "+1.50"
        assert format_signed(0) == "+0.00"
        assert format_signed(-2.345) == "-2.35"

    def test_overflow_marker(self):
        assert with_overflow(["a", "b", "c"], 2) == ["a", "b", "+1 more"]
        assert with_overflow(["a"], 2) == ["a"]

    def test_standings_sections(self):
        rows = [_row(i, f"Char{i}", score=100 - i, delta=1.0) for i in range(1, 13)]
        data = DigestData(
            variant="standings",
            snapshot_date=DAY_ONE,
            league_name="Test League",
            poll=DigestPollSummary(job_run_id=1, status="SUCCESS", warning_count=0, error_count=0),
            score_profile_name="Midnight Default",
            score_profile_version=2,
            rows=rows,
            top_movers=rows,
        )
        text = format_digest(data)
        lines = text.split("\n")
        assert lines[0] == "Test League"
        assert lines[1] == f"Snapshot: {DAY_ONE} (UTC)"
        assert lines[2] == "Poll: SUCCESS | warnings=0 | errors=0"
        assert lines[3] == "Score Profile: Midnight Default v2"
        assert "1. Char1 (US/illidan) | Score 99.00 | Δ +1.00" in lines
        assert "+2 more" in lines
        assert "+7 more" in lines
        assert "Notable Milestones" not in text
        assert "Warnings" not in text

    def test_empty_leaderboard(self):
        data = DigestData(
            variant="standings",
            snapshot_date=DAY_ONE,
            league_name="Test League",
            poll=DigestPollSummary(job_run_id=1, status="FAILED"),
            score_profile_name="Midnight Default",
            score_profile_version=2,
        )
        text = format_digest(data)
        assert "No leaderboard rows found." in text
        assert "Poll: FAILED\n" in text


class TestTruncation:
    def test_short_message_untouched(self):
        assert truncate_message("hello", 10) == "hello"

    @pytest.mark.parametrize("limit", [0, 1, 2, 3, 4])
    def test_tiny_limits_are_respected(self, limit):
        assert len(truncate_message("abcdefgh", limit)) <= limit

    def test_zero_limit_is_not_the_default(self):
        data = DigestData(
            variant="poll_failure",
            snapshot_date=DAY_ONE,
            league_name="Test League",
            poll=DigestPollSummary(job_run_id=1, status="FAILED"),
        )
        assert format_digest(data, max_length=0) == ""

    def test_settings_reject_limit_without_room_for_text(self):
        with pytest.raises(ValidationError):
            Settings(digest_max_length=3)
        assert Settings(digest_max_length=4).digest_max_length == 4

    def test_cuts_at_late_newline(self):
        text = "a" * 70 + "\n" + "b" * 100
        result = truncate_message(text, 100)
        assert result == "a" * 70 + ELLIPSIS
        assert len(result) <= 100

    def test_hard_cut_when_newline_too_early(self):
        text = "a" * 10 + "\n" + "b" * 200
        result = truncate_message(text, 100)
        assert len(result) == 100
        assert result.endswith(ELLIPSIS)
        assert result.startswith("a" * 10 + "\n")

    def test_digest_never_exceeds_limit(self):
        rows = [_row(i, "X" * 40, delta=1.0) for i in range(1, 11)]
        data = DigestData(
            variant="standings",
            snapshot_date=DAY_ONE,
            league_name="Test League",
            poll=DigestPollSummary(job_run_id=1, status="SUCCESS"),
            score_profile_name="P",
            score_profile_version=1,
            rows=rows,
            top_movers=rows,
            warnings=["WARN " + "w" * 80] * 8,
        )
        text = format_digest(data, max_length=500)
        assert len(text) <= 500
        assert text.endswith(ELLIPSIS)


# ─────────────────────────────────────────────
# DELIVERY CLAIM
# ─────────────────────────────────────────────


def _slot(session, status, message_text="old text", telegram_message_id=None):
    row = TelegramDelivery(
        chat_id=CHAT_ID,
        message_type="DAILY_DIGEST",
        delivery_date=DAY_ONE,
        status=status,
        message_text=message_text,
        telegram_message_id=telegram_message_id,
    )
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


class TestDeliveryClaim:
    def test_fresh_slot_is_ready(self, session):
        claim = claim_delivery_slot(session, None, CHAT_ID, DAY_ONE, "hello")
        assert claim.kind == "ready"
        row = session.get(TelegramDelivery, claim.delivery_id)
        assert row.status == DeliveryStatus.PENDING.value
        assert row.message_text == "hello"

    def test_sent_slot_is_duplicate(self, session):
        _slot(session, "SENT", message_text="original", telegram_message_id="77")
        claim = claim_delivery_slot(session, None, CHAT_ID, DAY_ONE, "new text")
        assert claim.kind == "duplicate"
        assert claim.message_text == "original"
        assert claim.telegram_message_id == "77"

    def test_pending_slot_is_running(self, session):
        _slot(session, "PENDING")
        assert claim_delivery_slot(session, None, CHAT_ID, DAY_ONE, "x").kind == "running"

    def test_failed_slot_is_reclaimed(self, session):
        row = _slot(session, "FAILED", telegram_message_id="9")
        row.error_json = json.dumps({"message": "boom"})
        session.add(row)
        session.commit()

        claim = claim_delivery_slot(session, None, CHAT_ID, DAY_ONE, "retry text")
        assert claim.kind == "ready"
        assert claim.delivery_id == row.id
        session.refresh(row)
        assert row.status == "PENDING"
        assert row.message_text == "retry text"
        assert row.telegram_message_id is None
        assert row.error_json is None

    def test_insert_race_resolves_to_existing_row(self, session, monkeypatch):
        """A concurrent claimer created the slot between our read and insert."""
        _slot(session, "SENT", message_text="winner", telegram_message_id="5")
        real_find = delivery._find_slot
        calls = []

        def racing_find(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                return None
            return real_find(*args, **kwargs)

        monkeypatch.setattr(delivery, "_find_slot", racing_find)
        claim = claim_delivery_slot(session, None, CHAT_ID, DAY_ONE, "loser")
        assert claim.kind == "duplicate"
        assert claim.message_text == "winner"
        assert len(session.exec(select(TelegramDelivery)).all()) == 1

    def test_claim_gives_up_after_bounded_retries(self, session, monkeypatch):
        _slot(session, "SENT")
        monkeypatch.setattr(delivery, "_find_slot", lambda *args, **kwargs: None)
        with pytest.raises(DeliveryClaimError):
            claim_delivery_slot(session, None, CHAT_ID, DAY_ONE, "x")

    def test_second_claim_never_ready(self, session):
        first = claim_delivery_slot(session, None, CHAT_ID, DAY_ONE, "a")
        second = claim_delivery_slot(session, None, CHAT_ID, DAY_ONE, "b")
        assert first.kind == "ready"
        assert second.kind == "running"


class TestConcurrentReclaim:
    """Two claimers on separate connections racing for one FAILED slot."""

    @pytest.fixture
    def file_engine(self, tmp_path):
        engine = build_engine(f"sqlite:///{tmp_path / 'claims.db'}")
        init_db(engine)
        with Session(engine) as setup:
            _slot(setup, "FAILED")
        yield engine
        engine.dispose()

    def test_stale_read_does_not_win(self, file_engine):
        with Session(file_engine) as first, Session(file_engine) as second:
            seen = delivery._find_slot(second, CHAT_ID, DAY_ONE, MessageType.DAILY_DIGEST)
            assert seen.status == "FAILED"

            a = claim_delivery_slot(first, None, CHAT_ID, DAY_ONE, "from first")
            b = claim_delivery_slot(second, None, CHAT_ID, DAY_ONE, "from second")

        assert (a.kind, b.kind) == ("ready", "running")
        with Session(file_engine) as check:
            row = check.get(TelegramDelivery, a.delivery_id)
            assert row.status == "PENDING"
            assert row.message_text == "from first"

    def test_lost_conditional_update_rereads_slot(self, file_engine, monkeypatch):
        with Session(file_engine) as first, Session(file_engine) as second:
            stale = delivery._find_slot(second, CHAT_ID, DAY_ONE, MessageType.DAILY_DIGEST)
            assert claim_delivery_slot(first, None, CHAT_ID, DAY_ONE, "from first").kind == "ready"

            real_find = delivery._find_slot
            calls = []

            def stale_then_real(*args, **kwargs):
                calls.append(1)
                if len(calls) == 1:
                    return stale
                return real_find(*args, **kwargs)

            monkeypatch.setattr(delivery, "_find_slot", stale_then_real)
            claim = claim_delivery_slot(second, None, CHAT_ID, DAY_ONE, "from second")

        assert claim.kind == "running"
        assert len(calls) == 2
        with Session(file_engine) as check:
            assert check.exec(select(TelegramDelivery)).one().message_text == "from first"


class TestReleasePending:
    def test_pending_becomes_failed_and_reclaimable(self, session):
        _slot(session, "PENDING")
        row = release_pending_delivery(session, CHAT_ID, DAY_ONE)
        assert row.status == "FAILED"
        assert claim_delivery_slot(session, None, CHAT_ID, DAY_ONE, "x").kind == "ready"

    def test_sent_slot_untouched(self, session):
        _slot(session, "SENT")
        assert release_pending_delivery(session, CHAT_ID, DAY_ONE).status == "SENT"

    def test_missing_slot(self, session):
        with pytest.raises(DeliveryNotFoundError):
            release_pending_delivery(session, CHAT_ID, DAY_ONE)


# ─────────────────────────────────────────────
# DIGEST JOB
# ─────────────────────────────────────────────


def _digest_runs(session):
    return session.exec(select(JobRun).where(JobRun.job_type == JobType.DIGEST.value)).all()


class TestRunDigest:
    async def test_preview_writes_nothing(self, session, profile):
        await _two_day_poll(session, profile)
        result = await run_digest(session, mode="preview", snapshot_date=DAY_TWO)
        assert result.status == "PREVIEW"
        assert result.variant == "standings"
        assert "Top Leaderboard" in result.message_text
        assert "Item level +6.0" in result.message_text
        assert _digest_runs(session) == []
        assert session.exec(select(TelegramDelivery)).all() == []

    async def test_send_requires_configuration(self, session, telegram_disabled):
        with pytest.raises(DigestSendDisabledError):
            await run_digest(session, mode="send", snapshot_date=DAY_ONE)
        assert _digest_runs(session) == []

    async def test_send_then_duplicate(self, session, profile, telegram_enabled):
        """Second send for the same date is skipped and reuses the first message."""
        await _two_day_poll(session, profile)
        sender = FakeSender()

        first = await run_digest(session, mode="send", snapshot_date=DAY_TWO, sender=sender)
        second = await run_digest(session, mode="send", snapshot_date=DAY_TWO, sender=sender)

        assert first.status == "SENT"
        assert first.telegram_message_id == "1001"
        assert second.status == "SKIPPED_DUPLICATE"
        assert second.message_text == first.message_text
        assert second.telegram_message_id == "1001"
        assert len(sender.calls) == 1
        assert sender.calls[0] == (CHAT_ID, first.message_text)

        sent = session.exec(select(TelegramDelivery)).one()
        assert sent.status == "SENT"
        assert sent.sent_at is not None
        runs = _digest_runs(session)
        assert [r.status for r in runs] == ["SUCCESS", "SUCCESS"]
        assert json.loads(runs[1].details_json)["outcome"] == "SKIPPED_DUPLICATE"

    async def test_failed_poll_digest_is_sent(self, session, telegram_enabled):
        _failed_poll(session, DAY_ONE, {"message": "everything broke"})
        sender = FakeSender()
        result = await run_digest(session, mode="send", snapshot_date=DAY_ONE, sender=sender)
        assert result.variant == "poll_failure"
        assert "everything broke" in sender.calls[0][1]

    async def test_running_claim_aborts_without_sending(self, session, profile, telegram_enabled):
        await _two_day_poll(session, profile)
        session.add(
            TelegramDelivery(
                chat_id=CHAT_ID,
                message_type="DAILY_DIGEST",
                delivery_date=DAY_TWO,
                status="PENDING",
            )
        )
        session.commit()
        sender = FakeSender()

        with pytest.raises(DeliveryAlreadyRunningError) as exc_info:
            await run_digest(session, mode="send", snapshot_date=DAY_TWO, sender=sender)

        assert exc_info.value.retryable is True
        assert sender.calls == []
        run = _digest_runs(session)[0]
        assert run.status == "FAILED"
        assert json.loads(run.details_json)["error"]["code"] == "DELIVERY_ALREADY_RUNNING"
        assert session.exec(select(TelegramDelivery)).one().status == "PENDING"

    async def test_send_failure_marks_delivery_failed(self, session, profile, telegram_enabled):
        await _two_day_poll(session, profile)
        failing = FakeSender(error=RuntimeError("Telegram sendMessage failed (400): chat not found"))

        with pytest.raises(RuntimeError, match="chat not found"):
            await run_digest(session, mode="send", snapshot_date=DAY_TWO, sender=failing)

        row = session.exec(select(TelegramDelivery)).one()
        assert row.status == "FAILED"
        assert "chat not found" in json.loads(row.error_json)["message"]
        assert _digest_runs(session)[0].status == "FAILED"

        # A later run re-claims the failed slot and sends
        retry = await run_digest(session, mode="send", snapshot_date=DAY_TWO, sender=FakeSender())
        assert retry.status == "SENT"
        session.refresh(row)
        assert row.status == "SENT"

    async def test_send_without_poll_fails_job(self, session, telegram_enabled):
        with pytest.raises(NoPollJobError):
            await run_digest(session, mode="send", snapshot_date=DAY_ONE, sender=FakeSender())
        run = _digest_runs(session)[0]
        assert run.status == "FAILED"
        assert json.loads(run.details_json)["error"]["code"] == "NO_POLL_JOB_FOR_DATE"
