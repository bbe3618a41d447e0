"""Ladderwatch — JobRun audit helpers."""

import json
from datetime import datetime, timezone
from typing import Any, Optional

from sqlmodel import Session

from ladderwatch.core.logging import get_logger
from ladderwatch.models.job_models import JobRun, JobStatus, JobType

logger = get_logger("analyzer.job_runs")


def start_job_run(
    session: Session, job_type: JobType, snapshot_date: Optional[str] = None
) -> JobRun:
    """Persist a RUNNING JobRun before any work starts."""
    job_run = JobRun(
        job_type=job_type.value,
        status=JobStatus.RUNNING.value,
        snapshot_date=snapshot_date,
    )
    session.add(job_run)
    session.commit()
    session.refresh(job_run)
    logger.info(
        f"▶️ {job_type.value} job started",
        extra={"job_type": job_type.value, "job_run_id": job_run.id, "snapshot_date": snapshot_date},
    )
    return job_run


def finish_job_run(
    session: Session, job_run: JobRun, status: JobStatus, details: Any
) -> JobRun:
    """Write the terminal status once. A second call is ignored."""
    if job_run.finished_at is not None:
        logger.warning(
            f"JobRun {job_run.id} already finished as {job_run.status}; ignoring {status.value}",
            extra={"job_run_id": job_run.id},
        )
        return job_run

    job_run.status = status.value
    job_run.finished_at = datetime.now(timezone.utc)
    job_run.details_json = json.dumps(details, default=str)
    session.add(job_run)
    session.commit()
    session.refresh(job_run)

    duration_ms = None
    if job_run.started_at is not None:
        started = job_run.started_at
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        duration_ms = int((job_run.finished_at.replace(tzinfo=timezone.utc) - started).total_seconds() * 1000)

    log = logger.error if status == JobStatus.FAILED else logger.info
    log(
        f"⏹️ {job_run.job_type} job finished: {status.value}",
        extra={"job_type": job_run.job_type, "job_run_id": job_run.id, "duration_ms": duration_ms},
    )
    return job_run
