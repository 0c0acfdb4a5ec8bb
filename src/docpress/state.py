"""Job lifecycle: the only place job status changes are validated and written."""

from __future__ import annotations

from typing import Any

from .errors import InvalidTransitionError
from .models import Job, JobStatus
from .storage import get_job, reset_job_row, update_job_row
from .utils import utc_now_iso

TERMINAL_STATUSES = frozenset({JobStatus.DONE, JobStatus.ERROR})

# jobs in these states have no published draft yet and can be restarted from NEW
RESTARTABLE_STATUSES = (
    JobStatus.NEW,
    JobStatus.CLAIMED,
    JobStatus.IMAGES_PICKED,
    JobStatus.POST_RENDERED,
)

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.NEW: frozenset({JobStatus.CLAIMED}),
    JobStatus.CLAIMED: frozenset({JobStatus.IMAGES_PICKED, JobStatus.POST_RENDERED}),
    JobStatus.IMAGES_PICKED: frozenset({JobStatus.POST_RENDERED}),
    JobStatus.POST_RENDERED: frozenset({JobStatus.WP_DRAFTED}),
    JobStatus.WP_DRAFTED: frozenset({JobStatus.DONE}),
    JobStatus.DONE: frozenset(),
    JobStatus.ERROR: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    if target == JobStatus.ERROR:
        return current not in TERMINAL_STATUSES
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def transition(
    conn: Any,
    job_id: str,
    target: JobStatus,
    *,
    error_code: str | None = None,
    error_message: str | None = None,
    published_post_id: int | None = None,
    published_post_edit_link: str | None = None,
) -> Job:
    job = get_job(conn, job_id)
    if not can_transition(job.status, target):
        raise InvalidTransitionError(
            f"invalid_transition: {job.status.value} -> {target.value} (job {job_id})"
        )
    if target != JobStatus.ERROR and (error_code or error_message):
        raise InvalidTransitionError("error fields may only be set when entering ERROR")
    return update_job_row(
        conn,
        job_id,
        status=target.value,
        error_code=error_code,
        error_message=error_message,
        published_post_id=published_post_id,
        published_post_edit_link=published_post_edit_link,
        finished_at=utc_now_iso() if target in TERMINAL_STATUSES else None,
    )


def reset_job(conn: Any, job_id: str) -> Job:
    job = get_job(conn, job_id)
    if job.status not in RESTARTABLE_STATUSES and job.status != JobStatus.ERROR:
        raise InvalidTransitionError(
            f"job {job_id} in {job.status.value} cannot be restarted"
        )
    if job.published_post_id is not None:
        raise InvalidTransitionError(
            f"job {job_id} already published post {job.published_post_id}"
        )
    return reset_job_row(conn, job_id)
