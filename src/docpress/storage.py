from __future__ import annotations

import json
import uuid
from typing import Any, Iterable

from .db import connect_db
from .errors import DuplicateJobError, JobNotFoundError
from .models import Artifact, ArtifactKind, Job, JobStatus
from .utils import json_dumps, utc_now_iso

_JOB_COLUMNS = """
    id, source_file_id, source_revision_id, source_name, status, error_code, error_message,
    started_at, finished_at, published_post_id, published_post_edit_link
"""


def init_db(path: str | None = None):
    if path is None:
        from .config import get_state_db_path

        path = get_state_db_path()
    return connect_db(path)


def get_setting(conn: Any, key: str, default: object) -> object:
    cursor = conn.execute("SELECT value FROM settings WHERE key = ?", (key,))
    row = cursor.fetchone()
    if not row:
        return default
    try:
        return json.loads(row[0])
    except json.JSONDecodeError:
        return default


def set_setting(conn: Any, key: str, value: object) -> None:
    payload = json_dumps(value)
    now = utc_now_iso()
    conn.execute(
        """
        INSERT INTO settings (key, value, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        """,
        (key, payload, now),
    )
    conn.commit()


def get_schema_version(conn: Any) -> str | None:
    row = conn.execute(
        "SELECT version FROM schema_migrations ORDER BY version DESC LIMIT 1"
    ).fetchone()
    return row[0] if row else None


def create_job(
    conn: Any,
    source_file_id: str,
    source_revision_id: str,
    source_name: str | None = None,
) -> Job:
    existing = find_job_by_source(conn, source_file_id, source_revision_id)
    if existing:
        raise DuplicateJobError(
            f"job {existing.id} already exists for {source_file_id}@{source_revision_id}"
        )
    job_id = _new_job_id()
    now = utc_now_iso()
    try:
        conn.execute(
            f"""
            INSERT INTO jobs ({_JOB_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                job_id,
                source_file_id,
                source_revision_id,
                source_name,
                JobStatus.NEW.value,
                None,
                None,
                now,
                None,
                None,
                None,
            ),
        )
        conn.commit()
    except conn.integrity_error as exc:
        conn.rollback()
        raise DuplicateJobError(
            f"job already exists for {source_file_id}@{source_revision_id}"
        ) from exc
    return get_job(conn, job_id)


def get_job(conn: Any, job_id: str) -> Job:
    cursor = conn.execute(f"SELECT {_JOB_COLUMNS} FROM jobs WHERE id = ?", (job_id,))
    row = cursor.fetchone()
    if not row:
        raise JobNotFoundError(f"job_not_found: {job_id}")
    return _row_to_job(row)


def find_job_by_source(conn: Any, source_file_id: str, source_revision_id: str) -> Job | None:
    cursor = conn.execute(
        f"""
        SELECT {_JOB_COLUMNS} FROM jobs
        WHERE source_file_id = ? AND source_revision_id = ?
        """,
        (source_file_id, source_revision_id),
    )
    row = cursor.fetchone()
    return _row_to_job(row) if row else None


def list_jobs(conn: Any, limit: int = 50, status: str | None = None) -> list[Job]:
    if status:
        cursor = conn.execute(
            f"""
            SELECT {_JOB_COLUMNS} FROM jobs
            WHERE status = ?
            ORDER BY started_at DESC
            LIMIT ?
            """,
            (status, limit),
        )
    else:
        cursor = conn.execute(
            f"""
            SELECT {_JOB_COLUMNS} FROM jobs
            ORDER BY started_at DESC
            LIMIT ?
            """,
            (limit,),
        )
    return [_row_to_job(row) for row in cursor.fetchall()]


def list_jobs_in_statuses(
    conn: Any,
    statuses: Iterable[str],
    started_before: str | None = None,
    unfinished_only: bool = True,
) -> list[Job]:
    values = [status.value if isinstance(status, JobStatus) else str(status) for status in statuses]
    if not values:
        return []
    placeholders = ",".join(["?"] * len(values))
    params: list[object] = list(values)
    clause = " AND finished_at IS NULL" if unfinished_only else ""
    if started_before:
        clause += " AND started_at < ?"
        params.append(started_before)
    cursor = conn.execute(
        f"""
        SELECT {_JOB_COLUMNS} FROM jobs
        WHERE status IN ({placeholders}){clause}
        ORDER BY started_at ASC
        """,
        tuple(params),
    )
    return [_row_to_job(row) for row in cursor.fetchall()]


def count_jobs_by_status(conn: Any) -> dict[str, int]:
    cursor = conn.execute("SELECT status, COUNT(*) FROM jobs GROUP BY status")
    return {row[0]: int(row[1]) for row in cursor.fetchall()}


def update_job_row(
    conn: Any,
    job_id: str,
    *,
    status: str,
    error_code: str | None = None,
    error_message: str | None = None,
    published_post_id: int | None = None,
    published_post_edit_link: str | None = None,
    finished_at: str | None = None,
) -> Job:
    assignments = ["status = ?"]
    params: list[object] = [status]
    if error_code is not None:
        assignments.append("error_code = ?")
        params.append(error_code)
    if error_message is not None:
        assignments.append("error_message = ?")
        params.append(error_message)
    if published_post_id is not None:
        assignments.append("published_post_id = ?")
        params.append(published_post_id)
    if published_post_edit_link is not None:
        assignments.append("published_post_edit_link = ?")
        params.append(published_post_edit_link)
    if finished_at is not None:
        assignments.append("finished_at = ?")
        params.append(finished_at)
    params.append(job_id)
    cursor = conn.execute(
        f"UPDATE jobs SET {', '.join(assignments)} WHERE id = ?",
        tuple(params),
    )
    conn.commit()
    if cursor.rowcount != 1:
        raise JobNotFoundError(f"job_not_found: {job_id}")
    return get_job(conn, job_id)


def reset_job_row(conn: Any, job_id: str) -> Job:
    cursor = conn.execute(
        """
        UPDATE jobs
        SET status = ?, error_code = NULL, error_message = NULL, finished_at = NULL,
            started_at = ?
        WHERE id = ?
        """,
        (JobStatus.NEW.value, utc_now_iso(), job_id),
    )
    conn.commit()
    if cursor.rowcount != 1:
        raise JobNotFoundError(f"job_not_found: {job_id}")
    return get_job(conn, job_id)


def delete_job(conn: Any, job_id: str) -> bool:
    cursor = conn.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
    conn.commit()
    return cursor.rowcount == 1


def insert_artifact(
    conn: Any, job_id: str, kind: ArtifactKind | str, content: dict[str, object]
) -> Artifact:
    artifact_id = f"art_{uuid.uuid4().hex}"
    kind_value = kind.value if isinstance(kind, ArtifactKind) else str(kind)
    now = utc_now_iso()
    conn.execute(
        """
        INSERT INTO artifacts (id, job_id, kind, content_json, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (artifact_id, job_id, kind_value, json_dumps(content), now),
    )
    conn.commit()
    return Artifact(
        id=artifact_id,
        job_id=job_id,
        kind=kind_value,
        content=json.loads(json_dumps(content)),
        created_at=now,
    )


def list_artifacts(conn: Any, job_id: str, kind: str | None = None) -> list[Artifact]:
    if kind:
        cursor = conn.execute(
            """
            SELECT id, job_id, kind, content_json, created_at
            FROM artifacts
            WHERE job_id = ? AND kind = ?
            ORDER BY created_at ASC
            """,
            (job_id, kind),
        )
    else:
        cursor = conn.execute(
            """
            SELECT id, job_id, kind, content_json, created_at
            FROM artifacts
            WHERE job_id = ?
            ORDER BY created_at ASC
            """,
            (job_id,),
        )
    return [_row_to_artifact(row) for row in cursor.fetchall()]


def _row_to_job(row: tuple) -> Job:
    (
        job_id,
        source_file_id,
        source_revision_id,
        source_name,
        status,
        error_code,
        error_message,
        started_at,
        finished_at,
        published_post_id,
        published_post_edit_link,
    ) = row
    return Job(
        id=job_id,
        source_file_id=source_file_id,
        source_revision_id=source_revision_id,
        source_name=source_name,
        status=JobStatus(status),
        error_code=error_code,
        error_message=error_message,
        started_at=started_at,
        finished_at=finished_at,
        published_post_id=int(published_post_id) if published_post_id is not None else None,
        published_post_edit_link=published_post_edit_link,
    )


def _row_to_artifact(row: tuple) -> Artifact:
    artifact_id, job_id, kind, content_json, created_at = row
    if isinstance(content_json, str):
        try:
            content = json.loads(content_json)
        except json.JSONDecodeError:
            content = {}
    else:
        content = content_json or {}
    return Artifact(
        id=artifact_id,
        job_id=job_id,
        kind=kind,
        content=content,
        created_at=created_at,
    )


def _new_job_id() -> str:
    return f"job_{uuid.uuid4().hex}"
