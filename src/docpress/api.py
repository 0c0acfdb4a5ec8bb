from __future__ import annotations

import dataclasses
import logging
import os
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Callable

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import ConfigError, get_runtime_config, load_runtime_config, set_runtime_config
from .errors import JobNotFoundError
from .storage import get_job, get_schema_version, init_db, list_artifacts, list_jobs
from .utils import configure_logging, log_event
from .worker import PipelineContext, build_context, recover_stuck_jobs, run_cycle

SERVICE_NAME = "DocPress"

app = FastAPI(title="DocPress API")

ContextBuilder = Callable[[Any], PipelineContext]


class RuntimeConfigRequest(BaseModel):
    config: dict


class RecoverRequest(BaseModel):
    include_errors: bool = False


async def get_conn():
    conn = init_db()
    try:
        yield conn
    finally:
        conn.close()


def _build_context(conn) -> PipelineContext:
    config = load_runtime_config(conn)
    return build_context(conn, config, logger=configure_logging("docpress.worker"))


def get_context_builder() -> ContextBuilder:
    return _build_context


def _is_authorized(request: Request) -> bool:
    secret = os.environ.get("DP_CRON_SECRET")
    if not secret:
        return True
    return request.headers.get("Authorization") == f"Bearer {secret}"


def _require_admin_token(request: Request) -> None:
    token = os.environ.get("DP_ADMIN_TOKEN")
    if not token:
        return
    if request.headers.get("X-Admin-Token") != token:
        raise HTTPException(status_code=401, detail="unauthorized")


def _get_version() -> str:
    try:
        return version("docpress")
    except PackageNotFoundError:
        return "dev"


@app.get("/health")
async def health(conn=Depends(get_conn)) -> dict[str, object]:
    return {
        "ok": True,
        "service": SERVICE_NAME,
        "version": _get_version(),
        "schema_version": get_schema_version(conn),
        "time": datetime.now(tz=timezone.utc).isoformat(),
    }


@app.api_route("/api/cron/poll-drive", methods=["GET", "POST"])
async def poll_drive(
    request: Request,
    conn=Depends(get_conn),
    builder: ContextBuilder = Depends(get_context_builder),
):
    logger = configure_logging("docpress.api")
    if not _is_authorized(request):
        log_event(logger, logging.WARNING, "cron_unauthorized")
        return JSONResponse({"success": False, "message": "Unauthorized"}, status_code=401)
    log_event(logger, logging.INFO, "cron_started")
    try:
        ctx = builder(conn)
        result = await run_cycle(ctx)
    except Exception as exc:  # noqa: BLE001
        log_event(logger, logging.ERROR, "cron_failed", error=str(exc))
        return JSONResponse(
            {"success": False, "message": "Cron job failed", "error": str(exc)},
            status_code=500,
        )
    body: dict[str, object] = {"success": result.success, "message": result.message}
    if result.job_id:
        body["jobId"] = result.job_id
    status_code = 200 if result.success else 500
    log_event(logger, logging.INFO, "cron_finished", success=result.success, job_id=result.job_id)
    return JSONResponse(body, status_code=status_code)


@app.get("/admin/config/runtime", dependencies=[Depends(_require_admin_token)])
async def runtime_config_get(conn=Depends(get_conn)) -> dict[str, object]:
    try:
        cfg = get_runtime_config(conn)
    except ConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"config": cfg}


@app.put("/admin/config/runtime", dependencies=[Depends(_require_admin_token)])
async def runtime_config_set(payload: RuntimeConfigRequest, conn=Depends(get_conn)) -> dict[str, object]:
    try:
        set_runtime_config(conn, payload.config)
    except ConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"status": "ok"}


@app.get("/admin/jobs", dependencies=[Depends(_require_admin_token)])
async def jobs_list(limit: int = 50, status: str | None = None, conn=Depends(get_conn)) -> dict[str, object]:
    jobs = list_jobs(conn, limit=limit, status=status)
    return {"jobs": [dataclasses.asdict(job) for job in jobs]}


@app.get("/admin/jobs/{job_id}", dependencies=[Depends(_require_admin_token)])
async def jobs_show(job_id: str, conn=Depends(get_conn)) -> dict[str, object]:
    try:
        job = get_job(conn, job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=404, detail="job_not_found") from exc
    return {
        "job": dataclasses.asdict(job),
        "artifacts": [dataclasses.asdict(artifact) for artifact in list_artifacts(conn, job_id)],
    }


@app.post("/admin/jobs/recover", dependencies=[Depends(_require_admin_token)])
async def jobs_recover(
    payload: RecoverRequest,
    conn=Depends(get_conn),
    builder: ContextBuilder = Depends(get_context_builder),
) -> dict[str, object]:
    logger = configure_logging("docpress.api")
    try:
        ctx = builder(conn)
    except ConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    results = await recover_stuck_jobs(ctx, include_errors=payload.include_errors)
    log_event(logger, logging.INFO, "recover_finished", jobs=len(results))
    return {
        "results": [
            {"success": result.success, "message": result.message, "jobId": result.job_id}
            for result in results
        ]
    }
