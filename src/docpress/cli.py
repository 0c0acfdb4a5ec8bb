from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import os

from .config import (
    ConfigError,
    bootstrap_runtime_config,
    get_runtime_config,
    load_runtime_config,
    load_widget_catalog,
    set_runtime_config,
)
from .errors import JobNotFoundError
from .storage import count_jobs_by_status, delete_job, get_job, init_db, list_artifacts, list_jobs
from .utils import configure_logging, json_dumps, log_event
from .worker import build_context, process_all, recover_stuck_jobs, run_cycle


def _setup_logging() -> logging.Logger:
    return configure_logging("docpress.cli")


def _open(args: argparse.Namespace, logger: logging.Logger):
    conn = init_db(args.db)
    try:
        config = load_runtime_config(conn)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        conn.close()
        return None, None
    return conn, config


def _context(args: argparse.Namespace, logger: logging.Logger):
    conn, config = _open(args, logger)
    if conn is None:
        return None
    try:
        return build_context(conn, config, logger=configure_logging("docpress.worker"))
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        conn.close()
        return None


def _cmd_run_once(args: argparse.Namespace, logger: logging.Logger) -> int:
    ctx = _context(args, logger)
    if ctx is None:
        return 1
    result = asyncio.run(run_cycle(ctx))
    log_event(logger, logging.INFO, "run_once", success=result.success, job_id=result.job_id, message=result.message)
    return 0 if result.success else 1


def _cmd_process_all(args: argparse.Namespace, logger: logging.Logger) -> int:
    ctx = _context(args, logger)
    if ctx is None:
        return 1
    results = asyncio.run(process_all(ctx))
    for result in results:
        log_event(logger, logging.INFO, "file_result", success=result.success, job_id=result.job_id, message=result.message)
    return 0 if all(result.success for result in results) else 1


def _cmd_recover(args: argparse.Namespace, logger: logging.Logger) -> int:
    ctx = _context(args, logger)
    if ctx is None:
        return 1
    results = asyncio.run(recover_stuck_jobs(ctx, include_errors=args.include_errors))
    log_event(
        logger,
        logging.INFO,
        "recovery_finished",
        jobs=len(results),
        recovered=sum(1 for result in results if result.success),
    )
    return 0 if all(result.success for result in results) else 1


def _cmd_jobs_list(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db(args.db)
    for job in list_jobs(conn, limit=args.limit, status=args.status):
        log_event(
            logger,
            logging.INFO,
            "job",
            job_id=job.id,
            status=job.status.value,
            source=job.source_name or job.source_file_id,
            started_at=job.started_at,
            finished_at=job.finished_at,
            post_id=job.published_post_id,
            error_code=job.error_code,
        )
    log_event(logger, logging.INFO, "job_counts", **count_jobs_by_status(conn))
    return 0


def _cmd_jobs_show(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db(args.db)
    try:
        job = get_job(conn, args.job_id)
    except JobNotFoundError:
        log_event(logger, logging.ERROR, "job_not_found", job_id=args.job_id)
        return 1
    payload = {
        "job": dataclasses.asdict(job),
        "artifacts": [dataclasses.asdict(artifact) for artifact in list_artifacts(conn, job.id)],
    }
    logger.info(json.dumps(json.loads(json_dumps(payload)), indent=2, ensure_ascii=False))
    return 0


def _cmd_jobs_delete(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db(args.db)
    if not delete_job(conn, args.job_id):
        log_event(logger, logging.ERROR, "job_not_found", job_id=args.job_id)
        return 1
    log_event(logger, logging.INFO, "job_deleted", job_id=args.job_id)
    return 0


def _cmd_config_show(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db(args.db)
    try:
        cfg = get_runtime_config(conn)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    logger.info(json.dumps(cfg, indent=2, sort_keys=True))
    return 0


def _cmd_config_init(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db(args.db)
    bootstrap_runtime_config(conn)
    log_event(logger, logging.INFO, "config_initialized")
    return 0


def _cmd_config_set(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db(args.db)
    try:
        with open(args.path, "r", encoding="utf-8") as handle:
            cfg = json.load(handle)
        set_runtime_config(conn, cfg)
    except (OSError, json.JSONDecodeError, ConfigError) as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    log_event(logger, logging.INFO, "config_updated", path=args.path)
    return 0


def _cmd_widgets_list(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn, config = _open(args, logger)
    if conn is None:
        return 1
    try:
        catalog = load_widget_catalog(
            config.paths.widgets_file,
            config.widgets.universal_bottom_widget_id,
            logger=logger,
        )
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    for widget in catalog.widgets:
        log_event(
            logger,
            logging.INFO,
            "widget",
            widget_id=widget.id,
            position=widget.position,
            tags=",".join(widget.tags),
        )
    return 0


def _cmd_serve(args: argparse.Namespace, logger: logging.Logger) -> int:
    import uvicorn

    uvicorn.run("docpress.api:app", host=args.host, port=args.port, log_level="info")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docpress", description="DocPress CLI")
    parser.add_argument(
        "--db",
        dest="db",
        default=None,
        help="Path to the state database (defaults to $DP_DATA_DIR/state.sqlite3)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_once = subparsers.add_parser("run-once", help="Process the oldest new document")
    run_once.set_defaults(func=_cmd_run_once)

    run_all = subparsers.add_parser("process-all", help="Process every new document sequentially")
    run_all.set_defaults(func=_cmd_process_all)

    recover = subparsers.add_parser("recover", help="Restart jobs stuck before publishing")
    recover.add_argument(
        "--include-errors",
        action="store_true",
        help="Also restart jobs that ended in ERROR",
    )
    recover.set_defaults(func=_cmd_recover)

    jobs_parser = subparsers.add_parser("jobs", help="Inspect jobs")
    jobs_subparsers = jobs_parser.add_subparsers(dest="jobs_command", required=True)

    jobs_list = jobs_subparsers.add_parser("list", help="List recent jobs")
    jobs_list.add_argument("--limit", type=int, default=20, help="Number of jobs to show")
    jobs_list.add_argument("--status", default=None, help="Only jobs in this status")
    jobs_list.set_defaults(func=_cmd_jobs_list)

    jobs_show = jobs_subparsers.add_parser("show", help="Show a job with its artifacts")
    jobs_show.add_argument("job_id")
    jobs_show.set_defaults(func=_cmd_jobs_show)

    jobs_delete = jobs_subparsers.add_parser("delete", help="Delete a job and its artifacts")
    jobs_delete.add_argument("job_id")
    jobs_delete.set_defaults(func=_cmd_jobs_delete)

    config_parser = subparsers.add_parser("config", help="Runtime configuration")
    config_subparsers = config_parser.add_subparsers(dest="config_command", required=True)

    config_show = config_subparsers.add_parser("show", help="Print the runtime configuration")
    config_show.set_defaults(func=_cmd_config_show)

    config_init = config_subparsers.add_parser("init", help="Store the default configuration")
    config_init.set_defaults(func=_cmd_config_init)

    config_set = config_subparsers.add_parser("set", help="Replace the configuration from a JSON file")
    config_set.add_argument("path")
    config_set.set_defaults(func=_cmd_config_set)

    widgets_parser = subparsers.add_parser("widgets", help="Widget catalog")
    widgets_subparsers = widgets_parser.add_subparsers(dest="widgets_command", required=True)
    widgets_list = widgets_subparsers.add_parser("list", help="List catalog widgets")
    widgets_list.set_defaults(func=_cmd_widgets_list)

    serve = subparsers.add_parser("serve", help="Run the HTTP trigger API")
    serve.add_argument("--host", default=os.environ.get("DP_HOST", "0.0.0.0"))
    serve.add_argument("--port", type=int, default=int(os.environ.get("DP_PORT", "8000")))
    serve.set_defaults(func=_cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = _setup_logging()
    return args.func(args, logger)


if __name__ == "__main__":
    raise SystemExit(main())
