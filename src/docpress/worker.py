from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Any

from .adapters.base import ImageGenerator, Publisher, SourceStore
from .adapters.drive import DriveSource, effective_mime_type
from .adapters.google_auth import CLOUD_PLATFORM_SCOPE, DRIVE_SCOPE, ServiceAccountTokens
from .adapters.imagen import ImagenGenerator
from .adapters.wordpress import WordPressPublisher
from .config import Config, load_widget_catalog, require_secret
from .errors import ConfigError, InvalidTransitionError, PipelineError
from .llm import ChatClient, LlmCapabilities
from .models import (
    ArtifactKind,
    ContentBlock,
    ImageAsset,
    Job,
    JobStatus,
    ParsedDocument,
    SourceFile,
    WidgetCatalog,
)
from .pipeline import Stage, fold_stages
from .pipelines.blocks import blocks_to_html, extract_blocks, has_visible_text, text_to_paragraphs
from .pipelines.format_content import format_article_html
from .pipelines.image_pick import generate_article_images
from .pipelines.parse_input import parse_document
from .pipelines.sanitize import sanitize_html
from .pipelines.widgets import insert_widgets
from .state import RESTARTABLE_STATUSES, reset_job, transition
from .storage import (
    create_job,
    find_job_by_source,
    get_job,
    insert_artifact,
    list_jobs_in_statuses,
)
from .utils import configure_logging, log_event, title_from_filename, utc_now_iso_offset


@dataclass
class PipelineContext:
    conn: Any
    config: Config
    source: SourceStore
    publisher: Publisher
    llm: LlmCapabilities
    widgets: WidgetCatalog
    image_generator: ImageGenerator | None = None
    logger: logging.Logger = dataclasses.field(
        default_factory=lambda: logging.getLogger("docpress.worker")
    )


@dataclass(frozen=True)
class CycleResult:
    success: bool
    message: str
    job_id: str | None = None


def _setup_logging() -> logging.Logger:
    return configure_logging("docpress.worker")


def build_context(conn, config: Config, logger: logging.Logger | None = None) -> PipelineContext:
    logger = logger or _setup_logging()
    if not config.drive.folder_id:
        raise ConfigError("drive.folder_id is not configured")
    if not config.wordpress.site_url:
        raise ConfigError("wordpress.site_url is not configured")
    tokens = ServiceAccountTokens(
        require_secret("DP_GOOGLE_SERVICE_ACCOUNT_JSON"),
        scopes=[DRIVE_SCOPE, CLOUD_PLATFORM_SCOPE],
    )
    source = DriveSource(
        config.drive.folder_id,
        tokens,
        timeout_seconds=config.drive.timeout_seconds,
    )
    publisher = WordPressPublisher(
        config.wordpress.site_url,
        require_secret("DP_WP_USERNAME"),
        require_secret("DP_WP_APP_PASSWORD"),
        timeout_seconds=config.wordpress.timeout_seconds,
    )
    client = ChatClient(
        config.llm.base_url,
        require_secret("DP_LLM_API_KEY"),
        config.llm.model,
        temperature=config.llm.temperature,
        timeout_seconds=config.llm.timeout_seconds,
    )
    image_generator = None
    if config.images.enabled and config.images.vertex_project:
        image_generator = ImagenGenerator(
            config.images.vertex_project,
            config.images.vertex_location,
            config.images.model,
            tokens,
            aspect_ratio=config.images.aspect_ratio,
        )
    elif config.images.enabled:
        log_event(logger, logging.WARNING, "images_unavailable", reason="vertex_project_missing")
    widgets = load_widget_catalog(
        config.paths.widgets_file,
        config.widgets.universal_bottom_widget_id,
        logger=logger,
    )
    return PipelineContext(
        conn=conn,
        config=config,
        source=source,
        publisher=publisher,
        llm=LlmCapabilities(client),
        widgets=widgets,
        image_generator=image_generator,
        logger=logger,
    )


async def run_job(ctx: PipelineContext, job_id: str) -> Job:
    """Drive a claimed job through every stage until DONE.

    Fatal failures move the job to ERROR, rename the source file as failed
    (best-effort) and re-raise.
    """
    job = get_job(ctx.conn, job_id)
    if job.status == JobStatus.NEW:
        job = transition(ctx.conn, job_id, JobStatus.CLAIMED)
    if job.status != JobStatus.CLAIMED:
        raise InvalidTransitionError(f"job {job_id} is {job.status.value}, expected CLAIMED")
    source_name = job.source_name or job.source_file_id
    log_event(ctx.logger, logging.INFO, "job_started", job_id=job.id, file_id=job.source_file_id)
    try:
        job = await _execute(ctx, job, source_name)
    except Exception as exc:  # noqa: BLE001
        await _fail_job(ctx, job, source_name, exc)
        raise
    log_event(ctx.logger, logging.INFO, "job_succeeded", job_id=job.id, post_id=job.published_post_id)
    return job


async def _execute(ctx: PipelineContext, job: Job, source_name: str) -> Job:
    cfg = ctx.config
    parsed, blocks = await _parse_source(ctx, job)
    insert_artifact(
        ctx.conn,
        job.id,
        ArtifactKind.RAW_CONTENT,
        {"text": parsed.text, "html": blocks_to_html(blocks), "blocks": len(blocks)},
    )

    images = await _pick_images(ctx, job, parsed.text, source_name)
    insert_artifact(
        ctx.conn,
        job.id,
        ArtifactKind.IMAGE_META,
        {"images": [dataclasses.asdict(image) for image in images]},
    )
    if images:
        transition(ctx.conn, job.id, JobStatus.IMAGES_PICKED)

    stages = [
        Stage("format", _format_stage(ctx, job, blocks, images)),
        Stage("sanitize", _sanitize_stage(ctx), fatal=True),
    ]
    html, _results = await fold_stages(stages, blocks_to_html(blocks), ctx.logger)

    if not has_visible_text(html):
        fallback_text = parsed.text or "\n".join(block.text for block in blocks)
        html = text_to_paragraphs(fallback_text)
        log_event(ctx.logger, logging.WARNING, "empty_result_fallback", job_id=job.id, chars=len(html))
    if cfg.widgets.enabled and ctx.widgets.widgets:
        html, _results = await fold_stages(
            [Stage("widgets", _widgets_stage(ctx, job, parsed.text))], html, ctx.logger
        )
    transition(ctx.conn, job.id, JobStatus.POST_RENDERED)

    featured = images[0].external_media_id if images else None
    try:
        draft = await ctx.publisher.create_draft(
            title_from_filename(source_name),
            html,
            status=cfg.wordpress.post_status,
            featured_media=featured,
        )
    except Exception as exc:  # noqa: BLE001
        raise PipelineError(str(exc), stage="publish") from exc
    job = transition(
        ctx.conn,
        job.id,
        JobStatus.WP_DRAFTED,
        published_post_id=draft.post_id,
        published_post_edit_link=draft.edit_link,
    )

    try:
        await ctx.source.mark_done(job.source_file_id, source_name)
    except Exception as exc:  # noqa: BLE001
        log_event(ctx.logger, logging.WARNING, "finalize_failed", job_id=job.id, error=str(exc))
    return transition(ctx.conn, job.id, JobStatus.DONE)


async def _parse_source(ctx: PipelineContext, job: Job) -> tuple[ParsedDocument, list[ContentBlock]]:
    try:
        metadata = await ctx.source.get_metadata(job.source_file_id)
        data = await ctx.source.download(job.source_file_id, metadata.mime_type)
        parsed = parse_document(data, effective_mime_type(metadata.mime_type), logger=ctx.logger)
        blocks = extract_blocks(parsed.html, fallback_text=parsed.text, logger=ctx.logger)
    except Exception as exc:  # noqa: BLE001
        raise PipelineError(str(exc), stage="parse") from exc
    return parsed, blocks


async def _pick_images(
    ctx: PipelineContext, job: Job, text: str, source_name: str
) -> list[ImageAsset]:
    cfg = ctx.config.images
    if not cfg.enabled or ctx.image_generator is None:
        return []
    try:
        return await generate_article_images(
            text,
            count=cfg.count,
            min_text_chars=cfg.min_text_chars,
            prompt_fn=ctx.llm.generate_image_prompts,
            generator=ctx.image_generator,
            publisher=ctx.publisher,
            name_hint=title_from_filename(source_name),
            logger=ctx.logger,
        )
    except Exception as exc:  # noqa: BLE001
        log_event(ctx.logger, logging.WARNING, "images_failed", job_id=job.id, error=str(exc))
        return []


def _format_stage(
    ctx: PipelineContext, job: Job, blocks: list[ContentBlock], images: list[ImageAsset]
):
    cfg = ctx.config.llm

    async def caption(prompt: str) -> str:
        return await ctx.llm.generate_short_caption(prompt, cfg.caption_language)

    async def run(html: str) -> str:
        try:
            formatted = await format_article_html(
                blocks,
                images,
                ctx.llm.classify_structure,
                caption if images else None,
                preview_chars=cfg.preview_chars,
                fallback_caption=cfg.caption_fallback,
                logger=ctx.logger,
            )
        except Exception as exc:  # noqa: BLE001
            _record_html(ctx, job, html, carried_forward=str(exc))
            raise
        if formatted.strip():
            _record_html(ctx, job, formatted)
        else:
            _record_html(ctx, job, html, carried_forward="empty_output")
        return formatted

    return run


def _record_html(
    ctx: PipelineContext, job: Job, html: str, carried_forward: str | None = None
) -> None:
    content: dict[str, object] = {"html": html}
    if carried_forward is not None:
        content["carriedForward"] = True
        content["error"] = carried_forward
    insert_artifact(ctx.conn, job.id, ArtifactKind.HTML, content)


def _sanitize_stage(ctx: PipelineContext):
    domain = ctx.config.wordpress.domain

    async def run(html: str) -> str:
        return sanitize_html(html, domain, logger=ctx.logger)

    return run


def _widgets_stage(ctx: PipelineContext, job: Job, article_text: str):
    cfg = ctx.config

    async def extract_tags(text: str) -> list[str]:
        return await ctx.llm.extract_article_tags(text, cfg.llm.max_tag_count)

    async def run(html: str) -> str:
        result = await insert_widgets(
            html,
            article_text,
            ctx.widgets,
            extract_tags,
            top_min_blocks=cfg.widgets.top_min_blocks,
            top_insert_after=cfg.widgets.top_insert_after,
            logger=ctx.logger,
        )
        insert_artifact(
            ctx.conn,
            job.id,
            ArtifactKind.WIDGET_DECISION,
            {
                "topWidgetId": result.decision.top_widget_id,
                "bottomWidgetId": result.decision.bottom_widget_id,
                "articleTags": result.decision.article_tags,
            },
        )
        return result.html

    return run


async def _fail_job(ctx: PipelineContext, job: Job, source_name: str, exc: Exception) -> None:
    code = getattr(exc, "code", None) or type(exc).__name__
    log_event(
        ctx.logger,
        logging.ERROR,
        "job_failed",
        job_id=job.id,
        code=code,
        error=str(exc),
    )
    try:
        transition(ctx.conn, job.id, JobStatus.ERROR, error_code=code, error_message=str(exc))
    except Exception as state_exc:  # noqa: BLE001
        log_event(ctx.logger, logging.ERROR, "job_error_state_failed", job_id=job.id, error=str(state_exc))
    try:
        await ctx.source.mark_error(job.source_file_id, source_name)
    except Exception as cleanup_exc:  # noqa: BLE001
        log_event(ctx.logger, logging.ERROR, "job_cleanup_failed", job_id=job.id, error=str(cleanup_exc))


async def _pending_files(ctx: PipelineContext) -> list[SourceFile]:
    files = await ctx.source.list_new_files()
    pending = []
    for source in files:
        existing = find_job_by_source(ctx.conn, source.id, source.revision)
        if existing:
            log_event(
                ctx.logger,
                logging.INFO,
                "file_already_processed",
                file_id=source.id,
                revision=source.revision,
                job_id=existing.id,
            )
            continue
        pending.append(source)
    return pending


async def process_file(ctx: PipelineContext, source: SourceFile) -> CycleResult:
    await ctx.source.claim(source)
    job = create_job(ctx.conn, source.id, source.revision, source.name)
    transition(ctx.conn, job.id, JobStatus.CLAIMED)
    log_event(ctx.logger, logging.INFO, "job_claimed", job_id=job.id, file=source.name)
    try:
        job = await run_job(ctx, job.id)
    except Exception as exc:  # noqa: BLE001
        return CycleResult(False, f"Job {job.id} for file {source.name} failed: {exc}", job.id)
    return CycleResult(True, f"Job {job.id} for file {source.name} finished.", job.id)


async def run_cycle(ctx: PipelineContext) -> CycleResult:
    """Process the oldest new file in the inbox, if any."""
    pending = await _pending_files(ctx)
    if not pending:
        log_event(ctx.logger, logging.INFO, "no_new_files")
        return CycleResult(True, "No new files found.")
    return await process_file(ctx, pending[0])


async def process_all(ctx: PipelineContext) -> list[CycleResult]:
    pending = await _pending_files(ctx)
    results: list[CycleResult] = []
    for position, source in enumerate(pending):
        if position:
            await asyncio.sleep(ctx.config.jobs.pause_between_jobs_seconds)
        try:
            results.append(await process_file(ctx, source))
        except Exception as exc:  # noqa: BLE001
            log_event(ctx.logger, logging.ERROR, "file_claim_failed", file_id=source.id, error=str(exc))
            results.append(CycleResult(False, f"File {source.name} could not be claimed: {exc}"))
    log_event(
        ctx.logger,
        logging.INFO,
        "batch_finished",
        files=len(pending),
        succeeded=sum(1 for result in results if result.success),
    )
    return results


async def recover_stuck_jobs(
    ctx: PipelineContext, include_errors: bool = False
) -> list[CycleResult]:
    """Restart jobs that never got a draft published.

    Jobs already in WP_DRAFTED, and failed jobs that got as far as creating a
    draft, are left alone so a post is never duplicated.
    """
    cutoff = utc_now_iso_offset(seconds=-60 * ctx.config.jobs.stuck_after_minutes)
    jobs = list_jobs_in_statuses(ctx.conn, RESTARTABLE_STATUSES, started_before=cutoff)
    if include_errors:
        for job in list_jobs_in_statuses(ctx.conn, [JobStatus.ERROR], unfinished_only=False):
            if job.published_post_id is not None:
                log_event(
                    ctx.logger,
                    logging.INFO,
                    "job_recovery_skipped",
                    job_id=job.id,
                    post_id=job.published_post_id,
                )
                continue
            jobs.append(job)
    results: list[CycleResult] = []
    for position, job in enumerate(jobs):
        if position:
            await asyncio.sleep(ctx.config.jobs.pause_between_jobs_seconds)
        log_event(ctx.logger, logging.INFO, "job_recovering", job_id=job.id, status=job.status.value)
        reset_job(ctx.conn, job.id)
        try:
            await run_job(ctx, job.id)
        except Exception as exc:  # noqa: BLE001
            results.append(CycleResult(False, f"Job {job.id} failed again: {exc}", job.id))
            continue
        results.append(CycleResult(True, f"Job {job.id} recovered.", job.id))
    return results
