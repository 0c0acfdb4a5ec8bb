"""Left fold over HTML-producing stages.

Each stage receives the HTML produced so far. A non-fatal stage that raises
or returns blank output is recorded as failed and the previous HTML is
carried forward unchanged. A fatal stage that raises aborts the fold with a
``PipelineError`` naming the stage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from .errors import PipelineError
from .utils import log_event

HtmlStageFn = Callable[[str], Awaitable[str]]


@dataclass(frozen=True)
class Stage:
    name: str
    run: HtmlStageFn
    fatal: bool = False


@dataclass(frozen=True)
class StageResult:
    stage: str
    html: str
    ok: bool
    error: str | None = None

    @property
    def carried_forward(self) -> bool:
        return not self.ok


async def run_stage(stage: Stage, html: str, logger: logging.Logger) -> StageResult:
    try:
        output = await stage.run(html)
    except PipelineError:
        raise
    except Exception as exc:  # noqa: BLE001
        if stage.fatal:
            log_event(logger, logging.ERROR, "stage_failed", stage=stage.name, fatal=True, error=str(exc))
            raise PipelineError(str(exc), stage=stage.name) from exc
        log_event(
            logger,
            logging.WARNING,
            "stage_failed",
            stage=stage.name,
            fatal=False,
            error=str(exc),
        )
        return StageResult(stage=stage.name, html=html, ok=False, error=str(exc))
    output = output or ""
    if not output.strip() and not stage.fatal:
        log_event(logger, logging.WARNING, "stage_empty_output", stage=stage.name)
        return StageResult(stage=stage.name, html=html, ok=False, error="empty_output")
    log_event(logger, logging.INFO, "stage_completed", stage=stage.name, chars=len(output))
    return StageResult(stage=stage.name, html=output, ok=True)


async def fold_stages(
    stages: list[Stage],
    seed: str,
    logger: logging.Logger | None = None,
) -> tuple[str, list[StageResult]]:
    logger = logger or logging.getLogger("docpress.pipeline")
    html = seed
    results: list[StageResult] = []
    for stage in stages:
        result = await run_stage(stage, html, logger)
        results.append(result)
        html = result.html
    return html, results
