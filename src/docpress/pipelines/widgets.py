from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable

from bs4 import BeautifulSoup, NavigableString

from ..models import Widget, WidgetCatalog, WidgetDecision
from ..utils import log_event
from .assemble import wrap_raw_html

TagExtractorFn = Callable[[str], Awaitable[list[str]]]

BLOCK_SELECTOR = "p, h2, h3, ul, ol, blockquote, figure"
_CONTAINER_TAGS = ("ul", "ol", "blockquote", "figure", "table")


@dataclass(frozen=True)
class WidgetResult:
    html: str
    decision: WidgetDecision


def score_widget(widget: Widget, article_tags: list[str]) -> int:
    normalized = [tag.lower() for tag in article_tags]
    score = 0
    for topic in widget.tags:
        topic = topic.lower()
        if any(topic in tag for tag in normalized):
            score += 1
    return score


def select_widget(
    catalog: WidgetCatalog,
    article_tags: list[str],
    position: str,
    logger: logging.Logger | None = None,
) -> Widget | None:
    logger = logger or logging.getLogger("docpress.pipelines.widgets")
    best: Widget | None = None
    best_score = 0
    for widget in catalog.for_position(position):
        score = score_widget(widget, article_tags)
        log_event(logger, logging.DEBUG, "widget_scored", widget_id=widget.id, position=position, score=score)
        if score > best_score:
            best = widget
            best_score = score
    if best is None and position == "bottom" and catalog.universal_bottom_widget_id:
        fallback = catalog.get(catalog.universal_bottom_widget_id)
        if fallback is None:
            log_event(
                logger,
                logging.WARNING,
                "widget_fallback_missing",
                widget_id=catalog.universal_bottom_widget_id,
            )
        return fallback
    return best


def place_widgets(
    html: str,
    top: Widget | None,
    bottom: Widget | None,
    *,
    top_min_blocks: int = 3,
    top_insert_after: int = 3,
) -> str:
    if top is None and bottom is None:
        return html
    soup = BeautifulSoup(html, "html.parser")
    nonce = uuid.uuid4().hex
    top_marker = f"dpwidgettop{nonce}"
    bottom_marker = f"dpwidgetbottom{nonce}"

    if top is not None:
        elements = [el for el in soup.select(BLOCK_SELECTOR) if not _nested(el)]
        if len(elements) > top_min_blocks:
            anchor = elements[min(top_insert_after, len(elements)) - 1]
            anchor.insert_after(NavigableString(top_marker))
        else:
            soup.insert(0, NavigableString(top_marker))
    if bottom is not None:
        soup.append(NavigableString(bottom_marker))

    result = str(soup)
    if top is not None:
        result = result.replace(top_marker, _render_widget(top), 1)
    if bottom is not None:
        result = result.replace(bottom_marker, _render_widget(bottom), 1)
    return result.strip()


async def insert_widgets(
    html: str,
    article_text: str,
    catalog: WidgetCatalog,
    tag_extractor: TagExtractorFn,
    *,
    top_min_blocks: int = 3,
    top_insert_after: int = 3,
    logger: logging.Logger | None = None,
) -> WidgetResult:
    """Pick one widget per slot and insert it into sanitized HTML.

    Never raises: on any failure the input HTML comes back untouched with an
    empty decision.
    """
    logger = logger or logging.getLogger("docpress.pipelines.widgets")
    try:
        article_tags = list(await tag_extractor(article_text))
        log_event(logger, logging.INFO, "article_tags_extracted", tags=",".join(article_tags))
        top = select_widget(catalog, article_tags, "top", logger)
        bottom = select_widget(catalog, article_tags, "bottom", logger)
        updated = place_widgets(
            html,
            top,
            bottom,
            top_min_blocks=top_min_blocks,
            top_insert_after=top_insert_after,
        )
        figures_before = html.count("<figure")
        figures_after = updated.count("<figure")
        if figures_before != figures_after:
            log_event(
                logger,
                logging.WARNING,
                "widgets_changed_figures",
                before=figures_before,
                after=figures_after,
            )
    except Exception as exc:  # noqa: BLE001
        log_event(logger, logging.WARNING, "widgets_skipped", error=str(exc))
        return WidgetResult(html=html, decision=WidgetDecision())

    decision = WidgetDecision(
        top_widget_id=top.id if top else None,
        bottom_widget_id=bottom.id if bottom else None,
        article_tags=article_tags,
    )
    log_event(
        logger,
        logging.INFO,
        "widgets_inserted",
        top=decision.top_widget_id,
        bottom=decision.bottom_widget_id,
    )
    return WidgetResult(html=updated, decision=decision)


def _render_widget(widget: Widget) -> str:
    return "\n" + wrap_raw_html(widget.embed_html) + "\n"


def _nested(element) -> bool:
    return any(parent.name in _CONTAINER_TAGS for parent in element.parents)
