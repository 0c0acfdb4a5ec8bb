from __future__ import annotations

import logging
from typing import Awaitable, Callable

from ..adapters.base import ImageGenerator, Publisher
from ..models import ImageAsset
from ..utils import log_event, slugify

PromptFn = Callable[[str, int], Awaitable[list[str]]]

IMAGE_MIME = "image/png"


async def generate_article_images(
    article_text: str,
    *,
    count: int,
    min_text_chars: int,
    prompt_fn: PromptFn,
    generator: ImageGenerator,
    publisher: Publisher,
    name_hint: str = "article",
    logger: logging.Logger | None = None,
) -> list[ImageAsset]:
    """Generate illustrations for an article and upload them to the media library.

    Prompt generation errors propagate. A single image that fails to generate
    or upload is skipped, so the result may hold fewer images than requested.
    """
    logger = logger or logging.getLogger("docpress.pipelines.image_pick")
    text = (article_text or "").strip()
    if count < 1:
        log_event(logger, logging.INFO, "images_skipped", reason="disabled")
        return []
    if len(text) < min_text_chars:
        log_event(logger, logging.INFO, "images_skipped", reason="text_too_short", chars=len(text))
        return []

    prompts = await prompt_fn(text, count)
    slug = slugify(name_hint, max_length=60)
    images: list[ImageAsset] = []
    for number, prompt in enumerate(prompts, start=1):
        try:
            data = await generator.generate(prompt)
            upload = await publisher.upload_media(data, f"{slug}-{number}.png", IMAGE_MIME)
        except Exception as exc:  # noqa: BLE001
            log_event(logger, logging.WARNING, "image_failed", image=number, error=str(exc))
            continue
        images.append(
            ImageAsset(
                url=upload.url,
                alt="",
                external_media_id=upload.media_id,
                prompt=prompt,
            )
        )
    log_event(logger, logging.INFO, "images_ready", requested=len(prompts), ready=len(images))
    return images
