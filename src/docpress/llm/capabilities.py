from __future__ import annotations

import json
import logging
from typing import Any

from ..errors import IntegrationError
from ..utils import log_event, truncate_words
from .client import ChatClient

PROMPT_WORD_LIMIT = 700
TAG_WORD_LIMIT = 1500
MIN_PROMPT_TEXT_CHARS = 100
MAX_IMAGE_PROMPTS = 5

STRUCTURE_SYSTEM_PROMPT = """You are a structural analyzer for articles. The article is split into numbered blocks. For each block decide its type and decide where to insert images.

You MUST return a JSON object with a single key "structure", which is an array of objects.
- Regular paragraph: {"type": "p", "blockIndex": N}
- Heading: {"type": "h2", "blockIndex": N} or {"type": "h3", "blockIndex": N}
- List item: {"type": "li", "blockIndex": N}
- Table (blocks whose tag is "table"): {"type": "table", "blockIndex": N}
- Image: {"type": "image", "imageIndex": M}

N is the block index (from 0). M is the image number (from 1).
Use every block index and every image number exactly once. Keep blocks in their original order."""

CAPTION_SYSTEM_PROMPT = (
    "You write very short image captions. Reply with the caption only, "
    "at most six words, no quotes and no trailing period."
)

TAGS_SYSTEM_PROMPT = (
    "You extract topical keywords from articles. Return a JSON object "
    '{"tags": [...]} with short lowercase keywords describing the main topics.'
)

IMAGE_PROMPTS_SYSTEM_PROMPT = """You are an expert at creating vivid, visual scene descriptions for AI image generation.
Analyze the article text and suggest compelling visual scenes that would make great illustrations.
Each scene must be described in English, 1-2 sentences long, concrete and visual, relevant to the article, and suitable for image generation.
Return a JSON object {"prompts": [...]} with one string per scene."""

TAGS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["tags"],
    "properties": {"tags": {"type": "array", "items": {"type": "string"}}},
}


class LlmCapabilities:
    """Task-level language model operations used by the pipeline stages."""

    def __init__(self, client: ChatClient, logger: logging.Logger | None = None) -> None:
        self.client = client
        self.logger = logger or logging.getLogger("docpress.llm")

    async def classify_structure(self, previews: list[dict[str, object]], image_count: int) -> str:
        listing = "\n".join(
            f'{item["index"]} [{item["tag"]}]: {json.dumps(item["preview"], ensure_ascii=False)}'
            for item in previews
        )
        user_prompt = (
            f"Analyze the following content. There are {image_count} images available for insertion.\n\n"
            f"Blocks:\n{listing}\n\nReturn the JSON structure."
        )
        return await self.client.complete(
            [
                {"role": "system", "content": STRUCTURE_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            json_mode=True,
        )

    async def generate_short_caption(self, image_prompt: str, language: str = "English") -> str:
        if not image_prompt or not image_prompt.strip():
            raise ValueError("image_prompt_empty")
        caption = await self.client.complete(
            [
                {"role": "system", "content": CAPTION_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": f"Write a caption in {language} for this image:\n{image_prompt}",
                },
            ],
            temperature=0.3,
        )
        return caption.strip().strip('"').strip()

    async def extract_article_tags(self, article_text: str, max_tags: int = 10) -> list[str]:
        if not article_text or not article_text.strip():
            return []
        parsed = await self.client.complete_json(
            [
                {"role": "system", "content": TAGS_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": f"Return at most {max_tags} tags for this article:\n\n"
                    + truncate_words(article_text.strip(), TAG_WORD_LIMIT),
                },
            ],
            TAGS_SCHEMA,
            temperature=0.2,
        )
        tags: list[str] = []
        for tag in parsed["tags"]:
            cleaned = tag.strip().lower()
            if cleaned and cleaned not in tags:
                tags.append(cleaned)
        return tags[:max_tags]

    async def generate_image_prompts(self, article_text: str, count: int = 3) -> list[str]:
        if not article_text or len(article_text.strip()) < MIN_PROMPT_TEXT_CHARS:
            raise ValueError("article_text_too_short")
        if count < 1 or count > MAX_IMAGE_PROMPTS:
            raise ValueError("image_count_out_of_range")
        truncated = truncate_words(article_text.strip(), PROMPT_WORD_LIMIT)
        parsed = await self.client.complete_json(
            [
                {"role": "system", "content": IMAGE_PROMPTS_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": f"Propose exactly {count} visual scenes for illustrations of this article:\n\n{truncated}",
                },
            ]
        )
        prompts = [str(item).strip() for item in extract_prompt_list(parsed) if str(item).strip()]
        if not prompts:
            raise IntegrationError("llm_empty_prompts", code="INVALID_RESPONSE", service="llm")
        prompts = prompts[:count]
        log_event(self.logger, logging.INFO, "image_prompts_generated", count=len(prompts))
        return prompts


def extract_prompt_list(parsed: Any) -> list[Any]:
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        for key in ("prompts", "scenes"):
            if isinstance(parsed.get(key), list):
                return parsed[key]
        for value in parsed.values():
            if isinstance(value, list):
                return value
    raise IntegrationError("llm_missing_prompt_array", code="INVALID_RESPONSE", service="llm")
