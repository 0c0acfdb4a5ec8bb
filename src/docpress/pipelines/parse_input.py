from __future__ import annotations

import html
import io
import logging
import re

import mammoth
from bs4 import BeautifulSoup

from ..errors import UnsupportedMimeTypeError
from ..models import ParsedDocument
from ..utils import log_event

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
HTML_MIME = "text/html"
TEXT_MIME = "text/plain"

SUPPORTED_MIME_TYPES = (DOCX_MIME, HTML_MIME, TEXT_MIME)


def parse_document(data: bytes, mime_type: str, logger: logging.Logger | None = None) -> ParsedDocument:
    logger = logger or logging.getLogger("docpress.pipelines.parse_input")
    base_mime = (mime_type or "").split(";", 1)[0].strip().lower()
    if base_mime == DOCX_MIME:
        result = mammoth.convert_to_html(io.BytesIO(data))
        for message in result.messages:
            log_event(logger, logging.DEBUG, "docx_convert_message", message=message)
        raw_html = result.value
        text = html_to_text(raw_html)
    elif base_mime == HTML_MIME:
        raw_html = data.decode("utf-8", errors="replace")
        text = html_to_text(raw_html)
    elif base_mime == TEXT_MIME:
        text = data.decode("utf-8", errors="replace").replace("\r\n", "\n")
        raw_html = text_to_html(text)
    else:
        raise UnsupportedMimeTypeError(f"Unsupported MIME type: {mime_type}")
    text = text.strip()
    parsed = ParsedDocument(text=text, html=raw_html, word_count=len(text.split()))
    log_event(
        logger,
        logging.INFO,
        "document_parsed",
        mime_type=base_mime,
        words=parsed.word_count,
        html_chars=len(raw_html),
    )
    return parsed


def html_to_text(raw_html: str) -> str:
    soup = BeautifulSoup(raw_html, "html.parser")
    for tag in soup(["script", "style", "head", "title"]):
        tag.decompose()
    body = soup.body or soup
    lines = [line.strip() for line in body.get_text("\n").splitlines()]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def text_to_html(text: str) -> str:
    lines = [line.strip() for line in text.split("\n")]
    return "".join(f"<p>{html.escape(line, quote=False)}</p>" for line in lines if line)
