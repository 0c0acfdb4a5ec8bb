from __future__ import annotations

import logging
import re
import uuid
from urllib.parse import urlsplit

import bleach
from bleach.css_sanitizer import CSSSanitizer
from bs4 import BeautifulSoup

from ..errors import SanitizeError
from ..utils import log_event

ALLOWED_TAGS = frozenset(
    [
        "p", "br", "hr", "strong", "b", "em", "i", "u", "s", "sub", "sup", "a", "img",
        "h1", "h2", "h3", "h4", "h5", "h6",
        "ul", "ol", "li", "blockquote", "pre", "code", "div", "span",
        "table", "caption", "colgroup", "col", "thead", "tbody", "tfoot", "tr", "th", "td",
        "figure", "figcaption", "iframe",
        "script",
    ]
)

ALLOWED_ATTRIBUTES = frozenset(
    [
        "href", "src", "alt", "title", "class", "id", "style", "width", "height",
        "target", "rel", "colspan", "rowspan", "scope", "allow", "allowfullscreen",
        "frameborder", "loading", "async", "type", "charset",
    ]
)

ALLOWED_PROTOCOLS = frozenset(["http", "https", "mailto", "tel"])

ALLOWED_CSS_PROPERTIES = frozenset(
    [
        "color", "background-color", "font-size", "font-weight", "font-style",
        "font-family", "text-align", "text-decoration", "line-height",
        "width", "height", "max-width", "max-height", "min-width", "min-height",
        "margin", "margin-top", "margin-bottom", "margin-left", "margin-right",
        "padding", "padding-top", "padding-bottom", "padding-left", "padding-right",
        "border", "border-collapse", "border-radius", "vertical-align", "display",
    ]
)

# elements whose content is not article text and must not leak out as text
DROP_WITH_CONTENT = ["head", "title", "style", "meta", "link", "noscript", "template", "svg", "math"]

BLOCK_COMMENT_RE = re.compile(r"<!--\s*/?wp:[^>]*-->")

EXTERNAL_TARGET = "_blank"
EXTERNAL_REL = "noopener noreferrer"

_CSS_SANITIZER = CSSSanitizer(allowed_css_properties=ALLOWED_CSS_PROPERTIES)


def sanitize_html(
    dirty_html: str,
    publish_domain: str | None = None,
    logger: logging.Logger | None = None,
) -> str:
    logger = logger or logging.getLogger("docpress.pipelines.sanitize")
    try:
        return _sanitize(dirty_html or "", publish_domain, logger)
    except Exception as exc:  # noqa: BLE001
        log_event(logger, logging.ERROR, "sanitize_failed", error=str(exc))
        raise SanitizeError(f"sanitization failed: {exc}") from exc


def _sanitize(dirty_html: str, publish_domain: str | None, logger: logging.Logger) -> str:
    nonce = uuid.uuid4().hex
    stashed: list[tuple[str, str]] = []

    def _stash(match: re.Match) -> str:
        token = f"dpblock{nonce}x{len(stashed)}z"
        stashed.append((token, match.group(0)))
        return token

    working = BLOCK_COMMENT_RE.sub(_stash, dirty_html)

    soup = BeautifulSoup(working, "html.parser")
    for element in soup.find_all(DROP_WITH_CONTENT):
        element.decompose()

    cleaned = bleach.clean(
        str(soup),
        tags=ALLOWED_TAGS,
        attributes=_allow_attribute,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
        strip_comments=True,
        css_sanitizer=_CSS_SANITIZER,
    )

    soup = BeautifulSoup(cleaned, "html.parser")
    external_links = secure_external_links(soup, publish_domain)
    result = str(soup)

    for token, comment in stashed:
        result = result.replace(token, comment, 1)

    _log_audit(dirty_html, result, len(stashed), external_links, logger)
    return result.strip()


def _allow_attribute(tag: str, name: str, value: str) -> bool:
    return name in ALLOWED_ATTRIBUTES or name.startswith("data-")


def secure_external_links(soup: BeautifulSoup, publish_domain: str | None) -> int:
    count = 0
    for anchor in soup.find_all("a", href=True):
        if not is_external_link(anchor["href"], publish_domain):
            continue
        anchor["target"] = EXTERNAL_TARGET
        anchor["rel"] = EXTERNAL_REL
        count += 1
    return count


def is_external_link(href: str, publish_domain: str | None) -> bool:
    href = (href or "").strip()
    if not href:
        return False
    try:
        parts = urlsplit(href)
        host = parts.hostname
    except ValueError:
        return False
    scheme = parts.scheme.lower()
    if scheme not in ("http", "https", ""):
        return False
    if not host:
        return False
    if not publish_domain:
        return True
    return _bare_host(host) != _bare_host(publish_domain)


def _bare_host(host: str) -> str:
    host = host.strip().lower().rstrip(".")
    return host[4:] if host.startswith("www.") else host


def _log_audit(
    before: str,
    after: str,
    preserved_comments: int,
    external_links: int,
    logger: logging.Logger,
) -> None:
    figures_before = before.count("<figure")
    figures_after = after.count("<figure")
    if figures_before != figures_after:
        log_event(
            logger,
            logging.WARNING,
            "sanitize_removed_figures",
            before=figures_before,
            after=figures_after,
        )
    tables_before = before.count("<table")
    tables_after = after.count("<table")
    if tables_before != tables_after:
        log_event(
            logger,
            logging.WARNING,
            "sanitize_removed_tables",
            before=tables_before,
            after=tables_after,
        )
    log_event(
        logger,
        logging.INFO,
        "sanitize_completed",
        tables=tables_after,
        block_comments=preserved_comments,
        external_links=external_links,
    )
