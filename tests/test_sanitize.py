import pytest
from bs4 import BeautifulSoup

from docpress.errors import SanitizeError
from docpress.pipelines.sanitize import is_external_link, sanitize_html


def _anchor(html, href):
    return BeautifulSoup(html, "html.parser").find("a", href=href)


def test_external_links_open_in_new_tab():
    html = (
        '<p><a href="https://other.org/page">out</a> '
        '<a href="https://www.blog.example.com/about">in</a></p>'
    )

    result = sanitize_html(html, "blog.example.com")

    external = _anchor(result, "https://other.org/page")
    assert external["target"] == "_blank"
    assert external["rel"] == ["noopener", "noreferrer"]
    internal = _anchor(result, "https://www.blog.example.com/about")
    assert internal.get("target") is None
    assert internal.get("rel") is None


def test_non_http_links_untouched():
    html = '<p><a href="mailto:a@b.org">m</a><a href="/local">l</a><a href="#top">t</a></p>'

    result = sanitize_html(html, "blog.example.com")

    soup = BeautifulSoup(result, "html.parser")
    assert [anchor.get("target") for anchor in soup.find_all("a")] == [None, None, None]


def test_block_comments_survive():
    html = "<!-- wp:html -->\n<div class=\"promo\">Hi</div>\n<!-- /wp:html --><!-- private note --><p>x</p>"

    result = sanitize_html(html)

    assert result.startswith("<!-- wp:html -->")
    assert "<!-- /wp:html -->" in result
    assert "private note" not in result


def test_disallowed_markup_removed():
    html = (
        '<style>p { color: red; }</style>'
        '<p onclick="steal()" data-track="x"><font color="red">Keep me</font></p>'
        '<a href="javascript:alert(1)">bad</a>'
    )

    result = sanitize_html(html)

    assert "color: red; }" not in result
    assert "onclick" not in result
    assert "<font" not in result
    assert "Keep me" in result
    assert 'data-track="x"' in result
    assert "javascript:" not in result
    assert "bad" in result


def test_inline_styles_filtered():
    result = sanitize_html('<p style="color: red; position: absolute">x</p>')

    assert "color: red" in result
    assert "position" not in result


def test_figures_and_tables_kept():
    html = (
        '<figure class="wp-block-image"><img src="https://cdn.example.com/a.png" alt="A" />'
        "<figcaption>A</figcaption></figure>"
        "<table><tbody><tr><td>1</td></tr></tbody></table>"
    )

    result = sanitize_html(html)

    assert result.count("<figure") == 1
    assert "<figcaption>A</figcaption>" in result
    assert "<td>1</td>" in result


def test_sanitize_is_idempotent():
    html = (
        '<h2>Title</h2><p>See <a href="https://other.org">this</a> &amp; that</p>'
        '<!-- wp:html -->\n<div data-x="1">w</div>\n<!-- /wp:html -->'
    )

    once = sanitize_html(html, "blog.example.com")

    assert sanitize_html(once, "blog.example.com") == once


def test_sanitize_wraps_internal_errors(monkeypatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("tokenizer broke")

    monkeypatch.setattr("docpress.pipelines.sanitize.bleach.clean", _boom)

    with pytest.raises(SanitizeError):
        sanitize_html("<p>x</p>")


@pytest.mark.parametrize(
    ("href", "domain", "expected"),
    [
        ("https://other.org/x", "blog.example.com", True),
        ("http://blog.example.com/x", "blog.example.com", False),
        ("https://www.blog.example.com/", "blog.example.com", False),
        ("//cdn.other.org/x.js", "blog.example.com", True),
        ("/relative/path", "blog.example.com", False),
        ("#anchor", "blog.example.com", False),
        ("mailto:someone@other.org", "blog.example.com", False),
        ("https://other.org", None, True),
        ("", "blog.example.com", False),
    ],
)
def test_is_external_link(href, domain, expected):
    assert is_external_link(href, domain) is expected
