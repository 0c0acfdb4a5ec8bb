import pytest

from docpress.errors import EmptyContentError
from docpress.models import ContentBlock
from docpress.pipelines.blocks import blocks_to_html, extract_blocks, text_to_paragraphs


def test_extract_blocks_keeps_inline_markup_and_order():
    raw = (
        "<h2>Title</h2>"
        "<p>Some <strong>bold</strong> and <a href=\"https://x.org\">linked</a> text</p>"
        "<ul><li>One</li><li>Two</li></ul>"
        "<p>   </p>"
    )

    blocks = extract_blocks(raw)

    assert [block.tag for block in blocks] == ["h2", "p", "li", "li"]
    assert [block.index for block in blocks] == [0, 1, 2, 3]
    assert blocks[1].html == 'Some <strong>bold</strong> and <a href="https://x.org">linked</a> text'
    assert blocks[1].text == "Some bold and linked text"


def test_extract_blocks_skips_nested_blocks():
    blocks = extract_blocks("<blockquote><p>Quoted line</p></blockquote><p>After</p>")

    assert [block.tag for block in blocks] == ["blockquote", "p"]
    assert blocks[0].html == "<p>Quoted line</p>"


def test_extract_blocks_captures_whole_table():
    blocks = extract_blocks("<p>Intro</p><table><tr><td>A</td><td>B</td></tr></table>")

    assert blocks[1].tag == "table"
    assert blocks[1].is_table
    assert blocks[1].html == "<table><tr><td>A</td><td>B</td></tr></table>"


def test_extract_blocks_falls_back_to_text_split():
    blocks = extract_blocks("<div></div>", fallback_text="First chunk\n\nSecond & last\n")

    assert [block.text for block in blocks] == ["First chunk", "Second & last"]
    assert blocks[1].html == "Second &amp; last"
    assert all(block.tag == "p" for block in blocks)


def test_extract_blocks_without_content_raises():
    with pytest.raises(EmptyContentError):
        extract_blocks("<p> </p>", fallback_text="   ")


def test_blocks_to_html_groups_list_items():
    blocks = [
        ContentBlock(index=0, tag="li", html="a", text="a"),
        ContentBlock(index=1, tag="li", html="b", text="b"),
        ContentBlock(index=2, tag="p", html="c", text="c"),
    ]

    assert blocks_to_html(blocks) == "<ul>\n<li>a</li>\n<li>b</li>\n</ul>\n<p>c</p>"


def test_text_to_paragraphs_escapes_lines():
    assert text_to_paragraphs("one\n\n<two>\n") == "<p>one</p>\n<p>&lt;two&gt;</p>"
