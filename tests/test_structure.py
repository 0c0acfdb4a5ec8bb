from docpress.models import BlockItem, ContentBlock, ImageItem
from docpress.pipelines.structure import build_previews, identity_structure, parse_structure


def test_parse_structure_reads_blocks_and_images():
    payload = {
        "structure": [
            {"type": "h2", "blockIndex": 0},
            {"type": "image", "imageIndex": 1},
            {"type": "li", "blockIndex": 1},
        ]
    }

    items = parse_structure(payload, block_count=2)

    assert items == [
        BlockItem(type="h2", block_index=0),
        ImageItem(image_index=1),
        BlockItem(type="li", block_index=1),
    ]


def test_parse_structure_accepts_json_text():
    items = parse_structure('{"structure": [{"type": "p", "blockIndex": 0}]}', block_count=1)

    assert items == [BlockItem(type="p", block_index=0)]


def test_parse_structure_drops_invalid_items():
    payload = {
        "structure": [
            {"type": "h5", "blockIndex": 0},
            {"type": "p"},
            {"type": "p", "blockIndex": True},
            "not an object",
            {"type": "p", "blockIndex": 2},
        ]
    }

    assert parse_structure(payload, block_count=3) == [BlockItem(type="p", block_index=2)]


def test_parse_structure_falls_back_to_identity():
    assert parse_structure("not json", block_count=2) == identity_structure(2)
    assert parse_structure({"items": []}, block_count=2) == identity_structure(2)
    assert parse_structure(["p"], block_count=1) == [BlockItem(type="p", block_index=0)]


def test_build_previews_truncates_long_text():
    blocks = [
        ContentBlock(index=0, tag="p", html="x", text="short"),
        ContentBlock(index=1, tag="h2", html="y", text="a" * 20),
    ]

    previews = build_previews(blocks, preview_chars=10)

    assert previews[0] == {"index": 0, "tag": "p", "preview": "short"}
    assert previews[1]["preview"] == "a" * 10 + "..."
    assert previews[1]["tag"] == "h2"
