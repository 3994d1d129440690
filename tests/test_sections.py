"""Tests for papersum/sections.py — Markdown section tree and lookups."""

import pytest

from papersum.sections import (
    count_sections,
    extract_front_matter,
    extract_images,
    format_sections_for_agent,
    get_section_content,
    get_section_titles,
    iter_sections,
    parse_sections,
    remove_front_matter,
)


def _levels_ok(sections) -> bool:
    return all(
        child.level > section.level and _levels_ok([child])
        for section in sections
        for child in section.subsections
    )


# ---------------------------------------------------------------------------
# parse_sections
# ---------------------------------------------------------------------------


def test_parse_worked_example():
    tree = parse_sections("# Intro\nHello\n## SubA\nWorld\n# Conclusion\nBye")

    assert [s.title for s in tree] == ["Intro", "Conclusion"]
    intro, conclusion = tree
    assert intro.content == "Hello"
    assert [s.title for s in intro.subsections] == ["SubA"]
    assert intro.subsections[0].content == "World"
    assert conclusion.content == "Bye"
    assert conclusion.subsections == []


def test_parse_counts_every_heading_in_document_order(sample_markdown):
    tree = parse_sections(sample_markdown)
    assert get_section_titles(tree) == [
        "Abstract",
        "Introduction",
        "Background",
        "Methods",
        "Sparse Kernel",
        "Complexity",
        "Training",
        "Conclusion",
    ]
    assert count_sections(tree) == 8


def test_parse_children_are_strictly_deeper(sample_markdown):
    assert _levels_ok(parse_sections(sample_markdown))


def test_parse_skips_front_matter_and_preamble(sample_markdown):
    tree = parse_sections(sample_markdown)
    all_content = "\n".join(s.content for s in iter_sections(tree))
    assert "authors" not in all_content
    assert "Preamble" not in all_content


def test_parse_empty_document():
    assert parse_sections("") == []


def test_parse_document_without_headings_is_empty():
    assert parse_sections("Just a paragraph.\n\nAnd another one.") == []


def test_parse_skipped_level_nests_under_nearest_shallower():
    tree = parse_sections("# Top\nA\n### Deep\nB\n## Mid\nC")
    top = tree[0]
    assert [s.title for s in top.subsections] == ["Deep", "Mid"]
    assert top.subsections[0].level == 3
    assert top.subsections[1].level == 2


def test_parse_document_starting_below_h1():
    tree = parse_sections("## First\nx\n## Second\ny\n# Third\nz")
    assert [s.title for s in tree] == ["First", "Second", "Third"]


def test_parse_keeps_emphasis_in_titles_verbatim():
    tree = parse_sections("# **Bold** and _italic_ title\ntext")
    assert tree[0].title == "**Bold** and _italic_ title"


def test_parse_ignores_hashes_without_space_and_seven_hashes():
    tree = parse_sections("# Real\n#hashtag\n####### too deep\ntext")
    assert count_sections(tree) == 1
    assert "#hashtag" in tree[0].content
    assert "####### too deep" in tree[0].content


def test_parse_trims_section_content():
    tree = parse_sections("# A\n\n\n  body  \n\n\n# B\n")
    assert tree[0].content == "body"
    assert tree[1].content == ""


def test_parse_unclosed_front_matter_is_not_stripped():
    tree = parse_sections("---\n# Heading\ntext")
    assert [s.title for s in tree] == ["Heading"]


def test_parse_handles_crlf_titles():
    tree = parse_sections("# Intro\r\nHello\r\n")
    assert tree[0].title == "Intro"


def test_parse_extracts_images_per_section(sample_markdown):
    tree = parse_sections(sample_markdown)
    background = tree[1].subsections[0]
    assert len(background.images) == 1
    assert background.images[0].path == "images/fig1.png"
    assert tree[1].images == []


# ---------------------------------------------------------------------------
# extract_images
# ---------------------------------------------------------------------------


def test_extract_images_prefers_title_over_alt():
    images = extract_images('![alt text](a.png "The title")')
    assert images[0].caption == "The title"


def test_extract_images_uses_alt_when_no_title():
    images = extract_images("![alt text](a.png)")
    assert images[0].caption == "alt text"


def test_extract_images_caption_none_when_both_empty():
    images = extract_images("![](a.png)")
    assert images[0].caption is None


def test_extract_images_position_and_context():
    prefix = "x" * 150
    content = f"{prefix}![fig](img.png){'y' * 150}"
    image = extract_images(content)[0]
    assert image.position == 150
    assert image.context.startswith("x" * 100 + "![fig]")
    assert image.context.endswith("y" * 100)
    assert len(image.context) == 100 + len("![fig](img.png)") + 100


def test_extract_images_multiple_in_order():
    images = extract_images("![a](1.png) text ![b](2.png)")
    assert [i.path for i in images] == ["1.png", "2.png"]


# ---------------------------------------------------------------------------
# get_section_content
# ---------------------------------------------------------------------------


def test_get_section_content_is_case_insensitive(sample_markdown):
    tree = parse_sections(sample_markdown)
    assert get_section_content(tree, "Methods") == get_section_content(tree, "methods")
    assert get_section_content(tree, "METHODS") is not None


def test_get_section_content_uses_full_case_folding():
    tree = parse_sections("# Straße\nbody")
    assert get_section_content(tree, "STRASSE") == "body"


def test_get_section_content_flattens_subtree_with_headings(sample_markdown):
    tree = parse_sections(sample_markdown)
    content = get_section_content(tree, "Methods")
    assert content == (
        "Overview of the method."
        "\n\n## Sparse Kernel\n\n"
        "The kernel keeps the top-k scores."
        "\n\n### Complexity\n\n"
        "It runs in O(n log n)."
        "\n\n## Training\n\n"
        "We train for 10 epochs."
    )


def test_get_section_content_finds_nested_sections(sample_markdown):
    tree = parse_sections(sample_markdown)
    assert get_section_content(tree, "complexity") == "It runs in O(n log n)."


def test_get_section_content_missing_returns_none(sample_markdown):
    tree = parse_sections(sample_markdown)
    assert get_section_content(tree, "Nonexistent") is None


def test_get_section_content_first_match_wins():
    tree = parse_sections("# Results\nfirst\n# Results\nsecond")
    assert get_section_content(tree, "results") == "first"


def test_get_section_content_leaf_with_empty_body_returns_empty_string():
    tree = parse_sections("# Empty\n# Next\nx")
    assert get_section_content(tree, "Empty") == ""


# ---------------------------------------------------------------------------
# format_sections_for_agent
# ---------------------------------------------------------------------------


def test_format_sections_outline(sample_markdown):
    outline = format_sections_for_agent(parse_sections(sample_markdown))
    assert outline.splitlines() == [
        "- Abstract",
        "- Introduction",
        "  - Background (1 images)",
        "- Methods",
        "  - Sparse Kernel",
        "    - Complexity",
        "  - Training",
        "- Conclusion",
    ]


def test_format_sections_lists_each_title_once_in_order(sample_markdown):
    tree = parse_sections(sample_markdown)
    outline = format_sections_for_agent(tree)
    listed = [line.strip()[2:].split(" (")[0] for line in outline.splitlines()]
    assert listed == get_section_titles(tree)


def test_format_sections_empty_tree():
    assert format_sections_for_agent([]) == ""


# ---------------------------------------------------------------------------
# Front matter helpers
# ---------------------------------------------------------------------------


def test_extract_front_matter(sample_markdown):
    fm = extract_front_matter(sample_markdown)
    assert fm is not None
    assert fm.startswith('title: "Sparse Attention')


@pytest.mark.parametrize("text", ["# No front matter", "---\nunterminated: true"])
def test_extract_front_matter_absent(text):
    assert extract_front_matter(text) is None


def test_remove_front_matter(sample_markdown):
    body = remove_front_matter(sample_markdown)
    assert body.startswith("Preamble text")


def test_remove_front_matter_without_block_is_identity():
    assert remove_front_matter("# Title\nbody") == "# Title\nbody"
