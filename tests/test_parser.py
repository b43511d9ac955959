"""Block-level parsing."""
import pytest

from mdrender.document import (
    BlockQuote,
    CodeBlock,
    Emphasis,
    Heading,
    ImageBlock,
    Link,
    ListBlock,
    Paragraph,
    Strong,
    Table,
    Text,
    ThematicBreak,
    plain_text,
)
from mdrender.errors import MalformedInputError
from mdrender.parser import MAX_NESTING_DEPTH, parse, remove_front_matter


def test_heading_and_paragraph_scenario():
    """`# Title` plus a paragraph with a bold span around "world"."""
    document = parse("# Title\n\nHello **world**.")
    assert len(document.children) == 2
    heading, paragraph = document.children
    assert heading == Heading(level=1, children=(Text("Title"),))
    assert paragraph == Paragraph(children=(Text("Hello "), Strong((Text("world"),)), Text(".")))


def test_heading_depth_is_capped_at_six():
    document = parse("###### six\n\n####### seven")
    assert document.children[0] == Heading(level=6, children=(Text("six"),))
    assert document.children[1] == Paragraph(children=(Text("####### seven"),))


def test_atx_closing_sequence_and_setext_headings():
    document = parse("## Closed ##\n\nUnder one\n===\n\nUnder two\n---")
    assert [block.level for block in document.children] == [2, 1, 2]
    assert plain_text(document.children[0].children) == "Closed"
    assert plain_text(document.children[2].children) == "Under two"


def test_fenced_code_keeps_text_verbatim():
    document = parse("```python\ndef f():\n    return *x*\n```\nafter")
    code = document.children[0]
    assert code == CodeBlock(text="def f():\n    return *x*", info="python")
    assert document.children[1] == Paragraph(children=(Text("after"),))


def test_unclosed_fence_runs_to_end_of_document():
    document = parse("~~~\nline one\n\nline two")
    assert document.children == (CodeBlock(text="line one\n\nline two"),)


def test_indented_code_block():
    document = parse("text\n\n    code line\n      more\n\nback")
    assert document.children[1] == CodeBlock(text="code line\n  more")


def test_thematic_breaks():
    document = parse("a\n\n***\n\n- - -\n\n___")
    assert document.children[1:] == (ThematicBreak(), ThematicBreak(), ThematicBreak())


def test_block_quote_is_parsed_recursively():
    document = parse("> # Quoted\n> text\nlazy line\n>\n> > nested")
    quote = document.children[0]
    assert isinstance(quote, BlockQuote)
    heading, paragraph, inner = quote.children
    assert heading.level == 1
    assert plain_text(paragraph.children) == "text lazy line"
    assert isinstance(inner, BlockQuote)
    assert plain_text(inner.children[0].children) == "nested"


def test_nested_lists_follow_content_indentation():
    markdown = "- one\n- two\n  - inner a\n  - inner b\n- three\n\n1. first\n2. second"
    document = parse(markdown)
    bullets, numbers = document.children
    assert isinstance(bullets, ListBlock) and not bullets.ordered
    assert len(bullets.items) == 3
    nested = bullets.items[1].children[1]
    assert isinstance(nested, ListBlock)
    assert [plain_text(item.children[0].children) for item in nested.items] == ["inner a", "inner b"]
    assert numbers.ordered and numbers.start == 1 and len(numbers.items) == 2


def test_ordered_list_start_and_looseness():
    document = parse("3) a\n\n4) b")
    listing = document.children[0]
    assert listing.ordered
    assert listing.start == 3
    assert listing.tight is False


def test_changing_bullet_character_starts_a_new_list():
    document = parse("- a\n* b")
    assert len(document.children) == 2


def test_gfm_table_with_alignment():
    document = parse("| a | b | c |\n|:--|:-:|--:|\n| 1 | **2** |\n| x | y | z | extra |")
    table = document.children[0]
    assert isinstance(table, Table)
    assert table.column_count == 3
    assert table.alignments == ("left", "center", "right")
    assert table.header.header is True
    assert len(table.rows) == 2
    # short rows are padded, long rows truncated to the header width
    assert all(len(row.cells) == 3 for row in table.rows)
    assert table.rows[0].cells[1].children == (Strong((Text("2"),)),)
    assert table.rows[0].cells[2].children == ()


def test_escaped_pipe_stays_in_cell():
    document = parse("a | b\n--|--\nx \\| y | z")
    table = document.children[0]
    assert plain_text(table.rows[0].cells[0].children) == "x | y"


def test_images_are_hoisted_out_of_paragraphs():
    document = parse('Before ![diagram](img/a.png "Title") after')
    assert document.children == (
        Paragraph(children=(Text("Before"),)),
        ImageBlock(src="img/a.png", alt="diagram", title="Title"),
        Paragraph(children=(Text("after"),)),
    )


def test_image_inside_link_degrades_to_alt_text():
    document = parse("[![logo](logo.png)](https://example.com)")
    paragraph = document.children[0]
    assert paragraph == Paragraph(children=(Link((Text("logo"),), "https://example.com"),))


def test_reference_links_resolve_and_definitions_disappear():
    markdown = "See [the docs][Docs] and [Docs].\n\n[docs]: https://example.com/docs \"Docs\""
    document = parse(markdown)
    assert len(document.children) == 1
    links = [node for node in document.children[0].children if isinstance(node, Link)]
    assert [link.url for link in links] == ["https://example.com/docs"] * 2
    assert links[0].title == "Docs"


def test_definition_inside_fence_is_code():
    document = parse("```\n[x]: /url\n```")
    assert document.children == (CodeBlock(text="[x]: /url"),)


def test_front_matter_is_removed():
    markdown = "---\ntitle: Notes\ntags: [a]\n---\n# Heading"
    assert remove_front_matter(markdown) == "# Heading"
    assert parse(markdown).children == (Heading(level=1, children=(Text("Heading"),)),)


def test_crlf_tabs_and_bom_are_normalised():
    document = parse("\ufeff# Title\r\n\r\n\tcode\r\n")
    assert document.children == (
        Heading(level=1, children=(Text("Title"),)),
        CodeBlock(text="code"),
    )


def test_invalid_utf8_reports_byte_offset():
    with pytest.raises(MalformedInputError) as info:
        parse(b"abc\xffdef")
    assert info.value.offset == 3
    assert "offset 3" in str(info.value)


def test_lone_surrogate_in_text_is_malformed():
    with pytest.raises(MalformedInputError) as info:
        parse("ab\udc80")
    assert info.value.offset == 2


def test_empty_document_has_no_blocks():
    assert parse("").children == ()
    assert parse("\n\n   \n").children == ()


def test_emphasis_inside_list_item():
    document = parse("- *one* item")
    item = document.children[0].items[0]
    assert item.children[0] == Paragraph(children=(Emphasis((Text("one"),)), Text(" item")))


def test_list_nesting_stops_at_depth_limit():
    document = parse("".join("  " * level + "- x\n" for level in range(500)))
    depth = 0
    node = document.children[0]
    while isinstance(node, ListBlock):
        depth += 1
        node = node.items[0].children[-1]
    assert depth == MAX_NESTING_DEPTH
    assert isinstance(node, Paragraph)
    assert node.children[0].text.startswith("x - x - x")
