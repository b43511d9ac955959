"""Pagination and fragment geometry."""
import pytest
from PIL import Image

from conftest import text_of
from mdrender.document import Paragraph, plain_text
from mdrender.images import ImageLoader
from mdrender.layout import EPSILON, ImageFragment, Margins, RuleFragment, TextFragment, layout
from mdrender.parser import MAX_NESTING_DEPTH, parse
from mdrender.styles import resolve
from mdrender.theme import load_theme

SMALL_PAGE = (300.0, 200.0)
SMALL_MARGINS = Margins.uniform(20.0)


def texts(page):
    return [fragment.text for fragment in page.text_fragments()]


def test_heading_and_paragraph_scenario(render_pages):
    pages = render_pages("# Title\n\nHello **world**")
    assert len(pages) == 1
    assert texts(pages[0]) == ["Title", "Hello ", "world"]
    title, hello, world = pages[0].text_fragments()
    assert title.font_size == 22.0 and title.font.name == "Helvetica-Bold"
    assert world.font.name == "Helvetica-Bold" and hello.font.name == "Helvetica"
    assert hello.top == world.top
    assert world.x == pytest.approx(hello.x + hello.width)
    # first block on the page ignores its top margin
    assert title.top == 72.0


def test_text_round_trips_through_fragments(render_pages):
    markdown = "Hello **world** and `code` with [link](http://x.y) text\nthat wraps"
    pages = render_pages(markdown)
    paragraph = parse(markdown).children[0]
    assert text_of(pages) == plain_text(paragraph.children)
    linked = [fragment for fragment in pages[0].text_fragments() if fragment.link]
    assert [fragment.text for fragment in linked] == ["link"]
    assert linked[0].link == "http://x.y"


def test_long_paragraph_flows_onto_following_pages(render_pages):
    words = " ".join(f"word{index}" for index in range(1500))
    pages = render_pages(words)
    assert len(pages) > 1
    assert [page.number for page in pages] == list(range(1, len(pages) + 1))
    assert text_of(pages) == words
    for page in pages:
        left, top, right, bottom = page.content_box
        for fragment in page.text_fragments():
            x0, y0, x1, y1 = fragment.bbox
            assert x0 >= left - EPSILON and x1 <= right + EPSILON
            assert y0 >= top - EPSILON and y1 <= bottom + EPSILON


def test_lines_advance_down_the_page(render_pages):
    pages = render_pages(" ".join(["filler"] * 200))
    tops = [fragment.top for fragment in pages[0].text_fragments()]
    assert tops == sorted(tops)
    assert len(set(tops)) > 1


def test_hard_break_starts_a_new_line(render_pages):
    first, second = render_pages("one  \ntwo")[0].text_fragments()
    assert (first.text, second.text) == ("one", "two")
    assert second.top == pytest.approx(first.top + first.height)
    assert second.x == first.x


def test_adjacent_margins_collapse(render_pages):
    paragraph, heading = render_pages("para\n\n### Head")[0].text_fragments()
    assert heading.top - (paragraph.top + paragraph.height) == pytest.approx(18.0)


def test_heading_and_paragraph_scenario_has_three_fragments(render_pages):
    (page,) = render_pages("# Title\n\nHello **world**")
    assert len(page.fragments) == 3
    assert all(isinstance(fragment, TextFragment) for fragment in page.fragments)


def test_heading_border_is_drawn_below_text(render_pages):
    page = render_pages("## Title")[0]
    rules = [fragment for fragment in page.fragments if isinstance(fragment, RuleFragment)]
    title = page.text_fragments()[0]
    assert len(rules) == 1
    assert rules[0].top >= title.top + title.height
    # backgrounds and rules are ordered before text
    assert page.fragments.index(rules[0]) < page.fragments.index(title)


def test_table_rows_are_never_split(render_pages):
    rows = "\n".join(f"| r{index}a | r{index}b |" for index in range(30))
    pages = render_pages("| Head | Other |\n|---|---|\n" + rows, page_size=SMALL_PAGE, margins=SMALL_MARGINS)
    assert len(pages) > 1
    for index in range(30):
        holding = {page.number for page in pages for text in texts(page) if text in (f"r{index}a", f"r{index}b")}
        assert len(holding) == 1
    for page in pages:
        bottom = page.content_box[3]
        assert all(fragment.bbox[3] <= bottom + EPSILON for fragment in page.fragments)


def test_table_cells_respect_alignment(render_pages):
    page = render_pages("| left | right |\n|:--|--:|\n| a | b |")[0]
    cells = {fragment.text: fragment for fragment in page.text_fragments()}
    header_right = cells["right"]
    body_right = cells["b"]
    assert body_right.x + body_right.width == pytest.approx(header_right.x + header_right.width)
    assert cells["a"].x == cells["left"].x


def test_overtall_row_starts_on_fresh_page_and_overflows(render_pages):
    long_cell = " ".join(["overflowing"] * 200)
    markdown = f"intro\n\n| h |\n|---|\n| {long_cell} |"
    pages = render_pages(markdown, page_size=SMALL_PAGE, margins=SMALL_MARGINS)
    assert len(pages) == 2
    assert texts(pages[0])[:2] == ["intro", "h"]
    first_line = pages[1].text_fragments()[0]
    assert first_line.text.startswith("overflowing")
    assert first_line.top == pytest.approx(20.0 + 4.0)
    assert max(fragment.bbox[3] for fragment in pages[1].fragments) > pages[1].content_box[3]


def test_list_markers_precede_item_text(render_pages):
    page = render_pages("- apple\n- pear\n\n3. three\n4. four")[0]
    fragments = page.text_fragments()
    assert [fragment.text for fragment in fragments] == ["•", "apple", "•", "pear", "3.", "three", "4.", "four"]
    for marker, text in zip(fragments[::2], fragments[1::2]):
        assert marker.top == text.top
        assert marker.x + marker.width < text.x
    assert fragments[1].x == pytest.approx(72.0 + 20.0)


def test_paragraph_in_list_item_splits_between_lines(render_pages):
    long_item = "- " + " ".join(["item"] * 400)
    pages = render_pages(long_item, page_size=SMALL_PAGE, margins=SMALL_MARGINS)
    assert len(pages) > 1
    markers = [text for page in pages for text in texts(page) if text == "•"]
    assert markers == ["•"]
    assert texts(pages[0])[0] == "•"


def test_code_block_breaks_across_pages(render_pages):
    code = "\n".join(f"line {index}" for index in range(40))
    pages = render_pages(f"```\n{code}\n```", page_size=SMALL_PAGE, margins=SMALL_MARGINS)
    assert len(pages) > 1
    assert [text for page in pages for text in texts(page)] == [f"line {index}" for index in range(40)]
    for page in pages:
        backgrounds = [fragment for fragment in page.fragments if isinstance(fragment, RuleFragment)]
        assert len(backgrounds) == 1
        assert backgrounds[0].top >= page.content_box[1]
        assert backgrounds[0].bbox[3] <= page.content_box[3] + EPSILON


def test_long_code_line_wraps_by_character(render_pages):
    pages = render_pages("```\n" + "x" * 200 + "\n```")
    fragments = pages[0].text_fragments()
    assert len(fragments) > 1
    assert "".join(fragment.text for fragment in fragments) == "x" * 200
    assert all(fragment.bbox[2] <= 612.0 - 72.0 for fragment in fragments)


def test_block_quote_is_indented_with_a_bar(render_pages):
    page = render_pages("> quoted text")[0]
    text = page.text_fragments()[0]
    bars = [fragment for fragment in page.fragments if isinstance(fragment, RuleFragment)]
    assert text.x == pytest.approx(72.0 + 14.0)
    assert len(bars) == 1 and bars[0].x == 72.0
    assert bars[0].top <= text.top and bars[0].bbox[3] >= text.bbox[3]


def test_thematic_break_spans_the_content_width(render_pages):
    page = render_pages("above\n\n---\n\nbelow")[0]
    rule = next(fragment for fragment in page.fragments if isinstance(fragment, RuleFragment))
    assert (rule.x, rule.width, rule.height) == (72.0, 468.0, 1.0)


def test_wide_image_is_scaled_to_content_width(render_pages, tmp_path):
    Image.new("RGB", (2000, 100), (0, 128, 255)).save(tmp_path / "wide.png")
    pages = render_pages("![banner](wide.png)", images=ImageLoader(base_dir=tmp_path))
    image = next(fragment for fragment in pages[0].fragments if isinstance(fragment, ImageFragment))
    assert image.width == pytest.approx(468.0)
    assert image.height == pytest.approx(100 * 0.75 * 468.0 / 1500.0)
    assert image.node_path == (0,)


def test_tall_image_is_scaled_to_page_height(render_pages, tmp_path):
    Image.new("L", (100, 1000), 0).save(tmp_path / "tall.png")
    pages = render_pages("![tall](tall.png)", page_size=SMALL_PAGE, margins=SMALL_MARGINS, images=ImageLoader(base_dir=tmp_path))
    image = pages[0].fragments[0]
    assert isinstance(image, ImageFragment)
    assert image.height == pytest.approx(160.0)
    assert image.width == pytest.approx(75.0 * 160.0 / 750.0)


def test_missing_image_renders_alt_text(render_pages, tmp_path):
    pages = render_pages("![Architecture diagram](nope.png)", images=ImageLoader(base_dir=tmp_path))
    assert texts(pages[0]) == ["Architecture diagram"]


def test_empty_document_yields_one_blank_page(render_pages):
    pages = render_pages("")
    assert len(pages) == 1
    assert pages[0].fragments == ()


def test_page_background_is_carried_to_pages(render_pages):
    pages = render_pages("dark", stylesheet=load_theme("github-dark"))
    assert pages[0].background is not None


def test_layout_rejects_margins_without_content_area(fonts, theme):
    styled = resolve(parse("x"), theme, fonts=fonts)
    with pytest.raises(ValueError):
        layout(styled, (100.0, 100.0), Margins.uniform(60.0), fonts=fonts)


def test_layout_rejects_negative_margins(fonts, theme):
    styled = resolve(parse("x"), theme, fonts=fonts)
    with pytest.raises(ValueError, match="must not be negative"):
        layout(styled, margins=Margins(top=72.0, right=72.0, bottom=72.0, left=-10.0), fonts=fonts)


def test_layout_defaults_to_letter(fonts, theme):
    styled = resolve(parse("x"), theme, fonts=fonts)
    page = layout(styled, fonts=fonts)[0]
    assert (page.width, page.height) == (612.0, 792.0)
    assert page.text_fragments()[0].top == 72.0
    assert isinstance(styled.root.node.children[0], Paragraph)


def top_level_block(styled, index):
    node = styled[index]
    while node.parent != styled.root.index:
        node = styled.parent(node)
    return node.index


def test_every_block_occupies_consecutive_pages(fonts, theme):
    items = "\n".join(f"- item {index} with a few words\n  - nested {index}" for index in range(20))
    quote = "\n>\n".join(f"> quoted paragraph {index} " + "word " * 12 for index in range(6))
    code = "\n".join(f"code line {index}" for index in range(30))
    rows = "\n".join(f"| r{index} | value {index} |" for index in range(25))
    markdown = (
        "# Mixed\n\n"
        + items
        + "\n\n"
        + quote
        + "\n\n```\n"
        + code
        + "\n```\n\n| Key | Value |\n|---|---|\n"
        + rows
        + "\n\n"
        + "closing " * 200
        + "\n\n1. one\n2. two\n3. three\n"
    )
    styled = resolve(parse(markdown), theme, fonts=fonts, content_width=SMALL_PAGE[0] - 40.0)
    pages = layout(styled, SMALL_PAGE, SMALL_MARGINS, fonts=fonts)
    assert len(pages) > 5

    pages_by_block = {}
    for page in pages:
        for fragment in page.fragments:
            block = top_level_block(styled, fragment.node_index)
            pages_by_block.setdefault(block, set()).add(page.number)
    assert len(pages_by_block) == len(styled.root.children)
    for numbers in pages_by_block.values():
        assert sorted(numbers) == list(range(min(numbers), max(numbers) + 1))


def test_deeply_nested_lists_are_flattened_into_text(render_pages):
    markdown = "".join("  " * level + "- x\n" for level in range(500))
    pages = render_pages(markdown)
    fragments = [fragment for page in pages for fragment in page.text_fragments()]
    assert sum(1 for fragment in fragments if fragment.text == "•") == MAX_NESTING_DEPTH
    assert "-" in {fragment.text.strip() for fragment in fragments}
    for page in pages:
        assert all(fragment.bbox[2] <= page.width for fragment in page.fragments)


def test_deeply_nested_quotes_convert(render_pages):
    pages = render_pages("> " * 1000 + "deep")
    bars = [fragment for fragment in pages[0].fragments if isinstance(fragment, RuleFragment)]
    assert len(bars) == MAX_NESTING_DEPTH
    assert text_of(pages).endswith("deep")
