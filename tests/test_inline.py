"""Inline scanning: emphasis pairing, code spans, links, breaks."""
import time

from mdrender.document import CodeSpan, Emphasis, LineBreak, Link, Strong, Text
from mdrender.inline import InlineImage, InlineParser, LinkReference


def inline(text, references=None):
    return InlineParser(references).parse(text)


def test_unmatched_opener_is_literal():
    """An unmatched `*bold` stays literal text."""
    assert inline("*bold") == [Text("*bold")]


def test_unmatched_closers_and_brackets_are_literal():
    assert inline("a* b** [c `d") == [Text("a* b** [c `d")]


def test_strong_and_emphasis_nest():
    assert inline("***both***") == [Emphasis((Strong((Text("both"),)),))]
    assert inline("**bold *and italic***") == [
        Strong((Text("bold "), Emphasis((Text("and italic"),))))
    ]


def test_underscore_inside_words_is_not_emphasis():
    assert inline("snake_case_name") == [Text("snake_case_name")]
    assert inline("_under_") == [Emphasis((Text("under"),))]


def test_rule_of_three_leaves_stars_literal():
    assert inline("*foo**bar*") == [Emphasis((Text("foo**bar"),))]


def test_whitespace_after_opener_prevents_emphasis():
    assert inline("* not emphasis *") == [Text("* not emphasis *")]


def test_emphasis_still_pairs_after_stray_closers():
    assert inline("a* *b*") == [Text("a* "), Emphasis((Text("b"),))]
    assert inline("*x* a* _y_ b* *z*") == [
        Emphasis((Text("x"),)),
        Text(" a* "),
        Emphasis((Text("y"),)),
        Text(" b* "),
        Emphasis((Text("z"),)),
    ]


def test_many_stray_closers_parse_in_linear_time():
    text = "a* " * 20000 + "a_ " * 20000 + "end"
    started = time.perf_counter()
    result = inline(text)
    assert time.perf_counter() - started < 5.0
    assert result == [Text(text)]


def test_code_span_matches_equal_backtick_runs():
    assert inline("use `` a`b `` here") == [Text("use "), CodeSpan("a`b"), Text(" here")]
    assert inline("`*no emphasis*`") == [CodeSpan("*no emphasis*")]


def test_backslash_escapes_and_entities():
    assert inline(r"\*literal\* &amp; &copy; &bogus;") == [Text("*literal* & © &bogus;")]


def test_inline_link_with_title_and_nested_emphasis():
    assert inline('[**go** there](https://example.com/a_(b) "T")') == [
        Link((Strong((Text("go"),)), Text(" there")), "https://example.com/a_(b)", "T")
    ]


def test_links_do_not_nest():
    result = inline("[outer [inner](/in)](/out)")
    assert result == [Text("[outer "), Link((Text("inner"),), "/in"), Text("](/out)")]


def test_bracket_without_target_is_literal():
    assert inline("[not a link] (x)") == [Text("[not a link] (x)")]


def test_reference_forms():
    references = {"ref": LinkReference("/target", "Title")}
    full = inline("[text][REF]", references)
    collapsed = inline("[ref][]", references)
    shortcut = inline("[Ref]", references)
    assert full == [Link((Text("text"),), "/target", "Title")]
    assert collapsed == [Link((Text("ref"),), "/target", "Title")]
    assert shortcut == [Link((Text("Ref"),), "/target", "Title")]
    assert inline("[missing][nope]", references) == [Text("[missing][nope]")]


def test_autolinks_and_bare_urls():
    assert inline("<https://example.com>") == [Link((Text("https://example.com"),), "https://example.com")]
    assert inline("<me@example.com>") == [Link((Text("me@example.com"),), "mailto:me@example.com")]
    assert inline("see https://example.com/path.") == [
        Text("see "),
        Link((Text("https://example.com/path"),), "https://example.com/path"),
        Text("."),
    ]


def test_image_span_is_returned_for_hoisting():
    assert inline("![alt *text*](pic.png)") == [InlineImage(src="pic.png", alt="alt text")]


def test_hard_and_soft_breaks():
    assert inline("one  \ntwo\nthree\\\nfour") == [
        Text("one"),
        LineBreak(),
        Text("two three"),
        LineBreak(),
        Text("four"),
    ]
