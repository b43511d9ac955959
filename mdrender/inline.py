"""Inline markdown scanning: code spans, emphasis, links, and line breaks.

The scanner walks a block's raw text once, turning it into a flat list of
text runs, finished inline nodes, and pending emphasis delimiters. Brackets
are resolved as soon as their closing ``]`` is seen; emphasis is resolved
last by pairing delimiter runs according to their flanking.

Anything that does not pair up stays literal text, so scanning never fails.
"""
from __future__ import annotations

import html
import re
import unicodedata
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from mdrender.document import CodeSpan, Emphasis, Inline, LineBreak, Link, Strong, Text

ASCII_PUNCTUATION = frozenset("!\"#$%&'()*+,-./:;<=>?@[\\]^_`{|}~")
ENTITY_PATTERN = re.compile(r"&(?:#[0-9]{1,7}|#[xX][0-9a-fA-F]{1,6}|[A-Za-z][A-Za-z0-9]{1,31});")
ESCAPE_PATTERN = re.compile(r"\\([!-/:-@\[-`{-~])")
AUTOLINK_PATTERN = re.compile(r"<([A-Za-z][A-Za-z0-9+.\-]{1,31}:[^<>\s]*)>")
EMAIL_AUTOLINK_PATTERN = re.compile(
    r"<([A-Za-z0-9.!#$%&'*+/=?^_`{|}~\-]+@[A-Za-z0-9](?:[A-Za-z0-9\-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9\-]{0,61}[A-Za-z0-9])?)*)>"
)
URL_PATTERN = re.compile(r"https?://[^\s<>\"]+", re.IGNORECASE)
TRAILING_URL_PUNCTUATION = ".,:;!?*_~'\""


@dataclass(frozen=True)
class LinkReference:
    """Target of a ``[label]: url "title"`` definition."""

    url: str
    title: Optional[str] = None


@dataclass(frozen=True)
class InlineImage:
    """An ``![alt](src)`` span; the block parser lifts these out of paragraphs."""

    src: str
    alt: str
    title: Optional[str] = None


@dataclass
class _Delimiter:
    char: str
    count: int
    original: int
    can_open: bool
    can_close: bool


@dataclass
class _Bracket:
    position: int
    source_end: int
    image: bool
    active: bool = True


Item = Union[Inline, InlineImage, _Delimiter]


def normalize_label(label: str) -> str:
    """Case-fold and collapse whitespace so reference labels compare equal."""
    return " ".join(label.split()).casefold()


def unescape_string(value: str) -> str:
    """Resolve backslash escapes and entity references in a link target."""
    return html.unescape(ESCAPE_PATTERN.sub(r"\1", value))


def _is_punctuation(char: str) -> bool:
    if char in ASCII_PUNCTUATION:
        return True
    return unicodedata.category(char)[0] in ("P", "S")


class InlineParser:
    """Turns the text of one block into inline nodes."""

    def __init__(self, references: Optional[Mapping[str, LinkReference]] = None) -> None:
        self._references = dict(references or {})
        self._text = ""
        self._pos = 0
        self._items: List[Item] = []
        self._buffer: List[str] = []
        self._brackets: List[_Bracket] = []

    def parse(self, text: str) -> List[Union[Inline, InlineImage]]:
        """Return inline nodes (and images still to be hoisted) for ``text``."""
        self._text = text
        self._pos = 0
        self._items = []
        self._buffer = []
        self._brackets = []

        while self._pos < len(text):
            char = text[self._pos]
            if char == "\\":
                self._handle_backslash()
            elif char == "`":
                self._handle_backticks()
            elif char in "*_":
                self._handle_delimiter()
            elif char == "!" and text.startswith("![", self._pos):
                self._open_bracket(image=True)
            elif char == "[":
                self._open_bracket(image=False)
            elif char == "]":
                self._close_bracket()
            elif char == "<":
                self._handle_angle()
            elif char == "&":
                self._handle_entity()
            elif char == "\n":
                self._handle_newline()
            elif char in "hH" and self._handle_bare_url():
                continue
            else:
                self._buffer.append(char)
                self._pos += 1

        self._flush()
        return _merge_text(_process_emphasis(self._items))

    # ------------------------------------------------------------------
    # Scanner steps
    def _flush(self) -> None:
        if self._buffer:
            self._items.append(Text("".join(self._buffer)))
            self._buffer = []

    def _handle_backslash(self) -> None:
        text = self._text
        following = text[self._pos + 1] if self._pos + 1 < len(text) else ""
        if following == "\n":
            self._flush()
            self._items.append(LineBreak())
            self._pos += 2
            self._skip_spaces()
        elif following and following in ASCII_PUNCTUATION:
            self._buffer.append(following)
            self._pos += 2
        else:
            self._buffer.append("\\")
            self._pos += 1

    def _handle_backticks(self) -> None:
        text = self._text
        start = self._pos
        end = start
        while end < len(text) and text[end] == "`":
            end += 1
        run = end - start

        search = end
        while True:
            found = text.find("`", search)
            if found == -1:
                self._buffer.append("`" * run)
                self._pos = end
                return
            close_end = found
            while close_end < len(text) and text[close_end] == "`":
                close_end += 1
            if close_end - found == run:
                break
            search = close_end

        content = text[end:found].replace("\n", " ")
        if len(content) >= 2 and content[0] == " " and content[-1] == " " and content.strip(" "):
            content = content[1:-1]
        self._flush()
        self._items.append(CodeSpan(content))
        self._pos = close_end

    def _handle_delimiter(self) -> None:
        text = self._text
        char = text[self._pos]
        end = self._pos
        while end < len(text) and text[end] == char:
            end += 1

        before = text[self._pos - 1] if self._pos > 0 else " "
        after = text[end] if end < len(text) else " "
        before_space = before.isspace()
        after_space = after.isspace()
        before_punct = _is_punctuation(before)
        after_punct = _is_punctuation(after)

        left_flanking = not after_space and (not after_punct or before_space or before_punct)
        right_flanking = not before_space and (not before_punct or after_space or after_punct)

        if char == "*":
            can_open, can_close = left_flanking, right_flanking
        else:
            can_open = left_flanking and (not right_flanking or before_punct)
            can_close = right_flanking and (not left_flanking or after_punct)

        count = end - self._pos
        self._flush()
        self._items.append(_Delimiter(char, count, count, can_open, can_close))
        self._pos = end

    def _handle_newline(self) -> None:
        pending = "".join(self._buffer)
        stripped = pending.rstrip(" ")
        hard_break = len(pending) - len(stripped) >= 2
        self._buffer = [stripped] if stripped else []
        if hard_break:
            self._flush()
            self._items.append(LineBreak())
        else:
            self._buffer.append(" ")
        self._pos += 1
        self._skip_spaces()

    def _skip_spaces(self) -> None:
        while self._pos < len(self._text) and self._text[self._pos] == " ":
            self._pos += 1

    def _handle_entity(self) -> None:
        match = ENTITY_PATTERN.match(self._text, self._pos)
        if match:
            decoded = html.unescape(match.group(0))
            if decoded != match.group(0):
                self._buffer.append(decoded)
                self._pos = match.end()
                return
        self._buffer.append("&")
        self._pos += 1

    def _handle_angle(self) -> None:
        match = AUTOLINK_PATTERN.match(self._text, self._pos)
        if match:
            url = match.group(1)
            self._flush()
            self._items.append(Link((Text(url),), url))
            self._pos = match.end()
            return
        match = EMAIL_AUTOLINK_PATTERN.match(self._text, self._pos)
        if match:
            address = match.group(1)
            self._flush()
            self._items.append(Link((Text(address),), f"mailto:{address}"))
            self._pos = match.end()
            return
        self._buffer.append("<")
        self._pos += 1

    def _handle_bare_url(self) -> bool:
        text = self._text
        if self._pos > 0 and not (text[self._pos - 1].isspace() or text[self._pos - 1] in "(*_~"):
            return False
        if any(not bracket.image and bracket.active for bracket in self._brackets):
            return False
        match = URL_PATTERN.match(text, self._pos)
        if not match:
            return False

        url = match.group(0)
        while url:
            if url[-1] in TRAILING_URL_PUNCTUATION:
                url = url[:-1]
            elif url[-1] == ")" and url.count("(") < url.count(")"):
                url = url[:-1]
            else:
                break
        if len(url) <= len("http://"):
            return False

        self._flush()
        self._items.append(Link((Text(url),), url))
        self._pos += len(url)
        return True

    # ------------------------------------------------------------------
    # Links and images
    def _open_bracket(self, image: bool) -> None:
        marker = "![" if image else "["
        self._flush()
        self._items.append(Text(marker))
        self._pos += len(marker)
        self._brackets.append(_Bracket(position=len(self._items) - 1, source_end=self._pos, image=image))

    def _close_bracket(self) -> None:
        self._flush()
        if not self._brackets:
            self._buffer.append("]")
            self._pos += 1
            return

        opener = self._brackets[-1]
        if not opener.active:
            self._brackets.pop()
            self._buffer.append("]")
            self._pos += 1
            return

        label_text = self._text[opener.source_end:self._pos]
        target = self._parse_inline_target(self._pos + 1)
        if target is None:
            target = self._parse_reference_target(self._pos + 1, label_text)
        if target is None:
            self._brackets.pop()
            self._buffer.append("]")
            self._pos += 1
            return

        url, title, end = target
        inner = _merge_text(_process_emphasis(self._items[opener.position + 1:]))
        del self._items[opener.position:]
        self._brackets.pop()

        if opener.image:
            self._items.append(InlineImage(src=url, alt=_alt_text(inner), title=title))
        else:
            self._items.append(Link(tuple(_as_inline(inner)), url, title))
            for bracket in self._brackets:
                if not bracket.image:
                    bracket.active = False
        self._pos = end

    def _parse_inline_target(self, start: int) -> Optional[Tuple[str, Optional[str], int]]:
        text = self._text
        length = len(text)
        if start >= length or text[start] != "(":
            return None

        index = _skip_whitespace(text, start + 1)
        if index < length and text[index] == "<":
            close = text.find(">", index + 1)
            if close == -1 or "\n" in text[index + 1:close]:
                return None
            url = text[index + 1:close]
            index = close + 1
        else:
            depth = 0
            scan = index
            while scan < length:
                char = text[scan]
                if char == "\\" and scan + 1 < length and text[scan + 1] in ASCII_PUNCTUATION:
                    scan += 2
                    continue
                if char == "(":
                    depth += 1
                elif char == ")":
                    if depth == 0:
                        break
                    depth -= 1
                elif char.isspace():
                    break
                scan += 1
            url = text[index:scan]
            index = scan

        after_url = _skip_whitespace(text, index)
        title: Optional[str] = None
        if after_url < length and after_url > index and text[after_url] in "\"'(":
            closer = ")" if text[after_url] == "(" else text[after_url]
            close = after_url + 1
            while close < length and text[close] != closer:
                close += 2 if text[close] == "\\" else 1
            if close >= length:
                return None
            title = unescape_string(text[after_url + 1:close])
            after_url = _skip_whitespace(text, close + 1)

        if after_url >= length or text[after_url] != ")":
            return None
        return unescape_string(url), title, after_url + 1

    def _parse_reference_target(self, start: int, label_text: str) -> Optional[Tuple[str, Optional[str], int]]:
        text = self._text
        if start < len(text) and text[start] == "[":
            close = text.find("]", start + 1)
            if close != -1:
                label = text[start + 1:close]
                if not label.strip():
                    label = label_text
                reference = self._references.get(normalize_label(label))
                if reference is None:
                    return None
                return reference.url, reference.title, close + 1

        if not label_text.strip():
            return None
        reference = self._references.get(normalize_label(label_text))
        if reference is None:
            return None
        return reference.url, reference.title, start


# ----------------------------------------------------------------------
# Emphasis resolution


def _process_emphasis(items: Sequence[Item]) -> List[Item]:
    """Pair ``*``/``_`` delimiter runs into Emphasis and Strong nodes."""
    items = list(items)
    # lowest index still worth searching, per closer kind; nothing below it can pair
    openers_bottom: Dict[Tuple[str, bool, int], int] = {}
    closer_index = 0
    while closer_index < len(items):
        closer = items[closer_index]
        if not (isinstance(closer, _Delimiter) and closer.can_close and closer.count > 0):
            closer_index += 1
            continue

        key = (closer.char, closer.can_open, closer.original % 3)
        opener_index = _find_opener(items, closer_index, closer, openers_bottom.get(key, 0))
        if opener_index is None:
            openers_bottom[key] = closer_index
            closer_index += 1
            continue

        opener = items[opener_index]
        assert isinstance(opener, _Delimiter)
        used = 2 if opener.count >= 2 and closer.count >= 2 else 1
        inner = _merge_text(_literalize(items[opener_index + 1:closer_index]))
        node_type = Strong if used == 2 else Emphasis
        node = node_type(tuple(_as_inline(inner)))

        opener.count -= used
        closer.count -= used
        items[opener_index + 1:closer_index] = [node]
        closer_index = opener_index + 2
        if closer.count == 0:
            del items[closer_index]
        if opener.count == 0:
            del items[opener_index]
            closer_index -= 1
        # entries above the opener pointed into the spliced range
        for bottom_key, bottom in openers_bottom.items():
            if bottom > opener_index:
                openers_bottom[bottom_key] = opener_index

    return _literalize(items)


def _find_opener(items: Sequence[Item], closer_index: int, closer: _Delimiter, bottom: int = 0) -> Optional[int]:
    for index in range(closer_index - 1, bottom - 1, -1):
        item = items[index]
        if not isinstance(item, _Delimiter):
            continue
        if item.char != closer.char or not item.can_open or item.count == 0:
            continue
        # rule of 3: a run that can both open and close pairs only when lengths allow
        if (item.can_close or closer.can_open) and (item.original + closer.original) % 3 == 0:
            if not (item.original % 3 == 0 and closer.original % 3 == 0):
                continue
        return index
    return None


def _literalize(items: Sequence[Item]) -> List[Union[Inline, InlineImage]]:
    result: List[Union[Inline, InlineImage]] = []
    for item in items:
        if isinstance(item, _Delimiter):
            if item.count:
                result.append(Text(item.char * item.count))
        else:
            result.append(item)
    return result


def _merge_text(items: Sequence[Union[Inline, InlineImage]]) -> List[Union[Inline, InlineImage]]:
    merged: List[Union[Inline, InlineImage]] = []
    pending: List[str] = []
    for item in items:
        if isinstance(item, Text):
            if item.text:
                pending.append(item.text)
            continue
        if pending:
            merged.append(Text("".join(pending)))
            pending = []
        merged.append(item)
    if pending:
        merged.append(Text("".join(pending)))
    return merged


def _as_inline(items: Sequence[Union[Inline, InlineImage]]) -> List[Inline]:
    """Replace images that cannot be hoisted (nested in spans) by their alt text."""
    converted: List[Inline] = []
    for item in items:
        if isinstance(item, InlineImage):
            if item.alt:
                converted.append(Text(item.alt))
        else:
            converted.append(item)
    return _merge_text(converted)  # type: ignore[return-value]


def _alt_text(items: Sequence[Union[Inline, InlineImage]]) -> str:
    parts: List[str] = []
    for item in items:
        if isinstance(item, (Text, CodeSpan)):
            parts.append(item.text)
        elif isinstance(item, InlineImage):
            parts.append(item.alt)
        elif isinstance(item, LineBreak):
            parts.append(" ")
        else:
            parts.append(_alt_text(item.children))
    return "".join(parts)


def _skip_whitespace(text: str, index: int) -> int:
    while index < len(text) and text[index].isspace():
        index += 1
    return index


def as_inline(items: Sequence[Union[Inline, InlineImage]]) -> Tuple[Inline, ...]:
    """Public form of the image-to-alt-text conversion used for headings and cells."""
    return tuple(_as_inline(items))
