from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence, Tuple, Union

from mdrender.document import (
    Block,
    BlockQuote,
    CodeBlock,
    Document,
    Heading,
    ImageBlock,
    Inline,
    LineBreak,
    ListBlock,
    ListItem,
    Paragraph,
    Table,
    TableCell,
    TableRow,
    Text,
    ThematicBreak,
)
from mdrender.errors import MalformedInputError
from mdrender.inline import InlineImage, InlineParser, LinkReference, as_inline, normalize_label, unescape_string
from mdrender.logger import get_logger

LOGGER = get_logger(__name__)

MAX_HEADING_LEVEL = 6
TAB_SIZE = 4
CODE_INDENT = 4
MAX_NESTING_DEPTH = 32

ATX_HEADING_PATTERN = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?[ \t]*$")
ATX_CLOSING_PATTERN = re.compile(r"(?:^|[ \t]+)#+[ \t]*$")
SETEXT_PATTERN = re.compile(r"^ {0,3}(=+|-+)[ \t]*$")
FENCE_PATTERN = re.compile(r"^( {0,3})(`{3,}|~{3,})(.*)$")
THEMATIC_BREAK_PATTERN = re.compile(r"^ {0,3}(?:(?:\*[ \t]*){3,}|(?:-[ \t]*){3,}|(?:_[ \t]*){3,})$")
BLOCKQUOTE_PATTERN = re.compile(r"^ {0,3}>")
LIST_ITEM_PATTERN = re.compile(r"^( {0,3})([-*+]|\d{1,9}[.)])( +|$)(.*)$")
TABLE_DELIMITER_PATTERN = re.compile(r"^ {0,3}\|?[ \t]*:?-+:?[ \t]*(?:\|[ \t]*:?-+:?[ \t]*)*\|?[ \t]*$")
LINK_DEFINITION_PATTERN = re.compile(
    r"^ {0,3}\[([^\]]+)\]:[ \t]*(?:<([^>\n]*)>|(\S+))"
    r"(?:[ \t]+(?:\"([^\"]*)\"|'([^']*)'|\(([^)]*)\)))?[ \t]*$"
)
FRONT_MATTER_PATTERN = re.compile(r"^---\s*\n.*?\n---\s*(?:\n|$)", flags=re.DOTALL)

Fence = Tuple[int, str, str]


def decode_markdown(data: Union[str, bytes]) -> str:
    """Return ``data`` as text with normalised line endings.

    Bytes must be UTF-8; the offset of the first invalid byte is reported in
    the raised :class:`MalformedInputError`.
    """
    if isinstance(data, (bytes, bytearray)):
        try:
            text = bytes(data).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedInputError(exc.start, exc.reason) from exc
    else:
        text = data
        try:
            text.encode("utf-8")
        except UnicodeEncodeError as exc:
            offset = len(text[: exc.start].encode("utf-8", errors="surrogatepass"))
            raise MalformedInputError(offset, "lone surrogate") from exc
    if text.startswith("\ufeff"):
        text = text[1:]
    return text.replace("\r\n", "\n").replace("\r", "\n")


def remove_front_matter(markdown: str) -> str:
    stripped = markdown.lstrip()
    if stripped.startswith("---"):
        match = FRONT_MATTER_PATTERN.match(stripped)
        if match:
            remainder = stripped[match.end() :]
            leading_ws_len = len(markdown) - len(stripped)
            return markdown[:leading_ws_len] + remainder
    return markdown


def parse(markdown: Union[str, bytes]) -> Document:
    """Parse markdown text (or UTF-8 bytes) into a :class:`Document`."""
    return MarkdownParser().parse(markdown)


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def _remove_indent(line: str, count: int) -> str:
    return line[min(count, _indent(line)) :]


def _split_row(line: str) -> List[str]:
    stripped = line.strip()
    if stripped.startswith("|"):
        stripped = stripped[1:]
    if stripped.endswith("|") and not stripped.endswith("\\|"):
        stripped = stripped[:-1]

    cells: List[str] = []
    current: List[str] = []
    index = 0
    while index < len(stripped):
        char = stripped[index]
        if char == "\\" and index + 1 < len(stripped) and stripped[index + 1] == "|":
            current.append("|")
            index += 2
            continue
        if char == "|":
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        index += 1
    cells.append("".join(current).strip())
    return cells


def _alignment(cell: str) -> Optional[str]:
    left = cell.startswith(":")
    right = cell.endswith(":")
    if left and right:
        return "center"
    if right:
        return "right"
    if left:
        return "left"
    return None


class MarkdownParser:
    """Line-oriented block scanner; inline content goes to :class:`InlineParser`."""

    def __init__(self) -> None:
        self._references: Dict[str, LinkReference] = {}
        self._inline = InlineParser()
        self._depth = 0

    def parse(self, markdown: Union[str, bytes]) -> Document:
        self._depth = 0
        text = remove_front_matter(decode_markdown(markdown))
        lines = [line.expandtabs(TAB_SIZE) for line in text.split("\n")]
        lines = self._collect_definitions(lines)
        self._inline = InlineParser(self._references)
        blocks = self._parse_blocks(lines)
        LOGGER.debug(
            "Parsed %d top-level blocks (%d link references)",
            len(blocks),
            len(self._references),
        )
        return Document(children=tuple(blocks))

    # ------------------------------------------------------------------
    # Pre-pass
    def _collect_definitions(self, lines: List[str]) -> List[str]:
        result: List[str] = []
        fence: Optional[Fence] = None
        previous_blank = True
        for line in lines:
            if fence is not None:
                if self._closes_fence(line, fence):
                    fence = None
                result.append(line)
                continue
            opened = self._match_fence(line)
            if opened is not None:
                fence = opened
                result.append(line)
                previous_blank = False
                continue
            match = LINK_DEFINITION_PATTERN.match(line)
            if match and previous_blank:
                label = normalize_label(match.group(1))
                if label and label not in self._references:
                    url = match.group(2) if match.group(2) is not None else match.group(3)
                    title = next((group for group in match.group(4, 5, 6) if group is not None), None)
                    self._references[label] = LinkReference(
                        url=unescape_string(url),
                        title=unescape_string(title) if title is not None else None,
                    )
                result.append("")
                continue
            previous_blank = not line.strip()
            result.append(line)
        return result

    # ------------------------------------------------------------------
    # Blocks
    def _parse_blocks(self, lines: Sequence[str]) -> List[Block]:
        blocks: List[Block] = []
        index = 0
        while index < len(lines):
            line = lines[index]
            if not line.strip():
                index += 1
                continue

            fence = self._match_fence(line)
            if fence is not None:
                block, index = self._parse_fenced_code(lines, index, fence)
                blocks.append(block)
                continue
            if _indent(line) >= CODE_INDENT:
                block, index = self._parse_indented_code(lines, index)
                blocks.append(block)
                continue
            heading = ATX_HEADING_PATTERN.match(line)
            if heading:
                blocks.append(self._make_heading(heading))
                index += 1
                continue
            if THEMATIC_BREAK_PATTERN.match(line):
                blocks.append(ThematicBreak())
                index += 1
                continue
            if self._can_nest and BLOCKQUOTE_PATTERN.match(line):
                block, index = self._parse_block_quote(lines, index)
                blocks.append(block)
                continue
            if self._can_nest and LIST_ITEM_PATTERN.match(line):
                block, index = self._parse_list(lines, index)
                blocks.append(block)
                continue
            if self._starts_table(lines, index):
                block, index = self._parse_table(lines, index)
                blocks.append(block)
                continue

            paragraph_blocks, index = self._parse_paragraph(lines, index)
            blocks.extend(paragraph_blocks)
        return blocks

    def _match_fence(self, line: str) -> Optional[Fence]:
        match = FENCE_PATTERN.match(line)
        if not match:
            return None
        marker = match.group(2)
        info = match.group(3)
        if marker[0] == "`" and "`" in info:
            return None
        return len(match.group(1)), marker, info.strip()

    @staticmethod
    def _closes_fence(line: str, fence: Fence) -> bool:
        _, marker, _ = fence
        stripped = line.strip()
        return (
            _indent(line) < CODE_INDENT
            and len(stripped) >= len(marker)
            and set(stripped) == {marker[0]}
        )

    def _parse_fenced_code(self, lines: Sequence[str], index: int, fence: Fence) -> Tuple[CodeBlock, int]:
        indent, _, info = fence
        body: List[str] = []
        position = index + 1
        while position < len(lines):
            line = lines[position]
            position += 1
            if self._closes_fence(line, fence):
                break
            body.append(_remove_indent(line, indent))
        language = info.split()[0] if info else ""
        return CodeBlock(text="\n".join(body), info=language), position

    def _parse_indented_code(self, lines: Sequence[str], index: int) -> Tuple[CodeBlock, int]:
        body: List[str] = []
        position = index
        while position < len(lines):
            line = lines[position]
            if not line.strip():
                body.append(line[CODE_INDENT:])
            elif _indent(line) >= CODE_INDENT:
                body.append(line[CODE_INDENT:])
            else:
                break
            position += 1
        while body and not body[-1].strip():
            body.pop()
        return CodeBlock(text="\n".join(body)), position

    def _make_heading(self, match: "re.Match[str]") -> Heading:
        level = min(len(match.group(1)), MAX_HEADING_LEVEL)
        content = ATX_CLOSING_PATTERN.sub("", match.group(2) or "").strip()
        return Heading(level=level, children=as_inline(self._inline.parse(content)))

    def _parse_block_quote(self, lines: Sequence[str], index: int) -> Tuple[BlockQuote, int]:
        inner: List[str] = []
        position = index
        while position < len(lines):
            line = lines[position]
            match = BLOCKQUOTE_PATTERN.match(line)
            if match:
                rest = line[match.end() :]
                if rest.startswith(" "):
                    rest = rest[1:]
                inner.append(rest)
                position += 1
                continue
            # lazy continuation of a quoted paragraph
            if line.strip() and inner and inner[-1].strip() and not self._interrupts_paragraph(line):
                inner.append(line)
                position += 1
                continue
            break
        return BlockQuote(children=tuple(self._parse_nested(inner))), position

    @property
    def _can_nest(self) -> bool:
        return self._depth < MAX_NESTING_DEPTH

    def _parse_nested(self, lines: Sequence[str]) -> List[Block]:
        # past the depth limit, quote and list markers are read as paragraph text
        self._depth += 1
        try:
            return self._parse_blocks(lines)
        finally:
            self._depth -= 1

    def _interrupts_paragraph(self, line: str) -> bool:
        if (
            ATX_HEADING_PATTERN.match(line)
            or THEMATIC_BREAK_PATTERN.match(line)
            or self._match_fence(line) is not None
        ):
            return True
        if not self._can_nest:
            return False
        if BLOCKQUOTE_PATTERN.match(line):
            return True
        match = LIST_ITEM_PATTERN.match(line)
        if match and match.group(4).strip():
            marker = match.group(2)
            return marker in ("-", "*", "+") or marker[:-1] == "1"
        return False

    # ------------------------------------------------------------------
    # Lists
    def _parse_list(self, lines: Sequence[str], index: int) -> Tuple[ListBlock, int]:
        first = LIST_ITEM_PATTERN.match(lines[index])
        assert first is not None
        marker = first.group(2)
        ordered = marker[-1] in ".)"
        kind = marker[-1]
        start = int(marker[:-1]) if ordered else 1

        items: List[ListItem] = []
        tight = True
        position = index
        while position < len(lines):
            line = lines[position]
            match = LIST_ITEM_PATTERN.match(line)
            if not match or match.group(2)[-1] != kind or THEMATIC_BREAK_PATTERN.match(line):
                break
            item_lines, position, trailing_blank = self._collect_list_item(lines, position, match)
            if self._has_inner_blank(item_lines):
                tight = False
            items.append(ListItem(children=tuple(self._parse_nested(item_lines))))

            if trailing_blank and position < len(lines):
                following = LIST_ITEM_PATTERN.match(lines[position])
                if following and following.group(2)[-1] == kind:
                    tight = False
        return ListBlock(ordered=ordered, items=tuple(items), start=start, tight=tight), position

    def _collect_list_item(
        self, lines: Sequence[str], index: int, match: "re.Match[str]"
    ) -> Tuple[List[str], int, bool]:
        indent = len(match.group(1))
        marker = match.group(2)
        spacing = match.group(3)
        first_content = match.group(4)
        if not first_content.strip():
            content_indent = indent + len(marker) + 1
            first_content = ""
        elif len(spacing) > CODE_INDENT:
            # an indented code block starts one space after the marker
            content_indent = indent + len(marker) + 1
            first_content = " " * (len(spacing) - 1) + first_content
        else:
            content_indent = indent + len(marker) + len(spacing)

        item_lines = [first_content]
        position = index + 1
        while position < len(lines):
            line = lines[position]
            if not line.strip():
                item_lines.append("")
                position += 1
                continue
            if _indent(line) >= content_indent:
                item_lines.append(line[content_indent:])
                position += 1
                continue
            previous = item_lines[-1]
            if previous.strip() and not self._interrupts_paragraph(line) and not LIST_ITEM_PATTERN.match(line):
                item_lines.append(line.strip())
                position += 1
                continue
            break

        trailing_blank = False
        while item_lines and not item_lines[-1].strip():
            item_lines.pop()
            trailing_blank = True
        return item_lines, position, trailing_blank

    def _has_inner_blank(self, item_lines: Sequence[str]) -> bool:
        fence: Optional[Fence] = None
        for position, line in enumerate(item_lines):
            if fence is not None:
                if self._closes_fence(line, fence):
                    fence = None
                continue
            opened = self._match_fence(line)
            if opened is not None:
                fence = opened
                continue
            if line.strip() or position + 1 >= len(item_lines):
                continue
            following = item_lines[position + 1]
            if following.strip() and _indent(following) == 0:
                return True
        return False

    # ------------------------------------------------------------------
    # Tables
    def _starts_table(self, lines: Sequence[str], index: int) -> bool:
        if index + 1 >= len(lines):
            return False
        header, delimiter = lines[index], lines[index + 1]
        if "|" not in header or not TABLE_DELIMITER_PATTERN.match(delimiter):
            return False
        return len(_split_row(header)) == len(_split_row(delimiter))

    def _parse_table(self, lines: Sequence[str], index: int) -> Tuple[Table, int]:
        header_cells = _split_row(lines[index])
        alignments = tuple(_alignment(cell.strip()) for cell in _split_row(lines[index + 1]))
        column_count = len(header_cells)

        header = TableRow(cells=self._make_cells(header_cells, column_count), header=True)
        rows: List[TableRow] = []
        position = index + 2
        while position < len(lines):
            line = lines[position]
            if not line.strip() or self._interrupts_paragraph(line):
                break
            rows.append(TableRow(cells=self._make_cells(_split_row(line), column_count)))
            position += 1
        return Table(header=header, rows=tuple(rows), alignments=alignments), position

    def _make_cells(self, texts: Sequence[str], column_count: int) -> Tuple[TableCell, ...]:
        padded = list(texts[:column_count]) + [""] * max(0, column_count - len(texts))
        return tuple(TableCell(children=as_inline(self._inline.parse(text))) for text in padded)

    # ------------------------------------------------------------------
    # Paragraphs
    def _parse_paragraph(self, lines: Sequence[str], index: int) -> Tuple[List[Block], int]:
        collected = [lines[index].lstrip()]
        position = index + 1
        heading_level: Optional[int] = None
        while position < len(lines):
            line = lines[position]
            if not line.strip():
                break
            setext = SETEXT_PATTERN.match(line)
            if setext:
                heading_level = 1 if setext.group(1)[0] == "=" else 2
                position += 1
                break
            if self._interrupts_paragraph(line):
                break
            collected.append(line.lstrip())
            position += 1

        text = "\n".join(collected).rstrip()
        if heading_level is not None:
            return [Heading(level=heading_level, children=as_inline(self._inline.parse(text)))], position
        return self._split_images(self._inline.parse(text)), position

    def _split_images(self, items: Sequence[Union[Inline, InlineImage]]) -> List[Block]:
        """Lift images out of a paragraph, splitting the text around them."""
        blocks: List[Block] = []
        pending: List[Inline] = []
        for item in items:
            if isinstance(item, InlineImage):
                paragraph = _finish_paragraph(pending)
                if paragraph is not None:
                    blocks.append(paragraph)
                pending = []
                blocks.append(ImageBlock(src=item.src, alt=item.alt, title=item.title))
            else:
                pending.append(item)
        paragraph = _finish_paragraph(pending)
        if paragraph is not None:
            blocks.append(paragraph)
        return blocks


def _finish_paragraph(inlines: List[Inline]) -> Optional[Paragraph]:
    while inlines and isinstance(inlines[0], LineBreak):
        inlines = inlines[1:]
    while inlines and isinstance(inlines[-1], LineBreak):
        inlines = inlines[:-1]
    if inlines and isinstance(inlines[0], Text):
        inlines = [Text(inlines[0].text.lstrip())] + inlines[1:]
    if inlines and isinstance(inlines[-1], Text):
        inlines = inlines[:-1] + [Text(inlines[-1].text.rstrip())]
    inlines = [node for node in inlines if not (isinstance(node, Text) and not node.text)]
    if not inlines:
        return None
    return Paragraph(children=tuple(inlines))
