"""Break styled blocks into lines and flow them onto fixed-size pages."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from reportlab.lib.pagesizes import letter

from mdrender.document import (
    BlockQuote,
    CodeBlock,
    CodeSpan,
    Heading,
    ImageBlock,
    LineBreak,
    Link,
    ListBlock,
    Paragraph,
    Table,
    Text,
    ThematicBreak,
)
from mdrender.fonts import FontFace, FontMetrics
from mdrender.images import DecodedImage
from mdrender.logger import get_logger
from mdrender.styles import TABLE_CELL_PADDING, ComputedStyle, StyledNode, StyledTree, nested_indent
from mdrender.theme import Color

LOGGER = get_logger(__name__)

LETTER: Tuple[float, float] = (float(letter[0]), float(letter[1]))
DEFAULT_MARGIN_PT = 72.0  # 1 inch
CODE_BLOCK_PADDING = 8.0
RULE_THICKNESS = 1.0
BORDER_THICKNESS = 0.5
HEADING_RULE_GAP = 3.0
QUOTE_BAR_WIDTH = 3.0
LIST_MARKER_GAP = 6.0
BULLET = "•"
EPSILON = 1e-6
TOKEN_PATTERN = re.compile(r"\S+\s*|\s+")

BACKGROUND = 0
CONTENT = 1


@dataclass(frozen=True)
class Margins:
    top: float
    right: float
    bottom: float
    left: float

    @classmethod
    def uniform(cls, value: float) -> "Margins":
        return cls(value, value, value, value)


@dataclass(frozen=True)
class TextFragment:
    """One styled run of text on one line.

    ``top`` and ``height`` describe the line box shared by every fragment of
    the line; ``baseline`` is where glyphs sit, measured from the page top.
    """

    x: float
    top: float
    width: float
    height: float
    baseline: float
    text: str
    font: FontFace
    font_size: float
    color: Color
    node_index: int
    link: Optional[str] = None
    z: int = CONTENT

    @property
    def bbox(self) -> Tuple[float, float, float, float]:
        return (self.x, self.top, self.x + self.width, self.top + self.height)


@dataclass(frozen=True)
class ImageFragment:
    x: float
    top: float
    width: float
    height: float
    image: DecodedImage
    node_index: int
    node_path: Tuple[int, ...] = ()
    z: int = CONTENT

    @property
    def bbox(self) -> Tuple[float, float, float, float]:
        return (self.x, self.top, self.x + self.width, self.top + self.height)


@dataclass(frozen=True)
class RuleFragment:
    """A filled rectangle: rules, borders, quote bars and backgrounds."""

    x: float
    top: float
    width: float
    height: float
    color: Color
    node_index: int
    z: int = BACKGROUND

    @property
    def bbox(self) -> Tuple[float, float, float, float]:
        return (self.x, self.top, self.x + self.width, self.top + self.height)


Fragment = Union[TextFragment, ImageFragment, RuleFragment]


@dataclass(frozen=True)
class Page:
    number: int
    width: float
    height: float
    margins: Margins
    fragments: Tuple[Fragment, ...] = ()
    background: Optional[Color] = None

    @property
    def content_box(self) -> Tuple[float, float, float, float]:
        return (
            self.margins.left,
            self.margins.top,
            self.width - self.margins.right,
            self.height - self.margins.bottom,
        )

    def text_fragments(self) -> List[TextFragment]:
        return [fragment for fragment in self.fragments if isinstance(fragment, TextFragment)]


@dataclass
class LayoutContext:
    """Mutable flow state: the page being filled and the forward cursor."""

    page_width: float
    page_height: float
    margins: Margins
    drafts: List[List[Fragment]] = field(default_factory=list)
    cursor_y: float = 0.0
    pending_margin: float = 0.0
    at_page_top: bool = True

    @property
    def content_left(self) -> float:
        return self.margins.left

    @property
    def content_top(self) -> float:
        return self.margins.top

    @property
    def content_bottom(self) -> float:
        return self.page_height - self.margins.bottom

    @property
    def available_width(self) -> float:
        return self.page_width - self.margins.left - self.margins.right

    @property
    def content_height(self) -> float:
        return self.content_bottom - self.content_top

    @property
    def page_index(self) -> int:
        return len(self.drafts) - 1

    def new_page(self) -> None:
        self.drafts.append([])
        self.cursor_y = self.content_top
        self.pending_margin = 0.0
        self.at_page_top = True

    def add_margin(self, value: float) -> None:
        # adjacent margins collapse: the larger one wins
        self.pending_margin = max(self.pending_margin, value)

    def fits(self, height: float) -> bool:
        margin = 0.0 if self.at_page_top else self.pending_margin
        return self.cursor_y + margin + height <= self.content_bottom + EPSILON

    def ensure(self, height: float) -> None:
        """Start a new page unless ``height`` fits or the page is still empty."""
        if not self.at_page_top and not self.fits(height):
            self.new_page()

    def apply_margin(self) -> None:
        if not self.at_page_top:
            self.cursor_y += self.pending_margin
        self.pending_margin = 0.0

    def place(self, fragment: Fragment) -> None:
        self.drafts[-1].append(fragment)
        self.at_page_top = False

    def mark(self) -> Tuple[int, int]:
        return self.page_index, len(self.drafts[-1])

    def placed_since(self, mark: Tuple[int, int]) -> List[Tuple[int, List[Fragment]]]:
        page_index, offset = mark
        result = []
        for index in range(page_index, len(self.drafts)):
            start = offset if index == page_index else 0
            result.append((index, self.drafts[index][start:]))
        return result


@dataclass
class _Piece:
    node_index: int
    text: str
    style: ComputedStyle
    link: Optional[str]
    width: float
    trailing: float


Line = List[_Piece]
Word = List[_Piece]


class LayoutEngine:
    def __init__(
        self,
        styled: StyledTree,
        page_size: Tuple[float, float] = LETTER,
        margins: Optional[Margins] = None,
        fonts: Optional[FontMetrics] = None,
    ) -> None:
        self.tree = styled
        self.page_size = (float(page_size[0]), float(page_size[1]))
        self.margins = margins or Margins.uniform(DEFAULT_MARGIN_PT)
        self.fonts = fonts or FontMetrics()
        if min(self.margins.top, self.margins.right, self.margins.bottom, self.margins.left) < 0:
            raise ValueError(f"Margins {self.margins} must not be negative")
        width, height = self.page_size
        if width - self.margins.left - self.margins.right <= 0 or height - self.margins.top - self.margins.bottom <= 0:
            raise ValueError(f"Margins {self.margins} leave no content area on a {width}x{height} page")

    # ------------------------------------------------------------------
    # Public API
    def run(self) -> List[Page]:
        context = LayoutContext(page_width=self.page_size[0], page_height=self.page_size[1], margins=self.margins)
        context.new_page()
        root = self.tree.root
        for child in self.tree.children(root):
            self._layout_block(child, context, context.content_left, context.available_width)

        pages = []
        for number, draft in enumerate(context.drafts, start=1):
            ordered = sorted(draft, key=lambda fragment: (fragment.z, fragment.top))
            pages.append(
                Page(
                    number=number,
                    width=self.page_size[0],
                    height=self.page_size[1],
                    margins=self.margins,
                    fragments=tuple(ordered),
                    background=self.tree.page_background,
                )
            )
        LOGGER.debug(
            "Laid out %d page(s) with %d fragment(s)",
            len(pages),
            sum(len(page.fragments) for page in pages),
        )
        return pages

    # ------------------------------------------------------------------
    # Blocks
    def _layout_block(
        self,
        styled: StyledNode,
        context: LayoutContext,
        x: float,
        width: float,
        split_lines: bool = False,
    ) -> None:
        node = styled.node
        if isinstance(node, (Paragraph, Heading)):
            self._layout_text_block(styled, context, x, width, split_lines)
        elif isinstance(node, ListBlock):
            self._layout_list(styled, context, x, width)
        elif isinstance(node, BlockQuote):
            self._layout_quote(styled, context, x, width, split_lines)
        elif isinstance(node, CodeBlock):
            self._layout_code(styled, context, x, width)
        elif isinstance(node, Table):
            self._layout_table(styled, context, x, width)
        elif isinstance(node, ThematicBreak):
            self._layout_rule(styled, context, x, width)
        elif isinstance(node, ImageBlock):
            self._layout_image(styled, context, x, width)
        else:
            raise TypeError(f"Unexpected block {type(node).__name__} at {styled.path}")

    def _layout_text_block(
        self,
        styled: StyledNode,
        context: LayoutContext,
        x: float,
        width: float,
        split_lines: bool,
    ) -> None:
        style = styled.style
        context.add_margin(style.margin_top)
        lines = self._break_lines(self._collect_words(styled), width)
        self._place_lines(lines, style, context, x, width, split_lines)

        if isinstance(styled.node, Heading) and style.border_color is not None:
            rule_height = HEADING_RULE_GAP + BORDER_THICKNESS
            if context.cursor_y + rule_height <= context.content_bottom + EPSILON:
                context.place(
                    RuleFragment(
                        x=x,
                        top=context.cursor_y + HEADING_RULE_GAP,
                        width=width,
                        height=BORDER_THICKNESS,
                        color=style.border_color,
                        node_index=styled.index,
                    )
                )
                context.cursor_y += rule_height
        context.add_margin(style.margin_bottom)

    def _place_lines(
        self,
        lines: Sequence[Line],
        style: ComputedStyle,
        context: LayoutContext,
        x: float,
        width: float,
        split_lines: bool,
        align: Optional[str] = None,
    ) -> None:
        metrics = [self._line_metrics(line, style) for line in lines]
        total = sum(height for height, _ in metrics)
        splittable = split_lines or total > context.content_height
        if not splittable:
            context.ensure(total)
        for line, (height, baseline) in zip(lines, metrics):
            if splittable:
                context.ensure(height)
            context.apply_margin()
            self._place_line(line, context, x, context.cursor_y, height, baseline, width, align)
            context.cursor_y += height
            context.at_page_top = False

    def _layout_list(self, styled: StyledNode, context: LayoutContext, x: float, width: float) -> None:
        style = styled.style
        node = styled.node
        assert isinstance(node, ListBlock)
        context.add_margin(style.margin_top)
        indent = nested_indent(style.indent, width)
        item_x = x + indent
        item_width = width - indent
        for number, item in enumerate(self.tree.children(styled), start=node.start):
            marker = f"{number}." if node.ordered else BULLET
            self._layout_list_item(item, context, item_x, item_width, marker)
        context.add_margin(style.margin_bottom)

    def _layout_list_item(
        self,
        item: StyledNode,
        context: LayoutContext,
        x: float,
        width: float,
        marker: str,
    ) -> None:
        style = item.style
        context.add_margin(style.margin_top)
        mark = context.mark()
        for child in self.tree.children(item):
            self._layout_block(child, context, x, width, split_lines=True)

        marker_width = self.fonts.string_width(style.font, marker, style.font_size)
        marker_x = max(x - LIST_MARKER_GAP - marker_width, context.content_left)
        anchor = self._first_text(context, mark)
        if anchor is None:
            # empty item (or no text): the marker occupies a line of its own
            height, baseline = self._line_metrics([], style)
            context.ensure(height)
            context.apply_margin()
            top = context.cursor_y
            context.cursor_y += height
            page_index, position = context.page_index, len(context.drafts[-1])
        else:
            page_index, position, first = anchor
            top, height, baseline = first.top, first.height, first.baseline - first.top

        fragment = TextFragment(
            x=marker_x,
            top=top,
            width=marker_width,
            height=height,
            baseline=top + baseline,
            text=marker,
            font=style.font,
            font_size=style.font_size,
            color=style.color,
            node_index=item.index,
        )
        context.drafts[page_index].insert(position, fragment)
        context.at_page_top = False
        context.add_margin(style.margin_bottom)

    @staticmethod
    def _first_text(context: LayoutContext, mark: Tuple[int, int]) -> Optional[Tuple[int, int, TextFragment]]:
        page_index, offset = mark
        for index, fragments in context.placed_since(mark):
            start = offset if index == page_index else 0
            for position, fragment in enumerate(fragments):
                if isinstance(fragment, TextFragment):
                    return index, start + position, fragment
        return None

    def _layout_quote(
        self,
        styled: StyledNode,
        context: LayoutContext,
        x: float,
        width: float,
        split_lines: bool,
    ) -> None:
        style = styled.style
        context.add_margin(style.margin_top)
        mark = context.mark()
        indent = nested_indent(style.indent, width)
        inner_x = x + indent
        inner_width = width - indent
        for child in self.tree.children(styled):
            self._layout_block(child, context, inner_x, inner_width, split_lines)

        color = style.border_color or style.color
        for page_index, fragments in context.placed_since(mark):
            if not fragments:
                continue
            top = min(fragment.top for fragment in fragments)
            bottom = min(max(fragment.top + fragment.height for fragment in fragments), context.content_bottom)
            context.drafts[page_index].append(
                RuleFragment(
                    x=x,
                    top=top,
                    width=QUOTE_BAR_WIDTH,
                    height=max(bottom - top, 0.0),
                    color=color,
                    node_index=styled.index,
                )
            )
        context.add_margin(style.margin_bottom)

    def _layout_code(self, styled: StyledNode, context: LayoutContext, x: float, width: float) -> None:
        style = styled.style
        node = styled.node
        assert isinstance(node, CodeBlock)
        context.add_margin(style.margin_top)

        inner_width = max(width - 2 * CODE_BLOCK_PADDING, style.font_size)
        lines: List[str] = []
        for raw_line in node.text.split("\n"):
            lines.extend(self._wrap_code_line(raw_line, style.font, style.font_size, inner_width))

        line_height, baseline = self._line_metrics([], style)
        total = len(lines) * line_height + 2 * CODE_BLOCK_PADDING
        if total <= context.content_height:
            context.ensure(total)
        else:
            context.ensure(line_height + CODE_BLOCK_PADDING)
        context.apply_margin()

        segment_top = context.cursor_y
        context.cursor_y += CODE_BLOCK_PADDING
        context.at_page_top = False
        for text in lines:
            if context.cursor_y + line_height > context.content_bottom + EPSILON:
                self._code_background(styled, context, x, width, segment_top)
                context.new_page()
                segment_top = context.cursor_y
                context.cursor_y += CODE_BLOCK_PADDING
                context.at_page_top = False
            if text:
                context.place(
                    TextFragment(
                        x=x + CODE_BLOCK_PADDING,
                        top=context.cursor_y,
                        width=self.fonts.string_width(style.font, text, style.font_size),
                        height=line_height,
                        baseline=context.cursor_y + baseline,
                        text=text,
                        font=style.font,
                        font_size=style.font_size,
                        color=style.color,
                        node_index=styled.index,
                    )
                )
            context.cursor_y += line_height
        context.cursor_y = min(context.cursor_y + CODE_BLOCK_PADDING, context.content_bottom)
        self._code_background(styled, context, x, width, segment_top)
        context.add_margin(style.margin_bottom)

    @staticmethod
    def _code_background(
        styled: StyledNode, context: LayoutContext, x: float, width: float, segment_top: float
    ) -> None:
        color = styled.style.background_color
        if color is None:
            return
        bottom = min(context.cursor_y, context.content_bottom)
        context.drafts[-1].append(
            RuleFragment(
                x=x,
                top=segment_top,
                width=width,
                height=max(bottom - segment_top, 0.0),
                color=color,
                node_index=styled.index,
            )
        )

    def _wrap_code_line(self, text: str, font: FontFace, size: float, width: float) -> List[str]:
        if not text or self.fonts.string_width(font, text, size) <= width:
            return [text]
        pieces: List[str] = []
        current = ""
        current_width = 0.0
        for char in text:
            char_width = self.fonts.string_width(font, char, size)
            if current and current_width + char_width > width + EPSILON:
                pieces.append(current)
                current, current_width = "", 0.0
            current += char
            current_width += char_width
        pieces.append(current)
        return pieces

    def _layout_table(self, styled: StyledNode, context: LayoutContext, x: float, width: float) -> None:
        style = styled.style
        node = styled.node
        assert isinstance(node, Table)
        context.add_margin(style.margin_top)
        widths = list(styled.column_widths)
        table_width = sum(widths)

        for row in self.tree.children(styled):
            cells = self.tree.children(row)[: len(widths)]
            laid_out = []
            row_height = 0.0
            for column, cell in enumerate(cells):
                inner = max(widths[column] - 2 * TABLE_CELL_PADDING, 1.0)
                lines = self._break_lines(self._collect_words(cell), inner)
                metrics = [self._line_metrics(line, cell.style) for line in lines]
                laid_out.append((cell, lines, metrics))
                row_height = max(row_height, sum(height for height, _ in metrics))
            row_height += 2 * TABLE_CELL_PADDING

            if row_height > context.content_height:
                # taller than any page: force it onto a fresh page and let it overflow
                if not context.at_page_top:
                    context.new_page()
            else:
                context.ensure(row_height)
            context.apply_margin()
            top = context.cursor_y

            if row.style.background_color is not None:
                context.place(
                    RuleFragment(
                        x=x,
                        top=top,
                        width=table_width,
                        height=row_height,
                        color=row.style.background_color,
                        node_index=row.index,
                    )
                )

            cell_x = x
            for column, (cell, lines, metrics) in enumerate(laid_out):
                line_top = top + TABLE_CELL_PADDING
                align = node.alignments[column] if column < len(node.alignments) else None
                for line, (height, baseline) in zip(lines, metrics):
                    self._place_line(
                        line,
                        context,
                        cell_x + TABLE_CELL_PADDING,
                        line_top,
                        height,
                        baseline,
                        widths[column] - 2 * TABLE_CELL_PADDING,
                        align,
                    )
                    line_top += height
                cell_x += widths[column]

            if style.border_color is not None:
                self._table_grid(styled, context, x, top, widths, row_height)
            context.cursor_y = top + row_height
            context.at_page_top = False
        context.add_margin(style.margin_bottom)

    @staticmethod
    def _table_grid(
        styled: StyledNode,
        context: LayoutContext,
        x: float,
        top: float,
        widths: Sequence[float],
        row_height: float,
    ) -> None:
        color = styled.style.border_color
        assert color is not None
        table_width = sum(widths)
        for line_top in (top, top + row_height - BORDER_THICKNESS):
            context.place(RuleFragment(x, line_top, table_width, BORDER_THICKNESS, color, styled.index))
        boundary = x
        for column_width in [0.0] + list(widths):
            boundary += column_width
            line_x = min(boundary, x + table_width - BORDER_THICKNESS)
            context.place(RuleFragment(line_x, top, BORDER_THICKNESS, row_height, color, styled.index))

    def _layout_rule(self, styled: StyledNode, context: LayoutContext, x: float, width: float) -> None:
        style = styled.style
        context.add_margin(style.margin_top)
        context.ensure(RULE_THICKNESS)
        context.apply_margin()
        context.place(
            RuleFragment(
                x=x,
                top=context.cursor_y,
                width=width,
                height=RULE_THICKNESS,
                color=style.border_color or style.color,
                node_index=styled.index,
            )
        )
        context.cursor_y += RULE_THICKNESS
        context.add_margin(style.margin_bottom)

    def _layout_image(self, styled: StyledNode, context: LayoutContext, x: float, width: float) -> None:
        style = styled.style
        node = styled.node
        assert isinstance(node, ImageBlock)
        context.add_margin(style.margin_top)

        if styled.image is None:
            alt = node.alt or node.src
            words = self._words_from_tokens(
                [self._piece(styled.index, token, style, None) for token in TOKEN_PATTERN.findall(alt)]
            )
            self._place_lines(self._break_lines(words, width), style, context, x, width, False)
            context.add_margin(style.margin_bottom)
            return

        image_width, image_height = styled.image.size_in_points
        if image_width > width:
            image_height *= width / image_width
            image_width = width
        if image_height > context.content_height:
            image_width *= context.content_height / image_height
            image_height = context.content_height

        context.ensure(image_height)
        context.apply_margin()
        context.place(
            ImageFragment(
                x=x,
                top=context.cursor_y,
                width=image_width,
                height=image_height,
                image=styled.image,
                node_index=styled.index,
                node_path=styled.path,
            )
        )
        context.cursor_y += image_height
        context.add_margin(style.margin_bottom)

    # ------------------------------------------------------------------
    # Line breaking
    def _piece(self, node_index: int, text: str, style: ComputedStyle, link: Optional[str]) -> _Piece:
        width = self.fonts.string_width(style.font, text, style.font_size)
        stripped = text.rstrip()
        trailing = width - self.fonts.string_width(style.font, stripped, style.font_size) if stripped != text else 0.0
        return _Piece(node_index, text, style, link, width, trailing)

    def _collect_pieces(self, styled: StyledNode, link: Optional[str], out: List[Optional[_Piece]]) -> None:
        for child in self.tree.children(styled):
            node = child.node
            if isinstance(node, (Text, CodeSpan)):
                for token in TOKEN_PATTERN.findall(node.text):
                    out.append(self._piece(child.index, token, child.style, link))
            elif isinstance(node, LineBreak):
                out.append(None)
            elif isinstance(node, Link):
                self._collect_pieces(child, node.url, out)
            else:
                self._collect_pieces(child, link, out)

    def _collect_words(self, styled: StyledNode) -> List[Optional[Word]]:
        pieces: List[Optional[_Piece]] = []
        self._collect_pieces(styled, None, pieces)
        return self._words_from_tokens(pieces)

    @staticmethod
    def _words_from_tokens(pieces: Sequence[Optional[_Piece]]) -> List[Optional[Word]]:
        """Glue pieces into words; a word ends where its text ends in whitespace.

        ``None`` entries are hard line breaks and are kept as separators.
        """
        words: List[Optional[Word]] = []
        current: Word = []
        for piece in pieces:
            if piece is None:
                if current:
                    words.append(current)
                    current = []
                words.append(None)
                continue
            if piece.text.isspace() and not current and words and words[-1] is not None:
                # whitespace starting a new leaf belongs to the previous word
                words[-1].append(piece)
                continue
            current.append(piece)
            if piece.text[-1].isspace():
                words.append(current)
                current = []
        if current:
            words.append(current)
        return words

    @staticmethod
    def _break_lines(words: Sequence[Optional[Word]], width: float) -> List[Line]:
        lines: List[Line] = []
        line: Line = []
        line_width = 0.0
        for word in words:
            if word is None:
                lines.append(line)
                line, line_width = [], 0.0
                continue
            word_width = sum(piece.width for piece in word)
            visible = word_width - word[-1].trailing
            if line and line_width + visible > width + EPSILON:
                lines.append(line)
                line, line_width = [], 0.0
            line.extend(word)
            line_width += word_width
        if line:
            lines.append(line)
        return lines

    def _line_metrics(self, line: Line, style: ComputedStyle) -> Tuple[float, float]:
        """Return (line height, baseline offset from the line top)."""
        faces = [(piece.style.font, piece.style.font_size) for piece in line] or [(style.font, style.font_size)]
        ascent = descent = 0.0
        largest = 0.0
        for face, size in faces:
            face_ascent, face_descent = self.fonts.ascent_descent(face, size)
            ascent = max(ascent, face_ascent)
            descent = max(descent, face_descent)
            largest = max(largest, size)
        content = ascent + descent
        height = max(content, largest * style.line_height)
        return height, (height - content) / 2 + ascent

    def _place_line(
        self,
        line: Line,
        context: LayoutContext,
        x: float,
        top: float,
        height: float,
        baseline: float,
        width: float,
        align: Optional[str],
    ) -> None:
        runs: List[_Piece] = []
        for piece in line:
            previous = runs[-1] if runs else None
            if previous is not None and previous.node_index == piece.node_index:
                trailing = previous.trailing + piece.width if piece.text.isspace() else piece.trailing
                runs[-1] = _Piece(
                    previous.node_index,
                    previous.text + piece.text,
                    previous.style,
                    previous.link,
                    previous.width + piece.width,
                    trailing,
                )
            else:
                runs.append(piece)
        if not runs:
            return

        visible = sum(run.width for run in runs) - runs[-1].trailing
        offset = 0.0
        if align == "right":
            offset = max(width - visible, 0.0)
        elif align == "center":
            offset = max((width - visible) / 2, 0.0)

        cursor_x = x + offset
        for position, run in enumerate(runs):
            run_width = run.width - (run.trailing if position == len(runs) - 1 else 0.0)
            context.place(
                TextFragment(
                    x=cursor_x,
                    top=top,
                    width=max(run_width, 0.0),
                    height=height,
                    baseline=top + baseline,
                    text=run.text,
                    font=run.style.font,
                    font_size=run.style.font_size,
                    color=run.style.color,
                    node_index=run.node_index,
                    link=run.link,
                )
            )
            cursor_x += run.width


def layout(
    styled: StyledTree,
    page_size: Tuple[float, float] = LETTER,
    margins: Optional[Margins] = None,
    *,
    fonts: Optional[FontMetrics] = None,
) -> List[Page]:
    """Flow ``styled`` onto pages of ``page_size`` points (default US Letter, 1 inch margins)."""
    return LayoutEngine(styled, page_size=page_size, margins=margins, fonts=fonts).run()
