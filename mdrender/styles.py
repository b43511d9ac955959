"""Style resolution: document tree + theme -> styled arena tree.

The styled tree mirrors the document tree node for node, but lives in a flat
tuple indexed by integers; parent and child links are indexes into that
tuple. Styles cascade top-down. Table column widths are computed bottom-up
once all cells of a table have their fonts.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from mdrender.document import (
    CodeBlock,
    CodeSpan,
    Document,
    Emphasis,
    Heading,
    ImageBlock,
    LineBreak,
    ListBlock,
    ListItem,
    Node,
    Paragraph,
    Strong,
    Table,
    TableRow,
    Text,
    iter_children,
    node_kind,
)
from mdrender.errors import StyleResolutionError
from mdrender.fonts import FontFace, FontMetrics
from mdrender.images import DecodedImage, ImageLoader
from mdrender.logger import get_logger
from mdrender.theme import Color, StyleRule, Stylesheet, is_bold, resolve_font_size, split_families

LOGGER = get_logger(__name__)

BASE_FONT_FAMILY = ("Helvetica",)
MONOSPACE_FAMILY = ("Courier",)
BASE_FONT_SIZE = 11.0
BASE_LINE_HEIGHT = 1.4
BASE_COLOR: Color = (0.0, 0.0, 0.0)
# letter width minus two 1-inch margins
DEFAULT_CONTENT_WIDTH = 612.0 - 2 * 72.0
TABLE_CELL_PADDING = 4.0
INDENTING_KINDS = ("list", "block_quote")


@dataclass(frozen=True)
class ComputedStyle:
    font_family: Tuple[str, ...]
    font: FontFace
    font_size: float
    bold: bool
    italic: bool
    color: Color
    line_height: float
    margin_top: float = 0.0
    margin_bottom: float = 0.0
    background_color: Optional[Color] = None
    border_color: Optional[Color] = None
    indent: float = 0.0


@dataclass(frozen=True)
class StyledNode:
    index: int
    parent: Optional[int]
    children: Tuple[int, ...]
    node: Node
    kind: str
    path: Tuple[int, ...]
    style: ComputedStyle
    available_width: float
    column_widths: Tuple[float, ...] = ()
    image: Optional[DecodedImage] = None


@dataclass(frozen=True)
class StyledTree:
    nodes: Tuple[StyledNode, ...]
    page_background: Optional[Color] = None

    @property
    def root(self) -> StyledNode:
        return self.nodes[0]

    def __len__(self) -> int:
        return len(self.nodes)

    def __getitem__(self, index: int) -> StyledNode:
        return self.nodes[index]

    def children(self, styled: StyledNode) -> Tuple[StyledNode, ...]:
        return tuple(self.nodes[index] for index in styled.children)

    def parent(self, styled: StyledNode) -> Optional[StyledNode]:
        return self.nodes[styled.parent] if styled.parent is not None else None

    def descendants(self, styled: StyledNode) -> Iterator[StyledNode]:
        for child in self.children(styled):
            yield child
            yield from self.descendants(child)


def nested_indent(indent: float, width: float) -> float:
    """Indent for a nested container, never more than half the width it is given."""
    return min(indent, width / 2)


def distribute_column_widths(natural: Sequence[float], available: float) -> List[float]:
    """Scale column widths down proportionally so they sum exactly to ``available``.

    Widths that already fit are returned unchanged.
    """
    widths = [float(width) for width in natural]
    total = sum(widths)
    if not widths or total <= available or total <= 0:
        return widths
    scale = available / total
    widths = [width * scale for width in widths]
    # absorb rounding in the last column so the sum is exact
    widths[-1] = available - sum(widths[:-1])
    return widths


class StyleResolver:
    def __init__(
        self,
        theme: Stylesheet,
        fonts: Optional[FontMetrics] = None,
        images: Optional[ImageLoader] = None,
        content_width: float = DEFAULT_CONTENT_WIDTH,
    ) -> None:
        self.theme = theme
        self.fonts = fonts or FontMetrics()
        self.images = images
        self.content_width = content_width
        self._nodes: List[Optional[StyledNode]] = []
        self._font_cache: Dict[Tuple[Tuple[str, ...], bool, bool], Optional[FontFace]] = {}

    def resolve(self, tree: Document) -> StyledTree:
        self._nodes = []
        self._visit(tree, None, None, (), self.content_width, False)
        nodes = tuple(node for node in self._nodes if node is not None)
        LOGGER.debug("Resolved styles for %d nodes with theme '%s'", len(nodes), self.theme.name)
        return StyledTree(nodes=nodes, page_background=self.theme.page_background)

    def _visit(
        self,
        node: Node,
        parent_index: Optional[int],
        parent_style: Optional[ComputedStyle],
        path: Tuple[int, ...],
        available: float,
        tight: bool,
    ) -> int:
        index = len(self._nodes)
        self._nodes.append(None)
        kind = node_kind(node)
        style = self._compute_style(node, kind, parent_style, path, tight)

        child_available = available
        if kind in INDENTING_KINDS:
            child_available = available - nested_indent(style.indent, available)

        child_indexes = []
        for position, child in enumerate(iter_children(node)):
            if isinstance(node, ListBlock):
                child_tight = node.tight
            elif isinstance(node, ListItem):
                child_tight = tight and isinstance(child, Paragraph)
            else:
                child_tight = False
            child_indexes.append(
                self._visit(child, index, style, path + (position,), child_available, child_tight)
            )

        column_widths: Tuple[float, ...] = ()
        image: Optional[DecodedImage] = None
        if isinstance(node, Table):
            column_widths = self._column_widths(node, child_indexes, available)
        elif isinstance(node, ImageBlock) and self.images is not None:
            image = self.images.try_load(node.src)

        self._nodes[index] = StyledNode(
            index=index,
            parent=parent_index,
            children=tuple(child_indexes),
            node=node,
            kind=kind,
            path=path,
            style=style,
            available_width=available,
            column_widths=column_widths,
            image=image,
        )
        return index

    def _rule(self, node: Node, kind: str) -> StyleRule:
        rule = self.theme.rule_for(kind)
        if isinstance(node, Heading):
            rule = rule.merged(self.theme.rule_for(f"heading{node.level}"))
        elif isinstance(node, TableRow) and node.header:
            rule = rule.merged(self.theme.rule_for("table_header"))
        return rule

    def _compute_style(
        self,
        node: Node,
        kind: str,
        parent: Optional[ComputedStyle],
        path: Tuple[int, ...],
        tight: bool,
    ) -> ComputedStyle:
        rule = self._rule(node, kind)
        families = parent.font_family if parent else BASE_FONT_FAMILY
        size = parent.font_size if parent else BASE_FONT_SIZE
        bold = parent.bold if parent else False
        italic = parent.italic if parent else False
        color = parent.color if parent else BASE_COLOR
        line_height = parent.line_height if parent else BASE_LINE_HEIGHT

        if rule.font_family is not None:
            families = split_families(rule.font_family)
        elif isinstance(node, (CodeSpan, CodeBlock)):
            families = MONOSPACE_FAMILY
        if rule.font_size is not None:
            size = resolve_font_size(rule.font_size, size)
        if rule.font_weight is not None:
            bold = is_bold(rule.font_weight)
        if rule.font_style is not None:
            italic = rule.font_style == "italic"
        if rule.color is not None:
            color = rule.color
        if rule.line_height is not None:
            line_height = rule.line_height

        if isinstance(node, Strong):
            bold = True
        elif isinstance(node, Emphasis):
            italic = True

        font = self._font(families, bold, italic)
        if font is None:
            raise StyleResolutionError(families[0] if families else "", node_path=path)

        margin_top = rule.margin_top or 0.0
        margin_bottom = rule.margin_bottom or 0.0
        if tight and isinstance(node, Paragraph):
            margin_top = margin_bottom = 0.0

        return ComputedStyle(
            font_family=families,
            font=font,
            font_size=size,
            bold=bold,
            italic=italic,
            color=color,
            line_height=line_height,
            margin_top=margin_top,
            margin_bottom=margin_bottom,
            background_color=rule.background_color,
            border_color=rule.border_color,
            indent=rule.indent or 0.0,
        )

    def _font(self, families: Tuple[str, ...], bold: bool, italic: bool) -> Optional[FontFace]:
        key = (families, bold, italic)
        if key not in self._font_cache:
            self._font_cache[key] = self.fonts.resolve(families, bold, italic)
        return self._font_cache[key]

    # ------------------------------------------------------------------
    # Intrinsic sizing
    def _column_widths(self, table: Table, row_indexes: Sequence[int], available: float) -> Tuple[float, ...]:
        natural = [2 * TABLE_CELL_PADDING] * table.column_count
        for row_index in row_indexes:
            row = self._nodes[row_index]
            assert row is not None
            for column, cell_index in enumerate(row.children[: table.column_count]):
                width = self._single_line_width(cell_index) + 2 * TABLE_CELL_PADDING
                natural[column] = max(natural[column], width)
        return tuple(distribute_column_widths(natural, available))

    def _single_line_width(self, index: int) -> float:
        """Widest line of the inline content under ``index`` when unwrapped."""
        lines = [0.0]
        for styled in self._iter_leaves(index):
            if isinstance(styled.node, LineBreak):
                lines.append(0.0)
            elif isinstance(styled.node, (Text, CodeSpan)):
                lines[-1] += self.fonts.string_width(styled.style.font, styled.node.text, styled.style.font_size)
        return max(lines)

    def _iter_leaves(self, index: int) -> Iterator[StyledNode]:
        styled = self._nodes[index]
        assert styled is not None
        if not styled.children:
            yield styled
        for child in styled.children:
            yield from self._iter_leaves(child)


def resolve(
    tree: Document,
    theme: Stylesheet,
    *,
    fonts: Optional[FontMetrics] = None,
    images: Optional[ImageLoader] = None,
    content_width: float = DEFAULT_CONTENT_WIDTH,
) -> StyledTree:
    """Compute the styled tree for ``tree`` under ``theme``."""
    return StyleResolver(theme, fonts=fonts, images=images, content_width=content_width).resolve(tree)
