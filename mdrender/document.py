"""Immutable document tree produced by the markdown parser."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional, Tuple, Union


# ----------------------------------------------------------------------
# Inline spans


@dataclass(frozen=True)
class Text:
    """A run of literal text."""

    text: str


@dataclass(frozen=True)
class Emphasis:
    children: Tuple["Inline", ...]


@dataclass(frozen=True)
class Strong:
    children: Tuple["Inline", ...]


@dataclass(frozen=True)
class CodeSpan:
    text: str


@dataclass(frozen=True)
class Link:
    children: Tuple["Inline", ...]
    url: str
    title: Optional[str] = None


@dataclass(frozen=True)
class LineBreak:
    """Hard line break inside a paragraph."""


Inline = Union[Text, Emphasis, Strong, CodeSpan, Link, LineBreak]


# ----------------------------------------------------------------------
# Blocks


@dataclass(frozen=True)
class Heading:
    level: int
    children: Tuple[Inline, ...]


@dataclass(frozen=True)
class Paragraph:
    children: Tuple[Inline, ...]


@dataclass(frozen=True)
class ListItem:
    children: Tuple["Block", ...]


@dataclass(frozen=True)
class ListBlock:
    ordered: bool
    items: Tuple[ListItem, ...]
    start: int = 1
    tight: bool = True


@dataclass(frozen=True)
class CodeBlock:
    text: str
    info: str = ""


@dataclass(frozen=True)
class BlockQuote:
    children: Tuple["Block", ...]


@dataclass(frozen=True)
class TableCell:
    children: Tuple[Inline, ...]


@dataclass(frozen=True)
class TableRow:
    cells: Tuple[TableCell, ...]
    header: bool = False


@dataclass(frozen=True)
class Table:
    header: TableRow
    rows: Tuple[TableRow, ...]
    alignments: Tuple[Optional[str], ...]

    @property
    def column_count(self) -> int:
        return len(self.alignments)


@dataclass(frozen=True)
class ThematicBreak:
    """Horizontal rule between blocks."""


@dataclass(frozen=True)
class ImageBlock:
    src: str
    alt: str = ""
    title: Optional[str] = None


Block = Union[Heading, Paragraph, ListBlock, ListItem, CodeBlock, BlockQuote, Table, ThematicBreak, ImageBlock]


@dataclass(frozen=True)
class Document:
    """Root of the tree."""

    children: Tuple[Block, ...]


Node = Union[Document, Block, TableRow, TableCell, Inline]

INLINE_TYPES = (Text, Emphasis, Strong, CodeSpan, Link, LineBreak)
LEAF_TYPES = (Text, CodeSpan, LineBreak, CodeBlock, ThematicBreak, ImageBlock)

_KIND_NAMES = {
    Document: "document",
    Paragraph: "paragraph",
    ListBlock: "list",
    ListItem: "list_item",
    CodeBlock: "code_block",
    BlockQuote: "block_quote",
    Table: "table",
    TableRow: "table_row",
    TableCell: "table_cell",
    ThematicBreak: "thematic_break",
    ImageBlock: "image",
    Text: "text",
    Emphasis: "emphasis",
    Strong: "strong",
    CodeSpan: "code_span",
    Link: "link",
    LineBreak: "line_break",
}


def node_kind(node: Node) -> str:
    """Return the theme key describing ``node``."""
    if isinstance(node, Heading):
        return "heading"
    return _KIND_NAMES[type(node)]


def iter_children(node: Node) -> Tuple[Node, ...]:
    """Return the direct children of any tree node in document order."""
    if isinstance(node, ListBlock):
        return node.items
    if isinstance(node, Table):
        return (node.header,) + node.rows
    if isinstance(node, TableRow):
        return node.cells
    return getattr(node, "children", ())


def walk(node: Node) -> Iterator[Node]:
    """Yield ``node`` and all of its descendants depth-first."""
    yield node
    for child in iter_children(node):
        yield from walk(child)


def is_inline(node: Node) -> bool:
    return isinstance(node, INLINE_TYPES)


def plain_text(inlines: Tuple[Inline, ...]) -> str:
    """Concatenate the visible text of inline spans."""
    parts = []
    for node in inlines:
        if isinstance(node, (Text, CodeSpan)):
            parts.append(node.text)
        elif isinstance(node, LineBreak):
            parts.append("\n")
        else:
            parts.append(plain_text(node.children))
    return "".join(parts)
