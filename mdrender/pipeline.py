from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, IO, Optional, Union

from mdrender.document import Document, Heading, plain_text
from mdrender.emitter import emit, write_bytes
from mdrender.fonts import FontMetrics
from mdrender.images import ImageLoader
from mdrender.layout import DEFAULT_MARGIN_PT, LETTER, Margins, layout
from mdrender.logger import get_logger
from mdrender.parser import parse
from mdrender.styles import resolve
from mdrender.theme import Stylesheet, load_theme

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class PageGeometry:
    width: float = LETTER[0]
    height: float = LETTER[1]
    margins: Margins = field(default_factory=lambda: Margins.uniform(DEFAULT_MARGIN_PT))

    @property
    def content_width(self) -> float:
        return self.width - self.margins.left - self.margins.right

    @property
    def size(self):
        return (self.width, self.height)


def document_title(document: Document) -> Optional[str]:
    for block in document.children:
        if isinstance(block, Heading):
            title = " ".join(plain_text(block.children).split())
            if title:
                return title
    return None


def convert(
    markdown: Union[str, bytes],
    *,
    theme: Union[str, Path, Stylesheet, None] = None,
    geometry: Optional[PageGeometry] = None,
    fonts: Optional[FontMetrics] = None,
    images: Optional[ImageLoader] = None,
    workers: int = 1,
    compress: bool = True,
    title: Optional[str] = None,
) -> bytes:
    """Markdown text (or UTF-8 bytes) to PDF bytes."""
    geometry = geometry or PageGeometry()
    stylesheet = load_theme(theme)
    fonts = fonts or FontMetrics()

    document = parse(markdown)
    styled = resolve(
        document,
        stylesheet,
        fonts=fonts,
        images=images,
        content_width=geometry.content_width,
    )
    pages = layout(styled, geometry.size, geometry.margins, fonts=fonts)
    if title is None:
        title = document_title(document)
    LOGGER.debug(
        "Converted %d block(s) into %d page(s) with theme '%s'",
        len(document.children),
        len(pages),
        stylesheet.name,
    )
    return emit(pages, title=title, compress=compress, workers=workers, fonts=fonts)


def convert_file(
    markdown_path: Union[str, Path],
    pdf_path: Union[str, Path, IO[bytes]],
    **options: Any,
) -> Union[Path, IO[bytes]]:
    """Convert one markdown file; images resolve relative to its directory."""
    markdown_path = Path(markdown_path)
    with markdown_path.open("rb") as handle:
        raw = handle.read()
    if options.get("images") is None:
        options["images"] = ImageLoader(base_dir=markdown_path.parent)
    data = convert(raw, **options)
    write_bytes(data, pdf_path)
    if hasattr(pdf_path, "write"):
        return pdf_path  # type: ignore[return-value]
    return Path(pdf_path)  # type: ignore[arg-type]
