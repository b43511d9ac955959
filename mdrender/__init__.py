"""Markdown to PDF rendering core.

parse -> resolve -> layout -> emit, with :func:`convert` running all four.
"""

from .document import Document
from .emitter import emit, write_pdf
from .errors import (
    ConversionError,
    MalformedInputError,
    ResourceEncodingError,
    StyleResolutionError,
    ThemeError,
)
from .fonts import FontMetrics
from .images import ImageLoader, decode_image
from .layout import LETTER, Margins, Page, layout
from .parser import parse
from .pipeline import PageGeometry, convert, convert_file
from .styles import StyledTree, distribute_column_widths, resolve
from .theme import DEFAULT_THEME, Stylesheet, load_theme

__all__ = [
    "ConversionError",
    "DEFAULT_THEME",
    "Document",
    "FontMetrics",
    "ImageLoader",
    "LETTER",
    "MalformedInputError",
    "Margins",
    "Page",
    "PageGeometry",
    "ResourceEncodingError",
    "StyleResolutionError",
    "StyledTree",
    "Stylesheet",
    "ThemeError",
    "convert",
    "convert_file",
    "decode_image",
    "distribute_column_widths",
    "emit",
    "layout",
    "load_theme",
    "parse",
    "resolve",
    "write_pdf",
]
