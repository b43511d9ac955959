"""Exceptions raised by the conversion pipeline."""
from __future__ import annotations

from typing import Optional, Sequence, Tuple


def format_path(path: Optional[Sequence[int]]) -> str:
    """Render a document tree path such as ``(2, 0, 1)`` as ``/2/0/1``."""
    if path is None:
        return "<unknown>"
    return "/" + "/".join(str(index) for index in path)


class ConversionError(Exception):
    """Base class for every failure of a conversion attempt."""


class MalformedInputError(ConversionError):
    """The markdown input is not valid UTF-8."""

    def __init__(self, offset: int, reason: str = "invalid UTF-8") -> None:
        super().__init__(f"Malformed input at byte offset {offset}: {reason}")
        self.offset = offset
        self.reason = reason


class StyleResolutionError(ConversionError):
    """No font can be supplied for a font family referenced by the theme."""

    def __init__(self, family: str, node_path: Optional[Tuple[int, ...]] = None) -> None:
        super().__init__(
            f"Cannot resolve font family '{family}' for node {format_path(node_path)}"
        )
        self.family = family
        self.node_path = node_path


class ResourceEncodingError(ConversionError):
    """An embedded resource cannot be encoded with a PDF filter."""

    def __init__(self, mode: str, node_path: Optional[Tuple[int, ...]] = None, source: Optional[str] = None) -> None:
        where = f" ({source})" if source else ""
        super().__init__(
            f"Unsupported image color model '{mode}'{where} at node {format_path(node_path)}"
        )
        self.mode = mode
        self.node_path = node_path
        self.source = source


class ThemeError(ValueError):
    """A theme name, file, or option value is invalid."""
