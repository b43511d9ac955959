from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont

from mdrender.logger import get_logger

LOGGER = get_logger(__name__)

TEXT_ENCODING = "cp1252"
FIRST_CHAR = 32
LAST_CHAR = 255

Style = Tuple[bool, bool]

STANDARD_FAMILIES: Dict[str, Dict[Style, str]] = {
    "helvetica": {
        (False, False): "Helvetica",
        (True, False): "Helvetica-Bold",
        (False, True): "Helvetica-Oblique",
        (True, True): "Helvetica-BoldOblique",
    },
    "times": {
        (False, False): "Times-Roman",
        (True, False): "Times-Bold",
        (False, True): "Times-Italic",
        (True, True): "Times-BoldItalic",
    },
    "courier": {
        (False, False): "Courier",
        (True, False): "Courier-Bold",
        (False, True): "Courier-Oblique",
        (True, True): "Courier-BoldOblique",
    },
}

FAMILY_ALIASES = {
    "sans-serif": "helvetica",
    "sans": "helvetica",
    "arial": "helvetica",
    "helvetica neue": "helvetica",
    "serif": "times",
    "times-roman": "times",
    "times new roman": "times",
    "monospace": "courier",
    "mono": "courier",
    "courier new": "courier",
}


@dataclass(frozen=True)
class FontFace:
    """A concrete face: a standard PDF font or a registered TrueType file."""

    name: str
    base_font: str
    family: str
    bold: bool = False
    italic: bool = False
    path: Optional[str] = None

    @property
    def embedded(self) -> bool:
        return self.path is not None


def _normalize(family: str) -> str:
    return " ".join(family.lower().split())


def _slug(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9\-]+", "", value) or "Font"


def encode_text(text: str) -> bytes:
    """Encode text as single-byte WinAnsi codes; unencodable characters become ``?``."""
    return text.encode(TEXT_ENCODING, errors="replace")


def printable_text(text: str) -> str:
    """The text as it will actually be drawn after WinAnsi encoding."""
    return encode_text(text).decode(TEXT_ENCODING)


class FontMetrics:
    """Font lookup and measurement backed by ReportLab's ``pdfmetrics``."""

    _registered: Dict[Path, str] = {}

    def __init__(self, allow_substitution: bool = True) -> None:
        self.allow_substitution = allow_substitution
        self._families: Dict[str, Dict[Style, FontFace]] = {}
        for family, faces in STANDARD_FAMILIES.items():
            self._families[family] = {
                style: FontFace(name=name, base_font=name, family=family, bold=style[0], italic=style[1])
                for style, name in faces.items()
            }
        self._width_cache: Dict[Tuple[str, str, float], float] = {}

    def register_family(
        self,
        family: str,
        regular: Union[str, Path],
        bold: Union[str, Path, None] = None,
        italic: Union[str, Path, None] = None,
        bold_italic: Union[str, Path, None] = None,
    ) -> None:
        """Make TrueType files available under ``family``.

        Missing variants reuse the closest registered file.
        """
        variants: Dict[Style, Union[str, Path]] = {
            (False, False): regular,
            (True, False): bold or regular,
            (False, True): italic or regular,
            (True, True): bold_italic or bold or italic or regular,
        }
        self._families[_normalize(family)] = {
            style: self._register_ttf(family, Path(path), *style) for style, path in variants.items()
        }

    def _register_ttf(self, family: str, font_path: Path, bold: bool, italic: bool) -> FontFace:
        font_path = font_path.expanduser().resolve()
        if font_path in self._registered:
            font_name = self._registered[font_path]
        else:
            font_name = f"MDRender-{_slug(font_path.stem)}-{len(self._registered) + 1}"
            pdfmetrics.registerFont(TTFont(font_name, str(font_path)))
            self._registered[font_path] = font_name
            LOGGER.debug("Registered font '%s' from %s", font_name, font_path)
        return FontFace(
            name=font_name,
            base_font=_slug(font_path.stem),
            family=family,
            bold=bold,
            italic=italic,
            path=str(font_path),
        )

    def face(self, family: str, bold: bool = False, italic: bool = False) -> Optional[FontFace]:
        key = _normalize(family)
        key = FAMILY_ALIASES.get(key, key)
        faces = self._families.get(key)
        if faces is None:
            return None
        return faces[(bold, italic)]

    def substitute(self, family: str, bold: bool = False, italic: bool = False) -> Optional[FontFace]:
        """Generic stand-in for an unknown family, or ``None`` when disabled."""
        if not self.allow_substitution:
            return None
        lowered = family.lower()
        if any(token in lowered for token in ("mono", "code", "courier", "consol")):
            generic = "courier"
        elif "times" in lowered or "georgia" in lowered or ("serif" in lowered and "sans" not in lowered):
            generic = "times"
        else:
            generic = "helvetica"
        LOGGER.debug("Substituting '%s' with the %s family", family, generic)
        return self._families[generic][(bold, italic)]

    def resolve(self, families: Sequence[str], bold: bool = False, italic: bool = False) -> Optional[FontFace]:
        """First available face in a fallback chain, then a substitute."""
        for family in families:
            face = self.face(family, bold, italic)
            if face is not None:
                return face
        if not families:
            return None
        return self.substitute(families[0], bold, italic)

    def string_width(self, face: FontFace, text: str, size: float) -> float:
        key = (face.name, text, size)
        width = self._width_cache.get(key)
        if width is None:
            width = pdfmetrics.stringWidth(printable_text(text), face.name, size)
            if len(text) < 64:
                self._width_cache[key] = width
        return width

    def ascent_descent(self, face: FontFace, size: float) -> Tuple[float, float]:
        """Ascent above and descent below the baseline, both positive."""
        ascent, descent = pdfmetrics.getAscentDescent(face.name, size)
        return ascent, abs(descent)

    def winansi_widths(self, face: FontFace) -> List[int]:
        """Glyph widths (1/1000 em) for codes 32..255, as a ``/Widths`` array."""
        widths: List[int] = []
        for code in range(FIRST_CHAR, LAST_CHAR + 1):
            char = bytes([code]).decode(TEXT_ENCODING, errors="replace")
            widths.append(int(round(pdfmetrics.stringWidth(printable_text(char), face.name, 1000))))
        return widths

    def descriptor_values(self, face: FontFace) -> Dict[str, object]:
        """Font descriptor entries for an embedded TrueType face."""
        font = pdfmetrics.getFont(face.name)
        info = getattr(font, "face", None)
        bbox = list(getattr(info, "bbox", [0, -200, 1000, 900]))
        ascent = getattr(info, "ascent", bbox[3])
        descent = getattr(info, "descent", bbox[1])
        italic_angle = getattr(info, "italicAngle", 0)
        return {
            # nonsymbolic, plus the italic bit
            "Flags": 32 | (64 if italic_angle else 0),
            "FontBBox": [int(value) for value in bbox],
            "ItalicAngle": italic_angle,
            "Ascent": int(ascent),
            "Descent": int(descent),
            "CapHeight": int(getattr(info, "capHeight", ascent)),
            "StemV": int(getattr(info, "stemV", 80)),
        }
