"""Serialize laid-out pages to PDF.

Objects live in an arena (:class:`PdfObjectGraph`) and refer to each other by
object number. Numbers are handed out in a single pass over the pages, which
also registers fonts and images so every distinct asset is written once.
Content streams only need the names from that pass, so they can be built on
worker threads. Byte offsets exist only while serialising.
"""
from __future__ import annotations

import contextlib
import hashlib
import os
import tempfile
import zlib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, Dict, Iterable, List, Optional, Sequence, Union

from mdrender.errors import ResourceEncodingError
from mdrender.fonts import FontFace, FontMetrics, FIRST_CHAR, LAST_CHAR, encode_text
from mdrender.layout import ImageFragment, Page, RuleFragment, TextFragment
from mdrender.logger import get_logger
from mdrender.theme import Color

LOGGER = get_logger(__name__)

PRODUCER = "mdrender"
BINARY_MARKER = b"%\xe2\xe3\xcf\xd3\n"
COLOR_SPACES = {"RGB": ("DeviceRGB", 3), "L": ("DeviceGray", 1), "CMYK": ("DeviceCMYK", 4)}
NAME_DELIMITERS = frozenset(b"()<>[]{}/%#")


class Name(str):
    """A PDF name object (``/Type``)."""


@dataclass(frozen=True)
class Ref:
    number: int


@dataclass(frozen=True)
class PdfString:
    value: bytes
    hex: bool = False


@dataclass
class Stream:
    dictionary: Dict[str, Any]
    data: bytes


def format_number(value: Union[int, float]) -> str:
    """Deterministic number formatting: integers bare, at most 4 decimals otherwise."""
    if isinstance(value, int):
        return str(value)
    if value == int(value):
        return str(int(value))
    text = f"{value:.4f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def text_string(value: str) -> PdfString:
    """An Info-dictionary string: PDFDocEncoding for ASCII, UTF-16BE otherwise."""
    try:
        return PdfString(value.encode("ascii"))
    except UnicodeEncodeError:
        return PdfString(b"\xfe\xff" + value.encode("utf-16-be"), hex=True)


def _escape_name(name: str) -> bytes:
    out = bytearray()
    for byte in name.encode("utf-8"):
        if byte < 0x21 or byte > 0x7E or byte in NAME_DELIMITERS:
            out.extend(f"#{byte:02X}".encode("ascii"))
        else:
            out.append(byte)
    return bytes(out)


def _escape_literal(data: bytes) -> bytes:
    out = bytearray(b"(")
    for byte in data:
        if byte in (0x28, 0x29, 0x5C):
            out.append(0x5C)
            out.append(byte)
        elif byte == 0x0A:
            out.extend(b"\\n")
        elif byte == 0x0D:
            out.extend(b"\\r")
        else:
            out.append(byte)
    out.extend(b")")
    return bytes(out)


def serialize(value: Any) -> bytes:
    if value is None:
        return b"null"
    if value is True:
        return b"true"
    if value is False:
        return b"false"
    if isinstance(value, Name):
        return b"/" + _escape_name(value)
    if isinstance(value, Ref):
        return f"{value.number} 0 R".encode("ascii")
    if isinstance(value, (int, float)):
        return format_number(value).encode("ascii")
    if isinstance(value, PdfString):
        if value.hex:
            return b"<" + value.value.hex().upper().encode("ascii") + b">"
        return _escape_literal(value.value)
    if isinstance(value, (list, tuple)):
        return b"[" + b" ".join(serialize(item) for item in value) + b"]"
    if isinstance(value, dict):
        parts = [b"/" + _escape_name(key) + b" " + serialize(item) for key, item in value.items()]
        return b"<<" + b" ".join(parts) + b">>"
    raise TypeError(f"Cannot serialize {type(value).__name__} into a PDF object")


class PdfObjectGraph:
    """Indirect objects numbered from 1; number 0 is the free-list head."""

    def __init__(self) -> None:
        self._objects: List[Any] = []

    def __len__(self) -> int:
        return len(self._objects)

    def allocate(self) -> int:
        self._objects.append(None)
        return len(self._objects)

    def set(self, number: int, value: Any) -> None:
        self._objects[number - 1] = value

    def add(self, value: Any) -> int:
        number = self.allocate()
        self.set(number, value)
        return number

    def get(self, number: int) -> Any:
        return self._objects[number - 1]

    def serialize(self, root: int, info: Optional[int], version: str) -> bytes:
        buffer = bytearray(f"%PDF-{version}\n".encode("ascii"))
        buffer.extend(BINARY_MARKER)
        offsets: List[int] = []
        for number, value in enumerate(self._objects, start=1):
            if value is None:
                raise ValueError(f"PDF object {number} was allocated but never set")
            offsets.append(len(buffer))
            buffer.extend(f"{number} 0 obj\n".encode("ascii"))
            if isinstance(value, Stream):
                dictionary = dict(value.dictionary)
                dictionary["Length"] = len(value.data)
                buffer.extend(serialize(dictionary))
                buffer.extend(b"\nstream\n")
                buffer.extend(value.data)
                buffer.extend(b"\nendstream")
            else:
                buffer.extend(serialize(value))
            buffer.extend(b"\nendobj\n")

        document_id = hashlib.md5(bytes(buffer)).digest()
        xref_offset = len(buffer)
        buffer.extend(f"xref\n0 {len(self._objects) + 1}\n".encode("ascii"))
        buffer.extend(b"0000000000 65535 f \n")
        for offset in offsets:
            buffer.extend(f"{offset:010d} 00000 n \n".encode("ascii"))

        trailer: Dict[str, Any] = {"Size": len(self._objects) + 1, "Root": Ref(root)}
        if info is not None:
            trailer["Info"] = Ref(info)
        trailer["ID"] = [PdfString(document_id, hex=True), PdfString(document_id, hex=True)]
        buffer.extend(b"trailer\n")
        buffer.extend(serialize(trailer))
        buffer.extend(f"\nstartxref\n{xref_offset}\n%%EOF\n".encode("ascii"))
        return bytes(buffer)


class ResourceRegistry:
    """Registers fonts and images once per distinct content."""

    def __init__(self, graph: PdfObjectGraph, fonts: FontMetrics) -> None:
        self.graph = graph
        self.fonts = fonts
        self.font_objects: Dict[str, Ref] = {}
        self.image_objects: Dict[str, Ref] = {}
        self._font_names: Dict[str, str] = {}
        self._image_names: Dict[str, str] = {}
        self._file_digests: Dict[str, str] = {}
        self.uses_soft_mask = False

    def _font_digest(self, face: FontFace) -> str:
        if face.path is None:
            return hashlib.sha256(f"type1:{face.base_font}".encode("ascii")).hexdigest()
        digest = self._file_digests.get(face.path)
        if digest is None:
            with open(face.path, "rb") as handle:
                digest = hashlib.sha256(handle.read()).hexdigest()
            self._file_digests[face.path] = digest
        return digest

    def font(self, face: FontFace) -> str:
        digest = self._font_digest(face)
        name = self._font_names.get(digest)
        if name is not None:
            return name
        name = f"F{len(self._font_names) + 1}"
        self._font_names[digest] = name
        if face.path is None:
            number = self.graph.add(
                {
                    "Type": Name("Font"),
                    "Subtype": Name("Type1"),
                    "BaseFont": Name(face.base_font),
                    "Encoding": Name("WinAnsiEncoding"),
                }
            )
        else:
            number = self._embed_truetype(face)
        self.font_objects[name] = Ref(number)
        return name

    def _embed_truetype(self, face: FontFace) -> int:
        assert face.path is not None
        with open(face.path, "rb") as handle:
            data = handle.read()
        font_file = self.graph.add(
            Stream({"Length1": len(data), "Filter": Name("FlateDecode")}, zlib.compress(data))
        )
        descriptor: Dict[str, Any] = {"Type": Name("FontDescriptor"), "FontName": Name(face.base_font)}
        descriptor.update(self.fonts.descriptor_values(face))
        descriptor["FontFile2"] = Ref(font_file)
        descriptor_number = self.graph.add(descriptor)
        return self.graph.add(
            {
                "Type": Name("Font"),
                "Subtype": Name("TrueType"),
                "BaseFont": Name(face.base_font),
                "FirstChar": FIRST_CHAR,
                "LastChar": LAST_CHAR,
                "Widths": self.fonts.winansi_widths(face),
                "Encoding": Name("WinAnsiEncoding"),
                "FontDescriptor": Ref(descriptor_number),
            }
        )

    def image(self, fragment: ImageFragment) -> str:
        image = fragment.image
        name = self._image_names.get(image.digest)
        if name is not None:
            return name
        if image.mode not in COLOR_SPACES:
            raise ResourceEncodingError(image.mode, node_path=fragment.node_path, source=image.source)
        color_space, components = COLOR_SPACES[image.mode]
        if len(image.data) != image.width * image.height * components:
            raise ResourceEncodingError(image.mode, node_path=fragment.node_path, source=image.source)

        dictionary: Dict[str, Any] = {
            "Type": Name("XObject"),
            "Subtype": Name("Image"),
            "Width": image.width,
            "Height": image.height,
            "ColorSpace": Name(color_space),
            "BitsPerComponent": 8,
            "Filter": Name("FlateDecode"),
        }
        if image.alpha is not None:
            mask = self.graph.add(
                Stream(
                    {
                        "Type": Name("XObject"),
                        "Subtype": Name("Image"),
                        "Width": image.width,
                        "Height": image.height,
                        "ColorSpace": Name("DeviceGray"),
                        "BitsPerComponent": 8,
                        "Filter": Name("FlateDecode"),
                    },
                    zlib.compress(image.alpha),
                )
            )
            dictionary["SMask"] = Ref(mask)
            self.uses_soft_mask = True
        number = self.graph.add(Stream(dictionary, zlib.compress(image.data)))

        name = f"Im{len(self._image_names) + 1}"
        self._image_names[image.digest] = name
        self.image_objects[name] = Ref(number)
        return name


@dataclass
class PagePlan:
    page: Page
    page_number: int
    content_number: int
    font_names: Dict[FontFace, str] = field(default_factory=dict)
    image_names: Dict[str, str] = field(default_factory=dict)
    annotations: List[Ref] = field(default_factory=list)


def _color(color: Color, operator: str) -> bytes:
    return (" ".join(format_number(component) for component in color) + f" {operator}").encode("ascii")


def build_content_stream(plan: PagePlan) -> bytes:
    """Drawing operators for one page; fragments are already in paint order."""
    page = plan.page
    operations: List[bytes] = []
    if page.background is not None:
        operations.append(
            b"q " + _color(page.background, "rg")
            + f" 0 0 {format_number(page.width)} {format_number(page.height)} re f Q".encode("ascii")
        )
    for fragment in page.fragments:
        if isinstance(fragment, RuleFragment):
            bottom = page.height - fragment.top - fragment.height
            operations.append(
                b"q " + _color(fragment.color, "rg")
                + (
                    f" {format_number(fragment.x)} {format_number(bottom)}"
                    f" {format_number(fragment.width)} {format_number(fragment.height)} re f Q"
                ).encode("ascii")
            )
        elif isinstance(fragment, ImageFragment):
            bottom = page.height - fragment.top - fragment.height
            name = plan.image_names[fragment.image.digest]
            operations.append(
                (
                    f"q {format_number(fragment.width)} 0 0 {format_number(fragment.height)}"
                    f" {format_number(fragment.x)} {format_number(bottom)} cm /{name} Do Q"
                ).encode("ascii")
            )
        elif isinstance(fragment, TextFragment):
            name = plan.font_names[fragment.font]
            baseline = page.height - fragment.baseline
            operations.append(
                f"BT /{name} {format_number(fragment.font_size)} Tf ".encode("ascii")
                + _color(fragment.color, "rg")
                + f" 1 0 0 1 {format_number(fragment.x)} {format_number(baseline)} Tm ".encode("ascii")
                + _escape_literal(encode_text(fragment.text))
                + b" Tj ET"
            )
    return b"\n".join(operations) + b"\n"


class PdfEmitter:
    def __init__(self, fonts: Optional[FontMetrics] = None, compress: bool = True, workers: int = 1) -> None:
        self.fonts = fonts or FontMetrics()
        self.compress = compress
        self.workers = max(1, int(workers))

    def emit(self, pages: Iterable[Page], title: Optional[str] = None) -> bytes:
        pages = list(pages)
        graph = PdfObjectGraph()
        catalog = graph.allocate()
        page_tree = graph.allocate()
        resources = ResourceRegistry(graph, self.fonts)

        plans = [self._plan(page, graph, resources) for page in pages]

        if self.workers > 1 and len(plans) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                contents = list(pool.map(build_content_stream, plans))
        else:
            contents = [build_content_stream(plan) for plan in plans]

        for plan, content in zip(plans, contents):
            if self.compress:
                graph.set(plan.content_number, Stream({"Filter": Name("FlateDecode")}, zlib.compress(content)))
            else:
                graph.set(plan.content_number, Stream({}, content))
            graph.set(plan.page_number, self._page_dictionary(plan, page_tree, resources))

        graph.set(
            page_tree,
            {"Type": Name("Pages"), "Kids": [Ref(plan.page_number) for plan in plans], "Count": len(plans)},
        )
        graph.set(catalog, {"Type": Name("Catalog"), "Pages": Ref(page_tree)})
        info: Dict[str, Any] = {"Producer": text_string(PRODUCER)}
        if title:
            info["Title"] = text_string(title)
        info_number = graph.add(info)

        version = "1.4" if resources.uses_soft_mask else "1.3"
        data = graph.serialize(root=catalog, info=info_number, version=version)
        LOGGER.debug(
            "Emitted PDF %s: %d page(s), %d object(s), %d font(s), %d image(s), %d bytes",
            version,
            len(plans),
            len(graph),
            len(resources.font_objects),
            len(resources.image_objects),
            len(data),
        )
        return data

    def _plan(self, page: Page, graph: PdfObjectGraph, resources: ResourceRegistry) -> PagePlan:
        plan = PagePlan(page=page, page_number=graph.allocate(), content_number=graph.allocate())
        for fragment in page.fragments:
            if isinstance(fragment, TextFragment):
                if fragment.font not in plan.font_names:
                    plan.font_names[fragment.font] = resources.font(fragment.font)
                if fragment.link and fragment.text.strip():
                    plan.annotations.append(Ref(graph.add(self._link_annotation(page, fragment))))
            elif isinstance(fragment, ImageFragment):
                plan.image_names[fragment.image.digest] = resources.image(fragment)
        return plan

    @staticmethod
    def _link_annotation(page: Page, fragment: TextFragment) -> Dict[str, Any]:
        bottom = page.height - fragment.top - fragment.height
        return {
            "Type": Name("Annot"),
            "Subtype": Name("Link"),
            "Rect": [fragment.x, bottom, fragment.x + fragment.width, bottom + fragment.height],
            "Border": [0, 0, 0],
            "A": {"S": Name("URI"), "URI": PdfString(fragment.link.encode("utf-8"))},
        }

    @staticmethod
    def _page_dictionary(plan: PagePlan, page_tree: int, resources: ResourceRegistry) -> Dict[str, Any]:
        page = plan.page
        page_resources: Dict[str, Any] = {
            "ProcSet": [Name("PDF"), Name("Text"), Name("ImageB"), Name("ImageC")]
        }
        used_fonts = sorted(set(plan.font_names.values()), key=lambda name: int(name[1:]))
        if used_fonts:
            page_resources["Font"] = {name: resources.font_objects[name] for name in used_fonts}
        used_images = sorted(set(plan.image_names.values()), key=lambda name: int(name[2:]))
        if used_images:
            page_resources["XObject"] = {name: resources.image_objects[name] for name in used_images}

        dictionary: Dict[str, Any] = {
            "Type": Name("Page"),
            "Parent": Ref(page_tree),
            "MediaBox": [0, 0, page.width, page.height],
            "Resources": page_resources,
            "Contents": Ref(plan.content_number),
        }
        if plan.annotations:
            dictionary["Annots"] = list(plan.annotations)
        return dictionary


def emit(
    pages: Sequence[Page],
    *,
    title: Optional[str] = None,
    compress: bool = True,
    workers: int = 1,
    fonts: Optional[FontMetrics] = None,
) -> bytes:
    """Return the complete PDF file for ``pages`` as bytes."""
    return PdfEmitter(fonts=fonts, compress=compress, workers=workers).emit(pages, title=title)


def write_bytes(data: bytes, sink: Union[str, Path, IO[bytes]]) -> None:
    """Write ``data`` to a binary file object, or atomically to a path."""
    if hasattr(sink, "write"):
        sink.write(data)  # type: ignore[union-attr]
        return

    path = Path(sink)  # type: ignore[arg-type]
    path.parent.mkdir(parents=True, exist_ok=True)
    handle_fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(handle_fd, "wb") as handle:
            handle.write(data)
        os.replace(temp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(temp_name)
        raise
    LOGGER.debug("Wrote %d bytes to %s", len(data), path)


def write_pdf(pages: Sequence[Page], sink: Union[str, Path, IO[bytes]], **options: Any) -> None:
    write_bytes(emit(pages, **options), sink)
