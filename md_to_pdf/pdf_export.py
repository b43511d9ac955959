from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from reportlab.lib.pagesizes import A4, A5, legal, letter, TABLOID

from mdrender.emitter import write_bytes
from mdrender.fonts import FontMetrics
from mdrender.images import ImageLoader
from mdrender.layout import DEFAULT_MARGIN_PT, Margins
from mdrender.logger import get_logger
from mdrender.parser import decode_markdown, remove_front_matter
from mdrender.pipeline import PageGeometry, convert
from mdrender.theme import DEFAULT_THEME, StyleRule, Stylesheet, load_theme

LOGGER = get_logger(__name__)

PAGE_SIZE_ALIASES: Dict[str, Tuple[float, float]] = {
    "letter": letter,
    "a4": A4,
    "a5": A5,
    "legal": legal,
    "tabloid": TABLOID,
}

DEFAULT_PAGE_SIZE = "letter"
MARKDOWN_SUFFIXES = (".md", ".markdown")
BODY_FAMILY = "Document Body"
MONO_FAMILY = "Document Mono"


@dataclass
class PdfExportOptions:
    markdown_path: Path
    output_path: Path
    page_size: Tuple[float, float]
    margin: float = DEFAULT_MARGIN_PT
    theme: Union[str, Path, None] = DEFAULT_THEME
    font_path: Optional[Path] = None
    mono_font_path: Optional[Path] = None
    workers: int = 1
    compress: bool = True


def resolve_page_size(spec: str | None) -> Tuple[float, float]:
    if not spec:
        return PAGE_SIZE_ALIASES[DEFAULT_PAGE_SIZE]
    normalized = spec.strip().lower()
    if normalized in PAGE_SIZE_ALIASES:
        return PAGE_SIZE_ALIASES[normalized]
    match = re.match(r"^\s*(\d+(?:\.\d+)?)\s*[x×]\s*(\d+(?:\.\d+)?)\s*$", normalized)
    if match:
        width = float(match.group(1))
        height = float(match.group(2))
        return (width, height)
    raise ValueError(
        f"Unrecognized page size '{spec}'. "
        f"Use one of {', '.join(sorted(PAGE_SIZE_ALIASES))} "
        "or provide custom dimensions like '612x792'."
    )


def default_output_path(markdown_path: Path) -> Path:
    """Same directory and name as the markdown file, with a ``.pdf`` suffix."""
    return markdown_path.with_suffix(".pdf")


def build_font_metrics(
    font_path: Optional[Path], mono_font_path: Optional[Path]
) -> Tuple[FontMetrics, Dict[str, StyleRule]]:
    """Register user fonts and return the theme overrides that select them."""
    fonts = FontMetrics()
    overrides: Dict[str, StyleRule] = {}
    if font_path is not None:
        fonts.register_family(BODY_FAMILY, font_path)
        overrides["document"] = StyleRule(font_family=f"{BODY_FAMILY}, Helvetica")
    if mono_font_path is not None:
        fonts.register_family(MONO_FAMILY, mono_font_path)
        mono = StyleRule(font_family=f"{MONO_FAMILY}, Courier")
        overrides["code_block"] = mono
        overrides["code_span"] = mono
    return fonts, overrides


def convert_markdown_to_pdf(options: PdfExportOptions) -> Path:
    with options.markdown_path.open("rb") as handle:
        raw = handle.read()
    markdown_text = decode_markdown(raw)
    if not remove_front_matter(markdown_text).strip():
        raise ValueError(f"No content found in {options.markdown_path}")

    fonts, overrides = build_font_metrics(options.font_path, options.mono_font_path)
    theme: Stylesheet = load_theme(options.theme)
    if overrides:
        theme = theme.with_rules(overrides)

    page_width, page_height = options.page_size
    geometry = PageGeometry(width=page_width, height=page_height, margins=Margins.uniform(options.margin))
    data = convert(
        markdown_text,
        theme=theme,
        geometry=geometry,
        fonts=fonts,
        images=ImageLoader(base_dir=options.markdown_path.parent),
        workers=options.workers,
        compress=options.compress,
    )

    LOGGER.debug("Writing PDF to %s", options.output_path)
    write_bytes(data, options.output_path)
    return options.output_path


def collect_markdown_files(
    root: Path,
    recursive: bool = True,
) -> List[Path]:
    pattern = "**/*" if recursive else "*"
    return sorted(
        path for path in root.glob(pattern) if path.is_file() and path.suffix.lower() in MARKDOWN_SUFFIXES
    )


def export_directory_to_pdfs(
    input_dir: Path,
    output_dir: Optional[Path],
    page_size_spec: str,
    recursive: bool = True,
    **settings,
) -> List[Path]:
    if not input_dir.exists():
        raise FileNotFoundError(f"Input directory not found: {input_dir}")

    page_size = resolve_page_size(page_size_spec)
    markdown_files = collect_markdown_files(input_dir, recursive=recursive)
    if not markdown_files:
        raise ValueError(f"No markdown files found in {input_dir}")

    generated: List[Path] = []
    for md_file in markdown_files:
        if output_dir is None:
            output_path = default_output_path(md_file)
        else:
            relative_parent = md_file.parent.relative_to(input_dir)
            output_path = output_dir / relative_parent / f"{md_file.stem}.pdf"
        options = PdfExportOptions(
            markdown_path=md_file,
            output_path=output_path,
            page_size=page_size,
            **settings,
        )
        try:
            generated_path = convert_markdown_to_pdf(options)
        except ValueError as exc:
            if "No content found" in str(exc):
                LOGGER.debug("Skipping empty markdown: %s", md_file)
                continue
            raise
        generated.append(generated_path)
    return generated


def export_file_to_pdf(
    input_file: Path,
    output_path: Optional[Path],
    page_size_spec: str,
    **settings,
) -> Path:
    if not input_file.exists():
        raise FileNotFoundError(f"Markdown file not found: {input_file}")

    page_size = resolve_page_size(page_size_spec)
    options = PdfExportOptions(
        markdown_path=input_file,
        output_path=output_path or default_output_path(input_file),
        page_size=page_size,
        **settings,
    )
    return convert_markdown_to_pdf(options)
