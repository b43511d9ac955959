from __future__ import annotations

import argparse
from pathlib import Path

from mdrender.layout import DEFAULT_MARGIN_PT
from mdrender.logger import set_debug
from mdrender.theme import BUILTIN_THEMES, DEFAULT_THEME

from md_to_pdf import pdf_export


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="md-to-pdf",
        description="Convert Markdown documents into paginated PDF files.",
    )
    parser.add_argument(
        "--input",
        type=Path,
        help="Path to the source Markdown file.",
    )
    parser.add_argument(
        "--input-dir",
        type=Path,
        help="Directory containing markdown files for batch export.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Output PDF path for --input (default: next to the input, with a .pdf suffix).",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        help=(
            "Directory where generated PDFs will be written, mirroring the input tree "
            "(default: next to each input file)."
        ),
    )
    parser.add_argument(
        "--page-size",
        type=str,
        default=pdf_export.DEFAULT_PAGE_SIZE,
        help=(
            "PDF page size name (e.g. letter, a4) or custom dimensions WIDTHxHEIGHT in points (default: letter)."
        ),
    )
    parser.add_argument(
        "--margin",
        type=float,
        default=DEFAULT_MARGIN_PT,
        help=f"Page margin in points on every side (default: {DEFAULT_MARGIN_PT:g}).",
    )
    parser.add_argument(
        "--theme",
        type=str,
        default=DEFAULT_THEME,
        help=(
            f"Built-in theme ({', '.join(sorted(BUILTIN_THEMES))}) or path to a JSON theme file "
            f"(default: {DEFAULT_THEME})."
        ),
    )
    parser.add_argument(
        "--font",
        type=Path,
        help="Path to a TrueType font file to use for body text.",
    )
    parser.add_argument(
        "--mono-font",
        type=Path,
        help="Path to a TrueType font file to use for code.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Threads used to build page content streams (default: 1).",
    )
    parser.add_argument(
        "--no-compress",
        action="store_true",
        help="Write page content streams uncompressed.",
    )
    parser.add_argument(
        "--non-recursive",
        action="store_true",
        help="Do not search subdirectories when exporting a directory.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging.",
    )
    return parser.parse_args(argv)


def _export_settings(args: argparse.Namespace) -> dict:
    return {
        "margin": args.margin,
        "theme": args.theme,
        "font_path": args.font,
        "mono_font_path": args.mono_font,
        "workers": args.workers,
        "compress": not args.no_compress,
    }


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    set_debug(args.debug)
    if args.input and args.input_dir:
        raise SystemExit("Use either --input for a single file or --input-dir for batch export.")
    if args.workers < 1:
        raise SystemExit("--workers must be at least 1.")
    if args.margin < 0:
        raise SystemExit("--margin must not be negative.")

    if args.input:
        output_path = args.output
        if output_path is None and args.output_dir is not None:
            output_path = args.output_dir / f"{args.input.stem}.pdf"
        generated = pdf_export.export_file_to_pdf(
            input_file=args.input,
            output_path=output_path,
            page_size_spec=args.page_size,
            **_export_settings(args),
        )
        print(f"Generated 1 PDF: {generated.resolve()}")
        return 0

    if not args.input_dir:
        raise SystemExit("Provide --input for a single file or --input-dir for batch export.")
    if args.output is not None:
        raise SystemExit("--output only applies to --input; use --output-dir with --input-dir.")
    recursive = not args.non_recursive
    generated_files = pdf_export.export_directory_to_pdfs(
        input_dir=args.input_dir,
        output_dir=args.output_dir,
        page_size_spec=args.page_size,
        recursive=recursive,
        **_export_settings(args),
    )
    output_location = args.output_dir.resolve() if args.output_dir else args.input_dir.resolve()
    print(f"Generated {len(generated_files)} PDFs in {output_location}")
    return 0
