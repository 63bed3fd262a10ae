#!/usr/bin/env python3
"""Command-line interface for pdfforge.

This module contains the argument parser and main() function for the pdfforge
CLI tool. Every command goes through PdfService exactly as a request handler
would: the input is staged, processed, copied to its destination, and the
staged artifacts are deleted before the command returns.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import shutil
import sys
from pathlib import Path
from typing import List, Optional

from pdfforge.compression import ghostscript_available
from pdfforge.config import Settings, get_settings
from pdfforge.errors import PdfForgeError
from pdfforge.lifecycle import FileLifecycleManager
from pdfforge.logging_config import setup_logging
from pdfforge.service import Delivery, PdfService
from pdfforge.types import COMPRESSION_PRESETS, DEFAULT_OUTPUT_DIR, SplitParams, SplitStrategy, __version__
from pdfforge.utils import format_bytes, process_inputs

EPILOG = """
Examples:
  pdfforge split document.pdf                      # One PDF per page
  pdfforge split document.pdf -s selected -p 1-3,7 # Extract pages 1-3 and 7
  pdfforge split document.pdf -s equal --parts 3   # Three equal parts
  pdfforge split document.pdf -s chunk --chunk-size 10
  pdfforge split document.pdf --zip -d out         # Write one ZIP archive
  pdfforge merge a.pdf b.pdf c.pdf -o combined.pdf # Merge in order
  pdfforge merge /path/to/pdfs/ -o combined.pdf    # Merge a directory
  pdfforge compress big.pdf -o small.pdf -l high   # Aggressive compression
  pdfforge compress --check                        # Is Ghostscript installed?
  pdfforge rotate scan.pdf -o upright.pdf -r 180
  pdfforge watermark report.pdf -o draft.pdf -t DRAFT
  pdfforge sign contract.pdf -o signed.pdf -t "J. Doe" -x 400 -y 80
  pdfforge edit form.pdf -o filled.pdf -t "Approved" --page 1
  pdfforge sweep --retention 0                     # Empty the staging area
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdfforge",
        description="PDF splitting, merging, compression, rotation and text overlay.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress non-error output")
    parser.add_argument("--json-logs", action="store_true", help="Emit log lines as JSON")
    parser.add_argument(
        "--staging-dir",
        help="Staging directory for intermediate files (default: $PDFFORGE_STAGING_DIR or system temp)",
    )

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    # split
    p = sub.add_parser("split", help="Split a PDF into several PDFs")
    p.add_argument("input", help="PDF file to split")
    p.add_argument(
        "-s",
        "--strategy",
        default=SplitStrategy.INDIVIDUAL.value,
        choices=[s.value for s in SplitStrategy],
        help="Split strategy (default: individual)",
    )
    p.add_argument(
        "-p",
        "--pages",
        help='Page selection for "selected": "1,3,5-7" (unusable tokens are skipped)',
    )
    p.add_argument("--parts", type=int, default=2, help="Number of parts for \"equal\" (default: 2)")
    p.add_argument("--chunk-size", type=int, default=2, help="Pages per file for \"chunk\" (default: 2)")
    p.add_argument(
        "-d",
        "--directory",
        default=DEFAULT_OUTPUT_DIR,
        help=f"Output directory (default: {DEFAULT_OUTPUT_DIR})",
    )
    p.add_argument("--zip", action="store_true", help="Write a single ZIP archive instead of separate PDFs")
    p.add_argument("-f", "--force", action="store_true", help="Force overwrite existing output files")

    # merge
    p = sub.add_parser("merge", help="Merge PDFs in the order given")
    p.add_argument("inputs", nargs="+", help="PDF files or directories (directories are merged in name order)")
    p.add_argument("-o", "--output", required=True, help="Output PDF path")
    p.add_argument("-f", "--force", action="store_true", help="Force overwrite existing output files")

    # compress
    p = sub.add_parser("compress", help="Compress a PDF with Ghostscript or a lossless fallback")
    p.add_argument("input", nargs="?", help="PDF file to compress")
    p.add_argument("-o", "--output", help="Output PDF path")
    p.add_argument(
        "-l",
        "--level",
        type=str.lower,
        choices=sorted(COMPRESSION_PRESETS),
        help="Compression level (default: $PDFFORGE_DEFAULT_COMPRESSION_LEVEL or medium)",
    )
    p.add_argument("--check", action="store_true", help="Report which Ghostscript executable is available, then exit")
    p.add_argument("-f", "--force", action="store_true", help="Force overwrite existing output files")

    # rotate
    p = sub.add_parser("rotate", help="Rotate every page")
    p.add_argument("input", help="PDF file to rotate")
    p.add_argument("-o", "--output", required=True, help="Output PDF path")
    p.add_argument("-r", "--rotation", type=int, default=90, help="Degrees clockwise, a multiple of 90 (default: 90)")
    p.add_argument("-f", "--force", action="store_true", help="Force overwrite existing output files")

    # watermark
    p = sub.add_parser("watermark", help="Stamp a diagonal text watermark on every page")
    p.add_argument("input", help="PDF file to watermark")
    p.add_argument("-o", "--output", required=True, help="Output PDF path")
    p.add_argument("-t", "--text", default="CONFIDENTIAL", help="Watermark text (default: CONFIDENTIAL)")
    p.add_argument("-f", "--force", action="store_true", help="Force overwrite existing output files")

    # sign / edit share positioning options
    for name, help_text, text_default, y_default in (
        ("sign", "Add signature text to one page", "Signed", 50.0),
        ("edit", "Add text to one page", None, 500.0),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("input", help="PDF file")
        p.add_argument("-o", "--output", required=True, help="Output PDF path")
        p.add_argument("-t", "--text", default=text_default, required=text_default is None, help="Text to draw")
        p.add_argument("-x", type=float, default=50.0, help="X position in points from the left (default: 50)")
        p.add_argument(
            "-y",
            type=float,
            default=y_default,
            help=f"Y position in points from the bottom (default: {y_default:g})",
        )
        p.add_argument("--page", type=int, default=0, help="0-based page number (default: 0)")
        p.add_argument("-f", "--force", action="store_true", help="Force overwrite existing output files")

    # sweep
    p = sub.add_parser("sweep", help="Delete stale files from the staging directory")
    p.add_argument(
        "--retention",
        type=float,
        help="Delete files older than this many seconds (default: $PDFFORGE_RETENTION_SECONDS or 3600)",
    )

    return parser


def _read_input(path_str: str) -> bytes:
    path = Path(path_str)
    if not path.is_file():
        print(f"Error: Input file not found: {path}", file=sys.stderr)
        sys.exit(1)
    return path.read_bytes()


def _check_output(output: Path, force: bool) -> None:
    if output.exists() and not force:
        print(f"Error: Output file '{output}' exists. Use -f to overwrite.", file=sys.stderr)
        sys.exit(1)


def _save_delivery(delivery: Delivery, output: Path, force: bool) -> Path:
    """Copy the delivered file to ``output`` and drop the staged artifacts."""
    try:
        _check_output(output, force)
        output.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(delivery.path, output)
    finally:
        delivery.abort()
    return output


def _save_parts(delivery: Delivery, directory: Path, force: bool) -> List[Path]:
    written: List[Path] = []
    try:
        directory.mkdir(parents=True, exist_ok=True)
        for part in delivery.parts:
            target = directory / part.display_name
            _check_output(target, force)
            shutil.copyfile(part.path, target)
            written.append(target)
    finally:
        delivery.abort()
    return written


async def _run(args: argparse.Namespace, service: PdfService) -> None:
    quiet = args.quiet
    command = args.command

    if command == "split":
        params = SplitParams(pages=args.pages, parts=args.parts, chunk_size=args.chunk_size)
        delivery = await service.split(_read_input(args.input), args.strategy, params, progress=not quiet)
        directory = Path(args.directory)
        if args.zip or len(delivery.parts) == 1:
            target = _save_delivery(delivery, directory / delivery.filename, args.force)
            written = [target]
        else:
            written = _save_parts(delivery, directory, args.force)
        if not quiet:
            for path in written:
                print(f"  {path}")
            print(f"Created {len(written)} file(s) in {directory}")

    elif command == "merge":
        pdf_files = process_inputs(args.inputs)
        if not pdf_files:
            print("Error: No PDF files found.", file=sys.stderr)
            sys.exit(1)
        delivery = await service.merge([path.read_bytes() for path in pdf_files])
        output = _save_delivery(delivery, Path(args.output), args.force)
        if not quiet:
            print(f"Merged {len(pdf_files)} PDF(s) into {output}")

    elif command == "compress":
        if args.check:
            found = ghostscript_available(service.settings.ghostscript_candidates)
            if found:
                print(f"Ghostscript: {found} ({shutil.which(found)})")
            else:
                tried = ", ".join(service.settings.ghostscript_candidates)
                print(f"Ghostscript: not found (tried {tried}); structural fallback only")
            return
        if not args.input or not args.output:
            print("Error: compress requires an input file and -o/--output.", file=sys.stderr)
            sys.exit(1)
        delivery = await service.compress(_read_input(args.input), args.level)
        result = delivery.compression
        output = _save_delivery(delivery, Path(args.output), args.force)
        if not quiet and result is not None:
            method = result.executable or "structural fallback"
            print(
                f"Compressed {args.input} -> {output}: "
                f"{format_bytes(result.original_size)} -> {format_bytes(result.compressed_size)} "
                f"({result.reduction_percent:.2f}% reduction, level {result.level}, {method})"
            )

    elif command == "rotate":
        delivery = await service.rotate(_read_input(args.input), args.rotation)
        output = _save_delivery(delivery, Path(args.output), args.force)
        if not quiet:
            print(f"Rotated {args.input} by {args.rotation} degrees -> {output}")

    elif command == "watermark":
        delivery = await service.watermark(_read_input(args.input), args.text)
        output = _save_delivery(delivery, Path(args.output), args.force)
        if not quiet:
            print(f"Watermarked {args.input} -> {output}")

    elif command in ("sign", "edit"):
        operation = service.sign if command == "sign" else service.edit
        delivery = await operation(_read_input(args.input), args.text, args.x, args.y, args.page)
        output = _save_delivery(delivery, Path(args.output), args.force)
        if not quiet:
            print(f"{'Signed' if command == 'sign' else 'Edited'} {args.input} -> {output}")


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the pdfforge CLI."""
    parser = build_parser()

    if argv is None and len(sys.argv) == 1:
        parser.print_help()
        sys.exit(0)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    settings: Settings = get_settings()
    if args.staging_dir:
        settings = dataclasses.replace(settings, staging_dir=Path(args.staging_dir))

    level = "DEBUG" if args.verbose else "WARNING" if args.quiet else settings.log_level
    setup_logging(level, json_format=args.json_logs or settings.log_json)

    try:
        if args.command == "sweep":
            manager = FileLifecycleManager.from_settings(settings)
            removed = manager.sweep(args.retention)
            if not args.quiet:
                print(f"Removed {removed} stale file(s) from {manager.root}")
            sys.exit(0)

        service = PdfService.from_settings(settings)
        asyncio.run(_run(args, service))
    except PdfForgeError as e:
        print(f"Error: {e.to_dict(settings.production)['message']}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
