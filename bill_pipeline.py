"""Extract per-line charges from a phone bill PDF.

Pipeline:
  1. read_pdf_pages        – pdfplumber words per page, as positioned text items
  2. build_fragment_stream – drop items without text or a usable transform
  3. cluster_rows          – bucket fragments into rows by y, order by page/y/x
  4. iter_row_items        – inside the "Monthly charges" table, take each row's
                             phone number and its largest reasonable price
  5. iter_fallback_items   – "Total for <number> $<amount>" sentences anywhere
  6. merge_line_items      – first value seen for a number wins
  7. build_parsed_bill     – stated total due, or the sum of the lines
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import warnings
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path

import pdfplumber

from bill_context import (
    TotalSelector,
    iter_fallback_items,
    iter_row_items,
    merge_line_items,
    select_largest_total,
)
from bill_extract import build_fragment_stream, cluster_rows, rows_to_text
from bill_models import (
    DEFAULT_LAYOUT,
    BillLayout,
    Fragment,
    InvalidBillFile,
    ParsedBill,
    ParseError,
    ParseErrorKind,
)
from bill_reconcile import build_parsed_bill

logging.getLogger("pdfminer").setLevel(logging.ERROR)
warnings.filterwarnings("ignore", module="pdfminer")

logger = logging.getLogger(__name__)

MAX_PDF_BYTES = 10 * 1024 * 1024


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_bill(
    fragments: Iterable[Fragment],
    layout: BillLayout = DEFAULT_LAYOUT,
    select_total: TotalSelector = select_largest_total,
) -> ParsedBill:
    """Reconstruct the line-item table from *fragments* and reconcile the bill.

    Raises ParseError when the input has no text, no line could be found, or
    no positive total could be determined.
    """
    rows = cluster_rows(fragments, layout)
    if not any(row.flat_text.strip() for row in rows):
        raise ParseError(
            ParseErrorKind.EMPTY_INPUT,
            "Could not extract text from PDF. The file may be empty or corrupted.",
        )

    text = rows_to_text(rows)
    row_items = list(iter_row_items(rows, layout, select_total))
    logger.info("found %d lines using position-based parsing", len(row_items))

    lines = merge_line_items(row_items, iter_fallback_items(text))
    if not lines:
        raise ParseError(ParseErrorKind.NO_LINE_ITEMS, "No line items found in the bill.")
    logger.info("found %d lines after 'Total for' fallback", len(lines))

    bill = build_parsed_bill(lines, text, layout)
    if bill.total_amount <= 0:
        raise ParseError(
            ParseErrorKind.NO_PLAUSIBLE_TOTAL,
            f"No positive total amount could be determined (got {bill.total_amount:.2f}).",
        )
    return bill


def parse_pages(
    pages: Iterable[Iterable[Mapping]],
    layout: BillLayout = DEFAULT_LAYOUT,
    select_total: TotalSelector = select_largest_total,
) -> ParsedBill:
    """Parse raw text-layer items supplied one page at a time."""
    return parse_bill(build_fragment_stream(pages), layout, select_total)


# ---------------------------------------------------------------------------
# PDF access
# ---------------------------------------------------------------------------

def page_items(page: pdfplumber.page.Page) -> list[dict]:
    """Return *page*'s words as text items with a PDF-space transform.

    pdfplumber measures ``top``/``bottom`` down from the page top; the
    transform origin is flipped so y grows upward like the PDF user space.
    """
    items: list[dict] = []
    for word in page.extract_words():
        items.append(
            {
                "str": word["text"],
                "transform": [1, 0, 0, 1, word["x0"], page.height - word["bottom"]],
                "width": word["x1"] - word["x0"],
                "height": word["bottom"] - word["top"],
            }
        )
    return items


def read_pdf_pages(path: str | Path) -> Iterator[list[dict]]:
    """Yield the text items of each page of the PDF at *path*, in page order."""
    with pdfplumber.open(path) as pdf:
        for page in pdf.pages:
            yield page_items(page)


def validate_pdf_path(path: str | Path) -> Path:
    path = Path(path)
    if not path.exists():
        raise InvalidBillFile(f"file not found: {path}")
    if path.suffix.lower() != ".pdf":
        raise InvalidBillFile(f"not a PDF file: {path}")
    size = path.stat().st_size
    if size > MAX_PDF_BYTES:
        raise InvalidBillFile(
            f"file size {size / 1024 / 1024:.1f} MB exceeds {MAX_PDF_BYTES // 1024 // 1024} MB limit"
        )
    return path


def parse_pdf(path: str | Path, layout: BillLayout = DEFAULT_LAYOUT) -> ParsedBill:
    path = validate_pdf_path(path)
    logger.info("parsing %s (%.2f KB)", path.name, path.stat().st_size / 1024)
    return parse_pages(read_pdf_pages(path), layout)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def print_bill(bill: ParsedBill) -> None:
    print("=" * 64)
    print("RESULTS")
    print("=" * 64)
    if bill.billing_period:
        print(f"\nBilling period: {bill.billing_period}")

    print(f"\n{bill.line_count} line{'s' if bill.line_count != 1 else ''}:\n")
    for line in bill.lines:
        name = line.line_name or ""
        print(f"  {line.line_number:<14} {name:<28} {line.total:>12,.2f}")

    print(f"\n  {'Total amount due':<43} {bill.total_amount:>12,.2f}")
    print()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract per-line charges from a phone bill PDF.",
    )
    parser.add_argument("pdf", help="Path to the PDF file")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON instead of a table",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log row-by-row parsing decisions",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        format="%(levelname)s %(name)s: %(message)s",
        level=logging.DEBUG if args.verbose else logging.WARNING,
    )

    try:
        bill = parse_pdf(args.pdf)
    except InvalidBillFile as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except ParseError as exc:
        print(f"Could not read this bill: {exc.message}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(bill.to_dict(), indent=2))
    else:
        print_bill(bill)
    return 0


if __name__ == "__main__":
    sys.exit(main())
