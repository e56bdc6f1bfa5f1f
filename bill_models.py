from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class Fragment:
    """One positioned run of text as reported by the PDF text layer.

    Coordinates are in PDF user space: y grows upward from the page bottom.
    """

    text: str
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0
    page: int = 0


@dataclass(frozen=True)
class Row:
    """Fragments judged to lie on the same visual line of a page."""

    page: int
    y_key: float
    fragments: tuple[Fragment, ...]
    flat_text: str


@dataclass(frozen=True)
class CandidateToken:
    """A currency-shaped fragment in a row, parsed to its absolute value."""

    raw_text: str
    x: float
    value: float
    index: int
    negative: bool = False


@dataclass(frozen=True)
class LineItem:
    """A single phone line and the total charged for it."""

    line_number: str
    total: float
    line_name: str | None = None


@dataclass(frozen=True)
class ParsedBill:
    """The line items of one bill, in table order, and its total amount due."""

    lines: tuple[LineItem, ...]
    total_amount: float
    billing_period: str | None = None

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def to_dict(self) -> dict:
        """Return the bill in the JSON shape served by the extraction API."""
        return {
            "total_amount": self.total_amount,
            "line_count": self.line_count,
            "billing_period": self.billing_period,
            "lines": [
                {
                    "phone_number": line.line_number,
                    "line_name": line.line_name or "",
                    "amount_owed": line.total,
                }
                for line in self.lines
            ],
        }


@dataclass(frozen=True)
class BillLayout:
    """Landmarks and numeric bounds for one statement layout family."""

    start_marker: str = "Monthly charges"
    stop_markers: tuple[str, ...] = field(
        default=("Subtotal for Group", "Total for Wireless", "Detailed usage")
    )
    row_tolerance: float = 2.0
    min_line_total: float = 1.0
    max_line_total: float = 500.0
    max_bill_total: float = 10_000.0


DEFAULT_LAYOUT = BillLayout()


class ParseErrorKind(Enum):
    EMPTY_INPUT = "empty_input"
    NO_CONTENT = "empty_input"
    NO_LINE_ITEMS = "no_line_items"
    NO_PLAUSIBLE_TOTAL = "no_plausible_total"


class ParseError(Exception):
    """A whole-document failure: the bill could not be read."""

    def __init__(self, kind: ParseErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class InvalidBillFile(ValueError):
    """The input file is missing, not a PDF, or too large to parse."""
