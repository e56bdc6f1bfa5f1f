from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from bill_models import DEFAULT_LAYOUT, BillLayout, LineItem, ParsedBill

logger = logging.getLogger(__name__)

# Tried in order; the first one whose amount is plausible wins.
_TOTAL_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("total due", re.compile(r"Total due\s*\$?([\d,]+\.\d{2})", re.IGNORECASE)),
    ("total amount due", re.compile(r"Total Amount Due\s*\$?([\d,]+\.\d{2})", re.IGNORECASE)),
    ("autopay", re.compile(r"AutoPay.*?\$?([\d,]+\.\d{2})", re.IGNORECASE)),
]

_BILLING_PERIOD_RE = re.compile(
    r"(\w{3}\s+\d{1,2},?\s+\d{4})\s*-\s*(\w{3}\s+\d{1,2},?\s+\d{4})",
    re.IGNORECASE,
)


def _parse_amount(raw: str) -> float | None:
    try:
        return float(raw.replace(",", ""))
    except ValueError:
        return None


def find_total_due(text: str, layout: BillLayout = DEFAULT_LAYOUT) -> float | None:
    """Return the document-stated amount due, or None if none is plausible."""
    for label, pattern in _TOTAL_PATTERNS:
        m = pattern.search(text)
        if m is None:
            continue
        amount = _parse_amount(m.group(1))
        if amount is not None and 0 < amount < layout.max_bill_total:
            logger.info("found total amount $%.2f (%s)", amount, label)
            return amount
        logger.debug("ignored implausible %s amount %r", label, m.group(1))
    return None


def sum_line_totals(lines: Iterable[LineItem]) -> float:
    return round(sum(line.total for line in lines), 2)


def reconcile_total(
    text: str,
    lines: Iterable[LineItem],
    layout: BillLayout = DEFAULT_LAYOUT,
) -> float:
    """Use the stated amount due, falling back to the sum of the line totals."""
    stated = find_total_due(text, layout)
    if stated is not None:
        return stated
    total = sum_line_totals(lines)
    logger.info("no total found in text, using sum of lines: $%.2f", total)
    return total


def find_billing_period(text: str) -> str | None:
    """Return the first ``Mon D, YYYY - Mon D, YYYY`` range in *text*."""
    m = _BILLING_PERIOD_RE.search(text)
    return m.group(0) if m else None


def build_parsed_bill(
    lines: Iterable[LineItem],
    text: str,
    layout: BillLayout = DEFAULT_LAYOUT,
) -> ParsedBill:
    lines = tuple(lines)
    return ParsedBill(
        lines=lines,
        total_amount=reconcile_total(text, lines, layout),
        billing_period=find_billing_period(text),
    )
