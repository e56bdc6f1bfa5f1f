from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import Optional

from bill_models import DEFAULT_LAYOUT, BillLayout, CandidateToken, LineItem, Row

logger = logging.getLogger(__name__)

_PHONE_RE = re.compile(r"(?<!\d)\d{3}([.-])\d{3}\1\d{4}(?!\d)")

# "$12.50", "$-12.50", "$(12.50)"; only tokens opening with "$" count.
# Trailing text is ignored.
_CURRENCY_RE = re.compile(
    r"\$(?P<paren>\()?(?P<sign>[-−])?(?P<amount>\d[\d,]*(?:\.\d+)?|\.\d+)"
)
_MINUS_GLYPHS = frozenset({"-", "−", "–"})
_NAME_TRIM = " -−–(:"

_TOTAL_FOR_RE = re.compile(
    r"Total for\s+(?P<phone>\d{3}([.-])\d{3}\2\d{4})\s+\$(?P<amount>\d{1,3}(?:,\d{3})*\.\d{2})",
    re.IGNORECASE,
)

TotalSelector = Callable[[Sequence[CandidateToken]], Optional[CandidateToken]]


# ---------------------------------------------------------------------------
# Section scanning
# ---------------------------------------------------------------------------

def iter_section_rows(rows: Iterable[Row], layout: BillLayout = DEFAULT_LAYOUT) -> Iterator[Row]:
    """Yield the rows between the start landmark and the next stop landmark.

    The landmark rows themselves are never yielded. The section may open and
    close more than once (one table per page).
    """
    inside = False
    for row in rows:
        text = row.flat_text
        if layout.start_marker in text:
            logger.debug("section start on page %d: %r", row.page, text[:50])
            inside = True
            continue

        if inside and any(marker in text for marker in layout.stop_markers):
            logger.debug("section stop on page %d: %r", row.page, text[:50])
            inside = False

        if inside:
            yield row


# ---------------------------------------------------------------------------
# Row extraction
# ---------------------------------------------------------------------------

def parse_currency(text: str) -> tuple[float, bool] | None:
    """Return ``(absolute value, negative)`` for a currency-shaped token, else None."""
    m = _CURRENCY_RE.match(text.strip())
    if m is None:
        return None
    try:
        value = float(m.group("amount").replace(",", ""))
    except ValueError:
        return None
    negative = m.group("sign") is not None or m.group("paren") is not None
    return abs(value), negative


def find_candidates(row: Row) -> list[CandidateToken]:
    """Collect every currency-shaped fragment in *row*, in left-to-right order."""
    candidates: list[CandidateToken] = []
    for index, fragment in enumerate(row.fragments):
        parsed = parse_currency(fragment.text)
        if parsed is None:
            continue
        value, negative = parsed
        candidates.append(
            CandidateToken(
                raw_text=fragment.text,
                x=fragment.x,
                value=value,
                index=index,
                negative=negative,
            )
        )
    return candidates


def reasonable_candidates(
    candidates: Iterable[CandidateToken],
    layout: BillLayout = DEFAULT_LAYOUT,
) -> list[CandidateToken]:
    return [c for c in candidates if layout.min_line_total <= c.value <= layout.max_line_total]


def select_largest_total(candidates: Sequence[CandidateToken]) -> CandidateToken | None:
    """Pick the line total from a row's reasonable prices.

    The total column sums plan, equipment, add-ons, fees and taxes, so it is
    taken to be the largest figure in the row. The leftmost one wins a tie.
    """
    if not candidates:
        return None
    return max(candidates, key=lambda c: c.value)


def _signed_total(row: Row, chosen: CandidateToken) -> float:
    previous = row.fragments[chosen.index - 1].text.strip() if chosen.index > 0 else ""
    if chosen.negative or previous in _MINUS_GLYPHS:
        logger.debug("negative sign on %s", chosen.raw_text)
        return -chosen.value
    return chosen.value


def _holder_name(flat_text: str, phone_end: int) -> str | None:
    rest = flat_text[phone_end:].split("$", 1)[0]
    name = " ".join(rest.split()).strip(_NAME_TRIM)
    if not any(ch.isalpha() for ch in name):
        return None
    return name


def extract_row_item(
    row: Row,
    layout: BillLayout = DEFAULT_LAYOUT,
    select_total: TotalSelector = select_largest_total,
) -> LineItem | None:
    """Turn one in-section row into a LineItem, or None when it carries no line."""
    phone = _PHONE_RE.search(row.flat_text)
    if phone is None:
        return None

    candidates = find_candidates(row)
    if not candidates:
        logger.debug("%s: no prices in row", phone.group())
        return None
    logger.debug(
        "%s: found %d prices: %s",
        phone.group(),
        len(candidates),
        ", ".join(f"{c.raw_text}(x={c.x:.1f})" for c in candidates),
    )

    reasonable = reasonable_candidates(candidates, layout)
    chosen = select_total(reasonable)
    if chosen is None:
        logger.debug(
            "%s: skipped, no price within [%g, %g]",
            phone.group(),
            layout.min_line_total,
            layout.max_line_total,
        )
        return None

    return LineItem(
        line_number=phone.group(),
        total=_signed_total(row, chosen),
        line_name=_holder_name(row.flat_text, phone.end()),
    )


def iter_row_items(
    rows: Iterable[Row],
    layout: BillLayout = DEFAULT_LAYOUT,
    select_total: TotalSelector = select_largest_total,
) -> Iterator[LineItem]:
    """Yield a LineItem for each row of the line-item section that has one."""
    for row in iter_section_rows(rows, layout):
        item = extract_row_item(row, layout, select_total)
        if item is not None:
            yield item


# ---------------------------------------------------------------------------
# Whole-text fallback and merge
# ---------------------------------------------------------------------------

def iter_fallback_items(text: str) -> Iterator[LineItem]:
    """Yield line totals written as ``Total for <number> $<amount>`` sentences."""
    for m in _TOTAL_FOR_RE.finditer(text):
        yield LineItem(
            line_number=m.group("phone"),
            total=float(m.group("amount").replace(",", "")),
        )


def merge_line_items(*producers: Iterable[LineItem]) -> list[LineItem]:
    """Merge producers in order, keeping the first item seen for each number."""
    merged: dict[str, LineItem] = {}
    for producer in producers:
        for item in producer:
            if item.line_number in merged:
                logger.debug("skipped duplicate %s", item.line_number)
                continue
            merged[item.line_number] = item
    return list(merged.values())
