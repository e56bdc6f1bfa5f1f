from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Iterable, Mapping

from bill_models import DEFAULT_LAYOUT, BillLayout, Fragment, Row

logger = logging.getLogger(__name__)


def _as_float(value) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def fragments_from_items(items: Iterable[Mapping], page: int = 0) -> list[Fragment]:
    """Normalize raw text-layer items from one page into Fragments.

    Each item carries its string under ``str`` (or ``text``) and a 6-element
    ``transform`` matrix whose last two entries are the x/y origin. Items with
    no text or no usable transform are dropped.
    """
    fragments: list[Fragment] = []
    dropped = 0
    for item in items:
        text = item.get("str", item.get("text"))
        transform = item.get("transform")
        if not text or not transform or len(transform) < 6:
            dropped += 1
            continue

        x = _as_float(transform[4])
        y = _as_float(transform[5])
        if x is None or y is None:
            dropped += 1
            continue

        fragments.append(
            Fragment(
                text=str(text),
                x=x,
                y=y,
                width=_as_float(item.get("width")) or 0.0,
                height=_as_float(item.get("height")) or 0.0,
                page=page,
            )
        )

    if dropped:
        logger.debug("page %d: dropped %d items without text or transform", page, dropped)
    return fragments


def build_fragment_stream(pages: Iterable[Iterable[Mapping]]) -> list[Fragment]:
    """Flatten per-page raw items into one page-ordered Fragment sequence."""
    stream: list[Fragment] = []
    for page_index, items in enumerate(pages):
        stream.extend(fragments_from_items(items, page=page_index))
    return stream


def _is_degenerate(fragment: Fragment) -> bool:
    return _as_float(fragment.x) is None or _as_float(fragment.y) is None


def _bucket(y: float, tolerance: float) -> float:
    # Half-up rounding so y=3.0 with tolerance 2 lands in bucket 4, not 2.
    return math.floor(y / tolerance + 0.5) * tolerance


def cluster_rows(fragments: Iterable[Fragment], layout: BillLayout = DEFAULT_LAYOUT) -> list[Row]:
    """Group fragments into rows ordered top-to-bottom, page by page.

    Fragments share a row when their y rounds to the same multiple of
    ``layout.row_tolerance`` on the same page. Within a row they are sorted
    by x; rows are sorted by page, then by descending y (PDF y grows upward).
    """
    by_key: dict[tuple[int, float], list[Fragment]] = defaultdict(list)
    for fragment in fragments:
        if _is_degenerate(fragment):
            continue
        by_key[(fragment.page, _bucket(fragment.y, layout.row_tolerance))].append(fragment)

    rows: list[Row] = []
    for page, y_key in sorted(by_key, key=lambda k: (k[0], -k[1])):
        ordered = tuple(sorted(by_key[(page, y_key)], key=lambda f: f.x))
        flat_text = " ".join(f.text for f in ordered)
        rows.append(Row(page=page, y_key=y_key, fragments=ordered, flat_text=flat_text))

    logger.debug("clustered fragments into %d rows", len(rows))
    return rows


def rows_to_text(rows: Iterable[Row]) -> str:
    """Rejoin rows into plain document text, one row per line."""
    return "\n".join(row.flat_text for row in rows)
