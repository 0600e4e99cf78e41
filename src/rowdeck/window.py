"""Windowed range calculation for virtualized tables."""

import math

from rowdeck.errors import InvalidArgument
from rowdeck.types import VisibleWindow


def compute_window(
    row_count: int,
    row_height: float,
    scroll_top: float,
    viewport_height: float,
    overscan: int = 0,
) -> VisibleWindow:
    """Compute the rows that intersect the viewport, padded by ``overscan``.

    ``offset_top_px`` is the space to reserve above the rendered slice so the
    scroll height of the whole table is preserved. An empty table yields an
    empty window (``end_index < start_index``).
    """
    if row_height <= 0:
        raise InvalidArgument(f"row_height must be positive, got {row_height!r}")
    if row_count < 0:
        raise InvalidArgument(f"row_count must not be negative, got {row_count!r}")
    if overscan < 0:
        raise InvalidArgument(f"overscan must not be negative, got {overscan!r}")

    if row_count == 0:
        return VisibleWindow(
            start_index=0, end_index=-1, offset_top_px=0, total_height_px=0
        )

    viewport_height = max(0.0, viewport_height)
    # An over-scrolled viewport shows the last full screen of rows
    max_scroll = max(0.0, row_count * row_height - viewport_height)
    scroll_top = min(max(0.0, scroll_top), max_scroll)

    # Keep at least one row so a zero-height viewport still yields a valid slice
    start = max(0, math.floor(scroll_top / row_height) - overscan)
    start = min(start, row_count - 1)
    visible = max(1, math.ceil(viewport_height / row_height)) + 2 * overscan
    end = min(row_count - 1, start + visible - 1)

    return VisibleWindow(
        start_index=start,
        end_index=end,
        offset_top_px=start * row_height,
        total_height_px=row_count * row_height,
    )


__all__ = ["compute_window"]
