"""Reading-order sorting of frames placed freely on a canvas."""
from __future__ import annotations

from typing import Iterable, List, TypeVar

from .models import Box


B = TypeVar("B", bound=Box)


def is_same_row(previous: Box, current: Box) -> bool:
    """True if `current` starts within the upper half of `previous`."""
    return abs(current.y - previous.y) <= previous.height / 2


def group_rows(boxes: Iterable[B]) -> List[List[B]]:
    """
    Split boxes into rows.

    Boxes are sorted by `y`, then each box joins the row of its predecessor
    when it passes `is_same_row` against that predecessor. A failing pair
    starts a new row.

    Args:
        boxes: Boxes in any order

    Returns:
        Rows from top to bottom, each row still in `y` order
    """
    by_y = sorted(boxes, key=lambda box: box.y)
    if not by_y:
        return []

    rows: List[List[B]] = []
    row = [by_y[0]]
    for previous, current in zip(by_y, by_y[1:]):
        if is_same_row(previous, current):
            row.append(current)
        else:
            rows.append(row)
            row = [current]
    # The last row is flushed as well
    rows.append(row)
    return rows


def sort_frames(boxes: Iterable[B]) -> List[B]:
    """
    Order boxes top-to-bottom, then left-to-right within a row.

    Args:
        boxes: Boxes in any order

    Returns:
        A new list in reading order
    """
    ordered: List[B] = []
    for row in group_rows(boxes):
        ordered.extend(sorted(row, key=lambda box: box.x))
    return ordered
