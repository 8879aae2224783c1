"""Pure slot carving for vendor working windows.

A working window is walked with a cursor: each step carves a candidate of
``duration`` minutes, drops it when it touches a break, and then moves the
cursor on by ``duration + buffer`` whether or not the candidate was kept. The
walk stops once a candidate would run past the end of the window.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from typing import Iterable, Sequence

from ordo.core.errors import ValidationError


@dataclass(slots=True, frozen=True, order=True)
class SlotWindow:
    """Start/end pair (local wall-clock times) of a generated slot."""

    start: time
    end: time


def _to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def _from_minutes(value: int) -> time:
    return time(hour=value // 60, minute=value % 60)


def _overlaps(start: int, end: int, blocks: Sequence[tuple[int, int]]) -> bool:
    return any(start < block_end and end > block_start for block_start, block_end in blocks)


def generate_windows(
    start: time,
    end: time,
    breaks: Iterable[tuple[time, time]],
    duration_minutes: int,
    buffer_minutes: int = 0,
) -> list[SlotWindow]:
    """Carve ``[start, end)`` into slots of ``duration_minutes`` avoiding breaks."""
    if duration_minutes <= 0:
        raise ValidationError("Slot duration must be positive")
    if buffer_minutes < 0:
        raise ValidationError("Buffer must not be negative")

    window_start = _to_minutes(start)
    window_end = _to_minutes(end)
    blocks = [(_to_minutes(b_start), _to_minutes(b_end)) for b_start, b_end in breaks]
    step = duration_minutes + buffer_minutes

    windows: list[SlotWindow] = []
    cursor = window_start
    while cursor + duration_minutes <= window_end:
        slot_end = cursor + duration_minutes
        if not _overlaps(cursor, slot_end, blocks):
            windows.append(SlotWindow(_from_minutes(cursor), _from_minutes(slot_end)))
        cursor += step
    return windows


def validate_window(
    start: time,
    end: time,
    breaks: Sequence[tuple[time, time]],
    duration_minutes: int,
    buffer_minutes: int,
) -> None:
    """Raise ``ValidationError`` when a working window is malformed."""
    if end < start:
        raise ValidationError("End time must not be before start time")
    if duration_minutes <= 0:
        raise ValidationError("Default duration must be positive")
    if buffer_minutes < 0:
        raise ValidationError("Buffer must not be negative")
    previous_end: time | None = None
    for b_start, b_end in sorted(breaks):
        if b_end <= b_start:
            raise ValidationError("Break end must be after break start")
        if b_start < start or b_end > end:
            raise ValidationError("Breaks must lie within the working window")
        if previous_end is not None and b_start < previous_end:
            raise ValidationError("Breaks must not overlap")
        previous_end = b_end


__all__ = ["SlotWindow", "generate_windows", "validate_window"]
