"""
llm_arrange.validator
---------------------

Visible-area-under-occlusion check for a predicted window layout.

For every non-minimised window the validator removes, piece by piece, the
parts covered by windows stacked above it on the same display and sums what
is left.  A window whose visible area drops below the floor (100×100 px by
default) is reported as a violation.

Stacking order is total: a higher ``layer`` is in front, and on equal layers
the window that comes later in the list is in front.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Sequence

from llm_arrange.constants import MIN_VISIBLE_AREA
from llm_arrange.models import (
    DEFAULT_DISPLAY,
    Display,
    Overlap,
    Rect,
    ValidationResult,
    Violation,
    WindowState,
)

_LOG = logging.getLogger(__name__)

__all__ = [
    "window_keys",
    "visible_area",
    "calculate_overlaps",
    "validate",
    "symbolic_analysis",
]


def window_keys(windows: Sequence[WindowState]) -> list[str]:
    """
    Unique key per window.

    ``app_id`` when the app appears once, ``app_id#window_id`` when it
    repeats, and ``app_id#window_id@index`` when that is taken as well.
    """
    counts = Counter(w.app_id for w in windows)
    keys: list[str] = []
    taken: set[str] = set()
    for index, window in enumerate(windows):
        key = window.app_id
        if counts[window.app_id] > 1:
            key = f"{window.app_id}#{window.window_id}"
        if key in taken:
            key = f"{key}@{index}"
        taken.add(key)
        keys.append(key)
    return keys


def _is_above(windows: Sequence[WindowState], j: int, i: int) -> bool:
    """True when window *j* is stacked in front of window *i*."""
    if windows[j].layer != windows[i].layer:
        return windows[j].layer > windows[i].layer
    return j > i


def _display_bounds(window: WindowState, displays: Sequence[Display]) -> Rect:
    for display in displays:
        if display.index == window.display_index:
            return display.bounds
    if displays:
        return displays[0].bounds
    return DEFAULT_DISPLAY.bounds


def visible_area(
    windows: Sequence[WindowState],
    index: int,
    displays: Sequence[Display] = (),
) -> float:
    """
    Visible pixel area of ``windows[index]``.

    Minimised windows have no visible area and never occlude others.  The
    part of the window outside its display is not visible; without
    *displays* the default 1440×900 screen is assumed.
    """
    window = windows[index]
    if window.minimized:
        return 0.0

    clipped = window.frame.intersection(_display_bounds(window, displays))
    region = [clipped] if clipped is not None else []

    for j, other in enumerate(windows):
        if not region:
            break
        if j == index or other.minimized or other.display_index != window.display_index:
            continue
        if not _is_above(windows, j, index):
            continue
        region = [piece for rect in region for piece in rect.subtract(other.frame)]

    return sum(rect.area for rect in region)


def calculate_overlaps(windows: Sequence[WindowState]) -> tuple[Overlap, ...]:
    """Pairwise intersections between non-minimised windows on the same display."""
    keys = window_keys(windows)
    overlaps: list[Overlap] = []
    for i, first in enumerate(windows):
        if first.minimized:
            continue
        for j in range(i + 1, len(windows)):
            second = windows[j]
            if second.minimized or second.display_index != first.display_index:
                continue
            rect = first.frame.intersection(second.frame)
            if rect is not None:
                overlaps.append(Overlap(keys[i], keys[j], rect))
    return tuple(overlaps)


def validate(
    windows: Sequence[WindowState],
    displays: Sequence[Display] = (),
    min_area: float = MIN_VISIBLE_AREA,
) -> ValidationResult:
    """Check every non-minimised window against the visible-area floor."""
    keys = window_keys(windows)
    areas: dict[str, float] = {}
    violations: list[Violation] = []

    for index, window in enumerate(windows):
        if window.minimized:
            continue
        area = visible_area(windows, index, displays)
        areas[keys[index]] = area
        if area < min_area:
            violations.append(Violation(keys[index], min_area, area))

    if violations:
        _LOG.debug(
            "%d/%d windows below %dpx²: %s",
            len(violations),
            len(windows),
            int(min_area),
            ", ".join(v.window_key for v in violations),
        )

    return ValidationResult(
        is_valid=not violations,
        violations=tuple(violations),
        visible_areas=areas,
        overlaps=calculate_overlaps(windows),
    )


def symbolic_analysis(
    windows: Sequence[WindowState],
    displays: Sequence[Display] = (),
    min_area: float = MIN_VISIBLE_AREA,
    result: ValidationResult | None = None,
) -> str:
    """
    Plain-text report of layout, overlaps and violations.

    Pass *result* to reuse a validation already computed for *windows*.
    """
    if result is None:
        result = validate(windows, displays, min_area)
    lines = ["SYMBOLIC WINDOW ANALYSIS:", "", "WINDOW LAYOUT:"]
    ordered = sorted(enumerate(windows), key=lambda item: (item[1].layer, item[0]), reverse=True)
    lines.extend(f"- {w.symbolic}" for _, w in ordered)

    lines.extend(["", "OVERLAP ANALYSIS:"])
    if result.overlaps:
        lines.extend(f"- {o.symbolic}" for o in result.overlaps)
    else:
        lines.append("- none")

    lines.extend(["", "CONSTRAINT VALIDATION:"])
    if result.is_valid:
        lines.append(f"✓ All windows keep at least {int(min_area)}px² visible")
    else:
        lines.append(f"✗ {len(result.violations)} constraint violations found:")
        lines.extend(
            f"  - {v.window_key}: {int(v.actual_area)}px² visible (need {int(v.required_area)}px²)"
            for v in result.violations
        )
    return "\n".join(lines)
