"""
llm_arrange.simulator
---------------------

Predict the window layout a list of canonical commands would produce.

``apply`` is pure and deterministic: it never touches real windows, never
mutates its inputs and returns a fresh tuple of ``WindowState`` values.
Commands are processed in order, so a later command for the same window
overrides an earlier one.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Sequence

from llm_arrange.constants import (
    SIZE_FRACTIONS,
    UNIFORM_SIZES,
    CommandAction,
    WindowPosition,
    WindowSize,
)
from llm_arrange.models import DEFAULT_DISPLAY, CanonicalCommand, Display, Rect, WindowState

_LOG = logging.getLogger(__name__)

__all__ = ["apply", "placement_fractions", "resolve_display"]

_THIRD = 1 / 3

# Column positions ignore the requested size.
_THIRD_COLUMNS: dict[WindowPosition, tuple[float, float, float, float]] = {
    WindowPosition.LEFT_THIRD: (0.0, 0.0, _THIRD, 1.0),
    WindowPosition.MIDDLE_THIRD: (_THIRD, 0.0, _THIRD, 1.0),
    WindowPosition.RIGHT_THIRD: (2 * _THIRD, 0.0, _THIRD, 1.0),
}


def placement_fractions(
    position: WindowPosition, size: WindowSize | None
) -> tuple[float, float, float, float]:
    """
    Return ``(x, y, w, h)`` as fractions of the display.

    >>> placement_fractions(WindowPosition.LEFT, WindowSize.HALF)
    (0.0, 0.0, 0.5, 1.0)
    """
    if position in _THIRD_COLUMNS:
        return _THIRD_COLUMNS[position]

    f = SIZE_FRACTIONS[size or WindowSize.HALF]
    rest = 1.0 - f
    table = {
        WindowPosition.LEFT: (0.0, 0.0, f, 1.0),
        WindowPosition.RIGHT: (rest, 0.0, f, 1.0),
        WindowPosition.TOP: (0.0, 0.0, 1.0, f),
        WindowPosition.BOTTOM: (0.0, rest, 1.0, f),
        WindowPosition.TOP_LEFT: (0.0, 0.0, f, f),
        WindowPosition.TOP_RIGHT: (rest, 0.0, f, f),
        WindowPosition.BOTTOM_LEFT: (0.0, rest, f, f),
        WindowPosition.BOTTOM_RIGHT: (rest, rest, f, f),
        WindowPosition.CENTER: (rest / 2, rest / 2, f, f),
    }
    return table[position]


def resolve_display(index: int, displays: Sequence[Display]) -> Display:
    """Return the display with *index*, falling back to the first one."""
    for display in displays:
        if display.index == index:
            return display
    if displays:
        return displays[0]
    return DEFAULT_DISPLAY


def _frame_from_fractions(display: Display, x: float, y: float, w: float, h: float) -> Rect:
    return Rect(
        display.x + x * display.width,
        display.y + y * display.height,
        w * display.width,
        h * display.height,
    )


def _placed_frame(command: CanonicalCommand, display: Display) -> Rect:
    if command.custom_position is not None and command.custom_size is not None:
        (px, py), (pw, ph) = command.custom_position, command.custom_size
        return _frame_from_fractions(display, px / 100, py / 100, pw / 100, ph / 100)
    return _frame_from_fractions(display, *placement_fractions(command.position, command.size))


def _resized_frame(command: CanonicalCommand, current: Rect, display: Display) -> Rect:
    if command.custom_size is not None:
        pw, ph = command.custom_size
        return replace(current, width=pw / 100 * display.width, height=ph / 100 * display.height)
    if command.size is None:
        return current

    f = SIZE_FRACTIONS[command.size]
    if command.size in UNIFORM_SIZES:
        return replace(current, width=f * display.width, height=f * display.height)
    return replace(current, width=f * display.width)


def _apply_one(
    command: CanonicalCommand,
    windows: list[WindowState],
    displays: Sequence[Display],
) -> list[WindowState]:
    index = next((i for i, w in enumerate(windows) if w.app_id == command.target), None)
    if index is None:
        # The window may not exist yet (e.g. an app about to be opened)
        _LOG.debug("No window for '%s'; %s ignored", command.target, command.action.value)
        return windows

    window = windows[index]
    action = command.action
    display_index = command.display if command.display is not None else window.display_index
    display = resolve_display(display_index, displays)

    if action in (CommandAction.MOVE, CommandAction.COMPOSITE_POSITION):
        updated = replace(
            window,
            frame=_placed_frame(command, display),
            display_index=display.index,
            minimized=False,
        )
    elif action is CommandAction.RESIZE:
        updated = replace(
            window,
            frame=_resized_frame(command, window.frame, display),
            display_index=display.index,
        )
    elif action is CommandAction.MINIMIZE:
        updated = replace(window, minimized=True)
    elif action is CommandAction.RESTORE:
        updated = replace(window, minimized=False)
    elif action is CommandAction.CLOSE:
        return windows[:index] + windows[index + 1 :]
    elif action is CommandAction.FOCUS:
        updated = window
    else:
        raise TypeError(f"Unhandled command action: {action!r}")

    if command.layer is not None:
        updated = replace(updated, layer=command.layer)

    result = list(windows)
    result[index] = updated
    return result


def apply(
    commands: Iterable[CanonicalCommand],
    baseline: Sequence[WindowState],
    displays: Sequence[Display] = (),
) -> tuple[WindowState, ...]:
    """
    Apply *commands* in order to a copy of *baseline*.

    Each command acts on the first window whose ``app_id`` equals its
    target.  Commands without a matching window are no-ops.
    """
    working = list(baseline)
    for command in commands:
        working = _apply_one(command, working, displays)
    return tuple(working)
