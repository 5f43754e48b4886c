"""
llm_arrange.tools
-----------------

Internal tool catalog.

The catalog is provider-neutral: each adapter renders it into its own schema
dialect (see ``ProviderAdapter.declare_tools``).  Both the catalog and every
rendering are immutable once built, so one catalog can be shared by
concurrent pipelines.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from llm_arrange.constants import CUSTOM_OPTION, ParamType, WindowPosition, WindowSize

__all__ = [
    "ParamSpec",
    "ToolSpec",
    "WINDOW_TOOLS",
    "tool_by_name",
]


@dataclass(frozen=True, slots=True)
class ParamSpec:
    name: str
    type: ParamType
    description: str
    required: bool = False
    options: Optional[tuple[str, ...]] = None


@dataclass(frozen=True, slots=True)
class ToolSpec:
    name: str
    description: str
    params: tuple[ParamSpec, ...]

    @property
    def required(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.params if p.required)


# --------------------------------------------------------------------------- #
# Shared parameters                                                           #
# --------------------------------------------------------------------------- #


def _app_name(verb: str) -> ParamSpec:
    return ParamSpec(
        "app_name",
        ParamType.STRING,
        f"Name of the application whose window to {verb}",
        required=True,
    )


def _percent(name: str, description: str, required: bool = False) -> ParamSpec:
    return ParamSpec(name, ParamType.STRING, description, required=required)


_DISPLAY = ParamSpec(
    "display",
    ParamType.INTEGER,
    "Display index (0 for main display, 1 for second display, etc.). "
    "Omit to use the display the window is currently on",
)

_POSITIONS = tuple(p.value for p in WindowPosition) + (CUSTOM_OPTION,)
_SIZES = tuple(s.value for s in WindowSize) + (CUSTOM_OPTION,)

# --------------------------------------------------------------------------- #
# Catalog                                                                     #
# --------------------------------------------------------------------------- #

SNAP_WINDOW = ToolSpec(
    name="snap_window",
    description="Snap a window to a position with automatic sizing (combines move and resize)",
    params=(
        _app_name("snap"),
        ParamSpec(
            "position",
            ParamType.STRING,
            "Position to snap the window to. Use 'custom' together with custom_x/custom_y",
            required=True,
            options=_POSITIONS,
        ),
        ParamSpec(
            "size",
            ParamType.STRING,
            "Size for the snapped window. Use 'custom' together with custom_width/custom_height",
            options=_SIZES,
        ),
        _percent("custom_x", "Custom X position as percentage (e.g. '25' for 25% from left)"),
        _percent("custom_y", "Custom Y position as percentage (e.g. '10' for 10% from top)"),
        _percent("custom_width", "Custom width as percentage (e.g. '50' for 50% width)"),
        _percent("custom_height", "Custom height as percentage (e.g. '75' for 75% height)"),
        _DISPLAY,
    ),
)

FLEXIBLE_POSITION = ToolSpec(
    name="flexible_position",
    description=(
        "Place a window at an exact rectangle expressed in percentages of the display, "
        "optionally setting its stacking layer and focus"
    ),
    params=(
        _app_name("position"),
        _percent("x_position", "Left edge as percentage of display width", required=True),
        _percent("y_position", "Top edge as percentage of display height", required=True),
        _percent("width", "Width as percentage of display width", required=True),
        _percent("height", "Height as percentage of display height", required=True),
        ParamSpec(
            "layer",
            ParamType.INTEGER,
            "Stacking priority; higher values are drawn in front",
        ),
        ParamSpec("focus", ParamType.BOOLEAN, "Focus the window after positioning"),
        _DISPLAY,
    ),
)

RESIZE_WINDOW = ToolSpec(
    name="resize_window",
    description="Resize a window in place without moving its top-left corner",
    params=(
        _app_name("resize"),
        ParamSpec(
            "size",
            ParamType.STRING,
            "Size to resize the window to. Use 'custom' with custom_width/custom_height",
            required=True,
            options=_SIZES,
        ),
        _percent("custom_width", "Custom width as percentage. Only used when size='custom'"),
        _percent("custom_height", "Custom height as percentage. Only used when size='custom'"),
        _DISPLAY,
    ),
)

FOCUS_APP = ToolSpec(
    name="focus_app",
    description="Focus/activate an application (brings to front)",
    params=(_app_name("focus"),),
)

MINIMIZE_APP = ToolSpec(
    name="minimize_app",
    description="Minimize an application's windows",
    params=(_app_name("minimize"),),
)

RESTORE_APP = ToolSpec(
    name="restore_app",
    description="Restore a minimized application window",
    params=(_app_name("restore"),),
)

CLOSE_APP = ToolSpec(
    name="close_app",
    description="Close an application or specific window",
    params=(_app_name("close"),),
)

WINDOW_TOOLS: tuple[ToolSpec, ...] = (
    SNAP_WINDOW,
    FLEXIBLE_POSITION,
    RESIZE_WINDOW,
    FOCUS_APP,
    MINIMIZE_APP,
    RESTORE_APP,
    CLOSE_APP,
)


def tool_by_name(name: str, tools: tuple[ToolSpec, ...] = WINDOW_TOOLS) -> ToolSpec:
    for tool in tools:
        if tool.name == name:
            return tool
    raise KeyError(f"Unknown tool: {name}")
