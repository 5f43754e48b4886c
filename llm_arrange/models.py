"""
llm_arrange.models
------------------

Shared value types that flow through the pipeline.

Every type here is an immutable dataclass.  Components never mutate a value
they receive; transformations build a new value with ``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from llm_arrange.constants import (
    CommandAction,
    DEFAULT_DISPLAY_SIZE,
    FALLBACK_CORE_CHARS,
    LLMProvider,
    WindowPosition,
    WindowSize,
)

# --------------------------------------------------------------------------- #
# Geometry                                                                    #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class Rect:
    """Axis-aligned rectangle in absolute pixel coordinates (top-left origin)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        if self.is_empty:
            return 0.0
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def intersection(self, other: "Rect") -> Optional["Rect"]:
        """Return the overlapping rectangle or ``None`` when disjoint."""
        left = max(self.x, other.x)
        top = max(self.y, other.y)
        right = min(self.max_x, other.max_x)
        bottom = min(self.max_y, other.max_y)
        if right <= left or bottom <= top:
            return None
        return Rect(left, top, right - left, bottom - top)

    def subtract(self, other: "Rect") -> list["Rect"]:
        """
        Return the parts of *self* not covered by *other*.

        The remainder is sliced into at most four non-overlapping pieces: a
        full-width band above the cut, a full-width band below it, and the
        left / right pieces of the middle band.
        """
        cut = self.intersection(other)
        if cut is None:
            return [self]

        pieces = [
            Rect(self.x, self.y, self.width, cut.y - self.y),
            Rect(self.x, cut.max_y, self.width, self.max_y - cut.max_y),
            Rect(self.x, cut.y, cut.x - self.x, cut.height),
            Rect(cut.max_x, cut.y, self.max_x - cut.max_x, cut.height),
        ]
        return [p for p in pieces if not p.is_empty]


@dataclass(frozen=True, slots=True)
class Display:
    """One physical display; windows reference it by ``index``."""

    index: int
    width: float
    height: float
    x: float = 0.0
    y: float = 0.0

    @property
    def bounds(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)


DEFAULT_DISPLAY = Display(0, *DEFAULT_DISPLAY_SIZE)


# --------------------------------------------------------------------------- #
# Canonical command                                                           #
# --------------------------------------------------------------------------- #

_PLACEMENT_ACTIONS = (CommandAction.MOVE, CommandAction.COMPOSITE_POSITION)


def _check_percent(name: str, pair: tuple[float, float] | None) -> None:
    if pair is None:
        return
    for value in pair:
        if not 0.0 <= value <= 100.0:
            raise ValueError(f"{name} component {value!r} outside 0-100%")


@dataclass(frozen=True, slots=True)
class CanonicalCommand:
    """
    Provider-agnostic representation of one requested window operation.

    ``custom_position`` is ``(x%, y%)`` and ``custom_size`` is ``(w%, h%)``
    relative to the target display.  Symbolic and custom placement are
    mutually exclusive.
    """

    action: CommandAction
    target: str
    position: Optional[WindowPosition] = None
    size: Optional[WindowSize] = None
    custom_position: Optional[tuple[float, float]] = None
    custom_size: Optional[tuple[float, float]] = None
    layer: Optional[int] = None
    focus: Optional[bool] = None
    display: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.target:
            raise ValueError("command target must be a non-empty string")

        symbolic = self.position is not None or self.size is not None
        custom = self.custom_position is not None or self.custom_size is not None
        if symbolic and custom:
            raise ValueError("symbolic and custom placement are mutually exclusive")

        _check_percent("custom_position", self.custom_position)
        _check_percent("custom_size", self.custom_size)

        if self.action in _PLACEMENT_ACTIONS:
            has_custom_rect = (
                self.custom_position is not None and self.custom_size is not None
            )
            if self.position is None and not has_custom_rect:
                raise ValueError(
                    f"{self.action.value} requires a symbolic position or a custom rectangle"
                )

    @property
    def is_custom(self) -> bool:
        return self.custom_position is not None or self.custom_size is not None


# --------------------------------------------------------------------------- #
# Window snapshot                                                             #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class WindowState:
    """One window as seen by the simulator and validator."""

    app_id: str
    window_id: str
    frame: Rect
    layer: int
    display_index: int = 0
    minimized: bool = False

    @property
    def symbolic(self) -> str:
        f = self.frame
        notation = f"{self.app_id}[{int(f.x)},{int(f.y)},{int(f.width)},{int(f.height)},L{self.layer}]"
        if self.minimized:
            notation += "[MINIMIZED]"
        if self.display_index > 0:
            notation += f"[D{self.display_index}]"
        return notation


# --------------------------------------------------------------------------- #
# Tool invocations                                                            #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class IntValue:
    value: int


@dataclass(frozen=True, slots=True)
class FloatValue:
    value: float


@dataclass(frozen=True, slots=True)
class StrValue:
    value: str


@dataclass(frozen=True, slots=True)
class BoolValue:
    value: bool


ArgValue = Union[IntValue, FloatValue, StrValue, BoolValue]


@dataclass(frozen=True, slots=True)
class ToolInvocation:
    """A provider function call normalised to name + tagged arguments."""

    id: str
    name: str
    args: Mapping[str, ArgValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.args, MappingProxyType):
            object.__setattr__(self, "args", MappingProxyType(dict(self.args)))


# --------------------------------------------------------------------------- #
# Validation                                                                  #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class Violation:
    window_key: str
    required_area: float
    actual_area: float

    @property
    def difference(self) -> float:
        return max(self.required_area - self.actual_area, 0.0)

    def describe(self) -> str:
        return (
            f"{self.window_key} would have only {int(self.actual_area)}px² visible "
            f"(needs {int(self.required_area)}px²)"
        )


@dataclass(frozen=True, slots=True)
class Overlap:
    first: str
    second: str
    rect: Rect

    @property
    def symbolic(self) -> str:
        r = self.rect
        return (
            f"{self.first}∩{self.second} = "
            f"[{int(r.x)},{int(r.y)},{int(r.width)},{int(r.height)}] = {int(r.area)}px²"
        )


@dataclass(frozen=True, slots=True)
class ValidationResult:
    is_valid: bool
    violations: tuple[Violation, ...] = ()
    visible_areas: Mapping[str, float] = field(default_factory=dict)
    overlaps: tuple[Overlap, ...] = ()


# --------------------------------------------------------------------------- #
# Provider request / response                                                 #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class GenerationConfig:
    """Sampling settings for one provider call; ``None`` tokens = auto."""

    temperature: float = 0.0
    max_output_tokens: Optional[int] = None


@dataclass(frozen=True, slots=True)
class PromptSections:
    """
    System prompt split by priority.

    The pipeline never inspects the content; the sections only let a
    provider adapter drop low-priority context after a length cut-off.
    """

    core: str
    geometry: str = ""
    windows: tuple[str, ...] = ()
    extra: str = ""

    @classmethod
    def coerce(cls, prompt: "PromptSections | str") -> "PromptSections":
        if isinstance(prompt, PromptSections):
            return prompt
        return cls(core=prompt)

    def render(self) -> str:
        return self._join(self.windows, self.extra)

    def compact(self, max_windows: int, max_core_chars: int = FALLBACK_CORE_CHARS) -> str:
        """
        Core + geometry + the first *max_windows* window lines.

        When dropping context does not shorten the prompt (a plain string
        has only ``core``), the core is cut to at most half its length and
        *max_core_chars*, on the last line break before the limit.
        """
        kept = self.windows[:max_windows]
        if len(self.windows) > max_windows:
            kept = kept + (f"... and {len(self.windows) - max_windows} more windows",)
        text = self._join(kept, "")
        if len(text) < len(self.render()):
            return text

        limit = min(max_core_chars, len(self.core) // 2)
        cut = self.core.rfind("\n", 0, limit + 1)
        core = self.core[: cut if cut > 0 else limit].rstrip()
        shortened = PromptSections(core=core, geometry=self.geometry, windows=kept)
        return shortened._join(kept, "")

    def append(self, text: str) -> "PromptSections":
        """Return a copy with *text* appended to the core instructions."""
        return PromptSections(
            core=self.core + text,
            geometry=self.geometry,
            windows=self.windows,
            extra=self.extra,
        )

    def _join(self, windows: tuple[str, ...], extra: str) -> str:
        parts = [self.core]
        if self.geometry:
            parts.append(self.geometry)
        if windows:
            parts.append("\n".join(windows))
        if extra:
            parts.append(extra)
        return "\n\n".join(parts)


@dataclass(frozen=True, slots=True)
class ProviderResponse:
    """
    Decoded provider reply.

    ``body`` is the provider's own wire model and is only meaningful to the
    adapter that produced it.  ``degraded`` marks a reply obtained from the
    shortened-prompt fallback; ``truncated`` stays set when even that reply
    hit the output limit.
    """

    provider: LLMProvider
    body: Any
    text: str = ""
    truncated: bool = False
    degraded: bool = False


# --------------------------------------------------------------------------- #
# Pipeline outcomes                                                           #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class PipelineResult:
    commands: tuple[CanonicalCommand, ...]
    passed: bool
    attempts: int
    validation: Optional[ValidationResult] = None
    truncated: bool = False
    notes: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Cancelled:
    reason: str
    attempts: int = 0
