"""
llm_arrange.translator
----------------------

Provider-neutral half of the translation layer.

Adapters turn their wire format into ``ToolInvocation`` values (see
``ProviderAdapter.parse_invocations``); this module maps those invocations
onto ``CanonicalCommand`` through a name-keyed dispatch table.  An unknown
tool or a missing / malformed required argument is a soft failure: the
converter returns ``None`` and the remaining invocations are still used.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Optional
from uuid import uuid4

from llm_arrange.constants import CUSTOM_OPTION, CommandAction, WindowPosition, WindowSize
from llm_arrange.errors import NoCommandsGeneratedError, NoToolsUsedError, UnsupportedValueError
from llm_arrange.models import (
    ArgValue,
    BoolValue,
    CanonicalCommand,
    FloatValue,
    IntValue,
    StrValue,
    ToolInvocation,
)

_LOG = logging.getLogger(__name__)

__all__ = [
    "box_value",
    "box_args",
    "to_canonical",
    "from_canonical",
    "commands_from_invocations",
]

Args = Mapping[str, ArgValue]

# --------------------------------------------------------------------------- #
# Boxing of raw JSON scalars                                                  #
# --------------------------------------------------------------------------- #


def box_value(raw: Any) -> ArgValue:
    """Wrap a decoded JSON scalar in its tagged variant."""
    # bool is a subclass of int and must be tested first
    if isinstance(raw, bool):
        return BoolValue(raw)
    if isinstance(raw, int):
        return IntValue(raw)
    if isinstance(raw, float):
        return FloatValue(raw)
    if isinstance(raw, str):
        return StrValue(raw)
    raise UnsupportedValueError(f"Unsupported argument type: {type(raw).__name__}")


def box_args(raw: Mapping[str, Any]) -> dict[str, ArgValue]:
    return {key: box_value(value) for key, value in raw.items()}


# --------------------------------------------------------------------------- #
# Argument readers                                                            #
# --------------------------------------------------------------------------- #


def _unsupported(value: object) -> TypeError:
    return TypeError(f"Unhandled argument variant: {value!r}")


def _text(args: Args, key: str) -> Optional[str]:
    value = args.get(key)
    if value is None:
        return None
    if isinstance(value, StrValue):
        return value.value.strip() or None
    if isinstance(value, (IntValue, FloatValue, BoolValue)):
        return None
    raise _unsupported(value)


def _parse_percent(text: str) -> Optional[float]:
    text = text.strip()
    if text.endswith("%"):
        text = text[:-1].strip()
    try:
        return float(text)
    except ValueError:
        return None


def _percent(args: Args, key: str) -> Optional[float]:
    value = args.get(key)
    if value is None:
        return None
    if isinstance(value, (IntValue, FloatValue)):
        return float(value.value)
    if isinstance(value, StrValue):
        return _parse_percent(value.value)
    if isinstance(value, BoolValue):
        return None
    raise _unsupported(value)


def _integer(args: Args, key: str) -> Optional[int]:
    value = args.get(key)
    if value is None:
        return None
    if isinstance(value, IntValue):
        return value.value
    if isinstance(value, FloatValue):
        return int(value.value) if value.value.is_integer() else None
    if isinstance(value, StrValue):
        try:
            return int(value.value.strip())
        except ValueError:
            return None
    if isinstance(value, BoolValue):
        return None
    raise _unsupported(value)


def _flag(args: Args, key: str) -> Optional[bool]:
    value = args.get(key)
    if value is None:
        return None
    if isinstance(value, BoolValue):
        return value.value
    if isinstance(value, StrValue):
        lowered = value.value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
        return None
    if isinstance(value, (IntValue, FloatValue)):
        return None
    raise _unsupported(value)


def _pair(first: Optional[float], second: Optional[float]) -> Optional[tuple[float, float]]:
    if first is None or second is None:
        return None
    return (first, second)


# --------------------------------------------------------------------------- #
# Converters                                                                  #
# --------------------------------------------------------------------------- #


def _convert_snap_window(args: Args) -> Optional[CanonicalCommand]:
    app = _text(args, "app_name")
    position = _text(args, "position")
    if not app or not position:
        return None
    position = position.lower()

    size = _text(args, "size")
    size = size.lower() if size else None
    display = _integer(args, "display")

    if position == CUSTOM_OPTION:
        custom_position = _pair(_percent(args, "custom_x"), _percent(args, "custom_y"))
        custom_size = _pair(_percent(args, "custom_width"), _percent(args, "custom_height"))
        if custom_position is None or custom_size is None:
            return None
        return CanonicalCommand(
            action=CommandAction.MOVE,
            target=app,
            custom_position=custom_position,
            custom_size=custom_size,
            display=display,
        )

    custom_size = None
    if size == CUSTOM_OPTION:
        custom_size = _pair(_percent(args, "custom_width"), _percent(args, "custom_height"))
        size = None

    return CanonicalCommand(
        action=CommandAction.MOVE,
        target=app,
        position=WindowPosition(position),
        size=WindowSize(size) if size else None,
        custom_size=custom_size,
        display=display,
    )


def _convert_flexible_position(args: Args) -> Optional[CanonicalCommand]:
    app = _text(args, "app_name")
    custom_position = _pair(_percent(args, "x_position"), _percent(args, "y_position"))
    custom_size = _pair(_percent(args, "width"), _percent(args, "height"))
    if not app or custom_position is None or custom_size is None:
        return None
    return CanonicalCommand(
        action=CommandAction.COMPOSITE_POSITION,
        target=app,
        custom_position=custom_position,
        custom_size=custom_size,
        layer=_integer(args, "layer"),
        focus=_flag(args, "focus"),
        display=_integer(args, "display"),
    )


def _convert_resize_window(args: Args) -> Optional[CanonicalCommand]:
    app = _text(args, "app_name")
    size = _text(args, "size")
    if not app or not size:
        return None
    size = size.lower()
    display = _integer(args, "display")

    if size == CUSTOM_OPTION:
        custom_size = _pair(_percent(args, "custom_width"), _percent(args, "custom_height"))
        if custom_size is None:
            return None
        return CanonicalCommand(
            action=CommandAction.RESIZE, target=app, custom_size=custom_size, display=display
        )

    return CanonicalCommand(
        action=CommandAction.RESIZE, target=app, size=WindowSize(size), display=display
    )


def _simple(action: CommandAction) -> Callable[[Args], Optional[CanonicalCommand]]:
    def _convert(args: Args) -> Optional[CanonicalCommand]:
        app = _text(args, "app_name")
        if not app:
            return None
        return CanonicalCommand(action=action, target=app)

    return _convert


_CONVERTERS: dict[str, Callable[[Args], Optional[CanonicalCommand]]] = {
    "snap_window": _convert_snap_window,
    "flexible_position": _convert_flexible_position,
    "resize_window": _convert_resize_window,
    "focus_app": _simple(CommandAction.FOCUS),
    "minimize_app": _simple(CommandAction.MINIMIZE),
    "restore_app": _simple(CommandAction.RESTORE),
    "close_app": _simple(CommandAction.CLOSE),
}


def to_canonical(invocation: ToolInvocation) -> Optional[CanonicalCommand]:
    """Map one invocation to a command, or ``None`` when it cannot be used."""
    converter = _CONVERTERS.get(invocation.name)
    if converter is None:
        _LOG.debug("Ignoring unknown tool '%s'", invocation.name)
        return None
    try:
        command = converter(invocation.args)
    except ValueError as exc:
        # Enum lookups and CanonicalCommand invariants both raise ValueError
        _LOG.debug("Rejected %s call %s: %s", invocation.name, invocation.id, exc)
        return None
    if command is None:
        _LOG.debug("Missing arguments for %s call %s", invocation.name, invocation.id)
    return command


# --------------------------------------------------------------------------- #
# Inverse mapping                                                             #
# --------------------------------------------------------------------------- #


def _fmt(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


def from_canonical(command: CanonicalCommand, call_id: str | None = None) -> ToolInvocation:
    """
    Express *command* as the tool call that would produce it.

    Used for diagnostics (echoing a candidate layout back to the model) and
    by the round-trip tests.
    """
    args: dict[str, ArgValue] = {"app_name": StrValue(command.target)}
    action = command.action

    if action is CommandAction.MOVE:
        name = "snap_window"
        if command.custom_position is not None and command.custom_size is not None:
            args["position"] = StrValue(CUSTOM_OPTION)
            args["size"] = StrValue(CUSTOM_OPTION)
            args["custom_x"] = StrValue(_fmt(command.custom_position[0]))
            args["custom_y"] = StrValue(_fmt(command.custom_position[1]))
            args["custom_width"] = StrValue(_fmt(command.custom_size[0]))
            args["custom_height"] = StrValue(_fmt(command.custom_size[1]))
        else:
            args["position"] = StrValue(command.position.value)
            if command.size is not None:
                args["size"] = StrValue(command.size.value)
    elif action is CommandAction.COMPOSITE_POSITION:
        if command.custom_position is None or command.custom_size is None:
            raise ValueError("composite-position is only expressible with a custom rectangle")
        name = "flexible_position"
        args["x_position"] = StrValue(_fmt(command.custom_position[0]))
        args["y_position"] = StrValue(_fmt(command.custom_position[1]))
        args["width"] = StrValue(_fmt(command.custom_size[0]))
        args["height"] = StrValue(_fmt(command.custom_size[1]))
        if command.layer is not None:
            args["layer"] = IntValue(command.layer)
        if command.focus is not None:
            args["focus"] = BoolValue(command.focus)
    elif action is CommandAction.RESIZE:
        name = "resize_window"
        if command.custom_size is not None:
            args["size"] = StrValue(CUSTOM_OPTION)
            args["custom_width"] = StrValue(_fmt(command.custom_size[0]))
            args["custom_height"] = StrValue(_fmt(command.custom_size[1]))
        elif command.size is not None:
            args["size"] = StrValue(command.size.value)
        else:
            raise ValueError("resize without a size is not expressible")
    else:
        name = {
            CommandAction.FOCUS: "focus_app",
            CommandAction.MINIMIZE: "minimize_app",
            CommandAction.RESTORE: "restore_app",
            CommandAction.CLOSE: "close_app",
        }[action]

    if command.display is not None and name in {"snap_window", "flexible_position", "resize_window"}:
        args["display"] = IntValue(command.display)

    return ToolInvocation(id=call_id or uuid4().hex, name=name, args=args)


# --------------------------------------------------------------------------- #
# Pipeline boundary                                                           #
# --------------------------------------------------------------------------- #


def commands_from_invocations(
    invocations: Iterable[ToolInvocation], text: str = ""
) -> tuple[CanonicalCommand, ...]:
    """
    Convert *invocations* and apply the empty-response policy.

    Raises ``NoToolsUsedError`` when the model only wrote prose, and
    ``NoCommandsGeneratedError`` when nothing usable came back at all.
    """
    invocations = list(invocations)
    if not invocations:
        if text.strip():
            raise NoToolsUsedError(text.strip())
        raise NoCommandsGeneratedError()

    commands = tuple(c for c in map(to_canonical, invocations) if c is not None)
    if not commands:
        raise NoCommandsGeneratedError(
            f"None of the {len(invocations)} tool calls could be converted to commands"
        )
    _LOG.debug("Converted %d/%d tool calls", len(commands), len(invocations))
    return commands
