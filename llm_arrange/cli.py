"""
llm_arrange.cli
---------------

User-facing Click command-line interface.

Commands
--------
validate : Check a window snapshot against the visible-area floor
arrange  : Compile an instruction into window commands for a snapshot

Snapshot files are JSON::

    {
      "displays": [{"index": 0, "width": 1440, "height": 900}],
      "windows": [
        {"app_id": "Safari", "window_id": "1",
         "frame": {"x": 0, "y": 0, "width": 720, "height": 900}, "layer": 0}
      ]
    }
"""

from __future__ import annotations

import asyncio
import json
import logging
from importlib import metadata
from pathlib import Path
from typing import Any, Optional

import click
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from llm_arrange.constants import DEFAULT_RETRY_BUDGET, MIN_VISIBLE_AREA, LLMProvider
from llm_arrange.errors import ArrangeError
from llm_arrange.models import (
    Cancelled,
    CanonicalCommand,
    Display,
    PipelineResult,
    PromptSections,
    Rect,
    ValidationResult,
    WindowState,
)
from llm_arrange.pipeline import Pipeline
from llm_arrange.providers import get_adapter
from llm_arrange.validator import symbolic_analysis, validate, window_keys

_LOG = logging.getLogger(__name__)

_DEFAULT_CORE_PROMPT = (
    "You are a window management assistant. Translate the user's request into "
    "calls to the provided window tools. Always use tools; never answer in prose. "
    f"Every window must keep at least {int(MIN_VISIBLE_AREA):,}px² visible."
)


# --------------------------------------------------------------------------- #
# Snapshot loading                                                            #
# --------------------------------------------------------------------------- #


class _FrameModel(BaseModel):
    x: float
    y: float
    width: float
    height: float


class _DisplayModel(BaseModel):
    index: int
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    x: float = 0.0
    y: float = 0.0


class _WindowModel(BaseModel):
    app_id: str = Field(min_length=1)
    window_id: str = ""
    frame: _FrameModel
    layer: int = 0
    display_index: int = 0
    minimized: bool = False


class _SnapshotModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    displays: list[_DisplayModel] = Field(default_factory=list)
    windows: list[_WindowModel] = Field(default_factory=list)


def load_snapshot(path: Path) -> tuple[tuple[WindowState, ...], tuple[Display, ...]]:
    """Read a snapshot file into ``(windows, displays)``."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        snapshot = _SnapshotModel.model_validate(raw)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        raise click.ClickException(f"Invalid snapshot {path}: {exc}") from exc

    displays = tuple(Display(d.index, d.width, d.height, d.x, d.y) for d in snapshot.displays)
    windows = tuple(
        WindowState(
            app_id=w.app_id,
            window_id=w.window_id or str(i),
            frame=Rect(w.frame.x, w.frame.y, w.frame.width, w.frame.height),
            layer=w.layer,
            display_index=w.display_index,
            minimized=w.minimized,
        )
        for i, w in enumerate(snapshot.windows)
    )
    return windows, displays


def build_prompt(
    windows: tuple[WindowState, ...],
    displays: tuple[Display, ...],
    core: str = _DEFAULT_CORE_PROMPT,
) -> PromptSections:
    """Minimal system prompt: core text, display geometry and one line per window."""
    geometry = "\n".join(
        f"Display {d.index}: {int(d.width)}x{int(d.height)} at ({int(d.x)},{int(d.y)})"
        for d in displays
    )
    return PromptSections(
        core=core,
        geometry=f"SCREEN GEOMETRY:\n{geometry}" if geometry else "",
        windows=tuple(f"- {w.symbolic}" for w in windows),
    )


# --------------------------------------------------------------------------- #
# Output helpers                                                              #
# --------------------------------------------------------------------------- #


def _command_dict(command: CanonicalCommand) -> dict[str, Any]:
    data: dict[str, Any] = {"action": command.action.value, "target": command.target}
    if command.position is not None:
        data["position"] = command.position.value
    if command.size is not None:
        data["size"] = command.size.value
    for name in ("custom_position", "custom_size"):
        value = getattr(command, name)
        if value is not None:
            data[name] = list(value)
    for name in ("layer", "focus", "display"):
        value = getattr(command, name)
        if value is not None:
            data[name] = value
    return data


def _validation_dict(result: ValidationResult) -> dict[str, Any]:
    return {
        "valid": result.is_valid,
        "visible_areas": dict(result.visible_areas),
        "violations": [
            {
                "window": v.window_key,
                "required_area": v.required_area,
                "actual_area": v.actual_area,
            }
            for v in result.violations
        ],
    }


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


# --------------------------------------------------------------------------- #
# CLI                                                                         #
# --------------------------------------------------------------------------- #


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging.")
@click.version_option(metadata.version("llm-arrange"))
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:  # noqa: D401  (Click demands plain name)
    """llm-arrange – compile window-layout instructions with an LLM."""
    _configure_logging(verbose)
    ctx.ensure_object(dict)


_OUTPUT_OPTION = click.option(
    "-o",
    "--output",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    show_default=True,
    help="Output format.",
)


@cli.command("validate")
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--min-area",
    type=float,
    default=MIN_VISIBLE_AREA,
    show_default=True,
    help="Minimum visible area in px².",
)
@_OUTPUT_OPTION
def cmd_validate(snapshot: Path, min_area: float, output: str) -> None:
    """Report each window's visible area; exit 1 when a window is too hidden."""
    windows, displays = load_snapshot(snapshot)
    result = validate(windows, displays, min_area)

    if output == "json":
        click.echo(json.dumps(_validation_dict(result), indent=2))
    else:
        click.echo(f"{'WINDOW':<30} {'VISIBLE px²':>12}")
        click.echo("-" * 43)
        for key in window_keys(windows):
            if key in result.visible_areas:
                click.echo(f"{key:<30} {int(result.visible_areas[key]):>12}")
        click.echo("")
        click.echo(symbolic_analysis(windows, displays, min_area))

    if not result.is_valid:
        raise SystemExit(1)


@cli.command("arrange")
@click.argument("instruction")
@click.option(
    "--snapshot",
    "snapshot_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON snapshot of the current windows.",
)
@click.option(
    "-p",
    "--provider",
    type=click.Choice([p.name.lower() for p in LLMProvider], case_sensitive=False),
    default="gemini",
    show_default=True,
    help="LLM backend to use.",
)
@click.option(
    "--system-prompt",
    "system_prompt_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File with the core system prompt (defaults to a built-in one).",
)
@click.option(
    "--retries",
    type=click.IntRange(min=0),
    default=DEFAULT_RETRY_BUDGET,
    show_default=True,
    help="Additional attempts after the first one.",
)
@click.option("--timeout", type=float, default=None, help="Overall timeout in seconds.")
@_OUTPUT_OPTION
def cmd_arrange(
    instruction: str,
    snapshot_path: Path,
    provider: str,
    system_prompt_path: Optional[Path],
    retries: int,
    timeout: Optional[float],
    output: str,
) -> None:
    """Compile INSTRUCTION into window commands and print them."""
    windows, displays = load_snapshot(snapshot_path)
    core = (
        system_prompt_path.read_text(encoding="utf-8")
        if system_prompt_path is not None
        else _DEFAULT_CORE_PROMPT
    )
    prompt = build_prompt(windows, displays, core)
    prov = LLMProvider[provider.upper()]

    async def _run() -> PipelineResult | Cancelled:
        async with get_adapter(prov) as adapter:
            pipeline = Pipeline(adapter, retry_budget=retries)
            return await pipeline.run(instruction, prompt, windows, displays, timeout=timeout)

    try:
        outcome = asyncio.run(_run())
    except ArrangeError as exc:
        raise click.ClickException(str(exc)) from exc

    if isinstance(outcome, Cancelled):
        raise click.ClickException(f"Cancelled: {outcome.reason}")

    if output == "json":
        payload = {
            "passed": outcome.passed,
            "attempts": outcome.attempts,
            "truncated": outcome.truncated,
            "commands": [_command_dict(c) for c in outcome.commands],
        }
        if outcome.validation is not None:
            payload["validation"] = _validation_dict(outcome.validation)
        click.echo(json.dumps(payload, indent=2))
        return

    for i, command in enumerate(outcome.commands, 1):
        fields = " ".join(f"{k}={v}" for k, v in _command_dict(command).items() if k != "action")
        click.echo(f"{i:>2}. {command.action.value:<18} {fields}")
    status = "passed" if outcome.passed else "FAILED (best effort)"
    click.echo(f"\nValidation {status} after {outcome.attempts} attempt(s)")
    if outcome.validation is not None:
        for violation in outcome.validation.violations:
            click.echo(f"  - {violation.describe()}", err=True)


def main() -> None:  # pragma: no cover
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
