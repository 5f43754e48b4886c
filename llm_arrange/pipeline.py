"""
llm_arrange.pipeline
--------------------

Retry controller: instruction → provider → commands → predicted layout →
validation, looping back to the provider with a corrected prompt while the
retry budget lasts.

States per attempt::

    BUILDING → SENT → TRANSLATED → SIMULATED → VALIDATED → DONE
                                                        ↘ RETRYING → BUILDING

A layout that still violates the visibility floor once the budget is spent
is returned with ``passed=False``; ``run`` only raises when no candidate was
ever produced.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional, Sequence

from llm_arrange import simulator, validator
from llm_arrange.constants import (
    BASE_TEMPERATURE,
    DEFAULT_RETRY_BUDGET,
    MIN_VISIBLE_AREA,
    RETRY_MAX_OUTPUT_TOKENS,
    RETRY_TEMPERATURE_STEP,
)
from llm_arrange.errors import ArrangeError, ModelBehaviourError
from llm_arrange.models import (
    CanonicalCommand,
    Cancelled,
    Display,
    GenerationConfig,
    PipelineResult,
    PromptSections,
    ValidationResult,
    Violation,
    WindowState,
)
from llm_arrange.providers import ProviderAdapter
from llm_arrange.tools import WINDOW_TOOLS, ToolSpec
from llm_arrange.translator import commands_from_invocations

_LOG = logging.getLogger(__name__)

__all__ = [
    "Pipeline",
    "PipelineState",
    "augment_for_tool_use",
    "augment_for_violations",
]

_MAX_TEMPERATURE = 1.0

_VIOLATION_HEADER = "\n\nCONSTRAINT VIOLATIONS DETECTED - MUST BE FIXED:\n"

_RETRY_INSTRUCTIONS = """
RETRY INSTRUCTIONS:
1. The previous layout violated the minimum visible area constraint
2. You MUST find alternative positioning that satisfies ALL constraints
3. Consider these strategies:
   - Reduce window sizes to prevent excessive overlap
   - Adjust positioning to create visible peek areas
   - Use different cascade offsets or layouts
   - Minimize less important windows if necessary
4. VALIDATE each window's visible area before finalizing positions
5. NO EXCEPTIONS - every window must have at least {min_area:,}px² visible

Return the COMPLETE set of window commands, not only the corrections."""

_TOOL_DEMAND = """

TOOL USE REQUIRED:
Your previous reply contained no usable tool calls. Respond ONLY with calls to
the provided window management tools. Do not explain the layout in text."""


class PipelineState(Enum):
    BUILDING = auto()
    SENT = auto()
    TRANSLATED = auto()
    SIMULATED = auto()
    VALIDATED = auto()
    RETRYING = auto()
    DONE = auto()


def augment_for_violations(
    prompt: PromptSections,
    violations: Sequence[Violation],
    min_area: float = MIN_VISIBLE_AREA,
    analysis: str = "",
) -> PromptSections:
    """
    Append the violation list, the layout *analysis* of the rejected
    attempt when given, and the corrective instruction block.
    """
    lines = "".join(f"- {v.describe()}\n" for v in violations)
    if analysis:
        lines += "\n" + analysis + "\n"
    return prompt.append(
        _VIOLATION_HEADER + lines + _RETRY_INSTRUCTIONS.format(min_area=int(min_area))
    )


def augment_for_tool_use(prompt: PromptSections) -> PromptSections:
    """Append the tool-call demand once."""
    if _TOOL_DEMAND in prompt.core:
        return prompt
    return prompt.append(_TOOL_DEMAND)


@dataclass(frozen=True, slots=True)
class _Candidate:
    commands: tuple[CanonicalCommand, ...]
    validation: ValidationResult
    truncated: bool
    notes: tuple[str, ...]

    def result(self, attempts: int) -> PipelineResult:
        return PipelineResult(
            commands=self.commands,
            passed=self.validation.is_valid,
            attempts=attempts,
            validation=self.validation,
            truncated=self.truncated,
            notes=self.notes,
        )


class _Progress:
    """Attempt counter of one ``run`` call, readable after cancellation."""

    __slots__ = ("attempts",)

    def __init__(self) -> None:
        self.attempts = 0


class Pipeline:
    """
    Bounded generate → simulate → validate loop around one provider adapter.

    The pipeline holds configuration only; every ``run`` keeps its prompt
    and attempt counter locally, so one instance may serve concurrent
    instructions.
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        tools: Sequence[ToolSpec] = WINDOW_TOOLS,
        *,
        retry_budget: int = DEFAULT_RETRY_BUDGET,
        min_visible_area: float = MIN_VISIBLE_AREA,
        base_temperature: float = BASE_TEMPERATURE,
        temperature_step: float = RETRY_TEMPERATURE_STEP,
        retry_max_output_tokens: Optional[int] = RETRY_MAX_OUTPUT_TOKENS,
    ) -> None:
        if retry_budget < 0:
            raise ValueError("retry_budget must be >= 0")
        self._adapter = adapter
        self._tools = tuple(tools)
        self._retry_budget = retry_budget
        self._min_area = min_visible_area
        self._base_temperature = base_temperature
        self._temperature_step = temperature_step
        self._retry_max_output_tokens = retry_max_output_tokens

    @property
    def max_attempts(self) -> int:
        return 1 + self._retry_budget

    def generation_for(self, attempt: int) -> GenerationConfig:
        """Sampling settings for 1-based *attempt*."""
        if attempt <= 1:
            return GenerationConfig(temperature=self._base_temperature)
        temperature = self._base_temperature + self._temperature_step * (attempt - 1)
        return GenerationConfig(
            temperature=min(_MAX_TEMPERATURE, temperature),
            max_output_tokens=self._retry_max_output_tokens,
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def run(
        self,
        instruction: str,
        system_prompt: PromptSections | str,
        baseline: Sequence[WindowState],
        displays: Sequence[Display] = (),
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PipelineResult | Cancelled:
        """
        Compile *instruction* into validated window commands.

        Returns ``Cancelled`` when *timeout* elapses or *cancel_event* is set
        before the loop finishes.  Raises the last error when every attempt
        failed without producing a layout.
        """
        progress = _Progress()
        task = asyncio.ensure_future(
            self._attempts(
                instruction,
                PromptSections.coerce(system_prompt),
                tuple(baseline),
                tuple(displays),
                progress,
            )
        )
        waiters: set[asyncio.Future] = {task}
        cancel_waiter: Optional[asyncio.Future] = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        if cancel_event is not None and cancel_event.is_set():
            reason = "cancelled by caller"
        else:
            reason = f"timed out after {timeout}s"
        _LOG.warning("Pipeline %s during attempt %d", reason, progress.attempts)
        return Cancelled(reason=reason, attempts=progress.attempts)

    # ------------------------------------------------------------------ #
    # Attempt loop
    # ------------------------------------------------------------------ #

    def _enter(self, state: PipelineState, attempt: int) -> None:
        _LOG.debug("attempt %d/%d → %s", attempt, self.max_attempts, state.name)

    async def _attempts(
        self,
        instruction: str,
        base_prompt: PromptSections,
        baseline: tuple[WindowState, ...],
        displays: tuple[Display, ...],
        progress: _Progress,
    ) -> PipelineResult:
        prompt = base_prompt
        candidate: Optional[_Candidate] = None

        for attempt in range(1, self.max_attempts + 1):
            progress.attempts = attempt
            last = attempt == self.max_attempts

            self._enter(PipelineState.BUILDING, attempt)
            generation = self.generation_for(attempt)
            try:
                self._enter(PipelineState.SENT, attempt)
                response = await self._adapter.send(instruction, prompt, self._tools, generation)
                invocations = self._adapter.parse_invocations(response)
                commands = commands_from_invocations(invocations, response.text)
            except ArrangeError as exc:
                if not exc.retryable:
                    raise
                _LOG.warning("Attempt %d/%d failed: %s", attempt, self.max_attempts, exc)
                if last:
                    if candidate is None:
                        raise
                    self._enter(PipelineState.DONE, attempt)
                    _LOG.warning("Returning the previous candidate as best effort")
                    return candidate.result(attempt)
                if isinstance(exc, ModelBehaviourError):
                    prompt = augment_for_tool_use(prompt)
                self._enter(PipelineState.RETRYING, attempt)
                continue

            self._enter(PipelineState.TRANSLATED, attempt)
            predicted = simulator.apply(commands, baseline, displays)
            self._enter(PipelineState.SIMULATED, attempt)
            validation = validator.validate(predicted, displays, self._min_area)
            self._enter(PipelineState.VALIDATED, attempt)

            notes = (response.text.strip(),) if response.text.strip() else ()
            candidate = _Candidate(commands, validation, response.truncated, notes)

            if validation.is_valid:
                self._enter(PipelineState.DONE, attempt)
                _LOG.info("Layout passed validation on attempt %d (%d commands)",
                          attempt, len(commands))
                return candidate.result(attempt)

            _LOG.warning(
                "Attempt %d/%d produced %d constraint violations",
                attempt,
                self.max_attempts,
                len(validation.violations),
            )
            if last:
                self._enter(PipelineState.DONE, attempt)
                _LOG.warning("Retry budget exhausted; returning best-effort layout")
                return candidate.result(attempt)

            analysis = validator.symbolic_analysis(
                predicted, displays, self._min_area, result=validation
            )
            prompt = augment_for_violations(
                base_prompt, validation.violations, self._min_area, analysis
            )
            self._enter(PipelineState.RETRYING, attempt)

        # range() always reaches the last attempt
        raise AssertionError("unreachable")
