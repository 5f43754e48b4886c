"""
llm_arrange.constants
---------------------

Centralised constants shared across the llm-arrange code-base.
"""

from pathlib import Path
from enum import Enum, auto
from typing import Final

# --------------------------------------------------------------------------- #
# Paths
# --------------------------------------------------------------------------- #

# Absolute path to the root of the project repository.
PACKAGE_ROOT: Path = Path(__file__).resolve().parent.parent

# --------------------------------------------------------------------------- #
# LLM providers
# --------------------------------------------------------------------------- #


class LLMProvider(Enum):
    """Enumeration of supported function-calling backends."""

    GEMINI = auto()
    CLAUDE = auto()


# Mapping of provider → REST endpoint root.
PROVIDER_BASE_URLS: Final[dict[LLMProvider, str]] = {
    LLMProvider.GEMINI: "https://generativelanguage.googleapis.com/v1beta/models",
    LLMProvider.CLAUDE: "https://api.anthropic.com/v1/messages",
}

DEFAULT_MODELS: Final[dict[LLMProvider, str]] = {
    LLMProvider.GEMINI: "gemini-2.5-flash",
    LLMProvider.CLAUDE: "claude-3-5-sonnet-20241022",
}

# Environment variables holding the API key, checked in order.
API_KEY_ENV: Final[dict[LLMProvider, tuple[str, ...]]] = {
    LLMProvider.GEMINI: ("LLM_ARRANGE_GEMINI_API_KEY", "GEMINI_API_KEY"),
    LLMProvider.CLAUDE: ("LLM_ARRANGE_CLAUDE_API_KEY", "ANTHROPIC_API_KEY"),
}

# Optional model override, e.g. LLM_ARRANGE_GEMINI_MODEL=gemini-2.5-pro
MODEL_ENV_TEMPLATE: Final[str] = "LLM_ARRANGE_{provider}_MODEL"

# Explicit .env path override.
DOTENV_ENV: Final[str] = "LLM_ARRANGE_DOTENV"

ANTHROPIC_VERSION: Final[str] = "2023-06-01"

# (request timeout, total timeout) in seconds.
PROVIDER_TIMEOUTS: Final[dict[LLMProvider, tuple[float, float]]] = {
    LLMProvider.GEMINI: (30.0, 60.0),
    LLMProvider.CLAUDE: (60.0, 120.0),
}

# --------------------------------------------------------------------------- #
# Token budgeting
# --------------------------------------------------------------------------- #

# Rough characters-per-token ratio used to estimate prompt size.
CHARS_PER_TOKEN: Final[int] = 4

# provider → (context budget, output floor, output ceiling, fallback output)
TOKEN_LIMITS: Final[dict[LLMProvider, tuple[int, int, int, int]]] = {
    LLMProvider.GEMINI: (32768, 2000, 8000, 8192),
    LLMProvider.CLAUDE: (200000, 1000, 4096, 8192),
}

# Window lines kept in the shortened prompt after a length cut-off.
FALLBACK_WINDOW_LINES: Final[int] = 8

# Upper bound on the core instructions kept when a prompt has no droppable
# context (a plain-string prompt, for example).
FALLBACK_CORE_CHARS: Final[int] = 2000

# --------------------------------------------------------------------------- #
# Layout constraints and retry policy
# --------------------------------------------------------------------------- #

# 100×100 px minimum clickable surface.
MIN_VISIBLE_AREA: Final[float] = 10_000.0

# Additional attempts after the first one.
DEFAULT_RETRY_BUDGET: Final[int] = 2

BASE_TEMPERATURE: Final[float] = 0.0
RETRY_TEMPERATURE_STEP: Final[float] = 0.1
RETRY_MAX_OUTPUT_TOKENS: Final[int] = 4000

# Main display geometry assumed when the caller supplies none.
DEFAULT_DISPLAY_SIZE: Final[tuple[int, int]] = (1440, 900)

# --------------------------------------------------------------------------- #
# Command vocabulary
# --------------------------------------------------------------------------- #


class CommandAction(str, Enum):
    """Window operations a canonical command may request."""

    MOVE = "move"
    RESIZE = "resize"
    FOCUS = "focus"
    MINIMIZE = "minimize"
    RESTORE = "restore"
    CLOSE = "close"
    COMPOSITE_POSITION = "composite-position"


class WindowPosition(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    TOP = "top"
    BOTTOM = "bottom"
    CENTER = "center"
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    LEFT_THIRD = "left-third"
    MIDDLE_THIRD = "middle-third"
    RIGHT_THIRD = "right-third"


class WindowSize(str, Enum):
    QUARTER = "quarter"
    THIRD = "third"
    HALF = "half"
    TWO_THIRDS = "two-thirds"
    THREE_QUARTERS = "three-quarters"
    FULL = "full"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


# Fraction of the display each symbolic size occupies.
SIZE_FRACTIONS: Final[dict[WindowSize, float]] = {
    WindowSize.QUARTER: 0.25,
    WindowSize.THIRD: 1 / 3,
    WindowSize.HALF: 0.5,
    WindowSize.TWO_THIRDS: 2 / 3,
    WindowSize.THREE_QUARTERS: 0.75,
    WindowSize.FULL: 1.0,
    WindowSize.SMALL: 0.4,
    WindowSize.MEDIUM: 0.6,
    WindowSize.LARGE: 0.8,
}

# Sizes that scale both dimensions when resizing in place.
UNIFORM_SIZES: Final[frozenset[WindowSize]] = frozenset(
    {WindowSize.SMALL, WindowSize.MEDIUM, WindowSize.LARGE, WindowSize.FULL}
)

# Literal accepted by the tool catalog to switch to percentage fields.
CUSTOM_OPTION: Final[str] = "custom"


class ParamType(str, Enum):
    """JSON-schema scalar types a tool parameter may declare."""

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
