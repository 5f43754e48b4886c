"""
llm_arrange.errors
------------------

Exception taxonomy for the command-compilation pipeline.

Transport, provider-protocol and model-behaviour errors are *retryable*: the
retry controller consumes one attempt and tries again.  A failed layout
validation is not an exception at all (see ``ValidationResult``).
"""

from __future__ import annotations


class ArrangeError(Exception):
    """Base class for every error raised by llm-arrange."""

    retryable: bool = False


class ConfigurationError(ArrangeError):
    """Missing or invalid provider configuration (e.g. no API key)."""


class UnsupportedValueError(ArrangeError, TypeError):
    """A provider sent an argument value that is not a JSON scalar."""


# --------------------------------------------------------------------------- #
# Provider errors                                                             #
# --------------------------------------------------------------------------- #


class ProviderError(ArrangeError):
    retryable = True


class NetworkError(ProviderError):
    """Transport failure: host unreachable, connection reset or timeout."""

    def __init__(self, message: str = "Network error") -> None:
        super().__init__(message)


class ProviderAPIError(ProviderError):
    """Non-2xx status carrying a structured error message."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(f"Provider API error: {message}")
        self.message = message
        self.status = status


class HTTPError(ProviderError):
    """Non-2xx status without a usable error payload."""

    def __init__(self, code: int) -> None:
        super().__init__(f"HTTP error: {code}")
        self.code = code


class InvalidResponseError(ProviderError):
    """The response body does not match the provider's documented shape."""


# --------------------------------------------------------------------------- #
# Model behaviour                                                             #
# --------------------------------------------------------------------------- #


class ModelBehaviourError(ArrangeError):
    retryable = True


class NoToolsUsedError(ModelBehaviourError):
    """The model explained in prose instead of calling a tool."""

    def __init__(self, text: str) -> None:
        super().__init__(f"Model responded with text instead of using tools: {text}")
        self.text = text


class NoCommandsGeneratedError(ModelBehaviourError):
    """The response contained neither usable tool calls nor text."""

    def __init__(self, message: str = "No window management commands were generated") -> None:
        super().__init__(message)
