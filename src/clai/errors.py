"""clai exception hierarchy.

The CLI turns any ClaiError into a one-line error message and exit status 1.
CacheError is the exception: the engine absorbs it and runs uncached.
"""


class ClaiError(Exception):
    """Base exception for all clai errors."""

    def __init__(self, message: str = "", *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ProviderError(ClaiError):
    """Error communicating with an LLM provider."""

    def __init__(self, message: str = "", *, retryable: bool = True) -> None:
        super().__init__(message, retryable=retryable)


class ProviderUnavailable(ClaiError):
    """A forced provider failed its availability probe."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"Provider '{provider}' is not available.")
        self.provider = provider


class NoProviderAvailable(ClaiError):
    """Every provider in the fallback chain failed its availability probe."""

    def __init__(self, chain: tuple[str, ...] = ()) -> None:
        message = "No LLM provider available. Run 'clai providers' to see what is missing."
        if chain:
            message = f"{message} (tried: {', '.join(chain)})"
        super().__init__(message)
        self.chain = chain


class EmptyResponse(ClaiError):
    """Provider produced no usable text after filtering and trimming."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"Provider '{provider}' returned an empty response.")
        self.provider = provider


class CommandFailed(ClaiError):
    """A local command used for context gathering failed."""

    def __init__(self, command: str) -> None:
        super().__init__(f"Failed to execute: {command}")
        self.command = command


class ConfigError(ClaiError):
    """Invalid or missing configuration."""


class CacheError(ClaiError):
    """Response cache I/O failure."""
