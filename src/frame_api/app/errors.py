"""Error taxonomy for frame generation.

Every failure raised while turning a prompt into an image derives from
FrameGenerationError, so the generation service can map all of them to the
`error` request status with a single except clause.
"""

from __future__ import annotations


class FrameGenerationError(Exception):
    """Base class for failures inside the command wrapper."""


class ConfigurationError(FrameGenerationError):
    """A required secret is missing from the environment."""


class SpawnError(FrameGenerationError):
    """The external process could not be started."""


class ProcessExitError(FrameGenerationError):
    """The external process exited with a non-zero code."""

    def __init__(self, exit_code: int) -> None:
        super().__init__(f"Process exited with code {exit_code}")
        self.exit_code = exit_code


class ProcessStderrError(FrameGenerationError):
    """The external process exited cleanly but wrote to stderr."""

    def __init__(self, stderr: str) -> None:
        super().__init__(stderr.strip() or "Process wrote to stderr")
        self.stderr = stderr


class ProcessTimeoutError(FrameGenerationError):
    """The external process did not finish within the configured timeout."""

    def __init__(self, timeout_s: float) -> None:
        super().__init__(f"Process timed out after {timeout_s:.2f}s")
        self.timeout_s = timeout_s


class OutputParseError(FrameGenerationError):
    """Process output could not be turned into an image."""


class UnsupportedAspectRatioError(FrameGenerationError, ValueError):
    """Renderer only supports the 1.91:1 and 1:1 frame image ratios."""

    def __init__(self, aspect_ratio: float) -> None:
        super().__init__(f"Unsupported aspect ratio: {aspect_ratio!r}")
        self.aspect_ratio = aspect_ratio


class RequestNotFoundError(KeyError):
    """Tracker lookup for an id that was never issued (or was evicted)."""


class InvalidTransitionError(ValueError):
    """Status change that would break the one-shot processing -> terminal rule."""
