"""Exceptions raised by ccbuild."""

from __future__ import annotations


class BuildError(Exception):
    """Base class for build failures."""


class ConfigurationError(BuildError):
    """A build precondition does not hold. Raised before anything is queued."""


class CompilationFailure(BuildError):
    """The external compiler exited with an error."""

    def __init__(self, entry: str, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.entry = entry
        self.message = message
        self.returncode = returncode

    def __str__(self) -> str:
        if self.returncode is None:
            return f"{self.entry}: {self.message}"
        return f"{self.entry} (exit {self.returncode}): {self.message}"
