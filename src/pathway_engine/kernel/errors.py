"""
Error types raised by the kernel.

Registry failures are isolated per module path. Execution failures abort
the current process() call chain and propagate to the caller.
"""
from __future__ import annotations

from typing import Optional


class PathwayError(Exception):
    """Base class for every error the engine raises."""


class ModuleValidationError(PathwayError):
    """A module description is structurally unusable."""


class ModuleLoadError(PathwayError):
    """Realizing a registry entry failed.

    The same instance is raised to every caller of that path for the
    lifetime of the registry; loads are never retried.
    """

    def __init__(self, path: str, cause: Optional[BaseException] = None) -> None:
        self.path = path
        self.cause = cause
        message = f"Module {path} failed to load"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class UnknownStateError(PathwayError):
    """A transition named a state that the module does not define."""

    def __init__(self, module: str, state: str) -> None:
        self.module = module
        self.state = state
        super().__init__(f"{module} has no state named {state!r}")
