"""
Errors raised while assembling the Tootcamp stack.

Nothing here is retried: every error stops the assembly and propagates to
whoever called `assemble`.
"""


class TootcampError(Exception):
    """Base class for all assembly errors."""


class ConfigurationError(TootcampError, ValueError):
    """The stack configuration is missing a field or holds a malformed value."""


class LookupFailure(TootcampError):
    """A pre-existing resource the stack depends on could not be found."""


class AssemblyError(TootcampError):
    """The build plan is internally inconsistent."""


class UnresolvedHandleError(AssemblyError):
    def __init__(self, step: str, handle: str) -> None:
        super().__init__(
            f"Step '{step}' requires handle '{handle}' which no earlier step produces."
        )
        self.step = step
        self.handle = handle


class DuplicateHandleError(AssemblyError):
    def __init__(self, step: str, handle: str) -> None:
        super().__init__(f"Step '{step}' produces handle '{handle}' a second time.")
        self.step = step
        self.handle = handle


class GrantError(TootcampError):
    """A network grant was requested for a port outside the canonical set."""


class PlaceholderSecretWarning(UserWarning):
    """A secret is deployed as a fixed placeholder instead of a managed secret."""
