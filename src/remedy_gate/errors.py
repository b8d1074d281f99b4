# errors.py
# Exceptions that abort a broader operation. Step-level outcomes
# (policy block, timeout, failed script) are values, not exceptions;
# see models.Outcome.


class RemedyGateError(Exception):
    """Base class for every error raised by this package."""


class ToolNotFoundError(RemedyGateError):
    """Raised when a plan names a capability absent from the catalog. Always fatal to the plan."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Tool '{name}' is not in the catalog. Halting.")
        self.name = name


class ArgumentValidationError(RemedyGateError):
    """Raised when arguments do not satisfy a capability's schema. Fatal to the step only."""

    def __init__(self, tool_name: str, details: list[str]) -> None:
        super().__init__(f"Arguments validation failed for {tool_name}: {'; '.join(details)}")
        self.tool_name = tool_name
        self.details = details


class JournalWriteError(RemedyGateError):
    """Raised when an entry cannot be durably appended. An unaudited action is unacceptable."""


class PlanError(RemedyGateError):
    """Raised when no usable plan can be produced for an issue."""
