# catalog.py
# Capability contract and the immutable name → capability registry.
#
# The engine never calls a capability directly from planner output: every
# ToolCall is looked up here (case-insensitively) and its arguments are
# validated against the capability's pydantic Args model before anything
# with a side effect runs.

from abc import ABC, abstractmethod
from collections.abc import Iterable
from types import MappingProxyType
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, ValidationError

from remedy_gate.errors import ArgumentValidationError, ToolNotFoundError
from remedy_gate.models import ExecutionResult, ToolDescriptor


class ToolArgs(BaseModel):
    """Base for capability argument models. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class Capability(ABC):
    """A named unit of remediation logic.

    `execute` must not touch the host; it only prepares an ExecutionResult
    whose forward_script the executor runs and whose undo_script the
    journal keeps.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    requires_elevated_privilege: ClassVar[bool] = False
    mutates_host: ClassVar[bool] = True
    reversible: ClassVar[bool] = True

    Args: ClassVar[type[ToolArgs]] = ToolArgs

    def describe(self) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name,
            description=self.description,
            requires_elevated_privilege=self.requires_elevated_privilege,
            mutates_host=self.mutates_host,
            reversible=self.reversible,
            raw_command=isinstance(self, RawCommandCapability),
            argument_schema=self.Args.model_json_schema(),
        )

    def validate(self, raw: Any) -> ToolArgs:
        """Parse untrusted arguments. Raises ArgumentValidationError."""
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ArgumentValidationError(
                self.name, [f"arguments must be an object, got {type(raw).__name__}"]
            )
        try:
            return self.Args.model_validate(raw)
        except ValidationError as exc:
            details = [
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in exc.errors()
            ]
            raise ArgumentValidationError(self.name, details) from exc

    @abstractmethod
    def execute(self, args: ToolArgs) -> ExecutionResult:
        ...


class RawCommandCapability(Capability):
    """A capability whose whole effect is one command line vetted by the policy classifier."""

    reversible: ClassVar[bool] = False

    @abstractmethod
    def command_line(self, args: ToolArgs) -> str:
        ...

    def execute(self, args: ToolArgs) -> ExecutionResult:
        return ExecutionResult(success=True, data={"command": self.command_line(args)})


class ToolCatalog:
    """Immutable registry built once from a fixed registration list."""

    def __init__(self, capabilities: Iterable[Capability]) -> None:
        tools: dict[str, Capability] = {}
        for capability in capabilities:
            key = capability.name.casefold()
            if key in tools:
                raise ValueError(f"Duplicate tool name in catalog: {capability.name!r}")
            tools[key] = capability
        self._tools = MappingProxyType(tools)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.casefold() in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def lookup(self, name: str) -> Capability:
        """Return the capability registered under `name`. Raises ToolNotFoundError."""
        try:
            return self._tools[name.casefold()]
        except (KeyError, AttributeError):
            raise ToolNotFoundError(str(name)) from None

    def descriptors(self) -> list[ToolDescriptor]:
        return [capability.describe() for capability in self._tools.values()]

    def validate(self, name: str, raw: Any) -> tuple[Capability, ToolArgs]:
        """Lookup followed by argument validation; both may raise."""
        capability = self.lookup(name)
        return capability, capability.validate(raw)
