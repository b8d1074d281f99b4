# harness.py
# Remediation engine.
#
# The Engine is the only component that sequences actions. The planner is a
# passive producer of proposals; this class owns control flow, validation,
# journaling and the abort rules.
#
# Control flow:
#   planner → ordered ToolCalls → catalog lookup → argument validation
#   → (policy classifier, raw-command capabilities only) → bounded execution
#   → journal append → next step
#
# All terminal output is delegated to display.py.

import ctypes
import os
import sys
import uuid

from remedy_gate import display
from remedy_gate.capabilities import default_catalog
from remedy_gate.catalog import ToolCatalog
from remedy_gate.config import Settings
from remedy_gate.errors import ArgumentValidationError, PlanError, ToolNotFoundError
from remedy_gate.executor import ActionExecutor
from remedy_gate.journal import AuditJournal
from remedy_gate.models import ExecutionResult, JournalEntry, Outcome, StepReport, ToolCall, UndoReport
from remedy_gate.planner import Planner
from remedy_gate.policy import PolicyClassifier
from remedy_gate.undo import UndoCoordinator


def is_elevated() -> bool:
    """True when running as root (POSIX) or as an administrator (Windows)."""
    if sys.platform == "win32":
        try:
            return bool(ctypes.windll.shell32.IsUserAnAdmin())
        except (AttributeError, OSError):
            return False
    return os.geteuid() == 0


class Engine:
    """
    One engine instance is one session.

    Example:
        engine = Engine(Settings.from_env())
        calls = engine.plan("Outlook crashes on startup")
        reports = engine.execute_plan(calls)
    """

    def __init__(
        self,
        settings: Settings,
        catalog: ToolCatalog | None = None,
        planner: Planner | None = None,
        journal: AuditJournal | None = None,
        executor: ActionExecutor | None = None,
        session_id: str | None = None,
        elevated: bool | None = None,
    ) -> None:
        self._settings = settings
        self._session_id = session_id or uuid.uuid4().hex
        self._catalog = catalog or default_catalog()
        self._planner = planner or Planner(settings)
        self._journal = journal or AuditJournal(settings.log_dir)
        self._executor = executor or ActionExecutor(settings, PolicyClassifier(settings.mode))
        self._elevated = is_elevated() if elevated is None else elevated
        display.banner(self._session_id, settings.mode, settings.command_timeout)

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def catalog(self) -> ToolCatalog:
        return self._catalog

    @property
    def journal(self) -> AuditJournal:
        return self._journal

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan(self, issue: str, facts: str | None = None) -> list[ToolCall]:
        """Ask the planner for proposals. Nothing is executed or journaled."""
        if not issue or not issue.strip():
            raise PlanError("Issue text is empty; nothing to plan.")
        display.issue_received(issue)
        display.calling_planner()
        calls = self._planner.plan(issue, facts, self._catalog.descriptors())
        display.plan_parsed(calls)
        return calls

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _record(self, call: ToolCall, result: ExecutionResult) -> None:
        self._journal.append(
            JournalEntry(
                session_id=self._session_id,
                tool_name=call.tool_name,
                arguments=call.arguments,
                result=result,
                undo_script=result.undo_script,
            )
        )

    def execute_step(self, index: int, total: int, call: ToolCall) -> StepReport:
        """
        Run one proposed call.

        Raises ToolNotFoundError for an unregistered name (nothing journaled)
        and JournalWriteError if the outcome cannot be recorded. Every other
        outcome is journaled and returned.
        """
        display.step_start(index, total, call.tool_name)

        try:
            capability = self._catalog.lookup(call.tool_name)
        except ToolNotFoundError:
            display.tool_not_found(call.tool_name)
            raise

        try:
            args = capability.validate(call.arguments)
        except ArgumentValidationError as exc:
            display.validation_failed(capability.name, exc.details)
            result = ExecutionResult(
                success=False,
                outcome=Outcome.VALIDATION_FAILED,
                error=str(exc),
                data={"details": exc.details},
            )
            self._record(call, result)
            return StepReport(index=index, tool_name=capability.name, result=result)

        if capability.requires_elevated_privilege and not self._elevated:
            display.elevation_warning(capability.name)

        result = self._executor.invoke(capability, args)
        if capability.requires_elevated_privilege:
            data = dict(result.data) if isinstance(result.data, dict) else {"payload": result.data}
            data["elevated"] = self._elevated
            result = result.model_copy(update={"data": data})

        self._record(call, result)
        display.step_result(result)
        return StepReport(index=index, tool_name=capability.name, result=result)

    def execute_plan(self, calls: list[ToolCall]) -> list[StepReport]:
        """
        Strictly sequential execution loop.

        Step-level failures are recorded and the loop moves on. An unknown
        tool name or a journal write failure aborts the remaining plan.
        """
        reports: list[StepReport] = []
        total = len(calls)

        display.execution_start(total)
        for index, call in enumerate(calls):
            reports.append(self.execute_step(index, total, call))

        display.execution_summary(reports)
        return reports

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run(self, issue: str, facts: str | None = None, execute: bool = False) -> list[StepReport]:
        """
        Plan, then either stop (dry run) or execute.

        A dry run never spawns a process and never writes to the journal.
        """
        calls = self.plan(issue, facts)
        if not execute:
            display.dry_run_notice()
            return []
        return self.execute_plan(calls)

    def undo(self, target_session: str | None = None) -> list[UndoReport]:
        """Best-effort reversal of `target_session`, or of the latest undoable session."""
        target = target_session or self._journal.latest_undoable_session()
        if target is None:
            display.nothing_to_undo()
            return []
        coordinator = UndoCoordinator(self._journal, self._executor, session_id=self._session_id)
        return coordinator.undo(target)
