# undo.py
# Best-effort reversal of a journaled session.
#
# Undo scripts run newest-first through the same bounded executor used for
# forward actions. A failing step is journaled and reported, then the
# coordinator moves on to the next older entry. Nothing is retried and
# nothing already undone is rolled back.

import logging
import uuid

from remedy_gate import display
from remedy_gate.executor import ActionExecutor
from remedy_gate.journal import AuditJournal
from remedy_gate.models import ExecutionResult, JournalEntry, Outcome, UndoReport

logger = logging.getLogger(__name__)


class UndoCoordinator:
    def __init__(self, journal: AuditJournal, executor: ActionExecutor, session_id: str | None = None) -> None:
        self._journal = journal
        self._executor = executor
        self._session_id = session_id or uuid.uuid4().hex

    @property
    def session_id(self) -> str:
        return self._session_id

    def undo(self, target_session: str) -> list[UndoReport]:
        """
        Replay `target_session`'s undo scripts in reverse write order.

        Raises JournalWriteError if an undo step cannot be recorded; every
        other failure is reported in the returned list.
        """
        entries = [
            entry
            for entry in self._journal.for_session(target_session)
            if entry.phase == "forward" and entry.undo_script and entry.undo_script.strip()
        ]
        display.undo_start(target_session, len(entries))

        reports: list[UndoReport] = []
        for entry in reversed(entries):
            display.undo_step(entry.tool_name)
            proc = self._executor.run_script(entry.undo_script)
            success = proc.completed and proc.exit_code == 0

            if proc.timed_out:
                outcome, error = Outcome.TIMEOUT, proc.output
            elif proc.error:
                outcome, error = Outcome.FAILED, proc.error
            elif not success:
                outcome, error = Outcome.FAILED, f"Undo script exited with code {proc.exit_code}"
            else:
                outcome, error = Outcome.OK, None

            if not success:
                logger.error("Failed to undo %s: %s", entry.tool_name, error)

            self._journal.append(
                JournalEntry(
                    session_id=self._session_id,
                    tool_name=entry.tool_name,
                    arguments=entry.arguments,
                    result=ExecutionResult(
                        success=success,
                        outcome=outcome,
                        error=error,
                        data={"exit_code": proc.exit_code, "duration_ms": proc.duration_ms},
                        output=proc.output,
                        forward_script=entry.undo_script,
                    ),
                    phase="undo",
                    undo_of=target_session,
                )
            )

            report = UndoReport(
                tool_name=entry.tool_name,
                original_timestamp=entry.timestamp,
                success=success,
                process=proc,
            )
            display.undo_result(report)
            reports.append(report)

        display.undo_complete(reports)
        return reports
