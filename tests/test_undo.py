from remedy_gate.executor import ActionExecutor
from remedy_gate.journal import AuditJournal
from remedy_gate.models import ExecutionResult, JournalEntry, Outcome
from remedy_gate.undo import UndoCoordinator

from conftest import make_settings


def _record(journal, session, tool, undo):
    journal.append(
        JournalEntry(
            session_id=session,
            tool_name=tool,
            arguments={},
            result=ExecutionResult(success=True, undo_script=undo),
            undo_script=undo,
        )
    )


def _append_line(path, text):
    return f"open({str(path)!r}, 'a').write({text + chr(10)!r})"

# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

def test_undo_runs_newest_first(tmp_path):
    settings = make_settings(tmp_path)
    journal = AuditJournal(settings.log_dir)
    trace = tmp_path / "trace.txt"
    for tool in ("A", "B", "C"):
        _record(journal, "s1", tool, _append_line(trace, tool))

    reports = UndoCoordinator(journal, ActionExecutor(settings)).undo("s1")

    assert [r.tool_name for r in reports] == ["C", "B", "A"]
    assert all(r.success for r in reports)
    assert trace.read_text().split() == ["C", "B", "A"]

def test_undo_ignores_other_sessions_and_undo_less_entries(tmp_path):
    settings = make_settings(tmp_path)
    journal = AuditJournal(settings.log_dir)
    trace = tmp_path / "trace.txt"
    _record(journal, "s1", "A", _append_line(trace, "A"))
    _record(journal, "s1", "Diag", None)
    _record(journal, "s2", "Other", _append_line(trace, "Other"))

    reports = UndoCoordinator(journal, ActionExecutor(settings)).undo("s1")

    assert [r.tool_name for r in reports] == ["A"]
    assert trace.read_text().split() == ["A"]

# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------

def test_undo_continues_past_failures(tmp_path):
    settings = make_settings(tmp_path)
    journal = AuditJournal(settings.log_dir)
    trace = tmp_path / "trace.txt"
    _record(journal, "s1", "A", _append_line(trace, "A"))
    _record(journal, "s1", "B", "raise SystemExit(1)")
    _record(journal, "s1", "C", _append_line(trace, "C"))

    reports = UndoCoordinator(journal, ActionExecutor(settings)).undo("s1")

    assert [(r.tool_name, r.success) for r in reports] == [("C", True), ("B", False), ("A", True)]
    assert reports[1].process.exit_code == 1
    assert trace.read_text().split() == ["C", "A"]

def test_undo_timeout_reported(tmp_path):
    settings = make_settings(tmp_path, command_timeout=1)
    journal = AuditJournal(settings.log_dir)
    _record(journal, "s1", "Slow", "import time; time.sleep(30)")

    (report,) = UndoCoordinator(journal, ActionExecutor(settings)).undo("s1")

    assert report.success is False
    assert report.process.timed_out is True

def test_unknown_session_is_a_no_op(tmp_path):
    settings = make_settings(tmp_path)
    journal = AuditJournal(settings.log_dir)
    assert UndoCoordinator(journal, ActionExecutor(settings)).undo("missing") == []

# ---------------------------------------------------------------------------
# Journaling
# ---------------------------------------------------------------------------

def test_undo_steps_are_journaled(tmp_path):
    settings = make_settings(tmp_path)
    journal = AuditJournal(settings.log_dir)
    _record(journal, "s1", "A", "print('undo A')")
    _record(journal, "s1", "B", "raise SystemExit(2)")

    coordinator = UndoCoordinator(journal, ActionExecutor(settings), session_id="undo-session")
    coordinator.undo("s1")

    undo_entries = journal.for_session("undo-session")
    assert [e.tool_name for e in undo_entries] == ["B", "A"]
    assert all(e.phase == "undo" and e.undo_of == "s1" for e in undo_entries)
    assert undo_entries[0].result.outcome == Outcome.FAILED
    assert undo_entries[1].result.outcome == Outcome.OK
    assert undo_entries[1].result.forward_script == "print('undo A')"
    assert journal.latest_undoable_session() is None
