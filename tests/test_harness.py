import pytest
from unittest.mock import MagicMock, patch

from remedy_gate.capabilities import RunCommand
from remedy_gate.catalog import Capability, ToolArgs, ToolCatalog
from remedy_gate.errors import PlanError, ToolNotFoundError
from remedy_gate.harness import Engine
from remedy_gate.models import ExecutionResult, Outcome, ToolCall

from conftest import make_settings


class _Echo(Capability):
    """Reversible test capability: forward and undo scripts append to a trace file."""

    name = "Echo"
    description = "appends a word to a trace file"

    class Args(ToolArgs):
        text: str = "hi"

    def __init__(self, trace):
        self._trace = trace

    def execute(self, args):
        def line(word):
            return f"open({str(self._trace)!r}, 'a').write({word + chr(10)!r})"

        return ExecutionResult(
            success=True,
            data={"text": args.text},
            forward_script=line(args.text),
            undo_script=line("undo-" + args.text),
        )


class _Privileged(Capability):
    name = "Privileged"
    description = "wants admin"
    requires_elevated_privilege = True
    mutates_host = False

    def execute(self, args):
        return ExecutionResult(success=True, data={"ok": True}, forward_script="print('privileged')")


def _engine(tmp_path, calls=(), extra=(), elevated=True, **settings_overrides):
    settings = make_settings(tmp_path, **settings_overrides)
    trace = tmp_path / "trace.txt"
    catalog = ToolCatalog([RunCommand(), _Echo(trace), *extra])
    planner = MagicMock()
    planner.plan.return_value = list(calls)
    engine = Engine(settings, catalog=catalog, planner=planner, session_id="sess-1", elevated=elevated)
    return engine, planner, trace

# ---------------------------------------------------------------------------
# Planning and dry run
# ---------------------------------------------------------------------------

def test_plan_passes_catalog_descriptors(tmp_path):
    calls = [ToolCall(tool_name="Echo", arguments={"text": "a"})]
    engine, planner, _ = _engine(tmp_path, calls)

    assert engine.plan("Outlook crashes", facts="Office 365") == calls
    issue, facts, descriptors = planner.plan.call_args.args
    assert (issue, facts) == ("Outlook crashes", "Office 365")
    assert {d.name for d in descriptors} == {"RunCommand", "Echo"}

def test_empty_issue_raises_plan_error(tmp_path):
    engine, planner, _ = _engine(tmp_path)
    with pytest.raises(PlanError):
        engine.plan("   ")
    planner.plan.assert_not_called()

def test_dry_run_never_spawns_or_journals(tmp_path):
    calls = [
        ToolCall(tool_name="Echo", arguments={"text": "a"}),
        ToolCall(tool_name="RunCommand", arguments={"command": "Get-Process"}),
    ]
    engine, _, trace = _engine(tmp_path, calls)

    with patch("remedy_gate.executor.run_process") as mock_run:
        reports = engine.run("anything", execute=False)

    assert reports == []
    mock_run.assert_not_called()
    assert not engine.journal.path.exists()
    assert not trace.exists()

# ---------------------------------------------------------------------------
# Execution scenarios
# ---------------------------------------------------------------------------

def test_triage_command_runs_and_is_journaled(tmp_path):
    calls = [ToolCall(tool_name="RunCommand", arguments={"command": "Get-Process"})]
    engine, _, _ = _engine(tmp_path, calls)

    (report,) = engine.run("slow machine", execute=True)

    assert report.result.success is True
    assert report.result.outcome == Outcome.OK
    assert "ran Get-Process" in report.result.output
    (entry,) = engine.journal.for_session("sess-1")
    assert entry.tool_name == "RunCommand"
    assert entry.result.data["rule"] == "triage"

def test_policy_rejection_is_journaled_and_session_continues(tmp_path):
    calls = [
        ToolCall(tool_name="RunCommand", arguments={"command": "Remove-Item C:\\Windows -Recurse"}),
        ToolCall(tool_name="Echo", arguments={"text": "after"}),
    ]
    engine, _, trace = _engine(tmp_path, calls)

    reports = engine.execute_plan(calls)

    assert [r.result.outcome for r in reports] == [Outcome.POLICY_REJECTED, Outcome.OK]
    assert reports[0].result.output == "[blocked by policy]"
    assert trace.read_text().split() == ["after"]
    assert [e.result.outcome for e in engine.journal.entries()] == [Outcome.POLICY_REJECTED, Outcome.OK]

def test_unknown_tool_halts_without_journaling_it(tmp_path):
    calls = [
        ToolCall(tool_name="Echo", arguments={"text": "first"}),
        ToolCall(tool_name="WipeDisk", arguments={}),
        ToolCall(tool_name="Echo", arguments={"text": "never"}),
    ]
    engine, _, trace = _engine(tmp_path, calls)

    with pytest.raises(ToolNotFoundError, match="WipeDisk"):
        engine.execute_plan(calls)

    assert trace.read_text().split() == ["first"]
    assert [e.tool_name for e in engine.journal.entries()] == ["Echo"]

def test_invalid_arguments_skip_capability_and_continue(tmp_path):
    calls = [
        ToolCall(tool_name="Echo", arguments={"text": "a", "extra": True}),
        ToolCall(tool_name="Echo", arguments=["not", "an", "object"]),
        ToolCall(tool_name="Echo", arguments={"text": "ok"}),
    ]
    engine, _, trace = _engine(tmp_path, calls)

    reports = engine.execute_plan(calls)

    assert [r.result.outcome for r in reports] == [
        Outcome.VALIDATION_FAILED,
        Outcome.VALIDATION_FAILED,
        Outcome.OK,
    ]
    assert trace.read_text().split() == ["ok"]
    entries = engine.journal.entries()
    assert len(entries) == 3
    assert entries[0].result.data["details"]

def test_tool_names_resolve_case_insensitively(tmp_path):
    calls = [ToolCall(tool_name="echo", arguments={"text": "lower"})]
    engine, _, trace = _engine(tmp_path, calls)

    (report,) = engine.execute_plan(calls)

    assert report.tool_name == "Echo"
    assert trace.read_text().split() == ["lower"]

def test_timeout_is_journaled_and_session_continues(tmp_path):
    calls = [
        ToolCall(tool_name="RunCommand", arguments={"command": "Get-Process"}),
        ToolCall(tool_name="Echo", arguments={"text": "after"}),
    ]
    engine, _, trace = _engine(
        tmp_path,
        calls,
        shell=[make_settings(tmp_path).shell[0], "-c", "import time; time.sleep(30)"],
        command_timeout=1,
    )

    reports = engine.execute_plan(calls)

    assert reports[0].result.outcome == Outcome.TIMEOUT
    assert reports[1].result.outcome == Outcome.OK
    assert trace.read_text().split() == ["after"]
    assert engine.journal.entries()[0].result.outcome == Outcome.TIMEOUT

def test_unelevated_privileged_step_warns_and_runs(tmp_path):
    calls = [ToolCall(tool_name="Privileged", arguments={})]
    engine, _, _ = _engine(tmp_path, calls, extra=[_Privileged()], elevated=False)

    (report,) = engine.execute_plan(calls)

    assert report.result.success is True
    assert report.result.data["elevated"] is False
    assert report.result.data["ok"] is True

def test_undo_script_recorded_in_journal(tmp_path):
    calls = [ToolCall(tool_name="Echo", arguments={"text": "a"})]
    engine, _, _ = _engine(tmp_path, calls)

    engine.execute_plan(calls)

    (entry,) = engine.journal.entries()
    assert entry.undo_script and "undo-a" in entry.undo_script
    assert entry.session_id == "sess-1"
    assert entry.arguments == {"text": "a"}

# ---------------------------------------------------------------------------
# Undo through the engine
# ---------------------------------------------------------------------------

def test_undo_reverts_latest_session(tmp_path):
    calls = [
        ToolCall(tool_name="Echo", arguments={"text": "a"}),
        ToolCall(tool_name="Echo", arguments={"text": "b"}),
    ]
    engine, _, trace = _engine(tmp_path, calls)
    engine.execute_plan(calls)

    reports = engine.undo()

    assert [r.success for r in reports] == [True, True]
    assert trace.read_text().split() == ["a", "b", "undo-b", "undo-a"]
    assert engine.journal.latest_undoable_session() is None

def test_undo_with_empty_journal(tmp_path):
    engine, _, _ = _engine(tmp_path)
    assert engine.undo() == []
