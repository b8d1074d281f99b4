import pytest

from remedy_gate.capabilities import (
    CreateTestOutlookProfile,
    DisableOutlookAddins,
    ResetNetworkAdapter,
    RunCommand,
    default_capabilities,
)
from remedy_gate.catalog import RawCommandCapability
from remedy_gate.errors import ArgumentValidationError

STRUCTURED = [c for c in default_capabilities() if not isinstance(c, RawCommandCapability)]

# ---------------------------------------------------------------------------
# Undo script contract
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "capability",
    [c for c in STRUCTURED if c.mutates_host and c.reversible],
    ids=lambda c: c.name,
)
def test_reversible_mutating_capabilities_emit_undo(capability):
    result = capability.execute(capability.validate({}))
    assert result.success is True
    assert result.forward_script and result.forward_script.strip()
    assert result.undo_script and result.undo_script.strip()

@pytest.mark.parametrize(
    "capability",
    [c for c in STRUCTURED if not c.mutates_host or not c.reversible],
    ids=lambda c: c.name,
)
def test_irreversible_or_readonly_capabilities_emit_no_undo(capability):
    result = capability.execute(capability.validate({}))
    assert result.success is True
    assert result.forward_script
    assert result.undo_script is None

def test_execute_does_not_touch_host(monkeypatch):
    def _forbidden(*args, **kwargs):
        raise AssertionError("capability spawned a process")

    monkeypatch.setattr("subprocess.Popen", _forbidden)
    for capability in STRUCTURED:
        capability.execute(capability.validate({}))

# ---------------------------------------------------------------------------
# Argument-driven script content
# ---------------------------------------------------------------------------

def test_addins_scope_selects_hive():
    capability = DisableOutlookAddins()
    current = capability.execute(capability.validate({"Scope": "CurrentUser"}))
    machine = capability.execute(capability.validate({"Scope": "AllUsers"}))
    assert "HKCU" in current.forward_script
    assert "HKLM" in machine.forward_script

def test_addins_without_backup_skips_export():
    capability = DisableOutlookAddins()
    result = capability.execute(capability.validate({"BackupRegistry": False}))
    assert "reg export" not in result.forward_script

def test_network_reset_flags_control_steps():
    capability = ResetNetworkAdapter()
    result = capability.execute(
        capability.validate({"IncludeWinsockReset": False, "IncludeTcpIpReset": True})
    )
    assert "netsh winsock reset" not in result.forward_script
    assert "netsh int ip reset" in result.forward_script
    assert result.data["adapter"] == "all"

def test_profile_name_rejects_quote_injection():
    with pytest.raises(ArgumentValidationError):
        CreateTestOutlookProfile().validate({"ProfileName": "x'; Remove-Item C:\\ -Recurse; '"})

def test_profile_name_flows_into_script():
    capability = CreateTestOutlookProfile()
    result = capability.execute(capability.validate({"ProfileName": "Helpdesk Test"}))
    assert "'Helpdesk Test'" in result.forward_script

# ---------------------------------------------------------------------------
# Raw command capability
# ---------------------------------------------------------------------------

def test_run_command_strips_and_reports_command():
    capability = RunCommand()
    args = capability.validate({"command": "  Get-Process  ", "reason": "triage"})
    assert capability.command_line(args) == "Get-Process"
    result = capability.execute(args)
    assert result.data == {"command": "Get-Process"}
    assert result.forward_script is None

def test_run_command_length_bounded():
    with pytest.raises(ArgumentValidationError):
        RunCommand().validate({"command": "x" * 1001})
