# capabilities.py
# The fixed registration list. Each capability turns validated arguments
# into PowerShell text; nothing here touches the host. The executor runs
# forward_script, the journal keeps undo_script.

from typing import Literal

from pydantic import Field

from remedy_gate.catalog import Capability, RawCommandCapability, ToolArgs, ToolCatalog
from remedy_gate.models import ExecutionResult

BACKUP_DIR = r"$env:ProgramData\RemedyGate\backups"

# Profile and adapter names end up inside single-quoted PowerShell strings.
_SAFE_NAME = r"^[\w .-]{1,64}$"


def _script(*lines: str) -> str:
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


class CheckSystemHealth(Capability):
    name = "CheckSystemHealth"
    description = "Collects disk, memory, CPU, service and update status without changing anything"
    mutates_host = False

    class Args(ToolArgs):
        check_disk: bool = Field(True, alias="CheckDiskHealth")
        check_memory: bool = Field(True, alias="CheckMemory")
        check_cpu: bool = Field(True, alias="CheckCpu")
        check_services: bool = Field(True, alias="CheckServices")
        check_startup: bool = Field(True, alias="CheckStartupPrograms")
        check_updates: bool = Field(True, alias="CheckWindowsUpdate")

    def execute(self, args: Args) -> ExecutionResult:
        lines = ["# System health check (read-only)", "$ErrorActionPreference = 'Continue'"]
        if args.check_disk:
            lines.append(
                "Get-PSDrive -PSProvider FileSystem | "
                "Select-Object Name, @{n='FreeGB';e={[math]::Round($_.Free/1GB,1)}}, "
                "@{n='UsedGB';e={[math]::Round($_.Used/1GB,1)}} | Format-Table -AutoSize"
            )
        if args.check_memory:
            lines.append(
                "Get-CimInstance Win32_OperatingSystem | "
                "Select-Object FreePhysicalMemory, TotalVisibleMemorySize, LastBootUpTime | Format-List"
            )
        if args.check_cpu:
            lines.append("Get-CimInstance Win32_Processor | Select-Object Name, LoadPercentage | Format-List")
        if args.check_services:
            lines.append(
                "Get-Service | Where-Object { $_.StartType -eq 'Automatic' -and $_.Status -ne 'Running' } | "
                "Select-Object Name, Status | Format-Table -AutoSize"
            )
        if args.check_startup:
            lines.append("Get-CimInstance Win32_StartupCommand | Select-Object Name, Command | Format-Table -AutoSize")
        if args.check_updates:
            lines.append("Get-HotFix | Sort-Object InstalledOn -Descending | Select-Object -First 5")
        checks = [k for k, v in args.model_dump().items() if v]
        return ExecutionResult(
            success=True,
            data={"checks": checks},
            forward_script=_script(*lines),
        )


class CheckOfficeInstallation(Capability):
    name = "CheckOfficeInstallation"
    description = "Reports Microsoft Office version, install path and activation state"
    mutates_host = False

    class Args(ToolArgs):
        include_activation_check: bool = Field(True, alias="IncludeActivationCheck")

    def execute(self, args: Args) -> ExecutionResult:
        lines = [
            "# Office installation check (read-only)",
            "$c2r = 'HKLM:\\SOFTWARE\\Microsoft\\Office\\ClickToRun\\Configuration'",
            "if (Test-Path $c2r) { Get-ItemProperty $c2r | Select-Object VersionToReport, Platform, InstallationPath }",
            "else { Write-Host 'Click-to-Run configuration not found.' }",
        ]
        if args.include_activation_check:
            lines.append(
                "Get-CimInstance SoftwareLicensingProduct -Filter \"Name like '%Office%'\" | "
                "Select-Object Name, LicenseStatus"
            )
        return ExecutionResult(
            success=True,
            data={"activation_check": args.include_activation_check},
            forward_script=_script(*lines),
        )


# ---------------------------------------------------------------------------
# Office
# ---------------------------------------------------------------------------


class RepairOffice(Capability):
    name = "RepairOffice"
    description = "Runs a Click-to-Run quick or online repair of Microsoft Office"
    requires_elevated_privilege = True
    reversible = False

    class Args(ToolArgs):
        repair_type: Literal["Quick", "Online"] = Field("Quick", alias="RepairType")
        force_close_apps: bool = Field(True, alias="ForceCloseApps")

    def execute(self, args: Args) -> ExecutionResult:
        repair = "QuickRepair" if args.repair_type == "Quick" else "FullRepair"
        lines = [
            "# Office repair",
            "$ErrorActionPreference = 'Stop'",
            "$exe = 'C:\\Program Files\\Common Files\\Microsoft Shared\\ClickToRun\\OfficeClickToRun.exe'",
            "if (-not (Test-Path $exe)) { $exe = 'C:\\Program Files (x86)\\Common Files\\Microsoft Shared\\ClickToRun\\OfficeClickToRun.exe' }",
            "if (-not (Test-Path $exe)) { throw 'OfficeClickToRun.exe not found.' }",
        ]
        if args.force_close_apps:
            lines.append(
                "Get-Process winword, excel, powerpnt, outlook -ErrorAction SilentlyContinue | Stop-Process -Force"
            )
        lines.append(
            f"Start-Process -FilePath $exe -ArgumentList 'scenario=Repair platform=x86 "
            f"culture=en-us RepairType={repair} DisplayLevel=False' -Wait"
        )
        return ExecutionResult(
            success=True,
            data={
                "repair_type": args.repair_type,
                "estimated_duration": "5-10 minutes" if args.repair_type == "Quick" else "30-60 minutes",
            },
            forward_script=_script(*lines),
        )


class DisableOutlookAddins(Capability):
    name = "DisableOutlookAddins"
    description = "Disables Outlook COM add-ins to isolate crashes/startup issues"
    requires_elevated_privilege = True

    class Args(ToolArgs):
        scope: Literal["CurrentUser", "AllUsers"] = Field("CurrentUser", alias="Scope")
        backup_registry: bool = Field(True, alias="BackupRegistry")

    def execute(self, args: Args) -> ExecutionResult:
        hive = "HKLM" if args.scope == "AllUsers" else "HKCU"
        backup = f"{BACKUP_DIR}\\outlook_addins_{args.scope.lower()}.reg"
        forward = [
            "# Disable Outlook add-ins",
            "$ErrorActionPreference = 'Stop'",
            f"New-Item -ItemType Directory -Path \"{BACKUP_DIR}\" -Force | Out-Null",
        ]
        if args.backup_registry:
            forward.append(
                f"reg export {hive}\\Software\\Microsoft\\Office\\Outlook\\Addins \"{backup}\" /y 2>$null"
            )
        forward += [
            f"$key = '{hive}:\\Software\\Microsoft\\Office\\Outlook\\Addins'",
            "if (Test-Path $key) {",
            "  Get-ChildItem $key | ForEach-Object { New-ItemProperty -Path $_.PsPath -Name LoadBehavior "
            "-PropertyType DWord -Value 0 -Force | Out-Null }",
            "  Write-Host 'All add-ins under scope disabled (LoadBehavior=0).'",
            "} else { Write-Host 'No add-ins registry key found.' }",
        ]
        undo = _script(
            "# Restore Outlook add-ins",
            f"$backup = \"{backup}\"",
            "if (Test-Path $backup) { reg import \"$backup\" }",
            "else { Write-Host 'No registry backup found; manual re-enable may be required.'; exit 1 }",
        )
        return ExecutionResult(
            success=True,
            data={"scope": args.scope, "backup": args.backup_registry},
            forward_script=_script(*forward),
            undo_script=undo,
        )


class CreateTestOutlookProfile(Capability):
    name = "CreateTestOutlookProfile"
    description = "Creates a new Outlook profile and sets it as default to isolate profile corruption"

    class Args(ToolArgs):
        profile_name: str = Field("RemedyGateTestProfile", alias="ProfileName", pattern=_SAFE_NAME)

    def execute(self, args: Args) -> ExecutionResult:
        key = "HKCU:\\Software\\Microsoft\\Office\\16.0\\Outlook"
        forward = _script(
            "# Create test Outlook profile",
            "$ErrorActionPreference = 'Stop'",
            f"$key = '{key}'",
            "New-Item -Path $key -Force | Out-Null",
            "$previous = (Get-ItemProperty -Path $key -Name DefaultProfile -ErrorAction SilentlyContinue).DefaultProfile",
            f"New-Item -ItemType Directory -Path \"{BACKUP_DIR}\" -Force | Out-Null",
            f"Set-Content -Path \"{BACKUP_DIR}\\outlook_default_profile.txt\" -Value $previous",
            f"Set-ItemProperty -Path $key -Name DefaultProfile -Value '{args.profile_name}' -Force",
            f"Write-Host \"Default Outlook profile set to '{args.profile_name}'.\"",
        )
        undo = _script(
            "# Restore previous default Outlook profile",
            f"$key = '{key}'",
            f"$saved = \"{BACKUP_DIR}\\outlook_default_profile.txt\"",
            "$previous = if (Test-Path $saved) { (Get-Content $saved -Raw).Trim() } else { '' }",
            "if ($previous) { Set-ItemProperty -Path $key -Name DefaultProfile -Value $previous -Force }",
            "else { Remove-ItemProperty -Path $key -Name DefaultProfile -ErrorAction SilentlyContinue }",
        )
        return ExecutionResult(
            success=True,
            data={"profile_name": args.profile_name},
            forward_script=forward,
            undo_script=undo,
        )


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------


class ResetWinHTTP(Capability):
    name = "ResetWinHTTP"
    description = "Resets WinHTTP proxy settings and optionally imports IE/WinINET proxy"
    requires_elevated_privilege = True

    class Args(ToolArgs):
        reset_proxy: bool = Field(True, alias="ResetProxy")
        import_ie_proxy: bool = Field(False, alias="ImportIEProxy")

    def execute(self, args: Args) -> ExecutionResult:
        backup = f"{BACKUP_DIR}\\winhttp-proxy.txt"
        forward = [
            "# Reset WinHTTP proxy",
            "$ErrorActionPreference = 'Stop'",
            f"New-Item -ItemType Directory -Path \"{BACKUP_DIR}\" -Force | Out-Null",
            f"netsh winhttp show proxy | Out-File -FilePath \"{backup}\" -Encoding utf8",
        ]
        if args.reset_proxy:
            forward.append("netsh winhttp reset proxy")
        if args.import_ie_proxy:
            forward.append("netsh winhttp import proxy source=ie")
        undo = _script(
            "# Restore WinHTTP proxy",
            f"$backup = \"{backup}\"",
            "if ((Test-Path $backup) -and ((Get-Content $backup -Raw) -match 'Proxy Server\\(s\\)\\s*:\\s*(\\S+)')) {",
            "  netsh winhttp set proxy $Matches[1]",
            "} else { netsh winhttp reset proxy }",
        )
        return ExecutionResult(
            success=True,
            data={"reset_proxy": args.reset_proxy, "import_ie_proxy": args.import_ie_proxy},
            forward_script=_script(*forward),
            undo_script=undo,
        )


class ResetNetworkAdapter(Capability):
    name = "ResetNetworkAdapter"
    description = "Releases/renews IP, flushes DNS and optionally resets Winsock and TCP/IP"
    requires_elevated_privilege = True

    class Args(ToolArgs):
        adapter_name: str | None = Field(None, alias="AdapterName", pattern=_SAFE_NAME)
        include_winsock_reset: bool = Field(True, alias="IncludeWinsockReset")
        include_tcpip_reset: bool = Field(True, alias="IncludeTcpIpReset")

    def execute(self, args: Args) -> ExecutionResult:
        dump = f"{BACKUP_DIR}\\netsh-ip-dump.txt"
        forward = [
            "# Reset network adapter",
            f"New-Item -ItemType Directory -Path \"{BACKUP_DIR}\" -Force | Out-Null",
            f"netsh interface ip dump | Out-File -FilePath \"{dump}\" -Encoding ascii",
        ]
        if args.adapter_name:
            forward.append(f"Restart-NetAdapter -Name '{args.adapter_name}' -Confirm:$false")
        forward += ["ipconfig /release", "ipconfig /flushdns", "ipconfig /renew"]
        if args.include_winsock_reset:
            forward.append("netsh winsock reset")
        if args.include_tcpip_reset:
            forward.append("netsh int ip reset")
        forward.append("Write-Host 'A restart is recommended to apply all changes.'")
        undo = _script(
            "# Restore interface IP configuration",
            f"$dump = \"{dump}\"",
            "if (Test-Path $dump) { netsh exec $dump } else { Write-Host 'No interface dump found.'; exit 1 }",
        )
        return ExecutionResult(
            success=True,
            data={
                "adapter": args.adapter_name or "all",
                "winsock_reset": args.include_winsock_reset,
                "tcpip_reset": args.include_tcpip_reset,
            },
            forward_script=_script(*forward),
            undo_script=undo,
        )


# ---------------------------------------------------------------------------
# Disk
# ---------------------------------------------------------------------------


class CleanDiskSpace(Capability):
    name = "CleanDiskSpace"
    description = "Deletes temporary files and caches and empties the recycle bin"
    reversible = False

    class Args(ToolArgs):
        clean_temp_files: bool = Field(True, alias="CleanTempFiles")
        clean_recycle_bin: bool = Field(True, alias="CleanRecycleBin")
        clean_browser_cache: bool = Field(False, alias="CleanBrowserCache")

    def execute(self, args: Args) -> ExecutionResult:
        lines = ["# Disk cleanup (deleted files are not recoverable)", "$ErrorActionPreference = 'Continue'"]
        targets = []
        if args.clean_temp_files:
            targets.append("temp")
            lines += [
                "Remove-Item -Path \"$env:TEMP\\*\" -Recurse -Force -ErrorAction SilentlyContinue",
                "Remove-Item -Path \"$env:WINDIR\\Temp\\*\" -Recurse -Force -ErrorAction SilentlyContinue",
            ]
        if args.clean_recycle_bin:
            targets.append("recycle_bin")
            lines.append("Clear-RecycleBin -Force -ErrorAction SilentlyContinue")
        if args.clean_browser_cache:
            targets.append("browser_cache")
            lines += [
                "Remove-Item -Path \"$env:LOCALAPPDATA\\Google\\Chrome\\User Data\\Default\\Cache\\*\" "
                "-Recurse -Force -ErrorAction SilentlyContinue",
                "Remove-Item -Path \"$env:LOCALAPPDATA\\Microsoft\\Edge\\User Data\\Default\\Cache\\*\" "
                "-Recurse -Force -ErrorAction SilentlyContinue",
            ]
        lines.append(
            "Get-PSDrive -PSProvider FileSystem | Select-Object Name, "
            "@{n='FreeGB';e={[math]::Round($_.Free/1GB,1)}}"
        )
        return ExecutionResult(success=True, data={"targets": targets}, forward_script=_script(*lines))


# ---------------------------------------------------------------------------
# Raw command
# ---------------------------------------------------------------------------


class RunCommand(RawCommandCapability):
    name = "RunCommand"
    description = (
        "Runs a single diagnostic command line. Subject to the command policy: "
        "read-only triage is allowed, maintenance and process kills need operator flags."
    )

    class Args(ToolArgs):
        command: str = Field(..., min_length=1, max_length=1000)
        reason: str | None = Field(None, max_length=500)

    def command_line(self, args: Args) -> str:
        return args.command.strip()


def default_capabilities() -> list[Capability]:
    return [
        CheckOfficeInstallation(),
        RepairOffice(),
        ResetNetworkAdapter(),
        DisableOutlookAddins(),
        CreateTestOutlookProfile(),
        ResetWinHTTP(),
        CleanDiskSpace(),
        CheckSystemHealth(),
        RunCommand(),
    ]


def default_catalog() -> ToolCatalog:
    return ToolCatalog(default_capabilities())
