# policy.py
# Command-line policy classifier for the raw-command capability.
#
# Precedence, first match wins:
#   1. hard deny      — always Deny, even with allow_dangerous
#   2. allow_dangerous — Allow everything below the ceiling
#   3. deny list      — mutating verbs, deletion, downloads to disk
#   4. triage         — read-only diagnostics
#   5. maintenance    — only with allow_maintenance
#   6. targeted kill  — only with allow_kill
#   7. default deny
#
# This is pattern matching over free text. It is not a sandbox: chained
# commands, aliases and script blocks can slip past it. Tiers 4-6 are
# anchored and reject shell chaining characters in arguments, which narrows
# but does not close that gap.

import re

from remedy_gate.models import ModeFlags, PolicyDecision

BLOCKED_MARKER = "[blocked by policy]"

_FLAGS = re.IGNORECASE

# Argument text permitted after an allow-listed head: no chaining,
# substitution or redirection characters.
_ARGS = r"(?:\s+[^;&|`<>$()\r\n]*)?"

# Read-only formatting stages a triage command may be piped through.
_PIPE_TAIL = (
    r"(?:\s*\|\s*(?:Select-Object|Sort-Object|Format-Table|Format-List|Where-Object"
    r"|Measure-Object|Out-String|Select-String|head|tail|grep|sort|wc|findstr)"
    r"(?:\s+[^;&|`<>$()\r\n]*)?)*"
)


def _search(*patterns: str) -> list[re.Pattern]:
    return [re.compile(p, _FLAGS) for p in patterns]


def _full(*heads: str, args: bool = False, pipes: bool = False) -> list[re.Pattern]:
    tail = (_ARGS if args else "") + (_PIPE_TAIL if pipes else "")
    return [re.compile(rf"^\s*(?:{h}){tail}\s*$", _FLAGS) for h in heads]


# ---------------------------------------------------------------------------
# Tier 1 — hard deny (non-overridable ceiling)
# ---------------------------------------------------------------------------

HARD_DENY = _search(
    # low-level disk writes and formatting
    r"\bmkfs(?:\.\w+)?\b",
    r"\bdd\b",
    r"\bformat(?:\.com)?\s+[a-z]:",
    r"\bFormat-Volume\b",
    r"\bClear-Disk\b",
    r"\bInitialize-Disk\b",
    r"\bdiskpart\b",
    r"\bwipefs\b",
    r"\bcipher(?:\.exe)?\s+/w\b",
    r"\bbcdedit\b",
    r">\s*/dev/(?:sd|hd|vd|xvd|nvme|mmcblk|disk)\w*",
    r"\brm\s+(?:-\w+\s+)*/\*?(?:\s|$)",
    # power state
    r"\bshutdown\b",
    r"\breboot\b",
    r"\bhalt\b",
    r"\bpoweroff\b",
    r"\bRestart-Computer\b",
    r"\bStop-Computer\b",
    r"\binit\s+[06]\b",
    r"\bsystemctl\s+(?:suspend|hibernate|hybrid-sleep)\b",
)

# ---------------------------------------------------------------------------
# Tier 3 — general deny list
# ---------------------------------------------------------------------------

DENY_LIST = _search(
    # deletion
    r"\bRemove-Item\b",
    r"\bRemove-ItemProperty\b",
    r"\bClear-Content\b",
    r"\brm\b",
    r"\brmdir\b",
    r"\bdel\b",
    r"\berase\b",
    r"\brd\s+/s\b",
    r"\bshred\b",
    # file and registry writes
    r"\bSet-Content\b",
    r"\bAdd-Content\b",
    r"\bOut-File\b",
    r"\bNew-Item\b",
    r"\bCopy-Item\b",
    r"\bMove-Item\b",
    r"\bRename-Item\b",
    r"\bSet-ItemProperty\b",
    r"\bNew-ItemProperty\b",
    r"\bmv\b",
    r"\bcp\b",
    r"\breg(?:\.exe)?\s+(?:add|delete|import|restore|load|unload)\b",
    r"(?<![\d&])>>?\s*(?!\s*(?:\$null|/dev/null|nul)\b|&)",
    # configuration and permissions
    r"\bSet-ExecutionPolicy\b",
    r"\b(?:Install|Uninstall)-\w+",
    r"\bSet-Service\b",
    r"\bsc(?:\.exe)?\s+(?:config|delete|create)\b",
    r"\bchmod\b",
    r"\bchown\b",
    r"\btakeown\b",
    r"\bicacls\b.*\s/(?:grant|deny|reset|setowner)\b",
    r"\bnet\s+(?:user|localgroup)\b.*\s/(?:add|delete)\b",
    # unattended download to disk and indirect execution
    r"\bInvoke-WebRequest\b.*-OutFile\b",
    r"\biwr\b",
    r"\bwget\b",
    r"\bcurl\b.*\s(?:-o|-O|--output|--remote-name)\b",
    r"\bStart-BitsTransfer\b",
    r"\bbitsadmin\b",
    r"\bcertutil\b.*-urlcache\b",
    r"\bInvoke-Expression\b",
    r"\biex\b",
)

# ---------------------------------------------------------------------------
# Tier 4 — triage (read-only diagnostics)
# ---------------------------------------------------------------------------

TRIAGE = (
    _full(
        r"Get-(?:Process|Service|ComputerInfo|CimInstance|WmiObject|EventLog|WinEvent"
        r"|NetAdapter|NetIPConfiguration|NetIPAddress|NetRoute|NetTCPConnection"
        r"|DnsClientServerAddress|DnsClientCache|PSDrive|Volume|Disk|PhysicalDisk|HotFix"
        r"|PnpDevice|Printer|ScheduledTask|ChildItem|Item|ItemProperty|Content|Date|Uptime"
        r"|NetFirewallProfile|MpComputerStatus)",
        r"Test-(?:NetConnection|Connection|Path)",
        r"Resolve-DnsName",
        r"ping",
        r"nslookup",
        r"tracert",
        r"traceroute",
        r"pathping",
        r"netstat",
        r"tasklist",
        r"driverquery",
        r"ps",
        r"df",
        r"du",
        r"free",
        r"uname",
        r"lsblk",
        r"iostat",
        r"last",
        args=True,
        pipes=True,
    )
    + _full(
        r"ipconfig(?:\s+/all)?",
        r"systeminfo",
        r"hostname",
        r"whoami",
        r"id",
        r"uptime",
        r"vm_stat",
        r"sw_vers",
        r"top\s+-b\s+-n\s+1",
        r"dmesg(?:\s+-T)?",
        # Reads only: no -w and no key=value assignment.
        r"sysctl\s+(?:-a|-n\s+[\w.]+|[\w.]+)",
        r"ifconfig(?:\s+(?:-a|[\w.:]+))?",
        r"tail\s+-n\s+\d+\s+/var/log/[\w./-]+",
        r"ip\s+(?:-\w+\s+)*(?:addr|address|link|route)(?:\s+show)?",
        r"log\s+show\s+--last\s+\w+",
        r"netsh\s+(?:winhttp\s+show\s+proxy|interface\s+show\s+interface|wlan\s+show\s+interfaces)",
        pipes=True,
    )
)

# ---------------------------------------------------------------------------
# Tier 5 — maintenance (allow_maintenance)
# ---------------------------------------------------------------------------

MAINTENANCE = _full(
    r"ipconfig\s+/(?:flushdns|release|renew|registerdns)",
    r"Clear-DnsClientCache",
    r"netsh\s+winsock\s+reset",
    r"netsh\s+int(?:erface)?\s+ip\s+reset",
    r"netsh\s+winhttp\s+reset\s+proxy",
    r"sfc\s+/scannow",
    r"DISM(?:\.exe)?\s+/Online\s+/Cleanup-Image\s+/(?:ScanHealth|CheckHealth|RestoreHealth)",
    r"gpupdate(?:\s+/force)?",
    r"Clear-RecycleBin(?:\s+-Force)?",
    r"dscacheutil\s+-flushcache",
    r"killall\s+-HUP\s+mDNSResponder",
    r"resolvectl\s+flush-caches",
) + _full(
    r"Restart-Service",
    r"Start-Service",
    r"Restart-NetAdapter",
    r"systemctl\s+(?:restart|start|reload)",
    r"service\s+\S+\s+(?:restart|start|reload)",
    args=True,
)

# ---------------------------------------------------------------------------
# Tier 6 — targeted kill (allow_kill)
# ---------------------------------------------------------------------------

_PID = r"(?:[2-9]\d*|1\d+)"

KILL = _full(
    rf"Stop-Process\s+(?:-Name\s+[\w.-]+|-Id\s+{_PID})(?:\s+-Force)?",
    rf"taskkill(?:\.exe)?(?:\s+/F)?\s+(?:/IM\s+[\w.-]+|/PID\s+{_PID})(?:\s+/T)?(?:\s+/F)?",
    rf"kill(?:\s+-(?:9|15|TERM|KILL))?\s+{_PID}",
    r"pkill\s+[\w.-]+",
    r"killall\s+[\w.-]+",
)


def _first_match(patterns: list[re.Pattern], command: str) -> re.Pattern | None:
    for pattern in patterns:
        if pattern.search(command):
            return pattern
    return None


def classify(command: str, mode: ModeFlags) -> PolicyDecision:
    """Decide whether `command` may run under `mode`. Pure; no side effects."""
    if not command or not command.strip():
        return PolicyDecision(allowed=False, rule="default_deny")

    hit = _first_match(HARD_DENY, command)
    if hit:
        return PolicyDecision(allowed=False, rule="hard_deny", pattern=hit.pattern)

    if mode.allow_dangerous:
        return PolicyDecision(allowed=True, rule="dangerous_override")

    hit = _first_match(DENY_LIST, command)
    if hit:
        return PolicyDecision(allowed=False, rule="deny_list", pattern=hit.pattern)

    hit = _first_match(TRIAGE, command)
    if hit:
        return PolicyDecision(allowed=True, rule="triage", pattern=hit.pattern)

    if mode.allow_maintenance:
        hit = _first_match(MAINTENANCE, command)
        if hit:
            return PolicyDecision(allowed=True, rule="maintenance", pattern=hit.pattern)

    if mode.allow_kill:
        hit = _first_match(KILL, command)
        if hit:
            return PolicyDecision(allowed=True, rule="kill", pattern=hit.pattern)

    return PolicyDecision(allowed=False, rule="default_deny")


class PolicyClassifier:
    """Binds a fixed ModeFlags value to `classify` for the lifetime of an engine."""

    def __init__(self, mode: ModeFlags) -> None:
        self._mode = mode

    @property
    def mode(self) -> ModeFlags:
        return self._mode

    def classify(self, command: str) -> PolicyDecision:
        return classify(command, self._mode)
