# display.py
# All terminal output for the remediation gatekeeper.
#
# This module owns presentation entirely. The engine never formats strings;
# it calls named functions here. Swap this file to change the entire UI.
#
# Colour language:
#   cyan    — engine / routing events
#   blue    — planner calls
#   yellow  — policy and validation checkpoints, warnings
#   green   — success / confirmed
#   red     — failures, halts, blocked actions
#   magenta — process internals (command, exit code, output)

import json

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from remedy_gate.models import ExecutionResult, ModeFlags, Outcome, StepReport, ToolCall, UndoReport

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    value = value.replace("\n", " ⏎ ")
    if len(value) > max_len:
        value = value[:max_len] + "…"
    return escape(value)


def _flag(on: bool) -> str:
    return "[bold green]on[/bold green]" if on else "[dim]off[/dim]"


_OUTCOME_STYLE = {
    Outcome.OK: ("✓", "green"),
    Outcome.POLICY_REJECTED: ("BLOCKED", "red"),
    Outcome.VALIDATION_FAILED: ("INVALID", "yellow"),
    Outcome.TIMEOUT: ("TIMEOUT", "red"),
    Outcome.FAILED: ("✗", "red"),
}


# ---------------------------------------------------------------------------
# Engine entry
# ---------------------------------------------------------------------------


def banner(session_id: str, mode: ModeFlags, timeout: float) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Remedy Gate[/bold cyan]\n"
            "[dim]Policy-gated remediation with a durable audit journal and best-effort undo[/dim]\n\n"
            f"[dim]Session      :[/dim] [white]{session_id}[/white]\n"
            f"[dim]Maintenance  :[/dim] {_flag(mode.allow_maintenance)}\n"
            f"[dim]Kill         :[/dim] {_flag(mode.allow_kill)}\n"
            f"[dim]Dangerous    :[/dim] {_flag(mode.allow_dangerous)}\n"
            f"[dim]Timeout      :[/dim] [white]{timeout:g}s[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def issue_received(issue: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW ISSUE[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(issue)}[/white]",
            title=_label("ISSUE", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


def calling_planner() -> None:
    console.print()
    console.print(_label("ENGINE", "cyan"), "[blue] → Requesting plan from planner…[/blue]")


# ---------------------------------------------------------------------------
# Plan display
# ---------------------------------------------------------------------------


def plan_parsed(calls: list[ToolCall]) -> None:
    console.print()
    if not calls:
        console.print(_label("ENGINE", "cyan"), "[yellow] Planner proposed no steps.[/yellow]")
        return

    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="cyan",
        show_header=True,
        header_style="bold cyan",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Tool", style="bold white", width=26)
    table.add_column("Args", style="dim white")

    for i, call in enumerate(calls, start=1):
        table.add_row(str(i), escape(call.tool_name), _mono(json.dumps(call.arguments, default=str), 80))

    console.print(
        Panel(
            table,
            title=_label("PROPOSED PLAN", "cyan"),
            border_style="cyan",
            padding=(0, 1),
        )
    )


def dry_run_notice() -> None:
    console.print(
        "[dim cyan]  Dry run: nothing was executed and nothing was journaled.[/dim cyan]"
    )


# ---------------------------------------------------------------------------
# Execution loop
# ---------------------------------------------------------------------------


def execution_start(total: int) -> None:
    console.print()
    console.print(Rule(f"[cyan]EXECUTION — {total} step(s)[/cyan]", style="cyan"))


def step_start(index: int, total: int, tool_name: str) -> None:
    console.print()
    console.print(f"[bold cyan]  STEP [{index + 1}/{total}][/bold cyan]  [white]{escape(tool_name)}[/white]")


def elevation_warning(tool_name: str) -> None:
    console.print(
        f"  [yellow]⚠ {escape(tool_name)} expects elevated privileges; running unelevated.[/yellow]"
    )


def validation_failed(tool_name: str, details: list[str]) -> None:
    console.print(
        Panel(
            "\n".join(f"[white]{escape(d)}[/white]" for d in details),
            title=_label(f"INVALID ARGUMENTS: {tool_name}", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )


def step_result(result: ExecutionResult) -> None:
    mark, color = _OUTCOME_STYLE[result.outcome]
    if isinstance(result.data, dict) and "command" in result.data:
        console.print(f"  [magenta]Command[/magenta]  [bold white]{_mono(result.data['command'])}[/bold white]")
    if isinstance(result.data, dict) and result.data.get("exit_code") is not None:
        console.print(f"  [magenta]Exit[/magenta]     [white]{result.data['exit_code']}[/white]")
    if result.output:
        console.print(f"  [magenta]Output[/magenta]   [white]{_mono(result.output, 140)}[/white]")
    if result.error:
        console.print(f"  [{color}]{escape(result.error)}[/{color}]")
    console.print(f"  [bold {color}]{mark}[/bold {color}]")


def tool_not_found(tool_name: str) -> None:
    console.print(
        Panel(
            f"[bold red]Tool [white]{escape(repr(tool_name))}[/white] is not registered.[/bold red]\n"
            "[dim]The plan does not match the catalog. Remaining steps will not run.[/dim]",
            title=_label("TOOL NOT FOUND ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def execution_summary(reports: list[StepReport]) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("Step", justify="center", width=6)
    table.add_column("Tool", width=26)
    table.add_column("Outcome", justify="center", width=12)
    table.add_column("Undo", justify="center", width=6)

    for report in reports:
        mark, color = _OUTCOME_STYLE[report.result.outcome]
        undo = "[green]✓[/green]" if report.result.undo_script else "[dim]—[/dim]"
        table.add_row(str(report.index + 1), escape(report.tool_name), f"[bold {color}]{mark}[/bold {color}]", undo)

    console.print(
        Panel(
            table,
            title="[dim]EXECUTION SUMMARY[/dim]",
            border_style="dim",
            padding=(0, 1),
        )
    )


# ---------------------------------------------------------------------------
# Undo
# ---------------------------------------------------------------------------


def undo_start(target_session: str, count: int) -> None:
    console.print()
    console.print(Rule(f"[yellow]UNDO — session {target_session}[/yellow]", style="yellow"))
    console.print(f"[yellow]  {count} recorded undo script(s), newest first.[/yellow]")


def nothing_to_undo() -> None:
    console.print()
    console.print(_label("UNDO", "yellow"), "[yellow] No undoable session found in the journal.[/yellow]")


def undo_step(tool_name: str) -> None:
    console.print(f"  [yellow]↺ Undoing[/yellow] [white]{escape(tool_name)}[/white]…")


def undo_result(report: UndoReport) -> None:
    if report.success:
        console.print(f"  [bold green]✓ Undid {escape(report.tool_name)}[/bold green]")
    else:
        console.print(
            f"  [bold red]✗ Failed to undo {escape(report.tool_name)}[/bold red]  "
            f"[dim]{_mono(report.process.error or report.process.output, 100)}[/dim]"
        )


def undo_complete(reports: list[UndoReport]) -> None:
    failed = sum(1 for r in reports if not r.success)
    style = "green" if not failed else "yellow"
    console.print(
        f"  [{style}]Undo finished: {len(reports) - failed} succeeded, {failed} failed.[/{style}]"
    )


# ---------------------------------------------------------------------------
# Final
# ---------------------------------------------------------------------------


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()
