# run.py
# Entry point. Argument parsing and wiring only.
#
#   remedy-gate plan "Outlook crashes on startup"            # dry run
#   remedy-gate plan "No internet" execute --allow-maintenance
#   remedy-gate undo                                         # latest session
#   remedy-gate undo --session 3f2a...

import argparse
import logging
import sys

from pydantic import ValidationError
from rich.logging import RichHandler

from remedy_gate import display
from remedy_gate.config import Settings
from remedy_gate.errors import JournalWriteError, PlanError, ToolNotFoundError
from remedy_gate.harness import Engine

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_HALTED = 2


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=display.console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--timeout", type=float, default=None, help="Per-process timeout in seconds.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="remedy-gate",
        description="Policy-gated remediation with an audit journal and best-effort undo.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser("plan", help="Plan remediation for an issue and optionally execute it.")
    plan_parser.add_argument("issue", help="Free-text description of the problem.")
    plan_parser.add_argument(
        "mode",
        nargs="?",
        choices=("dry", "execute"),
        default="dry",
        help="'dry' prints the plan only (default); 'execute' runs it.",
    )
    plan_parser.add_argument("--facts", default=None, help="Additional facts passed to the planner.")
    plan_parser.add_argument(
        "--allow-maintenance",
        action="store_true",
        default=None,
        help="Permit maintenance commands (DNS flush, service restart, ...).",
    )
    plan_parser.add_argument(
        "--allow-kill", action="store_true", default=None, help="Permit targeted process termination."
    )
    plan_parser.add_argument(
        "--allow-dangerous",
        action="store_true",
        default=None,
        help="Permit everything below the hard-deny ceiling.",
    )
    _add_common(plan_parser)
    plan_parser.set_defaults(func=_cmd_plan)

    undo_parser = subparsers.add_parser("undo", help="Replay the undo scripts of a recorded session.")
    undo_parser.add_argument(
        "--session", default=None, help="Session ID to revert (default: latest undoable session)."
    )
    _add_common(undo_parser)
    undo_parser.set_defaults(func=_cmd_undo)

    return parser


def _settings(args: argparse.Namespace) -> Settings:
    return Settings.from_env(
        allow_maintenance=getattr(args, "allow_maintenance", None),
        allow_kill=getattr(args, "allow_kill", None),
        allow_dangerous=getattr(args, "allow_dangerous", None),
        command_timeout=args.timeout,
    )


def _cmd_plan(args: argparse.Namespace) -> int:
    engine = Engine(_settings(args))
    engine.run(args.issue, facts=args.facts, execute=args.mode == "execute")
    return EXIT_OK


def _cmd_undo(args: argparse.Namespace) -> int:
    engine = Engine(_settings(args))
    engine.undo(args.session)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        return args.func(args)
    except ValidationError as exc:
        display.halt(f"Invalid configuration: {exc}")
        return EXIT_CONFIG_ERROR
    except (ToolNotFoundError, JournalWriteError, PlanError) as exc:
        display.halt(str(exc))
        return EXIT_HALTED
    except KeyboardInterrupt:
        display.halt("Interrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
