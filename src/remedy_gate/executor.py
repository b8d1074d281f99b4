# executor.py
# Bounded external process execution.
#
# Exactly one child runs at a time. Every child gets its own process group
# so a timeout can take down the whole tree, not just the direct child.
# Output is stdout followed by stderr, capped at a fixed byte ceiling.

import logging
import os
import signal
import subprocess
import sys
import tempfile
import time

from remedy_gate.catalog import Capability, RawCommandCapability, ToolArgs
from remedy_gate.config import Settings
from remedy_gate.models import ExecutionResult, Outcome, ProcessResult
from remedy_gate.policy import BLOCKED_MARKER, PolicyClassifier

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "[process killed after exceeding {timeout:g}s timeout]"
TRUNCATION_MARKER = "\n[output truncated at {limit} bytes]"
# Seconds to wait for pipe EOF after a tree kill. Descendants that left the
# process group can hold the pipes open indefinitely.
DRAIN_TIMEOUT = 5.0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _cap_output(raw: bytes, limit: int) -> tuple[str, bool]:
    if len(raw) <= limit:
        return raw.decode("utf-8", errors="replace"), False
    head = raw[:limit].decode("utf-8", errors="ignore")
    return head + TRUNCATION_MARKER.format(limit=limit), True


def _kill_tree(proc: subprocess.Popen) -> None:
    """Forcibly terminate `proc` and everything it spawned."""
    if sys.platform == "win32":
        subprocess.run(
            ["taskkill", "/T", "/F", "/PID", str(proc.pid)],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
        proc.kill()
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def run_process(argv: list[str], timeout: float, max_output_bytes: int) -> ProcessResult:
    """
    Run `argv` to completion or until `timeout` seconds elapse.

    Never raises for process-level problems: a spawn failure comes back as
    ProcessResult.error, a deadline overrun as timed_out=True.
    """
    popen_kwargs: dict = {"stdout": subprocess.PIPE, "stderr": subprocess.PIPE, "stdin": subprocess.DEVNULL}
    if sys.platform == "win32":
        popen_kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        popen_kwargs["start_new_session"] = True

    start = time.monotonic()
    try:
        proc = subprocess.Popen(argv, **popen_kwargs)
    except OSError as exc:
        return ProcessResult(error=f"Failed to start {argv[0]!r}: {exc}")

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.warning("Process %d exceeded %.1fs timeout; killing process tree", proc.pid, timeout)
        _kill_tree(proc)
        try:
            proc.communicate(timeout=DRAIN_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.warning("Descendants of process %d still hold its output pipes; abandoning output", proc.pid)
            for stream in (proc.stdout, proc.stderr):
                if stream is not None:
                    stream.close()
            proc.wait()
        return ProcessResult(
            pid=proc.pid,
            exit_code=proc.returncode,
            output=TIMEOUT_MESSAGE.format(timeout=timeout),
            timed_out=True,
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    output, truncated = _cap_output(stdout + stderr, max_output_bytes)
    return ProcessResult(
        pid=proc.pid,
        exit_code=proc.returncode,
        output=output,
        truncated=truncated,
        duration_ms=int((time.monotonic() - start) * 1000),
    )


# ---------------------------------------------------------------------------
# ActionExecutor
# ---------------------------------------------------------------------------


class ActionExecutor:
    """
    Runs capabilities under the configured interpreter, shell and deadline.

    Structured capabilities produce a script that is written to a temporary
    file and run by the interpreter. Raw-command capabilities produce a
    single command line that must pass the policy classifier first.
    """

    def __init__(self, settings: Settings, classifier: PolicyClassifier | None = None) -> None:
        self._settings = settings
        self._classifier = classifier or PolicyClassifier(settings.mode)

    @property
    def classifier(self) -> PolicyClassifier:
        return self._classifier

    # ------------------------------------------------------------------
    # Process entry points
    # ------------------------------------------------------------------

    def run_script(self, script: str) -> ProcessResult:
        fd, path = tempfile.mkstemp(prefix="remedy_", suffix=self._settings.script_suffix)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(script)
            return run_process(
                [*self._settings.interpreter, path],
                self._settings.command_timeout,
                self._settings.max_output_bytes,
            )
        finally:
            try:
                os.unlink(path)
            except OSError:
                logger.debug("Could not remove temporary script %s", path)

    def run_command(self, command: str) -> ProcessResult:
        return run_process(
            [*self._settings.shell, command],
            self._settings.command_timeout,
            self._settings.max_output_bytes,
        )

    # ------------------------------------------------------------------
    # Capability invocation
    # ------------------------------------------------------------------

    def invoke(self, capability: Capability, args: ToolArgs) -> ExecutionResult:
        """Run one validated capability. Step-level failures come back as values."""
        if isinstance(capability, RawCommandCapability):
            return self._invoke_raw(capability, args)
        return self._invoke_structured(capability, args)

    def _invoke_structured(self, capability: Capability, args: ToolArgs) -> ExecutionResult:
        try:
            result = capability.execute(args)
        except Exception as exc:
            logger.exception("Capability %s raised", capability.name)
            return ExecutionResult(
                success=False,
                outcome=Outcome.FAILED,
                error=f"{capability.name} failed to prepare: {exc}",
            )

        if not result.success:
            return result.model_copy(update={"outcome": Outcome.FAILED})

        if not result.forward_script or not result.forward_script.strip():
            return result

        proc = self.run_script(result.forward_script)
        return _fold(result, proc)

    def _invoke_raw(self, capability: RawCommandCapability, args: ToolArgs) -> ExecutionResult:
        command = capability.command_line(args)
        decision = self._classifier.classify(command)
        data = {"command": command, "rule": decision.rule, "pattern": decision.pattern}

        if not decision.allowed:
            return ExecutionResult(
                success=False,
                outcome=Outcome.POLICY_REJECTED,
                error=f"Command blocked by policy ({decision.rule})",
                data=data,
                output=BLOCKED_MARKER,
            )

        proc = self.run_command(command)
        return _fold(ExecutionResult(success=True, data=data), proc)


def _fold(result: ExecutionResult, proc: ProcessResult) -> ExecutionResult:
    """
    Merge a process outcome into a capability result.

    Exit code and stderr are recorded but never decide success; only a
    timeout or a spawn failure does.
    """
    if isinstance(result.data, dict):
        data = dict(result.data)
    else:
        data = {} if result.data is None else {"payload": result.data}
    data.update({"exit_code": proc.exit_code, "duration_ms": proc.duration_ms, "truncated": proc.truncated})

    update: dict = {"data": data, "output": proc.output}
    if proc.timed_out:
        update.update(success=False, outcome=Outcome.TIMEOUT, error=proc.output)
    elif proc.error:
        update.update(success=False, outcome=Outcome.FAILED, error=proc.error, output=None)
    return result.model_copy(update=update)
