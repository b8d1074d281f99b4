# journal.py
# Append-only audit journal.
#
# One UTF-8 JSON object per line, one file per UTC day. Each append opens
# the file, writes a whole line, flushes, fsyncs and closes before
# returning, so a crash right after an action still leaves a parseable
# record. Single sequential writer only.

import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from remedy_gate.errors import JournalWriteError
from remedy_gate.models import JournalEntry

logger = logging.getLogger(__name__)

FILE_PREFIX = "remedy-gate-"
FILE_SUFFIX = ".jsonl"


def journal_filename(day: datetime) -> str:
    return f"{FILE_PREFIX}{day:%Y%m%d}{FILE_SUFFIX}"


class AuditJournal:
    """Durable record of every attempted action and every undo step."""

    def __init__(self, log_dir: Path, day: datetime | None = None) -> None:
        self._log_dir = Path(log_dir)
        self._path = self._log_dir / journal_filename(day or datetime.now(timezone.utc))

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def append(self, entry: JournalEntry) -> None:
        """Write `entry` as one line. Raises JournalWriteError; never partially succeeds silently."""
        line = (entry.model_dump_json() + "\n").encode("utf-8")
        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a+b") as fh:
                # A writer killed mid-line leaves no trailing newline; start
                # on a fresh line so only the torn fragment is unreadable.
                if fh.seek(0, os.SEEK_END) > 0:
                    fh.seek(-1, os.SEEK_END)
                    if fh.read(1) != b"\n":
                        line = b"\n" + line
                fh.write(line)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError as exc:
            raise JournalWriteError(f"Could not append to journal {self._path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _files(self) -> list[Path]:
        if not self._log_dir.is_dir():
            return []
        # Date-stamped names sort chronologically.
        return sorted(self._log_dir.glob(f"{FILE_PREFIX}*{FILE_SUFFIX}"))

    def entries(self) -> list[JournalEntry]:
        """Every readable entry, oldest first. Malformed lines are skipped."""
        result: list[JournalEntry] = []
        for path in self._files():
            with open(path, encoding="utf-8", errors="replace") as fh:
                for lineno, line in enumerate(fh, start=1):
                    if not line.strip():
                        continue
                    try:
                        result.append(JournalEntry.model_validate_json(line))
                    except ValidationError:
                        logger.debug("Skipping malformed journal line %s:%d", path.name, lineno)
        return result

    def recent(self, limit: int = 100) -> list[JournalEntry]:
        if limit <= 0:
            return []
        return self.entries()[-limit:]

    def for_session(self, session_id: str) -> list[JournalEntry]:
        return [entry for entry in self.entries() if entry.session_id == session_id]

    def latest_undoable_session(self) -> str | None:
        """
        Most recent session with forward entries carrying undo scripts that
        has not already been the target of an undo.
        """
        entries = self.entries()
        undone = {entry.undo_of for entry in entries if entry.phase == "undo" and entry.undo_of}
        for entry in reversed(entries):
            if entry.phase == "forward" and entry.undo_script and entry.session_id not in undone:
                return entry.session_id
        return None
