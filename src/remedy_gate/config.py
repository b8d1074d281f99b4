# config.py
# Explicit configuration. The environment is read in exactly one place,
# Settings.from_env(), and the resulting value is threaded through the
# classifier, executor, journal and planner at construction time.

import os
import sys
from collections.abc import Mapping
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from remedy_gate.models import ModeFlags

ENV_PREFIX = "REMEDY_GATE_"

_TRUTHY = {"1", "true", "yes", "on"}


def _is_windows() -> bool:
    return sys.platform == "win32"


def default_interpreter() -> list[str]:
    if _is_windows():
        return ["powershell.exe", "-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass", "-File"]
    return ["pwsh", "-NoProfile", "-NonInteractive", "-File"]


def default_shell() -> list[str]:
    if _is_windows():
        return ["powershell.exe", "-NoProfile", "-NonInteractive", "-Command"]
    return ["/bin/sh", "-c"]


def default_data_dir(env: Mapping[str, str] | None = None) -> Path:
    env = os.environ if env is None else env
    if _is_windows():
        return Path(env.get("ProgramData", r"C:\ProgramData")) / "RemedyGate"
    xdg = env.get("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / "remedy-gate"


class Settings(BaseModel):
    """Every tunable of an engine run."""

    allow_maintenance: bool = False
    allow_kill: bool = False
    allow_dangerous: bool = False

    command_timeout: float = Field(120.0, gt=0, description="Wall-clock seconds per process.")
    max_output_bytes: int = Field(4000, gt=0)

    data_dir: Path = Field(default_factory=default_data_dir)
    interpreter: list[str] = Field(default_factory=default_interpreter, min_length=1)
    script_suffix: str = ".ps1"
    shell: list[str] = Field(default_factory=default_shell, min_length=1)

    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"

    @property
    def mode(self) -> ModeFlags:
        return ModeFlags(
            allow_maintenance=self.allow_maintenance,
            allow_kill=self.allow_kill,
            allow_dangerous=self.allow_dangerous,
        )

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, **overrides) -> "Settings":
        """
        Build settings from the environment (after loading .env) plus overrides.

        Overrides whose value is None are ignored so CLI flags that were not
        given do not clobber environment values.
        """
        if env is None:
            load_dotenv()
            env = os.environ

        values: dict = {}

        for flag in ("allow_maintenance", "allow_kill", "allow_dangerous"):
            raw = env.get(ENV_PREFIX + flag.upper())
            if raw is not None:
                values[flag] = raw.strip().lower() in _TRUTHY

        if ENV_PREFIX + "TIMEOUT" in env:
            values["command_timeout"] = env[ENV_PREFIX + "TIMEOUT"]
        if ENV_PREFIX + "MAX_OUTPUT_BYTES" in env:
            values["max_output_bytes"] = env[ENV_PREFIX + "MAX_OUTPUT_BYTES"]
        if env.get(ENV_PREFIX + "DATA_DIR"):
            values["data_dir"] = Path(env[ENV_PREFIX + "DATA_DIR"]).expanduser()
        else:
            values["data_dir"] = default_data_dir(env)

        for field, var in (
            ("openai_api_key", "OPENAI_API_KEY"),
            ("openai_base_url", "OPENAI_BASE_URL"),
            ("openai_model", "OPENAI_MODEL"),
        ):
            if env.get(var):
                values[field] = env[var]

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
