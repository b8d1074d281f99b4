import sys

import pytest

from remedy_gate.config import Settings

# `python -c CODE ARG` puts ARG in sys.argv[1]; this stands in for a real
# shell by echoing the command line it was handed.
ECHO_SHELL = [sys.executable, "-c", "import sys; print('ran', sys.argv[1])"]


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "data_dir": tmp_path,
        "interpreter": [sys.executable],
        "script_suffix": ".py",
        "shell": ECHO_SHELL,
        "command_timeout": 10,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)
