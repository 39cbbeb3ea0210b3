"""Environment handling for child processes and logger setup."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping

_LOGGER_NAME = "revelcmd"


def _default_gopath(environ: Mapping[str, str]) -> str:
    gopath = environ.get("GOPATH", "")
    if gopath:
        return gopath
    home = environ.get("HOME") or environ.get("USERPROFILE") or ""
    return os.path.join(home, "go") if home else ""


def reduced_env(add_go_path: bool, environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return an environment for the go tool.

    GOMODCACHE is always dropped. GOPATH and GOROOT are dropped unless
    ``add_go_path`` is set, in which case they are placed first, with GOPATH
    entries resolved to their real paths; values already in the environment
    still take precedence.
    """
    if environ is None:
        environ = os.environ
    env: dict[str, str] = {}
    if add_go_path:
        real_paths = [
            os.path.realpath(p)
            for p in _default_gopath(environ).split(os.pathsep)
            if p and os.path.exists(p)
        ]
        env["GOPATH"] = os.pathsep.join(real_paths)
        env["GOROOT"] = environ.get("GOROOT", "")

    for key, value in environ.items():
        if key == "GOMODCACHE":
            continue
        if not add_go_path and key in ("GOPATH", "GOROOT"):
            continue
        env[key] = value
    return env


def command_options(add_go_path: bool, base_path: str) -> dict[str, object]:
    """Keyword arguments for subprocess calls that run the go tool in ``base_path``."""
    return {"cwd": base_path, "env": reduced_env(add_go_path)}


class _BelowLevel(logging.Filter):
    def __init__(self, level: int) -> None:
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def init_logger(level: int) -> logging.Logger:
    """Configure the package logger: debug and info to stdout, the rest to stderr."""
    logger = logging.getLogger(_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    if level <= logging.DEBUG:
        print("Debug on", file=sys.stderr)

    formatter = logging.Formatter("%(levelname)s %(message)s")

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.addFilter(_BelowLevel(logging.WARNING))
    stdout_handler.setFormatter(formatter)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    stderr_handler.setFormatter(formatter)

    logger.addHandler(stdout_handler)
    logger.addHandler(stderr_handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger