"""Pid file handling for the daemon."""

from __future__ import annotations

import os
import re
import sys

from lmd.util import DEFAULT_FILE_PERM, NAME

_RE_PID = re.compile(r"[+-]?[0-9]+")


class AlreadyRunningError(RuntimeError):
    """Raised when the pid file belongs to a process that is still running."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"{NAME} already running: {pid}")
        self.pid = pid


def _process_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except (OSError, OverflowError):
        return False
    return True


def check_pid_file(path: str) -> bool:
    """Return False if the pid file is stale, True if it cannot be read.

    Raises AlreadyRunningError if the recorded process is still alive.
    """
    try:
        with open(path, encoding="utf-8", errors="replace") as handle:
            content = handle.read().strip()
    except OSError:
        return True
    if _RE_PID.fullmatch(content):
        pid = int(content)
        if _process_alive(pid):
            raise AlreadyRunningError(pid)
    return False


def create_pid_file(path: str) -> None:
    """Write the current pid to path; does nothing if path is empty.

    Raises AlreadyRunningError if another instance is running and OSError
    if the file cannot be written.
    """
    if not path:
        return
    if not check_pid_file(path):
        print(f"WARNING: removing stale pidfile {path}", file=sys.stderr)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, DEFAULT_FILE_PERM)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(f"{os.getpid()}\n")


def delete_pid_file(path: str) -> None:
    """Remove the pid file, ignoring a missing file or an empty path."""
    if not path:
        return
    try:
        os.remove(path)
    except OSError:
        pass