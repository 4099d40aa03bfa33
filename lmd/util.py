"""General daemon helpers: versions, wait groups and formatting."""

from __future__ import annotations

import math
import platform
import threading
from datetime import datetime
from enum import IntEnum
from typing import Optional

VERSION = "2.3.0"
NAME = "lmd"

AUTH_LOOSE = "loose"
AUTH_STRICT = "strict"

EXIT_CRITICAL = 2
EXIT_UNKNOWN = 3

STATS_TIMER_INTERVAL = 60.0
HTTP_CLIENT_TIMEOUT = 30.0
DEFAULT_FILE_PERM = 0o644
DEFAULT_DIR_PERM = 0o755
DEFAULT_MAX_QUERY_FILTER = 1000
THRUK_MULTI_BACKEND_MIN_VERSION = 2.23

_MIN_TIMEOUT = 0.01


class ConnectionType(IntEnum):
    """Kind of connection used by listeners and peers."""

    TCP = 0
    UNIX = 1
    TLS = 2
    HTTP = 3

    def __str__(self) -> str:
        return self.name.lower()


class WaitGroup:
    """Counter which can be waited on until it drops to zero."""

    def __init__(self) -> None:
        self._count = 0
        self._cond = threading.Condition()

    def add(self, count: int = 1) -> None:
        with self._cond:
            if self._count + count < 0:
                raise ValueError("negative WaitGroup counter")
            self._count += count
            if self._count == 0:
                self._cond.notify_all()

    def done(self) -> None:
        self.add(-1)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait until the counter is zero; return False if the timeout expired first."""
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout)


def wait_timeout(group: WaitGroup, timeout: float) -> bool:
    """Wait for the group at most timeout seconds; return True if it timed out."""
    if timeout < _MIN_TIMEOUT:
        raise ValueError("bogus timeout")
    return not group.wait(timeout)


def byte_count_binary(size: int) -> str:
    """Return a human readable byte size using binary units."""
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f}{'KMGTPE'[exp]}iB"


def complete_peer_http_addr(addr: str) -> str:
    """Complete a peer address to the full remote.cgi url."""
    addr = addr.removesuffix("cgi-bin/remote.cgi")
    addr = addr.removesuffix("/")
    addr = addr.removesuffix("thruk")
    addr = addr.removesuffix("/")
    return addr + "/thruk/cgi-bin/remote.cgi"


def time_or_never(timestamp: float) -> str:
    """Format a unix timestamp in local time, or 'never' if it is not set."""
    if timestamp <= 0:
        return "never"
    fraction, whole = math.modf(timestamp)
    nanos = int(fraction * 1e9)
    moment = datetime.fromtimestamp(int(whole)).astimezone()
    text = moment.strftime("%Y-%m-%d %H:%M:%S")
    if nanos:
        text += "." + f"{nanos:09d}".rstrip("0")
    zone = moment.tzname() or moment.strftime("%z")
    return f"{text} {moment.strftime('%z')} {zone}"


def version(build: str = "") -> str:
    """Return the full version string."""
    return f"{VERSION} (Build: {build}, python{platform.python_version()})"