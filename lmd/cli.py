"""Command line handling and the daemon's main loop."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import signal
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional

from lmd.logsetup import init_logging
from lmd.pidfile import AlreadyRunningError, create_pid_file, delete_pid_file
from lmd.util import EXIT_CRITICAL, NAME, version

logger = logging.getLogger("lmd")

BUILD = ""
_POLL_INTERVAL = 0.1
_TRUE_WORDS = frozenset({"1", "true", "yes", "on", "y"})
_FALSE_WORDS = frozenset({"0", "false", "no", "off", "n", ""})


@dataclass
class Connection:
    """A configured backend connection."""

    name: str = ""
    id: str = ""
    source: list[str] = field(default_factory=list)
    section: str = ""
    flags: list[str] = field(default_factory=list)


class ArrayFlags:
    """Repeatable command line option collecting its values in order."""

    def __init__(self, values: Optional[Iterable[str]] = None) -> None:
        self.values: list[str] = list(values or [])

    def __str__(self) -> str:
        return ", ".join(self.values)

    def set(self, value: str) -> None:
        self.values.append(value)

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)


@dataclass
class _Settings:
    listen: list[str] = field(default_factory=list)
    connections: list[Connection] = field(default_factory=list)
    nodes: list[str] = field(default_factory=list)
    log_file: str = ""
    log_level: str = ""


def _normalize(name: str) -> str:
    return name.replace("_", "").lower()


def _field_names(config: Any) -> list[str]:
    if dataclasses.is_dataclass(config):
        return [f.name for f in dataclasses.fields(config)]
    return list(vars(config))


def _to_bool(value: str) -> bool:
    word = value.strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ValueError(f"cannot convert {value!r} to boolean")


def _to_int(value: str) -> int:
    text = value.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return int(float(text))
    except ValueError:
        raise ValueError(f"cannot convert {value!r} to number") from None


def _convert(name: str, current: Any, value: str) -> Any:
    if isinstance(current, bool):
        return _to_bool(value)
    if isinstance(current, int):
        return _to_int(value)
    if isinstance(current, str):
        return value
    if isinstance(current, list):
        return [*current, value]
    raise ValueError(
        f"cannot set option {name}, type {type(current).__name__} is not supported"
    )


def apply_arg_flags(options: Iterable[str], config: Any) -> None:
    """Apply "Option=Value" overrides to the config object in place."""
    names = _field_names(config)
    for opt in options:
        optname, sep, optvalue = opt.partition("=")
        if not sep:
            raise ValueError(
                f"cannot parse option {opt}, syntax is '-o ConfigOption=Value'"
            )
        if optname.lower() == "connections":
            con_name, sep, address = optvalue.partition(",")
            if not sep:
                raise ValueError(
                    "cannot parse connection, syntax is '-o Connection=name,address'"
                )
            config.connections.append(
                Connection(name=con_name, id=con_name, source=[address])
            )
            continue
        wanted = _normalize(optname)
        target = next((n for n in names if _normalize(n) == wanted), None)
        if target is None:
            raise ValueError(f"no such option {optname}")
        setattr(config, target, _convert(target, getattr(config, target), optvalue))


def build_parser() -> argparse.ArgumentParser:
    """Return the command line parser."""
    parser = argparse.ArgumentParser(prog=NAME, allow_abbrev=False)
    parser.add_argument("--pidfile", "-pidfile", default="", help="set path to pidfile")
    parser.add_argument(
        "--logfile", "-logfile", default="",
        help="override logfile from the configuration file",
    )
    parser.add_argument(
        "-v", "--verbose", "-verbose", action="store_true", help="enable verbose output"
    )
    parser.add_argument(
        "-vv", "--vv", dest="very_verbose", action="store_true",
        help="enable very verbose output",
    )
    parser.add_argument(
        "-vvv", "--vvv", dest="trace_verbose", action="store_true",
        help="enable trace output",
    )
    parser.add_argument(
        "-V", "--version", "-version", action="store_true", help="print version and exit"
    )
    parser.add_argument(
        "-o", dest="options", action="append", default=None, metavar="OPTION=VALUE",
        help="override settings, ex.: -o Listen=:3333 -o Connections=name,address",
    )
    return parser


def _load_settings(args: argparse.Namespace) -> _Settings:
    settings = _Settings()
    apply_arg_flags(args.options or [], settings)
    if args.logfile:
        settings.log_file = args.logfile
    if args.verbose:
        settings.log_level = "Info"
    if args.very_verbose:
        settings.log_level = "Debug"
    if args.trace_verbose:
        settings.log_level = "Trace"
    if not settings.listen:
        raise ValueError("no listeners defined")
    if not settings.connections:
        raise ValueError("no connections defined")
    seen: set[str] = set()
    for con in settings.connections:
        if con.id in seen:
            raise ValueError(f"Duplicate id in connection list: {con.id}")
        seen.add(con.id)
    return settings


def _wait_for_signal(pending: list[int]) -> Optional[int]:
    """Block until a signal arrives; return the exit code or None to reload."""
    while not pending:
        time.sleep(_POLL_INTERVAL)
    sig = pending.pop(0)
    if sig == signal.SIGTERM:
        logger.info("got sigterm, quiting gracefully")
        return 0
    if sig == signal.SIGINT:
        logger.info("got sigint, quitting")
        return 1
    logger.info("got sighup, reloading configuration...")
    return None


def main(argv: Optional[list[str]] = None) -> int:
    """Run the daemon until it is told to stop; return the exit code."""
    args = build_parser().parse_args(argv)
    if args.version:
        print(f"{NAME} - version {version(BUILD)}")
        return EXIT_CRITICAL

    try:
        create_pid_file(args.pidfile)
    except AlreadyRunningError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_CRITICAL
    except OSError as exc:
        print(f"ERROR: Could not write pidfile: {exc}", file=sys.stderr)
        return EXIT_CRITICAL

    pending: list[int] = []

    def _handler(signum: int, _frame: Any) -> None:
        pending.append(signum)

    signals = [signal.SIGTERM, signal.SIGINT]
    if hasattr(signal, "SIGHUP"):
        signals.append(signal.SIGHUP)
    previous = {sig: signal.signal(sig, _handler) for sig in signals}
    try:
        while True:
            try:
                settings = _load_settings(args)
            except ValueError as exc:
                print(f"ERROR: {exc}", file=sys.stderr)
                return 1
            init_logging(settings.log_file, settings.log_level)
            logger.info(
                "%s - version %s started with %d connection(s)",
                NAME, version(BUILD), len(settings.connections),
            )
            code = _wait_for_signal(pending)
            if code is not None:
                return code
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        delete_pid_file(args.pidfile)