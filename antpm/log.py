"""Levelled logging to a list of output streams, with an optional rotated log file."""

from __future__ import annotations

import os
import sys
import threading
import time
from enum import IntEnum
from typing import IO, ClassVar, Optional

from antpm.antdefs import get_version_string

MAX_MESSAGE_CHARS = 1023


class LogLevel(IntEnum):
    """Severity of a log message; higher values are more verbose."""

    LOG_RAW = 0  # no prefix
    LOG_ERR = 1  # runtime error
    LOG_WARN = 2  # suppressable runtime error
    LOG_INF = 3  # runtime information
    LOG_DBG = 4  # debug info
    LOG_DBG2 = 5  # more debug info
    LOG_DBG3 = 6  # even more debug info


MAX_LOG_LEVEL = LogLevel.LOG_DBG3

_PREFIXES = {
    LogLevel.LOG_RAW: "",
    LogLevel.LOG_ERR: "ERROR: ",
    LogLevel.LOG_WARN: "WW: ",
    LogLevel.LOG_INF: "II: ",
    LogLevel.LOG_DBG: "DBG: ",
    LogLevel.LOG_DBG2: "DBG: ",
    LogLevel.LOG_DBG3: "DBG: ",
}


def log_level_prefix(level: int) -> str:
    """Prefix written in front of a message of the given level."""
    try:
        return _PREFIXES[LogLevel(level)]
    except ValueError:
        raise ValueError(f"invalid log level: {level!r}") from None


def get_timestamp() -> str:
    """Current local time in ``ctime`` form, ending in a newline."""
    return time.ctime() + "\n"


class Log:
    """Writes log lines to every registered sink and, optionally, to a log file."""

    _instance: ClassVar[Optional["Log"]] = None
    _instance_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, log_file_name: Optional[str] = None) -> None:
        self._sinks: list[IO[str]] = []
        self._file: Optional[IO[str]] = None
        self._reporting_level = MAX_LOG_LEVEL
        if not log_file_name:
            return

        if os.path.exists(log_file_name):
            old = log_file_name + ".old"
            try:
                os.remove(old)
            except OSError:
                pass
            try:
                os.rename(log_file_name, old)
            except OSError:
                pass

        try:
            self._file = open(log_file_name, "w", encoding="utf-8")
        except OSError:
            sys.stderr.write(
                f'{log_level_prefix(LogLevel.LOG_ERR)}Log: Unable to open log file '
                f'"{log_file_name}" at {get_timestamp()}\n'
            )
            return

        self.add_sink(self._file)
        self.printf(
            LogLevel.LOG_INF,
            '%s(): Log file "%s" opened at %s',
            "Log",
            log_file_name,
            get_timestamp(),
        )
        self.printf(LogLevel.LOG_INF, "%s\n", get_version_string())
        self.printf(LogLevel.LOG_RAW, "logging level: %d\n", int(self._reporting_level))

    @classmethod
    def instance(cls) -> "Log":
        """The shared log, created on first use without a log file."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def set_instance(cls, log: Optional["Log"]) -> None:
        """Install ``log`` as the shared log; ``None`` resets it."""
        with cls._instance_lock:
            cls._instance = log

    @property
    def reporting_level(self) -> LogLevel:
        return self._reporting_level

    @reporting_level.setter
    def reporting_level(self, level: int) -> None:
        self._reporting_level = LogLevel(level)
        self.printf(LogLevel.LOG_RAW, "logging level: %d\n", int(self._reporting_level))

    def printf(self, level: int, fmt: str, *args: object) -> int:
        """Write a printf-style message, truncated to 1023 characters."""
        msg = fmt % args if args else fmt
        return self._write(log_level_prefix(level) + msg[:MAX_MESSAGE_CHARS])

    def print(self, level: int, msg: str) -> int:
        """Write ``msg`` with the level's prefix; return the characters written."""
        return self._write(log_level_prefix(level) + msg)

    def enabled(self, level: int) -> bool:
        """Whether messages of ``level`` pass the reporting level."""
        return level <= MAX_LOG_LEVEL and level <= self._reporting_level

    def log(self, level: int, msg: str) -> int:
        """Write ``msg`` only if ``level`` is enabled; return the characters written."""
        if not self.enabled(level):
            return 0
        return self.print(level, msg)

    def add_sink(self, stream: IO[str]) -> None:
        if not self._sinks or self._sinks[-1] is not stream:
            self._sinks.append(stream)

    def del_sink(self, stream: IO[str]) -> None:
        self._sinks = [s for s in self._sinks if s is not stream]

    @property
    def sinks(self) -> list[IO[str]]:
        return list(self._sinks)

    def close(self) -> None:
        """Write the closing line and close the log file, if one is open."""
        if self._file is None:
            return
        self.printf(
            LogLevel.LOG_INF, "%s(): Closing log file at %s", "~Log", get_timestamp()
        )
        self.del_sink(self._file)
        self._file.close()
        self._file = None

    def __enter__(self) -> "Log":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _write(self, text: str) -> int:
        for sink in self._sinks:
            sink.write(text)
            sink.flush()
        return len(text)