"""Level- and stream-filtered logging with local and remote sinks."""

from __future__ import annotations

import sys
from enum import IntEnum, IntFlag
from typing import Callable, Iterator, Optional

try:
    import syslog as _syslog
except ImportError:  # pragma: no cover - platforms without syslog
    _syslog = None


class LogLevel(IntEnum):
    """Severity of a log message; higher values are more severe."""

    OFF = 0
    TRACE = 1
    DEBUG = 2
    INFO = 3
    WARNING = 4
    ERROR = 5


class LogStream(IntFlag):
    """Subsystem a message belongs to; streams combine as flags."""

    NONE = 0
    NETWORK = 0x01
    JTAG = 0x02
    PINS = 0x04
    I2C = 0x08
    TEST = 0x10
    DAEMON = 0x20
    SDK = 0x40
    SPP = 0x80
    ALL = 0xFF


class LogOption(IntFlag):
    """Per-message options."""

    NONE = 0
    NO_REMOTE = 0x01


ShouldLogRemote = Callable[[LogLevel, LogStream], bool]
RemoteLog = Callable[[LogLevel, LogStream, str], None]

_HEXDUMP_WIDTH = 16
_PREFIX_WIDTH = 6

_LEVEL_NAMES = {
    "off": LogLevel.OFF,
    "trace": LogLevel.TRACE,
    "debug": LogLevel.DEBUG,
    "info": LogLevel.INFO,
    "warning": LogLevel.WARNING,
    "error": LogLevel.ERROR,
}

_STREAM_NAMES = {
    "none": LogStream.NONE,
    "network": LogStream.NETWORK,
    "jtag": LogStream.JTAG,
    "pins": LogStream.PINS,
    "i2c": LogStream.I2C,
    "test": LogStream.TEST,
    "daemon": LogStream.DAEMON,
    "sdk": LogStream.SDK,
    "spp": LogStream.SPP,
    "all": LogStream.ALL,
}


def buffer_to_hex(number_of_bits: int, data: bytes) -> str:
    """Render the first ``number_of_bits`` of little-endian ``data`` as hex.

    Bits beyond ``number_of_bits`` in the last byte are masked off, and a
    leading zero nibble of a partial last byte is dropped.
    """
    if number_of_bits < 0:
        raise ValueError("number_of_bits must not be negative")
    number_of_bytes = (number_of_bits + 7) // 8
    if number_of_bytes == 0:
        return ""
    if len(data) < number_of_bytes:
        raise ValueError(
            f"{number_of_bits} bits need {number_of_bytes} bytes, "
            f"got {len(data)}"
        )
    chunk = bytearray(data[:number_of_bytes])
    width = number_of_bytes * 2
    remainder = number_of_bits % 8
    if remainder:
        mask = 0xFF >> (8 - remainder)
        chunk[-1] &= mask
        if chunk[-1] >> 4 == 0:
            width -= 1
    text = int.from_bytes(chunk, "little").to_bytes(number_of_bytes, "big").hex()
    return text[len(text) - width:]


def hexdump_lines(data: bytes, prefix: str) -> Iterator[str]:
    """Yield hexdump lines of ``data``, 16 bytes each, tagged with ``prefix``."""
    tag = prefix[:_PREFIX_WIDTH].ljust(_PREFIX_WIDTH)
    for offset in range(0, len(data), _HEXDUMP_WIDTH):
        parts = []
        for position, byte in enumerate(data[offset:offset + _HEXDUMP_WIDTH]):
            parts.append(f"{byte:02x}")
            if position & 1:
                parts.append(" ")
        yield f"{tag}: {offset:07x}: " + "".join(parts)


def parse_level(text: Optional[str]) -> LogLevel:
    """Parse a case-insensitive level name; raise ValueError if unknown."""
    if text is None:
        raise ValueError("no log level given")
    try:
        return _LEVEL_NAMES[text.lower()]
    except KeyError:
        raise ValueError(f"unknown log level: {text!r}") from None


def parse_streams(text: Optional[str]) -> LogStream:
    """Parse comma separated stream names into one flag value.

    Every name must be known; otherwise ValueError is raised.
    """
    if text is None:
        raise ValueError("no log streams given")
    result = LogStream.NONE
    for token in text.split(","):
        try:
            result |= _STREAM_NAMES[token.lower()]
        except KeyError:
            raise ValueError(f"unknown log stream: {token!r}") from None
    return result


class AsdLogger:
    """Logger writing to stderr or syslog and optionally to a remote sink."""

    def __init__(
        self,
        level: LogLevel = LogLevel.ERROR,
        streams: LogStream = LogStream.ALL,
        write_to_syslog: bool = False,
        should_log_remote: Optional[ShouldLogRemote] = None,
        remote_log: Optional[RemoteLog] = None,
    ) -> None:
        self.configure(level, streams, write_to_syslog, should_log_remote, remote_log)

    def configure(
        self,
        level: LogLevel,
        streams: LogStream,
        write_to_syslog: bool = False,
        should_log_remote: Optional[ShouldLogRemote] = None,
        remote_log: Optional[RemoteLog] = None,
    ) -> None:
        """Replace all settings of this logger."""
        self.level = LogLevel(level)
        self.streams = LogStream(streams)
        self.write_to_syslog = write_to_syslog
        self.should_log_remote = should_log_remote
        self.remote_log = remote_log

    def should_log(self, level: LogLevel, stream: LogStream) -> bool:
        """Whether a message passes the local level and stream filters."""
        return level >= self.level and bool(self.streams & stream)

    def _targets(self, level, stream, options) -> tuple[bool, bool]:
        local = self.should_log(level, stream)
        remote = (
            not (LogOption(options) & LogOption.NO_REMOTE)
            and self.should_log_remote is not None
            and self.remote_log is not None
            and bool(self.should_log_remote(level, stream))
        )
        return local, remote

    def _write_local(self, text: str) -> None:
        if self.write_to_syslog and _syslog is not None:
            _syslog.syslog(_syslog.LOG_USER, text)
        else:
            sys.stderr.write(text)

    def log(self, level, stream, options, message: str, *args) -> None:
        """Log ``message``, %-formatted with ``args`` when any are given."""
        local, remote = self._targets(level, stream, options)
        if not local and not remote:
            return
        text = message % args if args else message
        if local:
            if self.write_to_syslog and _syslog is not None:
                _syslog.syslog(_syslog.LOG_USER, text)
            else:
                sys.stderr.write(text + "\n")
        if remote:
            self.remote_log(level, stream, text)

    def log_buffer(self, level, stream, options, data: bytes, prefix: str) -> None:
        """Log ``data`` as a hexdump, one line per 16 bytes."""
        local, remote = self._targets(level, stream, options)
        if not local and not remote:
            return
        for line in hexdump_lines(data, prefix):
            if remote:
                self.remote_log(level, stream, line)
            if local:
                self._write_local(line + "\n")

    def log_shift(
        self, level, stream, options, number_of_bits: int, data: bytes, prefix: str
    ) -> None:
        """Log the first ``number_of_bits`` of a shift buffer as hex."""
        local, remote = self._targets(level, stream, options)
        if not local and not remote:
            return
        if not data or number_of_bits <= 0:
            return
        number_of_bytes = (number_of_bits + 7) // 8
        if number_of_bytes > len(data):
            number_of_bytes = len(data)
            number_of_bits = number_of_bytes * 8
        hex_text = buffer_to_hex(number_of_bits, data[:number_of_bytes])
        self.log(level, stream, options, "%s: [%db] 0x%s", prefix, number_of_bits, hex_text)