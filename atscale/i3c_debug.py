"""Command line tool and device wrapper for debug over an I3C binding.

Data can be written to and read from a debug-for-I3C character device, and
the Debug Opcode, Debug Action and Get Event Data requests can be issued
through ioctl calls.
"""

from __future__ import annotations

import argparse
import fcntl
import os
import select
import string
import struct
import sys
from array import array
from enum import IntEnum, IntFlag
from itertools import takewhile
from typing import Optional, Sequence

VERSION_MAJOR = 1
VERSION_MINOR = 0

FRAME_TOTAL_LIMIT = 512
_WRITE_TEXT_LIMIT = 2047

_OPCODE_CCC = struct.Struct("@BHQHQ")
_ACTION_CCC = struct.Struct("@B")
_EVENT_DATA = struct.Struct("@HQ")


class IoctlDirection(IntFlag):
    """Data transfer direction encoded in an ioctl request number."""

    NONE = 0
    WRITE = 1
    READ = 2


_IOC_NRBITS = 8
_IOC_TYPEBITS = 8
_IOC_SIZEBITS = 14
_IOC_DIRBITS = 2
_IOC_NRSHIFT = 0
_IOC_TYPESHIFT = _IOC_NRSHIFT + _IOC_NRBITS
_IOC_SIZESHIFT = _IOC_TYPESHIFT + _IOC_TYPEBITS
_IOC_DIRSHIFT = _IOC_SIZESHIFT + _IOC_SIZEBITS


def ioctl_request(direction: int, base: int, number: int, size: int) -> int:
    """Encode an ioctl request number the way the kernel's _IOC macro does."""
    fields = (
        ("direction", direction, _IOC_DIRBITS),
        ("base", base, _IOC_TYPEBITS),
        ("number", number, _IOC_NRBITS),
        ("size", size, _IOC_SIZEBITS),
    )
    for name, value, bits in fields:
        if not 0 <= value < (1 << bits):
            raise ValueError(f"ioctl {name} {value} does not fit in {bits} bits")
    return (
        (int(direction) << _IOC_DIRSHIFT)
        | (size << _IOC_SIZESHIFT)
        | (base << _IOC_TYPESHIFT)
        | (number << _IOC_NRSHIFT)
    )


I3C_DEBUG_IOCTL_BASE = 0x79

I3C_DEBUG_IOCTL_DEBUG_OPCODE_CCC = ioctl_request(
    IoctlDirection.READ | IoctlDirection.WRITE,
    I3C_DEBUG_IOCTL_BASE,
    0x41,
    _OPCODE_CCC.size,
)
I3C_DEBUG_IOCTL_DEBUG_ACTION_CCC = ioctl_request(
    IoctlDirection.WRITE, I3C_DEBUG_IOCTL_BASE, 0x42, _ACTION_CCC.size
)
I3C_DEBUG_IOCTL_GET_EVENT_DATA = ioctl_request(
    IoctlDirection.READ | IoctlDirection.WRITE,
    I3C_DEBUG_IOCTL_BASE,
    0x43,
    _EVENT_DATA.size,
)


def _address(buffer: array) -> int:
    return buffer.buffer_info()[0] if len(buffer) else 0


class DebugDevice:
    """An open debug-for-I3C device node."""

    def __init__(self, path: str) -> None:
        self.path = path
        self.fd = os.open(path, os.O_RDWR)

    def _require_open(self) -> int:
        if self.fd < 0:
            raise ValueError("device is closed")
        return self.fd

    def close(self) -> None:
        """Close the device; closing twice is harmless."""
        if self.fd >= 0:
            os.close(self.fd)
            self.fd = -1

    def __enter__(self) -> "DebugDevice":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def opcode_ccc(
        self, opcode: int, write_data: bytes = b"", read_len: int = 0
    ) -> bytes:
        """Send a Debug Opcode CCC with optional extra data; return what was read."""
        fd = self._require_open()
        if len(write_data) > FRAME_TOTAL_LIMIT or not 0 <= read_len <= FRAME_TOTAL_LIMIT:
            raise ValueError(
                "read or write length larger than "
                f"internal buffer size ({FRAME_TOTAL_LIMIT} bytes)"
            )
        write_buffer = array("B", write_data)
        read_buffer = array("B", bytes(read_len))
        request = bytearray(
            _OPCODE_CCC.pack(
                opcode & 0xFF,
                len(write_buffer),
                _address(write_buffer),
                read_len,
                _address(read_buffer),
            )
        )
        fcntl.ioctl(fd, I3C_DEBUG_IOCTL_DEBUG_OPCODE_CCC, request, True)
        return read_buffer.tobytes()

    def action_ccc(self, action: int) -> None:
        """Send a Debug Action CCC."""
        fd = self._require_open()
        request = bytearray(_ACTION_CCC.pack(action & 0xFF))
        fcntl.ioctl(fd, I3C_DEBUG_IOCTL_DEBUG_ACTION_CCC, request, True)

    def get_event_data(self, size: int = FRAME_TOTAL_LIMIT) -> bytes:
        """Fetch pending event data, at most ``size`` bytes."""
        fd = self._require_open()
        if not 0 <= size <= 0xFFFF:
            raise ValueError(f"event buffer size {size} out of range")
        event_buffer = array("B", bytes(size))
        request = bytearray(_EVENT_DATA.pack(size, _address(event_buffer)))
        fcntl.ioctl(fd, I3C_DEBUG_IOCTL_GET_EVENT_DATA, request, True)
        data_len, _ = _EVENT_DATA.unpack(request)
        return event_buffer.tobytes()[: min(data_len, size)]

    def write(self, data: bytes) -> int:
        """Write ``data`` to the device; return the number of bytes written."""
        return os.write(self._require_open(), data)

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes from the device."""
        return os.read(self._require_open(), size)

    def wait_readable(self, timeout_ms: int) -> bool:
        """Wait up to ``timeout_ms`` for the device to have data to read."""
        poller = select.poll()
        poller.register(self._require_open(), select.POLLIN)
        return any(events & select.POLLIN for _, events in poller.poll(timeout_ms))


def parse_number(text: str) -> int:
    """Parse an integer prefix like C ``strtol`` with base 0; 0 if none."""
    rest = text.lstrip()
    sign = 1
    if rest[:1] in ("+", "-"):
        sign = -1 if rest[0] == "-" else 1
        rest = rest[1:]
    if rest[:2].lower() == "0x" and rest[2:3] and rest[2] in string.hexdigits:
        base, digits, rest = 16, string.hexdigits, rest[2:]
    elif rest.startswith("0"):
        base, digits = 8, string.octdigits
    else:
        base, digits = 10, string.digits
    number = "".join(takewhile(lambda ch: ch in digits, rest))
    return sign * int(number, base) if number else 0


def parse_write_data(text: str) -> bytes:
    """Parse a comma separated list of byte values; empty items are skipped."""
    text = text[:_WRITE_TEXT_LIMIT]
    return bytes(parse_number(item) & 0xFF for item in text.split(",") if item)


def format_bytes(data: bytes) -> str:
    """Render bytes as upper-case hex, each preceded by a space."""
    return "".join(f" {byte:02X}" for byte in data)


class Verbosity(IntEnum):
    """How much the tool reports."""

    ERROR = 0
    WARN = 1
    INFO = 2
    DEBUG = 3


_HELP = """\
This tools can be used to write or/and read data over I3C DBG binding to check Debug for I3C feature.

Options:
   --device (-d): path to the debug for I3C handle, e.g. /dev/i3c-debug-0
   --read (-r): number of byte to read, maximal possible value shall be provided to be sure whole received message is read
   --write (-w): list of byte to write
   --opcode (-o): opcode value for Debug Opcode CCC, could be used along with -w and/or -r if additional data shall be write and/or read
   --action (-a): action value for Debug Action CCC
   --nopoll (-n): do not run poll() while reading data
   --event (-e): run get event ioctl and print data if any
   --verbose (-x): verbosity level, more 'x' - more verbose
   --version (-v): print tool version
   --help (-h): print this help

Usage examples:
   write request: debug-over-i3c -d /dev/i3c-debug-0 -w 0x22,0x30,0x00,0x00,0x11,0xEE,0x77,0x88,0xA5,0xC3,0xC3,0xA5
   write request and read response: debug-over-i3c -d /dev/i3c-debug-0 -w 0x22,0x30,0x00,0x00,0x11,0xEE,0x77,0x88,0xA5,0xC3,0xC3,0xA5 -r 255
   send Debug Opcode CCC and read response: debug-over-i3c -d /dev/i3c-debug-0 -o 0x00 -r 4
   send Debug Opcode CCC with extra data: debug-over-i3c -d /dev/i3c-debug-0 -o 0x02 -w 0x00
   send Debug Action CCC: debug-over-i3c -d /dev/i3c-debug-0 -a 0xFD
"""


class _UsageError(Exception):
    pass


class _Parser(argparse.ArgumentParser):
    def error(self, message):  # type: ignore[override]
        raise _UsageError(message)


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser; bad options raise instead of exiting."""
    parser = _Parser(prog="debug-over-i3c", add_help=False)
    parser.add_argument("-d", "--device")
    parser.add_argument("-r", "--read")
    parser.add_argument("-w", "--write")
    parser.add_argument("-o", "--opcode")
    parser.add_argument("-a", "--action")
    parser.add_argument("-n", "--nopoll", action="store_true")
    parser.add_argument("-e", "--event", action="store_true")
    parser.add_argument("-x", "--verbose", action="count", default=0)
    parser.add_argument("-v", "--version", action="store_true")
    parser.add_argument("-h", "--help", action="store_true")
    return parser


def _print_help() -> None:
    sys.stdout.write(_HELP)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the tool; return the process exit status."""
    try:
        args = build_parser().parse_args(argv)
    except _UsageError:
        _print_help()
        return -1
    if args.help:
        _print_help()
        return 0
    if args.version:
        print(f"Debug over I3C Utility. Version {VERSION_MAJOR}.{VERSION_MINOR}")
        return 0

    verbosity = args.verbose

    def trace(level: Verbosity, text: str) -> None:
        if level <= verbosity:
            sys.stdout.write(text)

    read_len = parse_number(args.read) if args.read is not None else 0
    do_read = read_len != 0
    write_data = parse_write_data(args.write) if args.write is not None else b""
    do_write = bool(write_data)
    opcode = parse_number(args.opcode) if args.opcode is not None else -1
    action = parse_number(args.action) if args.action is not None else -1

    if do_read or do_write or opcode >= 0 or action >= 0 or args.event:
        if not args.device:
            trace(Verbosity.ERROR, "Device path not provided!\n")
            _print_help()
            return -1

    if read_len < 0 or read_len > FRAME_TOTAL_LIMIT or len(write_data) > FRAME_TOTAL_LIMIT:
        trace(
            Verbosity.ERROR,
            "Invalid read or write length - larger than internal buffer size "
            f"({FRAME_TOTAL_LIMIT} bytes)\n",
        )
        return -1

    try:
        if args.device is None:
            raise FileNotFoundError(2, "no device path")
        device = DebugDevice(args.device)
    except OSError as exc:
        path = args.device if args.device is not None else "(null)"
        trace(
            Verbosity.ERROR,
            f"Failed to open device path: {path}, errno={exc.errno}\n",
        )
        return -1

    with device:
        if opcode >= 0:
            try:
                data = device.opcode_ccc(opcode, write_data, read_len)
            except OSError as exc:
                trace(Verbosity.INFO, f"Ioctl debug opcode status: -1, errno={exc.errno}\n")
                trace(Verbosity.ERROR, "Failed to send Debug Opcode ioctl\n")
                return -1
            trace(Verbosity.INFO, "Ioctl debug opcode status: 0, errno=0\n")
            if read_len > 0:
                print("Data: " + format_bytes(data))
            return 0

        if action >= 0:
            try:
                device.action_ccc(action)
            except OSError as exc:
                trace(Verbosity.INFO, f"Ioctl debug action status: -1, errno={exc.errno}\n")
                trace(Verbosity.ERROR, "Failed to send Debug Action ioctl\n")
                return -1
            trace(Verbosity.INFO, "Ioctl debug action status: 0, errno=0\n")
            return 0

        if do_write:
            trace(Verbosity.INFO, f"Writing data..., write length = {len(write_data)}\n")
            try:
                written = device.write(write_data)
            except OSError as exc:
                trace(Verbosity.INFO, f"Write status: -1, errno={exc.errno}\n")
                trace(Verbosity.ERROR, "Failed to write data\n")
            else:
                trace(Verbosity.INFO, f"Write status: {written}, errno=0\n")

        if args.event:
            if not args.nopoll:
                trace(Verbosity.INFO, "Starting poll\n")
            while True:
                ready = False
                if not args.nopoll:
                    try:
                        ready = device.wait_readable(1000)
                    except OSError:
                        trace(Verbosity.ERROR, "Error while polling\n")
                        return -1
                if args.nopoll or ready:
                    try:
                        event = device.get_event_data()
                    except OSError as exc:
                        trace(
                            Verbosity.INFO,
                            f"Ioctl get event data status: -1, errno={exc.errno}\n",
                        )
                        trace(Verbosity.ERROR, "Failed to send Get Event Data ioctl\n")
                    else:
                        trace(Verbosity.INFO, "Ioctl get event data status: 0, errno=0\n")
                        trace(Verbosity.INFO, f"Event data length = {len(event)}")
                        print(", data:" + format_bytes(event))
                    break

        if do_read:
            trace(Verbosity.INFO, "Reading data...\n")
            try:
                data = device.read(read_len)
            except OSError as exc:
                trace(Verbosity.INFO, f"Read status: -1, errno={exc.errno}\n")
                trace(Verbosity.ERROR, "Failed to read data, read_ret=-1\n")
                return -1
            trace(Verbosity.INFO, f"Read status: {len(data)}, errno=0\n")
            print("Data: " + format_bytes(data))

    return 0