# atscale

Support pieces for a remote hardware-debug server, and a command-line tool for debug over I3C.

- `atscale.asdlog`: a logger that filters messages by level and by stream. It writes to stderr or syslog and can also pass messages to a remote callback. The module also renders hex dumps and shifted bit buffers.
- `atscale.session`: `SessionManager` tracks up to five client connections. Only one of them may be authenticated at a time. A connection that does not authenticate within 15 seconds is closed.
- `atscale.i3c_debug`: `DebugDevice` wraps a Linux debug-over-I3C character device. The module also provides the `debug-over-i3c` command.

No dependencies are needed beyond the standard library. `atscale.i3c_debug` needs Linux, because it uses `fcntl` and `select.poll`.

## Installation

```
pip install .
pip install .[test]   # adds pytest
```

## Logging

```python
from atscale.asdlog import AsdLogger, LogLevel, LogStream, LogOption, parse_streams

logger = AsdLogger(LogLevel.DEBUG, parse_streams("jtag,network"), False, None, None)
logger.log(LogLevel.ERROR, LogStream.JTAG, LogOption.NONE, "shift failed: %d", 3)
logger.log_shift(LogLevel.ERROR, LogStream.JTAG, LogOption.NONE, 10, b"\xff\xff", "Shift DR TDI")
# stderr: Shift DR TDI: [10b] 0x3ff
```

**Filtering.** A message is logged locally when its level is at least the configured level and its stream is one of the configured streams.

**Levels and streams.**
- `LogLevel` runs `OFF`, `TRACE`, `DEBUG`, `INFO`, `WARNING`, `ERROR`.
- `LogStream` is a flag with the members `NETWORK`, `JTAG`, `PINS`, `I2C`, `TEST`, `DAEMON`, `SDK`, `SPP`, `ALL` and `NONE`.

**Remote sink.** To send messages to a remote sink, pass both `should_log_remote(level, stream)` and `remote_log(level, stream, text)`. `LogOption.NO_REMOTE` suppresses the remote sink for a single message.

**Syslog.** With `write_to_syslog=True`, local output goes to syslog as `LOG_USER` instead of stderr.

**Methods and helpers.**
- `log_buffer(...)` logs a hex dump of the data, one line per 16 bytes.
- `log_shift(...)` logs the first N bits of a buffer as hex. If the buffer is too short for N bits, it logs only the bits the buffer holds.
- `configure(...)` replaces every setting of a logger.
- `buffer_to_hex(number_of_bits, data)` returns the hex text on its own.
- `hexdump_lines(data, prefix)` yields the dump lines, for example `TEST  : 0000000: 1020 30`.
- `parse_level(text)` and `parse_streams(text)` parse case-insensitive names. `parse_streams` takes a comma-separated list. Both raise `ValueError` on an unknown name.

## Sessions

```python
from atscale.session import SessionManager, SessionError

sessions = SessionManager(extnet)          # clock defaults to time.monotonic
slot = sessions.open(conn)                 # raises SessionError when all slots are taken
sessions.auth_complete(conn)
fds, timeout_ms = sessions.getfds(-1)
sessions.close_expired_unauth()
```

The `extnet` object is the network layer. It must provide three methods:
- `init_client()`, which returns a connection object with a `sockfd` attribute. An unused slot has `sockfd == -1`.
- `is_client_closed(conn)`.
- `close_client(conn)`.

**Working with sessions.**
- `lookup_conn(fd)` finds the connection for a descriptor.
- `is_authenticated(conn)` tells whether a connection is authenticated.
- `authenticated_conn()` returns a copy of the authenticated connection.
- `set_data_pending` and `get_data_pending` keep a per-connection hint that more data is waiting.
- `close(conn)` and `close_all()` close sessions.

**Polling.** `getfds(timeout_ms)` returns the descriptors of open sessions and a poll timeout. The timeout is shortened to the nearest authentication deadline, and is set to zero when any session has data pending. A negative `timeout_ms` means no timeout.

**Errors.** Invalid operations raise `SessionError`. Examples are an unknown connection, or completing authentication while another session is already authenticated.

## Command-line tool

```
debug-over-i3c -d /dev/i3c-debug-0 -w 0x22,0x30,0x00,0x00 -r 255
debug-over-i3c -d /dev/i3c-debug-0 -o 0x00 -r 4
debug-over-i3c -d /dev/i3c-debug-0 -o 0x02 -w 0x00
debug-over-i3c -d /dev/i3c-debug-0 -a 0xFD
debug-over-i3c -d /dev/i3c-debug-0 -e
debug-over-i3c --help
debug-over-i3c --version
```

**Options.**

| Option | Meaning |
| --- | --- |
| `-d/--device` | The device path |
| `-w/--write` | Comma-separated byte values; decimal, `0x` hex and leading-zero octal are accepted |
| `-r/--read` | The number of bytes to read, at most 512 |
| `-o/--opcode` | Send a Debug Opcode CCC. Data given with `-w` and `-r` goes with it |
| `-a/--action` | Send a Debug Action CCC |
| `-e/--event` | Fetch event data |
| `-n/--nopoll` | Fetch event data without waiting for the device to become readable first |
| `-x` | Raise verbosity; give it more than once for more detail |

Data that is read is printed as upper-case hex bytes.

The command exits non-zero when the device cannot be opened, an option is invalid, or a request fails.

The same operations are available from Python:

```python
from atscale.i3c_debug import DebugDevice

with DebugDevice("/dev/i3c-debug-0") as device:
    device.write(b"\x22\x30")
    print(device.read(255))
```

`DebugDevice` also provides `opcode_ccc`, `action_ccc`, `get_event_data` and `wait_readable`.

## What this package does not do

The package does not run a debug server. It contains:
- no network layer: `SessionManager` must be given one;
- no authentication handshake: callers decide when to call `auth_complete`;
- no JTAG or pin control.

The `debug-over-i3c` command is the only program it installs.