"""Filtered logging with hex dumps, client session tracking, and a debug-over-I3C device tool."""

__version__ = "1.0.0"
__all__ = ["asdlog", "session", "i3c_debug"]