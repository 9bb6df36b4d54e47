"""Tracking of remote client sessions, only one of which may be authenticated.

Unauthenticated connections are accepted alongside an authenticated one, but
each must authenticate within a fixed time or it is closed.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

MAX_SESSIONS = 5
SESSION_AUTH_EXPIRE_TIMEOUT = 15
NO_SESSION_AUTHENTICATED = -1
UNUSED_SOCKET_FD = -1

_log = logging.getLogger(__name__)


class SessionError(Exception):
    """Raised when a session operation cannot be carried out."""


class Connection(Protocol):
    """A client connection handle; only its socket descriptor is used here."""

    sockfd: int


class ExtNet(Protocol):
    """The network layer that owns client connections."""

    def init_client(self) -> Connection: ...

    def is_client_closed(self, conn: Connection) -> bool: ...

    def close_client(self, conn: Connection) -> Any: ...


@dataclass
class SessionSlot:
    """State of one session slot."""

    id: int
    conn: Any
    auth_timeout: float = 0
    authenticated: bool = False
    data_pending: bool = False


class SessionManager:
    """Fixed pool of session slots backed by an external network layer."""

    def __init__(
        self, extnet: ExtNet, clock: Callable[[], float] = time.monotonic
    ) -> None:
        if extnet is None:
            raise SessionError("no network layer given")
        self.extnet = extnet
        self.clock = clock
        self.slots = [
            SessionSlot(id=index, conn=extnet.init_client())
            for index in range(MAX_SESSIONS)
        ]
        self.authenticated_id = NO_SESSION_AUTHENTICATED

    def _find(self, fd: int) -> Optional[SessionSlot]:
        return next((slot for slot in self.slots if slot.conn.sockfd == fd), None)

    def _require(self, conn: Connection, what: str = "session") -> SessionSlot:
        if conn is None:
            raise SessionError("no connection given")
        slot = self._find(conn.sockfd)
        if slot is None:
            raise SessionError(f"Invalid {what}")
        return slot

    def _is_open(self, slot: SessionSlot) -> bool:
        return not self.extnet.is_client_closed(slot.conn)

    def _close_slot(self, slot: SessionSlot) -> None:
        if self.extnet.is_client_closed(slot.conn):
            _log.error("session %d already closed!", slot.id)
        else:
            self.extnet.close_client(slot.conn)
        if slot.id == self.authenticated_id:
            self.authenticated_id = NO_SESSION_AUTHENTICATED
        slot.auth_timeout = 0
        slot.authenticated = False

    def lookup_conn(self, fd: int) -> Optional[Any]:
        """Return the open connection with descriptor ``fd``, or None."""
        slot = self._find(fd)
        if slot is not None and slot.conn.sockfd >= 0:
            return slot.conn
        return None

    def open(self, conn: Connection) -> SessionSlot:
        """Place ``conn`` in a free slot and start its authentication timer."""
        if conn is None:
            raise SessionError("no connection given")
        slot = self._find(UNUSED_SOCKET_FD)
        if slot is None:
            raise SessionError("No available sessions!")
        slot.conn = copy.copy(conn)
        slot.auth_timeout = self.clock() + SESSION_AUTH_EXPIRE_TIMEOUT
        slot.authenticated = False
        _log.debug("opened session %d fd %d", slot.id, conn.sockfd)
        return slot

    def close(self, conn: Connection) -> None:
        """Close the session belonging to ``conn``."""
        if conn is None or conn.sockfd == UNUSED_SOCKET_FD:
            raise SessionError("connection is not open")
        self._close_slot(self._require(conn))

    def close_all(self) -> None:
        """Close every open session."""
        for slot in self.slots:
            if self._is_open(slot):
                self._close_slot(slot)

    def close_expired_unauth(self) -> None:
        """Close open sessions whose authentication time has run out."""
        now = self.clock()
        for slot in self.slots:
            if (
                self._is_open(slot)
                and not slot.authenticated
                and slot.auth_timeout <= now
            ):
                _log.debug("Unauthenticated Session %d time out", slot.id)
                self._close_slot(slot)

    def is_authenticated(self, conn: Connection) -> bool:
        """Whether the session of ``conn`` has authenticated."""
        if conn is None or self.extnet.is_client_closed(conn):
            return False
        return self._require(conn).authenticated

    def auth_complete(self, conn: Connection) -> None:
        """Mark the session of ``conn`` as the authenticated one."""
        if conn is None:
            raise SessionError("no connection given")
        if self.authenticated_id >= 0:
            raise SessionError(
                "Cannot set complete authentication, "
                f"session {self.authenticated_id} is already authenticated"
            )
        slot = self._require(conn)
        self.authenticated_id = slot.id
        slot.authenticated = True

    def authenticated_conn(self) -> Any:
        """Return a copy of the authenticated session's connection."""
        if self.authenticated_id < 0:
            raise SessionError("no session is authenticated")
        return copy.copy(self.slots[self.authenticated_id].conn)

    def getfds(self, timeout_ms: int) -> tuple[list[int], int]:
        """Return descriptors of open sessions and the poll timeout to use.

        The timeout shrinks to the nearest authentication deadline, and to
        zero if any session has data pending. A negative timeout means none.
        """
        fds: list[int] = []
        any_pending = False
        for slot in self.slots:
            if not self._is_open(slot):
                continue
            if not slot.authenticated:
                remaining = max(0, int(1000 * (slot.auth_timeout - self.clock())))
                if timeout_ms < 0 or remaining < timeout_ms:
                    timeout_ms = remaining
                    _log.debug(
                        "Session %d time remaining: %d", slot.id, remaining
                    )
            if slot.data_pending:
                any_pending = True
            fds.append(slot.conn.sockfd)
        if any_pending:
            timeout_ms = 0
        return fds, timeout_ms

    def set_data_pending(self, conn: Connection, pending: bool) -> None:
        """Record whether more data is pending for ``conn``."""
        self._require(conn, "connection").data_pending = bool(pending)

    def get_data_pending(self, conn: Connection) -> bool:
        """Whether more data is pending for ``conn``."""
        return self._require(conn, "connection").data_pending