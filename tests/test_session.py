from dataclasses import dataclass

import pytest

from atscale.session import (
    MAX_SESSIONS,
    NO_SESSION_AUTHENTICATED,
    SESSION_AUTH_EXPIRE_TIMEOUT,
    SessionError,
    SessionManager,
)


@dataclass
class FakeConn:
    sockfd: int = -1


class FakeExtNet:
    def __init__(self):
        self.closed_fds = []

    def init_client(self):
        return FakeConn()

    def is_client_closed(self, conn):
        return conn.sockfd == -1

    def close_client(self, conn):
        self.closed_fds.append(conn.sockfd)
        conn.sockfd = -1


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock(100.0)


@pytest.fixture
def extnet():
    return FakeExtNet()


@pytest.fixture
def manager(extnet, clock):
    return SessionManager(extnet, clock)


def test_missing_extnet_raises():
    with pytest.raises(SessionError):
        SessionManager(None, FakeClock())


def test_initial_state(manager):
    assert len(manager.slots) == MAX_SESSIONS
    assert manager.authenticated_id == NO_SESSION_AUTHENTICATED
    assert [slot.id for slot in manager.slots] == list(range(MAX_SESSIONS))


def test_open_then_lookup(manager):
    manager.open(FakeConn(10))
    found = manager.lookup_conn(10)
    assert found.sockfd == 10


def test_lookup_unknown_and_unused(manager):
    assert manager.lookup_conn(42) is None
    assert manager.lookup_conn(-1) is None


def test_open_sets_auth_timeout(manager, clock):
    slot = manager.open(FakeConn(10))
    assert slot.auth_timeout == clock.now + SESSION_AUTH_EXPIRE_TIMEOUT
    assert slot.authenticated is False


def test_open_beyond_capacity_raises(manager):
    for fd in range(MAX_SESSIONS):
        manager.open(FakeConn(fd + 10))
    with pytest.raises(SessionError):
        manager.open(FakeConn(99))


def test_close_frees_slot(manager, extnet):
    for fd in range(MAX_SESSIONS):
        manager.open(FakeConn(fd + 10))
    manager.close(FakeConn(12))
    assert extnet.closed_fds == [12]
    assert manager.lookup_conn(12) is None
    manager.open(FakeConn(99))
    assert manager.lookup_conn(99).sockfd == 99


def test_close_errors(manager):
    with pytest.raises(SessionError):
        manager.close(FakeConn(-1))
    with pytest.raises(SessionError):
        manager.close(FakeConn(55))
    with pytest.raises(SessionError):
        manager.close(None)


def test_close_does_not_touch_callers_conn(manager):
    conn = FakeConn(10)
    manager.open(conn)
    manager.close(conn)
    assert conn.sockfd == 10
    assert manager.lookup_conn(10) is None


def test_auth_complete_and_query(manager):
    conn = FakeConn(10)
    manager.open(conn)
    manager.open(FakeConn(11))
    assert manager.is_authenticated(conn) is False
    manager.auth_complete(conn)
    assert manager.is_authenticated(conn) is True
    assert manager.is_authenticated(FakeConn(11)) is False
    assert manager.authenticated_conn().sockfd == 10


def test_second_auth_rejected(manager):
    manager.open(FakeConn(10))
    manager.open(FakeConn(11))
    manager.auth_complete(FakeConn(10))
    with pytest.raises(SessionError):
        manager.auth_complete(FakeConn(11))
    assert manager.is_authenticated(FakeConn(11)) is False


def test_auth_unknown_session_raises(manager):
    with pytest.raises(SessionError):
        manager.auth_complete(FakeConn(77))
    assert manager.authenticated_id == NO_SESSION_AUTHENTICATED


def test_is_authenticated_unknown_and_closed(manager):
    assert manager.is_authenticated(FakeConn(-1)) is False
    with pytest.raises(SessionError):
        manager.is_authenticated(FakeConn(77))


def test_closing_authenticated_session_resets(manager):
    manager.open(FakeConn(10))
    manager.auth_complete(FakeConn(10))
    manager.close(FakeConn(10))
    assert manager.authenticated_id == NO_SESSION_AUTHENTICATED
    with pytest.raises(SessionError):
        manager.authenticated_conn()
    manager.open(FakeConn(11))
    manager.auth_complete(FakeConn(11))
    assert manager.authenticated_conn().sockfd == 11


def test_authenticated_conn_without_auth_raises(manager):
    with pytest.raises(SessionError):
        manager.authenticated_conn()


def test_close_all(manager, extnet):
    manager.open(FakeConn(10))
    manager.open(FakeConn(11))
    manager.auth_complete(FakeConn(11))
    manager.close_all()
    assert sorted(extnet.closed_fds) == [10, 11]
    assert manager.lookup_conn(10) is None
    assert manager.lookup_conn(11) is None
    assert manager.authenticated_id == NO_SESSION_AUTHENTICATED


def test_close_expired_unauth(manager, extnet, clock):
    manager.open(FakeConn(10))
    manager.open(FakeConn(11))
    manager.auth_complete(FakeConn(11))
    clock.now += SESSION_AUTH_EXPIRE_TIMEOUT - 1
    manager.close_expired_unauth()
    assert extnet.closed_fds == []
    clock.now += 1
    manager.close_expired_unauth()
    assert extnet.closed_fds == [10]
    assert manager.lookup_conn(11).sockfd == 11


def test_getfds_lists_open_sessions(manager):
    manager.open(FakeConn(10))
    manager.open(FakeConn(11))
    fds, timeout = manager.getfds(-1)
    assert sorted(fds) == [10, 11]
    assert timeout == SESSION_AUTH_EXPIRE_TIMEOUT * 1000


def test_getfds_timeout_shrinks_with_time(manager, clock):
    manager.open(FakeConn(10))
    _, first = manager.getfds(-1)
    clock.now += 5
    _, later = manager.getfds(-1)
    assert later < first
    clock.now += 100
    _, expired = manager.getfds(-1)
    assert expired == 0


def test_getfds_keeps_smaller_timeout(manager):
    manager.open(FakeConn(10))
    _, timeout = manager.getfds(7)
    assert timeout == 7


def test_getfds_authenticated_does_not_limit_timeout(manager):
    manager.open(FakeConn(10))
    manager.auth_complete(FakeConn(10))
    fds, timeout = manager.getfds(-1)
    assert fds == [10]
    assert timeout == -1


def test_getfds_pending_data_zeroes_timeout(manager):
    manager.open(FakeConn(10))
    manager.auth_complete(FakeConn(10))
    manager.set_data_pending(FakeConn(10), True)
    _, timeout = manager.getfds(-1)
    assert timeout == 0


def test_getfds_empty(manager):
    assert manager.getfds(-1) == ([], -1)


def test_data_pending_round_trip(manager):
    manager.open(FakeConn(10))
    assert manager.get_data_pending(FakeConn(10)) is False
    manager.set_data_pending(FakeConn(10), True)
    assert manager.get_data_pending(FakeConn(10)) is True
    manager.set_data_pending(FakeConn(10), False)
    assert manager.get_data_pending(FakeConn(10)) is False


def test_data_pending_unknown_conn_raises(manager):
    with pytest.raises(SessionError):
        manager.set_data_pending(FakeConn(77), True)
    with pytest.raises(SessionError):
        manager.get_data_pending(FakeConn(77))