import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from recipefinder.db import db_errors
from recipefinder.errors import NetworkUnavailable, StorageUnavailable
from recipefinder.infra.reachability import ReachabilityMonitor


def test_listeners_notified_on_change_only():
    monitor = ReachabilityMonitor()
    seen = []
    unsubscribe = monitor.subscribe(seen.append)

    monitor.set_online(True)
    monitor.set_online(False)
    monitor.set_online(False)
    monitor.set_online(True)
    assert seen == [False, True]

    unsubscribe()
    monitor.set_online(False)
    assert seen == [False, True]
    assert monitor.is_online() is False


def test_failing_listener_does_not_block_others():
    monitor = ReachabilityMonitor()
    seen = []

    def broken(online):
        raise RuntimeError("listener bug")

    monitor.subscribe(broken)
    monitor.subscribe(seen.append)
    monitor.set_online(False)
    assert seen == [False]


def test_db_errors_mapping():
    with pytest.raises(NetworkUnavailable):
        with db_errors("lookup"):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    with pytest.raises(StorageUnavailable):
        with db_errors("insert"):
            raise IntegrityError("INSERT", {}, Exception("duplicate"))
