"""
Recording stand-in for the native client.

Lets unit tests drive the adapter without an engine and check exactly which
native calls were made.

Usage:
    def test_close(ready_database, fake_native):
        ...
        assert fake_native.calls == [('close',)]
"""
import pytest
from duckdb_async import Connection, Database


class FakeNative:
    """Callback-style native handle that records every call.

    Each operation settles its trailing callback with the value queued in
    `results` under its name, or with `errors[name]` when set.
    """

    def __init__(self, path=':memory:'):
        self.path = path
        self.calls = []
        self.results = {}
        self.errors = {}
        self.settle_twice = False

    def _settle(self, name, args):
        *args, callback = args
        self.calls.append((name, *args))
        err = self.errors.get(name)
        callback(err, None if err else self.results.get(name))
        if self.settle_twice:
            callback(None, 'late')

    def all(self, sql, *args):
        self._settle('all', (sql, *args))

    def exec(self, sql, *args):
        self._settle('exec', (sql, *args))

    def unregister_udf(self, name, callback):
        self._settle('unregister_udf', (name, callback))

    def wait(self, callback):
        self._settle('wait', (callback,))

    def interrupt(self):
        self.calls.append(('interrupt',))

    def close(self, callback):
        self._settle('close', (callback,))


@pytest.fixture
def fake_native():
    return FakeNative()


@pytest.fixture
def ready_database(fake_native):
    """Database wrapper attached to a recording native handle."""
    db = Database()
    db._attach(fake_native)
    return db


@pytest.fixture
def ready_connection():
    """Connection wrapper attached to its own recording native handle."""
    cn = Connection()
    cn._attach(FakeNative())
    return cn
