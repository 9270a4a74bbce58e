"""
Secondary connections on an open Database.
"""
import logging
from collections.abc import Awaitable
from typing import Any, Self

from duckdb_async.bridge import promisify
from duckdb_async.handle import QueryHandle
from duckdb_async.native import NativeConnection, NativeDatabase

__all__ = ['Connection']

logger = logging.getLogger(__name__)

_open_connection = promisify(NativeConnection.open)


class Connection(QueryHandle):
    """A connection bound to a Database's engine.

    Shares the engine with its Database but has its own session: registered
    buffers and temporary objects are local to it. Closing a Connection
    never affects the Database.
    """

    resource = 'Connection'
    noun = 'connection'

    @classmethod
    def create(cls, db: Any) -> Awaitable[Self]:
        """Open a connection on `db`.

        The Database's native reference is read at call time, so a closed
        Database fails here, synchronously.
        """
        return cls._open(db.get_native_handle())

    @classmethod
    async def _open(cls, native_db: NativeDatabase) -> Self:
        conn = cls()
        conn._attach(await _open_connection(native_db))
        logger.debug(f'Connection opened on {native_db.path}')
        return conn
