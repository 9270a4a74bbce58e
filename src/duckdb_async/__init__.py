"""
Asynchronous adapter for DuckDB.

Every query operation returns an awaitable:
- Database: ``await Database.create(path, access_mode)`` or ``await connect(options)``
- Connection: ``await db.connect()``
- Statement: ``await db.prepare(sql)`` / ``await db.run(sql)``

Operations on a closed or finalized handle raise `InvalidHandleError`
immediately; engine failures arrive through the awaitable as `DuckDbError`.
"""
__version__ = '0.1.0'

from duckdb_async.connection import Connection
from duckdb_async.database import Database, connect
from duckdb_async.exceptions import DatabaseError, DuckDbError
from duckdb_async.exceptions import InvalidHandleError, OptionsError
from duckdb_async.options import OPEN_CREATE, OPEN_FULLMUTEX, OPEN_PRIVATECACHE
from duckdb_async.options import OPEN_READONLY, OPEN_READWRITE
from duckdb_async.options import OPEN_SHAREDCACHE, DatabaseOptions, OpenMode
from duckdb_async.statement import Statement
from duckdb_async.stream import IpcResultStream, RowStream, ipc_to_table
from duckdb_async.types import Column, HandleState, StatementState

__all__ = [
    'Database',
    'Connection',
    'Statement',
    'connect',
    'RowStream',
    'IpcResultStream',
    'ipc_to_table',
    'Column',
    'HandleState',
    'StatementState',
    'DatabaseOptions',
    'OpenMode',
    'OPEN_READONLY',
    'OPEN_READWRITE',
    'OPEN_CREATE',
    'OPEN_FULLMUTEX',
    'OPEN_SHAREDCACHE',
    'OPEN_PRIVATECACHE',
    'DatabaseError',
    'DuckDbError',
    'InvalidHandleError',
    'OptionsError',
]
