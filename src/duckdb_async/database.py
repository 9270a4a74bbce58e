"""
Top-level Database handle and the options-driven `connect()` entry point.

Usage:
    db = await Database.create(':memory:')
    rows = await db.all('select 42 as a')
    async with await db.connect() as cn:
        await cn.exec('create temp table t (x int)')
    await db.close()
"""
import logging
from collections.abc import Awaitable
from dataclasses import fields
from typing import Any, Self

from duckdb_async.bridge import promisify, promisify_method
from duckdb_async.connection import Connection
from duckdb_async.handle import QueryHandle
from duckdb_async.native import NativeDatabase
from duckdb_async.options import DatabaseOptions, normalize_access_mode

from libb import load_options

__all__ = ['Database', 'connect']

logger = logging.getLogger(__name__)

_open_database = promisify(NativeDatabase.open)
_wait = promisify_method(NativeDatabase.wait)
_serialize = promisify_method(NativeDatabase.serialize)
_parallelize = promisify_method(NativeDatabase.parallelize)


class Database(QueryHandle):
    """Owns one DuckDB engine instance.

    Obtain one with ``await Database.create(path, access_mode)``; the
    constructor alone leaves the handle uninitialized.
    """

    resource = 'Database'
    noun = 'database'

    def __init__(self) -> None:
        super().__init__()
        self.path: str | None = None

    @classmethod
    async def create(cls, path: str = ':memory:', access_mode: Any = None) -> Self:
        """Open a database.

        Args:
            path: database file, or ``:memory:``
            access_mode: an `OpenMode` flag, a mapping of engine settings,
                or a `DatabaseOptions`. Defaults to read/write.

        Raises `OptionsError` for an unusable access mode and `DuckDbError`
        when the engine refuses to open.
        """
        config = normalize_access_mode(access_mode)
        logger.debug(f'Opening database {path} with {config}')
        db = cls()
        db._attach(await _open_database(path, config))
        db.path = path
        return db

    def get_native_handle(self) -> NativeDatabase:
        """Native engine reference, for building Connections."""
        return self._handle('get_native_handle')

    def connect(self) -> Awaitable[Connection]:
        """Open a new Connection on this database."""
        return Connection._open(self._handle('connect'))

    def interrupt(self) -> None:
        """Ask the engine to abort running queries. Does not wait."""
        self._handle('interrupt').interrupt()

    def wait(self) -> Awaitable[None]:
        """Settle once everything submitted to this database so far is done."""
        return _wait(self._handle('wait'))

    def serialize(self) -> Awaitable[None]:
        """Run later queries one at a time, in submission order (the default)."""
        return _serialize(self._handle('serialize'))

    def parallelize(self) -> Awaitable[None]:
        """Run later self-contained queries concurrently, each on its own cursor.

        Registered buffers are carried onto each cursor. Temporary tables
        of the database session are not visible to queries run this way.
        """
        return _parallelize(self._handle('parallelize'))


async def connect(options: DatabaseOptions | dict[str, Any] | str,
                  config: Any | None = None, **kw: Any) -> Database:
    """Open a Database from options

    Args:
        options: Can be:
                - DatabaseOptions object
                - String path to configuration
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Returns
        Ready Database
    """
    if isinstance(options, DatabaseOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=DatabaseOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)
    return await Database.create(options.path, options)
