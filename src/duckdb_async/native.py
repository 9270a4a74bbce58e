"""
Callback-driven client over the duckdb package.

The duckdb package is a blocking API. This module gives it the shape the
async adapter is built on: every asynchronous operation takes a trailing
``callback(err, result)`` and runs on a worker thread.

- Each `NativeDatabase` and `NativeConnection` owns a serial worker, so work
  submitted to one handle runs in submission order.
- Engine failures reach callbacks as `DuckDbError`.
- Work submitted without a callback logs its failure and, for statements,
  stores it so the statement's next operation fails with it.
- Streams and parallel-mode queries run on their own cursors, with the
  handle's registered buffers registered on them too.
- Work submitted after a handle closed fails with `DuckDbError`.

Callbacks are invoked on worker threads; `duckdb_async.bridge` moves
settlement back to the event loop.
"""
import inspect
import logging
import os
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from typing import Any, Self

import duckdb
import pandas as pd
import pyarrow as pa
from duckdb_async.exceptions import DuckDbError, NativeError, wrap_native_error
from duckdb_async.sql import bind_params, has_placeholders, returns_rows
from duckdb_async.types import Column, Row, make_rows

__all__ = [
    'NativeHandle',
    'NativeDatabase',
    'NativeConnection',
    'NativeStatement',
    'NativeQueryResult',
    'NativeIpcResult',
    'STREAM_CHUNK_SIZE',
    'IPC_BATCH_SIZE',
    'EOS_MARKER',
]

logger = logging.getLogger(__name__)

Callback = Callable[[BaseException | None, Any], None]

STREAM_CHUNK_SIZE = 2048
IPC_BATCH_SIZE = 1_000_000
EOS_MARKER = b'\xff\xff\xff\xff\x00\x00\x00\x00'


def _split_callback(args: tuple[Any, ...]) -> tuple[tuple[Any, ...], Callback | None]:
    """Separate a trailing callback from positional arguments."""
    if args and callable(args[-1]):
        return args[:-1], args[-1]
    return args, None


def _resolve_with(callback: Callback | None, value: Any) -> Callback | None:
    """Callback reporting `value` on success instead of the work's result."""
    if callback is None:
        return None

    def resolved(err: BaseException | None, _: Any = None) -> None:
        callback(err, None if err is not None else value)

    return resolved


class _Worker:
    """Executor wrapper that reports outcomes through callbacks.

    With ``max_workers=1`` work runs in submission order. Once shut down,
    submitted work fails with `DuckDbError` naming `resource`.
    """

    def __init__(self, name: str, max_workers: int = 1, resource: str = 'Handle') -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._pending: set[Future] = set()
        self._lock = threading.Lock()
        self.resource = resource
        self.closed = False

    def _closed_error(self) -> DuckDbError:
        return DuckDbError(f'{self.resource} already closed', 'ConnectionException')

    def submit(self, work: Callable[[], Any], callback: Callback | None = None,
               on_error: Callable[[BaseException], None] | None = None) -> Future:
        """Run `work` and report ``(err, result)`` to `callback`.

        Without a callback, errors go to `on_error`, or the log.
        """
        def run() -> None:
            try:
                result = work()
            except NativeError as err:
                _fail(callback, on_error, wrap_native_error(err))
                return
            except Exception as err:
                _fail(callback, on_error, err)
                return
            if callback is not None:
                callback(None, result)

        future = self._try_submit(run)
        if future is None:
            err = self._closed_error()
            _fail(callback, on_error, err)
            future = Future()
            future.set_exception(err)
            return future
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _try_submit(self, fn: Callable[[], Any]) -> Future | None:
        """Schedule `fn`, or return ``None`` once the executor is shut down."""
        if self.closed:
            return None
        try:
            return self._executor.submit(fn)
        except RuntimeError:
            return None

    def call(self, work: Callable[[], Any]) -> Any:
        """Run `work` in order with other submitted work and block for its result."""
        future = self._try_submit(work)
        if future is None:
            raise self._closed_error()
        try:
            return future.result()
        except NativeError as err:
            raise wrap_native_error(err) from err

    def drain(self) -> None:
        """Block until everything submitted so far has finished."""
        with self._lock:
            pending = list(self._pending)
        wait_futures(pending)

    def shutdown(self, wait: bool = False) -> None:
        self.closed = True
        self._executor.shutdown(wait=wait)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)


def _fail(callback: Callback | None, on_error: Callable[[BaseException], None] | None,
          err: BaseException) -> None:
    if callback is not None:
        callback(err, None)
    elif on_error is not None:
        on_error(err)
    else:
        logger.error(f'Unobserved native error: {err}')


def _settle_local(work: Callable[[], Any], callback: Callback | None) -> None:
    """Run cleanup inline once the owning worker is gone."""
    work()
    if callback is not None:
        callback(None, None)


def _as_arrow(data: Any) -> pa.Table:
    """Turn a registrable buffer into an Arrow table.

    Accepts Arrow objects, pandas DataFrames, a single IPC stream buffer, or
    an iterable of IPC messages such as the output of ``arrow_ipc_all``.
    """
    if isinstance(data, pa.Table):
        return data
    if isinstance(data, pa.RecordBatch):
        return pa.Table.from_batches([data])
    if isinstance(data, pa.RecordBatchReader):
        return data.read_all()
    if isinstance(data, pd.DataFrame):
        return pa.Table.from_pandas(data, preserve_index=False)
    if isinstance(data, bytes | bytearray | memoryview | pa.Buffer):
        return pa.ipc.open_stream(data).read_all()
    if isinstance(data, Iterable):
        chunks = [chunk.to_pybytes() if isinstance(chunk, pa.Buffer) else bytes(chunk)
                  for chunk in data]
        return pa.ipc.open_stream(b''.join(chunks)).read_all()
    raise TypeError(f'Cannot register {type(data).__name__} as a buffer')


def _ipc_messages(reader: pa.RecordBatchReader) -> list[pa.Buffer]:
    """Encode a reader as IPC messages: schema, batches, end-of-stream."""
    messages = [reader.schema.serialize()]
    messages.extend(batch.serialize() for batch in reader)
    messages.append(pa.py_buffer(EOS_MARKER))
    return messages


def _udf_parameters(fn: Callable[..., Any], return_type: Any,
                    parameters: list[Any] | None) -> list[Any] | None:
    """Parameter types for a UDF.

    Fully annotated functions let the engine infer them (``None``).
    Otherwise every positional parameter takes the return type.
    """
    if parameters is not None:
        return list(parameters)
    positional = [
        p for p in inspect.signature(fn).parameters.values()
        if p.kind in {p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD}
        ]
    if positional and all(p.annotation is not p.empty for p in positional):
        return None
    return [return_type] * len(positional)


def _sqltype(con: duckdb.DuckDBPyConnection, type_: Any) -> Any:
    return con.sqltype(type_) if isinstance(type_, str) else type_


class NativeHandle:
    """Query surface shared by native databases and connections."""

    kind = 'handle'
    resource = 'Handle'

    def __init__(self) -> None:
        self._con: duckdb.DuckDBPyConnection | None = None
        self._worker = _Worker(f'duckdb-{self.kind}', resource=self.resource)
        self._buffers: dict[str, pa.Table] = {}
        self._cursor_lock = threading.Lock()

    def _serial(self, work: Callable[[duckdb.DuckDBPyConnection], Any],
                callback: Callback | None = None,
                on_error: Callable[[BaseException], None] | None = None) -> Future:
        """Run ``work(con)`` on this handle's serial worker."""
        return self._worker.submit(lambda: work(self._con), callback, on_error)

    def _schedule(self, work: Callable[[duckdb.DuckDBPyConnection], Any],
                  callback: Callback | None = None) -> Future:
        """Run a self-contained query. Databases may run these in parallel."""
        return self._serial(work, callback)

    def _new_cursor(self) -> duckdb.DuckDBPyConnection:
        with self._cursor_lock:
            return self._con.cursor()

    def _query_cursor(self) -> duckdb.DuckDBPyConnection:
        """Cursor for a detached query, with this handle's buffers registered."""
        with self._cursor_lock:
            cursor = self._con.cursor()
            buffers = dict(self._buffers)
        for name, table in buffers.items():
            cursor.register(name, table)
        return cursor

    def all(self, sql: str, *args: Any) -> None:
        args, callback = _split_callback(args)
        params = bind_params(args)

        def work(con):
            con.execute(sql, params)
            return make_rows(con.description, con.fetchall())

        self._schedule(work, callback)

    def exec(self, sql: str, *args: Any) -> None:
        args, callback = _split_callback(args)
        params = bind_params(args)

        def work(con):
            con.execute(sql, params)

        self._schedule(work, callback)

    def each(self, sql: str, *args: Any, complete: Callback | None = None) -> None:
        """Invoke the trailing callback once per row, then `complete` with the count."""
        args, callback = _split_callback(args)
        if callback is None:
            raise TypeError('each() requires a row callback')
        params = bind_params(args)

        def work(con):
            con.execute(sql, params)
            return _emit_rows(con, callback)

        self._schedule(work, _each_done(callback, complete))

    def prepare(self, sql: str, *args: Any) -> 'NativeStatement':
        args, callback = _split_callback(args)
        stmt = NativeStatement(self, sql, bind_params(args))
        self._serial(stmt._prepare, _resolve_with(callback, stmt), stmt._defer_error)
        return stmt

    def run(self, sql: str, *args: Any) -> 'NativeStatement':
        args, callback = _split_callback(args)
        stmt = NativeStatement(self, sql, bind_params(args))
        self._serial(stmt._execute, _resolve_with(callback, stmt), stmt._defer_error)
        return stmt

    def stream(self, sql: str, *args: Any) -> 'NativeQueryResult':
        """Lazy result; nothing runs until the first `next_chunk`."""
        return NativeQueryResult(self, sql, bind_params(args))

    def arrow_ipc_all(self, sql: str, *args: Any) -> None:
        args, callback = _split_callback(args)
        params = bind_params(args)

        def work(con):
            return _ipc_messages(con.execute(sql, params).fetch_record_batch(IPC_BATCH_SIZE))

        self._schedule(work, callback)

    def arrow_ipc_stream(self, sql: str, *args: Any) -> None:
        args, callback = _split_callback(args)
        params = bind_params(args)

        def work(con):
            cursor = self._query_cursor()
            try:
                reader = cursor.execute(sql, params).fetch_record_batch(IPC_BATCH_SIZE)
            except Exception:
                cursor.close()
                raise
            return NativeIpcResult(self, cursor, reader)

        self._serial(work, callback)

    def register_udf(self, name: str, return_type: Any, fn: Callable[..., Any],
                     parameters: list[Any] | None = None) -> None:
        """Install a scalar function; blocks until the worker has done so."""
        self._create_function(name, return_type, fn, parameters, 'native')

    def register_bulk(self, name: str, return_type: Any, fn: Callable[..., Any],
                      parameters: list[Any] | None = None) -> None:
        """Install a vectorised function receiving and returning Arrow arrays."""
        self._create_function(name, return_type, fn, parameters, 'arrow')

    def _create_function(self, name, return_type, fn, parameters, udf_type) -> None:
        def work():
            params = _udf_parameters(fn, return_type, parameters)
            if params is not None:
                params = [_sqltype(self._con, p) for p in params]
            self._con.create_function(name, fn, params, _sqltype(self._con, return_type),
                                      type=udf_type)
            logger.debug(f'Registered {udf_type} function {name}')

        self._worker.call(work)

    def unregister_udf(self, name: str, callback: Callback | None = None) -> None:
        def work(con):
            con.remove_function(name)

        self._serial(work, callback)

    def register_buffer(self, name: str, data: Any, force: bool = False,
                        callback: Callback | None = None) -> None:
        def work(con):
            if name in self._buffers and not force:
                raise DuckDbError(f'Buffer with name "{name}" is already registered',
                                  'InvalidInputException')
            table = _as_arrow(data)
            if name in self._buffers:
                con.unregister(name)
            con.register(name, table)
            with self._cursor_lock:
                self._buffers[name] = table
            logger.debug(f'Registered buffer {name}: {table.num_rows} rows')

        self._serial(work, callback)

    def unregister_buffer(self, name: str, callback: Callback | None = None) -> None:
        def work(con):
            con.unregister(name)
            with self._cursor_lock:
                self._buffers.pop(name, None)

        self._serial(work, callback)


def _emit_rows(con: duckdb.DuckDBPyConnection, callback: Callback) -> int:
    count = 0
    while chunk := con.fetchmany(STREAM_CHUNK_SIZE):
        for row in make_rows(con.description, chunk):
            callback(None, row)
            count += 1
    return count


def _each_done(callback: Callback, complete: Callback | None) -> Callback:
    """Route an `each` failure to the row callback and success to `complete`."""
    def done(err: BaseException | None, count: Any = None) -> None:
        if err is not None:
            callback(err, None)
        elif complete is not None:
            complete(None, count)

    return done


class NativeDatabase(NativeHandle):
    """One DuckDB database instance plus its default connection.
    """

    kind = 'db'
    resource = 'Database'

    def __init__(self, path: str, config: dict[str, Any]) -> None:
        super().__init__()
        self.path = path
        self.config = config
        self._pool: _Worker | None = None
        self._active: set[duckdb.DuckDBPyConnection] = set()

    @classmethod
    def open(cls, path: str, config: dict[str, Any], callback: Callback | None = None) -> Self:
        """Start opening the database; `callback` receives the instance."""
        db = cls(path, config)
        db._worker.submit(db._open, callback)
        return db

    def _open(self) -> Self:
        try:
            self._con = duckdb.connect(self.path, config=self.config)
        except Exception:
            self._worker.shutdown()
            raise
        logger.debug(f'Opened database {self.path}')
        return self

    def _schedule(self, work, callback=None):
        if self._pool is None:
            return super()._schedule(work, callback)
        return self._pool.submit(lambda: self._on_cursor(work), callback)

    def _on_cursor(self, work: Callable[[duckdb.DuckDBPyConnection], Any]) -> Any:
        cursor = self._query_cursor()
        with self._cursor_lock:
            self._active.add(cursor)
        try:
            return work(cursor)
        finally:
            with self._cursor_lock:
                self._active.discard(cursor)
            cursor.close()

    def _parallelism(self) -> int:
        threads = self.config.get('threads')
        return int(threads) if threads else (os.cpu_count() or 1)

    def serialize(self, callback: Callback | None = None) -> None:
        """Run later queries on the serial worker again."""
        pool, self._pool = self._pool, None

        def work():
            if pool is not None:
                pool.shutdown(wait=True)

        self._worker.submit(work, callback)

    def parallelize(self, callback: Callback | None = None) -> None:
        """Run later self-contained queries concurrently, each on its own cursor."""
        if self._pool is None:
            self._pool = _Worker('duckdb-db-parallel', self._parallelism())
        self._worker.submit(lambda: None, callback)

    def wait(self, callback: Callback | None = None) -> None:
        """Report once all previously submitted work has finished."""
        pool = self._pool

        def work():
            if pool is not None:
                pool.drain()

        self._worker.submit(work, callback)

    def interrupt(self) -> None:
        self._con.interrupt()
        with self._cursor_lock:
            active = list(self._active)
        for cursor in active:
            cursor.interrupt()

    def attach_connection(self, conn: 'NativeConnection', callback: Callback | None = None) -> None:
        """Give `conn` its own cursor, in order with this database's work."""
        def work(con):
            conn._con = self._new_cursor()
            logger.debug(f'Opened connection on {self.path}')
            return conn

        self._serial(work, callback)

    def close(self, callback: Callback | None = None) -> None:
        pool, self._pool = self._pool, None

        def work(con):
            if pool is not None:
                pool.shutdown(wait=True)
            con.close()
            self._worker.shutdown()
            logger.debug(f'Closed database {self.path}')

        self._serial(work, callback)


class NativeConnection(NativeHandle):
    """A separate DuckDB connection (cursor) on an open database.
    """

    kind = 'conn'
    resource = 'Connection'

    @classmethod
    def open(cls, database: NativeDatabase, callback: Callback | None = None) -> Self:
        """Start opening a connection; `callback` receives the instance."""
        conn = cls()

        def opened(err, result=None):
            if err is not None:
                conn._worker.shutdown()
                if callback is None:
                    logger.error(f'Connection could not be opened: {err}')
            if callback is not None:
                callback(err, result)

        database.attach_connection(conn, opened)
        return conn

    def close(self, callback: Callback | None = None) -> None:
        def work(con):
            con.close()
            self._worker.shutdown()
            logger.debug('Closed connection')

        self._serial(work, callback)


class NativeStatement:
    """A statement bound to the connection that prepared it.

    Executes on the owner's connection so connection-local state (registered
    buffers, temporary tables) stays visible.
    """

    def __init__(self, owner: NativeHandle, sql: str, params: Any = None) -> None:
        self.sql = sql
        self._owner = owner
        self._params = params
        self._columns: list[Column] | None = None
        self._error: BaseException | None = None
        self._finalized = False

    def _defer_error(self, err: BaseException) -> None:
        logger.error(f'Statement failed without a callback:\nSQL:\n{self.sql}\nerror: {err}')
        self._error = err

    def _check(self) -> None:
        if self._error is not None:
            err, self._error = self._error, None
            raise err
        if self._finalized:
            raise DuckDbError('Statement has been finalized', 'InvalidInputException')

    def _prepare(self, con: duckdb.DuckDBPyConnection) -> Self:
        """Bind the statement to resolve its projection without executing it."""
        con.extract_statements(self.sql)
        if returns_rows(self.sql) and (self._params is not None or not has_placeholders(self.sql)):
            if self._params is not None:
                relation = con.sql(self.sql, params=self._params)
            else:
                relation = con.sql(self.sql)
            self._columns = Column.from_relation(relation)
        return self

    def _execute(self, con: duckdb.DuckDBPyConnection, params: Any = None) -> Self:
        self._check()
        con.execute(self.sql, params if params is not None else self._params)
        if self._columns is None:
            self._columns = Column.from_description(con.description)
        return self

    def all(self, *args: Any) -> None:
        args, callback = _split_callback(args)
        params = bind_params(args)

        def work(con) -> list[Row]:
            self._execute(con, params)
            return make_rows(con.description, con.fetchall())

        self._owner._serial(work, callback, self._defer_error)

    def run(self, *args: Any) -> Self:
        args, callback = _split_callback(args)
        params = bind_params(args)
        def work(con):
            self._execute(con, params)

        self._owner._serial(work, _resolve_with(callback, self), self._defer_error)
        return self

    def each(self, *args: Any, complete: Callback | None = None) -> None:
        args, callback = _split_callback(args)
        if callback is None:
            raise TypeError('each() requires a row callback')
        params = bind_params(args)

        def work(con):
            self._execute(con, params)
            return _emit_rows(con, callback)

        self._owner._serial(work, _each_done(callback, complete))

    def arrow_ipc_all(self, *args: Any) -> None:
        args, callback = _split_callback(args)
        params = bind_params(args)

        def work(con):
            self._execute(con, params)
            return _ipc_messages(con.fetch_record_batch(IPC_BATCH_SIZE))

        self._owner._serial(work, callback, self._defer_error)

    def finalize(self, callback: Callback | None = None) -> None:
        """Release the plan. After the owner has closed there is nothing left to release."""
        def work(con=None):
            self._finalized = True
            self._params = None

        if self._owner._worker.closed:
            _settle_local(work, callback)
            return
        self._owner._serial(work, callback)

    def columns(self) -> list[Column] | None:
        return self._columns


class NativeQueryResult:
    """Pull-driven row source on a dedicated cursor.
    """

    def __init__(self, owner: NativeHandle, sql: str, params: Any = None,
                 chunk_size: int = STREAM_CHUNK_SIZE) -> None:
        self.sql = sql
        self._owner = owner
        self._params = params
        self._chunk_size = chunk_size
        self._cursor: duckdb.DuckDBPyConnection | None = None
        self._done = False

    def next_chunk(self, callback: Callback | None = None) -> None:
        """Report the next list of rows; an empty list means exhausted."""
        self._owner._worker.submit(self._fetch, callback)

    def close(self, callback: Callback | None = None) -> None:
        if self._owner._worker.closed:
            _settle_local(self._release, callback)
            return
        self._owner._worker.submit(self._release, callback)

    def _fetch(self) -> list[Row]:
        if self._done:
            return []
        try:
            if self._cursor is None:
                self._cursor = self._owner._query_cursor()
                self._cursor.execute(self.sql, self._params)
            rows = make_rows(self._cursor.description, self._cursor.fetchmany(self._chunk_size))
        except Exception:
            self._release()
            raise
        if len(rows) < self._chunk_size:
            self._release()
        return rows

    def _release(self) -> None:
        self._done = True
        if self._cursor is not None:
            self._cursor.close()
            self._cursor = None


class NativeIpcResult:
    """Pull-driven Arrow IPC messages: schema, batches, end-of-stream marker.
    """

    def __init__(self, owner: NativeHandle, cursor: duckdb.DuckDBPyConnection,
                 reader: pa.RecordBatchReader) -> None:
        self._owner = owner
        self._cursor = cursor
        self._reader = reader
        self._schema_sent = False
        self._done = False

    @property
    def schema(self) -> pa.Schema:
        return self._reader.schema

    def next_message(self, callback: Callback | None = None) -> None:
        """Report the next IPC message, or ``None`` once exhausted."""
        self._owner._worker.submit(self._next, callback)

    def close(self, callback: Callback | None = None) -> None:
        if self._owner._worker.closed:
            _settle_local(self._release, callback)
            return
        self._owner._worker.submit(self._release, callback)

    def _next(self) -> pa.Buffer | None:
        if self._done:
            return None
        if not self._schema_sent:
            self._schema_sent = True
            return self._reader.schema.serialize()
        try:
            return self._reader.read_next_batch().serialize()
        except StopIteration:
            self._release()
            return pa.py_buffer(EOS_MARKER)
        except Exception:
            self._release()
            raise

    def _release(self) -> None:
        self._done = True
        if self._cursor is not None:
            self._cursor.close()
            self._cursor = None
