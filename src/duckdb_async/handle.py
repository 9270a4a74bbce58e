"""
Handle lifecycle and the query surface shared by Database and Connection.

Every public operation first checks that the handle is ready and raises
`InvalidHandleError` synchronously otherwise, so a closed handle never
reaches the native layer. Operations that suspend return an awaitable whose
native call has already been issued.
"""
import logging
import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, Self

from duckdb_async.bridge import promisify_method, relay
from duckdb_async.exceptions import InvalidHandleError
from duckdb_async.native import NativeHandle
from duckdb_async.statement import Statement
from duckdb_async.stream import IpcResultStream, RowStream
from duckdb_async.types import HandleState, Row

__all__ = ['Handle', 'QueryHandle', 'dumpsql']

logger = logging.getLogger(__name__)

_all = promisify_method(NativeHandle.all)
_exec = promisify_method(NativeHandle.exec)
_prepare = promisify_method(NativeHandle.prepare)
_run = promisify_method(NativeHandle.run)
_arrow_ipc_all = promisify_method(NativeHandle.arrow_ipc_all)
_arrow_ipc_stream = promisify_method(NativeHandle.arrow_ipc_stream)
_unregister_udf = promisify_method(NativeHandle.unregister_udf)
_register_buffer = promisify_method(NativeHandle.register_buffer)
_unregister_buffer = promisify_method(NativeHandle.unregister_buffer)


def dumpsql(func):
    """Decorator for logging SQL and timing the operation it starts."""
    @wraps(func)
    def wrapper(self, sql: str, *args: Any):
        start = time.time()
        logger.debug(f'SQL:\n{sql}\nargs: {args}')
        pending = func(self, sql, *args)
        return self._timed(pending, sql, args, start)
    return wrapper


class Handle:
    """A wrapper owning one native resource.

    States move Constructing -> Ready -> Closed. Closed is terminal.
    """

    resource = 'Handle'
    noun = 'handle'

    def __init__(self) -> None:
        self._native: Any = None
        self.state = HandleState.CONSTRUCTING
        self.calls = 0
        self.time = 0

    @property
    def is_ready(self) -> bool:
        return self.state is HandleState.READY

    def _handle(self, operation: str) -> Any:
        """Return the native reference or fail before touching it."""
        if self.state is not HandleState.READY or self._native is None:
            raise InvalidHandleError(self.resource, operation, f'uninitialized {self.noun}')
        return self._native

    def _attach(self, native: Any) -> None:
        self._native = native
        self.state = HandleState.READY

    def _invalidate(self) -> None:
        self._native = None
        self.state = HandleState.CLOSED

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics

        Args:
            elapsed: Time in seconds that the query took to settle

        """
        self.time += elapsed
        self.calls += 1

    async def _timed(self, pending: Awaitable[Any], sql: str, args: tuple, start: float) -> Any:
        try:
            return await pending
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{sql}\nargs: {args}')
            raise
        finally:
            elapsed = time.time() - start
            self.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')

    def close(self) -> Awaitable[None]:
        """Release the native resource. The handle is Closed once this settles."""
        native = self._handle('close')
        return self._close(native)

    async def _close(self, native: Any) -> None:
        await promisify_method(type(native).close)(native)
        self._invalidate()
        logger.debug(f'{self.resource} closed: {self.calls} queries in {self.time:.2f}s '
                     f'(avg: {self.time/max(1, self.calls):.3f}s per query)')

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None,
                        exc_tb: Any | None) -> None:
        if self.state is HandleState.READY:
            await self.close()


class QueryHandle(Handle):
    """Query, registration and export operations of Database and Connection.
    """

    @dumpsql
    def all(self, sql: str, *args: Any) -> Awaitable[list[Row]]:
        """Execute a query to completion and return every row.
        """
        return _all(self._handle('all'), sql, *args)

    @dumpsql
    def exec(self, sql: str, *args: Any) -> Awaitable[None]:
        """Execute one or more SQL statements, without returning results.

        Args:
            sql: queries or statements to execute (semicolon separated)
            args: parameters if `sql` is a parameterized template
        """
        return _exec(self._handle('exec'), sql, *args)

    def each(self, sql: str, *args: Any, complete: Callable[..., Any] | None = None) -> None:
        """Execute the query and invoke the trailing callback for each row.

        Since a future can only settle once, this keeps the callback-based
        API: ``callback(None, row)`` per row, or ``callback(err, None)`` once
        on failure. `complete` receives ``(None, row_count)`` at the end.
        Callbacks run on the event loop thread.
        """
        native = self._handle('each')
        if not args or not callable(args[-1]):
            raise TypeError('each() requires a trailing callback')
        *params, callback = args
        native.each(sql, *params, relay(callback), complete=relay(complete))

    @dumpsql
    def prepare(self, sql: str, *args: Any) -> Awaitable[Statement]:
        """Prepare a statement; resolves once the engine has bound it."""
        return self._statement(_prepare(self._handle('prepare'), sql, *args))

    def prepare_sync(self, sql: str, *args: Any) -> Statement:
        """Prepare without suspending.

        Preparation is queued on the native worker. A failure surfaces on the
        statement's next operation.
        """
        return Statement(self._handle('prepare_sync').prepare(sql, *args))

    @dumpsql
    def run(self, sql: str, *args: Any) -> Awaitable[Statement]:
        """Execute for side effect; resolves to the executed statement."""
        return self._statement(_run(self._handle('run'), sql, *args))

    def run_sync(self, sql: str, *args: Any) -> Statement:
        """Queue execution without suspending and return its statement."""
        return Statement(self._handle('run_sync').run(sql, *args))

    async def _statement(self, pending: Awaitable[Any]) -> Statement:
        return Statement(await pending)

    def register_udf(self, name: str, return_type: Any, fun: Callable[..., Any],
                     parameters: list[Any] | None = None) -> None:
        """Make `fun` callable from SQL as `name`.

        Parameter types come from `parameters`, from the function's type
        annotations, or default to `return_type` for every parameter.
        """
        self._handle('register_udf').register_udf(name, return_type, fun, parameters)

    def register_bulk(self, name: str, return_type: Any, fun: Callable[..., Any],
                      parameters: list[Any] | None = None) -> None:
        """Make a vectorised `fun` (Arrow arrays in, Arrow array out) callable from SQL."""
        self._handle('register_bulk').register_bulk(name, return_type, fun, parameters)

    def unregister_udf(self, name: str) -> Awaitable[None]:
        return _unregister_udf(self._handle('unregister_udf'), name)

    def register_buffer(self, name: str, data: Any, force: bool = False) -> Awaitable[None]:
        """Expose in-memory columnar data as the relation `name`.

        Args:
            name: relation name usable in SQL
            data: Arrow IPC messages, a pyarrow Table/RecordBatch/RecordBatchReader,
                or a pandas DataFrame
            force: replace an existing registration under the same name
        """
        return _register_buffer(self._handle('register_buffer'), name, data, force)

    def unregister_buffer(self, name: str) -> Awaitable[None]:
        return _unregister_buffer(self._handle('unregister_buffer'), name)

    def stream(self, sql: str, *args: Any) -> RowStream:
        """Lazy row iterator; the query runs when iteration starts."""
        native = self._handle('stream')
        logger.debug(f'Stream SQL:\n{sql}\nargs: {args}')
        return RowStream(native.stream(sql, *args))

    @dumpsql
    def arrow_ipc_all(self, sql: str, *args: Any) -> Awaitable[list]:
        """Return the result as Arrow IPC messages: schema, batches, end marker."""
        return _arrow_ipc_all(self._handle('arrow_ipc_all'), sql, *args)

    def arrow_ipc_stream(self, sql: str, *args: Any) -> Awaitable[IpcResultStream]:
        """Resolve to an async iterator over the result's Arrow IPC messages."""
        native = self._handle('arrow_ipc_stream')
        logger.debug(f'IPC stream SQL:\n{sql}\nargs: {args}')
        return self._ipc_stream(_arrow_ipc_stream(native, sql, *args))

    async def _ipc_stream(self, pending: Awaitable[Any]) -> IpcResultStream:
        return IpcResultStream(await pending)
