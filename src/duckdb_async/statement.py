"""
Async wrapper around a native prepared statement.
"""
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Self

from duckdb_async.bridge import promisify_method, relay
from duckdb_async.exceptions import InvalidHandleError
from duckdb_async.native import NativeStatement
from duckdb_async.types import Column, StatementState

__all__ = ['Statement']

logger = logging.getLogger(__name__)

_stmt_all = promisify_method(NativeStatement.all)
_stmt_run = promisify_method(NativeStatement.run)
_stmt_arrow_ipc_all = promisify_method(NativeStatement.arrow_ipc_all)
_stmt_finalize = promisify_method(NativeStatement.finalize)


class Statement:
    """A prepared (or already executed) statement.

    Created by ``prepare``/``run`` on a Database or Connection. The
    statement keeps no reference to the wrapper that created it and must be
    released with `finalize()` exactly once. Any call after that fails
    locally with `InvalidHandleError`.
    """

    resource = 'Statement'

    def __init__(self, native: NativeStatement) -> None:
        self._native: NativeStatement | None = native
        self.state = StatementState.READY

    def _handle(self, operation: str) -> NativeStatement:
        if self.state is not StatementState.READY or self._native is None:
            raise InvalidHandleError(self.resource, operation, 'finalized statement')
        return self._native

    @property
    def sql(self) -> str:
        return self._handle('sql').sql

    def all(self, *args: Any) -> Awaitable[list]:
        """Execute with `args` as parameters and return all rows."""
        return _stmt_all(self._handle('all'), *args)

    def arrow_ipc_all(self, *args: Any) -> Awaitable[list]:
        """Execute and return the result as Arrow IPC messages."""
        return _stmt_arrow_ipc_all(self._handle('arrow_ipc_all'), *args)

    def each(self, *args: Any, complete: Callable[..., Any] | None = None) -> None:
        """Execute and call the trailing ``callback(err, row)`` once per row.

        A future can only settle once, so this keeps the callback contract.
        Callbacks run on the event loop thread; `complete` receives the row
        count after the last row.
        """
        native = self._handle('each')
        if not args or not callable(args[-1]):
            raise TypeError('each() requires a trailing callback')
        *params, callback = args
        native.each(*params, relay(callback), complete=relay(complete))

    def run_sync(self, *args: Any) -> Self:
        """Queue execution without waiting and return the statement.

        A failure is kept and raised by the statement's next operation.
        """
        self._handle('run_sync').run(*args)
        return self

    def run(self, *args: Any) -> Awaitable[Self]:
        """Execute for side effect; resolves to the statement itself."""
        return self._run(_stmt_run(self._handle('run'), *args))

    async def _run(self, pending: Awaitable[Any]) -> Self:
        await pending
        return self

    def finalize(self) -> Awaitable[None]:
        """Release the native statement.

        The statement is unusable from this call on, even before the
        returned awaitable settles.
        """
        native = self._handle('finalize')
        self.state = StatementState.FINALIZED
        self._native = None
        logger.debug(f'Finalizing statement:\n{native.sql}')
        return _stmt_finalize(native)

    def columns(self) -> list[Column] | None:
        """Result columns, or ``None`` when they are not known.

        Resolved at prepare time when the query can be bound without
        parameters. A parameterised query prepared without its parameters
        reports ``None`` until its first execution, since the engine cannot
        bind the projection before then. Statements without a result set
        always report ``None``.
        """
        return self._handle('columns').columns()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None,
                        exc_tb: Any | None) -> None:
        if self.state is StatementState.READY:
            await self.finalize()
