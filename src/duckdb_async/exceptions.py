"""
Exception classes for the async DuckDB adapter.

Two error origins are kept apart:
- `InvalidHandleError`: the adapter refused an operation on a handle that is
  not ready (never opened, closed, or finalized). Raised synchronously,
  before the engine is touched.
- `DuckDbError`: the engine reported a failure. Delivered through the
  awaitable of the operation that caused it.
"""
import duckdb

NATIVE_ERROR_CODE = 'DUCKDB_PYTHON_ERROR'
INVALID_HANDLE_CODE = 'DUCKDB_ASYNC_INVALID_HANDLE'
OPTIONS_ERROR_CODE = 'DUCKDB_ASYNC_INVALID_OPTIONS'


class DatabaseError(Exception):
    """Base class for all duckdb_async errors.

    Subclasses set `code` to name the error origin.
    """
    code: str | None = None


class DuckDbError(DatabaseError):
    """Failure reported by the DuckDB engine.

    Args:
        message: The engine's message, unmodified
        error_type: Engine error class name, e.g. ``CatalogException``
    """

    code = NATIVE_ERROR_CODE

    def __init__(self, message: str, error_type: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type


class InvalidHandleError(DatabaseError):
    """Operation attempted on a handle that is not ready.
    """

    code = INVALID_HANDLE_CODE

    def __init__(self, resource: str, operation: str, reason: str) -> None:
        super().__init__(f'{resource}.{operation}: {reason}')
        self.resource = resource
        self.operation = operation


class OptionsError(DatabaseError, ValueError):
    """Invalid open mode or engine configuration.
    """

    code = OPTIONS_ERROR_CODE


def wrap_native_error(err: BaseException) -> DatabaseError:
    """Convert an error raised by the duckdb package into a `DuckDbError`.

    Errors that already belong to this package pass through untouched.
    The original exception is kept as ``__cause__``.
    """
    if isinstance(err, DatabaseError):
        return err
    wrapped = DuckDbError(str(err), type(err).__name__)
    wrapped.__cause__ = err
    return wrapped


NativeError = (
    duckdb.Error,
    DuckDbError,
    )
