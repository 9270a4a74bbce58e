"""
Lazy result streams.

- `RowStream`: rows of a query, fetched chunk by chunk as the caller iterates
- `IpcResultStream`: Arrow IPC messages of a query, one message at a time
"""
import logging
from collections import deque
from collections.abc import Iterable
from typing import Any, Self

import pyarrow as pa
from duckdb_async.bridge import promisify_method
from duckdb_async.native import NativeIpcResult, NativeQueryResult
from duckdb_async.types import Row

__all__ = ['RowStream', 'IpcResultStream', 'ipc_to_table']

logger = logging.getLogger(__name__)

_next_chunk = promisify_method(NativeQueryResult.next_chunk)
_close_rows = promisify_method(NativeQueryResult.close)
_next_message = promisify_method(NativeIpcResult.next_message)
_close_ipc = promisify_method(NativeIpcResult.close)


def ipc_to_table(messages: Iterable[Any]) -> pa.Table:
    """Decode a sequence of Arrow IPC messages into a table.

    Parameters
        messages: Output of ``arrow_ipc_all`` or the items of an `IpcResultStream`

    Returns
        pyarrow Table with every record batch in the stream
    """
    payload = b''.join(m.to_pybytes() if isinstance(m, pa.Buffer) else bytes(m) for m in messages)
    return pa.ipc.open_stream(payload).read_all()


class RowStream:
    """Async iterator over the rows of a query.

    Nothing executes until the first row is requested. The stream can be
    drained once; issue a new ``stream()`` call to read the rows again.
    """

    def __init__(self, native: NativeQueryResult) -> None:
        self._native = native
        self._rows: deque[Row] = deque()
        self._exhausted = False
        self.count = 0

    @property
    def sql(self) -> str:
        return self._native.sql

    def __aiter__(self) -> Self:
        return self

    async def __anext__(self) -> Row:
        while not self._rows:
            if self._exhausted:
                raise StopAsyncIteration
            chunk = await _next_chunk(self._native)
            if not chunk:
                self._exhausted = True
                logger.debug(f'Stream exhausted after {self.count} rows')
            self._rows.extend(chunk)
        self.count += 1
        return self._rows.popleft()

    async def aclose(self) -> None:
        """Stop early and release the cursor."""
        if self._exhausted:
            return
        self._exhausted = True
        self._rows.clear()
        await _close_rows(self._native)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None,
                        exc_tb: Any | None) -> None:
        await self.aclose()


class IpcResultStream:
    """Async iterator over the Arrow IPC messages of a query.

    Yields the schema message, one message per record batch, then the
    end-of-stream marker.
    """

    def __init__(self, native: NativeIpcResult) -> None:
        self._native = native
        self._exhausted = False

    @property
    def schema(self) -> pa.Schema:
        return self._native.schema

    def __aiter__(self) -> Self:
        return self

    async def __anext__(self) -> pa.Buffer:
        if self._exhausted:
            raise StopAsyncIteration
        message = await _next_message(self._native)
        if message is None:
            self._exhausted = True
            raise StopAsyncIteration
        return message

    async def read_all(self) -> pa.Table:
        """Drain the stream into a table. Call before consuming any message."""
        return ipc_to_table([message async for message in self])

    async def aclose(self) -> None:
        if self._exhausted:
            return
        self._exhausted = True
        await _close_ipc(self._native)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None,
                        exc_tb: Any | None) -> None:
        await self.aclose()
