"""
Native client helpers that do not need an open engine.
"""
import pandas as pd
import pyarrow as pa
import pytest
from duckdb_async.exceptions import DuckDbError
from duckdb_async.native import EOS_MARKER, NativeHandle, _as_arrow
from duckdb_async.native import _ipc_messages, _udf_parameters
from duckdb_async.stream import ipc_to_table


@pytest.fixture
def table():
    return pa.table({'id': [1, 2, 3], 'name': ['a', 'b', 'c']})


def test_ipc_messages_layout(table):
    messages = _ipc_messages(pa.RecordBatchReader.from_batches(table.schema, table.to_batches()))
    assert len(messages) == 2 + len(table.to_batches())
    assert messages[-1].to_pybytes() == EOS_MARKER
    assert ipc_to_table(messages).equals(table)


def test_as_arrow_accepts_buffer_forms(table):
    messages = _ipc_messages(pa.RecordBatchReader.from_batches(table.schema, table.to_batches()))

    assert _as_arrow(table) is table
    assert _as_arrow(table.to_batches()[0]).equals(table)
    assert _as_arrow(messages).equals(table)
    assert _as_arrow(b''.join(m.to_pybytes() for m in messages)).equals(table)
    frame = pd.DataFrame({'id': [1, 2, 3], 'name': ['a', 'b', 'c']})
    assert _as_arrow(frame).to_pydict() == table.to_pydict()


def test_as_arrow_rejects_scalars():
    with pytest.raises(TypeError, match='Cannot register int'):
        _as_arrow(42)


def test_udf_parameters_default_to_return_type():
    assert _udf_parameters(lambda a, b: a + b, 'DOUBLE', None) == ['DOUBLE', 'DOUBLE']
    assert _udf_parameters(lambda: 1, 'INTEGER', None) == []


def test_udf_parameters_explicit_and_annotated():
    def annotated(a: int, b: str) -> str:
        return b * a

    assert _udf_parameters(annotated, 'VARCHAR', None) is None
    assert _udf_parameters(annotated, 'VARCHAR', ('BIGINT', 'VARCHAR')) == ['BIGINT', 'VARCHAR']


def test_stream_is_lazy():
    handle = NativeHandle()
    result = handle.stream('select * from range(10)')
    assert result.sql == 'select * from range(10)'
    assert result._cursor is None
    handle._worker.shutdown()


def test_closed_worker_reports_native_error():
    handle = NativeHandle()
    handle._worker.shutdown()
    outcomes = []
    handle.exec('select 1', lambda err, result: outcomes.append(err))
    assert len(outcomes) == 1
    assert isinstance(outcomes[0], DuckDbError)
    assert str(outcomes[0]) == 'Handle already closed'
    assert outcomes[0].error_type == 'ConnectionException'

    with pytest.raises(DuckDbError, match='Handle already closed'):
        handle.register_udf('f', 'INTEGER', lambda x: x)


def test_closed_worker_drops_deferred_error_once():
    handle = NativeHandle()
    handle._worker.shutdown()
    stmt = handle.run('select 1')
    with pytest.raises(DuckDbError, match='already closed'):
        stmt._check()
    stmt._check()


if __name__ == '__main__':
    __import__('pytest').main([__file__])
