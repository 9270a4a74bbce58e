import pytest
from duckdb_async import DuckDbError, RowStream
from duckdb_async.native import STREAM_CHUNK_SIZE


@pytest.mark.parametrize('count', [0, 1, 5000, STREAM_CHUNK_SIZE * 2])
async def test_stream_yields_every_row(mem_db, count):
    stream = mem_db.stream(f'select range as i from range({count}) order by i')
    assert isinstance(stream, RowStream)
    rows = [row async for row in stream]
    assert len(rows) == count
    assert stream.count == count
    assert [int(row['i']) for row in rows] == list(range(count))


async def test_stream_runs_only_when_iterated(mem_db):
    stream = mem_db.stream('select name from test_table order by id')
    await mem_db.exec("insert into test_table values (4, 'Dan', 40)")
    names = [row.name async for row in stream]
    assert names == ['Alice', 'Bob', 'Charlie', 'Dan']


async def test_stream_with_parameters(mem_db):
    stream = mem_db.stream('select name from test_table where value > ? order by id', 10)
    assert [row.name async for row in stream] == ['Bob', 'Charlie']


async def test_stream_error_surfaces_on_iteration(mem_db):
    stream = mem_db.stream('select * from missing_table')
    with pytest.raises(DuckDbError, match='does not exist'):
        await anext(stream)


async def test_stream_early_close(mem_db):
    async with mem_db.stream('select range as i from range(10000) order by i') as stream:
        async for row in stream:
            if row['i'] >= 9:
                break
    assert stream.count == 10
    assert [row async for row in stream] == []


async def test_stream_alongside_queries(mem_db):
    stream = mem_db.stream('select range as i from range(3) order by i')
    first = await anext(stream)
    assert await mem_db.all('select count(*) as n from test_table') == [{'n': 3}]
    rest = [row async for row in stream]
    assert [int(row['i']) for row in [first, *rest]] == [0, 1, 2]


async def test_stream_after_database_close(mem_db):
    stream = mem_db.stream('select name from test_table')
    await mem_db.close()
    with pytest.raises(DuckDbError, match='Database already closed') as exc:
        await anext(stream)
    assert exc.value.error_type == 'ConnectionException'
    await stream.aclose()


async def test_ipc_stream_after_connection_close(mem_conn):
    stream = await mem_conn.arrow_ipc_stream('select id from test_table')
    await mem_conn.close()
    with pytest.raises(DuckDbError, match='Connection already closed'):
        await anext(stream)
    await stream.aclose()


async def test_connection_stream(mem_conn):
    rows = [row async for row in mem_conn.stream('select id from test_table order by id')]
    assert [row.id for row in rows] == [1, 2, 3]


if __name__ == '__main__':
    __import__('pytest').main([__file__])
