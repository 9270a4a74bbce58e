import duckdb
from duckdb_async.exceptions import INVALID_HANDLE_CODE, NATIVE_ERROR_CODE
from duckdb_async.exceptions import OPTIONS_ERROR_CODE, DatabaseError, DuckDbError
from duckdb_async.exceptions import InvalidHandleError, OptionsError
from duckdb_async.exceptions import wrap_native_error


def test_error_codes_name_their_origin():
    assert DatabaseError('x').code is None
    assert DuckDbError('x').code == NATIVE_ERROR_CODE
    assert InvalidHandleError('Database', 'all', 'uninitialized database').code == INVALID_HANDLE_CODE
    assert OptionsError('x').code == OPTIONS_ERROR_CODE


def test_subclass_without_code_is_not_native():
    class CustomError(DatabaseError):
        pass

    assert CustomError('x').code != NATIVE_ERROR_CODE


def test_wrap_native_error():
    original = duckdb.CatalogException('Table with name t does not exist!')
    wrapped = wrap_native_error(original)
    assert isinstance(wrapped, DuckDbError)
    assert wrapped.error_type == 'CatalogException'
    assert wrapped.__cause__ is original
    assert str(wrapped) == 'Table with name t does not exist!'

    already = DuckDbError('x')
    assert wrap_native_error(already) is already


if __name__ == '__main__':
    __import__('pytest').main([__file__])
