import logging
import pathlib
import site

import pytest

HERE = pathlib.Path(pathlib.Path(__file__).resolve()).parent
site.addsitedir(HERE)


@pytest.fixture(autouse=True)
def debug_logging(caplog):
    """Capture adapter debug logs so failing tests show the SQL that ran."""
    caplog.set_level(logging.DEBUG, logger='duckdb_async')
    yield


pytest_plugins = [
    'tests.fixtures.native',
    'tests.fixtures.memory',
]
