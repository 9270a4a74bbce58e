from types import MappingProxyType

import pytest
from duckdb_async.exceptions import OptionsError
from duckdb_async.options import OPEN_CREATE, OPEN_FULLMUTEX, OPEN_READONLY
from duckdb_async.options import OPEN_READWRITE, USER_AGENT_TAG, DatabaseOptions
from duckdb_async.options import normalize_access_mode


def test_default_is_read_write():
    assert normalize_access_mode() == {
        'access_mode': 'read_write',
        'custom_user_agent': USER_AGENT_TAG,
    }


@pytest.mark.parametrize(('flags', 'expected'), [
    (OPEN_READONLY, 'read_only'),
    (OPEN_READONLY | OPEN_FULLMUTEX, 'read_only'),
    (OPEN_READWRITE, 'read_write'),
    (OPEN_READWRITE | OPEN_CREATE, 'read_write'),
    (OPEN_CREATE, 'read_write'),
    (0, 'read_write'),
])
def test_flags_map_to_access_mode(flags, expected):
    assert normalize_access_mode(flags)['access_mode'] == expected


def test_mapping_is_copied_and_tagged():
    settings = {'access_mode': 'read_only', 'threads': 2}
    config = normalize_access_mode(settings)
    assert config == {
        'access_mode': 'read_only',
        'threads': 2,
        'custom_user_agent': USER_AGENT_TAG,
    }
    assert settings == {'access_mode': 'read_only', 'threads': 2}


def test_existing_user_agent_is_extended():
    config = normalize_access_mode({'custom_user_agent': 'reporting'})
    assert config['custom_user_agent'] == f'reporting {USER_AGENT_TAG}'

    again = normalize_access_mode(config)
    assert again['custom_user_agent'] == f'reporting {USER_AGENT_TAG}'


def test_read_only_mapping_is_accepted():
    settings = MappingProxyType({'access_mode': 'read_only'})
    config = normalize_access_mode(settings)
    assert config == {
        'access_mode': 'read_only',
        'custom_user_agent': USER_AGENT_TAG,
    }
    assert dict(settings) == {'access_mode': 'read_only'}


@pytest.mark.parametrize('mode', [True, 'read_only', 1.5, ['read_only']])
def test_unsupported_access_mode(mode):
    with pytest.raises(OptionsError):
        normalize_access_mode(mode)


def test_options_defaults():
    options = DatabaseOptions()
    assert options.path == ':memory:'
    assert options.access_mode == 'read_write'
    assert options.to_config() == {
        'access_mode': 'read_write',
        'custom_user_agent': USER_AGENT_TAG,
    }


def test_options_to_config():
    options = DatabaseOptions(
        path='analytics.duckdb',
        access_mode='READ_ONLY',
        max_memory='512MB',
        threads=4,
        config={'default_order': 'desc'},
    )
    assert normalize_access_mode(options) == {
        'default_order': 'desc',
        'access_mode': 'read_only',
        'max_memory': '512MB',
        'threads': 4,
        'custom_user_agent': USER_AGENT_TAG,
    }
    assert options.config == {'default_order': 'desc'}


def test_options_validation():
    with pytest.raises(ValueError):
        DatabaseOptions(access_mode='sometimes')
    with pytest.raises(OptionsError):
        DatabaseOptions(threads=0)


if __name__ == '__main__':
    __import__('pytest').main([__file__])
