"""
Open modes and engine configuration.

`Database.create()` accepts either a flag-style `OpenMode`, a mapping of
engine settings, or a `DatabaseOptions`. All three normalise into the plain
configuration mapping handed to the engine, always tagged with the adapter's
user agent.
"""
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import IntFlag
from typing import Any

from duckdb_async.exceptions import OptionsError

from libb import ConfigOptions

__all__ = [
    'OpenMode',
    'OPEN_READONLY',
    'OPEN_READWRITE',
    'OPEN_CREATE',
    'OPEN_FULLMUTEX',
    'OPEN_SHAREDCACHE',
    'OPEN_PRIVATECACHE',
    'USER_AGENT_TAG',
    'DatabaseOptions',
    'normalize_access_mode',
]

USER_AGENT_TAG = 'duckdb-async'
ACCESS_MODES = ('automatic', 'read_only', 'read_write')


class OpenMode(IntFlag):
    """sqlite3-style open flags. Only the read-only bit changes behavior."""
    READONLY = 0x1
    READWRITE = 0x2
    CREATE = 0x4
    FULLMUTEX = 0x10000
    SHAREDCACHE = 0x20000
    PRIVATECACHE = 0x40000


OPEN_READONLY = OpenMode.READONLY
OPEN_READWRITE = OpenMode.READWRITE
OPEN_CREATE = OpenMode.CREATE
OPEN_FULLMUTEX = OpenMode.FULLMUTEX
OPEN_SHAREDCACHE = OpenMode.SHAREDCACHE
OPEN_PRIVATECACHE = OpenMode.PRIVATECACHE


def _tag_user_agent(config: dict[str, Any]) -> dict[str, Any]:
    """Append the adapter tag to ``custom_user_agent``."""
    agent = config.get('custom_user_agent')
    if not agent:
        config['custom_user_agent'] = USER_AGENT_TAG
    elif USER_AGENT_TAG not in str(agent).split():
        config['custom_user_agent'] = f'{agent} {USER_AGENT_TAG}'
    return config


@dataclass
class DatabaseOptions(ConfigOptions):
    """Options

    - path: database file, or ``:memory:`` (default)
    - access_mode: ``automatic``, ``read_only`` or ``read_write`` (default)
    - max_memory: engine memory ceiling, e.g. ``'512MB'``
    - threads: engine worker threads
    - config: any further engine settings, passed through untouched
    """
    path: str = ':memory:'
    access_mode: str = 'read_write'
    max_memory: str | None = None
    threads: int | None = None
    config: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.path = self.path or ':memory:'
        self.access_mode = str(self.access_mode or 'read_write').lower()
        if self.access_mode not in ACCESS_MODES:
            raise OptionsError(f'access_mode must be one of: {ACCESS_MODES}')
        if self.threads is not None and int(self.threads) <= 0:
            raise OptionsError(f'threads must be positive, got {self.threads}')

    def to_config(self) -> dict[str, Any]:
        """Engine configuration mapping, including the user agent tag.
        """
        config = dict(self.config or {})
        config['access_mode'] = self.access_mode
        if self.max_memory is not None:
            config['max_memory'] = str(self.max_memory)
        if self.threads is not None:
            config['threads'] = int(self.threads)
        return _tag_user_agent(config)


def normalize_access_mode(access_mode: Any = None) -> dict[str, Any]:
    """Normalise any accepted access mode form into an engine config mapping.

    Flag values only decide between read-only and read/write. Mappings are
    copied, never modified in place.

    >>> normalize_access_mode(OPEN_READONLY)['access_mode']
    'read_only'
    >>> normalize_access_mode(OPEN_READWRITE | OPEN_CREATE)['access_mode']
    'read_write'
    >>> normalize_access_mode({'threads': '4'})['custom_user_agent']
    'duckdb-async'
    """
    if access_mode is None:
        access_mode = OPEN_READWRITE
    if isinstance(access_mode, DatabaseOptions):
        return access_mode.to_config()
    if isinstance(access_mode, bool):
        raise OptionsError(f'Unsupported access mode: {access_mode!r}')
    if isinstance(access_mode, int):
        mode = 'read_only' if access_mode & OPEN_READONLY else 'read_write'
        return _tag_user_agent({'access_mode': mode})
    if isinstance(access_mode, Mapping):
        return _tag_user_agent(dict(access_mode))
    raise OptionsError(f'Unsupported access mode: {access_mode!r}')
