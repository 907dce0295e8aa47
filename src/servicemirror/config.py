"""TOML-based configuration for the service mirror.

Provides ``load_config`` / ``discover_config`` for loading
``servicemirror.toml`` into frozen dataclasses::

    [store]
    servers = "zk1:2181,zk2:2181"
    session_timeout = 60.0
    root = "/services"

    [sync]
    payload_format = "json"
    purge_on_resync = false
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, get_args

from servicemirror.instance import PayloadFormat, check_format
from servicemirror.paths import normalize_root

__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "MirrorConfig",
    "StoreConfig",
    "SyncConfig",
    "discover_config",
    "load_config",
    "parse_servers",
]

CONFIG_FILENAME = "servicemirror.toml"


class ConfigError(ValueError):
    """Raised when a configuration value is present but invalid."""


def parse_servers(raw: str) -> tuple[tuple[str, int], ...]:
    """Split a ``host:port,host:port`` list.

    Examples
    --------
    >>> parse_servers("zk1:2181, zk2:2182")
    (('zk1', 2181), ('zk2', 2182))
    """
    servers: list[tuple[str, int]] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        host, sep, port = item.rpartition(":")
        if not sep or not host or not port.isdigit():
            msg = f"Invalid server address {item!r}, expected host:port"
            raise ConfigError(msg)
        servers.append((host, int(port)))
    if not servers:
        msg = "At least one server is required"
        raise ConfigError(msg)
    return tuple(servers)


@dataclass(frozen=True)
class StoreConfig:
    """Where the coordination store lives.

    Parameters
    ----------
    servers : str
        Comma-separated ``host:port`` list. The default points nowhere and
        only keeps the mirror in ``connecting``.
    session_timeout : float
        Requested session timeout in seconds.
    root : str
        Path under which services are published.

    Examples
    --------
    >>> StoreConfig(servers="zk1:2181", root="/nerve/services")
    StoreConfig(servers='zk1:2181', session_timeout=60.0, root='/nerve/services')
    """

    servers: str = "notexists:2181"
    session_timeout: float = 60.0
    root: str = "/services"

    def __post_init__(self) -> None:
        parse_servers(self.servers)
        if self.session_timeout <= 0:
            msg = f"session_timeout must be positive, got {self.session_timeout}"
            raise ConfigError(msg)
        if self.root and not self.root.startswith("/"):
            msg = f"root must be an absolute path, got {self.root!r}"
            raise ConfigError(msg)
        object.__setattr__(self, "root", normalize_root(self.root))


@dataclass(frozen=True)
class SyncConfig:
    """How the sync actor interprets the tree.

    Parameters
    ----------
    payload_format : PayloadFormat
        Encoding of instance payloads, ``"json"`` or ``"msgpack"``.
    purge_on_resync : bool
        Drop cached instances missing from a fresh listing. Off by default:
        stale entries then survive until their deletion event arrives.
    """

    payload_format: PayloadFormat = "json"
    purge_on_resync: bool = False

    def __post_init__(self) -> None:
        if self.payload_format not in get_args(PayloadFormat.__value__):
            msg = f"Unknown payload_format {self.payload_format!r}"
            raise ConfigError(msg)
        try:
            check_format(self.payload_format)
        except ModuleNotFoundError as exc:
            raise ConfigError(str(exc)) from None


@dataclass(frozen=True)
class MirrorConfig:
    """Top-level configuration container.

    Examples
    --------
    >>> config = MirrorConfig()
    >>> config.store.root
    '/services'
    >>> config = load_config(Path("servicemirror.toml"))
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)


def discover_config(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for ``servicemirror.toml``."""
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def _section(raw: dict[str, Any], name: str, cls: type) -> Any:
    values = raw.get(name, {})
    if not isinstance(values, dict):
        msg = f"[{name}] must be a table"
        raise ConfigError(msg)
    try:
        return cls(**values)
    except TypeError as exc:
        msg = f"Invalid [{name}] section: {exc}"
        raise ConfigError(msg) from None


def load_config(path: Path | None = None) -> MirrorConfig:
    """Load a ``MirrorConfig`` from a TOML file.

    If *path* is ``None``, auto-discovers ``servicemirror.toml`` by walking
    up from the current working directory and returns defaults if none is
    found.

    Raises
    ------
    FileNotFoundError
        If an explicit *path* does not exist.
    ConfigError
        If the file is not valid TOML or holds invalid values.
    """
    if path is None:
        discovered = discover_config()
        if discovered is None:
            return MirrorConfig()
        path = discovered

    if not path.exists():
        msg = f"Config file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open("rb") as f:
        try:
            raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            msg = f"Invalid TOML in {path}: {exc}"
            raise ConfigError(msg) from None

    return MirrorConfig(
        store=_section(raw, "store", StoreConfig),
        sync=_section(raw, "sync", SyncConfig),
    )
