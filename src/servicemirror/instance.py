"""Instance payload parsing.

Each instance znode holds a small key-value document describing one
endpoint of a service::

    {"host": "10.0.0.1", "port": 8080, "name": "checkout", "weight": 2}

``parse_instance`` turns the raw bytes into an ``InstanceConfig`` or raises
``ParseError``; nothing partially parsed ever reaches the registry.
"""

from __future__ import annotations

import importlib
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

__all__ = ["InstanceConfig", "ParseError", "PayloadFormat", "check_format", "parse_instance"]

type PayloadFormat = Literal["json", "msgpack"]


class ParseError(ValueError):
    """Raised when an instance payload is malformed or incomplete.

    Parameters
    ----------
    reason : str
        Human-readable description of what is wrong with the payload.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class InstanceConfig:
    """One running endpoint of a service.

    Parameters
    ----------
    host : str
        Hostname or address the instance listens on.
    port : int
        Port the instance listens on.
    name : str
        Optional display name published by the instance.
    weight : int | None
        Selection weight; ``None`` means the instance is unweighted.

    Examples
    --------
    >>> InstanceConfig(host="10.0.0.1", port=8080, weight=2)
    InstanceConfig(host='10.0.0.1', port=8080, name='', weight=2)
    """

    host: str
    port: int
    name: str = ""
    weight: int | None = None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


def _msgpack() -> Any:
    try:
        return importlib.import_module("msgpack")
    except ModuleNotFoundError:
        msg = "'msgpack' is required. Install with: pip install servicemirror[msgpack]"
        raise ModuleNotFoundError(msg) from None


def check_format(format: PayloadFormat) -> None:
    """Fail early when *format* is unknown or its decoder is not installed.

    Raises
    ------
    ValueError
        For an unknown format.
    ModuleNotFoundError
        When ``"msgpack"`` is requested without the ``msgpack`` extra.
    """
    match format:
        case "json":
            return
        case "msgpack":
            _msgpack()
        case _:
            raise ValueError(f"Unknown payload format {format!r}")


def _decode(payload: bytes, format: PayloadFormat) -> Any:
    # deeply nested documents exhaust the decoder's recursion limit;
    # over-long integer literals raise a plain ValueError
    match format:
        case "json":
            try:
                return json.loads(payload)
            except (ValueError, RecursionError) as exc:
                raise ParseError(f"invalid json document: {exc}") from None
        case "msgpack":
            msgpack = _msgpack()
            try:
                return msgpack.unpackb(payload, raw=False)
            except (ValueError, RecursionError, msgpack.UnpackException) as exc:
                raise ParseError(f"invalid msgpack document: {exc}") from None
        case _:
            raise ParseError(f"unsupported payload format {format!r}")


def _integer(value: Any, key: str) -> int:
    # bool is an int subclass
    match value:
        case bool():
            raise ParseError(f"{key!r} must be an integer, got a boolean")
        case int():
            return value
        case float() if value.is_integer():
            return int(value)
        case str() if value.isascii() and value.isdigit():
            try:
                return int(value)
            except ValueError:
                raise ParseError(f"{key!r} has too many digits") from None
        case _:
            raise ParseError(f"{key!r} must be an integer, got {value!r}")


def parse_instance(payload: bytes | None, *, format: PayloadFormat = "json") -> InstanceConfig:
    """Parse and validate an instance payload.

    Parameters
    ----------
    payload : bytes | None
        Raw znode data. ``None`` or empty data is rejected.
    format : PayloadFormat
        ``"json"`` (default) or ``"msgpack"``.

    Returns
    -------
    InstanceConfig

    Raises
    ------
    ParseError
        When the document cannot be decoded, is not a mapping, misses
        ``host``/``port``, or carries a value of the wrong type.

    Examples
    --------
    >>> parse_instance(b'{"host": "10.0.0.2", "port": "8080"}')
    InstanceConfig(host='10.0.0.2', port=8080, name='', weight=None)
    >>> parse_instance(b'{"host": "10.0.0.2"}')
    Traceback (most recent call last):
    ...
    servicemirror.instance.ParseError: missing required key 'port'
    """
    if not payload:
        raise ParseError("empty payload")

    document = _decode(payload, format)
    if not isinstance(document, Mapping):
        raise ParseError(f"expected a key-value document, got {type(document).__name__}")

    for key in ("host", "port"):
        if document.get(key) is None:
            raise ParseError(f"missing required key {key!r}")

    host = document["host"]
    if not isinstance(host, str) or not host:
        raise ParseError(f"'host' must be a non-empty string, got {host!r}")

    port = _integer(document["port"], "port")

    name = document.get("name")
    if name is None:
        name = ""
    elif not isinstance(name, str):
        raise ParseError(f"'name' must be a string, got {name!r}")

    weight = document.get("weight")
    if weight is not None:
        weight = _integer(weight, "weight")
        if weight < 0:
            raise ParseError(f"'weight' must not be negative, got {weight}")

    return InstanceConfig(host=host, port=port, name=name, weight=weight)
