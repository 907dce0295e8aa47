"""Classification of coordination-store paths.

Services are laid out under a configurable root::

    <root>/<service>/services/<node>

Depth is counted on ``path.split("/")`` with the root collapsed into a
single segment, so for root ``/services`` the service node
``/services/checkout`` has depth 3 and the instance node
``/services/checkout/services/host1`` has depth 5 regardless of how many
segments the root itself spans.
"""

from __future__ import annotations

from enum import Enum, auto

SEPARATOR = "/"
NODES_SEGMENT = "services"

ROOT_PATH_DEPTH = 2
SERVICE_PATH_DEPTH = 3
SERVICE_NODES_PATH_DEPTH = 4
SERVICE_NODE_PATH_DEPTH = 5


class PathKind(Enum):
    root = auto()
    service = auto()
    service_nodes = auto()
    instance = auto()
    unrecognized = auto()


def normalize_root(root: str) -> str:
    """Strip trailing separators; ``"/"`` becomes ``""``.

    >>> normalize_root("/services/")
    '/services'
    >>> normalize_root("/")
    ''
    """
    return root.rstrip(SEPARATOR)


def _segments(path: str, root: str) -> list[str] | None:
    root = normalize_root(root)
    if path == root or (not root and path == SEPARATOR):
        relative = ""
    elif path.startswith(root + SEPARATOR):
        relative = path[len(root):]
    else:
        return None
    segments = ["", root] + relative.split(SEPARATOR)[1:]
    if any(not s for s in segments[2:]):
        return None
    return segments


def classify(path: str, root: str) -> PathKind:
    """Return the structural role of *path* under *root*.

    Examples
    --------
    >>> classify("/services/checkout/services/host1", "/services")
    <PathKind.instance: 4>
    >>> classify("/elsewhere/checkout", "/services")
    <PathKind.unrecognized: 5>
    """
    segments = _segments(path, root)
    if segments is None:
        return PathKind.unrecognized
    n = len(segments)
    if n == ROOT_PATH_DEPTH:
        return PathKind.root
    if n == SERVICE_PATH_DEPTH:
        return PathKind.service
    if segments[3] != NODES_SEGMENT:
        return PathKind.unrecognized
    if n == SERVICE_NODES_PATH_DEPTH:
        return PathKind.service_nodes
    if n == SERVICE_NODE_PATH_DEPTH:
        return PathKind.instance
    return PathKind.unrecognized


def service_name(path: str, root: str) -> str | None:
    """Service segment of *path*, ``None`` for paths above service level."""
    segments = _segments(path, root)
    if segments is None or len(segments) < SERVICE_PATH_DEPTH:
        return None
    return segments[2]


def node_name(path: str) -> str:
    """Last segment of *path*."""
    return path.rstrip(SEPARATOR).rsplit(SEPARATOR, 1)[-1]


def services_path(root: str, service: str) -> str:
    return f"{normalize_root(root)}/{service}/{NODES_SEGMENT}"


def instance_path(root: str, service: str, node: str) -> str:
    return f"{services_path(root, service)}/{node}"


def root_path(root: str) -> str:
    """Path to list services under; the bare root ``""`` lists ``/``."""
    return normalize_root(root) or SEPARATOR
