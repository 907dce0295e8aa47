from servicemirror.config import (
    ConfigError,
    MirrorConfig,
    StoreConfig,
    SyncConfig,
    discover_config,
    load_config,
)
from servicemirror.core import ActorCell, ActorRef, Behavior, Behaviors, ask
from servicemirror.instance import InstanceConfig, ParseError, parse_instance
from servicemirror.messages import (
    AwaitConnected,
    ChildrenChanged,
    Connected,
    ConnectionState,
    DataChanged,
    Expired,
    GetStatus,
    NodeCreated,
    NodeDeleted,
    Reconnecting,
    StoreEvent,
    SyncMsg,
    SyncStatus,
)
from servicemirror.mirror import ServiceMirror
from servicemirror.paths import PathKind, classify, node_name, service_name
from servicemirror.registry import ServiceRegistry
from servicemirror.selector import pick, select
from servicemirror.store import (
    CoordinationStore,
    InMemoryStore,
    ResultCode,
    ZooKeeperStore,
)
from servicemirror.sync import sync_actor

__all__ = [
    # Facade
    "ServiceMirror",
    # Registry and selection
    "InstanceConfig",
    "ParseError",
    "ServiceRegistry",
    "parse_instance",
    "pick",
    "select",
    # Paths
    "PathKind",
    "classify",
    "node_name",
    "service_name",
    # Sync actor
    "AwaitConnected",
    "ChildrenChanged",
    "Connected",
    "ConnectionState",
    "DataChanged",
    "Expired",
    "GetStatus",
    "NodeCreated",
    "NodeDeleted",
    "Reconnecting",
    "StoreEvent",
    "SyncMsg",
    "SyncStatus",
    "sync_actor",
    # Stores
    "CoordinationStore",
    "InMemoryStore",
    "ResultCode",
    "ZooKeeperStore",
    # Config
    "ConfigError",
    "MirrorConfig",
    "StoreConfig",
    "SyncConfig",
    "discover_config",
    "load_config",
    # Runtime
    "ActorCell",
    "ActorRef",
    "Behavior",
    "Behaviors",
    "ask",
]
