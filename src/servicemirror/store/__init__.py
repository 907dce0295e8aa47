from servicemirror.store.base import CoordinationStore, ResultCode, StoreListener
from servicemirror.store.memory import InMemoryStore
from servicemirror.store.zookeeper import ZooKeeperStore

__all__ = [
    "CoordinationStore",
    "InMemoryStore",
    "ResultCode",
    "StoreListener",
    "ZooKeeperStore",
]
