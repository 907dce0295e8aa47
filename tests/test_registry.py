from __future__ import annotations

import threading

import pytest

from servicemirror.instance import InstanceConfig
from servicemirror.registry import ServiceRegistry

HOST1 = InstanceConfig("10.0.0.1", 8080, weight=2)
HOST2 = InstanceConfig("10.0.0.2", 8080, weight=1)


def test_unknown_service_is_none() -> None:
    registry = ServiceRegistry()
    assert registry.get("checkout") is None
    assert "checkout" not in registry
    assert len(registry) == 0


def test_upsert_and_get() -> None:
    registry = ServiceRegistry()
    registry.upsert("checkout", "host1", HOST1)
    registry.upsert("checkout", "host2", HOST2)

    instances = registry.get("checkout")
    assert instances is not None
    assert dict(instances) == {"host1": HOST1, "host2": HOST2}
    assert registry.services() == frozenset({"checkout"})


def test_upsert_replaces_existing_entry() -> None:
    registry = ServiceRegistry()
    registry.upsert("checkout", "host1", HOST1)
    registry.upsert("checkout", "host1", HOST2)
    assert registry.get("checkout") == {"host1": HOST2}


def test_ensure_service_keeps_existing_instances() -> None:
    registry = ServiceRegistry()
    registry.ensure_service("billing")
    assert registry.get("billing") == {}

    registry.upsert("checkout", "host1", HOST1)
    registry.ensure_service("checkout")
    assert registry.get("checkout") == {"host1": HOST1}


def test_remove() -> None:
    registry = ServiceRegistry()
    registry.upsert("checkout", "host1", HOST1)
    registry.upsert("checkout", "host2", HOST2)

    assert registry.remove("checkout", "host1") is True
    assert registry.get("checkout") == {"host2": HOST2}
    assert registry.remove("checkout", "host1") is False
    assert registry.remove("billing", "host1") is False
    assert "billing" not in registry


def test_removing_last_instance_keeps_service() -> None:
    registry = ServiceRegistry()
    registry.upsert("checkout", "host1", HOST1)
    registry.remove("checkout", "host1")
    assert registry.get("checkout") == {}


def test_retain_returns_dropped_names() -> None:
    registry = ServiceRegistry()
    registry.upsert("checkout", "host1", HOST1)
    registry.upsert("checkout", "host2", HOST2)

    assert registry.retain("checkout", ["host2", "host3"]) == frozenset({"host1"})
    assert registry.get("checkout") == {"host2": HOST2}
    assert registry.retain("checkout", ["host2"]) == frozenset()
    assert registry.retain("billing", []) == frozenset()


def test_replace_and_drop_service() -> None:
    registry = ServiceRegistry()
    registry.upsert("checkout", "host1", HOST1)
    registry.replace_service("checkout", {"host2": HOST2})
    assert registry.get("checkout") == {"host2": HOST2}

    assert registry.drop_service("checkout") is True
    assert registry.drop_service("checkout") is False
    assert len(registry) == 0


def test_clear() -> None:
    registry = ServiceRegistry()
    registry.upsert("checkout", "host1", HOST1)
    registry.upsert("billing", "host2", HOST2)
    registry.clear()
    assert registry.get_all() == {}


def test_snapshots_are_read_only() -> None:
    registry = ServiceRegistry()
    registry.upsert("checkout", "host1", HOST1)
    with pytest.raises(TypeError):
        registry.get_all()["billing"] = {}  # type: ignore[index]
    with pytest.raises(TypeError):
        registry.get("checkout")["host2"] = HOST2  # type: ignore[index]


def test_snapshot_does_not_change_after_mutation() -> None:
    registry = ServiceRegistry()
    registry.upsert("checkout", "host1", HOST1)
    before = registry.get_all()
    instances_before = registry.get("checkout")

    registry.upsert("checkout", "host2", HOST2)
    registry.upsert("billing", "host3", HOST1)

    assert set(before) == {"checkout"}
    assert instances_before == {"host1": HOST1}
    assert set(registry.get_all()) == {"checkout", "billing"}


def test_readers_on_other_threads_see_whole_updates() -> None:
    registry = ServiceRegistry()
    torn: list[int] = []
    done = threading.Event()

    def reader() -> None:
        while not done.is_set():
            instances = registry.get("checkout")
            if instances is None:
                continue
            # every write replaces host1 and host2 together
            ports = {config.port for config in instances.values()}
            if len(ports) > 1:
                torn.append(len(ports))

    thread = threading.Thread(target=reader)
    thread.start()
    try:
        for port in range(1000, 3000):
            registry.replace_service(
                "checkout",
                {
                    "host1": InstanceConfig("10.0.0.1", port),
                    "host2": InstanceConfig("10.0.0.2", port),
                },
            )
    finally:
        done.set()
        thread.join()

    assert torn == []
