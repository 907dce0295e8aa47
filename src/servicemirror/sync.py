"""Sync actor: keeps the registry in step with the coordination store.

The actor owns the store session and handles every session and watch
event one at a time. Events are fenced on the session id first; anything
tagged with a superseded session is dropped before it can touch the
registry or the connection state.

State machine::

    disconnected --start--> connecting --Connected--> connected
    connected --Reconnecting--> connecting
    connecting|connected --Expired--> disconnected --reconnect--> connecting

Registry contents survive ``Reconnecting`` and ``Expired``; the next
successful resync overwrites them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from servicemirror.core.behavior import Behavior, Behaviors
from servicemirror.instance import (
    InstanceConfig,
    ParseError,
    PayloadFormat,
    check_format,
    parse_instance,
)
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
    SyncMsg,
    SyncStatus,
)
from servicemirror.paths import (
    PathKind,
    classify,
    instance_path,
    node_name,
    normalize_root,
    root_path,
    service_name,
    services_path,
)

if TYPE_CHECKING:
    from servicemirror.core.actor import ActorContext
    from servicemirror.core.ref import ActorRef
    from servicemirror.registry import ServiceRegistry
    from servicemirror.store.base import CoordinationStore

__all__ = ["resync", "sync_actor"]


@dataclass(frozen=True)
class SyncEnv:
    """Immutable collaborators captured once at actor creation."""

    store: CoordinationStore
    registry: ServiceRegistry
    root: str
    payload_format: PayloadFormat
    purge_on_resync: bool


async def _fetch(env: SyncEnv, log: logging.Logger, service: str, node: str) -> InstanceConfig | None:
    path = instance_path(env.root, service, node)
    data, code = await env.store.get(path, watch=True)
    if not code.is_ok:
        log.warning("Cannot read %s: %s", path, code.value)
        return None
    try:
        return parse_instance(data, format=env.payload_format)
    except ParseError as exc:
        log.warning("Skipping instance %s of %s: %s", node, service, exc.reason)
        return None


async def _sync_service(
    env: SyncEnv, log: logging.Logger, service: str, *, only_new: bool,
) -> bool:
    path = services_path(env.root, service)
    nodes, code = await env.store.get_children(path, watch=True)
    if not code.is_ok:
        log.warning("Cannot list instances of %s at %s: %s", service, path, code.value)
        return False

    env.registry.ensure_service(service)
    known = env.registry.get(service) or {}
    for node in nodes:
        if only_new and node in known:
            continue
        config = await _fetch(env, log, service, node)
        if config is not None:
            env.registry.upsert(service, node, config)
            log.debug("Mirrored %s/%s at %s", service, node, config.address)

    if env.purge_on_resync:
        dropped = env.registry.retain(service, nodes)
        if dropped:
            log.info("Purged %d stale instance(s) of %s: %s", len(dropped), service, sorted(dropped))
    return True


async def _list_services(env: SyncEnv, log: logging.Logger) -> list[str] | None:
    path = root_path(env.root)
    services, code = await env.store.get_children(path, watch=True)
    if not code.is_ok:
        log.warning(
            "Cannot list services under %s: %s; keeping %d cached service(s)",
            path, code.value, len(env.registry),
        )
        return None
    return services


def _purge_services(env: SyncEnv, log: logging.Logger, listed: list[str]) -> None:
    for service in env.registry.services() - set(listed):
        env.registry.drop_service(service)
        log.info("Purged service %s, no longer listed", service)


async def resync(env: SyncEnv, log: logging.Logger) -> bool:
    """Re-read the whole tree into the registry.

    Every listed instance is re-fetched, re-parsed and re-armed. Listing
    failures keep the cached contents; a node that fails to read or parse
    is skipped without affecting its siblings.

    Returns
    -------
    bool
        ``False`` when the service root itself could not be listed.
    """
    services = await _list_services(env, log)
    if services is None:
        return False
    for service in services:
        await _sync_service(env, log, service, only_new=False)
    if env.purge_on_resync:
        _purge_services(env, log, services)
    log.info(
        "Resync complete: %d service(s), %d instance(s)",
        len(env.registry),
        sum(len(instances) for instances in env.registry.get_all().values()),
    )
    return True


async def _on_children_changed(env: SyncEnv, log: logging.Logger, path: str) -> None:
    match classify(path, env.root), service_name(path, env.root):
        case PathKind.service_nodes, str() as service:
            await _sync_service(env, log, service, only_new=True)
        case PathKind.root, _:
            services = await _list_services(env, log)
            if services is None:
                return
            for service in services:
                if service not in env.registry:
                    log.info("Discovered service %s", service)
                    await _sync_service(env, log, service, only_new=False)
            if env.purge_on_resync:
                _purge_services(env, log, services)
        case PathKind.unrecognized, _:
            log.warning("Ignoring children change on unrecognized path %s", path)
        case kind, _:
            log.info("Ignoring children change on %s path %s", kind.name, path)


def _on_deleted(env: SyncEnv, log: logging.Logger, path: str) -> None:
    match classify(path, env.root), service_name(path, env.root):
        case PathKind.instance, str() as service:
            node = node_name(path)
            if service not in env.registry:
                log.debug("Deleted %s belongs to unknown service %s", path, service)
            elif env.registry.remove(service, node):
                log.info("Removed instance %s of %s", node, service)
        case PathKind.unrecognized, _:
            log.warning("Ignoring deletion of unrecognized path %s", path)
        case kind, _:
            log.info("Ignoring deletion of %s path %s", kind.name, path)


async def _on_data_changed(env: SyncEnv, log: logging.Logger, path: str) -> None:
    service = service_name(path, env.root)
    if service is None or classify(path, env.root) is not PathKind.instance:
        log.info("Ignoring data change on %s", path)
        return
    node = node_name(path)
    if service not in env.registry:
        log.debug("Data change on %s belongs to unknown service %s", path, service)
        return
    config = await _fetch(env, log, service, node)
    if config is None:
        log.warning("Keeping previous config of %s/%s", service, node)
        return
    env.registry.upsert(service, node, config)
    log.info("Updated instance %s of %s: %s", node, service, config.address)


def sync_actor(
    store: CoordinationStore,
    registry: ServiceRegistry,
    *,
    root: str = "/services",
    payload_format: PayloadFormat = "json",
    purge_on_resync: bool = False,
) -> Behavior[SyncMsg]:
    """Create the sync actor behavior.

    Parameters
    ----------
    store : CoordinationStore
        Store backend; the actor starts it during setup and owns its
        session from then on.
    registry : ServiceRegistry
        Registry the actor writes to. Nobody else may mutate it.
    root : str
        Path under which services are published.
    payload_format : PayloadFormat
        Encoding of instance payloads.
    purge_on_resync : bool
        Drop cached entries missing from fresh listings.

    Returns
    -------
    Behavior[SyncMsg]

    Raises
    ------
    ModuleNotFoundError
        When *payload_format* needs a decoder that is not installed.

    Examples
    --------
    >>> cell = ActorCell(sync_actor(InMemoryStore(), ServiceRegistry()), id="sync")
    >>> await cell.start()
    """
    check_format(payload_format)
    env = SyncEnv(
        store=store,
        registry=registry,
        root=normalize_root(root),
        payload_format=payload_format,
        purge_on_resync=purge_on_resync,
    )

    def report(status: SyncStatus) -> SyncStatus:
        return replace(status, session_id=store.session_id)

    def tracking(
        status: SyncStatus,
        waiters: tuple[ActorRef[SyncStatus], ...],
    ) -> Behavior[SyncMsg]:
        async def receive(ctx: ActorContext[SyncMsg], msg: SyncMsg) -> Behavior[SyncMsg]:
            match msg:
                case GetStatus(reply_to=reply_to):
                    reply_to.tell(report(status))
                    return Behaviors.same()

                case AwaitConnected(reply_to=reply_to):
                    if status.state is ConnectionState.connected:
                        reply_to.tell(report(status))
                        return Behaviors.same()
                    return tracking(status, (*waiters, reply_to))

                case (
                    Connected(session_id=session_id)
                    | Reconnecting(session_id=session_id)
                    | Expired(session_id=session_id)
                    | ChildrenChanged(session_id=session_id)
                    | NodeCreated(session_id=session_id)
                    | NodeDeleted(session_id=session_id)
                    | DataChanged(session_id=session_id)
                ) if session_id != store.session_id:
                    ctx.log.debug(
                        "Discarding %s from stale session %s", type(msg).__name__, session_id,
                    )
                    return tracking(replace(status, stale_events=status.stale_events + 1), waiters)

                case Connected(session_id=session_id):
                    ctx.log.info("Session %s connected, resynchronizing", session_id)
                    await resync(env, ctx.log)
                    connected = replace(
                        status, state=ConnectionState.connected, resyncs=status.resyncs + 1,
                    )
                    for waiter in waiters:
                        waiter.tell(report(connected))
                    return tracking(connected, ())

                case Reconnecting(session_id=session_id):
                    ctx.log.warning("Session %s dropped, reconnecting", session_id)
                    return tracking(replace(status, state=ConnectionState.connecting), waiters)

                case Expired(session_id=session_id):
                    ctx.log.warning(
                        "Session %s expired, keeping %d cached service(s)",
                        session_id, len(registry),
                    )
                    # disconnected until the replacement session is requested
                    await store.reconnect()
                    ctx.log.info("Requested new session")
                    return tracking(replace(status, state=ConnectionState.connecting), waiters)

                case ChildrenChanged(path=path):
                    await _on_children_changed(env, ctx.log, path)
                    return Behaviors.same()

                case NodeCreated(path=path):
                    ctx.log.debug("Node created: %s", path)
                    return Behaviors.same()

                case NodeDeleted(path=path):
                    _on_deleted(env, ctx.log, path)
                    return Behaviors.same()

                case DataChanged(path=path):
                    await _on_data_changed(env, ctx.log, path)
                    return Behaviors.same()

                case _:
                    ctx.log.warning("Unexpected message %r", msg)
                    return tracking(
                        replace(status, unexpected_events=status.unexpected_events + 1), waiters,
                    )

        return Behaviors.receive(receive)

    async def setup(ctx: ActorContext[SyncMsg]) -> Behavior[SyncMsg]:
        await store.start(ctx.self.tell)
        ctx.log.info("Mirroring services under %s", root_path(env.root))
        return tracking(SyncStatus(state=ConnectionState.connecting, session_id=None), ())

    return Behaviors.setup(setup)
