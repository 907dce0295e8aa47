"""Command-line access to a service mirror.

    python -m servicemirror --servers zk1:2181 list
    python -m servicemirror lookup checkout
    python -m servicemirror select checkout

Connects, waits for the first resync, prints JSON and exits.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from servicemirror.config import ConfigError, MirrorConfig, StoreConfig, load_config
from servicemirror.mirror import ServiceMirror

log = logging.getLogger("servicemirror.cli")

EXIT_OK = 0
EXIT_NOT_FOUND = 1
EXIT_TIMEOUT = 2
EXIT_USAGE = 64


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="servicemirror",
        description="Query services published in ZooKeeper",
    )
    parser.add_argument("--config", type=Path, default=None, help="path to servicemirror.toml")
    parser.add_argument("--servers", default=None, help="host:port[,host:port...]")
    parser.add_argument("--root", default=None, help="service root path")
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="seconds to wait for the first resync",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    parser.add_argument("command", choices=["list", "lookup", "select"])
    parser.add_argument("service", nargs="?", default=None)
    return parser


def resolve_config(args: argparse.Namespace) -> MirrorConfig:
    config = load_config(args.config)
    overrides = {
        key: value
        for key, value in (("servers", args.servers), ("root", args.root))
        if value is not None
    }
    if not overrides:
        return config
    return replace(config, store=StoreConfig(**{**dataclasses.asdict(config.store), **overrides}))


async def run(args: argparse.Namespace, mirror: ServiceMirror) -> int:
    async with mirror:
        try:
            await mirror.wait_connected(timeout=args.timeout)
        except TimeoutError:
            log.error("No session with %s after %.1fs", mirror.config.store.servers, args.timeout)
            return EXIT_TIMEOUT

        match args.command:
            case "list":
                payload = {
                    service: {node: dataclasses.asdict(c) for node, c in instances.items()}
                    for service, instances in mirror.list_all().items()
                }
            case "lookup":
                instances = mirror.lookup(args.service)
                if not instances:
                    return EXIT_NOT_FOUND
                payload = {node: dataclasses.asdict(c) for node, c in instances.items()}
            case _:
                picked = mirror.select_one(args.service)
                if picked is None:
                    return EXIT_NOT_FOUND
                payload = dataclasses.asdict(picked)

        print(json.dumps(payload, indent=2, sort_keys=True))
        return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command != "list" and args.service is None:
        parser.error(f"{args.command} requires a service name")

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("kazoo").setLevel(logging.WARNING)

    try:
        config = resolve_config(args)
    except (ConfigError, FileNotFoundError) as exc:
        log.error("%s", exc)
        return EXIT_USAGE

    return asyncio.run(run(args, ServiceMirror(config=config)))


if __name__ == "__main__":
    sys.exit(main())
