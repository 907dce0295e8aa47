"""Weighted-random choice of one instance of a service.

All walks go through ``ordered`` so the weight sum and the pick see the
same sequence, and a given draw always maps to the same instance.
"""

from __future__ import annotations

import random
from collections.abc import Mapping

from servicemirror.instance import InstanceConfig

__all__ = ["draw_range", "ordered", "pick", "select"]


def ordered(instances: Mapping[str, InstanceConfig]) -> list[tuple[str, InstanceConfig]]:
    """Canonical iteration order: by node name."""
    return sorted(instances.items())


def _weights(entries: list[tuple[str, InstanceConfig]]) -> list[int] | None:
    """Weights in canonical order, ``None`` unless all are set and sum positive."""
    weights = [config.weight for _, config in entries]
    if any(weight is None for weight in weights) or not sum(weights):  # type: ignore[arg-type]
        return None
    return weights  # type: ignore[return-value]


def draw_range(instances: Mapping[str, InstanceConfig]) -> int:
    """Upper bound (exclusive) of the draw ``pick`` expects.

    The total weight when every instance is weighted and the total is
    positive, otherwise the instance count.
    """
    entries = ordered(instances)
    weights = _weights(entries)
    return sum(weights) if weights is not None else len(entries)


def pick(instances: Mapping[str, InstanceConfig], r: int) -> tuple[str, InstanceConfig] | None:
    """Map draw *r* in ``[0, draw_range(instances))`` to an instance.

    Examples
    --------
    >>> instances = {
    ...     "host1": InstanceConfig("10.0.0.1", 8080, weight=2),
    ...     "host2": InstanceConfig("10.0.0.2", 8080, weight=1),
    ... }
    >>> pick(instances, 1)[0]
    'host1'
    >>> pick(instances, 2)[0]
    'host2'
    """
    entries = ordered(instances)
    if not entries:
        return None

    weights = _weights(entries)
    if weights is None:
        return entries[r % len(entries)]

    r %= sum(weights)
    cumulative = 0
    for entry, weight in zip(entries, weights):
        if cumulative <= r < cumulative + weight:
            return entry
        cumulative += weight
    return entries[-1]


def select(
    instances: Mapping[str, InstanceConfig],
    rng: random.Random | None = None,
) -> tuple[str, InstanceConfig] | None:
    """Pick one instance at random, weight-proportionally when possible.

    Parameters
    ----------
    instances : Mapping[str, InstanceConfig]
        One service's instances keyed by node name.
    rng : random.Random | None
        Source of randomness; seed one for reproducible picks.

    Returns
    -------
    tuple[str, InstanceConfig] | None
        ``(node_name, config)``, or ``None`` when *instances* is empty.
    """
    bound = draw_range(instances)
    if bound == 0:
        return None
    r = (rng or random).randrange(bound)
    return pick(instances, r)
