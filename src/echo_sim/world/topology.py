from __future__ import annotations

from typing import Sequence

from echo_sim.utils.types import TopologyMode

_CYCLE: list[TopologyMode] = list(TopologyMode)

CLUSTER_SIZE = 4


def next_mode(mode: TopologyMode) -> TopologyMode:
    return _CYCLE[(_CYCLE.index(mode) + 1) % len(_CYCLE)]


def _suffix(node_id: str) -> int:
    try:
        return int(node_id.rsplit("-", 1)[1])
    except (IndexError, ValueError):
        return 0


def links_for(mode: TopologyMode, node_ids: Sequence[str]) -> list[tuple[str, str]]:
    """Undirected links for the renderer. Purely presentational; nodes never read it."""
    ids = list(node_ids)
    links: list[tuple[str, str]] = []
    if len(ids) < 2:
        return links

    if mode is TopologyMode.MESH:
        for i, source in enumerate(ids):
            a = _suffix(source)
            for target in ids[i + 1:]:
                b = _suffix(target)
                total = a + b
                if total % 3 == 0 or total % 4 == 0 or abs(a - b) == 1:
                    links.append((source, target))
    elif mode is TopologyMode.RING:
        for i, source in enumerate(ids):
            target = ids[(i + 1) % len(ids)]
            if len(ids) == 2 and i == 1:
                break
            links.append((source, target))
    elif mode is TopologyMode.STAR:
        hub = ids[0]
        links.extend((hub, target) for target in ids[1:])
    elif mode is TopologyMode.CLUSTER:
        heads: list[str] = []
        for start in range(0, len(ids), CLUSTER_SIZE):
            group = ids[start:start + CLUSTER_SIZE]
            heads.append(group[0])
            for i, source in enumerate(group):
                links.extend((source, target) for target in group[i + 1:])
        links.extend(zip(heads, heads[1:]))
    return links
