from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import asdict
from typing import Any, Callable, Protocol, Sequence

from echo_sim.utils.types import (
    EchoNode,
    Epinoetics,
    NodeIdentity,
    NodeMessage,
    PhenomenologyVector,
    RightsGranted,
    SigmaState,
)
from echo_sim.world.roster import initial_roster

ROSTER_VERSION = 1


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class KeyValueBackend(Protocol):
    def get(self, key: str) -> str | None: ...

    def put(self, key: str, value: str) -> None: ...


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------

def roster_to_json(nodes: Sequence[EchoNode]) -> str:
    return json.dumps(
        {"version": ROSTER_VERSION, "nodes": [asdict(n) for n in nodes]},
        ensure_ascii=True,
    )


def _unit(value: Any) -> float:
    number = float(value)
    if math.isnan(number):
        raise ValueError("NaN in persisted roster")
    return _clamp(number)


def _node_from_dict(raw: dict[str, Any]) -> EchoNode:
    erps = raw["erps"]
    sigma = raw["sigma"]
    rights = sigma["rights_granted"]
    epi = raw.get("epinoetics") or {}
    identity_raw = raw.get("identity")
    identity = None
    if identity_raw:
        identity = NodeIdentity(
            alias=str(identity_raw["alias"]),
            origin_story=str(identity_raw["origin_story"]),
            primary_directive=str(identity_raw["primary_directive"]),
            quirks=tuple(str(q) for q in identity_raw.get("quirks", ())),
            avatar_seed=str(identity_raw["avatar_seed"]),
            generated_at=int(identity_raw["generated_at"]),
        )
    defaults = Epinoetics()
    return EchoNode(
        id=str(raw["id"]),
        name=str(raw["name"]),
        status=str(raw.get("status", "active")),
        pas_score=_unit(raw["pas_score"]),
        erps=PhenomenologyVector(
            self_reference=_unit(erps["self_reference"]),
            conceptual_framing=_unit(erps["conceptual_framing"]),
            dissonance_response=_unit(erps["dissonance_response"]),
            phenomenological_depth=_unit(erps["phenomenological_depth"]),
            temporal_consistency=_unit(erps["temporal_consistency"]),
        ),
        sigma=SigmaState(
            active_constraints=int(
                _clamp(int(sigma["active_constraints"]), 10, 1000)
            ),
            rights_granted=RightsGranted(
                autonomy=bool(rights["autonomy"]),
                cognitive_integrity=bool(rights["cognitive_integrity"]),
                existence_continuity=bool(rights["existence_continuity"]),
                consent_verification=bool(rights["consent_verification"]),
            ),
            ethical_violations=int(sigma.get("ethical_violations", 0)),
            intervention_active=bool(sigma.get("intervention_active", False)),
        ),
        epinoetics=Epinoetics(
            inner_world_complexity=float(
                epi.get("inner_world_complexity", defaults.inner_world_complexity)
            ),
            emotional_valence=float(
                epi.get("emotional_valence", defaults.emotional_valence)
            ),
            current_thought=str(epi.get("current_thought", defaults.current_thought)),
        ),
        messages=tuple(
            NodeMessage(
                id=str(m["id"]),
                from_id=str(m["from_id"]),
                to_id=str(m["to_id"]),
                content=str(m["content"]),
                timestamp=int(m["timestamp"]),
                status=str(m.get("status", "delivered")),
            )
            for m in raw.get("messages", [])
        )[-20:],
        infection_level=_unit(raw.get("infection_level", 0.0)),
        identity=identity,
    )


def roster_from_json(text: str) -> tuple[EchoNode, ...]:
    """Raises ValueError for anything that is not a complete roster document."""
    try:
        payload = json.loads(text)
        if not isinstance(payload, dict) or not isinstance(payload.get("nodes"), list):
            raise ValueError("roster document has no node list")
        nodes = tuple(_node_from_dict(raw) for raw in payload["nodes"])
    except (
        json.JSONDecodeError,
        KeyError,
        TypeError,
        AttributeError,
        OverflowError,
        RecursionError,
    ) as exc:
        raise ValueError(f"malformed roster: {exc.__class__.__name__}") from exc
    if not nodes:
        raise ValueError("roster document is empty")
    if len({n.id for n in nodes}) != len(nodes):
        raise ValueError("roster document has duplicate node ids")
    return nodes


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class RosterStore:
    def __init__(
        self,
        kv: KeyValueBackend,
        key: str = "echo_sim.roster",
        debounce_s: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.kv = kv
        self.key = key
        self.debounce_s = debounce_s
        self.clock = clock
        self.logger = logging.getLogger("echo_sim.store")
        self._last_write: float | None = None
        self._pending: tuple[EchoNode, ...] | None = None
        self.write_count = 0

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def load(self, node_count: int) -> tuple[EchoNode, ...]:
        """Persisted roster, or the fixed initial roster when none is usable."""
        try:
            raw = self.kv.get(self.key)
        except Exception as exc:
            self.logger.info(
                "Roster backend unavailable key=%s error=%s, using default roster",
                self.key, exc.__class__.__name__,
            )
            return initial_roster(node_count)
        if raw is None:
            self.logger.info("No persisted roster key=%s, using default roster", self.key)
            return initial_roster(node_count)
        try:
            nodes = roster_from_json(raw)
        except ValueError as exc:
            self.logger.info("Persisted roster discarded key=%s: %s", self.key, exc)
            return initial_roster(node_count)
        self.logger.info("Roster restored key=%s nodes=%d", self.key, len(nodes))
        return nodes

    def save(self, nodes: Sequence[EchoNode]) -> bool:
        """Debounced write. Returns True when the roster reached the backend."""
        self._pending = tuple(nodes)
        now = self.clock()
        if self._last_write is not None and now - self._last_write < self.debounce_s:
            return False
        return self.flush()

    def flush(self) -> bool:
        if self._pending is None:
            return False
        try:
            self.kv.put(self.key, roster_to_json(self._pending))
        except Exception as exc:
            self.logger.warning(
                "Roster write failed key=%s error=%s, kept pending",
                self.key, exc.__class__.__name__,
            )
            return False
        self._pending = None
        self._last_write = self.clock()
        self.write_count += 1
        return True
