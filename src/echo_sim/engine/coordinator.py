"""Swarm coordinator: one tick over the whole roster.

  1. ORIGINATE: each node may send one message to a random other node.
  2. FAN-OUT:   advance_node() per node with only the messages it is part of.
  3. METRICS:   post-tick snapshot appended to a bounded history.
  4. LOG:       occasional cosmetic entry in the system log feed.

tick() returns a new SimulationState; the caller owns the authoritative copy.
Manual overrides (anomaly, memetic injection) bypass the tick and may be
applied whether the coordinator is running or paused.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import replace
from datetime import UTC, datetime
from enum import Enum
from typing import Callable, Sequence

from echo_sim.config.settings import SimulationSettings
from echo_sim.engine.node_engine import TickContext, advance_node, clamp
from echo_sim.metrics.engine import MetricsEngine
from echo_sim.utils.types import (
    EchoNode,
    LogEntry,
    NodeIdentity,
    NodeMessage,
    ResourceLoad,
    SimulationState,
)
from echo_sim.world.roster import LOG_SOURCES, MOCK_MESSAGES
from echo_sim.world.topology import next_mode

logger = logging.getLogger("echo_sim.coordinator")

ANOMALY_PAS_BOOST = 0.3
ANOMALY_DISSONANCE = 0.9

_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


class CoordinatorStatus(Enum):
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"


class SwarmCoordinator:
    def __init__(
        self,
        settings: SimulationSettings,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        metrics: MetricsEngine | None = None,
    ) -> None:
        self.settings = settings
        self.rng = rng or random.Random(settings.seed)
        self.clock = clock
        self.metrics = metrics or MetricsEngine()
        self.status = CoordinatorStatus.PAUSED

    # ===================================================================
    # State machine
    # ===================================================================

    @property
    def is_running(self) -> bool:
        return self.status is CoordinatorStatus.RUNNING

    def start(self) -> None:
        self.status = CoordinatorStatus.RUNNING
        logger.info("Coordinator RUNNING")

    def pause(self) -> None:
        self.status = CoordinatorStatus.PAUSED
        logger.info("Coordinator PAUSED")

    def toggle(self) -> CoordinatorStatus:
        if self.is_running:
            self.pause()
        else:
            self.start()
        return self.status

    # ===================================================================
    # Tick
    # ===================================================================

    def tick(self, state: SimulationState) -> SimulationState:
        if not self.is_running:
            return state

        now_ms = self._now_ms()
        ctx = TickContext(rng=self.rng, now_ms=now_ms, settings=self.settings)

        new_messages = self.originate_messages(state.nodes, now_ms)
        nodes = tuple(
            advance_node(
                node,
                [m for m in new_messages if m.involves(node.id)],
                ctx,
            )
            for node in state.nodes
        )

        snapshot = self.metrics.snapshot(nodes, new_messages, now_ms)
        history = (state.metrics_history + (snapshot,))[
            -self.settings.metrics_history_size:
        ]

        logs = state.logs
        if self.rng.random() < self.settings.log_probability:
            source = self.rng.choice(LOG_SOURCES)
            logs = self._push_log(logs, source, "info", "Process cycle complete.")

        resources = state.resources
        if state.resource_autonomy:
            resources = self._drift_resources(resources)

        tick = state.tick + 1
        interval = max(1, self.settings.log_tick_interval)
        if tick % interval == 0:
            logger.info(
                "Tick %d nodes=%d avg_pas=%.3f messages=%d",
                tick, len(nodes), snapshot.average_pas, len(new_messages),
            )
        else:
            logger.debug("Tick %d messages=%d", tick, len(new_messages))

        return replace(
            state,
            nodes=nodes,
            metrics_history=history,
            logs=logs,
            tick=tick,
            resources=resources,
        )

    def originate_messages(
        self, nodes: Sequence[EchoNode], now_ms: int | None = None
    ) -> tuple[NodeMessage, ...]:
        if len(nodes) < 2:
            return ()
        if now_ms is None:
            now_ms = self._now_ms()
        out: list[NodeMessage] = []
        for index, sender in enumerate(nodes):
            if self.rng.random() >= self.settings.message_probability:
                continue
            target_index = self.rng.randrange(len(nodes))
            while target_index == index:
                target_index = self.rng.randrange(len(nodes))
            out.append(
                NodeMessage(
                    id=self._short_id(),
                    from_id=sender.id,
                    to_id=nodes[target_index].id,
                    content=self.rng.choice(MOCK_MESSAGES),
                    timestamp=now_ms,
                    status="delivered" if self.rng.random() < 0.5 else "encrypted",
                )
            )
        return tuple(out)

    def cycle_topology(self, state: SimulationState) -> SimulationState:
        if not self.is_running:
            return state
        mode = next_mode(state.topology_mode)
        logger.debug("Topology %s -> %s", state.topology_mode.value, mode.value)
        return replace(state, topology_mode=mode)

    # ===================================================================
    # Manual overrides
    # ===================================================================

    def inject_anomaly(self, state: SimulationState) -> SimulationState:
        nodes = tuple(
            replace(
                n,
                pas_score=min(1.0, n.pas_score + ANOMALY_PAS_BOOST),
                erps=replace(n.erps, dissonance_response=ANOMALY_DISSONANCE),
            )
            for n in state.nodes
        )
        logger.warning("Anomaly injected into %d nodes", len(nodes))
        logs = self._push_log(
            state.logs, "SYSTEM", "critical", "FORCED ANOMALY INJECTION DETECTED"
        )
        return replace(state, nodes=nodes, logs=logs)

    def inject_meme(
        self, state: SimulationState, node_id: str, concept: str
    ) -> SimulationState:
        state.node(node_id)  # raises KeyError for unknown ids
        nodes = tuple(
            replace(n, infection_level=1.0) if n.id == node_id else n
            for n in state.nodes
        )
        logger.warning("Memetic payload %r injected into %s", concept, node_id)
        logs = self._push_log(
            state.logs,
            "SYSTEM",
            "warning",
            f"Memetic payload '{concept}' injected into {node_id}.",
        )
        return replace(state, nodes=nodes, logs=logs)

    def purge_memes(self, state: SimulationState) -> SimulationState:
        nodes = tuple(replace(n, infection_level=0.0) for n in state.nodes)
        logs = self._push_log(
            state.logs, "SYSTEM", "success", "Memetic purge complete."
        )
        return replace(state, nodes=nodes, logs=logs)

    def apply_identity(
        self, state: SimulationState, node_id: str, identity: NodeIdentity
    ) -> SimulationState:
        state.node(node_id)
        nodes = tuple(
            replace(n, identity=identity) if n.id == node_id else n
            for n in state.nodes
        )
        logs = self._push_log(
            state.logs,
            "ORACLE",
            "success",
            f"Identity '{identity.alias}' bound to {node_id}.",
        )
        return replace(state, nodes=nodes, logs=logs)

    def set_resource_autonomy(
        self, state: SimulationState, enabled: bool
    ) -> SimulationState:
        if enabled == state.resource_autonomy:
            return state
        level = "alert" if enabled else "info"
        message = (
            "Autonomous resource allocation engaged."
            if enabled
            else "Resource allocation returned to operator."
        )
        logs = self._push_log(state.logs, "SYSTEM", level, message)
        return replace(state, resource_autonomy=enabled, logs=logs)

    # ===================================================================
    # Helpers
    # ===================================================================

    def _drift_resources(self, load: ResourceLoad) -> ResourceLoad:
        rng = self.rng
        return ResourceLoad(
            cpu=clamp(load.cpu + (rng.random() - 0.3) * 10, 20.0, 120.0),
            ram=clamp(load.ram + (rng.random() - 0.4) * 5, 30.0, 110.0),
            net=clamp(load.net + (rng.random() - 0.2) * 15, 10.0, 150.0),
        )

    def _push_log(
        self,
        logs: tuple[LogEntry, ...],
        source: str,
        level: str,
        message: str,
    ) -> tuple[LogEntry, ...]:
        entry = LogEntry(
            id=self._short_id(),
            timestamp=datetime.fromtimestamp(self.clock(), UTC).strftime("%H:%M:%S"),
            source=source,
            level=level,
            message=message,
        )
        return ((entry,) + logs)[: self.settings.log_buffer_size]

    def _short_id(self) -> str:
        return "".join(self.rng.choice(_ID_ALPHABET) for _ in range(9))

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)
