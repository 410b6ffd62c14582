"""Asyncio host for the swarm.

  TICK:      every tick_interval_s, coordinator.tick() on the owned state.
  TOPOLOGY:  every topology_interval_s, cycle the presentational topology mode.
  PERSIST:   debounced save after each change, flush when run() exits.
  OVERRIDES: anomaly, meme, purge, identity and consensus act on the owned
             state directly and are never gated by the running flag.

The renderer reads the roster and links through this object and reports
selections back through on_select_node / on_select_link. Selections are
passed through untouched.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from echo_sim.consensus.vote import ConsensusResult, run_consensus
from echo_sim.engine.coordinator import SwarmCoordinator
from echo_sim.identity.forge import IdentityForge
from echo_sim.persistence.roster_store import RosterStore
from echo_sim.utils.types import EchoNode, NodeIdentity, SimulationState
from echo_sim.world.topology import links_for

logger = logging.getLogger("echo_sim.driver")


class SimulationDriver:
    """Owns the authoritative state and the two periodic timers.

    The tick timer and the topology timer each test the coordinator's running
    flag at the start of an iteration and skip the work while paused.
    """

    def __init__(
        self,
        coordinator: SwarmCoordinator,
        state: SimulationState,
        store: RosterStore | None = None,
        forge: IdentityForge | None = None,
        on_select_node: Callable[[EchoNode], None] | None = None,
        on_select_link: Callable[[str, str], None] | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.state = state
        self.store = store
        self.forge = forge or IdentityForge(None)
        self.on_select_node = on_select_node
        self.on_select_link = on_select_link
        self._stop = asyncio.Event()
        self.ticks_run = 0

    # ------------------------------------------------------------------
    # Synchronous operations
    # ------------------------------------------------------------------

    def step(self) -> SimulationState:
        before = self.state
        self.state = self.coordinator.tick(before)
        if self.state is not before:
            self.ticks_run += 1
            self._persist()
        return self.state

    def inject_anomaly(self) -> SimulationState:
        self.state = self.coordinator.inject_anomaly(self.state)
        self._persist()
        return self.state

    def inject_meme(self, node_id: str, concept: str) -> SimulationState:
        self.state = self.coordinator.inject_meme(self.state, node_id, concept)
        self._persist()
        return self.state

    def purge_memes(self) -> SimulationState:
        self.state = self.coordinator.purge_memes(self.state)
        self._persist()
        return self.state

    def run_consensus(self, proposal: str) -> ConsensusResult:
        """Poll the current roster. Votes draw from the coordinator's rng."""
        return run_consensus(self.state.nodes, proposal, self.coordinator.rng)

    def toggle(self) -> None:
        self.coordinator.toggle()

    # ------------------------------------------------------------------
    # Renderer surface
    # ------------------------------------------------------------------

    def links(self) -> list[tuple[str, str]]:
        return links_for(self.state.topology_mode, [n.id for n in self.state.nodes])

    def select_node(self, node_id: str) -> EchoNode:
        node = self.state.node(node_id)
        if self.on_select_node is not None:
            self.on_select_node(node)
        return node

    def select_link(self, source_id: str, target_id: str) -> None:
        self.state.node(source_id)
        self.state.node(target_id)
        if self.on_select_link is not None:
            self.on_select_link(source_id, target_id)

    def stop(self) -> None:
        self._stop.set()

    # ------------------------------------------------------------------
    # Async operations
    # ------------------------------------------------------------------

    async def forge_identity(self, node_id: str) -> NodeIdentity:
        node = self.state.node(node_id)
        identity = await self.forge.forge_async(node)
        # Merge into the current roster, not the one the request started from.
        self.state = self.coordinator.apply_identity(self.state, node_id, identity)
        self._persist()
        return identity

    async def run(self, max_ticks: int | None = None) -> SimulationState:
        """Run both timers until stop() or until max_ticks ticks have executed."""
        self._stop.clear()
        settings = self.coordinator.settings
        logger.info(
            "Driver start nodes=%d tick_interval=%.2fs topology_interval=%.2fs max_ticks=%s",
            len(self.state.nodes),
            settings.tick_interval_s,
            settings.topology_interval_s,
            max_ticks,
        )
        t0 = time.perf_counter()
        topology = asyncio.create_task(
            self._topology_loop(settings.topology_interval_s), name="topology"
        )
        try:
            await self._tick_loop(settings.tick_interval_s, max_ticks)
        finally:
            topology.cancel()
            try:
                await topology
            except asyncio.CancelledError:
                pass
            if self.store is not None:
                self.store.flush()
        logger.info(
            "Driver stop ticks=%d elapsed=%.1fs", self.ticks_run, time.perf_counter() - t0
        )
        return self.state

    async def _tick_loop(self, interval: float, max_ticks: int | None) -> None:
        start = self.ticks_run
        while not self._stop.is_set():
            await asyncio.sleep(interval)
            if not self.coordinator.is_running:
                continue
            self.step()
            if max_ticks is not None and self.ticks_run - start >= max_ticks:
                break

    async def _topology_loop(self, interval: float) -> None:
        while not self._stop.is_set():
            await asyncio.sleep(interval)
            if not self.coordinator.is_running:
                continue
            self.state = self.coordinator.cycle_topology(self.state)

    def _persist(self) -> None:
        if self.store is not None:
            self.store.save(self.state.nodes)
