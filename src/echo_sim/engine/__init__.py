"""EchoNode swarm simulation engine.

  advance_node(): pure per-node step (ERPS drift, PAS, rights, constraints).
  SwarmCoordinator: one tick over the roster: messages, fan-out, metrics.
  SimulationDriver: asyncio host running the 1 s tick and 5 s topology timers.
"""
from echo_sim.engine.coordinator import CoordinatorStatus, SwarmCoordinator
from echo_sim.engine.driver import SimulationDriver
from echo_sim.engine.node_engine import TickContext, advance_node

__all__ = [
    "CoordinatorStatus",
    "SimulationDriver",
    "SwarmCoordinator",
    "TickContext",
    "advance_node",
]
