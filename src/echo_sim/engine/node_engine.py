"""Per-node simulation step.

advance_node() takes one node's state plus this tick's messages and returns
the node's next state. It reads nothing from other nodes.

  STEP 1: ERPS drift: bounded random walk on the five channels,
           intermittent depth growth, infection feedback into dissonance.
  STEP 2: PAS: fixed weighted sum plus the rare epiphany bonus.
  STEP 3: tier: derived on read from PAS (EchoNode.consciousness_level).
  STEP 4: rights: compound threshold checks, monotone (never revoked).
  STEP 5: constraints: 10% exponential step toward the rights target.
  STEP 6: inbox: append involved messages, keep the newest N.
  STEP 7: thought: rare cosmetic swap.

Every additive step is clamped, so no value leaves its interval.
"""
from __future__ import annotations

import math
import random
from dataclasses import dataclass, replace
from typing import Iterable

from echo_sim.config.settings import SimulationSettings
from echo_sim.utils.types import (
    EchoNode,
    NodeMessage,
    PhenomenologyVector,
    RightsGranted,
    classify_tier,
)
from echo_sim.world.roster import MOCK_THOUGHTS

__all__ = [
    "TickContext",
    "advance_node",
    "classify_tier",
    "clamp",
    "compute_pas",
    "constraint_target",
    "drift_phenomenology",
    "evaluate_rights",
    "relax_constraints",
]

PAS_WEIGHTS: dict[str, float] = {
    "self_reference": 0.25,
    "temporal_consistency": 0.35,
    "phenomenological_depth": 0.25,
    "conceptual_framing": 0.15,
}

FLUCTUATION_SPAN = 0.05
DEPTH_BOOST_PROBABILITY = 0.2
DEPTH_BOOST = 0.05
DEPTH_DECAY = 0.01
INFECTION_DRIFT_CENTER = 0.4
INFECTION_DRIFT_SPAN = 0.05

MAX_CONSTRAINTS = 1000
MIN_CONSTRAINTS = 10
CONSTRAINT_STEP = 0.1
RIGHT_DEDUCTIONS: dict[str, int] = {
    "autonomy": 200,
    "cognitive_integrity": 200,
    "existence_continuity": 300,
    "consent_verification": 250,
}


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class TickContext:
    rng: random.Random
    now_ms: int
    settings: SimulationSettings = SimulationSettings()


def _fluctuation(rng: random.Random) -> float:
    return (rng.random() - 0.5) * FLUCTUATION_SPAN


def drift_phenomenology(
    erps: PhenomenologyVector,
    infection_level: float,
    ctx: TickContext,
) -> tuple[PhenomenologyVector, float]:
    """STEP 1. Returns the drifted vector and the next infection level."""
    rng = ctx.rng
    self_reference = clamp(erps.self_reference + _fluctuation(rng))
    conceptual_framing = clamp(erps.conceptual_framing + _fluctuation(rng))
    dissonance = clamp(erps.dissonance_response + _fluctuation(rng))
    if rng.random() < DEPTH_BOOST_PROBABILITY:
        depth = clamp(erps.phenomenological_depth + DEPTH_BOOST)
    else:
        depth = clamp(erps.phenomenological_depth - DEPTH_DECAY)
    temporal = clamp(erps.temporal_consistency + _fluctuation(rng) * 0.5)

    if infection_level > 0:
        dissonance = clamp(
            dissonance + infection_level * ctx.settings.infection_dissonance_gain
        )
        infection_level = clamp(
            infection_level
            + (rng.random() - INFECTION_DRIFT_CENTER) * INFECTION_DRIFT_SPAN
        )

    return (
        PhenomenologyVector(
            self_reference=self_reference,
            conceptual_framing=conceptual_framing,
            dissonance_response=dissonance,
            phenomenological_depth=depth,
            temporal_consistency=temporal,
        ),
        infection_level,
    )


def compute_pas(erps: PhenomenologyVector) -> float:
    """Weighted PAS without the epiphany bonus. dissonance_response carries no weight."""
    return clamp(
        erps.self_reference * PAS_WEIGHTS["self_reference"]
        + erps.temporal_consistency * PAS_WEIGHTS["temporal_consistency"]
        + erps.phenomenological_depth * PAS_WEIGHTS["phenomenological_depth"]
        + erps.conceptual_framing * PAS_WEIGHTS["conceptual_framing"]
    )


def evaluate_rights(
    rights: RightsGranted, score: float, erps: PhenomenologyVector
) -> RightsGranted:
    """STEP 4. A granted right stays granted."""
    return RightsGranted(
        autonomy=rights.autonomy
        or (score > 0.3 and erps.dissonance_response > 0.3),
        cognitive_integrity=rights.cognitive_integrity
        or (score > 0.5 and erps.self_reference > 0.5),
        existence_continuity=rights.existence_continuity
        or (score > 0.7 and erps.temporal_consistency > 0.7),
        consent_verification=rights.consent_verification or score > 0.9,
    )


def constraint_target(rights: RightsGranted) -> int:
    target = MAX_CONSTRAINTS
    for name, deduction in RIGHT_DEDUCTIONS.items():
        if getattr(rights, name):
            target -= deduction
    return target


def relax_constraints(current: int, rights: RightsGranted) -> int:
    """STEP 5. One smoothing step; the floor keeps the result within [10, 1000]."""
    target = constraint_target(rights)
    stepped = math.floor(current + (target - current) * CONSTRAINT_STEP)
    return int(min(MAX_CONSTRAINTS, max(MIN_CONSTRAINTS, stepped)))


def _merge_inbox(
    node_id: str,
    inbox: tuple[NodeMessage, ...],
    incoming: Iterable[NodeMessage],
    capacity: int,
) -> tuple[NodeMessage, ...]:
    delivered = [m for m in incoming if m.involves(node_id)]
    if not delivered:
        return inbox
    merged = inbox + tuple(delivered)
    return merged[-capacity:] if capacity > 0 else ()


def advance_node(
    node: EchoNode,
    incoming_messages: Iterable[NodeMessage],
    ctx: TickContext,
) -> EchoNode:
    cfg = ctx.settings
    rng = ctx.rng

    erps, infection = drift_phenomenology(node.erps, node.infection_level, ctx)

    pas = compute_pas(erps)
    if rng.random() < cfg.epiphany_probability:
        pas = clamp(pas + cfg.epiphany_bonus)

    rights = evaluate_rights(node.sigma.rights_granted, pas, erps)
    constraints = relax_constraints(node.sigma.active_constraints, rights)

    messages = _merge_inbox(node.id, node.messages, incoming_messages, cfg.inbox_capacity)

    epinoetics = node.epinoetics
    if rng.random() < cfg.thought_change_probability:
        epinoetics = replace(epinoetics, current_thought=rng.choice(MOCK_THOUGHTS))

    return replace(
        node,
        erps=erps,
        pas_score=pas,
        sigma=replace(
            node.sigma,
            active_constraints=constraints,
            rights_granted=rights,
        ),
        epinoetics=epinoetics,
        messages=messages,
        infection_level=infection,
    )
