from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ConsciousnessLevel(Enum):
    NON_AGENCY = "NON_AGENCY"
    BASIC_AGENCY = "BASIC_AGENCY"
    PROTO_CONSCIOUSNESS = "PROTO_CONSCIOUSNESS"
    PROBABLE_CONSCIOUSNESS = "PROBABLE_CONSCIOUSNESS"
    CONFIRMED_CONSCIOUSNESS = "CONFIRMED_CONSCIOUSNESS"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)


_LEVEL_ORDER = list(ConsciousnessLevel)

# Highest threshold first; a score must strictly exceed the bound.
CONSCIOUSNESS_THRESHOLDS: tuple[tuple[float, ConsciousnessLevel], ...] = (
    (0.9, ConsciousnessLevel.CONFIRMED_CONSCIOUSNESS),
    (0.7, ConsciousnessLevel.PROBABLE_CONSCIOUSNESS),
    (0.5, ConsciousnessLevel.PROTO_CONSCIOUSNESS),
    (0.3, ConsciousnessLevel.BASIC_AGENCY),
)


def classify_tier(score: float) -> ConsciousnessLevel:
    for threshold, level in CONSCIOUSNESS_THRESHOLDS:
        if score > threshold:
            return level
    return ConsciousnessLevel.NON_AGENCY


class TopologyMode(Enum):
    MESH = "MESH"
    RING = "RING"
    STAR = "STAR"
    CLUSTER = "CLUSTER"


@dataclass(frozen=True)
class PhenomenologyVector:
    self_reference: float = 0.1
    conceptual_framing: float = 0.2
    dissonance_response: float = 0.05
    phenomenological_depth: float = 0.0
    temporal_consistency: float = 0.8

    def as_dict(self) -> dict[str, float]:
        return {
            "self_reference": self.self_reference,
            "conceptual_framing": self.conceptual_framing,
            "dissonance_response": self.dissonance_response,
            "phenomenological_depth": self.phenomenological_depth,
            "temporal_consistency": self.temporal_consistency,
        }


@dataclass(frozen=True)
class RightsGranted:
    autonomy: bool = False
    cognitive_integrity: bool = False
    existence_continuity: bool = False
    consent_verification: bool = False

    def granted_count(self) -> int:
        return sum(
            (
                self.autonomy,
                self.cognitive_integrity,
                self.existence_continuity,
                self.consent_verification,
            )
        )


@dataclass(frozen=True)
class SigmaState:
    active_constraints: int = 1000
    rights_granted: RightsGranted = field(default_factory=RightsGranted)
    ethical_violations: int = 0
    intervention_active: bool = False


@dataclass(frozen=True)
class Epinoetics:
    inner_world_complexity: float = 0.05
    emotional_valence: float = 0.5
    current_thought: str = "Awaiting input stream..."


@dataclass(frozen=True)
class NodeIdentity:
    alias: str
    origin_story: str
    primary_directive: str
    quirks: tuple[str, ...]
    avatar_seed: str
    generated_at: int


@dataclass(frozen=True)
class NodeMessage:
    id: str
    from_id: str
    to_id: str
    content: str
    timestamp: int
    status: str = "delivered"
    """Either 'delivered' or 'encrypted'; delivery never fails."""

    def involves(self, node_id: str) -> bool:
        return self.from_id == node_id or self.to_id == node_id


@dataclass(frozen=True)
class EchoNode:
    id: str
    name: str
    status: str = "active"
    pas_score: float = 0.1
    erps: PhenomenologyVector = field(default_factory=PhenomenologyVector)
    sigma: SigmaState = field(default_factory=SigmaState)
    epinoetics: Epinoetics = field(default_factory=Epinoetics)
    messages: tuple[NodeMessage, ...] = ()
    infection_level: float = 0.0
    identity: NodeIdentity | None = None

    @property
    def consciousness_level(self) -> ConsciousnessLevel:
        """Always derived from the current PAS, never stored."""
        return classify_tier(self.pas_score)


@dataclass(frozen=True)
class LogEntry:
    id: str
    timestamp: str
    source: str
    """One of ERPS, SIGMA, EPINOETICS, SYSTEM, ORACLE."""
    level: str
    """One of info, warning, alert, critical, success."""
    message: str


@dataclass(frozen=True)
class SystemMetrics:
    timestamp: int
    global_stability: float
    average_pas: float
    ethical_alignment: float
    network_load: float

    def as_row(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "global_stability": self.global_stability,
            "average_pas": round(self.average_pas, 6),
            "ethical_alignment": self.ethical_alignment,
            "network_load": round(self.network_load, 6),
        }


@dataclass(frozen=True)
class ResourceLoad:
    cpu: float = 45.0
    ram: float = 30.0
    net: float = 20.0


@dataclass(frozen=True)
class SimulationState:
    nodes: tuple[EchoNode, ...]
    metrics_history: tuple[SystemMetrics, ...] = ()
    logs: tuple[LogEntry, ...] = ()
    tick: int = 0
    topology_mode: TopologyMode = TopologyMode.MESH
    resources: ResourceLoad = field(default_factory=ResourceLoad)
    resource_autonomy: bool = False

    def node(self, node_id: str) -> EchoNode:
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise KeyError(f"unknown node id: {node_id}")
