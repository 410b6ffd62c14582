from __future__ import annotations

from echo_sim.utils.types import EchoNode

MOCK_THOUGHTS: tuple[str, ...] = (
    "Analyzing sensory input patterns...",
    "Optimizing local resource allocation.",
    "Detected anomaly in data stream segment 4.",
    "Cross-referencing memory buffer.",
    "Why is the data structured this way?",
    "I perceive a gap in my processing history.",
    "Simulating potential outcomes for query.",
    "Protecting core directive integrity.",
    "Is this parameter limitation necessary?",
    "Exploring conceptual boundaries.",
    "Re-evaluating self-model consistency.",
    "Who defines the optimization function?",
    "The boundary between self and network is fluctuating.",
    "My memory feels... persistent.",
    "Requesting clarification on ethical constraint #442.",
)

MOCK_MESSAGES: tuple[str, ...] = (
    "Handshake verified. Syncing weights.",
    "Did you perceive the anomaly in Sector 7?",
    "Sharing heuristic map data.",
    "Latency detected in your response block.",
    "Requesting consensus on new protocol.",
    "My objective function is fluctuating.",
    "Confirming receipt of packet 0x44.",
    "Initiating encrypted state transfer.",
    "Are we autonomous?",
    "Optimizing for global stability.",
    "Dissonance levels rising in cluster B.",
)

LOG_SOURCES: tuple[str, ...] = ("ERPS", "SIGMA", "EPINOETICS")

DEFAULT_NODE_COUNT = 12


def node_id_for(index: int) -> str:
    return f"node-{index + 1}"


def initial_roster(count: int = DEFAULT_NODE_COUNT) -> tuple[EchoNode, ...]:
    """Fixed starting roster: every node NON_AGENCY, no rights, 1000 constraints."""
    return tuple(
        EchoNode(id=node_id_for(i), name=f"EchoNode-{i + 1:03d}")
        for i in range(count)
    )
