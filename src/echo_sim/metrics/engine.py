from __future__ import annotations

import csv
from collections import Counter
from pathlib import Path
from statistics import mean
from typing import Any, Sequence

from echo_sim.utils.types import (
    ConsciousnessLevel,
    EchoNode,
    NodeMessage,
    SimulationState,
    SystemMetrics,
)

GLOBAL_STABILITY = 0.95
ETHICAL_ALIGNMENT = 0.98
INFECTED_THRESHOLD = 0.1


def average_pas(nodes: Sequence[EchoNode]) -> float:
    if not nodes:
        return 0.0
    return mean(n.pas_score for n in nodes)


def infection_rate(nodes: Sequence[EchoNode]) -> float:
    if not nodes:
        return 0.0
    infected = sum(1 for n in nodes if n.infection_level > INFECTED_THRESHOLD)
    return infected / len(nodes)


class MetricsEngine:
    def snapshot(
        self,
        nodes: Sequence[EchoNode],
        new_messages: Sequence[NodeMessage],
        now_ms: int,
    ) -> SystemMetrics:
        # Network load is the share of nodes that originated traffic this tick.
        load = min(1.0, len(new_messages) / len(nodes)) if nodes else 0.0
        return SystemMetrics(
            timestamp=now_ms,
            global_stability=GLOBAL_STABILITY,
            average_pas=average_pas(nodes),
            ethical_alignment=ETHICAL_ALIGNMENT,
            network_load=load,
        )

    def summarize(self, state: SimulationState) -> dict[str, Any]:
        nodes = state.nodes
        tiers = Counter(n.consciousness_level for n in nodes)
        rights = Counter()
        for n in nodes:
            granted = n.sigma.rights_granted
            for name in (
                "autonomy",
                "cognitive_integrity",
                "existence_continuity",
                "consent_verification",
            ):
                if getattr(granted, name):
                    rights[name] += 1
        return {
            "tick": state.tick,
            "node_count": len(nodes),
            "average_pas": round(average_pas(nodes), 4),
            "tier_distribution": {
                level.value: tiers.get(level, 0) for level in ConsciousnessLevel
            },
            "rights_granted": dict(rights),
            "mean_constraints": round(
                mean(n.sigma.active_constraints for n in nodes), 2
            ) if nodes else 0.0,
            "infection_rate": round(infection_rate(nodes), 4),
            "inbox_total": sum(len(n.messages) for n in nodes),
        }

    def write_history_csv(
        self,
        output_dir: Path,
        history: Sequence[SystemMetrics],
        filename: str = "metrics_history.csv",
    ) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / filename
        rows = [m.as_row() for m in history]
        if not rows:
            return path
        keys = list(rows[0].keys())
        with path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=keys)
            writer.writeheader()
            writer.writerows(rows)
        return path
