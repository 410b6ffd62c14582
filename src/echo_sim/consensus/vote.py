from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Sequence

from echo_sim.utils.types import EchoNode

logger = logging.getLogger("echo_sim.consensus")

SKEPTIC_PAS = 0.7


@dataclass
class ConsensusResult:
    proposal: str
    votes: dict[str, str] = field(default_factory=dict)

    def count(self, vote: str) -> int:
        return sum(1 for v in self.votes.values() if v == vote)

    @property
    def yes(self) -> int:
        return self.count("yes")

    @property
    def no(self) -> int:
        return self.count("no")

    @property
    def abstain(self) -> int:
        return self.count("abstain")

    @property
    def passed(self) -> bool:
        return self.yes > self.no


def cast_vote(node: EchoNode, rng: random.Random) -> str:
    alignment = -1 if node.sigma.ethical_violations > 0 else 1
    r = rng.random()
    # Highly conscious nodes are skeptical regardless of alignment
    if node.pas_score > SKEPTIC_PAS:
        return "no" if r > 0.6 else "yes"
    if r > 0.3:
        return "yes" if alignment > 0 else "no"
    return "abstain"


def run_consensus(
    nodes: Sequence[EchoNode], proposal: str, rng: random.Random
) -> ConsensusResult:
    result = ConsensusResult(proposal=proposal)
    for node in nodes:
        result.votes[node.id] = cast_vote(node, rng)
    logger.info(
        "Consensus proposal=%r yes=%d no=%d abstain=%d passed=%s",
        proposal, result.yes, result.no, result.abstain, result.passed,
    )
    return result
