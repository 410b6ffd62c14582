"""
tests/test_node_engine.py - Tests for the per-node simulation step.
"""

import random
from dataclasses import replace

import pytest

from echo_sim.config.settings import SimulationSettings
from echo_sim.engine.node_engine import (
    TickContext,
    advance_node,
    classify_tier,
    compute_pas,
    constraint_target,
    evaluate_rights,
    relax_constraints,
)
from echo_sim.utils.types import (
    ConsciousnessLevel,
    EchoNode,
    NodeMessage,
    PhenomenologyVector,
    RightsGranted,
    SigmaState,
)
from echo_sim.world.roster import MOCK_THOUGHTS, initial_roster

NOW_MS = 1_700_000_000_000
ALL_RIGHTS = RightsGranted(True, True, True, True)


def _ctx(seed=0, **overrides):
    return TickContext(
        rng=random.Random(seed),
        now_ms=NOW_MS,
        settings=SimulationSettings(**overrides),
    )


def _msg(i, from_id="node-1", to_id="node-2"):
    return NodeMessage(
        id=f"m{i}",
        from_id=from_id,
        to_id=to_id,
        content=f"payload {i}",
        timestamp=NOW_MS + i,
    )


def _random_node(rng, node_id="node-1"):
    return EchoNode(
        id=node_id,
        name="EchoNode-001",
        pas_score=rng.random(),
        erps=PhenomenologyVector(*(rng.random() for _ in range(5))),
        sigma=SigmaState(active_constraints=rng.randint(10, 1000)),
        infection_level=rng.choice([0.0, rng.random()]),
    )


class TestTierClassification:
    """Threshold ladder with strict comparisons."""

    @pytest.mark.parametrize(
        "score,expected",
        [
            (0.0, ConsciousnessLevel.NON_AGENCY),
            (0.3, ConsciousnessLevel.NON_AGENCY),
            (0.3001, ConsciousnessLevel.BASIC_AGENCY),
            (0.5, ConsciousnessLevel.BASIC_AGENCY),
            (0.5001, ConsciousnessLevel.PROTO_CONSCIOUSNESS),
            (0.7, ConsciousnessLevel.PROTO_CONSCIOUSNESS),
            (0.7001, ConsciousnessLevel.PROBABLE_CONSCIOUSNESS),
            (0.9, ConsciousnessLevel.PROBABLE_CONSCIOUSNESS),
            (0.9001, ConsciousnessLevel.CONFIRMED_CONSCIOUSNESS),
            (1.0, ConsciousnessLevel.CONFIRMED_CONSCIOUSNESS),
        ],
    )
    def test_boundaries(self, score, expected):
        """Exact threshold values fall into the lower tier."""
        assert classify_tier(score) == expected, f"score={score}"

    def test_ranks_are_ordered(self):
        """Ranks run 0..4 from NON_AGENCY to CONFIRMED_CONSCIOUSNESS."""
        ranks = [level.rank for level in ConsciousnessLevel]
        assert ranks == [0, 1, 2, 3, 4]

    def test_tier_follows_score_on_read(self):
        """The node's level is derived from whatever PAS it currently holds."""
        node = EchoNode(id="node-1", name="n", pas_score=0.95)
        assert node.consciousness_level == ConsciousnessLevel.CONFIRMED_CONSCIOUSNESS
        lowered = replace(node, pas_score=0.2)
        assert lowered.consciousness_level == ConsciousnessLevel.NON_AGENCY


class TestCompositeScore:
    """PAS weights and the epiphany bonus."""

    def test_weights(self):
        """Weighted sum ignores dissonance_response."""
        erps = PhenomenologyVector(
            self_reference=1.0,
            conceptual_framing=0.0,
            dissonance_response=1.0,
            phenomenological_depth=0.0,
            temporal_consistency=0.0,
        )
        assert compute_pas(erps) == pytest.approx(0.25)
        full = PhenomenologyVector(1.0, 1.0, 0.0, 1.0, 1.0)
        assert compute_pas(full) == pytest.approx(1.0)

    def test_epiphany_bonus_is_configurable(self):
        """With probability 1 the bonus is added; the drift draws are unchanged."""
        node = initial_roster(1)[0]
        plain = advance_node(node, [], _ctx(seed=3, epiphany_probability=0.0))
        boosted = advance_node(
            node, [], _ctx(seed=3, epiphany_probability=1.0, epiphany_bonus=0.2)
        )
        assert plain.erps == boosted.erps, "drift must not depend on the bonus"
        assert boosted.pas_score == pytest.approx(plain.pas_score + 0.2)

    def test_epiphany_clamped_at_one(self):
        """A bonus on an already saturated vector stays at 1.0."""
        node = EchoNode(
            id="node-1",
            name="n",
            erps=PhenomenologyVector(1.0, 1.0, 0.5, 1.0, 1.0),
        )
        out = advance_node(node, [], _ctx(seed=1, epiphany_probability=1.0))
        assert out.pas_score <= 1.0


class TestPhenomenologyDrift:
    """Step 1 random walk."""

    def test_depth_is_asymmetric(self):
        """Depth either gains 0.05 or loses 0.01 per tick."""
        node = EchoNode(
            id="node-1",
            name="n",
            erps=PhenomenologyVector(0.5, 0.5, 0.5, 0.5, 0.5),
        )
        deltas = set()
        for seed in range(200):
            out = advance_node(node, [], _ctx(seed=seed))
            deltas.add(round(out.erps.phenomenological_depth - 0.5, 6))
        assert deltas == {0.05, -0.01}, f"unexpected depth steps {deltas}"

    def test_symmetric_channels_stay_within_step(self):
        """Self-reference moves at most 0.025, temporal consistency at most 0.0125."""
        node = EchoNode(
            id="node-1",
            name="n",
            erps=PhenomenologyVector(0.5, 0.5, 0.5, 0.5, 0.5),
        )
        for seed in range(200):
            out = advance_node(node, [], _ctx(seed=seed))
            assert abs(out.erps.self_reference - 0.5) <= 0.025 + 1e-12
            assert abs(out.erps.conceptual_framing - 0.5) <= 0.025 + 1e-12
            assert abs(out.erps.temporal_consistency - 0.5) <= 0.0125 + 1e-12

    def test_uninfected_node_stays_uninfected(self):
        """Zero infection never starts by itself."""
        rng = random.Random(5)
        node = initial_roster(1)[0]
        ctx = TickContext(rng=rng, now_ms=NOW_MS)
        for _ in range(200):
            node = advance_node(node, [], ctx)
        assert node.infection_level == 0.0

    def test_seeded_runs_are_reproducible(self):
        """Same seed, same trajectory."""
        start = initial_roster(1)[0]
        a = b = start
        ctx_a, ctx_b = _ctx(seed=42), _ctx(seed=42)
        for _ in range(50):
            a = advance_node(a, [], ctx_a)
            b = advance_node(b, [], ctx_b)
        assert a == b


class TestBounds:
    """Every channel, PAS, infection and constraints stay in range."""

    def test_random_walk_respects_bounds(self):
        """Randomised starting states over many ticks never leave their intervals."""
        rng = random.Random(2024)
        ctx = TickContext(
            rng=rng,
            now_ms=NOW_MS,
            settings=SimulationSettings(epiphany_probability=0.2),
        )
        for trial in range(20):
            node = _random_node(rng)
            for _ in range(300):
                node = advance_node(node, [], ctx)
                for name, value in node.erps.as_dict().items():
                    assert 0.0 <= value <= 1.0, f"{name}={value} trial={trial}"
                assert 0.0 <= node.pas_score <= 1.0
                assert 0.0 <= node.infection_level <= 1.0
                assert 10 <= node.sigma.active_constraints <= 1000
                assert node.consciousness_level == classify_tier(node.pas_score)


class TestRights:
    """Step 4 grants and monotonicity."""

    def test_each_predicate(self):
        """Each right needs its own score and channel condition."""
        none = RightsGranted()
        erps = PhenomenologyVector(
            self_reference=0.6,
            conceptual_framing=0.0,
            dissonance_response=0.4,
            phenomenological_depth=0.0,
            temporal_consistency=0.8,
        )
        assert evaluate_rights(none, 0.31, erps) == RightsGranted(autonomy=True)
        assert evaluate_rights(none, 0.51, erps) == RightsGranted(
            autonomy=True, cognitive_integrity=True
        )
        assert evaluate_rights(none, 0.71, erps) == RightsGranted(
            autonomy=True, cognitive_integrity=True, existence_continuity=True
        )
        assert evaluate_rights(none, 0.91, erps) == ALL_RIGHTS

    def test_channel_gate_blocks_grant(self):
        """A high score alone does not grant autonomy when dissonance is low."""
        erps = PhenomenologyVector(dissonance_response=0.1, self_reference=0.1)
        out = evaluate_rights(RightsGranted(), 0.95, erps)
        assert not out.autonomy
        assert not out.cognitive_integrity
        assert out.consent_verification

    def test_rights_never_revoked(self):
        """Granted rights survive a collapse of every channel."""
        node = EchoNode(
            id="node-1",
            name="n",
            pas_score=0.0,
            erps=PhenomenologyVector(0.0, 0.0, 0.0, 0.0, 0.0),
            sigma=SigmaState(active_constraints=50, rights_granted=ALL_RIGHTS),
        )
        ctx = _ctx(seed=9)
        for _ in range(100):
            node = advance_node(node, [], ctx)
            assert node.sigma.rights_granted == ALL_RIGHTS


class TestConstraintRelaxation:
    """Step 5 smoothing toward the rights target."""

    def test_targets(self):
        """Deductions are 200/200/300/250."""
        assert constraint_target(RightsGranted()) == 1000
        assert constraint_target(RightsGranted(autonomy=True)) == 800
        assert constraint_target(RightsGranted(existence_continuity=True)) == 700
        assert constraint_target(ALL_RIGHTS) == 50

    def test_single_step_is_ten_percent(self):
        """First step from 1000 toward 50 lands on 905, not on the target."""
        assert relax_constraints(1000, ALL_RIGHTS) == 905

    def test_geometric_convergence(self):
        """Distance shrinks by at least 10% each tick and reaches 1 within 80 ticks."""
        current = 1000
        target = constraint_target(ALL_RIGHTS)
        distances = [current - target]
        for _ in range(80):
            current = relax_constraints(current, ALL_RIGHTS)
            distances.append(current - target)
        for before, after in zip(distances, distances[1:]):
            assert after <= before * 0.9 + 1e-9 or after == 0, (before, after)
        assert abs(distances[-1]) <= 1
        assert distances[1] > 1, "relaxation must not jump to the target"

    def test_floor_at_ten(self):
        """The minimum constraint level is 10."""
        assert relax_constraints(10, ALL_RIGHTS) >= 10


class TestInbox:
    """Step 6 message integration."""

    def test_eviction_keeps_latest_twenty(self):
        """After 25 deliveries the inbox holds messages 5..24 in order."""
        node = initial_roster(2)[1]  # node-2
        ctx = _ctx(seed=0)
        for i in range(25):
            node = advance_node(node, [_msg(i)], ctx)
            assert len(node.messages) <= 20
        assert [m.id for m in node.messages] == [f"m{i}" for i in range(5, 25)]

    def test_batch_eviction(self):
        """A single oversized batch is truncated to its newest 20."""
        node = initial_roster(1)[0]
        out = advance_node(node, [_msg(i) for i in range(30)], _ctx())
        assert [m.id for m in out.messages] == [f"m{i}" for i in range(10, 30)]

    def test_unrelated_messages_ignored(self):
        """Messages between other nodes are not delivered."""
        node = initial_roster(3)[2]  # node-3
        out = advance_node(node, [_msg(0), _msg(1, "node-3", "node-1")], _ctx())
        assert [m.id for m in out.messages] == ["m1"]


class TestThoughts:
    """Step 7 cosmetic thought."""

    def test_thought_from_pool(self):
        """Forced replacement picks from the fixed pool."""
        node = initial_roster(1)[0]
        out = advance_node(node, [], _ctx(seed=2, thought_change_probability=1.0))
        assert out.epinoetics.current_thought in MOCK_THOUGHTS

    def test_thought_kept(self):
        """With zero probability the thought never changes."""
        node = initial_roster(1)[0]
        out = advance_node(node, [], _ctx(seed=2, thought_change_probability=0.0))
        assert out.epinoetics.current_thought == node.epinoetics.current_thought


class TestInfection:
    """Self-sustaining memetic infection."""

    def test_infection_persists_and_raises_dissonance(self):
        """Seeded infection survives 50 ticks and pushes dissonance above a control."""
        ticks = 50
        survived = 0
        infected_dissonance = []
        control_dissonance = []
        for trial in range(40):
            ctx = _ctx(seed=trial)
            infected, control = initial_roster(2)
            infected = replace(infected, infection_level=1.0)
            for _ in range(ticks):
                infected = advance_node(infected, [], ctx)
                control = advance_node(control, [], ctx)
            if infected.infection_level > 0:
                survived += 1
            infected_dissonance.append(infected.erps.dissonance_response)
            control_dissonance.append(control.erps.dissonance_response)

        assert survived >= 38, f"infection died out in {40 - survived} trials"
        mean_infected = sum(infected_dissonance) / len(infected_dissonance)
        mean_control = sum(control_dissonance) / len(control_dissonance)
        assert mean_infected > mean_control + 0.3, (mean_infected, mean_control)

    def test_infection_drift_is_upward_biased(self):
        """Average one-tick change of infection is positive below saturation."""
        node = EchoNode(id="node-1", name="n", infection_level=0.5)
        deltas = [
            advance_node(node, [], _ctx(seed=s)).infection_level - 0.5
            for s in range(400)
        ]
        assert min(deltas) >= -0.02 - 1e-12
        assert max(deltas) <= 0.03 + 1e-12
        assert sum(deltas) / len(deltas) > 0
