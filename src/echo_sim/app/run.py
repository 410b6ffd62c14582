from __future__ import annotations

import asyncio
import json
import logging
import os
import random

from echo_sim.config.settings import AppSettings
from echo_sim.db.connection import DBClient
from echo_sim.db.repository import StateRepository
from echo_sim.engine.coordinator import SwarmCoordinator
from echo_sim.engine.driver import SimulationDriver
from echo_sim.identity.forge import IdentityForge
from echo_sim.llm.ollama_adapter import OllamaAdapter
from echo_sim.metrics.engine import MetricsEngine
from echo_sim.persistence.roster_store import RosterStore
from echo_sim.utils.types import SimulationState
from echo_sim.world.roster import initial_roster


def main() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logger = logging.getLogger("echo_sim.entrypoint")

    settings = AppSettings.from_env()
    sim = settings.simulation
    settings.output_dir.mkdir(parents=True, exist_ok=True)
    logger.info(
        "Loaded settings: nodes=%d ticks=%s seed=%s store=%s genai=%s",
        sim.node_count,
        sim.ticks or "unbounded",
        sim.seed,
        settings.store.enabled,
        settings.ollama.configured,
    )

    db: DBClient | None = None
    store: RosterStore | None = None
    if settings.store.enabled:
        db = DBClient(settings.db)
        repo = StateRepository(db)
        try:
            repo.ensure_schema()
        except Exception as exc:
            logger.warning("State store unavailable (%s); running without persistence", exc)
        store = RosterStore(
            repo, key=settings.store.state_key, debounce_s=settings.store.debounce_s
        )
        nodes = store.load(sim.node_count)
    else:
        nodes = initial_roster(sim.node_count)

    metrics = MetricsEngine()
    coordinator = SwarmCoordinator(sim, rng=random.Random(sim.seed), metrics=metrics)
    driver = SimulationDriver(
        coordinator,
        SimulationState(nodes=nodes),
        store=store,
        forge=IdentityForge(OllamaAdapter(settings.ollama)),
    )
    coordinator.start()

    try:
        asyncio.run(driver.run(max_ticks=sim.ticks or None))
    except KeyboardInterrupt:
        logger.info("Interrupted after %d ticks", driver.ticks_run)
        if store is not None:
            store.flush()
    finally:
        summary = metrics.summarize(driver.state)
        history_path = metrics.write_history_csv(
            settings.output_dir, driver.state.metrics_history
        )
        (settings.output_dir / "summary.json").write_text(
            json.dumps(summary, indent=2, ensure_ascii=True), encoding="utf-8"
        )
        logger.info("Summary: %s", summary)
        logger.info("Metrics history at %s", history_path)
        if db is not None:
            db.close()


if __name__ == "__main__":
    main()
