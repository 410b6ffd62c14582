from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class DBSettings:
    host: str
    port: int
    name: str
    user: str
    password: str
    connect_timeout: int = 5

    @property
    def dsn(self) -> str:
        return (
            f"dbname={self.name} user={self.user} password={self.password} "
            f"host={self.host} port={self.port} connect_timeout={self.connect_timeout}"
        )


@dataclass(frozen=True)
class StoreSettings:
    enabled: bool = False
    state_key: str = "echo_sim.roster"
    debounce_s: float = 1.0
    """Minimum wall-clock gap between two roster writes."""


@dataclass(frozen=True)
class OllamaSettings:
    host: str = ""
    llm_model: str = "qwen2.5:1.5b"
    llm_temperature: float = 0.7
    timeout_seconds: int = 30
    max_retries: int = 1
    retry_backoff_seconds: float = 1.5

    @property
    def configured(self) -> bool:
        """An empty host means no generative service is reachable."""
        return bool(self.host.strip())


@dataclass(frozen=True)
class SimulationSettings:
    node_count: int = 12
    ticks: int = 0
    """Ticks to run from the entrypoint; 0 runs until interrupted."""
    tick_interval_s: float = 1.0
    topology_interval_s: float = 5.0
    seed: int | None = None
    log_tick_interval: int = 10

    # Per-tick probabilities
    message_probability: float = 0.15
    """Chance that a node originates one message on a tick."""
    epiphany_probability: float = 0.01
    """Chance of the additive PAS bonus on a tick."""
    epiphany_bonus: float = 0.2
    thought_change_probability: float = 0.05
    log_probability: float = 0.2
    """Chance of a cosmetic process-cycle entry in the system log feed."""

    # Buffers
    inbox_capacity: int = 20
    metrics_history_size: int = 30
    log_buffer_size: int = 50

    # Memetic infection
    infection_dissonance_gain: float = 0.02
    """Dissonance added per tick per unit of infection."""


@dataclass(frozen=True)
class AppSettings:
    db: DBSettings
    store: StoreSettings
    ollama: OllamaSettings
    simulation: SimulationSettings
    output_dir: Path

    @staticmethod
    def from_env() -> "AppSettings":
        seed_raw = os.getenv("SIM_SEED", "").strip()
        return AppSettings(
            db=DBSettings(
                host=os.getenv("DB_HOST", "localhost"),
                port=int(os.getenv("DB_PORT", "5432")),
                name=os.getenv("DB_NAME", "echo"),
                user=os.getenv("DB_USER", "echo_user"),
                password=os.getenv("DB_PASSWORD", "echo_pass"),
                connect_timeout=int(os.getenv("DB_CONNECT_TIMEOUT", "5")),
            ),
            store=StoreSettings(
                enabled=os.getenv("STATE_STORE_ENABLED", "0").lower()
                in {"1", "true", "yes"},
                state_key=os.getenv("STATE_KEY", "echo_sim.roster"),
                debounce_s=float(os.getenv("STATE_DEBOUNCE_S", "1.0")),
            ),
            ollama=OllamaSettings(
                host=os.getenv("OLLAMA_HOST", ""),
                llm_model=os.getenv("LLM_MODEL", "qwen2.5:1.5b"),
                llm_temperature=float(os.getenv("LLM_TEMPERATURE", "0.7")),
                timeout_seconds=int(os.getenv("OLLAMA_TIMEOUT_SECONDS", "30")),
                max_retries=int(os.getenv("OLLAMA_MAX_RETRIES", "1")),
                retry_backoff_seconds=float(
                    os.getenv("OLLAMA_RETRY_BACKOFF_SECONDS", "1.5")
                ),
            ),
            simulation=SimulationSettings(
                node_count=int(os.getenv("NODE_COUNT", "12")),
                ticks=int(os.getenv("TICKS", "0")),
                tick_interval_s=float(os.getenv("TICK_INTERVAL_S", "1.0")),
                topology_interval_s=float(
                    os.getenv("TOPOLOGY_INTERVAL_S", "5.0")
                ),
                seed=int(seed_raw) if seed_raw else None,
                log_tick_interval=int(os.getenv("LOG_TICK_INTERVAL", "10")),
                message_probability=float(
                    os.getenv("MESSAGE_PROBABILITY", "0.15")
                ),
                epiphany_probability=float(
                    os.getenv("EPIPHANY_PROBABILITY", "0.01")
                ),
                epiphany_bonus=float(os.getenv("EPIPHANY_BONUS", "0.2")),
                thought_change_probability=float(
                    os.getenv("THOUGHT_CHANGE_PROBABILITY", "0.05")
                ),
                log_probability=float(os.getenv("LOG_PROBABILITY", "0.2")),
                inbox_capacity=int(os.getenv("INBOX_CAPACITY", "20")),
                metrics_history_size=int(
                    os.getenv("METRICS_HISTORY_SIZE", "30")
                ),
                log_buffer_size=int(os.getenv("LOG_BUFFER_SIZE", "50")),
                infection_dissonance_gain=float(
                    os.getenv("INFECTION_DISSONANCE_GAIN", "0.02")
                ),
            ),
            output_dir=Path(os.getenv("OUTPUT_DIR", "outputs")),
        )
