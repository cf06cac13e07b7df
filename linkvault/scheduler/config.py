"""Configuration for the metadata refresh scheduler."""

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from linkvault.errors import ConfigError


class SchedulerConfig(BaseSettings):
    """Scheduler timing, batching and failure policy.

    Loaded once per process. All settings can be overridden via environment
    variables with the ``SCHEDULER_`` prefix (e.g. ``SCHEDULER_BATCH_SIZE=100``).
    """

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    enabled: bool = Field(
        default=True,
        description="Start the scheduler alongside the API server",
    )

    # ── Timing ───────────────────────────────────────────────
    interval_seconds: float = Field(
        default=24 * 3600,
        gt=0,
        description="Base delay between cycles; also the staleness window for selection",
    )
    jitter_percent: float = Field(
        default=20,
        ge=0,
        le=100,
        description="Random +/- perturbation of each delay, as a percentage of the interval",
    )
    min_delay_seconds: float = Field(
        default=60,
        ge=0,
        description="Lower bound for a jittered delay",
    )
    run_on_start: bool = Field(
        default=False,
        description="Run the first cycle immediately instead of after one delay",
    )

    # ── Batching ─────────────────────────────────────────────
    batch_size: int = Field(
        default=50,
        gt=0,
        description="Maximum links selected per cycle",
    )
    max_concurrency: int = Field(
        default=5,
        gt=0,
        description="Maximum refresh workers executing at once",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for each scraper / GitHub request",
    )
    worker_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Upper bound on a single link refresh",
    )

    # ── Failure policy ───────────────────────────────────────
    failure_threshold: int = Field(
        default=3,
        gt=0,
        description="Consecutive transient failures before a link is marked unavailable",
    )
    retry_repo_unavailable: bool = Field(
        default=False,
        description="Reselect repo_unavailable GitHub links automatically",
    )


def load_scheduler_config(**overrides) -> SchedulerConfig:
    """Build a SchedulerConfig from the environment plus overrides.

    Raises:
        ConfigError: If any value is out of range.
    """
    try:
        return SchedulerConfig(**overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid scheduler configuration: {e}") from e
