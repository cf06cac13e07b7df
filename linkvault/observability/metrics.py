"""
Prometheus metrics for monitoring the refresh scheduler.

Defines and exposes metrics for:
- Refresh outcomes per link
- Status transitions written by the scheduler
- External collaborator errors (scraper, GitHub)
- Cycle duration and result
- Worker pool occupancy

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from linkvault.config.settings import get_settings

logger = logging.getLogger(__name__)

# Per-link refreshes are dominated by outbound HTTP; cycles can take minutes
REFRESH_LATENCY_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)
CYCLE_LATENCY_BUCKETS = (1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the linkvault scheduler.

    Usage:
        metrics = MetricsCollector()
        metrics.start_server()

        metrics.record_refresh(outcome="success", latency=0.42)
        metrics.record_transition("inaccessible")
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.links_refreshed = Counter(
            "linkvault_links_refreshed_total",
            "Total refresh attempts by outcome",
            ["outcome"],  # success, transient_failure, permanent_failure
        )

        self.status_transitions = Counter(
            "linkvault_status_transitions_total",
            "Link status changes written by the scheduler",
            ["to_status"],
        )

        self.collaborator_errors = Counter(
            "linkvault_collaborator_errors_total",
            "Errors returned by external collaborators",
            ["collaborator", "kind"],  # collaborator: scraper, github
        )

        self.storage_write_errors = Counter(
            "linkvault_storage_write_errors_total",
            "Outcome writes dropped because storage rejected them",
        )

        self.refresh_latency = Histogram(
            "linkvault_refresh_latency_seconds",
            "Time to refresh a single link",
            buckets=REFRESH_LATENCY_BUCKETS,
        )

        self.cycles = Counter(
            "linkvault_scheduler_cycles_total",
            "Scheduler cycles by result",
            ["result"],  # ok, failed, interrupted
        )

        self.cycle_latency = Histogram(
            "linkvault_scheduler_cycle_seconds",
            "Duration of a full scheduler cycle",
            buckets=CYCLE_LATENCY_BUCKETS,
        )

        self.workers_in_flight = Gauge(
            "linkvault_workers_in_flight",
            "Refresh workers currently executing",
        )

        self.last_cycle_timestamp = Gauge(
            "linkvault_scheduler_last_cycle_timestamp_seconds",
            "Unix time at which the last cycle completed",
        )

        self.scheduler_running = Gauge(
            "linkvault_scheduler_running",
            "Scheduler loop state (1=running, 0=stopped)",
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_refresh(self, outcome: str, latency: float | None = None) -> None:
        """
        Record one link refresh.

        Args:
            outcome: success, transient_failure or permanent_failure
            latency: Optional refresh latency in seconds
        """
        self.links_refreshed.labels(outcome=outcome).inc()
        if latency is not None:
            self.refresh_latency.observe(latency)

    def record_transition(self, to_status: str) -> None:
        """Record a status change written by the scheduler."""
        self.status_transitions.labels(to_status=to_status).inc()

    def record_collaborator_error(self, collaborator: str, kind: str) -> None:
        """
        Record an error from the scraper or the GitHub client.

        Args:
            collaborator: scraper or github
            kind: Error tag (timeout, not_found, rate_limited, ...)
        """
        self.collaborator_errors.labels(collaborator=collaborator, kind=kind).inc()

    def record_write_error(self) -> None:
        """Record an outcome that could not be written."""
        self.storage_write_errors.inc()

    def record_cycle(self, result: str, latency: float, finished_at: float) -> None:
        """
        Record a completed scheduler cycle.

        Args:
            result: ok, failed or interrupted
            latency: Cycle duration in seconds
            finished_at: Unix timestamp of completion
        """
        self.cycles.labels(result=result).inc()
        self.cycle_latency.observe(latency)
        self.last_cycle_timestamp.set(finished_at)

    def set_workers_in_flight(self, count: int) -> None:
        """Set the number of currently executing workers."""
        self.workers_in_flight.set(count)

    def set_scheduler_running(self, running: bool) -> None:
        """Set the scheduler loop state gauge."""
        self.scheduler_running.set(1 if running else 0)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
