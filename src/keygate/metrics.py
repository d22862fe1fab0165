"""Prometheus metrics for KeyGate."""

from prometheus_client import Counter, Gauge, Histogram, Info

from keygate import __version__


class KeyGateMetrics:
    """Metrics collection for KeyGate."""

    def __init__(self) -> None:
        # Application info
        self.info = Info("keygate", "KeyGate access-control gateway")
        self.info.info({"version": __version__})

        # Admission pipeline
        self.admission_total = Counter(
            "keygate_admission_total",
            "Admission decisions by pipeline stage",
            ["stage", "result"],
        )

        self.banned_identities = Gauge(
            "keygate_banned_identities",
            "Number of identities currently banned",
        )

        # Route outcomes
        self.key_checks_total = Counter(
            "keygate_key_checks_total",
            "Total number of submitted key checks",
            ["result"],
        )

        self.tokens_total = Counter(
            "keygate_tokens_total",
            "Session token operations",
            ["operation", "result"],
        )

        self.http_requests_total = Counter(
            "keygate_http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status"],
        )

        self.http_request_duration = Histogram(
            "keygate_http_request_duration_seconds",
            "Duration of HTTP requests",
            ["method", "endpoint"],
            buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
        )

        # Upstream key service
        self.upstream_requests_total = Counter(
            "keygate_upstream_requests_total",
            "Total requests to the key-issuing service",
            ["status"],
        )

        self.upstream_latency = Histogram(
            "keygate_upstream_latency_seconds",
            "Key-issuing service latency",
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
        )


# Singleton instance
metrics = KeyGateMetrics()
