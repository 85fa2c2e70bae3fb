"""
Prometheus Metrics Collection for GraphGate
Decision outcomes, graph store latency and audit reliability signals
"""

import logging

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

# Create registry for metrics
registry = CollectorRegistry()

# Decision Metrics
access_decisions_total = Counter(
    "graphgate_access_decisions_total",
    "Total access decisions",
    ["status", "reason"],
    registry=registry,
)

decision_duration_seconds = Histogram(
    "graphgate_decision_duration_seconds",
    "Access decision pipeline duration in seconds",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    registry=registry,
)

# Graph Store Metrics
graph_query_duration_seconds = Histogram(
    "graphgate_graph_query_duration_seconds",
    "Graph store query duration in seconds",
    ["mode"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
    registry=registry,
)

graph_store_errors_total = Counter(
    "graphgate_graph_store_errors_total",
    "Graph store call failures",
    ["mode", "kind"],
    registry=registry,
)

# Audit Metrics
audit_write_failures_total = Counter(
    "graphgate_audit_write_failures_total",
    "Access attempts that could not be persisted",
    registry=registry,
)


class GraphGateMetrics:
    """Thin facade over the module-level collectors"""

    def record_decision(self, status: str, reason: str, duration: float) -> None:
        access_decisions_total.labels(status=status, reason=reason).inc()
        decision_duration_seconds.observe(duration)

    def record_graph_query(self, mode: str, duration: float) -> None:
        graph_query_duration_seconds.labels(mode=mode).observe(duration)

    def record_graph_store_error(self, mode: str, kind: str) -> None:
        graph_store_errors_total.labels(mode=mode, kind=kind).inc()

    def record_audit_write_failure(self) -> None:
        audit_write_failures_total.inc()

    def get_metrics(self) -> bytes:
        """Render the registry in Prometheus text exposition format"""
        return generate_latest(registry)


# Global metrics instance
metrics = GraphGateMetrics()


def get_metrics_instance() -> GraphGateMetrics:
    """Get the global metrics instance"""
    return metrics
