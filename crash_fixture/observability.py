"""
Observability: Prometheus counters for requests, connection errors and crashes.
Exposed over HTTP only when METRICS_PORT is configured.
"""
from prometheus_client import CollectorRegistry, Counter, generate_latest, start_http_server

_metrics_registry: CollectorRegistry | None = None
_request_count: Counter | None = None
_connection_errors: Counter | None = None
_crash_count: Counter | None = None


def setup_metrics() -> CollectorRegistry:
    global _metrics_registry, _request_count, _connection_errors, _crash_count
    _metrics_registry = CollectorRegistry()
    _request_count = Counter(
        "fixture_requests_total",
        "Requests answered by the fixture",
        ["instance"],
        registry=_metrics_registry,
    )
    _connection_errors = Counter(
        "fixture_connection_errors_total",
        "Connections dropped after a read or write failure",
        ["instance"],
        registry=_metrics_registry,
    )
    _crash_count = Counter(
        "fixture_crashes_total",
        "Deliberate crashes triggered",
        ["instance"],
        registry=_metrics_registry,
    )
    return _metrics_registry


def record_request(instance: int) -> None:
    if _request_count:
        _request_count.labels(instance=str(instance)).inc()


def record_connection_error(instance: int) -> None:
    if _connection_errors:
        _connection_errors.labels(instance=str(instance)).inc()


def record_crash(instance: int) -> None:
    if _crash_count:
        _crash_count.labels(instance=str(instance)).inc()


def get_metrics_content() -> bytes:
    if _metrics_registry is None:
        return b""
    return generate_latest(_metrics_registry)


def start_metrics_server(port: int, host: str = "0.0.0.0") -> None:
    """Serve /metrics on a side port. Raises OSError if the port is taken."""
    registry = _metrics_registry or setup_metrics()
    start_http_server(port, addr=host, registry=registry)
