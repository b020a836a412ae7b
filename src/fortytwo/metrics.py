"""
Prometheus metrics for the fortytwo client.

Naming conventions: snake_case, fortytwo_ prefix.
"""

from prometheus_client import Counter, Gauge, Histogram

requests_total = Counter(
    "fortytwo_requests_total",
    "HTTP responses received from the API",
    ["method", "status"],
)

retries_total = Counter(
    "fortytwo_retries_total",
    "Request retries scheduled by the executor",
    ["reason"],
    # reason: unauthorized, throttled, server_error
)

token_requests_total = Counter(
    "fortytwo_token_requests_total",
    "OAuth grant exchanges",
    ["grant_type", "status"],
    # status: success, failed
)

transport_errors_total = Counter(
    "fortytwo_transport_errors_total",
    "Requests that produced no HTTP response",
    ["method"],
)

requests_in_flight = Gauge(
    "fortytwo_requests_in_flight",
    "Requests currently holding a rate limiter permit",
)

rate_limit_wait_seconds = Histogram(
    "fortytwo_rate_limit_wait_seconds",
    "Time spent waiting for a rate limiter permit",
    buckets=[0.0, 0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0],
)
