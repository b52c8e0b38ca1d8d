"""Prometheus metrics kept in an isolated registry."""

from prometheus_client import CollectorRegistry, Counter

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter(
    "requests_total", "Total requests by endpoint", ["method", "path"], registry=CUSTOM_REGISTRY
)
ERRORS = Counter(
    "errors_total", "Total errors by endpoint", ["method", "path"], registry=CUSTOM_REGISTRY
)
CHAT_STREAMS = Counter(
    "chat_streams_total", "Chat-send streams opened", registry=CUSTOM_REGISTRY
)
CHAT_STREAM_FRAGMENTS = Counter(
    "chat_stream_fragments_total", "Text fragments relayed to clients", registry=CUSTOM_REGISTRY
)
CHAT_STREAM_ERRORS = Counter(
    "chat_stream_errors_total", "Chat-send streams that ended with an error event", registry=CUSTOM_REGISTRY
)
