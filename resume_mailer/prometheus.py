"""Prometheus metrics exposed by the resume mailer."""

from prometheus_client import Counter, Gauge, CollectorRegistry, generate_latest

class MailMetrics:
    """Wrapper around the Prometheus registry used by the service."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """Create counters and gauges inside the provided registry."""
        self.registry = registry or CollectorRegistry()
        self.sent = Counter("rms_sent_total", "Total sent emails", registry=self.registry)
        self.errors = Counter("rms_errors_total", "Total send errors", registry=self.registry)
        self.batches = Counter("rms_batches_total", "Total batches dispatched", registry=self.registry)
        self.requests = Counter("rms_requests_total", "Relay requests by outcome", ["outcome"], registry=self.registry)
        self.inflight = Gauge("rms_inflight_sends", "Sends currently pending", registry=self.registry)

    def inc_sent(self):
        """Increase the ``sent`` counter."""
        self.sent.inc()

    def inc_error(self):
        """Increase the ``errors`` counter."""
        self.errors.inc()

    def inc_batch(self):
        """Increase the ``batches`` counter."""
        self.batches.inc()

    def inc_request(self, outcome: str):
        """Count a finished relay request (``ok``, ``rejected`` or ``failed``)."""
        self.requests.labels(outcome=outcome or "unknown").inc()

    def set_inflight(self, value: int):
        """Update the gauge tracking pending sends."""
        self.inflight.set(value)

    def generate_latest(self) -> bytes:
        """Return the latest metrics snapshot in Prometheus text format."""
        return generate_latest(self.registry)
