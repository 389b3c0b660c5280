"""
Prometheus metrics for channel matching, evidence upload and redirect flows.

Organized into: matching, submission, evidence, redirect.
"""

from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from typing import Optional


class EngineMetrics:
    """Metrics for recharge engine observability."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        reg = registry or CollectorRegistry()
        self.registry = reg

        # === Matching Metrics ===
        self.match_results = Counter(
            'match_results_total',
            'Completed match runs by final status',
            labelnames=['method', 'status'],
            registry=reg
        )
        self.match_attempts = Counter(
            'match_attempts_total',
            'Submission attempts by outcome',
            labelnames=['method', 'outcome'],
            registry=reg
        )
        self.failovers = Counter(
            'failovers_total',
            'Failovers to the next candidate after a retryable failure',
            labelnames=['method'],
            registry=reg
        )
        self.candidates = Histogram(
            'match_candidates',
            'Eligible candidates per match run',
            labelnames=['method'],
            buckets=[0, 1, 2, 3, 5, 8, 13],
            registry=reg
        )

        # === Submission Metrics ===
        self.submit_latency_ms = Histogram(
            'submit_latency_ms',
            'Order submission round trip (milliseconds)',
            labelnames=['method'],
            buckets=[50, 100, 200, 500, 1000, 2000, 5000, 10000],
            registry=reg
        )

        # === Evidence Metrics ===
        self.evidence_uploads = Counter(
            'evidence_uploads_total',
            'Evidence uploads by result',
            labelnames=['result'],
            registry=reg
        )
        self.evidence_rejected = Counter(
            'evidence_rejected_total',
            'Evidence files rejected before upload',
            labelnames=['reason'],
            registry=reg
        )
        self.evidence_in_flight = Gauge(
            'evidence_in_flight',
            'Evidence uploads currently running',
            registry=reg
        )

        # === Redirect Metrics ===
        self.redirect_outcomes = Counter(
            'redirect_outcomes_total',
            'Redirect flows by terminal outcome',
            labelnames=['outcome'],
            registry=reg
        )
        self.redirect_refreshes = Counter(
            'redirect_refreshes_total',
            'Redirect url refreshes',
            registry=reg
        )
