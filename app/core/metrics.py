"""Application metrics using the Prometheus client library.

This module defines all metrics in one place, a single inventory of
everything the service measures.  Other modules import specific metrics
and increment/observe them at the point of action.

Prometheus pulls these from GET /metrics (see app/api/metrics_endpoint.py).

COMPLIANCE SIGNALS
--------------------
Beyond the generic HTTP metrics, the counters below answer questions an
auditor or on-call engineer actually asks:

  authz_decisions_total{result="deny", reason="CrossTenantAccess"}
    A spike here means something is probing other tenants' data.

  audit_append_failures_total
    Must stay at zero.  Any increase means enrollment state and the
    regulatory ledger may have diverged and need reconciliation.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Core metrics
# ---------------------------------------------------------------------------

AUTHZ_DECISIONS = Counter(
    "authz_decisions_total",
    "Permission engine decisions by result and reason code",
    ["result", "reason"],  # result: "allow" or "deny"
)

ENROLLMENT_TRANSITIONS = Counter(
    "enrollment_transitions_total",
    "Enrollment state machine transitions applied",
    ["transition"],  # enroll, progress, complete, fail, drop, suspend, resume
)

CERTIFICATES_ISSUED = Counter(
    "certificates_issued_total",
    "Certificates issued by the compliance ledger",
)

CERTIFICATE_VERIFICATIONS = Counter(
    "certificate_verifications_total",
    "Certificate verification outcomes",
    ["result"],  # Valid, Tampered
)

AUDIT_APPEND_FAILURES = Counter(
    "audit_append_failures_total",
    "Audit entry appends that failed after all retries",
)
