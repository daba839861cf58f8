"""Prometheus metrics for backend calls, NIC lookups, approvals and drafts"""

from prometheus_client import Counter, Histogram

# Backend API metrics
backend_latency_histogram = Histogram(
    "bms_backend_latency_seconds",
    "Backend REST API response time",
    ["endpoint"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

backend_failures_counter = Counter(
    "bms_backend_failures_total",
    "Failed backend loads that degraded to empty results",
    ["resource"],
)

# Lookup metrics
lookup_counter = Counter(
    "bms_nic_lookup_total",
    "NIC-triggered lookups by outcome",
    ["kind", "outcome"],  # kind: customer | joint_borrower
)

# Approval metrics
approval_action_counter = Counter(
    "bms_approval_action_total",
    "Approval workflow actions",
    ["stage", "action", "outcome"],
)

# Draft metrics
draft_operation_counter = Counter(
    "bms_draft_operation_total",
    "Draft save/load/delete operations",
    ["operation", "outcome"],
)


def record_lookup(kind: str, outcome: str) -> None:
    lookup_counter.labels(kind=kind, outcome=outcome).inc()


def record_approval(stage: str, action: str, success: bool) -> None:
    approval_action_counter.labels(
        stage=stage,
        action=action,
        outcome="success" if success else "failure",
    ).inc()


def record_draft_operation(operation: str, success: bool) -> None:
    draft_operation_counter.labels(
        operation=operation,
        outcome="success" if success else "failure",
    ).inc()
