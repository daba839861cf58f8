"""Loan status vocabulary shared by the form and approval workflows"""

import re

# Approval workflow
LOAN_STATUS_PENDING_1ST = "pending_1st"
LOAN_STATUS_PENDING_2ND = "pending_2nd"  # loans >= 200,000 need a second approval
LOAN_STATUS_APPROVED = "approved"
LOAN_STATUS_SENT_BACK = "sent_back"

# Lifecycle
LOAN_STATUS_ACTIVE = "Active"
LOAN_STATUS_COMPLETED = "Completed"
LOAN_STATUS_REJECTED = "Rejected"

LOAN_STATUSES = (
    LOAN_STATUS_PENDING_1ST,
    LOAN_STATUS_PENDING_2ND,
    LOAN_STATUS_APPROVED,
    LOAN_STATUS_SENT_BACK,
    LOAN_STATUS_ACTIVE,
    LOAN_STATUS_COMPLETED,
    LOAN_STATUS_REJECTED,
)

LOAN_ACTIVE_STATUSES = (
    LOAN_STATUS_PENDING_1ST,
    LOAN_STATUS_PENDING_2ND,
    LOAN_STATUS_APPROVED,
    LOAN_STATUS_SENT_BACK,
    LOAN_STATUS_ACTIVE,
)

LOAN_CLOSED_STATUSES = (
    LOAN_STATUS_COMPLETED,
    LOAN_STATUS_REJECTED,
)

LOAN_APPROVAL_QUEUE_STATUSES = (
    LOAN_STATUS_PENDING_1ST,
    LOAN_STATUS_PENDING_2ND,
)

LOAN_STATUS_LABELS = {
    LOAN_STATUS_PENDING_1ST: "Pending 1st Approval",
    LOAN_STATUS_PENDING_2ND: "Pending 2nd Approval",
    LOAN_STATUS_APPROVED: "Approved",
    LOAN_STATUS_SENT_BACK: "Sent Back",
    LOAN_STATUS_ACTIVE: "Active",
    LOAN_STATUS_COMPLETED: "Completed",
    LOAN_STATUS_REJECTED: "Rejected",
}


def get_loan_status_label(status: str) -> str:
    """Display label for a status; unknown values are title-cased"""
    if status in LOAN_STATUS_LABELS:
        return LOAN_STATUS_LABELS[status]
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), status.replace("_", " "))


def is_loan_active(status: str) -> bool:
    return status in LOAN_ACTIVE_STATUSES


def is_loan_closed(status: str) -> bool:
    return status in LOAN_CLOSED_STATUSES
