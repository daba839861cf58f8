"""Approval queue view-model derived from backend loan records"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from bms_capital.domain.exceptions import InvalidApprovalActionError
from bms_capital.domain.loan_utils import parse_int, to_number
from bms_capital.domain.models import BankDetails, LoanApprovalItem, LoanDetails
from bms_capital.domain.statuses import (
    LOAN_STATUS_APPROVED,
    LOAN_STATUS_PENDING_2ND,
    LOAN_STATUS_SENT_BACK,
)

DISPLAY_PENDING_1ST = "Pending 1st"
DISPLAY_PENDING_2ND = "Pending 2nd"
DISPLAY_APPROVED = "Approved"
DISPLAY_SENT_BACK = "Sent Back"

STAGE_PENDING = "Pending"
STAGE_APPROVED = "Approved"
STAGE_SENT_BACK = "Sent Back"

# UI action -> backend action token
APPROVAL_ACTIONS = {
    "approve": "approve",
    "sendback": "send_back",
}


def to_backend_action(action: str) -> str:
    try:
        return APPROVAL_ACTIONS[action]
    except KeyError:
        raise InvalidApprovalActionError(f"Unsupported approval action: {action!r}") from None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _format_date(value: Optional[str]) -> Optional[str]:
    parsed = _parse_timestamp(value)
    return parsed.date().isoformat() if parsed else None


def _stage_statuses(approval_level: int, status: str) -> tuple[str, Optional[str]]:
    """First and second stage labels from the approval_level counter"""
    if approval_level > 0:
        first = STAGE_APPROVED
    elif status == LOAN_STATUS_SENT_BACK:
        first = STAGE_SENT_BACK
    else:
        first = STAGE_PENDING

    if approval_level > 1:
        second = STAGE_APPROVED
    elif approval_level == 1:
        second = STAGE_PENDING
    else:
        second = None

    return first, second


def _display_status(status: str) -> str:
    if status == LOAN_STATUS_PENDING_2ND:
        return DISPLAY_PENDING_2ND
    if status == LOAN_STATUS_APPROVED:
        return DISPLAY_APPROVED
    if status == LOAN_STATUS_SENT_BACK:
        return DISPLAY_SENT_BACK
    return DISPLAY_PENDING_1ST


def map_loan_to_approval_item(loan: Dict[str, Any]) -> LoanApprovalItem:
    """Build the approval queue row for a raw backend loan"""
    status = loan.get("status") or ""
    first, second = _stage_statuses(parse_int(loan.get("approval_level")) or 0, status)

    created_at = _parse_timestamp(loan.get("created_at")) or datetime.now()
    customer = loan.get("customer") or {}
    staff = loan.get("staff") or {}
    center = loan.get("center") or {}
    branch = center.get("branch") or {}
    history = loan.get("approve_history") or {}
    first_history = history.get("first") or {}
    second_history = history.get("second") or {}
    bank = loan.get("borrower_bank_details")

    return LoanApprovalItem(
        id=str(loan["id"]),
        serial_no=parse_int(loan["id"]) or 0,
        contract_no=loan.get("loan_id") or "",
        customer_name=customer.get("full_name") or "N/A",
        nic=customer.get("customer_code") or "N/A",
        loan_amount=to_number(loan.get("approved_amount")),
        staff=staff.get("full_name") or staff.get("user_name") or "N/A",
        submitted_date=created_at.date().isoformat(),
        submitted_time=created_at.strftime("%H:%M"),
        first_approval=first,
        first_approval_by=first_history.get("name"),
        first_approval_date=_format_date(first_history.get("at")),
        second_approval=second,
        second_approval_by=second_history.get("name"),
        second_approval_date=_format_date(second_history.get("at")),
        status=_display_status(status),
        rejection_reason=loan.get("rejection_reason"),
        loan_details=LoanDetails(
            purpose=loan.get("loan_step") or "N/A",
            tenure=parse_int(loan.get("terms")) or 0,
            interest_rate=to_number(loan.get("interest_rate")),
            center=center.get("center_name") or "N/A",
            group=(loan.get("group") or {}).get("group_name") or "N/A",
            branch_manager=(
                (branch.get("manager") or {}).get("full_name")
                or branch.get("manager_name")
                or loan.get("branch_manager")
                or "Branch Manager"
            ),
            branch_name=branch.get("branch_name") or branch.get("name") or loan.get("branch_name") or "N/A",
        ),
        bank_details=BankDetails(
            bank_name=bank.get("bank_name") or "",
            account_number=bank.get("account_number") or "",
        ) if bank else None,
        raw_loan={**loan, "documents": loan.get("documents") or []},
    )


def filter_approval_items(items: List[LoanApprovalItem], search_term: str, filter_status: str) -> List[LoanApprovalItem]:
    """Case-insensitive search on contract, customer and NIC, AND an exact status filter"""
    term = search_term.lower()

    def matches(item: LoanApprovalItem) -> bool:
        matches_search = (
            term in item.contract_no.lower()
            or term in item.customer_name.lower()
            or term in item.nic.lower()
        )
        matches_status = filter_status == "all" or item.status == filter_status
        return matches_search and matches_status

    return [item for item in items if matches(item)]
