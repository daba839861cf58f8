"""Two-stage loan approval queue"""

import logging
from typing import List, Optional

from bms_capital.config import settings
from bms_capital.domain.approvals import filter_approval_items, map_loan_to_approval_item, to_backend_action
from bms_capital.domain.exceptions import BackendAPIError
from bms_capital.domain.models import ActionResult, LoanApprovalItem
from bms_capital.domain.statuses import LOAN_APPROVAL_QUEUE_STATUSES
from bms_capital.infrastructure.clients.loans import LoanClient
from bms_capital.infrastructure.observability.logging import log_approval
from bms_capital.infrastructure.observability.metrics import record_approval

STAGE_FIRST = "first"
STAGE_SECOND = "second"

SUCCESS_MESSAGES = {
    (STAGE_FIRST, "approve"): "Loan approved successfully",
    (STAGE_SECOND, "approve"): "Final approval successful",
}
SENT_BACK_MESSAGE = "Loan sent back for correction"
FAILURE_MESSAGE = "Failed to process approval"


class LoanApprovalController:
    """Loans awaiting 1st or 2nd approval, with search, filter and approval actions"""

    def __init__(self, loan_client: LoanClient | None = None, page_size: int | None = None):
        self.loan_client = loan_client or LoanClient()
        self.page_size = page_size or settings.approval_queue_page_size

        self.loans: List[LoanApprovalItem] = []
        self.is_loading = False
        self.is_processing = False
        self.error: Optional[str] = None
        self.search_term = ""
        self.filter_status = "all"
        self.viewing_loan: Optional[LoanApprovalItem] = None

    async def fetch_loans(self) -> None:
        """Rebuild the queue from the backend; on failure the previous queue is kept"""
        self.is_loading = True
        try:
            raw_loans = await self.loan_client.get_loans(status="all_statuses", per_page=self.page_size)
            self.loans = self._map_queue(raw_loans)
            self.error = None
        except BackendAPIError as e:
            self.error = "Failed to fetch loan approvals"
            logging.error(f"Failed to fetch loan approvals: {e}")
        finally:
            self.is_loading = False

    @staticmethod
    def _map_queue(raw_loans: List[dict]) -> List[LoanApprovalItem]:
        """Queue rows for pending loans; records that cannot be mapped are skipped"""
        items = []
        for loan in raw_loans:
            if not isinstance(loan, dict) or loan.get("status") not in LOAN_APPROVAL_QUEUE_STATUSES:
                continue
            try:
                items.append(map_loan_to_approval_item(loan))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logging.warning(f"Skipping malformed loan record {loan.get('id')!r}: {e!r}")
        return items

    async def refresh_loans(self) -> None:
        await self.fetch_loans()

    @property
    def filtered_loans(self) -> List[LoanApprovalItem]:
        return filter_approval_items(self.loans, self.search_term, self.filter_status)

    def set_search_term(self, term: str) -> None:
        self.search_term = term

    def set_filter_status(self, status: str) -> None:
        self.filter_status = status or "all"

    def view_loan(self, item: LoanApprovalItem) -> None:
        self.viewing_loan = item

    def close_view(self) -> None:
        self.viewing_loan = None

    async def handle_first_approval(self, loan_id: str, action: str, reason: str = "") -> ActionResult:
        return await self._process(STAGE_FIRST, loan_id, action, reason)

    async def handle_second_approval(self, loan_id: str, action: str, reason: str = "") -> ActionResult:
        return await self._process(STAGE_SECOND, loan_id, action, reason)

    async def _process(self, stage: str, loan_id: str, action: str, reason: str) -> ActionResult:
        """
        Send an approve/sendback action and refresh the queue.

        Raises:
            InvalidApprovalActionError: When action is not approve or sendback
        """
        backend_action = to_backend_action(action)
        self.is_processing = True
        try:
            await self.loan_client.approve_loan(loan_id, backend_action, reason)
            record_approval(stage, backend_action, True)
            log_approval(loan_id, stage, backend_action, True)
            await self.fetch_loans()
            self.viewing_loan = None
            return ActionResult(success=True, message=SUCCESS_MESSAGES.get((stage, action), SENT_BACK_MESSAGE))
        except BackendAPIError as e:
            logging.error(f"Approval failed: {e}", extra={"loan_id": loan_id})
            record_approval(stage, backend_action, False)
            log_approval(loan_id, stage, backend_action, False)
            return ActionResult(success=False, message=FAILURE_MESSAGE)
        finally:
            self.is_processing = False
