"""Loan service client: approval queue, approval actions and joint borrower lookup"""

from typing import Any, Dict, List, Optional

import httpx

from bms_capital.domain.exceptions import BackendAPIError
from bms_capital.domain.models import GuardianDetails, JointBorrowerLookup
from bms_capital.infrastructure.clients.base import BackendClient


class LoanClient(BackendClient):
    """Client for the /loans endpoints"""

    async def get_loans(
        self,
        status: Optional[str] = None,
        page: Optional[int] = None,
        per_page: Optional[int] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Raw loan records for one page of the listing"""
        data = await self._get_data(
            "/loans",
            params={"status": status, "page": page, "per_page": per_page, "search": search},
        )
        if not isinstance(data, list):
            raise BackendAPIError("Invalid loan list from backend")
        return data

    async def approve_loan(self, loan_id: str, action: str, reason: str = "") -> Dict[str, Any]:
        """
        Apply an approval action to a loan.

        Args:
            loan_id: Backend loan id
            action: Backend token, "approve" or "send_back"
            reason: Required by reviewers when sending back

        Raises:
            BackendAPIError: When the backend rejects or cannot process the action
        """
        body = await self._request(
            "PATCH",
            f"/loans/{loan_id}/approve",
            json={"action": action, "reason": reason},
        )
        return body.get("data", body) if isinstance(body, dict) else {}

    async def lookup_joint_borrower(self, nic: str) -> JointBorrowerLookup:
        """
        Find joint borrower details previously recorded against an NIC.

        A non-2xx response is reported as not found; only transport failures
        and malformed payloads raise.
        """
        async with self._client() as client:
            try:
                response = await client.get("/loans/lookup-joint-borrower", params={"nic": nic})
                if not response.is_success:
                    return JointBorrowerLookup(found=False)
                body = response.json()
            except httpx.TimeoutException as e:
                raise BackendAPIError(f"Joint borrower lookup timeout after {self.timeout}s") from e
            except httpx.RequestError as e:
                raise BackendAPIError(f"Backend unreachable: {e}") from e
            except ValueError as e:
                raise BackendAPIError(f"Invalid joint borrower data from backend: {e}") from e

        if not isinstance(body, dict):
            raise BackendAPIError("Invalid joint borrower data from backend")

        data = body.get("data")
        return JointBorrowerLookup(
            found=bool(body.get("found")),
            data=GuardianDetails(
                guardian_name=data.get("guardian_name") or "",
                guardian_relationship=data.get("guardian_relationship") or "",
                guardian_address=data.get("guardian_address") or "",
                guardian_phone=data.get("guardian_phone") or "",
                guardian_secondary_phone=data.get("guardian_secondary_phone") or "",
            ) if isinstance(data, dict) else None,
            source=body.get("source"),
            source_loan_id=str(body["source_loan_id"]) if body.get("source_loan_id") is not None else None,
        )
