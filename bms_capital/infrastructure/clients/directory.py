"""Directory lookups: centers, groups, customers, loan products and staff"""

import asyncio
from typing import Any, Dict, List, Optional

from bms_capital.config import settings
from bms_capital.domain.exceptions import BackendAPIError
from bms_capital.domain.models import Center, Group, LoanProduct, Staff
from bms_capital.infrastructure.clients.base import BackendClient


class DirectoryClient(BackendClient):
    """Client for the list-by-filter directory endpoints"""

    async def get_centers(self, scope: Optional[str] = "branch") -> List[Center]:
        data = await self._get_data("/centers", params={"scope": scope})
        try:
            return [Center(id=str(c["id"]), center_name=c["center_name"]) for c in data or []]
        except (KeyError, TypeError) as e:
            raise BackendAPIError(f"Invalid center data from backend: {e}") from e

    async def get_groups_by_center(self, center_id: str, scope: Optional[str] = "branch") -> List[Group]:
        data = await self._get_data("/groups", params={"center_id": center_id, "scope": scope})
        try:
            return [
                Group(
                    id=str(g["id"]),
                    group_name=g["group_name"],
                    center_id=str(g["center_id"]) if g.get("center_id") is not None else None,
                )
                for g in data or []
            ]
        except (KeyError, TypeError) as e:
            raise BackendAPIError(f"Invalid group data from backend: {e}") from e

    async def get_customers(
        self,
        center_id: Optional[str] = None,
        grp_id: Optional[str] = None,
        customer_code: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Raw customer records matching every supplied filter"""
        data = await self._get_data(
            "/customers",
            params={"center_id": center_id, "grp_id": grp_id, "customer_code": customer_code},
        )
        if not isinstance(data, list):
            raise BackendAPIError("Invalid customer list from backend")
        return data

    async def get_customer(self, customer_id: str) -> Dict[str, Any]:
        """Full customer profile including nested loans[]"""
        data = await self._get_data(f"/customers/{customer_id}")
        if not isinstance(data, dict):
            raise BackendAPIError(f"Invalid customer profile for {customer_id}")
        return data

    async def get_loan_products(self) -> List[LoanProduct]:
        data = await self._get_data("/loan-products/list")
        try:
            return [
                LoanProduct(
                    id=str(p["id"]),
                    product_name=p.get("product_name", ""),
                    loan_amount=float(p.get("loan_amount") or 0),
                    interest_rate=float(p.get("interest_rate") or 0),
                    loan_term=int(p.get("loan_term") or 0),
                    term_type=p.get("term_type") or "Weekly",
                    product_type=p.get("product_type"),
                )
                for p in data or []
            ]
        except (KeyError, ValueError, TypeError) as e:
            raise BackendAPIError(f"Invalid loan product data from backend: {e}") from e

    async def get_witness_candidates(self, roles: Optional[List[str]] = None) -> List[Staff]:
        """
        Staff who can witness a loan, fetched per role.

        A role that fails to load contributes nothing; duplicates across roles
        are dropped by staff_id, first occurrence wins.
        """
        roles = roles or settings.witness_roles
        results = await asyncio.gather(
            *(self._get_data(f"/staffs/by-role/{role}") for role in roles),
            return_exceptions=True,
        )

        candidates: List[Staff] = []
        seen_ids = set()
        for result in results:
            if isinstance(result, BaseException) or not isinstance(result, list):
                continue
            for s in result:
                staff_id = s.get("staff_id")
                if not staff_id or staff_id in seen_ids:
                    continue
                seen_ids.add(staff_id)
                candidates.append(
                    Staff(
                        staff_id=staff_id,
                        full_name=s.get("full_name") or s.get("name") or "",
                        designation=(s.get("work_info") or {}).get("designation") or "Staff",
                    )
                )
        return candidates
