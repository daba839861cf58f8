import copy
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, FastAPI, HTTPException
from pydantic import BaseModel

FIXTURES_FILE = Path(__file__).resolve().parent / "fixtures.json"

QUEUE_STATUSES = ("pending_1st", "pending_2nd")


class ApprovalRequest(BaseModel):
    action: Literal["approve", "send_back"]
    reason: str = ""


def load_fixtures(path: Path = FIXTURES_FILE) -> Dict[str, Any]:
    return json.loads(path.read_text())


def create_app(fixtures: Optional[Dict[str, Any]] = None) -> FastAPI:
    """Mock BMS backend over an in-memory copy of the fixture data"""
    data = copy.deepcopy(fixtures if fixtures is not None else load_fixtures())
    app = FastAPI(title="Mock BMS Backend", version="1.0.0")
    api = APIRouter(prefix="/api")

    def find_loan(loan_id: int) -> Dict[str, Any]:
        loan = next((item for item in data["loans"] if item["id"] == loan_id), None)
        if loan is None:
            raise HTTPException(status_code=404, detail="loan not found")
        return loan

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @api.get("/centers")
    def get_centers(scope: Optional[str] = None):
        return {"data": data["centers"]}

    @api.get("/groups")
    def get_groups(center_id: Optional[int] = None, scope: Optional[str] = None):
        groups = [g for g in data["groups"] if center_id is None or g["center_id"] == center_id]
        return {"data": groups}

    @api.get("/customers")
    def get_customers(
        center_id: Optional[int] = None,
        grp_id: Optional[int] = None,
        customer_code: Optional[str] = None,
    ):
        customers = data["customers"]
        if center_id is not None:
            customers = [c for c in customers if c["center_id"] == center_id]
        if grp_id is not None:
            customers = [c for c in customers if c["grp_id"] == grp_id]
        if customer_code:
            code = customer_code.upper()
            customers = [c for c in customers if code in c["customer_code"].upper()]
        return {"data": customers}

    @api.get("/customers/{customer_id}")
    def get_customer(customer_id: int):
        customer = next((c for c in data["customers"] if c["id"] == customer_id), None)
        if customer is None:
            raise HTTPException(status_code=404, detail="customer not found")
        loans = [loan for loan in data["loans"] if loan["customer_id"] == customer_id]
        loans.sort(key=lambda loan: loan.get("created_at") or "", reverse=True)
        return {"data": {**customer, "loans": loans}}

    @api.get("/loan-products/list")
    def get_loan_products():
        return {"data": data["loan_products"]}

    @api.get("/staffs/by-role/{role}")
    def get_staff_by_role(role: str):
        if role not in data["staff_by_role"]:
            raise HTTPException(status_code=404, detail="role not found")
        return {"data": data["staff_by_role"][role]}

    @api.get("/loans")
    def get_loans(
        status: Optional[str] = None,
        page: int = 1,
        per_page: int = 15,
        search: Optional[str] = None,
    ):
        loans = data["loans"]
        if status and status != "all_statuses":
            loans = [loan for loan in loans if loan["status"] == status]
        if search:
            term = search.lower()
            loans = [
                loan for loan in loans
                if term in loan["loan_id"].lower() or term in loan["customer"]["full_name"].lower()
            ]
        start = (page - 1) * per_page
        return {"data": loans[start:start + per_page], "total": len(loans)}

    @api.get("/loans/lookup-joint-borrower")
    def lookup_joint_borrower(nic: str):
        matches = [loan for loan in data["loans"] if (loan.get("guardian_nic") or "").upper() == nic.upper()]
        if not matches:
            return {"found": False}
        loan = max(matches, key=lambda match: match.get("created_at") or "")
        return {
            "found": True,
            "source": "loan",
            "source_loan_id": loan["id"],
            "data": {
                "guardian_name": loan.get("guardian_name"),
                "guardian_relationship": loan.get("guardian_relationship"),
                "guardian_address": loan.get("guardian_address"),
                "guardian_phone": loan.get("guardian_phone"),
                "guardian_secondary_phone": loan.get("guardian_secondary_phone"),
            },
        }

    @api.patch("/loans/{loan_id}/approve")
    def approve_loan(loan_id: int, request: ApprovalRequest):
        loan = find_loan(loan_id)
        if loan["status"] not in QUEUE_STATUSES:
            raise HTTPException(status_code=409, detail=f"loan is {loan['status']}")

        now = datetime.now(timezone.utc).isoformat()
        if request.action == "send_back":
            if not request.reason.strip():
                raise HTTPException(status_code=422, detail="reason is required to send back")
            loan["status"] = "sent_back"
            loan["rejection_reason"] = request.reason
            return {"data": loan}

        stage = "first" if loan["status"] == "pending_1st" else "second"
        loan["approval_level"] = int(loan.get("approval_level") or 0) + 1
        loan["status"] = "pending_2nd" if stage == "first" else "approved"
        loan.setdefault("approve_history", {})[stage] = {"name": "Mock Approver", "at": now}
        return {"data": loan}

    app.include_router(api)
    return app


app = create_app()
