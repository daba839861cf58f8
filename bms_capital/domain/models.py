"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

RENTAL_TYPES = ("Weekly", "Bi-Weekly", "Monthly")

GUARDIAN_SOURCE_AUTO = "auto"
GUARDIAN_SOURCE_MANUAL = "manual"


@dataclass
class Center:
    """Collection center a customer belongs to"""

    id: str
    center_name: str


@dataclass
class Group:
    """Borrower group within a center"""

    id: str
    group_name: str
    center_id: Optional[str] = None


@dataclass
class Staff:
    """Staff member eligible to act as a loan witness"""

    staff_id: str
    full_name: str
    designation: str = "Staff"


@dataclass
class LoanProduct:
    """Loan product defaults copied into the form on selection"""

    id: str
    product_name: str
    loan_amount: float
    interest_rate: float
    loan_term: int
    term_type: str = "Weekly"
    product_type: Optional[str] = None


@dataclass
class ReloanEligibility:
    """Progress of a customer's active loan towards the reloan threshold"""

    is_eligible: bool
    progress: float  # percentage, 0-100
    balance: float = 0.0
    paid_weeks: int = 0
    total_weeks: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReloanEligibility":
        """Build from the backend payload, which uses camelCase for the flag"""
        return cls(
            is_eligible=bool(data.get("isEligible", data.get("is_eligible", False))),
            progress=float(data.get("progress") or 0),
            balance=float(data.get("balance") or 0),
            paid_weeks=int(data.get("paid_weeks") or 0),
            total_weeks=int(data.get("total_weeks") or 0),
        )


@dataclass
class CustomerRecord:
    """Projection of a backend customer used for selection in the loan form"""

    id: str
    name: str
    display_name: str
    nic: str
    center: str
    group: str
    group_id: Optional[str] = None
    branch: Optional[str] = None
    status: str = "Active"
    previous_loans: str = "N/A"
    active_loan_amount: Optional[float] = None
    total_loan_count: Optional[int] = None
    profile_image: Optional[str] = None
    nic_image: Optional[str] = None
    gender: Optional[str] = None
    age: Optional[int] = None
    phone: Optional[str] = None
    monthly_income: Optional[float] = None
    reloan_eligibility: Optional[ReloanEligibility] = None


@dataclass
class DocumentFile:
    """Either a newly attached local file or a document already held by the backend"""

    file_name: str
    type: str = ""
    path: str = ""
    url: str = ""
    id: str = ""
    is_from_profile: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentFile":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values.setdefault("file_name", "")
        if "id" in values:
            values["id"] = str(values["id"])
        return cls(**values)


@dataclass
class LoanFormData:
    """Mutable draft of a loan application"""

    # Selection
    center: str = ""
    group: str = ""
    customer: str = ""
    nic: str = ""
    loan_product: str = ""

    # Amounts (decimal strings as typed by the user)
    loan_amount: str = ""
    requested_amount: str = ""
    interest_rate: str = ""
    rental_type: str = "Weekly"
    tenure: str = ""
    processing_fee: str = ""
    documentation_fee: str = "1000"
    insurance_fee: str = ""
    remarks: str = ""
    status: str = "draft"

    # Guardian / joint borrower
    guardian_nic: str = ""
    guardian_name: str = ""
    guardian_relationship: str = ""
    guardian_address: str = ""
    guardian_phone: str = ""
    guardian_secondary_phone: str = ""
    guardian_dob: str = ""
    guardian_source: Optional[str] = None

    # Guarantors and witnesses
    guarantor1_name: str = ""
    guarantor1_nic: str = ""
    guarantor2_name: str = ""
    guarantor2_nic: str = ""
    witness1_id: str = ""
    witness2_id: str = ""

    # Bank and income
    bank_name: str = ""
    bank_branch: str = ""
    account_number: str = ""
    monthly_income: str = ""
    monthly_expenses: str = ""

    # Derived
    reloan_deduction_amount: float = 0.0
    calculated_rental: Optional[float] = None

    documents: Dict[str, Optional[DocumentFile]] = field(default_factory=dict)
    existing_documents: List[DocumentFile] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation used for draft persistence"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoanFormData":
        """Rebuild form state from a stored payload, ignoring unknown keys and malformed document sets"""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        documents = data.get("documents")
        values["documents"] = {
            str(slot): DocumentFile.from_dict(doc) if isinstance(doc, dict) else None
            for slot, doc in (documents.items() if isinstance(documents, dict) else [])
        }
        existing = data.get("existing_documents")
        values["existing_documents"] = [
            DocumentFile.from_dict(doc)
            for doc in (existing if isinstance(existing, list) else [])
            if isinstance(doc, dict)
        ]
        return cls(**values)


GUARDIAN_FIELDS = (
    "guardian_name",
    "guardian_relationship",
    "guardian_address",
    "guardian_phone",
    "guardian_secondary_phone",
)

GUARANTOR_FIELDS = (
    "guarantor1_name",
    "guarantor1_nic",
    "guarantor2_name",
    "guarantor2_nic",
)


@dataclass
class GuardianDetails:
    """Joint borrower details returned by the lookup endpoint"""

    guardian_name: str = ""
    guardian_relationship: str = ""
    guardian_address: str = ""
    guardian_phone: str = ""
    guardian_secondary_phone: str = ""


@dataclass
class JointBorrowerLookup:
    """Outcome of a joint borrower lookup by NIC"""

    found: bool
    data: Optional[GuardianDetails] = None
    source: Optional[str] = None
    source_loan_id: Optional[str] = None


@dataclass
class DraftItem:
    """Named, timestamped snapshot of an in-progress loan application"""

    id: str
    name: str
    saved_at: str
    form_data: LoanFormData
    current_step: int


@dataclass
class FirstDueDate:
    """First installment due date derived from the activation date"""

    first_due_date: str
    due_day: int


@dataclass
class ActionResult:
    """Outcome of a user-initiated action, surfaced as a one-shot notification"""

    success: bool
    message: str
    draft_id: Optional[str] = None


@dataclass
class LoanDetails:
    """Loan summary embedded in an approval queue item"""

    purpose: str
    tenure: int
    interest_rate: float
    center: str
    group: str
    branch_manager: str
    branch_name: str


@dataclass
class BankDetails:
    """Borrower bank account embedded in an approval queue item"""

    bank_name: str
    account_number: str


@dataclass
class LoanApprovalItem:
    """Read-only view of a loan awaiting approval"""

    id: str
    serial_no: int
    contract_no: str
    customer_name: str
    nic: str
    loan_amount: float
    staff: str
    submitted_date: str
    submitted_time: str
    first_approval: Optional[str]
    second_approval: Optional[str]
    status: str
    loan_details: LoanDetails
    first_approval_by: Optional[str] = None
    first_approval_date: Optional[str] = None
    second_approval_by: Optional[str] = None
    second_approval_date: Optional[str] = None
    rejection_reason: Optional[str] = None
    bank_details: Optional[BankDetails] = None
    raw_loan: Dict[str, Any] = field(default_factory=dict)
