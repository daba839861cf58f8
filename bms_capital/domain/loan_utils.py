"""Financial derivations for loan origination - fees, rentals, due dates, reloan eligibility"""

import re
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union
from datetime import date, datetime

from bms_capital.domain.models import CustomerRecord, FirstDueDate, LoanFormData, ReloanEligibility
from bms_capital.utils.date_utils import format_iso_date, shift_month, to_local_date

CENT = Decimal("0.01")

# Processing fee as a share of the loan amount, keyed by tenure (periods)
PROCESSING_FEE_TIERS = {
    48: Decimal("0.04"),
    72: Decimal("0.06"),
}

# Share of the total obligation that must be repaid before a reloan
RELOAN_THRESHOLD = Decimal("0.70")

MAX_LOAN_AMOUNT = 500_000


def to_decimal(value: Any) -> Decimal:
    """Coerce a possibly-empty form value to Decimal; blanks and junk become 0"""
    if value is None or value == "":
        return Decimal(0)
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation:
        return Decimal(0)
    return result if result.is_finite() else Decimal(0)


def to_number(value: Any) -> float:
    return float(to_decimal(value))


def parse_int(value: Any) -> Optional[int]:
    """Leading-integer parse of a form value; None when there are no leading digits"""
    match = re.match(r"^\s*([+-]?\d+)", str(value or ""))
    return int(match.group(1)) if match else None


def round2(value: Decimal) -> Decimal:
    """Round half-up on the cent boundary"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_total_fees(form_data: LoanFormData) -> float:
    """Processing + documentation + insurance fees"""
    return float(
        to_decimal(form_data.processing_fee)
        + to_decimal(form_data.documentation_fee)
        + to_decimal(form_data.insurance_fee)
    )


def calculate_net_disbursement(form_data: LoanFormData) -> float:
    """Loan amount less all fees"""
    return float(to_decimal(form_data.loan_amount) - to_decimal(calculate_total_fees(form_data)))


def calculate_rental(principal: float, interest_rate_percentage: float, terms: int) -> float:
    """
    Flat-interest installment: (principal + principal * rate / 100) / terms.

    Returns 0 when terms is not positive.

    Example:
        calculate_rental(10000, 20, 10) -> (10000 + 2000) / 10 = 1200.00
    """
    if terms <= 0:
        return 0
    principal_dec = to_decimal(principal)
    interest = principal_dec * to_decimal(interest_rate_percentage) / 100
    return float(round2((principal_dec + interest) / Decimal(terms)))


def calculate_first_due_date(activation_date: Union[str, date, datetime]) -> FirstDueDate:
    """
    First installment date from the activation day of month:

    - 1-7    -> 15th of the same month
    - 8-14   -> 22nd of the same month
    - 15-21  -> 1st of next month
    - 22-EOM -> 8th of next month
    """
    activation = to_local_date(activation_date)
    year, month, day = activation.year, activation.month, activation.day

    if 1 <= day <= 7:
        due_day = 15
    elif 8 <= day <= 14:
        due_day = 22
    elif 15 <= day <= 21:
        due_day = 1
        year, month = shift_month(year, month, 1)
    else:
        due_day = 8
        year, month = shift_month(year, month, 1)

    return FirstDueDate(first_due_date=format_iso_date(year, month, due_day), due_day=due_day)


def calculate_processing_fee(tenure: Any, loan_amount: Any) -> Optional[str]:
    """
    Tiered processing fee as a 2-decimal string.

    Tenure 48 -> 4% of the loan amount, 72 -> 6%. Any other tenure returns
    None so the caller keeps whatever fee is already entered.
    """
    rate = PROCESSING_FEE_TIERS.get(parse_int(tenure))
    if rate is None:
        return None
    return str(round2(to_decimal(loan_amount) * rate))


def derive_reloan_eligibility(loan: Dict[str, Any]) -> ReloanEligibility:
    """
    Reloan eligibility for a customer's most recent active loan.

    Backend-supplied eligibility is authoritative. Otherwise progress is
    estimated from amounts: total is fuil_amount when positive, else
    principal plus flat interest; paid is total minus outstanding.
    Progress is floored to one decimal place so it never reads 70 unless
    the loan is actually eligible.
    """
    if loan.get("reloan_eligibility"):
        return ReloanEligibility.from_dict(loan["reloan_eligibility"])

    principal = to_decimal(loan.get("approved_amount"))
    rate = to_decimal(loan.get("interest_rate")) / 100
    full_amount = to_decimal(loan.get("fuil_amount"))
    total_amount = full_amount if full_amount > 0 else principal + principal * rate
    outstanding = to_decimal(loan.get("outstanding_amount"))

    paid = max(Decimal(0), total_amount - outstanding)
    ratio = paid / total_amount if total_amount > 0 else Decimal(0)
    progress = min(Decimal(100), (ratio * 100).quantize(Decimal("0.1"), rounding=ROUND_FLOOR))

    return ReloanEligibility(
        is_eligible=ratio >= RELOAN_THRESHOLD,
        progress=float(progress),
        balance=float(outstanding),
        paid_weeks=0,
        total_weeks=parse_int(loan.get("terms")) or 0,
    )


def find_customer_by_nic(nic: str, customers: List[CustomerRecord]) -> Optional[CustomerRecord]:
    return next((c for c in customers if c.nic.lower() == nic.lower()), None)


def find_customer_by_id(customer_id: str, customers: List[CustomerRecord]) -> Optional[CustomerRecord]:
    return next((c for c in customers if c.id == customer_id), None)


def get_unique_centers(customers: List[CustomerRecord]) -> List[str]:
    """Center names in first-seen order"""
    return list(dict.fromkeys(c.center for c in customers))


def get_groups_by_center(center: str, customers: List[CustomerRecord]) -> List[str]:
    filtered = [c for c in customers if c.center == center] if center else customers
    return list(dict.fromkeys(c.group for c in filtered))


def filter_customers_by_selection(center: str, group: str, customers: List[CustomerRecord]) -> List[CustomerRecord]:
    return [
        c for c in customers
        if (not center or c.center == center) and (not group or c.group == group)
    ]


def generate_draft_name(customer: Optional[CustomerRecord], nic: str, customer_id: str) -> str:
    """Customer display name, else an NIC label, else the customer id, else a placeholder"""
    if customer and customer.display_name:
        return customer.display_name
    if nic:
        return f"NIC {nic}"
    return customer_id or "Untitled draft"


def format_currency(amount: float) -> str:
    """LKR 12,345.5 style label"""
    formatted = f"{amount:,.3f}".rstrip("0").rstrip(".")
    return f"LKR {formatted}"


def get_document_url(path: Optional[str], api_base_url: str) -> str:
    """
    Absolute URL for a stored document.

    Absolute, blob and data URLs pass through. Relative paths are served from
    the public storage disk on the API host.
    """
    if not path:
        return ""
    if path.startswith(("http", "blob:", "data:")):
        return path
    base_url = api_base_url.rstrip("/").removesuffix("/api")
    clean_path = path[1:] if path.startswith("/") else path
    storage_path = clean_path if clean_path.startswith("storage/") else f"storage/{clean_path}"
    return f"{base_url}/{storage_path}"
