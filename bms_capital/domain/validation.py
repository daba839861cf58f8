"""Inline field validation for the loan application form"""

import re
from typing import Dict, Optional

from bms_capital.domain.loan_utils import MAX_LOAN_AMOUNT, to_decimal
from bms_capital.domain.models import RENTAL_TYPES, LoanFormData
from bms_capital.domain.nic import is_valid_nic

REQUIRED_DOCUMENTS = ("NIC Copy", "Guardian NIC", "Bank Statement")

# Common Sri Lankan account number formats
BANK_ACCOUNT_RULES = {
    "Bank of Ceylon": (re.compile(r"^\d{8,15}$"), "Bank of Ceylon accounts must be 8-15 digits"),
    "People's Bank": (re.compile(r"^(\d{12}|\d{15})$"), "People's Bank accounts must be 12 or 15 digits"),
    "Commercial Bank of Ceylon PLC": (re.compile(r"^\d{10}$"), "Commercial Bank accounts must be exactly 10 digits"),
    "Hatton National Bank PLC": (re.compile(r"^\d{11}$"), "HNB accounts must be exactly 11 digits"),
    "Sampath Bank PLC": (re.compile(r"^\d{12}$"), "Sampath Bank accounts must be exactly 12 digits"),
    "National Savings Bank": (re.compile(r"^(\d{10}|\d{12})$"), "NSB accounts must be 10 or 12 digits"),
    "Seylan Bank PLC": (re.compile(r"^\d{12}$"), "Seylan Bank accounts must be exactly 12 digits"),
}
DEFAULT_BANK_ACCOUNT_RULE = (re.compile(r"^\d{6,20}$"), "Account number must be 6-20 digits")


def validate_bank_account(bank_name: str, account_number: str) -> Optional[str]:
    """Error message for an account number that does not fit the bank's format"""
    pattern, error = BANK_ACCOUNT_RULES.get(bank_name, DEFAULT_BANK_ACCOUNT_RULE)
    return None if pattern.match(account_number.strip()) else error


def validate_form(form: LoanFormData) -> Dict[str, str]:
    """
    Collect inline validation errors keyed by form field.

    Nothing here raises; an empty dict means the form can be submitted.
    """
    errors: Dict[str, str] = {}

    if not form.center:
        errors["center"] = "Center is required"
    if not form.customer:
        errors["customer"] = "Customer is required"
    if not form.nic:
        errors["nic"] = "NIC is required"
    elif not is_valid_nic(form.nic):
        errors["nic"] = f"Invalid NIC format: {form.nic}"
    if not form.loan_product:
        errors["loan_product"] = "Loan product is required"

    amount = to_decimal(form.loan_amount)
    if amount <= 0:
        errors["loan_amount"] = "Loan amount must be greater than zero"
    elif amount > MAX_LOAN_AMOUNT:
        errors["loan_amount"] = f"Loan amount cannot exceed {MAX_LOAN_AMOUNT:,}"

    if form.rental_type not in RENTAL_TYPES:
        errors["rental_type"] = f"Unsupported rental type: {form.rental_type}"

    if form.guardian_nic and not is_valid_nic(form.guardian_nic):
        errors["guardian_nic"] = f"Invalid NIC format: {form.guardian_nic}"

    if form.account_number:
        account_error = validate_bank_account(form.bank_name, form.account_number)
        if account_error:
            errors["account_number"] = account_error

    provided = {slot for slot, doc in form.documents.items() if doc is not None}
    provided.update(doc.type for doc in form.existing_documents)
    missing = [doc for doc in REQUIRED_DOCUMENTS if doc not in provided]
    if missing:
        errors["documents"] = f"Missing required documents: {', '.join(missing)}"

    return errors
