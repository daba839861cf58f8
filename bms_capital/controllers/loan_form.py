"""Loan origination form controller - cascading selections, NIC lookups and derived fields"""

import asyncio
import logging
import time
from dataclasses import dataclass, fields, replace
from datetime import date, datetime
from typing import Any, Awaitable, Dict, List, Optional, TypeVar, Union

from bms_capital.config import settings
from bms_capital.domain.exceptions import BackendAPIError
from bms_capital.domain.loan_utils import (
    calculate_first_due_date,
    calculate_net_disbursement,
    calculate_processing_fee,
    calculate_rental,
    calculate_total_fees,
    derive_reloan_eligibility,
    find_customer_by_id,
    parse_int,
    to_number,
)
from bms_capital.domain.models import (
    GUARANTOR_FIELDS,
    GUARDIAN_FIELDS,
    GUARDIAN_SOURCE_AUTO,
    GUARDIAN_SOURCE_MANUAL,
    Center,
    CustomerRecord,
    DocumentFile,
    FirstDueDate,
    Group,
    LoanFormData,
    LoanProduct,
    Staff,
)
from bms_capital.domain.nic import MIN_LOOKUP_LENGTH, extract_birthday_from_nic, is_valid_nic, normalize_nic
from bms_capital.domain.statuses import is_loan_closed
from bms_capital.domain.validation import validate_form
from bms_capital.infrastructure.clients.directory import DirectoryClient
from bms_capital.infrastructure.clients.loans import LoanClient
from bms_capital.infrastructure.observability.logging import log_lookup, mask_nic
from bms_capital.infrastructure.observability.metrics import backend_failures_counter, record_lookup
from bms_capital.utils.debounce import Debouncer

T = TypeVar("T")

FORM_FIELDS = frozenset(f.name for f in fields(LoanFormData))

# Inputs whose change makes a computed rental estimate stale
RENTAL_INPUTS = ("loan_amount", "tenure", "interest_rate", "loan_product")

# Inputs that re-run the processing fee tier rule
FEE_INPUTS = ("loan_amount", "tenure", "loan_product")

LOOKUP_CUSTOMER = "customer"
LOOKUP_JOINT_BORROWER = "joint_borrower"


@dataclass
class Actor:
    """Staff member operating the form; becomes witness 1 by default"""

    staff_id: Optional[str] = None
    user_name: Optional[str] = None

    @property
    def witness_id(self) -> str:
        return self.staff_id or self.user_name or ""


def _format_amount(value: float) -> str:
    """Render a product default the way it would be typed: 50000, 12.5"""
    return str(int(value)) if float(value).is_integer() else str(value)


def _cleared_guarantors() -> Dict[str, str]:
    return {name: "" for name in GUARANTOR_FIELDS}


def _cleared_guardian(include_dob: bool) -> Dict[str, Any]:
    cleared: Dict[str, Any] = {name: "" for name in GUARDIAN_FIELDS}
    if include_dob:
        cleared["guardian_dob"] = ""
    cleared["guardian_source"] = GUARDIAN_SOURCE_MANUAL
    return cleared


def apply_field_change(
    form: LoanFormData,
    field: str,
    value: Any,
    products: Optional[List[LoanProduct]] = None,
) -> LoanFormData:
    """
    Apply one field edit and every dependent reset or derivation in a single step.

    - center: clears group, customer, NIC, guarantors and the reloan deduction
    - group: clears customer, NIC, guarantors and the reloan deduction
    - any guardian field except the NIC: marks the guardian block as manual
    - loan_product: copies product defaults (amounts only into blank or "0"
      fields) or blanks product-derived fields when cleared
    - tenure, loan amount or product: reapplies the processing fee tier
    - amount, tenure, rate or product: invalidates the rental estimate

    Returns a new LoanFormData; the input is not modified.
    """
    if field not in FORM_FIELDS:
        raise ValueError(f"Unknown loan form field: {field}")

    updates: Dict[str, Any] = {field: value}

    if field == "center":
        updates.update(group="", customer="", nic="", reloan_deduction_amount=0.0, **_cleared_guarantors())
    elif field == "group":
        updates.update(customer="", nic="", reloan_deduction_amount=0.0, **_cleared_guarantors())
    elif field == "customer" and not value:
        updates.update(reloan_deduction_amount=0.0, **_cleared_guarantors())

    if field.startswith("guardian_") and field not in ("guardian_nic", "guardian_source"):
        updates["guardian_source"] = GUARDIAN_SOURCE_MANUAL

    data = replace(form, **updates)

    if field == "loan_product":
        product = next((p for p in products or [] if p.id == str(value)), None) if value else None
        if product:
            if data.loan_amount in ("", "0"):
                data.loan_amount = _format_amount(product.loan_amount)
            if data.requested_amount in ("", "0"):
                data.requested_amount = _format_amount(product.loan_amount)
            data.interest_rate = _format_amount(product.interest_rate)
            data.tenure = str(product.loan_term)
            data.rental_type = product.term_type or "Weekly"
        else:
            data.loan_amount = ""
            data.requested_amount = ""
            data.interest_rate = ""
            data.tenure = ""
            data.rental_type = "Weekly"
            data.processing_fee = ""

    if field in FEE_INPUTS:
        fee = calculate_processing_fee(data.tenure, data.loan_amount)
        if fee is not None:
            data.processing_fee = fee

    if field in RENTAL_INPUTS:
        data.calculated_rental = None

    return data


def assign_guarantors(form: LoanFormData, customer: CustomerRecord, customers: List[CustomerRecord]) -> LoanFormData:
    """Fill guarantors 1 and 2 from other members of the customer's group"""
    peers = [
        c for c in customers
        if c.id != customer.id and c.group_id == customer.group_id
    ] if customer.group_id else []

    updates = _cleared_guarantors()
    if peers:
        updates.update(guarantor1_name=peers[0].name, guarantor1_nic=peers[0].nic)
    if len(peers) >= 2:
        updates.update(guarantor2_name=peers[1].name, guarantor2_nic=peers[1].nic)
    return replace(form, **updates)


def profile_documents(profile: Dict[str, Any]) -> List[DocumentFile]:
    """NIC copy and profile photo already on the customer's profile"""
    documents = []
    if profile.get("nic_copy_image"):
        documents.append(DocumentFile(
            id=f"profile-nic-{profile.get('id')}",
            type="NIC Copy",
            url=profile["nic_copy_image"],
            file_name="NIC Copy from Profile",
            is_from_profile=True,
        ))
    if profile.get("customer_profile_image"):
        documents.append(DocumentFile(
            id=f"profile-photo-{profile.get('id')}",
            type="Customer Photo",
            url=profile["customer_profile_image"],
            file_name="Profile Photo from Profile",
            is_from_profile=True,
        ))
    return documents


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return to_number(value)


class LoanFormController:
    """
    Owns a single LoanFormData and the lookup caches around it.

    Field edits go through apply_field_change so all dependent resets happen
    atomically. Network work is async: directory loads fail soft to empty
    lists, and both NIC lookups are debounced and discard responses for an
    NIC that is no longer in the field.
    """

    def __init__(
        self,
        directory_client: DirectoryClient | None = None,
        loan_client: LoanClient | None = None,
        actor: Actor | None = None,
        debounce_seconds: float | None = None,
    ):
        self.directory_client = directory_client or DirectoryClient()
        self.loan_client = loan_client or LoanClient()
        self.actor = actor

        delay = settings.nic_lookup_debounce_seconds if debounce_seconds is None else debounce_seconds
        self._nic_debouncer = Debouncer(delay)
        self._guardian_debouncer = Debouncer(delay)

        self.form = LoanFormData(documentation_fee=settings.default_documentation_fee)
        self.is_dirty = False

        self.centers: List[Center] = []
        self.groups: List[Group] = []
        self.customers: List[CustomerRecord] = []
        self.loan_products: List[LoanProduct] = []
        self.staffs: List[Staff] = []
        self.selected_customer: Optional[CustomerRecord] = None
        self.customer_active_loans: List[str] = []  # product ids of the customer's open loans

        self.nic_error: Optional[str] = None
        self.is_auto_filling = False
        self.is_guardian_auto_filling = False
        self._nic_autofilled = False

    # Loading

    async def _load_soft(self, resource: str, call: Awaitable[List[T]]) -> List[T]:
        """Await a directory load, degrading to an empty list on backend failure"""
        try:
            return list(await call or [])
        except BackendAPIError as e:
            backend_failures_counter.labels(resource=resource).inc()
            logging.error(f"Failed to load {resource}: {e}")
            return []

    async def initialize(self) -> None:
        """Load centers, micro-loan products and witness candidates; seed witness 1"""
        centers, products, staff = await asyncio.gather(
            self._load_soft("centers", self.directory_client.get_centers(scope="branch")),
            self._load_soft("loan_products", self.directory_client.get_loan_products()),
            self._load_soft("staff", self.directory_client.get_witness_candidates()),
        )
        self.centers = centers
        self.loan_products = [p for p in products if p.product_type in (None, "", "micro_loan")]
        self.staffs = staff

        if self.actor and self.actor.witness_id:
            self.form = replace(self.form, witness1_id=self.actor.witness_id)

    async def load_groups(self) -> None:
        center = self.form.center
        if not center:
            self.groups = []
            return
        groups = await self._load_soft(
            "groups", self.directory_client.get_groups_by_center(center, scope="branch")
        )
        if self.form.center == center:
            self.groups = groups

    async def load_customers(self) -> None:
        """Customers of the selected center, narrowed to the group when one is chosen"""
        center, group = self.form.center, self.form.group
        if not center:
            self.customers = []
            return
        raw = await self._load_soft(
            "customers",
            self.directory_client.get_customers(center_id=center, grp_id=group or None),
        )
        if (self.form.center, self.form.group) != (center, group):
            return
        self.customers = [self._to_customer_record(c, center, group) for c in raw]

    def _to_customer_record(self, raw: Dict[str, Any], center: str, group: str) -> CustomerRecord:
        center_name = next((c.center_name for c in self.centers if c.id == center), center)
        if group:
            group_name = next((g.group_name for g in self.groups if g.id == group), group)
        else:
            group_name = "All Center"
        code = raw.get("customer_code") or ""
        return CustomerRecord(
            id=str(raw["id"]),
            name=raw.get("full_name") or "",
            display_name=f"{raw.get('full_name') or ''} - {code}",
            nic=code,
            center=center_name,
            group=group_name,
            group_id=str(raw["grp_id"]) if raw.get("grp_id") is not None else None,
            status=raw.get("status") or "Active",
            previous_loans="N/A",
            monthly_income=_optional_float(raw.get("monthly_income")),
            gender=raw.get("gender"),
            age=parse_int(raw.get("age")),
            phone=raw.get("mobile_no_1"),
            profile_image=raw.get("customer_profile_image"),
            nic_image=raw.get("nic_copy_image"),
        )

    async def refresh_lookups(self) -> None:
        """Reload groups, customers and the selected customer for the current form state"""
        await self.load_groups()
        await self.load_customers()
        await self.select_customer()

    # Cascading selection

    def _clear_selected_customer(self) -> None:
        self.selected_customer = None
        self.customer_active_loans = []

    async def handle_center_change(self, center_id: Any) -> None:
        self.form = apply_field_change(self.form, "center", str(center_id), self.loan_products)
        self._clear_selected_customer()
        self.is_dirty = True
        await self.load_groups()
        await self.load_customers()

    async def handle_group_change(self, group_id: Any) -> None:
        self.form = apply_field_change(self.form, "group", str(group_id), self.loan_products)
        self._clear_selected_customer()
        self.is_dirty = True
        await self.load_customers()

    async def handle_customer_change(self, customer_id: Any) -> None:
        self.form = apply_field_change(self.form, "customer", str(customer_id or ""), self.loan_products)
        self.is_dirty = True
        await self.select_customer()

    async def select_customer(self) -> None:
        """Resolve the selected customer, assign guarantors and enrich from the full profile"""
        if not self.form.customer:
            self._clear_selected_customer()
            self.form = replace(self.form, reloan_deduction_amount=0.0, **_cleared_guarantors())
            return

        customer = find_customer_by_id(self.form.customer, self.customers)
        self.selected_customer = customer
        if customer is None:
            return

        self.form = assign_guarantors(self.form, customer, self.customers)
        await self.enrich_selected_customer(customer)

    async def enrich_selected_customer(self, customer: CustomerRecord) -> None:
        """
        Merge the full customer profile into the selection.

        Adds display names, loan counts, the active outstanding sum and reloan
        eligibility, seeds the reloan deduction, and copies profile documents
        into the existing documents, replacing earlier profile copies.
        """
        try:
            profile = await self.directory_client.get_customer(customer.id)
        except BackendAPIError as e:
            logging.error(f"Failed to fetch customer loan history: {e}")
            return

        if self.form.customer != customer.id or self.selected_customer is None:
            return

        all_loans = profile.get("loans") or []
        active_loans = [loan for loan in all_loans if not is_loan_closed(loan.get("status") or "")]
        eligibility = derive_reloan_eligibility(active_loans[0]) if active_loans else None
        current = self.selected_customer

        self.selected_customer = replace(
            current,
            branch=profile.get("branch_name") or (profile.get("branch") or {}).get("branch_name"),
            center=profile.get("center_name") or (profile.get("center") or {}).get("center_name") or current.center,
            group=profile.get("group_name") or (profile.get("group") or {}).get("group_name") or current.group,
            previous_loans=f"{len(all_loans)} Total ({len(active_loans)} Active)",
            total_loan_count=len(all_loans),
            active_loan_amount=sum(to_number(loan.get("outstanding_amount")) for loan in active_loans),
            monthly_income=_optional_float(profile.get("monthly_income")),
            gender=profile.get("gender"),
            age=parse_int(profile.get("age")),
            phone=profile.get("mobile_no_1"),
            reloan_eligibility=eligibility,
        )

        deduction = eligibility.balance if eligibility and eligibility.is_eligible else 0.0
        self.form = replace(self.form, reloan_deduction_amount=deduction)
        self.customer_active_loans = [
            str(loan["product_id"]) for loan in active_loans if loan.get("product_id") is not None
        ]

        documents = profile_documents(profile)
        if documents:
            kept = [d for d in self.form.existing_documents if not d.is_from_profile]
            self.form = replace(self.form, existing_documents=kept + documents)

    # Field edits

    def update_form_field(self, field: str, value: Any) -> None:
        """
        Edit a single field.

        NIC fields are routed to their lookup handlers. Center, group and
        customer edits apply their resets here but only the handle_*_change
        coroutines reload the dependent lists.
        """
        if field == "nic":
            self.handle_nic_change(value)
            return
        if field == "guardian_nic":
            self.handle_guardian_nic_change(value)
            return
        self.form = apply_field_change(self.form, field, value, self.loan_products)
        self.is_dirty = True

    def handle_document_change(self, slot: str, file: Optional[DocumentFile]) -> None:
        self.form = replace(self.form, documents={**self.form.documents, slot: file})
        self.is_dirty = True

    def load_form_data(self, data: LoanFormData) -> None:
        """Replace the whole form, e.g. from a draft; pending lookups are dropped"""
        self._nic_debouncer.cancel()
        self._guardian_debouncer.cancel()
        self.form = data
        self.nic_error = None
        self.is_dirty = False

    def load_from_loan(self, loan: Dict[str, Any]) -> None:
        """Populate the form from an existing backend loan, e.g. to correct a sent-back application"""
        customer = loan.get("customer") or {}
        product = loan.get("product") or {}
        bank = loan.get("borrower_bank_details") or {}
        g1 = loan.get("g1_details") or {}
        g2 = loan.get("g2_details") or {}
        w1 = loan.get("w1_details") or {}
        w2 = loan.get("w2_details") or {}

        def text(value: Any) -> str:
            return "" if value is None else str(value)

        approved = text(loan.get("approved_amount"))
        self.load_form_data(LoanFormData(
            center=text((loan.get("center") or {}).get("id")),
            group=text(loan.get("group_id")),
            customer=text(loan.get("customer_id")),
            nic=customer.get("customer_code") or "",
            loan_product=text(loan.get("product_id")),
            loan_amount=approved,
            requested_amount=text(loan.get("request_amount")) or approved,
            interest_rate=text(loan.get("interest_rate")),
            rental_type=product.get("term_type") or "Weekly",
            tenure=text(loan.get("terms")),
            processing_fee=text(loan.get("service_charge")),
            documentation_fee=text(loan.get("document_charge")),
            insurance_fee="",
            remarks=loan.get("loan_step") or "",
            status="draft",
            guardian_nic=loan.get("guardian_nic") or "",
            guardian_name=loan.get("guardian_name") or "",
            guardian_relationship=loan.get("guardian_relationship") or "",
            guardian_address=loan.get("guardian_address") or "",
            guardian_phone=loan.get("guardian_phone") or "",
            guardian_secondary_phone=loan.get("guardian_secondary_phone") or "",
            guardian_dob=loan.get("guardian_dob") or "",
            guarantor1_name=g1.get("name") or "",
            guarantor1_nic=g1.get("nic") or "",
            guarantor2_name=g2.get("name") or "",
            guarantor2_nic=g2.get("nic") or "",
            witness1_id=w1.get("staff_id") or "",
            witness2_id=w2.get("staff_id") or "",
            bank_name=bank.get("bank_name") or "",
            bank_branch=bank.get("branch") or "",
            account_number=bank.get("account_number") or "",
            monthly_income=text(loan.get("monthly_income")),
            monthly_expenses=text(loan.get("monthly_expenses")),
            reloan_deduction_amount=to_number(loan.get("reloan_deduction_amount")),
            existing_documents=[
                DocumentFile.from_dict(doc) for doc in loan.get("documents") or [] if isinstance(doc, dict)
            ],
        ))

    # Primary applicant NIC

    def handle_nic_change(self, value: str) -> None:
        """Normalize the typed NIC, clear any inline error and schedule a debounced lookup"""
        nic = normalize_nic(value)
        self.form = replace(self.form, nic=nic)
        self.nic_error = None
        self.is_dirty = True
        self._nic_debouncer.schedule(lambda: self.lookup_customer_by_nic(nic))

    def _reset_autofilled_selection(self) -> None:
        self.form = replace(
            self.form,
            center="",
            group="",
            customer="",
            guardian_nic="",
            reloan_deduction_amount=0.0,
            **_cleared_guardian(include_dob=True),
            **_cleared_guarantors(),
        )
        self._clear_selected_customer()
        self.groups = []
        self.customers = []
        self._nic_autofilled = False

    async def lookup_customer_by_nic(self, search_nic: str) -> None:
        """
        Resolve the applicant from the NIC field.

        An exact customer_code match (or a sole candidate) fills center, group
        and customer. A complete NIC with no match sets an inline error that
        distinguishes a well-formed NIC from a malformed one.
        """
        if self.form.nic != search_nic:
            return

        if not search_nic:
            self.nic_error = None
            if self._nic_autofilled or self.form.customer:
                self._reset_autofilled_selection()
            return

        if len(search_nic) < MIN_LOOKUP_LENGTH:
            return

        self.is_auto_filling = True
        started = time.perf_counter()
        outcome = "error"
        try:
            found = await self.directory_client.get_customers(customer_code=search_nic)
            if self.form.nic != search_nic:
                outcome = "stale"
                logging.debug(f"Discarding customer lookup for outdated NIC {mask_nic(search_nic)}")
                return

            exact = next((c for c in found if str(c.get("customer_code") or "").upper() == search_nic), None)
            customer = exact or (found[0] if len(found) == 1 else None)

            if customer:
                outcome = "found"
                self.form = replace(
                    self.form,
                    center=str(customer.get("center_id") or self.form.center),
                    group=str(customer.get("grp_id") or self.form.group),
                    customer=str(customer["id"]),
                    nic=customer.get("customer_code") or search_nic,
                )
                self.nic_error = None
                self._nic_autofilled = True
                await self.refresh_lookups()
            elif len(search_nic) in (10, 12):
                if is_valid_nic(search_nic):
                    outcome = "not_found"
                    self.nic_error = f"No customer found with NIC: {search_nic}"
                else:
                    outcome = "invalid"
                    self.nic_error = f"Invalid NIC format: {search_nic}"
            else:
                outcome = "not_found"

        except BackendAPIError as e:
            logging.error(f"NIC auto-fill search failed: {e}")
        finally:
            self.is_auto_filling = False
            record_lookup(LOOKUP_CUSTOMER, outcome)
            log_lookup(LOOKUP_CUSTOMER, search_nic, outcome, (time.perf_counter() - started) * 1000)

    # Guardian / joint borrower NIC

    def handle_guardian_nic_change(self, value: str) -> None:
        """
        Normalize the guardian NIC, derive the date of birth and schedule a lookup.

        Clearing the NIC resets every guardian field including the date of birth.
        """
        nic = normalize_nic(value)
        dob = extract_birthday_from_nic(nic)
        source = self.form.guardian_source
        if nic != self.form.guardian_nic and source == GUARDIAN_SOURCE_AUTO:
            # auto-filled details belong to the previous NIC until a new lookup succeeds
            source = GUARDIAN_SOURCE_MANUAL
        self.form = replace(
            self.form,
            guardian_nic=nic,
            guardian_dob=dob or self.form.guardian_dob,
            guardian_source=source,
        )
        self.is_dirty = True

        if len(nic) >= MIN_LOOKUP_LENGTH:
            self._guardian_debouncer.schedule(lambda: self.lookup_joint_borrower(nic))
            return

        self._guardian_debouncer.cancel()
        if not nic:
            self.form = replace(self.form, **_cleared_guardian(include_dob=True))

    async def lookup_joint_borrower(self, nic: str) -> None:
        """
        Fill guardian details recorded against the NIC on earlier loans.

        The response is applied only while the guardian NIC field still holds
        the NIC that was looked up.
        """
        if self.form.guardian_nic != nic:
            record_lookup(LOOKUP_JOINT_BORROWER, "stale")
            return

        self.is_guardian_auto_filling = True
        started = time.perf_counter()
        outcome = "error"
        try:
            result = await self.loan_client.lookup_joint_borrower(nic)
            if self.form.guardian_nic != nic:
                outcome = "stale"
                logging.debug(f"Discarding joint borrower lookup for outdated NIC {mask_nic(nic)}")
                return

            if result.found and result.data:
                outcome = "found"
                details = result.data
                self.form = replace(
                    self.form,
                    guardian_name=details.guardian_name,
                    guardian_relationship=details.guardian_relationship,
                    guardian_address=details.guardian_address,
                    guardian_phone=details.guardian_phone,
                    guardian_secondary_phone=details.guardian_secondary_phone,
                    guardian_source=GUARDIAN_SOURCE_AUTO,
                )
            else:
                outcome = "not_found"
                self.form = replace(self.form, **_cleared_guardian(include_dob=False))

        except BackendAPIError as e:
            logging.error(f"Failed to lookup joint borrower: {e}")
        finally:
            self.is_guardian_auto_filling = False
            record_lookup(LOOKUP_JOINT_BORROWER, outcome)
            log_lookup(LOOKUP_JOINT_BORROWER, nic, outcome, (time.perf_counter() - started) * 1000)

    async def wait_for_lookups(self) -> None:
        """Wait until both debounced NIC lookups have settled"""
        await self._nic_debouncer.wait()
        await self._guardian_debouncer.wait()

    def cancel_lookups(self) -> None:
        self._nic_debouncer.cancel()
        self._guardian_debouncer.cancel()

    # Derived values

    @property
    def total_fees(self) -> float:
        return calculate_total_fees(self.form)

    @property
    def net_disbursement(self) -> float:
        return calculate_net_disbursement(self.form)

    def calculate_rental_estimate(self) -> float:
        """Recompute the installment rental from amount, rate and tenure"""
        rental = calculate_rental(
            to_number(self.form.loan_amount),
            to_number(self.form.interest_rate),
            parse_int(self.form.tenure) or 0,
        )
        self.form = replace(self.form, calculated_rental=rental)
        return rental

    def first_due_date(self, activation_date: Union[str, date, datetime]) -> FirstDueDate:
        return calculate_first_due_date(activation_date)

    def validate(self) -> Dict[str, str]:
        return validate_form(self.form)
