"""Integration tests for the loan form controller against fake clients"""

import asyncio
import pytest
from unittest.mock import AsyncMock
from bms_capital.controllers.loan_form import LoanFormController, apply_field_change
from bms_capital.domain.exceptions import BackendAPIError
from bms_capital.domain.models import DocumentFile, GuardianDetails, JointBorrowerLookup, LoanFormData


async def select_center_and_group(controller: LoanFormController) -> None:
    await controller.initialize()
    await controller.handle_center_change("1")
    await controller.handle_group_change("10")


async def test_initialize_loads_lookups_and_seeds_witness(controller):
    await controller.initialize()

    assert [c.id for c in controller.centers] == ["1"]
    assert [p.id for p in controller.loan_products] == ["1", "2"]
    assert controller.staffs[0].staff_id == "ST001"
    assert controller.form.witness1_id == "ST009"
    assert controller.form.documentation_fee == "1000"


async def test_initialize_degrades_to_empty_lists(controller, directory_client):
    directory_client.get_centers.side_effect = BackendAPIError("down")
    directory_client.get_loan_products.side_effect = BackendAPIError("down")

    await controller.initialize()

    assert controller.centers == []
    assert controller.loan_products == []
    assert len(controller.staffs) == 1


async def test_center_change_clears_dependent_selection(controller):
    await select_center_and_group(controller)
    await controller.handle_customer_change("100")
    assert controller.form.guarantor1_name

    await controller.handle_center_change("2")

    form = controller.form
    assert (form.center, form.group, form.customer, form.nic) == ("2", "", "", "")
    assert form.guarantor1_name == ""
    assert form.reloan_deduction_amount == 0.0
    assert controller.selected_customer is None


async def test_group_change_narrows_customers(controller):
    await select_center_and_group(controller)

    assert [c.id for c in controller.customers] == ["100", "101", "102"]
    assert controller.customers[0].display_name == "Nimali Perera - 881234567V"
    assert controller.customers[0].center == "Kandy Central"
    assert controller.customers[0].group == "Lotus"


async def test_center_without_group_lists_whole_center(controller):
    await controller.initialize()
    await controller.handle_center_change("1")

    assert len(controller.customers) == 4
    assert controller.customers[0].group == "All Center"


@pytest.mark.parametrize(
    "group, customer, expected",
    [
        ("10", "100", [("Kamal Silva", "199012345678"), ("Sunethra Jayasinghe", "856789012V")]),
        ("11", "103", []),
    ],
)
async def test_guarantors_assigned_from_group_peers(controller, group, customer, expected):
    await controller.initialize()
    await controller.handle_center_change("1")
    await controller.handle_group_change(group)
    await controller.handle_customer_change(customer)

    form = controller.form
    assigned = [(form.guarantor1_name, form.guarantor1_nic), (form.guarantor2_name, form.guarantor2_nic)]
    assert assigned == expected + [("", "")] * (2 - len(expected))


async def test_single_peer_fills_only_first_guarantor(controller, raw_customers):
    raw_customers[:] = [c for c in raw_customers if c["id"] in (100, 101)]
    await select_center_and_group(controller)
    await controller.handle_customer_change("100")

    assert controller.form.guarantor1_name == "Kamal Silva"
    assert controller.form.guarantor2_name == ""


async def test_customer_enrichment_sets_reloan_deduction_and_profile_documents(controller, directory_client):
    directory_client.get_customer.return_value = {
        "id": 100,
        "branch_name": "Kandy",
        "gender": "Female",
        "age": "36",
        "nic_copy_image": "customers/100/nic.jpg",
        "customer_profile_image": "customers/100/photo.jpg",
        "loans": [
            {"id": 1, "status": "Active", "product_id": 1, "fuil_amount": "60000", "outstanding_amount": "15000", "terms": 48},
            {"id": 2, "status": "Completed", "product_id": 2, "outstanding_amount": "0"},
        ],
    }
    await select_center_and_group(controller)
    controller.form.existing_documents = [
        DocumentFile(file_name="old profile copy", type="NIC Copy", is_from_profile=True),
        DocumentFile(file_name="uploaded", type="Bank Statement"),
    ]

    await controller.handle_customer_change("100")

    customer = controller.selected_customer
    assert customer.previous_loans == "2 Total (1 Active)"
    assert customer.active_loan_amount == 15000.0
    assert customer.branch == "Kandy"
    assert customer.age == 36
    assert customer.reloan_eligibility.is_eligible is True
    assert customer.reloan_eligibility.progress == 75.0
    assert controller.form.reloan_deduction_amount == 15000.0
    assert controller.customer_active_loans == ["1"]
    assert [d.file_name for d in controller.form.existing_documents] == [
        "uploaded",
        "NIC Copy from Profile",
        "Profile Photo from Profile",
    ]


async def test_ineligible_customer_has_no_deduction(controller, directory_client):
    directory_client.get_customer.return_value = {
        "id": 100,
        "loans": [{"id": 1, "status": "Active", "fuil_amount": "10000", "outstanding_amount": "5000"}],
    }
    await select_center_and_group(controller)
    await controller.handle_customer_change("100")

    assert controller.selected_customer.reloan_eligibility.is_eligible is False
    assert controller.form.reloan_deduction_amount == 0.0


async def test_enrichment_failure_keeps_basic_selection(controller, directory_client):
    directory_client.get_customer.side_effect = BackendAPIError("boom")
    await select_center_and_group(controller)
    await controller.handle_customer_change("101")

    assert controller.selected_customer.name == "Kamal Silva"
    assert controller.selected_customer.reloan_eligibility is None


async def test_product_selection_copies_defaults_and_fee_tier(controller):
    await controller.initialize()

    controller.update_form_field("loan_product", "1")

    form = controller.form
    assert form.loan_amount == "50000"
    assert form.requested_amount == "50000"
    assert form.interest_rate == "20"
    assert form.tenure == "48"
    assert form.processing_fee == "2000.00"
    assert controller.is_dirty is True


async def test_product_selection_keeps_typed_amount(controller):
    await controller.initialize()
    controller.update_form_field("loan_amount", "40000")

    controller.update_form_field("loan_product", "2")

    assert controller.form.loan_amount == "40000"
    assert controller.form.tenure == "72"
    assert controller.form.interest_rate == "22.5"
    assert controller.form.processing_fee == "2400.00"


async def test_clearing_product_blanks_derived_fields(controller):
    await controller.initialize()
    controller.update_form_field("loan_product", "1")

    controller.update_form_field("loan_product", "")

    form = controller.form
    assert (form.loan_amount, form.interest_rate, form.tenure, form.processing_fee) == ("", "", "", "")


def test_fee_tier_only_overwrites_for_known_tenures():
    form = LoanFormData(loan_amount="50000", processing_fee="999")

    assert apply_field_change(form, "tenure", "36").processing_fee == "999"
    assert apply_field_change(form, "tenure", "72").processing_fee == "3000.00"


def test_rental_estimate_is_invalidated_by_inputs():
    form = LoanFormData(calculated_rental=1250.0)

    assert apply_field_change(form, "interest_rate", "25").calculated_rental is None
    assert apply_field_change(form, "remarks", "x").calculated_rental == 1250.0


def test_apply_field_change_does_not_mutate_input():
    form = LoanFormData(center="1", group="10")
    apply_field_change(form, "center", "2")
    assert form.group == "10"


def test_unknown_field_is_rejected():
    with pytest.raises(ValueError):
        apply_field_change(LoanFormData(), "no_such_field", "x")


def test_editing_guardian_details_marks_manual(controller):
    controller.form.guardian_source = "auto"
    controller.update_form_field("guardian_phone", "0770000000")
    assert controller.form.guardian_source == "manual"


def test_derived_totals_and_rental(controller):
    controller.form = LoanFormData(
        loan_amount="50000", interest_rate="20", tenure="48",
        processing_fee="2000.00", documentation_fee="1000", insurance_fee="",
    )

    assert controller.total_fees == 3000.0
    assert controller.net_disbursement == 47000.0
    assert controller.calculate_rental_estimate() == 1250.0
    assert controller.form.calculated_rental == 1250.0
    assert controller.first_due_date("2024-12-25").first_due_date == "2025-01-08"


async def test_nic_lookup_fills_selection(controller):
    await controller.initialize()

    controller.update_form_field("nic", "88-1234567v")
    await controller.wait_for_lookups()

    form = controller.form
    assert (form.nic, form.center, form.group, form.customer) == ("881234567V", "1", "10", "100")
    assert controller.nic_error is None
    assert controller.is_auto_filling is False
    assert controller.selected_customer.name == "Nimali Perera"
    assert [c.id for c in controller.customers] == ["100", "101", "102"]


async def test_nic_lookup_not_found_sets_error(controller):
    controller.handle_nic_change("991234567V")
    await controller.wait_for_lookups()

    assert controller.nic_error == "No customer found with NIC: 991234567V"
    assert controller.form.customer == ""


async def test_nic_lookup_malformed_nic_sets_format_error(controller):
    controller.handle_nic_change("9912345678")
    await controller.wait_for_lookups()

    assert controller.nic_error == "Invalid NIC format: 9912345678"


async def test_short_nic_does_not_query(controller, directory_client):
    controller.handle_nic_change("88123")
    await controller.wait_for_lookups()

    directory_client.get_customers.assert_not_awaited()
    assert controller.nic_error is None


async def test_partial_nic_without_unique_match_sets_no_error(controller):
    # 11 characters match nothing but are not a complete NIC either
    controller.handle_nic_change("20001234567")
    await controller.wait_for_lookups()

    assert controller.nic_error is None


async def test_clearing_nic_resets_autofilled_selection(controller):
    await controller.initialize()
    controller.handle_nic_change("881234567V")
    await controller.wait_for_lookups()
    assert controller.form.customer == "100"

    controller.handle_nic_change("")
    await controller.wait_for_lookups()

    form = controller.form
    assert (form.center, form.group, form.customer) == ("", "", "")
    assert form.guarantor1_name == ""
    assert controller.customers == []


async def test_nic_lookup_failure_clears_busy_flag(controller, directory_client):
    directory_client.get_customers.side_effect = BackendAPIError("timeout")

    controller.handle_nic_change("881234567V")
    await controller.wait_for_lookups()

    assert controller.is_auto_filling is False
    assert controller.nic_error is None


async def test_rapid_nic_edits_only_look_up_latest(controller, directory_client):
    controller._nic_debouncer.delay_seconds = 0.01

    for partial in ("881234567", "881234567V"):
        controller.handle_nic_change(partial)
    await controller.wait_for_lookups()

    assert directory_client.get_customers.await_count >= 1
    assert all(
        call.kwargs.get("customer_code") in (None, "881234567V")
        for call in directory_client.get_customers.await_args_list
    )
    assert controller.form.customer == "100"


async def test_stale_customer_response_is_discarded(controller, directory_client):
    release = asyncio.Event()

    async def slow_lookup(center_id=None, grp_id=None, customer_code=None):
        await release.wait()
        return [{"id": 100, "full_name": "Nimali Perera", "customer_code": "881234567V", "center_id": 1, "grp_id": 10}]

    directory_client.get_customers.side_effect = slow_lookup
    controller.form.nic = "881234567V"
    task = asyncio.create_task(controller.lookup_customer_by_nic("881234567V"))
    await asyncio.sleep(0)

    controller.form.nic = "199012345678"
    release.set()
    await task

    assert controller.form.customer == ""
    assert controller.is_auto_filling is False


async def test_guardian_nic_derives_dob_and_fills_details(controller, loan_client):
    loan_client.lookup_joint_borrower.return_value = JointBorrowerLookup(
        found=True,
        data=GuardianDetails(guardian_name="Sunil Perera", guardian_relationship="Spouse", guardian_phone="0779998887"),
        source="loan",
        source_loan_id="5001",
    )

    controller.update_form_field("guardian_nic", "857654321v")
    assert controller.form.guardian_dob == "1985-09-21"
    await controller.wait_for_lookups()

    form = controller.form
    assert form.guardian_nic == "857654321V"
    assert form.guardian_name == "Sunil Perera"
    assert form.guardian_relationship == "Spouse"
    assert form.guardian_source == "auto"
    assert controller.is_guardian_auto_filling is False


async def test_guardian_not_found_clears_details_but_keeps_dob(controller, loan_client):
    controller.form.guardian_name = "Typed earlier"

    controller.handle_guardian_nic_change("857654321V")
    await controller.wait_for_lookups()

    form = controller.form
    assert form.guardian_name == ""
    assert form.guardian_dob == "1985-09-21"
    assert form.guardian_source == "manual"


async def test_clearing_guardian_nic_clears_everything(controller):
    controller.form.guardian_name = "Sunil"
    controller.form.guardian_dob = "1985-09-21"

    controller.handle_guardian_nic_change("")

    assert controller.form.guardian_name == ""
    assert controller.form.guardian_dob == ""
    assert controller.form.guardian_source == "manual"


async def test_short_guardian_nic_does_not_query(controller, loan_client):
    controller.handle_guardian_nic_change("8576")
    await controller.wait_for_lookups()
    loan_client.lookup_joint_borrower.assert_not_awaited()


async def test_guardian_lookup_for_superseded_nic_is_discarded(controller, loan_client):
    """A response for NIC A must not overwrite the form once the user has typed NIC B"""
    release_a = asyncio.Event()
    responses = {
        "857654321V": JointBorrowerLookup(found=True, data=GuardianDetails(guardian_name="Guardian A")),
        "199012345678": JointBorrowerLookup(found=True, data=GuardianDetails(guardian_name="Guardian B")),
    }

    async def lookup(nic):
        if nic == "857654321V":
            await release_a.wait()
        return responses[nic]

    loan_client.lookup_joint_borrower = AsyncMock(side_effect=lookup)
    controller.form.guardian_nic = "857654321V"
    task_a = asyncio.create_task(controller.lookup_joint_borrower("857654321V"))
    await asyncio.sleep(0)

    controller.form.guardian_nic = "199012345678"
    await controller.lookup_joint_borrower("199012345678")
    release_a.set()
    await task_a

    assert controller.form.guardian_name == "Guardian B"
    assert controller.is_guardian_auto_filling is False


async def test_guardian_lookup_failure_clears_busy_flag(controller, loan_client):
    loan_client.lookup_joint_borrower.side_effect = BackendAPIError("unreachable")

    controller.handle_guardian_nic_change("857654321V")
    await controller.wait_for_lookups()

    assert controller.is_guardian_auto_filling is False


def test_document_change_and_validation(controller):
    controller.handle_document_change("Bank Statement", DocumentFile(file_name="statement.pdf"))

    assert controller.form.documents["Bank Statement"].file_name == "statement.pdf"
    assert controller.is_dirty is True
    assert "center" in controller.validate()


def test_load_form_data_resets_dirty_flag(controller):
    controller.update_form_field("remarks", "x")
    controller.load_form_data(LoanFormData(nic="881234567V"))

    assert controller.form.nic == "881234567V"
    assert controller.is_dirty is False


def test_load_from_loan_maps_backend_record(controller):
    controller.load_from_loan({
        "id": 5005,
        "center": {"id": 1},
        "group_id": 10,
        "customer_id": 102,
        "customer": {"customer_code": "856789012V"},
        "product_id": 1,
        "product": {"term_type": "Weekly"},
        "approved_amount": "50000.00",
        "interest_rate": "20.00",
        "terms": 48,
        "service_charge": "2000.00",
        "document_charge": "1000.00",
        "guardian_nic": "857654321V",
        "g1_details": {"name": "Kamal Silva", "nic": "199012345678"},
        "w1_details": {"staff_id": "ST002"},
        "borrower_bank_details": {"bank_name": "Bank of Ceylon", "account_number": "0012345678", "branch": "Kandy"},
        "documents": [{"id": 9, "type": "NIC Copy", "url": "loans/5005/nic.jpg", "file_name": "nic.jpg"}],
    })

    form = controller.form
    assert (form.center, form.group, form.customer, form.nic) == ("1", "10", "102", "856789012V")
    assert form.loan_amount == "50000.00"
    assert form.requested_amount == "50000.00"
    assert form.tenure == "48"
    assert form.guarantor1_name == "Kamal Silva"
    assert form.witness1_id == "ST002"
    assert form.bank_branch == "Kandy"
    assert form.existing_documents[0].id == "9"
    assert form.status == "draft"
