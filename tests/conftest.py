"""Pytest fixtures for testing"""

import pytest
from unittest.mock import AsyncMock
from typing import Any, Dict, List

from bms_capital.controllers.draft_manager import DraftManager
from bms_capital.controllers.loan_form import Actor, LoanFormController
from bms_capital.domain.models import Center, Group, JointBorrowerLookup, LoanProduct, Staff
from bms_capital.infrastructure.storage.key_value import InMemoryKeyValueStore


@pytest.fixture
def raw_customers() -> List[Dict[str, Any]]:
    """Backend customer records for center 1: three in group 10, one in group 11"""
    return [
        {"id": 100, "full_name": "Nimali Perera", "customer_code": "881234567V", "center_id": 1, "grp_id": 10},
        {"id": 101, "full_name": "Kamal Silva", "customer_code": "199012345678", "center_id": 1, "grp_id": 10},
        {"id": 102, "full_name": "Sunethra Jayasinghe", "customer_code": "856789012V", "center_id": 1, "grp_id": 10},
        {"id": 103, "full_name": "Ruwan Bandara", "customer_code": "923456789V", "center_id": 1, "grp_id": 11},
    ]


@pytest.fixture
def loan_products() -> List[LoanProduct]:
    return [
        LoanProduct(id="1", product_name="Micro 50K", loan_amount=50000.0, interest_rate=20.0,
                    loan_term=48, term_type="Weekly", product_type="micro_loan"),
        LoanProduct(id="2", product_name="Micro 100K", loan_amount=100000.0, interest_rate=22.5,
                    loan_term=72, term_type="Weekly", product_type="micro_loan"),
        LoanProduct(id="3", product_name="Leasing", loan_amount=1500000.0, interest_rate=18.0,
                    loan_term=36, term_type="Monthly", product_type="leasing"),
    ]


@pytest.fixture
def directory_client(raw_customers, loan_products) -> AsyncMock:
    """Directory client fake; customer lookups filter the sample records like the backend does"""
    client = AsyncMock()
    client.get_centers.return_value = [Center(id="1", center_name="Kandy Central")]
    client.get_groups_by_center.return_value = [
        Group(id="10", group_name="Lotus", center_id="1"),
        Group(id="11", group_name="Jasmine", center_id="1"),
    ]
    client.get_loan_products.return_value = loan_products
    client.get_witness_candidates.return_value = [Staff(staff_id="ST001", full_name="Anura", designation="Manager")]

    async def get_customers(center_id=None, grp_id=None, customer_code=None):
        found = raw_customers
        if grp_id:
            found = [c for c in found if str(c["grp_id"]) == grp_id]
        if customer_code:
            found = [c for c in found if customer_code in c["customer_code"]]
        return found

    client.get_customers.side_effect = get_customers
    client.get_customer.return_value = {"id": 100, "loans": []}
    return client


@pytest.fixture
def loan_client() -> AsyncMock:
    client = AsyncMock()
    client.lookup_joint_borrower.return_value = JointBorrowerLookup(found=False)
    return client


@pytest.fixture
def controller(directory_client, loan_client) -> LoanFormController:
    """Form controller with fake clients and no debounce delay"""
    return LoanFormController(
        directory_client=directory_client,
        loan_client=loan_client,
        actor=Actor(staff_id="ST009"),
        debounce_seconds=0,
    )


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def draft_manager(store) -> DraftManager:
    return DraftManager(store)
