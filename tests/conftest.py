"""Shared fixtures for the CRM record layer tests.

Provides:
- A fixed clock for timestamp and due-date assertions
- Seed backend rows for companies, contacts, deals and tasks
- An InMemoryClient holding those tables with lookup expansion configured
- Entity services bound to that client
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.salesdesk.crm.memory import InMemoryClient
from src.salesdesk.crm.service import (
    CompanyService,
    ContactService,
    DealService,
    TaskService,
)

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

REFERENCES = {
    "contact_c": {"company_id_c": "company_c"},
    "deals_c": {"company_id_c": "company_c", "contact_id_c": "contact_c"},
    "task_c": {"company_id_c": "company_c", "contact_id_c": "contact_c"},
}


def seed_companies() -> list[dict]:
    return [
        {
            "Id": 1,
            "name_c": "Acme Corp",
            "industry_c": "Manufacturing",
            "size_c": "50-200",
            "website_c": "https://acme.example",
            "description_c": "Anvils and rockets",
            "contact_ids_c": "1,2",
        },
        {
            "Id": 2,
            "name_c": "Globex",
            "industry_c": "Energy",
            "size_c": "",
            "website_c": "globex.example",
            "description_c": "",
            "contact_ids_c": "3",
        },
    ]


def seed_contacts() -> list[dict]:
    return [
        {
            "Id": 1,
            "first_name_c": "Ada",
            "last_name_c": "Lovelace",
            "email_c": "ada@analytical.example",
            "phone_c": "555-0101",
            "company_id_c": 1,
            "title_c": "CTO",
            "notes_c": "",
        },
        {
            "Id": 2,
            "first_name_c": "Bob",
            "last_name_c": "Stone",
            "email_c": "bob@example.com",
            "phone_c": "",
            "company_id_c": 1,
            "title_c": "Buyer",
            "notes_c": "",
        },
        {
            "Id": 3,
            "first_name_c": "Cy",
            "last_name_c": "Young",
            "email_c": "cy@globex.example",
            "phone_c": "",
            "company_id_c": 2,
            "title_c": "",
            "notes_c": "",
        },
    ]


def seed_deals() -> list[dict]:
    return [
        {
            "Id": 1,
            "Name_c": "Rocket order",
            "Value_c": 10000,
            "Status_c": "Negotiation",
            "CloseDate_c": "2026-12-01",
            "Probability_c": 50,
            "Tags": "q4",
            "company_id_c": 1,
            "ModifiedOn": "2026-10-01T00:00:00+00:00",
        },
        {
            "Id": 2,
            "Name_c": "Power plant",
            "Value_c": 4000,
            "Status_c": "Prospecting",
            "CloseDate_c": "2027-01-15",
            "Probability_c": 25,
            "Tags": "",
            "company_id_c": 2,
            "ModifiedOn": "2026-10-05T00:00:00+00:00",
        },
    ]


def seed_tasks() -> list[dict]:
    return [
        {
            "Id": 1,
            "Name": "Call Ada",
            "subject_c": "Follow up on rockets",
            "priority_c": "High",
            "status_c": "Not Started",
            "company_id_c": 1,
            "contact_id_c": 1,
            "Tags": "sales",
        },
        {
            "Id": 2,
            "Name": "Send quote",
            "subject_c": "Quote for Globex",
            "priority_c": "Medium",
            "status_c": "In Progress",
            "company_id_c": 2,
            "contact_id_c": 3,
            "Tags": "",
        },
        {
            "Id": 3,
            "Name": "Renewal",
            "subject_c": "Acme renewal",
            "priority_c": "High",
            "status_c": "Completed",
            "company_id_c": 1,
            "contact_id_c": "",
            "Tags": "renewal",
        },
    ]


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture
def memory_client() -> InMemoryClient:
    """Backend with seeded companies, contacts, deals and tasks."""
    return InMemoryClient(
        tables={
            "company_c": seed_companies(),
            "contact_c": seed_contacts(),
            "deals_c": seed_deals(),
            "task_c": seed_tasks(),
            "leads_c": [],
        },
        references=REFERENCES,
    )


@pytest.fixture
def contact_service(memory_client, clock) -> ContactService:
    return ContactService(memory_client, clock=clock)


@pytest.fixture
def company_service(memory_client, clock) -> CompanyService:
    return CompanyService(memory_client, clock=clock)


@pytest.fixture
def deal_service(memory_client, clock) -> DealService:
    return DealService(memory_client, clock=clock)


@pytest.fixture
def task_service(memory_client, clock) -> TaskService:
    return TaskService(memory_client, clock=clock)
