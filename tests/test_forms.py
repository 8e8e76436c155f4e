"""Unit tests for the form controllers.

Validation runs on plain drafts; submit flows use a mocked entity service or
the in-memory backend.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.salesdesk.crm.errors import RemoteFailureError
from src.salesdesk.crm.field_mapping import CONTACT_NORMALIZER, DEAL_NORMALIZER
from src.salesdesk.crm.schemas import Contact, Deal
from src.salesdesk.crm.service import ContactService, DealService
from src.salesdesk.ui.forms import (
    INVALID_FORM_MESSAGE,
    CompanyForm,
    ContactForm,
    DealForm,
    FormState,
    LeadForm,
    SalesRepForm,
    TaskForm,
)
from src.salesdesk.ui.validators import is_valid_email, is_valid_url, normalize_url


# ── Helpers ────────────────────────────────────────────────────────────────


def _mock_service(cls=ContactService, normalizer=CONTACT_NORMALIZER, label="Contact") -> MagicMock:
    """Entity service double with async create/update."""
    service = MagicMock(spec=cls)
    service.entity_name = label.lower()
    service.entity_label = label
    service.normalizer = normalizer
    service.create = AsyncMock()
    service.update = AsyncMock()
    return service


def _open(form_cls, service=None, **fields):
    form = form_cls(service or _mock_service())
    form.open()
    for name, value in fields.items():
        form.set_field(name, value)
    return form


# ── Validators ─────────────────────────────────────────────────────────────


class TestValidators:
    @pytest.mark.parametrize(
        "value,expected",
        [("a@b.com", True), ("not-an-email", False), ("a b@c.com", False), ("", False)],
    )
    def test_email(self, value, expected):
        assert is_valid_email(value) is expected

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("acme.com", True),
            ("http://acme.com/about", True),
            ("https://acme.com", True),
            ("not a url", False),
            ("https://", False),
        ],
    )
    def test_url(self, value, expected):
        assert is_valid_url(value) is expected

    def test_normalize_url_adds_https(self):
        assert normalize_url("acme.com") == "https://acme.com"
        assert normalize_url("http://acme.com") == "http://acme.com"
        assert normalize_url("") == ""


# ── Validation ─────────────────────────────────────────────────────────────


class TestValidation:
    """Field checks per entity form."""

    def test_empty_required_fields_are_reported(self):
        form = _open(ContactForm)

        errors = form.validate()

        assert errors == {
            "first_name": "First name is required",
            "last_name": "Last name is required",
        }

    def test_whitespace_only_counts_as_empty(self):
        form = _open(ContactForm, first_name="   ", last_name="Lovelace")
        assert "first_name" in form.validate()

    def test_invalid_email(self):
        form = _open(ContactForm, first_name="Ada", last_name="L", email="not-an-email")
        assert form.validate() == {"email": "Please enter a valid email address"}

    def test_valid_email(self):
        form = _open(ContactForm, first_name="Ada", last_name="L", email="a@b.com")
        assert form.validate() == {}

    def test_lead_requires_email_and_status(self):
        form = _open(LeadForm, first_name="Ada", last_name="L")

        errors = form.validate()

        assert errors == {"email": "Email is required", "status": "Status is required"}

    def test_company_website(self):
        form = _open(CompanyForm, name="Acme", website="not a url")
        assert form.validate() == {"website": "Please enter a valid website URL"}

        form.set_field("website", "acme.com")
        assert form.validate() == {}

    @pytest.mark.parametrize("probability,ok", [(150, False), (50, True), ("-1", False), ("", True)])
    def test_deal_probability_range(self, probability, ok):
        form = _open(
            DealForm,
            name="Rocket order",
            company_id=1,
            value="5000",
            close_date="2026-12-01",
            probability=probability,
        )

        errors = form.validate()

        assert ("probability" in errors) is not ok

    def test_deal_requirements(self):
        form = _open(DealForm, value="0")

        errors = form.validate()

        assert errors == {
            "name": "Deal name is required",
            "company_id": "Company is required",
            "value": "Deal value must be greater than 0",
            "close_date": "Expected close date is required",
        }

    @pytest.mark.parametrize(
        "value,message",
        [
            ("0.5", "Deal value must be greater than 0"),
            ("1.5", "Deal value must be a whole number"),
            ("2500", None),
        ],
    )
    def test_deal_value_matches_stored_integer(self, value, message):
        form = _open(DealForm, name="Rocket order", company_id=1, value=value, close_date="2026-12-01")

        errors = form.validate()

        assert errors.get("value") == message

    def test_deal_defaults_status_to_prospecting(self):
        form = _open(DealForm)
        assert form.draft["status"] == "Prospecting"

    def test_task_due_date_in_past(self):
        now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        form = TaskForm(_mock_service(), clock=lambda: now)
        form.open()
        form.set_field("subject", "Call Ada")

        form.set_field("due_date", (now - timedelta(hours=1)).isoformat())
        assert form.validate() == {"due_date": "Due date cannot be in the past"}

        form.set_field("due_date", "2026-10-20T09:00:00Z")
        assert form.validate() == {}

        form.set_field("due_date", "someday")
        assert form.validate() == {"due_date": "Please enter a valid due date"}

    def test_task_date_only_due_compares_calendar_days(self):
        now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        form = TaskForm(_mock_service(), clock=lambda: now)
        form.open()
        form.set_field("subject", "Call Ada")

        form.set_field("due_date", "2026-10-19")
        assert form.validate() == {}

        form.set_field("due_date", "2026-10-18")
        assert form.validate() == {"due_date": "Due date cannot be in the past"}

    def test_task_requires_subject_and_has_defaults(self):
        form = _open(TaskForm)

        assert form.validate() == {"subject": "Subject is required"}
        assert form.draft["priority"] == "Medium"
        assert form.draft["status"] == "Not Started"

    def test_sales_rep_rules(self):
        form = _open(SalesRepForm, territory="West", region="CA", target_amount="-5")

        errors = form.validate()

        assert errors == {
            "user_id": "User is required",
            "target_amount": "Target amount cannot be negative",
        }
        assert form.draft["is_active"] is True


# ── Editing State ──────────────────────────────────────────────────────────


class TestEditingState:
    def test_starts_closed(self):
        form = ContactForm(_mock_service())

        assert form.state is FormState.CLOSED
        with pytest.raises(RuntimeError):
            form.set_field("first_name", "Ada")

    def test_set_field_clears_only_that_error(self):
        form = _open(ContactForm)
        form.validate()

        form.set_field("first_name", "Ada")

        assert "first_name" not in form.errors
        assert form.errors["last_name"] == "Last name is required"

    def test_unknown_field_rejected(self):
        form = _open(ContactForm)
        with pytest.raises(KeyError):
            form.set_field("nickname", "Ace")

    def test_open_with_record_seeds_draft(self):
        form = DealForm(_mock_service(DealService, DEAL_NORMALIZER, "Deal"))

        form.open(Deal(id=3, name="Rocket", value=100, probability=20, company_id=1))

        assert form.is_new is False
        assert form.draft["name"] == "Rocket"
        assert form.draft["company_id"] == 1
        assert form.draft["probability"] == 20

    def test_open_with_backend_record_normalizes(self):
        form = ContactForm(_mock_service())

        form.open({"Id": 5, "first_name_c": "Ada", "company_id_c": {"Id": 2, "Name": "Acme"}})

        assert form.draft["first_name"] == "Ada"
        assert form.draft["company_id"] == 2
        assert form.record.id == 5


# ── Submit ─────────────────────────────────────────────────────────────────


class TestSubmit:
    """submit(): invalid, success and backend-failure paths."""

    async def test_invalid_submit_does_not_call_service(self):
        service = _mock_service()
        notify = MagicMock()
        form = ContactForm(service, notify=notify)
        form.open()

        result = await form.submit()

        assert result is None
        service.create.assert_not_called()
        notify.assert_called_once_with("error", INVALID_FORM_MESSAGE)
        assert form.state is FormState.EDITING
        assert form.errors["first_name"] == "First name is required"

    async def test_create_success_notifies_and_closes(self):
        service = _mock_service()
        saved = Contact(id=10, first_name="Ada", last_name="Lovelace")
        service.create.return_value = saved
        notify = MagicMock()
        on_saved = AsyncMock()
        form = ContactForm(service, notify=notify, on_saved=on_saved)
        form.open()
        form.set_field("first_name", " Ada ")
        form.set_field("last_name", "Lovelace")

        result = await form.submit()

        assert result is saved
        payload = service.create.call_args.args[0]
        assert payload["first_name"] == "Ada"
        notify.assert_called_once_with("success", "Contact created successfully")
        on_saved.assert_awaited_once_with(saved)
        assert form.state is FormState.CLOSED

    async def test_update_existing_record(self):
        service = _mock_service()
        service.update.return_value = Contact(id=4, first_name="Ada", last_name="King")
        notify = AsyncMock()
        form = ContactForm(service, notify=notify)
        form.open(Contact(id=4, first_name="Ada", last_name="Lovelace"))
        form.set_field("last_name", "King")

        await form.submit()

        record_id, payload = service.update.call_args.args
        assert record_id == 4
        assert payload["last_name"] == "King"
        notify.assert_awaited_once_with("success", "Contact updated successfully")

    async def test_backend_failure_keeps_draft(self):
        service = _mock_service()
        service.create.side_effect = RemoteFailureError("Email already exists")
        notify = MagicMock()
        form = ContactForm(service, notify=notify)
        form.open()
        form.set_field("first_name", "Ada")
        form.set_field("last_name", "Lovelace")
        form.set_field("email", "ada@example.com")

        result = await form.submit()

        assert result is None
        notify.assert_called_once_with("error", "Email already exists")
        assert form.state is FormState.EDITING
        assert form.draft["email"] == "ada@example.com"

    async def test_company_website_prefixed_on_submit(self):
        service = _mock_service(label="Company")
        form = CompanyForm(service)
        form.open()
        form.set_field("name", "Acme")
        form.set_field("website", "acme.com")

        await form.submit()

        assert service.create.call_args.args[0]["website"] == "https://acme.com"

    async def test_task_name_falls_back_to_subject(self):
        service = _mock_service(label="Task")
        form = TaskForm(service)
        form.open()
        form.set_field("subject", "  Call Ada ")

        await form.submit()

        payload = service.create.call_args.args[0]
        assert payload["name"] == "Call Ada"
        assert payload["subject"] == "Call Ada"

    async def test_fractional_deal_value_never_reaches_service(self):
        service = _mock_service(DealService, DEAL_NORMALIZER, "Deal")
        notify = MagicMock()
        form = DealForm(service, notify=notify)
        form.open()
        for name, value in {
            "name": "Rocket order",
            "company_id": 1,
            "value": "0.5",
            "close_date": "2026-12-01",
        }.items():
            form.set_field(name, value)

        assert await form.submit() is None
        service.create.assert_not_called()
        notify.assert_called_once_with("error", INVALID_FORM_MESSAGE)

    async def test_submit_through_memory_backend(self, contact_service, memory_client):
        form = ContactForm(contact_service)
        form.open()
        form.set_field("first_name", "Dee")
        form.set_field("last_name", "Dunn")
        form.set_field("company_id", "2")

        saved = await form.submit()

        assert saved.id == 4
        assert memory_client.rows("contact_c")[-1]["company_id_c"] == 2
