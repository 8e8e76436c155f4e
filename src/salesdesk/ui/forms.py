"""Form controllers -- draft state, validation and submit for one entity.

Each controller owns a draft of the entity's editable fields plus a parallel
field -> message error map, and moves through a small state machine:

    CLOSED --open()--> EDITING --submit()--> SUBMITTING --ok--> CLOSED
                          ^                       |
                          +-------- failure ------+

Validation errors stay inside the controller; they never reach the entity
service. Backend failures surface as an ``error`` notification carrying the
backend message, and the draft is kept so the user can retry.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Generic

import structlog
from pydantic import BaseModel

from src.salesdesk.crm.errors import CRMError
from src.salesdesk.crm.field_mapping import RecordT, parse_float
from src.salesdesk.crm.schemas import DealStatus, TaskPriority, TaskStatus
from src.salesdesk.crm.service import EntityService
from src.salesdesk.ui.callbacks import Notifier, invoke
from src.salesdesk.ui.validators import is_blank, is_valid_email, is_valid_url, normalize_url

logger = structlog.get_logger(__name__)

INVALID_FORM_MESSAGE = "Please fix the form errors before submitting"


class FormState(str, Enum):
    CLOSED = "closed"
    EDITING = "editing"
    SUBMITTING = "submitting"


class FormController(Generic[RecordT]):
    """Edit-state controller for one entity form.

    Subclasses declare ``fields`` (editable UI attributes), ``defaults`` for
    a blank form, and implement ``check()``.

    Args:
        service: Entity service used for create/update.
        notify: ``(level, message)`` callback for user-facing notifications.
        on_saved: Called with the saved record after a successful submit,
            typically ``ListView.on_saved``.
    """

    fields: tuple[str, ...] = ()
    defaults: dict[str, Any] = {}

    def __init__(
        self,
        service: EntityService[RecordT],
        notify: Notifier | None = None,
        on_saved: Callable[[RecordT], Any] | None = None,
    ) -> None:
        self.service = service
        self.notify = notify
        self.on_saved = on_saved
        self.state = FormState.CLOSED
        self.record: RecordT | None = None
        self.draft: dict[str, Any] = {}
        self.errors: dict[str, str] = {}

    @property
    def is_new(self) -> bool:
        return self.record is None or self.record.id is None

    def open(self, record: RecordT | Mapping[str, Any] | None = None) -> None:
        """Seed the draft from a record, or from the entity defaults."""
        if record is not None and not isinstance(record, BaseModel):
            record = self.service.normalizer.from_backend(record)

        self.record = record
        self.draft = {name: self.defaults.get(name, "") for name in self.fields}
        if record is not None:
            values = record.model_dump()
            for name in self.fields:
                if name in values:
                    self.draft[name] = values[name]

        self.errors = {}
        self.state = FormState.EDITING

    def close(self) -> None:
        self.state = FormState.CLOSED
        self.record = None
        self.draft = {}
        self.errors = {}

    def set_field(self, name: str, value: Any) -> None:
        """Update one draft field and clear its error."""
        if self.state is not FormState.EDITING:
            raise RuntimeError("Form is not open for editing")
        if name not in self.fields:
            raise KeyError(name)
        self.draft[name] = value
        self.errors.pop(name, None)

    def check(self, draft: dict[str, Any]) -> dict[str, str]:
        """Return field -> message for every invalid field in ``draft``."""
        return {}

    def validate(self) -> dict[str, str]:
        """Validate the draft, replacing the error map."""
        self.errors = self.check(self.draft)
        return dict(self.errors)

    def prepare(self, draft: dict[str, Any]) -> dict[str, Any]:
        """Turn a valid draft into the UI record sent to the service."""
        return draft

    async def _notify(self, level: str, message: str) -> None:
        await invoke(self.notify, level, message)

    async def submit(self) -> RecordT | None:
        """Validate and save the draft.

        Returns:
            The saved record, or None when validation or the save failed.
        """
        if self.state is not FormState.EDITING:
            raise RuntimeError("Form is not open for editing")

        if self.validate():
            await self._notify("error", INVALID_FORM_MESSAGE)
            return None

        creating = self.is_new
        payload = self.prepare(dict(self.draft))
        self.state = FormState.SUBMITTING

        try:
            if creating:
                saved = await self.service.create(payload)
            else:
                saved = await self.service.update(self.record.id, payload)
        except CRMError as exc:
            self.state = FormState.EDITING
            logger.warning(
                "form.submit_failed",
                entity=self.service.entity_name,
                error=exc.message,
            )
            await self._notify("error", exc.message or f"Failed to save {self.service.entity_name}")
            return None
        except Exception:
            self.state = FormState.EDITING
            raise

        action = "created" if creating else "updated"
        await self._notify("success", f"{self.service.entity_label} {action} successfully")
        await invoke(self.on_saved, saved)
        self.close()
        return saved


def _required(draft: dict[str, Any], errors: dict[str, str], field: str, message: str) -> None:
    if is_blank(draft.get(field)):
        errors[field] = message


def _strip(draft: dict[str, Any], *names: str) -> None:
    for name in names:
        if isinstance(draft.get(name), str):
            draft[name] = draft[name].strip()


# ── Entity Forms ────────────────────────────────────────────────────────────


class ContactForm(FormController):
    fields = ("first_name", "last_name", "email", "phone", "company_id", "title", "notes")

    def check(self, draft: dict[str, Any]) -> dict[str, str]:
        errors: dict[str, str] = {}
        _required(draft, errors, "first_name", "First name is required")
        _required(draft, errors, "last_name", "Last name is required")
        if not is_blank(draft.get("email")) and not is_valid_email(draft["email"]):
            errors["email"] = "Please enter a valid email address"
        return errors

    def prepare(self, draft: dict[str, Any]) -> dict[str, Any]:
        _strip(draft, "first_name", "last_name", "email")
        return draft


class CompanyForm(FormController):
    fields = ("name", "industry", "size", "website", "description")

    def check(self, draft: dict[str, Any]) -> dict[str, str]:
        errors: dict[str, str] = {}
        _required(draft, errors, "name", "Company name is required")
        if not is_blank(draft.get("website")) and not is_valid_url(draft["website"]):
            errors["website"] = "Please enter a valid website URL"
        return errors

    def prepare(self, draft: dict[str, Any]) -> dict[str, Any]:
        _strip(draft, "name")
        draft["website"] = normalize_url(draft.get("website") or "")
        return draft


class DealForm(FormController):
    """Deals require a company, a positive value and a close date."""

    fields = (
        "name",
        "company_id",
        "contact_id",
        "sales_rep_id",
        "value",
        "probability",
        "status",
        "close_date",
        "tags",
    )
    defaults = {"status": DealStatus.PROSPECTING.value}

    def check(self, draft: dict[str, Any]) -> dict[str, str]:
        errors: dict[str, str] = {}
        _required(draft, errors, "name", "Deal name is required")
        if not draft.get("company_id"):
            errors["company_id"] = "Company is required"

        # Value_c is an integer column
        value = parse_float(draft.get("value"))
        if value is None or value < 1:
            errors["value"] = "Deal value must be greater than 0"
        elif not value.is_integer():
            errors["value"] = "Deal value must be a whole number"

        if not is_blank(draft.get("probability")):
            probability = parse_float(draft["probability"])
            if probability is None or not 0 <= probability <= 100:
                errors["probability"] = "Probability must be between 0 and 100"

        _required(draft, errors, "status", "Status is required")
        _required(draft, errors, "close_date", "Expected close date is required")
        return errors

    def prepare(self, draft: dict[str, Any]) -> dict[str, Any]:
        _strip(draft, "name", "tags")
        return draft


class LeadForm(FormController):
    fields = (
        "name",
        "tags",
        "first_name",
        "last_name",
        "email",
        "phone",
        "company",
        "status",
        "lead_source",
    )

    def check(self, draft: dict[str, Any]) -> dict[str, str]:
        errors: dict[str, str] = {}
        _required(draft, errors, "first_name", "First name is required")
        _required(draft, errors, "last_name", "Last name is required")
        if is_blank(draft.get("email")):
            errors["email"] = "Email is required"
        elif not is_valid_email(draft["email"]):
            errors["email"] = "Please enter a valid email address"
        _required(draft, errors, "status", "Status is required")
        return errors


def _parse_due(value: Any) -> date | datetime | None:
    """Parse a due date; date-only input stays a calendar date."""
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        due = datetime.fromisoformat(text)
    except ValueError:
        return None
    if due.tzinfo is None:
        due = due.replace(tzinfo=timezone.utc)
    return due


def _is_past(due: date | datetime, now: datetime) -> bool:
    if isinstance(due, datetime):
        return due < now
    return due < now.astimezone(timezone.utc).date()


class TaskForm(FormController):
    """Tasks need a subject; a due date, when given, must not be past.

    Args:
        clock: Returns "now" for the due-date check. UTC by default.
    """

    fields = (
        "name",
        "subject",
        "priority",
        "status",
        "due_date",
        "company_id",
        "contact_id",
        "tags",
        "notes",
        "call_details",
        "meeting_details",
        "follow_up",
    )
    defaults = {
        "priority": TaskPriority.MEDIUM.value,
        "status": TaskStatus.NOT_STARTED.value,
        "follow_up": False,
    }

    def __init__(
        self,
        service: EntityService,
        notify: Notifier | None = None,
        on_saved: Callable[[Any], Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(service, notify=notify, on_saved=on_saved)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def check(self, draft: dict[str, Any]) -> dict[str, str]:
        errors: dict[str, str] = {}
        _required(draft, errors, "subject", "Subject is required")

        if not is_blank(draft.get("due_date")):
            due = _parse_due(draft["due_date"])
            if due is None:
                errors["due_date"] = "Please enter a valid due date"
            elif _is_past(due, self._clock()):
                errors["due_date"] = "Due date cannot be in the past"
        return errors

    def prepare(self, draft: dict[str, Any]) -> dict[str, Any]:
        _strip(draft, "name", "subject", "tags", "notes", "call_details", "meeting_details")
        draft["name"] = draft.get("name") or draft.get("subject") or ""
        draft["follow_up"] = bool(draft.get("follow_up"))
        return draft


class SalesRepForm(FormController):
    fields = (
        "user_id",
        "territory",
        "region",
        "target_amount",
        "achievement_percentage",
        "start_date",
        "is_active",
    )
    defaults = {"is_active": True}

    def check(self, draft: dict[str, Any]) -> dict[str, str]:
        errors: dict[str, str] = {}
        if not draft.get("user_id"):
            errors["user_id"] = "User is required"
        _required(draft, errors, "territory", "Territory is required")
        _required(draft, errors, "region", "Region is required")

        for field, label in (
            ("target_amount", "Target amount"),
            ("achievement_percentage", "Achievement percentage"),
        ):
            if is_blank(draft.get(field)):
                continue
            amount = parse_float(draft[field])
            if amount is None or amount < 0:
                errors[field] = f"{label} cannot be negative"
        return errors

    def prepare(self, draft: dict[str, Any]) -> dict[str, Any]:
        _strip(draft, "territory", "region")
        return draft
