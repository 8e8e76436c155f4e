"""Pydantic schemas for the CRM record layer.

Defines:
- Enums: DealStatus, LeadStatus, LeadSource, TaskPriority, TaskStatus
- Remote wire shapes: RecordResult, RemoteResponse
- UI records: Contact, Company, Lead, Deal, Task, SalesRep, User
- Operation results: DeleteResult, CleanupResult

UI records use snake_case attributes with camelCase aliases, so a record
dumped with ``by_alias=True`` matches what forms and cards consume
(``firstName``, ``companyId``, ``Id``). Foreign keys are ``int`` when set and
``""`` when empty; they are never ``None``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.salesdesk.crm.errors import ErrorKind

# Foreign key in UI shape: backend id, or "" when unset.
ForeignKey = Union[int, str]


# ── Enums ───────────────────────────────────────────────────────────────────


class DealStatus(str, Enum):
    """Pipeline stage of a deal."""

    PROSPECTING = "Prospecting"
    NEGOTIATION = "Negotiation"
    CLOSED_WON = "Closed Won"
    CLOSED_LOST = "Closed Lost"


class LeadStatus(str, Enum):
    NEW = "New"
    CONTACTED = "Contacted"
    QUALIFIED = "Qualified"
    LOST = "Lost"
    WON = "Won"


class LeadSource(str, Enum):
    WEB = "Web"
    REFERRAL = "Referral"
    TRADE_SHOW = "Trade Show"
    ADVERTISEMENT = "Advertisement"


class TaskPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class TaskStatus(str, Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    DEFERRED = "Deferred"


# ── Remote Wire Shapes ──────────────────────────────────────────────────────


class RecordResult(BaseModel):
    """Per-record outcome of a create/update/delete call."""

    success: bool
    data: dict[str, Any] | None = None
    message: str | None = None
    errors: list[Any] = Field(default_factory=list)


class RemoteResponse(BaseModel):
    """Envelope returned by every remote client operation."""

    success: bool
    message: str | None = None
    data: Any = None
    results: list[RecordResult] | None = None


# ── UI Records ──────────────────────────────────────────────────────────────


class CRMRecord(BaseModel):
    """Base for flat UI records: camelCase aliases, backend-assigned Id."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int | None = Field(default=None, alias="Id")


class Contact(CRMRecord):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    company_id: ForeignKey = ""
    company_name: str = ""
    title: str = ""
    notes: str = ""
    created_at: str = ""
    updated_at: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Company(CRMRecord):
    name: str = ""
    industry: str = ""
    size: str = ""
    website: str = ""
    description: str = ""
    contact_ids: list[str] = Field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""


class Lead(CRMRecord):
    name: str = ""
    tags: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    company: str = ""
    status: str = ""
    lead_source: str = ""
    created_on: str = ""
    modified_on: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Deal(CRMRecord):
    name: str = ""
    value: int = 0
    status: str = ""
    close_date: str = ""
    probability: int = 0
    tags: str = ""
    company_id: ForeignKey = ""
    company_name: str = ""
    contact_id: ForeignKey = ""
    contact_name: str = ""
    sales_rep_id: ForeignKey = ""
    sales_rep_name: str = ""
    owner_id: ForeignKey = ""
    owner_name: str = ""
    created_on: str = ""
    modified_on: str = ""


class Task(CRMRecord):
    name: str = ""
    subject: str = ""
    due_date: str = ""
    priority: str = ""
    status: str = ""
    notes: str = ""
    call_details: str = ""
    meeting_details: str = ""
    follow_up: bool = False
    company_id: ForeignKey = ""
    company_name: str = ""
    contact_id: ForeignKey = ""
    contact_name: str = ""
    tags: str = ""
    created_on: str = ""
    modified_on: str = ""


class SalesRep(CRMRecord):
    user_id: ForeignKey = ""
    user_name: str = ""
    territory: str = ""
    region: str = ""
    target_amount: float = 0.0
    achievement_percentage: float = 0.0
    start_date: str = ""
    is_active: bool = False
    created_at: str = ""
    updated_at: str = ""


class User(BaseModel):
    """Entry of the user directory that sales reps are assigned from."""

    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(alias="Id")
    name: str = Field(alias="Name")


# ── Operation Results ───────────────────────────────────────────────────────


class DeleteResult(BaseModel):
    """Outcome of a delete, identical for every entity.

    Row- and table-level failures come back here with ``success=False``;
    only transport failures raise.
    """

    success: bool
    error: ErrorKind | None = None
    message: str | None = None


class CleanupResult(BaseModel):
    """Outcome of a detach-dependents-then-delete-parent run."""

    success: bool
    parent_id: int
    detached: list[int] = Field(default_factory=list)
    restored: list[int] = Field(default_factory=list)
    unrestored: list[int] = Field(default_factory=list)
    failed_record_id: int | None = None
    error: ErrorKind | None = None
    message: str | None = None
