"""List view-models -- load, search, delete and export one entity's records.

A list view loads its primary entity together with any entity it joins for
display (companies for contacts, for example) in one ``asyncio.gather``.
A failed load sets ``ViewStatus.ERROR`` with the backend message; a load that
returns nothing sets ``ViewStatus.EMPTY``, so the two never look alike.

Search is a case-insensitive substring match over a per-entity list of
values, recomputed over the full in-memory set. Exports cover the loaded
(unfiltered) set.
"""

from __future__ import annotations

import asyncio
import csv
import io
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Any, Generic

import structlog

from src.salesdesk.crm.cleanup import DependentLink, detach_and_delete
from src.salesdesk.crm.errors import CRMError
from src.salesdesk.crm.field_mapping import RecordT
from src.salesdesk.crm.schemas import (
    CleanupResult,
    Company,
    Contact,
    Deal,
    DeleteResult,
    Lead,
    SalesRep,
    Task,
)
from src.salesdesk.crm.service import EntityService, SalesRepService
from src.salesdesk.ui.callbacks import Notifier, invoke

logger = structlog.get_logger(__name__)

UNKNOWN_LABEL = "Unknown"

Confirm = Callable[[str], Any]
ExportColumn = tuple[str, Callable[[Any], Any]]


class ViewStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    ERROR = "error"
    EMPTY = "empty"
    READY = "ready"


def filter_records(
    records: Sequence[RecordT],
    term: str,
    values: Callable[[RecordT], Iterable[Any]],
) -> list[RecordT]:
    """Keep records where any searchable value contains ``term``.

    Matching is case-insensitive. A blank term returns every record in its
    original order.
    """
    needle = (term or "").strip().lower()
    if not needle:
        return list(records)
    return [
        record
        for record in records
        if any(needle in str(value or "").lower() for value in values(record))
    ]


def resolve_label(
    fk: Any,
    label: str,
    joined: Sequence[Any],
    name_of: Callable[[Any], str],
) -> str:
    """Display name for a lookup.

    Uses the expanded lookup label, then the joined record's name, then
    ``"Unknown"``. An unset foreign key has no label.
    """
    if label:
        return label
    if fk in ("", None):
        return ""
    for item in joined:
        if item.id == fk:
            return name_of(item) or UNKNOWN_LABEL
    return UNKNOWN_LABEL


def _cell(value: Any) -> Any:
    return "" if value is None else value


class ListView(Generic[RecordT]):
    """View-model for one entity's list page.

    Args:
        service: Entity service for the primary records.
        joins: Services of entities joined for display, by name.
        notify: ``(level, message)`` notification callback.
        confirm: Blocking confirmation prompt; returns truthy to proceed.
            Sync or async. Deletes proceed unprompted when omitted.
        export_dir: Default directory for write_export().
    """

    export_name: str = "records"
    export_columns: tuple[ExportColumn, ...] = ()

    def __init__(
        self,
        service: EntityService[RecordT],
        joins: Mapping[str, EntityService] | None = None,
        notify: Notifier | None = None,
        confirm: Confirm | None = None,
        export_dir: str | Path = ".",
    ) -> None:
        self.service = service
        self.joins = dict(joins or {})
        self.notify = notify
        self.confirm = confirm
        self.export_dir = Path(export_dir)

        self.status = ViewStatus.IDLE
        self.error: str | None = None
        self.records: list[RecordT] = []
        self.related: dict[str, list[Any]] = {name: [] for name in self.joins}
        self.search_term = ""

    # ── Loading ────────────────────────────────────────────────────────

    async def load(self) -> ViewStatus:
        """Fetch the primary and joined entities concurrently."""
        self.status = ViewStatus.LOADING
        self.error = None
        names = list(self.joins)

        try:
            primary, *joined = await asyncio.gather(
                self.service.list_records(),
                *(self._fetch_join(name) for name in names),
            )
        except CRMError as exc:
            logger.error(
                "view.load_failed",
                entity=self.service.entity_plural,
                error=exc.message,
            )
            self.status = ViewStatus.ERROR
            self.error = exc.message or f"Failed to load {self.service.entity_plural}"
            return self.status

        self.records = list(primary)
        self.related = dict(zip(names, joined))
        self._settle()
        logger.debug("view.loaded", entity=self.service.entity_plural, count=len(self.records))
        return self.status

    def _fetch_join(self, name: str) -> Awaitable[list[Any]]:
        return self.joins[name].list_records()

    async def retry(self) -> ViewStatus:
        return await self.load()

    async def on_saved(self, record: RecordT) -> ViewStatus:
        """Refresh after a form saved ``record``."""
        return await self.load()

    def _settle(self) -> None:
        self.status = ViewStatus.READY if self.records else ViewStatus.EMPTY

    # ── Search ─────────────────────────────────────────────────────────

    def search_values(self, record: RecordT) -> list[Any]:
        return []

    def matches(self, record: RecordT) -> bool:
        """Extra filters combined with the search term."""
        return True

    def set_search(self, term: str) -> list[RecordT]:
        self.search_term = term or ""
        return self.visible

    @property
    def visible(self) -> list[RecordT]:
        found = filter_records(self.records, self.search_term, self.search_values)
        return [record for record in found if self.matches(record)]

    # ── Delete ─────────────────────────────────────────────────────────

    def display_name(self, record: RecordT) -> str:
        return str(getattr(record, "name", "") or "")

    def confirm_message(self, record: RecordT) -> str:
        return f"Are you sure you want to delete {self.display_name(record)}?"

    async def _remove(self, record: RecordT) -> DeleteResult | CleanupResult:
        return await self.service.delete(record.id)

    def _forget(self, record: RecordT) -> None:
        self.records = [item for item in self.records if item.id != record.id]
        self._settle()

    async def delete(self, record: RecordT) -> bool:
        """Confirm, delete and drop the record from the list.

        Returns:
            True when the record was deleted.
        """
        if self.confirm is not None and not await invoke(self.confirm, self.confirm_message(record)):
            return False

        try:
            result = await self._remove(record)
        except CRMError as exc:
            result = DeleteResult(success=False, error=exc.kind, message=exc.message)

        if not result.success:
            logger.warning(
                "view.delete_failed",
                entity=self.service.entity_name,
                record_id=record.id,
                error=result.message,
            )
            await invoke(
                self.notify,
                "error",
                result.message or f"Failed to delete {self.service.entity_name}",
            )
            return False

        self._forget(record)
        await invoke(self.notify, "success", f"{self.service.entity_label} deleted successfully")
        return True

    # ── Export ─────────────────────────────────────────────────────────

    def export_csv(self) -> str | None:
        """CSV text for every loaded record, or None when there are none."""
        if not self.records:
            return None

        buffer = io.StringIO()
        buffer.write(",".join(header for header, _ in self.export_columns) + "\n")
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        for record in self.records:
            writer.writerow([_cell(extract(record)) for _, extract in self.export_columns])
        return buffer.getvalue()

    def export_filename(self, today: date | None = None) -> str:
        today = today or date.today()
        return f"{self.export_name}-export-{today.isoformat()}.csv"

    async def write_export(
        self,
        directory: str | Path | None = None,
        today: date | None = None,
    ) -> Path | None:
        """Write the export file as UTF-8 and return its path."""
        content = self.export_csv()
        if content is None:
            await invoke(self.notify, "warning", f"No {self.service.entity_plural} to export")
            return None

        path = Path(directory or self.export_dir) / self.export_filename(today)
        path.write_text(content, encoding="utf-8")
        logger.info("view.exported", entity=self.service.entity_plural, path=str(path))
        await invoke(
            self.notify,
            "success",
            f"Exported {len(self.records)} {self.service.entity_plural} to CSV",
        )
        return path


# ── Entity Views ────────────────────────────────────────────────────────────


class ContactListView(ListView[Contact]):
    """Contacts, joined with companies for the company column."""

    export_name = "contacts"

    def __init__(
        self,
        service: EntityService[Contact],
        company_service: EntityService[Company],
        notify: Notifier | None = None,
        confirm: Confirm | None = None,
        export_dir: str | Path = ".",
    ) -> None:
        super().__init__(
            service,
            joins={"companies": company_service},
            notify=notify,
            confirm=confirm,
            export_dir=export_dir,
        )
        self.export_columns = (
            ("First Name", lambda c: c.first_name),
            ("Last Name", lambda c: c.last_name),
            ("Email", lambda c: c.email),
            ("Phone", lambda c: c.phone),
            ("Company", self.company_name),
            ("Title", lambda c: c.title),
            ("Notes", lambda c: c.notes),
        )

    def company_name(self, contact: Contact) -> str:
        return resolve_label(
            contact.company_id,
            contact.company_name,
            self.related.get("companies", []),
            lambda company: company.name,
        )

    def search_values(self, contact: Contact) -> list[Any]:
        return [contact.full_name, contact.email, contact.phone, contact.title, self.company_name(contact)]

    def display_name(self, contact: Contact) -> str:
        return contact.full_name


class CompanyListView(ListView[Company]):
    """Companies, joined with contacts; deletes detach contacts first."""

    export_name = "companies"

    def __init__(
        self,
        service: EntityService[Company],
        contact_service: EntityService[Contact],
        notify: Notifier | None = None,
        confirm: Confirm | None = None,
        export_dir: str | Path = ".",
    ) -> None:
        super().__init__(
            service,
            joins={"contacts": contact_service},
            notify=notify,
            confirm=confirm,
            export_dir=export_dir,
        )
        self.export_columns = (
            ("Company Name", lambda c: c.name),
            ("Industry", lambda c: c.industry),
            ("Size", lambda c: f"{c.size} employees" if c.size else ""),
            ("Website", lambda c: c.website),
            ("Description", lambda c: c.description),
            ("Contact Count", self.contact_count),
        )

    def contacts_of(self, company: Company) -> list[Contact]:
        return [c for c in self.related.get("contacts", []) if c.company_id == company.id]

    def contact_count(self, company: Company) -> int:
        return len(self.contacts_of(company))

    def search_values(self, company: Company) -> list[Any]:
        return [company.name, company.industry, company.description, company.website]

    def confirm_message(self, company: Company) -> str:
        message = f"Are you sure you want to delete {company.name}?"
        count = self.contact_count(company)
        if count > 0:
            plural = "" if count == 1 else "s"
            message += f" This will also remove the company association from {count} contact{plural}."
        return message

    async def _remove(self, company: Company) -> CleanupResult:
        link = DependentLink(
            service=self.joins["contacts"],
            records=self.contacts_of(company),
            field="company_id",
        )
        result = await detach_and_delete(self.service, company.id, [link])
        if result.success:
            detached = set(result.detached)
            self.related["contacts"] = [
                c.model_copy(update={"company_id": "", "company_name": ""}) if c.id in detached else c
                for c in self.related.get("contacts", [])
            ]
        return result


class DealListView(ListView[Deal]):
    """Deals, joined with companies and optionally with sales reps."""

    export_name = "deals"

    def __init__(
        self,
        service: EntityService[Deal],
        company_service: EntityService[Company],
        sales_rep_service: EntityService[SalesRep] | None = None,
        notify: Notifier | None = None,
        confirm: Confirm | None = None,
        export_dir: str | Path = ".",
    ) -> None:
        joins: dict[str, EntityService] = {"companies": company_service}
        if sales_rep_service is not None:
            joins["sales_reps"] = sales_rep_service
        super().__init__(
            service,
            joins=joins,
            notify=notify,
            confirm=confirm,
            export_dir=export_dir,
        )
        self.export_columns = (
            ("Deal Name", lambda d: d.name),
            ("Company", self.company_name),
            ("Deal Value", lambda d: d.value),
            ("Probability", lambda d: d.probability),
            ("Expected Close Date", lambda d: d.close_date),
            ("Stage", lambda d: d.status),
            ("Assigned Rep", self.assigned_rep),
            ("Tags", lambda d: d.tags),
        )

    def company_name(self, deal: Deal) -> str:
        return resolve_label(
            deal.company_id,
            deal.company_name,
            self.related.get("companies", []),
            lambda company: company.name,
        )

    def assigned_rep(self, deal: Deal) -> str:
        """Sales rep when one is assigned, else the owning user."""
        if deal.sales_rep_id not in ("", None):
            return resolve_label(
                deal.sales_rep_id,
                deal.sales_rep_name,
                self.related.get("sales_reps", []),
                lambda rep: rep.user_name,
            )
        return resolve_label(deal.owner_id, deal.owner_name, [], lambda user: user.name)

    def search_values(self, deal: Deal) -> list[Any]:
        return [deal.name, self.company_name(deal), deal.status, self.assigned_rep(deal), deal.tags]

    def confirm_message(self, deal: Deal) -> str:
        return f'Are you sure you want to delete "{deal.name}"?'

    @property
    def total_value(self) -> int:
        """Sum of deal values over the visible deals."""
        return sum(deal.value for deal in self.visible)

    @property
    def weighted_value(self) -> float:
        """Probability-weighted value over the visible deals."""
        return sum(deal.value * deal.probability / 100 for deal in self.visible)


class LeadListView(ListView[Lead]):
    export_name = "leads"
    export_columns = (
        ("Name", lambda lead: lead.name),
        ("First Name", lambda lead: lead.first_name),
        ("Last Name", lambda lead: lead.last_name),
        ("Email", lambda lead: lead.email),
        ("Phone", lambda lead: lead.phone),
        ("Company", lambda lead: lead.company),
        ("Status", lambda lead: lead.status),
        ("Lead Source", lambda lead: lead.lead_source),
    )

    def search_values(self, lead: Lead) -> list[Any]:
        return [lead.full_name, lead.email, lead.phone, lead.company, lead.status, lead.lead_source]

    def display_name(self, lead: Lead) -> str:
        return lead.full_name


class TaskListView(ListView[Task]):
    """Tasks with status and priority facets on top of the search."""

    export_name = "tasks"

    def __init__(
        self,
        service: EntityService[Task],
        company_service: EntityService[Company],
        contact_service: EntityService[Contact],
        notify: Notifier | None = None,
        confirm: Confirm | None = None,
        export_dir: str | Path = ".",
    ) -> None:
        super().__init__(
            service,
            joins={"companies": company_service, "contacts": contact_service},
            notify=notify,
            confirm=confirm,
            export_dir=export_dir,
        )
        self.status_filter = ""
        self.priority_filter = ""
        self.export_columns = (
            ("Name", lambda t: t.name),
            ("Subject", lambda t: t.subject),
            ("Status", lambda t: t.status),
            ("Priority", lambda t: t.priority),
            ("Due Date", lambda t: t.due_date),
            ("Company", self.company_name),
            ("Contact", self.contact_name),
            ("Tags", lambda t: t.tags),
        )

    def company_name(self, task: Task) -> str:
        return resolve_label(
            task.company_id,
            task.company_name,
            self.related.get("companies", []),
            lambda company: company.name,
        )

    def contact_name(self, task: Task) -> str:
        return resolve_label(
            task.contact_id,
            task.contact_name,
            self.related.get("contacts", []),
            lambda contact: contact.full_name,
        )

    def set_status_filter(self, status: str) -> list[Task]:
        self.status_filter = status or ""
        return self.visible

    def set_priority_filter(self, priority: str) -> list[Task]:
        self.priority_filter = priority or ""
        return self.visible

    def matches(self, task: Task) -> bool:
        if self.status_filter and task.status != self.status_filter:
            return False
        if self.priority_filter and task.priority != self.priority_filter:
            return False
        return True

    def search_values(self, task: Task) -> list[Any]:
        return [task.name, task.subject, task.tags]

    def display_name(self, task: Task) -> str:
        return task.name or task.subject

    def confirm_message(self, task: Task) -> str:
        return f'Are you sure you want to delete "{self.display_name(task)}"?'


class SalesRepListView(ListView[SalesRep]):
    """Sales reps, joined with the user directory they are assigned from."""

    export_name = "sales-reps"

    def __init__(
        self,
        service: SalesRepService,
        notify: Notifier | None = None,
        confirm: Confirm | None = None,
        export_dir: str | Path = ".",
    ) -> None:
        super().__init__(
            service,
            joins={"users": service},
            notify=notify,
            confirm=confirm,
            export_dir=export_dir,
        )
        self.export_columns = (
            ("User", self.user_name),
            ("Territory", lambda r: r.territory),
            ("Region", lambda r: r.region),
            ("Target Amount", lambda r: r.target_amount),
            ("Achievement %", lambda r: r.achievement_percentage),
            ("Start Date", lambda r: r.start_date),
            ("Active", lambda r: "Yes" if r.is_active else "No"),
        )

    def _fetch_join(self, name: str) -> Awaitable[list[Any]]:
        if name == "users":
            return self.service.get_available_users()
        return super()._fetch_join(name)

    def user_name(self, rep: SalesRep) -> str:
        return resolve_label(
            rep.user_id,
            rep.user_name,
            self.related.get("users", []),
            lambda user: user.name,
        )

    def search_values(self, rep: SalesRep) -> list[Any]:
        return [self.user_name(rep), rep.territory, rep.region]

    def confirm_message(self, rep: SalesRep) -> str:
        return "Are you sure you want to delete this sales representative?"
