"""Entity services -- CRUD facades that hide the remote client.

Each service delegates persistence to the RemoteClient injected at startup
and applies its entity's RecordNormalizer on the way in and out, so callers
only ever see UI records.

Failure contract shared by every entity:
- list_records() raises RemoteFailureError; get_all() degrades to [] and logs
- get_by_id() raises NotFoundError when nothing matches
- create()/update() raise RemoteFailureError with the backend's message
  (table-level message, or the first failed row's message)
- delete() returns a DeleteResult; only transport failures raise
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any, Generic

import structlog

from src.salesdesk.crm.client import RemoteClient
from src.salesdesk.crm.errors import (
    DuplicateAssignmentError,
    ErrorKind,
    NotFoundError,
    RemoteFailureError,
)
from src.salesdesk.crm.field_mapping import (
    COMPANY_NORMALIZER,
    CONTACT_NORMALIZER,
    DEAL_NORMALIZER,
    LEAD_NORMALIZER,
    SALES_REP_NORMALIZER,
    TASK_NORMALIZER,
    RecordNormalizer,
    RecordT,
    parse_int,
)
from src.salesdesk.crm.memory import InMemoryClient
from src.salesdesk.crm.schemas import (
    Company,
    Contact,
    Deal,
    DeleteResult,
    Lead,
    RecordResult,
    RemoteResponse,
    SalesRep,
    Task,
    User,
)

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 100


def _row_message(result: RecordResult) -> str | None:
    """First human-readable message of a failed row."""
    if result.message:
        return result.message
    for error in result.errors:
        if isinstance(error, Mapping):
            label = error.get("fieldLabel")
            message = error.get("message")
            if message:
                return f"{label}: {message}" if label else str(message)
        elif error:
            return str(error)
    return None


class EntityService(Generic[RecordT]):
    """CRUD facade for one entity table.

    Subclasses set the table, normalizer and behavior flags.

    Args:
        client: The shared RemoteClient instance.
        page_size: Maximum records returned by list calls.
        clock: Returns "now" for created/updated stamps. UTC by default.
    """

    entity_name: str = "record"
    entity_plural: str = "records"
    event_name: str = "record"
    table: str = ""
    normalizer: RecordNormalizer
    sparse_updates: bool = False
    search_fields: tuple[str, ...] = ()
    order_by: tuple[str, str] | None = None

    def __init__(
        self,
        client: RemoteClient,
        page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._client = client
        self._page_size = page_size
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def client(self) -> RemoteClient:
        return self._client

    @property
    def entity_label(self) -> str:
        return self.entity_name.capitalize()

    def _query(self, search: str | None = None) -> dict[str, Any]:
        query: dict[str, Any] = {
            "fields": self.normalizer.backend_fields(),
            "pagingInfo": {"limit": self._page_size, "offset": 0},
        }
        if self.order_by:
            field, direction = self.order_by
            query["orderBy"] = [{"fieldName": field, "sorttype": direction}]
        if search and self.search_fields:
            query["whereGroups"] = [
                {
                    "operator": "OR",
                    "conditions": [
                        {
                            "FieldName": self.normalizer.backend_name(attr),
                            "Operator": "Contains",
                            "Values": [search],
                        }
                        for attr in self.search_fields
                    ],
                }
            ]
        return query

    # ── Reads ──────────────────────────────────────────────────────────

    async def list_records(self, search: str | None = None) -> list[RecordT]:
        """Fetch up to page_size records, raising on failure."""
        response = await self._client.fetch_records(self.table, self._query(search))
        if not response.success:
            logger.error("crm.list_failed", table=self.table, message=response.message)
            raise RemoteFailureError(response.message or f"Failed to fetch {self.entity_plural}")

        rows = response.data or []
        return [self.normalizer.from_backend(row) for row in rows]

    async def get_all(self, search: str | None = None) -> list[RecordT]:
        """Fetch up to page_size records, degrading to [] on failure."""
        try:
            return await self.list_records(search)
        except RemoteFailureError as exc:
            logger.warning("crm.list_degraded", table=self.table, error=exc.message)
            return []

    async def get_by_id(self, record_id: int | str) -> RecordT:
        """Fetch one record; raises NotFoundError when nothing matches."""
        record_key = parse_int(record_id)
        if record_key is None:
            raise NotFoundError(f"{self.entity_label} not found")

        response = await self._client.get_record_by_id(
            self.table, record_key, {"fields": self.normalizer.backend_fields()}
        )
        if not response.success:
            logger.error("crm.get_failed", table=self.table, record_id=record_key)
            raise RemoteFailureError(response.message or f"Failed to fetch {self.entity_name}")
        if not response.data:
            raise NotFoundError(f"{self.entity_label} not found")

        return self.normalizer.from_backend(response.data)

    # ── Writes ─────────────────────────────────────────────────────────

    def _single_result(self, response: RemoteResponse, action: str) -> dict[str, Any]:
        """Unwrap a single-record write, raising the first failure's message."""
        fallback = f"Failed to {action} {self.entity_name}"
        if not response.success:
            logger.error(f"crm.{self.event_name}_{action}_failed", message=response.message)
            raise RemoteFailureError(response.message or fallback)

        results = response.results or []
        failed = [result for result in results if not result.success]
        if failed:
            logger.error(
                f"crm.{self.event_name}_{action}_failed",
                failed=len(failed),
                message=_row_message(failed[0]),
            )
            raise RemoteFailureError(_row_message(failed[0]) or fallback)

        for result in results:
            if result.data:
                return result.data
        raise RemoteFailureError(fallback)

    async def _before_write(
        self, payload: dict[str, Any], record_id: int | None
    ) -> dict[str, Any]:
        """Hook for entity rules applied to the backend payload."""
        return payload

    async def create(self, ui_record: RecordT | Mapping[str, Any]) -> RecordT:
        """Create one record and return it normalized, with its server Id."""
        payload = self.normalizer.to_backend(ui_record)
        self.normalizer.stamp(payload, self._clock(), creating=True)
        payload = await self._before_write(payload, None)

        response = await self._client.create_record(self.table, {"records": [payload]})
        record = self.normalizer.from_backend(self._single_result(response, "create"))
        logger.info(f"crm.{self.event_name}_created", record_id=record.id, table=self.table)
        return record

    async def update(
        self, record_id: int | str, ui_record: RecordT | Mapping[str, Any]
    ) -> RecordT:
        """Update one record; sparse or full replacement per entity."""
        record_key = parse_int(record_id)
        if record_key is None:
            raise NotFoundError(f"{self.entity_label} not found")

        payload = self.normalizer.to_backend(ui_record, sparse=self.sparse_updates)
        self.normalizer.stamp(payload, self._clock(), creating=False)
        payload = await self._before_write(payload, record_key)

        response = await self._client.update_record(
            self.table, {"records": [{"Id": record_key, **payload}]}
        )
        record = self.normalizer.from_backend(self._single_result(response, "update"))
        logger.info(
            f"crm.{self.event_name}_updated",
            record_id=record_key,
            fields=sorted(payload.keys()),
        )
        return record

    async def delete(self, record_id: int | str) -> DeleteResult:
        """Delete one record. Row/table failures are returned, not raised."""
        record_key = parse_int(record_id)
        if record_key is None:
            return DeleteResult(
                success=False,
                error=ErrorKind.NOT_FOUND,
                message=f"{self.entity_label} not found",
            )

        response = await self._client.delete_record(self.table, {"RecordIds": [record_key]})
        if not response.success:
            logger.error(f"crm.{self.event_name}_delete_failed", message=response.message)
            return DeleteResult(
                success=False,
                error=ErrorKind.REMOTE_FAILURE,
                message=response.message or f"Failed to delete {self.entity_name}",
            )

        failed = [result for result in response.results or [] if not result.success]
        if failed:
            message = _row_message(failed[0]) or f"Failed to delete {self.entity_name}"
            logger.error(f"crm.{self.event_name}_delete_failed", record_id=record_key, message=message)
            return DeleteResult(success=False, error=ErrorKind.REMOTE_FAILURE, message=message)

        logger.info(f"crm.{self.event_name}_deleted", record_id=record_key)
        return DeleteResult(success=True)


# ── Entity Services ─────────────────────────────────────────────────────────


class ContactService(EntityService[Contact]):
    entity_name = "contact"
    event_name = "contact"
    entity_plural = "contacts"
    table = "contact_c"
    normalizer = CONTACT_NORMALIZER
    search_fields = ("first_name", "last_name", "email", "phone", "title")


class CompanyService(EntityService[Company]):
    entity_name = "company"
    event_name = "company"
    entity_plural = "companies"
    table = "company_c"
    normalizer = COMPANY_NORMALIZER
    search_fields = ("name", "industry", "description", "website")


class LeadService(EntityService[Lead]):
    entity_name = "lead"
    event_name = "lead"
    entity_plural = "leads"
    table = "leads_c"
    normalizer = LEAD_NORMALIZER
    search_fields = ("first_name", "last_name", "email", "company", "status", "lead_source")


class DealService(EntityService[Deal]):
    """Deals: sparse updates, newest first."""

    entity_name = "deal"
    event_name = "deal"
    entity_plural = "deals"
    table = "deals_c"
    normalizer = DEAL_NORMALIZER
    sparse_updates = True
    search_fields = ("name", "tags", "status")
    order_by = ("ModifiedOn", "DESC")


class TaskService(EntityService[Task]):
    entity_name = "task"
    event_name = "task"
    entity_plural = "tasks"
    table = "task_c"
    normalizer = TASK_NORMALIZER
    search_fields = ("name", "subject", "tags")
    order_by = ("ModifiedOn", "DESC")


# ── Sales Reps (mock table) ─────────────────────────────────────────────────

USER_TABLE = "User"

MOCK_USERS: list[dict[str, Any]] = [
    {"Id": 1, "Name": "John Smith"},
    {"Id": 2, "Name": "Sarah Johnson"},
    {"Id": 3, "Name": "Michael Brown"},
    {"Id": 4, "Name": "Emily Davis"},
    {"Id": 5, "Name": "David Wilson"},
    {"Id": 6, "Name": "Lisa Anderson"},
    {"Id": 7, "Name": "James Miller"},
    {"Id": 8, "Name": "Jennifer Taylor"},
    {"Id": 9, "Name": "Robert Garcia"},
    {"Id": 10, "Name": "Amanda Martinez"},
    {"Id": 11, "Name": "Christopher Lee"},
    {"Id": 12, "Name": "Michelle White"},
]


def mock_sales_rep_client(
    reps: list[dict[str, Any]] | None = None,
    users: list[dict[str, Any]] | None = None,
) -> InMemoryClient:
    """In-memory backend holding the sales-rep table and user directory."""
    return InMemoryClient(
        tables={
            SalesRepService.table: reps or [],
            USER_TABLE: MOCK_USERS if users is None else users,
        },
        references={SalesRepService.table: {"user_id_c": USER_TABLE}},
    )


class SalesRepService(EntityService[SalesRep]):
    """Sales reps live in a mock table; users come from a mock directory.

    A user may hold only one active assignment at a time.
    """

    entity_name = "sales representative"
    entity_plural = "sales representatives"
    event_name = "sales_rep"
    table = "sales_rep_c"
    normalizer = SALES_REP_NORMALIZER
    sparse_updates = True

    def __init__(
        self,
        client: RemoteClient | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(client or mock_sales_rep_client(), page_size=page_size, clock=clock)

    async def get_available_users(self) -> list[User]:
        """Return the user directory sales reps are assigned from."""
        response = await self._client.fetch_records(
            USER_TABLE, {"fields": [{"field": {"Name": "Id"}}, {"field": {"Name": "Name"}}]}
        )
        if not response.success:
            raise RemoteFailureError(response.message or "Failed to load users")
        return [User.model_validate(row) for row in response.data or []]

    async def _before_write(
        self, payload: dict[str, Any], record_id: int | None
    ) -> dict[str, Any]:
        if record_id is None and not payload.get("start_date_c"):
            payload["start_date_c"] = self._clock().date().isoformat()

        user_id = payload.get("user_id_c")
        if user_id:
            existing = await self.list_records()
            for rep in existing:
                if rep.user_id == user_id and rep.is_active and rep.id != record_id:
                    raise DuplicateAssignmentError(
                        "This user is already assigned as an active sales representative"
                    )
        return payload
