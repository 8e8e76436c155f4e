"""Remote client abstract base class -- the record-oriented backend contract.

Every backend the entity services talk to implements this ABC: the
httpx-based ApperClient for the hosted backend-as-a-service, and the
InMemoryClient for mock tables and tests.

All operations return a RemoteResponse envelope. A well-formed response with
``success=False`` is a table-level failure; per-record outcomes of writes are
in ``results``. Implementations raise RemoteTransportError only when no
usable response was obtained.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.salesdesk.crm.schemas import RemoteResponse


class RemoteClient(ABC):
    """Abstract interface for record-oriented backend operations.

    Methods:
        fetch_records: Query a table (fields, where, orderBy, pagingInfo).
        get_record_by_id: Fetch one record; ``data`` is None when missing.
        create_record: Create ``{"records": [...]}``.
        update_record: Update ``{"records": [{"Id": ..., ...}]}``.
        delete_record: Delete ``{"RecordIds": [...]}``.
    """

    @abstractmethod
    async def fetch_records(self, table: str, query: dict[str, Any]) -> RemoteResponse:
        """Query records from a table."""
        ...

    @abstractmethod
    async def get_record_by_id(
        self, table: str, record_id: int, query: dict[str, Any]
    ) -> RemoteResponse:
        """Fetch a single record by Id."""
        ...

    @abstractmethod
    async def create_record(self, table: str, payload: dict[str, Any]) -> RemoteResponse:
        """Create records, return per-record results."""
        ...

    @abstractmethod
    async def update_record(self, table: str, payload: dict[str, Any]) -> RemoteResponse:
        """Update records by Id, return per-record results."""
        ...

    @abstractmethod
    async def delete_record(self, table: str, payload: dict[str, Any]) -> RemoteResponse:
        """Delete records by Id, return per-record results."""
        ...

    async def aclose(self) -> None:
        """Release transport resources. No-op by default."""
        return None
