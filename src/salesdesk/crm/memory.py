"""In-memory RemoteClient -- mock tables with backend-like semantics.

Backs tables that have no hosted counterpart (sales reps and their user
directory) and gives tests a realistic backend without network access.

Behaves like the hosted backend where the entity services can tell:
- Ids are assigned by the "server" (max existing Id + 1)
- CreatedOn / ModifiedOn system columns are maintained on write
- Lookup columns are stored bare and expanded to ``{"Id", "Name"}`` when a
  query asks for a ``referenceField`` on a configured reference
- ``where`` conditions are ANDed; each ``whereGroups`` entry combines its
  conditions with its own operator
- ``orderBy`` and ``pagingInfo`` are honored
- Writes against missing Ids fail per record, not per call

Every call is appended to ``calls`` as ``(operation, table, payload)``.
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any

import structlog

from src.salesdesk.crm.client import RemoteClient
from src.salesdesk.crm.schemas import RecordResult, RemoteResponse

logger = structlog.get_logger(__name__)


def _sort_key(value: Any) -> tuple[int, Any]:
    if value is None:
        return (2, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value)
    if isinstance(value, dict):
        return (1, str(value.get("Name", "")))
    return (1, str(value))


def _bare(value: Any) -> Any:
    """Lookup objects written back by callers are stored as their Id."""
    if isinstance(value, dict) and "Id" in value:
        return value["Id"]
    return value


class InMemoryClient(RemoteClient):
    """RemoteClient over process-local tables.

    Args:
        tables: Seed rows per table name; each row must carry an ``Id``.
        references: ``{table: {lookup_column: target_table}}`` used to
            expand lookups on fetch.
    """

    def __init__(
        self,
        tables: dict[str, list[dict[str, Any]]] | None = None,
        references: dict[str, dict[str, str]] | None = None,
    ) -> None:
        self._tables: dict[str, dict[int, dict[str, Any]]] = {}
        self._references = references or {}
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

        for table, rows in (tables or {}).items():
            self._tables[table] = {int(row["Id"]): copy.deepcopy(row) for row in rows}

    def add_table(self, table: str, rows: list[dict[str, Any]] | None = None) -> None:
        """Create (or reset) a table with optional seed rows."""
        self._tables[table] = {int(row["Id"]): copy.deepcopy(row) for row in rows or []}

    def rows(self, table: str) -> list[dict[str, Any]]:
        """Snapshot of stored rows, lookups bare."""
        return [copy.deepcopy(row) for row in self._tables.get(table, {}).values()]

    # ── Query evaluation ───────────────────────────────────────────────

    @staticmethod
    def _matches(row: dict[str, Any], condition: dict[str, Any]) -> bool:
        value = _bare(row.get(condition.get("FieldName", "")))
        operator = condition.get("Operator", "EqualTo")
        wanted = condition.get("Values", [])

        if operator == "Contains":
            haystack = "" if value is None else str(value).lower()
            return any(str(item).lower() in haystack for item in wanted)
        if operator == "EqualTo":
            return any(str(item) == str(value) for item in wanted)
        if operator == "NotEqualTo":
            return all(str(item) != str(value) for item in wanted)
        logger.warning("memory.unsupported_operator", operator=operator)
        return False

    def _filter(self, rows: list[dict[str, Any]], query: dict[str, Any]) -> list[dict[str, Any]]:
        for condition in query.get("where", []):
            rows = [row for row in rows if self._matches(row, condition)]

        for group in query.get("whereGroups", []):
            conditions = group.get("conditions", [])
            if not conditions:
                continue
            combine = any if group.get("operator", "AND").upper() == "OR" else all
            rows = [row for row in rows if combine(self._matches(row, c) for c in conditions)]

        return rows

    def _expand(self, table: str, row: dict[str, Any], fields: list[dict[str, Any]]) -> dict[str, Any]:
        """Project a stored row onto the requested fields."""
        if not fields:
            return copy.deepcopy(row)

        result: dict[str, Any] = {"Id": row["Id"]}
        for entry in fields:
            name = entry.get("field", {}).get("Name") or entry.get("field", {}).get("name")
            if not name or name == "Id" or name not in row:
                continue
            value = copy.deepcopy(row[name])
            reference = entry.get("referenceField", {}).get("field", {}).get("Name")
            target_table = self._references.get(table, {}).get(name)
            if reference and target_table and value not in (None, ""):
                target = self._tables.get(target_table, {}).get(int(_bare(value)))
                if target is not None:
                    value = {
                        "Id": target["Id"],
                        "Name": target.get(reference) or target.get("Name", ""),
                    }
            result[name] = value
        return result

    # ── RemoteClient ───────────────────────────────────────────────────

    async def fetch_records(self, table: str, query: dict[str, Any]) -> RemoteResponse:
        self.calls.append(("fetch", table, copy.deepcopy(query)))
        if table not in self._tables:
            return RemoteResponse(success=False, message=f"Table {table} does not exist")

        rows = self._filter(list(self._tables[table].values()), query)

        for order in reversed(query.get("orderBy", [])):
            field = order.get("fieldName", "Id")
            descending = str(order.get("sorttype", "ASC")).upper() == "DESC"
            rows = sorted(rows, key=lambda row: _sort_key(row.get(field)), reverse=descending)

        paging = query.get("pagingInfo") or {}
        offset = int(paging.get("offset", 0))
        limit = paging.get("limit")
        rows = rows[offset:] if limit is None else rows[offset : offset + int(limit)]

        fields = query.get("fields", [])
        return RemoteResponse(success=True, data=[self._expand(table, row, fields) for row in rows])

    async def get_record_by_id(
        self, table: str, record_id: int, query: dict[str, Any]
    ) -> RemoteResponse:
        self.calls.append(("get", table, {"Id": record_id, **copy.deepcopy(query)}))
        if table not in self._tables:
            return RemoteResponse(success=False, message=f"Table {table} does not exist")

        row = self._tables[table].get(int(record_id))
        if row is None:
            return RemoteResponse(success=True, data=None)
        return RemoteResponse(success=True, data=self._expand(table, row, query.get("fields", [])))

    async def create_record(self, table: str, payload: dict[str, Any]) -> RemoteResponse:
        self.calls.append(("create", table, copy.deepcopy(payload)))
        if table not in self._tables:
            return RemoteResponse(success=False, message=f"Table {table} does not exist")

        store = self._tables[table]
        now = datetime.now(timezone.utc).isoformat()
        results: list[RecordResult] = []

        for record in payload.get("records", []):
            record_id = max(store, default=0) + 1
            row = {key: _bare(value) for key, value in record.items() if key != "Id"}
            row.update({"Id": record_id, "CreatedOn": now, "ModifiedOn": now})
            store[record_id] = row
            results.append(RecordResult(success=True, data=copy.deepcopy(row)))

        return RemoteResponse(success=True, results=results)

    async def update_record(self, table: str, payload: dict[str, Any]) -> RemoteResponse:
        self.calls.append(("update", table, copy.deepcopy(payload)))
        if table not in self._tables:
            return RemoteResponse(success=False, message=f"Table {table} does not exist")

        store = self._tables[table]
        now = datetime.now(timezone.utc).isoformat()
        results: list[RecordResult] = []

        for record in payload.get("records", []):
            row = store.get(int(record.get("Id") or 0))
            if row is None:
                results.append(
                    RecordResult(success=False, message=f"Record {record.get('Id')} does not exist")
                )
                continue
            row.update({key: _bare(value) for key, value in record.items() if key != "Id"})
            row["ModifiedOn"] = now
            results.append(RecordResult(success=True, data=copy.deepcopy(row)))

        return RemoteResponse(success=True, results=results)

    async def delete_record(self, table: str, payload: dict[str, Any]) -> RemoteResponse:
        self.calls.append(("delete", table, copy.deepcopy(payload)))
        if table not in self._tables:
            return RemoteResponse(success=False, message=f"Table {table} does not exist")

        store = self._tables[table]
        results: list[RecordResult] = []
        for record_id in payload.get("RecordIds", []):
            if store.pop(int(record_id), None) is None:
                results.append(
                    RecordResult(success=False, message=f"Record {record_id} does not exist")
                )
            else:
                results.append(RecordResult(success=True))

        return RemoteResponse(success=True, results=results)
