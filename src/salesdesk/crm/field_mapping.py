"""Field mappings between backend records and flat UI records.

Defines:
- <ENTITY>_FIELD_MAP: Maps UI attribute names to backend column names and
  field types for each entity (Contact, Company, Lead, Deal, Task, SalesRep).
- from_backend_record(): Converts a backend record to a UI field dict.
- to_backend_record(): Converts UI fields to a writable backend payload.
- RecordNormalizer: Binds a field map to its UI model.

Field map entries:
    backend:   backend column name (``first_name_c``, ``Tags``, ``Owner``)
    type:      text | integer | number | boolean | date | timestamp |
               lookup | id_list
    legacy:    optional older UI name read as a fallback (``dealName``)
    label:     lookup only, UI attribute receiving the lookup's ``Name``
    reference: lookup only, column on the referenced table the backend
               expands into ``Name``
    writable:  False for system columns never sent on write
    default:   value written when the UI leaves the field empty
    stamp:     timestamp only, ``created`` or ``updated``

Reading checks the backend column first, then the camelCase UI alias, then
the legacy alias, so records already in UI shape normalize to themselves.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from src.salesdesk.crm.schemas import (
    Company,
    Contact,
    CRMRecord,
    Deal,
    DealStatus,
    ForeignKey,
    Lead,
    SalesRep,
    Task,
    TaskPriority,
    TaskStatus,
)

RecordT = TypeVar("RecordT", bound=CRMRecord)

FieldMap = dict[str, dict[str, Any]]

_INT_RE = re.compile(r"^\s*[+-]?\d+")
_FLOAT_RE = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_TRUE_STRINGS = {"true", "1", "yes", "on"}


# ── Entity Field Maps ───────────────────────────────────────────────────────

CONTACT_FIELD_MAP: FieldMap = {
    "first_name": {"backend": "first_name_c", "type": "text"},
    "last_name": {"backend": "last_name_c", "type": "text"},
    "email": {"backend": "email_c", "type": "text"},
    "phone": {"backend": "phone_c", "type": "text"},
    "company_id": {
        "backend": "company_id_c",
        "type": "lookup",
        "label": "company_name",
        "reference": "name_c",
    },
    "title": {"backend": "title_c", "type": "text"},
    "notes": {"backend": "notes_c", "type": "text"},
    "created_at": {"backend": "created_at_c", "type": "timestamp", "stamp": "created"},
    "updated_at": {"backend": "updated_at_c", "type": "timestamp", "stamp": "updated"},
}

COMPANY_FIELD_MAP: FieldMap = {
    "name": {"backend": "name_c", "type": "text"},
    "industry": {"backend": "industry_c", "type": "text"},
    "size": {"backend": "size_c", "type": "text"},
    "website": {"backend": "website_c", "type": "text"},
    "description": {"backend": "description_c", "type": "text"},
    "contact_ids": {"backend": "contact_ids_c", "type": "id_list"},
    "created_at": {"backend": "created_at_c", "type": "timestamp", "stamp": "created"},
    "updated_at": {"backend": "updated_at_c", "type": "timestamp", "stamp": "updated"},
}

LEAD_FIELD_MAP: FieldMap = {
    "name": {"backend": "Name", "type": "text"},
    "tags": {"backend": "Tags", "type": "text"},
    "first_name": {"backend": "first_name_c", "type": "text"},
    "last_name": {"backend": "last_name_c", "type": "text"},
    "email": {"backend": "email_c", "type": "text"},
    "phone": {"backend": "phone_c", "type": "text"},
    "company": {"backend": "company_c", "type": "text"},
    "status": {"backend": "status_c", "type": "text"},
    "lead_source": {"backend": "lead_source_c", "type": "text"},
    "created_on": {"backend": "CreatedOn", "type": "timestamp", "writable": False},
    "modified_on": {"backend": "ModifiedOn", "type": "timestamp", "writable": False},
}

DEAL_FIELD_MAP: FieldMap = {
    "name": {"backend": "Name_c", "type": "text", "legacy": "dealName"},
    "value": {"backend": "Value_c", "type": "integer", "legacy": "dealValue"},
    "status": {
        "backend": "Status_c",
        "type": "text",
        "legacy": "stage",
        "default": DealStatus.PROSPECTING.value,
    },
    "close_date": {"backend": "CloseDate_c", "type": "date", "legacy": "expectedCloseDate"},
    "probability": {"backend": "Probability_c", "type": "integer"},
    "tags": {"backend": "Tags", "type": "text"},
    "company_id": {
        "backend": "company_id_c",
        "type": "lookup",
        "label": "company_name",
        "reference": "name_c",
        "legacy": "company",
    },
    "contact_id": {
        "backend": "contact_id_c",
        "type": "lookup",
        "label": "contact_name",
        "reference": "Name",
    },
    "sales_rep_id": {
        "backend": "sales_rep_id_c",
        "type": "lookup",
        "label": "sales_rep_name",
        "reference": "Name",
    },
    "owner_id": {
        "backend": "Owner",
        "type": "lookup",
        "label": "owner_name",
        "reference": "Name",
        "writable": False,
    },
    "created_on": {"backend": "CreatedOn", "type": "timestamp", "writable": False},
    "modified_on": {"backend": "ModifiedOn", "type": "timestamp", "writable": False},
}

TASK_FIELD_MAP: FieldMap = {
    "name": {"backend": "Name", "type": "text"},
    "subject": {"backend": "subject_c", "type": "text"},
    "due_date": {"backend": "due_date_c", "type": "date"},
    "priority": {
        "backend": "priority_c",
        "type": "text",
        "default": TaskPriority.MEDIUM.value,
    },
    "status": {
        "backend": "status_c",
        "type": "text",
        "default": TaskStatus.NOT_STARTED.value,
    },
    "notes": {"backend": "notes_c", "type": "text"},
    "call_details": {"backend": "call_details_c", "type": "text"},
    "meeting_details": {"backend": "meeting_details_c", "type": "text"},
    "follow_up": {"backend": "follow_up_c", "type": "boolean"},
    "company_id": {
        "backend": "company_id_c",
        "type": "lookup",
        "label": "company_name",
        "reference": "name_c",
    },
    "contact_id": {
        "backend": "contact_id_c",
        "type": "lookup",
        "label": "contact_name",
        "reference": "Name",
    },
    "tags": {"backend": "Tags", "type": "text"},
    "created_on": {"backend": "CreatedOn", "type": "timestamp", "writable": False},
    "modified_on": {"backend": "ModifiedOn", "type": "timestamp", "writable": False},
}

SALES_REP_FIELD_MAP: FieldMap = {
    "user_id": {
        "backend": "user_id_c",
        "type": "lookup",
        "label": "user_name",
        "reference": "Name",
    },
    "territory": {"backend": "territory_c", "type": "text"},
    "region": {"backend": "region_c", "type": "text"},
    "target_amount": {"backend": "target_amount_c", "type": "number"},
    "achievement_percentage": {"backend": "achievement_percentage_c", "type": "number"},
    "start_date": {"backend": "start_date_c", "type": "date"},
    "is_active": {"backend": "is_active_c", "type": "boolean", "default": True},
    "created_at": {"backend": "created_at_c", "type": "timestamp", "stamp": "created"},
    "updated_at": {"backend": "updated_at_c", "type": "timestamp", "stamp": "updated"},
}


# ── Parsing Helpers ─────────────────────────────────────────────────────────


def parse_int(value: Any) -> int | None:
    """Parse a leading integer the lenient way form inputs need.

    ``"42"`` -> 42, ``"42abc"`` -> 42, ``"3.9"`` -> 3, ``7.0`` -> 7.
    Returns None when nothing numeric leads the value.
    """
    if value is None:
        return None
    if isinstance(value, (bool, int)):
        return int(value)
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    match = _INT_RE.match(str(value))
    return int(match.group(0)) if match else None


def parse_float(value: Any) -> float | None:
    """Parse a leading decimal number; None when nothing numeric leads."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    match = _FLOAT_RE.match(str(value))
    return float(match.group(0)) if match else None


def parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _ui_names(attr: str, mapping: dict[str, Any]) -> list[str]:
    """Names under which a UI value may appear, in precedence order."""
    names = [attr, to_camel(attr)]
    if mapping.get("legacy"):
        names.append(mapping["legacy"])
    names.append(mapping["backend"])
    return list(dict.fromkeys(names))


# ── Conversion Functions ────────────────────────────────────────────────────


def extract_lookup(value: Any) -> tuple[ForeignKey, str]:
    """Split a lookup value into (foreign key, display label).

    ``{"Id": 7, "Name": "Acme"}`` -> (7, "Acme"); ``7`` -> (7, "");
    empty -> ("", "").
    """
    if isinstance(value, Mapping):
        fk = parse_int(value.get("Id"))
        return (fk or ""), str(value.get("Name") or "")
    if _is_empty(value):
        return "", ""
    return (parse_int(value) or ""), ""


def _extract_value(value: Any, field_type: str) -> Any:
    """Extract a UI value from a backend column value.

    Absent values become the type's empty value, never None.
    """
    if field_type == "integer":
        parsed = parse_int(value)
        return parsed if parsed is not None else 0

    if field_type == "number":
        parsed = parse_float(value)
        return parsed if parsed is not None else 0.0

    if field_type == "boolean":
        return False if value is None else parse_bool(value)

    if field_type == "id_list":
        if _is_empty(value):
            return []
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value if not _is_empty(item)]
        return [part.strip() for part in str(value).split(",") if part.strip()]

    # text, date, timestamp
    return "" if value is None else str(value)


def from_backend_record(
    record: Mapping[str, Any],
    field_map: FieldMap,
) -> dict[str, Any]:
    """Convert a backend record to a dict of UI attribute values.

    Args:
        record: Backend record (``_c`` columns, lookups bare or expanded).
            Records already in UI shape are accepted as well.
        field_map: Entity field map.

    Returns:
        Dict keyed by UI attribute name, including ``id``.
    """
    result: dict[str, Any] = {"id": parse_int(record.get("Id", record.get("id")))}

    for attr, mapping in field_map.items():
        raw = None
        for name in [mapping["backend"], to_camel(attr), attr, mapping.get("legacy")]:
            if name and not _is_empty(record.get(name)):
                raw = record[name]
                break

        if mapping["type"] == "lookup":
            fk, label = extract_lookup(raw)
            result[attr] = fk
            label_attr = mapping.get("label")
            if label_attr:
                if not label:
                    label = str(record.get(to_camel(label_attr)) or record.get(label_attr) or "")
                result[label_attr] = label
        else:
            result[attr] = _extract_value(raw, mapping["type"])

    return result


def _coerce_value(value: Any, field_type: str, default: Any = None) -> Any:
    """Coerce a UI value to the backend column type for writing."""
    if field_type == "lookup":
        if isinstance(value, Mapping):
            value = value.get("Id")
        if not value:
            return None
        return parse_int(value)

    if field_type == "integer":
        if _is_empty(value):
            return default if default is not None else 0
        parsed = parse_int(value)
        return parsed if parsed is not None else 0

    if field_type == "number":
        if _is_empty(value):
            return default if default is not None else 0
        parsed = parse_float(value)
        return parsed if parsed is not None else 0

    if field_type == "boolean":
        if value is None:
            return default if default is not None else False
        return parse_bool(value)

    if field_type == "id_list":
        if _is_empty(value):
            return ""
        if isinstance(value, (list, tuple)):
            return ",".join(str(item) for item in value if not _is_empty(item))
        return str(value)

    if field_type == "date":
        return default if _is_empty(value) else str(value)

    # text
    if _is_empty(value):
        return default if default is not None else ""
    return str(value)


def to_backend_record(
    data: Mapping[str, Any],
    field_map: FieldMap,
    *,
    sparse: bool = False,
) -> dict[str, Any]:
    """Convert UI values to a backend payload containing writable columns only.

    Args:
        data: UI values keyed by attribute name, camelCase alias, legacy name
            or backend column.
        field_map: Entity field map.
        sparse: Only emit columns whose UI value is present in ``data``.

    Returns:
        Dict keyed by backend column name (no ``Id``).
    """
    payload: dict[str, Any] = {}

    for attr, mapping in field_map.items():
        if not mapping.get("writable", True):
            continue

        present = False
        value: Any = None
        for name in _ui_names(attr, mapping):
            if name in data:
                present, value = True, data[name]
                break

        field_type = mapping["type"]
        backend = mapping["backend"]

        if field_type == "timestamp":
            # Stamped by the service; only echoed when the caller has one
            if present and not _is_empty(value):
                payload[backend] = str(value)
            continue

        if not present and sparse:
            continue

        payload[backend] = _coerce_value(value, field_type, mapping.get("default"))

    return payload


# ── Normalizer ──────────────────────────────────────────────────────────────


class RecordNormalizer(Generic[RecordT]):
    """Bidirectional mapper between backend records and one UI model.

    Args:
        model: UI record class produced by from_backend().
        field_map: Entity field map.
    """

    def __init__(self, model: type[RecordT], field_map: FieldMap) -> None:
        self.model = model
        self.field_map = field_map

    def from_backend(self, record: Mapping[str, Any]) -> RecordT:
        """Map a backend record to the UI model."""
        return self.model.model_validate(from_backend_record(record, self.field_map))

    def to_backend(
        self,
        ui_record: RecordT | Mapping[str, Any],
        *,
        sparse: bool = False,
    ) -> dict[str, Any]:
        """Map a UI record (model or dict) to a writable backend payload.

        For models, ``sparse`` keeps only the fields explicitly set on the
        instance.
        """
        if isinstance(ui_record, BaseModel):
            data = ui_record.model_dump(exclude_unset=sparse)
        else:
            data = dict(ui_record)
        return to_backend_record(data, self.field_map, sparse=sparse)

    def stamp(
        self,
        payload: dict[str, Any],
        now: datetime,
        *,
        creating: bool,
    ) -> dict[str, Any]:
        """Set writable created/updated timestamp columns on a payload."""
        for mapping in self.field_map.values():
            if mapping["type"] != "timestamp" or not mapping.get("writable", True):
                continue
            if mapping.get("stamp") == "updated" or (creating and mapping.get("stamp") == "created"):
                payload[mapping["backend"]] = now.isoformat()
        return payload

    def backend_fields(self) -> list[dict[str, Any]]:
        """Field-selection list for fetch queries, expanding lookups."""
        fields: list[dict[str, Any]] = [{"field": {"Name": "Id"}}]
        for mapping in self.field_map.values():
            entry: dict[str, Any] = {"field": {"Name": mapping["backend"]}}
            if mapping["type"] == "lookup" and mapping.get("reference"):
                entry["referenceField"] = {"field": {"Name": mapping["reference"]}}
            fields.append(entry)
        return fields

    def backend_name(self, attr: str) -> str:
        """Backend column for a UI attribute."""
        return self.field_map[attr]["backend"]


CONTACT_NORMALIZER = RecordNormalizer(Contact, CONTACT_FIELD_MAP)
COMPANY_NORMALIZER = RecordNormalizer(Company, COMPANY_FIELD_MAP)
LEAD_NORMALIZER = RecordNormalizer(Lead, LEAD_FIELD_MAP)
DEAL_NORMALIZER = RecordNormalizer(Deal, DEAL_FIELD_MAP)
TASK_NORMALIZER = RecordNormalizer(Task, TASK_FIELD_MAP)
SALES_REP_NORMALIZER = RecordNormalizer(SalesRep, SALES_REP_FIELD_MAP)
