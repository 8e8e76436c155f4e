"""CRM record layer -- normalizers, entity services and remote clients.

Provides:
- RemoteClient: record-oriented backend contract
- ApperClient: httpx implementation against the hosted backend
- InMemoryClient: process-local tables (sales-rep mock table, tests)
- RecordNormalizer: backend record <-> flat UI record mapping per entity
- EntityService subclasses: CRUD facades per entity
- detach_and_delete: relational cleanup with compensation

Architecture: one RemoteClient is built at startup and injected into every
entity service; services never construct clients of their own.
"""

from src.salesdesk.crm.apper import ApperClient
from src.salesdesk.crm.cleanup import DependentLink, detach_and_delete
from src.salesdesk.crm.client import RemoteClient
from src.salesdesk.crm.errors import (
    CRMError,
    DuplicateAssignmentError,
    ErrorKind,
    NotFoundError,
    RemoteFailureError,
    RemoteTransportError,
)
from src.salesdesk.crm.field_mapping import RecordNormalizer
from src.salesdesk.crm.memory import InMemoryClient
from src.salesdesk.crm.service import (
    CompanyService,
    ContactService,
    DealService,
    EntityService,
    LeadService,
    SalesRepService,
    TaskService,
)

__all__ = [
    "ApperClient",
    "CRMError",
    "CompanyService",
    "ContactService",
    "DealService",
    "DependentLink",
    "DuplicateAssignmentError",
    "EntityService",
    "ErrorKind",
    "InMemoryClient",
    "LeadService",
    "NotFoundError",
    "RecordNormalizer",
    "RemoteClient",
    "RemoteFailureError",
    "RemoteTransportError",
    "SalesRepService",
    "TaskService",
    "detach_and_delete",
]
