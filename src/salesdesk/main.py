"""Service factory -- builds the remote client once and wires every service.

The presentation layer calls ``create_services()`` (or enters the
``crm_services()`` context) at startup and hands the resulting services to
its forms and list views (``export_dir`` is the default CSV target).
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import structlog

from src.salesdesk.config import Settings, get_settings
from src.salesdesk.core.logging import configure_structlog
from src.salesdesk.crm.apper import ApperClient
from src.salesdesk.crm.client import RemoteClient
from src.salesdesk.crm.service import (
    CompanyService,
    ContactService,
    DealService,
    LeadService,
    SalesRepService,
    TaskService,
)

logger = structlog.get_logger(__name__)


@dataclass
class CRMServices:
    """Entity services sharing one injected remote client."""

    client: RemoteClient
    contacts: ContactService
    companies: CompanyService
    leads: LeadService
    deals: DealService
    tasks: TaskService
    sales_reps: SalesRepService
    export_dir: str = "."

    async def aclose(self) -> None:
        await self.client.aclose()
        await self.sales_reps.client.aclose()


def create_services(
    settings: Settings | None = None,
    client: RemoteClient | None = None,
) -> CRMServices:
    """Build the shared client (unless given) and inject it into each service.

    Sales reps have no hosted table and always use their in-memory mock.
    """
    settings = settings or get_settings()
    if client is None:
        client = ApperClient(
            project_id=settings.APPER_PROJECT_ID,
            public_key=settings.APPER_PUBLIC_KEY,
            base_url=settings.APPER_BASE_URL,
            timeout=settings.APPER_TIMEOUT,
            max_retries=settings.APPER_MAX_RETRIES,
        )

    page_size = settings.PAGE_SIZE
    services = CRMServices(
        client=client,
        contacts=ContactService(client, page_size=page_size),
        companies=CompanyService(client, page_size=page_size),
        leads=LeadService(client, page_size=page_size),
        deals=DealService(client, page_size=page_size),
        tasks=TaskService(client, page_size=page_size),
        sales_reps=SalesRepService(page_size=page_size),
        export_dir=settings.EXPORT_DIR,
    )
    logger.info(
        "crm.services_created",
        client=type(client).__name__,
        environment=settings.ENVIRONMENT.value,
    )
    return services


@asynccontextmanager
async def crm_services(settings: Settings | None = None) -> AsyncGenerator[CRMServices, None]:
    """Configure logging, build the services, and close the client on exit."""
    settings = settings or get_settings()
    configure_structlog(settings)
    services = create_services(settings)
    try:
        yield services
    finally:
        await services.aclose()
