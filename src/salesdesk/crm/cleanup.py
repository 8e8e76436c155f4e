"""Relational cleanup -- detach dependents, then delete the parent.

The backend enforces no cascades, so deleting a record that others point at
is orchestrated here as a small saga:

1. Detach each dependent, one update at a time, in order (sequential so a
   failure stops further writes).
2. Delete the parent.
3. If step 1 or 2 fails, compensate: re-attach the dependents already
   detached, newest first. Compensation is best effort; ids that could not
   be restored are reported in ``CleanupResult.unrestored``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from src.salesdesk.crm.errors import CRMError
from src.salesdesk.crm.schemas import CleanupResult, CRMRecord, DeleteResult
from src.salesdesk.crm.service import EntityService

logger = structlog.get_logger(__name__)


@dataclass
class DependentLink:
    """Records of one entity that reference the parent through ``field``.

    Attributes:
        service: Service owning the dependent records.
        records: Dependents to detach (UI records with ids).
        field: UI foreign-key attribute to clear, e.g. ``company_id``.
    """

    service: EntityService
    records: Sequence[CRMRecord]
    field: str


def _payload(link: DependentLink, record: CRMRecord, value: Any) -> Any:
    """Update body setting ``field`` to ``value``, honoring sparse vs full updates."""
    if link.service.sparse_updates:
        return {link.field: value}
    return record.model_copy(update={link.field: value})


async def _compensate(detached: list[tuple[DependentLink, CRMRecord]]) -> tuple[list[int], list[int]]:
    restored: list[int] = []
    unrestored: list[int] = []

    for link, record in reversed(detached):
        original = getattr(record, link.field)
        try:
            await link.service.update(record.id, _payload(link, record, original))
            restored.append(record.id)
        except CRMError as exc:
            logger.error(
                "cleanup.restore_failed",
                record_id=record.id,
                field=link.field,
                error=exc.message,
            )
            unrestored.append(record.id)

    logger.info("cleanup.compensated", restored=len(restored), unrestored=len(unrestored))
    return restored, unrestored


async def detach_and_delete(
    parent_service: EntityService,
    parent_id: int,
    links: Sequence[DependentLink],
) -> CleanupResult:
    """Detach every dependent from the parent, then delete the parent.

    Args:
        parent_service: Service owning the parent record.
        parent_id: Id of the record to delete.
        links: Dependents to detach before the delete.

    Returns:
        CleanupResult describing what was detached and, on failure, what was
        restored.
    """
    detached: list[tuple[DependentLink, CRMRecord]] = []

    for link in links:
        for record in link.records:
            try:
                await link.service.update(record.id, _payload(link, record, ""))
            except CRMError as exc:
                logger.error(
                    "cleanup.detach_failed",
                    parent_id=parent_id,
                    record_id=record.id,
                    error=exc.message,
                )
                restored, unrestored = await _compensate(detached)
                return CleanupResult(
                    success=False,
                    parent_id=parent_id,
                    detached=[r.id for _, r in detached],
                    restored=restored,
                    unrestored=unrestored,
                    failed_record_id=record.id,
                    error=exc.kind,
                    message=exc.message,
                )
            detached.append((link, record))

    try:
        outcome = await parent_service.delete(parent_id)
    except CRMError as exc:
        outcome = DeleteResult(success=False, error=exc.kind, message=exc.message)

    if not outcome.success:
        logger.error("cleanup.parent_delete_failed", parent_id=parent_id, error=outcome.message)
        restored, unrestored = await _compensate(detached)
        return CleanupResult(
            success=False,
            parent_id=parent_id,
            detached=[r.id for _, r in detached],
            restored=restored,
            unrestored=unrestored,
            failed_record_id=parent_id,
            error=outcome.error,
            message=outcome.message,
        )

    logger.info("cleanup.completed", parent_id=parent_id, detached=len(detached))
    return CleanupResult(
        success=True,
        parent_id=parent_id,
        detached=[r.id for _, r in detached],
    )
