"""Audit trail writer."""

import logging
from typing import Any, Optional
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def _snapshot(data: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if data is None:
        return None
    return jsonable_encoder(data)


class AuditService:
    """Adds audit log rows to the caller's transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        actor_id: Optional[UUID],
        action: str,
        entity_type: str,
        entity_id: UUID,
        old_data: Optional[dict[str, Any]] = None,
        new_data: Optional[dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """
        Record an audited change.

        The row is written with the surrounding unit of work. Snapshots that
        cannot be serialized are logged and the entry is skipped; the business
        operation carries on.
        """
        try:
            entry = AuditLog(
                actor_id=actor_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                old_data=_snapshot(old_data),
                new_data=_snapshot(new_data),
            )
        except (TypeError, ValueError) as e:
            logger.error(
                "Failed to write audit log",
                extra={
                    "action": action,
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "error": str(e),
                },
            )
            return None

        self.db.add(entry)
        logger.debug(
            "Audit log recorded",
            extra={"action": action, "entity_type": entity_type, "entity_id": str(entity_id)},
        )
        return entry
