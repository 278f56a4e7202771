"""Idempotency service for replaying responses to retried requests."""

import hashlib
import json
import logging
from datetime import timedelta
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.config import settings
from ..core.exceptions import ValidationError
from ..models.idempotency import IdempotencyRecord

logger = logging.getLogger(__name__)


class IdempotencyService:
    """Stores and replays responses keyed by (Idempotency-Key, scope)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def compute_request_hash(request_body: Any) -> str:
        """SHA-256 of the request body serialized with sorted keys."""
        normalized = json.dumps(jsonable_encoder(request_body), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode("utf-8")).hexdigest()

    async def check_idempotency(
        self,
        idempotency_key: str,
        scope: str,
        request_body: Any,
    ) -> tuple[int, dict[str, Any]] | None:
        """
        Look up a stored response for this key.

        Returns:
            (status_code, response_body) when a live record exists, None otherwise

        Raises:
            ValidationError: If the key was used in this scope with a different body
        """
        request_hash = self.compute_request_hash(request_body)

        result = await self.db.execute(
            select(IdempotencyRecord).where(
                IdempotencyRecord.idempotency_key == idempotency_key,
                IdempotencyRecord.scope == scope,
                IdempotencyRecord.expires_at > utcnow(),
            )
        )
        record = result.scalar_one_or_none()

        if record is None:
            return None

        if record.request_hash != request_hash:
            logger.warning(
                "Idempotency key reused with a different request",
                extra={
                    "idempotency_key": idempotency_key,
                    "scope": scope,
                    "existing_hash": record.request_hash[:8],
                    "new_hash": request_hash[:8],
                },
            )
            raise ValidationError(
                "Idempotency key was already used with a different request body",
                details={"idempotency_key": idempotency_key},
            )

        logger.info(
            "Replaying stored idempotent response",
            extra={
                "idempotency_key": idempotency_key,
                "scope": scope,
                "status_code": record.response_status_code,
            },
        )
        return record.response_status_code, json.loads(record.response_body)

    async def store_response(
        self,
        idempotency_key: str,
        scope: str,
        request_body: Any,
        status_code: int,
        response_body: Any,
    ) -> None:
        """Persist a response so that a retry with the same key replays it."""
        expires_at = utcnow() + timedelta(seconds=settings.idempotency_ttl_seconds)
        record = IdempotencyRecord(
            idempotency_key=idempotency_key,
            scope=scope,
            request_hash=self.compute_request_hash(request_body),
            response_status_code=status_code,
            response_body=json.dumps(jsonable_encoder(response_body), separators=(",", ":")),
            expires_at=expires_at,
        )

        try:
            self.db.add(record)
            await self.db.commit()
        except IntegrityError:
            # A concurrent request stored the same key first
            await self.db.rollback()
            logger.info(
                "Idempotency record already exists",
                extra={"idempotency_key": idempotency_key, "scope": scope},
            )
            return

        logger.info(
            "Stored idempotency record",
            extra={
                "idempotency_key": idempotency_key,
                "scope": scope,
                "status_code": status_code,
                "expires_at": expires_at.isoformat(),
            },
        )

    async def cleanup_expired_records(self) -> int:
        """Delete expired records and return how many were removed."""
        result = await self.db.execute(
            delete(IdempotencyRecord).where(IdempotencyRecord.expires_at <= utcnow())
        )
        await self.db.commit()

        deleted = result.rowcount or 0
        if deleted:
            logger.info("Cleaned up expired idempotency records", extra={"deleted_count": deleted})
        return deleted
