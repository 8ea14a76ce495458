# unicard/services/activity_log_service.py

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from asyncpg import Connection

from unicard.core.exceptions import ValidationError
from unicard.db.models.activity_log_model import ActivityAction
from unicard.repositories.activity_log_repo import ActivityLogRepository

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(item) for item in value]
    return value


class ActivityLogService:
    """Append-only audit trail of balance mutations and entity lifecycle events.

    ``log`` writes on the caller's connection and lets failures propagate, so an
    entry describing a mutation commits or rolls back together with it.
    ``log_view`` is for read-only events and never fails its caller.
    """

    def __init__(self, conn: Connection, log_repo: ActivityLogRepository):
        self.conn = conn
        self.log_repo = log_repo

    async def log(
        self,
        user_id: int,
        action: ActivityAction | str,
        entity_type: str,
        entity_id: Any,
        details: Optional[dict] = None,
        *,
        ip_address: Optional[str] = None,
    ) -> dict:
        action = ActivityAction(action)
        entry = await self.log_repo.create(
            user_id=user_id,
            action=action.value,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            details=_jsonable(details),
            ip_address=ip_address,
        )
        logger.debug("Activity logged: %s on %s %s by user %s", action.value, entity_type, entity_id, user_id)
        return entry

    async def log_view(
        self,
        user_id: int,
        entity_type: str,
        entity_id: Any,
        details: Optional[dict] = None,
        *,
        ip_address: Optional[str] = None,
    ) -> bool:
        try:
            # savepoint: a failed insert must not poison an enclosing transaction
            async with self.conn.transaction():
                await self.log(user_id, ActivityAction.VIEW, entity_type, entity_id, details, ip_address=ip_address)
        except Exception as e:
            logger.warning("Skipping view activity log for %s %s: %s", entity_type, entity_id, e)
            return False
        return True

    async def get(self, entity_type: str, entity_id: Any, limit: int = 50, offset: int = 0) -> list[dict]:
        return await self.log_repo.list_for_entity(entity_type, str(entity_id), limit=limit, offset=offset)

    async def search(
        self,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict]:
        if action is not None:
            try:
                action = ActivityAction(action).value
            except ValueError:
                raise ValidationError("action", f"Unknown activity action: {action}")
        return await self.log_repo.search(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            date_from=start,
            date_to=end,
            limit=limit,
            offset=offset,
        )
