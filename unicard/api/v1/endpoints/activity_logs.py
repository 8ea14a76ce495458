from typing import List

from fastapi import APIRouter, Depends

from unicard.api.v1.deps import get_activity_log_service, require_roles
from unicard.core.exceptions import CardServiceError, to_http_exception
from unicard.schemas.actor_schema import Actor, ActorRole
from unicard.schemas.activity_log_schema import ActivityLogFilters, ActivityLogOut
from unicard.services.activity_log_service import ActivityLogService

router = APIRouter(prefix="/api/v1/activity-logs", tags=["activity-logs"])


@router.get("", response_model=List[ActivityLogOut])
async def search_activity_logs(
        filters: ActivityLogFilters = Depends(),
        actor: Actor = Depends(require_roles(ActorRole.ADMIN)),
        activity_log: ActivityLogService = Depends(get_activity_log_service),
):
    try:
        return await activity_log.search(
            user_id=filters.user_id,
            action=filters.action,
            entity_type=filters.entity_type,
            start=filters.start_date,
            end=filters.end_date,
            limit=filters.limit,
            offset=filters.offset,
        )
    except CardServiceError as e:
        raise to_http_exception(e)
