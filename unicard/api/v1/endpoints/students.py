import logging
import traceback
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from unicard.api.v1.deps import (
    get_activity_log_service,
    get_current_actor,
    get_provisioning_service,
    require_roles,
)
from unicard.core.exceptions import CardServiceError, to_http_exception
from unicard.schemas.actor_schema import Actor, ActorRole
from unicard.schemas.card_schema import CardOut
from unicard.schemas.student_schema import (
    ProvisionOut,
    StudentCountOut,
    StudentCreate,
    StudentOut,
    StudentUpdate,
    StudentWithCardOut,
)
from unicard.services.activity_log_service import ActivityLogService
from unicard.services.provisioning_service import STUDENT_ENTITY, ProvisioningService

router = APIRouter(prefix="/api/v1/students", tags=["students"])


@router.post("", response_model=ProvisionOut, status_code=status.HTTP_201_CREATED)
async def create_student(
        body: StudentCreate,
        actor: Actor = Depends(require_roles(ActorRole.ADMIN, ActorRole.STAFF)),
        provisioning: ProvisioningService = Depends(get_provisioning_service),
):
    try:
        return await provisioning.provision(
            student_id=body.student_id,
            full_name=body.full_name,
            created_by=actor.id,
            cn=body.cn,
            university_id=body.university_id,
            profile_image=body.profile_image,
        )

    except CardServiceError as e:
        raise to_http_exception(e)

    except Exception as e:
        logging.error(f"Internal Server Error in create_student: {e}\n{traceback.format_exc()}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            detail={"error": "internal", "message": "Failed to create student"})


@router.get("", response_model=List[StudentWithCardOut])
async def list_students(
        limit: Optional[int] = Query(None, gt=0, le=1000),
        offset: int = Query(0, ge=0),
        actor: Actor = Depends(get_current_actor),
        provisioning: ProvisioningService = Depends(get_provisioning_service),
):
    return await provisioning.list_students(limit=limit, offset=offset)


@router.get("/count", response_model=StudentCountOut)
async def count_students(
        actor: Actor = Depends(get_current_actor),
        provisioning: ProvisioningService = Depends(get_provisioning_service),
):
    return StudentCountOut(total=await provisioning.count_students())


@router.get("/{student_id}", response_model=StudentWithCardOut)
async def get_student(
        student_id: str,
        request: Request,
        actor: Actor = Depends(get_current_actor),
        provisioning: ProvisioningService = Depends(get_provisioning_service),
        activity_log: ActivityLogService = Depends(get_activity_log_service),
):
    try:
        student = await provisioning.get_student(student_id)
    except CardServiceError as e:
        raise to_http_exception(e)

    await activity_log.log_view(
        actor.id, STUDENT_ENTITY, student_id,
        ip_address=request.client.host if request.client else None,
    )
    return student


@router.post("/{student_id}/card", response_model=CardOut, status_code=status.HTTP_201_CREATED)
async def issue_card(
        student_id: str,
        actor: Actor = Depends(get_current_actor),
        provisioning: ProvisioningService = Depends(get_provisioning_service),
):
    try:
        return await provisioning.issue_card(student_id, actor)
    except CardServiceError as e:
        raise to_http_exception(e)


@router.put("/{student_id}", response_model=StudentOut)
async def update_student(
        student_id: str,
        body: StudentUpdate,
        actor: Actor = Depends(require_roles(ActorRole.ADMIN, ActorRole.STAFF)),
        provisioning: ProvisioningService = Depends(get_provisioning_service),
):
    try:
        return await provisioning.update_student(student_id, body.model_dump(exclude_unset=True), actor)
    except CardServiceError as e:
        raise to_http_exception(e)


@router.delete("/{student_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_student(
        student_id: str,
        actor: Actor = Depends(get_current_actor),
        provisioning: ProvisioningService = Depends(get_provisioning_service),
):
    try:
        await provisioning.delete_student(student_id, actor)
    except CardServiceError as e:
        raise to_http_exception(e)
