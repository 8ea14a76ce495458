import logging
import traceback
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from unicard.api.v1.deps import get_reclamation_service, require_roles
from unicard.core.exceptions import CardServiceError, to_http_exception
from unicard.schemas.actor_schema import Actor, ActorRole
from unicard.schemas.reclamation_schema import (
    ReclamationCounts,
    ReclamationCreate,
    ReclamationFilters,
    ReclamationOut,
    ReclamationProcess,
)
from unicard.services.reclamation_service import ReclamationService

router = APIRouter(prefix="/api/v1/reclamations", tags=["reclamations"])


@router.post("", response_model=ReclamationOut, status_code=status.HTTP_201_CREATED)
async def create_reclamation(
        body: ReclamationCreate,
        actor: Actor = Depends(require_roles(ActorRole.STAFF)),
        reclamations: ReclamationService = Depends(get_reclamation_service),
):
    try:
        return await reclamations.create(
            staff_id=actor.id,
            student_id=body.student_id,
            amount=body.amount,
            reason=body.reason,
            evidence=body.evidence,
        )
    except CardServiceError as e:
        raise to_http_exception(e)


@router.get("", response_model=List[ReclamationOut])
async def list_reclamations(
        filters: ReclamationFilters = Depends(),
        actor: Actor = Depends(require_roles(ActorRole.ADMIN, ActorRole.STAFF)),
        reclamations: ReclamationService = Depends(get_reclamation_service),
):
    return await reclamations.list_all(status=filters.status, staff_id=filters.staff_id, limit=filters.limit)


@router.get("/counts", response_model=ReclamationCounts)
async def reclamation_counts(
        actor: Actor = Depends(require_roles(ActorRole.ADMIN)),
        reclamations: ReclamationService = Depends(get_reclamation_service),
):
    return await reclamations.counts()


@router.get("/{reclamation_id}", response_model=ReclamationOut)
async def get_reclamation(
        reclamation_id: int,
        actor: Actor = Depends(require_roles(ActorRole.ADMIN, ActorRole.STAFF)),
        reclamations: ReclamationService = Depends(get_reclamation_service),
):
    try:
        return await reclamations.get(reclamation_id)
    except CardServiceError as e:
        raise to_http_exception(e)


@router.put("/{reclamation_id}/process", response_model=ReclamationOut)
async def process_reclamation(
        reclamation_id: int,
        body: ReclamationProcess,
        actor: Actor = Depends(require_roles(ActorRole.ADMIN)),
        reclamations: ReclamationService = Depends(get_reclamation_service),
):
    try:
        return await reclamations.process(reclamation_id, body.status, actor, admin_notes=body.admin_notes)

    except CardServiceError as e:
        raise to_http_exception(e)

    except Exception as e:
        logging.error(f"Internal Server Error in process_reclamation: {e}\n{traceback.format_exc()}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            detail={"error": "internal", "message": "Failed to process reclamation"})
