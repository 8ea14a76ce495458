import logging
import traceback
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from unicard.api.v1.deps import (
    get_activity_log_service,
    get_current_actor,
    get_ledger_service,
    get_optional_actor,
)
from unicard.core.exceptions import CardServiceError, to_http_exception
from unicard.schemas.actor_schema import Actor
from unicard.schemas.activity_log_schema import ActivityLogOut
from unicard.schemas.card_schema import (
    ActiveCardsCountOut,
    BalanceChangeOut,
    BalanceUpdateIn,
    CardOut,
    CardUpdate,
    CardWithStudentOut,
)
from unicard.services.activity_log_service import ActivityLogService
from unicard.services.ledger_service import CARD_ENTITY, LedgerService

router = APIRouter(prefix="/api/v1/cards", tags=["cards"])


@router.get("", response_model=List[CardWithStudentOut])
async def list_cards(
        used: Optional[bool] = None,
        limit: Optional[int] = Query(None, gt=0, le=1000),
        offset: int = Query(0, ge=0),
        actor: Actor = Depends(get_current_actor),
        ledger: LedgerService = Depends(get_ledger_service),
):
    return await ledger.list_cards(used=used, limit=limit, offset=offset)


@router.get("/active/count", response_model=ActiveCardsCountOut)
async def count_active_cards(
        actor: Actor = Depends(get_current_actor),
        ledger: LedgerService = Depends(get_ledger_service),
):
    return ActiveCardsCountOut(count=await ledger.count_active_cards())


@router.put("/{card_id}/balance", response_model=BalanceChangeOut)
async def update_balance(
        card_id: int,
        body: BalanceUpdateIn,
        actor: Optional[Actor] = Depends(get_optional_actor),
        ledger: LedgerService = Depends(get_ledger_service),
):
    try:
        return await ledger.adjust(card_id, body.amount, body.operation, actor)

    except CardServiceError as e:
        raise to_http_exception(e)

    except Exception as e:
        logging.error(f"Internal Server Error in update_balance: {e}\n{traceback.format_exc()}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            detail={"error": "internal", "message": "Database error while updating card balance"})


@router.get("/student/{student_id}", response_model=CardOut)
async def get_card_by_student(
        student_id: str,
        actor: Actor = Depends(get_current_actor),
        ledger: LedgerService = Depends(get_ledger_service),
):
    try:
        return await ledger.get_card_by_student(student_id)
    except CardServiceError as e:
        raise to_http_exception(e)


@router.get("/{card_id}", response_model=CardOut)
async def get_card(
        card_id: int,
        actor: Actor = Depends(get_current_actor),
        ledger: LedgerService = Depends(get_ledger_service),
):
    try:
        return await ledger.get_card(card_id)
    except CardServiceError as e:
        raise to_http_exception(e)


@router.get("/{card_id}/logs", response_model=List[ActivityLogOut])
async def get_card_logs(
        card_id: int,
        limit: int = Query(50, gt=0, le=500),
        offset: int = Query(0, ge=0),
        actor: Actor = Depends(get_current_actor),
        ledger: LedgerService = Depends(get_ledger_service),
        activity_log: ActivityLogService = Depends(get_activity_log_service),
):
    try:
        await ledger.get_card(card_id)
        return await activity_log.get(CARD_ENTITY, card_id, limit=limit, offset=offset)

    except CardServiceError as e:
        raise to_http_exception(e)

    except Exception as e:
        logging.error(f"Error fetching logs for card {card_id}: {e}\n{traceback.format_exc()}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            detail={"error": "internal", "message": "Failed to retrieve activity logs"})


@router.put("/{card_id}", response_model=CardOut)
async def update_card(
        card_id: int,
        body: CardUpdate,
        actor: Actor = Depends(get_current_actor),
        ledger: LedgerService = Depends(get_ledger_service),
):
    try:
        return await ledger.update_card(card_id, body.model_dump(exclude_unset=True), actor)
    except CardServiceError as e:
        raise to_http_exception(e)


@router.put("/{card_id}/used", response_model=CardOut)
async def mark_card_used(
        card_id: int,
        actor: Actor = Depends(get_current_actor),
        ledger: LedgerService = Depends(get_ledger_service),
):
    try:
        return await ledger.mark_used(card_id, actor)
    except CardServiceError as e:
        raise to_http_exception(e)


@router.delete("/{card_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_card(
        card_id: int,
        actor: Actor = Depends(get_current_actor),
        ledger: LedgerService = Depends(get_ledger_service),
):
    try:
        await ledger.delete_card(card_id, actor)
    except CardServiceError as e:
        raise to_http_exception(e)
