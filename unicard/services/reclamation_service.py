# unicard/services/reclamation_service.py

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from asyncpg import Connection

from unicard.core.exceptions import (
    CardServiceError,
    InvalidState,
    NotFound,
    SettlementFailed,
    ValidationError,
)
from unicard.db.models.activity_log_model import ActivityAction
from unicard.db.models.reclamation_model import ReclamationStatus
from unicard.repositories.card_repo import CardRepository
from unicard.repositories.reclamation_repo import ReclamationRepository
from unicard.repositories.student_repo import StudentRepository
from unicard.schemas.actor_schema import Actor
from unicard.services.ledger_service import LedgerService, SUBTRACT, parse_amount
from unicard.services.permissions import ensure_admin

logger = logging.getLogger(__name__)

DECISIONS = (ReclamationStatus.APPROVED.value, ReclamationStatus.REJECTED.value)


class ReclamationService:
    """Staff-filed disputes settled by an administrator.

    pending -> approved | rejected; approved -> processed | error within the
    same call. Only ``pending`` reclamations can be processed, and the check
    happens under the row lock that the status update is written with.
    """

    def __init__(
        self,
        conn: Connection,
        reclamation_repo: ReclamationRepository,
        student_repo: StudentRepository,
        card_repo: CardRepository,
        ledger: LedgerService,
    ):
        self.conn = conn
        self.reclamation_repo = reclamation_repo
        self.student_repo = student_repo
        self.card_repo = card_repo
        self.ledger = ledger

    async def create(
        self,
        staff_id: int,
        student_id: str,
        amount: Any,
        reason: str,
        evidence: Optional[str] = None,
    ) -> dict:
        amount = parse_amount(amount)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("reason", "Reason is required")

        student = await self.student_repo.get_by_id(student_id)
        if student is None:
            raise NotFound("student", student_id)

        reclamation = await self.reclamation_repo.create(
            staff_id=staff_id,
            student_id=student_id,
            amount=amount,
            reason=reason,
            evidence=evidence,
        )
        logger.info("Reclamation %s filed by staff %s against student %s", reclamation["id"], staff_id, student_id)
        return reclamation

    async def get(self, reclamation_id: int) -> dict:
        reclamation = await self.reclamation_repo.get_by_id(reclamation_id)
        if reclamation is None:
            raise NotFound("reclamation", reclamation_id)
        return reclamation

    async def list_all(
        self,
        status: Optional[str] = None,
        staff_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        return await self.reclamation_repo.list_filtered(status=status, staff_id=staff_id, limit=limit)

    async def process(
        self,
        reclamation_id: int,
        decision: str,
        actor: Optional[Actor],
        admin_notes: Optional[str] = None,
    ) -> dict:
        if decision not in DECISIONS:
            raise ValidationError("status", 'Invalid status. Must be either "approved" or "rejected"')
        actor = ensure_admin(actor, "Only administrators can process reclamations")

        settlement_error: Optional[CardServiceError] = None
        async with self.conn.transaction():
            reclamation = await self.reclamation_repo.lock_by_id(reclamation_id)
            if reclamation is None:
                raise NotFound("reclamation", reclamation_id)
            if reclamation["status"] != ReclamationStatus.PENDING.value:
                raise InvalidState(reclamation["status"])

            reclamation = await self.reclamation_repo.update(
                reclamation_id,
                status=decision,
                admin_id=actor.id,
                admin_notes=admin_notes,
                processed_at=datetime.now(timezone.utc),
            )
            if decision == ReclamationStatus.REJECTED.value:
                logger.info("Reclamation %s rejected by admin %s", reclamation_id, actor.id)
                return reclamation

            card = await self.card_repo.get_by_student_id(reclamation["student_id"])
            if card is None:
                # rolls the approval back; the reclamation stays pending
                raise NotFound("card", f"for student {reclamation['student_id']}")

            try:
                await self.ledger.adjust(
                    card["id"],
                    reclamation["amount"],
                    SUBTRACT,
                    actor,
                    reason=f"Funds deducted due to reclamation: {reclamation['reason']}",
                    action=ActivityAction.DEDUCT_FUNDS_ADMIN,
                    extra={"reclamation_id": reclamation_id, "admin_id": actor.id},
                )
            except CardServiceError as e:
                settlement_error = e
                notes = f"{admin_notes or ''}\nError processing deduction: {e.message}"
                reclamation = await self.reclamation_repo.update(
                    reclamation_id, status=ReclamationStatus.ERROR.value, admin_notes=notes
                )
            else:
                reclamation = await self.reclamation_repo.update(
                    reclamation_id, status=ReclamationStatus.PROCESSED.value
                )

        if settlement_error is not None:
            logger.warning(
                "Reclamation %s approved but deduction failed: %s", reclamation_id, settlement_error.message
            )
            raise SettlementFailed(reclamation, settlement_error)

        logger.info("Reclamation %s processed, %s deducted from card %s", reclamation_id, reclamation["amount"], card["id"])
        return reclamation

    async def counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in ReclamationStatus}
        counts.update(await self.reclamation_repo.count_by_status())
        return counts
