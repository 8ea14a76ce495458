# unicard/services/ledger_service.py

import logging
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Any, Optional

from asyncpg import Connection

from unicard.core.card_number import is_valid_card_number
from unicard.core.exceptions import DuplicateEntry, Forbidden, InsufficientFunds, NotFound, ValidationError
from unicard.db.models.activity_log_model import ActivityAction
from unicard.repositories.card_repo import CardRepository, UPDATABLE_FIELDS
from unicard.schemas.actor_schema import Actor, ActorRole
from unicard.services.activity_log_service import ActivityLogService
from unicard.services.permissions import ensure_actor, ensure_admin

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
# NUMERIC(12, 2)
MAX_BALANCE = Decimal("9999999999.99")

ADD = "add"
SUBTRACT = "subtract"
CARD_ENTITY = "university_card"


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """Parse a positive money amount, truncated to two decimal places."""
    if value is None or isinstance(value, bool):
        raise ValidationError(field, "Valid amount is required")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        if not amount.is_finite():
            raise ValidationError(field, "Amount must be a finite number")
        amount = amount.quantize(CENT, rounding=ROUND_DOWN)
    except (InvalidOperation, ValueError):
        raise ValidationError(field, "Valid amount is required")
    if amount <= 0:
        raise ValidationError(field, "Amount must be a positive number")
    return amount


class LedgerService:
    """The only sanctioned writer of card balances.

    Every ``adjust`` locks the card row, writes the new balance and appends
    its audit entry in one transaction, so a committed balance always has
    exactly one matching activity log entry.
    """

    def __init__(self, conn: Connection, card_repo: CardRepository, activity_log: ActivityLogService):
        self.conn = conn
        self.card_repo = card_repo
        self.activity_log = activity_log

    def _authorize(self, operation: str, actor: Optional[Actor]) -> Actor:
        actor = ensure_actor(actor)
        if operation == SUBTRACT and actor.role != ActorRole.ADMIN.value:
            raise Forbidden("Only administrators can subtract funds from cards", role=actor.role)
        if actor.role not in (ActorRole.ADMIN.value, ActorRole.STAFF.value):
            raise Forbidden("Viewers cannot modify card balances", role=actor.role)
        return actor

    async def adjust(
        self,
        card_id: int,
        amount: Any,
        operation: str,
        actor: Optional[Actor],
        *,
        reason: Optional[str] = None,
        action: Optional[ActivityAction] = None,
        extra: Optional[dict] = None,
    ) -> dict:
        amount = parse_amount(amount)
        if operation not in (ADD, SUBTRACT):
            raise ValidationError("operation", 'Operation must be either "add" or "subtract"')
        actor = self._authorize(operation, actor)

        async with self.conn.transaction():
            card = await self.card_repo.lock_by_id(card_id)
            if card is None:
                raise NotFound("card", card_id)

            previous_balance = Decimal(card["balance"])
            if operation == SUBTRACT:
                if previous_balance < amount:
                    raise InsufficientFunds(previous_balance, amount)
                new_balance = previous_balance - amount
            else:
                new_balance = previous_balance + amount
                if new_balance > MAX_BALANCE:
                    raise ValidationError("amount", f"Resulting balance exceeds {MAX_BALANCE}")

            await self.card_repo.set_balance(card_id, new_balance, actor.id)

            details = {
                "previous_balance": previous_balance,
                "new_balance": new_balance,
                "amount": amount,
                "operation": operation,
            }
            if reason:
                details["reason"] = reason
            if extra:
                details.update(extra)
            if action is None:
                action = ActivityAction.SUBTRACT_FUNDS if operation == SUBTRACT else ActivityAction.ADD_FUNDS
            await self.activity_log.log(actor.id, action, CARD_ENTITY, card_id, details)

        logger.info(
            "Card %s balance %s -> %s (%s %s by user %s)",
            card_id, previous_balance, new_balance, operation, amount, actor.id,
        )
        return {
            "card_id": card_id,
            "previous_balance": previous_balance,
            "new_balance": new_balance,
            "amount": amount,
            "operation": operation,
        }

    async def get_card(self, card_id: int) -> dict:
        card = await self.card_repo.get_by_id(card_id)
        if card is None:
            raise NotFound("card", card_id)
        return card

    async def get_card_by_student(self, student_id: str) -> dict:
        card = await self.card_repo.get_by_student_id(student_id)
        if card is None:
            raise NotFound("card", f"for student {student_id}")
        return card

    async def mark_used(self, card_id: int, actor: Optional[Actor]) -> dict:
        actor = ensure_admin(actor, "Only administrators can mark cards as used")
        async with self.conn.transaction():
            card = await self.card_repo.mark_used(card_id, actor.id)
            if card is None:
                raise NotFound("card", card_id)
            await self.activity_log.log(
                actor.id, ActivityAction.MARK_USED, CARD_ENTITY, card_id,
                {"card_number": card["card_number"], "student_id": card["student_id"]},
            )
        return card

    async def delete_card(self, card_id: int, actor: Optional[Actor]) -> dict:
        actor = ensure_admin(actor, "Only administrators can delete cards")
        async with self.conn.transaction():
            card = await self.card_repo.lock_by_id(card_id)
            if card is None:
                raise NotFound("card", card_id)
            await self.card_repo.delete(card_id)
            await self.activity_log.log(
                actor.id, ActivityAction.DELETE_CARD, CARD_ENTITY, card_id,
                {
                    "student_id": card["student_id"],
                    "card_number": card["card_number"],
                    "balance": card["balance"],
                },
            )
        logger.info("Card %s (%s) deleted by user %s", card_id, card["card_number"], actor.id)
        return card

    async def list_cards(
        self,
        used: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict]:
        return await self.card_repo.list_with_students(used=used, limit=limit, offset=offset)

    async def count_active_cards(self) -> int:
        return await self.card_repo.count_active()

    async def update_card(self, card_id: int, changes: dict, actor: Optional[Actor]) -> dict:
        """Admin edit of a card's number or used flag; the balance is never written here."""
        actor = ensure_admin(actor, "Only administrators can update cards")
        if "balance" in changes:
            raise ValidationError("balance", "Card balances change only through balance adjustments")
        changes = {key: value for key, value in changes.items() if key in UPDATABLE_FIELDS and value is not None}
        if not changes:
            raise ValidationError("body", "No updatable card fields were provided")
        if "card_number" in changes and not is_valid_card_number(changes["card_number"]):
            raise ValidationError("card_number", "Card number must be 4 uppercase letters followed by 5 digits")
        if "used" in changes and not isinstance(changes["used"], bool):
            raise ValidationError("used", "Used must be true or false")

        async with self.conn.transaction():
            card = await self.card_repo.lock_by_id(card_id)
            if card is None:
                raise NotFound("card", card_id)
            changes = {key: value for key, value in changes.items() if card[key] != value}
            if not changes:
                return card
            if "card_number" in changes and await self.card_repo.number_exists(changes["card_number"]):
                raise DuplicateEntry("card_number", changes["card_number"])

            updated = await self.card_repo.update(card_id, changes, actor.id)
            await self.activity_log.log(
                actor.id, ActivityAction.UPDATE_CARD, CARD_ENTITY, card_id,
                {
                    "student_id": card["student_id"],
                    "updated_fields": sorted(changes),
                    "previous": {key: card[key] for key in changes},
                },
            )
        logger.info("Card %s updated by user %s: %s", card_id, actor.id, sorted(changes))
        return updated
