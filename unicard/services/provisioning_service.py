# unicard/services/provisioning_service.py

import logging
import re
from typing import Callable, Optional

from asyncpg import Connection

from unicard.core.card_number import generate_card_number
from unicard.core.config import settings
from unicard.core.exceptions import DuplicateEntry, NotFound, ResourceExhausted, ValidationError
from unicard.db.models.activity_log_model import ActivityAction
from unicard.repositories.card_repo import CardRepository
from unicard.repositories.student_repo import StudentRepository, UPDATABLE_FIELDS
from unicard.schemas.actor_schema import Actor, ActorRole
from unicard.services.activity_log_service import ActivityLogService
from unicard.services.permissions import ensure_admin, ensure_role

logger = logging.getLogger(__name__)

STUDENT_ID_RE = re.compile(r"^[0-9]{5}$")
CN_RE = re.compile(r"^[0-9]{8}$")

STUDENT_ENTITY = "student"
CARD_ENTITY = "university_card"
QR_FIELDS = ("full_name", "cn", "university_id")


def validate_student_id(student_id) -> str:
    student_id = str(student_id or "").strip()
    if not STUDENT_ID_RE.match(student_id):
        raise ValidationError("student_id", "Student ID must be exactly 5 digits")
    return student_id


def validate_cn(cn) -> Optional[str]:
    if cn is None or str(cn).strip() == "":
        return None
    cn = str(cn).strip()
    if not CN_RE.match(cn):
        raise ValidationError("cn", "CN must be exactly 8 digits")
    return cn


def validate_full_name(full_name) -> str:
    full_name = (full_name or "").strip()
    if not full_name:
        raise ValidationError("full_name", "Full name is required")
    return full_name


def build_qr_payload(student: dict, card_number: str) -> dict:
    return {
        "student_id": student["student_id"],
        "cn": student.get("cn"),
        "full_name": student.get("full_name"),
        "card_number": card_number,
        "university_id": student.get("university_id"),
    }


class ProvisioningService:
    """Creates, reissues and retires students together with their cards."""

    def __init__(
        self,
        conn: Connection,
        student_repo: StudentRepository,
        card_repo: CardRepository,
        activity_log: ActivityLogService,
        max_card_attempts: Optional[int] = None,
        card_number_factory: Callable[[], str] = generate_card_number,
    ):
        self.conn = conn
        self.student_repo = student_repo
        self.card_repo = card_repo
        self.activity_log = activity_log
        self.max_card_attempts = max_card_attempts or settings.CARD_NUMBER_MAX_ATTEMPTS
        self.card_number_factory = card_number_factory

    async def _create_card(self, student_id: str, created_by: Optional[int]) -> dict:
        for attempt in range(1, self.max_card_attempts + 1):
            card_number = self.card_number_factory()
            if await self.card_repo.number_exists(card_number):
                logger.warning("Card number %s already taken (attempt %s)", card_number, attempt)
                continue
            try:
                # savepoint, so a lost race on the number leaves the outer transaction usable
                async with self.conn.transaction():
                    return await self.card_repo.create_card(student_id, card_number, created_by)
            except DuplicateEntry as e:
                if e.field != "card_number":
                    raise
                logger.warning("Card number %s collided on insert (attempt %s)", card_number, attempt)

        raise ResourceExhausted(
            f"Could not generate a unique card number after {self.max_card_attempts} attempts",
            attempts=self.max_card_attempts,
        )

    async def provision(
        self,
        student_id: str,
        full_name: str,
        created_by: int,
        cn: Optional[str] = None,
        university_id: Optional[int] = None,
        profile_image: Optional[str] = None,
    ) -> dict:
        student_id = validate_student_id(student_id)
        cn = validate_cn(cn)
        full_name = validate_full_name(full_name)

        async with self.conn.transaction():
            if await self.student_repo.get_by_id(student_id):
                raise DuplicateEntry("student_id", student_id)
            if cn and await self.student_repo.get_by_cn(cn):
                raise DuplicateEntry("cn", cn)

            student = await self.student_repo.create({
                "student_id": student_id,
                "cn": cn,
                "full_name": full_name,
                "profile_image": profile_image,
                "university_id": university_id,
                "created_by": created_by,
            })
            card = await self._create_card(student_id, created_by)
            student = await self.student_repo.attach_card(
                student_id, card["id"], build_qr_payload(student, card["card_number"])
            )

            await self.activity_log.log(
                created_by, ActivityAction.CREATE_STUDENT, STUDENT_ENTITY, student_id,
                {
                    "student_id": student_id,
                    "full_name": full_name,
                    "cn": cn,
                    "card_id": card["id"],
                    "card_number": card["card_number"],
                },
            )

        logger.info("Provisioned student %s with card %s (%s)", student_id, card["id"], card["card_number"])
        return {"student": student, "card": card}

    async def issue_card(self, student_id: str, actor: Optional[Actor]) -> dict:
        actor = ensure_admin(actor, "Only administrators can issue cards")
        student_id = validate_student_id(student_id)

        async with self.conn.transaction():
            student = await self.student_repo.lock_by_id(student_id)
            if student is None:
                raise NotFound("student", student_id)
            if await self.card_repo.get_by_student_id(student_id):
                raise DuplicateEntry("student_id", student_id, message=f"Student {student_id} already has a card")

            card = await self._create_card(student_id, actor.id)
            await self.student_repo.attach_card(student_id, card["id"], build_qr_payload(student, card["card_number"]))
            await self.activity_log.log(
                actor.id, ActivityAction.CREATE_CARD, CARD_ENTITY, card["id"],
                {"student_id": student_id, "card_number": card["card_number"], "initial_balance": card["balance"]},
            )
        return card

    async def get_student(self, student_id: str) -> dict:
        student = await self.student_repo.get_with_card(student_id)
        if student is None:
            raise NotFound("student", student_id)
        return student

    async def list_students(self, limit: Optional[int] = None, offset: int = 0) -> list[dict]:
        return await self.student_repo.list_with_cards(limit=limit, offset=offset)

    async def count_students(self) -> int:
        return await self.student_repo.count()

    async def update_student(self, student_id: str, changes: dict, actor: Optional[Actor]) -> dict:
        actor = ensure_role(
            actor, (ActorRole.ADMIN.value, ActorRole.STAFF.value), "Only administrators and staff can update students"
        )
        changes = {key: value for key, value in changes.items() if key in UPDATABLE_FIELDS}
        if not changes:
            raise ValidationError("body", "No updatable student fields were provided")
        if "full_name" in changes:
            changes["full_name"] = validate_full_name(changes["full_name"])
        if "cn" in changes:
            changes["cn"] = validate_cn(changes["cn"])

        async with self.conn.transaction():
            student = await self.student_repo.lock_by_id(student_id)
            if student is None:
                raise NotFound("student", student_id)
            if changes.get("cn"):
                holder = await self.student_repo.get_by_cn(changes["cn"])
                if holder and holder["student_id"] != student_id:
                    raise DuplicateEntry("cn", changes["cn"])

            if any(field in changes for field in QR_FIELDS):
                card = await self.card_repo.get_by_student_id(student_id)
                if card is not None:
                    changes["qr_payload"] = build_qr_payload({**student, **changes}, card["card_number"])

            updated = await self.student_repo.update(student_id, changes, actor.id)
            await self.activity_log.log(
                actor.id, ActivityAction.UPDATE_STUDENT, STUDENT_ENTITY, student_id,
                {"updated_fields": sorted(key for key in changes if key != "qr_payload")},
            )
        return updated

    async def delete_student(self, student_id: str, actor: Optional[Actor]) -> dict:
        actor = ensure_admin(actor, "Only administrators can delete students")

        async with self.conn.transaction():
            student = await self.student_repo.lock_by_id(student_id)
            if student is None:
                raise NotFound("student", student_id)
            card = await self.card_repo.get_by_student_id(student_id)
            if card is not None:
                await self.card_repo.delete(card["id"])
            await self.student_repo.delete(student_id)
            await self.activity_log.log(
                actor.id, ActivityAction.DELETE_STUDENT, STUDENT_ENTITY, student_id,
                {
                    "student_id": student_id,
                    "full_name": student["full_name"],
                    "cn": student.get("cn"),
                    "card_id": card["id"] if card else None,
                    "card_number": card["card_number"] if card else None,
                },
            )

        logger.info("Student %s deleted by user %s", student_id, actor.id)
        return student
