from typing import Optional

from fastapi import Depends, Request
from asyncpg import Connection

from unicard.core.exceptions import Forbidden, Unauthorized, to_http_exception
from unicard.db.session import get_db_connection
from unicard.repositories.activity_log_repo import ActivityLogRepository
from unicard.repositories.card_repo import CardRepository
from unicard.repositories.reclamation_repo import ReclamationRepository
from unicard.repositories.student_repo import StudentRepository
from unicard.schemas.actor_schema import Actor, ActorRole
from unicard.services.activity_log_service import ActivityLogService
from unicard.services.ledger_service import LedgerService
from unicard.services.provisioning_service import ProvisioningService
from unicard.services.reclamation_service import ReclamationService


def get_optional_actor(request: Request) -> Optional[Actor]:
    return getattr(request.state, "actor", None)


def get_current_actor(actor: Optional[Actor] = Depends(get_optional_actor)) -> Actor:
    if actor is None:
        raise to_http_exception(Unauthorized())
    return actor


def require_roles(*roles: ActorRole):
    allowed = tuple(role.value for role in roles)

    def _require(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise to_http_exception(
                Forbidden(f"This operation requires one of the roles: {', '.join(allowed)}", role=actor.role)
            )
        return actor

    return _require


def get_activity_log_service(conn: Connection = Depends(get_db_connection)) -> ActivityLogService:
    return ActivityLogService(conn, ActivityLogRepository(conn))


def get_ledger_service(
        conn: Connection = Depends(get_db_connection),
        activity_log: ActivityLogService = Depends(get_activity_log_service),
) -> LedgerService:
    return LedgerService(conn, CardRepository(conn), activity_log)


def get_provisioning_service(
        conn: Connection = Depends(get_db_connection),
        activity_log: ActivityLogService = Depends(get_activity_log_service),
) -> ProvisioningService:
    return ProvisioningService(conn, StudentRepository(conn), CardRepository(conn), activity_log)


def get_reclamation_service(
        conn: Connection = Depends(get_db_connection),
        ledger: LedgerService = Depends(get_ledger_service),
) -> ReclamationService:
    return ReclamationService(
        conn,
        ReclamationRepository(conn),
        StudentRepository(conn),
        CardRepository(conn),
        ledger,
    )
