from typing import Optional

from unicard.core.exceptions import Forbidden, Unauthorized
from unicard.schemas.actor_schema import Actor, ActorRole


def ensure_actor(actor: Optional[Actor]) -> Actor:
    if actor is None or actor.id is None:
        raise Unauthorized()
    return actor


def ensure_role(actor: Optional[Actor], roles: tuple[str, ...], message: str) -> Actor:
    actor = ensure_actor(actor)
    if actor.role not in roles:
        raise Forbidden(message, role=actor.role)
    return actor


def ensure_admin(actor: Optional[Actor], message: str) -> Actor:
    return ensure_role(actor, (ActorRole.ADMIN.value,), message)
