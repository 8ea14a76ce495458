from decimal import Decimal

import pytest

from unicard.schemas.actor_schema import Actor, ActorRole
from tests.fakes import InMemoryDB, make_services


@pytest.fixture
def admin():
    return Actor(id=1, role=ActorRole.ADMIN.value)


@pytest.fixture
def staff():
    return Actor(id=2, role=ActorRole.STAFF.value)


@pytest.fixture
def viewer():
    return Actor(id=3, role=ActorRole.VIEWER.value)


@pytest.fixture
def db():
    return InMemoryDB()


@pytest.fixture
def services(db):
    return make_services(db)


@pytest.fixture
def provision(services, admin):
    """Provision a student and optionally fund its card; returns the card row."""

    async def _provision(student_id="10001", full_name="John Smith", balance=None, **kwargs):
        result = await services.provisioning.provision(
            student_id=student_id, full_name=full_name, created_by=admin.id, **kwargs
        )
        card = result["card"]
        if balance:
            await services.ledger.adjust(card["id"], Decimal(balance), "add", admin)
            card = await services.ledger.get_card(card["id"])
        return card

    return _provision
