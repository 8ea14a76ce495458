import asyncio
from decimal import Decimal

import pytest

from unicard.core.card_number import is_valid_card_number
from unicard.core.exceptions import DuplicateEntry, Forbidden, NotFound, ResourceExhausted, ValidationError
from unicard.db.models.activity_log_model import ActivityAction
from tests.fakes import StorageFailure, make_services


def numbers(*values):
    it = iter(values)
    return lambda: next(it)


async def test_provision_creates_student_and_empty_card(db, services, admin):
    result = await services.provisioning.provision(student_id="10001", full_name="John Smith", created_by=admin.id)

    card, student = result["card"], result["student"]
    assert card["balance"] == Decimal("0.00")
    assert card["used"] is False
    assert len(card["card_number"]) == 9 and is_valid_card_number(card["card_number"])
    assert student["card_id"] == card["id"]
    assert student["qr_payload"] == {
        "student_id": "10001",
        "cn": None,
        "full_name": "John Smith",
        "card_number": card["card_number"],
        "university_id": None,
    }

    [entry] = db.activity_logs
    assert entry["action"] == ActivityAction.CREATE_STUDENT.value
    assert entry["entity_id"] == "10001"
    assert entry["details"]["card_number"] == card["card_number"]


async def test_concurrent_duplicate_student_id(db, admin):
    results = await asyncio.gather(
        *(
            make_services(db).provisioning.provision(student_id="20045", full_name=name, created_by=admin.id)
            for name in ("Ada Lovelace", "Alan Turing")
        ),
        return_exceptions=True,
    )

    succeeded = [r for r in results if isinstance(r, dict)]
    duplicates = [r for r in results if isinstance(r, DuplicateEntry)]
    assert len(succeeded) == 1 and len(duplicates) == 1
    assert duplicates[0].field == "student_id"
    assert len(db.students) == 1 and len(db.cards) == 1


async def test_duplicate_cn(services, admin):
    await services.provisioning.provision(student_id="10001", full_name="A", created_by=admin.id, cn="12345678")
    with pytest.raises(DuplicateEntry) as exc:
        await services.provisioning.provision(student_id="10002", full_name="B", created_by=admin.id, cn="12345678")
    assert exc.value.field == "cn"


@pytest.mark.parametrize("kwargs, field", [
    ({"student_id": "1234"}, "student_id"),
    ({"student_id": "123456"}, "student_id"),
    ({"student_id": "12a45"}, "student_id"),
    ({"student_id": "١٢٣٤٥"}, "student_id"),
    ({"cn": "1234"}, "cn"),
    ({"cn": "١٢٣٤٥٦٧٨"}, "cn"),
    ({"full_name": "   "}, "full_name"),
])
async def test_provision_validation(db, services, admin, kwargs, field):
    data = {"student_id": "10001", "full_name": "John Smith", **kwargs}
    with pytest.raises(ValidationError) as exc:
        await services.provisioning.provision(created_by=admin.id, **data)
    assert exc.value.field == field
    assert db.students == {}


async def test_leading_zeros_are_kept(services, admin):
    result = await services.provisioning.provision(student_id="00042", full_name="Zero", created_by=admin.id)
    assert result["student"]["student_id"] == "00042"


@pytest.mark.parametrize("failing", ["students.attach_card", "activity_logs.create", "cards.create"])
async def test_failure_leaves_nothing_behind(db, services, admin, failing):
    db.fail_on.add(failing)
    with pytest.raises(StorageFailure):
        await services.provisioning.provision(student_id="10001", full_name="John Smith", created_by=admin.id)

    assert db.students == {}
    assert db.cards == {}
    assert db.activity_logs == []


async def test_taken_card_number_is_regenerated(db, admin):
    first = make_services(db, card_number_factory=numbers("AAAA00001"))
    await first.provisioning.provision(student_id="10001", full_name="A", created_by=admin.id)

    second = make_services(db, card_number_factory=numbers("AAAA00001", "BBBB00002"))
    result = await second.provisioning.provision(student_id="10002", full_name="B", created_by=admin.id)

    assert result["card"]["card_number"] == "BBBB00002"


async def test_insert_collision_is_retried(db, admin):
    await make_services(db, card_number_factory=numbers("AAAA00001")).provisioning.provision(
        student_id="10001", full_name="A", created_by=admin.id
    )
    services = make_services(db, card_number_factory=numbers("AAAA00001", "CCCC00003"))

    async def never_exists(card_number):
        return False

    # the existence check misses, so the unique constraint catches the collision
    services.provisioning.card_repo.number_exists = never_exists
    result = await services.provisioning.provision(student_id="10002", full_name="B", created_by=admin.id)

    assert result["card"]["card_number"] == "CCCC00003"
    assert db.students["10002"]["card_id"] == result["card"]["id"]


async def test_card_numbers_exhausted(db, admin):
    await make_services(db, card_number_factory=numbers("AAAA00001")).provisioning.provision(
        student_id="10001", full_name="A", created_by=admin.id
    )
    services = make_services(db, card_number_factory=lambda: "AAAA00001", max_card_attempts=3)

    with pytest.raises(ResourceExhausted) as exc:
        await services.provisioning.provision(student_id="10002", full_name="B", created_by=admin.id)

    assert exc.value.context["attempts"] == 3
    assert "10002" not in db.students


# ---------------- lifecycle ---------------- #

async def test_get_student_includes_card(services, provision):
    card = await provision(balance="7.5")

    student = await services.provisioning.get_student("10001")
    assert student["card_number"] == card["card_number"]
    assert student["balance"] == Decimal("7.50")
    assert await services.provisioning.count_students() == 1

    with pytest.raises(NotFound):
        await services.provisioning.get_student("99999")


async def test_update_student_refreshes_qr_payload(db, services, provision, staff):
    card = await provision(cn="11111111")

    updated = await services.provisioning.update_student("10001", {"full_name": "Jane Smith"}, staff)

    assert updated["full_name"] == "Jane Smith"
    assert updated["qr_payload"]["full_name"] == "Jane Smith"
    assert updated["qr_payload"]["card_number"] == card["card_number"]
    entry = db.activity_logs[-1]
    assert entry["action"] == ActivityAction.UPDATE_STUDENT.value
    assert entry["details"] == {"updated_fields": ["full_name"]}


async def test_update_student_rules(services, provision, admin, viewer):
    await provision(student_id="10001", cn="11111111")
    await provision(student_id="10002", cn="22222222")

    with pytest.raises(Forbidden):
        await services.provisioning.update_student("10001", {"full_name": "X"}, viewer)
    with pytest.raises(DuplicateEntry) as exc:
        await services.provisioning.update_student("10001", {"cn": "22222222"}, admin)
    assert exc.value.field == "cn"
    with pytest.raises(ValidationError):
        await services.provisioning.update_student("10001", {"card_id": 5}, admin)
    with pytest.raises(NotFound):
        await services.provisioning.update_student("99999", {"full_name": "X"}, admin)

    # keeping its own cn is not a conflict
    updated = await services.provisioning.update_student("10001", {"cn": "11111111"}, admin)
    assert updated["cn"] == "11111111"


async def test_delete_student_removes_card(db, services, provision, admin, staff):
    card = await provision()

    with pytest.raises(Forbidden):
        await services.provisioning.delete_student("10001", staff)

    await services.provisioning.delete_student("10001", admin)

    assert db.students == {} and db.cards == {}
    entry = db.activity_logs[-1]
    assert entry["action"] == ActivityAction.DELETE_STUDENT.value
    assert entry["details"]["card_id"] == card["id"]
    with pytest.raises(NotFound):
        await services.provisioning.delete_student("10001", admin)


async def test_issue_card(db, services, provision, admin, staff):
    card = await provision()

    with pytest.raises(DuplicateEntry):
        await services.provisioning.issue_card("10001", admin)

    await services.ledger.delete_card(card["id"], admin)
    with pytest.raises(Forbidden):
        await services.provisioning.issue_card("10001", staff)

    new_card = await services.provisioning.issue_card("10001", admin)
    assert new_card["id"] != card["id"]
    assert new_card["balance"] == Decimal("0.00")
    assert db.students["10001"]["card_id"] == new_card["id"]
    assert db.students["10001"]["qr_payload"]["card_number"] == new_card["card_number"]
    assert db.activity_logs[-1]["action"] == ActivityAction.CREATE_CARD.value

    with pytest.raises(NotFound):
        await services.provisioning.issue_card("99999", admin)


async def test_list_students_with_cards(services, provision):
    first = await provision(student_id="10002", full_name="Alan Turing", balance="3")
    await provision(student_id="10001", full_name="Ada Lovelace")

    students = await services.provisioning.list_students()

    assert [s["student_id"] for s in students] == ["10001", "10002"]
    assert students[1]["card_number"] == first["card_number"]
    assert students[1]["balance"] == Decimal("3.00")
    assert [s["student_id"] for s in await services.provisioning.list_students(limit=1, offset=1)] == ["10002"]
