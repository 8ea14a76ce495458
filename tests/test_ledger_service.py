import asyncio
from decimal import Decimal

import pytest

from unicard.core.exceptions import (
    DuplicateEntry,
    Forbidden,
    InsufficientFunds,
    NotFound,
    Unauthorized,
    ValidationError,
)
from unicard.db.models.activity_log_model import ActivityAction
from unicard.schemas.actor_schema import Actor
from unicard.services.ledger_service import CARD_ENTITY, MAX_BALANCE, parse_amount
from tests.fakes import StorageFailure, make_services


def card_logs(db, card_id, action=None):
    return [
        e for e in db.activity_logs
        if e["entity_type"] == CARD_ENTITY and e["entity_id"] == str(card_id)
        and (action is None or e["action"] == action)
    ]


# ---------------- amount parsing ---------------- #

@pytest.mark.parametrize("raw, expected", [
    ("30", Decimal("30.00")),
    (30, Decimal("30.00")),
    ("10.999", Decimal("10.99")),
    (Decimal("0.019"), Decimal("0.01")),
    (" 5.5 ", Decimal("5.50")),
])
def test_parse_amount_truncates_to_cents(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", [None, True, "", "abc", "NaN", "Infinity", 0, "-5", "0.001"])
def test_parse_amount_rejects(raw):
    with pytest.raises(ValidationError) as exc:
        parse_amount(raw)
    assert exc.value.field == "amount"


# ---------------- adjust ---------------- #

async def test_subtract_then_insufficient_funds(services, provision, admin):
    card = await provision(balance="50.00")

    change = await services.ledger.adjust(card["id"], 30, "subtract", admin)
    assert change == {
        "card_id": card["id"],
        "previous_balance": Decimal("50.00"),
        "new_balance": Decimal("20.00"),
        "amount": Decimal("30.00"),
        "operation": "subtract",
    }

    with pytest.raises(InsufficientFunds) as exc:
        await services.ledger.adjust(card["id"], 30, "subtract", admin)
    assert exc.value.current_balance == Decimal("20.00")
    assert exc.value.to_dict()["current_balance"] == "20.00"
    assert (await services.ledger.get_card(card["id"]))["balance"] == Decimal("20.00")


async def test_each_adjust_writes_one_matching_audit_entry(db, services, provision, admin, staff):
    card = await provision()

    await services.ledger.adjust(card["id"], "12.345", "add", staff, reason="cash top-up")
    await services.ledger.adjust(card["id"], "2.10", "subtract", admin)

    adds = card_logs(db, card["id"], ActivityAction.ADD_FUNDS.value)
    subtracts = card_logs(db, card["id"], ActivityAction.SUBTRACT_FUNDS.value)
    assert len(adds) == 1 and len(subtracts) == 1

    assert adds[0]["user_id"] == staff.id
    assert adds[0]["details"] == {
        "previous_balance": "0.00",
        "new_balance": "12.34",
        "amount": "12.34",
        "operation": "add",
        "reason": "cash top-up",
    }
    details = subtracts[0]["details"]
    assert Decimal(details["previous_balance"]) - Decimal(details["amount"]) == Decimal(details["new_balance"])
    assert details["new_balance"] == "10.24"


async def test_action_override_and_extra_details(db, services, provision, admin):
    card = await provision(balance="10")

    await services.ledger.adjust(
        card["id"], 4, "subtract", admin,
        action=ActivityAction.DEDUCT_FUNDS_ADMIN, extra={"reclamation_id": 7},
    )

    [entry] = card_logs(db, card["id"], ActivityAction.DEDUCT_FUNDS_ADMIN.value)
    assert entry["details"]["reclamation_id"] == 7
    assert entry["details"]["new_balance"] == "6.00"
    assert card_logs(db, card["id"], ActivityAction.SUBTRACT_FUNDS.value) == []


async def test_unknown_operation(services, provision, admin):
    card = await provision()
    with pytest.raises(ValidationError) as exc:
        await services.ledger.adjust(card["id"], 5, "multiply", admin)
    assert exc.value.field == "operation"


async def test_amount_is_checked_before_the_actor(services, provision):
    card = await provision()
    with pytest.raises(ValidationError):
        await services.ledger.adjust(card["id"], "abc", "add", None)


async def test_missing_actor_is_unauthorized(services, provision):
    card = await provision()
    with pytest.raises(Unauthorized):
        await services.ledger.adjust(card["id"], 5, "add", None)


async def test_staff_cannot_subtract(services, provision, staff):
    card = await provision(balance="50")
    with pytest.raises(Forbidden):
        await services.ledger.adjust(card["id"], 5, "subtract", staff)
    assert (await services.ledger.get_card(card["id"]))["balance"] == Decimal("50.00")


@pytest.mark.parametrize("role", ["viewer", "guest", ""])
async def test_other_roles_cannot_add(services, provision, role):
    card = await provision()
    with pytest.raises(Forbidden):
        await services.ledger.adjust(card["id"], 5, "add", Actor(id=9, role=role))


async def test_unknown_card(services, admin):
    with pytest.raises(NotFound) as exc:
        await services.ledger.adjust(999, 5, "add", admin)
    assert exc.value.entity == "card"


async def test_balance_cap(services, provision, admin):
    card = await provision(balance=str(MAX_BALANCE - 1))
    with pytest.raises(ValidationError):
        await services.ledger.adjust(card["id"], 2, "add", admin)
    assert (await services.ledger.get_card(card["id"]))["balance"] == MAX_BALANCE - 1


async def test_audit_failure_rolls_back_the_balance(db, services, provision, admin):
    card = await provision(balance="50")
    entries_before = len(db.activity_logs)

    db.fail_on.add("activity_logs.create")
    with pytest.raises(StorageFailure):
        await services.ledger.adjust(card["id"], 10, "add", admin)
    db.fail_on.clear()

    assert (await services.ledger.get_card(card["id"]))["balance"] == Decimal("50.00")
    assert len(db.activity_logs) == entries_before


async def test_concurrent_adds_are_not_lost(db, provision, admin):
    card = await provision()

    await asyncio.gather(*(
        make_services(db).ledger.adjust(card["id"], "1.25", "add", admin) for _ in range(8)
    ))

    assert db.cards[card["id"]]["balance"] == Decimal("10.00")
    assert len(card_logs(db, card["id"], ActivityAction.ADD_FUNDS.value)) == 8


async def test_concurrent_subtracts_never_overdraw(db, provision, admin):
    card = await provision(balance="100")

    results = await asyncio.gather(
        *(make_services(db).ledger.adjust(card["id"], 30, "subtract", admin) for _ in range(5)),
        return_exceptions=True,
    )

    succeeded = [r for r in results if isinstance(r, dict)]
    failed = [r for r in results if isinstance(r, InsufficientFunds)]
    assert len(succeeded) == 3 and len(failed) == 2
    assert db.cards[card["id"]]["balance"] == Decimal("10.00")
    assert len(card_logs(db, card["id"], ActivityAction.SUBTRACT_FUNDS.value)) == 3


# ---------------- card lifecycle ---------------- #

async def test_mark_used_is_admin_only(db, services, provision, admin, staff):
    card = await provision()

    with pytest.raises(Forbidden):
        await services.ledger.mark_used(card["id"], staff)

    updated = await services.ledger.mark_used(card["id"], admin)
    assert updated["used"] is True
    assert len(card_logs(db, card["id"], ActivityAction.MARK_USED.value)) == 1


async def test_delete_card_detaches_student(db, services, provision, admin):
    card = await provision(balance="5")

    deleted = await services.ledger.delete_card(card["id"], admin)

    assert deleted["card_number"] == card["card_number"]
    assert db.students["10001"]["card_id"] is None
    with pytest.raises(NotFound):
        await services.ledger.get_card(card["id"])
    [entry] = card_logs(db, card["id"], ActivityAction.DELETE_CARD.value)
    assert entry["details"]["balance"] == "5.00"


async def test_card_by_student(services, provision):
    card = await provision()
    assert (await services.ledger.get_card_by_student("10001"))["id"] == card["id"]
    with pytest.raises(NotFound):
        await services.ledger.get_card_by_student("99999")


async def test_audit_details_with_nested_values(db, services, provision, admin):
    card = await provision()

    await services.ledger.adjust(
        card["id"], "3", "add", admin,
        extra={"split": [Decimal("1.50"), Decimal("1.50")], "refs": ("a", {"fee": Decimal("0.10")})},
    )

    [entry] = card_logs(db, card["id"], ActivityAction.ADD_FUNDS.value)
    assert entry["details"]["split"] == ["1.50", "1.50"]
    assert entry["details"]["refs"] == ["a", {"fee": "0.10"}]
    assert db.cards[card["id"]]["balance"] == Decimal("3.00")


async def test_update_card_number(db, services, provision, admin):
    card = await provision(balance="12")

    updated = await services.ledger.update_card(card["id"], {"card_number": "ZZZZ12345"}, admin)

    assert updated["card_number"] == "ZZZZ12345"
    assert updated["balance"] == Decimal("12.00")
    assert db.students["10001"]["qr_payload"]["card_number"] == "ZZZZ12345"
    [entry] = card_logs(db, card["id"], ActivityAction.UPDATE_CARD.value)
    assert entry["user_id"] == admin.id
    assert entry["details"] == {
        "student_id": "10001",
        "updated_fields": ["card_number"],
        "previous": {"card_number": card["card_number"]},
    }


async def test_update_card_never_touches_balance(db, services, provision, admin):
    card = await provision(balance="12")

    with pytest.raises(ValidationError) as exc:
        await services.ledger.update_card(card["id"], {"balance": Decimal("999"), "used": True}, admin)

    assert exc.value.field == "balance"
    assert db.cards[card["id"]]["balance"] == Decimal("12.00")
    assert db.cards[card["id"]]["used"] is False
    assert card_logs(db, card["id"], ActivityAction.UPDATE_CARD.value) == []


async def test_update_card_rules(db, services, provision, admin, staff):
    card = await provision(student_id="10001")
    other = await provision(student_id="10002")

    with pytest.raises(Forbidden):
        await services.ledger.update_card(card["id"], {"used": True}, staff)
    with pytest.raises(ValidationError) as exc:
        await services.ledger.update_card(card["id"], {"card_number": "abcd12345"}, admin)
    assert exc.value.field == "card_number"
    with pytest.raises(ValidationError):
        await services.ledger.update_card(card["id"], {"student_id": "10002"}, admin)
    with pytest.raises(DuplicateEntry) as exc:
        await services.ledger.update_card(card["id"], {"card_number": other["card_number"]}, admin)
    assert exc.value.field == "card_number"
    with pytest.raises(NotFound):
        await services.ledger.update_card(999, {"used": True}, admin)

    # unchanged values write nothing
    same = await services.ledger.update_card(card["id"], {"card_number": card["card_number"]}, admin)
    assert same["card_number"] == card["card_number"]
    assert card_logs(db, card["id"], ActivityAction.UPDATE_CARD.value) == []

    used = await services.ledger.update_card(card["id"], {"used": True}, admin)
    assert used["used"] is True


async def test_list_cards_and_active_count(services, provision, admin):
    first = await provision(student_id="10001", full_name="Ada Lovelace")
    second = await provision(student_id="10002", full_name="Alan Turing")
    await services.ledger.mark_used(second["id"], admin)

    cards = await services.ledger.list_cards()
    assert [(c["id"], c["full_name"]) for c in cards] == [
        (first["id"], "Ada Lovelace"),
        (second["id"], "Alan Turing"),
    ]
    assert [c["id"] for c in await services.ledger.list_cards(used=False)] == [first["id"]]
    assert [c["id"] for c in await services.ledger.list_cards(limit=1, offset=1)] == [second["id"]]
    assert await services.ledger.count_active_cards() == 1
