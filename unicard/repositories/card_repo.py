from decimal import Decimal
from typing import Optional

from asyncpg import Connection, UniqueViolationError

from unicard.core.exceptions import DuplicateEntry, Internal

_UNIQUE_FIELDS = {
    "uq_university_cards_card_number": "card_number",
    "uq_university_cards_student_id": "student_id",
}

UPDATABLE_FIELDS = ("card_number", "used")


class CardRepository:
    """Repository for university_cards rows over asyncpg."""

    def __init__(self, conn: Connection):
        self.conn = conn

    # ------------------ Retrieval Methods ------------------ #

    async def get_by_id(self, card_id: int) -> dict | None:
        sql = "SELECT * FROM university_cards WHERE id = $1;"
        record = await self.conn.fetchrow(sql, card_id)
        return dict(record) if record else None

    async def get_by_student_id(self, student_id: str) -> dict | None:
        sql = "SELECT * FROM university_cards WHERE student_id = $1;"
        record = await self.conn.fetchrow(sql, student_id)
        return dict(record) if record else None

    async def number_exists(self, card_number: str) -> bool:
        sql = "SELECT EXISTS (SELECT 1 FROM university_cards WHERE card_number = $1);"
        return bool(await self.conn.fetchval(sql, card_number))

    async def list_with_students(
        self,
        used: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict]:
        clauses = []
        args = []

        if used is not None:
            clauses.append(f"uc.used = ${len(args)+1}")
            args.append(used)

        sql = """
            SELECT uc.*, s.full_name, s.cn, s.profile_image, s.university_id
            FROM university_cards uc
            LEFT JOIN students s ON s.student_id = uc.student_id
        """
        if clauses:
            sql += f" WHERE {' AND '.join(clauses)}"
        sql += " ORDER BY uc.id"
        if limit:
            sql += f" LIMIT ${len(args)+1}"
            args.append(limit)
        sql += f" OFFSET ${len(args)+1}"
        args.append(offset)

        rows = await self.conn.fetch(sql + ";", *args)
        return [dict(r) for r in rows]

    async def count_active(self) -> int:
        return int(await self.conn.fetchval("SELECT COUNT(*) FROM university_cards WHERE used = FALSE;"))

    # ------------------ Creation ------------------ #

    async def create_card(self, student_id: str, card_number: str, created_by: Optional[int]) -> dict:
        sql = """
            INSERT INTO university_cards (student_id, card_number, balance, used, created_by, updated_by)
            VALUES ($1, $2, 0.00, FALSE, $3, $3)
            RETURNING *;
        """
        try:
            record = await self.conn.fetchrow(sql, student_id, card_number, created_by)
        except UniqueViolationError as e:
            raise DuplicateEntry(_UNIQUE_FIELDS.get(e.constraint_name, "card_number")) from e
        if not record:
            raise Internal("Failed to insert university card.")
        return dict(record)

    # ------------------ Update / Lock Methods ------------------ #

    async def lock_by_id(self, card_id: int) -> dict | None:
        sql = "SELECT * FROM university_cards WHERE id = $1 FOR UPDATE;"
        record = await self.conn.fetchrow(sql, card_id)
        return dict(record) if record else None

    async def set_balance(self, card_id: int, balance: Decimal, updated_by: int) -> dict:
        sql = """
            UPDATE university_cards
            SET balance = $1, updated_by = $2, updated_at = now()
            WHERE id = $3
            RETURNING *;
        """
        record = await self.conn.fetchrow(sql, balance, updated_by, card_id)
        if not record:
            raise Internal(f"Failed to update balance of card {card_id}.")
        return dict(record)

    async def update(self, card_id: int, changes: dict, updated_by: int) -> dict:
        fields = [key for key in UPDATABLE_FIELDS if key in changes]
        if not fields:
            raise ValueError("No card fields to update.")
        assignments = [f"{field} = ${i + 1}" for i, field in enumerate(fields)]
        args = [changes[field] for field in fields]
        assignments.append(f"updated_by = ${len(args) + 1}")
        args.append(updated_by)
        args.append(card_id)

        sql = f"""
            UPDATE university_cards SET {', '.join(assignments)}, updated_at = now()
            WHERE id = ${len(args)}
            RETURNING *;
        """
        try:
            record = await self.conn.fetchrow(sql, *args)
        except UniqueViolationError as e:
            raise DuplicateEntry(_UNIQUE_FIELDS.get(e.constraint_name, "card_number")) from e
        if not record:
            raise Internal(f"Failed to update card {card_id}.")

        if "card_number" in changes:
            # keep the holder's QR payload pointing at the new number
            await self.conn.execute(
                """
                UPDATE students SET qr_payload = jsonb_set(qr_payload, '{card_number}', to_jsonb($1::text))
                WHERE card_id = $2 AND qr_payload IS NOT NULL;
                """,
                changes["card_number"], card_id,
            )
        return dict(record)

    async def mark_used(self, card_id: int, updated_by: int) -> dict | None:
        sql = """
            UPDATE university_cards
            SET used = TRUE, updated_by = $1, updated_at = now()
            WHERE id = $2
            RETURNING *;
        """
        record = await self.conn.fetchrow(sql, updated_by, card_id)
        return dict(record) if record else None

    async def delete(self, card_id: int) -> bool:
        await self.conn.execute("UPDATE students SET card_id = NULL WHERE card_id = $1;", card_id)
        result = await self.conn.execute("DELETE FROM university_cards WHERE id = $1;", card_id)
        return result.endswith(" 1")
