from typing import Optional

from asyncpg import Connection, UniqueViolationError

from unicard.core.exceptions import DuplicateEntry, Internal

_UNIQUE_FIELDS = {
    "pk_students": "student_id",
    "students_pkey": "student_id",
    "uq_students_cn": "cn",
}

UPDATABLE_FIELDS = ("full_name", "cn", "profile_image", "university_id")


def _duplicate(e: UniqueViolationError) -> DuplicateEntry:
    return DuplicateEntry(_UNIQUE_FIELDS.get(e.constraint_name, "student_id"))


class StudentRepository:

    def __init__(self, conn: Connection):
        self.conn = conn

    async def get_by_id(self, student_id: str) -> Optional[dict]:
        sql = "SELECT * FROM students WHERE student_id = $1;"
        record = await self.conn.fetchrow(sql, student_id)
        return dict(record) if record else None

    async def lock_by_id(self, student_id: str) -> Optional[dict]:
        sql = "SELECT * FROM students WHERE student_id = $1 FOR UPDATE;"
        record = await self.conn.fetchrow(sql, student_id)
        return dict(record) if record else None

    async def get_by_cn(self, cn: str) -> Optional[dict]:
        sql = "SELECT * FROM students WHERE cn = $1;"
        record = await self.conn.fetchrow(sql, cn)
        return dict(record) if record else None

    async def get_with_card(self, student_id: str) -> Optional[dict]:
        sql = """
            SELECT s.*, uc.card_number, uc.balance, uc.used
            FROM students s
            LEFT JOIN university_cards uc ON uc.student_id = s.student_id
            WHERE s.student_id = $1;
        """
        record = await self.conn.fetchrow(sql, student_id)
        return dict(record) if record else None

    async def list_with_cards(self, limit: Optional[int] = None, offset: int = 0) -> list[dict]:
        sql = """
            SELECT s.*, uc.card_number, uc.balance, uc.used
            FROM students s
            LEFT JOIN university_cards uc ON uc.student_id = s.student_id
            ORDER BY s.student_id
        """
        args = []
        if limit:
            sql += " LIMIT $1"
            args.append(limit)
        sql += f" OFFSET ${len(args)+1};"
        args.append(offset)
        rows = await self.conn.fetch(sql, *args)
        return [dict(r) for r in rows]

    async def create(self, student_in: dict) -> dict:
        sql = """
            INSERT INTO students (student_id, cn, full_name, profile_image, university_id, created_by, updated_by)
            VALUES ($1, $2, $3, $4, $5, $6, $6)
            RETURNING *;
        """
        try:
            record = await self.conn.fetchrow(
                sql,
                student_in["student_id"],
                student_in.get("cn"),
                student_in["full_name"],
                student_in.get("profile_image"),
                student_in.get("university_id"),
                student_in.get("created_by"),
            )
        except UniqueViolationError as e:
            raise _duplicate(e) from e
        if not record:
            raise Internal("Failed to insert student.")
        return dict(record)

    async def attach_card(self, student_id: str, card_id: int, qr_payload: dict) -> dict:
        sql = """
            UPDATE students SET card_id = $1, qr_payload = $2::jsonb, updated_at = now()
            WHERE student_id = $3
            RETURNING *;
        """
        record = await self.conn.fetchrow(sql, card_id, qr_payload, student_id)
        if not record:
            raise Internal(f"Failed to attach card {card_id} to student {student_id}.")
        return dict(record)

    async def update(self, student_id: str, changes: dict, updated_by: int) -> Optional[dict]:
        fields = [key for key in UPDATABLE_FIELDS if key in changes]
        assignments = [f"{field} = ${i + 1}" for i, field in enumerate(fields)]
        args = [changes[field] for field in fields]
        assignments.append(f"updated_by = ${len(args) + 1}")
        args.append(updated_by)
        if "qr_payload" in changes:
            assignments.append(f"qr_payload = ${len(args) + 1}::jsonb")
            args.append(changes["qr_payload"])
        args.append(student_id)

        sql = f"""
            UPDATE students SET {', '.join(assignments)}, updated_at = now()
            WHERE student_id = ${len(args)}
            RETURNING *;
        """
        try:
            record = await self.conn.fetchrow(sql, *args)
        except UniqueViolationError as e:
            raise _duplicate(e) from e
        return dict(record) if record else None

    async def delete(self, student_id: str) -> bool:
        result = await self.conn.execute("DELETE FROM students WHERE student_id = $1;", student_id)
        return result.endswith(" 1")

    async def count(self) -> int:
        return int(await self.conn.fetchval("SELECT COUNT(*) FROM students;"))
