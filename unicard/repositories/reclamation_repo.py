from decimal import Decimal
from typing import Optional, List

from asyncpg import Connection

from unicard.core.exceptions import Internal

UPDATABLE_FIELDS = ("status", "admin_id", "admin_notes", "processed_at")


class ReclamationRepository:
    """Repository for reclamations rows over asyncpg."""

    def __init__(self, conn: Connection):
        self.conn = conn

    async def create(
        self,
        staff_id: int,
        student_id: str,
        amount: Decimal,
        reason: str,
        evidence: Optional[str] = None,
    ) -> dict:
        sql = """
            INSERT INTO reclamations (staff_id, student_id, amount, reason, evidence, status)
            VALUES ($1, $2, $3, $4, $5, 'pending')
            RETURNING *;
        """
        rec = await self.conn.fetchrow(sql, staff_id, student_id, amount, reason, evidence)
        if not rec:
            raise Internal("Failed to insert reclamation.")
        return dict(rec)

    async def get_by_id(self, reclamation_id: int) -> dict | None:
        rec = await self.conn.fetchrow("SELECT * FROM reclamations WHERE id = $1;", reclamation_id)
        return dict(rec) if rec else None

    async def lock_by_id(self, reclamation_id: int) -> dict | None:
        rec = await self.conn.fetchrow("SELECT * FROM reclamations WHERE id = $1 FOR UPDATE;", reclamation_id)
        return dict(rec) if rec else None

    async def update(self, reclamation_id: int, **changes) -> dict:
        fields = [key for key in UPDATABLE_FIELDS if key in changes]
        if not fields:
            raise ValueError("No reclamation fields to update.")
        assignments = [f"{field} = ${i + 1}" for i, field in enumerate(fields)]
        args = [changes[field] for field in fields]
        args.append(reclamation_id)

        sql = f"""
            UPDATE reclamations SET {', '.join(assignments)}, updated_at = now()
            WHERE id = ${len(args)}
            RETURNING *;
        """
        rec = await self.conn.fetchrow(sql, *args)
        if not rec:
            raise Internal(f"Failed to update reclamation {reclamation_id}.")
        return dict(rec)

    async def list_filtered(
        self,
        status: Optional[str] = None,
        staff_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        clauses = []
        args = []

        if status:
            clauses.append(f"status = ${len(args)+1}")
            args.append(status)
        if staff_id:
            clauses.append(f"staff_id = ${len(args)+1}")
            args.append(staff_id)

        sql = "SELECT * FROM reclamations"
        if clauses:
            sql += f" WHERE {' AND '.join(clauses)}"
        sql += " ORDER BY created_at DESC, id DESC"
        if limit:
            sql += f" LIMIT ${len(args)+1}"
            args.append(limit)

        rows = await self.conn.fetch(sql + ";", *args)
        return [dict(r) for r in rows]

    async def count_by_status(self) -> dict[str, int]:
        rows = await self.conn.fetch("SELECT status, COUNT(*) AS count FROM reclamations GROUP BY status;")
        return {r["status"]: int(r["count"]) for r in rows}
