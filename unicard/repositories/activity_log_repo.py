from datetime import datetime
from typing import Optional, List

from asyncpg import Connection

from unicard.core.exceptions import Internal


class ActivityLogRepository:
    """Append-only access to activity_logs; there is no update or delete."""

    def __init__(self, conn: Connection):
        self.conn = conn

    async def create(
        self,
        user_id: int,
        action: str,
        entity_type: str,
        entity_id: Optional[str],
        details: Optional[dict],
        ip_address: Optional[str] = None,
    ) -> dict:
        sql = """
            INSERT INTO activity_logs (user_id, action, entity_type, entity_id, details, ip_address)
            VALUES ($1, $2, $3, $4, $5::jsonb, $6)
            RETURNING *;
        """
        rec = await self.conn.fetchrow(sql, user_id, action, entity_type, entity_id, details, ip_address)
        if not rec:
            raise Internal("Failed to insert activity log entry.")
        return dict(rec)

    async def list_for_entity(self, entity_type: str, entity_id: str, limit: int = 50, offset: int = 0) -> List[dict]:
        sql = """
            SELECT * FROM activity_logs
            WHERE entity_type = $1 AND entity_id = $2
            ORDER BY created_at DESC, id DESC
            LIMIT $3 OFFSET $4;
        """
        rows = await self.conn.fetch(sql, entity_type, entity_id, limit, offset)
        return [dict(r) for r in rows]

    async def search(
        self,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[dict]:
        clauses = []
        args = []

        if user_id:
            clauses.append(f"user_id = ${len(args)+1}")
            args.append(user_id)
        if action:
            clauses.append(f"action = ${len(args)+1}")
            args.append(action)
        if entity_type:
            clauses.append(f"entity_type = ${len(args)+1}")
            args.append(entity_type)
        if date_from:
            clauses.append(f"created_at >= ${len(args)+1}")
            args.append(date_from)
        if date_to:
            clauses.append(f"created_at <= ${len(args)+1}")
            args.append(date_to)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"""
            SELECT * FROM activity_logs {where}
            ORDER BY created_at DESC, id DESC
            LIMIT ${len(args)+1} OFFSET ${len(args)+2};
        """
        rows = await self.conn.fetch(sql, *args, limit, offset)
        return [dict(r) for r in rows]
