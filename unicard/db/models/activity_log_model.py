from sqlalchemy import BigInteger, Column, Integer, String, DateTime, Index, func, Enum
from sqlalchemy.dialects.postgresql import JSONB
from unicard.db.base import Base
import enum


class ActivityAction(str, enum.Enum):
    ADD_FUNDS = "add_funds"
    SUBTRACT_FUNDS = "subtract_funds"
    CREATE_CARD = "create_card"
    UPDATE_CARD = "update_card"
    CREATE_STUDENT = "create_student"
    UPDATE_STUDENT = "update_student"
    DELETE_STUDENT = "delete_student"
    DELETE_CARD = "delete_card"
    DEDUCT_FUNDS_ADMIN = "deduct_funds_admin"
    MARK_USED = "mark_used"
    VIEW = "view"


class ActivityLog(Base):
    """Append-only audit trail. Rows are never updated or deleted."""

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_entity", "entity_type", "entity_id", "created_at"),
    )

    id = Column(BigInteger, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    action = Column(
        Enum(ActivityAction, name="activityaction", create_type=True,
             values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(64), nullable=True)
    details = Column(JSONB, nullable=True)
    ip_address = Column(String(45), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
