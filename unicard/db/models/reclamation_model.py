from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, DateTime, Text, CheckConstraint, func, Enum
from sqlalchemy.orm import relationship
from unicard.db.base import Base
import enum


class ReclamationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSED = "processed"
    ERROR = "error"


class Reclamation(Base):
    __tablename__ = "reclamations"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_reclamations_amount_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(Integer, nullable=False)
    student_id = Column(String(5), ForeignKey("students.student_id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    reason = Column(Text, nullable=False)
    evidence = Column(Text, nullable=True)
    status = Column(
        Enum(ReclamationStatus, name="reclamationstatus", create_type=True,
             values_callable=lambda e: [m.value for m in e]),
        default=ReclamationStatus.PENDING,
        server_default=ReclamationStatus.PENDING.value,
        nullable=False,
        index=True,
    )
    admin_id = Column(Integer, nullable=True)
    admin_notes = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    student = relationship("Student", back_populates="reclamations")
