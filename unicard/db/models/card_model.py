from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Boolean, DateTime, CheckConstraint, UniqueConstraint, func
from sqlalchemy.orm import relationship
from unicard.db.base import Base


class UniversityCard(Base):
    __tablename__ = "university_cards"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_university_cards_balance_non_negative"),
        UniqueConstraint("student_id", name="uq_university_cards_student_id"),
        UniqueConstraint("card_number", name="uq_university_cards_card_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(
        String(5),
        ForeignKey("students.student_id", ondelete="CASCADE"),
        nullable=False,
    )
    card_number = Column(String(9), nullable=False, doc="LLLLNNNNN")
    balance = Column(Numeric(12, 2), default=0, server_default="0", nullable=False)
    used = Column(Boolean, default=False, server_default="false", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    created_by = Column(Integer, nullable=True)
    updated_by = Column(Integer, nullable=True)

    student = relationship("Student", foreign_keys=[student_id], back_populates="card")

    def __repr__(self):
        return f"<UniversityCard(number={self.card_number}, balance={self.balance})>"
