from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from unicard.db.base import Base


class Student(Base):
    __tablename__ = "students"
    __table_args__ = (
        UniqueConstraint("cn", name="uq_students_cn"),
    )

    student_id = Column(String(5), primary_key=True, doc="5-digit numeric, externally assigned")
    cn = Column(String(8), nullable=True, doc="8-digit consumer number")
    full_name = Column(String(150), nullable=False)
    profile_image = Column(Text, nullable=True)
    university_id = Column(Integer, nullable=True)
    card_id = Column(
        Integer,
        ForeignKey("university_cards.id", ondelete="SET NULL", use_alter=True, name="fk_students_card_id"),
        nullable=True,
    )
    qr_payload = Column(JSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    created_by = Column(Integer, nullable=True)
    updated_by = Column(Integer, nullable=True)

    card = relationship("UniversityCard", foreign_keys="[UniversityCard.student_id]", back_populates="student", uselist=False)
    reclamations = relationship("Reclamation", back_populates="student")

    def __repr__(self):
        return f"<Student(student_id={self.student_id}, full_name={self.full_name})>"
