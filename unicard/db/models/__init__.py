from unicard.db.models.student_model import Student
from unicard.db.models.card_model import UniversityCard
from unicard.db.models.reclamation_model import Reclamation, ReclamationStatus
from unicard.db.models.activity_log_model import ActivityLog, ActivityAction

__all__ = [
    "Student",
    "UniversityCard",
    "Reclamation",
    "ReclamationStatus",
    "ActivityLog",
    "ActivityAction",
]
