# unicard/api/v1/routers.py
from fastapi import APIRouter
from unicard.api.v1.endpoints import activity_logs, cards, reclamations, students

router = APIRouter()

router.include_router(cards.router)
router.include_router(students.router)
router.include_router(reclamations.router)
router.include_router(activity_logs.router)
