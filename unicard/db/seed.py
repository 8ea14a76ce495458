# unicard/db/seed.py
import asyncio
import logging
import random
from decimal import Decimal

from faker import Faker
from tqdm import tqdm

from unicard.core.exceptions import DuplicateEntry
from unicard.db.session import connect_db_pool, get_pool, close_db_pool
from unicard.repositories.activity_log_repo import ActivityLogRepository
from unicard.repositories.card_repo import CardRepository
from unicard.repositories.student_repo import StudentRepository
from unicard.schemas.actor_schema import Actor, ActorRole
from unicard.services.activity_log_service import ActivityLogService
from unicard.services.ledger_service import ADD, LedgerService
from unicard.services.provisioning_service import ProvisioningService

logger = logging.getLogger(__name__)

fake = Faker("fr_FR")

NUM_STUDENTS = 200
SEED_ADMIN = Actor(id=1, role=ActorRole.ADMIN.value)
MIN_TOP_UP = 5
MAX_TOP_UP = 150


async def seed():
    await connect_db_pool()
    pool = await get_pool()
    if pool is None:
        raise RuntimeError("Database pool could not be initialized")

    async with pool.acquire() as conn:
        activity_log = ActivityLogService(conn, ActivityLogRepository(conn))
        card_repo = CardRepository(conn)
        provisioning = ProvisioningService(conn, StudentRepository(conn), card_repo, activity_log)
        ledger = LedgerService(conn, card_repo, activity_log)

        created = skipped = 0
        for _ in tqdm(range(NUM_STUDENTS), desc="Provisioning students"):
            student_id = f"{random.randint(0, 99999):05d}"
            cn = f"{random.randint(0, 99_999_999):08d}" if random.random() < 0.8 else None
            try:
                result = await provisioning.provision(
                    student_id=student_id,
                    full_name=fake.name(),
                    created_by=SEED_ADMIN.id,
                    cn=cn,
                    university_id=random.randint(1, 5),
                )
            except DuplicateEntry:
                skipped += 1
                continue

            created += 1
            top_up = Decimal(random.randint(MIN_TOP_UP * 100, MAX_TOP_UP * 100)) / 100
            await ledger.adjust(result["card"]["id"], top_up, ADD, SEED_ADMIN, reason="seed top-up")

        logger.info("Seed complete: %s students created, %s duplicate ids skipped", created, skipped)

    await close_db_pool()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())
