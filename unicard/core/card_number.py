"""University card number generation: four uppercase letters then five digits."""

import random
import re
import string
from typing import Optional

CARD_NUMBER_PATTERN = re.compile(r"^[A-Z]{4}[0-9]{5}$")

_system_random = random.SystemRandom()


def generate_card_number(rng: Optional[random.Random] = None) -> str:
    rng = rng or _system_random
    letters = "".join(rng.choice(string.ascii_uppercase) for _ in range(4))
    digits = "".join(rng.choice(string.digits) for _ in range(5))
    return letters + digits


def is_valid_card_number(value: str) -> bool:
    return bool(CARD_NUMBER_PATTERN.match(value or ""))
