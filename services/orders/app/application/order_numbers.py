import random
import string
from datetime import datetime, timezone
from typing import Optional

ORDER_NUMBER_PREFIX = "ORD"
SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
SUFFIX_LENGTH = 4

_rng = random.SystemRandom()


def generate_order_number(now: Optional[datetime] = None, rng: Optional[random.Random] = None) -> str:
    """Generate an order number in format ORD-YYYYMMDD-XXXX.

    Not unique by construction: the unique index on orders.order_number
    decides, and checkout regenerates on conflict.
    """
    now = now or datetime.now(timezone.utc)
    rng = rng or _rng
    suffix = "".join(rng.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{ORDER_NUMBER_PREFIX}-{now:%Y%m%d}-{suffix}"
