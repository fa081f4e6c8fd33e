"""Family Code Service.

Generate unique join codes for families.
"""

import logging
import random

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from familysync.errors import ConstraintViolation
from familysync.models import Family
from familysync.services.validation import FAMILY_CODE_MAX_LENGTH, FAMILY_CODE_MIN_LENGTH

logger = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def _generate_code(length: int = FAMILY_CODE_MIN_LENGTH) -> str:
    """Generate a family code like 'K7QZ2M'."""
    length = max(FAMILY_CODE_MIN_LENGTH, min(FAMILY_CODE_MAX_LENGTH, length))
    return "".join(random.choice(CODE_ALPHABET) for _ in range(length))


async def generate_unique_family_code(
    db: AsyncSession,
    length: int = FAMILY_CODE_MIN_LENGTH,
    max_attempts: int = 10,
) -> str:
    """Generate a family code not used by any local family, retrying on collision."""
    for attempt in range(1, max_attempts + 1):
        code = _generate_code(length)
        result = await db.execute(select(Family.id).where(Family.code == code))
        if result.scalar_one_or_none() is None:
            return code
        logger.debug("Family code collision on attempt %d: %s", attempt, code)

    raise ConstraintViolation(
        f"Unable to generate unique family code after {max_attempts} attempts"
    )
