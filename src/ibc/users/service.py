"""User rows keyed by Nostr pubkey."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import update

from ibc.db.base import insert_ignore
from ibc.db.models import User
from ibc.errors import ValidationFailed

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

# Lightning addresses look like email addresses (LUD-16).
LIGHTNING_ADDRESS_RE = re.compile(r"^[a-z0-9._+-]+@[a-z0-9.-]+\.[a-z]{2,}$")


def validate_lightning_address(address: str) -> str:
    """Normalize and validate a ``user@domain`` lightning address."""
    normalized = address.strip().lower()
    if len(normalized) > 320 or not LIGHTNING_ADDRESS_RE.match(normalized):
        msg = f"Invalid lightning address: {address!r}"
        raise ValidationFailed(msg)
    return normalized


async def ensure_user(db: AsyncSession, user_id: str) -> None:
    """Create the user row if it does not exist yet."""
    await db.execute(insert_ignore(db, User, pubkey=user_id, created_at=datetime.now(timezone.utc)))


async def set_lightning_address(db: AsyncSession, user_id: str, address: str) -> None:
    """Remember the last lightning address the user withdrew to."""
    await ensure_user(db, user_id)
    await db.execute(
        update(User)
        .where(User.pubkey == user_id)
        .values(lightning_address=address)
        .execution_options(synchronize_session=False)
    )
    logger.debug("lightning_address_updated", user_id=user_id)
