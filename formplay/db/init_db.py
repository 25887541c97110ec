"""
Database bootstrap: create tables and seed the pair of users.
"""

from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from formplay.core.config import SeedUser
from formplay.core.logging import logger
from formplay.models import Base, User


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def seed_users(db: AsyncSession, seeds: List[SeedUser]) -> List[User]:
    """
    Insert the two users and link them as each other's partner.

    Existing usernames are left untouched, so seeding is idempotent.

    Args:
        db: Database session
        seeds: Exactly two user definitions

    Returns:
        The two users, in seed order
    """
    if len(seeds) != 2:
        raise ValueError("Exactly two users are required")

    users = []
    for seed in seeds:
        result = await db.execute(select(User).where(User.username == seed.username))
        user = result.scalars().first()
        if user is None:
            user = User(username=seed.username, name=seed.name, email=seed.email)
            user.set_password(seed.password)
            db.add(user)
            logger.info(f"Seeding user: {seed.username}")
        users.append(user)
    await db.flush()

    first, second = users
    first.partner_id = second.id
    second.partner_id = first.id
    await db.commit()
    return users
