import asyncio
import logging

from sqlalchemy import select

from dhamira.core.permissions import Role
from dhamira.core.security import get_password_hash
from dhamira.core.settings import settings
from dhamira.db.session import AsyncSessionLocal
from dhamira.models.user import User

logger = logging.getLogger(__name__)


async def init_db() -> None:
    """
    Seed the database with the initial super admin.
    """
    async with AsyncSessionLocal() as session:
        stmt = select(User).where(User.username == settings.seed_admin_username)
        result = await session.execute(stmt)
        user = result.scalar_one_or_none()

        if user:
            logger.info("Seed super admin already exists username=%s", user.username)
            return

        user = User(
            username=settings.seed_admin_username,
            email=settings.seed_admin_email,
            full_name=settings.seed_admin_full_name,
            hashed_password=get_password_hash(settings.seed_admin_password),
            role=Role.SUPER_ADMIN.value,
            is_active=True,
            token_version=0,
        )
        session.add(user)
        await session.commit()
        logger.info("Seed super admin created username=%s", user.username)


if __name__ == "__main__":
    asyncio.run(init_db())
