"""
services/admin/bootstrap.py
Creates the first admin account from ADMIN_BOOTSTRAP_* settings.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from shared.models.models import Admin, AdminRole
from shared.utils.repository import Repository
from shared.utils.security import hash_password

logger = logging.getLogger(__name__)


async def create_admin(
    db: AsyncSession,
    username: str,
    password: str,
    email: str,
    role: AdminRole = AdminRole.SUPERADMIN,
) -> Admin:
    repo = Repository(db, Admin)
    admin = await repo.insert(
        username=username,
        email=email.lower(),
        password_hash=hash_password(password),
        role=AdminRole(role).value,
    )
    await repo.commit()
    return admin


async def ensure_bootstrap_admin(db: AsyncSession) -> Optional[Admin]:
    """No-op unless credentials are configured and the admins table is empty."""
    if not (settings.ADMIN_BOOTSTRAP_USERNAME and settings.ADMIN_BOOTSTRAP_PASSWORD):
        return None
    if await Repository(db, Admin).count() > 0:
        return None

    admin = await create_admin(
        db,
        username=settings.ADMIN_BOOTSTRAP_USERNAME,
        password=settings.ADMIN_BOOTSTRAP_PASSWORD,
        email=settings.ADMIN_BOOTSTRAP_EMAIL,
    )
    logger.info(f"Bootstrap admin '{admin.username}' created")
    return admin
