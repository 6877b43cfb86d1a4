# scripts/create_super_admin.py
"""
Seed the first super admin.

    SUPER_ADMIN_EMAIL=root@example.com python scripts/create_super_admin.py

SUPER_ADMIN_PASSWORD is optional; without it a temporary password is
generated, printed once and must be changed on first login.
"""
import asyncio

from portal.core.config import settings
from portal.core.logging_config import configure_logging
from portal.db.mongo import close_db, init_db
from portal.services.bootstrap import ensure_super_admin


async def main():
    configure_logging()
    try:
        await init_db()
        user, password = await ensure_super_admin(settings.SUPER_ADMIN_EMAIL, settings.SUPER_ADMIN_PASSWORD)
    finally:
        close_db()
    if password is None:
        print(f"Super admin already exists: {user['email']}")
    elif settings.SUPER_ADMIN_PASSWORD:
        print(f"Super admin created: {user['email']}")
    else:
        print(f"Super admin created: {user['email']}, temporary password: {password}")


if __name__ == "__main__":
    asyncio.run(main())
