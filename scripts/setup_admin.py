# Seed the bootstrap super admin from ADMIN_EMAIL / ADMIN_PASSWORD
import asyncio
import sys

from bikefine.core.config import settings
from bikefine.core.constants import AdminDepartment, AdminRole, full_permissions
from bikefine.core.database import Database
from bikefine.core.exceptions import ServiceError
from bikefine.services import admin_service


async def setup_admin(database: Database, email: str, password: str) -> bool:
    """Create the super admin unless one with this email exists. Returns True when created."""
    await database.create_all()
    async with database.session() as db:
        if await admin_service.get_admin_by_email(db, email):
            print(f"Admin {email} already exists, nothing to do")
            return False

        admin = await admin_service.create_admin(db, {
            "email": email,
            "password": password,
            "firstName": "System",
            "lastName": "Administrator",
            "role": AdminRole.SUPER_ADMIN,
            "department": AdminDepartment.MANAGEMENT,
            "permissions": full_permissions(),
        })
        print(f"Created super admin {admin.email} ({admin.id})")
        return True


async def main() -> int:
    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        print("Error: ADMIN_EMAIL and ADMIN_PASSWORD environment variables must be set")
        return 1

    database = Database(settings.DATABASE_URL, name=settings.DATABASE_NAME)
    try:
        await setup_admin(database, settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD)
    except ServiceError as e:
        print(f"Error: {e.message}")
        return 1
    finally:
        await database.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
