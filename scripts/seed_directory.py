"""
Seed script to prepare a fresh database.

Run this script after deployment to:
- Create all tables
- Write the default capability matrix
- Create the first top-role administrator (if none exists)

Usage:
    SEED_ADMIN_EMAIL=admin@example.com uv run python -m scripts.seed_directory
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db, init_db
from app.features.permissions.capabilities import CapabilityMatrix, save_capability_matrix
from app.features.permissions.models import Role, RoleCapability
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


async def seed_capabilities(db: AsyncSession):
    """
    Write the default capability matrix unless one is already stored.
    
    Args:
        db: Database session
    """
    result = await db.execute(select(RoleCapability).limit(1))
    if result.scalars().first():
        log.info("Capability matrix already present, skipping")
        return
    
    matrix = CapabilityMatrix()
    await save_capability_matrix(db, matrix)
    await db.commit()
    log.info("Default capability matrix written")


async def seed_admin(db: AsyncSession, email: str | None, name: str):
    """
    Create the first top-role user.
    
    Args:
        db: Database session
        email: Administrator email; nothing is created when empty
        name: Display name
    """
    result = await db.execute(select(User).where(User.role == Role.TOP).limit(1))
    existing = result.scalars().first()
    
    if existing:
        log.info(f"Top administrator already exists ({existing.email}), skipping")
        return
    
    if not email:
        log.warning("SEED_ADMIN_EMAIL not set; no administrator created")
        return
    
    admin = User(email=email.lower(), name=name, role=Role.TOP, is_active=True)
    db.add(admin)
    await db.commit()
    await db.refresh(admin)
    log.info(f"Created top administrator {admin.email} with id {admin.id}")


async def main():
    """Main function to seed the capability matrix and the first administrator."""
    log.info("Starting seeding...")
    
    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()
    
    # Get database session
    async for db in get_db():
        try:
            await seed_capabilities(db)
            await seed_admin(db, config.SEED_ADMIN_EMAIL, config.SEED_ADMIN_NAME)
            log.info("Seeding completed successfully!")
            
        except Exception as e:
            log.error(f"Error seeding: {e}", exc_info=True)
            await db.rollback()
            raise
        
        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
