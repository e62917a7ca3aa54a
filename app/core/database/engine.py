"""
Database engine configuration and session management.

Current: SQLite (async with aiosqlite)
Future: PostgreSQL (switch to asyncpg)

Grant uniqueness is enforced here, in the store, through the
folder_permission_grants unique constraint; nothing above the session
layer serializes writers.
"""
from collections.abc import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.core import config


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine, using NullPool for file-backed SQLite."""
    if url.startswith("sqlite") and "poolclass" not in kwargs:
        kwargs["poolclass"] = NullPool
    return create_async_engine(url, echo=False, future=True, **kwargs)


engine = build_engine(config.SQLALCHEMY_DATABASE_URL)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.
    
    Usage in FastAPI routes:
        @router.get("/folders/{folder_id}")
        async def get_folder(folder_id: str, db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def import_models() -> None:
    """Import every model module so the tables register on Base.metadata."""
    from app.features.users.models import User  # noqa: F401
    from app.features.directory.models import Branch, Department  # noqa: F401
    from app.features.folders.models import Folder  # noqa: F401
    from app.features.permissions.models import (  # noqa: F401
        FolderPermissionGrant, RoleCapability, AuditLog
    )


async def init_db(bind: AsyncEngine | None = None):
    """
    Initialize database tables.
    Call this on application startup to create all tables.
    """
    from app.core.database.base import Base

    import_models()

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
