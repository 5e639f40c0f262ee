from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cloudprovider.config import settings
from cloudprovider.core.exceptions import AppException

engine = create_async_engine(settings.database_url, echo=False)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per plugin call.

    Application errors still commit: steps the emulated remote API already
    applied stay applied, as they would on the real one.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except AppException:
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise
        else:
            await session.commit()
