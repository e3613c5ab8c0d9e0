from sqlalchemy.ext.asyncio import AsyncSession


class BaseRepository:
    """Thin base class that holds the database session.

    Every concrete repository receives an ``AsyncSession`` at
    construction time; the caller owns the transaction and decides when
    to commit.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def commit(self) -> None:
        """Commit the current transaction."""
        await self._db.commit()

    async def refresh(self, instance: object) -> None:
        """Reload server-generated columns (ids, timestamps)."""
        await self._db.refresh(instance)
