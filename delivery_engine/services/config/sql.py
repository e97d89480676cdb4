"""
SQL Config Store

Settings store backed by the `settings` table. Upserts compile to a single
INSERT ... ON CONFLICT (key) DO UPDATE ... WHERE settings.updated_at <=
excluded.updated_at, so the database resolves racing admin edits by
timestamp instead of by commit order.

Supported dialects: PostgreSQL (production) and SQLite (tests).
"""

import logging
from typing import Optional

from sqlalchemy import select, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from delivery_engine.core.exceptions import ConfigTransportError
from delivery_engine.models import Setting
from delivery_engine.services.config.base import BaseConfigStore, SettingRecord
from delivery_engine.services.notifier.base import BaseChangeNotifier

logger = logging.getLogger(__name__)


def _insert_for(session: AsyncSession):
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'")


class SQLConfigStore(BaseConfigStore):
    """
    Production settings store.

    Each operation uses its own short-lived session and commits before
    returning.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker,
        notifier: Optional[BaseChangeNotifier] = None,
    ):
        super().__init__(notifier)
        self._session_maker = session_maker

    @property
    def backend_name(self) -> str:
        return "database"

    async def fetch(self, key: str) -> Optional[SettingRecord]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(select(Setting).where(Setting.key == key))
                row = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Database: failed to read setting '{key}' - {e}")
            raise ConfigTransportError(f"Settings store unreachable: {e}", key=key) from e

        if row is None:
            return None
        return SettingRecord(key=row.key, value=row.value, updated_at=row.updated_at)

    async def _write(self, record: SettingRecord) -> bool:
        try:
            async with self._session_maker() as session:
                insert = _insert_for(session)
                stmt = insert(Setting).values(
                    key=record.key,
                    value=record.value,
                    updated_at=record.updated_at,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Setting.key],
                    set_={
                        "value": stmt.excluded.value,
                        "updated_at": stmt.excluded.updated_at,
                    },
                    where=Setting.updated_at <= stmt.excluded.updated_at,
                ).returning(Setting.key)

                result = await session.execute(stmt)
                applied = result.scalar_one_or_none() is not None
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Database: failed to upsert setting '{record.key}' - {e}")
            raise ConfigTransportError(f"Settings write failed: {e}", key=record.key) from e

        return applied

    async def _insert_if_absent(self, record: SettingRecord) -> bool:
        try:
            async with self._session_maker() as session:
                insert = _insert_for(session)
                stmt = insert(Setting).values(
                    key=record.key,
                    value=record.value,
                    updated_at=record.updated_at,
                ).on_conflict_do_nothing(index_elements=[Setting.key])

                result = await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Database: failed to seed setting '{record.key}' - {e}")
            raise ConfigTransportError(f"Settings write failed: {e}", key=record.key) from e

        return result.rowcount == 1

    async def health_check(self) -> bool:
        try:
            async with self._session_maker() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Database: health check failed - {e}")
            return False
