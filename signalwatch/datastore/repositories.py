"""
数据库Repository层 - 封装数据访问逻辑
"""

import json
from datetime import datetime, timedelta
from typing import Any

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from signalwatch.datastore.models import KeyValueEntryDB


class KeyValueRepository:
    """键值缓存Repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, key: str) -> Any | None:
        """获取未过期的JSON值"""
        values = await self.get_many([key])
        return values[0]

    async def get_many(self, keys: list[str]) -> list[Any | None]:
        """批量获取，返回顺序与keys一致"""
        now = datetime.utcnow()
        result = await self.session.execute(
            select(KeyValueEntryDB).where(KeyValueEntryDB.key.in_(keys))
        )
        rows = {row.key: row for row in result.scalars().all()}

        values: list[Any | None] = []
        for key in keys:
            row = rows.get(key)
            if row is None or (row.expires_at is not None and row.expires_at <= now):
                values.append(None)
                continue
            try:
                values.append(json.loads(row.value_json))
            except json.JSONDecodeError as e:
                logger.warning(f"Failed to parse stored value for {key}: {e}")
                values.append(None)
        return values

    async def upsert(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """写入或覆盖一个键"""
        expires_at = (
            datetime.utcnow() + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        )
        await self.session.merge(
            KeyValueEntryDB(
                key=key,
                value_json=json.dumps(value),
                expires_at=expires_at,
                updated_at=datetime.utcnow(),
            )
        )

    async def cleanup_expired(self) -> int:
        """清理过期的键"""
        stmt = delete(KeyValueEntryDB).where(
            KeyValueEntryDB.expires_at.is_not(None),
            KeyValueEntryDB.expires_at <= datetime.utcnow(),
        )
        result = await self.session.execute(stmt)
        deleted = result.rowcount or 0
        if deleted > 0:
            logger.debug(f"Cleaned up {deleted} expired key/value entries")
        return deleted


class SqlStore:
    """基于SQLAlchemy的键值存储，实现 get / set / mget"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @property
    def service_id(self) -> str:
        return "sql"

    async def get(self, key: str) -> Any | None:
        async with self.session_factory() as session:
            return await KeyValueRepository(session).get(key)

    async def mget(self, keys: list[str]) -> list[Any | None]:
        if not keys:
            return []
        async with self.session_factory() as session:
            return await KeyValueRepository(session).get_many(keys)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        async with self.session_factory() as session:
            await KeyValueRepository(session).upsert(key, value, ttl_seconds)
            await session.commit()
        return True

    async def cleanup_expired(self) -> int:
        async with self.session_factory() as session:
            deleted = await KeyValueRepository(session).cleanup_expired()
            await session.commit()
        return deleted
