import asyncpg
from contactdb.config import settings
from typing import Optional

pool: Optional[asyncpg.Pool] = None


async def init_pool() -> asyncpg.Pool:
    global pool
    if pool is None:
        pool = await asyncpg.create_pool(
            host=settings.database_host,
            port=settings.database_port,
            database=settings.database_name,
            user=settings.database_user,
            password=settings.database_password,
            min_size=settings.database_pool_min,
            max_size=settings.database_pool_max,
            ssl="disable",
        )
    return pool


async def get_pool() -> asyncpg.Pool:
    """Get the shared pool, creating it on first use."""
    if pool is None:
        return await init_pool()
    return pool


async def close_pool():
    global pool
    if pool:
        await pool.close()
        pool = None
