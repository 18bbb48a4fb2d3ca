from typing import Optional, Dict
import redis.asyncio as aioredis

from qrlogin.config.settings import RedisConfig


class RedisInstanceManager:
    _instances: Dict[int, aioredis.Redis] = {}

    @classmethod
    def get_redis_instance(
        cls, db: int, host: str, port: int, username: Optional[str] = None, password: Optional[str] = None,
        max_connections: int = 50) -> aioredis.Redis:
        if db not in cls._instances:
            pool = aioredis.ConnectionPool(
                username=username or None,
                host=host,
                port=port,
                password=password,
                db=db,
                decode_responses=False,  # 不自动解码数据
                max_connections=max_connections,
            )
            cls._instances[db] = aioredis.Redis(connection_pool=pool)
        return cls._instances[db]

    @classmethod
    def from_config(cls, config: RedisConfig) -> aioredis.Redis:
        return cls.get_redis_instance(
            db=config.db,
            host=config.host,
            port=config.port,
            username=config.user,
            password=config.password,
        )

    @classmethod
    async def close_all(cls):
        for redis_instance in cls._instances.values():
            await redis_instance.aclose()
        cls._instances.clear()
