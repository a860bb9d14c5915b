import asyncio
import copy
import json
import logging
from typing import Any, Dict, Optional

import redis.asyncio as redis

from presence_discord_bot.config import Config

logger = logging.getLogger(__name__)


# STORAGE DRIVERS

class MemoryStorage:
    """Process-local key-value driver. State is lost on restart."""

    name = "memory"

    def __init__(self):
        self._items: Dict[str, Any] = {}

    async def get_item(self, key: str) -> Optional[Any]:
        value = self._items.get(key)
        # callers mutate what they read before writing it back
        return copy.deepcopy(value)

    async def set_item(self, key: str, value: Any) -> None:
        # round-trip through JSON so values behave like a real driver
        self._items[key] = json.loads(json.dumps(value))

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    async def close(self) -> None:
        pass


class RedisStorage:
    """Key-value driver storing JSON documents in Redis strings."""

    name = "redis"

    def __init__(self, client: redis.Redis):
        self.redis_client = client

    async def get_item(self, key: str) -> Optional[Any]:
        raw = await self.redis_client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set_item(self, key: str, value: Any) -> None:
        await self.redis_client.set(key, json.dumps(value, ensure_ascii=False))

    async def remove_item(self, key: str) -> None:
        await self.redis_client.delete(key)

    async def close(self) -> None:
        await self.redis_client.aclose()


# REDIS CONNECTION

def get_redis_connection():

    kwargs = dict(
        host=Config.REDIS_HOST,
        port=Config.REDIS_PORT,
        db=Config.REDIS_DB,
        decode_responses=True,
        socket_connect_timeout=Config.REDIS_CONNECT_TIMEOUT,
        socket_timeout=Config.REDIS_CONNECT_TIMEOUT
    )

    if Config.REDIS_PASSWORD and Config.REDIS_PASSWORD.strip():
        logger.info(
            f"🔐 Connecting to Redis with password at {Config.REDIS_HOST}:{Config.REDIS_PORT}"
        )
        kwargs['password'] = Config.REDIS_PASSWORD
    else:
        logger.info(
            f"🔓 Connecting to Redis without password at {Config.REDIS_HOST}:{Config.REDIS_PORT}"
        )

    return redis.Redis(**kwargs)


async def create_storage():
    """Connect to Redis, falling back to memory storage when it is unreachable."""

    client = get_redis_connection()

    try:
        await asyncio.wait_for(client.ping(), timeout=Config.REDIS_CONNECT_TIMEOUT)
        logger.info(
            f"✅ Redis storage ready at {Config.REDIS_HOST}:{Config.REDIS_PORT}"
        )
        return RedisStorage(client)
    except (asyncio.TimeoutError, redis.TimeoutError):
        logger.warning(
            f"❌ Redis connection timeout at {Config.REDIS_HOST}:{Config.REDIS_PORT}"
        )
    except redis.AuthenticationError as e:
        logger.warning(f"❌ Redis authentication error: {e}")
    except redis.ConnectionError as e:
        logger.warning(f"❌ Redis connection failed: {e}")
    except redis.RedisError as e:
        logger.warning(f"❌ Redis unavailable: {e}")

    await client.aclose()
    logger.warning(
        "⚠️ Falling back to in-memory storage - sessions will not survive a restart"
    )
    return MemoryStorage()
