from __future__ import annotations

from typing import Protocol

from redis.asyncio import Redis

from app.config.settings import Settings, settings


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, *keys: str) -> int: ...

    async def keys(self, prefix: str) -> list[str]: ...


class MemoryStore:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def keys(self, prefix: str) -> list[str]:
        return [key for key in self.data if key.startswith(prefix)]


class RedisStore:
    def __init__(self, client: Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> RedisStore:
        return cls(Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        return await self.client.get(key)

    async def set(self, key: str, value: str) -> None:
        await self.client.set(key, value)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self.client.delete(*keys))

    async def keys(self, prefix: str) -> list[str]:
        return [key async for key in self.client.scan_iter(match=f"{prefix}*")]


def build_store(config: Settings | None = None) -> KeyValueStore:
    config = config or settings
    if config.store_backend == "memory":
        return MemoryStore()
    return RedisStore.from_url(config.redis_url)
