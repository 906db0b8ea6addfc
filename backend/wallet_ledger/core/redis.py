from typing import Optional
import redis.asyncio as aioredis

async def create_redis(url: str) -> Optional[aioredis.Redis]:
    if not url:
        return None
    return aioredis.from_url(url, decode_responses=True)
