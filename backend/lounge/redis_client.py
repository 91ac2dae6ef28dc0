from redis import Redis

from .config import settings

# Connections are opened lazily on the first command
redis_client = Redis.from_url(
    settings.redis_url,
    decode_responses=True,
    socket_timeout=2.0,
)
