import logging
import redis
from datetime import datetime, timezone
from resilience.core.config import settings

logger = logging.getLogger(__name__)

redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)

def attempt_key(scope: str, identifier: str) -> str:
    minute = datetime.now(timezone.utc).strftime("%Y%m%d%H%M")
    return f"attempts:{scope}:{minute}:{identifier}"

def allow_attempt(scope: str, identifier: str, limit: int, client=None) -> bool:
    """Count one attempt in the current minute window; False once over the limit.

    Redis being unavailable must not lock respondents out, so errors allow the attempt.
    """
    if not settings.RATE_LIMIT_ENABLED or limit <= 0:
        return True
    client = client or redis_client
    key = attempt_key(scope, identifier)
    try:
        pipe = client.pipeline()
        pipe.incr(key, 1)
        pipe.expire(key, 60)
        count, _ = pipe.execute()
    except redis.RedisError as e:
        logger.warning(f"Rate limit check skipped: {e}")
        return True
    return int(count) <= limit
