# storefront/services/marker_service.py
import redis
from redis.exceptions import RedisError
from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class MarkerService:
    """
    Znaczniki idempotencji w redisie z TTL
    -abandoned_cart_sent:{user_id} - mail o porzuconym koszyku juz wyslany
    -TTL robi sprzatanie, nie trzeba recznie kasowac
    """

    def __init__(self, client: redis.Redis | None = None, url: str | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def abandoned_notice_key(user_id: int) -> str:
        return f"abandoned_cart_sent:{user_id}"

    @redis_retry()
    def is_marked(self, key: str) -> bool:
        return bool(self.redis.exists(key))

    @redis_retry()
    def mark(self, key: str, ttl: int) -> bool:
        logger.info(f"Set marker {key} ttl={ttl}s")
        #SET key "sent" NX EX ttl
        return bool(self.redis.set(name=key, value="sent", nx=True, ex=ttl))

    def safe_is_marked(self, key: str) -> bool:
        #redis lezy -> traktujemy jak brak znacznika, najwyzej duplikat maila
        try:
            return self.is_marked(key)
        except RedisError as e:
            logger.warning(f"Marker lookup {key} failed: {e}")
            return False
