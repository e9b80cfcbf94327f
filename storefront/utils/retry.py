# storefront/utils/retry.py
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
from sqlalchemy.exc import IntegrityError
import requests
import redis
import stripe

from storefront.domain.errors import ConflictError


def http_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(requests.RequestException),
    )


def redis_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(redis.RedisError),
    )


def gateway_retry():
    #tylko bledy sieci, decline/karta to nie jest powod do retry
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type((stripe.APIConnectionError, stripe.RateLimitError)),
    )


def conflict_retry(attempts: int = 3):
    #unique constraint na (user, product) - przegrany insert powtarzamy calym upsertem
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.01, min=0.01, max=0.1),
        retry=retry_if_exception_type((IntegrityError, ConflictError)),
    )
