import logging
import ssl
from typing import Any, Dict

import redis
from fastapi import Request
from redis.backoff import NoBackoff
from redis.retry import Retry
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config import Settings

logger = logging.getLogger(__name__)


def build_redis_config(settings: Settings) -> Dict[str, Any]:
    # Commands are never re-sent: a retried HINCRBY could count a visit twice.
    redis_config: Dict[str, Any] = {
        "host": settings.redis_host,
        "port": settings.redis_port,
        "db": settings.redis_db,
        "decode_responses": True,
        "socket_timeout": settings.redis_socket_timeout,
        "socket_connect_timeout": settings.redis_connect_timeout,
        "retry_on_timeout": False,
        "retry": Retry(NoBackoff(), 0),
        "health_check_interval": settings.redis_health_check_interval,
    }

    # TLS endpoints such as ElastiCache Serverless (matches redis-cli --tls)
    if settings.redis_ssl:
        redis_config["ssl"] = True
        redis_config["ssl_cert_reqs"] = ssl.CERT_NONE
        redis_config["ssl_check_hostname"] = False

    if settings.redis_password:
        redis_config["password"] = settings.redis_password

    return redis_config


def create_redis_client(settings: Settings) -> redis.Redis:
    """Create the Redis client for the process.

    The client owns a connection pool shared by all request threads, so one
    instance is created per application and handed to the visit tracker.
    """
    redis_config = build_redis_config(settings)
    if settings.redis_url:
        logger.info(f"Connecting to Redis at {settings.redis_url}")
        # Host, db and TLS come from the URL (rediss:// for TLS)
        for key in ("host", "port", "db", "ssl", "ssl_cert_reqs", "ssl_check_hostname"):
            redis_config.pop(key, None)
        return redis.Redis.from_url(settings.redis_url, **redis_config)

    logger.info(
        f"Connecting to Redis at {settings.redis_host}:{settings.redis_port} "
        f"(SSL: {settings.redis_ssl})"
    )
    return redis.Redis(**redis_config)


def wait_for_redis(client: redis.Redis, attempts: int = 10) -> None:
    """Block until Redis answers PING, backing off exponentially between tries.

    Raises the last redis error once ``attempts`` is exhausted.
    """

    @retry(
        stop=stop_after_attempt(max(attempts, 1)),
        wait=wait_exponential(multiplier=0.1, max=3),
        retry=retry_if_exception_type(redis.RedisError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _ping():
        client.ping()

    _ping()
    logger.info("Connected to Redis successfully")


def is_redis_healthy(client: redis.Redis) -> bool:
    """Check if the Redis connection is established and working."""
    if client is None:
        logger.warning("Redis client is not initialized")
        return False

    try:
        return bool(client.ping())
    except redis.ConnectionError as e:
        logger.warning(f"Failed to connect to Redis: {e}")
        return False
    except redis.TimeoutError as e:
        logger.warning(f"Redis connection timed out: {e}")
        return False
    except redis.RedisError as e:
        logger.warning(f"Unexpected Redis error during health check: {e}")
        return False


def get_redis(request: Request) -> redis.Redis:
    return request.app.state.redis
