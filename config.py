import logging
import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self) -> None:
        self.env = os.getenv("ENV", "development").lower()
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = int(os.getenv("PORT", 3000))
        self.version = os.getenv("APP_VERSION", "1.0.0")
        self.service_name = os.getenv("SERVICE_NAME", "visit-tracker")

        # Redis
        self.redis_url = os.getenv("REDIS_URL") or None
        self.redis_host = os.getenv("REDIS_HOST", "localhost")
        self.redis_port = int(os.getenv("REDIS_PORT", 6379))
        self.redis_db = int(os.getenv("REDIS_DB", 0))
        self.redis_password = os.getenv("REDIS_PASSWORD") or None
        self.redis_ssl = _env_bool("REDIS_SSL")
        self.redis_socket_timeout = float(os.getenv("REDIS_SOCKET_TIMEOUT", 5))
        self.redis_connect_timeout = float(os.getenv("REDIS_CONNECT_TIMEOUT", 5))
        self.redis_health_check_interval = int(os.getenv("REDIS_HEALTH_CHECK_INTERVAL", 30))
        self.redis_startup_attempts = int(os.getenv("REDIS_STARTUP_ATTEMPTS", 10))

        # HTTP
        self.frontend_url = os.getenv("FRONTEND_URL", "*")
        self.rate_limit = os.getenv("RATE_LIMIT", "1000 per 15 minutes")
        self.rate_limit_enabled = _env_bool("RATE_LIMIT_ENABLED", "true")
        self.rate_limit_storage = os.getenv("RATE_LIMIT_STORAGE", "memory://")
        self.slow_request_ms = float(os.getenv("SLOW_REQUEST_MS", 100))
        self.max_request_bytes = int(os.getenv("MAX_REQUEST_BYTES", 1024 * 1024))
        self.gzip_minimum_size = int(os.getenv("GZIP_MINIMUM_SIZE", 1024))

        # Read-through cache for /api/visits/stats
        self.stats_cache_enabled = _env_bool("STATS_CACHE_ENABLED")
        self.stats_cache_ttl = int(os.getenv("STATS_CACHE_TTL", 30))

    @property
    def effective_stats_cache_ttl(self) -> int:
        return self.stats_cache_ttl if self.stats_cache_enabled else 0

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.frontend_url.split(",") if origin.strip()]


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
