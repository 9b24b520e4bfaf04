import os
import yaml

ROOT_PATH = os.path.dirname(__file__)
CONFIG_FILE_PATH = os.environ.get("CRAWLGATE_CONFIG", os.path.join(ROOT_PATH, "env.yaml"))

if os.path.exists(CONFIG_FILE_PATH):
    with open(CONFIG_FILE_PATH, "r") as r_file:
        data = yaml.safe_load(r_file) or dict()
else:
    data = dict()


def _get(key, default, cast=None):
    """Environment variable first, then env.yaml, then the default."""
    value = os.environ.get(key, data.get(key, default))
    if cast is not None and value is not None:
        return cast(value)
    return value


class ApplicationConfig:
    DB_URI = _get("DB_URI", "sqlite+aiosqlite:///./crawlgate.db")
    API_PREFIX = _get("API_PREFIX", "/api")
    API_PORT = _get("API_PORT", 8000, int)
    API_HOST = _get("API_HOST", "0.0.0.0")
    CORS_ORIGINS = data.get("CORS_ORIGINS", [])
    CORS_ALLOW_CREDENTIALS = bool(data.get("CORS_ALLOW_CREDENTIALS", True))
    LOG_LEVEL = _get("LOG_LEVEL", "INFO")
    JWT_SECRET = _get("JWT_SECRET", "dev-secret-key-change-in-production")
    ADMIN_API_KEY = _get("ADMIN_API_KEY", "test-admin-key-12345")

    # Capacity planning
    MAX_USERS = _get("MAX_USERS", 500, int)
    QUEUE_SIZE_PER_USER = _get("QUEUE_SIZE_PER_USER", 2, int)
    WORKERS_PER_USER = _get("WORKERS_PER_USER", 0.1, float)
    CONCURRENCY_PER_WORKER = _get("CONCURRENCY_PER_WORKER", 3, int)
    MEMORY_PER_WORKER = _get("MEMORY_PER_WORKER", 128, int)  # MB
    CPU_PER_WORKER = _get("CPU_PER_WORKER", 0.1, float)  # cores

    # Admission control
    RATE_LIMIT_WINDOW_SECONDS = _get("RATE_LIMIT_WINDOW_SECONDS", 60, int)
    RATE_LIMIT_MAX_REQUESTS = _get("RATE_LIMIT_MAX_REQUESTS", 100, int)
    RATE_LIMIT_CLEANUP_INTERVAL = _get("RATE_LIMIT_CLEANUP_INTERVAL", 300, int)

    # Tenant registry
    TENANT_CACHE_TTL = _get("TENANT_CACHE_TTL", 300, int)
    USAGE_RESET_DAY = _get("USAGE_RESET_DAY", 1, int)

    # Monitoring
    METRICS_INTERVAL = _get("METRICS_INTERVAL", 60, int)
