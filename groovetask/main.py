from __future__ import annotations

import uvicorn

from .adapters.base import KeyValueBackend
from .adapters.memory import MemoryBackend
from .adapters.upstash import UpstashBackend
from .api.app import create_app
from .config import DEV_JWT_SECRET, Settings, load_settings
from .logging_config import setup_logging


def build_backend(settings: Settings) -> KeyValueBackend | None:
    """Pick the KV backend; ``None`` when the configuration is incomplete."""
    if settings.kv_url and settings.kv_token:
        return UpstashBackend(settings.kv_url, settings.kv_token)
    if settings.kv_url or settings.kv_token:
        return None
    return MemoryBackend()


def main() -> int:
    settings = load_settings()
    log = setup_logging(settings.log_level)
    if settings.is_production and settings.jwt_secret == DEV_JWT_SECRET:
        log.error(
            "JWT_SECRET is not set. "
            "Export it in your environment before running in production."
        )
        return 2
    backend = build_backend(settings)
    if backend is None:
        log.error(
            "Both UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN "
            "(or KV_REST_API_URL and KV_REST_API_TOKEN) must be set."
        )
        return 2
    if isinstance(backend, MemoryBackend):
        log.warning("No KV store configured; data lives in memory only.")

    app = create_app(settings, backend)
    try:
        uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    except KeyboardInterrupt:
        log.info("Shutting down...")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
