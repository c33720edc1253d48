import os
from dataclasses import dataclass

DEV_JWT_SECRET = "dev_secret_do_not_use_in_prod"


@dataclass(frozen=True)
class Settings:
    kv_url: str = ""
    kv_token: str = ""
    jwt_secret: str = DEV_JWT_SECRET
    environment: str = "development"
    host: str = "127.0.0.1"
    port: int = 3001
    session_days: int = 30
    bcrypt_rounds: int = 10
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def _env(*names: str, default: str = "") -> str:
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return default


def load_settings() -> Settings:
    return Settings(
        kv_url=_env("UPSTASH_REDIS_REST_URL", "KV_REST_API_URL"),
        kv_token=_env("UPSTASH_REDIS_REST_TOKEN", "KV_REST_API_TOKEN"),
        jwt_secret=_env("JWT_SECRET", default=DEV_JWT_SECRET),
        environment=_env("GROOVETASK_ENV", default="development").lower(),
        host=_env("GROOVETASK_HOST", default="127.0.0.1"),
        port=int(_env("GROOVETASK_PORT", default="3001")),
        bcrypt_rounds=int(_env("GROOVETASK_BCRYPT_ROUNDS", default="10")),
        log_level=_env("GROOVETASK_LOG_LEVEL", default="INFO"),
    )
