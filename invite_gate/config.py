from typing import List, Optional

from pydantic import field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .secrets_manager import SecretsManager


class Settings(BaseSettings):
    aws_region: str = "us-east-1"
    environment: str = "development"
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Database. database_url wins over the individual parts when set.
    database_url: Optional[str] = None
    host: str = "localhost"
    port: int = 5432
    database: str = "invite_gate"
    db_username: str = "postgres"
    db_password: SecretStr = SecretStr("postgres")

    # Redis backs the rate limiter counters and the cache. Leave unset to
    # run with in-process stores (single worker only).
    redis_url: Optional[str] = None

    rate_limit_points: int = 5
    rate_limit_window_seconds: int = 60

    registration_cache_ttl: int = 3600
    eligibility_cache_ttl: int = 300

    staking_rpc_url: SecretStr = SecretStr("https://rpc.ankr.com/eth")
    staking_contract_address: str = "0x0000000000000000000000000000000000000000"
    required_stake_seconds: int = 7 * 24 * 60 * 60
    oracle_timeout_seconds: float = 10.0

    cors_origins: List[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", validate_default=True)

    @field_validator("db_username", "db_password", "host", "staking_rpc_url", mode="before")
    @classmethod
    def load_secrets(cls, v, info):
        if info.data.get("environment") != "production":
            return v
        try:
            secrets = SecretsManager(region_name=info.data.get("aws_region"))
            if info.field_name == "staking_rpc_url":
                return secrets.get_staking_rpc_url()
            credentials = secrets.get_db_credentials()
            if info.field_name == "db_username":
                return credentials["username"]
            elif info.field_name == "db_password":
                return credentials["password"]
            elif info.field_name == "host":
                return credentials.get("host", v)
            return v
        except Exception:
            # Fall back to the env value when Secrets Manager is unreachable
            return v

    @property
    def sqlalchemy_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"postgresql+psycopg://{self.db_username}:{self.db_password.get_secret_value()}@{self.host}:{self.port}/{self.database}"


settings = Settings()
