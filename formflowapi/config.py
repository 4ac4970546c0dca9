from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    ENV_STATE: Optional[str] = None

    """Loads the dotenv file."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class GlobalConfig(BaseConfig):
    DATABASE_URL: Optional[str] = None
    DB_FORCE_ROLL_BACK: bool = False
    # Bearer tokens
    JWT_SECRET_KEY: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    IDENTITY_CACHE_TTL_SECONDS: int = 300
    CORS_ORIGINS: List[str] = ["http://localhost", "http://localhost:3000"]
    # Logging
    LOG_LEVEL: str = "DEBUG"
    LOG_FILE: Optional[str] = None
    OBFUSCATE_EMAILS: bool = False


class DevConfig(GlobalConfig):
    DATABASE_URL: Optional[str] = "sqlite:///formflow.db"
    model_config = SettingsConfigDict(env_prefix="DEV_")


class ProdConfig(GlobalConfig):
    DATABASE_URL: str
    LOG_LEVEL: str = "INFO"
    OBFUSCATE_EMAILS: bool = True
    model_config = SettingsConfigDict(env_prefix="PROD_")


class TestConfig(GlobalConfig):
    DATABASE_URL: Optional[str] = "sqlite:///test.db"
    DB_FORCE_ROLL_BACK: bool = True
    JWT_SECRET_KEY: str = "test-secret"
    model_config = SettingsConfigDict(env_prefix="TEST_")


@lru_cache()
def get_config(env_state: Optional[str]):
    """Instantiate config based on the environment."""
    configs = {"dev": DevConfig, "prod": ProdConfig, "test": TestConfig}
    return configs[env_state or "dev"]()


config = get_config(BaseConfig().ENV_STATE)
