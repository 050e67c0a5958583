from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    HOST: str = '0.0.0.0'
    PORT: int = 8000
    ENVIRONMENT: str = 'development'
    LOG_LEVEL: str = 'INFO'
    CORS_ORIGIN: str = '*'

    REDIS_URL: Optional[str] = None
    REDIS_ENABLED: bool = True
    REDIS_REQUIRED_FOR_READY: bool = False

    # any of these names is accepted for the provider key
    LLM_API_KEY: Optional[str] = Field(default=None, validation_alias=AliasChoices('LLM_API_KEY', 'GROQ_API_KEY', 'OPENAI_API_KEY'))
    LLM_REQUIRED_FOR_READY: bool = False

    # required for POST /api/credits/grant
    ADMIN_API_KEY: Optional[str] = None

    model_config = SettingsConfigDict(env_file='.env', extra='ignore')


settings = Settings()
