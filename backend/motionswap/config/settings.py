"""
Application Settings Configuration
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Literal


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # AI Gateway (KlingAI motion control is reached through the gateway)
    ai_gateway_api_key: str = Field(default="")
    ai_gateway_base_url: str = Field(default="https://ai-gateway.vercel.sh")

    # Transactional email (Resend)
    resend_api_key: str = Field(default="")
    resend_base_url: str = Field(default="https://api.resend.com")
    email_from: str = Field(default="Face Swap <noreply@resend.dev>")

    # Database
    database_url: str = Field(default="sqlite:///./data/generations.db")

    # Redis / RQ
    redis_url: str = Field(default="redis://localhost:6379/0")
    rq_queue_name: str = Field(default="generations")

    # Blob storage
    blob_root: str = Field(default="./data/blobs")
    blob_generations_subdir: str = Field(default="generations")
    blob_url_prefix: str = "/blobs"

    # Absolute base for links sent outside the app (emails)
    public_base_url: str = Field(default="http://localhost:8000")

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")


# Global settings instance
settings = Settings()
