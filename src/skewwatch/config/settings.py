import os

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Monitor settings with environment variable support"""

    # Fleet
    SKEWWATCH_HOSTS: str = ""
    SKEWWATCH_PORT: int = 22
    SKEWWATCH_CONNECT_TIMEOUT: str = "10s"
    SKEWWATCH_HOST_KEY_POLICY: str = "warn"

    # Authentication: falls back to the login name like ssh(1) does
    SKEWWATCH_USER: str = Field(default_factory=lambda: os.getenv("USER", ""))

    # Round loop
    SKEWWATCH_SLEEP: str = "1m"
    SKEWWATCH_ALERT: str = ""

    # Logging
    SKEWWATCH_LOG_LEVEL: str = "INFO"
    SKEWWATCH_LOG_FORMAT: str = "console"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"
