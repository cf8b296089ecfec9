"""Configuration models for the retriever."""

from typing import Annotated

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from http_retriever.constants import (
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_READ_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
)
from http_retriever.url_policy import UrlPolicy


class RetrieverConfig(BaseModel):
    """Configuration for the retriever.

    Timeouts apply to each connection attempt separately; there is no
    overall budget beyond the redirect bound.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    connect_timeout_seconds: Annotated[float, Field(gt=0.0, le=300.0)] = (
        DEFAULT_CONNECT_TIMEOUT_SECONDS
    )
    read_timeout_seconds: Annotated[float, Field(gt=0.0, le=300.0)] = (
        DEFAULT_READ_TIMEOUT_SECONDS
    )
    max_redirects: Annotated[int, Field(ge=0, le=1000)] = DEFAULT_MAX_REDIRECTS
    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        DEFAULT_USER_AGENT
    )
    url_policy: UrlPolicy = Field(default_factory=UrlPolicy)
    trust_env: bool = Field(
        default=True,
        description="Honor proxy and certificate environment variables",
    )

    def timeout(self) -> httpx.Timeout:
        """Build the per-connection timeout.

        Returns:
            httpx.Timeout with connect and read limits applied.
        """
        return httpx.Timeout(
            self.read_timeout_seconds,
            connect=self.connect_timeout_seconds,
        )


class RetrieverSettings(BaseSettings):
    """Environment overrides for the retriever configuration."""

    model_config = SettingsConfigDict(
        env_prefix="HTTP_RETRIEVER_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    connect_timeout_seconds: float = DEFAULT_CONNECT_TIMEOUT_SECONDS
    read_timeout_seconds: float = DEFAULT_READ_TIMEOUT_SECONDS
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    user_agent: str = DEFAULT_USER_AGENT

    def to_config(self) -> RetrieverConfig:
        """Convert settings into a validated RetrieverConfig."""
        return RetrieverConfig(
            connect_timeout_seconds=self.connect_timeout_seconds,
            read_timeout_seconds=self.read_timeout_seconds,
            max_redirects=self.max_redirects,
            user_agent=self.user_agent,
        )


def get_settings() -> RetrieverSettings:
    """Get a settings instance."""
    return RetrieverSettings()
