"""Pydantic models for service configuration."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class ServiceProfile(BaseModel):
    """One backend service from services.toml."""

    provider: Literal["sql", "postgres", "redis"] = "postgres"
    url: str
    description: str = ""
    password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    options: dict[str, Any] = Field(default_factory=dict)


class ServiceConfig(BaseModel):
    """Complete service configuration from services.toml."""

    services: dict[str, ServiceProfile] = Field(default_factory=dict)
