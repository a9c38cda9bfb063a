"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="ticketflow", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/tickets",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA hours YAML file"
    )
    sla_sweep_interval_seconds: int = Field(
        default=300,
        description="Seconds between SLA breach sweeps (0 disables the scheduler)",
        ge=0
    )

    # ========== Webhook Notifications ==========
    webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook URL receiving ticket events"
    )
    webhook_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for webhook calls",
        ge=0.1,
        le=30
    )
    webhook_max_retries: int = Field(
        default=3,
        description="Delivery attempts per webhook event",
        ge=1,
        le=10
    )
    webhook_backoff_base_seconds: float = Field(
        default=1.0,
        description="Delay after the first failed attempt, doubled each retry",
        ge=0
    )

    # ========== Email ==========
    email_relay_url: Optional[str] = Field(
        default=None,
        description="HTTP email relay endpoint for customer/agent emails"
    )
    email_from: str = Field(
        default="support@ticketflow.local",
        description="Sender address for outgoing emails"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    # ========== Rate Limiting ==========
    rate_limit_per_minute: int = Field(
        default=100,
        description="Max mutating requests per minute per actor",
        ge=1
    )
    rate_limit_max_actors: int = Field(
        default=10_000,
        description="Max actors tracked by the rate limiter",
        ge=1
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketCategory(str):
    """Routing categories for tickets and agents."""
    ACCOUNT = "account"
    BILLING = "billing"
    TECHNICAL = "technical"
    GAMEPLAY = "gameplay"
    SECURITY = "security"
    GENERAL = "general"     # Wildcard served by generalist agents


class Priority(str):
    """Ticket priority levels."""
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class MessageRole(str):
    """Authors of conversation entries."""
    CUSTOMER = "customer"
    AGENT = "agent"
    SYSTEM = "system"


class ActorRole(str):
    """Roles of callers mutating tickets."""
    CUSTOMER = "customer"
    AGENT = "agent"
    ADMIN = "admin"
    SYSTEM = "system"


# ========== Lists for validation ==========

VALID_CATEGORIES = [
    TicketCategory.ACCOUNT, TicketCategory.BILLING, TicketCategory.TECHNICAL,
    TicketCategory.GAMEPLAY, TicketCategory.SECURITY, TicketCategory.GENERAL
]
VALID_PRIORITIES = [
    Priority.LOW, Priority.MEDIUM,
    Priority.HIGH, Priority.URGENT
]
VALID_STATUSES = [
    TicketStatus.OPEN, TicketStatus.IN_PROGRESS,
    TicketStatus.RESOLVED, TicketStatus.CLOSED
]
TERMINAL_STATUSES = [TicketStatus.RESOLVED, TicketStatus.CLOSED]
ACTIVE_STATUSES = [TicketStatus.OPEN, TicketStatus.IN_PROGRESS]
VALID_ACTOR_ROLES = [ActorRole.CUSTOMER, ActorRole.AGENT, ActorRole.ADMIN, ActorRole.SYSTEM]

DEFAULT_PRIORITY = Priority.MEDIUM
DEFAULT_CATEGORY = TicketCategory.GENERAL

# Documented default; the live table comes from sla_config.yaml
DEFAULT_SLA_HOURS = {
    Priority.LOW: 72,
    Priority.MEDIUM: 48,
    Priority.HIGH: 24,
    Priority.URGENT: 8,
}


def is_terminal_status(status: str) -> bool:
    """Resolved and closed tickets are terminal."""
    return status in TERMINAL_STATUSES
