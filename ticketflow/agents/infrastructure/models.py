"""
Agent Infrastructure Models
===========================

SQLAlchemy ORM models for the agents module.

Served categories live in an association table so that routing queries
stay portable across databases (no array columns).
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketflow.infrastructure.database import Base


class AgentModel(Base):
    """
    Database model for Agent entity.

    Maps to the 'agents' table.
    """
    __tablename__ = "agents"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Profile
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    # Capacity; current_load only changes through single-statement UPDATEs
    max_load: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    current_load: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    categories: Mapped[List["AgentCategoryModel"]] = relationship(
        back_populates="agent",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("max_load >= 1", name="ck_agents_max_load_positive"),
        CheckConstraint("current_load >= 0", name="ck_agents_current_load_non_negative"),
    )


class AgentCategoryModel(Base):
    """
    Category served by an agent.

    Maps to the 'agent_categories' table.
    """
    __tablename__ = "agent_categories"

    agent_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="CASCADE"), primary_key=True
    )
    category: Mapped[str] = mapped_column(String(50), primary_key=True, index=True)

    agent: Mapped[AgentModel] = relationship(back_populates="categories")
