# roadmap_chat/entities.py
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

from typing import TypeAlias
UUID: TypeAlias = str
Timestamp: TypeAlias = str

Base = declarative_base()


class TimestampMixin:
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class User(Base):
    __tablename__ = "user"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # correlation id of the user's general assistant conversation
    uuid: Mapped[UUID] = mapped_column(
        String(36),
        nullable=False,
        unique=True,
        default=lambda: str(uuid4()),
    )


class Roadmap(Base, TimestampMixin):
    __tablename__ = "roadmap"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # correlation id of this roadmap's editing conversation
    uuid: Mapped[UUID] = mapped_column(
        String(36),
        nullable=False,
        unique=True,
        default=lambda: str(uuid4()),
    )

    user_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=True,
    )

    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        server_default=text("''"),
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="PENDING",  # PENDING, IN_PROGRESS, COMPLETED
    )
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    steps = relationship(
        "Step",
        back_populates="roadmap",
        order_by="[Step.position, Step.id]",
        cascade="all, delete-orphan",
    )


class Step(Base):
    __tablename__ = "step"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    roadmap_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("roadmap.id", ondelete="CASCADE"),
        nullable=False,
    )
    # display + creation order inside the roadmap
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        server_default=text("''"),
    )

    # not carried by RoadmapSnapshot: lost on full replacement
    completed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
    )
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[Timestamp] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    roadmap = relationship("Roadmap", back_populates="steps")

    __table_args__ = (
        Index("ix_step_roadmap_id_position", "roadmap_id", "position"),
        # step ids are never reused after a replacement
        {"sqlite_autoincrement": True},
    )


class AiHistory(Base):
    __tablename__ = "ai_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    correlation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    turn_index: Mapped[int] = mapped_column(Integer, nullable=False)
    author: Mapped[str] = mapped_column(String(16), nullable=False)  # "user" | "assistant"
    text: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[Timestamp] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_ai_history_correlation_turn", "correlation_id", "turn_index"),
    )
