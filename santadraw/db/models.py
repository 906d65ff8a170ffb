from __future__ import annotations

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class DrawState(str, enum.Enum):
    NOT_DRAWN = "not_drawn"
    DRAWN = "drawn"


class NotificationType(str, enum.Enum):
    DRAW_COMPLETED = "draw_completed"


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


group_participants = Table(
    "group_participants",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("group_id", Integer, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
    Column("joined_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint("user_id", "group_id", name="uq_group_participants_user_group"),
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String, unique=True, nullable=False, index=True)
    display_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    groups = relationship("Group", secondary=group_participants, back_populates="participants")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    organizer_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    draw_state = Column(
        Enum(DrawState, name="draw_state", values_callable=_enum_values),
        nullable=False,
        default=DrawState.NOT_DRAWN,
        server_default=DrawState.NOT_DRAWN.value,
    )
    budget = Column(Numeric(10, 2), nullable=True)
    draw_completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    organizer = relationship("User", foreign_keys=[organizer_user_id])
    participants = relationship("User", secondary=group_participants, back_populates="groups")
    exclusion_rules = relationship("ExclusionRule", back_populates="group", cascade="all, delete-orphan")
    assignments = relationship("Assignment", back_populates="group", cascade="all, delete-orphan")

    @property
    def is_drawn(self) -> bool:
        return self.draw_state == DrawState.DRAWN

    def __repr__(self) -> str:
        return f"<Group(id={self.id}, name={self.name}, draw_state={self.draw_state})>"


class ExclusionRule(Base):
    __tablename__ = "exclusion_rules"

    id = Column(Integer, primary_key=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    # Stored canonically: user_id_1 < user_id_2.
    user_id_1 = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user_id_2 = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    group = relationship("Group", back_populates="exclusion_rules")

    __table_args__ = (
        UniqueConstraint("group_id", "user_id_1", "user_id_2", name="uq_exclusion_rules_group_pair"),
        CheckConstraint("user_id_1 < user_id_2", name="ck_exclusion_rules_canonical_pair"),
    )

    def as_pair(self) -> tuple[int, int]:
        return self.user_id_1, self.user_id_2


class Assignment(Base):
    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    giver_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    receiver_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    group = relationship("Group", back_populates="assignments")
    giver = relationship("User", foreign_keys=[giver_user_id])
    receiver = relationship("User", foreign_keys=[receiver_user_id])

    __table_args__ = (
        UniqueConstraint("group_id", "giver_user_id", name="uq_assignments_group_giver"),
        UniqueConstraint("group_id", "receiver_user_id", name="uq_assignments_group_receiver"),
        CheckConstraint("giver_user_id <> receiver_user_id", name="ck_assignments_no_self"),
    )


class DrawNotification(Base):
    __tablename__ = "draw_notifications"

    id = Column(Integer, primary_key=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(
        Enum(NotificationType, name="notification_type", values_callable=_enum_values),
        nullable=False,
        default=NotificationType.DRAW_COMPLETED,
    )
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    attempt_count = Column(Integer, nullable=False, default=0, server_default="0")
    last_error = Column(Text, nullable=True)
