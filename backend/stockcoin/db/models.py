"""
SQLAlchemy ORM models for airdrop tasks and user task participation.
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    BigInteger,
    DateTime,
    Enum,
    Index,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    func,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class TokenAmount(TypeDecorator[int]):
    """Integer token amount in base units, wide enough for ``uint256``."""

    impl = Numeric(78, 0)
    cache_ok = True

    def process_bind_param(self, value: int | None, dialect: Dialect) -> int | None:
        return value

    def process_result_value(self, value: object | None, dialect: Dialect) -> int | None:
        return None if value is None else int(value)  # type: ignore[call-overload]


# =============================================================================
# Enums
# =============================================================================


class TaskStatus(str, PyEnum):
    """Lifecycle status of an airdrop campaign."""

    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"


class UserTaskStatus(str, PyEnum):
    """Participation status of one user in one task."""

    CLAIMED = "claimed"
    COMPLETED = "completed"
    REWARDED = "rewarded"
    FAILED = "failed"


# Claimed-but-unverified and failed participations earn no leaf and hold no proof.
ELIGIBLE_STATUSES = frozenset({UserTaskStatus.COMPLETED, UserTaskStatus.REWARDED})


# =============================================================================
# Models
# =============================================================================


class AirdropTask(Base):
    """A reward-bearing campaign; every participant earns ``reward_amount``."""

    __tablename__ = "airdrop_task"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    reward_amount: Mapped[int] = mapped_column(
        TokenAmount,
        nullable=False,
        comment="Per-user reward in token base units",
    )
    task_type: Mapped[str | None] = mapped_column(String(20))
    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    status: Mapped[TaskStatus] = mapped_column(
        Enum(TaskStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=TaskStatus.ACTIVE,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (Index("ix_airdrop_task_status", "status"),)


class AirdropUserTask(Base):
    """
    One user's participation in one task.

    ``proof`` holds the serialized sibling path once a distribution cycle
    has included the record in its task's tree; it is an empty string before.
    """

    __tablename__ = "airdrop_user_task"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    task_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    address: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Checksummed recipient address",
    )
    status: Mapped[UserTaskStatus] = mapped_column(
        Enum(UserTaskStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=UserTaskStatus.CLAIMED,
        nullable=False,
    )
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rewarded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    tx_hash: Mapped[str | None] = mapped_column(String(100))
    proof: Mapped[str] = mapped_column(Text, default="", nullable=False)

    __table_args__ = (
        UniqueConstraint("address", "task_id", name="uq_airdrop_user_task_address_task"),
        Index("ix_airdrop_user_task_task_id", "task_id"),
        Index("ix_airdrop_user_task_user_id", "user_id"),
    )
