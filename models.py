from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class ObligationKind(str, Enum):
    bill = "bill"
    expense = "expense"


class DueStatus(str, Enum):
    overdue = "overdue"
    due_soon = "due_soon"
    upcoming = "upcoming"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Obligation(Base, TimestampMixin):
    """A bill type or an expense type.

    ``day_of_month`` 0 means the last day of the month; ``cycle_months`` 0
    means the obligation is on-demand and never falls due on its own.
    """

    __tablename__ = "obligations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    kind: Mapped[ObligationKind] = mapped_column(SAEnum(ObligationKind), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(String(40))
    color: Mapped[Optional[str]] = mapped_column(String(9))
    day_of_month: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cycle_months: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    fixed_amount: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    stopped: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    records: Mapped[list["Record"]] = relationship(
        "Record", back_populates="obligation", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "kind", "name", name="uq_obligation_user_kind_name"),
        CheckConstraint(
            "day_of_month >= 0 AND day_of_month <= 31",
            name="ck_obligation_day_range",
        ),
        CheckConstraint("cycle_months >= 0", name="ck_obligation_cycle_positive"),
        Index("ix_obligations_user_kind", "user_id", "kind"),
    )


class Record(Base, TimestampMixin):
    """A bill payment or expense item logged against an obligation for one month."""

    __tablename__ = "records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    obligation_id: Mapped[int] = mapped_column(
        ForeignKey("obligations.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[ObligationKind] = mapped_column(SAEnum(ObligationKind), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[str] = mapped_column(String(32), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)
    bill_record_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("records.id", ondelete="SET NULL")
    )

    obligation: Mapped["Obligation"] = relationship(
        "Obligation", back_populates="records"
    )

    __table_args__ = (
        CheckConstraint("month >= 1 AND month <= 12", name="ck_record_month_range"),
        Index("ix_records_user_period", "user_id", "year", "month"),
        Index("ix_records_obligation_period", "obligation_id", "year", "month"),
    )

    @property
    def period(self) -> tuple[int, int]:
        return (self.year, self.month)


class ReminderPreference(Base, TimestampMixin):
    __tablename__ = "reminder_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    push_url: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    remind_hour: Mapped[int] = mapped_column(Integer, nullable=False, default=9)
    remind_days_before: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    __table_args__ = (
        CheckConstraint(
            "remind_hour >= 0 AND remind_hour <= 23", name="ck_reminder_hour_range"
        ),
        CheckConstraint(
            "remind_days_before >= 0 AND remind_days_before <= 30",
            name="ck_reminder_days_range",
        ),
        Index("ix_reminder_enabled_hour", "enabled", "remind_hour"),
    )
