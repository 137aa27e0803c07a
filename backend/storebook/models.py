from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Enum, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql.sqltypes import BigInteger, DateTime, Integer, String, Text

# SQLite only autoincrements an INTEGER PRIMARY KEY.
_BigIntPk = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    pass


class ReservationStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Store(Base):
    __tablename__ = "stores"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    slot_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("people >= 1", name="chk_res_people"),
        CheckConstraint("slot_start_utc < slot_end_utc", name="chk_res_slot_time"),
        UniqueConstraint("store_id", "idempotency_key", name="uq_reservations_idempotency_key"),
        UniqueConstraint("store_id", "slot_key", name="uq_reservations_slot"),
        Index("idx_res_store_slot", "store_id", "slot_start_utc"),
        Index("idx_res_store_date", "store_id", "date"),
    )

    id: Mapped[int] = mapped_column(_BigIntPk, primary_key=True, autoincrement=True)
    store_id: Mapped[str] = mapped_column(String(64), nullable=False)
    slot_start_utc: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    slot_end_utc: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    # Legacy local mirrors of slot_start_utc.
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    time: Mapped[str] = mapped_column(String(8), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    people: Mapped[int] = mapped_column(Integer, nullable=False)
    seat_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[ReservationStatus] = mapped_column(
        Enum(
            ReservationStatus,
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
            native_enum=False,
        ),
        nullable=False,
        default=ReservationStatus.CONFIRMED,
    )
    idempotency_key: Mapped[str] = mapped_column(String(128), nullable=False)
    # NULL once cancelled so the slot can be booked again.
    slot_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    modified_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)


class CapacityRule(Base):
    __tablename__ = "capacity_control_rules"
    __table_args__ = (
        CheckConstraint("weekday IS NULL OR (weekday >= 0 AND weekday <= 6)", name="chk_rule_weekday"),
        Index("idx_rule_store", "store_id"),
        Index("idx_rule_store_date", "store_id", "date"),
    )

    id: Mapped[int] = mapped_column(_BigIntPk, primary_key=True, autoincrement=True)
    store_id: Mapped[str] = mapped_column(String(64), nullable=False)
    date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    start_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    end_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    weekday: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    max_groups: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_people: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_per_group: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    seat_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
