from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import DateTime, Integer, String, Text

ID_LENGTH = 16


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    id: Mapped[str] = mapped_column("user_id", String(ID_LENGTH), primary_key=True)
    username: Mapped[str] = mapped_column(String(255), nullable=False)
    picture: Mapped[str] = mapped_column(String(512), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    password: Mapped[str] = mapped_column(String(255), nullable=False)
    session_token: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="chk_events_time"),
        Index("idx_events_user", "user_id"),
        Index("idx_events_end", "end_time"),
    )

    id: Mapped[str] = mapped_column("event_id", String(ID_LENGTH), primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.user_id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    host: Mapped[str] = mapped_column(String(255), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    arrivals: Mapped[list["Arrival"]] = relationship(back_populates="event")

    @property
    def label(self) -> str:
        return f"{self.name} @ {self.location}"


class Arrival(Base):
    __tablename__ = "arrivals"
    __table_args__ = (
        CheckConstraint("capacity >= 1 OR capacity = -1", name="chk_arrivals_capacity"),
        UniqueConstraint("event_id", "arrival_time", name="uq_arrivals_event_time"),
        Index("idx_arrivals_event", "event_id"),
    )

    id: Mapped[str] = mapped_column("arrival_id", String(ID_LENGTH), primary_key=True)
    event_id: Mapped[str] = mapped_column(ForeignKey("events.event_id"), nullable=False)
    arrival_time: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)

    event: Mapped["Event"] = relationship(back_populates="arrivals")
    reservations: Mapped[list["Reservation"]] = relationship(back_populates="arrival")


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        Index("idx_res_arrival", "arrival_id"),
        Index("idx_res_user", "user_id"),
    )

    id: Mapped[str] = mapped_column("reservation_id", String(ID_LENGTH), primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.user_id"), nullable=False)
    arrival_id: Mapped[str] = mapped_column(ForeignKey("arrivals.arrival_id"), nullable=False)
    is_canceled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    arrival: Mapped["Arrival"] = relationship(back_populates="reservations")
