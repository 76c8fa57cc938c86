# models.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    inspect as sa_inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base

# Keep enum-like values as strings (simple + migration-friendly)
USER_ROLES = ("user", "admin")
THEMES = ("light", "dark")
CONTACT_STAGES = ("Lead", "Customer", "Prospect")
DEAL_STATUS = ("open", "won", "lost")

BASE_RECORD_FIELDS = ("id", "created_at", "updated_at", "deleted_at")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordMixin:
    """Identifier, timestamps and soft-delete marker shared by every entity."""

    # columns never serialized outward or described by the schema endpoints
    __hidden__ = ()

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    def as_dict(self, include=()) -> dict:
        mapper = sa_inspect(type(self))
        data = {
            attr.key: getattr(self, attr.key)
            for attr in mapper.column_attrs
            if attr.key not in self.__hidden__
        }
        for name in include:
            value = getattr(self, name)
            if value is None:
                data[name] = None
            elif isinstance(value, list):
                data[name] = [item.as_dict() for item in value]
            else:
                data[name] = value.as_dict()
        return data


class User(RecordMixin, Base):
    __tablename__ = "users"
    __hidden__ = ("password_hash",)

    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True, info={"label": "Username"})
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True, info={"label": "E-mail"})
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), default="user", nullable=False, index=True,
        info={"label": "Role", "options": list(USER_ROLES)},
    )

    settings: Mapped[Optional["Settings"]] = relationship(back_populates="user", uselist=False)
    contacts: Mapped[list["Contact"]] = relationship(
        primaryjoin="and_(User.id == Contact.user_id, Contact.deleted_at.is_(None))",
        viewonly=True, order_by="Contact.id",
    )
    deals: Mapped[list["Deal"]] = relationship(
        primaryjoin="and_(User.id == Deal.user_id, Deal.deleted_at.is_(None))",
        viewonly=True, order_by="Deal.id",
    )
    tasks: Mapped[list["Task"]] = relationship(
        primaryjoin="and_(User.id == Task.user_id, Task.deleted_at.is_(None))",
        viewonly=True, order_by="Task.id",
    )
    notes: Mapped[list["Note"]] = relationship(
        primaryjoin="and_(User.id == Note.user_id, Note.deleted_at.is_(None))",
        viewonly=True, order_by="Note.id",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role!r}>"


class Settings(RecordMixin, Base):
    __tablename__ = "settings"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)
    theme: Mapped[str] = mapped_column(
        String(10), default="light", nullable=False,
        info={"label": "Theme", "options": list(THEMES)},
    )
    language: Mapped[str] = mapped_column(
        String(5), default="en", nullable=False,
        info={"label": "Language", "min": 2, "max": 5, "help": "ISO language code, e.g. en or de-CH"},
    )

    user: Mapped["User"] = relationship(back_populates="settings")


class Contact(RecordMixin, Base):
    __tablename__ = "contacts"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False, info={"label": "First name"})
    last_name: Mapped[str] = mapped_column(String(100), default="", nullable=False, info={"label": "Last name"})
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    company: Mapped[str | None] = mapped_column(String(200), nullable=True, index=True)
    position: Mapped[str | None] = mapped_column(String(200), nullable=True, info={"help": "Position in the company"})
    stage: Mapped[str] = mapped_column(
        String(20), default="Lead", nullable=False, index=True,
        info={"label": "Stage", "options": list(CONTACT_STAGES)},
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    user: Mapped["User"] = relationship()
    notes: Mapped[list["Note"]] = relationship(
        primaryjoin="and_(Contact.id == Note.contact_id, Note.deleted_at.is_(None))",
        viewonly=True, order_by="Note.id",
    )
    deals: Mapped[list["Deal"]] = relationship(
        primaryjoin="and_(Contact.id == Deal.contact_id, Deal.deleted_at.is_(None))",
        viewonly=True, order_by="Deal.id",
    )

    def __repr__(self) -> str:
        return f"<Contact id={self.id} name={self.first_name!r} {self.last_name!r} stage={self.stage!r}>"


class Deal(RecordMixin, Base):
    __tablename__ = "deals"

    title: Mapped[str] = mapped_column(String(200), nullable=False, info={"label": "Title"})
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    value: Mapped[float] = mapped_column(Float, default=0.0, nullable=False, info={"label": "Value", "min": 0})
    status: Mapped[str] = mapped_column(
        String(10), default="open", nullable=False, index=True,
        info={"label": "Status", "options": list(DEAL_STATUS)},
    )
    expected_date: Mapped[date | None] = mapped_column(Date, nullable=True, info={"label": "Expected close date"})
    contact_id: Mapped[int | None] = mapped_column(ForeignKey("contacts.id", ondelete="CASCADE"), nullable=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    user: Mapped["User"] = relationship()
    contact: Mapped[Optional["Contact"]] = relationship()
    tasks: Mapped[list["Task"]] = relationship(
        primaryjoin="and_(Deal.id == Task.deal_id, Task.deleted_at.is_(None))",
        viewonly=True, order_by="Task.id",
    )
    notes: Mapped[list["Note"]] = relationship(
        primaryjoin="and_(Deal.id == Note.deal_id, Note.deleted_at.is_(None))",
        viewonly=True, order_by="Note.id",
    )


class Task(RecordMixin, Base):
    __tablename__ = "tasks"

    title: Mapped[str] = mapped_column(String(200), nullable=False, info={"label": "Title"})
    details: Mapped[str] = mapped_column(Text, default="", nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    deal_id: Mapped[int | None] = mapped_column(ForeignKey("deals.id", ondelete="CASCADE"), nullable=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    user: Mapped["User"] = relationship()
    deal: Mapped[Optional["Deal"]] = relationship()


class Note(RecordMixin, Base):
    __tablename__ = "notes"

    content: Mapped[str] = mapped_column(Text, nullable=False, info={"label": "Content"})
    contact_id: Mapped[int | None] = mapped_column(ForeignKey("contacts.id", ondelete="CASCADE"), nullable=True, index=True)
    deal_id: Mapped[int | None] = mapped_column(ForeignKey("deals.id", ondelete="CASCADE"), nullable=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    user: Mapped["User"] = relationship()
    contact: Mapped[Optional["Contact"]] = relationship()
    deal: Mapped[Optional["Deal"]] = relationship()
