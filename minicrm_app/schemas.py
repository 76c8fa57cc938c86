# schemas.py
from datetime import date, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

Role = Literal["user", "admin"]
Theme = Literal["light", "dark"]
Stage = Literal["Lead", "Customer", "Prospect"]
DealStatus = Literal["open", "won", "lost"]

Username = Annotated[str, Field(min_length=3, max_length=50)]
# bcrypt only looks at the first 72 bytes
Password = Annotated[str, Field(min_length=6, max_length=72)]
# references must fit a signed 64-bit column
RecordId = Annotated[int, Field(ge=1, le=2**63 - 1)]


class _Schema(BaseModel):
    # unknown keys (including owner fields) are dropped, never rejected
    model_config = ConfigDict(extra="ignore")


# ---------- users ----------

class UserCreate(_Schema):
    username: Username
    email: EmailStr
    password: Password
    role: Role = "user"


class UserUpdate(_Schema):
    username: str | None = Field(default=None, min_length=3, max_length=50)
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=6, max_length=72)
    role: Role | None = None


class ProfileUpdate(_Schema):
    """Self-service profile edit. There is no role field, so a role in the body is dropped."""

    username: str | None = Field(default=None, min_length=3, max_length=50)
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=6, max_length=72)


class SettingsCreate(_Schema):
    theme: Theme = "light"
    language: str = Field(default="en", min_length=2, max_length=5)


class SettingsUpdate(_Schema):
    theme: Theme | None = None
    language: str | None = Field(default=None, min_length=2, max_length=5)


# ---------- crm records ----------

class ContactCreate(_Schema):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(default="", max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=50)
    company: str | None = Field(default=None, max_length=200)
    position: str | None = Field(default=None, max_length=200)
    stage: Stage = "Lead"


class ContactUpdate(_Schema):
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=50)
    company: str | None = Field(default=None, max_length=200)
    position: str | None = Field(default=None, max_length=200)
    stage: Stage | None = None


class DealCreate(_Schema):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    value: float = Field(default=0.0, ge=0)
    status: DealStatus = "open"
    expected_date: date | None = None
    contact_id: RecordId | None = None


class DealUpdate(_Schema):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    value: float | None = Field(default=None, ge=0)
    status: DealStatus | None = None
    expected_date: date | None = None
    contact_id: RecordId | None = None


class TaskCreate(_Schema):
    title: str = Field(min_length=1, max_length=200)
    details: str = ""
    due_date: datetime | None = None
    completed: bool = False
    deal_id: RecordId | None = None


class TaskUpdate(_Schema):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    details: str | None = None
    due_date: datetime | None = None
    completed: bool | None = None
    deal_id: RecordId | None = None


class NoteCreate(_Schema):
    content: str = Field(min_length=1)
    contact_id: RecordId | None = None
    deal_id: RecordId | None = None


class NoteUpdate(_Schema):
    content: str | None = Field(default=None, min_length=1)
    contact_id: RecordId | None = None
    deal_id: RecordId | None = None


# ---------- auth ----------

class RegisterRequest(_Schema):
    username: Username
    email: EmailStr
    password: Password


class LoginRequest(_Schema):
    email: EmailStr
    password: str = Field(min_length=1, max_length=72)


class RefreshRequest(_Schema):
    refresh_token: str = Field(min_length=1)
