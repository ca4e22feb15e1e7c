from enum import Enum

from sqlmodel import Field, SQLModel


class UserRole(str, Enum):
    PATIENT = "PATIENT"
    DOCTOR = "DOCTOR"
    ADMIN = "ADMIN"


class UserBase(SQLModel):
    email: str = Field(unique=True, index=True)
    full_name: str | None = None
    phone: str | None = None
    role: UserRole = UserRole.PATIENT


class User(UserBase, table=True):
    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)
    hashed_password: str


class UserCreate(SQLModel):
    email: str
    password: str
    full_name: str | None = None
    phone: str | None = None


class UserPublic(SQLModel):
    id: int
    email: str
    full_name: str | None = None
    phone: str | None = None
    role: UserRole
