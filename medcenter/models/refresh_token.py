from datetime import datetime

from sqlmodel import Field, SQLModel

from medcenter.core.clock import utc_naive_now


class RefreshToken(SQLModel, table=True):
    """One row per issued refresh token; rotation revokes the presented row."""

    __tablename__ = "refresh_tokens"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    jti: str = Field(unique=True, index=True)
    issued_at: datetime = Field(default_factory=utc_naive_now)
    expires_at: datetime = Field(index=True)  # naive UTC
    revoked: bool = False
