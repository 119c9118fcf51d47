from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel, AutoString

REFRESH_WINDOW = timedelta(minutes=5)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands timestamps back without tzinfo; they were written as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class UserToken(SQLModel, table=True):
    __tablename__ = "user_tokens"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(unique=True, index=True, sa_type=AutoString)

    # Stored in clear text, same as the Meta app dashboard shows them
    access_token: str = Field(sa_type=AutoString)
    refresh_token: Optional[str] = Field(default=None, sa_type=AutoString)

    # None = never expires
    expires_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    token_type: str = Field(default="Bearer")
    ad_account_id: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= as_utc(self.expires_at)

    def needs_refresh(self, now: Optional[datetime] = None) -> bool:
        """True once we are inside the last few minutes of validity."""
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= as_utc(self.expires_at) - REFRESH_WINDOW
