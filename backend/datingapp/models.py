"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table and uses relationships where appropriate.
"""

from typing import Optional
from sqlalchemy import CheckConstraint
from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime, date, timezone
from typing import List


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AppUserRole(SQLModel, table=True):
    """Link table between users and roles."""
    user_id: Optional[int] = Field(default=None, foreign_key='appuser.id', primary_key=True)
    role_id: Optional[int] = Field(default=None, foreign_key='approle.id', primary_key=True)


class AppUser(SQLModel, table=True):
    """A registered member.

    Fields:
    - `username`: unique login name, always stored lower-case
    - `password_hash`: hashed password string (never store plaintext)
    - `last_active`: bumped on every authenticated request
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    date_of_birth: date
    known_as: str
    created: datetime = Field(default_factory=utcnow)
    last_active: datetime = Field(default_factory=utcnow)
    gender: str = Field(index=True)
    introduction: Optional[str] = None
    interests: Optional[str] = None
    looking_for: Optional[str] = None
    city: str
    country: str
    photos: List['Photo'] = Relationship(
        back_populates='user',
        sa_relationship_kwargs={'cascade': 'all, delete-orphan'},
    )
    roles: List['AppRole'] = Relationship(back_populates='users', link_model=AppUserRole)

    @property
    def main_photo(self) -> Optional['Photo']:
        return next((p for p in self.photos if p.is_main), None)


class AppRole(SQLModel, table=True):
    """A named role (`Member`, `Admin`, `Moderator`)."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    users: List[AppUser] = Relationship(back_populates='roles', link_model=AppUserRole)


class Photo(SQLModel, table=True):
    """A profile photo.

    `public_id` is the identifier of the stored image in the media
    backend; seeded photos hosted elsewhere have none. A photo only shows
    up for other members once `is_approved` is set by a moderator.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    url: str
    is_main: bool = False
    is_approved: bool = Field(default=False, index=True)
    public_id: Optional[str] = None
    user_id: int = Field(foreign_key='appuser.id', index=True)
    user: Optional[AppUser] = Relationship(back_populates='photos')


class UserLike(SQLModel, table=True):
    """`source_user_id` likes `target_user_id`; one row per ordered pair."""
    __table_args__ = (
        CheckConstraint('source_user_id <> target_user_id', name='ck_userlike_not_self'),
    )

    source_user_id: int = Field(foreign_key='appuser.id', primary_key=True)
    target_user_id: int = Field(foreign_key='appuser.id', primary_key=True)
    source_user: Optional[AppUser] = Relationship(
        sa_relationship_kwargs={'foreign_keys': 'UserLike.source_user_id'}
    )
    target_user: Optional[AppUser] = Relationship(
        sa_relationship_kwargs={'foreign_keys': 'UserLike.target_user_id'}
    )


class Message(SQLModel, table=True):
    """A private message.

    Each side deletes independently through its own flag; the row itself
    is removed once both flags are set.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    sender_id: int = Field(foreign_key='appuser.id', index=True)
    sender_username: str
    recipient_id: int = Field(foreign_key='appuser.id', index=True)
    recipient_username: str
    content: str
    date_read: Optional[datetime] = None
    message_sent: datetime = Field(default_factory=utcnow)
    sender_deleted: bool = False
    recipient_deleted: bool = False
    sender: Optional[AppUser] = Relationship(
        sa_relationship_kwargs={'foreign_keys': 'Message.sender_id'}
    )
    recipient: Optional[AppUser] = Relationship(
        sa_relationship_kwargs={'foreign_keys': 'Message.recipient_id'}
    )
