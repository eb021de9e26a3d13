"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and decoupled from the
SQLModel tables. JSON field names are camelCase for the SPA client;
request bodies accept snake_case as well.
"""

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .utils.pagination import DEFAULT_PAGE_SIZE, clamp_page_size

MAX_AGE = 150


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class RegisterIn(CamelModel):
    """Payload for the registration endpoint."""
    username: str = Field(min_length=1)
    password: str = Field(min_length=4, max_length=8)
    known_as: str = Field(min_length=1)
    gender: str = Field(min_length=1)
    date_of_birth: date
    city: str = Field(min_length=1)
    country: str = Field(min_length=1)


class LoginIn(CamelModel):
    username: str
    password: str


class UserOut(CamelModel):
    """Authentication response: who logged in and their access token."""
    username: str
    token: str
    known_as: str
    gender: str
    photo_url: Optional[str] = None


class PhotoOut(CamelModel):
    id: int
    url: str
    is_main: bool
    is_approved: bool


class MemberOut(CamelModel):
    """Public profile of a member as shown in listings and detail pages."""
    id: int
    username: str
    age: int
    photo_url: Optional[str] = None
    known_as: str
    created: datetime
    last_active: datetime
    gender: str
    introduction: Optional[str] = None
    interests: Optional[str] = None
    looking_for: Optional[str] = None
    city: str
    country: str
    photos: List[PhotoOut] = []


class MemberUpdateIn(CamelModel):
    """Editable profile fields; fields left out of the request are untouched."""
    introduction: Optional[str] = None
    interests: Optional[str] = None
    looking_for: Optional[str] = None
    city: Optional[str] = Field(default=None, min_length=1)
    country: Optional[str] = Field(default=None, min_length=1)


class MessageCreateIn(CamelModel):
    recipient_username: str = Field(min_length=1)
    content: str = Field(min_length=1)


class MessageOut(CamelModel):
    id: int
    sender_id: int
    sender_username: str
    sender_photo_url: Optional[str] = None
    recipient_id: int
    recipient_username: str
    recipient_photo_url: Optional[str] = None
    content: str
    date_read: Optional[datetime] = None
    message_sent: datetime


class PhotoForApprovalOut(CamelModel):
    id: int
    url: str
    username: str
    is_approved: bool


class UserWithRolesOut(CamelModel):
    id: int
    username: str
    roles: List[str]


class PaginationParams(BaseModel):
    page_number: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @field_validator("page_number")
    @classmethod
    def _min_page(cls, v: int) -> int:
        return max(1, v)

    @field_validator("page_size")
    @classmethod
    def _cap_page_size(cls, v: int) -> int:
        return clamp_page_size(v)


class UserParams(PaginationParams):
    """Filters for member listings; `current_username` is always excluded."""
    current_username: Optional[str] = None
    gender: Optional[str] = None
    min_age: int = Field(default=18, ge=0, le=MAX_AGE)
    max_age: int = Field(default=100, ge=0, le=MAX_AGE)
    order_by: Literal["lastActive", "created"] = "lastActive"


class LikesParams(PaginationParams):
    user_id: int
    predicate: Literal["liked", "likedBy", "mutual"] = "liked"


class MessageParams(PaginationParams):
    username: str
    container: Literal["Unread", "Inbox", "Outbox"] = "Unread"
