"""Entity -> DTO mapping helpers."""

from datetime import date
from typing import Optional

from .. import models, schemas


def calculate_age(dob: date, today: Optional[date] = None) -> int:
    """Return the age in whole years on `today` (defaults to the current date)."""
    today = today or date.today()
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def main_photo_url(user: Optional[models.AppUser]) -> Optional[str]:
    if user is None:
        return None
    photo = user.main_photo
    return photo.url if photo else None


def to_photo_out(photo: models.Photo) -> schemas.PhotoOut:
    return schemas.PhotoOut(id=photo.id, url=photo.url, is_main=photo.is_main, is_approved=photo.is_approved)


def to_member_out(user: models.AppUser, include_unapproved: bool = False) -> schemas.MemberOut:
    """Map a user to its public profile.

    Unapproved photos are only listed when the caller is looking at their
    own profile.
    """
    photos = [p for p in user.photos if include_unapproved or p.is_approved]
    return schemas.MemberOut(
        id=user.id,
        username=user.username,
        age=calculate_age(user.date_of_birth),
        photo_url=main_photo_url(user),
        known_as=user.known_as,
        created=user.created,
        last_active=user.last_active,
        gender=user.gender,
        introduction=user.introduction,
        interests=user.interests,
        looking_for=user.looking_for,
        city=user.city,
        country=user.country,
        photos=[to_photo_out(p) for p in photos],
    )


def to_message_out(message: models.Message) -> schemas.MessageOut:
    return schemas.MessageOut(
        id=message.id,
        sender_id=message.sender_id,
        sender_username=message.sender_username,
        sender_photo_url=main_photo_url(message.sender),
        recipient_id=message.recipient_id,
        recipient_username=message.recipient_username,
        recipient_photo_url=main_photo_url(message.recipient),
        content=message.content,
        date_read=message.date_read,
        message_sent=message.message_sent,
    )


def to_user_out(user: models.AppUser, token: str) -> schemas.UserOut:
    return schemas.UserOut(
        username=user.username,
        token=token,
        known_as=user.known_as,
        gender=user.gender,
        photo_url=main_photo_url(user),
    )


def to_photo_for_approval(photo: models.Photo) -> schemas.PhotoForApprovalOut:
    return schemas.PhotoForApprovalOut(
        id=photo.id,
        url=photo.url,
        username=photo.user.username if photo.user else "",
        is_approved=photo.is_approved,
    )
