"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
through a `UnitOfWork`. Services are intentionally thin: they validate
the request against the business rules, stage changes through the
repositories and commit once. Rule violations raise the typed errors
from `errors`, which the app renders as HTTP responses.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import jwt
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from . import models, schemas
from .config import settings
from .errors import BadRequestError, ForbiddenError, NotFoundError, UnauthorizedError
from .repositories import UnitOfWork
from .utils import mappers
from .utils.pagination import PagedList
from .utils.photo_storage import PhotoStorage

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
MIN_TOKEN_KEY_LENGTH = 64

logger = logging.getLogger("datingapp.services")


class TokenService:
    """Issue and verify signed access tokens.

    Claims: `nameid` (user id), `unique_name` (username), `role` (list of
    role names) and `exp`.
    """
    def __init__(self, token_key: Optional[str] = None, algorithm: Optional[str] = None, expire_days: Optional[int] = None):
        self.token_key = settings.TOKEN_KEY if token_key is None else token_key
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.expire_days = expire_days or settings.JWT_EXPIRE_DAYS

    def _key(self) -> str:
        if not self.token_key:
            raise ValueError("Cannot access token key from settings")
        if len(self.token_key) < MIN_TOKEN_KEY_LENGTH:
            raise ValueError(f"Token key needs to be at least {MIN_TOKEN_KEY_LENGTH} characters")
        return self.token_key

    def create_token(self, user: models.AppUser) -> str:
        key = self._key()
        if not user.username:
            raise ValueError("No username for user")
        expire = datetime.now(timezone.utc) + timedelta(days=self.expire_days)
        payload = {
            "nameid": str(user.id),
            "unique_name": user.username,
            "role": sorted(r.name for r in user.roles),
            "exp": int(expire.timestamp()),
        }
        return jwt.encode(payload, key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> dict:
        """Verify `token` and return its claims; raises `jwt.PyJWTError` on failure."""
        return jwt.decode(token, self._key(), algorithms=[self.algorithm])


class AccountService:
    """Registration and login."""
    def __init__(self, session: Session, token_service: Optional[TokenService] = None):
        self.session = session
        self.uow = UnitOfWork(session)
        self.tokens = token_service or TokenService()

    def register(self, payload: schemas.RegisterIn) -> schemas.UserOut:
        """Create a member with a hashed password and return it with a token."""
        if self.uow.user_repo.username_exists(payload.username):
            raise BadRequestError("Username is taken")
        user = models.AppUser(
            username=payload.username.lower(),
            password_hash=PWD_CTX.hash(payload.password),
            known_as=payload.known_as,
            gender=payload.gender,
            date_of_birth=payload.date_of_birth,
            city=payload.city,
            country=payload.country,
        )
        self.uow.user_repo.add(user)
        try:
            if not self.uow.role_repo.add_to_roles(user, ["Member"]):
                raise BadRequestError("Member role is not configured")
            self.uow.complete()
        except IntegrityError:
            # a concurrent registration took the name after the check above
            self.session.rollback()
            raise BadRequestError("Username is taken")
        self.session.refresh(user)
        logger.info("registered user %s", user.username)
        return mappers.to_user_out(user, self.tokens.create_token(user))

    def login(self, username: str, password: str) -> schemas.UserOut:
        user = self.uow.user_repo.get_by_username(username)
        if user is None or not user.username:
            raise UnauthorizedError("Invalid username")
        if not PWD_CTX.verify(password, user.password_hash):
            raise UnauthorizedError("Invalid password")
        return mappers.to_user_out(user, self.tokens.create_token(user))


class UserService:
    """Member browsing, profile edits and the caller's own photos."""
    def __init__(self, session: Session, storage: Optional[PhotoStorage] = None):
        self.session = session
        self.uow = UnitOfWork(session)
        self.storage = storage

    def get_members(self, params: schemas.UserParams) -> PagedList:
        page = self.uow.user_repo.get_members(params)
        return page.map(mappers.to_member_out)

    def get_member(self, username: str, current_username: str) -> schemas.MemberOut:
        """Return a profile; the caller's own profile includes unapproved photos."""
        user = self.uow.user_repo.get_by_username(username)
        if user is None:
            raise NotFoundError("User not found")
        is_current_user = user.username == current_username.lower()
        return mappers.to_member_out(user, include_unapproved=is_current_user)

    def update_member(self, username: str, payload: schemas.MemberUpdateIn) -> None:
        user = self.uow.user_repo.get_by_username(username)
        if user is None:
            raise BadRequestError("Could not find user")
        for field, value in payload.model_dump(exclude_unset=True).items():
            if field in ("city", "country") and value is None:
                continue
            setattr(user, field, value)
        if not self.uow.complete():
            raise BadRequestError("Failed to update the user")

    def add_photo(self, username: str, payload: bytes, filename: str) -> schemas.PhotoOut:
        """Upload a photo for `username`.

        New photos await moderation: they are neither approved nor main
        until a moderator approves them.
        """
        user = self.uow.user_repo.get_by_username(username)
        if user is None:
            raise BadRequestError("Cannot update user")
        result = self.storage.add_photo(payload, filename)
        if result.error:
            raise BadRequestError(result.error)
        if not result.secure_url:
            raise BadRequestError("Upload failed")
        photo = models.Photo(url=result.secure_url, public_id=result.public_id)
        user.photos.append(photo)
        if not self.uow.complete():
            raise BadRequestError("Problem adding photo")
        self.session.refresh(photo)
        return mappers.to_photo_out(photo)

    def set_main_photo(self, username: str, photo_id: int) -> None:
        user = self.uow.user_repo.get_by_username(username)
        if user is None:
            raise BadRequestError("Could not find user")
        photo = next((p for p in user.photos if p.id == photo_id), None)
        if photo is None or photo.is_main or not photo.is_approved:
            raise BadRequestError("Cannot use this as main photo")
        current = user.main_photo
        if current is not None:
            current.is_main = False
        photo.is_main = True
        if not self.uow.complete():
            raise BadRequestError("Problem setting main photo")

    def delete_photo(self, username: str, photo_id: int) -> None:
        user = self.uow.user_repo.get_by_username(username)
        if user is None:
            raise BadRequestError("Could not find user")
        photo = self.uow.photo_repo.get_photo_by_id(photo_id)
        if photo is None or photo.is_main or photo.user_id != user.id:
            raise BadRequestError("This photo cannot be deleted")
        if photo.public_id:
            result = self.storage.delete_photo(photo.public_id)
            if result.error:
                raise BadRequestError(result.error)
        user.photos.remove(photo)
        if not self.uow.complete():
            raise BadRequestError("Problem deleting photo")


class LikesService:
    """Toggle likes and list liked / liked-by / mutual members."""
    def __init__(self, session: Session):
        self.session = session
        self.uow = UnitOfWork(session)

    def toggle_like(self, source_user_id: int, target_user_id: int) -> bool:
        """Like `target_user_id`, or unlike if already liked; returns the new state."""
        if source_user_id == target_user_id:
            raise BadRequestError("You cannot like yourself")
        if self.uow.user_repo.get(target_user_id) is None:
            raise NotFoundError("User not found")
        existing = self.uow.likes_repo.get_user_like(source_user_id, target_user_id)
        if existing is None:
            self.uow.likes_repo.add_like(models.UserLike(source_user_id=source_user_id, target_user_id=target_user_id))
            liked = True
        else:
            self.uow.likes_repo.delete_like(existing)
            liked = False
        try:
            saved = self.uow.complete()
        except IntegrityError:
            self.session.rollback()
            saved = False
        if not saved:
            raise BadRequestError("Failed to update like")
        return liked

    def get_current_user_like_ids(self, user_id: int) -> List[int]:
        return self.uow.likes_repo.get_current_user_like_ids(user_id)

    def get_user_likes(self, params: schemas.LikesParams) -> PagedList:
        return self.uow.likes_repo.get_user_likes(params).map(mappers.to_member_out)


class MessageService:
    """Sending, listing, reading and two-sided deletion of messages."""
    def __init__(self, session: Session):
        self.session = session
        self.uow = UnitOfWork(session)

    def create_message(self, username: str, payload: schemas.MessageCreateIn) -> schemas.MessageOut:
        if username.lower() == payload.recipient_username.lower():
            raise BadRequestError("You cannot message yourself")
        sender = self.uow.user_repo.get_by_username(username)
        recipient = self.uow.user_repo.get_by_username(payload.recipient_username)
        if sender is None or recipient is None or not sender.username or not recipient.username:
            raise BadRequestError("Cannot send message at this time")
        message = models.Message(
            sender_id=sender.id,
            sender_username=sender.username,
            recipient_id=recipient.id,
            recipient_username=recipient.username,
            content=payload.content,
        )
        self.uow.message_repo.add_message(message)
        if not self.uow.complete():
            raise BadRequestError("Failed to save message")
        self.session.refresh(message)
        return mappers.to_message_out(message)

    def get_messages_for_user(self, params: schemas.MessageParams) -> PagedList:
        return self.uow.message_repo.get_messages_for_user(params).map(mappers.to_message_out)

    def get_message_thread(self, current_username: str, recipient_username: str) -> List[schemas.MessageOut]:
        """Return the thread and mark the caller's unread received messages as read."""
        messages = self.uow.message_repo.get_message_thread(current_username, recipient_username)
        now = datetime.now(timezone.utc)
        for m in messages:
            if m.date_read is None and m.recipient_username == current_username.lower():
                m.date_read = now
        out = [mappers.to_message_out(m) for m in messages]
        if self.uow.has_changes():
            self.uow.complete()
        return out

    def delete_message(self, message_id: int, user: models.AppUser) -> None:
        """Hide a message for `user`; the row goes once both sides deleted it."""
        message = self.uow.message_repo.get_message(message_id)
        if message is None:
            raise BadRequestError("Cannot delete this message")
        if message.sender_id != user.id and message.recipient_id != user.id:
            raise ForbiddenError("You cannot delete this message")
        if message.sender_id == user.id:
            message.sender_deleted = True
        if message.recipient_id == user.id:
            message.recipient_deleted = True
        if message.sender_deleted and message.recipient_deleted:
            self.uow.message_repo.delete_message(message)
        if not self.uow.complete():
            raise BadRequestError("Problem deleting the message")


class AdminService:
    """Role management, photo moderation and account removal."""
    def __init__(self, session: Session, storage: Optional[PhotoStorage] = None):
        self.session = session
        self.uow = UnitOfWork(session)
        self.storage = storage

    def get_users_with_roles(self) -> List[schemas.UserWithRolesOut]:
        users = self.uow.user_repo.get_users_with_roles()
        return [
            schemas.UserWithRolesOut(id=u.id, username=u.username, roles=self.uow.role_repo.get_user_role_names(u))
            for u in users
        ]

    def edit_roles(self, username: str, roles: Optional[str]) -> List[str]:
        """Make `username`'s roles exactly the comma-separated `roles`."""
        if not roles or not roles.strip():
            raise BadRequestError("You must select at least one role")
        selected = [r.strip() for r in roles.split(",") if r.strip()]
        if not selected:
            raise BadRequestError("You must select at least one role")
        user = self.uow.user_repo.get_by_username(username)
        if user is None:
            raise BadRequestError("User not found")
        current = self.uow.role_repo.get_user_role_names(user)
        if not self.uow.role_repo.add_to_roles(user, [r for r in selected if r not in current]):
            raise BadRequestError("Failed to add to roles")
        self.uow.role_repo.remove_from_roles(user, [r for r in current if r not in selected])
        self.uow.complete()
        logger.info("roles for %s set to %s", user.username, ",".join(selected))
        return self.uow.role_repo.get_user_role_names(user)

    def get_photos_for_moderation(self) -> List[schemas.PhotoForApprovalOut]:
        return [mappers.to_photo_for_approval(p) for p in self.uow.photo_repo.get_unapproved_photos()]

    def approve_photo(self, photo_id: int) -> None:
        """Approve a photo; it becomes main when the owner has no main photo yet."""
        photo = self.uow.photo_repo.get_photo_by_id(photo_id)
        if photo is None:
            raise BadRequestError("Could not get photo from db")
        photo.is_approved = True
        user = self.uow.user_repo.get_by_photo_id(photo_id)
        if user is None:
            raise BadRequestError("Could not get user from db")
        if not any(p.is_main for p in user.photos):
            photo.is_main = True
        self.uow.complete()

    def reject_photo(self, photo_id: int) -> None:
        """Delete a rejected photo from storage and the database.

        A stored photo whose storage deletion fails keeps its row so it
        can be retried.
        """
        photo = self.uow.photo_repo.get_photo_by_id(photo_id)
        if photo is None:
            raise BadRequestError("Could not get photo from db")
        if photo.public_id:
            result = self.storage.delete_photo(photo.public_id)
            if result.result == "ok":
                self.uow.photo_repo.remove_photo(photo)
            else:
                logger.warning("could not delete photo %s from storage: %s", photo.public_id, result.error or result.result)
        else:
            self.uow.photo_repo.remove_photo(photo)
        self.uow.complete()

    def delete_user(self, username: str) -> None:
        """Remove a user with their photos, likes, messages and role memberships."""
        user = self.uow.user_repo.get_by_username(username)
        if user is None:
            raise NotFoundError("User not found")
        for photo in user.photos:
            if photo.public_id and self.storage is not None:
                result = self.storage.delete_photo(photo.public_id)
                if result.error:
                    logger.warning("could not delete photo %s from storage: %s", photo.public_id, result.error)
        self.uow.photo_repo.remove_photos(user.photos)
        self.uow.likes_repo.remove_user_likes(user.id)
        self.uow.message_repo.remove_user_messages(user.id)
        self.uow.role_repo.remove_from_roles(user, self.uow.role_repo.get_user_role_names(user))
        self.uow.user_repo.delete(user)
        if not self.uow.complete():
            raise BadRequestError("Failed to delete user")
        logger.info("deleted user %s", username.lower())
