"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
photos, likes, messages, roles). Repositories stage changes on the
shared session but never commit: the `UnitOfWork` that owns them
commits once per request through `complete()`.
"""

from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import event, or_
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from . import models
from .schemas import LikesParams, MessageParams, UserParams
from .utils.pagination import PagedList

DEFAULT_ROLES = ("Member", "Admin", "Moderator")


def years_before(today: date, years: int) -> date:
    """Return `today` shifted back by `years`, mapping Feb 29 to Feb 28."""
    try:
        return today.replace(year=today.year - years)
    except ValueError:
        return today.replace(year=today.year - years, day=28)


class UserRepository:
    """Queries and staging for `AppUser` objects."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, user: models.AppUser) -> models.AppUser:
        self.session.add(user)
        return user

    def delete(self, user: models.AppUser) -> None:
        self.session.delete(user)

    def get(self, user_id: int) -> Optional[models.AppUser]:
        """Get a user by primary key."""
        return self.session.get(models.AppUser, user_id)

    def get_by_username(self, username: str) -> Optional[models.AppUser]:
        """Return a user (photos loaded) by case-insensitive username, or `None`."""
        stmt = (
            select(models.AppUser)
            .where(models.AppUser.username == username.lower())
            .options(selectinload(models.AppUser.photos))
        )
        return self.session.exec(stmt).first()

    def get_by_photo_id(self, photo_id: int) -> Optional[models.AppUser]:
        """Return the owner of photo `photo_id`."""
        stmt = (
            select(models.AppUser)
            .join(models.Photo, models.Photo.user_id == models.AppUser.id)
            .where(models.Photo.id == photo_id)
            .options(selectinload(models.AppUser.photos))
        )
        return self.session.exec(stmt).first()

    def username_exists(self, username: str) -> bool:
        stmt = select(models.AppUser.id).where(models.AppUser.username == username.lower())
        return self.session.exec(stmt).first() is not None

    def get_members(self, params: UserParams) -> PagedList:
        """Return a page of users matching `params`.

        The caller is excluded, `gender` filters when given, and the date
        of birth must fall inside the `min_age`..`max_age` range. Results
        are ordered newest first by `created` or `last_active`.
        """
        today = date.today()
        min_dob = years_before(today, params.max_age + 1)
        max_dob = years_before(today, params.min_age)
        stmt = select(models.AppUser).options(selectinload(models.AppUser.photos))
        if params.current_username:
            stmt = stmt.where(models.AppUser.username != params.current_username.lower())
        if params.gender:
            stmt = stmt.where(models.AppUser.gender == params.gender)
        stmt = stmt.where(models.AppUser.date_of_birth > min_dob, models.AppUser.date_of_birth <= max_dob)
        if params.order_by == "created":
            stmt = stmt.order_by(models.AppUser.created.desc(), models.AppUser.id.desc())
        else:
            stmt = stmt.order_by(models.AppUser.last_active.desc(), models.AppUser.id.desc())
        return PagedList.create(self.session, stmt, params.page_number, params.page_size)

    def get_users_with_roles(self) -> List[models.AppUser]:
        stmt = (
            select(models.AppUser)
            .options(selectinload(models.AppUser.roles))
            .order_by(models.AppUser.username)
        )
        return self.session.exec(stmt).all()


class PhotoRepository:
    """Lookups and removal of `Photo` rows."""
    def __init__(self, session: Session):
        self.session = session

    def get_photo_by_id(self, photo_id: int) -> Optional[models.Photo]:
        return self.session.get(models.Photo, photo_id)

    def get_unapproved_photos(self) -> List[models.Photo]:
        """Return photos awaiting moderation together with their owner."""
        stmt = (
            select(models.Photo)
            .where(models.Photo.is_approved == False)  # noqa: E712
            .options(selectinload(models.Photo.user))
            .order_by(models.Photo.id)
        )
        return self.session.exec(stmt).all()

    def remove_photo(self, photo: models.Photo) -> None:
        self.session.delete(photo)

    def remove_photos(self, photos: Iterable[models.Photo]) -> None:
        for p in list(photos):
            self.session.delete(p)


class LikesRepository:
    """Like pairs and the member lists derived from them."""
    def __init__(self, session: Session):
        self.session = session

    def get_user_like(self, source_user_id: int, target_user_id: int) -> Optional[models.UserLike]:
        return self.session.get(models.UserLike, (source_user_id, target_user_id))

    def add_like(self, like: models.UserLike) -> None:
        self.session.add(like)

    def delete_like(self, like: models.UserLike) -> None:
        self.session.delete(like)

    def get_current_user_like_ids(self, user_id: int) -> List[int]:
        """Return the ids of every user `user_id` has liked."""
        stmt = select(models.UserLike.target_user_id).where(models.UserLike.source_user_id == user_id)
        return list(self.session.exec(stmt).all())

    def get_user_likes(self, params: LikesParams) -> PagedList:
        """Page through members related to `params.user_id` by likes.

        `liked` lists users they like, `likedBy` users who like them and
        `mutual` users where both directions exist.
        """
        uid = params.user_id
        stmt = select(models.AppUser).options(selectinload(models.AppUser.photos))
        if params.predicate == "likedBy":
            stmt = stmt.join(models.UserLike, models.UserLike.source_user_id == models.AppUser.id).where(
                models.UserLike.target_user_id == uid
            )
        elif params.predicate == "mutual":
            liked_ids = select(models.UserLike.target_user_id).where(models.UserLike.source_user_id == uid)
            stmt = stmt.join(models.UserLike, models.UserLike.source_user_id == models.AppUser.id).where(
                models.UserLike.target_user_id == uid,
                models.UserLike.source_user_id.in_(liked_ids),
            )
        else:
            stmt = stmt.join(models.UserLike, models.UserLike.target_user_id == models.AppUser.id).where(
                models.UserLike.source_user_id == uid
            )
        stmt = stmt.order_by(models.AppUser.username)
        return PagedList.create(self.session, stmt, params.page_number, params.page_size)

    def remove_user_likes(self, user_id: int) -> None:
        """Stage deletion of every like issued or received by `user_id`."""
        stmt = select(models.UserLike).where(
            or_(models.UserLike.source_user_id == user_id, models.UserLike.target_user_id == user_id)
        )
        for like in self.session.exec(stmt).all():
            self.session.delete(like)


class MessageRepository:
    """Message storage plus inbox/outbox/thread queries."""
    def __init__(self, session: Session):
        self.session = session

    def _with_parties(self, stmt):
        return stmt.options(
            selectinload(models.Message.sender).selectinload(models.AppUser.photos),
            selectinload(models.Message.recipient).selectinload(models.AppUser.photos),
        )

    def add_message(self, message: models.Message) -> None:
        self.session.add(message)

    def delete_message(self, message: models.Message) -> None:
        self.session.delete(message)

    def get_message(self, message_id: int) -> Optional[models.Message]:
        return self.session.get(models.Message, message_id)

    def get_messages_for_user(self, params: MessageParams) -> PagedList:
        """Return a page of messages for the `Inbox`, `Outbox` or `Unread` container.

        Messages the user deleted on their side are never included.
        Newest messages come first.
        """
        username = params.username.lower()
        m = models.Message
        stmt = select(m)
        if params.container == "Inbox":
            stmt = stmt.where(m.recipient_username == username, m.recipient_deleted == False)  # noqa: E712
        elif params.container == "Outbox":
            stmt = stmt.where(m.sender_username == username, m.sender_deleted == False)  # noqa: E712
        else:
            stmt = stmt.where(
                m.recipient_username == username,
                m.recipient_deleted == False,  # noqa: E712
                m.date_read.is_(None),
            )
        stmt = self._with_parties(stmt).order_by(m.message_sent.desc(), m.id.desc())
        return PagedList.create(self.session, stmt, params.page_number, params.page_size)

    def get_message_thread(self, current_username: str, recipient_username: str) -> List[models.Message]:
        """Return the conversation between two users, oldest first.

        Messages `current_username` deleted on their side are left out.
        """
        current = current_username.lower()
        other = recipient_username.lower()
        m = models.Message
        stmt = select(m).where(
            or_(
                (m.recipient_username == current) & (m.recipient_deleted == False) & (m.sender_username == other),  # noqa: E712
                (m.sender_username == current) & (m.sender_deleted == False) & (m.recipient_username == other),  # noqa: E712
            )
        )
        stmt = self._with_parties(stmt).order_by(m.message_sent, m.id)
        return self.session.exec(stmt).all()

    def remove_user_messages(self, user_id: int) -> None:
        """Stage deletion of every message sent or received by `user_id`."""
        stmt = select(models.Message).where(
            or_(models.Message.sender_id == user_id, models.Message.recipient_id == user_id)
        )
        for message in self.session.exec(stmt).all():
            self.session.delete(message)


class RoleRepository:
    """Role lookup and user/role membership."""
    def __init__(self, session: Session):
        self.session = session

    def get_by_name(self, name: str) -> Optional[models.AppRole]:
        stmt = select(models.AppRole).where(models.AppRole.name == name)
        return self.session.exec(stmt).first()

    def ensure_roles(self, names: Iterable[str] = DEFAULT_ROLES) -> List[models.AppRole]:
        """Return the named roles, staging any that do not exist yet."""
        out = []
        for name in names:
            role = self.get_by_name(name)
            if role is None:
                role = models.AppRole(name=name)
                self.session.add(role)
            out.append(role)
        return out

    def get_user_role_names(self, user: models.AppUser) -> List[str]:
        return sorted(r.name for r in user.roles)

    def add_to_roles(self, user: models.AppUser, names: Iterable[str]) -> bool:
        """Add `user` to each named role; returns False if any role is unknown."""
        roles = []
        for name in names:
            role = self.get_by_name(name)
            if role is None:
                return False
            roles.append(role)
        for role in roles:
            if role not in user.roles:
                user.roles.append(role)
        return True

    def remove_from_roles(self, user: models.AppUser, names: Iterable[str]) -> None:
        names = set(names)
        for role in [r for r in user.roles if r.name in names]:
            user.roles.remove(role)


def _pending_changes(session: Session) -> bool:
    return bool(session.new or session.deleted or any(session.is_modified(o) for o in session.dirty))


def _track_flush(session, flush_context):
    # new/dirty/deleted still describe the pre-flush state here
    if _pending_changes(session):
        session.info["uow_flushed"] = True


def _reset_tracking(session):
    session.info.pop("uow_flushed", None)


class UnitOfWork:
    """Request-scoped aggregate of repositories sharing one session.

    Repositories only stage changes; `complete()` commits them in a single
    transaction and reports whether anything was actually written, which
    controllers use to tell "saved" apart from "nothing to save".
    """
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = UserRepository(session)
        self.photo_repo = PhotoRepository(session)
        self.likes_repo = LikesRepository(session)
        self.message_repo = MessageRepository(session)
        self.role_repo = RoleRepository(session)
        if not session.info.get("uow_tracking"):
            event.listen(session, "after_flush", _track_flush)
            event.listen(session, "after_commit", _reset_tracking)
            event.listen(session, "after_rollback", _reset_tracking)
            session.info["uow_tracking"] = True

    def has_changes(self) -> bool:
        """True when there is staged or flushed-but-uncommitted work."""
        return _pending_changes(self.session) or bool(self.session.info.get("uow_flushed"))

    def complete(self) -> bool:
        """Commit pending work; returns False when there was nothing to save."""
        if not self.has_changes():
            return False
        self.session.commit()
        return True
