"""Seed data loader.

Creates the standard roles and, on an empty database, a set of demo
members from `data/user_seed_data.json` plus an `admin` account holding
the Admin and Moderator roles. Every seeded account uses
`settings.SEED_PASSWORD`.
"""

import json
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import TypeAdapter
from sqlmodel import Session, select

from . import models
from .config import settings
from .repositories import DEFAULT_ROLES, UnitOfWork
from .schemas import CamelModel
from .services import PWD_CTX

SEED_FILE = Path(__file__).resolve().parent / "data" / "user_seed_data.json"

logger = logging.getLogger("datingapp.seed")


class SeedPhoto(CamelModel):
    url: str
    is_main: bool = False


class SeedUser(CamelModel):
    username: str
    gender: str
    date_of_birth: date
    known_as: str
    created: Optional[datetime] = None
    last_active: Optional[datetime] = None
    introduction: Optional[str] = None
    looking_for: Optional[str] = None
    interests: Optional[str] = None
    city: str
    country: str
    photos: List[SeedPhoto] = []


def load_seed_users(path: Path = SEED_FILE) -> List[SeedUser]:
    """Parse the seed file into validated `SeedUser` records."""
    raw = json.loads(path.read_text(encoding="utf-8"))
    return TypeAdapter(List[SeedUser]).validate_python(raw)


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def seed_roles(session: Session) -> None:
    """Create any missing standard role."""
    uow = UnitOfWork(session)
    uow.role_repo.ensure_roles(DEFAULT_ROLES)
    if uow.complete():
        logger.info("seeded roles %s", ", ".join(DEFAULT_ROLES))


def seed_users(session: Session, path: Path = SEED_FILE, password: Optional[str] = None) -> int:
    """Insert demo members and the admin account if there are no users yet.

    Returns the number of users created.
    """
    if session.exec(select(models.AppUser.id)).first() is not None:
        return 0
    seed_roles(session)
    password_hash = PWD_CTX.hash(password or settings.SEED_PASSWORD)
    uow = UnitOfWork(session)
    created = 0
    for su in load_seed_users(path):
        user = models.AppUser(
            username=su.username.lower(),
            password_hash=password_hash,
            date_of_birth=su.date_of_birth,
            known_as=su.known_as,
            created=_as_utc(su.created),
            last_active=_as_utc(su.last_active),
            gender=su.gender,
            introduction=su.introduction,
            interests=su.interests,
            looking_for=su.looking_for,
            city=su.city,
            country=su.country,
        )
        for i, sp in enumerate(su.photos):
            # the first seeded photo is pre-approved and becomes the main one
            user.photos.append(models.Photo(url=sp.url, is_main=i == 0, is_approved=i == 0))
        uow.user_repo.add(user)
        uow.role_repo.add_to_roles(user, ["Member"])
        created += 1

    if not uow.user_repo.username_exists("admin"):
        admin = models.AppUser(
            username="admin",
            password_hash=password_hash,
            date_of_birth=date(1980, 1, 1),
            known_as="Admin",
            gender="male",
            city="Adminville",
            country="Nowhere",
        )
        uow.user_repo.add(admin)
        uow.role_repo.add_to_roles(admin, ["Admin", "Moderator"])
        created += 1
    uow.complete()
    logger.info("seeded %d users", created)
    return created
