"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the dating API. Controllers are
intentionally thin: they accept requests, delegate to services, and
return JSON responses. Business-rule failures raised by the services are
rendered by the handlers registered in `errors`.

Endpoints implemented:
- POST /api/account/register, POST /api/account/login
- GET /api/users, GET /api/users/{username}, PUT /api/users
- POST /api/users/add-photo, PUT /api/users/set-main-photo/{photo_id},
  DELETE /api/users/delete-photo/{photo_id}
- POST /api/likes/{target_user_id}, GET /api/likes/list, GET /api/likes
- POST /api/messages, GET /api/messages, GET /api/messages/thread/{username},
  DELETE /api/messages/{message_id}
- GET /api/admin/users-with-roles, POST /api/admin/edit-roles/{username},
  GET /api/admin/photos-to-moderate, POST /api/admin/approve-photo/{photo_id},
  POST /api/admin/reject-photo/{photo_id}, DELETE /api/admin/delete-user/{username}
- GET /api/buggy/{auth,not-found,server-error,bad-request}
- GET /health
"""

import json
import logging
import time
import uuid
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles
from sqlmodel import Session

from . import models, schemas, seed, services
from .auth import get_current_user, require_admin, require_photo_moderator
from .config import settings
from .database import create_db_and_tables, engine, get_session
from .errors import BadRequestError, setup_exception_handlers
from .utils.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_NUMBER, add_pagination_header
from .utils.photo_storage import PhotoStorage, get_photo_storage, is_image

app = FastAPI(title="Dating App API")
logger = logging.getLogger("datingapp.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

setup_exception_handlers(app)

# The SPA dev server runs on :4200; ALLOW_DEV_CORS opens it to any origin for local tools.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.ALLOW_DEV_CORS else settings.CORS_ORIGINS,
    allow_credentials=not settings.ALLOW_DEV_CORS,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Pagination"],
)

# Locally stored photos are served straight from disk.
if not settings.use_cloudinary:
    settings.PHOTO_STORAGE_DIR.mkdir(parents=True, exist_ok=True)
    app.mount(settings.MEDIA_URL, StaticFiles(directory=settings.PHOTO_STORAGE_DIR), name="media")

create_db_and_tables()
with Session(engine) as _seed_session:
    seed.seed_roles(_seed_session)
    if settings.SEED_ON_STARTUP:
        seed.seed_users(_seed_session)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        if request.url.path.startswith("/api"):
            logger.exception(
                "request_failed %s",
                json.dumps(
                    {
                        "request_id": req_id,
                        "path": request.url.path,
                        "method": request.method,
                        "duration_ms": elapsed_ms,
                        "client": request.client.host if request.client else "unknown",
                    },
                    ensure_ascii=True,
                ),
            )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    if request.url.path.startswith("/api"):
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
    return response


def _read_photo_upload(file: UploadFile) -> bytes:
    if not file.filename:
        raise HTTPException(status_code=400, detail='no file')
    if len(file.filename) > 200 or "/" in file.filename or "\\" in file.filename:
        raise HTTPException(status_code=400, detail='invalid filename')
    content = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail='file too large')
    if content and not is_image(content):
        raise HTTPException(status_code=415, detail='unsupported file content; expected an image')
    return content


# ---------------------------------------------------------------- account

@app.post('/api/account/register', response_model=schemas.UserOut)
def register(payload: schemas.RegisterIn, db: Session = Depends(get_session)):
    """Register a new member and return their profile summary with a token.

    The username is stored lower-case and must not be taken already.
    """
    return services.AccountService(db).register(payload)


@app.post('/api/account/login', response_model=schemas.UserOut)
def login(payload: schemas.LoginIn, db: Session = Depends(get_session)):
    """Authenticate a member and return a signed JWT in the `token` field."""
    return services.AccountService(db).login(payload.username, payload.password)


# ------------------------------------------------------------------ users

@app.get('/api/users', response_model=List[schemas.MemberOut])
def get_users(
    response: Response,
    page_number: int = Query(1, alias="pageNumber", ge=1, le=MAX_PAGE_NUMBER),
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize", ge=1),
    gender: Optional[str] = None,
    min_age: int = Query(18, alias="minAge", ge=0, le=schemas.MAX_AGE),
    max_age: int = Query(100, alias="maxAge", ge=0, le=schemas.MAX_AGE),
    order_by: Literal["lastActive", "created"] = Query("lastActive", alias="orderBy"),
    db: Session = Depends(get_session),
    user: models.AppUser = Depends(get_current_user),
):
    """List other members, filtered and paged.

    Paging metadata is returned in the `Pagination` response header.
    """
    if min_age > max_age:
        raise BadRequestError("minAge cannot be greater than maxAge")
    params = schemas.UserParams(
        page_number=page_number,
        page_size=page_size,
        current_username=user.username,
        gender=gender,
        min_age=min_age,
        max_age=max_age,
        order_by=order_by,
    )
    page = services.UserService(db).get_members(params)
    add_pagination_header(response, page)
    return page.items


@app.get('/api/users/{username}', response_model=schemas.MemberOut)
def get_user(username: str, db: Session = Depends(get_session), user: models.AppUser = Depends(get_current_user)):
    """Return one member's profile; unapproved photos are shown only to their owner."""
    return services.UserService(db).get_member(username, user.username)


@app.put('/api/users', status_code=204)
def update_user(payload: schemas.MemberUpdateIn, db: Session = Depends(get_session), user: models.AppUser = Depends(get_current_user)):
    services.UserService(db).update_member(user.username, payload)
    return Response(status_code=204)


@app.post('/api/users/add-photo', response_model=schemas.PhotoOut, status_code=201)
def add_photo(
    response: Response,
    file: UploadFile = File(...),
    db: Session = Depends(get_session),
    storage: PhotoStorage = Depends(get_photo_storage),
    user: models.AppUser = Depends(get_current_user),
):
    """Upload a photo for the current member.

    The photo is stored through the configured media backend and waits for
    moderation before other members can see it. Responds 201 with the
    photo and a `Location` pointing at the member's profile.
    """
    content = _read_photo_upload(file)
    photo = services.UserService(db, storage).add_photo(user.username, content, file.filename)
    response.headers["Location"] = f"/api/users/{user.username}"
    return photo


@app.put('/api/users/set-main-photo/{photo_id}', status_code=204)
def set_main_photo(photo_id: int, db: Session = Depends(get_session), user: models.AppUser = Depends(get_current_user)):
    services.UserService(db).set_main_photo(user.username, photo_id)
    return Response(status_code=204)


@app.delete('/api/users/delete-photo/{photo_id}')
def delete_photo(
    photo_id: int,
    db: Session = Depends(get_session),
    storage: PhotoStorage = Depends(get_photo_storage),
    user: models.AppUser = Depends(get_current_user),
):
    """Delete one of the current member's photos (never the main one)."""
    services.UserService(db, storage).delete_photo(user.username, photo_id)
    return {'status': 'ok'}


# ------------------------------------------------------------------ likes

@app.post('/api/likes/{target_user_id}')
def toggle_like(target_user_id: int, db: Session = Depends(get_session), user: models.AppUser = Depends(get_current_user)):
    """Like a member, or remove the like if it already exists."""
    liked = services.LikesService(db).toggle_like(user.id, target_user_id)
    return {'liked': liked}


@app.get('/api/likes/list', response_model=List[int])
def get_current_user_like_ids(db: Session = Depends(get_session), user: models.AppUser = Depends(get_current_user)):
    return services.LikesService(db).get_current_user_like_ids(user.id)


@app.get('/api/likes', response_model=List[schemas.MemberOut])
def get_user_likes(
    response: Response,
    predicate: Literal["liked", "likedBy", "mutual"] = "liked",
    page_number: int = Query(1, alias="pageNumber", ge=1, le=MAX_PAGE_NUMBER),
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize", ge=1),
    db: Session = Depends(get_session),
    user: models.AppUser = Depends(get_current_user),
):
    """List members the caller likes (`liked`), who like the caller (`likedBy`) or both (`mutual`)."""
    params = schemas.LikesParams(user_id=user.id, predicate=predicate, page_number=page_number, page_size=page_size)
    page = services.LikesService(db).get_user_likes(params)
    add_pagination_header(response, page)
    return page.items


# --------------------------------------------------------------- messages

@app.post('/api/messages', response_model=schemas.MessageOut)
def create_message(payload: schemas.MessageCreateIn, db: Session = Depends(get_session), user: models.AppUser = Depends(get_current_user)):
    return services.MessageService(db).create_message(user.username, payload)


@app.get('/api/messages', response_model=List[schemas.MessageOut])
def get_messages_for_user(
    response: Response,
    container: Literal["Unread", "Inbox", "Outbox"] = "Unread",
    page_number: int = Query(1, alias="pageNumber", ge=1, le=MAX_PAGE_NUMBER),
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize", ge=1),
    db: Session = Depends(get_session),
    user: models.AppUser = Depends(get_current_user),
):
    """Return a page of the caller's `Unread`, `Inbox` or `Outbox` messages, newest first."""
    params = schemas.MessageParams(username=user.username, container=container, page_number=page_number, page_size=page_size)
    page = services.MessageService(db).get_messages_for_user(params)
    add_pagination_header(response, page)
    return page.items


@app.get('/api/messages/thread/{username}', response_model=List[schemas.MessageOut])
def get_message_thread(username: str, db: Session = Depends(get_session), user: models.AppUser = Depends(get_current_user)):
    """Return the conversation with `username`, oldest first.

    Unread messages the caller received in the thread are marked read.
    """
    return services.MessageService(db).get_message_thread(user.username, username)


@app.delete('/api/messages/{message_id}')
def delete_message(message_id: int, db: Session = Depends(get_session), user: models.AppUser = Depends(get_current_user)):
    services.MessageService(db).delete_message(message_id, user)
    return {'status': 'ok'}


# ------------------------------------------------------------------ admin

@app.get('/api/admin/users-with-roles', response_model=List[schemas.UserWithRolesOut])
def get_users_with_roles(db: Session = Depends(get_session), user: models.AppUser = Depends(require_admin)):
    return services.AdminService(db).get_users_with_roles()


@app.post('/api/admin/edit-roles/{username}', response_model=List[str])
def edit_roles(username: str, roles: Optional[str] = None, db: Session = Depends(get_session), user: models.AppUser = Depends(require_admin)):
    """Replace a user's roles with the comma-separated `roles` query value."""
    return services.AdminService(db).edit_roles(username, roles)


@app.get('/api/admin/photos-to-moderate', response_model=List[schemas.PhotoForApprovalOut])
def get_photos_for_moderation(db: Session = Depends(get_session), user: models.AppUser = Depends(require_photo_moderator)):
    return services.AdminService(db).get_photos_for_moderation()


@app.post('/api/admin/approve-photo/{photo_id}')
def approve_photo(photo_id: int, db: Session = Depends(get_session), user: models.AppUser = Depends(require_photo_moderator)):
    services.AdminService(db).approve_photo(photo_id)
    return {'status': 'ok'}


@app.post('/api/admin/reject-photo/{photo_id}')
def reject_photo(
    photo_id: int,
    db: Session = Depends(get_session),
    storage: PhotoStorage = Depends(get_photo_storage),
    user: models.AppUser = Depends(require_photo_moderator),
):
    services.AdminService(db, storage).reject_photo(photo_id)
    return {'status': 'ok'}


@app.delete('/api/admin/delete-user/{username}')
def delete_user(
    username: str,
    db: Session = Depends(get_session),
    storage: PhotoStorage = Depends(get_photo_storage),
    user: models.AppUser = Depends(require_admin),
):
    """Delete a user together with their photos, likes, messages and roles."""
    services.AdminService(db, storage).delete_user(username)
    return {'status': 'ok', 'detail': 'User deleted successfully'}


# ------------------------------------------------------------------ buggy
# Deliberate failures so clients can exercise their error handling.

@app.get('/api/buggy/auth')
def get_auth(user: models.AppUser = Depends(get_current_user)):
    return "secret text"


@app.get('/api/buggy/not-found')
def get_not_found():
    raise HTTPException(status_code=404, detail='Not found')


@app.get('/api/buggy/server-error')
def get_server_error(db: Session = Depends(get_session)):
    thing = db.get(models.AppUser, -1)
    return thing.username


@app.get('/api/buggy/bad-request')
def get_bad_request():
    raise BadRequestError("This was not a good request")


# ------------------------------------------------------------------- misc

@app.get("/", response_class=HTMLResponse)
def home():
    """Minimal homepage for quick manual testing."""
    return """
    <!DOCTYPE html>
    <html>
    <head>
      <meta charset="UTF-8" />
      <title>Dating App API</title>
      <style>
        body { font-family: Arial, sans-serif; margin: 32px; }
        .card { max-width: 640px; padding: 16px; border: 1px solid #ddd; border-radius: 8px; }
      </style>
    </head>
    <body>
      <div class="card">
        <h1>Dating App API</h1>
        <p><a href="/docs">Swagger UI</a></p>
        <p>Use <code>/api/account/register</code> or <code>/api/account/login</code> to get a token, then try <code>/api/users</code>.</p>
      </div>
    </body>
    </html>
    """


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
