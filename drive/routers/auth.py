import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Request, Form, Depends
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from drive.core.config import get_settings
from drive.core.security import (
    dummy_password_hash,
    hash_password,
    new_session_token,
    sign_token,
    unsign_token,
    verify_password,
)
from drive.core.storage import BlobStorage, BlobStorageError, get_storage
from drive.models import crud
from drive.models.database import get_db
from drive.models.session import UserSession

logger = logging.getLogger(__name__)

router = APIRouter()

BASE_DIR = Path(__file__).resolve().parent.parent
templates = Jinja2Templates(directory=BASE_DIR / "templates")

settings = get_settings()

LOGIN_FAILED = "Incorrect username or password."


# --- helper: resolve the session cookie to a live server-side session ---
def get_current_session(request: Request, db: Session) -> UserSession | None:
    token = unsign_token(request.cookies.get(settings.session_cookie_name))
    if not token:
        return None
    try:
        return crud.get_active_session(db, token)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Session lookup failed")
        return None


@router.get("/signup", response_class=HTMLResponse)
def signup_page(request: Request):
    return templates.TemplateResponse(request, "signup.html", {})


@router.post("/signup")
def signup(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    email: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    email = email.strip() if email and email.strip() else None
    form = {"username": username, "email": email or ""}

    if not username.strip() or not password:
        return templates.TemplateResponse(
            request, "signup.html", {"error": "Username and password are required.", **form}
        )

    try:
        user = crud.create_user(db, username, hash_password(password), email)
    except IntegrityError:
        db.rollback()
        # The constraint violated is not reported back, either field may collide
        logger.info("Signup rejected for %r: username or email taken", username)
        return templates.TemplateResponse(
            request, "signup.html", {"error": "That username or email is already taken.", **form}
        )
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Signup failed for %r", username)
        return templates.TemplateResponse(
            request, "signup.html", {"error": "An error occurred during registration.", **form}
        )

    try:
        storage.ensure_user_dir(user.id)
    except BlobStorageError:
        # Uploads create the directory again, the account stays usable
        logger.exception("Could not create storage for user %s", user.id)

    logger.info("New user %r (id=%s)", user.username, user.id)
    return RedirectResponse(url="/login", status_code=303)


@router.get("/login", response_class=HTMLResponse)
def login_page(request: Request):
    return templates.TemplateResponse(request, "login.html", {})


@router.post("/login")
def login(request: Request, username: str = Form(...), password: str = Form(...), db: Session = Depends(get_db)):
    try:
        user = crud.get_user_by_username(db, username)
        # Same answer, and the same bcrypt work, for unknown user and wrong password
        stored_hash = user.password if user else dummy_password_hash()
        if not verify_password(password, stored_hash) or not user:
            logger.info("Failed login for %r", username)
            return templates.TemplateResponse(
                request, "login.html", {"error": LOGIN_FAILED, "username": username}
            )

        token = new_session_token()
        crud.create_session(db, token, user, settings.session_ttl_hours)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Login failed for %r", username)
        return templates.TemplateResponse(
            request, "login.html", {"error": "An error occurred. Please try again.", "username": username}
        )

    logger.info("User %r logged in", user.username)

    # login success → set the session cookie
    response = RedirectResponse(url="/dashboard", status_code=303)
    response.set_cookie(
        settings.session_cookie_name,
        sign_token(token),
        max_age=settings.session_ttl_hours * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookie,
    )
    return response


@router.get("/logout")
def logout(request: Request, db: Session = Depends(get_db)):
    session = get_current_session(request, db)
    if not session:
        return RedirectResponse(url="/login", status_code=303)

    username = session.username
    try:
        crud.delete_session(db, session.token)
    except SQLAlchemyError:
        # The row expires on its own and is purged by maintenance
        db.rollback()
        logger.exception("Could not destroy session of %r", username)

    logger.info("User %r logged out", username)
    response = RedirectResponse(url="/login", status_code=303)
    response.delete_cookie(settings.session_cookie_name)
    return response
