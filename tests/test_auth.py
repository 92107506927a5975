# tests/test_auth.py
from unittest.mock import patch

import bcrypt
import pytest
from sqlalchemy.exc import SQLAlchemyError

from drive.core.config import get_settings
from drive.core.security import new_session_token, sign_token
from drive.models import crud
from drive.models.session import UserSession
from drive.models.user import User
from drive.routers.auth import LOGIN_FAILED
from conftest import PASSWORD, login, signup, signup_and_login

COOKIE = get_settings().session_cookie_name


def test_signup_creates_user_and_directory(client, db, storage):
    response = signup(client, "alice", email="alice@example.com")

    assert response.status_code == 303
    assert response.headers["location"] == "/login"

    user = crud.get_user_by_username(db, "alice")
    assert user is not None
    assert user.email == "alice@example.com"
    assert user.password != PASSWORD
    assert storage.user_dir(user.id).is_dir()
    assert list(storage.user_dir(user.id).iterdir()) == []


def test_signup_without_email_stores_null(client, db):
    signup(client, "bob", email="")

    assert crud.get_user_by_username(db, "bob").email is None


def test_duplicate_username_is_rejected(client, db):
    signup(client, "alice")
    response = signup(client, "alice", password="other")

    assert response.status_code == 200
    assert "That username or email is already taken." in response.text
    assert db.query(User).filter(User.username == "alice").count() == 1


def test_duplicate_email_is_rejected(client, db):
    signup(client, "alice", email="shared@example.com")
    response = signup(client, "bob", email="shared@example.com")

    assert "That username or email is already taken." in response.text
    assert crud.get_user_by_username(db, "bob") is None


def test_signup_requires_non_blank_username(client, db):
    response = signup(client, "   ")

    assert response.status_code == 200
    assert "Username and password are required." in response.text
    assert db.query(User).count() == 0


def test_login_creates_session_for_user(client, db):
    signup(client, "alice")
    response = login(client, "alice")

    assert response.status_code == 303
    assert response.headers["location"] == "/dashboard"
    assert COOKIE in response.cookies

    user = crud.get_user_by_username(db, "alice")
    sessions = db.query(UserSession).all()
    assert len(sessions) == 1
    assert sessions[0].user_id == user.id
    assert sessions[0].username == "alice"


@pytest.mark.parametrize("username,password", [("alice", "wrong"), ("nobody", PASSWORD)])
def test_failed_login_is_generic(client, db, username, password):
    signup(client, "alice")
    response = login(client, username, password)

    assert response.status_code == 200
    assert "Incorrect username or password." in response.text
    assert COOKIE not in response.cookies
    assert db.query(UserSession).count() == 0


def test_login_is_case_sensitive(client):
    signup(client, "alice")
    response = login(client, "Alice")

    assert "Incorrect username or password." in response.text


def test_logout_invalidates_session(client, make_client, db):
    signup_and_login(client, "alice")
    cookie_value = client.cookies.get(COOKIE)

    response = client.get("/logout", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/login"
    assert db.query(UserSession).count() == 0

    # replaying the old cookie no longer works
    other = make_client()
    other.cookies.set(COOKIE, cookie_value)
    response = other.get("/dashboard", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/login"


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/dashboard"),
        ("get", "/logout"),
        ("post", "/upload"),
        ("post", "/create-folder"),
        ("post", "/delete/1"),
        ("get", "/download/123-report.pdf"),
    ],
)
def test_protected_routes_redirect_to_login(client, method, path):
    response = getattr(client, method)(path, follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/login"


def test_tampered_cookie_is_ignored(client, db):
    signup_and_login(client, "alice")
    token = db.query(UserSession).one().token

    client.cookies.clear()
    client.cookies.set(COOKIE, token + ".forged-signature")
    response = client.get("/dashboard", follow_redirects=False)

    assert response.status_code == 303


def test_expired_session_is_rejected(client, db):
    signup(client, "alice")
    user = crud.get_user_by_username(db, "alice")
    token = new_session_token()
    crud.create_session(db, token, user, ttl_hours=-1)

    client.cookies.set(COOKIE, sign_token(token))
    response = client.get("/dashboard", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/login"


def test_home_redirects_by_session(client):
    response = client.get("/", follow_redirects=False)
    assert response.headers["location"] == "/login"

    signup_and_login(client, "alice")
    response = client.get("/", follow_redirects=False)
    assert response.headers["location"] == "/dashboard"


@pytest.mark.parametrize("path", ["/signup", "/login", "/about"])
def test_entry_pages_render(client, path):
    response = client.get(path)

    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]


def test_logout_clears_cookie_even_if_session_delete_fails(client):
    signup_and_login(client, "alice")

    with patch("drive.models.crud.delete_session", side_effect=SQLAlchemyError("down")):
        response = client.get("/logout", follow_redirects=False)

    assert response.headers["location"] == "/login"
    assert client.cookies.get(COOKIE) is None


@pytest.mark.parametrize("username,password", [("alice", "wrong"), ("nobody", PASSWORD)])
def test_failed_login_runs_one_hash_check(client, username, password):
    signup(client, "alice")

    with patch("drive.core.security.bcrypt.checkpw", wraps=bcrypt.checkpw) as checkpw:
        response = login(client, username, password)

    assert LOGIN_FAILED in response.text
    assert checkpw.call_count == 1
