"""Data access for users, resources and sessions.

Every query that touches a resource is scoped by ``user_id`` so one user can
never see or modify another user's rows.
"""
from datetime import timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from drive.models.database import utcnow
from drive.models.resource import Resource
from drive.models.session import UserSession
from drive.models.user import User


# --- users ---

def create_user(db: Session, username: str, password_hash: str, email: Optional[str] = None) -> User:
    """Insert a user. Raises IntegrityError if the username or email is taken."""
    user = User(username=username, password=password_hash, email=email)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return db.query(User).filter(User.username == username).first()


# --- resources ---

def list_root_resources(db: Session, user_id: int) -> List[Resource]:
    """Root-level resources of a user, folders first, then by name."""
    return (
        db.query(Resource)
        .filter(Resource.user_id == user_id, Resource.parent_id.is_(None))
        .order_by(Resource.type.desc(), Resource.name.asc())
        .all()
    )


def create_resource(
    db: Session,
    user_id: int,
    resource_type: str,
    name: str,
    storage_key: Optional[str] = None,
) -> Resource:
    resource = Resource(user_id=user_id, type=resource_type, name=name, storage_key=storage_key)
    db.add(resource)
    db.commit()
    db.refresh(resource)
    return resource


def get_resource(db: Session, resource_id: int, user_id: int) -> Optional[Resource]:
    """Look up a resource by id, only if it belongs to ``user_id``."""
    return (
        db.query(Resource)
        .filter(Resource.id == resource_id, Resource.user_id == user_id)
        .first()
    )


def get_file_by_storage_key(db: Session, storage_key: str, user_id: int) -> Optional[Resource]:
    return (
        db.query(Resource)
        .filter(
            Resource.storage_key == storage_key,
            Resource.user_id == user_id,
            Resource.type == "file",
        )
        .first()
    )


def list_file_keys(db: Session, user_id: int) -> List[str]:
    rows = (
        db.query(Resource.storage_key)
        .filter(Resource.user_id == user_id, Resource.type == "file")
        .all()
    )
    return [row.storage_key for row in rows if row.storage_key]


def delete_resource(db: Session, resource: Resource) -> None:
    db.delete(resource)
    db.commit()


# --- sessions ---

def create_session(db: Session, token: str, user: User, ttl_hours: int) -> UserSession:
    session = UserSession(
        token=token,
        user_id=user.id,
        username=user.username,
        expires_at=utcnow() + timedelta(hours=ttl_hours),
    )
    db.add(session)
    db.commit()
    return session


def get_active_session(db: Session, token: str) -> Optional[UserSession]:
    """Return the session for ``token`` unless it is unknown or expired."""
    return (
        db.query(UserSession)
        .filter(UserSession.token == token, UserSession.expires_at > utcnow())
        .first()
    )


def delete_session(db: Session, token: str) -> bool:
    count = db.query(UserSession).filter(UserSession.token == token).delete()
    db.commit()
    return count > 0


def purge_expired_sessions(db: Session) -> int:
    count = db.query(UserSession).filter(UserSession.expires_at <= utcnow()).delete()
    db.commit()
    return count


def list_user_ids(db: Session) -> List[int]:
    return [row.id for row in db.query(User.id).all()]
