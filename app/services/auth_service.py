from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.exceptions import ForbiddenError, InvalidArgumentError, UnauthorizedError
from app.core.logging import get_logger
from app.core.security import (
    create_access_token,
    generate_refresh_token,
    get_password_hash,
    refresh_token_expiry,
    verify_password,
)
from app.database.connection import unit_of_work
from app.models.user import RefreshToken, User
from app.schemas.user import Token, UserCreate

logger = get_logger(__name__)


def _issue_tokens(db: Session, user: User) -> Token:
    refresh = RefreshToken(
        token=generate_refresh_token(),
        user_id=user.id,
        expires_at=refresh_token_expiry(),
    )
    db.add(refresh)
    access = create_access_token({"sub": str(user.id), "role": user.role})
    return Token(access_token=access, refresh_token=refresh.token)


# ---------- REGISTER ----------

def register_user(db: Session, data: UserCreate) -> Token:
    if not data.username or not data.username.strip():
        raise InvalidArgumentError("Username is required", field="username")
    if not data.password:
        raise InvalidArgumentError("Password is required", field="password")

    filters = [User.username == data.username]
    if data.email:
        filters.append(User.email == data.email)
    if db.query(User).filter(or_(*filters)).first():
        raise InvalidArgumentError("User already registered", field="username")

    with unit_of_work(db):
        user = User(
            username=data.username,
            email=data.email,
            hashed_password=get_password_hash(data.password),
            role="user",
        )
        db.add(user)
        db.flush()
        tokens = _issue_tokens(db, user)

    logger.info("Registered user %s", user.id)
    return tokens


# ---------- LOGIN ----------

def authenticate(db: Session, login: str, password: str) -> User:
    user = (
        db.query(User)
        .filter(or_(User.username == login, User.email == login))
        .first()
    )
    if not user or not verify_password(password, user.hashed_password):
        logger.info("Failed login for %r", login)
        raise UnauthorizedError("Invalid credentials")
    if not user.is_active:
        raise ForbiddenError("Inactive user")
    return user


def login(db: Session, login: str, password: str) -> Token:
    user = authenticate(db, login, password)
    with unit_of_work(db):
        tokens = _issue_tokens(db, user)
    return tokens


# ---------- REFRESH / LOGOUT ----------

def refresh_tokens(db: Session, refresh_token: str) -> Token:
    if not refresh_token:
        raise InvalidArgumentError("Refresh token is required", field="refresh_token")

    stored = db.query(RefreshToken).filter(RefreshToken.token == refresh_token).first()
    if not stored:
        raise UnauthorizedError("Invalid refresh token")
    if stored.expires_at < datetime.utcnow():
        raise UnauthorizedError("Refresh token has expired")

    user = db.get(User, stored.user_id)
    if not user or not user.is_active:
        raise UnauthorizedError("User not found or is inactive")

    # rotate: a refresh token is single use
    with unit_of_work(db):
        db.delete(stored)
        tokens = _issue_tokens(db, user)
    return tokens


def logout(db: Session, refresh_token: Optional[str]) -> None:
    if not refresh_token:
        return
    stored = db.query(RefreshToken).filter(RefreshToken.token == refresh_token).first()
    if not stored:
        return
    with unit_of_work(db):
        db.delete(stored)
