"""Accounts, password hashing and JWT-backed sessions."""
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt
from sqlalchemy.orm import Session as DbSession

from testgenius.config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ALGORITHM,
    SECRET_KEY,
    SESSION_EXTEND_MINUTES,
)
from testgenius.models.db.user import AuthSession, User


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(
        plain_password.encode("utf-8"), hashed_password.encode("utf-8")
    )


def create_access_token(user_id: int, jti: str | None = None) -> tuple[str, str, datetime]:
    """Create a JWT access token.

    Returns:
        Tuple of (token, jti, expiry)
    """
    jti = jti or str(uuid.uuid4())
    expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {"sub": str(user_id), "exp": expire, "jti": jti}
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM), jti, expire


def verify_token(token: str) -> dict | None:
    """Decoded token payload, or None if the signature or expiry is invalid."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def get_user_by_username(db: DbSession, username: str) -> User | None:
    return db.query(User).filter(User.username == username).first()


def get_user_by_email(db: DbSession, email: str) -> User | None:
    return db.query(User).filter(User.email == email.lower()).first()


def get_user_by_id(db: DbSession, user_id: int) -> User | None:
    return db.get(User, user_id)


def authenticate_user(db: DbSession, login: str, password: str) -> User | None:
    """Look the user up by username or email and check the password."""
    user = get_user_by_username(db, login)
    if user is None and "@" in login:
        user = get_user_by_email(db, login)
    if user is None or not verify_password(password, user.hashed_password):
        return None
    return user


def mark_login(db: DbSession, user: User) -> None:
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()


def create_user(
    db: DbSession,
    username: str,
    email: str,
    password: str,
    full_name: str | None = None,
) -> User:
    user = User(
        username=username,
        email=email.lower(),
        hashed_password=hash_password(password),
        full_name=full_name,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def update_profile(
    db: DbSession,
    user: User,
    *,
    full_name: str | None = None,
    avatar_url: str | None = None,
    dark_mode: bool | None = None,
) -> User:
    """Apply the given profile fields; None leaves a field unchanged."""
    if full_name is not None:
        user.full_name = full_name.strip() or None
    if avatar_url is not None:
        user.avatar_url = avatar_url.strip() or None
    if dark_mode is not None:
        user.dark_mode = dark_mode
    user.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(user)
    return user


def create_session(
    db: DbSession, user_id: int, token_jti: str, expires_at: datetime
) -> AuthSession:
    session = AuthSession(user_id=user_id, token_jti=token_jti, expires_at=expires_at)
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def get_active_session(db: DbSession, token_jti: str) -> AuthSession | None:
    now = datetime.now(timezone.utc)
    return (
        db.query(AuthSession)
        .filter(
            AuthSession.token_jti == token_jti,
            AuthSession.is_active == True,  # noqa: E712
            AuthSession.expires_at > now,
        )
        .first()
    )


def extend_session(db: DbSession, session: AuthSession) -> AuthSession:
    """Slide the session expiry forward on activity."""
    now = datetime.now(timezone.utc)
    session.last_activity = now
    session.expires_at = now + timedelta(minutes=SESSION_EXTEND_MINUTES)
    db.commit()
    return session


def invalidate_session(db: DbSession, token_jti: str) -> None:
    session = db.query(AuthSession).filter(AuthSession.token_jti == token_jti).first()
    if session:
        session.is_active = False
        db.commit()


def cleanup_expired_sessions(db: DbSession) -> int:
    """Remove expired sessions from database."""
    now = datetime.now(timezone.utc)
    result = db.query(AuthSession).filter(AuthSession.expires_at < now).delete()
    db.commit()
    return result
