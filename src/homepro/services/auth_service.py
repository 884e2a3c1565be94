"""Homeowner and contractor accounts.

Passwords are bcrypt hashes (passlib). Sessions are stateless JWT bearer
tokens carrying the user id and the account role; a token whose role is not
a known account type is treated as invalid.
"""

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homepro.app.config import get_settings
from homepro.domain.enums import UserRole
from homepro.domain.exceptions import PermissionDeniedError
from homepro.domain.models import User

logger = logging.getLogger(__name__)

settings = get_settings()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

_ROLES = {r.value for r in UserRole}

# Fields a user may change on their own profile
PROFILE_FIELDS = ("name", "phone", "business_name")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(user_id: str, role: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expiration_minutes)
    payload = {"sub": user_id, "role": role, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict | None:
    """Return the token claims, or None if the token is bad, expired or role-less."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if payload.get("role") not in _ROLES:
        return None
    return payload


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    email: str,
    password: str,
    name: str,
    role: str,
    business_name: str | None = None,
    phone: str | None = None,
) -> User:
    """Register an account. Only contractors keep a business name."""
    user = User(
        email=normalize_email(email),
        password_hash=hash_password(password),
        name=name,
        role=role,
        business_name=business_name if role == UserRole.CONTRACTOR.value else None,
        phone=phone,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def authenticate(db: AsyncSession, email: str, password: str) -> User | None:
    """Check credentials and stamp the login time. None on any mismatch."""
    user = await get_user_by_email(db, email)
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", user.id)
        return None
    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()
    return user


async def update_profile(db: AsyncSession, user: User, changes: dict) -> User:
    """Apply self-service profile edits. Unset or null values are left alone."""
    if changes.get("business_name") is not None and user.role != UserRole.CONTRACTOR.value:
        raise PermissionDeniedError("Only contractors have a business name")
    for name in PROFILE_FIELDS:
        value = changes.get(name)
        if value is not None:
            setattr(user, name, value)
    await db.commit()
    await db.refresh(user)
    return user
