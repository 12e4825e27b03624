"""
Authentication service handling user registration and login.
Registration is restricted to the university e-mail domain.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from campus_market.models.user import User
from campus_market.schemas.user import UserCreate, UserLogin
from campus_market.core.config import get_settings
from campus_market.core.security import hash_password, verify_password, create_access_token
from campus_market.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


def is_university_email(email: str) -> bool:
    return email.lower().endswith(settings.UNIVERSITY_EMAIL_DOMAIN.lower())


async def register_user(db: AsyncSession, user_data: UserCreate) -> User:
    """
    Register a new student with a hashed password.
    Raises 400 for non-university addresses and 409 if the email exists.
    """
    email = user_data.email.lower()

    if not is_university_email(email):
        logger.warning("registration_failed", reason="non_university_email", email=email)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Only {settings.UNIVERSITY_EMAIL_DOMAIN} email addresses can register",
        )

    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        logger.warning("registration_failed", reason="email_exists", email=email)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    user = User(
        name=user_data.name,
        email=email,
        hashed_password=hash_password(user_data.password),
    )
    db.add(user)
    await db.flush()

    logger.info("user_registered", user_id=user.id, email=user.email)
    return user


async def authenticate_user(db: AsyncSession, login_data: UserLogin) -> str:
    """
    Authenticate user and return JWT access token.
    Raises 401 if credentials are invalid.
    """
    result = await db.execute(select(User).where(User.email == login_data.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.warning("login_failed", email=login_data.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    token = create_access_token(data={"sub": str(user.id)})
    logger.info("user_logged_in", user_id=user.id)
    return token
