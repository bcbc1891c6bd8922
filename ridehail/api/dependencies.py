"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ridehail.api.security import REASON_INVALID, REASON_MISSING, AuthError, decode_access_token
from ridehail.domain.enums import UserRole
from ridehail.infrastructure.database import async_session_factory
from ridehail.infrastructure.models import DriverModel, UserModel
from ridehail.infrastructure.repositories import DriverRepository, UserRepository

bearer = HTTPBearer(auto_error=False)


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> UserModel:
    if credentials is None:
        raise AuthError(REASON_MISSING)
    user_id, _ = decode_access_token(credentials.credentials)
    user = await UserRepository(db).get_by_id(user_id)
    if user is None:
        raise AuthError(REASON_INVALID)
    return user


async def get_current_driver(
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DriverModel:
    if user.role != UserRole.DRIVER:
        raise HTTPException(status_code=403, detail="Drivers only")
    driver = await DriverRepository(db).get_by_user_id(user.id)
    if driver is None:
        raise HTTPException(status_code=403, detail="Driver profile missing")
    return driver


async def get_current_rider(
    user: UserModel = Depends(get_current_user),
) -> UserModel:
    if user.role != UserRole.RIDER:
        raise HTTPException(status_code=403, detail="Riders only")
    return user
