"""
Auth endpoints
==============

POST /api/auth/register -- create a rider or driver account, returns a token
POST /api/auth/login    -- exchange email + password for a token
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ridehail.api.dependencies import get_db
from ridehail.api.middleware import RATE, limiter
from ridehail.api.schemas import LoginRequest, RegisterRequest, TokenResponse
from ridehail.api.security import create_access_token, hash_password, verify_password
from ridehail.domain.enums import UserRole
from ridehail.infrastructure.repositories import DriverRepository, UserRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    status_code=201,
    response_model=TokenResponse,
    summary="Register a rider or driver",
)
@limiter.limit(RATE)
async def register(
    request: Request,
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    users = UserRepository(db)
    if await users.get_by_email(body.email):
        raise HTTPException(status_code=409, detail="Email already registered")

    user = await users.create_user(
        name=body.name,
        email=body.email,
        password_hash=hash_password(body.password),
        role=body.role,
    )
    if body.role == UserRole.DRIVER:
        await DriverRepository(db).create_driver(
            user=user,
            car_model=body.car.model,
            car_color=body.car.color,
            car_plate=body.car.plate,
        )
    logger.info("Registered %s %d", body.role.value, user.id)
    return TokenResponse(token=create_access_token(user.id, body.role), role=body.role)


@router.post("/login", response_model=TokenResponse, summary="Log in")
@limiter.limit(RATE)
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    user = await UserRepository(db).get_by_email(body.email)
    if user is None or not verify_password(body.password, user.password_hash):
        return JSONResponse(
            status_code=401, content={"error": "Invalid email or password"}
        )
    role = UserRole(user.role)
    return TokenResponse(token=create_access_token(user.id, role), role=role)
