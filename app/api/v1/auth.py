"""
Authentication endpoints for app users.

Registration with e-mail OTP verification, login by e-mail or phone and
password reset. Successful verification and login return a bearer token.
"""

from fastapi import APIRouter, status

from app.api.dependencies import DatabaseSession
from app.schemas.user import (
    ForgetPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResendOtpRequest,
    ResetPasswordRequest,
    VerifyOtpRequest,
)
from app.services.user import UserService

router = APIRouter()


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, db: DatabaseSession) -> dict:
    """
    Register an account and mail a 6-digit OTP.

    Raises:
        400: A verified account already uses the e-mail or mobile
    """
    return await UserService(db).register(payload.model_dump())


@router.post("/verify-otp")
async def verify_otp(payload: VerifyOtpRequest, db: DatabaseSession) -> dict:
    return await UserService(db).verify_otp(payload.otp, payload.email, payload.mobile)


@router.post("/resend-otp")
async def resend_otp(payload: ResendOtpRequest, db: DatabaseSession) -> dict:
    return await UserService(db).resend_otp(payload.email, payload.mobile)


@router.post("/login")
async def login(payload: LoginRequest, db: DatabaseSession) -> dict:
    """
    Log in with an e-mail address or phone number.

    Example:
        POST /api/v1/auth/login
        {"username": "asha@example.com", "password": "s3cret-pass"}

        Response:
        {
            "message": "Login successful",
            "access_token": "eyJ...",
            "token_type": "bearer",
            "user": {...},
            "profile": {...}
        }
    """
    return await UserService(db).login(payload.username, payload.password)


@router.post("/forget-password")
async def forget_password(payload: ForgetPasswordRequest, db: DatabaseSession) -> dict:
    return await UserService(db).forget_password(payload.email)


@router.post("/reset-password")
async def reset_password(payload: ResetPasswordRequest, db: DatabaseSession) -> dict:
    return await UserService(db).reset_password(
        payload.email,
        payload.otp,
        payload.new_password,
        payload.confirm_password,
    )
