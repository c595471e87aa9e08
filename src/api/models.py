"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field

from src.domain.identity import AuthResult, OtpIssued
from src.domain.models import Account, AccountStatus, OtpChannel, OtpPurpose


class SignupRequest(BaseModel):
    """Request model for account signup."""

    email: EmailStr
    password: str = Field(
        ..., min_length=8, max_length=72, description="Password (10 to 72 characters, mixed classes)"
    )
    first_name: str = Field(..., min_length=2, max_length=100)
    last_name: str = Field(..., min_length=2, max_length=100)
    phone: str | None = Field(default=None, max_length=32)
    country: str | None = Field(default=None, max_length=2, description="ISO country code")
    otp_method: OtpChannel = OtpChannel.EMAIL


class OtpResponse(BaseModel):
    """Opaque code reference returned after issuance."""

    message: str
    otp_id: str
    channel: OtpChannel
    expires_at: datetime

    @classmethod
    def from_issued(cls, issued: OtpIssued, message: str) -> "OtpResponse":
        return cls(
            message=message,
            otp_id=issued.otp_id,
            channel=issued.channel,
            expires_at=issued.expires_at,
        )


class SignupResponse(BaseModel):
    """Response model for successful signup."""

    message: str
    account_id: str
    otp_id: str
    status: AccountStatus
    requires_verification: bool = True
    otp_expires_at: datetime


class SendOtpRequest(BaseModel):
    account_id: str
    channel: OtpChannel
    purpose: OtpPurpose


class ResendOtpRequest(BaseModel):
    account_id: str


class VerifyOtpRequest(BaseModel):
    """Request model for code verification."""

    otp_id: str
    code: str = Field(
        ...,
        min_length=4,
        max_length=8,
        pattern=r"^\d+$",
        description="Numeric verification code",
    )


class AccountResponse(BaseModel):
    """Public representation of an account. Never carries secrets."""

    id: str
    email: str
    first_name: str
    last_name: str
    country: str | None
    status: AccountStatus
    email_verified: bool
    phone_verified: bool
    face_enabled: bool

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            country=account.country,
            status=account.status,
            email_verified=account.email_verified,
            phone_verified=account.phone_verified,
            face_enabled=account.face_enabled,
        )


class VerifyOtpResponse(BaseModel):
    message: str
    purpose: OtpPurpose
    account: AccountResponse


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=256)


class FaceDataRequest(BaseModel):
    """Client-derived biometric template."""

    face_data: dict[str, Any] = Field(..., min_length=1)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime
    refresh_expires_at: datetime


class AuthResponse(BaseModel):
    """Response model for sign-in and face login."""

    message: str
    account: AccountResponse
    tokens: TokenPair

    @classmethod
    def from_result(cls, result: AuthResult, message: str) -> "AuthResponse":
        return cls(
            message=message,
            account=AccountResponse.from_domain(result.account),
            tokens=TokenPair(
                access_token=result.access_token,
                refresh_token=result.refresh_token,
                expires_at=result.access_expires_at,
                refresh_expires_at=result.refresh_expires_at,
            ),
        )


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8, max_length=72)


class MessageResponse(BaseModel):
    message: str


class TokenStatusResponse(BaseModel):
    valid: bool
    account: AccountResponse


class SessionStatusResponse(BaseModel):
    authenticated: bool
    account: AccountResponse | None = None


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    kind: str
    message: str
    reason: str | None = None
    debug: str | None = None
