"""
API v1 routes.

Defines REST endpoints for signup, verification, sign-in, password reset
and session management. Domain errors propagate to the handlers
registered in src.api.errors, which map them onto HTTP statuses.
"""

from fastapi import APIRouter, Depends, status

from src.api.access import get_bearer_token, optional_principal, require_principal
from src.api.dependencies import get_device_info, get_identity_service
from src.api.models import (
    AccountResponse,
    AuthResponse,
    ErrorResponse,
    FaceDataRequest,
    ForgotPasswordRequest,
    MessageResponse,
    OtpResponse,
    ResendOtpRequest,
    ResetPasswordRequest,
    SendOtpRequest,
    SessionStatusResponse,
    SignInRequest,
    SignupRequest,
    SignupResponse,
    TokenStatusResponse,
    VerifyOtpRequest,
    VerifyOtpResponse,
)
from src.domain.identity import IdentityService, Principal
from src.domain.identity import SignupRequest as SignupCommand
from src.domain.models import DeviceInfo

router = APIRouter(prefix="/auth", tags=["v1"])


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input or weak password"},
        409: {"model": ErrorResponse, "description": "Email already registered"},
        429: {"model": ErrorResponse, "description": "Too many signup attempts"},
    },
    summary="Create a new account",
    description="Create an account pending verification. "
    "A one-time code is sent over the requested channel.",
)
def signup(
    request_data: SignupRequest,
    service: IdentityService = Depends(get_identity_service),
) -> SignupResponse:
    """
    Create an account and send the signup verification code.

    - **email**: Valid email address
    - **password**: At least 10 characters with upper, lower, digit and symbol
    - **otp_method**: `email` (default) or `sms`; `sms` requires **phone**
    """
    result = service.signup(
        SignupCommand(
            email=request_data.email,
            password=request_data.password,
            first_name=request_data.first_name,
            last_name=request_data.last_name,
            otp_channel=request_data.otp_method,
            phone=request_data.phone,
            country=request_data.country,
        )
    )
    return SignupResponse(
        message="User created successfully. Please verify your OTP to activate your account.",
        account_id=result.account_id,
        otp_id=result.otp.otp_id,
        status=result.status,
        otp_expires_at=result.otp.expires_at,
    )


@router.post(
    "/send-otp",
    response_model=OtpResponse,
    responses={404: {"model": ErrorResponse, "description": "Account not found"}},
    summary="Issue a one-time code",
)
def send_otp(
    request_data: SendOtpRequest,
    service: IdentityService = Depends(get_identity_service),
) -> OtpResponse:
    issued = service.issue_otp(request_data.account_id, request_data.channel, request_data.purpose)
    return OtpResponse.from_issued(issued, "OTP sent successfully")


@router.post(
    "/verify-otp",
    response_model=VerifyOtpResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Wrong, used, expired or exhausted code"},
        404: {"model": ErrorResponse, "description": "Unknown code reference"},
    },
    summary="Verify a one-time code",
)
def verify_otp(
    request_data: VerifyOtpRequest,
    service: IdentityService = Depends(get_identity_service),
) -> VerifyOtpResponse:
    """
    Consume a code. A SIGNUP code activates the account.

    Codes are single-use and allow a limited number of wrong guesses.
    """
    result = service.verify_otp(request_data.otp_id, request_data.code)
    return VerifyOtpResponse(
        message="OTP verified successfully",
        purpose=result.purpose,
        account=AccountResponse.from_domain(result.account),
    )


@router.post(
    "/resend-otp",
    response_model=OtpResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Account already verified"},
        404: {"model": ErrorResponse, "description": "Account not found"},
    },
    summary="Resend the signup code",
)
def resend_otp(
    request_data: ResendOtpRequest,
    service: IdentityService = Depends(get_identity_service),
) -> OtpResponse:
    issued = service.resend_otp(request_data.account_id)
    return OtpResponse.from_issued(issued, "OTP resent successfully")


@router.post(
    "/signin",
    response_model=AuthResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
        403: {"model": ErrorResponse, "description": "Account not verified or inactive"},
        423: {"model": ErrorResponse, "description": "Account temporarily locked"},
    },
    summary="Sign in with email and password",
)
def signin(
    request_data: SignInRequest,
    device: DeviceInfo = Depends(get_device_info),
    service: IdentityService = Depends(get_identity_service),
) -> AuthResponse:
    """
    Authenticate and open a session.

    Unknown emails and wrong passwords return the same error.
    Repeated failures lock the account for a cooling-off period.
    """
    result = service.sign_in(request_data.email, request_data.password, device)
    return AuthResponse.from_result(result, "Login successful")


@router.post(
    "/face-login",
    response_model=AuthResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Face recognition failed"},
        429: {"model": ErrorResponse, "description": "Too many attempts"},
    },
    summary="Sign in with a biometric template",
)
def face_login(
    request_data: FaceDataRequest,
    device: DeviceInfo = Depends(get_device_info),
    service: IdentityService = Depends(get_identity_service),
) -> AuthResponse:
    result = service.face_login(request_data.face_data, device)
    return AuthResponse.from_result(result, "Face login successful")


@router.post(
    "/face",
    response_model=AccountResponse,
    responses={401: {"model": ErrorResponse, "description": "Not authenticated"}},
    summary="Enrol a biometric template for face login",
)
def enable_face(
    request_data: FaceDataRequest,
    principal: Principal = Depends(require_principal),
    service: IdentityService = Depends(get_identity_service),
) -> AccountResponse:
    account = service.enable_face_login(principal.account.id, request_data.face_data)
    return AccountResponse.from_domain(account)


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    summary="Request a password reset link",
    description="Always returns the same response whether or not the email is registered.",
)
def forgot_password(
    request_data: ForgotPasswordRequest,
    service: IdentityService = Depends(get_identity_service),
) -> MessageResponse:
    return MessageResponse(message=service.request_password_reset(request_data.email))


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid or expired token, or weak password"}},
    summary="Set a new password with a reset token",
)
def reset_password(
    request_data: ResetPasswordRequest,
    service: IdentityService = Depends(get_identity_service),
) -> MessageResponse:
    service.complete_password_reset(request_data.token, request_data.password)
    return MessageResponse(message="Password reset successfully")


@router.post(
    "/logout",
    response_model=MessageResponse,
    responses={401: {"model": ErrorResponse, "description": "Missing bearer token"}},
    summary="End the current session",
)
def logout(
    token: str = Depends(get_bearer_token),
    service: IdentityService = Depends(get_identity_service),
) -> MessageResponse:
    service.logout(token)
    return MessageResponse(message="Logout successful")


@router.get(
    "/verify-token",
    response_model=TokenStatusResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid, expired or revoked token"},
        403: {"model": ErrorResponse, "description": "Account inactive"},
    },
    summary="Check a bearer token",
)
def verify_token(principal: Principal = Depends(require_principal)) -> TokenStatusResponse:
    return TokenStatusResponse(valid=True, account=AccountResponse.from_domain(principal.account))


@router.get(
    "/me",
    response_model=AccountResponse,
    responses={401: {"model": ErrorResponse, "description": "Not authenticated"}},
    summary="Current account profile",
)
def me(
    principal: Principal = Depends(require_principal),
    service: IdentityService = Depends(get_identity_service),
) -> AccountResponse:
    return AccountResponse.from_domain(service.get_account(principal.account.id))


@router.get(
    "/session",
    response_model=SessionStatusResponse,
    summary="Report whether the request carries a valid session",
)
def session_status(principal: Principal | None = Depends(optional_principal)) -> SessionStatusResponse:
    if principal is None:
        return SessionStatusResponse(authenticated=False)
    return SessionStatusResponse(
        authenticated=True, account=AccountResponse.from_domain(principal.account)
    )
