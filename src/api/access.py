"""
Access middleware - Bearer credential resolution for protected routes.

Routes depend on ``require_principal`` to reject any request that does
not carry a valid access token bound to an active account and an
active, unexpired session. ``optional_principal`` resolves the caller
when possible and falls back to anonymous on any failure.
"""

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.api.dependencies import get_identity_service
from src.domain.exceptions import IdentityError, Unauthorized
from src.domain.identity import IdentityService, Principal

bearer_scheme = HTTPBearer(auto_error=False, description="Access token from sign-in")


def get_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """
    Extract the bearer token from the Authorization header.

    Raises:
        Unauthorized: Header missing or not a Bearer credential
    """
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Access token required", reason="missing_token")
    return credentials.credentials


def require_principal(
    token: str = Depends(get_bearer_token),
    service: IdentityService = Depends(get_identity_service),
) -> Principal:
    """Resolve the caller or reject the request with a typed identity error."""
    return service.verify_token(token, require_session=True)


def optional_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    service: IdentityService = Depends(get_identity_service),
) -> Principal | None:
    """Resolve the caller if a valid credential is present, else None."""
    if credentials is None:
        return None
    try:
        return service.verify_token(credentials.credentials, require_session=True)
    except IdentityError:
        return None
