from __future__ import annotations

import logging
from typing import Annotated, NoReturn
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from decertify.models.identity import Role
from decertify.models.principal import Principal
from decertify.services import token_service
from decertify.services.errors import DecertifyError

logger = logging.getLogger(__name__)

# auto_error=False so a missing header is a 401 (HTTPBearer's default is 403).
bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal.

    Used as a FastAPI dependency on any protected endpoint.
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")
    try:
        claims = token_service.decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise _unauthorized("Invalid token") from None

    try:
        principal = Principal(identity_id=UUID(claims["sub"]), role=Role(claims["role"]))
    except ValueError:
        logger.warning(
            "Token with malformed subject or role rejected: sub=%r role=%r",
            claims.get("sub"),
            claims.get("role"),
        )
        raise _unauthorized("Invalid token") from None

    logger.debug(
        "Token validated for identity=%s role=%s",
        principal.identity_id,
        principal.role.value,
    )
    return principal


def raise_http(err: DecertifyError) -> NoReturn:
    """Map a domain error onto its HTTP response."""
    raise HTTPException(status_code=err.status_code, detail=err.to_detail()) from err
