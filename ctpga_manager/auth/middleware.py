"""
Authentication middleware.

This module provides FastAPI dependencies for:
- Principal validation from the ``x-auth-token`` header
- Role-based access control
"""
from typing import Iterable

from fastapi import Depends, Request, Security, status
from fastapi.security import APIKeyHeader

from ctpga_manager.auth.jwt import InvalidTokenError, Principal, TokenIssuer, get_token_issuer
from ctpga_manager.base_service import base_service
from ctpga_manager.errors import ApiError

AUTH_HEADER = "x-auth-token"

NO_TOKEN_MESSAGE = "No hay token, autorización denegada"
INVALID_TOKEN_MESSAGE = "Token no válido"
ACCESS_DENIED_MESSAGE = "Acceso denegado"

INSTRUCTOR = "instructor"
ADMIN = "admin"
SUPERADMIN = "superadmin"
ADMIN_ROLES = frozenset({ADMIN, SUPERADMIN})

# Header scheme for the credential token
auth_token_header = APIKeyHeader(name=AUTH_HEADER, auto_error=False)


async def get_current_user(
    request: Request,
    token: str = Security(auth_token_header),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> Principal:
    """
    FastAPI dependency to get the authenticated principal from the token header.

    The principal is also attached to ``request.state.user``.

    Raises:
        ApiError: 401 if the token is missing or does not verify
    """
    if not token:
        base_service.log_auth_error("missing_token", path=request.url.path)
        raise ApiError(status.HTTP_401_UNAUTHORIZED, NO_TOKEN_MESSAGE)

    try:
        principal = issuer.verify(token)
    except InvalidTokenError as e:
        base_service.log_auth_error(f"invalid_token: {e}", path=request.url.path)
        raise ApiError(status.HTTP_401_UNAUTHORIZED, INVALID_TOKEN_MESSAGE) from e

    request.state.user = principal
    return principal


def has_role(principal: Principal, roles: Iterable[str]) -> bool:
    """Check whether the principal holds any of the given roles."""
    return principal.role in frozenset(roles)


class RBACMiddleware:
    """
    Role-Based Access Control dependencies.

    Roles travel inside the token, so no database lookup is needed.
    """

    @staticmethod
    def has_roles(roles: Iterable[str]):
        """
        Dependency to check if the user has any of the specified roles.

        Args:
            roles: Allowed role names (any match is sufficient)

        Returns:
            Dependency function
        """
        allowed = frozenset(roles)

        async def verify_roles(principal: Principal = Depends(get_current_user)) -> Principal:
            if not has_role(principal, allowed):
                raise ApiError(status.HTTP_403_FORBIDDEN, ACCESS_DENIED_MESSAGE)
            return principal

        return verify_roles
