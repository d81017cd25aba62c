"""
Authentication and user routers.

This module provides FastAPI routers for:
- Login, current user, logout and token refresh (``/api/auth``)
- Registration and account approval (``/api/users``)
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Request, Security, status
from sqlalchemy.ext.asyncio import AsyncSession

from ctpga_manager.auth.jwt import (
    InvalidTokenError, Principal, TokenIssuer, TokenResponse, get_token_issuer
)
from ctpga_manager.auth.middleware import (
    ADMIN_ROLES, INVALID_TOKEN_MESSAGE, NO_TOKEN_MESSAGE, SUPERADMIN,
    RBACMiddleware, auth_token_header, get_current_user
)
from ctpga_manager.auth.users import (
    LoginOut, LoginUser, RefreshRequest, StatusUpdate, UserCreate, UserLogin, UserOut, UserService
)
from ctpga_manager.base_service import base_service
from ctpga_manager.database import get_db_session
from ctpga_manager.errors import ApiError, server_error

USER_NOT_FOUND_MESSAGE = "Usuario no encontrado"

router = APIRouter(prefix="/api/auth", tags=["auth"])
users_router = APIRouter(prefix="/api/users", tags=["users"])


# --- Auth Endpoints ---

@router.post("", response_model=LoginOut)
async def login(
    login_data: UserLogin,
    db: AsyncSession = Depends(get_db_session),
    issuer: TokenIssuer = Depends(get_token_issuer)
):
    """
    Authenticate a user and return a token.

    Args:
        login_data: Email and password
        db: Database session
        issuer: Token issuer

    Returns:
        Token and public profile of the user
    """
    try:
        user = await UserService.authenticate_user(login_data, db)
        token = issuer.issue(Principal(id=user.id, role=user.role))

        base_service.log_user_action(user.id, "login")

        return LoginOut(token=token, user=LoginUser.model_validate(user))
    except ApiError as e:
        base_service.log_event("user.login.failed", {
            "email": login_data.email,
            "reason": e.msg
        })
        raise
    except Exception as e:
        return server_error(e, context="User login")


@router.get("", response_model=UserOut)
async def get_current_user_info(
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """Get the profile of the authenticated user, without the password."""
    try:
        user = await UserService.get_user_by_id(principal.id, db)
        if user is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, USER_NOT_FOUND_MESSAGE)
        return UserOut.model_validate(user)
    except ApiError:
        raise
    except Exception as e:
        return server_error(e, context="Get current user")


@router.post("/logout")
async def logout(
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """Mark the authenticated user offline. The token itself stays valid until it expires."""
    try:
        user = await UserService.set_online(principal.id, False, db)
        if user is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, USER_NOT_FOUND_MESSAGE)

        base_service.log_user_action(principal.id, "logout")

        return {"msg": "Sesión cerrada correctamente"}
    except ApiError:
        raise
    except Exception as e:
        return server_error(e, context="User logout")


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    body: Optional[RefreshRequest] = Body(default=None),
    header_token: Optional[str] = Security(auth_token_header),
    issuer: TokenIssuer = Depends(get_token_issuer)
):
    """
    Exchange a valid token for a new one with the same claims.

    The token is read from the ``token`` body field, or from the
    ``x-auth-token`` header when the body has none.
    """
    try:
        old_token = (body.token if body is not None else None) or header_token
        if not old_token:
            raise ApiError(status.HTTP_401_UNAUTHORIZED, NO_TOKEN_MESSAGE)

        try:
            new_token = issuer.refresh(old_token)
        except InvalidTokenError as e:
            base_service.log_auth_error(f"refresh_rejected: {e}", path="/api/auth/refresh")
            raise ApiError(status.HTTP_401_UNAUTHORIZED, INVALID_TOKEN_MESSAGE) from e

        return TokenResponse(token=new_token)
    except ApiError:
        raise
    except Exception as e:
        return server_error(e, context="Token refresh")


# --- User Endpoints ---

@users_router.post("", response_model=Dict[str, Any])
async def register_user(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db_session),
    issuer: TokenIssuer = Depends(get_token_issuer)
):
    """
    Register a new user.

    Superadmins are activated immediately and receive a token; every other
    account is left pending approval.
    """
    try:
        user = await UserService.register_user(user_data, db)

        base_service.log_event("user.registered", {
            "id": user.id,
            "role": user.role,
            "status": user.status
        })

        if user.role == SUPERADMIN:
            return {"token": issuer.issue(Principal(id=user.id, role=user.role))}
        return {"msg": "Solicitud de registro enviada. Pendiente de aprobación."}
    except ApiError:
        raise
    except Exception as e:
        return server_error(e, context="User registration")


@users_router.get("", response_model=List[UserOut])
async def get_users(
    principal: Principal = Depends(RBACMiddleware.has_roles(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db_session)
):
    """List users. Admins only see instructors."""
    try:
        users = await UserService.list_users(principal, db)
        return [UserOut.model_validate(user) for user in users]
    except Exception as e:
        return server_error(e, context="Get users")


@users_router.get("/pending", response_model=List[UserOut])
async def get_pending_users(
    principal: Principal = Depends(RBACMiddleware.has_roles(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db_session)
):
    """List accounts waiting for approval."""
    try:
        users = await UserService.list_users(principal, db, pending_only=True)
        return [UserOut.model_validate(user) for user in users]
    except Exception as e:
        return server_error(e, context="Get pending users")


@users_router.get("/admins", response_model=List[UserOut])
async def get_admins(
    principal: Principal = Depends(RBACMiddleware.has_roles([SUPERADMIN])),
    db: AsyncSession = Depends(get_db_session)
):
    """List administrators."""
    try:
        admins = await UserService.list_admins(db)
        return [UserOut.model_validate(user) for user in admins]
    except Exception as e:
        return server_error(e, context="Get admins")


@users_router.put("/{user_id}/status", response_model=UserOut)
async def update_user_status(
    user_id: str,
    update: StatusUpdate,
    principal: Principal = Depends(RBACMiddleware.has_roles(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db_session)
):
    """Approve or reject an account."""
    try:
        user = await UserService.update_status(principal, user_id, update.status, db)

        base_service.log_user_action(principal.id, "user.status.updated", {
            "user_id": user_id,
            "status": update.status
        })

        return UserOut.model_validate(user)
    except ApiError:
        raise
    except Exception as e:
        return server_error(e, context="Update user status")
