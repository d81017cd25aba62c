"""
User management service.

This module provides functionality for:
- User registration with approval workflow
- User authentication
- Listing users according to the caller's role
- Approving or rejecting pending accounts
"""
from datetime import datetime
from typing import Any, List, Literal, Optional

from fastapi import status
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ctpga_manager.auth.jwt import Principal
from ctpga_manager.auth.middleware import ADMIN, INSTRUCTOR, SUPERADMIN
from ctpga_manager.auth.models import User
from ctpga_manager.errors import ApiError


# Pydantic models for request validation
class UserCreate(BaseModel):
    """Model for user registration."""
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)
    role: Literal["instructor", "admin", "superadmin"]
    area: Optional[str] = None


class UserLogin(BaseModel):
    """Model for user login."""
    email: EmailStr
    password: str = Field(..., min_length=1)


class StatusUpdate(BaseModel):
    """Model for approving or rejecting an account."""
    status: Literal["active", "rejected"]


class RefreshRequest(BaseModel):
    """Optional body of the refresh endpoint. Non-string tokens are rejected by the verifier."""
    token: Optional[Any] = None


class UserOut(BaseModel):
    """Model for user information returned to clients."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    role: str
    area: Optional[str] = None
    status: str
    is_online: bool = False
    last_active: Optional[datetime] = None
    created_at: Optional[datetime] = None


class LoginUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    role: str
    area: Optional[str] = None


class LoginOut(BaseModel):
    """Token plus the public profile returned on login."""
    token: str
    user: LoginUser


class UserService:
    """
    Service for user management operations.
    """

    @staticmethod
    async def register_user(user_data: UserCreate, db: AsyncSession) -> User:
        """
        Register a new user.

        Superadmins are created active, every other role waits for approval.

        Raises:
            ApiError: If the email already exists or an admin has no area
        """
        result = await db.execute(select(User).where(User.email == user_data.email))
        if result.scalar_one_or_none() is not None:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "El usuario ya existe")

        if user_data.role == ADMIN and not user_data.area:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "El área es requerida para administradores")

        new_user = User(
            name=user_data.name,
            email=user_data.email,
            hashed_password=User.get_password_hash(user_data.password),
            role=user_data.role,
            area=user_data.area if user_data.role == ADMIN else None,
            status="active" if user_data.role == SUPERADMIN else "pending",
        )
        db.add(new_user)
        await db.commit()
        await db.refresh(new_user)
        return new_user

    @staticmethod
    async def authenticate_user(login_data: UserLogin, db: AsyncSession) -> User:
        """
        Authenticate a user and mark them online.

        Raises:
            ApiError: 400 on bad credentials, 401 if the account is not active
        """
        result = await db.execute(select(User).where(User.email == login_data.email))
        user = result.scalar_one_or_none()

        if user is None:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Credenciales inválidas")

        if not user.is_active:
            raise ApiError(
                status.HTTP_401_UNAUTHORIZED,
                "Su cuenta está pendiente de aprobación o ha sido rechazada",
            )

        if not user.verify_password(login_data.password):
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Credenciales inválidas")

        user.is_online = True
        user.last_active = datetime.utcnow()
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def get_user_by_id(user_id: str, db: AsyncSession) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == str(user_id)))
        return result.scalar_one_or_none()

    @staticmethod
    async def set_online(user_id: str, online: bool, db: AsyncSession) -> Optional[User]:
        """Update the presence flags of a user."""
        user = await UserService.get_user_by_id(user_id, db)
        if user is None:
            return None
        user.is_online = online
        user.last_active = datetime.utcnow()
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def list_users(principal: Principal, db: AsyncSession, pending_only: bool = False) -> List[User]:
        """
        List users visible to the caller.

        Admins only see instructors; superadmins see everyone.
        """
        query = select(User)
        if pending_only:
            query = query.where(User.status == "pending")
        if principal.role == ADMIN:
            query = query.where(User.role == INSTRUCTOR)
        result = await db.execute(query.order_by(User.created_at.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def list_admins(db: AsyncSession) -> List[User]:
        result = await db.execute(select(User).where(User.role == ADMIN).order_by(User.created_at.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def update_status(
        principal: Principal,
        user_id: str,
        new_status: str,
        db: AsyncSession
    ) -> User:
        """
        Approve or reject an account.

        Raises:
            ApiError: 404 if the user does not exist, 403 if an admin targets a
                non-instructor account
        """
        user = await UserService.get_user_by_id(user_id, db)
        if user is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Usuario no encontrado")

        if principal.role == ADMIN and user.role != INSTRUCTOR:
            raise ApiError(status.HTTP_403_FORBIDDEN, "No tiene permisos para modificar este usuario")

        user.status = new_status
        await db.commit()
        await db.refresh(user)
        return user
