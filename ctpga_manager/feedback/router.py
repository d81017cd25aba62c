"""
Feedback router.

Any authenticated user can leave feedback and read their own; administrators
list every entry with filters and respond to it.
"""
import math
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ctpga_manager.activities.models import Activity
from ctpga_manager.activities.router import PaginationOut
from ctpga_manager.auth.jwt import Principal
from ctpga_manager.auth.middleware import (
    ACCESS_DENIED_MESSAGE, ADMIN_ROLES, RBACMiddleware, get_current_user, has_role
)
from ctpga_manager.base_service import base_service
from ctpga_manager.config import Settings, get_settings
from ctpga_manager.database import get_db_session
from ctpga_manager.errors import ApiError, server_error
from ctpga_manager.feedback.models import SYSTEM_TARGET, Feedback
from ctpga_manager.search.statements import apply_pagination, apply_search_query, apply_sort
from ctpga_manager.search.utils import build_pagination_options, build_search_query, build_sort_options

NOT_FOUND_MESSAGE = "Feedback no encontrado"

# Filters of the admin list; ``user`` filters on the author's id
EXACT_FIELDS = ["status", "targetType", "user"]

router = APIRouter(prefix="/api/feedback", tags=["feedback"])


class FeedbackCreate(BaseModel):
    """Model for leaving feedback."""
    model_config = ConfigDict(populate_by_name=True)

    target_type: Literal["activity", "system"] = Field(..., alias="targetType")
    target_id: Optional[str] = Field(default=None, alias="targetId")
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    comment: str = Field(..., min_length=1)


class FeedbackResponse(BaseModel):
    """Model for an administrator's answer."""
    response: str = Field(..., min_length=1)
    status: Literal["reviewed", "resolved"]


class FeedbackAuthor(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    role: str


class FeedbackTarget(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str


class FeedbackOut(BaseModel):
    """Model for feedback returned to clients."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user: Optional[FeedbackAuthor] = None
    target_type: str
    target_id: Optional[str] = None
    target: Optional[FeedbackTarget] = None
    rating: Optional[int] = None
    comment: str
    status: str
    response_text: Optional[str] = None
    responded_by: Optional[str] = None
    responded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FeedbackList(BaseModel):
    feedbacks: List[FeedbackOut]
    pagination: PaginationOut


async def _get_feedback(feedback_id: str, db: AsyncSession) -> Feedback:
    result = await db.execute(
        select(Feedback)
        .where(Feedback.id == feedback_id)
        .execution_options(populate_existing=True)
    )
    feedback = result.scalar_one_or_none()
    if feedback is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, NOT_FOUND_MESSAGE)
    return feedback


@router.post("", response_model=FeedbackOut)
async def create_feedback(
    feedback_data: FeedbackCreate,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Leave feedback about an activity or about the system.

    Activity feedback needs the activity id and a rating from 1 to 5; system
    feedback stores neither.
    """
    try:
        is_system = feedback_data.target_type == SYSTEM_TARGET
        if not is_system:
            if not feedback_data.target_id:
                raise ApiError(status.HTTP_400_BAD_REQUEST, "ID del objetivo es requerido")
            if feedback_data.rating is None:
                raise ApiError(status.HTTP_400_BAD_REQUEST, "La calificación debe ser entre 1 y 5")
            if await db.get(Activity, feedback_data.target_id) is None:
                raise ApiError(status.HTTP_404_NOT_FOUND, "Actividad no encontrada")

        feedback = Feedback(
            user_id=str(principal.id),
            target_type=feedback_data.target_type,
            target_id=None if is_system else feedback_data.target_id,
            rating=None if is_system else feedback_data.rating,
            comment=feedback_data.comment,
            status="pending",
        )
        db.add(feedback)
        await db.commit()
        feedback = await _get_feedback(feedback.id, db)

        base_service.log_user_action(principal.id, "feedback.created", {
            "feedback_id": feedback.id,
            "target_type": feedback.target_type
        })

        return FeedbackOut.model_validate(feedback)
    except ApiError:
        raise
    except Exception as e:
        return server_error(e, context="Create feedback")


@router.get("", response_model=FeedbackList)
async def list_feedback(
    request: Request,
    principal: Principal = Depends(RBACMiddleware.has_roles(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings)
):
    """
    List feedback, newest first.

    Query parameters:
        page, limit: Pagination
        status, targetType: Exact match
        user: Id of the author
        startDate, endDate: Creation window
    """
    try:
        params = request.query_params

        query = build_search_query(params, exact_fields=EXACT_FIELDS)
        if "user" in query:
            query["userId"] = query.pop("user")

        pagination = build_pagination_options(params, settings.default_page_limit)

        stmt = apply_search_query(select(Feedback), Feedback, query)
        total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()

        stmt = apply_pagination(apply_sort(stmt, Feedback, build_sort_options({})), pagination)
        feedbacks = (await db.execute(stmt)).scalars().all()

        return FeedbackList(
            feedbacks=[FeedbackOut.model_validate(feedback) for feedback in feedbacks],
            pagination=PaginationOut(
                total=total,
                page=pagination.page,
                limit=pagination.limit,
                pages=math.ceil(total / pagination.limit),
            ),
        )
    except Exception as e:
        return server_error(e, context="List feedback")


@router.get("/user", response_model=List[FeedbackOut])
async def list_own_feedback(
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """List the feedback left by the authenticated user, newest first."""
    try:
        stmt = apply_search_query(select(Feedback), Feedback, {"userId": str(principal.id)})
        stmt = apply_sort(stmt, Feedback, build_sort_options({}))
        feedbacks = (await db.execute(stmt)).scalars().all()
        return [FeedbackOut.model_validate(feedback) for feedback in feedbacks]
    except Exception as e:
        return server_error(e, context="List own feedback")


@router.get("/{feedback_id}", response_model=FeedbackOut)
async def get_feedback(
    feedback_id: str,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """Get one feedback entry. Non-administrators only see their own."""
    try:
        feedback = await _get_feedback(feedback_id, db)
        if not has_role(principal, ADMIN_ROLES) and feedback.user_id != str(principal.id):
            raise ApiError(status.HTTP_403_FORBIDDEN, ACCESS_DENIED_MESSAGE)
        return FeedbackOut.model_validate(feedback)
    except ApiError:
        raise
    except Exception as e:
        return server_error(e, context="Get feedback")


@router.put("/{feedback_id}/respond", response_model=FeedbackOut)
async def respond_feedback(
    feedback_id: str,
    answer: FeedbackResponse,
    principal: Principal = Depends(RBACMiddleware.has_roles(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db_session)
):
    """Answer a feedback entry and move it to ``reviewed`` or ``resolved``."""
    try:
        feedback = await _get_feedback(feedback_id, db)

        now = datetime.utcnow()
        feedback.response_text = answer.response
        feedback.responded_by = str(principal.id)
        feedback.responded_at = now
        feedback.status = answer.status
        feedback.updated_at = now

        await db.commit()
        feedback = await _get_feedback(feedback_id, db)

        base_service.log_user_action(principal.id, "feedback.responded", {
            "feedback_id": feedback_id,
            "status": answer.status
        })

        return FeedbackOut.model_validate(feedback)
    except ApiError:
        raise
    except Exception as e:
        return server_error(e, context="Respond feedback")
