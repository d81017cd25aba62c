"""
Activities router.

CRUD endpoints for activities with a searchable, paginated list. Instructors
only see and modify their own activities; admins and superadmins see all.
"""
import math
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ctpga_manager.activities.models import Activity, ActivityTag
from ctpga_manager.auth.jwt import Principal
from ctpga_manager.auth.middleware import ACCESS_DENIED_MESSAGE, INSTRUCTOR, get_current_user
from ctpga_manager.base_service import base_service
from ctpga_manager.config import Settings, get_settings
from ctpga_manager.database import get_db_session
from ctpga_manager.errors import ApiError, server_error
from ctpga_manager.search.statements import apply_pagination, apply_sort
from ctpga_manager.search.utils import (
    build_full_text_statement, build_pagination_options, build_search_query, build_sort_options
)

NOT_FOUND_MESSAGE = "Actividad no encontrada"

# Search field groups for the list endpoint
TEXT_FIELDS = ["title", "description"]
EXACT_FIELDS = ["status", "category"]
RANGE_FIELDS = ["progress"]
ARRAY_FIELDS = ["tags"]
FULL_TEXT_FIELDS = ["title", "description"]

router = APIRouter(prefix="/api/activities", tags=["activities"])

Priority = Literal["baja", "media", "alta"]
Category = Literal["clase", "taller", "evaluacion", "proyecto", "otro"]
ActivityStatus = Literal["pending", "in-progress", "completed"]


class ActivityCreate(BaseModel):
    """Model for creating an activity."""
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    deadline: Optional[datetime] = None
    priority: Priority = "media"
    category: Category = "clase"
    location: Optional[str] = None
    tags: List[str] = []


class ActivityUpdate(BaseModel):
    """Model for updating an activity. Title and description are always required."""
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    deadline: Optional[datetime] = None
    priority: Optional[Priority] = None
    category: Optional[Category] = None
    location: Optional[str] = None
    status: Optional[ActivityStatus] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    tags: Optional[List[str]] = None


class InstructorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str


class ActivityOut(BaseModel):
    """Model for activity information returned to clients."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    instructor: Optional[InstructorOut] = None
    start_date: Optional[datetime] = None
    deadline: Optional[datetime] = None
    priority: str
    category: str
    location: Optional[str] = None
    status: str
    progress: int
    tags: List[str] = Field(default_factory=list, validation_alias="tag_names")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PaginationOut(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class ActivityList(BaseModel):
    activities: List[ActivityOut]
    pagination: PaginationOut


def _make_tags(names: List[str]) -> List[ActivityTag]:
    # Keep first occurrence order, drop blanks and duplicates
    seen = dict.fromkeys(name.strip() for name in names if name and name.strip())
    return [ActivityTag(name=name) for name in seen]


def _check_owner(principal: Principal, activity: Activity) -> None:
    if principal.role == INSTRUCTOR and activity.instructor_id != str(principal.id):
        raise ApiError(status.HTTP_403_FORBIDDEN, ACCESS_DENIED_MESSAGE)


async def _get_activity(activity_id: str, db: AsyncSession) -> Activity:
    result = await db.execute(
        select(Activity)
        .where(Activity.id == activity_id)
        .execution_options(populate_existing=True)
    )
    activity = result.scalar_one_or_none()
    if activity is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, NOT_FOUND_MESSAGE)
    return activity


@router.post("", response_model=ActivityOut)
async def create_activity(
    activity_data: ActivityCreate,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """Create an activity owned by the authenticated user."""
    try:
        activity = Activity(
            title=activity_data.title,
            description=activity_data.description,
            instructor_id=str(principal.id),
            deadline=activity_data.deadline,
            priority=activity_data.priority,
            category=activity_data.category,
            location=activity_data.location,
            tags=_make_tags(activity_data.tags),
        )
        db.add(activity)
        await db.commit()
        activity = await _get_activity(activity.id, db)

        base_service.log_user_action(principal.id, "activity.created", {"activity_id": activity.id})

        return ActivityOut.model_validate(activity)
    except ApiError:
        raise
    except Exception as e:
        return server_error(e, context="Create activity")


@router.get("", response_model=ActivityList)
async def list_activities(
    request: Request,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings)
):
    """
    List activities with advanced search.

    Query parameters:
        page, limit: Pagination
        sortBy, sortOrder: Sorting (``asc`` or ``desc``)
        title, description: Case-insensitive substring match
        status, category: Exact match
        minProgress, maxProgress: Progress range
        tags: Any of the given tags, repeat the parameter for several values
        startDate, endDate: Creation window
        q: Text searched in title and description
    """
    try:
        params = request.query_params

        base_query: Dict[str, Any] = {}
        if principal.role == INSTRUCTOR:
            base_query["instructorId"] = str(principal.id)

        search_query = build_search_query(params, TEXT_FIELDS, EXACT_FIELDS, RANGE_FIELDS, ARRAY_FIELDS)
        final_query = {**base_query, **search_query}

        pagination = build_pagination_options(params, settings.default_page_limit)
        sort = build_sort_options(params)

        stmt = build_full_text_statement(Activity, params.get("q"), FULL_TEXT_FIELDS, final_query)

        total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()

        stmt = apply_pagination(apply_sort(stmt, Activity, sort), pagination)
        activities = (await db.execute(stmt)).scalars().all()

        return ActivityList(
            activities=[ActivityOut.model_validate(activity) for activity in activities],
            pagination=PaginationOut(
                total=total,
                page=pagination.page,
                limit=pagination.limit,
                pages=math.ceil(total / pagination.limit),
            ),
        )
    except Exception as e:
        return server_error(e, context="List activities")


@router.get("/{activity_id}", response_model=ActivityOut)
async def get_activity(
    activity_id: str,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """Get one activity."""
    try:
        activity = await _get_activity(activity_id, db)
        _check_owner(principal, activity)
        return ActivityOut.model_validate(activity)
    except ApiError:
        raise
    except Exception as e:
        return server_error(e, context="Get activity")


@router.put("/{activity_id}", response_model=ActivityOut)
async def update_activity(
    activity_id: str,
    update: ActivityUpdate,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """Update an activity. Omitted optional fields keep their value."""
    try:
        activity = await _get_activity(activity_id, db)
        _check_owner(principal, activity)

        activity.title = update.title
        activity.description = update.description
        for field in ("deadline", "priority", "category", "location", "status", "progress"):
            value = getattr(update, field)
            if value is not None:
                setattr(activity, field, value)
        if update.tags is not None:
            activity.tags = _make_tags(update.tags)
        activity.updated_at = datetime.utcnow()

        await db.commit()
        activity = await _get_activity(activity_id, db)

        base_service.log_user_action(principal.id, "activity.updated", {"activity_id": activity_id})

        return ActivityOut.model_validate(activity)
    except ApiError:
        raise
    except Exception as e:
        return server_error(e, context="Update activity")


@router.delete("/{activity_id}")
async def delete_activity(
    activity_id: str,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """Delete an activity."""
    try:
        activity = await _get_activity(activity_id, db)
        _check_owner(principal, activity)

        await db.delete(activity)
        await db.commit()

        base_service.log_user_action(principal.id, "activity.deleted", {"activity_id": activity_id})

        return {"msg": "Actividad eliminada"}
    except ApiError:
        raise
    except Exception as e:
        return server_error(e, context="Delete activity")
