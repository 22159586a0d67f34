from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_roles
from app.auth.schemas import CurrentUser
from app.core.enums import APPROVER_ROLES
from app.core.exceptions import ServiceError, error_detail
from app.db.session import get_db

from app.api.v1.course_uploads import service as course_upload_service

from .schemas import (
    CourseAdd,
    CourseUploadResponse,
    RegistrationDecisionResponse,
    RegistrationReject,
    RegistrationResponse,
    RegistrationSubmit,
)
from . import service

router = APIRouter(prefix="/api/v1/registrations", tags=["registrations"])


@router.post("", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def submit_registration(
    payload: RegistrationSubmit,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RegistrationResponse:
    """Student submits a semester registration. One registration per student per semester."""
    try:
        return await service.submit_registration(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))


@router.get("", response_model=List[RegistrationResponse])
async def list_registrations(
    semester_id: Optional[UUID] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    user_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[RegistrationResponse]:
    """Admin/registrar/staff see all registrations; students only their own."""
    return await service.list_registrations(
        db, current_user, semester_id=semester_id, status_filter=status_filter, user_id=user_id
    )


@router.get("/{registration_id}", response_model=RegistrationResponse)
async def get_registration(
    registration_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RegistrationResponse:
    try:
        return await service.get_registration(db, current_user, registration_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))


@router.post(
    "/{registration_id}/approve",
    response_model=RegistrationDecisionResponse,
    dependencies=[Depends(require_roles(*APPROVER_ROLES))],
)
async def approve_registration(
    registration_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RegistrationDecisionResponse:
    """Approve the registration and every course in it; issues the registration card."""
    try:
        return await service.approve_registration(db, current_user, registration_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))


@router.post(
    "/{registration_id}/reject",
    response_model=RegistrationDecisionResponse,
    dependencies=[Depends(require_roles(*APPROVER_ROLES))],
)
async def reject_registration(
    registration_id: UUID,
    payload: RegistrationReject,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RegistrationDecisionResponse:
    """Reject with a reason; every course in the registration is rejected too."""
    try:
        return await service.reject_registration(db, current_user, registration_id, payload.reason)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))


@router.delete("/{registration_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_registration(
    registration_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await service.delete_registration(db, current_user, registration_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{registration_id}/courses",
    response_model=CourseUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_course(
    registration_id: UUID,
    payload: CourseAdd,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> CourseUploadResponse:
    """Add a course to your own PENDING registration."""
    try:
        return await course_upload_service.add_course(db, current_user, registration_id, payload.course_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))
