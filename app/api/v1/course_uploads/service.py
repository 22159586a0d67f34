"""
Per-course decisions inside a semester registration.
Each approve/reject appends an Approval row; course-level decisions are only accepted
while the parent registration is still PENDING.
"""

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.schemas import CurrentUser
from app.core.enums import NotificationType, RegistrationStatus, UserRole
from app.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.core.models import Approval, Course, CourseUpload, LecturerCourse, Registration, Semester

from app.api.v1.notifications.service import OutgoingNotification, deliver

from app.api.v1.registrations.schemas import ApprovalResponse, CourseUploadResponse
from app.api.v1.registrations.service import REVIEWER_ROLES, approval_to_response, course_upload_to_response

logger = get_logger(__name__)

PENDING = RegistrationStatus.PENDING.value
APPROVED = RegistrationStatus.APPROVED.value
REJECTED = RegistrationStatus.REJECTED.value


async def _load_course_upload(db: AsyncSession, course_upload_id: UUID) -> Optional[CourseUpload]:
    result = await db.execute(
        select(CourseUpload)
        .where(CourseUpload.id == course_upload_id)
        .options(selectinload(CourseUpload.approvals))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _lock_course_upload(db: AsyncSession, course_upload_id: UUID) -> Optional[CourseUpload]:
    """Row-locked, freshly read course upload (status may have changed under a registration decision)."""
    result = await db.execute(
        select(CourseUpload)
        .where(CourseUpload.id == course_upload_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _is_course_lecturer(db: AsyncSession, user_id: UUID, course_id: UUID, semester_id: UUID) -> bool:
    result = await db.execute(
        select(LecturerCourse.id).where(
            LecturerCourse.lecturer_id == user_id,
            LecturerCourse.course_id == course_id,
            LecturerCourse.semester_id == semester_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def _ensure_can_decide(db: AsyncSession, actor: CurrentUser, cu: CourseUpload) -> None:
    """REGISTRAR, or the STAFF member teaching this course in this semester."""
    if actor.role == UserRole.REGISTRAR.value:
        return
    if actor.role == UserRole.STAFF.value and await _is_course_lecturer(db, actor.id, cu.course_id, cu.semester_id):
        return
    raise AuthorizationError("Only the registrar or the course lecturer can decide on this course")


async def _decide(
    db: AsyncSession,
    actor: CurrentUser,
    course_upload_id: UUID,
    new_status: str,
    comments: Optional[str],
) -> CourseUploadResponse:
    cu = await _lock_course_upload(db, course_upload_id)
    if not cu:
        raise NotFoundError("Course upload not found")
    await _ensure_can_decide(db, actor, cu)

    reg_status = (
        await db.execute(select(Registration.status).where(Registration.id == cu.registration_id))
    ).scalar_one()
    if reg_status != PENDING:
        raise ConflictError(f"Registration is already {reg_status}; course decisions are closed")

    cu.status = new_status
    cu.updated_at = datetime.utcnow()
    db.add(
        Approval(
            course_upload_id=cu.id,
            course_id=cu.course_id,
            user_id=cu.user_id,
            semester_id=cu.semester_id,
            approver_id=actor.id,
            status=new_status,
            comments=comments,
        )
    )
    await db.commit()

    response = course_upload_to_response(await _load_course_upload(db, course_upload_id))
    course_code = (await db.execute(select(Course.code).where(Course.id == cu.course_id))).scalar_one()
    logger.info(
        "course_upload_decided",
        course_upload_id=str(course_upload_id),
        status=new_status,
        approver_id=str(actor.id),
    )
    if new_status == APPROVED:
        note = OutgoingNotification(
            user_id=response.user_id,
            title="Course Approved",
            message=f"Your course {course_code} has been approved.",
            type=NotificationType.COURSE_APPROVAL.value,
        )
    else:
        note = OutgoingNotification(
            user_id=response.user_id,
            title="Course Rejected",
            message=f"Your course {course_code} has been rejected." + (f" Comments: {comments}" if comments else ""),
            type=NotificationType.COURSE_REJECTION.value,
        )
    await deliver(db, note)
    return response


async def approve_course(
    db: AsyncSession,
    actor: CurrentUser,
    course_upload_id: UUID,
    comments: Optional[str] = None,
) -> CourseUploadResponse:
    return await _decide(db, actor, course_upload_id, APPROVED, comments)


async def reject_course(
    db: AsyncSession,
    actor: CurrentUser,
    course_upload_id: UUID,
    comments: Optional[str] = None,
) -> CourseUploadResponse:
    return await _decide(db, actor, course_upload_id, REJECTED, comments)


async def withdraw(db: AsyncSession, actor: CurrentUser, course_upload_id: UUID) -> None:
    """
    Remove a course from a registration. Its approval history is kept, detached
    from the deleted upload.
    The owning student may withdraw PENDING or REJECTED uploads; APPROVED ones
    only the registrar can remove.
    """
    cu = await _lock_course_upload(db, course_upload_id)
    if not cu:
        raise NotFoundError("Course upload not found")
    if actor.role != UserRole.REGISTRAR.value:
        if cu.user_id != actor.id:
            raise AuthorizationError("You can only withdraw your own courses")
        if cu.status == APPROVED:
            raise AuthorizationError("An approved course can only be withdrawn by the registrar")
    await db.delete(cu)
    await db.commit()
    logger.info("course_upload_withdrawn", course_upload_id=str(course_upload_id), actor_id=str(actor.id))


async def add_course(
    db: AsyncSession,
    actor: CurrentUser,
    registration_id: UUID,
    course_id: UUID,
) -> CourseUploadResponse:
    """Owner adds one more course to a PENDING registration."""
    # Row lock: no PENDING upload may appear under an already decided registration
    result = await db.execute(
        select(Registration)
        .where(Registration.id == registration_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    reg = result.scalar_one_or_none()
    if not reg:
        raise NotFoundError("Registration not found")
    if reg.user_id != actor.id:
        raise AuthorizationError("You can only add courses to your own registration")
    if reg.status != PENDING:
        raise ConflictError(f"Registration is already {reg.status}; courses can no longer be added")
    if not await db.get(Course, course_id):
        raise NotFoundError("Course not found")
    semester = await db.get(Semester, reg.semester_id)
    if semester.course_upload_deadline and date.today() > semester.course_upload_deadline:
        raise ValidationError("The course upload deadline for this semester has passed")

    existing = await db.execute(
        select(CourseUpload.id).where(
            CourseUpload.user_id == reg.user_id,
            CourseUpload.semester_id == reg.semester_id,
            CourseUpload.course_id == course_id,
        )
    )
    if existing.scalar_one_or_none():
        raise ConflictError("Course already uploaded for this semester")

    cu = CourseUpload(
        registration_id=reg.id,
        course_id=course_id,
        user_id=reg.user_id,
        semester_id=reg.semester_id,
        status=PENDING,
    )
    db.add(cu)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Course already uploaded for this semester")
    logger.info("course_upload_added", registration_id=str(reg.id), course_id=str(course_id))
    return course_upload_to_response(await _load_course_upload(db, cu.id))


async def list_course_uploads(
    db: AsyncSession,
    actor: CurrentUser,
    user_id: Optional[UUID] = None,
    semester_id: Optional[UUID] = None,
) -> List[CourseUploadResponse]:
    """Course uploads with approval history. Non-reviewers only see their own."""
    if actor.role not in REVIEWER_ROLES:
        user_id = actor.id
    stmt = select(CourseUpload).options(selectinload(CourseUpload.approvals))
    if user_id is not None:
        stmt = stmt.where(CourseUpload.user_id == user_id)
    if semester_id is not None:
        stmt = stmt.where(CourseUpload.semester_id == semester_id)
    stmt = stmt.order_by(CourseUpload.created_at)
    result = await db.execute(stmt)
    return [course_upload_to_response(cu) for cu in result.scalars().all()]


async def lookup_approved_course_uploads(
    db: AsyncSession,
    user_id: UUID,
    semester_id: UUID,
) -> List[CourseUpload]:
    """APPROVED course uploads of a student in a semester. Used by the timetable projection."""
    result = await db.execute(
        select(CourseUpload).where(
            CourseUpload.user_id == user_id,
            CourseUpload.semester_id == semester_id,
            CourseUpload.status == APPROVED,
        )
    )
    return list(result.scalars().all())


async def list_approvals(
    db: AsyncSession,
    actor: CurrentUser,
    user_id: Optional[UUID] = None,
    semester_id: Optional[UUID] = None,
    course_id: Optional[UUID] = None,
) -> List[ApprovalResponse]:
    """Approval history, withdrawn courses included. Non-reviewers only see their own."""
    if actor.role not in REVIEWER_ROLES:
        user_id = actor.id
    stmt = select(Approval)
    if user_id is not None:
        stmt = stmt.where(Approval.user_id == user_id)
    if semester_id is not None:
        stmt = stmt.where(Approval.semester_id == semester_id)
    if course_id is not None:
        stmt = stmt.where(Approval.course_id == course_id)
    # course_upload_id may have been nulled by the database after the row was loaded
    stmt = stmt.order_by(Approval.created_at).execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return [approval_to_response(a) for a in result.scalars().all()]
